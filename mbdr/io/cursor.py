"""Little-endian field reader over an immutable buffer or a binary stream.

:class:`ByteCursor` tracks its own ``position`` instead of re-slicing the
underlying buffer, so several cursors can read the same bytes independently.
Every short read raises :class:`~mbdr.errors.TruncatedArchive` naming the
field that could not be completed.
"""
from __future__ import annotations

import logging
import struct
from typing import BinaryIO, Optional, Union

import numpy as np

from ..constants import LEN_BYTE, LEN_FLOAT64, LEN_UINT16, LEN_UINT32, LEN_UINT64
from ..errors import MalformedArchive, TruncatedArchive

logger = logging.getLogger(__name__)

ByteSource = Union[bytes, bytearray, memoryview, BinaryIO]

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_F64 = struct.Struct("<d")

# read granularity for stream-backed bulk reads
_BULK_READ_CHUNK = 1 << 24


class ByteCursor:
    """Sequential reader with an explicit position.

    Parameters
    ----------
    source:
        Either a bytes-like object (read without copying) or a readable
        binary stream such as :class:`bz2.BZ2File`.
    position:
        Starting offset; only meaningful for bytes-like sources.
    """

    def __init__(self, source: ByteSource, *, position: int = 0) -> None:
        self._buffer: Optional[memoryview] = None
        self._stream: Optional[BinaryIO] = None
        if isinstance(source, (bytes, bytearray, memoryview)):
            self._buffer = memoryview(source).cast("B").toreadonly()
            if position < 0 or position > len(self._buffer):
                raise ValueError(f"position {position} outside buffer of {len(self._buffer)} bytes")
            self._position = int(position)
        else:
            if position:
                raise ValueError("position can only be set for bytes-like sources")
            self._stream = source
            self._position = 0

    @property
    def position(self) -> int:
        return self._position

    def _read_exact(self, size: int, field: str) -> bytes:
        if size < 0:
            raise ValueError("size must be non-negative")
        if self._buffer is not None:
            end = self._position + size
            if end > len(self._buffer):
                raise TruncatedArchive(
                    f"short read for {field} at offset {self._position}: "
                    f"needed {size} bytes, {len(self._buffer) - self._position} available"
                )
            data = self._buffer[self._position : end].tobytes()
        else:
            parts = []
            remaining = size
            while remaining > 0:
                chunk = self._stream.read(remaining)
                if not chunk:
                    break
                parts.append(chunk)
                remaining -= len(chunk)
            data = b"".join(parts)
            if len(data) != size:
                raise TruncatedArchive(
                    f"short read for {field} at offset {self._position}: "
                    f"needed {size} bytes, got {len(data)}"
                )
        self._position += size
        return data

    def read_bytes(self, size: int, field: str = "bytes") -> bytes:
        return self._read_exact(size, field)

    def skip(self, size: int, field: str = "reserved bytes") -> None:
        self._read_exact(size, field)

    def read_byte(self, field: str = "byte") -> int:
        return self._read_exact(LEN_BYTE, field)[0]

    def read_u16(self, field: str = "u16") -> int:
        return _U16.unpack(self._read_exact(LEN_UINT16, field))[0]

    def read_u32(self, field: str = "u32") -> int:
        return _U32.unpack(self._read_exact(LEN_UINT32, field))[0]

    def read_u64(self, field: str = "u64") -> int:
        return _U64.unpack(self._read_exact(LEN_UINT64, field))[0]

    def read_f64(self, field: str = "f64") -> float:
        return _F64.unpack(self._read_exact(LEN_FLOAT64, field))[0]

    def read_f64_array(self, count: int, field: str = "f64 array") -> np.ndarray:
        raw = self._read_exact(count * LEN_FLOAT64, field)
        return np.frombuffer(raw, dtype="<f8").astype(np.float64)

    def read_cstring(self, field: str = "name") -> str:
        """Read a NUL-terminated string; the terminator is consumed."""

        start = self._position
        if self._buffer is not None:
            end = start
            size = len(self._buffer)
            while end < size and self._buffer[end] != 0:
                end += 1
            if end >= size:
                raise TruncatedArchive(f"unterminated {field} starting at offset {start}")
            raw = self._buffer[start:end].tobytes()
            self._position = end + 1
        else:
            raw_parts = bytearray()
            while True:
                chunk = self._stream.read(1)
                if not chunk:
                    raise TruncatedArchive(f"unterminated {field} starting at offset {start}")
                self._position += 1
                if chunk == b"\x00":
                    break
                raw_parts += chunk
            raw = bytes(raw_parts)
        return raw.decode("utf-8", errors="replace")

    def read_bulk(self, required: int, capacity: int, field: str = "payload") -> memoryview:
        """Read the rest of the source into a buffer preallocated to ``capacity``.

        At least ``required`` bytes must be present; anything between
        ``required`` and ``capacity`` is accepted as trailing slack.  More
        than ``capacity`` bytes raises :class:`MalformedArchive`.  The
        returned view is read-only and covers only the bytes actually read.
        """

        if capacity < required:
            raise ValueError("capacity must be at least the required size")
        if self._buffer is not None:
            available = len(self._buffer) - self._position
            if available < required:
                raise TruncatedArchive(
                    f"short read for {field} at offset {self._position}: "
                    f"needed {required} bytes, {available} available"
                )
            if available > capacity:
                raise MalformedArchive(
                    f"{field} holds {available} bytes, more than the {capacity} byte buffer"
                )
            view = self._buffer[self._position :]
            self._position += available
            return view

        buffer = bytearray(capacity)
        view = memoryview(buffer)
        filled = 0
        readinto = getattr(self._stream, "readinto", None)
        while filled < capacity:
            want = min(_BULK_READ_CHUNK, capacity - filled)
            if readinto is not None:
                count = readinto(view[filled : filled + want])
            else:
                chunk = self._stream.read(want)
                count = len(chunk)
                view[filled : filled + count] = chunk
            if not count:
                break
            filled += count
        if filled < required:
            raise TruncatedArchive(
                f"short read for {field} at offset {self._position}: "
                f"needed {required} bytes, got {filled}"
            )
        if filled == capacity and self._stream.read(1):
            raise MalformedArchive(
                f"{field} is larger than the {capacity} byte buffer"
            )
        self._position += filled
        logger.debug("read %d payload bytes (required %d, capacity %d)", filled, required, capacity)
        return view[:filled].toreadonly()


__all__ = ["ByteCursor", "ByteSource"]
