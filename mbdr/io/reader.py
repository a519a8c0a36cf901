"""Entry points for decoding MCell binary reaction data archives.

:func:`read_header` is cheap: it only parses metadata and the block
directory.  :func:`read_archive` also loads the payload into a buffer
preallocated to its final size, which matters for multi-GB archives.
"""
from __future__ import annotations

import bz2
import logging
import warnings
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Tuple, Union

from ..archive import ChunkedLayout, LegacyLayout, TraceArchive
from ..constants import (
    BZIP2_MAGIC,
    FORMAT_CHUNKED,
    FORMAT_LEGACY,
    FORMAT_TAG_LENGTH,
    KNOWN_FORMATS,
    RESERVED_HEADER_BYTES,
)
from ..errors import UnrecognizedFormat
from ..warnings import DecodeWarning
from . import chunked, legacy
from .cursor import ByteCursor, ByteSource

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_HEADER_DECODERS: Dict[str, Callable[[ByteCursor, str], TraceArchive]] = {
    FORMAT_CHUNKED: chunked.decode_header,
    FORMAT_LEGACY: legacy.decode_header,
}


def _as_cursor(source: Union[ByteSource, ByteCursor]) -> ByteCursor:
    if isinstance(source, ByteCursor):
        return source
    return ByteCursor(source)


def read_format_tag(cursor: ByteCursor) -> str:
    raw = cursor.read_bytes(FORMAT_TAG_LENGTH, "format tag")
    tag = raw.decode("ascii", errors="replace")
    if tag not in KNOWN_FORMATS:
        raise UnrecognizedFormat(
            f"unrecognized format tag {tag!r}; expected one of {', '.join(KNOWN_FORMATS)}"
        )
    return tag


def decode_header(source: Union[ByteSource, ByteCursor]) -> TraceArchive:
    """Decode the header and block directory; the returned archive has no payload."""

    cursor = _as_cursor(source)
    tag = read_format_tag(cursor)
    cursor.skip(RESERVED_HEADER_BYTES, "reserved header byte")
    archive = _HEADER_DECODERS[tag](cursor, tag)
    if archive.block_count == 0:
        warnings.warn(f"{tag} archive declares no data blocks", DecodeWarning, stacklevel=2)
    return archive


def payload_extent(archive: TraceArchive) -> Tuple[int, int]:
    """Return ``(required, capacity)`` payload sizes in bytes."""

    if isinstance(archive.layout, ChunkedLayout):
        return chunked.payload_extent(archive)
    if isinstance(archive.layout, LegacyLayout):
        return legacy.payload_extent(archive)
    raise TypeError(f"unsupported archive layout {type(archive.layout).__name__}")


def decode_data(source: Union[ByteSource, ByteCursor], archive: TraceArchive) -> TraceArchive:
    """Load the payload belonging to ``archive`` and return a loaded copy.

    ``source`` may be the complete archive as bytes (the header is skipped),
    a :class:`ByteCursor` positioned right after the header, or a binary
    stream positioned right after the header.
    """

    if isinstance(source, ByteCursor):
        cursor = source
        if cursor.position != archive.header_length:
            raise ValueError(
                f"cursor at offset {cursor.position}, payload starts at {archive.header_length}"
            )
    elif isinstance(source, (bytes, bytearray, memoryview)):
        cursor = ByteCursor(source, position=archive.header_length)
    else:
        cursor = ByteCursor(source)
    required, capacity = payload_extent(archive)
    payload = cursor.read_bulk(required, capacity)
    logger.debug("loaded %d byte payload for %d blocks", len(payload), archive.block_count)
    return archive.with_payload(payload)


def decode(source: Union[ByteSource, ByteCursor]) -> TraceArchive:
    """Decode header and payload from a single source."""

    cursor = _as_cursor(source)
    return decode_data(cursor, decode_header(cursor))


def open_archive(path: PathLike) -> BinaryIO:
    """Open ``path`` for reading, transparently decompressing bzip2 files."""

    path = Path(path)
    with path.open("rb") as fh:
        magic = fh.read(len(BZIP2_MAGIC))
    if magic == BZIP2_MAGIC:
        return bz2.open(path, "rb")
    logger.debug("%s is not bzip2 compressed; reading it as-is", path)
    return path.open("rb")


def read_header(path: PathLike) -> TraceArchive:
    """Parse only the metadata of the archive at ``path``."""

    with open_archive(path) as fh:
        return decode_header(ByteCursor(fh))


def read_archive(path: PathLike) -> TraceArchive:
    """Parse metadata and payload of the archive at ``path``."""

    with open_archive(path) as fh:
        archive = decode(ByteCursor(fh))
    logger.debug("decoded %s (%s, %d blocks)", path, archive.format_version, archive.block_count)
    return archive


__all__ = [
    "read_format_tag",
    "decode_header",
    "decode_data",
    "decode",
    "payload_extent",
    "open_archive",
    "read_header",
    "read_archive",
]
