from __future__ import annotations

import bz2
import struct
import sys
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mbdr.constants import FORMAT_CHUNKED, FORMAT_LEGACY, OutputScheme  # noqa: E402

# (name, matrix of shape (iterations, columns), optional u16 kinds)
ChunkedBlockSpec = Tuple[str, np.ndarray]


def _cstring(name: str) -> bytes:
    return name.encode("utf-8") + b"\x00"


def build_chunked_bytes(
    blocks: Sequence[ChunkedBlockSpec],
    *,
    stride: int,
    scheme: OutputScheme = OutputScheme.STEP,
    step_size: float = 1.0e-6,
    time_list: Optional[Sequence[float]] = None,
    slack: int = 0,
    kinds: Optional[Mapping[str, Sequence[int]]] = None,
) -> bytes:
    """Serialise ``blocks`` as an ``MCELL_BINARY_API_2`` archive."""

    matrices = [np.asarray(matrix, dtype=np.float64).reshape(len(matrix), -1) for _, matrix in blocks]
    n_rows = matrices[0].shape[0] if matrices else 0
    out = bytearray(FORMAT_CHUNKED.encode("ascii"))
    out += b"\x00"
    out += struct.pack("<H", int(scheme))
    out += struct.pack("<Q", n_rows)
    if scheme == OutputScheme.STEP:
        out += struct.pack("<Q", 1)
        out += struct.pack("<d", step_size)
    else:
        values = list(time_list or [])
        out += struct.pack("<Q", len(values))
        out += struct.pack(f"<{len(values)}d", *values)
    out += struct.pack("<Q", stride)
    out += struct.pack("<Q", len(blocks))
    for (name, _), matrix in zip(blocks, matrices):
        n_cols = matrix.shape[1]
        out += _cstring(name)
        out += struct.pack("<Q", n_cols)
        block_kinds = list((kinds or {}).get(name, [1] * n_cols))
        out += struct.pack(f"<{n_cols}H", *block_kinds)

    start = 0
    while start < n_rows:
        rows = min(stride, n_rows - start)
        for matrix in matrices:
            out += matrix[start : start + rows].astype("<f8").tobytes()
        start += rows
    out += b"\x00" * slack
    return bytes(out)


def build_legacy_bytes(
    blocks: Sequence[Tuple[str, np.ndarray, int]],
    *,
    scheme_code: int = 0,
    step_size: float = 1.0e-6,
    time_list: Optional[Sequence[float]] = None,
    end_adjust: Optional[Mapping[str, int]] = None,
) -> bytes:
    """Serialise ``(name, values, kind)`` triples as an ``MCELL_BINARY_API_1`` archive.

    ``kind`` is 0 for u32 and 1 for f64.  ``end_adjust`` shifts the declared
    end offset of the named blocks to produce inconsistent directories.
    """

    n_rows = len(blocks[0][1]) if blocks else 0
    out = bytearray(FORMAT_LEGACY.encode("ascii"))
    out += b"\x00"
    out += struct.pack("<Q", n_rows)
    out += struct.pack("<I", len(blocks))
    for name, _, _ in blocks:
        out += _cstring(name)
    out += struct.pack("<I", scheme_code)
    if scheme_code == 0:
        out += struct.pack("<Q", 1)
        out += struct.pack("<d", step_size)
    else:
        values = list(time_list or [])
        out += struct.pack("<Q", len(values))
        out += struct.pack(f"<{len(values)}d", *values)

    header_length = len(out) + len(blocks) * (1 + 8 + 8)
    payload = bytearray()
    offset = header_length
    for name, values, kind in blocks:
        dtype = "<u4" if kind == 0 else "<f8"
        raw = np.asarray(values).astype(dtype).tobytes()
        end = offset + len(raw) + (end_adjust or {}).get(name, 0)
        out += struct.pack("<B", kind)
        out += struct.pack("<Q", offset)
        out += struct.pack("<Q", end)
        payload += raw
        offset += len(raw)
    out += payload
    return bytes(out)


def write_bz2(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with bz2.open(path, "wb") as fh:
        fh.write(data)
    return path


@pytest.fixture
def chunked_bytes() -> Callable[..., bytes]:
    return build_chunked_bytes


@pytest.fixture
def legacy_bytes() -> Callable[..., bytes]:
    return build_legacy_bytes


@pytest.fixture
def bz2_writer() -> Callable[[Path, bytes], Path]:
    return write_bz2


@pytest.fixture
def trace_archive_bytes() -> Callable[..., bytes]:
    """Chunked archive of single-column traces given as ``{name: values}``."""

    def _build(traces: Dict[str, Sequence[float]], *, stride: int = 4, step_size: float = 1.0e-3) -> bytes:
        blocks: List[ChunkedBlockSpec] = [
            (name, np.asarray(values, dtype=np.float64).reshape(-1, 1)) for name, values in traces.items()
        ]
        return build_chunked_bytes(blocks, stride=stride, step_size=step_size)

    return _build
