"""Decoded representation of one MCell binary reaction data archive.

An archive is either *chunked* (``MCELL_BINARY_API_2``) or *legacy*
(``MCELL_BINARY_API_1``).  The variant is fixed when the header is decoded
and carried as the ``layout`` of :class:`TraceArchive`;
:func:`resolve_columns` dispatches on it.

Chunked payload
---------------
MCell flushes its output buffer every ``output_buf_size`` iterations.  Each
flush (a *stream chunk*) writes, block after block, the rows of that block
for the iterations held in the buffer, every value as a little-endian
float64.  For chunk ``k`` holding ``rows_k`` iterations::

    chunk_base(k) = k * output_buf_size * total_column_count
    block_start   = chunk_base(k) + rows_k * block.offset
    value(r, c)   = block_start + (r - k * output_buf_size) * block.column_count + c

(all in items of 8 bytes).  ``rows_k`` equals ``output_buf_size`` except for
the final chunk, which holds the remaining
``iterations_per_block - k * output_buf_size`` iterations.

Legacy payload
--------------
Every block occupies one contiguous run ``[start, end)`` of u32 or f64
values.  Offsets in the directory are absolute file offsets; the first
block's start is subtracted to address the payload buffer.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .constants import (
    CHUNKED_ITEM_DTYPE,
    LEGACY_ITEM_DTYPE,
    LEGACY_ITEM_WIDTH,
    LEN_FLOAT64,
    LegacyDataKind,
    OutputScheme,
)
from .errors import (
    ArchiveNotLoaded,
    BlockBoundsMismatch,
    BlockIdOutOfRange,
    BlockNotFound,
    MalformedArchive,
    UnexpectedColumnCount,
)

logger = logging.getLogger(__name__)

BlockRef = Union[str, int]


@dataclass(frozen=True)
class ChunkedBlock:
    """Directory entry of a chunked archive."""

    name: str
    column_count: int
    data_kinds: Tuple[int, ...]
    offset: int  # first column of this block in the archive's column space


@dataclass(frozen=True)
class ChunkedLayout:
    output_buf_size: int
    total_column_count: int
    blocks: Tuple[ChunkedBlock, ...]

    def __post_init__(self) -> None:
        declared = sum(block.column_count for block in self.blocks)
        if declared != self.total_column_count:
            raise MalformedArchive(
                f"block column counts sum to {declared}, expected {self.total_column_count}"
            )


@dataclass(frozen=True)
class LegacyBlockEntry:
    """Directory entry of a legacy archive."""

    name: str
    kind: LegacyDataKind
    start: int
    end: int


@dataclass(frozen=True)
class LegacyLayout:
    base_offset: int
    entries: Tuple[LegacyBlockEntry, ...]


ArchiveLayout = Union[ChunkedLayout, LegacyLayout]


@dataclass(frozen=True)
class ColumnSeries:
    """Columns of one resolved data block."""

    name: str
    columns: List[np.ndarray]
    data_kinds: Tuple[int, ...]

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def single_column(self) -> np.ndarray:
        if len(self.columns) != 1:
            raise UnexpectedColumnCount(
                f"data set {self.name} has {len(self.columns)} columns, expected 1"
            )
        return self.columns[0]


@dataclass(frozen=True, eq=False)
class TraceArchive:
    """Read-only decoded archive.

    ``payload`` is ``None`` for archives decoded header-only; use
    :func:`mbdr.io.reader.decode_data` to obtain a copy carrying the data.
    """

    format_version: str
    output_scheme: OutputScheme
    iterations_per_block: int
    block_names: Tuple[str, ...]
    layout: ArchiveLayout
    step_size: float = 0.0
    time_list: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    header_length: int = 0
    payload: Optional[memoryview] = None
    _index: Dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        index: Dict[str, int] = {}
        for position, name in enumerate(self.block_names):
            if name in index:
                raise MalformedArchive(f"duplicate block name {name!r}")
            index[name] = position
        object.__setattr__(self, "_index", index)
        times = np.array(self.time_list, dtype=np.float64)
        times.setflags(write=False)
        object.__setattr__(self, "time_list", times)

    @property
    def block_count(self) -> int:
        return len(self.block_names)

    @property
    def is_chunked(self) -> bool:
        return isinstance(self.layout, ChunkedLayout)

    @property
    def has_payload(self) -> bool:
        return self.payload is not None

    @property
    def total_column_count(self) -> int:
        if self.is_chunked:
            return self.layout.total_column_count
        return self.block_count

    def block_index(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise BlockNotFound(f"dataset {name} not found") from None

    def block_name(self, block_id: int) -> str:
        if block_id < 0 or block_id >= self.block_count:
            raise BlockIdOutOfRange(
                f"requested id {block_id} is out of range [0, {self.block_count})"
            )
        return self.block_names[block_id]

    def resolve_block(self, block: BlockRef) -> int:
        if isinstance(block, str):
            return self.block_index(block)
        if isinstance(block, bool) or not isinstance(block, (int, np.integer)):
            raise TypeError(f"block must be a name or an integer id, got {type(block).__name__}")
        self.block_name(int(block))
        return int(block)

    def output_times(self) -> np.ndarray:
        """Output time (or iteration) of every row of a block."""

        if self.output_scheme == OutputScheme.STEP:
            return self.step_size * np.arange(self.iterations_per_block, dtype=np.float64)
        return np.array(self.time_list, dtype=np.float64)

    def with_payload(self, payload: memoryview) -> "TraceArchive":
        return dataclasses.replace(self, payload=payload)

    def columns(self, block: BlockRef) -> ColumnSeries:
        return resolve_columns(self, block)

    def columns_by_regex(self, pattern: str) -> Dict[str, ColumnSeries]:
        """Resolve every block whose name matches ``pattern`` (``re.search``)."""

        regex = re.compile(pattern)
        return {
            name: resolve_columns(self, position)
            for position, name in enumerate(self.block_names)
            if regex.search(name)
        }


def resolve_columns(archive: TraceArchive, block: BlockRef) -> ColumnSeries:
    """Materialise the columns of ``block`` as float64 vectors.

    ``block`` is a block name or a numeric id.  Each call returns fresh
    arrays; the archive payload is never modified.
    """

    index = archive.resolve_block(block)
    if not archive.has_payload:
        raise ArchiveNotLoaded(
            f"archive was decoded header-only; cannot resolve {archive.block_names[index]!r}"
        )
    layout = archive.layout
    if isinstance(layout, ChunkedLayout):
        return _resolve_chunked(archive, layout, index)
    if isinstance(layout, LegacyLayout):
        return _resolve_legacy(archive, layout, index)
    raise TypeError(f"unsupported archive layout {type(layout).__name__}")


def _resolve_chunked(archive: TraceArchive, layout: ChunkedLayout, index: int) -> ColumnSeries:
    block = layout.blocks[index]
    n_rows = archive.iterations_per_block
    n_cols = block.column_count
    if n_rows == 0 or n_cols == 0:
        empty = [np.empty(n_rows, dtype=np.float64) for _ in range(n_cols)]
        return ColumnSeries(block.name, empty, block.data_kinds)

    stride = layout.output_buf_size
    values = np.frombuffer(
        archive.payload, dtype=CHUNKED_ITEM_DTYPE, count=n_rows * layout.total_column_count
    )
    pieces = []
    row = 0
    chunk = 0
    while row < n_rows:
        rows_in_chunk = min(stride, n_rows - row)
        start = chunk * stride * layout.total_column_count + rows_in_chunk * block.offset
        stop = start + rows_in_chunk * n_cols
        pieces.append(values[start:stop].reshape(rows_in_chunk, n_cols))
        row += rows_in_chunk
        chunk += 1
    matrix = np.concatenate(pieces, axis=0)
    columns = [np.array(matrix[:, col], dtype=np.float64) for col in range(n_cols)]
    logger.debug(
        "resolved block %s: %d columns across %d stream chunks", block.name, n_cols, chunk
    )
    return ColumnSeries(block.name, columns, block.data_kinds)


def _resolve_legacy(archive: TraceArchive, layout: LegacyLayout, index: int) -> ColumnSeries:
    entry = layout.entries[index]
    n_rows = archive.iterations_per_block
    width = LEGACY_ITEM_WIDTH[entry.kind]
    start = entry.start - layout.base_offset
    stop = start + n_rows * width
    expected_stop = entry.end - layout.base_offset
    if start < 0 or stop != expected_stop:
        raise BlockBoundsMismatch(
            f"did not properly reach end of data block {index} ({entry.name}): "
            f"decoded [{start}, {stop}) but directory declares [{start}, {expected_stop})"
        )
    if stop > len(archive.payload):
        raise BlockBoundsMismatch(
            f"data block {index} ({entry.name}) ends at {stop}, beyond the "
            f"{len(archive.payload)} byte payload"
        )
    values = np.frombuffer(
        archive.payload, dtype=LEGACY_ITEM_DTYPE[entry.kind], count=n_rows, offset=start
    )
    return ColumnSeries(entry.name, [values.astype(np.float64)], (int(entry.kind),))


def chunked_payload_size(iterations_per_block: int, total_column_count: int) -> int:
    """Bytes of column data in a chunked archive (without slack)."""

    return iterations_per_block * total_column_count * LEN_FLOAT64


def legacy_payload_size(iterations_per_block: int, entries: Tuple[LegacyBlockEntry, ...]) -> int:
    """Bytes of column data in a legacy archive (without slack)."""

    return sum(iterations_per_block * LEGACY_ITEM_WIDTH[entry.kind] for entry in entries)


__all__ = [
    "BlockRef",
    "ChunkedBlock",
    "ChunkedLayout",
    "LegacyBlockEntry",
    "LegacyLayout",
    "ArchiveLayout",
    "ColumnSeries",
    "TraceArchive",
    "resolve_columns",
    "chunked_payload_size",
    "legacy_payload_size",
]
