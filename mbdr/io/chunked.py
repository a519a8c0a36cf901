"""Header and payload decoding for ``MCELL_BINARY_API_2`` archives."""
from __future__ import annotations

import logging
from typing import List, Tuple

from ..archive import ChunkedBlock, ChunkedLayout, TraceArchive, chunked_payload_size
from ..errors import MalformedArchive
from .cursor import ByteCursor
from .header import read_time_metadata, scheme_from_code

logger = logging.getLogger(__name__)


def read_block_directory(cursor: ByteCursor, block_count: int) -> List[ChunkedBlock]:
    """Read ``block_count`` directory entries, assigning running column offsets."""

    blocks: List[ChunkedBlock] = []
    total_columns = 0
    for _ in range(block_count):
        name = cursor.read_cstring("block name")
        column_count = cursor.read_u64(f"column count of {name}")
        kinds = tuple(cursor.read_u16(f"data kind of {name}") for _ in range(column_count))
        blocks.append(ChunkedBlock(name=name, column_count=column_count, data_kinds=kinds, offset=total_columns))
        total_columns += column_count
    return blocks


def decode_header(cursor: ByteCursor, format_version: str) -> TraceArchive:
    """Decode the header following the format tag and reserved byte."""

    scheme = scheme_from_code(cursor.read_u16("output scheme"))
    iterations = cursor.read_u64("iterations per block")
    length = cursor.read_u64("time field length")
    step_size, time_list = read_time_metadata(cursor, scheme, length, iterations)
    output_buf_size = cursor.read_u64("stream chunk stride")
    block_count = cursor.read_u64("block count")

    blocks = read_block_directory(cursor, block_count)
    total_columns = sum(block.column_count for block in blocks)
    if output_buf_size == 0 and iterations > 0 and total_columns > 0:
        raise MalformedArchive("stream chunk stride is zero but the archive holds data")

    layout = ChunkedLayout(
        output_buf_size=output_buf_size,
        total_column_count=total_columns,
        blocks=tuple(blocks),
    )
    logger.debug(
        "chunked header: %d blocks, %d columns, %d iterations, chunk stride %d",
        block_count,
        total_columns,
        iterations,
        output_buf_size,
    )
    return TraceArchive(
        format_version=format_version,
        output_scheme=scheme,
        iterations_per_block=iterations,
        block_names=tuple(block.name for block in blocks),
        layout=layout,
        step_size=step_size,
        time_list=time_list,
        header_length=cursor.position,
    )


def payload_extent(archive: TraceArchive) -> Tuple[int, int]:
    """Return ``(required, capacity)`` in bytes for the payload buffer.

    The capacity carries ``iterations_per_block`` bytes of slack on top of
    the column data.
    """

    required = chunked_payload_size(archive.iterations_per_block, archive.total_column_count)
    return required, required + archive.iterations_per_block


__all__ = ["read_block_directory", "decode_header", "payload_extent"]
