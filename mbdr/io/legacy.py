"""Header and payload decoding for ``MCELL_BINARY_API_1`` archives.

API 1 stores the block names before the time metadata and addresses each
block by absolute byte offsets instead of column offsets.
"""
from __future__ import annotations

import logging
from typing import List, Tuple

from ..archive import LegacyBlockEntry, LegacyLayout, TraceArchive, legacy_payload_size
from ..constants import LegacyDataKind
from ..errors import UnknownDataKind
from .cursor import ByteCursor
from .header import legacy_scheme_from_code, read_time_metadata

logger = logging.getLogger(__name__)


def read_block_entries(cursor: ByteCursor, names: List[str]) -> List[LegacyBlockEntry]:
    entries: List[LegacyBlockEntry] = []
    for name in names:
        kind_code = cursor.read_byte(f"data kind of {name}")
        try:
            kind = LegacyDataKind(kind_code)
        except ValueError:
            raise UnknownDataKind(
                f"encountered incorrect data type {kind_code} for block {name}"
            ) from None
        start = cursor.read_u64(f"start offset of {name}")
        end = cursor.read_u64(f"end offset of {name}")
        entries.append(LegacyBlockEntry(name=name, kind=kind, start=start, end=end))
    return entries


def decode_header(cursor: ByteCursor, format_version: str) -> TraceArchive:
    """Decode the header following the format tag and reserved byte."""

    iterations = cursor.read_u64("iterations per block")
    block_count = cursor.read_u32("block count")
    names = [cursor.read_cstring("block name") for _ in range(block_count)]

    scheme = legacy_scheme_from_code(cursor.read_u32("output scheme"))
    length = cursor.read_u64("time field length")
    step_size, time_list = read_time_metadata(cursor, scheme, length, iterations)

    entries = read_block_entries(cursor, names)
    base_offset = entries[0].start if entries else 0
    logger.debug(
        "legacy header: %d blocks, %d iterations, payload base offset %d",
        block_count,
        iterations,
        base_offset,
    )
    return TraceArchive(
        format_version=format_version,
        output_scheme=scheme,
        iterations_per_block=iterations,
        block_names=tuple(names),
        layout=LegacyLayout(base_offset=base_offset, entries=tuple(entries)),
        step_size=step_size,
        time_list=time_list,
        header_length=cursor.position,
    )


def payload_extent(archive: TraceArchive) -> Tuple[int, int]:
    """Return ``(required, capacity)`` in bytes for the payload buffer."""

    required = legacy_payload_size(archive.iterations_per_block, archive.layout.entries)
    return required, required + archive.iterations_per_block


__all__ = ["read_block_entries", "decode_header", "payload_extent"]
