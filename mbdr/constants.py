"""Format constants for MCell binary reaction data archives.

Both API versions share the little-endian encoding of every multi-byte
field and store floating point values as IEEE-754 doubles.  The values below
mirror what MCell writes on disk and must not be changed.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Dict, Tuple

# Format tags written at the very start of each archive
FORMAT_CHUNKED: str = "MCELL_BINARY_API_2"
FORMAT_LEGACY: str = "MCELL_BINARY_API_1"
KNOWN_FORMATS: Tuple[str, ...] = (FORMAT_CHUNKED, FORMAT_LEGACY)
FORMAT_TAG_LENGTH: int = len(FORMAT_CHUNKED)

# MCell emits one junk byte right after the format tag
RESERVED_HEADER_BYTES: int = 1

# Field widths in bytes
LEN_BYTE: int = 1
LEN_UINT16: int = 2
LEN_UINT32: int = 4
LEN_UINT64: int = 8
LEN_FLOAT64: int = 8

# bzip2 stream magic
BZIP2_MAGIC: bytes = b"BZh"


class OutputScheme(IntEnum):
    """How output iterations map to simulation time (on-disk codes of API 2)."""

    STEP = 1
    TIME_LIST = 2
    ITERATION_LIST = 4


# API 1 stores the scheme as 0, 1, 2 and the reader shifts it by one
LEGACY_OUTPUT_SCHEMES: Dict[int, OutputScheme] = {
    0: OutputScheme.STEP,
    1: OutputScheme.TIME_LIST,
    2: OutputScheme.ITERATION_LIST,
}


class LegacyDataKind(IntEnum):
    """Item type of a legacy (API 1) data block."""

    UINT32 = 0
    FLOAT64 = 1


LEGACY_ITEM_WIDTH: Dict[LegacyDataKind, int] = {
    LegacyDataKind.UINT32: LEN_UINT32,
    LegacyDataKind.FLOAT64: LEN_FLOAT64,
}

LEGACY_ITEM_DTYPE: Dict[LegacyDataKind, str] = {
    LegacyDataKind.UINT32: "<u4",
    LegacyDataKind.FLOAT64: "<f8",
}

# Chunked payloads store every column as little-endian float64
CHUNKED_ITEM_DTYPE: str = "<f8"


__all__ = [
    "FORMAT_CHUNKED",
    "FORMAT_LEGACY",
    "KNOWN_FORMATS",
    "FORMAT_TAG_LENGTH",
    "RESERVED_HEADER_BYTES",
    "LEN_BYTE",
    "LEN_UINT16",
    "LEN_UINT32",
    "LEN_UINT64",
    "LEN_FLOAT64",
    "BZIP2_MAGIC",
    "OutputScheme",
    "LEGACY_OUTPUT_SCHEMES",
    "LegacyDataKind",
    "LEGACY_ITEM_WIDTH",
    "LEGACY_ITEM_DTYPE",
    "CHUNKED_ITEM_DTYPE",
]
