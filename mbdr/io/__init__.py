"""I/O helper subpackage."""
from . import cursor, reader, writer
from .cursor import ByteCursor
from .reader import decode, decode_data, decode_header, read_archive, read_header

__all__ = [
    "cursor",
    "reader",
    "writer",
    "ByteCursor",
    "decode",
    "decode_data",
    "decode_header",
    "read_archive",
    "read_header",
]
