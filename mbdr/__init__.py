"""Decoder and release analysis for MCell binary reaction data."""
__version__ = "3.0.0"

from . import constants
from .archive import ColumnSeries, TraceArchive
from .errors import MbdrError

__all__ = ["__version__", "constants", "ColumnSeries", "TraceArchive", "MbdrError"]
