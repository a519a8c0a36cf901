"""Header fields shared by both archive API versions."""
from __future__ import annotations

from typing import Tuple

import numpy as np

from ..constants import LEGACY_OUTPUT_SCHEMES, OutputScheme
from ..errors import MalformedArchive, UnknownOutputScheme
from .cursor import ByteCursor


def scheme_from_code(code: int) -> OutputScheme:
    """Map an API 2 output scheme code onto :class:`OutputScheme`."""

    try:
        return OutputScheme(code)
    except ValueError:
        raise UnknownOutputScheme(f"encountered unknown data output type {code}") from None


def legacy_scheme_from_code(code: int) -> OutputScheme:
    """Map an API 1 output scheme code (0, 1, 2) onto :class:`OutputScheme`."""

    try:
        return LEGACY_OUTPUT_SCHEMES[code]
    except KeyError:
        raise UnknownOutputScheme(f"encountered unknown data output type {code}") from None


def read_time_metadata(
    cursor: ByteCursor, scheme: OutputScheme, length: int, iterations: int
) -> Tuple[float, np.ndarray]:
    """Return ``(step_size, time_list)`` for the declared output scheme.

    STEP archives store a single step size regardless of ``length``; list
    schemes store ``length`` doubles, one per output iteration.
    """

    if scheme == OutputScheme.STEP:
        return cursor.read_f64("output step size"), np.empty(0, dtype=np.float64)
    field = "time list" if scheme == OutputScheme.TIME_LIST else "iteration list"
    values = cursor.read_f64_array(length, field)
    if length != iterations:
        raise MalformedArchive(
            f"{field} holds {length} entries but blocks hold {iterations} iterations"
        )
    return 0.0, values


__all__ = ["scheme_from_code", "legacy_scheme_from_code", "read_time_metadata"]
