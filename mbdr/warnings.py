"""Structured warning classes for the :mod:`mbdr` package."""
from __future__ import annotations


class MbdrWarning(UserWarning):
    """Base warning class for mbdr."""


class DecodeWarning(MbdrWarning):
    """Archive layout is unusual but still decodable."""


class AnalysisWarning(MbdrWarning):
    """Release analysis ran on incomplete or degenerate inputs."""


__all__ = [
    "MbdrWarning",
    "DecodeWarning",
    "AnalysisWarning",
]
