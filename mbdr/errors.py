"""Custom exceptions for the :mod:`mbdr` package."""
from __future__ import annotations


class MbdrError(Exception):
    """Base exception for trace decoding and release analysis errors."""


class ArchiveDecodeError(MbdrError, ValueError):
    """Binary archive could not be decoded; no partial archive is returned."""


class UnrecognizedFormat(ArchiveDecodeError):
    """The format tag at the start of the archive is not a known API version."""


class UnknownOutputScheme(ArchiveDecodeError):
    """The declared output scheme is not STEP, TIME_LIST or ITERATION_LIST."""


class TruncatedArchive(ArchiveDecodeError):
    """The byte stream ended before a header field or the payload was complete."""


class UnknownDataKind(ArchiveDecodeError):
    """A legacy block declares a data kind other than u32 or f64."""


class MalformedArchive(ArchiveDecodeError):
    """Header fields are inconsistent or the payload exceeds its declared size."""


class BlockLookupError(MbdrError, LookupError):
    """Base class for failures locating a data block."""


class BlockNotFound(BlockLookupError, KeyError):
    """No data block with the requested name exists in the archive."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


class BlockIdOutOfRange(BlockLookupError, IndexError):
    """A numeric block id lies outside ``[0, block_count)``."""


class BlockBoundsMismatch(MbdrError, ValueError):
    """Decoding a legacy block did not consume exactly its ``[start, end)`` range."""


class ArchiveNotLoaded(MbdrError, RuntimeError):
    """Column data was requested from an archive decoded header-only."""


class UnexpectedColumnCount(MbdrError, ValueError):
    """A block expected to hold a single column holds a different number."""


class ReleaseEngineError(MbdrError, RuntimeError):
    """An invariant of the release-event engine was violated."""


class InconsistentActivationState(ReleaseEngineError):
    """A sensor was activated twice or deactivated while inactive."""


class OutOfOrderReleaseEvaluation(ReleaseEngineError):
    """The next event boundary precedes the iteration being evaluated."""


class StochasticModelMisconfigured(ReleaseEngineError):
    """The energy model produced an acceptance probability of one or more."""


class ChargeCarrierShortfall(ReleaseEngineError):
    """Fewer bound charge carriers than the active sensor composition requires."""


class ConfigurationError(MbdrError, ValueError):
    """Invalid sensor, fusion or simulation model configuration."""


class RunIdentifierError(MbdrError, ValueError):
    """The run identifier (seed) could not be extracted from a file name."""


class UnsafeBlockName(MbdrError, ValueError):
    """A block name cannot be used as a file name inside the output directory."""


__all__ = [
    "MbdrError",
    "ArchiveDecodeError",
    "UnrecognizedFormat",
    "UnknownOutputScheme",
    "TruncatedArchive",
    "UnknownDataKind",
    "MalformedArchive",
    "BlockLookupError",
    "BlockNotFound",
    "BlockIdOutOfRange",
    "BlockBoundsMismatch",
    "ArchiveNotLoaded",
    "UnexpectedColumnCount",
    "ReleaseEngineError",
    "InconsistentActivationState",
    "OutOfOrderReleaseEvaluation",
    "StochasticModelMisconfigured",
    "ChargeCarrierShortfall",
    "ConfigurationError",
    "RunIdentifierError",
    "UnsafeBlockName",
]
