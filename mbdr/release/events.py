"""Event records produced by the release engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Tuple


@dataclass(frozen=True)
class ActivationEvent:
    """Threshold crossing of one sensor at ``iteration``."""

    sensor_id: int
    entity_id: str
    iteration: int
    activated: bool


@dataclass(frozen=True)
class ReleaseEvent:
    """Terminal release of ``entity_id`` with the sensors active at that time."""

    entity_id: str
    iteration: int
    sensors: Tuple[int, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sensors", tuple(sorted(self.sensors)))

    @classmethod
    def from_active(cls, entity_id: str, iteration: int, active: Iterable[int]) -> "ReleaseEvent":
        return cls(entity_id=entity_id, iteration=int(iteration), sensors=tuple(active))


__all__ = ["ActivationEvent", "ReleaseEvent"]
