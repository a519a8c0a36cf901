"""Release policies applied to the set of active sensors.

``deterministic_release`` fires when exactly ``num_active_sites`` sensors
are active.  ``energy_release`` implements the Metropolis style energy
model: at or above the fusion energy the vesicle fuses immediately,
otherwise every iteration until the next state change is a Bernoulli trial
with acceptance probability ``exp(energy - fusion_energy)``.
"""
from __future__ import annotations

import math
from typing import AbstractSet, Optional

import numpy as np

from ..errors import OutOfOrderReleaseEvaluation, StochasticModelMisconfigured
from ..schema import FusionModel, SensorConfiguration
from .events import ReleaseEvent


def deterministic_release(
    entity_id: str, num_active_sites: int, iteration: int, active: AbstractSet[int]
) -> Optional[ReleaseEvent]:
    if len(active) == num_active_sites:
        return ReleaseEvent.from_active(entity_id, iteration, active)
    return None


def sensor_energy(
    sensors: SensorConfiguration, fusion: FusionModel, active: AbstractSet[int]
) -> float:
    """Total energy contributed by the active sensors."""

    return float(sum(fusion.energy_for(sensors.class_of(sensor_id)) for sensor_id in active))


def acceptance_probability(energy: float, fusion_energy: float) -> float:
    """Per-iteration release probability below the fusion energy."""

    prob = math.exp(energy - fusion_energy)
    if prob >= 1.0:
        raise StochasticModelMisconfigured(
            f"release probability {prob:g} out of bounds for energy {energy:g} "
            f"and fusion energy {fusion_energy:g}"
        )
    return prob


def sample_release_offset(
    prob: float, num_iterations: int, rng: np.random.Generator, sampling: str = "scan"
) -> Optional[int]:
    """Offset of the first accepted trial in ``[0, num_iterations)`` or ``None``.

    ``"scan"`` draws one uniform sample per offset, in order, and accepts
    the first one below ``prob``, so the generator advances by exactly one
    draw per offset examined.  ``"geometric"`` draws the number of failures
    before the first success directly.
    """

    if sampling not in ("scan", "geometric"):
        raise ValueError(f"unknown sampling mode {sampling!r}")
    if num_iterations <= 0:
        return None
    if sampling == "geometric":
        if prob <= 0.0:
            return None
        # inverse CDF in floating point; rng.geometric overflows int64 for tiny prob
        failures = math.floor(math.log1p(-rng.random()) / math.log1p(-prob))
        return int(failures) if failures < num_iterations else None
    for offset in range(num_iterations):
        if rng.random() < prob:
            return offset
    return None


def energy_release(
    entity_id: str,
    sensors: SensorConfiguration,
    fusion: FusionModel,
    iteration: int,
    next_iteration: int,
    active: AbstractSet[int],
    rng: np.random.Generator,
) -> Optional[ReleaseEvent]:
    if next_iteration < iteration:
        raise OutOfOrderReleaseEvaluation(
            f"next event at iteration {next_iteration} precedes current iteration {iteration}"
        )
    energy = sensor_energy(sensors, fusion, active)
    if energy >= fusion.fusion_energy:
        return ReleaseEvent.from_active(entity_id, iteration, active)
    prob = acceptance_probability(energy, fusion.fusion_energy)
    offset = sample_release_offset(prob, next_iteration - iteration, rng, fusion.sampling)
    if offset is None:
        return None
    return ReleaseEvent.from_active(entity_id, iteration + offset, active)


__all__ = [
    "deterministic_release",
    "sensor_energy",
    "acceptance_probability",
    "sample_release_offset",
    "energy_release",
]
