"""Sensor activation extraction from bound-site traces.

A sensor is active while the summed count of its bound sites is at or above
the activation threshold of its class.  Multi-pulse simulations store one
trace per site and pulse; all of them are summed into one series.
"""
from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from ..archive import TraceArchive
from ..schema import AnalyzerConfig, FusionModel, Sensor, SimModel
from .events import ActivationEvent

logger = logging.getLogger(__name__)


def sensor_block_names(model: SimModel, sensor: Sensor, entity_id: str, seed: int) -> List[str]:
    """Expand the sensor template for every site (and pulse) of ``sensor``."""

    label = model.sensor_label(sensor.sensor_class)
    names: List[str] = []
    for site in sensor.sites:
        for pulse in range(1, model.num_pulses + 1):
            names.append(
                model.sensor_template.format(
                    entity=entity_id, sensor=label, site=site, pulse=pulse, seed=seed
                )
            )
    return names


def combined_sensor_counts(archive: TraceArchive, names: Sequence[str]) -> np.ndarray:
    """Elementwise sum of the single-column blocks ``names``.

    Raises
    ------
    BlockNotFound
        If one of the blocks is not in the archive.
    UnexpectedColumnCount
        If a block does not hold exactly one column.
    """

    total = np.zeros(archive.iterations_per_block, dtype=np.int64)
    for name in names:
        column = archive.columns(name).single_column()
        total += column.astype(np.int64)
    return total


def threshold_transitions(counts: np.ndarray, threshold: int) -> List[tuple]:
    """Return ``(iteration, activated)`` for every crossing of ``threshold``.

    The series starts inactive, so a count at or above threshold in the
    first row is an activation at iteration 0.
    """

    above = np.asarray(counts) >= threshold
    if above.size == 0:
        return []
    padded = np.concatenate(([False], above))
    changes = np.flatnonzero(padded[1:] != padded[:-1])
    return [(int(iteration), bool(above[iteration])) for iteration in changes]


def sensor_activation_events(
    counts: np.ndarray, sensor_id: int, entity_id: str, threshold: int
) -> List[ActivationEvent]:
    return [
        ActivationEvent(sensor_id=sensor_id, entity_id=entity_id, iteration=iteration, activated=activated)
        for iteration, activated in threshold_transitions(counts, threshold)
    ]


def extract_activation_events(
    archive: TraceArchive,
    config: AnalyzerConfig,
    entity_id: str,
    seed: int,
) -> List[ActivationEvent]:
    """Collect the activation events of all sensors of ``entity_id``.

    Events are listed sensor by sensor in emission order; sorting is left to
    :func:`mbdr.release.engine.evaluate_release`.
    """

    fusion: FusionModel = config.fusion
    events: List[ActivationEvent] = []
    for sensor_id, sensor in enumerate(config.sensors.sensors):
        names = sensor_block_names(config.model, sensor, entity_id, seed)
        counts = combined_sensor_counts(archive, names)
        threshold = fusion.threshold_for(sensor.sensor_class)
        events.extend(sensor_activation_events(counts, sensor_id, entity_id, threshold))
    logger.debug("entity %s: %d activation events", entity_id, len(events))
    return events


__all__ = [
    "sensor_block_names",
    "combined_sensor_counts",
    "threshold_transitions",
    "sensor_activation_events",
    "extract_activation_events",
]
