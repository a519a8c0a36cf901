"""Release detection for all entities of one archive.

Each entity is analysed on its own: its activation events are sorted
chronologically, events sharing an iteration are applied together, and the
release policy is evaluated once per distinct iteration.  The first release
ends the analysis of that entity.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

import numpy as np

from ..archive import TraceArchive
from ..errors import InconsistentActivationState, MbdrError
from ..schema import AnalyzerConfig, FusionModel, SensorConfiguration
from . import policies
from .activation import extract_activation_events
from .carriers import channel_contributions, check_charge_carriers
from .events import ActivationEvent, ReleaseEvent

logger = logging.getLogger(__name__)


@dataclass
class ReleaseReport:
    """Outcome of :func:`detect_releases` for one archive.

    ``channels`` holds the bound carriers per channel for every released
    entity; ``failures`` maps entity ids to the error that aborted them.
    """

    releases: List[ReleaseEvent] = field(default_factory=list)
    channels: Dict[str, Dict[str, float]] = field(default_factory=dict)
    failures: Dict[str, MbdrError] = field(default_factory=dict)


def _apply_event(active: Set[int], event: ActivationEvent) -> None:
    if event.activated:
        if event.sensor_id in active:
            raise InconsistentActivationState(
                f"entity {event.entity_id}: sensor {event.sensor_id} activated at "
                f"iteration {event.iteration} while already active"
            )
        active.add(event.sensor_id)
    else:
        if event.sensor_id not in active:
            raise InconsistentActivationState(
                f"entity {event.entity_id}: sensor {event.sensor_id} deactivated at "
                f"iteration {event.iteration} while not active"
            )
        active.discard(event.sensor_id)


def evaluate_release(
    events: Sequence[ActivationEvent],
    sensors: SensorConfiguration,
    fusion: FusionModel,
    max_iteration: int,
    entity_id: str,
    rng: Optional[np.random.Generator] = None,
) -> Optional[ReleaseEvent]:
    """Return the first release implied by ``events`` or ``None``.

    ``max_iteration`` bounds the interval after the last event (the number
    of iterations in the archive).  ``rng`` is only needed by the energy
    model.
    """

    if fusion.energy_model and rng is None:
        raise ValueError("the energy model needs a random generator")
    ordered = sorted(events, key=lambda event: event.iteration)
    active: Set[int] = set()
    for position, event in enumerate(ordered):
        _apply_event(active, event)
        following = ordered[position + 1] if position + 1 < len(ordered) else None
        if following is not None and following.iteration == event.iteration:
            continue

        if fusion.energy_model:
            next_iteration = following.iteration if following is not None else max_iteration
            release = policies.energy_release(
                entity_id, sensors, fusion, event.iteration, next_iteration, active, rng
            )
        else:
            release = policies.deterministic_release(
                entity_id, fusion.num_active_sites, event.iteration, active
            )
        if release is not None:
            return release
    return None


def detect_entity_release(
    archive: TraceArchive,
    config: AnalyzerConfig,
    entity_id: str,
    rng: Optional[np.random.Generator],
    seed: int = 0,
) -> Optional[ReleaseEvent]:
    events = extract_activation_events(archive, config, entity_id, seed)
    if not events:
        return None
    return evaluate_release(
        events, config.sensors, config.fusion, archive.iterations_per_block, entity_id, rng
    )


def detect_releases(
    archive: TraceArchive,
    config: AnalyzerConfig,
    entity_ids: Optional[Sequence[str]] = None,
    rng: Optional[np.random.Generator] = None,
    seed: int = 0,
    *,
    check_carriers: bool = True,
) -> ReleaseReport:
    """Detect at most one release per entity.

    Parameters
    ----------
    archive:
        Loaded archive holding the sensor (and charge-carrier) blocks.
    config:
        Sensor layout, fusion model and block naming conventions.
    entity_ids:
        Entities to analyse; defaults to ``config.model.entity_ids``.
    rng:
        Generator used by the energy model.  Entities draw from it in order.
    seed:
        Run identifier substituted into the sensor block names.
    check_carriers:
        Verify the bound charge carriers of every release.

    An error raised while analysing one entity is recorded in
    ``failures`` and does not affect the other entities.
    """

    report = ReleaseReport()
    for entity_id in entity_ids if entity_ids is not None else config.model.entity_ids:
        try:
            release = detect_entity_release(archive, config, entity_id, rng, seed)
            if release is None:
                continue
            channels: Dict[str, float] = {}
            if check_carriers:
                channels = channel_contributions(archive, config.model, release)
                check_charge_carriers(config.sensors, channels, release)
        except MbdrError as exc:
            logger.warning("run %d, entity %s: %s", seed, entity_id, exc)
            report.failures[entity_id] = exc
            continue
        report.releases.append(release)
        report.channels[entity_id] = channels
    logger.debug(
        "run %d: %d releases, %d failed entities", seed, len(report.releases), len(report.failures)
    )
    return report


__all__ = ["ReleaseReport", "evaluate_release", "detect_entity_release", "detect_releases"]
