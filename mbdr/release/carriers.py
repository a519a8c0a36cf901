"""Charge-carrier bookkeeping for released vesicles.

Simulations track the calcium ions bound to each vesicle per channel in
blocks named like ``vesicle_<entity>_ca_<channel>.<seed>.dat`` (primary
sensors) and ``vesicle_Y_<entity>_ca_<channel>.<seed>.dat`` (secondary
sensors).  At the release iteration the bound ions must at least cover
what the active sensors imply.
"""
from __future__ import annotations

import logging
import warnings
from typing import Dict

from ..archive import TraceArchive
from ..errors import ChargeCarrierShortfall
from ..schema import SensorClass, SensorConfiguration, SimModel
from ..warnings import AnalysisWarning
from .events import ReleaseEvent

logger = logging.getLogger(__name__)

# bound carriers implied by one active sensor of each class
CARRIERS_PER_SENSOR: Dict[SensorClass, int] = {
    SensorClass.PRIMARY: 2,
    SensorClass.SECONDARY: 1,
}


def channel_contributions(
    archive: TraceArchive, model: SimModel, release: ReleaseEvent
) -> Dict[str, float]:
    """Bound carriers per channel at the release iteration (positive values only)."""

    regex = model.carrier_regex(release.entity_id)
    channels: Dict[str, float] = {}
    matched = 0
    for position, name in enumerate(archive.block_names):
        match = regex.search(name)
        if match is None:
            continue
        matched += 1
        value = float(archive.columns(position).single_column()[release.iteration])
        if value > 0:
            channel = match.group("channel")
            channels[channel] = channels.get(channel, 0.0) + value
    if matched == 0:
        warnings.warn(
            f"no charge-carrier blocks found for entity {release.entity_id}",
            AnalysisWarning,
            stacklevel=2,
        )
    return channels


def expected_carrier_count(sensors: SensorConfiguration, release: ReleaseEvent) -> int:
    return sum(CARRIERS_PER_SENSOR[sensors.class_of(sensor_id)] for sensor_id in release.sensors)


def check_charge_carriers(
    sensors: SensorConfiguration, channels: Dict[str, float], release: ReleaseEvent
) -> int:
    """Return the number of bound carriers or raise :class:`ChargeCarrierShortfall`."""

    expected = expected_carrier_count(sensors, release)
    actual = sum(int(value) for value in channels.values())
    if actual < expected:
        raise ChargeCarrierShortfall(
            f"entity {release.entity_id} at iteration {release.iteration}: the number of "
            f"bound carriers ({actual}) is smaller than expected from the active sensors ({expected})"
        )
    return actual


__all__ = [
    "CARRIERS_PER_SENSOR",
    "channel_contributions",
    "expected_carrier_count",
    "check_charge_carriers",
]
