"""Configuration schema for release analysis runs.

This module defines Pydantic models that mirror the structure of the YAML
configuration files read by :func:`mbdr.config_utils.load_config`.  The
sensor layout, the fusion model and the naming conventions of the simulation
output are all explicit values passed into the release engine; nothing is
kept as process-wide state.
"""
from __future__ import annotations

import math
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import ConfigurationError


class SensorClass(str, Enum):
    """Class of a calcium sensor; each class has its own threshold and energy."""

    PRIMARY = "primary"  # synaptotagmin
    SECONDARY = "secondary"  # second sensor (Y) site


class Sensor(BaseModel):
    """A binding-site detector aggregating one or more site traces."""

    sites: List[int] = Field(..., min_length=1, description="Binding site indices of this sensor")
    sensor_class: SensorClass = Field(SensorClass.PRIMARY, description="Sensor class")

    @field_validator("sites")
    @classmethod
    def _non_negative_sites(cls, value: List[int]) -> List[int]:
        if any(site < 0 for site in value):
            raise ConfigurationError("sensor sites must be non-negative")
        return value


class SensorConfiguration(BaseModel):
    """Ordered sensor layout; a sensor's id is its position in ``sensors``."""

    sensors: List[Sensor] = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _accept_plain_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"sensors": data}
        return data

    def __len__(self) -> int:
        return len(self.sensors)

    def sensor(self, sensor_id: int) -> Sensor:
        return self.sensors[sensor_id]

    def class_of(self, sensor_id: int) -> SensorClass:
        return self.sensors[sensor_id].sensor_class

    def count(self, sensor_class: SensorClass) -> int:
        return sum(1 for sensor in self.sensors if sensor.sensor_class == sensor_class)

    @classmethod
    def from_sites(
        cls,
        primary: List[List[int]],
        secondary: Optional[List[List[int]]] = None,
    ) -> "SensorConfiguration":
        """Build a layout listing all primary sensors before the secondary ones."""

        sensors = [Sensor(sites=list(sites), sensor_class=SensorClass.PRIMARY) for sites in primary]
        sensors.extend(
            Sensor(sites=list(sites), sensor_class=SensorClass.SECONDARY)
            for sites in (secondary or [])
        )
        return cls(sensors=sensors)


class FusionModel(BaseModel):
    """Ingredients of the vesicle fusion rule.

    Attributes
    ----------
    num_active_primary / num_active_secondary:
        Bound sites needed before a sensor of that class counts as active.
    energy_model:
        Use the stochastic energy model instead of the deterministic count.
    primary_energy / secondary_energy:
        Energy contributed by an active sensor of each class (energy model).
    fusion_energy:
        Energy at which release becomes certain (energy model).
    num_active_sites:
        Number of simultaneously active sensors that triggers release
        (deterministic model).
    sampling:
        ``"scan"`` draws one uniform sample per iteration between events;
        ``"geometric"`` draws the waiting time in closed form.
    """

    num_active_primary: int = Field(2, ge=1)
    num_active_secondary: int = Field(1, ge=1)
    energy_model: bool = False
    primary_energy: float = -1.0
    secondary_energy: float = -1.0
    fusion_energy: float = 40.0
    num_active_sites: int = 0
    sampling: Literal["scan", "geometric"] = "scan"

    @model_validator(mode="after")
    def _check_model(self) -> "FusionModel":
        for name in ("primary_energy", "secondary_energy", "fusion_energy"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigurationError(f"{name} must be a finite number")
        if self.energy_model and (self.primary_energy < 0 or self.secondary_energy < 0):
            raise ConfigurationError(
                "the energy model requires non-negative primary_energy and secondary_energy"
            )
        if not self.energy_model and self.num_active_sites <= 0:
            raise ConfigurationError(
                "the deterministic model requires a positive num_active_sites"
            )
        return self

    def threshold_for(self, sensor_class: SensorClass) -> int:
        if sensor_class == SensorClass.PRIMARY:
            return self.num_active_primary
        return self.num_active_secondary

    def energy_for(self, sensor_class: SensorClass) -> float:
        if sensor_class == SensorClass.PRIMARY:
            return self.primary_energy
        return self.secondary_energy


DEFAULT_SENSOR_LABELS: Dict[SensorClass, str] = {
    SensorClass.PRIMARY: "sensor",
    SensorClass.SECONDARY: "sensor_Y",
}


class SimModel(BaseModel):
    """Naming conventions and stimulation protocol of the simulation output."""

    entity_ids: List[str] = Field(..., min_length=1, description="Vesicle ids to analyse")
    sensor_template: str = Field(
        ...,
        description=(
            "str.format template of sensor block names with fields "
            "entity, sensor, site, pulse and seed"
        ),
    )
    sensor_labels: Dict[SensorClass, str] = Field(default_factory=lambda: dict(DEFAULT_SENSOR_LABELS))
    num_pulses: int = Field(1, ge=1)
    isi: float = Field(0.0, description="Interstimulus interval [s]")
    pulse_duration: float = Field(3.0e-3, ge=0.0, description="Duration of a single pulse [s]")
    carrier_pattern: str = Field(
        r"vesicle(_Y)?_{entity}_ca_(?P<channel>[^.]+)",
        description="Regex template matching charge-carrier blocks of an entity",
    )
    main_channels: Dict[str, str] = Field(default_factory=dict)

    @field_validator("sensor_template")
    @classmethod
    def _check_template(cls, value: str) -> str:
        try:
            value.format(entity="1", sensor="sensor", site=1, pulse=1, seed=1)
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigurationError(f"invalid sensor_template {value!r}: {exc}") from exc
        return value

    @field_validator("carrier_pattern")
    @classmethod
    def _check_carrier_pattern(cls, value: str) -> str:
        try:
            regex = re.compile(value.replace("{entity}", "x"))
        except re.error as exc:
            raise ConfigurationError(f"invalid carrier_pattern {value!r}: {exc}") from exc
        if "channel" not in regex.groupindex:
            raise ConfigurationError("carrier_pattern needs a named 'channel' group")
        return value

    @model_validator(mode="after")
    def _check_pulses(self) -> "SimModel":
        if self.num_pulses > 1 and self.isi <= 0.0:
            raise ConfigurationError("analysis of multi-pulse data requires a positive isi")
        for sensor_class in SensorClass:
            self.sensor_labels.setdefault(sensor_class, DEFAULT_SENSOR_LABELS[sensor_class])
        return self

    def sensor_label(self, sensor_class: SensorClass) -> str:
        return self.sensor_labels[sensor_class]

    def carrier_regex(self, entity_id: str) -> "re.Pattern[str]":
        return re.compile(self.carrier_pattern.replace("{entity}", re.escape(entity_id)))


class AnalyzerConfig(BaseModel):
    """Root configuration of an ``mbdr-release`` run."""

    name: str = "mbdr-release"
    model: SimModel
    sensors: SensorConfiguration
    fusion: FusionModel
    jobs: int = Field(1, ge=1, description="Archives analysed concurrently")
    seed: Optional[int] = Field(None, description="Base seed of the release RNG; random when unset")
    output: Optional[Path] = Field(None, description="Release table (.csv or .parquet)")
    quiet: bool = False


__all__ = [
    "SensorClass",
    "Sensor",
    "SensorConfiguration",
    "FusionModel",
    "SimModel",
    "AnalyzerConfig",
    "DEFAULT_SENSOR_LABELS",
]
