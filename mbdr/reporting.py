"""Tabulation and text rendering of detected releases."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .archive import TraceArchive
from .release.engine import ReleaseReport
from .schema import AnalyzerConfig, SensorClass, SimModel

RECORD_COLUMNS: Tuple[str, ...] = (
    "seed",
    "entity_id",
    "iteration",
    "time",
    "pulse",
    "sensors",
    "channels",
    "total_carriers",
    "main_channel",
    "num_channels",
)


def pulse_label(isi: float, pulse_duration: float, event_time: float) -> str:
    """Label the pulse (``"k"``) or interstimulus interval (``"ISI_k"``) of ``event_time``."""

    pulse_id = 0 if isi == 0 else int(math.floor(event_time / isi))
    if event_time - pulse_id * isi > pulse_duration:
        return f"ISI_{pulse_id + 1}"
    return f"{pulse_id + 1}"


def summarize_channels(
    channels: Mapping[str, float], main_channel: Optional[str] = None
) -> Tuple[str, int, str]:
    """Return ``(channel string, total carriers, main channel flag)``.

    The flag is ``"Y"`` when ``main_channel`` contributed, ``"N"`` when it
    did not and ``"NA"`` when no main channel is known for the entity.
    """

    parts = []
    total = 0
    for name in sorted(channels):
        count = int(channels[name])
        total += count
        parts.append(f"{name}:{count}|")
    text = "|" + "".join(parts)
    if main_channel and main_channel in channels:
        flag = "Y"
    elif main_channel:
        flag = "N"
    else:
        flag = "NA"
    return text, total, flag


@dataclass(frozen=True)
class ReleaseRecord:
    seed: int
    entity_id: str
    iteration: int
    time: float
    pulse: str
    sensors: Tuple[int, ...]
    channels: str
    total_carriers: int
    main_channel: str
    num_channels: int


def release_records(
    archive: TraceArchive, model: SimModel, seed: int, report: ReleaseReport
) -> List[ReleaseRecord]:
    """Turn the releases of ``report`` into table rows, ordered by entity."""

    times = archive.output_times()
    records: List[ReleaseRecord] = []
    for release in report.releases:
        event_time = float(times[release.iteration])
        channels = report.channels.get(release.entity_id, {})
        text, total, flag = summarize_channels(channels, model.main_channels.get(release.entity_id))
        records.append(
            ReleaseRecord(
                seed=seed,
                entity_id=release.entity_id,
                iteration=release.iteration,
                time=event_time,
                pulse=pulse_label(model.isi, model.pulse_duration, event_time),
                sensors=release.sensors,
                channels=text,
                total_carriers=total,
                main_channel=flag,
                num_channels=len(channels),
            )
        )
    return records


def format_release_message(record: ReleaseRecord) -> str:
    sensors = "|" + "".join(f"{sensor}|" for sensor in record.sensors)
    return (
        f"seed : {record.seed}   vesicleID : {record.entity_id}   time : {record.time:e}"
        f"   pulseID : {record.pulse}  sensors : {sensors}"
        f"  channels : {record.channels}  totalCaBound : {record.total_carriers}"
        f"  mainChannelContrib : {record.main_channel}  numContribChannels : {record.num_channels}"
    )


def records_to_frame(records: Iterable[ReleaseRecord]) -> pd.DataFrame:
    rows = []
    for record in records:
        row = asdict(record)
        row["sensors"] = "|".join(str(sensor) for sensor in record.sensors)
        rows.append(row)
    return pd.DataFrame(rows, columns=list(RECORD_COLUMNS))


def format_parameters(config: AnalyzerConfig) -> List[str]:
    """Lines of the parameter header printed before the release listing."""

    model = config.model
    fusion = config.fusion
    lines = [
        "-------------- parameters --------------",
        f"number of pulses       : {model.num_pulses}",
        f"sensors                : {config.sensors.count(SensorClass.PRIMARY)} primary,"
        f" {config.sensors.count(SensorClass.SECONDARY)} secondary",
    ]
    if model.num_pulses > 1:
        lines.append(f"ISI                    : {model.isi} s")
    if fusion.energy_model:
        lines.append("model                  : energy model")
        lines.append(f"primary energy         : {fusion.primary_energy}")
        lines.append(f"secondary energy       : {fusion.secondary_energy}")
        lines.append(f"fusion energy          : {fusion.fusion_energy}")
        lines.append(f"sampling               : {fusion.sampling}")
    else:
        lines.append("model                  : deterministic model")
        lines.append(f"number of active sites : {fusion.num_active_sites}")
    lines.append("-------------- data --------------------")
    return lines


def format_failures(failures: Sequence[Tuple[str, str]]) -> List[str]:
    """Error summary listing ``(source, message)`` pairs."""

    if not failures:
        return []
    lines = [
        "------------------------------------------",
        f"ERROR: {len(failures)} output files could not be processed!",
        "",
        "Reason:",
    ]
    lines.extend(f"{source}: {message}" for source, message in failures)
    return lines


__all__ = [
    "RECORD_COLUMNS",
    "pulse_label",
    "summarize_channels",
    "ReleaseRecord",
    "release_records",
    "format_release_message",
    "records_to_frame",
    "format_parameters",
    "format_failures",
]
