import warnings

import numpy as np
import pytest

from mbdr.errors import BlockNotFound, ChargeCarrierShortfall, UnexpectedColumnCount
from mbdr.io import reader
from mbdr.release.activation import (
    combined_sensor_counts,
    extract_activation_events,
    sensor_block_names,
    threshold_transitions,
)
from mbdr.release.carriers import channel_contributions, check_charge_carriers, expected_carrier_count
from mbdr.release.engine import detect_releases
from mbdr.release.events import ReleaseEvent
from mbdr.reporting import format_release_message, records_to_frame, release_records
from mbdr.schema import AnalyzerConfig, FusionModel, SensorConfiguration, SimModel
from mbdr.warnings import AnalysisWarning

SEED = 7
TEMPLATE = "bound_vesicle_{entity}_{sensor}_{site}_{pulse}.{seed:04d}.dat"


def _config(entity_ids=("1",), **fusion):
    fusion.setdefault("num_active_sites", 2)
    return AnalyzerConfig(
        model=SimModel(
            entity_ids=list(entity_ids),
            sensor_template=TEMPLATE,
            num_pulses=2,
            isi=0.02,
            main_channels={"1": "A01"},
        ),
        sensors=SensorConfiguration.from_sites([[1, 2]], [[3]]),
        fusion=FusionModel(**fusion),
    )


def _traces(carrier_a01=2.0):
    zeros = [0] * 10
    return {
        "bound_vesicle_1_sensor_1_1.0007.dat": [0, 0, 1, 1, 1, 1, 0, 0, 0, 0],
        "bound_vesicle_1_sensor_1_2.0007.dat": [0, 0, 0, 0, 1, 1, 1, 0, 0, 0],
        "bound_vesicle_1_sensor_2_1.0007.dat": zeros,
        "bound_vesicle_1_sensor_2_2.0007.dat": [0, 0, 0, 1, 0, 0, 0, 0, 0, 0],
        "bound_vesicle_1_sensor_Y_3_1.0007.dat": [0, 0, 0, 0, 0, 1, 1, 1, 1, 1],
        "bound_vesicle_1_sensor_Y_3_2.0007.dat": zeros,
        "vesicle_1_ca_A01.0007.dat": [0, 0, 0, 0, 0, carrier_a01, 0, 0, 0, 0],
        "vesicle_1_ca_A02.0007.dat": zeros,
        "vesicle_Y_1_ca_A02.0007.dat": [0, 0, 0, 0, 0, 1, 1, 0, 0, 0],
        "vesicle_11_ca_B01.0007.dat": [5] * 10,
    }


@pytest.fixture
def archive(trace_archive_bytes):
    return reader.decode(trace_archive_bytes(_traces()))


def test_sensor_block_names_expand_sites_and_pulses():
    config = _config()
    names = sensor_block_names(config.model, config.sensors.sensor(0), "1", SEED)
    assert names == [
        "bound_vesicle_1_sensor_1_1.0007.dat",
        "bound_vesicle_1_sensor_1_2.0007.dat",
        "bound_vesicle_1_sensor_2_1.0007.dat",
        "bound_vesicle_1_sensor_2_2.0007.dat",
    ]
    secondary = sensor_block_names(config.model, config.sensors.sensor(1), "1", SEED)
    assert secondary[0] == "bound_vesicle_1_sensor_Y_3_1.0007.dat"


def test_multi_pulse_traces_are_summed(archive):
    config = _config()
    names = sensor_block_names(config.model, config.sensors.sensor(0), "1", SEED)
    counts = combined_sensor_counts(archive, names)
    np.testing.assert_array_equal(counts, [0, 0, 1, 2, 2, 2, 1, 0, 0, 0])


def test_threshold_transitions():
    assert threshold_transitions(np.array([2, 2, 0, 1, 3]), 2) == [(0, True), (2, False), (4, True)]
    assert threshold_transitions(np.array([0, 1, 0]), 2) == []


def test_activation_events_use_class_thresholds(archive):
    events = extract_activation_events(archive, _config(), "1", SEED)
    summary = [(event.sensor_id, event.iteration, event.activated) for event in events]
    assert summary == [(0, 3, True), (0, 6, False), (1, 5, True)]


def test_detect_releases_with_carrier_summary(archive):
    config = _config()
    report = detect_releases(archive, config, rng=None, seed=SEED)
    assert not report.failures
    assert report.releases == [ReleaseEvent("1", 5, (0, 1))]
    assert report.channels["1"] == {"A01": 2.0, "A02": 1.0}

    records = release_records(archive, config.model, SEED, report)
    assert len(records) == 1
    record = records[0]
    assert record.time == pytest.approx(5.0e-3)
    assert record.pulse == "ISI_1"
    assert record.channels == "|A01:2|A02:1|"
    assert record.total_carriers == 3
    assert record.main_channel == "Y"
    assert format_release_message(record) == (
        "seed : 7   vesicleID : 1   time : 5.000000e-03   pulseID : ISI_1"
        "  sensors : |0|1|  channels : |A01:2|A02:1|  totalCaBound : 3"
        "  mainChannelContrib : Y  numContribChannels : 2"
    )
    frame = records_to_frame(records)
    assert frame.loc[0, "sensors"] == "0|1"
    assert list(frame.columns)[:3] == ["seed", "entity_id", "iteration"]


def test_failed_entity_does_not_affect_siblings(archive):
    config = _config(entity_ids=("2", "1"))
    report = detect_releases(archive, config, seed=SEED)
    assert [release.entity_id for release in report.releases] == ["1"]
    assert isinstance(report.failures["2"], BlockNotFound)
    assert report.failures.keys() == {"2"}


def test_carrier_shortfall_is_reported(trace_archive_bytes):
    archive = reader.decode(trace_archive_bytes(_traces(carrier_a01=1.0)))
    report = detect_releases(archive, _config(), seed=SEED)
    assert report.releases == []
    assert isinstance(report.failures["1"], ChargeCarrierShortfall)


def test_expected_carrier_count():
    sensors = SensorConfiguration.from_sites([[1], [2]], [[3], [4]])
    release = ReleaseEvent("v", 0, (0, 1, 3))
    assert expected_carrier_count(sensors, release) == 5
    with pytest.raises(ChargeCarrierShortfall, match=r"\(4\).*\(5\)"):
        check_charge_carriers(sensors, {"A": 3.0, "B": 1.0}, release)
    assert check_charge_carriers(sensors, {"A": 5.0}, release) == 5


def test_missing_carrier_blocks_warn(trace_archive_bytes):
    traces = {name: values for name, values in _traces().items() if "_ca_" not in name}
    archive = reader.decode(trace_archive_bytes(traces))
    config = _config()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        channels = channel_contributions(archive, config.model, ReleaseEvent("1", 5, (0, 1)))
    assert channels == {}
    assert any(issubclass(item.category, AnalysisWarning) for item in caught)


def test_multi_column_sensor_block_is_rejected(chunked_bytes):
    n_rows = 4
    blocks = [
        ("bound_vesicle_1_sensor_1_1.0007.dat", np.zeros((n_rows, 2))),
        ("bound_vesicle_1_sensor_1_2.0007.dat", np.zeros((n_rows, 1))),
    ]
    archive = reader.decode(chunked_bytes(blocks, stride=2))
    with pytest.raises(UnexpectedColumnCount):
        combined_sensor_counts(archive, [name for name, _ in blocks])
