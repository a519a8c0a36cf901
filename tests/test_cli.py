import numpy as np
import pandas as pd
import pytest

from mbdr import inspect as inspect_cli
from mbdr import run as run_cli

TRACES = {
    "bound_vesicle_1_sensor_1.0004.dat": [0, 2, 2, 0],
    "bound_vesicle_1_sensor_Y_2.0004.dat": [0, 0, 0, 0],
    "vesicle_1_ca_A01.0004.dat": [0, 2, 2, 0],
}


@pytest.fixture
def archive_path(tmp_path, trace_archive_bytes, bz2_writer):
    return bz2_writer(tmp_path / "nmj.4.bin.bz2", trace_archive_bytes(TRACES, stride=3, step_size=0.5))


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "release.yml"
    path.write_text(
        "\n".join(
            [
                "name: test_release",
                "model:",
                "  entity_ids: ['1']",
                "  sensor_template: 'bound_vesicle_{entity}_{sensor}_{site}.{seed:04d}.dat'",
                "  main_channels: {'1': A01}",
                "sensors:",
                "  - {sites: [1], sensor_class: primary}",
                "  - {sites: [2], sensor_class: secondary}",
                "fusion:",
                "  num_active_sites: 0",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_inspect_info_and_list(archive_path, capsys):
    assert inspect_cli.main(["-i", "-l", str(archive_path)]) == 0
    out = capsys.readouterr().out
    assert "mbdr> output was generated using MCELL_BINARY_API_2" in out
    assert "found 3 output data blocks with 4 output iterations each" in out
    assert "STEP size of 0.5 s" in out
    assert "[2] vesicle_1_ca_A01.0004.dat" in out


def test_inspect_extract_with_times(archive_path, capsys):
    assert inspect_cli.main(["-e", "-I", "2", "-t", str(archive_path)]) == 0
    rows = capsys.readouterr().out.strip().splitlines()
    assert rows == ["0 0", "0.5 2", "1 2", "1.5 0"]


def test_inspect_extract_regex_to_files(archive_path, tmp_path):
    out_dir = tmp_path / "blocks"
    code = inspect_cli.main(
        ["-e", "-R", "sensor", "-w", "--output-dir", str(out_dir), str(archive_path)]
    )
    assert code == 0
    written = sorted(path.name for path in out_dir.iterdir())
    assert written == ["bound_vesicle_1_sensor_1.0004.dat", "bound_vesicle_1_sensor_Y_2.0004.dat"]
    values = np.loadtxt(out_dir / "bound_vesicle_1_sensor_1.0004.dat")
    np.testing.assert_array_equal(values, [0, 2, 2, 0])


def test_inspect_unknown_block_fails(archive_path, capsys):
    assert inspect_cli.main(["-e", "-N", "nope.dat", str(archive_path)]) == 1
    assert "dataset nope.dat not found" in capsys.readouterr().err


def test_inspect_invalid_regex_is_reported(archive_path, capsys):
    assert inspect_cli.main(["-e", "-R", "sensor_(", str(archive_path)]) == 1
    assert str(archive_path) in capsys.readouterr().err


@pytest.mark.parametrize("name", ["../escaped.dat", "nested/block.dat", ".."])
def test_inspect_refuses_block_names_outside_output_dir(name, tmp_path, trace_archive_bytes, bz2_writer):
    path = bz2_writer(tmp_path / "odd.1.bin.bz2", trace_archive_bytes({name: [0, 1, 2, 3]}))
    out_dir = tmp_path / "blocks"
    code = inspect_cli.main(["-e", "-N", name, "-w", "--output-dir", str(out_dir), str(path)])
    assert code == 1
    assert not (tmp_path / "escaped.dat").exists()
    assert not out_dir.exists() or not any(out_dir.rglob("*"))


def test_inspect_requires_an_action(archive_path):
    with pytest.raises(SystemExit):
        inspect_cli.main([str(archive_path)])


def test_release_cli_prints_and_writes_table(archive_path, config_path, tmp_path, capsys):
    table = tmp_path / "releases.csv"
    code = run_cli.main(
        [
            "--config",
            str(config_path),
            "-n",
            "1",
            "--seed",
            "3",
            "--output",
            str(table),
            str(archive_path),
        ]
    )
    assert code == 0
    out = capsys.readouterr().out
    assert "number of active sites : 1" in out
    assert "seed : 4   vesicleID : 1   time : 5.000000e-01   pulseID : ISI_1" in out
    assert "mainChannelContrib : Y" in out
    frame = pd.read_csv(table)
    assert frame.loc[0, "iteration"] == 1
    assert frame.loc[0, "channels"] == "|A01:2|"


def test_release_cli_reports_failed_archives(archive_path, config_path, tmp_path, capsys):
    missing = tmp_path / "gone.9.bin.bz2"
    code = run_cli.main(["--config", str(config_path), "-n", "1", str(archive_path), str(missing)])
    assert code == 1
    out = capsys.readouterr().out
    assert "ERROR: 1 output files could not be processed!" in out
    assert "gone.9.bin.bz2" in out


def test_release_cli_rejects_invalid_configuration(config_path, archive_path, capsys):
    assert run_cli.main(["--config", str(config_path), str(archive_path)]) == 2
    assert "num_active_sites" in capsys.readouterr().err


def test_cli_flags_become_overrides():
    args = run_cli.build_parser().parse_args(
        ["--config", "c.yml", "-e", "-s", "8", "-y", "4", "-p", "2", "-i", "0.02", "-T", "3", "f.bin.bz2"]
    )
    assert run_cli.cli_overrides(args) == [
        "fusion.energy_model=true",
        "fusion.primary_energy=8.0",
        "fusion.secondary_energy=4.0",
        "model.num_pulses=2",
        "model.isi=0.02",
        "jobs=3",
    ]
