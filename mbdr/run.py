"""Release analysis over a batch of MCell binary output files.

Usage::

    mbdr-release --config configs/mouse_az_y.yml -n 2 -i 0.01 -T 4 \\
        data/run.0001.bin.bz2 data/run.0002.bin.bz2

Command line flags are applied as configuration overrides before the
configuration is validated, so they take precedence over the YAML file.
"""
from __future__ import annotations

import argparse
import datetime
import logging
import socket
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from . import __version__, config_utils
from .errors import ConfigurationError
from .io.writer import write_table
from .orchestrator import ArchiveResult, run_batch
from .reporting import format_failures, format_parameters, format_release_message, records_to_frame
from .schema import AnalyzerConfig

logger = logging.getLogger(__name__)


def cli_overrides(args: argparse.Namespace) -> List[str]:
    """Translate dedicated CLI flags into dotted-path overrides."""

    overrides: List[str] = []
    if args.energy_model is not None:
        overrides.append(f"fusion.energy_model={str(args.energy_model).lower()}")
    if args.num_active_sites is not None:
        overrides.append(f"fusion.num_active_sites={args.num_active_sites}")
    if args.primary_energy is not None:
        overrides.append(f"fusion.primary_energy={args.primary_energy}")
    if args.secondary_energy is not None:
        overrides.append(f"fusion.secondary_energy={args.secondary_energy}")
    if args.sampling is not None:
        overrides.append(f"fusion.sampling={args.sampling}")
    if args.pulses is not None:
        overrides.append(f"model.num_pulses={args.pulses}")
    if args.isi is not None:
        overrides.append(f"model.isi={args.isi}")
    if args.jobs is not None:
        overrides.append(f"jobs={args.jobs}")
    if args.seed is not None:
        overrides.append(f"seed={args.seed}")
    if args.output is not None:
        overrides.append(f"output={args.output}")
    if args.quiet is not None:
        overrides.append(f"quiet={str(args.quiet).lower()}")
    return overrides


def report_header(config: AnalyzerConfig) -> List[str]:
    now = datetime.datetime.now().isoformat(timespec="seconds")
    return [
        f"{config.name} (mbdr v{__version__}) ran on {now}",
        f"on {socket.gethostname()}",
        "",
        *format_parameters(config),
        "",
    ]


def emit_results(results: Sequence[ArchiveResult], config: AnalyzerConfig) -> int:
    """Print release lines and the error summary; return the exit status."""

    records = []
    for result in results:
        for record in result.records:
            print(format_release_message(record))
        records.extend(result.records)

    failures = []
    for result in results:
        if result.error is not None:
            failures.append((result.path, result.error))
        for entity, message in result.failures.items():
            failures.append((f"{result.path} [entity {entity}]", message))
    summary = format_failures(failures)
    if summary:
        print("\n\n" + "\n".join(summary))

    if config.output is not None:
        write_table(records_to_frame(records), config.output)
        logger.info("wrote %d releases to %s", len(records), config.output)
    return 0 if all(result.ok for result in results) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mbdr-release", description="Detect vesicle release events in MCell output"
    )
    parser.add_argument("files", nargs="+", type=Path, help="Binary MCell output files")
    parser.add_argument("--config", type=Path, required=True, help="Path to YAML configuration")
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override fusion.fusion_energy=35",
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument("-T", "--jobs", type=int, default=None, help="number of concurrent worker processes")
    parser.add_argument("--seed", type=int, default=None, help="base seed of the release random generator")
    parser.add_argument(
        "-e",
        "--energy-model",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="use the energy model instead of the deterministic model",
    )
    parser.add_argument(
        "-n", "--num-active-sites", type=int, default=None, help="number of active sensors required for release"
    )
    parser.add_argument("-s", "--primary-energy", type=float, default=None, help="energy of an active primary sensor")
    parser.add_argument("-y", "--secondary-energy", type=float, default=None, help="energy of an active secondary sensor")
    parser.add_argument("--sampling", choices=["scan", "geometric"], default=None, help="energy model sampling mode")
    parser.add_argument("-p", "--pulses", type=int, default=None, help="number of AP pulses in the model")
    parser.add_argument("-i", "--isi", type=float, default=None, help="interstimulus interval [s]")
    parser.add_argument("--output", type=Path, default=None, help="write releases to a .csv or .parquet table")
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Suppress INFO logs and Python warnings (use --no-quiet to show logs).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""

    parser = build_parser()
    args = parser.parse_args(argv)

    override_list: List[str] = []
    if args.overrides_file:
        for override_path in args.overrides_file:
            override_list.extend(config_utils.read_overrides_file(override_path))
    if args.override:
        for group in args.override:
            override_list.extend(group)
    override_list.extend(cli_overrides(args))

    try:
        config = config_utils.load_config(args.config, overrides=override_list)
    except ConfigurationError as exc:
        print(f"mbdr-release: {exc}", file=sys.stderr)
        return 2
    config_utils.configure_logging(
        logging.WARNING if config.quiet else logging.INFO, suppress_warnings=config.quiet
    )

    print("\n".join(report_header(config)))
    results = run_batch(args.files, config, jobs=config.jobs, base_seed=config.seed)
    return emit_results(results, config)


__all__ = ["cli_overrides", "report_header", "emit_results", "build_parser", "main"]

if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    sys.exit(main())
