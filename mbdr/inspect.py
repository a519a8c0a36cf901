"""Inspect MCell binary reaction data archives.

Examples
--------
Show general information and the list of blocks::

    mbdr -i -l run.0001.bin.bz2

Extract the block with id 3 with output times to stdout, or all blocks
matching a regular expression into files named after the blocks::

    mbdr -e -I 3 -t run.0001.bin.bz2
    mbdr -e -R "vesicle_1_1_ca_.*" -w run.0001.bin.bz2
"""
from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional, TextIO

from . import __version__
from .archive import ColumnSeries, TraceArchive
from .config_utils import configure_logging
from .constants import OutputScheme
from .errors import MbdrError, UnsafeBlockName
from .io.reader import read_archive, read_header
from .io.writer import columns_frame, write_columns_text

logger = logging.getLogger(__name__)


def format_info(archive: TraceArchive) -> List[str]:
    lines = [
        f"This is mbdr version {__version__}",
        "------------------------------------------------------------------",
        f"mbdr> output was generated using {archive.format_version}",
        f"mbdr> found {archive.block_count} output data blocks with "
        f"{archive.iterations_per_block} output iterations each",
    ]
    if archive.output_scheme == OutputScheme.STEP:
        lines.append(f"mbdr> output generated via STEP size of {archive.step_size:g} s")
    elif archive.output_scheme == OutputScheme.TIME_LIST:
        lines.append("mbdr> output generated via TIME_LIST")
    else:
        lines.append("mbdr> output generated via ITERATION_LIST")
    return lines


def format_block_list(archive: TraceArchive) -> List[str]:
    return [f"[{position}] {name}" for position, name in enumerate(archive.block_names)]


def select_blocks(
    archive: TraceArchive,
    *,
    block_id: int = 0,
    name: Optional[str] = None,
    regex: Optional[str] = None,
) -> Dict[str, ColumnSeries]:
    """Blocks chosen by name, else by regex, else by id."""

    if name:
        return {name: archive.columns(name)}
    if regex:
        return archive.columns_by_regex(regex)
    series = archive.columns(block_id)
    return {series.name: series}


def write_block(
    archive: TraceArchive,
    series: ColumnSeries,
    *,
    add_times: bool = False,
    stream: Optional[TextIO] = None,
    directory: Optional[Path] = None,
) -> None:
    """Write one block to ``stream`` or, with ``directory``, to a file named after it."""

    times = archive.output_times() if add_times else None
    frame = columns_frame(series, times)
    if directory is None:
        write_columns_text(frame, stream if stream is not None else sys.stdout)
        return
    name = series.name
    if name in ("", ".", "..") or Path(name).name != name or "\\" in name:
        raise UnsafeBlockName(f"block name {name!r} is not a plain file name; refusing to write it")
    target = Path(directory) / name
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fh:
        write_columns_text(frame, fh)
    logger.info("wrote %s", target)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mbdr",
        description="Inspect MCell binary reaction data archives",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples", 1)[1] if __doc__ else None,
    )
    parser.add_argument("files", nargs="+", type=Path, help="Binary MCell output files")
    parser.add_argument("-i", dest="info", action="store_true", help="show general info")
    parser.add_argument("-l", dest="list_blocks", action="store_true", help="list available data blocks")
    parser.add_argument("-e", dest="extract", action="store_true", help="extract dataset")
    parser.add_argument("-t", dest="add_times", action="store_true", help="add output times column")
    parser.add_argument("-w", dest="write_files", action="store_true", help="write output to file")
    parser.add_argument("-I", dest="block_id", type=int, default=0, help="id of dataset to extract")
    parser.add_argument("-N", dest="block_name", default=None, help="name of dataset to extract")
    parser.add_argument(
        "-R", dest="block_regex", default=None, help="regular expression of dataset(s) to extract"
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for files written with -w",
    )
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Suppress INFO logs and Python warnings (use --no-quiet to show logs).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""

    parser = build_parser()
    args = parser.parse_args(argv)
    if not (args.info or args.list_blocks or args.extract):
        parser.error("please specify at least one of -i, -l, or -e")
    configure_logging(logging.WARNING if args.quiet else logging.INFO, suppress_warnings=args.quiet)

    for path in args.files:
        try:
            archive = read_archive(path) if args.extract else read_header(path)
            if args.info:
                print("\n".join(format_info(archive)))
            if args.list_blocks:
                print("\n".join(format_block_list(archive)))
            if args.extract:
                blocks = select_blocks(
                    archive, block_id=args.block_id, name=args.block_name, regex=args.block_regex
                )
                for series in blocks.values():
                    write_block(
                        archive,
                        series,
                        add_times=args.add_times,
                        directory=args.output_dir if args.write_files else None,
                    )
        except (MbdrError, OSError, EOFError, re.error) as exc:
            print(f"mbdr: {path}: {exc}", file=sys.stderr)
            return 1
    return 0


__all__ = [
    "format_info",
    "format_block_list",
    "select_blocks",
    "write_block",
    "build_parser",
    "main",
]

if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    sys.exit(main())
