"""Batch analysis of many archives.

Each archive is decoded, analysed and reported on its own; a failure in one
archive is recorded in its :class:`ArchiveResult` and never stops the
batch.  With ``jobs > 1`` archives are distributed over a process pool,
one archive per task, and every worker builds its own random generator.
"""
from __future__ import annotations

import concurrent.futures
import gc
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .errors import MbdrError, RunIdentifierError
from .io.reader import read_archive
from .release.engine import detect_releases
from .reporting import ReleaseRecord, release_records
from .schema import AnalyzerConfig

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def extract_run_id(path: PathLike) -> int:
    """Return the run (seed) id from a ``*.<seed>.bin.(gz|bz2)`` file name."""

    name = Path(path).name
    items = name.split(".")
    if len(items) <= 3:
        raise RunIdentifierError(
            f"incorrectly formatted file name {name}; expected *.<seed>.bin.(gz|bz2)"
        )
    for position in range(len(items) - 1, 0, -1):
        if items[position] == "bin":
            text = items[position - 1]
            if not text.isdigit():
                raise RunIdentifierError(f"run id {text!r} in {name} is not a non-negative integer")
            return int(text)
    raise RunIdentifierError(f"unable to extract run id from file name {name}")


def make_rng(base_seed: Optional[int], run_id: int) -> np.random.Generator:
    """Generator for one archive; fresh OS entropy when ``base_seed`` is ``None``."""

    if base_seed is None:
        return np.random.default_rng()
    return np.random.default_rng(np.random.SeedSequence([base_seed, run_id]))


@dataclass
class ArchiveResult:
    """Outcome of analysing one archive."""

    path: str
    run_id: Optional[int] = None
    records: List[ReleaseRecord] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failures


def analyze_archive(
    path: PathLike, config: AnalyzerConfig, base_seed: Optional[int] = None
) -> ArchiveResult:
    """Decode ``path``, detect releases and build the release records."""

    result = ArchiveResult(path=str(path))
    try:
        result.run_id = extract_run_id(path)
        archive = read_archive(path)
        try:
            rng = make_rng(base_seed, result.run_id)
            report = detect_releases(
                archive, config, config.model.entity_ids, rng, seed=result.run_id
            )
            result.records = release_records(archive, config.model, result.run_id, report)
            result.failures = {entity: str(exc) for entity, exc in report.failures.items()}
        finally:
            del archive
            gc.collect()
    except (MbdrError, OSError, EOFError) as exc:
        logger.warning("%s: %s", path, exc)
        result.error = f"{type(exc).__name__}: {exc}"
        return result
    except Exception as exc:
        logger.exception("%s: unexpected failure", path)
        result.error = f"{type(exc).__name__}: {exc}"
        return result
    logger.info(
        "%s: run %d, %d releases, %d failed entities",
        path,
        result.run_id,
        len(result.records),
        len(result.failures),
    )
    return result


def run_batch(
    paths: Sequence[PathLike],
    config: AnalyzerConfig,
    jobs: int = 1,
    base_seed: Optional[int] = None,
) -> List[ArchiveResult]:
    """Analyse ``paths`` and return one result per path, in input order."""

    if jobs < 1:
        raise ValueError("jobs must be at least 1")
    if jobs == 1 or len(paths) <= 1:
        return [analyze_archive(path, config, base_seed) for path in paths]

    results: List[Optional[ArchiveResult]] = [None] * len(paths)
    with concurrent.futures.ProcessPoolExecutor(max_workers=jobs) as pool:
        futures = {
            pool.submit(analyze_archive, path, config, base_seed): position
            for position, path in enumerate(paths)
        }
        for future in concurrent.futures.as_completed(futures):
            results[futures[future]] = future.result()
    return [result for result in results if result is not None]


__all__ = [
    "extract_run_id",
    "make_rng",
    "ArchiveResult",
    "analyze_archive",
    "run_batch",
]
