"""Output helper utilities.

The routines in this module provide thin wrappers around :mod:`pandas`
functionality to serialise analysis results.  Release tables go to Parquet
or CSV depending on the file suffix, and extracted data blocks go to
whitespace separated text.  All functions ensure that
destination directories are created when necessary.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, TextIO

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ..archive import ColumnSeries

RELEASE_UNITS = {
    "seed": "id",
    "entity_id": "id",
    "iteration": "count",
    "time": "s",
    "pulse": "label",
    "sensors": "id list",
    "channels": "label",
    "total_carriers": "count",
    "main_channel": "flag",
    "num_channels": "count",
}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_parquet(df: pd.DataFrame, path: Path, *, compression: str = "snappy") -> None:
    """Write a DataFrame to a Parquet file using ``pyarrow``.

    Column units for known release columns are stored in the schema
    metadata under ``units``.
    """
    _ensure_parent(path)
    units = {name: RELEASE_UNITS[name] for name in df.columns if name in RELEASE_UNITS}
    table = pa.Table.from_pandas(df, preserve_index=False)
    metadata = dict(table.schema.metadata or {})
    metadata[b"units"] = json.dumps(units, sort_keys=True).encode("utf-8")
    table = table.replace_schema_metadata(metadata)
    compression_arg = None if compression == "none" else compression
    pq.write_table(table, path, compression=compression_arg)


def write_table(df: pd.DataFrame, path: Path) -> None:
    """Write ``df`` as Parquet (``.parquet``/``.pq``) or CSV (anything else)."""

    path = Path(path)
    if path.suffix.lower() in {".parquet", ".pq"}:
        write_parquet(df, path)
        return
    _ensure_parent(path)
    df.to_csv(path, index=False)


def columns_frame(series: ColumnSeries, times: Optional[np.ndarray] = None) -> pd.DataFrame:
    """Return the columns of a block as a DataFrame, optionally led by times."""

    data = {}
    if times is not None:
        data["time"] = np.asarray(times, dtype=float)
    for position, column in enumerate(series.columns):
        data[f"col{position}"] = column
    return pd.DataFrame(data)


def write_columns_text(df: pd.DataFrame, stream: TextIO) -> None:
    """Write block columns as space separated ``%g`` text without header."""

    df.to_csv(stream, sep=" ", header=False, index=False, float_format="%g")


__all__ = [
    "RELEASE_UNITS",
    "write_parquet",
    "write_table",
    "columns_frame",
    "write_columns_text",
]
