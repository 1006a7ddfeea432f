"""
Export of per‑image results.

The results of a run are turned into a :class:`pandas.DataFrame` with one
row per image.  The table can be written to Parquet (through PyArrow) or to
CSV, chosen by the file suffix.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, TYPE_CHECKING

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .config import RESULT_SUFFIXES

if TYPE_CHECKING:
    from .pipeline import ImageResult

COLUMNS = ["filename", "path", "n_detections", "n_unique", "n_individuals", "error"]


def results_frame(results: Iterable[ImageResult]) -> pd.DataFrame:
    """Build a DataFrame from image results, keeping their order."""
    rows = [{
        "filename": Path(r.path).name,
        "path": str(r.path),
        "n_detections": r.n_detections,
        "n_unique": r.n_unique,
        "n_individuals": r.n_individuals,
        "error": r.error,
    } for r in results]
    df = pd.DataFrame(rows, columns=COLUMNS)
    return df.astype({"n_detections": "int64", "n_unique": "int64", "n_individuals": "int64"})


def write_results(path: Path, results: Iterable[ImageResult]) -> Path:
    """Write the results table to ``path`` and return it.

    Raises
    ------
    ValueError
        If the suffix is neither ``.parquet`` nor ``.csv``.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in RESULT_SUFFIXES:
        raise ValueError(f"Unsupported results format {path.suffix!r}; use .parquet or .csv")
    df = results_frame(results)
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".parquet":
        table = pa.Table.from_pandas(df, preserve_index=False)
        pq.write_table(table, path)
    else:
        df.to_csv(path, index=False)
    return path


def read_results(path: Path) -> pd.DataFrame:
    """Read a results table written by :func:`write_results`."""
    path = Path(path)
    if path.suffix.lower() == ".parquet":
        return pq.read_table(path).to_pandas()
    return pd.read_csv(path, keep_default_na=False, na_values={"error": [""]})
