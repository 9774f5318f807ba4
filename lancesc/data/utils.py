"""
Pre-ingest normalisation of annotation tables.

Every annotation table goes through :func:`normalize_dataframe` before it is
written. The rules are applied in order and cover every column:

1. Row names must be unique strings; they become the ``index_col`` column,
   placed first.
2. Column names are converted to strings.
3. Categorical columns are stored as their string values. Categories and
   ordering are recorded so :func:`restore_dtypes` can rebuild them.
4. Object columns are stored as nullable strings.
5. All other columns (numeric, boolean, datetime) are stored as-is.
"""

from typing import Any

import pandas as pd
import pyarrow as pa

from lancesc.core.errors import ArgumentError


def has_string_index(df: pd.DataFrame) -> bool:
    """True when every row name of ``df`` is a string."""
    if isinstance(df.index, pd.RangeIndex):
        return False
    return all(isinstance(label, str) for label in df.index)


def normalize_dataframe(
    df: pd.DataFrame, index_col: str
) -> tuple[pa.Table, dict[str, dict[str, Any]]]:
    """
    Apply the normalisation rules to ``df``.

    Args:
        df: Annotation table whose row names are the index labels.
        index_col: Name of the column that will hold the row names.

    Returns:
        Tuple of (Arrow table ready to write, dtype records for restored columns).

    Raises:
        ArgumentError: If the input is not a DataFrame, lacks string row
            names, has duplicated row names or already has ``index_col``.
    """
    if not isinstance(df, pd.DataFrame):
        raise ArgumentError("'df' must be a pandas DataFrame")
    if not isinstance(index_col, str) or not index_col:
        raise ArgumentError("'index_col' must be a non-empty string")
    if not has_string_index(df):
        raise ArgumentError("'df' must have string row names")
    if df.index.has_duplicates:
        raise ArgumentError("'df' row names must be unique")

    out = df.copy()
    out.columns = [str(col) for col in out.columns]
    if index_col in out.columns:
        raise ArgumentError(f"'{index_col}' is already a column of 'df'")

    dtypes: dict[str, dict[str, Any]] = {}
    for col in out.columns:
        series = out[col]
        if isinstance(series.dtype, pd.CategoricalDtype):
            dtypes[col] = {
                "dtype": "category",
                "categories": [str(c) for c in series.cat.categories],
                "ordered": bool(series.cat.ordered),
            }
            out[col] = series.astype(str).where(series.notna(), None).astype("string")
        elif series.dtype == object:
            out[col] = series.astype("string")

    out.insert(0, index_col, out.index.astype(str))
    return pa.Table.from_pandas(out, preserve_index=False), dtypes


def restore_dtypes(
    df: pd.DataFrame, dtypes: dict[str, dict[str, Any]]
) -> pd.DataFrame:
    """Rebuild categorical columns recorded by :func:`normalize_dataframe`."""
    for col, info in dtypes.items():
        if col in df.columns and info.get("dtype") == "category":
            df[col] = pd.Categorical(
                df[col], categories=info["categories"], ordered=info["ordered"]
            )
    return df
