"""
Conversion between labeled sparse matrices and COO coordinate tables.

A coordinate table is a polars DataFrame with two index columns holding row
and column labels and one value column per matrix (one "layer" per column).
Several matrices share a single table; cells a matrix does not populate are
``null`` in its value column.
"""

from collections.abc import Mapping, Sequence

import pandas as pd
import polars as pl
from loguru import logger
from scipy import sparse

from lancesc.core.errors import ArgumentError, ArityError, SchemaError, ShapeError

from .matrix import LabeledMatrix, are_layerable


def _check_index_cols(index_cols: Sequence[str]) -> list[str]:
    if isinstance(index_cols, str):
        raise ArgumentError("'index_cols' must be a pair of column names")
    index_cols = list(index_cols)
    if len(index_cols) != 2 or index_cols[0] == index_cols[1]:
        raise ArgumentError(
            f"'index_cols' must name two distinct columns, got {index_cols}"
        )
    return index_cols


def _label_series(name: str, labels) -> pl.Series:
    return pl.Series(name, labels, dtype=pl.Utf8)


def matrices_to_table(
    matrices: LabeledMatrix | Sequence[LabeledMatrix] | Mapping[str, LabeledMatrix],
    index_cols: Sequence[str] = ("i", "j"),
    value_cols: Sequence[str] | None = None,
) -> pl.DataFrame:
    """
    Combine one or more labeled sparse matrices into a single COO table.

    The first matrix is canonical: its populated cells, in row-major order,
    form the index rows. Every other matrix that is layerable with it (see
    :func:`are_layerable`) contributes its values positionally, without a
    join. Matrices that are not layerable are converted to their own
    (row, column, value) triples and full-outer-joined on the index columns,
    so cells missing on either side carry ``null``.

    Args:
        matrices: A matrix, a sequence of matrices, or a mapping of value
            column name to matrix.
        index_cols: Names of the row-label and column-label columns.
        value_cols: Names of the value columns. Defaults to the mapping keys,
            or ``value1``, ``value2``, ... for unnamed inputs.

    Returns:
        Polars DataFrame with the two index columns followed by one value
        column per input matrix.

    Raises:
        ShapeError: If any input is not a LabeledMatrix.
        ArityError: If ``value_cols`` does not have one name per matrix.
        ArgumentError: If no matrix is given or ``index_cols`` is malformed.

    Examples:
        >>> layers = {"counts": counts, "data": data}
        >>> table = matrices_to_table(layers, ("obs_id", "var_id"))
        >>> table.columns
        ['obs_id', 'var_id', 'counts', 'data']
    """
    names: list[str] | None = None
    if isinstance(matrices, LabeledMatrix):
        mats = [matrices]
    elif isinstance(matrices, Mapping):
        names = [str(name) for name in matrices.keys()]
        mats = list(matrices.values())
    else:
        try:
            mats = list(matrices)
        except TypeError as err:
            raise ShapeError(
                "'matrices' must be a LabeledMatrix or a collection of them, "
                f"got {type(matrices).__name__}"
            ) from err

    if not mats:
        raise ArgumentError("At least one matrix is required")
    if not all(isinstance(m, LabeledMatrix) for m in mats):
        raise ShapeError(
            "When 'matrices' is a collection all elements must be LabeledMatrix objects"
        )

    index_cols = _check_index_cols(index_cols)

    if value_cols is None:
        value_cols = names or [f"value{k}" for k in range(1, len(mats) + 1)]
    value_cols = list(value_cols)
    if len(value_cols) != len(mats):
        raise ArityError(
            f"Got {len(value_cols)} value column names for {len(mats)} matrices"
        )
    if len(set(value_cols)) != len(value_cols) or set(value_cols) & set(index_cols):
        raise ArgumentError(
            "Value column names must be unique and distinct from the index columns"
        )

    canonical = mats[0]
    rows, cols, _ = canonical.triples()
    table = pl.DataFrame(
        [_label_series(index_cols[0], rows), _label_series(index_cols[1], cols)]
    )

    # Positional layers must be attached before any join reorders the index
    joined = []
    for name, mat in zip(value_cols, mats, strict=True):
        if are_layerable(canonical, mat):
            table = table.with_columns(pl.Series(name, mat.matrix.data))
        else:
            joined.append((name, mat))

    for name, mat in joined:
        logger.debug(f"Matrix '{name}' is not layerable, merging by coordinates")
        r, c, v = mat.triples()
        values = pl.DataFrame(
            [
                _label_series(index_cols[0], r),
                _label_series(index_cols[1], c),
                pl.Series(name, v),
            ]
        )
        table = table.join(values, on=index_cols, how="full", coalesce=True)

    return table.select(index_cols + value_cols)


def table_to_matrices(
    table: pl.DataFrame | pd.DataFrame, index_cols: Sequence[str] = ("i", "j")
) -> dict[str, LabeledMatrix]:
    """
    Split a COO table into one labeled sparse matrix per value column.

    Row and column label universes are the distinct values of each index
    column in first-seen order, so every returned matrix has the same shape.
    ``null`` values are treated as unpopulated cells.

    Args:
        table: COO table (polars, or pandas which is converted).
        index_cols: Names of the row-label and column-label columns.

    Returns:
        Mapping of value column name to LabeledMatrix.

    Raises:
        SchemaError: If ``index_cols`` is not a pair of columns present in the table.
        ArgumentError: If ``table`` is not a data frame.
    """
    if isinstance(table, pd.DataFrame):
        table = pl.from_pandas(table)
    elif not isinstance(table, pl.DataFrame):
        raise ArgumentError("'table' must be a polars or pandas DataFrame")

    index_cols = list(index_cols)
    if len(index_cols) != 2:
        raise SchemaError(f"Exactly two index columns are required, got {index_cols}")
    missing = [col for col in index_cols if col not in table.columns]
    if missing:
        raise SchemaError(f"Index column(s) not found in table: {missing}")

    value_cols = [col for col in table.columns if col not in index_cols]
    row_labels = table[index_cols[0]].cast(pl.Utf8)
    col_labels = table[index_cols[1]].cast(pl.Utf8)
    row_names = row_labels.unique(maintain_order=True).to_list()
    col_names = col_labels.unique(maintain_order=True).to_list()

    i = pd.Index(row_names).get_indexer(row_labels.to_numpy())
    j = pd.Index(col_names).get_indexer(col_labels.to_numpy())
    shape = (len(row_names), len(col_names))

    matrices = {}
    for col in value_cols:
        populated = table[col].is_not_null().to_numpy()
        values = table[col].filter(table[col].is_not_null()).to_numpy()
        matrix = sparse.coo_matrix(
            (values, (i[populated], j[populated])), shape=shape
        )
        matrices[col] = LabeledMatrix(matrix, row_names, col_names)
    return matrices
