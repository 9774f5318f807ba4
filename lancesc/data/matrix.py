"""
Labeled sparse matrices and the helpers that decide how they can be stored.

A :class:`LabeledMatrix` pairs a scipy sparse matrix with string labels on
both axes. Populated cells are the non-zero entries. Two helpers live here
beside the type itself:

- :func:`are_layerable` decides whether two matrices can share a coordinate
  table without an outer join
- :func:`pad_matrix` appends declared-but-absent columns to a matrix
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from scipy import sparse

from lancesc.core.errors import ArgumentError, ShapeError


def _as_labels(labels: Iterable[Any], axis: str) -> pd.Index:
    index = pd.Index(labels)
    if index.has_duplicates:
        dupes = index[index.duplicated()].unique().tolist()[:5]
        raise ArgumentError(f"Duplicate {axis} labels are not allowed: {dupes}")
    return index.astype(str)


def _canonical_csr(matrix) -> sparse.csr_matrix:
    """CSR copy with summed duplicates, no explicit zeros and sorted indices."""
    csr = sparse.csr_matrix(matrix, copy=True)
    csr.sum_duplicates()
    csr.eliminate_zeros()
    csr.sort_indices()
    return csr


@dataclass(eq=False)
class LabeledMatrix:
    """
    A sparse matrix with string row and column labels.

    The matrix is stored in canonical CSR form (duplicates summed, explicit
    zeros dropped, indices sorted), so iterating its populated cells always
    yields row-major order.

    Args:
        matrix: Anything ``scipy.sparse.csr_matrix`` accepts (sparse or dense).
        row_names: One label per row.
        col_names: One label per column.

    Raises:
        ArgumentError: If the label counts do not match the matrix shape or
            labels are duplicated.

    Examples:
        >>> m = LabeledMatrix(
        ...     sparse.coo_matrix(([5.0], ([0], [0])), shape=(2, 2)),
        ...     row_names=["r1", "r2"],
        ...     col_names=["c1", "c2"],
        ... )
        >>> m.nnz
        1
    """

    matrix: Any
    row_names: Any
    col_names: Any

    def __post_init__(self):
        self.matrix = _canonical_csr(self.matrix)
        self.row_names = _as_labels(self.row_names, "row")
        self.col_names = _as_labels(self.col_names, "column")
        n_rows, n_cols = self.matrix.shape
        if len(self.row_names) != n_rows or len(self.col_names) != n_cols:
            raise ArgumentError(
                f"Labels ({len(self.row_names)}, {len(self.col_names)}) do not "
                f"match matrix shape {self.matrix.shape}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return self.matrix.shape

    @property
    def nnz(self) -> int:
        """Number of populated (non-zero) cells."""
        return int(self.matrix.count_nonzero())

    @property
    def dtype(self) -> np.dtype:
        return self.matrix.dtype

    def __repr__(self) -> str:
        return (
            f"LabeledMatrix(shape={self.shape}, nnz={self.nnz}, dtype={self.dtype})"
        )

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "LabeledMatrix":
        """Build a labeled matrix from a dense pandas DataFrame."""
        return cls(frame.to_numpy(), frame.index, frame.columns)

    @classmethod
    def from_triples(
        cls,
        rows: Sequence[Any],
        cols: Sequence[Any],
        values: Sequence[Any],
        row_names: Sequence[Any],
        col_names: Sequence[Any],
    ) -> "LabeledMatrix":
        """
        Build a labeled matrix from (row label, column label, value) triples.

        Raises:
            ArgumentError: If a triple references a label outside the universes.
        """
        row_index = _as_labels(row_names, "row")
        col_index = _as_labels(col_names, "column")
        i = row_index.get_indexer(pd.Index(rows).astype(str))
        j = col_index.get_indexer(pd.Index(cols).astype(str))
        if (i < 0).any() or (j < 0).any():
            raise ArgumentError("Triples reference labels outside the label universe")
        matrix = sparse.coo_matrix(
            (np.asarray(values), (i, j)), shape=(len(row_index), len(col_index))
        )
        return cls(matrix, row_index, col_index)

    def triples(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Row labels, column labels and values of populated cells, row-major."""
        coo = self.matrix.tocoo()
        return (
            self.row_names.to_numpy()[coo.row],
            self.col_names.to_numpy()[coo.col],
            coo.data,
        )

    def reindex(
        self, row_names: Sequence[Any], col_names: Sequence[Any]
    ) -> "LabeledMatrix":
        """
        Conform the matrix to new label sequences.

        Labels present in both keep their values, new labels become empty
        rows/columns and labels absent from the request are dropped.
        """
        new_rows = _as_labels(row_names, "row")
        new_cols = _as_labels(col_names, "column")
        coo = self.matrix.tocoo()
        row_pos = new_rows.get_indexer(self.row_names)[coo.row]
        col_pos = new_cols.get_indexer(self.col_names)[coo.col]
        keep = (row_pos >= 0) & (col_pos >= 0)
        matrix = sparse.coo_matrix(
            (coo.data[keep], (row_pos[keep], col_pos[keep])),
            shape=(len(new_rows), len(new_cols)),
            dtype=self.dtype,
        )
        return LabeledMatrix(matrix, new_rows, new_cols)

    def equals(self, other: "LabeledMatrix") -> bool:
        """Value equality over identical label sets, ignoring label order."""
        if not isinstance(other, LabeledMatrix):
            return False
        if set(self.row_names) != set(other.row_names):
            return False
        if set(self.col_names) != set(other.col_names):
            return False
        aligned = other.reindex(self.row_names, self.col_names)
        return (self.matrix != aligned.matrix).nnz == 0

    def to_frame(self) -> pd.DataFrame:
        """Dense pandas DataFrame indexed by the row labels."""
        return pd.DataFrame(
            self.matrix.toarray(), index=self.row_names, columns=self.col_names
        )


def are_layerable(x: LabeledMatrix, y: LabeledMatrix) -> bool:
    """
    Whether two matrices can be stored as layers of one coordinate table.

    Matrices are layerable when their ordered row labels, ordered column
    labels and populated-cell counts are identical. Cell positions are not
    compared: two matrices with equal labels and equal counts but different
    occupied cells are reported layerable. This is an accepted approximation
    for layers produced by the same ingestion, where patterns coincide.

    Raises:
        ShapeError: If either input is not a :class:`LabeledMatrix`.
    """
    if not (isinstance(x, LabeledMatrix) and isinstance(y, LabeledMatrix)):
        raise ShapeError("Both inputs must be LabeledMatrix objects")
    labels_match = x.row_names.equals(y.row_names) and x.col_names.equals(
        y.col_names
    )
    return labels_match and x.nnz == y.nnz


def pad_matrix(x: LabeledMatrix, colnames: Iterable[str]) -> LabeledMatrix:
    """
    Pad a matrix with empty columns so it carries every name in ``colnames``.

    Existing columns keep their order; missing names are appended in the
    order given. The input is returned unchanged when nothing is missing.

    Args:
        x: Matrix to pad.
        colnames: Column names the result must contain.

    Raises:
        ArgumentError: If ``x`` is not a :class:`LabeledMatrix` or
            ``colnames`` is empty or not a collection of strings.
    """
    if not isinstance(x, LabeledMatrix):
        raise ArgumentError("'x' must be a LabeledMatrix with row and column labels")
    if isinstance(colnames, str):
        raise ArgumentError("'colnames' must be a collection of strings, not a string")
    colnames = list(colnames)
    if not colnames or not all(isinstance(c, str) for c in colnames):
        raise ArgumentError("'colnames' must be a non-empty collection of strings")

    existing = set(x.col_names)
    new_colnames = [c for c in dict.fromkeys(colnames) if c not in existing]
    if not new_colnames:
        return x

    pad = sparse.csr_matrix((x.shape[0], len(new_colnames)), dtype=x.dtype)
    return LabeledMatrix(
        sparse.hstack([x.matrix, pad], format="csr"),
        x.row_names,
        x.col_names.append(pd.Index(new_colnames)),
    )
