"""
Sparse matrices stored as COO coordinate tables.

An :class:`AssayMatrix` stores one or more layers (e.g. raw counts and
normalised values) as attributes of a single array, indexed by the
observation and feature dimensions. :class:`AnnotationPairwiseMatrix` is the
same storage applied to an observation-by-observation (or feature-by-feature)
matrix such as a neighbour graph.
"""

from collections.abc import Mapping, Sequence
from pathlib import Path

import polars as pl

from lancesc.core.array import LanceArray
from lancesc.core.errors import SchemaError
from lancesc.core.options import StorageOptions
from lancesc.data.coo import matrices_to_table, table_to_matrices
from lancesc.data.matrix import LabeledMatrix


class AssayMatrix(LanceArray):
    """
    Layers of a sparse observation-by-feature matrix.

    Args:
        uri: Location of the array.
        index_cols: Names of the row and column dimensions used when the array
            is created. Existing arrays use the dimensions they were created with.
        verbose: Emit informational messages at INFO level.
        options: Storage options.

    Examples:
        >>> assay = AssayMatrix("data/soma/X/data")
        >>> assay.from_matrix({"counts": counts, "logcounts": logcounts})
        >>> assay.set_query({"obs_id": ["cell_1", "cell_2"]})
        >>> assay.to_matrix("counts").shape
        (2, 230)
    """

    default_index_cols = ("obs_id", "var_id")

    def __init__(
        self,
        uri: str | Path,
        index_cols: Sequence[str] | None = None,
        verbose: bool | None = None,
        options: StorageOptions | None = None,
    ):
        super().__init__(uri, verbose=verbose, options=options)
        self._index_cols = list(index_cols or self.default_index_cols)

    @property
    def index_cols(self) -> list[str]:
        if self.exists():
            return self.dimnames()
        return list(self._index_cols)

    def from_matrix(
        self,
        x: LabeledMatrix | Sequence[LabeledMatrix] | Mapping[str, LabeledMatrix],
        value_cols: Sequence[str] | None = None,
    ) -> None:
        """
        Ingest one or more layers.

        Layers are merged into a single COO table (see
        :func:`lancesc.data.coo.matrices_to_table`); each layer becomes an
        attribute of the array.

        Args:
            x: A matrix, a sequence of matrices, or a mapping of layer name to matrix.
            value_cols: Layer names, when ``x`` is not a mapping.
        """
        table = matrices_to_table(x, index_cols=self.index_cols, value_cols=value_cols)
        self.write(table, dims=self.index_cols)

    def to_dataframe(self, attrs: list[str] | None = None) -> pl.DataFrame:
        """Read the COO table (dimensions plus layer columns) into memory."""
        self._message(f"Reading {self.class_name} into memory from '{self.uri}'")
        return self.read(attrs)

    def to_matrices(self, attrs: list[str] | None = None) -> dict[str, LabeledMatrix]:
        """Read layers back as labeled sparse matrices, keyed by layer name."""
        return table_to_matrices(self.to_dataframe(attrs), self.dimnames())

    def to_matrix(self, attr: str | None = None) -> LabeledMatrix:
        """
        Read a single layer.

        Args:
            attr: Layer name. Defaults to the first layer.

        Raises:
            SchemaError: If the array has no layers or ``attr`` is unknown.
        """
        if attr is None:
            layers = self.attrnames()
            if not layers:
                raise SchemaError(f"{self.class_name} at '{self.uri}' has no layers")
            attr = layers[0]
        return self.to_matrices([attr])[attr]


class AnnotationPairwiseMatrix(AssayMatrix):
    """Sparse pairwise annotations between observations (or between features)."""

    default_index_cols = ("obs_id_i", "obs_id_j")

    def from_matrix(
        self,
        x: LabeledMatrix | Sequence[LabeledMatrix] | Mapping[str, LabeledMatrix],
        value_cols: Sequence[str] | None = None,
    ) -> None:
        if isinstance(x, LabeledMatrix) and value_cols is None:
            value_cols = ["value"]
        super().from_matrix(x, value_cols=value_cols)
