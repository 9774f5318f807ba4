"""
Annotation arrays: tables and dense matrices aligned to one SOMA axis.

Both variants store one record per observation (or feature), keyed by a
single index dimension. :class:`AnnotationDataframe` holds heterogeneous
columns (``obs``/``var``); :class:`AnnotationMatrix` holds a dense numeric
matrix with one attribute per column (``obsm``/``varm`` members).
"""

from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

from lancesc.core.array import LanceArray
from lancesc.core.errors import ArgumentError
from lancesc.data.matrix import LabeledMatrix
from lancesc.data.utils import has_string_index, normalize_dataframe, restore_dtypes

DTYPES_KEY = "lancesc_dtypes"


class AnnotationArray(LanceArray):
    """Base class for arrays with rows aligned to the observations or features."""

    def _capacity(self) -> int:
        # Annotation arrays are sized by role, taken from their basename
        return self.options.capacity_for(self.name)

    def ids(self) -> list[str]:
        """Values of the index dimension, honouring the active restriction."""
        dim = self.dimnames()[0]
        return self.read(attrs=[])[dim].to_list()

    def _ingest(self, df: pd.DataFrame, index_col: str):
        table, dtypes = normalize_dataframe(df, index_col)
        self.write(table, dims=[index_col], capacity=self._capacity())
        if dtypes:
            recorded = self.get_metadata(DTYPES_KEY) or {}
            recorded.update(dtypes)
            self.add_metadata({DTYPES_KEY: recorded})

    def _read_frame(self, attrs: list[str] | None = None) -> pd.DataFrame:
        self._message(f"Reading {self.class_name} into memory from '{self.uri}'")
        dim = self.dimnames()[0]
        df = self.read(attrs).to_pandas().set_index(dim)
        df.index.name = None
        return restore_dtypes(df, self.get_metadata(DTYPES_KEY) or {})


class AnnotationDataframe(AnnotationArray):
    """
    Annotations for the observations or features of a SOMA.

    Examples:
        >>> obs = AnnotationDataframe("data/soma/obs")
        >>> obs.from_dataframe(adata.obs, index_col="obs_id")
        >>> obs.to_dataframe(attrs=["cell_type"]).head()
    """

    def from_dataframe(self, df: pd.DataFrame, index_col: str) -> None:
        """
        Ingest an annotation table.

        Args:
            df: Table whose row names become the values of the index dimension.
            index_col: Name of the index dimension.

        Raises:
            ArgumentError: If ``df`` is not a DataFrame with unique string row
                names or ``index_col`` is not a string.
            SchemaError: If the array exists and ``df`` has different columns.
        """
        self._ingest(df, index_col)

    def to_dataframe(self, attrs: list[str] | None = None) -> pd.DataFrame:
        """
        Read the annotations into memory.

        Args:
            attrs: Attribute names to retrieve. All attributes by default.

        Returns:
            DataFrame whose row names are the values of the index dimension.
        """
        return self._read_frame(attrs)


class AnnotationMatrix(AnnotationArray):
    """
    A dense matrix of annotations (e.g. embeddings) for one SOMA axis.

    The matrix is stored with one attribute per column, so reads can pull a
    subset of columns without loading the rest.
    """

    def from_matrix(
        self,
        x: pd.DataFrame | np.ndarray | LabeledMatrix,
        index_col: str,
        row_names: Sequence[Any] | None = None,
        col_names: Sequence[Any] | None = None,
    ) -> None:
        """
        Ingest a labeled dense matrix.

        Args:
            x: A DataFrame with string row names, a LabeledMatrix, or a 2D
                array together with ``row_names`` and ``col_names``.
            index_col: Name of the index dimension.
            row_names: Row labels when ``x`` is an array.
            col_names: Column labels when ``x`` is an array.

        Raises:
            ArgumentError: If the matrix has no defined dim names.
        """
        if isinstance(x, LabeledMatrix):
            frame = x.to_frame()
        elif isinstance(x, pd.DataFrame):
            frame = x
        elif isinstance(x, np.ndarray) and x.ndim == 2:
            if row_names is None or col_names is None:
                raise ArgumentError("'x' must have defined dim names")
            frame = pd.DataFrame(x, index=pd.Index(row_names), columns=col_names)
        else:
            raise ArgumentError(
                "'x' must be a DataFrame, a LabeledMatrix or a 2D numpy array"
            )

        if not has_string_index(frame):
            raise ArgumentError("'x' must have defined dim names")
        frame = frame.copy()
        frame.columns = [str(col) for col in frame.columns]
        self._ingest(frame, index_col)

    def to_matrix(self, attrs: list[str] | None = None) -> pd.DataFrame:
        """Read the matrix into memory as a DataFrame labeled on both axes."""
        return self._read_frame(attrs)
