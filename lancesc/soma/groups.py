"""
Typed groups holding the matrix members of a SOMA.

- :class:`AssayMatrixGroup` (``X``) holds sparse observation-by-feature assays
- :class:`AnnotationMatrixGroup` (``obsm``/``varm``) holds dense matrices
  aligned to one axis
- :class:`AnnotationPairwiseMatrixGroup` (``obsp``/``varp``) holds sparse
  pairwise matrices over one axis
"""

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from lancesc.core.errors import ArgumentError, SchemaError, StorageError
from lancesc.core.group import Group
from lancesc.core.options import StorageOptions
from lancesc.data.matrix import LabeledMatrix

from .annotation import AnnotationMatrix
from .assay import AnnotationPairwiseMatrix, AssayMatrix

AXES = ("obs", "var")


def _check_axis(axis: str) -> str:
    if axis not in AXES:
        raise ArgumentError(f"'axis' must be one of {AXES}, got '{axis}'")
    return axis


class AssayMatrixGroup(Group):
    """
    The ``X`` group: one or more assay matrices sharing the SOMA's axes.

    Examples:
        >>> X = AssayMatrixGroup("data/soma/X")
        >>> X.add_assay_matrix({"counts": counts}, name="data")
        >>> X.layer_names()
        ['counts']
    """

    def add_assay_matrix(
        self,
        data: LabeledMatrix | Sequence[LabeledMatrix] | Mapping[str, LabeledMatrix],
        name: str = "data",
        value_cols: Sequence[str] | None = None,
    ) -> AssayMatrix:
        """
        Ingest layers into the assay matrix ``name``, creating it if needed.

        Args:
            data: Layers to store (see :meth:`AssayMatrix.from_matrix`).
            name: Member name of the assay matrix.
            value_cols: Layer names, when ``data`` is not a mapping.

        Returns:
            The assay matrix member.
        """
        self.create()
        assay = AssayMatrix(
            self._member_path(name), verbose=self.verbose, options=self.options
        )
        assay.from_matrix(data, value_cols=value_cols)
        if name not in self:
            self.add_member(assay, name)
        return self.get_member(name)

    def get_assay_matrix(self, name: str = "data") -> AssayMatrix:
        member = self.get_member(name)
        if not isinstance(member, AssayMatrix):
            raise StorageError(f"Member '{name}' of '{self.uri}' is not an AssayMatrix")
        return member

    def assay_names(self) -> list[str]:
        return self.member_names()

    def layer_names(self) -> list[str]:
        """Layer names across every assay matrix in the group."""
        return [
            layer
            for name in self.assay_names()
            for layer in self.get_assay_matrix(name).attrnames()
        ]

    def to_matrices(self) -> dict[str, LabeledMatrix]:
        """
        Read every layer of every assay matrix.

        Raises:
            SchemaError: If two assay matrices define a layer with the same name.
        """
        layers: dict[str, LabeledMatrix] = {}
        for name in self.assay_names():
            for layer, matrix in self.get_assay_matrix(name).to_matrices().items():
                if layer in layers:
                    raise SchemaError(
                        f"Layer '{layer}' is defined by more than one assay matrix "
                        f"in '{self.uri}'"
                    )
                layers[layer] = matrix
        return layers


class AnnotationMatrixGroup(Group):
    """
    Dense annotation matrices (e.g. embeddings) aligned to one axis.

    Args:
        uri: Location of the group.
        dimname: Name of the index dimension of member matrices
            (``obs_id`` or ``var_id``). Existing groups use the stored name.
    """

    def __init__(
        self,
        uri: str | Path,
        dimname: str | None = None,
        verbose: bool | None = None,
        options: StorageOptions | None = None,
    ):
        super().__init__(uri, verbose, options)
        if self.exists():
            with self._config_session("READ") as config:
                dimname = config.get("dimname", dimname)
        if dimname is None:
            raise ArgumentError(f"'dimname' is required to create '{self.uri}'")
        self.dimname = dimname

    def _config_fields(self) -> dict[str, Any]:
        return {"dimname": self.dimname}

    def add_matrix(
        self,
        x: pd.DataFrame | np.ndarray | LabeledMatrix,
        name: str,
        row_names: Sequence[Any] | None = None,
        col_names: Sequence[Any] | None = None,
    ) -> AnnotationMatrix:
        """
        Store a dense matrix as member ``name``.

        See :meth:`AnnotationMatrix.from_matrix` for accepted inputs.
        """
        self.create()
        matrix = AnnotationMatrix(
            self._member_path(name), verbose=self.verbose, options=self.options
        )
        matrix.from_matrix(x, self.dimname, row_names=row_names, col_names=col_names)
        if name not in self:
            self.add_member(matrix, name)
        return self.get_member(name)

    def get_matrix(self, name: str) -> AnnotationMatrix:
        member = self.get_member(name)
        if not isinstance(member, AnnotationMatrix):
            raise StorageError(
                f"Member '{name}' of '{self.uri}' is not an AnnotationMatrix"
            )
        return member

    def to_matrices(self) -> dict[str, pd.DataFrame]:
        return {name: self.get_matrix(name).to_matrix() for name in self.member_names()}


class AnnotationPairwiseMatrixGroup(Group):
    """
    Sparse pairwise matrices (e.g. neighbour graphs) over one axis.

    Args:
        uri: Location of the group.
        axis: ``"obs"`` or ``"var"``. Existing groups use the stored axis.
    """

    def __init__(
        self,
        uri: str | Path,
        axis: str | None = None,
        verbose: bool | None = None,
        options: StorageOptions | None = None,
    ):
        super().__init__(uri, verbose, options)
        if self.exists():
            with self._config_session("READ") as config:
                axis = config.get("axis", axis)
        if axis is None:
            raise ArgumentError(f"'axis' is required to create '{self.uri}'")
        self.axis = _check_axis(axis)

    def _config_fields(self) -> dict[str, Any]:
        return {"axis": self.axis}

    @property
    def index_cols(self) -> list[str]:
        return [f"{self.axis}_id_i", f"{self.axis}_id_j"]

    def add_matrix(self, x: LabeledMatrix, name: str) -> AnnotationPairwiseMatrix:
        """
        Store a square labeled matrix as member ``name``.

        Raises:
            ArgumentError: If ``x`` is not a LabeledMatrix.
        """
        if not isinstance(x, LabeledMatrix):
            raise ArgumentError("'x' must be a LabeledMatrix")
        self.create()
        matrix = AnnotationPairwiseMatrix(
            self._member_path(name),
            index_cols=self.index_cols,
            verbose=self.verbose,
            options=self.options,
        )
        matrix.from_matrix(x)
        if name not in self:
            self.add_member(matrix, name)
        return self.get_member(name)

    def get_matrix(self, name: str) -> AnnotationPairwiseMatrix:
        member = self.get_member(name)
        if not isinstance(member, AnnotationPairwiseMatrix):
            raise StorageError(
                f"Member '{name}' of '{self.uri}' is not an AnnotationPairwiseMatrix"
            )
        return member

    def to_matrices(self) -> dict[str, LabeledMatrix]:
        return {
            name: self.get_matrix(name).to_matrix()
            for name in self.member_names()
        }
