"""
The SOMA: a stack of matrices, annotated.

A SOMA groups the members of one annotated single-cell dataset under a single
coordinate system. Observations (cells) and features (genes) are identified
by string ids; every member array is keyed by one or both axes:

    soma/
    ├── obs     AnnotationDataframe            [obs_id]
    ├── var     AnnotationDataframe            [var_id]
    ├── X       AssayMatrixGroup               [obs_id, var_id]
    ├── obsm    AnnotationMatrixGroup          [obs_id]
    ├── varm    AnnotationMatrixGroup          [var_id]
    ├── obsp    AnnotationPairwiseMatrixGroup  [obs_id_i, obs_id_j]
    ├── varp    AnnotationPairwiseMatrixGroup  [var_id_i, var_id_j]
    └── uns     Group (scalar entries kept as metadata)

Slicing is expressed on the two axes and translated into the physical
dimension names of every member, so all members agree on the selected ids.
"""

from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from lancesc.core.errors import ArgumentError, SchemaError
from lancesc.core.group import Group
from lancesc.core.object import StorageObject
from lancesc.core.options import StorageOptions
from lancesc.data.matrix import LabeledMatrix

from .annotation import AnnotationDataframe
from .groups import (
    AnnotationMatrixGroup,
    AnnotationPairwiseMatrixGroup,
    AssayMatrixGroup,
)

OBS_DIMS = ("obs_id", "obs_id_i", "obs_id_j")
VAR_DIMS = ("var_id", "var_id_i", "var_id_j")


def axis_dims(
    obs_ids: Iterable[Any] | None = None, var_ids: Iterable[Any] | None = None
) -> dict[str, list[Any]]:
    """
    Expand axis ids into a slice over every physical dimension of that axis.

    Examples:
        >>> axis_dims(obs_ids=["a"])
        {'obs_id': ['a'], 'obs_id_i': ['a'], 'obs_id_j': ['a']}
    """
    dims: dict[str, list[Any]] = {}
    for ids, names in ((obs_ids, OBS_DIMS), (var_ids, VAR_DIMS)):
        if ids is None:
            continue
        if isinstance(ids, str) or not isinstance(ids, Iterable):
            raise ArgumentError("Axis ids must be a sequence of labels")
        ids = list(ids.tolist()) if hasattr(ids, "tolist") else list(ids)
        dims.update({name: ids for name in names})
    return dims


class SOMA(Group):
    """
    Single-cell dataset: annotations, assays and auxiliary matrices.

    Args:
        uri: Location of the SOMA.
        verbose: Emit informational messages at INFO level.
        options: Storage options shared with every member.

    Examples:
        >>> soma = SOMA("data/pbmc3k")
        >>> soma.from_anndata(adata)
        >>> soma.set_query(obs_ids=["AAACATACAACCAC-1", "AAACATTGAGCTAC-1"])
        >>> soma.to_anndata()
        AnnData object with n_obs × n_vars = 2 × 1838
    """

    def __init__(
        self,
        uri: str | Path,
        verbose: bool | None = None,
        options: StorageOptions | None = None,
    ):
        super().__init__(uri, verbose, options)
        kwargs = {"verbose": self.verbose, "options": self.options}

        self.obs = AnnotationDataframe(self._member_path("obs"), **kwargs)
        self.var = AnnotationDataframe(self._member_path("var"), **kwargs)
        self.X = AssayMatrixGroup(self._member_path("X"), **kwargs)
        self.obsm = AnnotationMatrixGroup(
            self._member_path("obsm"), dimname="obs_id", **kwargs
        )
        self.varm = AnnotationMatrixGroup(
            self._member_path("varm"), dimname="var_id", **kwargs
        )
        self.obsp = AnnotationPairwiseMatrixGroup(
            self._member_path("obsp"), axis="obs", **kwargs
        )
        self.varp = AnnotationPairwiseMatrixGroup(
            self._member_path("varp"), axis="var", **kwargs
        )
        self.uns = Group(self._member_path("uns"), **kwargs)

        for member in (
            self.obs,
            self.var,
            self.X,
            self.obsm,
            self.varm,
            self.obsp,
            self.varp,
            self.uns,
        ):
            self._register(member)

    def _record_member(self, member: StorageObject) -> None:
        """Record a member once it exists on disk."""
        if member.name not in self:
            self.add_member(member)

    # Axes

    def obs_ids(self) -> list[str]:
        """Observation ids, honouring the active slice."""
        return self.obs.ids()

    def var_ids(self) -> list[str]:
        """Feature ids, honouring the active slice."""
        return self.var.ids()

    def _all_ids(self, annotation: AnnotationDataframe) -> set[str]:
        dim = annotation.dimnames()[0]
        return set(annotation.read(attrs=[], apply_query=False)[dim].to_list())

    # Slicing

    def set_query(
        self,
        obs_ids: Iterable[Any] | None = None,
        var_ids: Iterable[Any] | None = None,
    ) -> None:
        """
        Slice every member of the SOMA on the observation and feature axes.

        Observation ids restrict ``obs_id``, ``obs_id_i`` and ``obs_id_j`` on
        every member that has them; feature ids do the same for the ``var_id``
        dimensions. An axis left as None keeps its current restriction.

        Raises:
            ArgumentError: If neither ``obs_ids`` nor ``var_ids`` is given.
        """
        if obs_ids is None and var_ids is None:
            raise ArgumentError("Must specify at least one of 'obs_ids' or 'var_ids'")
        self._propagate_query(axis_dims(obs_ids, var_ids))

    def reset_query(self) -> None:
        """Remove every restriction from every member."""
        self._propagate_reset(None)

    # Assays

    def add_layers(
        self,
        layers: LabeledMatrix | Sequence[LabeledMatrix] | Mapping[str, LabeledMatrix],
        name: str = "data",
        value_cols: Sequence[str] | None = None,
    ) -> None:
        """
        Store sparse layers in ``X``, keyed by the SOMA's observation and features.

        Raises:
            SchemaError: If the annotations have not been written yet, or a
                layer uses labels absent from ``obs`` or ``var``.
        """
        if not (self.obs.exists() and self.var.exists()):
            raise SchemaError("'obs' and 'var' must be written before any layer")
        if isinstance(layers, LabeledMatrix):
            matrices = [layers]
        elif isinstance(layers, Mapping):
            matrices = list(layers.values())
        else:
            matrices = list(layers)
        obs_ids = self._all_ids(self.obs)
        var_ids = self._all_ids(self.var)
        for matrix in matrices:
            if not isinstance(matrix, LabeledMatrix):
                continue
            extra_obs = set(matrix.row_names) - obs_ids
            extra_var = set(matrix.col_names) - var_ids
            if extra_obs or extra_var:
                raise SchemaError(
                    "Layer labels must be a subset of the SOMA's ids; unknown "
                    f"obs: {sorted(extra_obs)[:5]}, var: {sorted(extra_var)[:5]}"
                )
        self.X.add_assay_matrix(layers, name=name, value_cols=value_cols)
        self._record_member(self.X)

    def layer_names(self) -> list[str]:
        return self.X.layer_names() if self.X.exists() else []

    def to_matrices(self) -> dict[str, LabeledMatrix]:
        """
        Read every layer conformed to the (sliced) observation and feature ids.

        Ids without populated cells become empty rows or columns, so every
        layer has the same labels as ``obs`` and ``var``.
        """
        obs_ids = self.obs_ids()
        var_ids = self.var_ids()
        return {
            layer: matrix.reindex(obs_ids, var_ids)
            for layer, matrix in self.X.to_matrices().items()
        }

    # AnnData

    def from_anndata(self, adata) -> None:
        """Ingest an ``AnnData`` object (see :mod:`lancesc.integrations.anndata`)."""
        from lancesc.integrations.anndata import write_anndata

        write_anndata(self, adata)

    def to_anndata(self):
        """Export the (sliced) SOMA as an ``AnnData`` object."""
        from lancesc.integrations.anndata import read_anndata

        return read_anndata(self)
