"""
Conversion between ``AnnData`` objects and SOMAs.

Every slot that has a counterpart in the SOMA layout is carried over:

- ``obs``/``var`` become annotation dataframes keyed by ``obs_id``/``var_id``
- ``X`` and ``layers`` are merged into one assay matrix in ``X``
- ``obsm``/``varm`` become dense annotation matrices
- ``obsp``/``varp`` become sparse pairwise matrices
- scalar ``uns`` entries are kept as metadata of the ``uns`` group

Nested ``uns`` entries are skipped with a warning.
"""

from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
import scanpy as sc
import scipy.sparse
from loguru import logger

from lancesc.core.errors import ArgumentError
from lancesc.data.matrix import LabeledMatrix

if TYPE_CHECKING:
    from lancesc.soma.dataset import SOMA

X_LAYER = "X"
ASSAY_NAME = "data"
SOURCE_KEY = "lancesc_source"


def _as_dense_frame(key: str, value: Any, names: pd.Index) -> tuple[pd.DataFrame, str]:
    """Dense labeled frame for an ``obsm``/``varm`` entry and its original kind."""
    if isinstance(value, pd.DataFrame):
        frame = value.copy()
        frame.index = names
        return frame, "dataframe"
    if scipy.sparse.issparse(value):
        value = value.toarray()
    value = np.asarray(value)
    if value.ndim == 1:
        value = value.reshape(-1, 1)
    columns = [f"{key}_{i}" for i in range(value.shape[1])]
    return pd.DataFrame(value, index=names, columns=columns), "array"


def _is_scalar(value: Any) -> bool:
    return isinstance(value, str | bool | int | float | np.generic)


def write_anndata(soma: "SOMA", adata: sc.AnnData) -> None:
    """
    Write an ``AnnData`` object into a SOMA.

    Args:
        soma: Destination SOMA. Created if it does not exist.
        adata: Object to ingest.

    Raises:
        ArgumentError: If ``adata`` is not an AnnData object.
    """
    if not isinstance(adata, sc.AnnData):
        raise ArgumentError(f"Expected an AnnData object, got {type(adata).__name__}")

    logger.info(
        f"Writing AnnData ({adata.n_obs:,} obs × {adata.n_vars:,} vars) "
        f"to '{soma.uri}'"
    )
    obs_names = pd.Index(adata.obs_names.astype(str))
    var_names = pd.Index(adata.var_names.astype(str))

    obs = adata.obs.copy()
    obs.index = obs_names
    var = adata.var.copy()
    var.index = var_names
    soma.obs.from_dataframe(obs, index_col="obs_id")
    soma._record_member(soma.obs)
    soma.var.from_dataframe(var, index_col="var_id")
    soma._record_member(soma.var)

    layers: dict[str, LabeledMatrix] = {}
    if adata.X is not None:
        layers[X_LAYER] = LabeledMatrix(adata.X, obs_names, var_names)
    for name, value in adata.layers.items():
        layers[name] = LabeledMatrix(value, obs_names, var_names)
    if any(matrix.nnz for matrix in layers.values()):
        soma.add_layers(layers, name=ASSAY_NAME)
    elif layers:
        logger.warning("Skipping X and layers: no populated cells")

    for group, slot, names in (
        (soma.obsm, adata.obsm, obs_names),
        (soma.varm, adata.varm, var_names),
    ):
        for key, value in slot.items():
            frame, source = _as_dense_frame(key, value, names)
            matrix = group.add_matrix(frame, key)
            matrix.add_metadata({SOURCE_KEY: source})
        if len(group):
            soma._record_member(group)

    for group, slot, names in (
        (soma.obsp, adata.obsp, obs_names),
        (soma.varp, adata.varp, var_names),
    ):
        for key, value in slot.items():
            matrix = LabeledMatrix(value, names, names)
            if not matrix.nnz:
                logger.warning(f"Skipping empty pairwise matrix '{key}'")
                continue
            group.add_matrix(matrix, key)
        if len(group):
            soma._record_member(group)

    scalars = {}
    for key, value in adata.uns.items():
        if _is_scalar(value):
            scalars[str(key)] = value.item() if isinstance(value, np.generic) else value
        else:
            logger.warning(f"Skipping uns entry '{key}': only scalars are stored")
    if scalars:
        soma.uns.create()
        soma.uns.add_metadata(scalars)
        soma._record_member(soma.uns)


def read_anndata(soma: "SOMA") -> sc.AnnData:
    """
    Read a SOMA (honouring any active slice) into an ``AnnData`` object.

    Every matrix is conformed to the observation and feature ids read from
    ``obs`` and ``var``, so cells or features without populated entries
    still appear as empty rows or columns.
    """
    obs = soma.obs.to_dataframe()
    var = soma.var.to_dataframe()
    obs_names = list(obs.index)
    var_names = list(var.index)

    layers = {
        name: matrix.reindex(obs_names, var_names).matrix
        for name, matrix in soma.to_matrices().items()
    }
    X = layers.pop(X_LAYER, None)
    adata = sc.AnnData(X=X, obs=obs, var=var, layers=layers or None)

    for group, slot, names in (
        (soma.obsm, adata.obsm, obs.index),
        (soma.varm, adata.varm, var.index),
    ):
        for key in group.member_names():
            matrix = group.get_matrix(key)
            frame = matrix.to_matrix().reindex(names)
            if matrix.get_metadata(SOURCE_KEY) == "array":
                slot[key] = frame.to_numpy()
            else:
                slot[key] = frame

    for group, slot, names in (
        (soma.obsp, adata.obsp, obs_names),
        (soma.varp, adata.varp, var_names),
    ):
        for key, matrix in group.to_matrices().items():
            slot[key] = matrix.reindex(names, names).matrix

    if soma.uns.exists():
        adata.uns.update(soma.uns.get_metadata())

    logger.info(f"Read AnnData ({adata.n_obs:,} obs × {adata.n_vars:,} vars)")
    return adata
