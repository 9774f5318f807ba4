import tempfile

import numpy as np
import pandas as pd
import pytest
import scanpy as sc
from scipy.sparse import coo_matrix, csr_matrix

from lancesc.core.options import StorageOptions
from lancesc.data.matrix import LabeledMatrix


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    import shutil

    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def quiet_options():
    """Storage options that keep informational messages at DEBUG level."""
    return StorageOptions(verbose=False)


@pytest.fixture
def counts_matrix():
    """3 x 3 matrix with four populated cells."""
    #      c1   c2   c3
    # r1    1    .    2
    # r2    .    3    .
    # r3    .    .    4
    matrix = coo_matrix(
        ([1.0, 2.0, 3.0, 4.0], ([0, 0, 1, 2], [0, 2, 1, 2])), shape=(3, 3)
    )
    return LabeledMatrix(matrix, ["r1", "r2", "r3"], ["c1", "c2", "c3"])


@pytest.fixture
def logcounts_matrix(counts_matrix):
    """Same sparsity pattern as ``counts_matrix``, transformed values."""
    matrix = counts_matrix.matrix.copy()
    matrix.data = np.log1p(matrix.data)
    return LabeledMatrix(matrix, counts_matrix.row_names, counts_matrix.col_names)


@pytest.fixture
def tiny_adata():
    """Create a tiny AnnData object covering every SOMA slot."""
    n_cells, n_genes = 6, 4

    # Cell 5 and gene 3 have no populated cells in X
    X = csr_matrix(
        np.array(
            [
                [1, 0, 2, 0],
                [0, 3, 0, 0],
                [4, 0, 0, 0],
                [0, 0, 5, 0],
                [6, 7, 0, 0],
                [0, 0, 0, 0],
            ],
            dtype=np.float32,
        )
    )

    obs = pd.DataFrame(
        {
            "cell_type": pd.Categorical(["T", "B", "T", "NK", "B", "T"]),
            "n_genes": np.array([2, 1, 1, 1, 2, 0], dtype=np.int64),
        },
        index=[f"cell_{i}" for i in range(n_cells)],
    )
    var = pd.DataFrame(
        {
            "gene_symbol": ["CD3E", "MS4A1", "NKG7", "GAPDH"],
            "highly_variable": [True, False, True, False],
        },
        index=[f"gene_{j}" for j in range(n_genes)],
    )

    adata = sc.AnnData(X=X, obs=obs, var=var)
    adata.layers["counts"] = X.copy()
    log1p = X.copy()
    log1p.data = np.log1p(log1p.data)
    adata.layers["log1p"] = log1p

    np.random.seed(42)
    adata.obsm["X_pca"] = np.random.rand(n_cells, 2)
    adata.varm["PCs"] = np.random.rand(n_genes, 2)
    adata.obsp["connectivities"] = csr_matrix(
        ([1.0, 1.0, 0.5], ([0, 1, 4], [1, 0, 2])), shape=(n_cells, n_cells)
    )
    adata.uns["title"] = "tiny"
    adata.uns["n_pcs"] = 2
    adata.uns["neighbors"] = {"params": {"n_neighbors": 2}}
    return adata
