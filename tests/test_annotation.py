from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from lancesc.core.errors import ArgumentError, SchemaError
from lancesc.core.options import StorageOptions
from lancesc.soma.annotation import AnnotationDataframe, AnnotationMatrix


@pytest.fixture
def cell_metadata():
    return pd.DataFrame(
        {
            "cell_type": pd.Categorical(["T", "B", "T"]),
            "batch": ["b1", "b2", "b1"],
            "n_genes": np.array([10, 20, 30], dtype=np.int64),
            "score": [0.1, 0.2, 0.3],
        },
        index=["c1", "c2", "c3"],
    )


class TestAnnotationDataframe:
    """Test storing annotation tables"""

    def test_round_trip(self, temp_dir, quiet_options, cell_metadata):
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=quiet_options)
        obs.from_dataframe(cell_metadata, index_col="obs_id")

        out = obs.to_dataframe().loc[cell_metadata.index]

        assert obs.dimnames() == ["obs_id"]
        assert list(out.columns) == ["cell_type", "batch", "n_genes", "score"]
        assert list(out["batch"]) == ["b1", "b2", "b1"]
        assert list(out["n_genes"]) == [10, 20, 30]
        np.testing.assert_allclose(out["score"].to_numpy(), [0.1, 0.2, 0.3])

    def test_categorical_restored(self, temp_dir, quiet_options, cell_metadata):
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=quiet_options)
        obs.from_dataframe(cell_metadata, index_col="obs_id")

        out = obs.to_dataframe(attrs=["cell_type"])

        assert list(out.columns) == ["cell_type"]
        assert isinstance(out["cell_type"].dtype, pd.CategoricalDtype)
        assert list(out["cell_type"].cat.categories) == ["B", "T"]
        assert out.loc["c2", "cell_type"] == "B"

    def test_ids_honour_query(self, temp_dir, quiet_options, cell_metadata):
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=quiet_options)
        obs.from_dataframe(cell_metadata, index_col="obs_id")

        assert sorted(obs.ids()) == ["c1", "c2", "c3"]
        obs.set_query({"obs_id": ["c2", "c9"]})
        assert obs.ids() == ["c2"]
        assert list(obs.to_dataframe().index) == ["c2"]

    def test_capacity_by_role(self, temp_dir, quiet_options, cell_metadata):
        root = Path(temp_dir)
        for name, expected in (("obs", 256), ("var", 2048), ("other", 10000)):
            arr = AnnotationDataframe(root / name, options=quiet_options)
            arr.from_dataframe(cell_metadata, index_col="id")
            assert arr.capacity() == expected

    def test_capacity_from_options(self, temp_dir, cell_metadata):
        options = StorageOptions(capacities={"obs": 64}, verbose=False)
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=options)
        obs.from_dataframe(cell_metadata, index_col="obs_id")
        assert obs.capacity() == 64

    def test_update_existing(self, temp_dir, quiet_options, cell_metadata):
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=quiet_options)
        obs.from_dataframe(cell_metadata, index_col="obs_id")

        update = cell_metadata.iloc[[0]].copy()
        update["score"] = 0.9
        obs.from_dataframe(update, index_col="obs_id")

        out = obs.to_dataframe()
        assert len(out) == 3
        assert out.loc["c1", "score"] == 0.9

    def test_update_with_new_columns(self, temp_dir, quiet_options, cell_metadata):
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=quiet_options)
        obs.from_dataframe(cell_metadata, index_col="obs_id")

        with pytest.raises(SchemaError):
            obs.from_dataframe(cell_metadata.assign(extra=1), index_col="obs_id")

    def test_requires_string_row_names(self, temp_dir, quiet_options):
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=quiet_options)
        with pytest.raises(ArgumentError):
            obs.from_dataframe(pd.DataFrame({"a": [1, 2]}), index_col="obs_id")

    def test_index_col_collision(self, temp_dir, quiet_options, cell_metadata):
        obs = AnnotationDataframe(Path(temp_dir) / "obs", options=quiet_options)
        with pytest.raises(ArgumentError):
            obs.from_dataframe(cell_metadata.assign(obs_id=1), index_col="obs_id")

    def test_no_attributes(self, temp_dir, quiet_options):
        var = AnnotationDataframe(Path(temp_dir) / "var", options=quiet_options)
        var.from_dataframe(pd.DataFrame(index=["g1", "g2"]), index_col="var_id")

        out = var.to_dataframe()
        assert sorted(out.index) == ["g1", "g2"]
        assert out.shape[1] == 0


class TestAnnotationMatrix:
    """Test storing dense annotation matrices"""

    def test_dataframe_round_trip(self, temp_dir, quiet_options):
        frame = pd.DataFrame(
            [[1.0, 2.0], [3.0, 4.0]], index=["c1", "c2"], columns=["PC1", "PC2"]
        )
        arr = AnnotationMatrix(Path(temp_dir) / "X_pca", options=quiet_options)
        arr.from_matrix(frame, index_col="obs_id")

        out = arr.to_matrix().loc[frame.index]

        assert arr.attrnames() == ["PC1", "PC2"]
        np.testing.assert_allclose(out.to_numpy(), frame.to_numpy())

    def test_array_with_names(self, temp_dir, quiet_options):
        values = np.arange(6, dtype=np.float64).reshape(3, 2)
        arr = AnnotationMatrix(Path(temp_dir) / "X_umap", options=quiet_options)
        arr.from_matrix(values, "obs_id", row_names=["a", "b", "c"], col_names=[0, 1])

        out = arr.to_matrix(attrs=["1"]).loc[["a", "b", "c"]]

        assert list(out.columns) == ["1"]
        np.testing.assert_allclose(out["1"].to_numpy(), values[:, 1])

    def test_labeled_matrix_input(self, temp_dir, quiet_options, counts_matrix):
        arr = AnnotationMatrix(Path(temp_dir) / "dense", options=quiet_options)
        arr.from_matrix(counts_matrix, index_col="obs_id")

        out = arr.to_matrix()
        assert out.loc["r3", "c3"] == 4.0
        assert out.loc["r2", "c1"] == 0.0

    def test_requires_dim_names(self, temp_dir, quiet_options):
        arr = AnnotationMatrix(Path(temp_dir) / "X_pca", options=quiet_options)
        with pytest.raises(ArgumentError, match="dim names"):
            arr.from_matrix(np.eye(2), index_col="obs_id")
        with pytest.raises(ArgumentError, match="dim names"):
            arr.from_matrix(pd.DataFrame(np.eye(2)), index_col="obs_id")
        with pytest.raises(ArgumentError):
            arr.from_matrix([[1, 2]], index_col="obs_id")
        assert not arr.exists()
