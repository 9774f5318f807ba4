"""
Tests for LanceArray: creation, schema checks, metadata and range restriction.
"""

import warnings
from pathlib import Path

import polars as pl
import pyarrow as pa
import pytest

from lancesc.core.array import LanceArray
from lancesc.core.errors import (
    ArgumentError,
    SchemaError,
    StorageError,
    UnknownDimensionError,
)
from lancesc.core.group import Group


@pytest.fixture
def expression_table():
    return pl.DataFrame(
        {
            "obs_id": ["a", "a", "b", "c"],
            "var_id": ["x", "y", "y", "x"],
            "value": [1.0, 2.0, 3.0, 4.0],
        }
    )


@pytest.fixture
def expression_array(temp_dir, quiet_options, expression_table):
    arr = LanceArray(Path(temp_dir) / "expr", options=quiet_options)
    arr.write(expression_table, dims=["obs_id", "var_id"], capacity=2)
    return arr


def _cells(df: pl.DataFrame) -> set[tuple[str, str]]:
    return set(zip(df["obs_id"].to_list(), df["var_id"].to_list(), strict=True))


class TestLanceArrayCreation:
    """Test creating arrays and inspecting their schema"""

    def test_missing_until_written(self, temp_dir, quiet_options, expression_table):
        arr = LanceArray(Path(temp_dir) / "expr", options=quiet_options)
        assert not arr.exists()
        assert "missing" in repr(arr)

        arr.write(expression_table, dims=["obs_id", "var_id"])

        assert arr.exists()
        assert arr.capacity() == quiet_options.default_capacity

    def test_schema_introspection(self, expression_array):
        assert expression_array.dimnames() == ["obs_id", "var_id"]
        assert expression_array.attrnames() == ["value"]
        assert expression_array.capacity() == 2
        assert expression_array.count() == 4
        assert expression_array.fragment_count() >= 1
        assert "dimensions=['obs_id', 'var_id']" in repr(expression_array)

    def test_dimensions_are_stored_first(self, temp_dir, quiet_options):
        arr = LanceArray(Path(temp_dir) / "arr", options=quiet_options)
        arr.write(pl.DataFrame({"v": [1], "d": ["a"]}), dims=["d"])
        assert arr.schema().names == ["d", "v"]

    def test_polars_strings_are_sliceable(self, temp_dir, quiet_options):
        """Test that string columns from polars are stored as plain strings"""
        arr = LanceArray(Path(temp_dir) / "arr", options=quiet_options)
        arr.write(
            pl.DataFrame({"obs_id": ["a", "b", "c"], "v": [1, 2, 3]}), dims=["obs_id"]
        )

        assert arr.schema().field("obs_id").type == pa.string()

        arr.set_query({"obs_id": {"a", "b"}})
        assert sorted(arr.read()["obs_id"].to_list()) == ["a", "b"]

    def test_failed_create_leaves_nothing(
        self, temp_dir, quiet_options, expression_table, monkeypatch
    ):
        """Test that a failed manifest write removes the new dataset"""
        arr = LanceArray(Path(temp_dir) / "expr", options=quiet_options)

        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(arr, "_create_config", fail)
        with pytest.raises(OSError):
            arr.write(expression_table, dims=["obs_id", "var_id"])
        assert not arr.exists()
        assert not Path(arr.data_uri).exists()

        monkeypatch.undo()
        arr.write(expression_table, dims=["obs_id", "var_id"])
        assert arr.count() == 4

    def test_dims_required_on_create(self, temp_dir, quiet_options, expression_table):
        arr = LanceArray(Path(temp_dir) / "expr", options=quiet_options)
        with pytest.raises(ArgumentError):
            arr.write(expression_table)
        with pytest.raises(ArgumentError):
            arr.write(expression_table, dims=["cell"])
        assert not arr.exists()

    def test_duplicate_coordinates_rejected(self, temp_dir, quiet_options):
        arr = LanceArray(Path(temp_dir) / "expr", options=quiet_options)
        table = pl.DataFrame({"obs_id": ["a", "a"], "value": [1.0, 2.0]})
        with pytest.raises(SchemaError):
            arr.write(table, dims=["obs_id"])
        assert not arr.exists()

    def test_unsupported_payload(self, temp_dir, quiet_options):
        arr = LanceArray(Path(temp_dir) / "expr", options=quiet_options)
        with pytest.raises(ArgumentError):
            arr.write({"obs_id": ["a"]}, dims=["obs_id"])

    def test_type_mismatch_at_uri(self, temp_dir, quiet_options):
        group = Group(Path(temp_dir) / "thing", options=quiet_options)
        group.create()
        with pytest.raises(StorageError):
            LanceArray(Path(temp_dir) / "thing", options=quiet_options)

    def test_read_missing_array(self, temp_dir, quiet_options):
        arr = LanceArray(Path(temp_dir) / "nothing", options=quiet_options)
        with pytest.raises(StorageError):
            arr.read()


class TestLanceArrayWrites:
    """Test updates to existing arrays"""

    def test_upsert(self, expression_array):
        """Test that existing coordinates are updated and new ones inserted"""
        update = pl.DataFrame(
            {"obs_id": ["a", "d"], "var_id": ["x", "y"], "value": [10.0, 5.0]}
        )
        expression_array.write(update)

        df = expression_array.read()
        assert df.height == 5
        assert ("d", "y") in _cells(df)
        updated = df.filter((pl.col("obs_id") == "a") & (pl.col("var_id") == "x"))
        assert updated["value"].to_list() == [10.0]

    def test_schema_is_immutable(self, expression_array):
        with pytest.raises(SchemaError):
            expression_array.write(
                pl.DataFrame({"obs_id": ["a"], "var_id": ["x"], "other": [1.0]})
            )
        with pytest.raises(SchemaError):
            expression_array.write(pl.DataFrame({"obs_id": ["a"], "value": [1.0]}))
        with pytest.raises(SchemaError):
            expression_array.write(
                pl.DataFrame({"obs_id": ["a"], "var_id": ["x"], "value": ["high"]})
            )
        assert expression_array.count() == 4

    def test_declared_dims_must_match(self, expression_table, expression_array):
        with pytest.raises(SchemaError):
            expression_array.write(expression_table, dims=["var_id", "obs_id"])

    def test_repeated_coordinates_in_update(self, expression_array):
        update = pl.DataFrame(
            {"obs_id": ["z", "z"], "var_id": ["x", "x"], "value": [1.0, 2.0]}
        )
        with pytest.raises(SchemaError):
            expression_array.write(update)


class TestLanceArrayQuery:
    """Test range restriction on array reads"""

    def test_unrestricted_read(self, expression_array):
        df = expression_array.read()
        assert df.columns == ["obs_id", "var_id", "value"]
        assert df.height == 4

    def test_read_dimensions_only(self, expression_array):
        assert expression_array.read(attrs=[]).columns == ["obs_id", "var_id"]

    def test_unknown_attribute(self, expression_array):
        with pytest.raises(SchemaError):
            expression_array.read(attrs=["missing"])

    def test_set_query_narrows_reads(self, expression_array):
        expression_array.set_query({"obs_id": ["a"]})

        assert _cells(expression_array.read()) == {("a", "x"), ("a", "y")}

    def test_set_query_accumulates_dimensions(self, expression_array):
        """Test that restrictions on different dimensions combine"""
        expression_array.set_query({"obs_id": ["a", "c"]})
        expression_array.set_query({"var_id": ["x"]})

        assert expression_array.query == {"obs_id": {"a", "c"}, "var_id": {"x"}}
        assert _cells(expression_array.read()) == {("a", "x"), ("c", "x")}

    def test_set_query_replaces_same_dimension(self, expression_array):
        expression_array.set_query({"obs_id": ["a"]})
        expression_array.set_query({"obs_id": ["b"]})

        assert _cells(expression_array.read()) == {("b", "y")}

    def test_unknown_labels_yield_empty(self, expression_array):
        expression_array.set_query({"obs_id": ["nope"]})
        assert expression_array.read().height == 0

    def test_empty_label_set(self, expression_array):
        expression_array.set_query({"obs_id": []})

        df = expression_array.read()
        assert df.height == 0
        assert df.columns == ["obs_id", "var_id", "value"]

    def test_restricted_read_uses_current_polars_api(self, expression_array):
        expression_array.set_query({"obs_id": ["a"], "var_id": ["x", "y"]})

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            expression_array.read()

        deprecated = [w for w in caught if issubclass(w.category, DeprecationWarning)]
        assert not [w for w in deprecated if "is_in" in str(w.message)]

    def test_unknown_dimension_keeps_query(self, expression_array):
        """Test that an invalid request leaves the active restriction intact"""
        expression_array.set_query({"obs_id": ["a"]})

        with pytest.raises(UnknownDimensionError) as excinfo:
            expression_array.set_query({"obs_id": ["b"], "cell": ["c1"]})

        assert excinfo.value.dimensions == ["cell"]
        assert expression_array.query == {"obs_id": {"a"}}

    def test_invalid_query_arguments(self, expression_array):
        with pytest.raises(ArgumentError):
            expression_array.set_query({})
        with pytest.raises(ArgumentError):
            expression_array.set_query({"obs_id": "a"})

    def test_reset_query(self, expression_array):
        expression_array.set_query({"obs_id": ["a"], "var_id": ["x"]})

        expression_array.reset_query("var_id")
        assert expression_array.query == {"obs_id": {"a"}}

        expression_array.reset_query()
        assert expression_array.query == {}
        assert expression_array.read().height == 4

    def test_read_ignoring_query(self, expression_array):
        expression_array.set_query({"obs_id": ["a"]})
        assert expression_array.read(apply_query=False).height == 4

    def test_query_is_not_persisted(self, expression_array, quiet_options):
        expression_array.set_query({"obs_id": ["a"]})
        reopened = LanceArray(expression_array.uri, options=quiet_options)
        assert reopened.query == {}
        assert reopened.read().height == 4

    def test_open_is_not_reentrant(self, expression_array):
        with expression_array._open("READ"):
            with pytest.raises(StorageError):
                expression_array.read()
        assert expression_array.read().height == 4


class TestMetadata:
    """Test metadata stored in the manifest"""

    def test_add_and_get(self, expression_array):
        expression_array.add_metadata({"assay": "rna", "n_pcs": 50})

        assert expression_array.get_metadata("assay") == "rna"
        assert expression_array.get_metadata("missing") is None
        assert expression_array.get_metadata() == {"assay": "rna", "n_pcs": 50}

    def test_prefix(self, expression_array):
        expression_array.add_metadata({"a": 1, "b": 2}, prefix="qc_")
        expression_array.add_metadata({"c": 3})

        assert expression_array.get_metadata(prefix="qc_") == {"qc_a": 1, "qc_b": 2}

    def test_persisted(self, expression_array, quiet_options):
        expression_array.add_metadata({"assay": "rna"})
        reopened = LanceArray(expression_array.uri, options=quiet_options)
        assert reopened.get_metadata("assay") == "rna"

    def test_invalid_metadata(self, expression_array):
        with pytest.raises(ArgumentError):
            expression_array.add_metadata({1: "x"})
        with pytest.raises(ArgumentError):
            expression_array.add_metadata({"bad": object()})
        with pytest.raises(ArgumentError):
            expression_array.add_metadata(["not", "a", "mapping"])
