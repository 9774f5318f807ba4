"""
Queryable arrays backed by Lance datasets.

A :class:`LanceArray` wraps one Lance dataset. Its dimensions are declared
when it is first written and recorded in the manifest; every other column is
an attribute. Reads can be narrowed with :meth:`LanceArray.set_query`, which
restricts each named dimension to an enumerated set of labels.
"""

import shutil
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import lance
import pandas as pd
import polars as pl
import pyarrow as pa

from .errors import ArgumentError, SchemaError, StorageError, UnknownDimensionError
from .object import StorageObject
from .options import StorageOptions

DATA_DIR = "data.lance"


@dataclass
class ArrayHandle:
    """
    Mutable state of one in-process array handle.

    ``mode`` and ``dataset`` are only set while the array is open (inside
    :meth:`LanceArray._open`). ``query`` is the active range restriction;
    it lives as long as the handle and is never persisted.
    """

    uri: str
    mode: str | None = None
    dataset: Any = None
    query: dict[str, set[Any]] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.mode is not None


def _as_arrow(data: Any) -> pa.Table:
    if isinstance(data, pa.Table):
        table = data
    elif isinstance(data, pl.DataFrame):
        table = data.to_arrow()
    elif isinstance(data, pd.DataFrame):
        table = pa.Table.from_pandas(data, preserve_index=False)
    else:
        raise ArgumentError(
            "Expected a pyarrow Table or a polars/pandas DataFrame, "
            f"got {type(data).__name__}"
        )
    return _narrow_strings(table)


def _narrow_strings(table: pa.Table) -> pa.Table:
    """Store polars' ``large_string`` columns as ``string``."""
    # Lance only pushes membership filters down on regular string fields
    fields = [
        pa.field(f.name, pa.string(), f.nullable, f.metadata)
        if pa.types.is_large_string(f.type)
        else f
        for f in table.schema
    ]
    schema = pa.schema(fields, metadata=table.schema.metadata)
    if schema.equals(table.schema):
        return table
    return table.cast(schema)


def _as_label_list(values: Any) -> list[Any]:
    if isinstance(values, str | bytes) or not isinstance(values, Iterable):
        raise ArgumentError(
            "'dims' must map dimension names to sequences of labels, "
            f"got {type(values).__name__}"
        )
    if hasattr(values, "tolist"):
        return list(values.tolist())
    return list(values)


class LanceArray(StorageObject):
    """
    A single physical array: dimensions, attributes, metadata and a slice.

    The array does not exist on disk until :meth:`write` is first called.
    The first payload fixes the schema; later payloads must have exactly the
    same columns and are upserted on the dimension columns, so each
    coordinate appears at most once.

    Examples:
        >>> arr = LanceArray("data/expr")
        >>> arr.write(table, dims=["obs_id", "var_id"])
        >>> arr.set_query({"obs_id": ["cell_1", "cell_2"]})
        >>> arr.read().height
        12
    """

    object_type = "array"

    def __init__(
        self,
        uri: str | Path,
        verbose: bool | None = None,
        options: StorageOptions | None = None,
    ):
        super().__init__(uri, verbose, options)
        self._handle = ArrayHandle(uri=self.uri)

    @property
    def data_uri(self) -> str:
        return str(self.path / DATA_DIR)

    def __repr__(self) -> str:
        if not self.exists():
            return super().__repr__()
        return (
            f"{self.class_name}(uri='{self.uri}', "
            f"dimensions={self.dimnames()}, attributes={self.attrnames()})"
        )

    @contextmanager
    def _open(self, mode: str = "READ") -> Iterator[ArrayHandle]:
        """Open the Lance dataset for the duration of a block, then release it."""
        if mode not in ("READ", "WRITE"):
            raise ArgumentError(f"mode must be 'READ' or 'WRITE', got '{mode}'")
        if not self.exists():
            raise StorageError(f"No {self.class_name} found at '{self.uri}'")
        if self._handle.is_open:
            raise StorageError(
                f"{self.class_name} at '{self.uri}' is already open "
                f"({self._handle.mode})"
            )
        self._handle.mode = mode
        try:
            self._handle.dataset = lance.dataset(self.data_uri)
            yield self._handle
        finally:
            self._handle.dataset = None
            self._handle.mode = None

    # Schema introspection

    def schema(self) -> pa.Schema:
        """Arrow schema of the underlying Lance dataset."""
        with self._open("READ") as handle:
            return handle.dataset.schema

    def dimnames(self) -> list[str]:
        """Dimension names, in declaration order."""
        with self._config_session("READ") as config:
            return list(config["dimensions"])

    def attrnames(self) -> list[str]:
        """Attribute (non-dimension) column names."""
        dims = set(self.dimnames())
        return [f.name for f in self.schema() if f.name not in dims]

    def capacity(self) -> int:
        """Storage capacity hint the array was created with."""
        with self._config_session("READ") as config:
            return int(config["capacity"])

    def fragment_count(self) -> int:
        """Number of Lance fragments in the array."""
        with self._open("READ") as handle:
            return len(handle.dataset.get_fragments())

    def count(self) -> int:
        """Total number of records, ignoring any active restriction."""
        with self._open("READ") as handle:
            return handle.dataset.count_rows()

    # Range restriction

    @property
    def query(self) -> dict[str, set[Any]]:
        """Copy of the active restriction (dimension name to permitted labels)."""
        return {dim: set(values) for dim, values in self._handle.query.items()}

    def set_query(self, dims: Mapping[str, Iterable[Any]]) -> None:
        """
        Restrict subsequent reads to the given labels on each named dimension.

        Each named dimension's restriction is replaced; dimensions not named
        keep whatever restriction they had. Membership is exact-match against
        the provided labels.

        Args:
            dims: Mapping of dimension name to the labels to keep.

        Raises:
            ArgumentError: If ``dims`` is empty or a value is not a sequence.
            UnknownDimensionError: If any key is not a dimension of the array.
                The active restriction is left unchanged.
        """
        if not isinstance(dims, Mapping) or not dims:
            raise ArgumentError("Must specify at least one dimension to slice")
        selections = {dim: _as_label_list(values) for dim, values in dims.items()}

        dimnames = self.dimnames()
        unknown = [dim for dim in selections if dim not in dimnames]
        if unknown:
            raise UnknownDimensionError(unknown, dimnames)

        for dim, labels in selections.items():
            self._handle.query[dim] = set(labels)

    def reset_query(self, dims: Iterable[str] | None = None) -> None:
        """Clear the restriction on the named dimensions, or on all of them."""
        if dims is None:
            self._handle.query.clear()
            return
        dims = [dims] if isinstance(dims, str) else list(dims)
        dimnames = self.dimnames()
        unknown = [dim for dim in dims if dim not in dimnames]
        if unknown:
            raise UnknownDimensionError(unknown, dimnames)
        for dim in dims:
            self._handle.query.pop(dim, None)

    # Reading

    def read(
        self, attrs: list[str] | None = None, apply_query: bool = True
    ) -> pl.DataFrame:
        """
        Read the dimensions and attributes allowed by the active restriction.

        Args:
            attrs: Attribute names to read. Defaults to all attributes; pass an
                empty list to read only the dimension columns.
            apply_query: Set to False to ignore the active restriction.

        Returns:
            Polars DataFrame with the dimension columns followed by ``attrs``.

        Raises:
            SchemaError: If an attribute name is unknown.
            StorageError: If the array does not exist.
        """
        dims = self.dimnames()
        available = self.attrnames()
        if attrs is None:
            attrs = available
        else:
            unknown = [a for a in attrs if a not in available]
            if unknown:
                raise SchemaError(f"Unknown attribute(s) {unknown} in '{self.uri}'")

        with self._open("READ") as handle:
            lazy = pl.scan_pyarrow_dataset(handle.dataset)
            schema = lazy.collect_schema()
            query = handle.query if apply_query else {}
            for dim, labels in query.items():
                if not labels:
                    lazy = lazy.clear()
                    continue
                keep = pl.Series(dim, list(labels), dtype=schema[dim]).to_list()
                lazy = lazy.filter(pl.col(dim).is_in(keep))
            return lazy.select(dims + list(attrs)).collect()

    # Writing

    def write(
        self,
        data: pa.Table | pl.DataFrame | pd.DataFrame,
        dims: list[str] | None = None,
        capacity: int | None = None,
    ) -> None:
        """
        Ingest a table, creating the array on first use.

        Args:
            data: Table holding the dimension and attribute columns.
            dims: Dimension column names. Required when the array does not
                exist yet; must match the declared dimensions otherwise.
            capacity: Capacity hint (rows per Lance row group) used at creation.
                Defaults to ``options.default_capacity``.

        Raises:
            ArgumentError: If ``dims`` is missing or malformed on creation.
            SchemaError: If the payload does not match the array's schema or
                repeats a coordinate.
        """
        table = _as_arrow(data)

        if not self.exists():
            if not dims:
                raise ArgumentError(
                    f"'dims' is required to create {self.class_name} at '{self.uri}'"
                )
            self._create(table, list(dims), capacity or self.options.default_capacity)
            return

        declared = self.dimnames()
        if dims is not None and list(dims) != declared:
            raise SchemaError(
                f"Dimensions {list(dims)} do not match declared dimensions {declared}"
            )
        self._message(f"Updating existing {self.class_name} at '{self.uri}'")
        with self._open("WRITE") as handle:
            existing = handle.dataset.schema
            if set(table.column_names) != set(existing.names):
                raise SchemaError(
                    f"Columns {sorted(table.column_names)} do not match the schema "
                    f"of '{self.uri}': {sorted(existing.names)}"
                )
            try:
                table = table.select(existing.names).cast(existing)
            except (
                pa.ArrowInvalid,
                pa.ArrowTypeError,
                pa.ArrowNotImplementedError,
            ) as err:
                raise SchemaError(
                    f"Cannot cast payload to the schema of '{self.uri}': {err}"
                ) from err
            _check_unique_coordinates(table, declared)
            (
                handle.dataset.merge_insert(declared)
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(table)
            )

    def _create(self, table: pa.Table, dims: list[str], capacity: int):
        missing = [dim for dim in dims if dim not in table.column_names]
        if missing:
            raise ArgumentError(
                f"Dimension column(s) {missing} not found in the payload"
            )
        if len(set(dims)) != len(dims):
            raise ArgumentError(f"Dimension names must be unique, got {dims}")
        _check_unique_coordinates(table, dims)

        # Dimensions first, then attributes in payload order
        attrs = [name for name in table.column_names if name not in dims]
        table = table.select(dims + attrs)

        try:
            lance.write_dataset(
                table,
                self.data_uri,
                mode="create",
                max_rows_per_group=capacity,
                max_rows_per_file=self.options.max_rows_per_file,
            )
            self._create_config(dimensions=dims, capacity=capacity)
        except Exception:
            # No manifest means no array: drop the half-written dataset
            shutil.rmtree(self.data_uri, ignore_errors=True)
            raise
        self._message(
            f"Created {self.class_name} at '{self.uri}' with {table.num_rows:,} records"
        )


def _check_unique_coordinates(table: pa.Table, dims: list[str]):
    coords = pl.from_arrow(table.select(dims))
    if coords.is_duplicated().any():
        raise SchemaError(f"Payload repeats coordinates on dimensions {dims}")
