"""Capability interfaces implemented by arrays and groups.

Concrete storage objects compose these rather than relying on a deep class
hierarchy. They are runtime checkable so group propagation can dispatch on
what a member can do instead of what it is.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

import polars as pl


@runtime_checkable
class Sliceable(Protocol):  # pragma: no cover
    """Objects that accept a per-dimension range restriction."""

    def dimnames(self) -> list[str]:
        ...

    def set_query(self, dims: Mapping[str, Iterable[Any]]) -> None:
        ...

    def reset_query(self, dims: Iterable[str] | None = None) -> None:
        ...


@runtime_checkable
class MetadataBearing(Protocol):  # pragma: no cover
    """Objects carrying a key-value metadata store."""

    def get_metadata(self, key: str | None = None, prefix: str | None = None) -> Any:
        ...

    def add_metadata(self, metadata: Mapping[str, Any], prefix: str = "") -> None:
        ...


@runtime_checkable
class Readable(Protocol):  # pragma: no cover
    """Objects whose (restricted) contents can be pulled into memory."""

    def read(self, attrs: list[str] | None = None) -> pl.DataFrame:
        ...


@runtime_checkable
class Writable(Protocol):  # pragma: no cover
    """Objects that ingest tabular payloads."""

    def exists(self) -> bool:
        ...

    def write(self, data: Any) -> None:
        ...
