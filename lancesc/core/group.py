"""
Groups: named collections of arrays and nested groups.

Membership is recorded in the group's manifest as a tagged variant: each
member name maps to its object type (``"array"`` or ``"group"``) and the
class used to reopen it. Members live in sub-directories named after the
member, so containment can never form a cycle.
"""

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .array import LanceArray, _as_label_list
from .errors import ArgumentError, StorageError
from .object import StorageObject, lookup_class
from .options import StorageOptions
from .protocols import Sliceable


class Group(StorageObject):
    """
    A container of arrays and groups.

    Member objects are cached on the group handle, so a range restriction
    applied through :meth:`set_query` stays attached to the objects returned
    by :meth:`get_member`.

    Examples:
        >>> group = Group("data/assays")
        >>> group.add_member(arr)           # arr lives at data/assays/counts
        >>> group.member_types()
        {'counts': 'array'}
        >>> group.set_query({"obs_id": ["cell_1"]})
    """

    object_type = "group"

    def __init__(
        self,
        uri: str | Path,
        verbose: bool | None = None,
        options: StorageOptions | None = None,
    ):
        super().__init__(uri, verbose, options)
        self._members: dict[str, StorageObject] = {}

    def __repr__(self) -> str:
        if not self.exists():
            return super().__repr__()
        return f"{self.class_name}(uri='{self.uri}', members={self.member_names()})"

    def create(self) -> None:
        """Create the group on disk if it does not exist yet."""
        if self.exists():
            return
        self._create_config(members={}, **self._config_fields())
        self._message(f"Created {self.class_name} at '{self.uri}'")

    def _config_fields(self) -> dict[str, Any]:
        """Extra manifest fields written when the group is created."""
        return {}

    def _member_path(self, name: str) -> Path:
        return self.path / name

    def _register(self, member: StorageObject) -> StorageObject:
        """Cache a member handle without recording membership."""
        self._members[member.name] = member
        return member

    # Membership

    def member_types(self) -> dict[str, str]:
        """Member names mapped to their object type (``array`` or ``group``)."""
        if not self.exists():
            return {}
        with self._config_session("READ") as config:
            return {name: info["type"] for name, info in config["members"].items()}

    def member_names(self) -> list[str]:
        return list(self.member_types())

    def list_member_uris(self) -> dict[str, str]:
        return {name: str(self._member_path(name)) for name in self.member_types()}

    def __contains__(self, name: str) -> bool:
        return name in self.member_types()

    def __len__(self) -> int:
        return len(self.member_types())

    def add_member(self, member: StorageObject, name: str | None = None) -> None:
        """
        Record an existing object as a member of the group.

        The member must live in the sub-directory of the group named ``name``
        (defaults to the member's basename). The group is created if needed.

        Raises:
            ArgumentError: If the member does not live directly under the group.
            StorageError: If the member has not been created yet.
        """
        name = name or member.name
        if member.path.parent.resolve() != self.path.resolve() or member.name != name:
            raise ArgumentError(
                f"Member '{name}' must be located at '{self._member_path(name)}', "
                f"got '{member.uri}'"
            )
        if not member.exists():
            raise StorageError(f"Cannot add missing {member.class_name} '{member.uri}'")

        self.create()
        with self._config_session("WRITE") as config:
            config["members"][name] = {
                "type": member.object_type,
                "class": member.class_name,
            }
        self._members[name] = member

    def get_member(self, name: str) -> StorageObject:
        """
        Resolve a member by name into its typed object.

        Raises:
            StorageError: If the group has no member called ``name``.
        """
        if name in self._members and name in self:
            return self._members[name]
        with self._config_session("READ") as config:
            info = config["members"].get(name)
        if info is None:
            raise StorageError(
                f"{self.class_name} at '{self.uri}' has no member '{name}'"
            )
        cls = lookup_class(info["class"])
        member = cls(
            self._member_path(name), verbose=self.verbose, options=self.options
        )
        self._members[name] = member
        return member

    def members(self) -> dict[str, StorageObject]:
        """All recorded members, resolved."""
        return {name: self.get_member(name) for name in self.member_names()}

    # Range restriction

    def set_query(self, dims: Mapping[str, Iterable[Any]]) -> None:
        """
        Apply a slice to every member that has the named dimensions.

        Each member array receives the part of ``dims`` whose keys are among
        its own dimensions; arrays with none of them are left untouched.
        Nested groups receive ``dims`` unchanged and apply it the same way.

        Raises:
            ArgumentError: If ``dims`` is empty or a value is not a sequence.
        """
        if not isinstance(dims, Mapping) or not dims:
            raise ArgumentError("Must specify at least one dimension to slice")
        self._propagate_query(
            {dim: _as_label_list(values) for dim, values in dims.items()}
        )

    def _propagate_query(self, dims: dict[str, list[Any]]):
        for member in self.members().values():
            if member.object_type == "group":
                member._propagate_query(dims)
            elif isinstance(member, Sliceable):
                member_dims = member.dimnames()
                applicable = {k: v for k, v in dims.items() if k in member_dims}
                if applicable:
                    member.set_query(applicable)

    def reset_query(self, dims: Iterable[str] | None = None) -> None:
        """Clear restrictions on every member (optionally only on ``dims``)."""
        if dims is not None:
            dims = [dims] if isinstance(dims, str) else list(dims)
        self._propagate_reset(dims)

    def _propagate_reset(self, dims: list[str] | None):
        for member in self.members().values():
            if member.object_type == "group":
                member._propagate_reset(dims)
            elif isinstance(member, Sliceable):
                if dims is None:
                    member.reset_query()
                else:
                    known = [d for d in dims if d in member.dimnames()]
                    if known:
                        member.reset_query(known)

    def get_query(self) -> dict[str, dict[str, set[Any]]]:
        """Active restrictions of every member array, keyed by relative path."""
        queries = {}
        for name, member in self.members().items():
            if member.object_type == "group":
                for sub, query in member.get_query().items():
                    queries[f"{name}/{sub}"] = query
            elif isinstance(member, LanceArray):
                queries[name] = member.query
        return queries
