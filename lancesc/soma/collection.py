"""A group of SOMAs, e.g. one per sample or per assay."""

from collections.abc import Iterable
from typing import Any

from lancesc.core.errors import ArgumentError, StorageError
from lancesc.core.group import Group

from .dataset import SOMA


class SOMACollection(Group):
    """
    A collection of SOMAs sharing one location.

    Examples:
        >>> collection = SOMACollection("data/atlas")
        >>> collection.add_anndata("pbmc3k", adata)
        >>> collection.soma_names()
        ['pbmc3k']
        >>> collection.set_query(var_ids=["CD3E", "MS4A1"])
        >>> adatas = collection.to_anndatas()
    """

    def add_soma(self, soma: SOMA, name: str | None = None) -> None:
        """
        Add an existing SOMA located inside the collection.

        Raises:
            ArgumentError: If ``soma`` is not a SOMA.
        """
        if not isinstance(soma, SOMA):
            raise ArgumentError(f"Expected a SOMA, got {type(soma).__name__}")
        self.add_member(soma, name)

    def get_soma(self, name: str) -> SOMA:
        """
        Return the member SOMA called ``name``.

        Raises:
            StorageError: If there is no such member or it is not a SOMA.
        """
        member = self.get_member(name)
        if not isinstance(member, SOMA):
            raise StorageError(f"Member '{name}' of '{self.uri}' is not a SOMA")
        return member

    def soma_names(self) -> list[str]:
        if not self.exists():
            return []
        with self._config_session("READ") as config:
            members = config["members"]
        return [name for name, info in members.items() if info["class"] == "SOMA"]

    def somas(self) -> dict[str, SOMA]:
        return {name: self.get_soma(name) for name in self.soma_names()}

    def add_anndata(self, name: str, adata) -> SOMA:
        """Write ``adata`` into a new member SOMA called ``name``."""
        soma = SOMA(self._member_path(name), verbose=self.verbose, options=self.options)
        soma.from_anndata(adata)
        self.add_soma(soma, name)
        return self.get_soma(name)

    def set_query(
        self,
        obs_ids: Iterable[Any] | None = None,
        var_ids: Iterable[Any] | None = None,
    ) -> None:
        """Slice every member SOMA (see :meth:`SOMA.set_query`)."""
        if obs_ids is None and var_ids is None:
            raise ArgumentError("Must specify at least one of 'obs_ids' or 'var_ids'")
        for soma in self.somas().values():
            soma.set_query(obs_ids=obs_ids, var_ids=var_ids)

    def reset_query(self) -> None:
        for soma in self.somas().values():
            soma.reset_query()

    def to_anndatas(self) -> dict:
        """Export every member SOMA as an ``AnnData`` object, keyed by name."""
        return {name: soma.to_anndata() for name, soma in self.somas().items()}
