"""Runtime options for lancesc storage objects.

Options are a frozen dataclass handed to every storage object. They can be
built from environment variables with :meth:`StorageOptions.from_env`.
"""

import os
from dataclasses import dataclass, field

from .errors import ArgumentError

DEFAULT_CAPACITIES = {"obs": 256, "var": 2048}


@dataclass(frozen=True)
class StorageOptions:
    """
    Options shared by arrays and groups.

    Attributes:
        capacities: Storage capacity hint (rows per Lance row group) keyed by the
            basename of an annotation array's URI.
        default_capacity: Capacity hint for arrays whose role has no entry in
            ``capacities``.
        max_rows_per_file: Upper bound on rows written to a single Lance data file.
        verbose: Default verbosity for objects created without an explicit flag.
    """

    capacities: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_CAPACITIES)
    )
    default_capacity: int = 10000
    max_rows_per_file: int = 10_000_000
    verbose: bool = True

    def __post_init__(self):
        if self.default_capacity < 1:
            raise ArgumentError("default_capacity must be at least 1")
        if self.max_rows_per_file < 1:
            raise ArgumentError("max_rows_per_file must be at least 1")
        for role, capacity in self.capacities.items():
            if capacity < 1:
                raise ArgumentError(f"Capacity for '{role}' must be at least 1")

    def capacity_for(self, role: str) -> int:
        """Capacity hint for an array playing ``role`` (obs, var, ...)."""
        return self.capacities.get(role, self.default_capacity)

    @classmethod
    def from_env(cls) -> "StorageOptions":
        """
        Build options from ``LANCESC_*`` environment variables.

        Recognised variables are ``LANCESC_VERBOSE``, ``LANCESC_DEFAULT_CAPACITY``
        and ``LANCESC_MAX_ROWS_PER_FILE``. Unset variables keep their defaults.

        Raises:
            ArgumentError: If a variable holds an invalid value.
        """
        kwargs: dict = {}
        verbose = os.getenv("LANCESC_VERBOSE")
        if verbose is not None:
            kwargs["verbose"] = _parse_bool("LANCESC_VERBOSE", verbose)
        default_capacity = os.getenv("LANCESC_DEFAULT_CAPACITY")
        if default_capacity is not None:
            kwargs["default_capacity"] = _parse_int(
                "LANCESC_DEFAULT_CAPACITY", default_capacity
            )
        max_rows = os.getenv("LANCESC_MAX_ROWS_PER_FILE")
        if max_rows is not None:
            kwargs["max_rows_per_file"] = _parse_int(
                "LANCESC_MAX_ROWS_PER_FILE", max_rows
            )
        return cls(**kwargs)


def _parse_int(name: str, raw_value: str) -> int:
    try:
        return int(raw_value)
    except ValueError as err:
        raise ArgumentError(f"{name} must be an integer, got '{raw_value}'") from err


def _parse_bool(name: str, raw_value: str) -> bool:
    value = raw_value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ArgumentError(f"{name} must be a boolean flag, got '{raw_value}'")
