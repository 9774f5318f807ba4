"""Exception hierarchy for lancesc.

Validation errors subclass ``ValueError`` and storage errors subclass
``OSError`` so callers catching the builtin types keep working.
"""

from collections.abc import Iterable


class LanceSCError(Exception):
    """Base exception for all lancesc failures."""


class ArgumentError(LanceSCError, ValueError):
    """Raised for malformed caller input (wrong shape, empty or mistyped argument)."""


class ShapeError(ArgumentError):
    """Raised when an input is not the kind of matrix an operation expects."""


class SchemaError(LanceSCError, ValueError):
    """Raised when data cannot be reconciled with a declared or derived schema."""


class ArityError(SchemaError):
    """Raised when the number of value columns does not match the number of inputs."""


class UnknownDimensionError(SchemaError):
    """Raised when a slice request names dimensions the array does not have."""

    def __init__(self, dimensions: Iterable[str], available: Iterable[str] = ()):
        self.dimensions = list(dimensions)
        self.available = list(available)
        msg = f"Unknown dimension(s): {', '.join(map(repr, self.dimensions))}"
        if self.available:
            msg += f" (available: {', '.join(self.available)})"
        super().__init__(msg)


class StorageError(LanceSCError, OSError):
    """Raised when a storage object is missing or is not of the expected type."""
