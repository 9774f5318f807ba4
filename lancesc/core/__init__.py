from .array import ArrayHandle, LanceArray
from .errors import (
    ArgumentError,
    ArityError,
    LanceSCError,
    SchemaError,
    ShapeError,
    StorageError,
    UnknownDimensionError,
)
from .group import Group
from .object import StorageObject
from .options import StorageOptions

__all__ = [
    "ArgumentError",
    "ArityError",
    "ArrayHandle",
    "Group",
    "LanceArray",
    "LanceSCError",
    "SchemaError",
    "ShapeError",
    "StorageError",
    "StorageObject",
    "StorageOptions",
    "UnknownDimensionError",
]
