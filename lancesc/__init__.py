from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("lancesc")
except PackageNotFoundError:
    __version__ = "unknown"

from lancesc.core import (
    ArgumentError,
    ArityError,
    Group,
    LanceArray,
    LanceSCError,
    SchemaError,
    ShapeError,
    StorageError,
    StorageOptions,
    UnknownDimensionError,
)
from lancesc.data import (
    LabeledMatrix,
    are_layerable,
    matrices_to_table,
    pad_matrix,
    table_to_matrices,
)
from lancesc.soma import (
    SOMA,
    AnnotationDataframe,
    AnnotationMatrix,
    AnnotationMatrixGroup,
    AnnotationPairwiseMatrix,
    AnnotationPairwiseMatrixGroup,
    AssayMatrix,
    AssayMatrixGroup,
    SOMACollection,
)

__all__ = [
    "SOMA",
    "AnnotationDataframe",
    "AnnotationMatrix",
    "AnnotationMatrixGroup",
    "AnnotationPairwiseMatrix",
    "AnnotationPairwiseMatrixGroup",
    "ArgumentError",
    "ArityError",
    "AssayMatrix",
    "AssayMatrixGroup",
    "Group",
    "LabeledMatrix",
    "LanceArray",
    "LanceSCError",
    "SOMACollection",
    "SchemaError",
    "ShapeError",
    "StorageError",
    "StorageOptions",
    "UnknownDimensionError",
    "are_layerable",
    "matrices_to_table",
    "pad_matrix",
    "table_to_matrices",
]
