from .annotation import AnnotationDataframe, AnnotationMatrix
from .assay import AnnotationPairwiseMatrix, AssayMatrix
from .collection import SOMACollection
from .dataset import SOMA, axis_dims
from .groups import (
    AnnotationMatrixGroup,
    AnnotationPairwiseMatrixGroup,
    AssayMatrixGroup,
)

__all__ = [
    "SOMA",
    "AnnotationDataframe",
    "AnnotationMatrix",
    "AnnotationMatrixGroup",
    "AnnotationPairwiseMatrix",
    "AnnotationPairwiseMatrixGroup",
    "AssayMatrix",
    "AssayMatrixGroup",
    "SOMACollection",
    "axis_dims",
]
