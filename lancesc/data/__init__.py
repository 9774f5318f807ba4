from .coo import matrices_to_table, table_to_matrices
from .matrix import LabeledMatrix, are_layerable, pad_matrix

__all__ = [
    "LabeledMatrix",
    "are_layerable",
    "matrices_to_table",
    "pad_matrix",
    "table_to_matrices",
]
