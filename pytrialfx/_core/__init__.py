"""
Core algorithms (solver-agnostic).
"""

from .qr import qr_decomposition_with_pivoting, null_space_basis
from .design import ModelDesign, build_design, build_formula, MODEL_TERMS

__all__ = [
    "qr_decomposition_with_pivoting",
    "null_space_basis",
    "ModelDesign",
    "build_design",
    "build_formula",
    "MODEL_TERMS",
]
