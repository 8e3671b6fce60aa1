"""
pytrialfx: treatment-by-subgroup effects over time in clinical trials,
from raw PK/PD tables to executive-ready figures.

Copyright (C) 2024 SGCX
Licensed under GPL-3.0
"""

__version__ = "1.0.0"

# Import main user-facing API
from .config import AnalysisConfig, ColumnMap, FilterSpec, PlotTheme
from .data import load_dataset
from .derive import derive_changes, split_baseline, percent_change
from .mixed import lmm, MixedModel
from .contrasts import (
    emmeans,
    treatment_contrasts,
    subgroup_differences,
    reference_grid,
    ContrastTable,
    Contrast,
    NOT_ESTIMABLE,
)
from .pipeline import run_analysis, AnalysisResult
from .exceptions import DataError, ModelFitError, FitWarning

# Import backend utilities (for advanced users)
from ._backends import get_backend, list_available_backends

__all__ = [
    'AnalysisConfig',
    'ColumnMap',
    'FilterSpec',
    'PlotTheme',
    'load_dataset',
    'derive_changes',
    'split_baseline',
    'percent_change',
    'lmm',
    'MixedModel',
    'emmeans',
    'treatment_contrasts',
    'subgroup_differences',
    'reference_grid',
    'ContrastTable',
    'Contrast',
    'NOT_ESTIMABLE',
    'run_analysis',
    'AnalysisResult',
    'DataError',
    'ModelFitError',
    'FitWarning',
    'get_backend',
    'list_available_backends',
]
