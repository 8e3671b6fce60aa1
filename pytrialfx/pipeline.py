"""
End-to-end analysis: load -> derive -> fit -> contrast.

Data and derivation errors abort immediately. Contrasts without supporting
data come back marked not estimable.
"""

import warnings
import pandas as pd
from dataclasses import dataclass
from typing import Optional, Union

from .config import AnalysisConfig
from .contrasts import ContrastTable, emmeans, treatment_contrasts, subgroup_differences
from .data import load_dataset
from .derive import derive_changes
from .exceptions import DataError, NonFiniteChangeWarning
from .mixed import MixedModel


@dataclass
class AnalysisResult:
    """Everything the figures and tables are made from."""
    config: AnalysisConfig
    observations: pd.DataFrame
    derived: pd.DataFrame
    model: MixedModel
    emmeans: pd.DataFrame
    contrasts: ContrastTable
    subgroup_differences: pd.DataFrame


def _stage(verbose, title):
    if verbose:
        print()
        print(title)
        print("-" * 80)


def model_frame(derived: pd.DataFrame) -> pd.DataFrame:
    """
    Derived records usable by the model.

    Records flagged ``pct_change_nonfinite`` are dropped entirely: the raw
    value is discarded along with its percent change, so the model never
    sees an observation the percent-change figures cannot show.
    """
    flagged = derived['pct_change_nonfinite']
    if flagged.any():
        warnings.warn(
            f"Excluding {int(flagged.sum())} record(s) with non-finite percent "
            f"change from the model",
            NonFiniteChangeWarning
        )
    return derived.loc[~flagged].reset_index(drop=True)


def run_analysis(
    source: Union[str, pd.DataFrame],
    config: Optional[AnalysisConfig] = None,
    verbose: bool = False
) -> AnalysisResult:
    """
    Run the full pipeline on a file or raw DataFrame.

    Parameters
    ----------
    source : str, path or DataFrame
        Raw PK/PD table
    config : AnalysisConfig, optional
        Filters, comparison and model options
    verbose : bool
        Print stage banners and the model/contrast summaries

    Returns
    -------
    AnalysisResult

    Examples
    --------
    >>> cfg = AnalysisConfig(filters=FilterSpec(compartment=3, doses=(0, 400)))
    >>> result = run_analysis('pkpd.csv', cfg)
    >>> result.contrasts.get('Week 12', 'Biomarker positive')
    """
    config = config or AnalysisConfig()

    _stage(verbose, "1. LOAD AND FILTER")
    observations = load_dataset(source, config)
    if verbose:
        print(f"Observations: {len(observations)}, "
              f"subjects: {observations['subject'].nunique()}")

    _stage(verbose, "2. DERIVE CHANGE FROM BASELINE")
    derived = derive_changes(
        observations,
        baseline_day=config.baseline_day,
        pct_denominator=config.pct_denominator,
        require_baseline=config.require_baseline
    )
    if derived.empty:
        raise DataError("No post-baseline observations with a baseline record")
    if verbose:
        print(f"Post-baseline records: {len(derived)} "
              f"(percent change denominator: {config.pct_denominator})")

    _stage(verbose, "3. FIT MIXED MODEL")
    model = MixedModel(
        model_frame(derived),
        random_effects=config.random_effects,
        reml=config.reml,
        backend=config.backend,
        maxiter=config.maxiter
    )
    if verbose:
        model.summary()

    _stage(verbose, "4. CONTRASTS")
    options = dict(control=config.control, reverse=config.reverse,
                   multiplier=config.ci_multiplier,
                   benefit_positive=config.benefit_positive)
    table = treatment_contrasts(model, **options)
    differences = subgroup_differences(model, **options)
    if verbose:
        table.summary()

    return AnalysisResult(
        config=config,
        observations=observations,
        derived=derived,
        model=model,
        emmeans=emmeans(model, multiplier=config.ci_multiplier),
        contrasts=table,
        subgroup_differences=differences,
    )
