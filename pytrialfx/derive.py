"""
Baseline and change-from-baseline derivation.

Percent change divides by the *current* value by default:

    pct_change = 100 * (value - baseline) / value

This is how the published figures were produced. It is not the usual
definition (which divides by baseline), so the denominator is an option
rather than being silently corrected.
"""

import warnings
import numpy as np
import pandas as pd
from typing import Tuple

from .exceptions import (
    DuplicateBaselineError,
    DuplicateObservationError,
    MissingBaselineError,
    MissingBaselineWarning,
    NonFiniteChangeWarning,
)


def split_baseline(
    observations: pd.DataFrame,
    baseline_day: float = 0
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Partition observations into baseline and post-baseline records.

    Parameters
    ----------
    observations : DataFrame
        Canonical observations (``data.load_dataset`` output)
    baseline_day : float
        Profile day of the pre-dose record

    Returns
    -------
    (baseline, post) : tuple of DataFrame
        ``baseline`` has one row per subject with columns
        ``subject, baseline``; ``post`` holds records after baseline day.
        Records before the baseline day (screening) are in neither.

    Raises
    ------
    DuplicateBaselineError
        If any subject has more than one baseline record
    """
    is_base = observations['profile_day'] == baseline_day
    base = observations.loc[is_base, ['subject', 'value']]

    counts = base['subject'].value_counts()
    duplicated = counts[counts > 1].index.tolist()
    if duplicated:
        raise DuplicateBaselineError(sorted(duplicated, key=str))

    base = base.rename(columns={'value': 'baseline'}).reset_index(drop=True)
    post = observations.loc[observations['profile_day'] > baseline_day].copy()
    return base, post


def percent_change(value, baseline, denominator: str = 'current') -> np.ndarray:
    """
    100 * (value - baseline) / denominator.

    A zero denominator gives NaN, never Inf.
    """
    value = np.asarray(value, dtype=np.float64)
    baseline = np.asarray(baseline, dtype=np.float64)
    if denominator == 'current':
        denom = value
    elif denominator == 'baseline':
        denom = baseline
    else:
        raise ValueError(f"Unknown denominator: '{denominator}'")

    with np.errstate(divide='ignore', invalid='ignore'):
        pct = 100.0 * (value - baseline) / denom
    pct[~np.isfinite(pct)] = np.nan
    return pct


def derive_changes(
    observations: pd.DataFrame,
    baseline_day: float = 0,
    pct_denominator: str = 'current',
    require_baseline: bool = False
) -> pd.DataFrame:
    """
    Join post-baseline records to their subject's baseline and add changes.

    Parameters
    ----------
    observations : DataFrame
        Canonical observations
    baseline_day : float
        Profile day of the baseline record
    pct_denominator : {'current', 'baseline'}
        Denominator for percent change
    require_baseline : bool
        If True, raise MissingBaselineError for subjects with post-baseline
        data but no baseline; otherwise they are dropped with a warning

    Returns
    -------
    DataFrame
        Post-baseline records plus ``baseline``, ``change``, ``pct_change``
        and ``pct_change_nonfinite``

    Raises
    ------
    DuplicateBaselineError, DuplicateObservationError, MissingBaselineError
    """
    base, post = split_baseline(observations, baseline_day)

    dup = post.duplicated(['subject', 'visit'], keep=False)
    if dup.any():
        keys = post.loc[dup, ['subject', 'visit']].drop_duplicates()
        raise DuplicateObservationError(keys.itertuples(index=False, name=None))

    orphans = sorted(set(post['subject']) - set(base['subject']), key=str)
    if orphans:
        if require_baseline:
            raise MissingBaselineError(orphans)
        warnings.warn(
            f"Dropping {len(orphans)} subject(s) without a baseline record: "
            f"{', '.join(map(str, orphans[:10]))}",
            MissingBaselineWarning
        )

    derived = post.merge(base, on='subject', how='inner', validate='many_to_one')
    derived['change'] = derived['value'] - derived['baseline']
    derived['pct_change'] = percent_change(
        derived['value'], derived['baseline'], pct_denominator
    )
    derived['pct_change_nonfinite'] = derived['pct_change'].isna()

    if derived['pct_change_nonfinite'].any():
        flagged = pd.unique(derived.loc[derived['pct_change_nonfinite'], 'subject'])
        warnings.warn(
            f"Percent change is not finite (zero denominator) for subject(s): "
            f"{', '.join(map(str, flagged[:10]))}",
            NonFiniteChangeWarning
        )

    return derived.reset_index(drop=True)
