"""
Loading, filtering and standardizing the raw PK/PD dataset.

The raw file is a flat table with one row per sample. After ``load_dataset``
the frame has fixed, canonical column names so that nothing downstream
depends on the naming conventions of a particular data export.
"""

import numpy as np
import pandas as pd
from typing import Optional, Union, Iterable

from .config import AnalysisConfig, ColumnMap, FilterSpec
from .exceptions import DataError, MissingColumnError, UnparseableValueError


BASELINE_VISIT = 'Baseline'

CANONICAL_COLUMNS = [
    'subject', 'nominal_time', 'week', 'visit', 'profile_day',
    'treatment', 'subgroup', 'subgroup_code', 'value',
]

# config attribute -> column name on the filter's ColumnMap
_FILTER_COLUMNS = {
    'compartment': 'compartment',
    'doses': 'dose',
    'study': 'study',
    'part': 'part',
}


def validate_columns(frame: pd.DataFrame, required: Iterable[str]) -> None:
    """Raise MissingColumnError listing every required column not in frame."""
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise MissingColumnError(missing)


def filter_observations(
    frame: pd.DataFrame,
    filters: FilterSpec,
    columns: Optional[ColumnMap] = None
) -> pd.DataFrame:
    """
    Keep rows matching the compartment/dose/study/part filters.

    Parameters
    ----------
    frame : DataFrame
        Raw observations
    filters : FilterSpec
        Filter values; ``None`` entries are ignored
    columns : ColumnMap, optional
        Input column names

    Returns
    -------
    DataFrame
        Filtered copy

    Raises
    ------
    MissingColumnError
        If a filtered column is absent
    DataError
        If no rows survive
    """
    columns = columns or ColumnMap()
    active = filters.active()
    validate_columns(frame, [getattr(columns, _FILTER_COLUMNS[k]) for k in active])

    keep = np.ones(len(frame), dtype=bool)
    for name, wanted in active.items():
        col = getattr(columns, _FILTER_COLUMNS[name])
        allowed = list(wanted) if name == 'doses' else [wanted]
        keep &= frame[col].isin(allowed).to_numpy()

    result = frame.loc[keep].copy()
    if result.empty:
        raise DataError(f"No rows left after filtering on {active}")
    return result


def _parse_numeric(frame, column, subject_col):
    raw = frame[column]
    parsed = pd.to_numeric(raw, errors='coerce')

    bad = raw[parsed.isna() & raw.notna()]
    if len(bad):
        raise UnparseableValueError(column, pd.unique(bad))

    if parsed.isna().any():
        subjects = pd.unique(frame.loc[parsed.isna(), subject_col])
        raise UnparseableValueError(column, subjects, reason="missing for subject(s)")

    return parsed.astype(np.float64)


def visit_label(week: float) -> str:
    """Label for a post-baseline visit at ``week``."""
    return f"Week {round(float(week), 1):g}"


def standardize(frame: pd.DataFrame, config: Optional[AnalysisConfig] = None) -> pd.DataFrame:
    """
    Parse and rename raw columns to the canonical observation layout.

    Visit is an ordered categorical (Baseline first, then by week), treatment
    a categorical with the control arm as first level, subgroup a categorical
    of the configured labels with code 0 first.
    """
    config = config or AnalysisConfig()
    cols = config.columns
    validate_columns(frame, cols.required())

    for col in (cols.subject, cols.treatment):
        if frame[col].isna().any():
            raise UnparseableValueError(col, [np.nan], reason="missing")

    nominal_time = _parse_numeric(frame, cols.nominal_time, cols.subject)
    profile_day = _parse_numeric(frame, cols.profile_day, cols.subject)
    value = _parse_numeric(frame, cols.value, cols.subject)
    code = _parse_numeric(frame, cols.subgroup, cols.subject)

    outside = code[~code.isin([0.0, 1.0])]
    if len(outside):
        raise UnparseableValueError(cols.subgroup, pd.unique(outside),
                                    reason="outside {0, 1}")

    treatment = frame[cols.treatment].astype(str)
    arms = sorted(set(treatment))
    if config.control not in arms:
        raise DataError(
            f"Control arm '{config.control}' not found; arms present: {arms}"
        )
    if len(arms) < 2:
        raise DataError(f"Need at least one active arm besides '{config.control}'")

    week = nominal_time / config.hours_per_week
    is_baseline = (profile_day == config.baseline_day).to_numpy()
    visit = np.where(is_baseline, BASELINE_VISIT, week.map(visit_label))

    out = pd.DataFrame({
        'subject': frame[cols.subject].to_numpy(),
        'nominal_time': nominal_time.to_numpy(),
        'week': week.to_numpy(),
        'visit': visit,
        'profile_day': profile_day.to_numpy(),
        'treatment': treatment.to_numpy(),
        'subgroup_code': code.astype(int).to_numpy(),
        'value': value.to_numpy(),
    })

    # Baseline first, remaining visits by their earliest week
    order = (out.loc[~is_baseline].groupby('visit')['week'].min()
             .sort_values().index.tolist())
    if is_baseline.any():
        order = [BASELINE_VISIT] + order
    out['visit'] = pd.Categorical(out['visit'], categories=order, ordered=True)

    others = [a for a in arms if a != config.control]
    out['treatment'] = pd.Categorical(out['treatment'],
                                      categories=[config.control] + others)

    labels = config.subgroup_labels
    out['subgroup'] = pd.Categorical(out['subgroup_code'].map(labels),
                                     categories=[labels[0], labels[1]])

    out = out.sort_values(['subject', 'week'], kind='mergesort')
    return out[CANONICAL_COLUMNS].reset_index(drop=True)


def load_dataset(
    source: Union[str, pd.DataFrame],
    config: Optional[AnalysisConfig] = None
) -> pd.DataFrame:
    """
    Read, filter and standardize the observation table.

    Parameters
    ----------
    source : str, path or DataFrame
        Delimited file or an already loaded raw frame
    config : AnalysisConfig, optional

    Returns
    -------
    DataFrame
        Canonical observations (see ``CANONICAL_COLUMNS``)

    Examples
    --------
    >>> cfg = AnalysisConfig(filters=FilterSpec(compartment=3, doses=(0, 400)))
    >>> obs = load_dataset('pkpd.csv', cfg)
    """
    config = config or AnalysisConfig()

    if isinstance(source, pd.DataFrame):
        raw = source.copy()
    else:
        raw = pd.read_csv(source, sep=config.delimiter)

    validate_columns(raw, config.columns.required())
    filtered = filter_observations(raw, config.filters, config.columns)
    return standardize(filtered, config)
