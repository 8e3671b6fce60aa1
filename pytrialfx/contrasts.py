"""
Estimated marginal means and treatment contrasts (emmeans-style).

Contrasts are stored benefit-positive by default: the reported ``estimate``
is the *negated* active-minus-control difference, so a positive number
means more weight loss on active treatment. The raw difference is kept in
``difference``.

A combination the data cannot identify (e.g. an empty visit/subgroup/arm
cell) is reported as not estimable, never as zero.
"""

import itertools
import numpy as np
import pandas as pd
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Tuple, Union

from .mixed import MixedModel


class _NotEstimable:
    """Marker for a contrast with no supporting data."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'NOT_ESTIMABLE'


NOT_ESTIMABLE = _NotEstimable()


@dataclass(frozen=True)
class Contrast:
    """One treatment comparison at one visit within one subgroup."""
    visit: str
    subgroup: str
    comparison: str
    difference: float   # active - control (or reversed), response scale
    estimate: float     # reported value (negated difference if benefit-positive)
    se: float
    lower: float
    upper: float
    p_value: float


def reference_grid(model: MixedModel) -> pd.DataFrame:
    """
    Every treatment x visit x subgroup combination of the model's levels.

    The baseline covariate is held at its mean over the model data.
    Columns are named as in the model data.
    """
    roles = model.design.roles
    levels = model.design.levels
    combos = list(itertools.product(levels['treatment'], levels['visit'],
                                    levels['subgroup']))
    grid = pd.DataFrame(combos, columns=[roles['treatment'], roles['visit'],
                                         roles['subgroup']])
    grid[roles['baseline']] = float(model.data[roles['baseline']].mean())
    return grid


def _grid_rows(model):
    grid = reference_grid(model)
    L = model.design.rows(grid).to_numpy()
    roles = model.design.roles
    keys = list(zip(grid[roles['treatment']], grid[roles['visit']],
                    grid[roles['subgroup']]))
    return grid, L, {key: i for i, key in enumerate(keys)}


def emmeans(model: MixedModel, multiplier: float = 1.96) -> pd.DataFrame:
    """
    Estimated marginal means on the reference grid.

    Returns
    -------
    DataFrame
        Columns treatment, visit, subgroup, emmean, se, lower, upper,
        estimable. Non-estimable means are NaN.
    """
    grid, L, _ = _grid_rows(model)
    roles = model.design.roles

    estimate, se = model.linear_combination(L)
    ok = model.design.is_estimable(L)
    estimate[~ok] = np.nan
    se[~ok] = np.nan

    return pd.DataFrame({
        'treatment': grid[roles['treatment']].to_numpy(),
        'visit': grid[roles['visit']].to_numpy(),
        'subgroup': grid[roles['subgroup']].to_numpy(),
        'emmean': estimate,
        'se': se,
        'lower': estimate - multiplier * se,
        'upper': estimate + multiplier * se,
        'estimable': ok,
    })


def _resolve_arms(model, control):
    treatments = model.design.levels['treatment']
    if control is None:
        control = treatments[0]
    if control not in treatments:
        raise ValueError(
            f"Control arm '{control}' not among model levels {treatments}"
        )
    return control, [t for t in treatments if t != control]


def _comparison_label(active, control, reverse):
    return f"{control} - {active}" if reverse else f"{active} - {control}"


def _finish(model, L, multiplier, benefit_positive):
    """Estimates, SEs, bounds and p-values for the rows of L."""
    difference, se = model.linear_combination(L)
    ok = model.design.is_estimable(L)
    difference[~ok] = np.nan
    se[~ok] = np.nan

    estimate = -difference if benefit_positive else difference.copy()
    with np.errstate(divide='ignore', invalid='ignore'):
        p_value = model.two_sided_pvalue(difference / se)
    return {
        'difference': difference,
        'estimate': estimate,
        'se': se,
        'lower': estimate - multiplier * se,
        'upper': estimate + multiplier * se,
        'p_value': p_value,
        'estimable': ok,
    }


class ContrastTable:
    """
    Treatment contrasts keyed by (visit, subgroup, comparison).

    Attributes
    ----------
    frame : DataFrame
        One row per key with difference, estimate, se, lower, upper,
        p_value and estimable
    multiplier : float
        Interval half-width in standard errors
    benefit_positive : bool
        Whether ``estimate`` is the negated difference
    """

    def __init__(self, frame: pd.DataFrame, multiplier: float = 1.96,
                 benefit_positive: bool = True):
        self.frame = frame.reset_index(drop=True)
        self.multiplier = multiplier
        self.benefit_positive = benefit_positive

    @property
    def visits(self) -> list:
        return list(pd.unique(self.frame['visit']))

    @property
    def subgroups(self) -> list:
        return list(pd.unique(self.frame['subgroup']))

    @property
    def comparisons(self) -> list:
        return list(pd.unique(self.frame['comparison']))

    def get(self, visit: str, subgroup: str,
            comparison: Optional[str] = None) -> Union[Contrast, _NotEstimable]:
        """
        Look up one contrast.

        Returns ``NOT_ESTIMABLE`` for combinations in the model without
        supporting data; raises KeyError for combinations not in the model.
        """
        if comparison is None:
            if len(self.comparisons) > 1:
                raise ValueError(
                    f"Several comparisons in table, pick one of {self.comparisons}"
                )
            if not self.comparisons:
                raise KeyError((visit, subgroup, comparison))
            comparison = self.comparisons[0]

        rows = self.frame[(self.frame['visit'] == visit)
                          & (self.frame['subgroup'] == subgroup)
                          & (self.frame['comparison'] == comparison)]
        if rows.empty:
            raise KeyError((visit, subgroup, comparison))
        return self._to_contrast(rows.iloc[0])

    @staticmethod
    def _to_contrast(row) -> Union[Contrast, _NotEstimable]:
        if not row['estimable']:
            return NOT_ESTIMABLE
        return Contrast(
            visit=row['visit'],
            subgroup=row['subgroup'],
            comparison=row['comparison'],
            difference=float(row['difference']),
            estimate=float(row['estimate']),
            se=float(row['se']),
            lower=float(row['lower']),
            upper=float(row['upper']),
            p_value=float(row['p_value']),
        )

    def estimable(self) -> pd.DataFrame:
        """Rows with a numeric estimate."""
        return self.frame[self.frame['estimable']].reset_index(drop=True)

    def to_dict(self) -> Dict[Tuple[str, str, str], Union[Contrast, _NotEstimable]]:
        """Mapping (visit, subgroup, comparison) -> Contrast or NOT_ESTIMABLE."""
        return {(row['visit'], row['subgroup'], row['comparison']): self._to_contrast(row)
                for _, row in self.frame.iterrows()}

    def to_records(self) -> list:
        """
        Flat records for charting; numbers are None when not estimable.
        """
        records = []
        for key, contrast in self.to_dict().items():
            if contrast is NOT_ESTIMABLE:
                record = dict(zip(('visit', 'subgroup', 'comparison'), key))
                record.update({name: None for name in
                               ('difference', 'estimate', 'se', 'lower',
                                'upper', 'p_value')})
                record['estimable'] = False
            else:
                record = asdict(contrast)
                record['estimable'] = True
            records.append(record)
        return records

    def summary(self):
        """Print the contrast table."""
        level = 'benefit-positive' if self.benefit_positive else 'as estimated'
        print()
        print("="*80)
        print(f"TREATMENT CONTRASTS ({level}, +/- {self.multiplier:g} SE)")
        print("="*80)
        print(f"{'Visit':<10} {'Subgroup':<22} {'Comparison':<20} "
              f"{'Estimate':>9} {'SE':>8} {'Lower':>9} {'Upper':>9} {'p':>8}")
        print("-"*80)
        for _, row in self.frame.iterrows():
            head = f"{row['visit']:<10} {row['subgroup'][:22]:<22} {row['comparison'][:20]:<20}"
            if not row['estimable']:
                print(f"{head} {'not estimable':>9}")
                continue
            p = row['p_value']
            p_str = f"{p:.4f}" if p >= 0.0001 else "<.0001"
            print(f"{head} {row['estimate']:>9.3f} {row['se']:>8.3f} "
                  f"{row['lower']:>9.3f} {row['upper']:>9.3f} {p_str:>8}")
        print("="*80)
        print()

    def __len__(self):
        return len(self.frame)

    def __repr__(self):
        n_ok = int(self.frame['estimable'].sum())
        return f"ContrastTable(rows={len(self)}, estimable={n_ok})"


def treatment_contrasts(
    model: MixedModel,
    control: Optional[str] = None,
    reverse: bool = False,
    multiplier: float = 1.96,
    benefit_positive: bool = True
) -> ContrastTable:
    """
    Active vs control contrasts of marginal means per visit and subgroup.

    Parameters
    ----------
    model : MixedModel
        Fitted model
    control : str, optional
        Control arm (default: first treatment level)
    reverse : bool
        Use control - active instead of active - control
    multiplier : float
        Interval half-width in standard errors (1.96 ~ 95%)
    benefit_positive : bool
        Report ``estimate = -difference``

    Returns
    -------
    ContrastTable
    """
    control, actives = _resolve_arms(model, control)
    _, L, index = _grid_rows(model)
    levels = model.design.levels

    keys, rows = [], []
    for active in actives:
        for visit in levels['visit']:
            for subgroup in levels['subgroup']:
                diff = L[index[(active, visit, subgroup)]] - L[index[(control, visit, subgroup)]]
                rows.append(-diff if reverse else diff)
                keys.append((visit, subgroup, _comparison_label(active, control, reverse)))

    frame = pd.DataFrame(keys, columns=['visit', 'subgroup', 'comparison'])
    if rows:
        stats = _finish(model, np.vstack(rows), multiplier, benefit_positive)
        for name, values in stats.items():
            frame[name] = values
    return ContrastTable(frame, multiplier=multiplier, benefit_positive=benefit_positive)


def subgroup_differences(
    model: MixedModel,
    control: Optional[str] = None,
    reverse: bool = False,
    multiplier: float = 1.96,
    benefit_positive: bool = True
) -> pd.DataFrame:
    """
    Difference of treatment contrasts between subgroups, per visit.

    Each non-reference subgroup is compared with the reference (first)
    subgroup: (contrast in subgroup) - (contrast in reference), in the same
    sign convention as ``treatment_contrasts``. This is the
    treatment x subgroup interaction at each visit.
    """
    control, actives = _resolve_arms(model, control)
    _, L, index = _grid_rows(model)
    levels = model.design.levels
    reference, others = levels['subgroup'][0], levels['subgroup'][1:]

    keys, rows = [], []
    for active in actives:
        for visit in levels['visit']:
            ref = L[index[(active, visit, reference)]] - L[index[(control, visit, reference)]]
            for subgroup in others:
                sub = L[index[(active, visit, subgroup)]] - L[index[(control, visit, subgroup)]]
                diff = sub - ref
                rows.append(-diff if reverse else diff)
                keys.append((visit, _comparison_label(active, control, reverse),
                             subgroup, reference))

    frame = pd.DataFrame(keys, columns=['visit', 'comparison', 'subgroup', 'reference'])
    if rows:
        stats = _finish(model, np.vstack(rows), multiplier, benefit_positive)
        for name, values in stats.items():
            frame[name] = values
    return frame
