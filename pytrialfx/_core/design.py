"""
Fixed-effects design for the weight model.

    value ~ baseline + visit + treatment + subgroup
            + baseline:visit + treatment:visit + subgroup:treatment
            + subgroup:visit + subgroup:visit:treatment

Factors observed at a single level carry no contrast and are dropped along
with every term that contains them. Aliased columns (empty cells, collinear
covariates) are detected here and reported to the fitter.
"""

import numpy as np
import pandas as pd
import patsy
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .qr import qr_decomposition_with_pivoting, null_space_basis


FACTOR_ROLES = ('visit', 'treatment', 'subgroup')
COVARIATE_ROLES = ('baseline',)

MODEL_TERMS = (
    ('baseline',),
    ('visit',),
    ('treatment',),
    ('subgroup',),
    ('baseline', 'visit'),
    ('treatment', 'visit'),
    ('subgroup', 'treatment'),
    ('subgroup', 'visit'),
    ('subgroup', 'visit', 'treatment'),
)

ESTIMABILITY_TOL = 1e-6


@dataclass
class ModelDesign:
    """Design matrices plus the bookkeeping needed for contrasts."""
    formula: str
    y: pd.Series
    X: pd.DataFrame               # full design (aliased columns included)
    design_info: patsy.DesignInfo
    roles: Dict[str, str]         # role -> column name in the data
    levels: Dict[str, List[str]]  # factor role -> observed levels
    dropped_factors: List[str]
    rank: int
    kept: List[str]
    aliased: List[str]
    null_basis: np.ndarray = field(repr=False)

    @property
    def column_names(self) -> List[str]:
        return list(self.X.columns)

    @property
    def X_kept(self) -> pd.DataFrame:
        return self.X[self.kept]

    def rows(self, newdata: pd.DataFrame) -> pd.DataFrame:
        """Design rows (full width) for new data, e.g. a reference grid."""
        frame = newdata.copy()
        for role in FACTOR_ROLES:
            col = self.roles[role]
            if col in frame.columns and role in self.levels:
                frame[col] = pd.Categorical(frame[col].astype(str),
                                            categories=self.levels[role])
        (rows,) = patsy.build_design_matrices(
            [self.design_info], frame, NA_action='raise', return_type='dataframe'
        )
        return rows

    def is_estimable(self, L: np.ndarray, tol: float = ESTIMABILITY_TOL) -> np.ndarray:
        """
        Estimability of each row of L (shape (k, p), full width).

        A row is estimable iff it lies in the row space of X, i.e. it is
        orthogonal to every null-space direction.
        """
        L = np.atleast_2d(np.asarray(L, dtype=np.float64))
        if self.null_basis.shape[1] == 0:
            return np.ones(L.shape[0], dtype=bool)
        leak = np.abs(L @ self.null_basis).max(axis=1)
        scale = np.maximum(1.0, np.abs(L).max(axis=1))
        return leak <= tol * scale


def build_formula(response: str, roles: Dict[str, str],
                  dropped: Optional[List[str]] = None) -> str:
    """Formula over the model terms that do not involve a dropped factor."""
    dropped = set(dropped or ())
    terms = [':'.join(roles[r] for r in term) for term in MODEL_TERMS
             if not dropped.intersection(term)]
    return f"{response} ~ " + ' + '.join(terms)


def _as_categorical(values: pd.Series) -> pd.Categorical:
    if isinstance(values.dtype, pd.CategoricalDtype):
        cat = values.cat.remove_unused_categories()
        return cat.cat.rename_categories([str(c) for c in cat.cat.categories])
    return pd.Categorical(values.astype(str))


def build_design(
    data: pd.DataFrame,
    response: str = 'value',
    baseline: str = 'baseline',
    visit: str = 'visit',
    treatment: str = 'treatment',
    subgroup: str = 'subgroup',
    tol: float = 1e-7,
) -> ModelDesign:
    """
    Build the fixed-effects design from derived observations.

    Parameters
    ----------
    data : DataFrame
        One row per post-baseline observation
    response, baseline, visit, treatment, subgroup : str
        Column names
    tol : float
        Relative rank tolerance for aliasing

    Returns
    -------
    ModelDesign

    Raises
    ------
    ValueError
        If columns are missing or hold NaN, or treatment has one level
    """
    roles = {'baseline': baseline, 'visit': visit,
             'treatment': treatment, 'subgroup': subgroup}
    names = [response] + list(roles.values())

    missing = [c for c in names if c not in data.columns]
    if missing:
        raise ValueError(f"Columns not in data: {missing}")
    bad = [c for c in names if not c.isidentifier()]
    if bad:
        raise ValueError(f"Column names must be identifiers: {bad}")
    for col in (response, baseline):
        if not np.all(np.isfinite(data[col].to_numpy(dtype=np.float64))):
            raise ValueError(f"{col} contains NaN or Inf")

    frame = data[names].copy()
    levels = {}
    dropped = []
    for role in FACTOR_ROLES:
        col = roles[role]
        frame[col] = _as_categorical(frame[col])
        cats = [str(c) for c in frame[col].cat.categories]
        if len(cats) < 2:
            if role == 'treatment':
                raise ValueError("treatment must have at least two levels")
            dropped.append(role)
        levels[role] = cats

    formula = build_formula(response, roles, dropped)
    y, X = patsy.dmatrices(formula, frame, return_type='dataframe',
                           NA_action='raise')

    decomp = qr_decomposition_with_pivoting(X.to_numpy(), tol=tol)
    columns = list(X.columns)

    return ModelDesign(
        formula=formula,
        y=y.iloc[:, 0],
        X=X,
        design_info=X.design_info,
        roles=roles,
        levels=levels,
        dropped_factors=dropped,
        rank=decomp.rank,
        kept=[columns[i] for i in decomp.kept],
        aliased=[columns[i] for i in decomp.aliased],
        null_basis=null_space_basis(X.to_numpy(), decomp.rank),
    )
