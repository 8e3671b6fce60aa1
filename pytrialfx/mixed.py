"""
Linear mixed model with R-style interface and output.

This is the user-facing model API, the counterpart of lme4's lmer() for
the treatment x subgroup x visit weight model.
"""

import warnings
import numpy as np
import pandas as pd
from typing import Optional, Union
from scipy import stats

from ._backends import get_backend, SolverBase
from ._core.design import build_design
from .exceptions import FitWarning, ModelFitError


class MixedModel:
    """
    Fit the weight model with per-subject random effects.

    Fixed effects: baseline, visit, treatment, subgroup, baseline:visit,
    treatment:visit, subgroup:treatment, subgroup:visit and
    subgroup:visit:treatment. Random effects: intercept and slope over time
    per subject (``random_effects='slope'``).

    Examples
    --------
    >>> from pytrialfx import lmm
    >>> model = lmm(derived)
    >>> model.summary()
    >>> model.coef           # Named coefficients (NaN = aliased)
    >>> model.conf_int()     # Wald intervals
    """

    def __init__(
        self,
        data: pd.DataFrame,
        response: str = 'value',
        subject: str = 'subject',
        baseline: str = 'baseline',
        visit: str = 'visit',
        treatment: str = 'treatment',
        subgroup: str = 'subgroup',
        time: str = 'week',
        random_effects: str = 'slope',
        reml: bool = True,
        backend: Union[str, SolverBase] = 'auto',
        maxiter: int = 200
    ):
        """
        Fit linear mixed model.

        Parameters
        ----------
        data : DataFrame
            Derived post-baseline observations
        response : str
            Response column (raw measured value)
        subject : str
            Subject identifier (grouping factor)
        baseline, visit, treatment, subgroup : str
            Covariate and factor columns
        time : str
            Numeric time (weeks) for the random slope
        random_effects : {'slope', 'intercept', 'none'}
            Per-subject random effects
        reml : bool
            REML (default) or ML estimation
        backend : str or SolverBase
            'auto', 'mixedlm', 'ols' or a solver instance
        maxiter : int
            Iteration limit per optimizer

        Raises
        ------
        ModelFitError
            If the solver does not converge or the fixed-effect covariance
            is singular
        """
        if random_effects not in ('slope', 'intercept', 'none'):
            raise ValueError(f"Unknown random_effects: '{random_effects}'")
        for col in (subject, time):
            if col not in data.columns:
                raise ValueError(f"Column not in data: '{col}'")

        self.data = data.reset_index(drop=True)
        self.response = response
        self.subject = subject
        self.time = time
        self.reml = reml
        self.n_obs = len(self.data)
        self.n_subjects = int(self.data[subject].nunique())

        self.design = build_design(
            self.data, response=response, baseline=baseline, visit=visit,
            treatment=treatment, subgroup=subgroup
        )
        self.var_names = self.design.column_names
        self.n_coef = len(self.var_names)
        self.rank = self.design.rank
        if self.design.aliased:
            warnings.warn(
                f"{len(self.design.aliased)} coefficient(s) not estimable "
                f"(aliased): {', '.join(self.design.aliased)}",
                FitWarning
            )

        # Random effects need repeated measures
        per_subject = self.data.groupby(subject).size()
        if random_effects != 'none' and per_subject.max() < 2:
            warnings.warn(
                "No subject has more than one post-baseline observation; "
                "fitting fixed effects only",
                FitWarning
            )
            random_effects = 'none'
            if not isinstance(backend, SolverBase):
                backend = 'auto'
        self.random_effects = random_effects

        self.backend = get_backend(backend, random_effects=random_effects)
        self._fit_result = self.backend.fit(
            self.design.y.to_numpy(),
            self.design.X_kept,
            groups=self.data[subject].to_numpy(),
            exog_re=self._random_design(),
            reml=reml,
            maxiter=maxiter
        )

        for message in self._fit_result.fit_warnings:
            warnings.warn(message, FitWarning)
        self._check_fit()

        # Compute statistical inference
        self._compute_statistics()

    def _random_design(self) -> Optional[pd.DataFrame]:
        if self.random_effects == 'none':
            return None
        re = pd.DataFrame({'Intercept': np.ones(self.n_obs)})
        if self.random_effects == 'slope':
            re[self.time] = self.data[self.time].to_numpy(dtype=np.float64)
        return re

    def _check_fit(self):
        """Surface convergence and covariance problems to the caller."""
        result = self._fit_result
        diagnostics = {
            'solver': self.backend.name,
            'method': result.method,
            'llf': result.llf,
            'scale': result.scale,
            'warnings': list(result.fit_warnings),
            'fe_params': result.fe_params,
        }

        if not result.converged:
            raise ModelFitError(
                f"Model did not converge (solver={self.backend.name}, "
                f"method={result.method}, llf={result.llf:.4f})",
                diagnostics=diagnostics
            )

        cov = result.fe_cov
        if not np.all(np.isfinite(cov)) or np.any(np.diag(cov) <= 0):
            raise ModelFitError(
                "Fixed-effect covariance matrix is singular or not finite",
                diagnostics=diagnostics
            )

    def _compute_statistics(self):
        """Expand to full width (NaN for aliased) and compute Wald tests."""
        result = self._fit_result
        index = [self.var_names.index(name) for name in self.design.kept]

        self.coefficients = np.full(self.n_coef, np.nan)
        self.coefficients[index] = result.fe_params

        self.vcov = np.full((self.n_coef, self.n_coef), np.nan)
        self.vcov[np.ix_(index, index)] = result.fe_cov

        self.std_errors = np.sqrt(np.diag(self.vcov))
        self.z_values = self.coefficients / self.std_errors
        self.df_residual = result.df_residual
        self.pvalues = self.two_sided_pvalue(self.z_values)

        self.scale = result.scale
        self.llf = result.llf
        self.converged = result.converged
        self.fit_warnings = list(result.fit_warnings)

    def two_sided_pvalue(self, statistic):
        """Two-sided p-value (normal for mixed fits, t for fixed-effects fits)."""
        x = np.abs(statistic)
        if np.isinf(self.df_residual):
            return 2 * stats.norm.sf(x)
        return 2 * stats.t.sf(x, self.df_residual)

    @property
    def coef(self) -> pd.Series:
        """Named coefficients (pandas Series)."""
        return pd.Series(self.coefficients, index=self.var_names)

    @property
    def fixed_effects(self) -> np.ndarray:
        """Estimates of the non-aliased coefficients, in design order."""
        return self._fit_result.fe_params

    @property
    def fixed_effects_cov(self) -> np.ndarray:
        return self._fit_result.fe_cov

    @property
    def random_effects_cov(self) -> Optional[pd.DataFrame]:
        """Covariance of the per-subject random effects."""
        cov_re = self._fit_result.cov_re
        if cov_re is None:
            return None
        names = self._fit_result.re_names
        return pd.DataFrame(cov_re, index=names, columns=names)

    def critical_value(self, alpha: float = 0.05) -> float:
        """Two-sided critical value matching the inference used for p-values."""
        if np.isinf(self.df_residual):
            return float(stats.norm.ppf(1 - alpha / 2))
        return float(stats.t.ppf(1 - alpha / 2, self.df_residual))

    def conf_int(self, multiplier: float = 1.96) -> pd.DataFrame:
        """
        Wald confidence intervals for coefficients.

        Parameters
        ----------
        multiplier : float
            Half-width in standard errors (default: 1.96 for ~95%)

        Returns
        -------
        DataFrame
            Confidence intervals with columns 'lower' and 'upper'
        """
        lower = self.coefficients - multiplier * self.std_errors
        upper = self.coefficients + multiplier * self.std_errors

        return pd.DataFrame({
            'lower': lower,
            'upper': upper
        }, index=self.var_names)

    def linear_combination(self, L: np.ndarray):
        """
        Estimate and standard error of ``L @ beta`` for each row of L.

        L is full width; aliased columns contribute nothing. Estimability
        must be checked separately (``design.is_estimable``).
        """
        L = np.atleast_2d(np.asarray(L, dtype=np.float64))
        index = [self.var_names.index(name) for name in self.design.kept]
        L_kept = L[:, index]
        estimate = L_kept @ self.fixed_effects
        var = np.einsum('ij,jk,ik->i', L_kept, self.fixed_effects_cov, L_kept)
        return estimate, np.sqrt(np.maximum(var, 0.0))

    def summary(self):
        """
        Print summary of the fit (like R's summary.merMod).
        """
        print()
        print("="*80)
        print("LINEAR MIXED MODEL RESULTS")
        print("="*80)
        print()

        print(f"Formula: {self.design.formula}")
        if self.random_effects != 'none':
            re_terms = '1' if self.random_effects == 'intercept' else f"1 + {self.time}"
            print(f"Random effects: ({re_terms} | {self.subject})")
        print(f"Estimation: {self._fit_result.method} via {self.backend.name}")
        print(f"Number of observations: {self.n_obs}, subjects: {self.n_subjects}")
        print(f"Log-likelihood: {self.llf:.4f}")
        print()

        cov_re = self.random_effects_cov
        if cov_re is not None and self.random_effects != 'none':
            print("Random effects:")
            for name in cov_re.index:
                sd = np.sqrt(max(cov_re.loc[name, name], 0.0))
                print(f"  {self.subject:<12} {name:<14} Std.Dev. {sd:>10.4f}")
            print(f"  {'Residual':<27} Std.Dev. {np.sqrt(self.scale):>10.4f}")
            print()

        stat = 'z value' if np.isinf(self.df_residual) else 't value'
        print("Fixed effects:")
        print("-"*80)
        print(f"{'Term':<44} {'Estimate':>10} {'Std. Error':>11} {stat:>8} {'Pr(>|.|)':>9}")
        print("-"*80)

        for i, name in enumerate(self.var_names):
            p = self.pvalues[i]
            if np.isnan(self.coefficients[i]):
                print(f"{name[:44]:<44} {'NA':>10} {'NA':>11} {'NA':>8} {'NA':>9} (aliased)")
                continue
            if p < 0.001:
                sig = ' ***'
            elif p < 0.01:
                sig = ' **'
            elif p < 0.05:
                sig = ' *'
            elif p < 0.1:
                sig = ' .'
            else:
                sig = ''
            p_str = f"{p:.4f}" if p >= 0.0001 else "<.0001"
            print(f"{name[:44]:<44} {self.coefficients[i]:>10.4f} {self.std_errors[i]:>11.4f} "
                  f"{self.z_values[i]:>8.3f} {p_str:>9}{sig}")

        print("-"*80)
        print("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")
        if self.fit_warnings:
            print()
            print("Solver warnings:")
            for message in self.fit_warnings:
                print(f"  - {message}")
        print("="*80)
        print()

    def __repr__(self):
        return (f"MixedModel(n={self.n_obs}, subjects={self.n_subjects}, "
                f"p={self.rank}, random_effects='{self.random_effects}')")


def lmm(data, **kwargs):
    """
    Fit the weight mixed model (convenience function).

    Parameters
    ----------
    data : DataFrame
        Derived post-baseline observations
    **kwargs
        Additional arguments passed to MixedModel

    Returns
    -------
    MixedModel
        Fitted model object

    Examples
    --------
    >>> model = lmm(derived, random_effects='slope')
    >>> model.summary()
    """
    return MixedModel(data, **kwargs)
