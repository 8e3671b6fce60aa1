"""
Fixed-effects-only solver (statsmodels OLS).

Used when no subject is measured more than once, so that random effects
cannot be separated from residual error.
"""

import numpy as np
from typing import Optional

import statsmodels.api as sm

from .base import SolverBase, MixedFitResult
from ..exceptions import ModelFitError


class OLSSolver(SolverBase):
    """Ordinary least squares via QR."""

    name = "ols"

    def fit(
        self,
        endog: np.ndarray,
        exog,
        groups: Optional[np.ndarray] = None,
        exog_re=None,
        reml: bool = True,
        maxiter: int = 200
    ) -> MixedFitResult:
        result = sm.OLS(endog, exog).fit(method='qr')

        if result.df_resid <= 0:
            raise ModelFitError(
                f"No residual degrees of freedom ({int(result.nobs)} observations, "
                f"{exog.shape[1]} coefficients)",
                diagnostics={'solver': self.name, 'df_residual': result.df_resid}
            )

        return MixedFitResult(
            fe_params=np.asarray(result.params, dtype=np.float64),
            fe_cov=np.asarray(result.cov_params(), dtype=np.float64),
            scale=float(result.scale),
            llf=float(result.llf),
            converged=True,
            method='qr',
            df_residual=float(result.df_resid),
            n_groups=None if groups is None else int(len(np.unique(groups))),
            raw=result,
        )

    def get_solver_info(self) -> dict:
        import statsmodels
        return {
            'solver': self.name,
            'estimation': 'least squares',
            'library': f'statsmodels {statsmodels.__version__}',
        }
