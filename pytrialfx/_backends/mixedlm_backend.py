"""
Linear mixed model solver using statsmodels MixedLM.

REML by default; the optimizers are tried in order until one converges.
"""

import warnings
import numpy as np
from typing import Optional, Sequence

from statsmodels.regression.mixed_linear_model import MixedLM
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from .base import SolverBase, MixedFitResult
from ..exceptions import ModelFitError


class MixedLMSolver(SolverBase):
    """
    statsmodels MixedLM with per-subject random effects.

    Optimizers run in order, each starting from the previous estimate,
    until one converges (Powell, then L-BFGS by default).

    Fully deterministic: no random starts.
    """

    name = "mixedlm"

    def __init__(self, methods: Sequence[str] = ('powell', 'lbfgs')):
        self.methods = list(methods)

    def fit(
        self,
        endog: np.ndarray,
        exog,
        groups: Optional[np.ndarray] = None,
        exog_re=None,
        reml: bool = True,
        maxiter: int = 200
    ) -> MixedFitResult:
        if groups is None:
            raise ValueError("MixedLM needs subject groups")

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            try:
                model = MixedLM(endog, exog, groups=groups, exog_re=exog_re)
                result = model.fit(reml=reml, method=self.methods, maxiter=maxiter)
            except (np.linalg.LinAlgError, ValueError) as e:
                raise ModelFitError(
                    f"MixedLM fit failed: {e}",
                    diagnostics={
                        'solver': self.name,
                        'methods': self.methods,
                        'warnings': [str(w.message) for w in caught],
                    }
                ) from e

        fit_warnings = []
        for w in caught:
            if issubclass(w.category, (ConvergenceWarning, RuntimeWarning)):
                fit_warnings.append(str(w.message))
            else:
                warnings.warn(w.message)

        k_fe = model.k_fe
        cov = np.asarray(result.cov_params(), dtype=np.float64)[:k_fe, :k_fe]
        cov_re = np.asarray(result.cov_re, dtype=np.float64)

        return MixedFitResult(
            fe_params=np.asarray(result.fe_params, dtype=np.float64),
            fe_cov=cov,
            scale=float(result.scale),
            llf=float(result.llf),
            converged=bool(result.converged),
            method=str(result.method),
            df_residual=np.inf,
            cov_re=cov_re,
            re_names=list(model.data.exog_re_names),
            n_groups=int(model.n_groups),
            fit_warnings=fit_warnings,
            raw=result,
        )

    def get_solver_info(self) -> dict:
        import statsmodels
        return {
            'solver': self.name,
            'estimation': 'REML/ML',
            'library': f'statsmodels {statsmodels.__version__}',
            'methods': self.methods,
        }
