"""
Abstract base classes for solver backends.

Defines the interface all solvers must implement.
"""

from abc import ABC, abstractmethod
import numpy as np
from typing import Optional, List, Any
from dataclasses import dataclass, field


@dataclass
class MixedFitResult:
    """Fixed-effect estimates and variance components from a solver."""
    fe_params: np.ndarray        # Fixed effects (non-aliased columns only)
    fe_cov: np.ndarray           # Covariance of fe_params
    scale: float                 # Residual variance
    llf: float                   # (Restricted) log-likelihood
    converged: bool
    method: str                  # Optimizer / algorithm that produced the fit
    df_residual: float           # np.inf -> normal-theory inference
    cov_re: Optional[np.ndarray] = None
    re_names: List[str] = field(default_factory=list)
    n_groups: Optional[int] = None
    fit_warnings: List[str] = field(default_factory=list)
    raw: Any = field(default=None, repr=False)


class SolverBase(ABC):
    """Abstract base class for all solvers."""

    name = "base"

    @abstractmethod
    def fit(
        self,
        endog: np.ndarray,
        exog,
        groups: Optional[np.ndarray] = None,
        exog_re=None,
        reml: bool = True,
        maxiter: int = 200
    ) -> MixedFitResult:
        """
        Fit the model.

        Parameters
        ----------
        endog : ndarray, shape (n,)
            Response vector
        exog : DataFrame or ndarray, shape (n, p)
            Full-rank fixed-effects design (intercept included)
        groups : ndarray, shape (n,), optional
            Subject labels
        exog_re : DataFrame or ndarray, shape (n, q), optional
            Random-effects design
        reml : bool
            Restricted maximum likelihood
        maxiter : int
            Iteration limit per optimizer

        Returns
        -------
        MixedFitResult
        """
        pass

    @abstractmethod
    def get_solver_info(self) -> dict:
        """Get solver information."""
        pass
