"""
Solver selection and management.

Provides a unified interface to the mixed-model and fixed-effects solvers.
"""

from typing import Union

from .base import SolverBase, MixedFitResult
from .mixedlm_backend import MixedLMSolver
from .ols_backend import OLSSolver


_SOLVERS = {
    'mixedlm': MixedLMSolver,
    'ols': OLSSolver,
}


def get_backend(backend: Union[str, SolverBase] = 'auto',
                random_effects: str = 'slope') -> SolverBase:
    """
    Get computational backend.

    Parameters
    ----------
    backend : str or SolverBase
        Solver selection:
        - 'auto': MixedLM, or OLS when ``random_effects='none'``
        - 'mixedlm': statsmodels MixedLM (REML)
        - 'ols': statsmodels OLS (no random effects)
        - a SolverBase instance is returned unchanged
    random_effects : str
        Random-effects structure requested by the model

    Returns
    -------
    SolverBase
        Solver instance

    Examples
    --------
    >>> get_backend('auto').name
    'mixedlm'
    >>> get_backend('auto', random_effects='none').name
    'ols'
    """
    if isinstance(backend, SolverBase):
        return backend

    if backend == 'auto':
        return OLSSolver() if random_effects == 'none' else MixedLMSolver()

    if backend in _SOLVERS:
        if backend == 'ols' and random_effects != 'none':
            raise ValueError(
                f"backend='ols' cannot fit random_effects='{random_effects}'.\n"
                f"Use random_effects='none' or backend='mixedlm'"
            )
        if backend == 'mixedlm' and random_effects == 'none':
            raise ValueError(
                "backend='mixedlm' needs random effects.\n"
                "Use random_effects='slope'/'intercept' or backend='ols'"
            )
        return _SOLVERS[backend]()

    raise ValueError(
        f"Unknown backend: '{backend}'\n"
        f"Valid options: 'auto', {', '.join(repr(k) for k in _SOLVERS)}"
    )


def list_available_backends() -> list:
    """List names of available backends."""
    return list(_SOLVERS)


def print_backend_info():
    """Print solver information (diagnostic)."""
    print("pytrialfx Solver Status")
    print("=" * 50)
    for name, solver_cls in _SOLVERS.items():
        info = solver_cls().get_solver_info()
        print(f"  {name:<10} {info['estimation']:<15} {info['library']}")


__all__ = [
    'get_backend',
    'list_available_backends',
    'print_backend_info',
    'SolverBase',
    'MixedFitResult',
    'MixedLMSolver',
    'OLSSolver',
]


if __name__ == "__main__":
    print_backend_info()
