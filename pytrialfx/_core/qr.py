"""
Rank-revealing QR decomposition with column pivoting.

Used to find aliased design columns and the null space of the design,
which decides what the model can and cannot estimate.
"""

import numpy as np
from scipy.linalg import qr
from dataclasses import dataclass


@dataclass
class QRDecomposition:
    """Result of QR decomposition with pivoting."""
    R: np.ndarray            # Upper triangular matrix R
    pivot: np.ndarray        # Pivot indices (0-indexed)
    rank: int                # Determined rank
    tol: float               # Relative tolerance used

    @property
    def kept(self) -> np.ndarray:
        """Indices of linearly independent columns, in original order."""
        return np.sort(self.pivot[:self.rank])

    @property
    def aliased(self) -> np.ndarray:
        """Indices of columns that are combinations of the kept ones."""
        return np.sort(self.pivot[self.rank:])


def qr_decomposition_with_pivoting(
    X: np.ndarray,
    tol: float = 1e-7,
) -> QRDecomposition:
    """
    QR decomposition with column pivoting.

    Parameters
    ----------
    X : ndarray, shape (n, p)
        Matrix to decompose
    tol : float, default=1e-7
        Tolerance for rank determination, relative to the largest
        diagonal element of R (R's lm() default)

    Returns
    -------
    result : QRDecomposition
        QR decomposition with pivoting
    """
    X = np.asarray(X, dtype=np.float64)
    if X.shape[1] == 0:
        return QRDecomposition(R=np.zeros((0, 0)), pivot=np.zeros(0, dtype=np.int64),
                               rank=0, tol=tol)

    R, P = qr(X, mode='r', pivoting=True)

    R_diag = np.abs(np.diag(R))
    if R_diag.size == 0 or R_diag[0] == 0:
        rank = 0
    else:
        rank = int(np.sum(R_diag > tol * R_diag[0]))

    return QRDecomposition(
        R=R[:rank, :rank],
        pivot=P.astype(np.int64),
        rank=rank,
        tol=tol
    )


def null_space_basis(X: np.ndarray, rank: int) -> np.ndarray:
    """
    Orthonormal basis of the null space of X, shape (p, p - rank).

    A linear function ``L @ beta`` is estimable iff ``L @ N == 0``.
    """
    X = np.asarray(X, dtype=np.float64)
    p = X.shape[1]
    if rank >= p:
        return np.zeros((p, 0))
    _, _, Vt = np.linalg.svd(X, full_matrices=X.shape[0] < p)
    return Vt[rank:].T
