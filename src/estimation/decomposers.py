"""
===============================================================================
ORBITDYN - Matrix Decomposers
===============================================================================
Solvers used to apply the inverse of the innovation covariance S in the
Kalman gain K = P H^T S^-1, without forming S^-1 explicitly.

    CholeskyDecomposer   S = L L^T, requires S symmetric positive definite
    QRDecomposer         S = Q R, any square non-singular S

Both raise ``numpy.linalg.LinAlgError`` when the matrix is singular with
respect to their threshold; the filter wraps it into an
``EstimationNumericalError``.
===============================================================================
"""

from abc import ABC, abstractmethod

import numpy as np
from scipy import linalg


class MatrixDecomposer(ABC):

    @abstractmethod
    def solve(self, matrix: np.ndarray, rhs: np.ndarray) -> np.ndarray:
        """Solution X of matrix @ X = rhs."""


class CholeskyDecomposer(MatrixDecomposer):
    """
    Parameters
    ----------
    threshold : float
        Smallest accepted diagonal element of the factor, relative to the
        largest one.
    """

    def __init__(self, threshold: float = 1.0e-15) -> None:
        self.threshold = threshold

    def solve(self, matrix, rhs):
        factor, lower = linalg.cho_factor(matrix, lower=True)
        diagonal = np.abs(np.diag(factor))
        if diagonal.min() <= self.threshold * diagonal.max():
            raise np.linalg.LinAlgError(
                f"matrix is not positive definite (pivot ratio {diagonal.min() / diagonal.max():.3e})")
        return linalg.cho_solve((factor, lower), rhs)


class QRDecomposer(MatrixDecomposer):
    """
    Parameters
    ----------
    threshold : float
        Singularity threshold on |R_ii| relative to max |R_ii|.
    """

    def __init__(self, threshold: float = 1.0e-12) -> None:
        self.threshold = threshold

    def solve(self, matrix, rhs):
        q, r = linalg.qr(matrix)
        diagonal = np.abs(np.diag(r))
        if diagonal.max() == 0.0 or diagonal.min() <= self.threshold * diagonal.max():
            raise np.linalg.LinAlgError("matrix is singular")
        return linalg.solve_triangular(r, q.T @ rhs)
