"""
Covariance matrix providers: initial covariance and process noise.

Matrices are physical (not normalized) and ordered like the estimated
parameters they cover: selected orbital parameters first, then selected
propagation parameters (or measurement parameters for the measurement
noise provider).
"""

from abc import ABC, abstractmethod

import numpy as np


class CovarianceMatrixProvider(ABC):

    @abstractmethod
    def get_initial_covariance_matrix(self, initial_state) -> np.ndarray:
        """Covariance at the start of the estimation."""

    @abstractmethod
    def get_process_noise_matrix(self, previous_state, current_state) -> np.ndarray:
        """Process noise added between two measurement dates."""


def _square(matrix, what: str) -> np.ndarray:
    matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    if matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"{what} matrix must be square, got shape {matrix.shape}")
    return matrix


class ConstantProcessNoise(CovarianceMatrixProvider):
    """Same process noise whatever the time step."""

    def __init__(self, initial, process=None) -> None:
        self._initial = _square(initial, "initial covariance")
        self._process = (np.zeros_like(self._initial) if process is None
                         else _square(process, "process noise"))

    def get_initial_covariance_matrix(self, initial_state) -> np.ndarray:
        return self._initial.copy()

    def get_process_noise_matrix(self, previous_state, current_state) -> np.ndarray:
        return self._process.copy()


class LinearProcessNoise(CovarianceMatrixProvider):
    """
    Process noise growing linearly with the time step: Q = rate * |dt|.

    ``rate`` is a matrix (or a vector for its diagonal) in units of
    covariance per second.
    """

    def __init__(self, initial, rate) -> None:
        self._initial = _square(initial, "initial covariance")
        rate = np.asarray(rate, dtype=np.float64)
        self._rate = np.diag(rate) if rate.ndim == 1 else _square(rate, "process noise rate")

    def get_initial_covariance_matrix(self, initial_state) -> np.ndarray:
        return self._initial.copy()

    def get_process_noise_matrix(self, previous_state, current_state) -> np.ndarray:
        dt = abs(current_state.date - previous_state.date)
        return self._rate * dt
