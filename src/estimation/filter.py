"""
===============================================================================
ORBITDYN - Extended Kalman Filter
===============================================================================
Predict / correct steps on a normalized state.

Prediction (the process model supplies the predicted state and the
linearized transition):

    P- = Phi P Phi^T + Q

Correction:

    S  = H P- H^T + R                 innovation covariance
    K  = P- H^T S^-1                  through the decomposer
    x+ = x- + K (z - h(x-))
    P+ = (I - K H) P- (I - K H)^T + K R K^T      (Joseph form)

The Joseph form keeps P+ symmetric positive semi-definite even when K is
not exactly optimal. Symmetry is enforced on the result.
===============================================================================
"""

import logging
from typing import Tuple

import numpy as np

from core.errors import EstimationNumericalError
from estimation.decomposers import MatrixDecomposer

logger = logging.getLogger(__name__)


class ExtendedKalmanFilter:
    """
    Parameters
    ----------
    decomposer : MatrixDecomposer
        Solver for the innovation covariance.
    """

    def __init__(self, decomposer: MatrixDecomposer) -> None:
        self.decomposer = decomposer
        self.innovation_covariance = None
        self.gain = None

    @staticmethod
    def predict(covariance: np.ndarray, transition: np.ndarray,
                process_noise: np.ndarray) -> np.ndarray:
        predicted = transition @ covariance @ transition.T + process_noise
        return 0.5 * (predicted + predicted.T)

    def correct(self, predicted_state: np.ndarray, predicted_covariance: np.ndarray,
                measurement_jacobian: np.ndarray, innovation: np.ndarray,
                measurement_noise: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Returns
        -------
        tuple
            (corrected_state, corrected_covariance)

        Raises
        ------
        EstimationNumericalError
            If the innovation covariance cannot be decomposed.
        """
        H = measurement_jacobian
        P = predicted_covariance
        R = measurement_noise
        S = H @ P @ H.T + R
        try:
            # K^T = S^-1 H P (S and P symmetric)
            K = self.decomposer.solve(S, H @ P).T
        except np.linalg.LinAlgError as exc:
            logger.error("Innovation covariance decomposition failed: %s", exc)
            raise EstimationNumericalError(
                f"singular innovation covariance in Kalman correction: {exc}") from exc
        if not np.all(np.isfinite(K)):
            logger.error("Non finite Kalman gain")
            raise EstimationNumericalError("non finite Kalman gain in correction")
        self.innovation_covariance = S
        self.gain = K

        corrected_state = predicted_state + K @ innovation
        I_KH = np.eye(P.shape[0]) - K @ H
        corrected = I_KH @ P @ I_KH.T + K @ R @ K.T
        return corrected_state, 0.5 * (corrected + corrected.T)
