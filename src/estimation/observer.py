"""
Observers notified after every processed measurement.

The object handed to ``evaluation_performed`` is the process model of the
running estimator; it answers the same ``get_*`` queries as the estimator
(current date and measurement number, physical state and covariance,
predicted and corrected measurements...).
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class KalmanObserver(ABC):

    @abstractmethod
    def evaluation_performed(self, estimation) -> None:
        """Called once the measurement has been fully processed."""


class EstimationHistory(KalmanObserver):
    """
    Record one row per processed measurement.

    Columns: measurement number, date, measurement type, every estimated
    driver value, the 1-sigma of each estimated driver, and the predicted
    and corrected residuals (one column per measurement component).
    """

    def __init__(self) -> None:
        self._rows = []

    def evaluation_performed(self, estimation) -> None:
        row = {
            'number': estimation.get_current_measurement_number(),
            'date': estimation.get_current_date(),
        }
        predicted = estimation.get_predicted_measurement()
        corrected = estimation.get_corrected_measurement()
        if predicted is not None:
            row['measurement'] = type(predicted.observed).__name__
            row['enabled'] = predicted.observed.enabled
            for k, value in enumerate(predicted.residuals):
                row[f'residual_{k}'] = value
        if corrected is not None:
            for k, value in enumerate(corrected.residuals):
                row[f'corrected_residual_{k}'] = value
        names = estimation.get_estimated_names()
        state = estimation.get_physical_estimated_state()
        sigma = np.sqrt(np.clip(estimation.get_physical_estimated_covariance_matrix().diagonal(), 0.0, None))
        for k, name in enumerate(names):
            row[name] = state[k]
            row[f'sigma_{name}'] = sigma[k]
        self._rows.append(row)

    def __len__(self) -> int:
        return len(self._rows)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self._rows)

    def to_csv(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().to_csv(path, index=False)
        logger.info("Estimation history (%d rows) written to %s", len(self._rows), path)
        return path
