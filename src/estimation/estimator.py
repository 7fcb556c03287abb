"""
===============================================================================
ORBITDYN - Sequential Estimators
===============================================================================
User facing Kalman estimators.

    KalmanEstimator                extended filter, one or more builders,
                                   propagators re-built after each step
    SemiAnalyticalKalmanEstimator  single builder, nominal trajectory kept
                                   over the whole run
    KalmanEstimatorBuilder         fluent assembly of a KalmanEstimator

Measurements must be fed in non-decreasing date order. After every
measurement the observer (if any) receives the process model, which
exposes the current estimation.
===============================================================================
"""

import logging
from typing import Iterable, List, Optional

from core.errors import ConfigurationError
from estimation.decomposers import CholeskyDecomposer, MatrixDecomposer
from estimation.filter import ExtendedKalmanFilter
from estimation.kalman_model import KalmanModel
from estimation.observer import KalmanObserver
from estimation.semi_analytical import SemiAnalyticalKalmanModel

logger = logging.getLogger(__name__)


class _AbstractKalmanEstimator:
    """Observer handling and the estimation getters."""

    def __init__(self, model) -> None:
        self._model = model
        self._observer: Optional[KalmanObserver] = None

    def set_observer(self, observer: KalmanObserver) -> None:
        self._observer = observer

    def _notify(self) -> None:
        if self._observer is not None:
            self._observer.evaluation_performed(self._model)

    def get_current_date(self) -> float:
        return self._model.get_current_date()

    def get_current_measurement_number(self) -> int:
        return self._model.get_current_measurement_number()

    def get_physical_estimated_state(self):
        return self._model.get_physical_estimated_state()

    def get_physical_estimated_covariance_matrix(self):
        return self._model.get_physical_estimated_covariance_matrix()

    def get_physical_state_transition_matrix(self):
        return self._model.get_physical_state_transition_matrix()

    def get_physical_measurement_jacobian(self):
        return self._model.get_physical_measurement_jacobian()

    def get_physical_innovation_covariance_matrix(self):
        return self._model.get_physical_innovation_covariance_matrix()

    def get_physical_kalman_gain(self):
        return self._model.get_physical_kalman_gain()

    def get_estimated_names(self) -> List[str]:
        return self._model.get_estimated_names()

    def get_orbital_parameters_drivers(self, estimated_only: bool):
        return self._model.get_orbital_parameters_drivers(estimated_only)

    def get_propagation_parameters_drivers(self, estimated_only: bool):
        return self._model.get_propagation_parameters_drivers(estimated_only)

    def get_estimated_measurements_parameters(self):
        return self._model.get_estimated_measurements_parameters()

    def get_predicted_measurement(self):
        return self._model.get_predicted_measurement()

    def get_corrected_measurement(self):
        return self._model.get_corrected_measurement()

    def get_corrected_spacecraft_states(self) -> list:
        return self._model.get_corrected_spacecraft_states()


class KalmanEstimator(_AbstractKalmanEstimator):
    """
    Extended Kalman orbit determination.

    Parameters
    ----------
    decomposer : MatrixDecomposer
        Solver for the innovation covariance.
    builders : list of AbstractPropagatorBuilder
        One builder per estimated spacecraft.
    process_noise_providers : list of CovarianceMatrixProvider
        One provider per builder.
    estimated_measurement_parameters : iterable of ParameterDriver
        Measurement drivers; the selected ones are estimated.
    measurement_process_noise : CovarianceMatrixProvider, optional
        Covariance of the estimated measurement parameters.

    Examples
    --------
    >>> estimator = KalmanEstimator(CholeskyDecomposer(), [builder],
    ...                             [ConstantProcessNoise(P0)], [], None)
    >>> propagators = estimator.process_measurements(measurements)
    """

    def __init__(self, decomposer: MatrixDecomposer, builders, process_noise_providers,
                 estimated_measurement_parameters=(), measurement_process_noise=None) -> None:
        self._builders = list(builders)
        model = KalmanModel(self._builders, list(process_noise_providers),
                            list(estimated_measurement_parameters), measurement_process_noise,
                            ExtendedKalmanFilter(decomposer))
        super().__init__(model)
        logger.info("Kalman estimator ready: %d propagator(s), %d estimated parameters",
                    len(self._builders), model.dimension)

    def process_measurement(self, observed) -> list:
        """
        Process one measurement and return the propagators built from the
        corrected estimate.
        """
        self._model.process_measurement(observed)
        self._notify()
        return self._model.get_propagators()

    def process_measurements(self, measurements: Iterable) -> list:
        """Process measurements in order, return the final propagators."""
        propagators = self._model.get_propagators()
        for observed in measurements:
            propagators = self.process_measurement(observed)
        return propagators


class SemiAnalyticalKalmanEstimator(_AbstractKalmanEstimator):
    """
    Kalman orbit determination around a nominal trajectory.

    The nominal propagator is built once; the filter estimates the deviation
    from it. ``process_measurements`` returns a single propagator built
    from the final estimate.
    """

    def __init__(self, decomposer: MatrixDecomposer, builder, process_noise_provider,
                 estimated_measurement_parameters=(), measurement_process_noise=None) -> None:
        model = SemiAnalyticalKalmanModel(builder, process_noise_provider,
                                          list(estimated_measurement_parameters),
                                          measurement_process_noise,
                                          ExtendedKalmanFilter(decomposer))
        super().__init__(model)

    def process_measurement(self, observed) -> None:
        self._model.process_measurement(observed)
        self._notify()

    def process_measurements(self, measurements: Iterable):
        for observed in measurements:
            self.process_measurement(observed)
        return self._model.finalize_estimation()


class KalmanEstimatorBuilder:
    """
    Fluent assembly of a ``KalmanEstimator``.

    >>> estimator = (KalmanEstimatorBuilder()
    ...              .decomposer(QRDecomposer())
    ...              .add_propagation_configuration(builder, noise)
    ...              .build())
    """

    def __init__(self) -> None:
        self._decomposer: MatrixDecomposer = CholeskyDecomposer()
        self._builders = []
        self._providers = []
        self._measurement_parameters = []
        self._measurement_noise = None

    def decomposer(self, decomposer: MatrixDecomposer) -> 'KalmanEstimatorBuilder':
        self._decomposer = decomposer
        return self

    def add_propagation_configuration(self, builder, provider) -> 'KalmanEstimatorBuilder':
        self._builders.append(builder)
        self._providers.append(provider)
        return self

    def estimated_measurements_parameters(self, drivers,
                                          provider) -> 'KalmanEstimatorBuilder':
        self._measurement_parameters = list(drivers)
        self._measurement_noise = provider
        return self

    def build(self) -> KalmanEstimator:
        if not self._builders:
            raise ConfigurationError("no propagator builder was added to the Kalman estimator")
        return KalmanEstimator(self._decomposer, self._builders, self._providers,
                               self._measurement_parameters, self._measurement_noise)
