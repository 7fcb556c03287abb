"""
===============================================================================
ORBITDYN - Semi-analytical Kalman Process Model
===============================================================================
Deviation filter around a single nominal trajectory.

The nominal propagator is built once from the initial driver values and
is never re-built during the run. Its harvester gives the cumulative
matrices since the start, the step matrices follow from:

    Phi_k  = STM(t_k) STM(t_k-1)^-1
    Jp_k   = J(t_k) - Phi_k J(t_k-1)

The filter state is the normalized deviation d from the nominal values:

    d-     = Phi_n d+            (prediction)
    x      = x_nominal + s d     (physical estimate)

Orbit and measurement drivers follow the estimate after every step.
Propagation drivers stay at their nominal values while the run is in
progress, since the nominal propagator shares its force models with the
builder; their estimate is written back by ``finalize_estimation``.
===============================================================================
"""

import logging

import numpy as np

from core.errors import ConfigurationError, EstimationNumericalError
from estimation.kalman_model import STM_NAME, AbstractKalmanModel

logger = logging.getLogger(__name__)


class SemiAnalyticalKalmanModel(AbstractKalmanModel):
    """
    Parameters
    ----------
    builder : AbstractPropagatorBuilder
    covariance_provider : CovarianceMatrixProvider
    estimated_measurement_parameters : iterable of ParameterDriver
    measurement_process_noise : CovarianceMatrixProvider, optional
    kalman_filter : ExtendedKalmanFilter
    """

    def __init__(self, builder, covariance_provider, estimated_measurement_parameters,
                 measurement_process_noise, kalman_filter) -> None:
        if builder is None:
            raise ConfigurationError("a propagator builder is required")
        super().__init__([builder], [covariance_provider], estimated_measurement_parameters,
                         measurement_process_noise, kalman_filter)
        self._builder = builder
        self._nominal_values = np.array([d.value for d in self._estimated])
        self._deviation = np.zeros(self.dimension)
        self._nominal_propagator = builder.build_propagator()
        self._harvester = self._nominal_propagator.setup_matrices_computation(STM_NAME)
        self._columns = self._harvester.get_jacobians_columns_names()
        self._nominal_state = self._nominal_propagator.get_initial_state()
        self._previous_stm = np.eye(6)
        self._previous_jacobian = None
        self._n_orbital = len(self._orbital_drivers)

    def get_nominal_propagator(self):
        return self._nominal_propagator

    def get_nominal_state(self):
        return self._nominal_state

    def get_physical_estimated_state(self) -> np.ndarray:
        values = np.array([d.value for d in self._estimated])
        # propagation drivers still hold their nominal value
        for g in self._propagation_index.values():
            values[g] = self._nominal_values[g] + self._scales[g] * self._deviation[g]
        return values

    def _apply_deviation(self, nominal_state, deviation: np.ndarray) -> None:
        self._builder.reset_orbit(nominal_state)
        for g in range(self._n_orbital):
            self._estimated[g].normalized_value = deviation[g]
        for g in self._measurement_indices():
            self._estimated[g].value = self._nominal_values[g] + self._scales[g] * deviation[g]

    def _step_matrices(self, stm, jacobian):
        step_stm = stm @ np.linalg.inv(self._previous_stm)
        if jacobian is None:
            return step_stm, None
        if self._previous_jacobian is None:
            return step_stm, jacobian
        return step_stm, jacobian - step_stm @ self._previous_jacobian

    def process_measurement(self, observed) -> None:
        self._check_measurement(observed)
        number = self._measurement_number + 1
        previous_states = self._corrected_states

        nominal = self._nominal_propagator.propagate(observed.date)
        stm = self._harvester.get_state_transition_matrix(nominal)
        jacobian = self._harvester.get_parameters_jacobian(nominal)
        step_stm, step_jacobian = self._step_matrices(stm, jacobian)

        # prediction
        transition = self._normalized_transition([step_stm], [step_jacobian], [self._columns])
        predicted_deviation = transition @ self._deviation
        self._apply_deviation(nominal, predicted_deviation)
        predicted = [self._builder.current_state()]
        Q = self._normalized_process_noise(previous_states, predicted)
        predicted_covariance = self._filter.predict(self._covariance, transition, Q)

        predicted_measurement = observed.estimate(0, number, predicted)
        logger.debug("Measurement %d (%s) at t=%.3f s: residual %s", number,
                     type(observed).__name__, observed.date, predicted_measurement.residuals)

        H = None
        if observed.enabled:
            H = self._normalized_measurement_jacobian(predicted_measurement)
            innovation = predicted_measurement.residuals / observed.theoretical_standard_deviation
            try:
                corrected_deviation, corrected_covariance = self._filter.correct(
                    predicted_deviation, predicted_covariance, H, innovation,
                    np.eye(observed.dimension))
            except EstimationNumericalError:
                # deviation and step matrices still refer to the last corrected date
                self._apply_deviation(self._nominal_state, self._deviation)
                raise
        else:
            corrected_deviation, corrected_covariance = predicted_deviation, predicted_covariance

        self._predicted_states = predicted
        self._transition = transition
        self._predicted_measurement = predicted_measurement
        self._measurement_jacobian = H

        self._nominal_state = nominal
        self._deviation = corrected_deviation
        self._covariance = corrected_covariance
        self._apply_deviation(nominal, corrected_deviation)
        self._corrected_states = [self._builder.current_state()]
        self._corrected_measurement = observed.estimate(0, number, self._corrected_states)

        self._previous_stm = stm
        self._previous_jacobian = jacobian
        self._current_date = observed.date
        self._measurement_number = number

    def finalize_estimation(self):
        """
        Write the estimated propagation parameters into their drivers and
        return a propagator starting from the last corrected state.
        """
        for g in self._propagation_index.values():
            self._estimated[g].value = self._nominal_values[g] + self._scales[g] * self._deviation[g]
        self._builder.reset_orbit(self._corrected_states[0])
        propagator = self._builder.build_propagator()
        logger.info("Semi-analytical estimation finalized after %d measurements at t=%.3f s",
                    self._measurement_number, self._current_date)
        return propagator
