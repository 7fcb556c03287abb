"""
===============================================================================
ORBITDYN - Kalman Process Model
===============================================================================
Process model of the extended Kalman estimator.

The estimated state gathers the selected parameter drivers in a fixed
order for the whole run:

    [orbital (builder 0), orbital (builder 1), ..., propagation, measurement]

Propagation and measurement drivers are merged by name and sorted. When
several builders are used, orbital driver names are prefixed with the
builder index ("[1]x").

All filter quantities are normalized by the driver scales s:

    x_n   = (x - x_ref) / s
    P_n   = P / (s s^T)
    Phi_n = Phi * s_col / s_row
    H_n   = H * s_col / sigma_row

Each measurement goes through:

    1. propagate every reference trajectory to the measurement date and
       harvest the STM and parameters Jacobian from the harvester bound to
       the propagator that produced it
    2. move the orbital drivers to the predicted orbit
    3. predict the covariance
    4. evaluate the measurement on the predicted states and correct
    5. write the corrected values back into the drivers and rebuild the
       propagators and their harvesters from them
    6. notify the observer
===============================================================================
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from core.errors import ConfigurationError, EstimationNumericalError, MeasurementOrderError
from core.parameters import ParameterDriver, ParameterDriversList
from estimation.covariance import CovarianceMatrixProvider
from estimation.filter import ExtendedKalmanFilter

logger = logging.getLogger(__name__)

STM_NAME = "kalman-stm"


class AbstractKalmanModel:
    """
    Driver bookkeeping, normalization and the estimation accessors shared
    by the Kalman process models.

    Parameters
    ----------
    builders : sequence of AbstractPropagatorBuilder
    covariance_providers : sequence of CovarianceMatrixProvider
        One per builder, over its selected orbital and propagation drivers.
    estimated_measurement_parameters : iterable of ParameterDriver
        Measurement drivers; the selected ones are estimated.
    measurement_process_noise : CovarianceMatrixProvider, optional
        Required when measurement parameters are estimated.
    kalman_filter : ExtendedKalmanFilter
    """

    def __init__(self, builders: Sequence, covariance_providers: Sequence[CovarianceMatrixProvider],
                 estimated_measurement_parameters, measurement_process_noise,
                 kalman_filter: ExtendedKalmanFilter) -> None:
        if not builders:
            raise ConfigurationError("at least one propagator builder is required")
        if len(covariance_providers) != len(builders):
            raise ConfigurationError(
                f"{len(builders)} propagator builders but {len(covariance_providers)} "
                "covariance providers")
        self._builders = list(builders)
        self._providers = list(covariance_providers)
        self._measurement_noise_provider = measurement_process_noise
        self._filter = kalman_filter

        if len(self._builders) > 1:
            for i, builder in enumerate(self._builders):
                for driver in builder.get_orbital_parameters_drivers():
                    if not driver.name.startswith("["):
                        driver.name = f"[{i}]{driver.name}"

        # estimated drivers, in state order
        self._orbital_drivers = ParameterDriversList()
        self._orbital_slices: List[List[tuple]] = []
        position = 0
        for builder in self._builders:
            slices = []
            for k, driver in enumerate(builder.get_orbital_parameters_drivers()):
                if driver.selected:
                    self._orbital_drivers.add(driver)
                    slices.append((k, position))
                    position += 1
            self._orbital_slices.append(slices)

        self._propagation_drivers = ParameterDriversList()
        for builder in self._builders:
            for driver in builder.get_propagation_parameters_drivers():
                if driver.selected:
                    self._propagation_drivers.add(driver)
        self._propagation_drivers.sort()

        self._measurement_drivers = ParameterDriversList()
        for driver in estimated_measurement_parameters:
            if driver.selected:
                self._measurement_drivers.add(driver)
        self._measurement_drivers.sort()

        self._estimated: List[ParameterDriver] = (self._orbital_drivers.get_drivers()
                                                  + self._propagation_drivers.get_drivers()
                                                  + self._measurement_drivers.get_drivers())
        self._scales = np.array([d.scale for d in self._estimated])
        n_orbital = len(self._orbital_drivers)
        n_propagation = len(self._propagation_drivers)
        self._propagation_index: Dict[str, int] = {
            d.name: n_orbital + j for j, d in enumerate(self._propagation_drivers)}
        self._measurement_index: Dict[str, int] = {
            d.name: n_orbital + n_propagation + j for j, d in enumerate(self._measurement_drivers)}

        self._current_date = self._builders[0].initial_orbit_date
        self._measurement_number = 0
        self._covariance = self._initial_normalized_covariance()
        self._transition = np.eye(self.dimension)
        self._measurement_jacobian = None
        self._predicted_measurement = None
        self._corrected_measurement = None
        self._predicted_states = [b.current_state() for b in self._builders]
        self._corrected_states = list(self._predicted_states)

    # -------------------------------------------------------------------------
    # set-up helpers
    # -------------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return len(self._estimated)

    def _builder_indices(self, index: int) -> List[int]:
        """Global indices covered by the covariance provider of builder *index*."""
        builder = self._builders[index]
        indices = [g for _, g in self._orbital_slices[index]]
        indices += [self._propagation_index[d.name]
                    for d in builder.get_propagation_parameters_drivers() if d.selected]
        return indices

    def _measurement_indices(self) -> List[int]:
        return [self._measurement_index[d.name] for d in self._measurement_drivers]

    def _place(self, target: np.ndarray, indices: List[int], block, what: str) -> None:
        if not indices:
            return
        block = np.atleast_2d(np.asarray(block, dtype=np.float64))
        if block.shape != (len(indices), len(indices)):
            raise ConfigurationError(
                f"{what} has shape {block.shape}, expected {(len(indices), len(indices))}")
        target[np.ix_(indices, indices)] = block

    def _normalize(self, physical: np.ndarray) -> np.ndarray:
        return physical / np.outer(self._scales, self._scales)

    def _initial_normalized_covariance(self) -> np.ndarray:
        physical = np.zeros((self.dimension, self.dimension))
        for i, builder in enumerate(self._builders):
            matrix = self._providers[i].get_initial_covariance_matrix(builder.current_state())
            self._place(physical, self._builder_indices(i), matrix,
                        f"initial covariance of builder {i}")
        if len(self._measurement_drivers) > 0:
            if self._measurement_noise_provider is None:
                raise ConfigurationError(
                    "measurement parameters are estimated but no measurement "
                    "process noise provider was given")
            matrix = self._measurement_noise_provider.get_initial_covariance_matrix(
                self._builders[0].current_state())
            self._place(physical, self._measurement_indices(), matrix,
                        "initial measurement parameters covariance")
        return self._normalize(physical)

    def _normalized_process_noise(self, previous_states, current_states) -> np.ndarray:
        physical = np.zeros((self.dimension, self.dimension))
        for i in range(len(self._builders)):
            matrix = self._providers[i].get_process_noise_matrix(previous_states[i],
                                                                 current_states[i])
            self._place(physical, self._builder_indices(i), matrix,
                        f"process noise of builder {i}")
        if len(self._measurement_drivers) > 0:
            matrix = self._measurement_noise_provider.get_process_noise_matrix(
                previous_states[0], current_states[0])
            self._place(physical, self._measurement_indices(), matrix,
                        "measurement parameters process noise")
        return self._normalize(physical)

    def _normalized_transition(self, stms, jacobians, column_names) -> np.ndarray:
        """Phi_n from per builder 6x6 STMs and 6xk parameter Jacobians."""
        s = self._scales
        phi = np.eye(self.dimension)
        for i, slices in enumerate(self._orbital_slices):
            for a, ga in slices:
                for b, gb in slices:
                    phi[ga, gb] = stms[i][a, b] * s[gb] / s[ga]
                if jacobians[i] is None:
                    continue
                for c, name in enumerate(column_names[i]):
                    gp = self._propagation_index.get(name)
                    if gp is not None:
                        phi[ga, gp] = jacobians[i][a, c] * s[gp] / s[ga]
        return phi

    def _normalized_measurement_jacobian(self, estimated) -> np.ndarray:
        """
        H_n of a measurement evaluated on the predicted states.

        Propagation parameters act on the measurement through the orbit only,
        and the orbit already carries their effect through Phi, so their
        columns hold the direct partials only (zero for orbit measurements).
        """
        observed = estimated.observed
        s = self._scales
        H = np.zeros((observed.dimension, self.dimension))
        for k, satellite in enumerate(observed.satellite_indices):
            dh_dy = estimated.get_state_derivatives(k)
            for a, ga in self._orbital_slices[satellite]:
                H[:, ga] += dh_dy[:, a] * s[ga]
        for driver in observed.parameter_drivers:
            gm = self._measurement_index.get(driver.name)
            if gm is not None:
                H[:, gm] += estimated.get_parameter_derivatives(driver) * s[gm]
        return H / observed.theoretical_standard_deviation[:, None]

    def _check_measurement(self, observed) -> None:
        if observed.date < self._current_date:
            raise MeasurementOrderError(observed.date, self._current_date)
        for satellite in observed.satellite_indices:
            if not 0 <= satellite < len(self._builders):
                raise ConfigurationError(
                    f"measurement refers to satellite {satellite}, only "
                    f"{len(self._builders)} propagators are estimated")

    # -------------------------------------------------------------------------
    # estimation accessors
    # -------------------------------------------------------------------------

    def get_current_date(self) -> float:
        return self._current_date

    def get_current_measurement_number(self) -> int:
        return self._measurement_number

    def get_estimated_drivers(self) -> List[ParameterDriver]:
        return list(self._estimated)

    def get_estimated_names(self) -> List[str]:
        return [d.name for d in self._estimated]

    def get_orbital_parameters_drivers(self, estimated_only: bool) -> ParameterDriversList:
        if estimated_only:
            return self._orbital_drivers
        drivers = ParameterDriversList()
        for builder in self._builders:
            for driver in builder.get_orbital_parameters_drivers():
                drivers.add(driver)
        return drivers

    def get_propagation_parameters_drivers(self, estimated_only: bool) -> ParameterDriversList:
        if estimated_only:
            return self._propagation_drivers
        drivers = ParameterDriversList()
        for builder in self._builders:
            for driver in builder.get_propagation_parameters_drivers():
                drivers.add(driver)
        return drivers

    def get_estimated_measurements_parameters(self) -> ParameterDriversList:
        return self._measurement_drivers

    def get_physical_estimated_state(self) -> np.ndarray:
        return np.array([d.value for d in self._estimated])

    def get_physical_estimated_covariance_matrix(self) -> np.ndarray:
        return self._covariance * np.outer(self._scales, self._scales)

    def get_physical_state_transition_matrix(self) -> np.ndarray:
        return self._transition * np.outer(self._scales, 1.0 / self._scales)

    def get_physical_measurement_jacobian(self) -> Optional[np.ndarray]:
        if self._measurement_jacobian is None or self._predicted_measurement is None:
            return None
        sigma = self._predicted_measurement.observed.theoretical_standard_deviation
        return self._measurement_jacobian * np.outer(sigma, 1.0 / self._scales)

    def get_physical_innovation_covariance_matrix(self) -> Optional[np.ndarray]:
        S = self._filter.innovation_covariance
        if S is None or self._predicted_measurement is None:
            return None
        sigma = self._predicted_measurement.observed.theoretical_standard_deviation
        return S * np.outer(sigma, sigma)

    def get_physical_kalman_gain(self) -> Optional[np.ndarray]:
        K = self._filter.gain
        if K is None or self._predicted_measurement is None:
            return None
        sigma = self._predicted_measurement.observed.theoretical_standard_deviation
        return K * np.outer(self._scales, 1.0 / sigma)

    def get_predicted_measurement(self):
        return self._predicted_measurement

    def get_corrected_measurement(self):
        return self._corrected_measurement

    def get_predicted_spacecraft_states(self) -> list:
        return list(self._predicted_states)

    def get_corrected_spacecraft_states(self) -> list:
        return list(self._corrected_states)


class KalmanModel(AbstractKalmanModel):
    """
    Extended Kalman process model: reference trajectories are re-built
    from the corrected estimate after every measurement.
    """

    def __init__(self, builders, covariance_providers, estimated_measurement_parameters,
                 measurement_process_noise, kalman_filter: ExtendedKalmanFilter) -> None:
        super().__init__(builders, covariance_providers, estimated_measurement_parameters,
                         measurement_process_noise, kalman_filter)
        self._propagators = []
        self._harvesters = []
        self._rebuild_propagators()

    def _rebuild_propagators(self) -> None:
        self._propagators = [b.build_propagator() for b in self._builders]
        self._harvesters = [p.setup_matrices_computation(STM_NAME) for p in self._propagators]

    def get_propagators(self) -> list:
        return list(self._propagators)

    def process_measurement(self, observed) -> None:
        self._check_measurement(observed)
        number = self._measurement_number + 1
        previous_states = self._corrected_states

        # reference trajectories and their partial derivatives
        predicted = [p.propagate(observed.date) for p in self._propagators]
        stms = [h.get_state_transition_matrix(s) for h, s in zip(self._harvesters, predicted)]
        jacobians = [h.get_parameters_jacobian(s) for h, s in zip(self._harvesters, predicted)]
        columns = [h.get_jacobians_columns_names() for h in self._harvesters]
        for builder, state in zip(self._builders, predicted):
            builder.reset_orbit(state)

        # prediction
        transition = self._normalized_transition(stms, jacobians, columns)
        Q = self._normalized_process_noise(previous_states, predicted)
        predicted_covariance = self._filter.predict(self._covariance, transition, Q)
        predicted_state = np.array([d.normalized_value for d in self._estimated])

        states = [predicted[k] for k in observed.satellite_indices]
        predicted_measurement = observed.estimate(0, number, states)
        logger.debug("Measurement %d (%s) at t=%.3f s: residual %s", number,
                     type(observed).__name__, observed.date, predicted_measurement.residuals)

        H = None
        if observed.enabled:
            H = self._normalized_measurement_jacobian(predicted_measurement)
            innovation = predicted_measurement.residuals / observed.theoretical_standard_deviation
            R = np.eye(observed.dimension)
            try:
                corrected_state, corrected_covariance = self._filter.correct(
                    predicted_state, predicted_covariance, H, innovation, R)
            except EstimationNumericalError:
                # back to the last corrected orbits; propagators were not rebuilt
                for builder, state in zip(self._builders, previous_states):
                    builder.reset_orbit(state)
                raise
        else:
            corrected_state, corrected_covariance = predicted_state, predicted_covariance

        self._predicted_states = predicted
        self._transition = transition
        self._predicted_measurement = predicted_measurement
        self._measurement_jacobian = H

        # de-normalize into the drivers and rebuild the reference trajectories
        for driver, value in zip(self._estimated, corrected_state):
            driver.normalized_value = value
        self._covariance = corrected_covariance
        self._rebuild_propagators()
        self._corrected_states = [p.get_initial_state() for p in self._propagators]
        corrected_states = [self._corrected_states[k] for k in observed.satellite_indices]
        self._corrected_measurement = observed.estimate(0, number, corrected_states)

        self._current_date = observed.date
        self._measurement_number = number
