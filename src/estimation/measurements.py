"""
===============================================================================
ORBITDYN - Measurements
===============================================================================
Observed measurements and their theoretical evaluation.

An ``ObservedMeasurement`` is immutable apart from its enabled flag. Its
``estimate`` method evaluates the measurement model on one spacecraft
state per satellite involved and returns an ``EstimatedMeasurement``
holding

    estimated_value          h(Y, p)
    state derivatives        dh/dY, one (dim x 6) matrix per satellite
    parameter derivatives    dh/dp for each of the measurement's drivers

Available measurement types:

    Position   inertial position, 3 components
    PV         inertial position and velocity, 6 components
    Range      instantaneous geometric range from a ground station, with
               an optional station range bias driver
===============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

import numpy as np

from core.frames import ecef_to_eci_pv, station_position
from core.parameters import ParameterDriver
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)


class EstimatedMeasurement:
    """
    Theoretical value of an observed measurement and its partial derivatives.

    Parameters
    ----------
    observed : ObservedMeasurement
    iteration, count : int
        Filter iteration and evaluation numbers.
    states : sequence of SpacecraftState
        States the measurement was evaluated on.
    estimated_value : np.ndarray
    """

    def __init__(self, observed: 'ObservedMeasurement', iteration: int, count: int,
                 states: Sequence[SpacecraftState], estimated_value) -> None:
        self.observed = observed
        self.iteration = iteration
        self.count = count
        self.states = list(states)
        self.estimated_value = np.atleast_1d(np.asarray(estimated_value, dtype=np.float64))
        self._state_derivatives: List[np.ndarray] = [
            np.zeros((observed.dimension, 6)) for _ in self.states]
        self._parameter_derivatives: Dict[str, np.ndarray] = {}

    @property
    def date(self) -> float:
        return self.observed.date

    @property
    def residuals(self) -> np.ndarray:
        """observed - estimated"""
        return self.observed.observed_value - self.estimated_value

    def get_state_derivatives(self, index: int) -> np.ndarray:
        return self._state_derivatives[index]

    def set_state_derivatives(self, index: int, derivatives) -> None:
        self._state_derivatives[index] = np.asarray(derivatives, dtype=np.float64).reshape(
            self.observed.dimension, 6)

    def get_parameter_derivatives(self, driver: ParameterDriver) -> np.ndarray:
        return self._parameter_derivatives.get(driver.name, np.zeros(self.observed.dimension))

    def set_parameter_derivatives(self, driver: ParameterDriver, derivatives) -> None:
        self._parameter_derivatives[driver.name] = np.atleast_1d(
            np.asarray(derivatives, dtype=np.float64))


class ObservedMeasurement(ABC):
    """
    Base class of observed measurements.

    Parameters
    ----------
    date : float
        Measurement date (s).
    observed_value : array_like
    sigma : array_like
        Theoretical standard deviation of each component.
    base_weight : array_like
    satellite_indices : sequence of int
        Index of each satellite involved, in the estimator's builder order.
    """

    def __init__(self, date: float, observed_value, sigma, base_weight,
                 satellite_indices: Sequence[int] = (0,)) -> None:
        self._date = float(date)
        self._observed = np.atleast_1d(np.asarray(observed_value, dtype=np.float64))
        dim = self._observed.size
        self._sigma = np.broadcast_to(np.asarray(sigma, dtype=np.float64), (dim,)).copy()
        self._weight = np.broadcast_to(np.asarray(base_weight, dtype=np.float64), (dim,)).copy()
        if np.any(self._sigma <= 0.0):
            raise ValueError(f"measurement standard deviations must be positive, got {self._sigma}")
        self._observed.setflags(write=False)
        self._sigma.setflags(write=False)
        self._weight.setflags(write=False)
        self._satellites = list(satellite_indices)
        self._drivers: List[ParameterDriver] = []
        self.enabled = True

    def _add_parameter_driver(self, driver: ParameterDriver) -> None:
        self._drivers.append(driver)

    @property
    def date(self) -> float:
        return self._date

    @property
    def dimension(self) -> int:
        return self._observed.size

    @property
    def observed_value(self) -> np.ndarray:
        return self._observed

    @property
    def theoretical_standard_deviation(self) -> np.ndarray:
        return self._sigma

    @property
    def base_weight(self) -> np.ndarray:
        return self._weight

    @property
    def satellite_indices(self) -> List[int]:
        return list(self._satellites)

    @property
    def parameter_drivers(self) -> List[ParameterDriver]:
        return list(self._drivers)

    def estimate(self, iteration: int, count: int,
                 states: Sequence[SpacecraftState]) -> EstimatedMeasurement:
        """Evaluate the measurement model on *states* (one per satellite)."""
        return self._theoretical_evaluation(iteration, count, states)

    @abstractmethod
    def _theoretical_evaluation(self, iteration: int, count: int,
                                states: Sequence[SpacecraftState]) -> EstimatedMeasurement:
        """Model value and derivatives."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(t={self._date:.3f}, value={self._observed})"


class Position(ObservedMeasurement):
    """Inertial position of one satellite."""

    def __init__(self, date: float, position, sigma, base_weight=1.0,
                 satellite_index: int = 0) -> None:
        super().__init__(date, position, sigma, base_weight, (satellite_index,))

    def _theoretical_evaluation(self, iteration, count, states):
        state = states[0]
        estimated = EstimatedMeasurement(self, iteration, count, states, state.position)
        jacobian = np.zeros((3, 6))
        jacobian[:, 0:3] = np.eye(3)
        estimated.set_state_derivatives(0, jacobian)
        return estimated


class PV(ObservedMeasurement):
    """Inertial position and velocity of one satellite."""

    def __init__(self, date: float, position, velocity, sigma_position: float,
                 sigma_velocity: float, base_weight=1.0, satellite_index: int = 0) -> None:
        value = np.concatenate([np.asarray(position, dtype=np.float64),
                                np.asarray(velocity, dtype=np.float64)])
        sigma = np.array([sigma_position] * 3 + [sigma_velocity] * 3)
        super().__init__(date, value, sigma, base_weight, (satellite_index,))

    def _theoretical_evaluation(self, iteration, count, states):
        state = states[0]
        estimated = EstimatedMeasurement(self, iteration, count, states, state.to_array())
        estimated.set_state_derivatives(0, np.eye(6))
        return estimated


class GroundStation:
    """
    Station fixed on the rotating Earth.

    Parameters
    ----------
    name : str
    latitude_deg, longitude_deg : float
        Geodetic coordinates (deg).
    altitude : float
        Altitude above the ellipsoid (m).
    range_bias : float
        Initial range bias (m).
    bias_scale : float
        Normalization scale of the range bias driver (m).
    """

    def __init__(self, name: str, latitude_deg: float, longitude_deg: float,
                 altitude: float = 0.0, range_bias: float = 0.0,
                 bias_scale: float = 1.0) -> None:
        self.name = name
        self.position_ecef = station_position(latitude_deg, longitude_deg, altitude)
        self.range_bias_driver = ParameterDriver(f"{name}-range-bias", range_bias, bias_scale)

    def position_velocity(self, date: float):
        """Inertial (r, v) of the station."""
        return ecef_to_eci_pv(self.position_ecef, date)

    def __repr__(self) -> str:
        return f"GroundStation({self.name!r})"


class Range(ObservedMeasurement):
    """
    Geometric range from a ground station, plus the station range bias.

        rho = |r_sat - r_station(t)| + b
    """

    def __init__(self, station: GroundStation, date: float, observed_range: float,
                 sigma: float, base_weight: float = 1.0, satellite_index: int = 0) -> None:
        super().__init__(date, observed_range, sigma, base_weight, (satellite_index,))
        self.station = station
        self._add_parameter_driver(station.range_bias_driver)

    def _theoretical_evaluation(self, iteration, count, states):
        state = states[0]
        station_r, _ = self.station.position_velocity(state.date)
        line_of_sight = state.position - station_r
        distance = float(np.linalg.norm(line_of_sight))
        bias = self.station.range_bias_driver.value
        estimated = EstimatedMeasurement(self, iteration, count, states, distance + bias)
        jacobian = np.zeros((1, 6))
        jacobian[0, 0:3] = line_of_sight / distance
        estimated.set_state_derivatives(0, jacobian)
        estimated.set_parameter_derivatives(self.station.range_bias_driver, [1.0])
        return estimated
