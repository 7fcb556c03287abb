"""
===============================================================================
ORBITDYN - Propagator Builders
===============================================================================
A propagator builder turns the current values of its parameter drivers
into a freshly configured propagator. The Kalman process model calls it
after every correction, so each measurement is processed on a propagator
(and a matrices harvester) built from the latest estimate.

Orbital drivers are the Cartesian components of the orbit at the builder
date:

    x, y, z        scale = position_scale
    vx, vy, vz     scale = position_scale * sqrt(mu / |r|^3)

Propagation drivers are the drivers of the force models added to the
builder (drag and radiation coefficients, central attraction...). Orbital
drivers are selected by default, propagation drivers are not.
===============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from core.errors import ConfigurationError
from core.parameters import ParameterDriver, ParameterDriversList
from propagation.integrators import DormandPrince54Integrator
from propagation.keplerian import KeplerianPropagator
from propagation.numerical import NumericalPropagator
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)

ORBITAL_PARAMETER_NAMES = ("x", "y", "z", "vx", "vy", "vz")


class AbstractPropagatorBuilder(ABC):
    """
    Parameters
    ----------
    initial_state : SpacecraftState
        Reference orbit (date, frame, mu, mass).
    position_scale : float
        Normalization scale of the position drivers (m).
    attitude_provider : AttitudeProvider, optional
    """

    def __init__(self, initial_state: SpacecraftState, position_scale: float,
                 attitude_provider=None) -> None:
        if position_scale <= 0.0:
            raise ConfigurationError(f"position scale must be positive, got {position_scale}")
        self._position_scale = float(position_scale)
        self._attitude_provider = attitude_provider
        self._reference_state = initial_state
        r = np.linalg.norm(initial_state.position)
        velocity_scale = self._position_scale * np.sqrt(initial_state.mu / r ** 3)
        values = initial_state.to_array()
        self._orbital_drivers: List[ParameterDriver] = []
        for k, name in enumerate(ORBITAL_PARAMETER_NAMES):
            scale = self._position_scale if k < 3 else velocity_scale
            driver = ParameterDriver(name, values[k], scale)
            driver.selected = True
            self._orbital_drivers.append(driver)
        self._propagation_drivers = ParameterDriversList()

    # -------------------------------------------------------------------------
    # drivers
    # -------------------------------------------------------------------------

    @property
    def initial_orbit_date(self) -> float:
        return self._reference_state.date

    @property
    def frame(self):
        return self._reference_state.frame

    @property
    def mu(self) -> float:
        return self._reference_state.mu

    @property
    def position_scale(self) -> float:
        return self._position_scale

    @property
    def attitude_provider(self):
        return self._attitude_provider

    def get_orbital_parameters_drivers(self) -> ParameterDriversList:
        return ParameterDriversList(self._orbital_drivers)

    def get_propagation_parameters_drivers(self) -> ParameterDriversList:
        return self._propagation_drivers

    def _add_propagation_driver(self, driver: ParameterDriver) -> None:
        self._propagation_drivers.add(driver)

    def _selected_drivers(self) -> List[ParameterDriver]:
        return ([d for d in self._orbital_drivers if d.selected]
                + [d for d in self._propagation_drivers if d.selected])

    def get_selected_normalized_parameters(self) -> np.ndarray:
        return np.array([d.normalized_value for d in self._selected_drivers()])

    def _set_parameters(self, normalized_parameters) -> None:
        drivers = self._selected_drivers()
        normalized_parameters = np.asarray(normalized_parameters, dtype=np.float64)
        if normalized_parameters.size != len(drivers):
            raise ConfigurationError(
                f"expected {len(drivers)} normalized parameters, got {normalized_parameters.size}")
        for driver, value in zip(drivers, normalized_parameters):
            driver.normalized_value = value

    # -------------------------------------------------------------------------
    # building
    # -------------------------------------------------------------------------

    def current_state(self) -> SpacecraftState:
        """State at the builder date built from the orbital driver values."""
        values = np.array([d.value for d in self._orbital_drivers])
        s = self._reference_state
        return SpacecraftState(s.date, values[:3], values[3:], frame=s.frame, mu=s.mu,
                               mass=s.mass, additional_states=s.additional_states)

    def reset_orbit(self, state: SpacecraftState) -> None:
        """
        Move the builder to *state*: its date becomes the builder date and
        its coordinates become both value and reference of the orbital
        drivers.
        """
        self._reference_state = state
        for driver, value in zip(self._orbital_drivers, state.to_array()):
            driver.reference_value = value
            driver.value = value

    def build_propagator(self, normalized_parameters=None):
        """
        Propagator starting from the current driver values.

        Parameters
        ----------
        normalized_parameters : array_like, optional
            Normalized values for the selected drivers (orbital then
            propagation), applied before building.
        """
        if normalized_parameters is not None:
            self._set_parameters(normalized_parameters)
        return self._create_propagator(self.current_state())

    @abstractmethod
    def _create_propagator(self, state: SpacecraftState):
        """Configured propagator with *state* as initial state."""


class NumericalPropagatorBuilder(AbstractPropagatorBuilder):
    """
    Builder of ``NumericalPropagator`` instances.

    Parameters
    ----------
    initial_state : SpacecraftState
    position_scale : float
    min_step, max_step : float
        Integrator step bounds (s).
    position_tolerance : float
        Absolute position tolerance of the integrator (m); velocity and
        mass tolerances are derived from it.
    attitude_provider : AttitudeProvider, optional
    """

    def __init__(self, initial_state: SpacecraftState, position_scale: float,
                 min_step: float = 1.0e-3, max_step: float = 300.0,
                 position_tolerance: float = 1.0e-3, attitude_provider=None) -> None:
        super().__init__(initial_state, position_scale, attitude_provider)
        self.min_step = min_step
        self.max_step = max_step
        self.position_tolerance = position_tolerance
        self._force_models = []
        self._impulse_maneuvers = []

    def add_force_model(self, model) -> None:
        self._force_models.append(model)
        for driver in model.parameter_drivers:
            self._add_propagation_driver(driver)

    def add_impulse_maneuver(self, maneuver) -> None:
        self._impulse_maneuvers.append(maneuver)

    def get_all_force_models(self) -> list:
        return list(self._force_models)

    def _create_integrator(self, state: SpacecraftState) -> DormandPrince54Integrator:
        r = np.linalg.norm(state.position)
        velocity_tolerance = self.position_tolerance * np.sqrt(state.mu / r ** 3)
        abs_tol = np.array([self.position_tolerance] * 3 + [velocity_tolerance] * 3 + [1.0e-6])
        return DormandPrince54Integrator(self.min_step, self.max_step, abs_tol=abs_tol,
                                         rel_tol=1.0e-12)

    def _create_propagator(self, state: SpacecraftState) -> NumericalPropagator:
        propagator = NumericalPropagator(self._create_integrator(state), self._attitude_provider)
        for model in self._force_models:
            propagator.add_force_model(model)
        for maneuver in self._impulse_maneuvers:
            propagator.add_event_detector(maneuver)
        propagator.reset_initial_state(state)
        return propagator


class KeplerianPropagatorBuilder(AbstractPropagatorBuilder):
    """Builder of ``KeplerianPropagator`` instances (no propagation drivers)."""

    def _create_propagator(self, state: SpacecraftState) -> KeplerianPropagator:
        return KeplerianPropagator(state, self._attitude_provider)
