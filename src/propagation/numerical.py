"""
===============================================================================
ORBITDYN - Numerical Propagator
===============================================================================
Force-model propagation of the Cartesian state and mass with the
Dormand-Prince integrator (scipy RK45). The integrated vector is

    y = [r (3), v (3), m (1), Phi (36), dY/dp (6k)]

where Phi = dY(t)/dY(t0) and dY/dp are only present once
``setup_matrices_computation`` has been called. They follow the
variational equations

    dPhi/dt     = A(t) Phi
    d(dY/dp)/dt = A(t) dY/dp + [0; da/dp]

with A = [[0, I], [da/dr, da/dv]]. All partial derivatives are central
finite differences of the total acceleration.

The central attraction is always present: it is created from the initial
state's mu unless a ``NewtonianAttraction`` is added explicitly. Force
models may contribute event detectors for their discontinuities; these are
added to the user detectors during each propagation.
===============================================================================
"""

import logging
from typing import List

import numpy as np

from core.errors import ConfigurationError, PropagationError
from forces.gravity import NewtonianAttraction
from propagation.harvester import MatricesHarvester
from propagation.integrators import DormandPrince54Integrator
from propagation.propagator import AbstractPropagator, StepInterpolator
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)

_POSITION_STEP = 1.0      # m, finite difference step on position
_VELOCITY_STEP = 1.0e-3   # m/s, finite difference step on velocity


class _NumericalInterpolator(StepInterpolator):

    def __init__(self, propagator: 'NumericalPropagator', t0: float, y0: np.ndarray,
                 t1: float, y1: np.ndarray, dense) -> None:
        super().__init__(t0, t1)
        self._propagator = propagator
        self._t0, self._y0 = t0, y0
        self._t1, self._y1 = t1, y1
        self._dense = dense

    def get_interpolated_state(self, date: float) -> SpacecraftState:
        if date == self._t1:
            y = self._y1
        elif date == self._t0:
            y = self._y0
        else:
            y = self._dense(date)
        return self._propagator._state_from_vector(date, y)


class NumericalPropagator(AbstractPropagator):
    """
    Parameters
    ----------
    integrator : DormandPrince54Integrator
    attitude_provider : AttitudeProvider, optional
    """

    def __init__(self, integrator: DormandPrince54Integrator, attitude_provider=None) -> None:
        super().__init__(attitude_provider)
        self._integrator = integrator
        integrator.n_controlled = 7
        self._forces = []
        self._newtonian = None
        self._stm_name = None
        self._jacobian_drivers = []
        self._reset_at_end = True
        # integration state
        self._solver = None
        self._template = None

    # -------------------------------------------------------------------------
    # configuration
    # -------------------------------------------------------------------------

    @property
    def integrator(self) -> DormandPrince54Integrator:
        return self._integrator

    def add_force_model(self, model) -> None:
        if isinstance(model, NewtonianAttraction):
            self._newtonian = model
        else:
            self._forces.append(model)

    def remove_force_models(self) -> None:
        self._forces = []

    def get_all_force_models(self) -> list:
        return list(self._forces) + ([self._newtonian] if self._newtonian is not None else [])

    def set_mu(self, mu: float) -> None:
        self._newtonian = NewtonianAttraction(mu)

    @property
    def mu(self) -> float:
        if self._newtonian is None:
            raise PropagationError("central attraction coefficient not defined")
        return self._newtonian.mu

    def set_reset_at_end(self, reset_at_end: bool) -> None:
        """Whether the final state of a propagation becomes the new initial state."""
        self._reset_at_end = reset_at_end

    def reset_initial_state(self, state: SpacecraftState) -> None:
        if self._newtonian is None:
            self._newtonian = NewtonianAttraction(state.mu)
        super().reset_initial_state(state)

    def setup_matrices_computation(self, name: str, initial_stm: np.ndarray = None,
                                   initial_jacobian: np.ndarray = None) -> 'NumericalMatricesHarvester':
        """
        Add the variational equations and return the harvester reading them.

        The Jacobian columns are the propagation parameters selected at the
        time of the call, in force model order.

        Parameters
        ----------
        name : str
            Name of the additional state holding the STM (the parameters
            Jacobian is stored under ``name + "-parameters"``).
        initial_stm : np.ndarray, optional
            6x6 initial STM (identity by default).
        initial_jacobian : np.ndarray, optional
            6xk initial Jacobian (zero by default).
        """
        if not name:
            raise ConfigurationError("matrices harvester requires a non-empty name")
        self._stm_name = name
        drivers = []
        seen = set()
        for model in self.get_all_force_models():
            for driver in model.parameter_drivers:
                if driver.selected and driver.name not in seen:
                    seen.add(driver.name)
                    drivers.append(driver)
        self._jacobian_drivers = drivers
        k = len(drivers)
        stm0 = np.eye(6) if initial_stm is None else np.asarray(initial_stm, dtype=np.float64)
        jac0 = np.zeros((6, k)) if initial_jacobian is None else np.asarray(initial_jacobian, dtype=np.float64)
        if stm0.shape != (6, 6):
            raise ConfigurationError(f"initial STM must be 6x6, got {stm0.shape}")
        if jac0.shape != (6, k):
            raise ConfigurationError(f"initial Jacobian must be 6x{k}, got {jac0.shape}")
        state = self.get_initial_state().add_additional_state(name, stm0.ravel())
        if k > 0:
            state = state.add_additional_state(name + "-parameters", jac0.ravel())
        super().reset_initial_state(state)
        return NumericalMatricesHarvester(name, [d.name for d in drivers])

    # -------------------------------------------------------------------------
    # dynamics
    # -------------------------------------------------------------------------

    def _acceleration(self, t: float, r: np.ndarray, v: np.ndarray, m: float) -> np.ndarray:
        acc = np.zeros(3)
        for model in self.get_all_force_models():
            acc = acc + model.acceleration(t, r, v, m)
        return acc

    def _state_partials(self, t, r, v, m) -> np.ndarray:
        """A = [[0, I], [da/dr, da/dv]] by central differences."""
        A = np.zeros((6, 6))
        A[0:3, 3:6] = np.eye(3)
        for j in range(3):
            dr = np.zeros(3)
            dr[j] = _POSITION_STEP
            A[3:6, j] = (self._acceleration(t, r + dr, v, m)
                         - self._acceleration(t, r - dr, v, m)) / (2.0 * _POSITION_STEP)
            dv = np.zeros(3)
            dv[j] = _VELOCITY_STEP
            A[3:6, 3 + j] = (self._acceleration(t, r, v + dv, m)
                             - self._acceleration(t, r, v - dv, m)) / (2.0 * _VELOCITY_STEP)
        return A

    def _parameter_partials(self, t, r, v, m) -> np.ndarray:
        """da/dp for the Jacobian drivers, central differences on driver values."""
        partials = np.zeros((3, len(self._jacobian_drivers)))
        for j, driver in enumerate(self._jacobian_drivers):
            saved = driver.value
            step = driver.scale
            driver.value = saved + step
            plus_value = driver.value
            acc_plus = self._acceleration(t, r, v, m)
            driver.value = saved - step
            minus_value = driver.value
            acc_minus = self._acceleration(t, r, v, m)
            driver.value = saved
            if plus_value != minus_value:
                partials[:, j] = (acc_plus - acc_minus) / (plus_value - minus_value)
        return partials

    def _derivatives(self, t: float, y: np.ndarray) -> np.ndarray:
        r, v, m = y[0:3], y[3:6], y[6]
        dy = np.zeros_like(y)
        dy[0:3] = v
        dy[3:6] = self._acceleration(t, r, v, m)
        if self._stm_name is not None:
            A = self._state_partials(t, r, v, m)
            phi = y[7:43].reshape(6, 6)
            dy[7:43] = (A @ phi).ravel()
            k = len(self._jacobian_drivers)
            if k > 0:
                jac = y[43:43 + 6 * k].reshape(6, k)
                djac = A @ jac
                djac[3:6, :] += self._parameter_partials(t, r, v, m)
                dy[43:43 + 6 * k] = djac.ravel()
        return dy

    def _vector_from_state(self, state: SpacecraftState) -> np.ndarray:
        parts = [state.position, state.velocity, [state.mass]]
        if self._stm_name is not None:
            parts.append(state.get_additional_state(self._stm_name))
            if self._jacobian_drivers:
                parts.append(state.get_additional_state(self._stm_name + "-parameters"))
        return np.concatenate([np.asarray(p, dtype=np.float64).ravel() for p in parts])

    def _state_from_vector(self, date: float, y: np.ndarray) -> SpacecraftState:
        template = self._template
        r, v = y[0:3], y[3:6]
        additional = {name: value for name, value in template.additional_states.items()
                      if not self.is_additional_state_managed(name)}
        if self._stm_name is not None:
            additional[self._stm_name] = y[7:43]
            if self._jacobian_drivers:
                additional[self._stm_name + "-parameters"] = y[43:43 + 6 * len(self._jacobian_drivers)]
        attitude = self._compute_attitude(date, r, v, template.frame, self.mu)
        state = SpacecraftState(date, r, v, frame=template.frame, mu=self.mu,
                                attitude=attitude, mass=y[6],
                                additional_states=additional)
        return self._complete_state(state)

    # -------------------------------------------------------------------------
    # propagation hooks
    # -------------------------------------------------------------------------

    def _propagate_with_events(self, state: SpacecraftState, target: float) -> SpacecraftState:
        user_detectors = self._detectors
        self._detectors = list(user_detectors)
        for model in self.get_all_force_models():
            model.init(state, target)
            self._detectors.extend(model.get_event_detectors())
        try:
            return super()._propagate_with_events(state, target)
        finally:
            self._detectors = user_detectors

    def _start_propagation(self, state: SpacecraftState, target: float) -> None:
        self._template = state
        self._solver = None
        if target != state.date:
            self._solver = self._integrator.create_solver(
                self._derivatives, state.date, self._vector_from_state(state), target)

    def _next_step(self, current: SpacecraftState, target: float) -> StepInterpolator:
        t0, y0 = self._solver.t, self._solver.y
        dense = self._integrator.step(self._solver)
        return _NumericalInterpolator(self, t0, y0, self._solver.t, self._solver.y, dense)

    def _restart(self, state: SpacecraftState, target: float, forward: bool) -> None:
        self._start_propagation(state, target)

    def _silent_propagate(self, date: float) -> SpacecraftState:
        state = self.get_initial_state()
        if date == state.date:
            return self._complete_state(state)
        self._start_propagation(state, date)
        current = state
        while current.date != date:
            current = self._next_step(current, date).current_state
        return current

    def _finish_propagation(self, state: SpacecraftState) -> None:
        self._solver = None
        if self._reset_at_end:
            super().reset_initial_state(state)


class NumericalMatricesHarvester(MatricesHarvester):
    """Reads the integrated STM and parameters Jacobian back from states."""

    def __init__(self, name: str, columns: List[str]) -> None:
        super().__init__(name)
        self._columns = list(columns)

    def get_state_transition_matrix(self, state: SpacecraftState) -> np.ndarray:
        if not state.has_additional_state(self.name):
            raise PropagationError(f"state has no '{self.name}' state transition matrix")
        return np.array(state.get_additional_state(self.name)).reshape(6, 6)

    def get_parameters_jacobian(self, state: SpacecraftState):
        if not self._columns:
            return None
        key = self.name + "-parameters"
        if not state.has_additional_state(key):
            raise PropagationError(f"state has no '{key}' parameters Jacobian")
        return np.array(state.get_additional_state(key)).reshape(6, len(self._columns))

    def get_jacobians_columns_names(self) -> List[str]:
        return list(self._columns)
