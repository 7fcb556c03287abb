"""
===============================================================================
ORBITDYN - Keplerian Propagator
===============================================================================
Two-body propagation with the universal-variable Kepler solver. Valid for
any conic, including circular and equatorial orbits, forward or backward.

The propagator can also provide the state transition matrix of the
two-body flow through a matrices harvester, computed by central finite
differences of the closed-form solution with respect to the reference
state. This is what the Keplerian propagator builder hands to the Kalman
filter.
===============================================================================
"""

import logging

import numpy as np

from core.orbits import kepler_shift
from propagation.harvester import MatricesHarvester
from propagation.propagator import AbstractAnalyticalPropagator
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)


class KeplerianPropagator(AbstractAnalyticalPropagator):
    """
    Parameters
    ----------
    initial_state : SpacecraftState
        Reference state; its ``mu`` is used unless *mu* is given.
    attitude_provider : AttitudeProvider, optional
    mu : float, optional
        Central attraction coefficient overriding the state's one.
    """

    def __init__(self, initial_state: SpacecraftState, attitude_provider=None,
                 mu: float = None) -> None:
        super().__init__(attitude_provider)
        self._mu = mu if mu is not None else initial_state.mu
        self.reset_initial_state(initial_state)

    @property
    def mu(self) -> float:
        return self._mu

    def reset_initial_state(self, state: SpacecraftState) -> None:
        if state.mu != self._mu:
            state = SpacecraftState(state.date, state.position, state.velocity,
                                    frame=state.frame, mu=self._mu, attitude=state.attitude,
                                    mass=state.mass, additional_states=state.additional_states,
                                    additional_derivatives=state.additional_derivatives)
        super().reset_initial_state(state)

    def _propagate_orbit(self, date: float) -> SpacecraftState:
        s0 = self._initial_state
        r, v = kepler_shift(s0.position, s0.velocity, date - s0.date, self._mu)
        return SpacecraftState(date, r, v, frame=s0.frame, mu=self._mu, mass=s0.mass)

    def setup_matrices_computation(self, name: str, initial_stm: np.ndarray = None,
                                   initial_jacobian: np.ndarray = None) -> MatricesHarvester:
        """
        Harvester for the two-body state transition matrix.

        The Keplerian flow has no propagation parameters, so the parameters
        Jacobian is always empty.
        """
        return KeplerianMatricesHarvester(self, name, initial_stm)


class KeplerianMatricesHarvester(MatricesHarvester):
    """State transition matrix of the two-body flow from the reference state."""

    POSITION_STEP = 1.0       # m
    VELOCITY_STEP = 1.0e-3    # m/s

    def __init__(self, propagator: KeplerianPropagator, name: str,
                 initial_stm: np.ndarray = None) -> None:
        super().__init__(name)
        self._propagator = propagator
        self._initial_stm = np.eye(6) if initial_stm is None else np.asarray(initial_stm, dtype=np.float64)
        self._reference = propagator.get_initial_state()

    def get_state_transition_matrix(self, state: SpacecraftState) -> np.ndarray:
        s0 = self._reference
        dt = state.date - s0.date
        mu = self._propagator.mu
        x0 = s0.to_array()
        steps = np.array([self.POSITION_STEP] * 3 + [self.VELOCITY_STEP] * 3)
        phi = np.zeros((6, 6))
        for j in range(6):
            dx = np.zeros(6)
            dx[j] = steps[j]
            rp, vp = kepler_shift((x0 + dx)[:3], (x0 + dx)[3:], dt, mu)
            rm, vm = kepler_shift((x0 - dx)[:3], (x0 - dx)[3:], dt, mu)
            phi[:, j] = (np.concatenate([rp, vp]) - np.concatenate([rm, vm])) / (2.0 * steps[j])
        return phi @ self._initial_stm

    def get_parameters_jacobian(self, state: SpacecraftState):
        return None

    def get_jacobians_columns_names(self):
        return []
