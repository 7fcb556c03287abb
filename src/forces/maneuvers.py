"""
===============================================================================
ORBITDYN - Impulse Maneuvers
===============================================================================
An impulse maneuver is an event detector wrapping a trigger detector. When
the trigger's own reaction is STOP, the maneuver answers RESET_STATE and
replaces the state by one with

    v'  = v + sign * R_body->inertial dV_sat
    m'  = m * exp(-sign * |dV| / (g0 Isp))

where sign is +1 in forward propagation and -1 backward, so that
propagating back through a maneuver undoes it. Other trigger reactions are
turned into CONTINUE. Position, additional states and their derivatives
are carried over unchanged.
===============================================================================
"""

import logging

import numpy as np

from core.constants import G0_STANDARD_GRAVITY
from propagation.events.detectors import EventDetector
from propagation.events.handlers import Action, EventHandler
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)


class _ImpulseHandler(EventHandler):

    def event_occurred(self, state, detector, increasing: bool) -> Action:
        underlying = detector.trigger.event_occurred(state, increasing)
        return Action.RESET_STATE if underlying == Action.STOP else Action.CONTINUE

    def reset_state(self, detector, old_state):
        return detector.apply(old_state)


class ImpulseManeuver(EventDetector):
    """
    Parameters
    ----------
    trigger : EventDetector
        Detector whose STOP reactions fire the maneuver.
    delta_v_sat : array_like
        Velocity increment in satellite (body) axes (m/s).
    isp : float
        Specific impulse (s).
    attitude_override : AttitudeProvider, optional
        Attitude used to orient the increment instead of the state's one.
    """

    def __init__(self, trigger: EventDetector, delta_v_sat, isp: float,
                 attitude_override=None) -> None:
        super().__init__(trigger.max_check_interval, trigger.threshold,
                         trigger.max_iteration_count, _ImpulseHandler())
        if isp <= 0.0:
            raise ValueError(f"specific impulse must be positive, got {isp}")
        self.trigger = trigger
        self.delta_v_sat = np.asarray(delta_v_sat, dtype=np.float64)
        self.isp = float(isp)
        self.v_exhaust = G0_STANDARD_GRAVITY * self.isp
        self.attitude_override = attitude_override
        self._forward = True

    def init(self, initial_state, target: float) -> None:
        self._forward = target >= initial_state.date
        self.trigger.init(initial_state, target)

    def g(self, state) -> float:
        return self.trigger.g(state)

    def apply(self, old_state: SpacecraftState) -> SpacecraftState:
        """State right after the impulse."""
        if self.attitude_override is None:
            attitude = old_state.attitude
        else:
            attitude = self.attitude_override.get_attitude(old_state, old_state.date,
                                                           old_state.frame)
        delta_v = attitude.with_reference_frame(old_state.frame).rotation.rotate_vector(self.delta_v_sat)
        sign = 1.0 if self._forward else -1.0
        new_mass = old_state.mass * np.exp(-sign * np.linalg.norm(delta_v) / self.v_exhaust)
        logger.info("Impulse maneuver at t=%.3f s: |dV|=%.4f m/s, mass %.3f -> %.3f kg",
                    old_state.date, np.linalg.norm(delta_v), old_state.mass, new_mass)
        return SpacecraftState(old_state.date, old_state.position,
                               old_state.velocity + sign * delta_v,
                               frame=old_state.frame, mu=old_state.mu, attitude=attitude,
                               mass=new_mass,
                               additional_states=old_state.additional_states,
                               additional_derivatives=old_state.additional_derivatives)
