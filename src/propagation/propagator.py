"""
===============================================================================
ORBITDYN - Propagator Framework
===============================================================================
Common machinery shared by all propagators:

    * attitude provider, used to fill the attitude of every produced state
    * event detectors, searched step by step through ``EventState``
    * additional state providers, evaluated on every produced state
    * fixed-step handlers (telemetry) and ephemeris generation

Concrete propagators only supply steps. A step is a ``StepInterpolator``
covering [previous_date, current_date] that can produce the state at any
date inside it. The loop below scans every step for events, handles the
earliest one (in propagation direction), restricts the step after the
event and scans again until the step is exhausted. An event handler may
stop propagation or reset the state, in which case the concrete propagator
restarts from the new state.

Propagation may go forward or backward in time; the loop is symmetric.
===============================================================================
"""

import copy
import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, List

from attitudes.laws import InertialProvider
from core.errors import ConfigurationError, PropagationError
from core.frames import Frame
from propagation.events.event_state import EventState
from propagation.events.handlers import Action
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)


class StepInterpolator(ABC):
    """State provider valid over one propagation step."""

    def __init__(self, previous_date: float, current_date: float) -> None:
        self.previous_date = previous_date
        self.current_date = current_date

    @property
    def forward(self) -> bool:
        return self.current_date >= self.previous_date

    @abstractmethod
    def get_interpolated_state(self, date: float) -> SpacecraftState:
        """State at *date*, which should lie inside the step."""

    @property
    def previous_state(self) -> SpacecraftState:
        return self.get_interpolated_state(self.previous_date)

    @property
    def current_state(self) -> SpacecraftState:
        return self.get_interpolated_state(self.current_date)

    def restrict(self, previous_date: float, current_date: float) -> 'StepInterpolator':
        other = copy.copy(self)
        other.previous_date = previous_date
        other.current_date = current_date
        return other


class _FixedStepHandler:
    """Calls ``handler(state)`` on a regular grid starting at the initial date."""

    def __init__(self, step: float, handler: Callable[[SpacecraftState], None]) -> None:
        if step <= 0.0:
            raise ConfigurationError(f"fixed step must be positive, got {step}")
        self.step = step
        self.handler = handler
        self._next = None
        self._last = None
        self._direction = 1.0

    def init(self, state: SpacecraftState, target: float) -> None:
        self._direction = 1.0 if target >= state.date else -1.0
        self._last = state.date
        self._next = state.date + self._direction * self.step
        self.handler(state)

    def handle_step(self, interpolator: StepInterpolator) -> None:
        end = interpolator.current_date
        while (self._next - end) * self._direction <= 0.0:
            self.handler(interpolator.get_interpolated_state(self._next))
            self._last = self._next
            self._next += self._direction * self.step

    def finish(self, state: SpacecraftState) -> None:
        if state.date != self._last:
            self.handler(state)
            self._last = state.date


class AbstractPropagator(ABC):
    """
    Base class of every propagator.

    Parameters
    ----------
    attitude_provider : AttitudeProvider, optional
        Attitude law applied to produced states (inertial by default).
    """

    def __init__(self, attitude_provider=None) -> None:
        self._attitude_provider = (attitude_provider if attitude_provider is not None
                                   else InertialProvider())
        self._initial_state = None
        self._detectors = []
        self._providers = []
        self._step_handlers: List[_FixedStepHandler] = []
        self._ephemeris_mode = False
        self._generated_states: List[SpacecraftState] = []

    # -------------------------------------------------------------------------
    # configuration
    # -------------------------------------------------------------------------

    @property
    def attitude_provider(self):
        return self._attitude_provider

    def set_attitude_provider(self, provider) -> None:
        self._attitude_provider = provider

    def get_initial_state(self) -> SpacecraftState:
        if self._initial_state is None:
            raise PropagationError("initial state has not been set")
        return self._initial_state

    def reset_initial_state(self, state: SpacecraftState) -> None:
        self._initial_state = state

    @property
    def frame(self) -> Frame:
        return self.get_initial_state().frame

    def add_event_detector(self, detector) -> None:
        self._detectors.append(detector)

    def get_event_detectors(self) -> list:
        return list(self._detectors)

    def clear_event_detectors(self) -> None:
        self._detectors = []

    def add_additional_state_provider(self, provider) -> None:
        if self.is_additional_state_managed(provider.name):
            raise ConfigurationError(
                f"additional state '{provider.name}' is already managed")
        self._providers.append(provider)

    def get_additional_state_providers(self) -> list:
        return list(self._providers)

    def is_additional_state_managed(self, name: str) -> bool:
        return any(p.name == name for p in self._providers)

    def set_step_handler(self, step: float, handler: Callable[[SpacecraftState], None]) -> None:
        """Register a fixed-step handler (telemetry, logging)."""
        self._step_handlers.append(_FixedStepHandler(step, handler))

    def clear_step_handlers(self) -> None:
        self._step_handlers = []

    def set_ephemeris_mode(self, enabled: bool = True) -> None:
        self._ephemeris_mode = enabled

    def get_generated_ephemeris(self):
        """Ephemeris built from the steps of the last propagation."""
        if not self._ephemeris_mode:
            raise PropagationError("ephemeris mode was not activated before propagation")
        if len(self._generated_states) < 2:
            raise PropagationError("no ephemeris has been generated yet")
        from propagation.ephemeris import Ephemeris
        states = sorted(self._generated_states, key=lambda s: s.date)
        return Ephemeris(states, attitude_provider=self._attitude_provider)

    # -------------------------------------------------------------------------
    # propagation
    # -------------------------------------------------------------------------

    def propagate(self, start: float, target: float = None) -> SpacecraftState:
        """
        Propagate to *target*, or from *start* to *target* when both are given.

        When a start date is given, the state is first brought to it without
        event detection; events are only searched between start and target.
        """
        if target is None:
            target = start
            start = self.get_initial_state().date
        initial = self.get_initial_state()
        if start == initial.date:
            state = initial
        else:
            state = self._silent_propagate(start)
        return self._propagate_with_events(state, target)

    def get_pv_coordinates(self, date: float, frame: Frame = None):
        """Position-velocity at *date*, no event detection."""
        return self._silent_propagate(date).get_pv_coordinates(date, frame)

    def _propagate_with_events(self, state: SpacecraftState, target: float) -> SpacecraftState:
        forward = target >= state.date
        for provider in self._providers:
            provider.init(state, target)
        state = self._complete_state(state)

        event_states = [EventState(d) for d in self._detectors]
        for es in event_states:
            es.init(state, target)
        for handler in self._step_handlers:
            handler.init(state, target)
        self._generated_states = [state] if self._ephemeris_mode else []

        logger.debug("%s: propagating from t=%.3f to t=%.3f",
                     type(self).__name__, state.date, target)
        self._start_propagation(state, target)
        current = state
        while current.date != target:
            interpolator = self._next_step(current, target)
            current, action = self._accept_step(interpolator, event_states)
            if self._ephemeris_mode:
                self._generated_states.append(current)
            if action == Action.STOP:
                logger.debug("%s: propagation stopped by event at t=%.6f",
                             type(self).__name__, current.date)
                break
            if action in (Action.RESET_STATE, Action.RESET_DERIVATIVES):
                self._restart(current, target, forward)
                for es in event_states:
                    es.restart_at(current)

        for handler in self._step_handlers:
            handler.finish(current)
        self._finish_propagation(current)
        return current

    def _accept_step(self, interpolator: StepInterpolator, event_states):
        forward = interpolator.forward
        while True:
            occurring = [es for es in event_states if es.evaluate_step(interpolator)]
            if not occurring:
                break
            if forward:
                first = min(occurring, key=lambda es: es.event_time)
            else:
                first = max(occurring, key=lambda es: es.event_time)
            t_event = first.event_time
            event_state = interpolator.get_interpolated_state(t_event)
            for handler in self._step_handlers:
                handler.handle_step(interpolator.restrict(interpolator.previous_date, t_event))

            action, new_state = first.do_event(event_state)
            for es in event_states:
                if es is not first:
                    es.restart_at(event_state)

            if action == Action.STOP:
                return event_state, action
            if action == Action.RESET_STATE:
                reset = self._complete_state(new_state if new_state is not None else event_state)
                return reset, action
            if action == Action.RESET_DERIVATIVES:
                return event_state, action
            interpolator = interpolator.restrict(t_event, interpolator.current_date)

        final = interpolator.current_state
        for handler in self._step_handlers:
            handler.handle_step(interpolator)
        for es in event_states:
            es.step_accepted(final)
        return final, Action.CONTINUE

    def _complete_state(self, state: SpacecraftState) -> SpacecraftState:
        """Add the values of all additional state providers."""
        for provider in self._providers:
            state = state.add_additional_state(provider.name, provider.get_additional_state(state))
        return state

    def _compute_attitude(self, date: float, position, velocity, frame: Frame, mu: float):
        pv_provider = SpacecraftState(date, position, velocity, frame=frame, mu=mu)
        return self._attitude_provider.get_attitude(pv_provider, date, frame)

    # -------------------------------------------------------------------------
    # hooks for concrete propagators
    # -------------------------------------------------------------------------

    @abstractmethod
    def _silent_propagate(self, date: float) -> SpacecraftState:
        """State at *date* without any event detection."""

    def _start_propagation(self, state: SpacecraftState, target: float) -> None:
        """Prepare the stepping from *state*."""

    @abstractmethod
    def _next_step(self, current: SpacecraftState, target: float) -> StepInterpolator:
        """Next step from *current* towards *target*."""

    def _restart(self, state: SpacecraftState, target: float, forward: bool) -> None:
        """Continue from *state* after a reset event."""
        self._start_propagation(state, target)

    def _finish_propagation(self, state: SpacecraftState) -> None:
        """Called with the final state of each propagation."""


class _AnalyticalInterpolator(StepInterpolator):

    def __init__(self, propagator: 'AbstractAnalyticalPropagator',
                 previous_date: float, current_date: float) -> None:
        super().__init__(previous_date, current_date)
        self._propagator = propagator

    def get_interpolated_state(self, date: float) -> SpacecraftState:
        return self._propagator._silent_propagate(date)


class AbstractAnalyticalPropagator(AbstractPropagator):
    """
    Propagator with a closed-form ``_propagate_orbit(date)``.

    Steps span the whole remaining interval unless ``max_step`` is finite;
    a finite ``max_step`` is used in ephemeris mode so that the generated
    ephemeris has enough samples.
    """

    EPHEMERIS_STEP = 60.0

    def __init__(self, attitude_provider=None) -> None:
        super().__init__(attitude_provider)
        self.max_step = math.inf

    @abstractmethod
    def _propagate_orbit(self, date: float) -> SpacecraftState:
        """Orbit (and mass) at *date*; attitude is filled afterwards."""

    def _basic_propagate(self, date: float) -> SpacecraftState:
        state = self._propagate_orbit(date)
        attitude = self._compute_attitude(date, state.position, state.velocity,
                                          state.frame, state.mu)
        return state.with_attitude(attitude)

    def _silent_propagate(self, date: float) -> SpacecraftState:
        return self._complete_state(self._basic_propagate(date))

    def _next_step(self, current: SpacecraftState, target: float) -> StepInterpolator:
        max_step = self.EPHEMERIS_STEP if self._ephemeris_mode else self.max_step
        dt = target - current.date
        if abs(dt) > max_step:
            dt = math.copysign(max_step, dt)
        end = target if dt == target - current.date else current.date + dt
        return _AnalyticalInterpolator(self, current.date, end)

    def _restart(self, state: SpacecraftState, target: float, forward: bool) -> None:
        self._reset_intermediate_state(state, forward)

    def _reset_intermediate_state(self, state: SpacecraftState, forward: bool) -> None:
        """Take *state* as new reference for the rest of the propagation."""
        self.reset_initial_state(state)
