"""
===============================================================================
ORBITDYN - Attitudes Sequence
===============================================================================
Attitude provider switching between several laws at events detected during
propagation.

The sequence owns a ``TimeSpanMap`` of activated laws. Switching
conditions wrap event detectors; registered on a propagator, they fire
while the propagator runs and rewrite the map:

    forward   ... past | transition [t, t + tt) | future ...
    backward  ... past | transition [t - tt, t) | future ...

A transition law interpolates between the attitude frozen at its start and
the following law evaluated at its end, so the attitude stays continuous
(up to the derivatives selected by the filter) across a switch.

A switch only fires when the law active at the event date is the one
expected before it (``past`` forward, ``future`` backward) and the event
direction is enabled. Otherwise the wrapped event still gets its own
reaction but the map is left alone, which keeps re-propagation over an
already switched span from switching twice.

The map is mutated from event callbacks: a sequence must not be shared
between concurrent propagations.
===============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from attitudes.attitude import Attitude, AttitudeProvider
from core.angular import AngularDerivativesFilter, TimeStampedAngularCoordinates
from core.constants import FUTURE_INFINITY, PAST_INFINITY
from core.errors import ConfigurationError
from core.frames import Frame
from core.time_span_map import Span, TimeSpanMap
from propagation.events.detectors import EventDetector
from propagation.events.handlers import Action
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)


class SwitchHandler(ABC):
    """Notified each time a switch actually happens."""

    @abstractmethod
    def switch_occurred(self, preceding: AttitudeProvider, following: AttitudeProvider,
                        state: SpacecraftState) -> None:
        """
        Parameters
        ----------
        preceding : AttitudeProvider
            Law active before the switch, in propagation direction.
        following : AttitudeProvider
            Law active after the transition, in propagation direction.
        state : SpacecraftState
            State at the switch (transition start when propagating backward).
        """


class SwitchRecorder(SwitchHandler):
    """Keeps ``(date, preceding, following)`` for every switch."""

    def __init__(self) -> None:
        self.switches = []

    def switch_occurred(self, preceding, following, state) -> None:
        self.switches.append((state.date, preceding, following))


class TransitionProvider(AttitudeProvider):
    """
    Interpolated law bridging two laws during a switch.

    Parameters
    ----------
    preceding : Attitude
        Attitude frozen at the transition start.
    transition_end : float
        Date at which the following law takes over.
    following : AttitudeProvider
        Law evaluated at *transition_end*.
    angular_filter : AngularDerivativesFilter
        Derivatives matched at both ends.
    """

    def __init__(self, preceding: Attitude, transition_end: float,
                 following: AttitudeProvider, angular_filter: AngularDerivativesFilter) -> None:
        self.preceding = preceding
        self.transition_end = transition_end
        self.following = following
        self.angular_filter = angular_filter

    def get_attitude(self, pv_provider, date: float, frame: Frame) -> Attitude:
        start = self.preceding.with_reference_frame(frame).orientation
        end = self.following.get_attitude(pv_provider, self.transition_end, frame).orientation
        interpolated = TimeStampedAngularCoordinates.interpolate(date, self.angular_filter,
                                                                 [start, end])
        return Attitude(frame, interpolated)

    def __repr__(self) -> str:
        return (f"TransitionProvider({self.preceding.date:.3f} -> {self.transition_end:.3f}, "
                f"{self.following!r})")


class AttitudesSequence(AttitudeProvider):
    """
    Sequence of attitude laws activated by switching events.

    Typical set-up::

        sequence = AttitudesSequence()
        sequence.add_switching_condition(day_law, night_law, eclipse_detector,
                                         switch_on_increase=False,
                                         switch_on_decrease=True,
                                         transition_time=60.0,
                                         transition_filter=AngularDerivativesFilter.USE_RR)
        sequence.register_switch_events(propagator)
        propagator.set_attitude_provider(sequence)
    """

    def __init__(self) -> None:
        self._activated: Optional[TimeSpanMap] = None
        self._switches: List['_Switch'] = []

    def reset_active_provider(self, provider: AttitudeProvider) -> None:
        """Forget every switch and make *provider* active over all times."""
        self._activated = TimeSpanMap(provider)

    def add_switching_condition(self, past: AttitudeProvider, future: AttitudeProvider,
                                switch_event: EventDetector,
                                switch_on_increase: bool, switch_on_decrease: bool,
                                transition_time: float,
                                transition_filter: AngularDerivativesFilter = AngularDerivativesFilter.USE_RR,
                                handler: SwitchHandler = None) -> None:
        """
        Add a switch from *past* to *future* at *switch_event*.

        Raises
        ------
        ConfigurationError
            If *transition_time* is shorter than the event convergence
            threshold, since the transition could then start before the
            event is located.
        """
        if transition_time < switch_event.threshold:
            raise ConfigurationError(
                f"transition time {transition_time} s is shorter than the switch "
                f"event convergence threshold {switch_event.threshold} s")
        if self._activated is None:
            self.reset_active_provider(past)
        self._switches.append(_Switch(self, switch_event, switch_on_increase, switch_on_decrease,
                                      past, future, transition_time, transition_filter, handler))

    def register_switch_events(self, propagator) -> None:
        """Add one detector per switching condition to *propagator*."""
        for switch in self._switches:
            propagator.add_event_detector(switch)

    @property
    def switches(self) -> list:
        return list(self._switches)

    def _require_map(self) -> TimeSpanMap:
        if self._activated is None:
            raise ConfigurationError("no attitude law has been configured in the sequence")
        return self._activated

    def get_active_provider(self, date: float) -> AttitudeProvider:
        return self._require_map().get(date)

    def get_active_span(self, date: float) -> Span:
        return self._require_map().get_span(date)

    def get_activated_spans(self) -> List[Span]:
        return list(self._require_map())

    def get_attitude(self, pv_provider, date: float, frame: Frame) -> Attitude:
        return self._require_map().get(date).get_attitude(pv_provider, date, frame)


class _Switch(EventDetector):
    """Event detector wrapping a switching condition of a sequence."""

    def __init__(self, sequence: AttitudesSequence, event: EventDetector,
                 switch_on_increase: bool, switch_on_decrease: bool,
                 past: AttitudeProvider, future: AttitudeProvider,
                 transition_time: float, transition_filter: AngularDerivativesFilter,
                 handler: Optional[SwitchHandler]) -> None:
        super().__init__(event.max_check_interval, event.threshold,
                         event.max_iteration_count, event.handler)
        self._sequence = sequence
        self.event = event
        self.switch_on_increase = switch_on_increase
        self.switch_on_decrease = switch_on_decrease
        self.past = past
        self.future = future
        self.transition_time = float(transition_time)
        self.transition_filter = transition_filter
        self.switch_handler = handler
        self._forward = True

    def init(self, initial_state: SpacecraftState, target: float) -> None:
        self._forward = target - initial_state.date >= 0.0
        activated = self._sequence._activated
        if activated.spans_number() > 1:
            # drop history that the coming propagation will recompute
            if self._forward:
                activated = activated.extract_range(PAST_INFINITY,
                                                    initial_state.date + self.transition_time)
            else:
                activated = activated.extract_range(initial_state.date - self.transition_time,
                                                    FUTURE_INFINITY)
            self._sequence._activated = activated
        self.event.init(initial_state, target)

    def g(self, state: SpacecraftState) -> float:
        if self._forward:
            return self.event.g(state)
        return self.event.g(state.shifted_by(-self.transition_time))

    def event_occurred(self, state: SpacecraftState, increasing: bool) -> Action:
        activated = self._sequence._activated
        date = state.date
        expected = self.past if self._forward else self.future
        enabled = self.switch_on_increase if increasing else self.switch_on_decrease
        if activated.get(date) is not expected or not enabled:
            return self.event.event_occurred(state, increasing)

        if self._forward:
            transition_end = date + self.transition_time
            activated.add_valid_after(
                TransitionProvider(state.attitude, transition_end, self.future,
                                   self.transition_filter),
                date, False)
            activated.add_valid_after(self.future, transition_end, False)
            logger.info("Attitude switch at t=%.3f s: %r -> %r (transition until %.3f s)",
                        date, self.past, self.future, transition_end)
            if self.switch_handler is not None:
                self.switch_handler.switch_occurred(self.past, self.future, state)
            return self.event.event_occurred(state, increasing)

        # backward: transition start estimated with a Keplerian shift
        shifted = state.shifted_by(-self.transition_time)
        start_attitude = self.past.get_attitude(shifted, shifted.date, shifted.frame)
        start_state = SpacecraftState(shifted.date, shifted.position, shifted.velocity,
                                      frame=shifted.frame, mu=shifted.mu,
                                      attitude=start_attitude, mass=state.mass,
                                      additional_states=state.additional_states)
        activated.add_valid_before(
            TransitionProvider(start_attitude, date, self.future, self.transition_filter),
            date, False)
        activated.add_valid_before(self.past, start_state.date, False)
        logger.info("Attitude switch at t=%.3f s (backward): %r -> %r (transition from %.3f s)",
                    date, self.future, self.past, start_state.date)
        if self.switch_handler is not None:
            self.switch_handler.switch_occurred(self.future, self.past, start_state)
        return self.event.event_occurred(start_state, increasing)

    def reset_state(self, old_state: SpacecraftState) -> SpacecraftState:
        return self.event.reset_state(old_state)
