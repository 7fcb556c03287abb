"""
===============================================================================
ORBITDYN - Event State
===============================================================================
Book-keeping of one detector during one propagation.

For each propagation step [t0, t1] handed over by the propagator, the
switching function is sampled on sub-intervals no longer than the
detector's ``max_check_interval``. The first sub-interval (in propagation
direction) showing a sign change is refined with Brent's method
(``scipy.optimize.brentq``) down to the detector's ``threshold``.

"Increasing" always refers to time, whatever the propagation direction:
an increasing event has g < 0 just before the root and g > 0 just after
it, in chronological order.

Once an event has been handled, the search restarts at the root with the
sign g takes after the crossing, and roots closer than ``threshold`` to the
previous event are ignored so that an event is never triggered twice.
===============================================================================
"""

import logging
import math

from scipy.optimize import brentq

from propagation.events.handlers import Action

logger = logging.getLogger(__name__)


class EventState:
    """
    Parameters
    ----------
    detector : EventDetector
        Wrapped detector.
    """

    def __init__(self, detector) -> None:
        self.detector = detector
        self._forward = True
        self._t0 = None
        self._g0_positive = True
        self._previous_event_time = None
        self._pending = False
        self._event_time = None
        self._increasing = True

    # -------------------------------------------------------------------------

    def init(self, initial_state, target: float) -> None:
        """Initialize the detector and evaluate g at the start point."""
        self.detector.init(initial_state, target)
        self._forward = target >= initial_state.date
        self._t0 = initial_state.date
        g0 = self.detector.g(initial_state)
        if g0 == 0.0:
            # starting exactly on a root: use the sign slightly ahead
            direction = 1.0 if self._forward else -1.0
            ahead = initial_state.shifted_by(direction * 0.5 * self.detector.threshold)
            g0 = self.detector.g(ahead)
        self._g0_positive = g0 >= 0.0
        self._previous_event_time = None
        self._pending = False
        self._event_time = None

    @property
    def event_time(self) -> float:
        return self._event_time

    @property
    def is_pending(self) -> bool:
        return self._pending

    @property
    def increasing(self) -> bool:
        return self._increasing

    def _g_at(self, interpolator, t: float) -> float:
        return self.detector.g(interpolator.get_interpolated_state(t))

    def evaluate_step(self, interpolator) -> bool:
        """
        Look for the first event in the step covered by *interpolator*.

        Returns
        -------
        bool
            True if an event was found; its date is then ``event_time``.
        """
        self._pending = False
        t_start = self._t0
        t_end = interpolator.current_date
        span = t_end - t_start
        threshold = self.detector.threshold
        if abs(span) < threshold:
            return False

        n = max(1, int(math.ceil(abs(span) / self.detector.max_check_interval)))
        h = span / n
        ta = t_start
        ga_positive = self._g0_positive
        for i in range(1, n + 1):
            tb = t_end if i == n else t_start + i * h
            gb = self._g_at(interpolator, tb)
            # an exact zero is a root reached from the previous sign
            gb_positive = (not ga_positive) if gb == 0.0 else gb > 0.0
            if gb_positive != ga_positive:
                root = self._locate(interpolator, ta, tb, gb)
                if root is not None:
                    self._pending = True
                    self._event_time = root
                    self._increasing = gb_positive == self._forward
                    return True
            ta = tb
            ga_positive = gb_positive
        return False

    def _locate(self, interpolator, ta: float, tb: float, gb: float):
        """Root of g in [ta, tb], or None if the bracket is spurious."""
        ga = self._g_at(interpolator, ta)
        if ga == 0.0:
            root = ta
        elif (ga > 0.0) == (gb > 0.0) and gb != 0.0:
            # start point sits on a handled root: bracket again just past it
            ta = ta + math.copysign(self.detector.threshold, tb - ta)
            if (ta - tb) * (tb - self._t0) >= 0.0:
                return None
            ga = self._g_at(interpolator, ta)
            if (ga > 0.0) == (gb > 0.0):
                return None
            lo, hi = (ta, tb) if ta < tb else (tb, ta)
            root = brentq(lambda t: self._g_at(interpolator, t), lo, hi,
                          xtol=self.detector.threshold,
                          maxiter=self.detector.max_iteration_count)
        else:
            lo, hi = (ta, tb) if ta < tb else (tb, ta)
            root = brentq(lambda t: self._g_at(interpolator, t), lo, hi,
                          xtol=self.detector.threshold,
                          maxiter=self.detector.max_iteration_count)
        if (self._previous_event_time is not None
                and abs(root - self._previous_event_time) <= self.detector.threshold):
            return None
        return root

    def do_event(self, state):
        """
        Notify the detector of the pending event.

        Returns
        -------
        tuple
            (Action, new_state) where new_state is only set for
            ``Action.RESET_STATE``.
        """
        action = self.detector.event_occurred(state, self._increasing)
        logger.debug("%s event at t=%.6f (increasing=%s) -> %s",
                     type(self.detector).__name__, state.date, self._increasing, action.name)
        new_state = None
        if action == Action.RESET_STATE:
            new_state = self.detector.reset_state(state)
        self._pending = False
        self._previous_event_time = self._event_time
        self._t0 = self._event_time
        self._g0_positive = self._increasing == self._forward
        return action, new_state

    def restart_at(self, state) -> None:
        """Resume searching from *state* (after another detector's event or a reset)."""
        self._pending = False
        self._t0 = state.date
        g = self.detector.g(state)
        if g == 0.0:
            # sitting on a root: keep the sign it is reached from
            return
        self._g0_positive = g > 0.0

    def step_accepted(self, state) -> None:
        """The whole step up to *state* has been searched."""
        self._t0 = state.date
        if not self._sits_on_previous(state):
            g = self.detector.g(state)
            if g != 0.0:
                self._g0_positive = g > 0.0

    def _sits_on_previous(self, state) -> bool:
        return (self._previous_event_time is not None
                and abs(state.date - self._previous_event_time) <= self.detector.threshold)
