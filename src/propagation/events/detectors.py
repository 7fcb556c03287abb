"""
===============================================================================
ORBITDYN - Event Detectors
===============================================================================
Every detector exposes a switching function g(state) that is continuous in
time and changes sign at the events of interest. The propagation loop
samples g at most every ``max_check_interval`` seconds and locates sign
changes to ``threshold`` seconds with at most ``max_iteration_count``
root-finder iterations.

Detectors are configured fluently; ``with_*`` methods return modified
shallow copies so that a configured detector can be shared as a template:

    detector = (EclipseDetector()
                .with_max_check(60.0)
                .with_threshold(1e-3)
                .with_handler(StopOnDecreasing()))

Sign conventions
----------------
    DateDetector     g < 0 before the first date, alternating afterwards
    EclipseDetector  g < 0 inside the cylindrical shadow
    ApsideDetector   g = r.v, increasing at periapsis, decreasing at apoapsis
===============================================================================
"""

import copy
from abc import ABC, abstractmethod
from bisect import bisect_left
from typing import Callable

import numpy as np

from core.constants import EARTH_EQUATORIAL_RADIUS
from core.frames import compute_sun_position
from propagation.events.handlers import (
    Action,
    ContinueOnEvent,
    EventHandler,
    StopOnEvent,
    StopOnIncreasing,
)


class EventDetector(ABC):
    """
    Base class for event detectors.

    Parameters
    ----------
    max_check : float
        Maximum time between two evaluations of g (s).
    threshold : float
        Convergence threshold on the event date (s).
    max_iter : int
        Maximum number of root-finder iterations.
    handler : EventHandler, optional
        Reaction to events; subclasses pick their own default.
    """

    DEFAULT_MAX_CHECK = 600.0
    DEFAULT_THRESHOLD = 1.0e-6
    DEFAULT_MAX_ITER = 100

    def __init__(self, max_check: float = DEFAULT_MAX_CHECK,
                 threshold: float = DEFAULT_THRESHOLD,
                 max_iter: int = DEFAULT_MAX_ITER,
                 handler: EventHandler = None) -> None:
        if max_check <= 0.0:
            raise ValueError(f"max check interval must be positive, got {max_check}")
        if threshold <= 0.0:
            raise ValueError(f"convergence threshold must be positive, got {threshold}")
        self._max_check = float(max_check)
        self._threshold = float(threshold)
        self._max_iter = int(max_iter)
        self._handler = handler if handler is not None else self._default_handler()

    def _default_handler(self) -> EventHandler:
        return StopOnEvent()

    # -------------------------------------------------------------------------
    # configuration
    # -------------------------------------------------------------------------

    @property
    def max_check_interval(self) -> float:
        return self._max_check

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def max_iteration_count(self) -> int:
        return self._max_iter

    @property
    def handler(self) -> EventHandler:
        return self._handler

    def with_handler(self, handler: EventHandler) -> 'EventDetector':
        other = copy.copy(self)
        other._handler = handler
        return other

    def with_threshold(self, threshold: float) -> 'EventDetector':
        if threshold <= 0.0:
            raise ValueError(f"convergence threshold must be positive, got {threshold}")
        other = copy.copy(self)
        other._threshold = float(threshold)
        return other

    def with_max_check(self, max_check: float) -> 'EventDetector':
        if max_check <= 0.0:
            raise ValueError(f"max check interval must be positive, got {max_check}")
        other = copy.copy(self)
        other._max_check = float(max_check)
        return other

    def with_max_iter(self, max_iter: int) -> 'EventDetector':
        other = copy.copy(self)
        other._max_iter = int(max_iter)
        return other

    # -------------------------------------------------------------------------
    # event protocol
    # -------------------------------------------------------------------------

    def init(self, initial_state, target: float) -> None:
        """Called once before propagation starts."""
        self._handler.init(initial_state, target, self)

    @abstractmethod
    def g(self, state) -> float:
        """Switching function, sign changes mark events."""

    def event_occurred(self, state, increasing: bool) -> Action:
        return self._handler.event_occurred(state, self, increasing)

    def reset_state(self, old_state):
        return self._handler.reset_state(self, old_state)


class DateDetector(EventDetector):
    """
    Events at one or more fixed dates.

    With sorted dates d_0 < d_1 < ..., g(t) = (-1)^k (t - d_k) where d_k is
    the date closest to t. The function is continuous, increasing through
    d_0, decreasing through d_1, and so on.
    """

    def __init__(self, *dates: float, max_check: float = 1.0e10,
                 threshold: float = 1.0e-9, max_iter: int = EventDetector.DEFAULT_MAX_ITER,
                 handler: EventHandler = None) -> None:
        super().__init__(max_check, threshold, max_iter, handler)
        self._dates = sorted(float(d) for d in dates)

    @property
    def dates(self):
        return list(self._dates)

    def add_event_date(self, date: float) -> None:
        idx = bisect_left(self._dates, date)
        if idx < len(self._dates) and self._dates[idx] == date:
            return
        self._dates.insert(idx, float(date))

    def g(self, state) -> float:
        if not self._dates:
            return -1.0
        t = state.date
        idx = bisect_left(self._dates, t)
        if idx == len(self._dates):
            k = idx - 1
        elif idx == 0:
            k = 0
        else:
            before, after = self._dates[idx - 1], self._dates[idx]
            k = idx - 1 if (t - before) <= (after - t) else idx
        sign = 1.0 if k % 2 == 0 else -1.0
        return sign * (t - self._dates[k])


class FunctionalDetector(EventDetector):
    """Detector built from a plain callable ``g(state) -> float``."""

    def __init__(self, function: Callable = None,
                 max_check: float = EventDetector.DEFAULT_MAX_CHECK,
                 threshold: float = EventDetector.DEFAULT_THRESHOLD,
                 max_iter: int = EventDetector.DEFAULT_MAX_ITER,
                 handler: EventHandler = None) -> None:
        super().__init__(max_check, threshold, max_iter, handler)
        self._function = function if function is not None else (lambda s: 1.0)

    def _default_handler(self) -> EventHandler:
        return ContinueOnEvent()

    def with_function(self, function: Callable) -> 'FunctionalDetector':
        other = copy.copy(self)
        other._function = function
        return other

    def g(self, state) -> float:
        return float(self._function(state))


class EclipseDetector(EventDetector):
    """
    Entry / exit of a cylindrical Earth shadow.

    Let u be the Sun direction and p = r.u. On the night side (p < 0)
    g = |r - p u| - R; on the day side g = |r| - R, which joins
    continuously at p = 0. g < 0 means eclipse, so entry is a decreasing
    event and exit an increasing one. By default propagation stops at exit.

    Parameters
    ----------
    occulting_radius : float
        Shadow cylinder radius (m).
    sun_position : callable, optional
        ``date -> inertial Sun position``; analytic model by default.
    """

    def __init__(self, occulting_radius: float = EARTH_EQUATORIAL_RADIUS,
                 sun_position: Callable[[float], np.ndarray] = compute_sun_position,
                 max_check: float = 60.0, threshold: float = 1.0e-3,
                 max_iter: int = EventDetector.DEFAULT_MAX_ITER,
                 handler: EventHandler = None) -> None:
        super().__init__(max_check, threshold, max_iter, handler)
        self._radius = float(occulting_radius)
        self._sun_position = sun_position

    def _default_handler(self) -> EventHandler:
        return StopOnIncreasing()

    def g(self, state) -> float:
        r = np.asarray(state.position)
        sun = self._sun_position(state.date)
        u = sun / np.linalg.norm(sun)
        p = float(np.dot(r, u))
        if p >= 0.0:
            return float(np.linalg.norm(r)) - self._radius
        return float(np.linalg.norm(r - p * u)) - self._radius


class ApsideDetector(EventDetector):
    """
    Periapsis / apoapsis crossings, g = r . v.

    ``max_check`` defaults to a third of the Keplerian period of
    *reference_state* when one is given.
    """

    def __init__(self, reference_state=None, max_check: float = None,
                 threshold: float = 1.0e-6, max_iter: int = EventDetector.DEFAULT_MAX_ITER,
                 handler: EventHandler = None) -> None:
        if max_check is None:
            max_check = (reference_state.keplerian_period / 3.0
                         if reference_state is not None else EventDetector.DEFAULT_MAX_CHECK)
        super().__init__(max_check, threshold, max_iter, handler)

    def g(self, state) -> float:
        return float(np.dot(state.position, state.velocity))


class EventSlopeFilter(EventDetector):
    """
    Wraps a detector and keeps only increasing or only decreasing events.

    The raw detector's g is kept for root finding; events of the unwanted
    direction are silently continued through.
    """

    def __init__(self, raw_detector: EventDetector, keep_increasing: bool) -> None:
        super().__init__(raw_detector.max_check_interval, raw_detector.threshold,
                         raw_detector.max_iteration_count, raw_detector.handler)
        self._raw = raw_detector
        self._keep_increasing = keep_increasing

    def init(self, initial_state, target: float) -> None:
        self._raw.init(initial_state, target)

    def g(self, state) -> float:
        return self._raw.g(state)

    def event_occurred(self, state, increasing: bool) -> Action:
        if increasing != self._keep_increasing:
            return Action.CONTINUE
        return self._raw.event_occurred(state, increasing)

    def reset_state(self, old_state):
        return self._raw.reset_state(old_state)

