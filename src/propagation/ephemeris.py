"""
===============================================================================
ORBITDYN - Bounded Propagators
===============================================================================
Propagators only valid over a finite date range:

    Ephemeris                   Hermite interpolation over recorded states
    AggregateBoundedPropagator  chains bounded propagators by start date

Both refuse dates outside their range and cannot be reset, since their
trajectory is fixed once built.
===============================================================================
"""

import logging
from bisect import bisect_right
from typing import List, Sequence

import numpy as np
from scipy.interpolate import KroghInterpolator

from core.errors import ConfigurationError, PropagationError
from propagation.propagator import AbstractAnalyticalPropagator
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)


class Ephemeris(AbstractAnalyticalPropagator):
    """
    Interpolated trajectory through a list of states.

    Position and velocity are matched at the ``interpolation_points`` samples
    nearest to the requested date (Hermite). Mass and additional states are
    interpolated linearly between the bracketing samples.

    Parameters
    ----------
    states : sequence of SpacecraftState
        At least two states, strictly increasing dates, same frame.
    attitude_provider : AttitudeProvider, optional
    interpolation_points : int
    """

    def __init__(self, states: Sequence[SpacecraftState], attitude_provider=None,
                 interpolation_points: int = 4) -> None:
        super().__init__(attitude_provider)
        if len(states) < 2:
            raise ConfigurationError("an ephemeris needs at least two states")
        states = list(states)
        dates = [s.date for s in states]
        if any(b <= a for a, b in zip(dates, dates[1:])):
            raise ConfigurationError("ephemeris states must have strictly increasing dates")
        self._states: List[SpacecraftState] = states
        self._dates = dates
        self._points = max(2, min(int(interpolation_points), len(states)))
        self._initial_state = states[0]

    @property
    def min_date(self) -> float:
        return self._dates[0]

    @property
    def max_date(self) -> float:
        return self._dates[-1]

    def reset_initial_state(self, state: SpacecraftState) -> None:
        if self._initial_state is not None:
            raise PropagationError("an ephemeris cannot be reset")
        super().reset_initial_state(state)

    def _reset_intermediate_state(self, state: SpacecraftState, forward: bool) -> None:
        raise PropagationError("an ephemeris cannot be reset")

    def _neighbours(self, date: float) -> List[SpacecraftState]:
        idx = bisect_right(self._dates, date)
        start = min(max(0, idx - self._points // 2), len(self._states) - self._points)
        return self._states[start:start + self._points]

    def _propagate_orbit(self, date: float) -> SpacecraftState:
        if date < self.min_date or date > self.max_date:
            raise PropagationError(
                f"date {date:.3f} s outside ephemeris range "
                f"[{self.min_date:.3f}, {self.max_date:.3f}] s")
        samples = self._neighbours(date)
        t_ref = samples[0].date
        xi, yi = [], []
        for s in samples:
            xi.extend([s.date - t_ref, s.date - t_ref])
            yi.extend([s.position, s.velocity])
        poly = KroghInterpolator(np.array(xi), np.array(yi))
        pv = poly.derivatives(date - t_ref, der=2)

        idx = min(max(bisect_right(self._dates, date), 1), len(self._states) - 1)
        before, after = self._states[idx - 1], self._states[idx]
        w = (date - before.date) / (after.date - before.date)
        mass = (1.0 - w) * before.mass + w * after.mass
        additional = {}
        for name, value in before.additional_states.items():
            if after.has_additional_state(name):
                additional[name] = (1.0 - w) * value + w * after.get_additional_state(name)
        return SpacecraftState(date, pv[0], pv[1], frame=before.frame, mu=before.mu,
                               mass=mass, additional_states=additional)


class AggregateBoundedPropagator(AbstractAnalyticalPropagator):
    """
    Several bounded propagators glued together.

    At a given date the propagator with the latest ``min_date`` not after
    that date is used; dates before every start use the first one.

    Parameters
    ----------
    propagators : sequence
        Bounded propagators exposing ``min_date`` and ``max_date``.
    """

    def __init__(self, propagators: Sequence, attitude_provider=None) -> None:
        super().__init__(attitude_provider)
        if not propagators:
            raise ConfigurationError("aggregate propagator requires at least one propagator")
        self._propagators = sorted(propagators, key=lambda p: p.min_date)
        self._starts = [p.min_date for p in self._propagators]
        first = self._propagators[0]
        self._initial_state = first._silent_propagate(first.min_date)

    @property
    def min_date(self) -> float:
        return self._starts[0]

    @property
    def max_date(self) -> float:
        return max(p.max_date for p in self._propagators)

    @property
    def propagators(self) -> list:
        return list(self._propagators)

    def reset_initial_state(self, state: SpacecraftState) -> None:
        if self._initial_state is not None:
            raise PropagationError("an aggregate bounded propagator cannot be reset")
        super().reset_initial_state(state)

    def _reset_intermediate_state(self, state: SpacecraftState, forward: bool) -> None:
        raise PropagationError("an aggregate bounded propagator cannot be reset")

    def _select(self, date: float):
        idx = bisect_right(self._starts, date) - 1
        return self._propagators[max(idx, 0)]

    def _propagate_orbit(self, date: float) -> SpacecraftState:
        return self._select(date)._propagate_orbit(date)
