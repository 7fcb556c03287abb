"""
Event handlers and the actions they return to the propagation loop.
"""

from abc import ABC, abstractmethod
from enum import Enum


class Action(Enum):
    """What the propagator does after an event has been handled."""

    STOP = 'stop'
    RESET_STATE = 'reset_state'
    RESET_DERIVATIVES = 'reset_derivatives'
    CONTINUE = 'continue'


class EventHandler(ABC):
    """Reaction attached to an event detector."""

    def init(self, initial_state, target: float, detector) -> None:
        """Called once at the start of each propagation."""

    @abstractmethod
    def event_occurred(self, state, detector, increasing: bool) -> Action:
        """
        Parameters
        ----------
        state : SpacecraftState
            State at the event date.
        detector : EventDetector
            Detector that triggered.
        increasing : bool
            True if the switching function increases with time at the root.
        """

    def reset_state(self, detector, old_state):
        """New state after a RESET_STATE action (unchanged by default)."""
        return old_state


class ContinueOnEvent(EventHandler):

    def event_occurred(self, state, detector, increasing: bool) -> Action:
        return Action.CONTINUE


class StopOnEvent(EventHandler):

    def event_occurred(self, state, detector, increasing: bool) -> Action:
        return Action.STOP


class StopOnIncreasing(EventHandler):
    """Stop on increasing events, continue on decreasing ones."""

    def event_occurred(self, state, detector, increasing: bool) -> Action:
        return Action.STOP if increasing else Action.CONTINUE


class StopOnDecreasing(EventHandler):
    """Stop on decreasing events, continue on increasing ones."""

    def event_occurred(self, state, detector, increasing: bool) -> Action:
        return Action.CONTINUE if increasing else Action.STOP


class RecordAndContinue(EventHandler):
    """
    Keep a log of every event and let propagation go on.

    Each entry is a ``(date, increasing, state)`` tuple.
    """

    def __init__(self) -> None:
        self.events = []

    def clear(self) -> None:
        self.events = []

    def event_occurred(self, state, detector, increasing: bool) -> Action:
        self.events.append((state.date, increasing, state))
        return Action.CONTINUE


class ResetDerivativesOnEvent(EventHandler):
    """Used by force models to restart integration across discontinuities."""

    def event_occurred(self, state, detector, increasing: bool) -> Action:
        return Action.RESET_DERIVATIVES
