"""
Additional state providers.

A provider computes a named array from the rest of a state (attitude,
orbit, other additional states). Propagators evaluate every registered
provider each time they build a state, in registration order, so a
provider may read the output of providers registered before it.
"""

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np


class AdditionalStateProvider(ABC):
    """Computes one additional state from a spacecraft state."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the additional state."""

    def init(self, initial_state, target: float) -> None:
        """Called once before propagation starts."""

    @abstractmethod
    def get_additional_state(self, state) -> np.ndarray:
        """Value of the additional state for *state*."""


class FunctionalStateProvider(AdditionalStateProvider):
    """Provider wrapping a plain ``state -> array`` callable."""

    def __init__(self, name: str, function: Callable) -> None:
        self._name = name
        self._function = function

    @property
    def name(self) -> str:
        return self._name

    def get_additional_state(self, state) -> np.ndarray:
        return np.atleast_1d(np.asarray(self._function(state), dtype=np.float64))
