"""
Force model interface.

A force model returns the inertial acceleration it produces for a given
date, position, velocity and mass. Models whose coefficients may be
estimated expose them as parameter drivers; the numerical propagator reads
driver values at each evaluation, so changing a driver value changes the
dynamics of the next propagation.
"""

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from core.parameters import ParameterDriver


class ForceModel(ABC):

    def init(self, initial_state, target: float) -> None:
        """Called once before each propagation."""

    @abstractmethod
    def acceleration(self, date: float, position: np.ndarray,
                     velocity: np.ndarray, mass: float) -> np.ndarray:
        """Inertial acceleration (m/s^2)."""

    @property
    def parameter_drivers(self) -> List[ParameterDriver]:
        return []

    def get_event_detectors(self) -> list:
        """Detectors marking discontinuities of the model (shadow entries...)."""
        return []

    def get_parameter_driver(self, name: str) -> ParameterDriver:
        for driver in self.parameter_drivers:
            if driver.name == name:
                return driver
        raise KeyError(name)
