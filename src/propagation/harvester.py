"""
Matrices harvesters.

A harvester extracts, for any state produced by the propagator it was set
up on, the state transition matrix dY(t)/dY(t0) of the Cartesian state
[x, y, z, vx, vy, vz] and the Jacobian dY(t)/dp of that state with respect
to the selected propagation parameters. Harvesters are bound to one
propagator instance: a rebuilt propagator needs a new harvester.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np


class MatricesHarvester(ABC):

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    def get_state_transition_matrix(self, state) -> np.ndarray:
        """6x6 state transition matrix at the state date."""

    @abstractmethod
    def get_parameters_jacobian(self, state) -> Optional[np.ndarray]:
        """6xk Jacobian wrt the propagation parameters, None when k = 0."""

    @abstractmethod
    def get_jacobians_columns_names(self) -> List[str]:
        """Names of the parameters, in the column order of the Jacobian."""
