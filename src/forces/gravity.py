"""
===============================================================================
ORBITDYN - Gravity Force Models
===============================================================================
    NewtonianAttraction   a = -mu r / |r|^3, mu exposed as a driver
    J2Perturbation        oblateness term only (central term excluded)

J2 acceleration (Vallado eq. 8-25, perturbation part):

    a_x = mu x / r^3 * 1.5 J2 (R/r)^2 (5 z^2/r^2 - 1)
    a_y = mu y / r^3 * 1.5 J2 (R/r)^2 (5 z^2/r^2 - 1)
    a_z = mu z / r^3 * 1.5 J2 (R/r)^2 (5 z^2/r^2 - 3)
===============================================================================
"""

import numpy as np

from core.constants import EARTH_EQUATORIAL_RADIUS, EARTH_J2, EARTH_MU
from core.parameters import ParameterDriver
from forces.base import ForceModel

CENTRAL_ATTRACTION_COEFFICIENT = "central attraction coefficient"

# mu normalization scale (about 4.3e9 m^3/s^2)
MU_SCALE = 2.0 ** 32


class NewtonianAttraction(ForceModel):
    """Point-mass attraction of the central body."""

    def __init__(self, mu: float = EARTH_MU) -> None:
        self._mu_driver = ParameterDriver(CENTRAL_ATTRACTION_COEFFICIENT, mu, MU_SCALE,
                                          0.0, np.inf)

    @property
    def mu(self) -> float:
        return self._mu_driver.value

    @property
    def parameter_drivers(self):
        return [self._mu_driver]

    def acceleration(self, date, position, velocity, mass):
        r = np.asarray(position, dtype=np.float64)
        r_mag = np.linalg.norm(r)
        return -self._mu_driver.value / (r_mag ** 3) * r


class J2Perturbation(ForceModel):
    """
    Second zonal harmonic of the central body, pole along the frame Z axis.
    """

    def __init__(self, mu: float = EARTH_MU, body_radius: float = EARTH_EQUATORIAL_RADIUS,
                 j2: float = EARTH_J2) -> None:
        self.mu = mu
        self.R = body_radius
        self.j2 = j2

    def acceleration(self, date, position, velocity, mass):
        x, y, z = position
        r = np.linalg.norm(position)
        r3 = r * r * r
        factor = 1.5 * self.j2 * (self.R / r) ** 2
        z2_over_r2 = (z / r) ** 2
        common_xy = factor * (5.0 * z2_over_r2 - 1.0)
        common_z = factor * (5.0 * z2_over_r2 - 3.0)
        return np.array([
            self.mu * x / r3 * common_xy,
            self.mu * y / r3 * common_xy,
            self.mu * z / r3 * common_z,
        ], dtype=np.float64)
