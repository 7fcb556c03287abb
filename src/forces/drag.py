"""
===============================================================================
ORBITDYN - Atmospheric Drag
===============================================================================
Exponential atmosphere anchored at a reference altitude,

    rho(h) = rho_ref * exp(-(h - h_ref) / H)

and cannonball drag with the atmosphere co-rotating with the Earth:

    v_rel = v - omega_E x r
    a     = -0.5 rho (Cd A / m) |v_rel| v_rel

The drag coefficient is exposed as the "drag coefficient" driver.
===============================================================================
"""

import numpy as np

from core.constants import (
    ATMOSPHERE_LIMIT,
    ATMOSPHERE_REFERENCE_ALTITUDE,
    ATMOSPHERE_REFERENCE_DENSITY,
    ATMOSPHERE_SCALE_HEIGHT,
    EARTH_EQUATORIAL_RADIUS,
    EARTH_ROTATION_RATE,
)
from core.parameters import ParameterDriver
from forces.base import ForceModel

DRAG_COEFFICIENT = "drag coefficient"


class ExponentialAtmosphere:
    """
    Parameters
    ----------
    reference_density : float
        Density at the reference altitude (kg/m^3).
    reference_altitude : float
        Anchor altitude (m).
    scale_height : float
        Density scale height (m).
    atmosphere_limit : float
        Altitude above which density is zero (m).
    body_radius : float
        Radius used to turn positions into altitudes (m).
    """

    def __init__(self, reference_density: float = ATMOSPHERE_REFERENCE_DENSITY,
                 reference_altitude: float = ATMOSPHERE_REFERENCE_ALTITUDE,
                 scale_height: float = ATMOSPHERE_SCALE_HEIGHT,
                 atmosphere_limit: float = ATMOSPHERE_LIMIT,
                 body_radius: float = EARTH_EQUATORIAL_RADIUS) -> None:
        self.reference_density = reference_density
        self.reference_altitude = reference_altitude
        self.scale_height = scale_height
        self.atmosphere_limit = atmosphere_limit
        self.body_radius = body_radius

    def get_density(self, altitude: float) -> float:
        if altitude < 0.0 or altitude > self.atmosphere_limit:
            return 0.0
        return float(self.reference_density
                     * np.exp(-(altitude - self.reference_altitude) / self.scale_height))

    def get_density_from_position(self, position: np.ndarray) -> float:
        return self.get_density(float(np.linalg.norm(position)) - self.body_radius)

    def get_velocity(self, position: np.ndarray) -> np.ndarray:
        """Inertial velocity of the atmosphere at *position*."""
        return np.cross(np.array([0.0, 0.0, EARTH_ROTATION_RATE]), position)


class IsotropicDrag(ForceModel):
    """
    Parameters
    ----------
    atmosphere : ExponentialAtmosphere
    cross_section : float
        Area exposed to the flow (m^2).
    drag_coefficient : float
        Initial Cd.
    """

    def __init__(self, atmosphere: ExponentialAtmosphere, cross_section: float,
                 drag_coefficient: float = 2.2) -> None:
        self.atmosphere = atmosphere
        self.cross_section = cross_section
        self._cd_driver = ParameterDriver(DRAG_COEFFICIENT, drag_coefficient, 1.0, 0.0, np.inf)

    @property
    def parameter_drivers(self):
        return [self._cd_driver]

    def acceleration(self, date, position, velocity, mass):
        rho = self.atmosphere.get_density_from_position(position)
        if rho == 0.0:
            return np.zeros(3)
        v_rel = np.asarray(velocity) - self.atmosphere.get_velocity(position)
        k = 0.5 * rho * self._cd_driver.value * self.cross_section / mass
        return -k * np.linalg.norm(v_rel) * v_rel
