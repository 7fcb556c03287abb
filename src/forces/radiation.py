"""
===============================================================================
ORBITDYN - Solar Radiation Pressure
===============================================================================
Cannonball radiation pressure in the classical convention,

    a = P_1AU (AU / d)^2 Cr A / m * u_sun->sat * nu

with Cr between 1 (absorbing) and 2 (reflecting) exposed as the
"reflection coefficient" driver and nu the lighting ratio of a cylindrical
Earth shadow (0 or 1). Shadow boundaries are discontinuities of the
dynamics, so the model hands the propagator an eclipse detector that resets
the integrator derivatives at every crossing.
===============================================================================
"""

import numpy as np

from core.constants import AU, EARTH_EQUATORIAL_RADIUS, SOLAR_PRESSURE_AT_1AU
from core.frames import compute_sun_position
from core.parameters import ParameterDriver
from forces.base import ForceModel
from propagation.events.detectors import EclipseDetector
from propagation.events.handlers import ResetDerivativesOnEvent

REFLECTION_COEFFICIENT = "reflection coefficient"


class IsotropicRadiationClassicalConvention(ForceModel):
    """
    Parameters
    ----------
    cross_section : float
        Area facing the Sun (m^2).
    cr : float
        Initial radiation pressure coefficient.
    occulting_radius : float
        Radius of the shadow cylinder (m).
    sun_position : callable
        ``date -> inertial Sun position``.
    """

    def __init__(self, cross_section: float, cr: float = 1.5,
                 occulting_radius: float = EARTH_EQUATORIAL_RADIUS,
                 sun_position=compute_sun_position,
                 pressure_1au: float = SOLAR_PRESSURE_AT_1AU) -> None:
        self.cross_section = cross_section
        self.occulting_radius = occulting_radius
        self.pressure_1au = pressure_1au
        self._sun_position = sun_position
        self._cr_driver = ParameterDriver(REFLECTION_COEFFICIENT, cr, 1.0, 0.0, 2.0)

    @property
    def parameter_drivers(self):
        return [self._cr_driver]

    def lighting_ratio(self, date: float, position: np.ndarray) -> float:
        sun = self._sun_position(date)
        u = sun / np.linalg.norm(sun)
        p = float(np.dot(position, u))
        if p >= 0.0:
            return 1.0
        return 1.0 if np.linalg.norm(position - p * u) > self.occulting_radius else 0.0

    def acceleration(self, date, position, velocity, mass):
        position = np.asarray(position, dtype=np.float64)
        ratio = self.lighting_ratio(date, position)
        if ratio == 0.0:
            return np.zeros(3)
        sat_from_sun = position - self._sun_position(date)
        d = np.linalg.norm(sat_from_sun)
        pressure = self.pressure_1au * (AU / d) ** 2
        a_mag = ratio * pressure * self._cr_driver.value * self.cross_section / mass
        return a_mag * sat_from_sun / d

    def get_event_detectors(self):
        return [EclipseDetector(self.occulting_radius, self._sun_position,
                                handler=ResetDerivativesOnEvent())]
