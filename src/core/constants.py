"""
===============================================================================
ORBITDYN - Physical and Astronomical Constants
===============================================================================
Central repository for the physical constants used by the propagators, force
models and estimators. SI units throughout (meters, seconds, kilograms,
radians).

Values follow IAU 2012 / IERS conventions where applicable.
===============================================================================
"""

import numpy as np


# =============================================================================
# MATHEMATICAL CONSTANTS
# =============================================================================
TWO_PI = 2.0 * np.pi
DEG2RAD = np.pi / 180.0
RAD2DEG = 180.0 / np.pi

# =============================================================================
# FUNDAMENTAL PHYSICAL CONSTANTS
# =============================================================================
AU = 1.495978707e11                    # Astronomical Unit in meters
G0_STANDARD_GRAVITY = 9.80665          # m/s^2, used for Isp -> exhaust velocity

# =============================================================================
# EARTH PARAMETERS
# =============================================================================
EARTH_MU = 3.986004418e14              # Gravitational parameter (m^3/s^2)
EARTH_EQUATORIAL_RADIUS = 6378137.0    # WGS84 equatorial radius (m)
EARTH_J2 = 1.08263e-3                  # J2 oblateness coefficient
EARTH_ROTATION_RATE = 7.2921159e-5     # rad/s (sidereal)
EARTH_FLATTENING = 1.0 / 298.257223563  # WGS84 flattening

# Exponential atmosphere anchored at a LEO reference altitude, so that the
# density stays representative where drag matters for orbit determination
ATMOSPHERE_REFERENCE_ALTITUDE = 400000.0   # m
ATMOSPHERE_REFERENCE_DENSITY = 3.725e-12   # kg/m^3 at reference altitude
ATMOSPHERE_SCALE_HEIGHT = 58515.0          # m
ATMOSPHERE_LIMIT = 1000000.0               # m

# =============================================================================
# SUN PARAMETERS
# =============================================================================
SOLAR_PRESSURE_AT_1AU = 4.56e-6        # N/m^2 (solar radiation pressure)
SUN_YEAR = 365.25 * 86400.0            # s, period of the apparent solar orbit
ECLIPTIC_OBLIQUITY = 23.4393 * DEG2RAD  # rad

# Time bounds used as open ends of validity spans
PAST_INFINITY = -np.inf
FUTURE_INFINITY = np.inf
