"""
===============================================================================
ORBITDYN - Reference Frames
===============================================================================
Minimal frame support for the propagators, attitude laws and measurements.

Frames are opaque named objects with a fixed orientation relative to a
single inertial root frame (EME2000-like). Full frame trees with
time-dependent transforms are an external service; the library only needs

    * inertial frames that may be rotated with respect to each other,
    * the Earth-fixed rotation about Z (ground stations),
    * the local orbital frame (LVLH) built from position and velocity,
    * an analytic Sun position for sun pointing, eclipses and radiation
      pressure.

Angles are in radians, distances in meters, time in seconds since the
scenario epoch.

References
----------
    [1] Vallado, "Fundamentals of Astrodynamics and Applications", 4th ed.
    [2] Montenbruck & Gill, "Satellite Orbits", Springer, 2000.

===============================================================================
"""

import numpy as np

from core.constants import (
    AU,
    DEG2RAD,
    EARTH_EQUATORIAL_RADIUS,
    EARTH_FLATTENING,
    EARTH_ROTATION_RATE,
    ECLIPTIC_OBLIQUITY,
    SUN_YEAR,
    TWO_PI,
)
from core.quaternion import Quaternion


class Frame:
    """
    Inertial reference frame.

    Parameters
    ----------
    name : str
        Frame identifier, also used for equality.
    orientation : Quaternion, optional
        Rotation mapping vectors expressed in this frame into the root
        frame. Identity for the root frame itself.
    """

    def __init__(self, name: str, orientation: Quaternion = None) -> None:
        self.name = name
        self.orientation = orientation if orientation is not None else Quaternion.identity()

    def rotation_to(self, other: 'Frame') -> Quaternion:
        """Quaternion mapping vectors expressed in *self* into *other*."""
        if other is self:
            return Quaternion.identity()
        return other.orientation.conjugate() * self.orientation

    def transform_vector(self, v: np.ndarray, other: 'Frame') -> np.ndarray:
        """Express vector *v* (given in self) in frame *other*."""
        if other is self:
            return np.asarray(v, dtype=np.float64)
        return self.rotation_to(other).rotate_vector(v)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return self.name == other.name and self.orientation == other.orientation

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"Frame({self.name!r})"


EME2000 = Frame("EME2000")


# =============================================================================
# ELEMENTARY ROTATIONS
# =============================================================================

def Rx(angle: float) -> np.ndarray:
    """Frame rotation about X (passive, right-hand rule)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [1.0, 0.0, 0.0],
        [0.0,   c,   s],
        [0.0,  -s,   c],
    ], dtype=np.float64)


def Rz(angle: float) -> np.ndarray:
    """Frame rotation about Z (passive, right-hand rule)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [  c,   s, 0.0],
        [ -s,   c, 0.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


# =============================================================================
# EARTH-FIXED FRAME
# =============================================================================

def earth_rotation_angle(time_s: float) -> float:
    """Greenwich angle, zero at the scenario epoch."""
    return EARTH_ROTATION_RATE * time_s


def ecef_to_eci(r_ecef: np.ndarray, time_s: float) -> np.ndarray:
    """
    Earth-fixed position to inertial position.

        r_eci = Rz(-theta) r_ecef,   theta = omega_E * t
    """
    return Rz(-earth_rotation_angle(time_s)) @ np.asarray(r_ecef, dtype=np.float64)


def ecef_to_eci_pv(r_ecef: np.ndarray, time_s: float):
    """
    Inertial position and velocity of a point fixed on the rotating Earth.

    Returns
    -------
    tuple of np.ndarray
        (r_eci, v_eci) with v_eci = omega_E x r_eci.
    """
    r_eci = ecef_to_eci(r_ecef, time_s)
    v_eci = np.cross(np.array([0.0, 0.0, EARTH_ROTATION_RATE]), r_eci)
    return r_eci, v_eci


def geodetic_to_ecef(lat_rad: float, lon_rad: float, alt_m: float) -> np.ndarray:
    """
    Geodetic latitude / longitude / altitude on the WGS84 ellipsoid to ECEF.

        N = a / sqrt(1 - e^2 sin^2(lat))
        x = (N + h) cos(lat) cos(lon)
        y = (N + h) cos(lat) sin(lon)
        z = (N (1 - e^2) + h) sin(lat)
    """
    e2 = EARTH_FLATTENING * (2.0 - EARTH_FLATTENING)
    sin_lat = np.sin(lat_rad)
    cos_lat = np.cos(lat_rad)
    N = EARTH_EQUATORIAL_RADIUS / np.sqrt(1.0 - e2 * sin_lat * sin_lat)
    return np.array([
        (N + alt_m) * cos_lat * np.cos(lon_rad),
        (N + alt_m) * cos_lat * np.sin(lon_rad),
        (N * (1.0 - e2) + alt_m) * sin_lat,
    ], dtype=np.float64)


# =============================================================================
# LOCAL ORBITAL FRAME
# =============================================================================

def eci_to_lvlh(r_eci: np.ndarray, v_eci: np.ndarray) -> np.ndarray:
    """
    Rotation matrix from inertial to LVLH (RSW / Hill) axes.

        R = r / |r|                 radial
        W = (r x v) / |r x v|       orbit normal
        S = W x R                   along track

    Rows of the returned matrix are the LVLH axes in inertial coordinates,
    so v_lvlh = M @ v_eci.
    """
    r = np.asarray(r_eci, dtype=np.float64)
    v = np.asarray(v_eci, dtype=np.float64)
    h = np.cross(r, v)
    h_mag = np.linalg.norm(h)
    if h_mag < 1e-12:
        raise ValueError("LVLH frame undefined for rectilinear motion (r x v = 0)")
    R_hat = r / np.linalg.norm(r)
    W_hat = h / h_mag
    S_hat = np.cross(W_hat, R_hat)
    return np.array([R_hat, S_hat, W_hat], dtype=np.float64)


# =============================================================================
# SUN
# =============================================================================

def compute_sun_position(time_s: float) -> np.ndarray:
    """
    Geocentric inertial Sun position on a circular 1 AU ecliptic orbit.

    The epoch places the Sun on the +X axis; the ecliptic is tilted by the
    obliquity about X. Accurate enough for pointing and shadow geometry,
    not for ephemeris work.
    """
    angle = TWO_PI / SUN_YEAR * time_s
    r_ecliptic = AU * np.array([np.cos(angle), np.sin(angle), 0.0], dtype=np.float64)
    return Rx(-ECLIPTIC_OBLIQUITY) @ r_ecliptic


def station_position(lat_deg: float, lon_deg: float, alt_m: float) -> np.ndarray:
    """Convenience wrapper taking degrees, used by the configuration layer."""
    return geodetic_to_ecef(lat_deg * DEG2RAD, lon_deg * DEG2RAD, alt_m)
