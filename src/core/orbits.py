"""
===============================================================================
ORBITDYN - Orbit Utilities
===============================================================================
Position/velocity value types and closed-form two-body relations:

    * PVCoordinates / TimeStampedPVCoordinates
    * Keplerian elements <-> Cartesian state
    * Universal-variable Kepler propagation (any conic, no singularity for
      circular or equatorial orbits)

The universal variable formulation follows Vallado (Algorithm 8) and
Curtis (Algorithm 3.4), using the same Stumpff functions as the Lambert
solver it was taken from.

References
----------
    [1] Vallado, "Fundamentals of Astrodynamics and Applications", 4th ed.
    [2] Curtis, "Orbital Mechanics for Engineering Students", 3rd ed.
===============================================================================
"""

import numpy as np
from typing import Tuple

from core.errors import PropagationError


class PVCoordinates:
    """Position, velocity and acceleration triplet (SI units)."""

    def __init__(self, position, velocity, acceleration=None) -> None:
        self.position = np.asarray(position, dtype=np.float64).copy()
        self.velocity = np.asarray(velocity, dtype=np.float64).copy()
        self.acceleration = (np.zeros(3) if acceleration is None
                             else np.asarray(acceleration, dtype=np.float64).copy())

    @property
    def momentum(self) -> np.ndarray:
        """Specific angular momentum r x v."""
        return np.cross(self.position, self.velocity)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(p={self.position}, v={self.velocity})"


class TimeStampedPVCoordinates(PVCoordinates):

    def __init__(self, date: float, position, velocity, acceleration=None) -> None:
        super().__init__(position, velocity, acceleration)
        self.date = float(date)


# =============================================================================
# STUMPFF FUNCTIONS
# =============================================================================

def stumpff_c(z: float) -> float:
    if z > 1e-6:
        sz = np.sqrt(z)
        return (1.0 - np.cos(sz)) / z
    if z < -1e-6:
        sz = np.sqrt(-z)
        return (np.cosh(sz) - 1.0) / (-z)
    return 0.5 - z / 24.0 + z * z / 720.0


def stumpff_s(z: float) -> float:
    if z > 1e-6:
        sz = np.sqrt(z)
        return (sz - np.sin(sz)) / (z * sz)
    if z < -1e-6:
        sz = np.sqrt(-z)
        return (np.sinh(sz) - sz) / ((-z) * sz)
    return 1.0 / 6.0 - z / 120.0 + z * z / 5040.0


# =============================================================================
# TWO-BODY RELATIONS
# =============================================================================

def two_body_acceleration(position: np.ndarray, mu: float) -> np.ndarray:
    """a = -mu r / |r|^3"""
    r = np.asarray(position, dtype=np.float64)
    r_mag = np.linalg.norm(r)
    return -mu / (r_mag ** 3) * r


def kepler_shift(r0: np.ndarray, v0: np.ndarray, dt: float, mu: float,
                 tol: float = 1e-12, max_iter: int = 100) -> Tuple[np.ndarray, np.ndarray]:
    """
    Propagate a two-body state by *dt* seconds (positive or negative).

    Solves the universal Kepler equation for chi with Newton iterations and
    applies the Lagrange f, g, f_dot, g_dot coefficients.

    Raises
    ------
    PropagationError
        If Newton iterations do not converge.
    """
    r0 = np.asarray(r0, dtype=np.float64)
    v0 = np.asarray(v0, dtype=np.float64)
    if dt == 0.0:
        return r0.copy(), v0.copy()

    sqrt_mu = np.sqrt(mu)
    r0n = np.linalg.norm(r0)
    vr0 = np.dot(r0, v0) / r0n
    alpha = 2.0 / r0n - np.dot(v0, v0) / mu

    chi = sqrt_mu * abs(alpha) * dt
    if abs(alpha) < 1e-12:
        chi = sqrt_mu * dt / r0n

    for _ in range(max_iter):
        z = alpha * chi * chi
        C = stumpff_c(z)
        S = stumpff_s(z)
        F = (r0n * vr0 / sqrt_mu * chi * chi * C
             + (1.0 - alpha * r0n) * chi ** 3 * S
             + r0n * chi - sqrt_mu * dt)
        dF = (r0n * vr0 / sqrt_mu * chi * (1.0 - z * S)
              + (1.0 - alpha * r0n) * chi * chi * C
              + r0n)
        delta = F / dF
        chi -= delta
        if abs(delta) <= tol * max(1.0, abs(chi)):
            break
    else:
        raise PropagationError(
            f"universal Kepler equation did not converge for dt={dt} s")

    z = alpha * chi * chi
    C = stumpff_c(z)
    S = stumpff_s(z)
    f = 1.0 - chi * chi / r0n * C
    g = dt - chi ** 3 * S / sqrt_mu
    r = f * r0 + g * v0
    rn = np.linalg.norm(r)
    f_dot = sqrt_mu / (rn * r0n) * (alpha * chi ** 3 * S - chi)
    g_dot = 1.0 - chi * chi / rn * C
    v = f_dot * r0 + g_dot * v0
    return r, v


def keplerian_to_cartesian(a: float, e: float, i: float, raan: float,
                           omega: float, nu: float, mu: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Classical elements to Cartesian state (perifocal frame rotated by the
    3-1-3 sequence RAAN, i, omega).
    """
    p = a * (1.0 - e * e)
    if abs(p) < 1e-10:
        raise ValueError("Semi-latus rectum is near zero; degenerate orbit.")
    r_mag = p / (1.0 + e * np.cos(nu))
    r_pqw = r_mag * np.array([np.cos(nu), np.sin(nu), 0.0])
    v_pqw = np.sqrt(mu / p) * np.array([-np.sin(nu), e + np.cos(nu), 0.0])

    cO, sO = np.cos(raan), np.sin(raan)
    ci, si = np.cos(i), np.sin(i)
    cw, sw = np.cos(omega), np.sin(omega)
    R = np.array([
        [cO * cw - sO * sw * ci, -cO * sw - sO * cw * ci,  sO * si],
        [sO * cw + cO * sw * ci, -sO * sw + cO * cw * ci, -cO * si],
        [sw * si,                 cw * si,                 ci],
    ])
    return R @ r_pqw, R @ v_pqw


def semi_major_axis(r: np.ndarray, v: np.ndarray, mu: float) -> float:
    """Vis-viva: a = 1 / (2/r - v^2/mu)."""
    return 1.0 / (2.0 / np.linalg.norm(r) - np.dot(v, v) / mu)


def keplerian_period(r: np.ndarray, v: np.ndarray, mu: float) -> float:
    a = semi_major_axis(r, v, mu)
    if a <= 0.0:
        return np.inf
    return 2.0 * np.pi * np.sqrt(a ** 3 / mu)
