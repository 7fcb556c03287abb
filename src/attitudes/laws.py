"""
===============================================================================
ORBITDYN - Attitude Laws
===============================================================================
Elementary attitude providers used on their own or switched by an
``AttitudesSequence``:

    InertialProvider   fixed orientation with respect to an inertial frame
    SunPointing        body +Z towards the Sun, body +Y towards orbit normal
    LofOffset          local orbital frame (LVLH) with a fixed offset
    SpinStabilized     any law plus a constant spin about a body axis

Pointing laws are defined by their rotation only. Their rate and
acceleration are obtained by central differences of the rotation over a
short time step, expressed as body rotation vectors:

    theta_+ = log(q(t)^-1 q(t + h)),   theta_- = log(q(t)^-1 q(t - h))
    omega   = (theta_+ - theta_-) / (2 h)
    alpha   = (theta_+ + theta_-) / h^2
===============================================================================
"""

import logging
from typing import Callable

import numpy as np

from attitudes.attitude import Attitude, AttitudeProvider
from core.frames import EME2000, Frame, compute_sun_position, eci_to_lvlh
from core.quaternion import Quaternion

logger = logging.getLogger(__name__)

RATE_STEP = 0.1  # s


def rotation_derivatives(rotation_at: Callable[[float], Quaternion], date: float,
                         step: float = RATE_STEP):
    """
    Rotation, body rate and body acceleration of a rotation history.

    Parameters
    ----------
    rotation_at : callable
        ``date -> Quaternion`` (body -> reference).
    date : float
    step : float
        Finite difference step (s).
    """
    q = rotation_at(date)
    q_inv = q.conjugate()
    theta_plus = (q_inv * rotation_at(date + step)).to_rotation_vector()
    theta_minus = (q_inv * rotation_at(date - step)).to_rotation_vector()
    omega = (theta_plus - theta_minus) / (2.0 * step)
    alpha = (theta_plus + theta_minus) / (step * step)
    return q, omega, alpha


class InertialProvider(AttitudeProvider):
    """
    Constant orientation with respect to an inertial frame.

    Parameters
    ----------
    rotation : Quaternion, optional
        Body -> *frame* rotation, identity by default.
    frame : Frame, optional
        Frame in which *rotation* is given.
    """

    def __init__(self, rotation: Quaternion = None, frame: Frame = EME2000) -> None:
        self.rotation = rotation if rotation is not None else Quaternion.identity()
        self.frame = frame

    def get_attitude(self, pv_provider, date: float, frame: Frame) -> Attitude:
        attitude = Attitude.from_rotation(date, self.frame, self.rotation)
        return attitude.with_reference_frame(frame)

    def __repr__(self) -> str:
        return f"InertialProvider({self.rotation!r})"


class SunPointing(AttitudeProvider):
    """
    Body +Z axis towards the Sun, body +Y as close as possible to the
    orbital momentum.

    Parameters
    ----------
    sun_position : callable, optional
        ``date -> Sun position`` in EME2000 (m).
    """

    PRIMARY_AXIS = np.array([0.0, 0.0, 1.0])
    SECONDARY_AXIS = np.array([0.0, 1.0, 0.0])

    def __init__(self, sun_position: Callable[[float], np.ndarray] = compute_sun_position) -> None:
        self._sun_position = sun_position

    def _rotation(self, pv_provider, date: float, frame: Frame) -> Quaternion:
        pv = pv_provider.get_pv_coordinates(date, frame)
        sun = EME2000.transform_vector(self._sun_position(date), frame)
        line_of_sight = sun - pv.position
        return Quaternion.from_two_pairs(self.PRIMARY_AXIS, self.SECONDARY_AXIS,
                                         line_of_sight, pv.momentum)

    def get_attitude(self, pv_provider, date: float, frame: Frame) -> Attitude:
        q, omega, alpha = rotation_derivatives(
            lambda t: self._rotation(pv_provider, t, frame), date)
        return Attitude.from_rotation(date, frame, q, omega, alpha)

    def __repr__(self) -> str:
        return "SunPointing()"


class LofOffset(AttitudeProvider):
    """
    Local orbital frame (R radial, S along track, W orbit normal) with an
    optional fixed offset rotation.

    Parameters
    ----------
    offset : Quaternion, optional
        Body -> LVLH rotation, identity by default (body axes = R, S, W).
    """

    def __init__(self, offset: Quaternion = None) -> None:
        self.offset = offset if offset is not None else Quaternion.identity()

    def _rotation(self, pv_provider, date: float, frame: Frame) -> Quaternion:
        pv = pv_provider.get_pv_coordinates(date, frame)
        lvlh_to_reference = Quaternion.from_dcm(eci_to_lvlh(pv.position, pv.velocity).T)
        return lvlh_to_reference * self.offset

    def get_attitude(self, pv_provider, date: float, frame: Frame) -> Attitude:
        q, omega, alpha = rotation_derivatives(
            lambda t: self._rotation(pv_provider, t, frame), date)
        return Attitude.from_rotation(date, frame, q, omega, alpha)

    def __repr__(self) -> str:
        return f"LofOffset({self.offset!r})"


class SpinStabilized(AttitudeProvider):
    """
    Constant spin superimposed on an underlying law.

        q(t) = q_nr(t) (*) exp(axis * rate * (t - start))

    Parameters
    ----------
    non_rotating_law : AttitudeProvider
    start : float
        Date at which the spin angle is zero (s).
    axis : array_like
        Spin axis in body frame.
    rate : float
        Spin rate (rad/s).
    """

    def __init__(self, non_rotating_law: AttitudeProvider, start: float,
                 axis, rate: float) -> None:
        axis = np.asarray(axis, dtype=np.float64)
        norm = np.linalg.norm(axis)
        if norm == 0.0:
            raise ValueError("spin axis must not be zero")
        self.non_rotating_law = non_rotating_law
        self.start = float(start)
        self.axis = axis / norm
        self.rate = float(rate)

    def get_attitude(self, pv_provider, date: float, frame: Frame) -> Attitude:
        base = self.non_rotating_law.get_attitude(pv_provider, date, frame)
        spin_vector = self.axis * self.rate
        spin = Quaternion.from_rotation_vector(spin_vector * (date - self.start))
        base_rate = spin.apply_inverse_to(base.spin)
        omega = base_rate + spin_vector
        alpha = (spin.apply_inverse_to(base.rotation_acceleration)
                 - np.cross(spin_vector, base_rate))
        return Attitude.from_rotation(date, frame, base.rotation * spin, omega, alpha)

    def __repr__(self) -> str:
        return f"SpinStabilized({self.non_rotating_law!r}, rate={self.rate})"
