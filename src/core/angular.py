"""
===============================================================================
ORBITDYN - Angular Coordinates
===============================================================================
Rotation together with its first two time derivatives, and Hermite
interpolation between dated samples.

An ``AngularCoordinates`` instance holds

    rotation               q        body -> reference quaternion
    rotation_rate          omega    body angular velocity (rad/s, body axes)
    rotation_acceleration  alpha    d(omega)/dt (rad/s^2, body axes)

Interpolation works in rotation-vector space relative to the first sample,

    q(t) = q0 (*) exp(theta(t))

where theta(t) is a vector polynomial fitted on theta and, depending on the
derivatives filter, on d(theta)/dt and d2(theta)/dt2 at every sample. The
rates are mapped through the right Jacobian of SO(3):

    omega = J_r(theta) theta_dot
    alpha = J_r(theta) theta_ddot + dJ_r/dt theta_dot

so sample values are reproduced exactly (to round-off) at the sample dates.
The polynomial itself comes from scipy's ``KroghInterpolator``, which
accepts repeated abscissae as derivative constraints.
===============================================================================
"""

from enum import Enum
from typing import Sequence

import numpy as np
from scipy.interpolate import KroghInterpolator

from core.quaternion import Quaternion, right_jacobian, right_jacobian_inverse


class AngularDerivativesFilter(Enum):
    """Which derivatives are matched at interpolation samples."""

    USE_R = 0
    USE_RR = 1
    USE_RRA = 2

    @property
    def max_order(self) -> int:
        return self.value


def _jacobian_rate(theta: np.ndarray, theta_dot: np.ndarray) -> np.ndarray:
    """Time derivative of J_r(theta(t)) along theta_dot (central difference)."""
    speed = np.linalg.norm(theta_dot)
    if speed == 0.0:
        return np.zeros((3, 3))
    h = 1.0e-6
    d = theta_dot / speed * h
    return (right_jacobian(theta + d) - right_jacobian(theta - d)) * (speed / (2.0 * h))


class AngularCoordinates:
    """
    Rotation, rotation rate and rotation acceleration.

    Parameters
    ----------
    rotation : Quaternion, optional
        Body -> reference rotation (identity by default).
    rotation_rate : np.ndarray, optional
        Body angular velocity in body axes (rad/s).
    rotation_acceleration : np.ndarray, optional
        Body angular acceleration in body axes (rad/s^2).
    """

    def __init__(self, rotation: Quaternion = None,
                 rotation_rate: np.ndarray = None,
                 rotation_acceleration: np.ndarray = None) -> None:
        self.rotation = rotation if rotation is not None else Quaternion.identity()
        self.rotation_rate = (np.zeros(3) if rotation_rate is None
                              else np.asarray(rotation_rate, dtype=np.float64))
        self.rotation_acceleration = (np.zeros(3) if rotation_acceleration is None
                                      else np.asarray(rotation_acceleration, dtype=np.float64))

    def shifted_by(self, dt: float) -> 'AngularCoordinates':
        """
        Simple linear shift: constant acceleration on the rate, rotation
        propagated with the mean rate over the step.
        """
        rate = self.rotation_rate + self.rotation_acceleration * dt
        theta = self.rotation_rate * dt + 0.5 * self.rotation_acceleration * dt * dt
        rotation = self.rotation * Quaternion.from_rotation_vector(theta)
        return AngularCoordinates(rotation, rate, self.rotation_acceleration)

    def with_rotation_applied(self, frame_rotation: Quaternion) -> 'AngularCoordinates':
        """
        Re-express the reference side: q' = frame_rotation (*) q.

        Body rates are unaffected for constant frame rotations.
        """
        return AngularCoordinates(frame_rotation * self.rotation,
                                  self.rotation_rate, self.rotation_acceleration)

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self.rotation!r}, "
                f"rate={self.rotation_rate}, acc={self.rotation_acceleration})")


class TimeStampedAngularCoordinates(AngularCoordinates):
    """Angular coordinates attached to a date (seconds since epoch)."""

    def __init__(self, date: float, rotation: Quaternion = None,
                 rotation_rate: np.ndarray = None,
                 rotation_acceleration: np.ndarray = None) -> None:
        super().__init__(rotation, rotation_rate, rotation_acceleration)
        self.date = float(date)

    @classmethod
    def from_coordinates(cls, date: float, ac: AngularCoordinates) -> 'TimeStampedAngularCoordinates':
        return cls(date, ac.rotation, ac.rotation_rate, ac.rotation_acceleration)

    def shifted_by(self, dt: float) -> 'TimeStampedAngularCoordinates':
        shifted = super().shifted_by(dt)
        return TimeStampedAngularCoordinates.from_coordinates(self.date + dt, shifted)

    @staticmethod
    def interpolate(date: float, angular_filter: AngularDerivativesFilter,
                    samples: Sequence['TimeStampedAngularCoordinates']
                    ) -> 'TimeStampedAngularCoordinates':
        """
        Hermite interpolation of angular coordinates.

        Parameters
        ----------
        date : float
            Interpolation date.
        angular_filter : AngularDerivativesFilter
            Derivatives to match at each sample.
        samples : sequence of TimeStampedAngularCoordinates
            At least one sample; dates must be distinct. The rotation
            between the first sample and any other must stay below pi.

        Returns
        -------
        TimeStampedAngularCoordinates
        """
        if len(samples) == 0:
            raise ValueError("at least one sample is required for interpolation")

        t_ref = samples[0].date
        q_ref = samples[0].rotation
        q_ref_inv = q_ref.conjugate()
        order = angular_filter.max_order

        xi = []
        yi = []
        for sample in samples:
            theta = (q_ref_inv * sample.rotation).to_rotation_vector()
            x = sample.date - t_ref
            xi.append(x)
            yi.append(theta)
            if order >= 1:
                jinv = right_jacobian_inverse(theta)
                theta_dot = jinv @ sample.rotation_rate
                xi.append(x)
                yi.append(theta_dot)
                if order >= 2:
                    dj = _jacobian_rate(theta, theta_dot)
                    theta_ddot = jinv @ (sample.rotation_acceleration - dj @ theta_dot)
                    xi.append(x)
                    yi.append(theta_ddot)

        if len(xi) == 1:
            # single sample, rotation only: constant attitude
            return TimeStampedAngularCoordinates(date, samples[0].rotation)

        poly = KroghInterpolator(np.array(xi), np.array(yi))
        derivatives = poly.derivatives(date - t_ref, der=3)
        theta, theta_dot, theta_ddot = derivatives[0], derivatives[1], derivatives[2]

        jr = right_jacobian(theta)
        omega = jr @ theta_dot
        alpha = jr @ theta_ddot + _jacobian_rate(theta, theta_dot) @ theta_dot
        rotation = q_ref * Quaternion.from_rotation_vector(theta)
        return TimeStampedAngularCoordinates(date, rotation, omega, alpha)
