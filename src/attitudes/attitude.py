"""
===============================================================================
ORBITDYN - Attitude Value Type and Provider Interface
===============================================================================
``Attitude`` bundles a date, the reference frame and the angular
coordinates (body -> reference rotation, body rate, body acceleration).

``AttitudeProvider`` is the single contract every attitude law fulfills:

    get_attitude(pv_provider, date, frame) -> Attitude

where ``pv_provider`` is anything with
``get_pv_coordinates(date, frame) -> TimeStampedPVCoordinates``.
===============================================================================
"""

from abc import ABC, abstractmethod

import numpy as np

from core.angular import TimeStampedAngularCoordinates
from core.frames import Frame
from core.quaternion import Quaternion


class Attitude:
    """
    Spacecraft orientation at a date, expressed with respect to a frame.

    Parameters
    ----------
    reference_frame : Frame
        Frame the rotation maps body vectors into.
    orientation : TimeStampedAngularCoordinates
        Dated rotation, rate and acceleration.
    """

    def __init__(self, reference_frame: Frame,
                 orientation: TimeStampedAngularCoordinates) -> None:
        self.reference_frame = reference_frame
        self.orientation = orientation

    @classmethod
    def from_rotation(cls, date: float, frame: Frame, rotation: Quaternion,
                      spin: np.ndarray = None,
                      acceleration: np.ndarray = None) -> 'Attitude':
        return cls(frame, TimeStampedAngularCoordinates(date, rotation, spin, acceleration))

    @property
    def date(self) -> float:
        return self.orientation.date

    @property
    def rotation(self) -> Quaternion:
        return self.orientation.rotation

    @property
    def spin(self) -> np.ndarray:
        return self.orientation.rotation_rate

    @property
    def rotation_acceleration(self) -> np.ndarray:
        return self.orientation.rotation_acceleration

    def with_reference_frame(self, frame: Frame) -> 'Attitude':
        """Same physical orientation expressed with respect to *frame*."""
        if frame is self.reference_frame or frame == self.reference_frame:
            return self
        q = self.reference_frame.rotation_to(frame)
        moved = self.orientation.with_rotation_applied(q)
        return Attitude(frame, TimeStampedAngularCoordinates.from_coordinates(self.date, moved))

    def shifted_by(self, dt: float) -> 'Attitude':
        return Attitude(self.reference_frame, self.orientation.shifted_by(dt))

    def __repr__(self) -> str:
        return f"Attitude(t={self.date}, frame={self.reference_frame.name}, q={self.rotation!r})"


class AttitudeProvider(ABC):
    """Attitude law: orientation as a function of date and orbit."""

    @abstractmethod
    def get_attitude(self, pv_provider, date: float, frame: Frame) -> Attitude:
        """
        Parameters
        ----------
        pv_provider : object
            Provides ``get_pv_coordinates(date, frame)``.
        date : float
            Date (s since epoch).
        frame : Frame
            Reference frame of the returned attitude.
        """
