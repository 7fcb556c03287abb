"""
===============================================================================
ORBITDYN - Spacecraft State
===============================================================================
Immutable snapshot of everything the propagators carry around:

    date, position, velocity, frame, mu      orbit
    attitude                                 orientation at the same date
    mass                                     kg
    additional states / derivatives          named numpy arrays (STM,
                                             parameter Jacobians, user data)

``shifted_by`` moves the whole state along Keplerian motion, shifts the
attitude with its own rates and the additional states linearly with their
derivatives. It is only a local approximation, used for short offsets such
as transition times or event-detection look-aheads.
===============================================================================
"""

from typing import Dict, Mapping, Optional

import numpy as np

from attitudes.attitude import Attitude
from core.angular import TimeStampedAngularCoordinates
from core.constants import EARTH_MU
from core.errors import PropagationError
from core.frames import EME2000, Frame
from core.orbits import (
    TimeStampedPVCoordinates,
    kepler_shift,
    keplerian_period,
    two_body_acceleration,
)

DEFAULT_MASS = 1000.0


def _freeze(arrays: Optional[Mapping[str, np.ndarray]]) -> Dict[str, np.ndarray]:
    if not arrays:
        return {}
    frozen = {}
    for name, value in arrays.items():
        value = np.array(value, dtype=np.float64)
        value.setflags(write=False)
        frozen[name] = value
    return frozen


class SpacecraftState:
    """
    Spacecraft state at one date.

    Parameters
    ----------
    date : float
        Seconds since the scenario epoch.
    position, velocity : array_like
        Inertial Cartesian state in *frame* (m, m/s).
    frame : Frame, optional
        Inertial frame of position and velocity.
    mu : float, optional
        Central body gravitational parameter used for Keplerian shifts.
    attitude : Attitude, optional
        Defaults to an inertially aligned attitude in *frame*.
    mass : float, optional
        Spacecraft mass (kg).
    additional_states, additional_derivatives : mapping, optional
        Named arrays carried along with the state.
    """

    def __init__(self, date: float, position, velocity, frame: Frame = EME2000,
                 mu: float = EARTH_MU, attitude: Attitude = None,
                 mass: float = DEFAULT_MASS,
                 additional_states: Mapping[str, np.ndarray] = None,
                 additional_derivatives: Mapping[str, np.ndarray] = None) -> None:
        if mass <= 0.0:
            raise ValueError(f"spacecraft mass must be positive, got {mass}")
        self._date = float(date)
        self._position = np.array(position, dtype=np.float64)
        self._velocity = np.array(velocity, dtype=np.float64)
        self._position.setflags(write=False)
        self._velocity.setflags(write=False)
        self._frame = frame
        self._mu = float(mu)
        if attitude is None:
            attitude = Attitude(frame, TimeStampedAngularCoordinates(date))
        self._attitude = attitude
        self._mass = float(mass)
        self._additional = _freeze(additional_states)
        self._additional_dot = _freeze(additional_derivatives)

    # -------------------------------------------------------------------------
    # accessors
    # -------------------------------------------------------------------------

    @property
    def date(self) -> float:
        return self._date

    @property
    def position(self) -> np.ndarray:
        return self._position

    @property
    def velocity(self) -> np.ndarray:
        return self._velocity

    @property
    def frame(self) -> Frame:
        return self._frame

    @property
    def mu(self) -> float:
        return self._mu

    @property
    def attitude(self) -> Attitude:
        return self._attitude

    @property
    def mass(self) -> float:
        return self._mass

    @property
    def additional_states(self) -> Dict[str, np.ndarray]:
        return dict(self._additional)

    @property
    def additional_derivatives(self) -> Dict[str, np.ndarray]:
        return dict(self._additional_dot)

    @property
    def pv(self) -> TimeStampedPVCoordinates:
        return TimeStampedPVCoordinates(self._date, self._position, self._velocity,
                                        two_body_acceleration(self._position, self._mu))

    @property
    def keplerian_period(self) -> float:
        return keplerian_period(self._position, self._velocity, self._mu)

    def has_additional_state(self, name: str) -> bool:
        return name in self._additional

    def get_additional_state(self, name: str) -> np.ndarray:
        try:
            return self._additional[name]
        except KeyError:
            raise PropagationError(f"unknown additional state '{name}'") from None

    def get_additional_derivative(self, name: str) -> np.ndarray:
        try:
            return self._additional_dot[name]
        except KeyError:
            raise PropagationError(f"unknown additional state derivative '{name}'") from None

    # -------------------------------------------------------------------------
    # derived states
    # -------------------------------------------------------------------------

    def _copy_with(self, **changes) -> 'SpacecraftState':
        kwargs = dict(date=self._date, position=self._position, velocity=self._velocity,
                      frame=self._frame, mu=self._mu, attitude=self._attitude,
                      mass=self._mass, additional_states=self._additional,
                      additional_derivatives=self._additional_dot)
        kwargs.update(changes)
        return SpacecraftState(**kwargs)

    def add_additional_state(self, name: str, value) -> 'SpacecraftState':
        states = dict(self._additional)
        states[name] = np.atleast_1d(np.asarray(value, dtype=np.float64))
        return self._copy_with(additional_states=states)

    def add_additional_state_derivative(self, name: str, value) -> 'SpacecraftState':
        derivatives = dict(self._additional_dot)
        derivatives[name] = np.atleast_1d(np.asarray(value, dtype=np.float64))
        return self._copy_with(additional_derivatives=derivatives)

    def with_attitude(self, attitude: Attitude) -> 'SpacecraftState':
        return self._copy_with(attitude=attitude)

    def with_mass(self, mass: float) -> 'SpacecraftState':
        return self._copy_with(mass=mass)

    def with_pv(self, position, velocity) -> 'SpacecraftState':
        """Same date, attitude and extra data, different orbit."""
        return self._copy_with(position=position, velocity=velocity)

    def shifted_by(self, dt: float) -> 'SpacecraftState':
        """
        Keplerian shift of the orbit, rate-based shift of the attitude and
        linear shift of additional states with known derivatives.
        """
        r, v = kepler_shift(self._position, self._velocity, dt, self._mu)
        shifted = {}
        for name, value in self._additional.items():
            derivative = self._additional_dot.get(name)
            if derivative is not None and derivative.shape == value.shape:
                shifted[name] = value + dt * derivative
            else:
                shifted[name] = value
        return self._copy_with(date=self._date + dt, position=r, velocity=v,
                               attitude=self._attitude.shifted_by(dt),
                               additional_states=shifted)

    def get_pv_coordinates(self, date: float = None, frame: Frame = None) -> TimeStampedPVCoordinates:
        """
        Position-velocity at *date* (Keplerian shift from this state)
        expressed in *frame*.
        """
        if date is None or date == self._date:
            pv = self.pv
        else:
            pv = self.shifted_by(date - self._date).pv
        if frame is None or frame == self._frame:
            return pv
        rot = self._frame.rotation_to(frame)
        return TimeStampedPVCoordinates(pv.date, rot.rotate_vector(pv.position),
                                        rot.rotate_vector(pv.velocity),
                                        rot.rotate_vector(pv.acceleration))

    def to_array(self) -> np.ndarray:
        """[x, y, z, vx, vy, vz]"""
        return np.concatenate([self._position, self._velocity])

    def __repr__(self) -> str:
        return (f"SpacecraftState(t={self._date:.3f}, r={np.asarray(self._position)}, "
                f"v={np.asarray(self._velocity)}, m={self._mass:.3f})")
