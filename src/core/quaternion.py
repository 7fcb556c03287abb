"""
===============================================================================
ORBITDYN - Quaternion and Rotation Library
===============================================================================

Unit quaternions are the rotation type used by every attitude law, by the
angular-coordinates interpolation and by the event-driven attitude
sequencer.

Convention
----------
Scalar-first:

    q = [q_w, q_x, q_y, q_z] = q_w + q_x*i + q_y*j + q_z*k

An attitude quaternion maps satellite (body) frame vectors into the
reference frame:

    v_ref = q * v_body * q_conjugate

so that composition follows the Hamilton product and body-frame angular
velocity enters the kinematics on the right:

    dq/dt = 0.5 * q (*) [0, omega_body]

Lie group helpers
-----------------
Transition laws interpolate attitude in rotation-vector space relative to
a base orientation, q(t) = q0 (*) exp(theta(t)). The right Jacobian J_r of
SO(3) maps the rotation-vector rate onto the body rate,

    omega = J_r(theta) * d(theta)/dt

and its inverse maps body rates back into rotation-vector rates.

References
----------
    [1] Markley & Crassidis, "Fundamentals of Spacecraft Attitude
        Determination and Control", Springer, 2014.
    [2] Sola, Deray & Atchuthan, "A micro Lie theory for state estimation
        in robotics", 2018.
    [3] Shuster, "A Survey of Attitude Representations", JASS, 1993.

===============================================================================
"""

import numpy as np
from typing import Union


def skew(v: np.ndarray) -> np.ndarray:
    """
    Cross-product matrix [v x] of a 3-vector, so that skew(v) @ u == v x u.
    """
    return np.array([
        [0.0,   -v[2],  v[1]],
        [v[2],   0.0,  -v[0]],
        [-v[1],  v[0],  0.0]
    ], dtype=np.float64)


def right_jacobian(theta: np.ndarray) -> np.ndarray:
    """
    Right Jacobian of SO(3) at rotation vector *theta*.

        J_r(theta) = I - (1 - cos a)/a^2 [theta x] + (a - sin a)/a^3 [theta x]^2

    with a = |theta|. Series expansions are used below 1e-4 rad.

    Parameters
    ----------
    theta : np.ndarray
        3-element rotation vector (radians).

    Returns
    -------
    np.ndarray
        3x3 matrix mapping d(theta)/dt to the body angular velocity.
    """
    theta = np.asarray(theta, dtype=np.float64)
    a = np.linalg.norm(theta)
    K = skew(theta)
    if a < 1.0e-4:
        c1 = 0.5 - a * a / 24.0
        c2 = 1.0 / 6.0 - a * a / 120.0
    else:
        c1 = (1.0 - np.cos(a)) / (a * a)
        c2 = (a - np.sin(a)) / (a * a * a)
    return np.eye(3) - c1 * K + c2 * (K @ K)


def right_jacobian_inverse(theta: np.ndarray) -> np.ndarray:
    """
    Inverse of the right Jacobian of SO(3).

        J_r^-1(theta) = I + 0.5 [theta x]
                        + (1/a^2 - (1 + cos a) / (2 a sin a)) [theta x]^2

    Parameters
    ----------
    theta : np.ndarray
        3-element rotation vector (radians), |theta| < pi.

    Returns
    -------
    np.ndarray
        3x3 matrix mapping the body angular velocity to d(theta)/dt.
    """
    theta = np.asarray(theta, dtype=np.float64)
    a = np.linalg.norm(theta)
    K = skew(theta)
    if a < 1.0e-4:
        c2 = 1.0 / 12.0 + a * a / 720.0
    else:
        c2 = 1.0 / (a * a) - (1.0 + np.cos(a)) / (2.0 * a * np.sin(a))
    return np.eye(3) + 0.5 * K + c2 * (K @ K)


class Quaternion:
    """
    Unit quaternion for 3D rotations (scalar-first, body-to-reference).

    A unit quaternion q = [w, x, y, z] parameterizes a rotation by angle
    theta about unit axis n as:

        q = [cos(theta/2), sin(theta/2) * n]

    Instances are treated as immutable values: every operation returns a
    new quaternion.

    Examples
    --------
    >>> q = Quaternion.from_axis_angle(np.array([0.0, 0.0, 1.0]), np.pi / 2)
    >>> q.rotate_vector(np.array([1.0, 0.0, 0.0]))
    array([0., 1., 0.])
    """

    _NORM_TOLERANCE = 1e-10
    _COMPARISON_TOLERANCE = 1e-9

    def __init__(self, w: float, x: float, y: float, z: float,
                 normalize: bool = True) -> None:
        """
        Parameters
        ----------
        w, x, y, z : float
            Scalar and vector components.
        normalize : bool, optional
            Normalize to unit magnitude and enforce w >= 0 (default True).
            Internal methods that already guarantee unit norm pass False.
        """
        self._q = np.array([w, x, y, z], dtype=np.float64)

        if normalize:
            self._normalize_in_place()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def w(self) -> float:
        """Scalar (real) part."""
        return float(self._q[0])

    @property
    def x(self) -> float:
        return float(self._q[1])

    @property
    def y(self) -> float:
        return float(self._q[2])

    @property
    def z(self) -> float:
        return float(self._q[3])

    @property
    def vector(self) -> np.ndarray:
        """Vector (imaginary) part [x, y, z] as a copy."""
        return self._q[1:4].copy()

    @property
    def components(self) -> np.ndarray:
        """Full quaternion [w, x, y, z] as a copy."""
        return self._q.copy()

    @property
    def norm(self) -> float:
        return float(np.linalg.norm(self._q))

    @property
    def rotation_angle(self) -> float:
        """
        Rotation angle in [0, pi].

        Computed as 2 * atan2(|v|, |w|), which keeps full precision for
        small angles where arccos(w) loses digits.
        """
        return 2.0 * float(np.arctan2(np.linalg.norm(self._q[1:4]), abs(self._q[0])))

    def _normalize_in_place(self) -> None:
        n = np.linalg.norm(self._q)
        if n < self._NORM_TOLERANCE:
            raise ValueError(
                f"Cannot normalize near-zero quaternion (norm = {n:.2e}). "
                "This indicates a degenerate state in the attitude solution."
            )
        self._q /= n
        # q and -q represent the same rotation, pick w >= 0
        if self._q[0] < 0.0:
            self._q = -self._q

    # =========================================================================
    # FACTORY METHODS
    # =========================================================================

    @staticmethod
    def identity() -> 'Quaternion':
        """Identity rotation [1, 0, 0, 0]."""
        return Quaternion(1.0, 0.0, 0.0, 0.0, normalize=False)

    @staticmethod
    def from_axis_angle(axis: np.ndarray, angle: float) -> 'Quaternion':
        """
        Rotation of *angle* radians about *axis* (need not be unit length).

        Raises
        ------
        ValueError
            If the axis has zero length.
        """
        axis = np.asarray(axis, dtype=np.float64)
        axis_norm = np.linalg.norm(axis)
        if axis_norm < 1e-15:
            raise ValueError("Rotation axis must be non-zero.")
        n = axis / axis_norm
        half_angle = 0.5 * angle
        sin_half = np.sin(half_angle)
        return Quaternion(np.cos(half_angle),
                          sin_half * n[0], sin_half * n[1], sin_half * n[2])

    @staticmethod
    def from_rotation_vector(rot_vec: np.ndarray) -> 'Quaternion':
        """
        Exponential map: rotation vector theta * n -> quaternion.

        Uses the Taylor expansion of sin(a/2)/a below 1e-8 rad so that
        tiny rotation vectors keep their direction.
        """
        rot_vec = np.asarray(rot_vec, dtype=np.float64)
        angle = np.linalg.norm(rot_vec)
        if angle < 1e-8:
            k = 0.5 - angle * angle / 48.0
            return Quaternion(1.0, k * rot_vec[0], k * rot_vec[1], k * rot_vec[2])
        k = np.sin(0.5 * angle) / angle
        return Quaternion(np.cos(0.5 * angle),
                          k * rot_vec[0], k * rot_vec[1], k * rot_vec[2])

    @staticmethod
    def from_dcm(dcm: np.ndarray) -> 'Quaternion':
        """
        Quaternion from a rotation matrix R such that R @ v == q.rotate_vector(v).

        Shepperd's method: extract the largest of the four squared
        components first for numerical robustness near 180 degrees.
        """
        dcm = np.asarray(dcm, dtype=np.float64)
        if dcm.shape != (3, 3):
            raise ValueError(f"DCM must be 3x3, got shape {dcm.shape}")
        orthogonality_error = np.linalg.norm(dcm.T @ dcm - np.eye(3))
        if orthogonality_error > 1e-6:
            raise ValueError(
                f"Input matrix is not orthogonal (error = {orthogonality_error:.2e})."
            )

        trace = np.trace(dcm)
        d0 = 1.0 + trace
        d1 = 1.0 + 2.0 * dcm[0, 0] - trace
        d2 = 1.0 + 2.0 * dcm[1, 1] - trace
        d3 = 1.0 + 2.0 * dcm[2, 2] - trace
        d_max = max(d0, d1, d2, d3)

        if d_max == d0:
            w = 0.5 * np.sqrt(d0)
            scale = 0.25 / w
            x = (dcm[2, 1] - dcm[1, 2]) * scale
            y = (dcm[0, 2] - dcm[2, 0]) * scale
            z = (dcm[1, 0] - dcm[0, 1]) * scale
        elif d_max == d1:
            x = 0.5 * np.sqrt(d1)
            scale = 0.25 / x
            w = (dcm[2, 1] - dcm[1, 2]) * scale
            y = (dcm[0, 1] + dcm[1, 0]) * scale
            z = (dcm[0, 2] + dcm[2, 0]) * scale
        elif d_max == d2:
            y = 0.5 * np.sqrt(d2)
            scale = 0.25 / y
            w = (dcm[0, 2] - dcm[2, 0]) * scale
            x = (dcm[0, 1] + dcm[1, 0]) * scale
            z = (dcm[1, 2] + dcm[2, 1]) * scale
        else:
            z = 0.5 * np.sqrt(d3)
            scale = 0.25 / z
            w = (dcm[1, 0] - dcm[0, 1]) * scale
            x = (dcm[0, 2] + dcm[2, 0]) * scale
            y = (dcm[1, 2] + dcm[2, 1]) * scale

        return Quaternion(w, x, y, z)

    @staticmethod
    def from_two_pairs(u1: np.ndarray, u2: np.ndarray,
                       v1: np.ndarray, v2: np.ndarray) -> 'Quaternion':
        """
        Rotation mapping body vectors (u1, u2) onto reference vectors (v1, v2).

        u1 is mapped exactly onto v1; u2 is mapped into the half plane
        spanned by v1 and v2. This is the usual way pointing laws are
        written: "body +Z towards the Sun, body +X as close as possible to
        the orbit velocity".
        """
        def _triad(a, b):
            a = np.asarray(a, dtype=np.float64)
            b = np.asarray(b, dtype=np.float64)
            e1 = a / np.linalg.norm(a)
            e3 = np.cross(a, b)
            n3 = np.linalg.norm(e3)
            if n3 < 1e-12:
                raise ValueError("Vector pairs must not be collinear.")
            e3 = e3 / n3
            return np.column_stack([e1, np.cross(e3, e1), e3])

        body = _triad(u1, u2)
        ref = _triad(v1, v2)
        return Quaternion.from_dcm(ref @ body.T)

    # =========================================================================
    # ARITHMETIC
    # =========================================================================

    def conjugate(self) -> 'Quaternion':
        """Conjugate [w, -x, -y, -z]; equals the inverse for unit quaternions."""
        return Quaternion(self.w, -self.x, -self.y, -self.z, normalize=False)

    def inverse(self) -> 'Quaternion':
        norm_sq = np.dot(self._q, self._q)
        conj = np.array([self.w, -self.x, -self.y, -self.z]) / norm_sq
        return Quaternion(conj[0], conj[1], conj[2], conj[3])

    def multiply(self, other: 'Quaternion') -> 'Quaternion':
        """
        Hamilton product self (*) other.

        The result rotates a vector first by *other* and then by *self*.
        """
        a1, b1, c1, d1 = self._q
        a2, b2, c2, d2 = other._q

        w = a1 * a2 - b1 * b2 - c1 * c2 - d1 * d2
        x = a1 * b2 + b1 * a2 + c1 * d2 - d1 * c2
        y = a1 * c2 - b1 * d2 + c1 * a2 + d1 * b2
        z = a1 * d2 + b1 * c2 - c1 * b2 + d1 * a2

        return Quaternion(w, x, y, z)

    # =========================================================================
    # ROTATION OPERATIONS
    # =========================================================================

    def rotate_vector(self, v: np.ndarray) -> np.ndarray:
        """
        Rotate a 3-vector: v' = q * v * q_conjugate (body -> reference).

        Uses the Rodrigues form v' = v + w*t + u x t with t = 2 (u x v).
        """
        v = np.asarray(v, dtype=np.float64)
        u = self._q[1:4]
        t = 2.0 * np.cross(u, v)
        return v + self._q[0] * t + np.cross(u, t)

    def apply_inverse_to(self, v: np.ndarray) -> np.ndarray:
        """Inverse rotation of a 3-vector (reference -> body)."""
        return self.conjugate().rotate_vector(v)

    def to_dcm(self) -> np.ndarray:
        """
        Rotation matrix R with R @ v == self.rotate_vector(v).
        """
        w, x, y, z = self._q
        xx, yy, zz = x * x, y * y, z * z
        xy, xz, yz = x * y, x * z, y * z
        wx, wy, wz = w * x, w * y, w * z
        return np.array([
            [1.0 - 2.0 * (yy + zz),  2.0 * (xy - wz),        2.0 * (xz + wy)],
            [2.0 * (xy + wz),         1.0 - 2.0 * (xx + zz),  2.0 * (yz - wx)],
            [2.0 * (xz - wy),         2.0 * (yz + wx),         1.0 - 2.0 * (xx + yy)]
        ], dtype=np.float64)

    def to_rotation_vector(self) -> np.ndarray:
        """
        Logarithmic map: quaternion -> rotation vector of norm in [0, pi].

        The short arc is always returned (q and -q give the same vector).
        """
        q = self._q if self._q[0] >= 0.0 else -self._q
        v = q[1:4]
        s = np.linalg.norm(v)
        if s < 1e-12:
            # sin(a/2) ~ a/2 -> theta ~ 2 v / w
            return 2.0 * v / q[0]
        angle = 2.0 * np.arctan2(s, q[0])
        return angle * v / s

    def angle_to(self, other: 'Quaternion') -> float:
        """
        Geodesic distance 2 * arccos(|q1 . q2|) between two attitudes.
        """
        return (self.conjugate() * other).rotation_angle

    # =========================================================================
    # OPERATORS
    # =========================================================================

    def __mul__(self, other: Union['Quaternion', float, int]) -> 'Quaternion':
        if isinstance(other, Quaternion):
            return self.multiply(other)
        if isinstance(other, (int, float)):
            q = self._q * other
            return Quaternion(q[0], q[1], q[2], q[3], normalize=False)
        return NotImplemented

    def __eq__(self, other: object) -> bool:
        """Same rotation within tolerance, q and -q being equal."""
        if not isinstance(other, Quaternion):
            return NotImplemented
        diff_pos = np.linalg.norm(self._q - other._q)
        diff_neg = np.linalg.norm(self._q + other._q)
        return min(diff_pos, diff_neg) < self._COMPARISON_TOLERANCE

    def __repr__(self) -> str:
        return (f"Quaternion(w={self.w:+.8f}, x={self.x:+.8f}, "
                f"y={self.y:+.8f}, z={self.z:+.8f})")
