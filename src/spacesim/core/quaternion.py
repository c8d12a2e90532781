"""
===============================================================================
SPACESIM - Orientation Quaternion
===============================================================================

Unit quaternion used for the orientation of every physics object. Planets
spin rigidly about their axis of rotation, free bodies tumble under the
torques reported by the acceleration function; both cases reduce to
composing an incremental rotation with the current orientation.

Convention
----------
Scalar-first, Hamilton product:

    q = [q_w, q_x, q_y, q_z] = q_w + q_x*i + q_y*j + q_z*k

The quaternion maps body-frame vectors into the inertial frame:

    v_I = q * v_B * q_conjugate

An incremental rotation expressed in the inertial frame therefore
left-multiplies the orientation:

    q(t + dt) = dq * q(t),    dq = [cos(|w|dt/2), sin(|w|dt/2) w/|w|]

References
----------
    [1] Markley & Crassidis, "Fundamentals of Spacecraft Attitude
        Determination and Control", Springer, 2014.
    [2] Kuipers, "Quaternions and Rotation Sequences", Princeton, 1999.

===============================================================================
"""

import numpy as np
from typing import Union


class Quaternion:
    """
    Immutable unit quaternion.

    Attributes
    ----------
    w, x, y, z : float
        Scalar part followed by the vector part.
    """

    _NORM_TOLERANCE = 1e-12
    _COMPARISON_TOLERANCE = 1e-9

    __slots__ = ('_q',)

    def __init__(self, w: float, x: float, y: float, z: float,
                 normalize: bool = True) -> None:
        q = np.array([w, x, y, z], dtype=np.float64)
        if normalize:
            n = np.linalg.norm(q)
            if n < self._NORM_TOLERANCE:
                raise ValueError(
                    f"Cannot normalize near-zero quaternion (norm = {n:.2e})."
                )
            q /= n
            # q and -q encode the same rotation; keep w >= 0.
            if q[0] < 0.0:
                q = -q
        q.setflags(write=False)
        self._q = q

    # =========================================================================
    # COMPONENTS
    # =========================================================================

    @property
    def w(self) -> float:
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
        """Vector part [x, y, z]."""
        return self._q[1:4].copy()

    @property
    def components(self) -> np.ndarray:
        """Copy of [w, x, y, z]."""
        return self._q.copy()

    @property
    def rotation_angle(self) -> float:
        """Rotation angle in [0, pi] (rad)."""
        return 2.0 * np.arccos(np.clip(abs(self.w), -1.0, 1.0))

    # =========================================================================
    # FACTORIES
    # =========================================================================

    @staticmethod
    def identity() -> 'Quaternion':
        """The null rotation [1, 0, 0, 0]."""
        return Quaternion(1.0, 0.0, 0.0, 0.0, normalize=False)

    @staticmethod
    def from_axis_angle(axis: np.ndarray, angle: float) -> 'Quaternion':
        """
        Rotation by *angle* radians about *axis*.

        Raises
        ------
        ValueError
            If the axis has near-zero magnitude.
        """
        axis = np.asarray(axis, dtype=np.float64)
        axis_norm = np.linalg.norm(axis)
        if axis_norm < 1e-12:
            raise ValueError("Rotation axis has near-zero magnitude.")

        n = axis / axis_norm
        sin_half = np.sin(angle / 2.0)
        return Quaternion(np.cos(angle / 2.0),
                          sin_half * n[0], sin_half * n[1], sin_half * n[2])

    @staticmethod
    def from_rotation_vector(rot_vec: np.ndarray) -> 'Quaternion':
        """Rotation whose axis is rot_vec/|rot_vec| and angle is |rot_vec|."""
        rot_vec = np.asarray(rot_vec, dtype=np.float64)
        angle = np.linalg.norm(rot_vec)
        if angle < 1e-15:
            return Quaternion.identity()
        return Quaternion.from_axis_angle(rot_vec / angle, angle)

    # =========================================================================
    # ALGEBRA
    # =========================================================================

    def conjugate(self) -> 'Quaternion':
        """Inverse rotation."""
        return Quaternion(self.w, -self.x, -self.y, -self.z, normalize=False)

    def multiply(self, other: 'Quaternion') -> 'Quaternion':
        """Hamilton product self * other (apply *other* first)."""
        a1, b1, c1, d1 = self._q
        a2, b2, c2, d2 = other._q
        return Quaternion(
            a1 * a2 - b1 * b2 - c1 * c2 - d1 * d2,
            a1 * b2 + b1 * a2 + c1 * d2 - d1 * c2,
            a1 * c2 - b1 * d2 + c1 * a2 + d1 * b2,
            a1 * d2 + b1 * c2 - c1 * b2 + d1 * a2,
        )

    def rotate_vector(self, v: np.ndarray) -> np.ndarray:
        """
        Rotate a 3-vector from the body frame into the inertial frame.

        Uses the Rodrigues form v' = v + w*t + u x t with t = 2 u x v.
        """
        v = np.asarray(v, dtype=np.float64)
        u = self._q[1:4]
        t = 2.0 * np.cross(u, v)
        return v + self._q[0] * t + np.cross(u, t)

    def rotated(self, axis: np.ndarray, angle: float) -> 'Quaternion':
        """Orientation after an inertial-frame rotation about *axis*."""
        if angle == 0.0:
            return self
        return Quaternion.from_axis_angle(axis, angle).multiply(self)

    def propagate(self, omega: np.ndarray, dt: float) -> 'Quaternion':
        """
        Advance the orientation under a constant inertial angular velocity.

        The incremental rotation is built exactly from the rotation vector
        omega*dt, so no renormalisation drift accumulates over long runs.
        """
        return Quaternion.from_rotation_vector(np.asarray(omega) * dt).multiply(self)

    def angle_to(self, other: 'Quaternion') -> float:
        """Smallest rotation angle (rad) taking self to *other*."""
        dot = abs(float(np.dot(self._q, other._q)))
        return 2.0 * np.arccos(np.clip(dot, -1.0, 1.0))

    # =========================================================================
    # OPERATORS
    # =========================================================================

    def __mul__(self, other: Union['Quaternion', np.ndarray]):
        if isinstance(other, Quaternion):
            return self.multiply(other)
        return NotImplemented

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Quaternion):
            return NotImplemented
        diff = min(np.linalg.norm(self._q - other._q),
                   np.linalg.norm(self._q + other._q))
        return diff < self._COMPARISON_TOLERANCE

    def __hash__(self) -> int:
        return hash(tuple(np.round(self._q, decimals=8)))

    def __repr__(self) -> str:
        return (f"Quaternion(w={self.w:+.8f}, x={self.x:+.8f}, "
                f"y={self.y:+.8f}, z={self.z:+.8f})")
