"""
===============================================================================
SPACESIM - Osculating Orbit Model
===============================================================================
Conic description of two-body relative motion and the position of a body
along it.

An Orbit is parameterised by the semi-latus rectum p rather than the
semi-major axis so that the parabolic case (a infinite) stays representable:

    p     : semi-latus rectum (m)
    e     : eccentricity
    i     : inclination (rad)
    Omega : longitude of the ascending node (rad)
    omega : argument of periapsis (rad)

Classification (exactly one holds):

    elliptical : e < 1        (circular when e < 1e-4)
    parabolic  : |e - 1| < 1e-4
    hyperbolic : e > 1        (a < 0)

Every formula that only makes sense for one class (period, apoapsis,
acosh-based anomalies) branches on this classification first.

References
----------
    [1] Vallado, "Fundamentals of Astrodynamics and Applications", 4th ed.,
        Algorithms 9-10.
    [2] Bate, Mueller & White, "Fundamentals of Astrodynamics", Ch. 2 & 4.
    [3] Curtis, "Orbital Mechanics for Engineering Students", Ch. 3-4.

===============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from spacesim.core.constants import ECCENTRICITY_EPSILON, PI, TWO_PI
from spacesim.core.exceptions import UnsupportedOrbitError
from spacesim.core.state import ObjectState

_ANGLE_EPSILON = 1e-11


# =============================================================================
# ORBIT
# =============================================================================

@dataclass(frozen=True)
class Orbit:
    """
    Osculating conic of a body around its primary.

    Attributes
    ----------
    parameter : float
        Semi-latus rectum p (m).
    eccentricity : float
        Eccentricity e.
    inclination : float
        Inclination i (rad), [0, pi].
    longitude_of_ascending_node : float
        Omega (rad), [0, 2*pi).
    argument_of_periapsis : float
        omega (rad), [0, 2*pi).
    mu : float
        Standard gravitational parameter of the primary (m^3/s^2).
    primary_radius : float
        Radius of the primary body (m), for impact prediction.
    primary : int, optional
        Handle of the primary body in the simulation arena.
    """
    parameter: float
    eccentricity: float
    inclination: float = 0.0
    longitude_of_ascending_node: float = 0.0
    argument_of_periapsis: float = 0.0
    mu: float = 0.0
    primary_radius: float = 0.0
    primary: Optional[int] = None

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    @property
    def is_circular(self) -> bool:
        return self.eccentricity < ECCENTRICITY_EPSILON

    @property
    def is_parabolic(self) -> bool:
        return abs(self.eccentricity - 1.0) < ECCENTRICITY_EPSILON

    @property
    def is_elliptical(self) -> bool:
        return self.eccentricity < 1.0 and not self.is_parabolic

    @property
    def is_hyperbolic(self) -> bool:
        return self.eccentricity > 1.0 and not self.is_parabolic

    @property
    def is_bound(self) -> bool:
        return self.is_elliptical

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------

    @property
    def semi_major_axis(self) -> float:
        """a = p / (1 - e^2); infinite for parabolic, negative for hyperbolic."""
        if self.is_parabolic:
            return np.inf
        return self.parameter / (1.0 - self.eccentricity ** 2)

    @property
    def periapsis(self) -> float:
        return self.parameter / (1.0 + self.eccentricity)

    @property
    def apoapsis(self) -> float:
        if not self.is_elliptical:
            return np.inf
        return self.parameter / (1.0 - self.eccentricity)

    @property
    def specific_energy(self) -> float:
        """epsilon = -mu / (2a) (J/kg); zero for parabolic."""
        if self.is_parabolic:
            return 0.0
        return -self.mu / (2.0 * self.semi_major_axis)

    @property
    def mean_motion(self) -> float:
        """n = sqrt(mu / |a|^3) (rad/s); parabolic uses sqrt(mu / p^3)."""
        if self.is_parabolic:
            return np.sqrt(self.mu / self.parameter ** 3)
        return np.sqrt(self.mu / abs(self.semi_major_axis) ** 3)

    @property
    def period(self) -> float:
        """
        Orbital period (s).

        Raises
        ------
        ValueError
            If the orbit is not elliptical.
        """
        if not self.is_elliptical:
            raise ValueError(
                f"Period is undefined for an open orbit (e = {self.eccentricity:.6f})"
            )
        return TWO_PI / self.mean_motion

    def change_of_basis_matrix(self) -> np.ndarray:
        """Rotation from the perifocal (PQW) frame into the inertial frame."""
        cos_O = np.cos(self.longitude_of_ascending_node)
        sin_O = np.sin(self.longitude_of_ascending_node)
        cos_i = np.cos(self.inclination)
        sin_i = np.sin(self.inclination)
        cos_w = np.cos(self.argument_of_periapsis)
        sin_w = np.sin(self.argument_of_periapsis)

        return np.array([
            [cos_O * cos_w - sin_O * sin_w * cos_i,
             -cos_O * sin_w - sin_O * cos_w * cos_i,
             sin_O * sin_i],
            [sin_O * cos_w + cos_O * sin_w * cos_i,
             -sin_O * sin_w + cos_O * cos_w * cos_i,
             -cos_O * sin_i],
            [sin_w * sin_i,
             cos_w * sin_i,
             cos_i],
        ], dtype=np.float64)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_semi_major_axis(cls, mu: float, semi_major_axis: float,
                             eccentricity: float = 0.0, inclination: float = 0.0,
                             longitude_of_ascending_node: float = 0.0,
                             argument_of_periapsis: float = 0.0,
                             primary_radius: float = 0.0,
                             primary: Optional[int] = None) -> 'Orbit':
        """Build an orbit from classical elements (not valid for parabolic)."""
        if abs(eccentricity - 1.0) < ECCENTRICITY_EPSILON:
            raise UnsupportedOrbitError(
                "A parabolic orbit has no finite semi-major axis; use the parameter."
            )
        parameter = semi_major_axis * (1.0 - eccentricity ** 2)
        if parameter <= 0.0:
            raise ValueError(
                f"Semi-major axis {semi_major_axis} is inconsistent with e = {eccentricity}"
            )
        return cls(parameter, eccentricity, inclination, longitude_of_ascending_node,
                   argument_of_periapsis, mu, primary_radius, primary)

    @classmethod
    def from_state(cls, mu: float, position: np.ndarray, velocity: np.ndarray,
                   primary_radius: float = 0.0,
                   primary: Optional[int] = None) -> 'Orbit':
        """Osculating orbit for a relative position/velocity."""
        return OrbitPosition.from_state(mu, position, velocity,
                                        primary_radius, primary).orbit

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def state_at(self, true_anomaly: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Relative position and velocity at a true anomaly.

            r     = p / (1 + e cos(nu))
            r_pqw = r [cos(nu), sin(nu), 0]
            v_pqw = sqrt(mu/p) [-sin(nu), e + cos(nu), 0]
        """
        if self.parameter <= 0.0:
            raise UnsupportedOrbitError("Degenerate (rectilinear) orbit, p = 0.")

        e = self.eccentricity
        cos_nu = np.cos(true_anomaly)
        sin_nu = np.sin(true_anomaly)
        denominator = 1.0 + e * cos_nu
        if denominator <= 0.0:
            raise ValueError(
                f"True anomaly {true_anomaly:.6f} rad lies beyond the asymptote of the orbit"
            )

        r_mag = self.parameter / denominator
        r_pqw = r_mag * np.array([cos_nu, sin_nu, 0.0])
        v_pqw = np.sqrt(self.mu / self.parameter) * np.array([-sin_nu, e + cos_nu, 0.0])

        rotation = self.change_of_basis_matrix()
        return rotation @ r_pqw, rotation @ v_pqw

    def true_anomaly_at_radius(self, radius: float) -> Optional[Tuple[float, float]]:
        """
        Both true anomalies at which the orbit crosses *radius*.

        Returns None when the orbit never reaches that radius (or, for a
        circular orbit, when the crossing is not a discrete pair of points).
        """
        if self.eccentricity < _ANGLE_EPSILON:
            return None
        cos_nu = (self.parameter / radius - 1.0) / self.eccentricity
        if abs(cos_nu) > 1.0:
            return None
        nu = float(np.arccos(cos_nu))
        return nu, TWO_PI - nu

    def _mean_anomaly(self, true_anomaly: float) -> float:
        e = self.eccentricity
        if self.is_parabolic:
            d = np.tan(true_anomaly / 2.0)
            return d + d ** 3 / 3.0
        if self.is_elliptical:
            ecc_anomaly = 2.0 * np.arctan2(np.sqrt(1.0 - e) * np.sin(true_anomaly / 2.0),
                                           np.sqrt(1.0 + e) * np.cos(true_anomaly / 2.0))
            return ecc_anomaly - e * np.sin(ecc_anomaly)
        nu = (true_anomaly + PI) % TWO_PI - PI
        hyp_anomaly = 2.0 * np.arctanh(np.sqrt((e - 1.0) / (e + 1.0)) * np.tan(nu / 2.0))
        return e * np.sinh(hyp_anomaly) - hyp_anomaly

    def time_between(self, true_anomaly1: float, true_anomaly2: float) -> float:
        """
        Time of flight (s) from one true anomaly to another.

        On an ellipse the result is the forward time in [0, period).  On open
        orbits the result is signed: a negative value means the second point
        was passed before the first.
        """
        m1 = self._mean_anomaly(true_anomaly1)
        m2 = self._mean_anomaly(true_anomaly2)

        if self.is_parabolic:
            return 0.5 * np.sqrt(self.parameter ** 3 / self.mu) * (m2 - m1)
        if self.is_elliptical:
            return ((m2 - m1) % TWO_PI) / self.mean_motion
        return (m2 - m1) / self.mean_motion

    def __repr__(self) -> str:
        return (f"Orbit(p={self.parameter:.3f} m, e={self.eccentricity:.6f}, "
                f"i={np.degrees(self.inclination):.3f} deg)")


def sphere_of_influence(semi_major_axis: float, mass: float, primary_mass: float) -> float:
    """Laplace sphere of influence r_SOI = a (m/M)^(2/5) (m)."""
    return semi_major_axis * (mass / primary_mass) ** 0.4


# =============================================================================
# POSITION ALONG AN ORBIT
# =============================================================================

@dataclass(frozen=True)
class OrbitPosition:
    """An orbit together with a true anomaly on it."""
    orbit: Orbit
    true_anomaly: float

    @classmethod
    def from_state(cls, mu: float, position: np.ndarray, velocity: np.ndarray,
                   primary_radius: float = 0.0,
                   primary: Optional[int] = None) -> 'OrbitPosition':
        """
        Osculating elements and true anomaly for a relative state.

        Edge cases follow the usual conventions:
            - circular orbit: omega = 0, nu measured from the node line
            - equatorial orbit: Omega = 0, omega measured from the x-axis
            - circular equatorial: nu is the true longitude
        """
        r = np.asarray(position, dtype=np.float64)
        v = np.asarray(velocity, dtype=np.float64)
        r_mag = np.linalg.norm(r)

        h = np.cross(r, v)
        h_mag = np.linalg.norm(h)
        if h_mag == 0.0:
            raise UnsupportedOrbitError("Rectilinear trajectory has no orbital plane.")

        n = np.cross(np.array([0.0, 0.0, 1.0]), h)
        n_mag = np.linalg.norm(n)
        retrograde = h[2] < 0.0

        e_vec = np.cross(v, h) / mu - r / r_mag
        e = float(np.linalg.norm(e_vec))
        parameter = h_mag ** 2 / mu

        inclination = float(np.arccos(np.clip(h[2] / h_mag, -1.0, 1.0)))

        if n_mag > _ANGLE_EPSILON * h_mag:
            raan = float(np.arctan2(n[1], n[0]) % TWO_PI)
        else:
            raan = 0.0
            n_mag = 0.0

        if e > _ANGLE_EPSILON and n_mag > 0.0:
            omega = np.arccos(np.clip(np.dot(n, e_vec) / (n_mag * e), -1.0, 1.0))
            if e_vec[2] < 0.0:
                omega = TWO_PI - omega
        elif e > _ANGLE_EPSILON:
            sign = -1.0 if retrograde else 1.0
            omega = np.arctan2(sign * e_vec[1], e_vec[0]) % TWO_PI
        else:
            omega = 0.0

        if e > _ANGLE_EPSILON:
            nu = np.arccos(np.clip(np.dot(e_vec, r) / (e * r_mag), -1.0, 1.0))
            if np.dot(r, v) < 0.0:
                nu = TWO_PI - nu
        elif n_mag > 0.0:
            nu = np.arccos(np.clip(np.dot(n, r) / (n_mag * r_mag), -1.0, 1.0))
            if r[2] < 0.0:
                nu = TWO_PI - nu
        else:
            sign = -1.0 if retrograde else 1.0
            nu = np.arctan2(sign * r[1], r[0]) % TWO_PI

        orbit = Orbit(parameter, e, inclination, raan, float(omega), mu,
                      primary_radius, primary)
        return cls(orbit, float(nu))

    @classmethod
    def from_object_state(cls, mu: float, state: ObjectState,
                          primary_radius: float = 0.0,
                          primary: Optional[int] = None) -> 'OrbitPosition':
        return cls.from_state(mu, state.position, state.velocity, primary_radius, primary)

    def state(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.orbit.state_at(self.true_anomaly)

    def time_to_true_anomaly(self, true_anomaly: float) -> float:
        return self.orbit.time_between(self.true_anomaly, true_anomaly)

    def time_to_periapsis(self) -> float:
        return self.time_to_true_anomaly(0.0)

    def time_to_apoapsis(self) -> float:
        if not self.orbit.is_elliptical:
            raise ValueError("An open orbit has no apoapsis.")
        return self.time_to_true_anomaly(PI)

    def time_to_impact(self) -> Optional[float]:
        """
        Time (s) until the orbit next reaches the primary's surface.

        None when the periapsis clears the surface or the impact lies in the
        past of an open orbit.
        """
        orbit = self.orbit
        if orbit.primary_radius <= 0.0 or orbit.periapsis > orbit.primary_radius:
            return None

        crossings = orbit.true_anomaly_at_radius(orbit.primary_radius)
        if crossings is None:
            return None

        times = [self.time_to_true_anomaly(nu) for nu in crossings]
        future = [t for t in times if t >= 0.0]
        if not future:
            return None
        return min(future)
