"""
===============================================================================
SPACESIM - Kepler Problem Solver
===============================================================================
Analytic propagation of unperturbed two-body motion with the universal
variable formulation (Bate, Mueller & White, Ch. 4).

Given the relative state (r0, v0) at a reference time and an elapsed time
dt (either sign), the universal anomaly x satisfies

    sqrt(mu) dt = (r0.v0 / sqrt(mu)) x^2 C(z) + (1 - r0 alpha) x^3 S(z) + r0 x

with alpha = 2/r0 - v0^2/mu (the reciprocal of the semi-major axis, forced
to zero on a parabola) and z = alpha x^2.  Newton-Raphson on x uses

    sqrt(mu) dt/dx = x^2 C + (r0.v0 / sqrt(mu)) x (1 - z S) + r0 (1 - z C)

and the new state follows from the Lagrange coefficients

    f  = 1 - x^2 C / r0          g  = dt - x^3 S / sqrt(mu)
    g' = 1 - x^2 C / r           f' = sqrt(mu) / (r0 r) x (z S - 1)

Bodies resting on a rotating primary are not propagated along a conic;
they co-rotate with the surface (move_impacted_object).

References
----------
    [1] Bate, Mueller & White, "Fundamentals of Astrodynamics", Sec. 4.4.
    [2] Curtis, "Orbital Mechanics for Engineering Students", Alg. 3.3-3.4.
    [3] Vallado, "Fundamentals of Astrodynamics and Applications", Alg. 8.

===============================================================================
"""

import logging
from enum import Enum
from typing import Optional

import numpy as np

from spacesim.core.constants import ECCENTRICITY_EPSILON
from spacesim.core.exceptions import ConvergenceError
from spacesim.core.math_utils import stumpff_c, stumpff_s
from spacesim.core.quaternion import Quaternion
from spacesim.core.state import ObjectConfig, ObjectState

logger = logging.getLogger(__name__)


# =============================================================================
# ROTATION HELPERS
# =============================================================================

def calculate_rotation(config: Optional[ObjectConfig], orientation: Quaternion,
                       time: float) -> Quaternion:
    """
    Orientation of a rigidly spinning body after *time* seconds.

    A body with a rotational period of 0 keeps its orientation.
    """
    if config is None or config.rotational_period == 0.0:
        return orientation
    return orientation.rotated(config.axis_of_rotation, config.rotational_speed * time)


def move_impacted_object(primary_config: Optional[ObjectConfig],
                         state: ObjectState, time: float) -> ObjectState:
    """
    Carry a body resting on its primary's surface along with the rotation.

    The position is rotated about the primary's spin axis by omega*t and
    the velocity becomes the surface velocity omega x r.  A primary that does
    not spin leaves the relative position untouched.
    """
    if primary_config is None or primary_config.rotational_period == 0.0:
        return state.replace(time=state.time + time, velocity=np.zeros(3))

    spin = Quaternion.from_axis_angle(primary_config.axis_of_rotation,
                                      primary_config.rotational_speed * time)
    r_next = spin.rotate_vector(state.position)
    v_next = np.cross(primary_config.angular_velocity, r_next)

    return state.replace(
        time=state.time + time,
        position=r_next,
        velocity=v_next,
        orientation=state.orientation.rotated(primary_config.axis_of_rotation,
                                              primary_config.rotational_speed * time),
    )


# =============================================================================
# UNIVERSAL VARIABLE SOLVER
# =============================================================================

class UniversalVariableKeplerSolver:
    """
    Newton-Raphson solver for the universal Kepler equation.

    Parameters
    ----------
    max_iterations : int
        Newton iterations allowed per initial guess.
    tolerance : float
        Convergence threshold on |dt - t(x)| (s).
    max_reseeds : int
        Number of random restarts allowed after a guess diverges.
    rng : numpy.random.Generator, optional
        Source of restart guesses; a seeded default is used when omitted so
        propagation is reproducible.
    """

    def __init__(self, max_iterations: int = 1500, tolerance: float = 1e-6,
                 max_reseeds: int = 10,
                 rng: Optional[np.random.Generator] = None) -> None:
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.max_reseeds = max_reseeds
        self.rng = rng if rng is not None else np.random.default_rng(0)

    def __repr__(self) -> str:
        return (f"UniversalVariableKeplerSolver(max_iterations={self.max_iterations}, "
                f"tolerance={self.tolerance:g})")

    # -------------------------------------------------------------------------
    # Initial guesses
    # -------------------------------------------------------------------------

    def _random_guess(self, scale: float) -> float:
        return float(self.rng.uniform(0.0, 1.0) * scale)

    def _initial_guess(self, mu: float, r0: np.ndarray, v0: np.ndarray,
                       time: float, alpha: float, parabolic: bool) -> float:
        sqrt_mu = np.sqrt(mu)
        r0_mag = np.linalg.norm(r0)

        if parabolic:
            return self._parabolic_guess(mu, r0, v0, time)

        if alpha > 0.0:
            return sqrt_mu * time * alpha

        a = 1.0 / alpha
        sign = np.sign(time)
        denominator = a * (np.dot(r0, v0)
                           + sign * np.sqrt(-mu * a) * (1.0 - r0_mag * alpha))
        with np.errstate(divide='ignore', invalid='ignore'):
            guess = sign * np.sqrt(-a) * np.log((-2.0 * mu * time) / denominator)

        # The logarithmic estimate diverges for short arcs far from periapsis.
        if not np.isfinite(guess) or abs(guess) > 100.0 * np.sqrt(-a):
            logger.debug("Hyperbolic guess %.3e rejected, using a random seed", guess)
            return sign * self._random_guess(sqrt_mu * abs(time) / r0_mag)
        return float(guess)

    @staticmethod
    def _parabolic_guess(mu: float, r0: np.ndarray, v0: np.ndarray, time: float) -> float:
        """
        Closed-form guess from Barker's equation.

        On a parabola x = sqrt(p) (D - D0) with D = tan(nu/2), and D solves
        D + D^3/3 = D0 + D0^3/3 + 2 sqrt(mu/p^3) t.
        """
        h = np.linalg.norm(np.cross(r0, v0))
        p = h * h / mu
        r0_mag = np.linalg.norm(r0)
        d0 = np.sign(np.dot(r0, v0)) * np.sqrt(max(2.0 * r0_mag / p - 1.0, 0.0))
        mean_motion = d0 + d0 ** 3 / 3.0 + 2.0 * np.sqrt(mu / p ** 3) * time

        half = 1.5 * mean_motion
        root = np.sqrt(half * half + 1.0)
        d = np.cbrt(half + root) + np.cbrt(half - root)
        return float(np.sqrt(p) * (d - d0))

    # -------------------------------------------------------------------------
    # Newton iteration
    # -------------------------------------------------------------------------

    def _iterate(self, x: float, mu: float, r0_mag: float, r0v0: float,
                 time: float, alpha: float):
        """Run Newton from *x*; returns (x, residual, converged)."""
        sqrt_mu = np.sqrt(mu)
        r0v0_by_sqrt_mu = r0v0 / sqrt_mu
        residual = np.inf

        for _ in range(self.max_iterations):
            x2 = x * x
            z = x2 * alpha
            c = stumpff_c(z)
            s = stumpff_s(z)

            tn = (r0v0_by_sqrt_mu * x2 * c + (1.0 - r0_mag * alpha) * x2 * x * s
                  + r0_mag * x) / sqrt_mu
            dtdx = (x2 * c + r0v0_by_sqrt_mu * x * (1.0 - z * s)
                    + r0_mag * (1.0 - z * c)) / sqrt_mu

            residual = time - tn
            if abs(residual) <= self.tolerance:
                return x, residual, True
            if not np.isfinite(residual) or dtdx == 0.0 or not np.isfinite(dtdx):
                return x, residual, False
            x += residual / dtdx

        return x, residual, False

    def solve_universal_variable(self, mu: float, r0: np.ndarray, v0: np.ndarray,
                                 time: float, alpha: float,
                                 parabolic: bool = False) -> float:
        """
        Universal anomaly x for an elapsed *time*.

        Raises
        ------
        ConvergenceError
            If no initial guess converges within the reseed budget.
        """
        r0_mag = float(np.linalg.norm(r0))
        r0v0 = float(np.dot(r0, v0))

        x = self._initial_guess(mu, r0, v0, time, alpha, parabolic)
        residual = np.inf
        total_iterations = 0

        for attempt in range(self.max_reseeds + 1):
            x, residual, converged = self._iterate(x, mu, r0_mag, r0v0, time, alpha)
            total_iterations += self.max_iterations
            if converged:
                return x
            logger.debug("Kepler iteration stalled (attempt %d, residual %.3e), reseeding",
                         attempt, residual)
            x = np.sign(time) * self._random_guess(np.sqrt(mu) * abs(time) / r0_mag)

        raise ConvergenceError("Universal-variable Kepler solver", total_iterations, residual)

    def solve(self, mu: float, state: ObjectState, time: float,
              config: Optional[ObjectConfig] = None,
              primary_config: Optional[ObjectConfig] = None) -> ObjectState:
        """
        Propagate a relative state by *time* seconds.

        Parameters
        ----------
        mu : float
            Standard gravitational parameter of the primary (m^3/s^2).
        state : ObjectState
            Relative state at the reference time.
        time : float
            Elapsed time (s); negative values propagate backwards.
        config : ObjectConfig, optional
            Configuration of the propagated body; its spin is applied to
            the orientation.
        primary_config : ObjectConfig, optional
            Configuration of the primary, used when the body has impacted.

        Returns
        -------
        ObjectState
            Relative state at state.time + time.
        """
        if time == 0.0:
            return state

        if state.impacted:
            return move_impacted_object(primary_config, state, time)

        r0 = state.position
        v0 = state.velocity
        r0_mag = state.r_mag
        sqrt_mu = np.sqrt(mu)

        alpha = 2.0 / r0_mag - np.dot(v0, v0) / mu
        h = np.linalg.norm(np.cross(r0, v0))
        e_vec = np.cross(v0, np.cross(r0, v0)) / mu - r0 / r0_mag
        parabolic = abs(np.linalg.norm(e_vec) - 1.0) < ECCENTRICITY_EPSILON and h > 0.0
        if parabolic:
            alpha = 0.0

        x = self.solve_universal_variable(mu, r0, v0, time, alpha, parabolic)
        x2 = x * x
        z = x2 * alpha
        c = stumpff_c(z)
        s = stumpff_s(z)

        f = 1.0 - (x2 / r0_mag) * c
        g = time - (x2 * x / sqrt_mu) * s
        r = f * r0 + g * v0

        r_mag = np.linalg.norm(r)
        gp = 1.0 - (x2 / r_mag) * c
        fp = (sqrt_mu / (r0_mag * r_mag)) * x * (z * s - 1.0)
        v = fp * r0 + gp * v0

        return state.replace(
            time=state.time + time,
            position=r,
            velocity=v,
            orientation=calculate_rotation(config, state.orientation, time),
        )


# =============================================================================
# SOLVER SELECTION
# =============================================================================

class KeplerSolverKind(Enum):
    """Kepler solver variants selectable from configuration."""
    UNIVERSAL_VARIABLE = 'universal_variable'


def create_kepler_solver(kind, rng: Optional[np.random.Generator] = None,
                         **options) -> UniversalVariableKeplerSolver:
    """Build the Kepler solver named by *kind* (enum member or its value)."""
    kind = KeplerSolverKind(kind)
    if kind is KeplerSolverKind.UNIVERSAL_VARIABLE:
        return UniversalVariableKeplerSolver(rng=rng, **options)
    raise ValueError(f"Unknown Kepler solver: {kind}")
