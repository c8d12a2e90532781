"""
===============================================================================
SPACESIM - Gauss/Lambert Problem Solvers
===============================================================================
Given two position vectors r1, r2 relative to a primary body and the time of
flight between them, recover the velocities v1, v2 of the connecting conic.

Three algorithms share one interface:

    UniversalVariableLambertSolver
        Newton iteration on z = alpha x^2 (Bate, Mueller & White 5.3):

            A = sign(pi - dnu) sqrt(r1 r2 (1 + cos dnu))
            y = r1 + r2 - A (1 - z S) / sqrt(C)
            x = sqrt(y / C)
            sqrt(mu) t = x^3 S + A sqrt(y)

    PIterationLambertSolver
        Newton iteration on the semi-latus rectum p (BMW 5.4), bounded by
        the parabolic values

            k = r1 r2 (1 - cos dnu),  l = r1 + r2,  m = r1 r2 (1 + cos dnu)
            p_i = k / (l + sqrt(2m)),  p_ii = k / (l - sqrt(2m))

    GaussMethodLambertSolver
        Gauss's original y iteration (BMW 5.5).  Limited to moderate
        transfer angles; rejects the parabolic case.

AdaptiveLambertSolver runs a primary algorithm and falls back to a secondary
one when the first reports non-convergence or an unsupported geometry.

The "short way" uses the unsigned angle between r1 and r2 as the transfer
angle; the "long way" uses 2 pi minus that angle.

All random restarts draw from an injected numpy Generator and are bounded, so
a failing geometry raises ConvergenceError instead of looping forever.

References
----------
    [1] Bate, Mueller & White, "Fundamentals of Astrodynamics", Ch. 5.
    [2] Curtis, "Orbital Mechanics for Engineering Students", Alg. 5.2.
    [3] Vallado, "Fundamentals of Astrodynamics and Applications", Alg. 58.
===============================================================================
"""

import logging
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from spacesim.core.constants import TWO_PI
from spacesim.core.exceptions import ConvergenceError, UnsupportedOrbitError
from spacesim.core.math_utils import (
    angle_between,
    stumpff_c,
    stumpff_derivatives,
    stumpff_s,
)
from spacesim.core.state import ObjectState

logger = logging.getLogger(__name__)

_COLLINEAR_TOLERANCE = 1e-10


# =============================================================================
# COMMON INTERFACE
# =============================================================================

class GaussProblemSolver:
    """
    Base class of the Lambert solvers.

    Parameters
    ----------
    max_iterations : int
        Iteration budget per solve.
    tolerance : float
        Convergence threshold on the time-of-flight residual (s).
    max_reseeds : int
        Maximum number of random restarts per solve.
    rng : numpy.random.Generator, optional
        Source of restart guesses.
    """

    name = 'gauss problem solver'

    def __init__(self, max_iterations: int, tolerance: float, max_reseeds: int = 10,
                 rng: Optional[np.random.Generator] = None) -> None:
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.max_reseeds = max_reseeds
        self.rng = rng if rng is not None else np.random.default_rng(1337)

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(max_iterations={self.max_iterations}, "
                f"tolerance={self.tolerance:g})")

    def solve(self, mu: float, position1: np.ndarray, position2: np.ndarray,
              time: float, short_way: bool = True,
              primary_state1: Optional[ObjectState] = None,
              primary_state2: Optional[ObjectState] = None
              ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Velocities at both ends of the conic joining two positions.

        Parameters
        ----------
        mu : float
            Standard gravitational parameter of the primary (m^3/s^2).
        position1, position2 : np.ndarray
            Positions at departure and arrival (m).  Relative to the primary
            unless primary states are supplied.
        time : float
            Time of flight (s), positive.
        short_way : bool
            Transfer through the smaller (True) or larger (False) angle.
        primary_state1, primary_state2 : ObjectState, optional
            Absolute primary states at departure and arrival.  When given,
            the positions are absolute and so are the returned velocities.

        Returns
        -------
        v1, v2 : np.ndarray
            Velocities at departure and arrival (m/s).

        Raises
        ------
        ConvergenceError
            If the iteration budget is exhausted.
        UnsupportedOrbitError
            If the geometry or orbit class is not handled by the algorithm.
        """
        if time <= 0.0:
            raise ValueError(f"Time of flight must be positive, got {time}")

        r1 = np.asarray(position1, dtype=np.float64)
        r2 = np.asarray(position2, dtype=np.float64)
        if primary_state1 is not None:
            r1 = r1 - primary_state1.position
        if primary_state2 is not None:
            r2 = r2 - primary_state2.position

        r1_mag = np.linalg.norm(r1)
        r2_mag = np.linalg.norm(r2)
        if np.linalg.norm(np.cross(r1, r2)) < _COLLINEAR_TOLERANCE * r1_mag * r2_mag:
            raise UnsupportedOrbitError(
                "Collinear position vectors do not define a transfer plane."
            )

        delta_nu = angle_between(r1, r2)
        if not short_way:
            delta_nu = TWO_PI - delta_nu

        v1, v2 = self._solve_relative(mu, r1, r2, r1_mag, r2_mag, delta_nu, time)

        if primary_state1 is not None:
            v1 = v1 + primary_state1.velocity
        if primary_state2 is not None:
            v2 = v2 + primary_state2.velocity
        return v1, v2

    def _solve_relative(self, mu, r1, r2, r1_mag, r2_mag, delta_nu, time):
        raise NotImplementedError


# =============================================================================
# UNIVERSAL VARIABLE
# =============================================================================

class UniversalVariableLambertSolver(GaussProblemSolver):
    """
    Universal-variable Lambert solver (Newton on z).

    Only the single-revolution branch z < 4 pi^2 is searched: the time of
    flight grows without bound as z approaches 4 pi^2, and z beyond it
    belongs to multi-revolution transfers. A Newton step that lands on or
    past that bound is replaced by the midpoint towards it.
    """

    name = 'universal-variable Lambert solver'
    _RESEED_INTERVAL = 200
    _Z_MAX = TWO_PI ** 2

    def __init__(self, max_iterations: int = 1000, tolerance: float = 1e-6,
                 max_reseeds: int = 10,
                 rng: Optional[np.random.Generator] = None) -> None:
        super().__init__(max_iterations, tolerance, max_reseeds, rng)

    @staticmethod
    def _y(r1_mag, r2_mag, z, s, c, a):
        return r1_mag + r2_mag - a * (1.0 - z * s) / np.sqrt(c)

    def _reseed(self, reseeds: int, iterations: int, residual: float) -> float:
        if reseeds > self.max_reseeds:
            raise ConvergenceError(self.name, iterations, residual)
        return float(self.rng.uniform(-self._Z_MAX, self._Z_MAX))

    def solve_for_z(self, mu, r1_mag, r2_mag, a, delta_nu, time) -> float:
        """Universal variable z matching the time of flight."""
        sqrt_mu = np.sqrt(mu)
        z = delta_nu * delta_nu
        z_valid = None
        residual = np.inf
        reseeds = 0

        for i in range(self.max_iterations):
            s = stumpff_s(z)
            c = stumpff_c(z)
            y = self._y(r1_mag, r2_mag, z, s, c, a)

            if y < 0.0 or not np.isfinite(y):
                # Damp the step back towards the last admissible z, or restart.
                if z_valid is not None and abs(z - z_valid) > 1e-12:
                    z = 0.5 * (z + z_valid)
                else:
                    reseeds += 1
                    z_valid = None
                    z = self._reseed(reseeds, i, residual)
                continue

            x = np.sqrt(y / c)
            sqrt_y = np.sqrt(y)
            residual = time - (x ** 3 * s + a * sqrt_y) / sqrt_mu
            if abs(residual) <= self.tolerance:
                logger.debug("%s converged in %d iterations (z=%.6f)", self.name, i, z)
                return z

            cp, sp = stumpff_derivatives(z, c, s)
            dtdz = (x ** 3 * (sp - 3.0 * s * cp / (2.0 * c))
                    + (a / 8.0) * (3.0 * s * sqrt_y / c + a / x)) / sqrt_mu

            z_valid = z
            z_next = z + residual / dtdz
            if not np.isfinite(z_next) or z_next >= self._Z_MAX:
                z_next = 0.5 * (z + self._Z_MAX)
            z = z_next

            if i > 0 and i % self._RESEED_INTERVAL == 0:
                reseeds += 1
                z_valid = None
                z = self._reseed(reseeds, i, residual)

        raise ConvergenceError(self.name, self.max_iterations, residual)

    def _solve_relative(self, mu, r1, r2, r1_mag, r2_mag, delta_nu, time):
        a = np.sign(np.pi - delta_nu) * np.sqrt(r1_mag * r2_mag * (1.0 + np.cos(delta_nu)))
        if a == 0.0:
            raise UnsupportedOrbitError("Transfer angle of pi leaves the plane undefined.")

        z = self.solve_for_z(mu, r1_mag, r2_mag, a, delta_nu, time)
        y = self._y(r1_mag, r2_mag, z, stumpff_s(z), stumpff_c(z), a)

        f = 1.0 - y / r1_mag
        g = a * np.sqrt(y / mu)
        gp = 1.0 - y / r2_mag

        v1 = (r2 - f * r1) / g
        v2 = (gp * r2 - r1) / g
        return v1, v2


# =============================================================================
# P-ITERATION
# =============================================================================

class PIterationLambertSolver(GaussProblemSolver):
    """Semi-latus rectum (p-iteration) Lambert solver."""

    name = 'p-iteration Lambert solver'
    _RESEED_INTERVAL = 100

    def __init__(self, max_iterations: int = 1000, tolerance: float = 1e-4,
                 max_reseeds: int = 10,
                 rng: Optional[np.random.Generator] = None) -> None:
        super().__init__(max_iterations, tolerance, max_reseeds, rng)

    @staticmethod
    def _f_and_g(r1_mag, r2_mag, mu, cos_dnu, sin_dnu, tan_half_dnu, p):
        f = 1.0 - (r2_mag / p) * (1.0 - cos_dnu)
        g = r1_mag * r2_mag * sin_dnu / np.sqrt(mu * p)
        fp = (np.sqrt(mu / p) * tan_half_dnu
              * ((1.0 - cos_dnu) / p - 1.0 / r1_mag - 1.0 / r2_mag))
        return f, g, fp

    def _time_of_flight(self, p, k, l, m, r1_mag, r2_mag, mu, cos_dnu, sin_dnu,
                        tan_half_dnu, time):
        """Time of flight for *p* and the derivative dt/dp."""
        a = m * k * p / ((2.0 * m - l * l) * p * p + 2.0 * k * l * p - k * k)
        f, g, fp = self._f_and_g(r1_mag, r2_mag, mu, cos_dnu, sin_dnu, tan_half_dnu, p)
        cos_anomaly = 1.0 - (r1_mag / a) * (1.0 - f)

        if a >= 0.0:
            sin_de = -r1_mag * r2_mag * fp / np.sqrt(mu * a)
            delta_e = np.arctan2(sin_de, cos_anomaly) % TWO_PI
            sin_delta = sin_de
            t = g + np.sqrt(a ** 3 / mu) * (delta_e - sin_de)
            sign = 1.0
        else:
            delta_f = np.arccosh(cos_anomaly)
            sin_delta = np.sinh(delta_f)
            t = g + np.sqrt((-a) ** 3 / mu) * (sin_delta - delta_f)
            sign = -1.0

        dtdp = (-g / (2.0 * p)
                - 1.5 * a * (t - g) * (k * k + (2.0 * m - l * l) * p * p) / (m * k * p * p)
                + sign * np.sqrt(abs(a) ** 3 / mu) * 2.0 * k * sin_delta / (p * (k - l * p)))
        return t, dtdp

    def solve_for_p(self, r1_mag, r2_mag, mu, delta_nu, time) -> float:
        """Semi-latus rectum of the transfer conic."""
        cos_dnu = np.cos(delta_nu)
        sin_dnu = np.sin(delta_nu)
        tan_half_dnu = np.tan(delta_nu / 2.0)

        k = r1_mag * r2_mag * (1.0 - cos_dnu)
        l = r1_mag + r2_mag
        m = r1_mag * r2_mag * (1.0 + cos_dnu)

        p_lower = k / (l + np.sqrt(2.0 * m))
        p_upper = k / (l - np.sqrt(2.0 * m))
        # Admissible p: (p_i, inf) on the short way, (0, p_ii) on the long way.
        if delta_nu < np.pi:
            bound_low, bound_high = p_lower, np.inf
        else:
            bound_low, bound_high = 0.0, p_upper

        p = float(self.rng.uniform(p_lower, p_upper))
        residual = np.inf
        reseeds = 0

        for i in range(self.max_iterations):
            with np.errstate(invalid='ignore', divide='ignore'):
                t, dtdp = self._time_of_flight(p, k, l, m, r1_mag, r2_mag, mu,
                                               cos_dnu, sin_dnu, tan_half_dnu, time)
            residual = time - t
            if abs(residual) <= self.tolerance:
                logger.debug("%s converged in %d iterations (p=%.3f)", self.name, i, p)
                return p

            stalled = not (np.isfinite(residual) and np.isfinite(dtdp) and dtdp != 0.0)
            if not stalled:
                p_next = p + residual / dtdp
                if p_next <= bound_low:
                    p_next = 0.5 * (p + bound_low)
                elif p_next >= bound_high:
                    p_next = 0.5 * (p + bound_high)
                p = p_next

            if stalled or (i > 0 and i % self._RESEED_INTERVAL == 0):
                reseeds += 1
                if reseeds > self.max_reseeds:
                    raise ConvergenceError(self.name, i, residual)
                p = float(self.rng.uniform(p_lower, p_upper))

        raise ConvergenceError(self.name, self.max_iterations, residual)

    def _solve_relative(self, mu, r1, r2, r1_mag, r2_mag, delta_nu, time):
        p = self.solve_for_p(r1_mag, r2_mag, mu, delta_nu, time)

        cos_dnu = np.cos(delta_nu)
        f, g, fp = self._f_and_g(r1_mag, r2_mag, mu, cos_dnu, np.sin(delta_nu),
                                 np.tan(delta_nu / 2.0), p)
        gp = 1.0 - (r1_mag / p) * (1.0 - cos_dnu)

        v1 = (r2 - f * r1) / g
        v2 = fp * r1 + gp * v1
        return v1, v2


# =============================================================================
# GAUSS'S METHOD
# =============================================================================

class GaussMethodLambertSolver(GaussProblemSolver):
    """
    Gauss's original method.

    Converges only for moderate transfer angles (well below pi); larger
    angles are rejected as unsupported.
    """

    name = "Gauss-method Lambert solver"
    # x = sin^2(dE/4) vanishes on a parabola. The fixed point on y only
    # resolves x to a small multiple of the y tolerance.
    _PARABOLIC_TOLERANCE = 1e-6

    def __init__(self, max_iterations: int = 500, tolerance: float = 1e-5,
                 max_reseeds: int = 0,
                 rng: Optional[np.random.Generator] = None) -> None:
        super().__init__(max_iterations, tolerance, max_reseeds, rng)

    @staticmethod
    def _series_x(x: float) -> float:
        """X(x) = 4/3 (1 + 6/5 x + 6*8/(5*7) x^2 + ...), six terms."""
        total = 1.0
        term = 1.0
        for n in range(5):
            term *= (6.0 + 2.0 * n) / (5.0 + 2.0 * n) * x
            total += term
        return 4.0 / 3.0 * total

    def _solve_relative(self, mu, r1, r2, r1_mag, r2_mag, delta_nu, time):
        c = np.sqrt(r1_mag * r2_mag) * np.cos(delta_nu / 2.0)
        if c <= 0.0:
            raise UnsupportedOrbitError(
                f"Transfer angle {np.degrees(delta_nu):.1f} deg is outside the range "
                "of Gauss's method."
            )
        s = (r1_mag + r2_mag) / (4.0 * c) - 0.5
        w = mu * time * time / (2.0 * c) ** 3

        y = 1.0
        for i in range(self.max_iterations):
            x = w / (y * y) - s
            y_next = 1.0 + self._series_x(x) * (s + x)
            if not np.isfinite(y_next):
                raise ConvergenceError(self.name, i)
            converged = abs(y_next - y) <= self.tolerance
            y = y_next
            if converged:
                break
        else:
            raise ConvergenceError(self.name, self.max_iterations)

        x = w / (y * y) - s
        if abs(x) < self._PARABOLIC_TOLERANCE:
            raise UnsupportedOrbitError("Parabolic transfers are not handled by Gauss's method.")

        # cos(dE/2) on an ellipse, cosh(dF/2) on a hyperbola.
        cos_half_anomaly = 1.0 - 2.0 * x

        cos_dnu = np.cos(delta_nu)
        p = r1_mag * r2_mag * (1.0 - cos_dnu) / (r1_mag + r2_mag - 2.0 * c * cos_half_anomaly)
        if p <= 0.0:
            raise UnsupportedOrbitError("Gauss's method produced a non-physical conic.")

        f = 1.0 - (r2_mag / p) * (1.0 - cos_dnu)
        g = r1_mag * r2_mag * np.sin(delta_nu) / np.sqrt(mu * p)
        fp = (np.sqrt(mu / p) * np.tan(delta_nu / 2.0)
              * ((1.0 - cos_dnu) / p - 1.0 / r1_mag - 1.0 / r2_mag))
        gp = 1.0 - (r1_mag / p) * (1.0 - cos_dnu)

        v1 = (r2 - f * r1) / g
        v2 = fp * r1 + gp * v1
        return v1, v2


# =============================================================================
# ADAPTIVE FALLBACK
# =============================================================================

class AdaptiveLambertSolver(GaussProblemSolver):
    """
    Try a primary solver, fall back to a secondary one on failure.

    Only ConvergenceError and UnsupportedOrbitError trigger the fallback;
    invalid arguments propagate unchanged.
    """

    name = 'adaptive Lambert solver'

    def __init__(self, primary: GaussProblemSolver, fallback: GaussProblemSolver) -> None:
        self.primary = primary
        self.fallback = fallback

    def __repr__(self) -> str:
        return f"AdaptiveLambertSolver(primary={self.primary!r}, fallback={self.fallback!r})"

    def solve(self, mu, position1, position2, time, short_way=True,
              primary_state1=None, primary_state2=None):
        try:
            return self.primary.solve(mu, position1, position2, time, short_way,
                                      primary_state1, primary_state2)
        except (ConvergenceError, UnsupportedOrbitError) as exc:
            logger.debug("%s failed (%s); falling back to %s",
                         self.primary.name, exc, self.fallback.name)
            return self.fallback.solve(mu, position1, position2, time, short_way,
                                       primary_state1, primary_state2)


# =============================================================================
# SOLVER SELECTION
# =============================================================================

class GaussSolverKind(Enum):
    """Lambert solver variants selectable from configuration."""
    UNIVERSAL_VARIABLE = 'universal_variable'
    P_ITERATION = 'p_iteration'
    GAUSS_METHOD = 'gauss_method'
    ADAPTIVE = 'adaptive'


def create_gauss_solver(kind, rng: Optional[np.random.Generator] = None,
                        max_reseeds: int = 10) -> GaussProblemSolver:
    """Build the Lambert solver named by *kind* (enum member or its value)."""
    kind = GaussSolverKind(kind)
    if kind is GaussSolverKind.UNIVERSAL_VARIABLE:
        return UniversalVariableLambertSolver(max_reseeds=max_reseeds, rng=rng)
    if kind is GaussSolverKind.P_ITERATION:
        return PIterationLambertSolver(max_reseeds=max_reseeds, rng=rng)
    if kind is GaussSolverKind.GAUSS_METHOD:
        return GaussMethodLambertSolver(rng=rng)
    if kind is GaussSolverKind.ADAPTIVE:
        return AdaptiveLambertSolver(
            UniversalVariableLambertSolver(max_reseeds=max_reseeds, rng=rng),
            PIterationLambertSolver(max_reseeds=max_reseeds, rng=rng),
        )
    raise ValueError(f"Unknown Gauss solver: {kind}")
