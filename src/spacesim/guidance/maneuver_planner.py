"""
===============================================================================
SPACESIM - Maneuver Planner
===============================================================================
Impulsive maneuver design on top of the Kepler and Lambert solvers.

Capabilities:
    - Maneuver value type consumed by the simulation engine's queue
    - Hohmann transfer between coplanar circular orbits
    - Phase-angle timing for a Hohmann rendezvous (time_to_alignment)
    - Intercept search over a grid of launch times and flight times, solving
      Lambert's problem both ways round and keeping the cheaper departure
      burn, with an optional bounded refinement of the flight time

The planners read the engine through its public queries only (state,
primary_of, get_object, kepler_solver, gauss_solver) and hand their results
back as Maneuver objects; nothing here advances simulated time.

References
----------
    [1] Curtis, "Orbital Mechanics for Engineering Students", Sec. 6.2-6.3.
    [2] Vallado, "Fundamentals of Astrodynamics and Applications", Sec. 6.3.
===============================================================================
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy.optimize import minimize_scalar

from spacesim.core.constants import PI, TWO_PI
from spacesim.core.exceptions import ConvergenceError, UnsupportedOrbitError
from spacesim.core.math_utils import normalized
from spacesim.core.orbit import OrbitPosition

logger = logging.getLogger(__name__)

# Stationary launches must clear the surface for this long.
_LAUNCH_CLEARANCE_TIME = 1000.0
_LAUNCH_CLEARANCE_STEP = 100.0
_INFEASIBLE_COST = 1e12


@dataclass(frozen=True, eq=False)
class Maneuver:
    """
    Impulsive velocity change.

    Attributes:
        time: Simulation time at which the burn is applied (s).
        delta_v: Velocity change in the primary-relative frame (m/s).
    """
    time: float
    delta_v: np.ndarray

    def __post_init__(self):
        delta_v = np.array(self.delta_v, dtype=np.float64).reshape(3)
        delta_v.setflags(write=False)
        object.__setattr__(self, 'time', float(self.time))
        object.__setattr__(self, 'delta_v', delta_v)

    @property
    def magnitude(self) -> float:
        return float(np.linalg.norm(self.delta_v))

    def __repr__(self) -> str:
        return f"Maneuver(t={self.time:.3f} s, dv={self.magnitude:.3f} m/s)"


# =============================================================================
# HOHMANN TRANSFER
# =============================================================================

@dataclass(frozen=True)
class HohmannTransfer:
    """Signed burn magnitudes (m/s, positive prograde) and coast time (s)."""
    first_burn: float
    second_burn: float
    coast_time: float

    @property
    def total_delta_v(self) -> float:
        return abs(self.first_burn) + abs(self.second_burn)


def hohmann_transfer(mu: float, r1: float, r2: float) -> HohmannTransfer:
    """
    Two-impulse transfer between coplanar circular orbits.

    Equations:
        dv1 = sqrt(mu/r1) (sqrt(2 r2 / (r1 + r2)) - 1)
        dv2 = sqrt(mu/r2) (1 - sqrt(2 r1 / (r1 + r2)))
        t   = pi sqrt((r1 + r2)^3 / (8 mu))

    Both burns are negative when lowering the orbit.

    Args:
        mu: Gravitational parameter of the central body (m^3/s^2).
        r1: Radius of the initial circular orbit (m).
        r2: Radius of the final circular orbit (m).

    Returns:
        HohmannTransfer
    """
    if r1 <= 0.0 or r2 <= 0.0:
        raise ValueError("Orbit radii must be positive.")

    first = np.sqrt(mu / r1) * (np.sqrt(2.0 * r2 / (r1 + r2)) - 1.0)
    second = np.sqrt(mu / r2) * (1.0 - np.sqrt(2.0 * r1 / (r1 + r2)))
    coast = PI * np.sqrt((r1 + r2) ** 3 / (8.0 * mu))

    logger.debug("Hohmann transfer: r1=%.0f m, r2=%.0f m, dv1=%.1f m/s, dv2=%.1f m/s",
                 r1, r2, first, second)
    return HohmannTransfer(float(first), float(second), float(coast))


def time_to_alignment(mu: float, position: np.ndarray, velocity: np.ndarray,
                      target_position: np.ndarray) -> float:
    """
    Wait time until a Hohmann departure meets a target on a circular orbit.

    The target must lead the chaser by

        alpha = pi (1 - sqrt(((r1/r2 + 1)^3) / 8))

    at departure.  Both bodies are assumed circular and coplanar, so the
    phase angle changes at the constant rate n2 - n1.

    Args:
        mu: Gravitational parameter of the central body (m^3/s^2).
        position: Chaser position (m).
        velocity: Chaser velocity (m/s), fixes the sense of motion.
        target_position: Target position (m).

    Returns:
        Time until the next departure opportunity (s).
    """
    r1 = np.linalg.norm(position)
    r2 = np.linalg.norm(target_position)

    required = PI * (1.0 - np.sqrt((r1 / r2 + 1.0) ** 3 / 8.0))

    normal = normalized(np.cross(position, velocity))
    phase = np.arctan2(np.dot(normal, np.cross(position, target_position)),
                       np.dot(position, target_position))

    rate = np.sqrt(mu / r2 ** 3) - np.sqrt(mu / r1 ** 3)
    if rate == 0.0:
        raise ValueError("Orbits with equal radii never change phase.")
    if rate > 0.0:
        return float(((required - phase) % TWO_PI) / rate)
    return float(((phase - required) % TWO_PI) / -rate)


def _burn_time(position: OrbitPosition, now: float, when) -> float:
    if when == 'now':
        return now
    if when == 'periapsis':
        return now + position.time_to_periapsis()
    if when == 'apoapsis':
        return now + position.time_to_apoapsis()
    if isinstance(when, str):
        raise ValueError(f"Unknown burn point: {when!r}")
    if when < 0.0:
        raise ValueError("Burn delay must be non-negative.")
    return now + float(when)


def plan_hohmann(engine, handle: int, new_radius: float,
                 when: Union[str, float] = 'now',
                 schedule: bool = True) -> Tuple[Maneuver, Maneuver]:
    """
    Plan a Hohmann transfer of a circular orbiter to a new radius.

    Args:
        engine: SimulationEngine owning the object.
        handle: Object to transfer.
        new_radius: Radius of the target circular orbit (m).
        when: 'now', 'periapsis', 'apoapsis', or a delay in seconds.
        schedule: Queue both burns on the object.

    Returns:
        (departure burn, arrival burn)

    Raises:
        ValueError: If the current orbit is not circular.
    """
    obj = engine.get_object(handle)
    primary = engine.get_object(engine.primary_of(handle))
    mu = primary.config.standard_gravitational_parameter
    state = engine.state(handle)
    now = engine.current_time

    position = OrbitPosition.from_object_state(mu, state, primary.config.radius, primary.handle)
    if not position.orbit.is_circular:
        raise ValueError(
            f"{obj.name}: Hohmann transfers start from a circular orbit "
            f"(e = {position.orbit.eccentricity:.5f})"
        )

    burn_time = _burn_time(position, now, when)
    departure_state = engine.kepler_solver.solve(mu, state, burn_time - now,
                                                 obj.config, primary.config)

    transfer = hohmann_transfer(mu, departure_state.r_mag, new_radius)
    direction = departure_state.prograde

    first = Maneuver(burn_time, transfer.first_burn * direction)
    second = Maneuver(burn_time + transfer.coast_time, -transfer.second_burn * direction)

    if schedule:
        engine.schedule_maneuver(handle, first.time, first.delta_v)
        engine.schedule_maneuver(handle, second.time, second.delta_v)
    logger.info("%s: Hohmann %.0f m -> %.0f m at t=%.1f s, total dv %.1f m/s",
                obj.name, departure_state.r_mag, new_radius, burn_time,
                transfer.total_delta_v)
    return first, second


# =============================================================================
# INTERCEPT
# =============================================================================

@dataclass(frozen=True, eq=False)
class InterceptSolution:
    """
    Cheapest intercept found by plan_intercept.

    Attributes:
        launch_time: Departure time (s).
        flight_time: Time of flight (s).
        short_way: Transfer direction chosen.
        delta_v: Departure velocity change (m/s).
        arrival_delta_v: Velocity change that matches the target at arrival (m/s).
        candidates: Every valid grid point (launch_time, flight_time,
            short_way, delta_v, arrival_delta_v).
    """
    launch_time: float
    flight_time: float
    short_way: bool
    delta_v: np.ndarray
    arrival_delta_v: np.ndarray
    candidates: pd.DataFrame

    @property
    def arrival_time(self) -> float:
        return self.launch_time + self.flight_time

    def maneuvers(self, rendezvous: bool = False) -> List[Maneuver]:
        burns = [Maneuver(self.launch_time, self.delta_v)]
        if rendezvous:
            burns.append(Maneuver(self.arrival_time, self.arrival_delta_v))
        return burns


class _InterceptProblem:
    """Lambert evaluations for one chaser/target pair."""

    def __init__(self, engine, handle: int, target: int) -> None:
        self.engine = engine
        self.chaser = engine.get_object(handle)
        self.target = engine.get_object(target)
        self.primary = engine.get_object(engine.primary_of(handle))
        self.mu = self.primary.config.standard_gravitational_parameter
        self.now = engine.current_time

    def _propagate(self, obj, time: float):
        return self.engine.kepler_solver.solve(self.mu, obj.state, time - obj.state.time,
                                               obj.config, self.primary.config)

    def chaser_at(self, time: float):
        return self._propagate(self.chaser, time)

    def _clears_surface(self, state) -> bool:
        departing = state.replace(impacted=False)
        radius = self.primary.config.radius
        for check in np.arange(_LAUNCH_CLEARANCE_STEP,
                               _LAUNCH_CLEARANCE_TIME + _LAUNCH_CLEARANCE_STEP / 2.0,
                               _LAUNCH_CLEARANCE_STEP):
            if self.engine.kepler_solver.solve(self.mu, departing, check).r_mag < radius:
                return False
        return True

    def evaluate(self, chaser_state, launch_time: float, flight_time: float,
                 short_way: bool) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """(departure dv, arrival dv) or None when the transfer is invalid."""
        target_state = self._propagate(self.target, launch_time + flight_time)
        try:
            v1, v2 = self.engine.gauss_solver.solve(self.mu, chaser_state.position,
                                                    target_state.position, flight_time,
                                                    short_way)
        except (ConvergenceError, UnsupportedOrbitError) as exc:
            logger.debug("Intercept t=%.1f tof=%.1f rejected: %s", launch_time, flight_time, exc)
            return None
        if not (np.all(np.isfinite(v1)) and np.all(np.isfinite(v2))):
            return None
        if chaser_state.impacted and not self._clears_surface(chaser_state.replace(velocity=v1)):
            return None
        return v1 - chaser_state.velocity, target_state.velocity - v2

    def cheapest(self, chaser_state, launch_time: float, flight_time: float):
        best = None
        for short_way in (True, False):
            result = self.evaluate(chaser_state, launch_time, flight_time, short_way)
            if result is None:
                continue
            if best is None or np.linalg.norm(result[0]) < np.linalg.norm(best[1][0]):
                best = (short_way, result)
        return best


def plan_intercept(engine, handle: int, target: int,
                   launch_window: Tuple[float, float],
                   flight_times: Tuple[float, float],
                   step: float, refine: bool = True,
                   schedule: bool = False) -> Optional[InterceptSolution]:
    """
    Search for the cheapest departure burn that intercepts a target.

    The grid covers launch times in *launch_window* (absolute simulation
    times, not before the current time) and flights of *flight_times*
    seconds, both sampled every *step* seconds.  Both objects must orbit the
    same primary.

    Args:
        engine: SimulationEngine owning both objects.
        handle: Chaser object.
        target: Target object.
        launch_window: (earliest, latest) departure time (s).
        flight_times: (shortest, longest) time of flight (s).
        step: Grid spacing (s).
        refine: Polish the best flight time with a bounded scalar search.
        schedule: Queue the departure burn on the chaser.

    Returns:
        InterceptSolution, or None when no grid point yields a valid transfer.
    """
    if step <= 0.0:
        raise ValueError("Grid step must be positive.")
    if engine.primary_of(handle) != engine.primary_of(target):
        raise ValueError("Chaser and target must orbit the same primary.")

    problem = _InterceptProblem(engine, handle, target)
    earliest = max(launch_window[0], problem.now)
    launch_times = np.arange(earliest, launch_window[1] + step / 2.0, step)
    tofs = np.arange(max(flight_times[0], step), flight_times[1] + step / 2.0, step)

    rows = []
    for launch_time in launch_times:
        chaser_state = problem.chaser_at(launch_time)
        for tof in tofs:
            best = problem.cheapest(chaser_state, launch_time, tof)
            if best is None:
                continue
            short_way, (dv1, dv2) = best
            rows.append({
                'launch_time': float(launch_time),
                'flight_time': float(tof),
                'short_way': short_way,
                'delta_v': float(np.linalg.norm(dv1)),
                'arrival_delta_v': float(np.linalg.norm(dv2)),
            })

    if not rows:
        logger.warning("%s: no intercept of %s found in the search grid",
                       problem.chaser.name, problem.target.name)
        return None

    candidates = pd.DataFrame(rows)
    best_row = candidates.loc[candidates['delta_v'].idxmin()]
    launch_time = float(best_row['launch_time'])
    flight_time = float(best_row['flight_time'])
    short_way = bool(best_row['short_way'])
    chaser_state = problem.chaser_at(launch_time)

    if refine:
        def _cost(tof: float) -> float:
            result = problem.evaluate(chaser_state, launch_time, tof, short_way)
            if result is None:
                return _INFEASIBLE_COST
            return float(np.linalg.norm(result[0]))

        lower = max(flight_time - step, tofs[0])
        upper = min(flight_time + step, tofs[-1])
        if upper > lower:
            result = minimize_scalar(_cost, bounds=(lower, upper), method='bounded',
                                     options={'xatol': 1e-3})
            if result.fun < best_row['delta_v']:
                flight_time = float(result.x)

    best = problem.evaluate(chaser_state, launch_time, flight_time, short_way)
    if best is None:
        logger.warning("%s: best intercept of %s could not be re-evaluated",
                       problem.chaser.name, problem.target.name)
        return None
    dv1, dv2 = best
    solution = InterceptSolution(launch_time, flight_time, short_way, dv1, dv2, candidates)

    if schedule:
        engine.schedule_maneuver(handle, launch_time, dv1)
    logger.info("%s -> %s: launch t=%.1f s, flight %.1f s, dv %.2f m/s (%d candidates)",
                problem.chaser.name, problem.target.name, launch_time, flight_time,
                np.linalg.norm(dv1), len(candidates))
    return solution
