"""
===============================================================================
SPACESIM - Finite Burn Execution
===============================================================================
Executes a planned velocity change with a rocket's engines instead of as an
instantaneous impulse.

Planning sizes the burn from the rocket equation for the stage that will
fire:

    dm     = m0 * (1 - exp(-|dv| / ve))
    t_burn = dm * ve / F

and centres it on the epoch of the equivalent impulse, so the burn starts
t_burn / 2 early.  During execution the thrust is held along the inertial
direction of dv.  The delivered dv is read back from the rocket's booked
delta-v after every step; the last step is throttled so the burn ends on
the requested magnitude rather than overshooting by a full step.  When the
rocket runs out of engines or fuel first the burn ends short.

References
----------
    [1] Curtis, "Orbital Mechanics for Engineering Students", Sec. 6.11.
    [2] Bate, Mueller & White, "Fundamentals of Astrodynamics", Ch. 6.
===============================================================================
"""

import logging
from dataclasses import dataclass

import numpy as np

from spacesim.core.constants import MANEUVER_TIME_EPSILON
from spacesim.core.math_utils import normalized

logger = logging.getLogger(__name__)

# Delivered dv within this of the request completes the burn (m/s).
_DELTA_V_TOLERANCE = 1e-6


@dataclass(frozen=True)
class BurnProfile:
    """
    One planned finite-duration thrust arc.

    Attributes
    ----------
    start_time : float
        Ignition time (s).
    duration : float
        Burn duration at full throttle (s).
    direction : np.ndarray
        Inertial thrust direction (unit vector, relative frame).
    delta_v : float
        Requested velocity change (m/s).
    thrust : float
        Thrust of the firing stage (N).
    exhaust_velocity : float
        Effective exhaust velocity of the firing stage (m/s).
    propellant_mass : float
        Propellant needed for the burn (kg).
    """
    start_time: float
    duration: float
    direction: np.ndarray
    delta_v: float
    thrust: float
    exhaust_velocity: float
    propellant_mass: float

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


def plan_finite_burn(delta_v, mass: float, thrust: float, exhaust_velocity: float,
                     center_time: float) -> BurnProfile:
    """
    Plan a burn delivering *delta_v*, centred on *center_time*.

    Parameters
    ----------
    delta_v : array_like (3,)
        Velocity change in the relative frame (m/s).
    mass : float
        Total mass at ignition (kg).
    thrust : float
        Thrust of the firing stage (N).
    exhaust_velocity : float
        Effective exhaust velocity of the firing stage (m/s).
    center_time : float
        Epoch of the equivalent impulse (s).

    Raises
    ------
    ValueError
        If the stage cannot produce thrust or dv is zero.
    """
    delta_v = np.asarray(delta_v, dtype=np.float64)
    magnitude = float(np.linalg.norm(delta_v))
    if magnitude == 0.0:
        raise ValueError("A finite burn needs a non-zero delta-v.")
    if thrust <= 0.0 or exhaust_velocity <= 0.0:
        raise ValueError(f"Stage cannot burn: thrust {thrust} N, "
                         f"exhaust velocity {exhaust_velocity} m/s")

    propellant = mass * (1.0 - np.exp(-magnitude / exhaust_velocity))
    duration = propellant * exhaust_velocity / thrust
    return BurnProfile(
        start_time=center_time - 0.5 * duration,
        duration=duration,
        direction=normalized(delta_v),
        delta_v=magnitude,
        thrust=thrust,
        exhaust_velocity=exhaust_velocity,
        propellant_mass=propellant,
    )


class FiniteBurnProgram:
    """
    Drives one rocket through a planned burn.

    The program only touches the rocket's engine switch, thrust direction
    and throttle; the engine propagates it like any other thrusting body.
    """

    def __init__(self, profile: BurnProfile) -> None:
        self.profile = profile
        self.applied_delta_v = 0.0
        self.completed = False
        self._baseline = None

    def __repr__(self) -> str:
        return (f"FiniteBurnProgram(start={self.profile.start_time:.3f} s, "
                f"dv={self.applied_delta_v:.3f}/{self.profile.delta_v:.3f} m/s)")

    @property
    def started(self) -> bool:
        return self._baseline is not None

    @property
    def remaining_delta_v(self) -> float:
        return max(self.profile.delta_v - self.applied_delta_v, 0.0)

    def poll(self, rocket) -> bool:
        """Read back the delivered dv; shut down and return True once done."""
        if self.completed:
            return True
        if not self.started:
            return False

        self.applied_delta_v = rocket.used_delta_v - self._baseline
        if self.remaining_delta_v <= _DELTA_V_TOLERANCE:
            self._finish(rocket)
        elif not rocket.is_thrusting:
            logger.warning("%s: burn ended %.3f m/s short of %.3f m/s",
                           rocket.name, self.remaining_delta_v, self.profile.delta_v)
            self._finish(rocket)
        return self.completed

    def command(self, rocket, time: float, time_step: float) -> bool:
        """
        Set the rocket up for the step [time, time + time_step].

        Returns True when the engine was ignited by this call.
        """
        if self.completed or time < self.profile.start_time - MANEUVER_TIME_EPSILON:
            return False

        ignited = False
        if not self.started:
            if not rocket.stages.current.has_engines:
                logger.warning("%s: no engines on %s, burn skipped",
                               rocket.name, rocket.stages.current.name)
                self.completed = True
                return False
            self._baseline = rocket.used_delta_v
            rocket.engine_running = True
            ignited = True
            logger.info("%s: burn started, %.3f m/s over %.2f s",
                        rocket.name, self.profile.delta_v, self.profile.duration)

        rocket.set_thrust_direction(self.profile.direction)
        rocket.throttle = self._throttle(rocket, time_step)
        return ignited

    def _throttle(self, rocket, time_step: float) -> float:
        """Full throttle unless a full step would pass the requested dv."""
        stage = rocket.stages.current
        flow = stage.total_mass_flow_rate
        if flow == 0.0 or time_step <= 0.0:
            return 1.0
        mass = rocket.mass
        needed = mass * (1.0 - np.exp(-self.remaining_delta_v / stage.effective_exhaust_velocity))
        return float(min(needed / (flow * time_step), 1.0))

    def _finish(self, rocket) -> None:
        self.completed = True
        rocket.engine_running = False
        rocket.throttle = 1.0
        logger.info("%s: burn complete, %.3f m/s delivered", rocket.name, self.applied_delta_v)
