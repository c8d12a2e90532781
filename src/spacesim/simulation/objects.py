"""
===============================================================================
SPACESIM - Physics Objects
===============================================================================
Bodies managed by the simulation engine.

    PhysicsObject    -- anything with a configuration, a state and a primary
    PlanetObject     -- a body that may carry an atmosphere and has a sphere
                        of influence
    SatelliteObject  -- an unpowered body, optionally subject to drag
    RocketObject     -- a satellite with engines, stages and a thrust command

Objects are plain containers.  The engine owns them in an arena keyed by
integer handle and refers to primaries by handle, never by reference, so the
parent/child hierarchy cannot form ownership cycles.

Every object keeps a reference checkpoint (reference_state, reference_orbit).
Unperturbed motion is always evaluated from the checkpoint, never chained
step to step; the checkpoint is rebased whenever the motion stops being a
pure conic (numeric integration, maneuvers, frame changes).
===============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

import numpy as np

from spacesim.core.constants import MANEUVER_TIME_EPSILON
from spacesim.core.math_utils import normalized
from spacesim.core.orbit import Orbit
from spacesim.core.state import ObjectConfig, ObjectState
from spacesim.dynamics.atmosphere import (
    AtmosphericModel,
    AtmosphericProperties,
    NoAtmosphere,
)
from spacesim.dynamics.propulsion import RocketStage, RocketStages
from spacesim.guidance.maneuver_planner import Maneuver

logger = logging.getLogger(__name__)

ThrustDirection = Union[str, np.ndarray, None]

_NAMED_DIRECTIONS = ('prograde', 'retrograde', 'radial', 'normal')


class PropagationMode(Enum):
    """How an object is advanced over one step."""
    UNPERTURBED = 'unperturbed'
    PERTURBED = 'perturbed'
    IMPACTED = 'impacted'


@dataclass(frozen=True)
class SimulationEvent:
    """A discrete occurrence recorded by the engine."""
    time: float
    kind: str
    handle: int
    name: str
    detail: str = ''


# =============================================================================
# BASE OBJECT
# =============================================================================

class PhysicsObject:
    """
    A body in the simulation.

    Parameters
    ----------
    name : str
        Display name, used in logs and telemetry.
    config : ObjectConfig
        Physical configuration.
    state : ObjectState
        State relative to the primary.
    primary : int, optional
        Handle of the primary body; None only for the object of reference.
    """

    kind = 'object'

    def __init__(self, name: str, config: ObjectConfig, state: ObjectState,
                 primary: Optional[int] = None) -> None:
        self.handle: Optional[int] = None
        self.name = name
        self.config = config
        self.state = state
        self.primary = primary
        self.reference_state = state
        self.reference_orbit: Optional[Orbit] = None
        self.mode = PropagationMode.IMPACTED if state.impacted else PropagationMode.UNPERTURBED
        self.used_delta_v = 0.0
        self.maneuvers: List[Maneuver] = []

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(handle={self.handle}, name={self.name!r}, "
                f"primary={self.primary}, mode={self.mode.value})")

    @property
    def mass(self) -> float:
        return self.config.mass

    @property
    def has_impacted(self) -> bool:
        return self.state.impacted

    @property
    def is_object_of_reference(self) -> bool:
        return self.primary is None

    @property
    def atmospheric_properties(self) -> Optional[AtmosphericProperties]:
        return None

    @property
    def is_thrusting(self) -> bool:
        return False

    # -------------------------------------------------------------------------
    # Reference checkpoint
    # -------------------------------------------------------------------------

    def rebase(self, orbit: Optional[Orbit]) -> None:
        """Make the current state the checkpoint for Kepler propagation."""
        self.reference_state = self.state
        self.reference_orbit = orbit

    # -------------------------------------------------------------------------
    # Maneuvers
    # -------------------------------------------------------------------------

    def schedule_maneuver(self, maneuver: Maneuver) -> None:
        self.maneuvers.append(maneuver)
        self.maneuvers.sort(key=lambda m: m.time)

    def clear_maneuvers(self) -> None:
        self.maneuvers.clear()

    def has_maneuver_before(self, time: float) -> bool:
        """True when a queued maneuver falls due no later than *time*."""
        return bool(self.maneuvers) and self.maneuvers[0].time <= time + MANEUVER_TIME_EPSILON

    def pop_due_maneuvers(self, time: float) -> List[Maneuver]:
        """Remove and return every maneuver due at or before *time*."""
        due = []
        while self.has_maneuver_before(time):
            due.append(self.maneuvers.pop(0))
        return due

    def apply_maneuver(self, maneuver: Maneuver) -> None:
        self.state = self.state.with_delta_velocity(maneuver.delta_v)
        self.used_delta_v += float(np.linalg.norm(maneuver.delta_v))


# =============================================================================
# SPECIALISATIONS
# =============================================================================

class PlanetObject(PhysicsObject):
    """A natural body; the only kind of object other bodies can orbit."""

    kind = 'planet'

    def __init__(self, name: str, config: ObjectConfig, state: ObjectState,
                 primary: Optional[int] = None,
                 atmospheric_model: Optional[AtmosphericModel] = None) -> None:
        super().__init__(name, config, state, primary)
        self.atmospheric_model = atmospheric_model if atmospheric_model is not None else NoAtmosphere()


class SatelliteObject(PhysicsObject):
    """An unpowered artificial body."""

    kind = 'satellite'

    def __init__(self, name: str, config: ObjectConfig, state: ObjectState,
                 primary: Optional[int] = None,
                 atmospheric_properties: Optional[AtmosphericProperties] = None) -> None:
        super().__init__(name, config, state, primary)
        self._atmospheric_properties = atmospheric_properties

    @property
    def atmospheric_properties(self) -> Optional[AtmosphericProperties]:
        return self._atmospheric_properties


class RocketObject(SatelliteObject):
    """
    A satellite with a stack of stages.

    The body's mass always equals the mass of its remaining stages; the
    configuration is replaced whenever fuel burns or a stage separates.
    """

    kind = 'rocket'

    def __init__(self, name: str, config: ObjectConfig, state: ObjectState,
                 stages: RocketStages, primary: Optional[int] = None,
                 atmospheric_properties: Optional[AtmosphericProperties] = None) -> None:
        super().__init__(name, config.with_mass(stages.total_mass), state, primary,
                         atmospheric_properties)
        self.stages = stages
        self.engine_running = False
        self.thrust_direction: ThrustDirection = 'prograde'
        # Fraction of full thrust and mass flow, in (0, 1].
        self.throttle = 1.0

    @property
    def mass(self) -> float:
        return self.stages.total_mass

    @property
    def is_thrusting(self) -> bool:
        return self.engine_running and self.stages.current.has_engines

    def set_thrust_direction(self, direction: ThrustDirection) -> None:
        """
        Set the thrust command.

        Args:
            direction: One of 'prograde', 'retrograde', 'radial', 'normal'
                (resolved against the instantaneous state), a fixed inertial
                vector, or None for prograde.
        """
        if direction is None:
            direction = 'prograde'
        if isinstance(direction, str):
            if direction not in _NAMED_DIRECTIONS:
                raise ValueError(f"Unknown thrust direction: {direction!r}")
            self.thrust_direction = direction
            return
        vector = normalized(direction)
        if not np.any(vector):
            raise ValueError("Thrust direction vector must be non-zero.")
        self.thrust_direction = vector

    def thrust_unit_vector(self, state: ObjectState) -> np.ndarray:
        """Thrust direction for *state*; radial when the body is at rest."""
        direction = self.thrust_direction
        if not isinstance(direction, str):
            return direction
        if direction == 'radial' or state.v_mag == 0.0:
            return normalized(state.position)
        if direction == 'prograde':
            return state.prograde
        if direction == 'retrograde':
            return state.retrograde
        return state.normal

    def thrust_acceleration(self, state: ObjectState, mass: float):
        """(acceleration, mass rate) produced by the firing stage."""
        if not self.is_thrusting or mass <= 0.0:
            return np.zeros(3), 0.0
        stage = self.stages.current
        thrust = stage.total_thrust * self.throttle
        acceleration = self.thrust_unit_vector(state) * thrust / mass
        return acceleration, -stage.total_mass_flow_rate * self.throttle

    def after_impulse(self, time: float) -> Optional[RocketStage]:
        """
        Burn *time* seconds of fuel at the current throttle after a powered step.

        Returns:
            The separated stage when the firing stage ran dry and another
            stage remains, otherwise None.  When no stage remains the engine
            is shut down.
        """
        result = self.stages.current.use_fuel(time * self.throttle)
        if result is not None:
            stage, _ = result
            mass_before = self.stages.total_mass
            self.stages = self.stages.with_current(stage)
            mass_after = self.stages.total_mass
            self.used_delta_v += stage.effective_exhaust_velocity * np.log(mass_before / mass_after)
            self.config = self.config.with_mass(mass_after)
            return None

        staged = self.stages.stage()
        if staged is None:
            self.engine_running = False
            logger.info("%s: last stage exhausted, engine shut down", self.name)
            return None

        separated, remaining = staged
        self.stages = remaining
        self.config = self.config.with_mass(remaining.total_mass)
        logger.info("%s: separated %s (%.1f kg), %d stage(s) remain",
                    self.name, separated.name, separated.mass, len(remaining))
        if not remaining.current.has_engines:
            self.engine_running = False
            logger.info("%s: no engines left on %s, engine shut down",
                        self.name, remaining.current.name)
        return separated
