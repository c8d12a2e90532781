"""
===============================================================================
SPACESIM - Simulation Engine
===============================================================================
Scheduler that advances every body in the arena by discrete global steps.

Each object is in one of three propagation modes per step:

    UNPERTURBED -- pure two-body motion, evaluated analytically with the
                   Kepler solver from the object's reference checkpoint
    PERTURBED   -- thrust, drag or a due maneuver act on the object; its
                   relative state is integrated with RK4 (Cowell's method)
                   and the checkpoint is rebased afterwards
    IMPACTED    -- the object rests on its primary's surface and co-rotates
                   with it

One global step:

    1. Apply maneuvers already due at the start of the step.
    2. Split the step at the epochs of maneuvers and burn ignitions falling
       inside it.  Finite-burn programs command their rockets (ignition,
       direction, throttle, shutdown) at the start of every sub-step.
    3. For every sub-step, snapshot all relative states, then advance each
       object in arena order.  The acceleration function of an integrated
       object reads the snapshot, never a state already advanced in the
       same sub-step.  A solver failure leaves that object's state stale
       and records a 'propagation_failed' event; the other objects proceed.
    4. Apply maneuvers due at the end of each sub-step.
    5. Move objects that left their primary's sphere of influence (or
       entered a sibling's) to the new frame.
    6. Merge objects created during the step (separated stages).
    7. Record telemetry.

Impact detection is advisory: check_impacts() tests the segment travelled
during the last step against the primary's sphere and is called by run()
after every step.

The object of reference is the root of the hierarchy.  It is never
propagated, only rotated about its spin axis.

Simulation modes: 'hybrid' (default, as above), 'two_body' (always Kepler,
thrust and drag ignored), 'cowell' (always RK4).
===============================================================================
"""

import logging
import time as walltime
from dataclasses import replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from spacesim.core.constants import MANEUVER_TIME_EPSILON
from spacesim.core.exceptions import (
    ConvergenceError,
    InvalidHierarchyError,
    UnsupportedOrbitError,
)
from spacesim.core.math_utils import angle_between, normalized
from spacesim.core.orbit import Orbit, OrbitPosition, sphere_of_influence
from spacesim.core.quaternion import Quaternion
from spacesim.core.state import (
    AccelerationState,
    IntegratorState,
    ObjectConfig,
    ObjectState,
    zero_state,
)
from spacesim.dynamics.atmosphere import AtmosphericModel, AtmosphericProperties
from spacesim.dynamics.integrator import create_integrator
from spacesim.dynamics.kepler import (
    calculate_rotation,
    create_kepler_solver,
    move_impacted_object,
)
from spacesim.dynamics.propulsion import RocketStage, RocketStages
from spacesim.guidance.finite_burn import FiniteBurnProgram, plan_finite_burn
from spacesim.guidance.lambert import create_gauss_solver
from spacesim.guidance.maneuver_planner import Maneuver
from spacesim.simulation.objects import (
    PhysicsObject,
    PlanetObject,
    PropagationMode,
    RocketObject,
    SatelliteObject,
    SimulationEvent,
    ThrustDirection,
)

logger = logging.getLogger(__name__)

_Z_AXIS = np.array([0.0, 0.0, 1.0])


class SimulationMode(Enum):
    """Global propagation policy."""
    HYBRID = 'hybrid'
    TWO_BODY = 'two_body'
    COWELL = 'cowell'


def _point_mass(mu: float, offset: np.ndarray) -> np.ndarray:
    """Acceleration towards a point mass at -offset."""
    distance = np.linalg.norm(offset)
    return -mu * offset / distance ** 3


def _segment_sphere_entry(start: np.ndarray, end: np.ndarray,
                          radius: float) -> Optional[float]:
    """
    Fraction of the segment start->end at which it enters a sphere.

    Returns None when the segment never goes below the surface.  A segment
    that starts on or below the surface counts only if it also ends below.
    """
    radius_sq = radius * radius
    c = float(np.dot(start, start)) - radius_sq
    if c <= 0.0:
        return 1.0 if float(np.dot(end, end)) < radius_sq else None

    d = end - start
    a = float(np.dot(d, d))
    if a == 0.0:
        return None
    b = 2.0 * float(np.dot(start, d))
    discriminant = b * b - 4.0 * a * c
    if discriminant < 0.0:
        return None
    t = (-b - np.sqrt(discriminant)) / (2.0 * a)
    if 0.0 <= t <= 1.0:
        return float(t)
    return None


class SimulationEngine:
    """
    Arena of physics objects advanced in fixed global steps.

    Parameters
    ----------
    config : dict, optional
        Engine settings, all optional:
            - 'dt'                          : float -- default step (s)
            - 'mode'                        : str   -- hybrid | two_body | cowell
            - 'kepler_solver'               : str   -- Kepler solver kind
            - 'gauss_solver'                : str   -- Lambert solver kind
            - 'integrator'                  : str   -- integrator kind
            - 'include_primary_chain'       : bool  -- ancestor third-body pull
            - 'sphere_of_influence_changes' : bool  -- automatic frame changes
            - 'record_telemetry'            : bool  -- per-step records
            - 'seed'                        : int   -- solver restart seed
            - 'max_reseeds'                 : int   -- solver restart budget
            - 'start_time'                  : float -- initial time (s)

    Attributes
    ----------
    objects : dict
        Arena of objects keyed by handle, in propagation order.
    current_time : float
        Simulation time (s).
    telemetry : list of dict
        Raw telemetry records, converted to a DataFrame on request.
    events : list of SimulationEvent
        Discrete events (maneuvers, burns, staging, impacts, frame changes,
        propagation failures).
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        config = config or {}
        self.config = config

        self.dt: float = float(config.get('dt', 10.0))
        if self.dt <= 0.0:
            raise ValueError(f"Time step must be positive, got {self.dt}")
        self.simulation_mode = SimulationMode(config.get('mode', 'hybrid'))
        self.include_primary_chain: bool = config.get('include_primary_chain', True)
        self.sphere_of_influence_changes: bool = config.get('sphere_of_influence_changes', True)
        self.record_telemetry: bool = config.get('record_telemetry', True)

        max_reseeds = config.get('max_reseeds', 10)
        self.rng = np.random.default_rng(config.get('seed', 0))
        self.kepler_solver = create_kepler_solver(
            config.get('kepler_solver', 'universal_variable'),
            rng=self.rng, max_reseeds=max_reseeds)
        self.gauss_solver = create_gauss_solver(
            config.get('gauss_solver', 'adaptive'), rng=self.rng, max_reseeds=max_reseeds)
        self.integrator = create_integrator(config.get('integrator', 'rk4'))

        self.current_time: float = float(config.get('start_time', 0.0))
        self.objects: Dict[int, PhysicsObject] = {}
        self.telemetry: List[Dict[str, Any]] = []
        self.events: List[SimulationEvent] = []

        self._root: Optional[int] = None
        self._next_handle = 0
        self._pending: List[PhysicsObject] = []
        self._burn_programs: Dict[int, FiniteBurnProgram] = {}
        self._stepping = False
        self._step_start: Dict[int, Tuple[Optional[int], ObjectState]] = {}
        self._step_count = 0

        logger.info("SimulationEngine created.  dt=%.3f s  mode=%s",
                    self.dt, self.simulation_mode.value)

    # =========================================================================
    # OBJECT FACTORIES
    # =========================================================================

    def add_object_of_reference(self, name: str, config: ObjectConfig,
                                atmospheric_model: Optional[AtmosphericModel] = None) -> int:
        """Create the root body; it stays at the origin and only rotates."""
        if self._root is not None:
            raise InvalidHierarchyError(
                f"Object of reference already exists ({self.objects[self._root].name})"
            )
        body = PlanetObject(name, config, zero_state(self.current_time), None, atmospheric_model)
        self._root = self._register(body)
        return self._root

    def add_planet_in_orbit(self, name: str, config: ObjectConfig, primary: int,
                            orbit: Optional[Orbit] = None,
                            state: Optional[ObjectState] = None,
                            true_anomaly: float = 0.0,
                            atmospheric_model: Optional[AtmosphericModel] = None) -> int:
        """Create a natural body orbiting *primary*; give an orbit or a state."""
        initial = self._initial_state(primary, orbit, state, true_anomaly)
        return self._register(PlanetObject(name, config, initial, primary, atmospheric_model))

    def add_satellite_in_orbit(self, name: str, config: ObjectConfig, primary: int,
                               orbit: Optional[Orbit] = None,
                               state: Optional[ObjectState] = None,
                               true_anomaly: float = 0.0,
                               atmospheric_properties: Optional[AtmosphericProperties] = None
                               ) -> int:
        """Create an unpowered body orbiting *primary*; give an orbit or a state."""
        initial = self._initial_state(primary, orbit, state, true_anomaly)
        return self._register(SatelliteObject(name, config, initial, primary,
                                              atmospheric_properties))

    def add_rocket(self, name: str, config: ObjectConfig, primary: int,
                   stages: RocketStages,
                   state: Optional[ObjectState] = None,
                   orbit: Optional[Orbit] = None,
                   true_anomaly: float = 0.0,
                   atmospheric_properties: Optional[AtmosphericProperties] = None) -> int:
        """
        Create a rocket around *primary*.

        The configured mass is replaced by the mass of the stage stack.  Use
        surface_state() for a rocket standing on a launch pad.
        """
        initial = self._initial_state(primary, orbit, state, true_anomaly)
        return self._register(RocketObject(name, config, initial, stages, primary,
                                           atmospheric_properties))

    def add_object(self, obj: PhysicsObject) -> int:
        """
        Insert an already built object.

        While a step is in progress the object receives its handle at once
        but joins the arena only when the step has finished.
        """
        if obj.primary is None:
            raise InvalidHierarchyError("Only add_object_of_reference may create a root.")
        return self._register(obj)

    def surface_state(self, primary: int, latitude: float, longitude: float,
                      altitude: float = 0.0) -> ObjectState:
        """
        Relative state of a point fixed to the surface of *primary*.

        Latitude and longitude (rad) are measured in the body-fixed frame
        whose z axis is the spin axis.  The velocity is the co-rotation
        velocity; the state is marked impacted when it lies on the surface.
        """
        body = self.get_object(primary)
        radius = body.config.radius + altitude
        local = radius * np.array([np.cos(latitude) * np.cos(longitude),
                                   np.cos(latitude) * np.sin(longitude),
                                   np.sin(latitude)])

        axis = body.config.axis_of_rotation
        tilt_axis = np.cross(_Z_AXIS, axis)
        if np.linalg.norm(tilt_axis) > 0.0:
            local = Quaternion.from_axis_angle(tilt_axis, angle_between(_Z_AXIS, axis)).rotate_vector(local)
        position = body.state.orientation.rotate_vector(local)
        velocity = np.cross(body.config.angular_velocity, position)

        return ObjectState(self.current_time, position, velocity, impacted=altitude <= 0.0)

    def _initial_state(self, primary: int, orbit: Optional[Orbit],
                       state: Optional[ObjectState], true_anomaly: float) -> ObjectState:
        if (orbit is None) == (state is None):
            raise ValueError("Give exactly one of an orbit or a state.")
        if state is not None:
            return state.replace(time=self.current_time)
        body = self.get_object(primary)
        orbit = replace(orbit, mu=body.config.standard_gravitational_parameter,
                        primary_radius=body.config.radius, primary=primary)
        position, velocity = orbit.state_at(true_anomaly)
        return ObjectState(self.current_time, position, velocity)

    def _register(self, obj: PhysicsObject) -> int:
        if obj.primary is not None:
            primary = self.get_object(obj.primary)
            if not isinstance(primary, PlanetObject):
                raise InvalidHierarchyError(
                    f"{primary.name} is a {primary.kind} and cannot be a primary"
                )

        obj.handle = self._next_handle
        self._next_handle += 1
        obj.rebase(self._osculating_orbit(obj))

        if self._stepping:
            self._pending.append(obj)
        else:
            self.objects[obj.handle] = obj

        primary_name = self.get_object(obj.primary).name if obj.primary is not None else '-'
        logger.info("Added %s '%s' (handle %d, primary %s)",
                    obj.kind, obj.name, obj.handle, primary_name)
        return obj.handle

    def _merge_pending(self) -> None:
        for obj in self._pending:
            self.objects[obj.handle] = obj
            logger.debug("Merged deferred object '%s' (handle %d)", obj.name, obj.handle)
        self._pending.clear()

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_object(self, handle: int) -> PhysicsObject:
        """
        Object for *handle*, including objects awaiting merge.

        Raises
        ------
        InvalidHierarchyError
            If the handle is unknown.
        """
        obj = self.objects.get(handle)
        if obj is not None:
            return obj
        for pending in self._pending:
            if pending.handle == handle:
                return pending
        raise InvalidHierarchyError(f"Unknown object handle {handle}")

    @property
    def object_of_reference(self) -> Optional[int]:
        return self._root

    @property
    def handles(self) -> List[int]:
        return list(self.objects)

    def state(self, handle: int) -> ObjectState:
        """State of *handle* relative to its primary."""
        return self.get_object(handle).state

    def absolute_state(self, handle: int) -> ObjectState:
        """State of *handle* relative to the object of reference."""
        obj = self.get_object(handle)
        state = obj.state
        visited = {handle}
        while obj.primary is not None:
            if obj.primary in visited:
                raise InvalidHierarchyError(f"Primary chain of handle {handle} forms a cycle")
            visited.add(obj.primary)
            obj = self.get_object(obj.primary)
            state = state.make_absolute(obj.state)
        return state

    def primary_of(self, handle: int) -> Optional[int]:
        return self.get_object(handle).primary

    def children_of(self, handle: int) -> List[int]:
        return [h for h, obj in self.objects.items() if obj.primary == handle]

    def has_impacted(self, handle: int) -> bool:
        return self.get_object(handle).has_impacted

    def mode(self, handle: int) -> PropagationMode:
        return self.get_object(handle).mode

    def orbit(self, handle: int) -> Optional[Orbit]:
        """Osculating orbit of *handle* now; None for the root or a rectilinear state."""
        return self._osculating_orbit(self.get_object(handle))

    def sphere_of_influence_of(self, handle: int) -> float:
        """Sphere-of-influence radius (m); infinite for the root."""
        return self._sphere_of_influence(self.get_object(handle))

    def _osculating_orbit(self, obj: PhysicsObject) -> Optional[Orbit]:
        if obj.primary is None:
            return None
        primary = self.get_object(obj.primary)
        try:
            return OrbitPosition.from_object_state(
                primary.config.standard_gravitational_parameter, obj.state,
                primary.config.radius, primary.handle).orbit
        except UnsupportedOrbitError:
            return None

    def _sphere_of_influence(self, body: PhysicsObject) -> float:
        if body.primary is None:
            return np.inf
        orbit = self._osculating_orbit(body)
        if orbit is None or not orbit.is_elliptical:
            return np.inf
        return sphere_of_influence(orbit.semi_major_axis, body.mass,
                                   self.get_object(body.primary).mass)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def schedule_maneuver(self, handle: int, time: float, delta_v) -> Maneuver:
        """Queue an impulsive velocity change on *handle* at *time*."""
        obj = self.get_object(handle)
        if obj.is_object_of_reference:
            raise ValueError("The object of reference cannot maneuver.")
        if time < self.current_time - MANEUVER_TIME_EPSILON:
            raise ValueError(
                f"Maneuver time {time:.3f} s is before the current time {self.current_time:.3f} s"
            )
        maneuver = Maneuver(time, delta_v)
        obj.schedule_maneuver(maneuver)
        logger.debug("%s: scheduled %r", obj.name, maneuver)
        return maneuver

    def clear_maneuvers(self, handle: int) -> None:
        self.get_object(handle).clear_maneuvers()

    def _rocket(self, handle: int, command: str) -> Optional[RocketObject]:
        obj = self.get_object(handle)
        if not isinstance(obj, RocketObject):
            logger.warning("%s ignored: %s is not a rocket", command, obj.name)
            return None
        return obj

    def _lift_off(self, rocket: RocketObject, time: float) -> None:
        if rocket.state.impacted:
            rocket.state = rocket.state.replace(impacted=False)
            rocket.rebase(self._osculating_orbit(rocket))
            self._record_event(time, 'liftoff', rocket)

    def start_engine(self, handle: int) -> bool:
        """Ignite the firing stage; a rocket on the ground lifts off."""
        rocket = self._rocket(handle, 'start_engine')
        if rocket is None:
            return False
        if not rocket.stages.current.has_engines:
            logger.warning("start_engine ignored: %s has no engines on %s",
                           rocket.name, rocket.stages.current.name)
            return False
        rocket.engine_running = True
        self._lift_off(rocket, self.current_time)
        logger.info("%s: engine started (%s, %.0f N)", rocket.name,
                    rocket.stages.current.name, rocket.stages.current.total_thrust)
        return True

    def stop_engine(self, handle: int) -> bool:
        rocket = self._rocket(handle, 'stop_engine')
        if rocket is None:
            return False
        rocket.engine_running = False
        logger.info("%s: engine stopped", rocket.name)
        return True

    def set_thrust_direction(self, handle: int, direction: ThrustDirection) -> bool:
        rocket = self._rocket(handle, 'set_thrust_direction')
        if rocket is None:
            return False
        rocket.set_thrust_direction(direction)
        return True

    def execute_maneuver(self, handle: int, time: float,
                         delta_v) -> Optional[FiniteBurnProgram]:
        """
        Fly a velocity change as a finite burn of the rocket's firing stage.

        The burn is centred on *time*, starts no earlier than now, and
        replaces any burn already planned for the rocket.  Returns the
        program, or None when *handle* is not a rocket.
        """
        rocket = self._rocket(handle, 'execute_maneuver')
        if rocket is None:
            return None
        if time < self.current_time - MANEUVER_TIME_EPSILON:
            raise ValueError(
                f"Burn time {time:.3f} s is before the current time {self.current_time:.3f} s"
            )
        stage = rocket.stages.current
        profile = plan_finite_burn(delta_v, rocket.mass, stage.total_thrust,
                                   stage.effective_exhaust_velocity, time)
        if profile.start_time < self.current_time:
            profile = replace(profile, start_time=self.current_time)

        program = FiniteBurnProgram(profile)
        self._burn_programs[handle] = program
        logger.info("%s: %.3f m/s burn planned at t=%.3f s (%.2f s, %.1f kg)",
                    rocket.name, profile.delta_v, profile.start_time,
                    profile.duration, profile.propellant_mass)
        return program

    def burn_program(self, handle: int) -> Optional[FiniteBurnProgram]:
        """Burn still being flown (or waiting to start) by *handle*."""
        return self._burn_programs.get(handle)

    def _update_burn_programs(self, time: float, time_step: float) -> None:
        for handle, program in list(self._burn_programs.items()):
            rocket = self.get_object(handle)
            if program.poll(rocket):
                del self._burn_programs[handle]
                self._record_event(time, 'burn_complete', rocket,
                                   f"{program.applied_delta_v:.3f} m/s")
                continue
            if time_step > 0.0 and program.command(rocket, time, time_step):
                self._lift_off(rocket, time)
                self._record_event(time, 'burn_start', rocket,
                                   f"{program.profile.delta_v:.3f} m/s")

    # =========================================================================
    # MAIN STEP FUNCTION
    # =========================================================================

    def step(self, dt: Optional[float] = None) -> None:
        """
        Advance every object by one global step.

        Parameters
        ----------
        dt : float, optional
            Step size (s); defaults to the configured dt.
        """
        dt = self.dt if dt is None else dt
        if dt <= 0.0:
            raise ValueError(f"Time step must be positive, got {dt}")

        start = self.current_time
        end = start + dt
        self._step_start = {h: (obj.primary, obj.state) for h, obj in self.objects.items()}

        self._stepping = True
        try:
            self._apply_due_maneuvers(start)
            for sub_start, sub_end in self._substeps(start, end):
                self._update_burn_programs(sub_start, sub_end - sub_start)
                self._advance(sub_start, sub_end, end)
                self._apply_due_maneuvers(sub_end)
            self._update_burn_programs(end, 0.0)
            if self.sphere_of_influence_changes:
                self._update_spheres_of_influence()
        finally:
            self._stepping = False

        self._merge_pending()
        self._step_count += 1
        if self.record_telemetry:
            self._log_telemetry()

    def _substeps(self, start: float, end: float) -> List[Tuple[float, float]]:
        candidates = {m.time for obj in self.objects.values() for m in obj.maneuvers}
        candidates.update(p.profile.start_time for p in self._burn_programs.values()
                          if not p.started)
        epochs = sorted(t for t in candidates
                        if start + MANEUVER_TIME_EPSILON < t < end - MANEUVER_TIME_EPSILON)
        points = [start] + epochs + [end]
        return list(zip(points[:-1], points[1:]))

    def _select_mode(self, obj: PhysicsObject, step_end: float) -> PropagationMode:
        if obj.state.impacted:
            return PropagationMode.IMPACTED
        if self.simulation_mode is SimulationMode.COWELL:
            return PropagationMode.PERTURBED
        if self.simulation_mode is SimulationMode.TWO_BODY:
            return PropagationMode.UNPERTURBED
        if (obj.is_thrusting or obj.has_maneuver_before(step_end)
                or self._drag_applies(obj, obj.state)):
            return PropagationMode.PERTURBED
        return PropagationMode.UNPERTURBED

    def _advance(self, start: float, end: float, step_end: float) -> None:
        dt = end - start
        snapshot = {h: obj.state for h, obj in self.objects.items()}
        positions = self._absolute_positions(snapshot)

        for obj in self.objects.values():
            if obj.is_object_of_reference:
                obj.state = obj.state.replace(
                    time=end,
                    orientation=calculate_rotation(obj.config, obj.state.orientation, dt))
                continue

            previous_mode = obj.mode
            obj.mode = self._select_mode(obj, step_end)
            if obj.mode is not previous_mode:
                logger.debug("%s: %s -> %s", obj.name, previous_mode.value, obj.mode.value)
            thrusting = obj.mode is PropagationMode.PERTURBED and obj.is_thrusting

            try:
                next_state = self._propagate(obj, start, end, positions)
            except (ConvergenceError, UnsupportedOrbitError, ValueError,
                    FloatingPointError) as exc:
                self._propagation_failed(obj, end, str(exc))
                continue
            if not (np.all(np.isfinite(next_state.position))
                    and np.all(np.isfinite(next_state.velocity))):
                self._propagation_failed(obj, end, "non-finite state")
                continue

            obj.state = next_state
            if obj.mode is PropagationMode.PERTURBED:
                obj.rebase(self._osculating_orbit(obj))
            if thrusting:
                separated = obj.after_impulse(dt)
                if separated is not None:
                    self._separate_stage(obj, separated)

        self.current_time = end

    def _propagate(self, obj: PhysicsObject, start: float, end: float,
                   positions: Dict[int, np.ndarray]) -> ObjectState:
        primary = self.objects[obj.primary]

        if obj.mode is PropagationMode.IMPACTED:
            return move_impacted_object(primary.config, obj.state, end - start)

        mu = primary.config.standard_gravitational_parameter
        if obj.mode is PropagationMode.UNPERTURBED:
            reference = obj.reference_state
            return self.kepler_solver.solve(mu, reference, end - reference.time,
                                            obj.config, primary.config)

        acceleration = self._acceleration_function(obj, primary, positions)
        result = self.integrator.solve(primary.config, obj.config, obj.mass, obj.state,
                                       start, end - start, acceleration)
        return result.state

    def _propagation_failed(self, obj: PhysicsObject, time: float, reason: str) -> None:
        logger.warning("%s: propagation failed at t=%.3f s, state left at t=%.3f s (%s)",
                       obj.name, time, obj.state.time, reason)
        self._record_event(time, 'propagation_failed', obj, reason)

    # =========================================================================
    # FORCES
    # =========================================================================

    def _absolute_positions(self, states: Dict[int, ObjectState]) -> Dict[int, np.ndarray]:
        positions: Dict[int, np.ndarray] = {}

        def resolve(handle: int, chain: Tuple[int, ...]) -> np.ndarray:
            if handle in positions:
                return positions[handle]
            if handle in chain:
                raise InvalidHierarchyError(f"Primary chain of handle {handle} forms a cycle")
            primary = self.objects[handle].primary
            position = np.asarray(states[handle].position)
            if primary is not None:
                position = position + resolve(primary, chain + (handle,))
            positions[handle] = position
            return position

        for handle in states:
            resolve(handle, ())
        return positions

    def _ancestors(self, body: PhysicsObject,
                   positions: Dict[int, np.ndarray]) -> List[Tuple[float, np.ndarray]]:
        """(mu, absolute position) of every body above *body* in the hierarchy."""
        ancestors = []
        while body.primary is not None:
            body = self.objects[body.primary]
            ancestors.append((body.config.standard_gravitational_parameter,
                              positions[body.handle]))
        return ancestors

    def _drag_applies(self, obj: PhysicsObject, state: ObjectState) -> bool:
        if obj.atmospheric_properties is None or obj.primary is None:
            return False
        primary = self.get_object(obj.primary)
        return primary.atmospheric_model.inside(primary.config, state)

    def _acceleration_function(self, obj: PhysicsObject, primary: PlanetObject,
                               positions: Dict[int, np.ndarray]):
        """
        Acceleration of *obj* relative to its primary.

        Gravity of the primary, plus the differential pull of every body
        above the primary (the primary itself falls towards them too), plus
        thrust and drag on *obj*.
        """
        mu = primary.config.standard_gravitational_parameter
        primary_position = positions[primary.handle]
        perturbers = self._ancestors(primary, positions) if self.include_primary_chain else []

        def acceleration(context: IntegratorState, state: ObjectState) -> AccelerationState:
            a = _point_mass(mu, state.position)
            absolute = primary_position + state.position
            for body_mu, body_position in perturbers:
                a = a + (_point_mass(body_mu, absolute - body_position)
                         - _point_mass(body_mu, primary_position - body_position))

            mass_rate = 0.0
            if isinstance(obj, RocketObject):
                thrust, mass_rate = obj.thrust_acceleration(state, context.mass)
                a = a + thrust
            if context.mass > 0.0 and self._drag_applies(obj, state):
                drag = primary.atmospheric_model.drag(primary.config,
                                                      obj.atmospheric_properties, state)
                a = a + drag / context.mass
            return AccelerationState(a, mass_rate)

        return acceleration

    # =========================================================================
    # DISCRETE EVENTS
    # =========================================================================

    def _record_event(self, time: float, kind: str, obj: PhysicsObject, detail: str = '') -> None:
        self.events.append(SimulationEvent(time, kind, obj.handle, obj.name, detail))

    def _apply_due_maneuvers(self, time: float) -> None:
        for obj in self.objects.values():
            for maneuver in obj.pop_due_maneuvers(time):
                if obj.state.impacted:
                    logger.warning("%s: maneuver due at t=%.3f s dropped, object has impacted",
                                   obj.name, maneuver.time)
                    continue
                obj.apply_maneuver(maneuver)
                obj.rebase(self._osculating_orbit(obj))
                self._record_event(time, 'maneuver', obj, f"dv={maneuver.magnitude:.3f} m/s")
                logger.info("%s: maneuver at t=%.3f s, dv=%.3f m/s",
                            obj.name, time, maneuver.magnitude)

    def _separate_stage(self, rocket: RocketObject, stage: RocketStage) -> None:
        config = ObjectConfig(mass=stage.mass, radius=rocket.config.radius,
                              axis_of_rotation=rocket.config.axis_of_rotation)
        derelict = SatelliteObject(f"{rocket.name} {stage.name}", config, rocket.state,
                                   rocket.primary, rocket.atmospheric_properties)
        handle = self.add_object(derelict)
        self._record_event(rocket.state.time, 'staging', rocket,
                           f"{stage.name} separated as handle {handle}")

    def _update_spheres_of_influence(self) -> None:
        bodies = [obj for obj in self.objects.values() if isinstance(obj, PlanetObject)]
        radii = {body.handle: self._sphere_of_influence(body) for body in bodies}

        for obj in list(self.objects.values()):
            if isinstance(obj, PlanetObject) or obj.state.impacted:
                continue
            primary = self.objects[obj.primary]
            new_primary = None

            for body in bodies:
                if body.primary != obj.primary:
                    continue
                if obj.state.distance(body.state) < radii[body.handle]:
                    new_primary = body
                    break

            if new_primary is None and obj.state.r_mag > radii[primary.handle]:
                new_primary = self.objects[primary.primary]

            if new_primary is None:
                continue

            obj.state = obj.state.swap_reference_frame(self.absolute_state(primary.handle),
                                                       self.absolute_state(new_primary.handle))
            obj.primary = new_primary.handle
            obj.rebase(self._osculating_orbit(obj))
            self._record_event(self.current_time, 'soi_change', obj,
                               f"{primary.name} -> {new_primary.name}")
            logger.info("%s: sphere of influence change %s -> %s",
                        obj.name, primary.name, new_primary.name)

    def check_impacts(self) -> List[int]:
        """
        Detect objects that passed below their primary's surface last step.

        Impacted objects are moved to the point where their path entered the
        surface, co-rotate with the primary from then on, and rockets shut
        their engines down.

        Returns
        -------
        list of int
            Handles that impacted.
        """
        impacted = []
        for handle, obj in self.objects.items():
            if obj.is_object_of_reference or obj.state.impacted:
                continue
            primary = self.objects[obj.primary]
            radius = primary.config.radius
            if radius <= 0.0:
                continue

            start = obj.state.position
            previous = self._step_start.get(handle)
            if previous is not None and previous[0] == obj.primary:
                start = previous[1].position

            fraction = _segment_sphere_entry(start, obj.state.position, radius)
            if fraction is None:
                continue

            contact = normalized(start + fraction * (obj.state.position - start)) * radius
            obj.state = obj.state.replace(
                position=contact,
                velocity=np.cross(primary.config.angular_velocity, contact),
                impacted=True,
            )
            obj.mode = PropagationMode.IMPACTED
            obj.rebase(None)
            if isinstance(obj, RocketObject):
                obj.engine_running = False
            self._record_event(self.current_time, 'impact', obj, f"on {primary.name}")
            logger.info("%s: impact on %s at t=%.3f s", obj.name, primary.name, self.current_time)
            impacted.append(handle)
        return impacted

    # =========================================================================
    # FULL SIMULATION RUN
    # =========================================================================

    def run(self, duration: float, dt: Optional[float] = None) -> pd.DataFrame:
        """
        Step the simulation for *duration* seconds, checking impacts after
        every step.  The last step is shortened to land on the end time.

        Returns
        -------
        pd.DataFrame
            Telemetry recorded so far.
        """
        dt = self.dt if dt is None else dt
        end = self.current_time + duration
        wall_start = walltime.time()
        steps = 0

        logger.info("Simulation run started.  t=%.1f s -> %.1f s  dt=%.3f s  objects=%d",
                    self.current_time, end, dt, len(self.objects))
        if self.record_telemetry and not self.telemetry:
            self._log_telemetry()

        while self.current_time < end - MANEUVER_TIME_EPSILON:
            self.step(min(dt, end - self.current_time))
            self.check_impacts()
            steps += 1

        logger.info("Simulation complete.  %d steps in %.2f s wall time.  Sim time: %.1f s",
                    steps, walltime.time() - wall_start, self.current_time)
        return self.get_telemetry()

    # =========================================================================
    # TELEMETRY
    # =========================================================================

    def _log_telemetry(self) -> None:
        for handle, obj in self.objects.items():
            state = obj.state
            primary = self.objects[obj.primary] if obj.primary is not None else None
            altitude = state.r_mag - primary.config.radius if primary is not None else 0.0
            self.telemetry.append({
                'time': self.current_time,
                'handle': handle,
                'name': obj.name,
                'primary': obj.primary if obj.primary is not None else -1,
                'mode': obj.mode.value,
                'pos_x': state.position[0],
                'pos_y': state.position[1],
                'pos_z': state.position[2],
                'vel_x': state.velocity[0],
                'vel_y': state.velocity[1],
                'vel_z': state.velocity[2],
                'quat_w': state.orientation.w,
                'quat_x': state.orientation.x,
                'quat_y': state.orientation.y,
                'quat_z': state.orientation.z,
                'altitude_m': altitude,
                'velocity_m_s': state.v_mag,
                'mass': obj.mass,
                'used_delta_v': obj.used_delta_v,
                'impacted': state.impacted,
            })

    def get_telemetry(self, handle: Optional[int] = None) -> pd.DataFrame:
        """
        Telemetry records as a DataFrame indexed by time.

        Positions and velocities are relative to each object's primary at
        the time of the record.  Pass *handle* to select one object.
        """
        if not self.telemetry:
            logger.warning("No telemetry recorded.")
            return pd.DataFrame()

        df = pd.DataFrame(self.telemetry)
        if handle is not None:
            df = df[df['handle'] == handle]
        df.set_index('time', inplace=True)
        return df

    def save_telemetry(self, filepath: str) -> None:
        df = self.get_telemetry()
        df.to_csv(filepath)
        logger.info("Telemetry saved to %s  (%d records)", filepath, len(df))

    def get_events(self) -> pd.DataFrame:
        """Recorded events (time, kind, handle, name, detail)."""
        columns = ['time', 'kind', 'handle', 'name', 'detail']
        return pd.DataFrame([[getattr(e, c) for c in columns] for e in self.events],
                            columns=columns)

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """
        Summary of the run so far.

        Returns
        -------
        dict
            total_time         : float -- simulation time (s)
            steps              : int   -- global steps taken
            objects            : int   -- objects in the arena
            impacted           : list  -- names of impacted objects
            total_delta_v      : float -- delta-V used by all objects (m/s)
            events             : int   -- events recorded
            propagation_failed : int   -- failed object propagations
        """
        summary = {
            'total_time': self.current_time,
            'steps': self._step_count,
            'objects': len(self.objects),
            'impacted': [obj.name for obj in self.objects.values() if obj.has_impacted],
            'total_delta_v': sum(obj.used_delta_v for obj in self.objects.values()),
            'events': len(self.events),
            'propagation_failed': sum(1 for e in self.events if e.kind == 'propagation_failed'),
        }

        logger.info("Simulation Summary:")
        for key, value in summary.items():
            if isinstance(value, float):
                logger.info("  %-20s: %.4f", key, value)
            else:
                logger.info("  %-20s: %s", key, value)
        return summary

    def __repr__(self) -> str:
        return (f"SimulationEngine(t={self.current_time:.1f}s, objects={len(self.objects)}, "
                f"mode={self.simulation_mode.value}, records={len(self.telemetry)})")
