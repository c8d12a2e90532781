"""
===============================================================================
SPACESIM - Object State Value Types
===============================================================================
Value types passed between the solvers and the simulation engine.

    ObjectConfig       -- physical configuration of a body (mass, radius, spin)
    ObjectState        -- time-stamped kinematic snapshot, relative to the
                          body's current primary
    IntegratorState    -- context handed to an acceleration function
    AccelerationState  -- what an acceleration function returns

ObjectState is frozen: propagation never edits a state, it produces a new
one. Its vectors are stored as read-only numpy arrays so a snapshot held as a
reference checkpoint cannot be corrupted through an alias.
===============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np

from spacesim.core.constants import GRAVITATIONAL_CONSTANT, TWO_PI
from spacesim.core.math_utils import normalized
from spacesim.core.quaternion import Quaternion


def _frozen_vector(value) -> np.ndarray:
    v = np.array(value, dtype=np.float64).reshape(3)
    v.setflags(write=False)
    return v


def _zero_vector() -> np.ndarray:
    return _frozen_vector((0.0, 0.0, 0.0))


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True, eq=False)
class ObjectConfig:
    """
    Physical configuration of a body.

    Attributes
    ----------
    mass : float
        Mass (kg).
    radius : float
        Radius (m); used for impact detection and surface co-rotation.
    rotational_period : float
        Sidereal rotation period (s).  0 means the body does not spin
        rigidly and its attitude is driven by torques instead.
    axis_of_rotation : np.ndarray
        Spin axis in the inertial frame (unit vector, default +Z).
    moment_of_inertia : float, optional
        Scalar moment of inertia (kg m^2).  Defaults to a solid sphere,
        0.4 * m * r^2.
    """
    mass: float
    radius: float
    rotational_period: float = 0.0
    axis_of_rotation: np.ndarray = field(default_factory=lambda: _frozen_vector((0.0, 0.0, 1.0)))
    moment_of_inertia: Optional[float] = None

    def __post_init__(self):
        if self.mass < 0.0:
            raise ValueError(f"Mass must be non-negative, got {self.mass}")
        if self.radius < 0.0:
            raise ValueError(f"Radius must be non-negative, got {self.radius}")
        object.__setattr__(self, 'axis_of_rotation',
                           _frozen_vector(normalized(self.axis_of_rotation)))
        if self.moment_of_inertia is None:
            object.__setattr__(self, 'moment_of_inertia',
                               0.4 * self.mass * self.radius ** 2)

    @property
    def standard_gravitational_parameter(self) -> float:
        """mu = G * M (m^3/s^2)."""
        return GRAVITATIONAL_CONSTANT * self.mass

    @property
    def rotational_speed(self) -> float:
        """Spin rate (rad/s); 0 when the body does not spin."""
        if self.rotational_period == 0.0:
            return 0.0
        return TWO_PI / self.rotational_period

    @property
    def angular_velocity(self) -> np.ndarray:
        """Spin angular velocity vector (rad/s)."""
        return self.rotational_speed * self.axis_of_rotation

    def with_mass(self, mass: float) -> 'ObjectConfig':
        return replace(self, mass=mass, moment_of_inertia=None)


# =============================================================================
# KINEMATIC STATE
# =============================================================================

@dataclass(frozen=True, eq=False)
class ObjectState:
    """
    Kinematic snapshot of a body at a single instant.

    Position and velocity are expressed in an inertial frame centred on the
    body's current primary; adding the primary's own (absolute) state gives
    the absolute state.

    Attributes
    ----------
    time : float
        Simulated time (s).
    position : np.ndarray
        Position relative to the primary body (m).
    velocity : np.ndarray
        Velocity relative to the primary body (m/s).
    orientation : Quaternion
        Body-to-inertial attitude.
    angular_momentum : np.ndarray
        Angular momentum about the centre of mass (kg m^2/s).
    impacted : bool
        True once the body rests on its primary's surface.
    """
    time: float
    position: np.ndarray
    velocity: np.ndarray
    orientation: Quaternion = field(default_factory=Quaternion.identity)
    angular_momentum: np.ndarray = field(default_factory=_zero_vector)
    impacted: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'time', float(self.time))
        object.__setattr__(self, 'position', _frozen_vector(self.position))
        object.__setattr__(self, 'velocity', _frozen_vector(self.velocity))
        object.__setattr__(self, 'angular_momentum', _frozen_vector(self.angular_momentum))

    @property
    def r_mag(self) -> float:
        """Distance from the primary body's centre (m)."""
        return float(np.linalg.norm(self.position))

    @property
    def v_mag(self) -> float:
        """Speed relative to the primary body (m/s)."""
        return float(np.linalg.norm(self.velocity))

    # -------------------------------------------------------------------------
    # Local orbital directions
    # -------------------------------------------------------------------------

    @property
    def prograde(self) -> np.ndarray:
        return normalized(self.velocity)

    @property
    def retrograde(self) -> np.ndarray:
        return -self.prograde

    @property
    def normal(self) -> np.ndarray:
        """Orbit normal, along r x v."""
        return normalized(np.cross(self.position, self.velocity))

    @property
    def radial(self) -> np.ndarray:
        """In-plane direction perpendicular to prograde, pointing outwards."""
        return normalized(np.cross(self.velocity, self.normal))

    # -------------------------------------------------------------------------
    # Functional updates
    # -------------------------------------------------------------------------

    def replace(self, **changes) -> 'ObjectState':
        """Copy of this state with the given fields replaced."""
        return replace(self, **changes)

    def with_delta_velocity(self, delta_v: np.ndarray) -> 'ObjectState':
        return replace(self, velocity=self.velocity + np.asarray(delta_v))

    def make_relative(self, primary_state: 'ObjectState') -> 'ObjectState':
        """Express an absolute state relative to *primary_state*."""
        return replace(self,
                       position=self.position - primary_state.position,
                       velocity=self.velocity - primary_state.velocity)

    def make_absolute(self, primary_state: 'ObjectState') -> 'ObjectState':
        """Express a state relative to *primary_state* in absolute terms."""
        return replace(self,
                       position=self.position + primary_state.position,
                       velocity=self.velocity + primary_state.velocity)

    def swap_reference_frame(self, current_primary: 'ObjectState',
                             new_primary: 'ObjectState') -> 'ObjectState':
        """Re-express a relative state against a different primary."""
        return self.make_absolute(current_primary).make_relative(new_primary)

    def distance(self, other: 'ObjectState') -> float:
        return float(np.linalg.norm(self.position - other.position))

    def __repr__(self) -> str:
        return (f"ObjectState(t={self.time:.3f}, r={self.r_mag:.3f} m, "
                f"v={self.v_mag:.3f} m/s, impacted={self.impacted})")


def zero_state(time: float = 0.0) -> ObjectState:
    """State of a body resting at the origin of its own frame."""
    return ObjectState(time=time, position=np.zeros(3), velocity=np.zeros(3))


# =============================================================================
# INTEGRATOR CONTEXT
# =============================================================================

@dataclass(frozen=True)
class IntegratorState:
    """
    Context passed to an acceleration function at each integrator stage.

    Attributes
    ----------
    mass : float
        Mass of the integrated body at this stage (kg).
    total_time : float
        Global simulation time at this stage (s).
    time_step : float
        Offset of this stage from the start of the step (s).
    """
    mass: float
    total_time: float
    time_step: float


@dataclass(frozen=True, eq=False)
class AccelerationState:
    """
    Output of an acceleration function.

    Attributes
    ----------
    acceleration : np.ndarray
        Total acceleration relative to the primary body (m/s^2).
    mass_rate : float
        Mass change per second (kg/s); negative while fuel burns.
    torque : np.ndarray
        External torque about the centre of mass (N m).
    """
    acceleration: np.ndarray
    mass_rate: float = 0.0
    torque: np.ndarray = field(default_factory=_zero_vector)

    def __post_init__(self):
        object.__setattr__(self, 'acceleration', _frozen_vector(self.acceleration))
        object.__setattr__(self, 'torque', _frozen_vector(self.torque))
