"""
===============================================================================
SPACESIM - Numeric Integrator (Cowell's Method)
===============================================================================
Classical 4th-order Runge-Kutta integration of a body's relative state under
an arbitrary acceleration function.  Used whenever forces beyond pure
two-body gravity act: thrust, drag, third-body perturbations.

Equations of motion (relative to the primary body):

    dr/dt = v
    dv/dt = a(t, r, v, m)
    dm/dt = mdot(t, r, v, m)
    dL/dt = tau(t, r, v, m)

The acceleration function is evaluated at offsets 0, dt/2, dt/2 and dt; each
evaluation starts from the initial state advanced along the previous stage's
derivative.  The four samples are combined with weights 1/6, 2/6, 2/6, 1/6.
The mass rate only sets the mass seen by the later samples; the propellant
itself is booked once per step by the rocket's stages.

Attitude: a body with a rotational period spins rigidly about its axis; any
other body integrates its angular momentum from the torque samples and turns
at omega = L / I.

References
----------
    [1] Vallado, "Fundamentals of Astrodynamics and Applications", Sec. 8.6.
    [2] Montenbruck & Gill, "Satellite Orbits", Sec. 4.1.

===============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from spacesim.core.state import (
    AccelerationState,
    IntegratorState,
    ObjectConfig,
    ObjectState,
)
from spacesim.dynamics.kepler import calculate_rotation, move_impacted_object

logger = logging.getLogger(__name__)

AccelerationFunction = Callable[[IntegratorState, ObjectState], AccelerationState]


@dataclass(frozen=True)
class IntegrationResult:
    """
    One integrator step.

    The mass rate returned by the acceleration function only sets the mass
    seen by the intermediate stages. Propellant is booked by the rocket's
    stages after the step, so no mass change is reported here.

    Attributes
    ----------
    state : ObjectState
        Relative state at the end of the step.
    """
    state: ObjectState


@dataclass(frozen=True)
class _Derivative:
    velocity: np.ndarray
    acceleration: np.ndarray
    mass_rate: float
    torque: np.ndarray


_ZERO_DERIVATIVE = _Derivative(np.zeros(3), np.zeros(3), 0.0, np.zeros(3))


class RungeKutta4Integrator:
    """Fixed-step classical Runge-Kutta integrator."""

    def _evaluate(self, initial: ObjectState, mass: float, total_time: float,
                  offset: float, derivative: _Derivative,
                  acceleration_function: AccelerationFunction) -> _Derivative:
        state = initial.replace(
            time=initial.time + offset,
            position=initial.position + derivative.velocity * offset,
            velocity=initial.velocity + derivative.acceleration * offset,
        )
        context = IntegratorState(mass=mass + derivative.mass_rate * offset,
                                  total_time=total_time + offset,
                                  time_step=offset)
        result = acceleration_function(context, state)
        return _Derivative(state.velocity, result.acceleration,
                           result.mass_rate, result.torque)

    def solve(self, primary_config: Optional[ObjectConfig], config: ObjectConfig,
              mass: float, state: ObjectState, total_time: float, time_step: float,
              acceleration_function: AccelerationFunction) -> IntegrationResult:
        """
        Advance a relative state by one step.

        Parameters
        ----------
        primary_config : ObjectConfig, optional
            Configuration of the primary body (surface co-rotation).
        config : ObjectConfig
            Configuration of the integrated body (spin, inertia).
        mass : float
            Current mass of the integrated body (kg).
        state : ObjectState
            Relative state at the start of the step.
        total_time : float
            Global simulation time at the start of the step (s).
        time_step : float
            Step size (s).
        acceleration_function : callable
            ``(IntegratorState, ObjectState) -> AccelerationState``.

        Returns
        -------
        IntegrationResult
        """
        if state.impacted:
            return IntegrationResult(move_impacted_object(primary_config, state, time_step))

        dt = time_step
        k1 = self._evaluate(state, mass, total_time, 0.0, _ZERO_DERIVATIVE,
                            acceleration_function)
        k2 = self._evaluate(state, mass, total_time, 0.5 * dt, k1, acceleration_function)
        k3 = self._evaluate(state, mass, total_time, 0.5 * dt, k2, acceleration_function)
        k4 = self._evaluate(state, mass, total_time, dt, k3, acceleration_function)

        velocity = (k1.velocity + 2.0 * (k2.velocity + k3.velocity) + k4.velocity) / 6.0
        acceleration = (k1.acceleration + 2.0 * (k2.acceleration + k3.acceleration)
                        + k4.acceleration) / 6.0
        torque = (k1.torque + 2.0 * (k2.torque + k3.torque) + k4.torque) / 6.0

        angular_momentum = state.angular_momentum + torque * dt
        if config.rotational_period != 0.0:
            orientation = calculate_rotation(config, state.orientation, dt)
        elif config.moment_of_inertia:
            mean_momentum = 0.5 * (state.angular_momentum + angular_momentum)
            orientation = state.orientation.propagate(
                mean_momentum / config.moment_of_inertia, dt)
        else:
            orientation = state.orientation

        next_state = state.replace(
            time=state.time + dt,
            position=state.position + velocity * dt,
            velocity=state.velocity + acceleration * dt,
            orientation=orientation,
            angular_momentum=angular_momentum,
        )
        return IntegrationResult(next_state)


# =============================================================================
# INTEGRATOR SELECTION
# =============================================================================

class IntegratorKind(Enum):
    """Numeric integrators selectable from configuration."""
    RK4 = 'rk4'


def create_integrator(kind) -> RungeKutta4Integrator:
    """Build the integrator named by *kind* (enum member or its value)."""
    kind = IntegratorKind(kind)
    if kind is IntegratorKind.RK4:
        return RungeKutta4Integrator()
    raise ValueError(f"Unknown integrator: {kind}")
