"""
===============================================================================
Rocket Propulsion Model
===============================================================================
Engines, stages and staging bookkeeping for rocket objects.

Physics modeled:
    - Mass flow:  mdot = F / (g0 * Isp)
    - Exhaust:    v_e  = Isp * g0
    - Delta-V:    dv   = v_e * ln(m_before / m_after)  (Tsiolkovsky)
    - Staging:    the exhausted stage is dropped whole; the next stage's
                  engines take over

Stages are immutable.  Burning fuel returns a new stage, staging returns the
separated stage together with the remaining stack, so a rocket's propulsion
state is replaced wholesale every step.
===============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple

import numpy as np

from spacesim.core.constants import STANDARD_GRAVITY

# Standard gravity for Isp calculations
G0 = STANDARD_GRAVITY  # m/s^2


def tsiolkovsky_delta_v(isp: float, m0: float, mf: float) -> float:
    """
    Ideal rocket equation.

    Args:
        isp: Specific impulse (s)
        m0: Mass before the burn (kg)
        mf: Mass after the burn (kg)

    Returns:
        Delta-V in m/s

    Raises:
        ValueError: If masses are non-positive or mf > m0
    """
    if m0 <= 0.0 or mf <= 0.0:
        raise ValueError("Masses must be positive.")
    if mf > m0:
        raise ValueError("Final mass cannot exceed initial mass.")
    return isp * G0 * np.log(m0 / mf)


@dataclass(frozen=True)
class RocketEngine:
    """
    Single rocket engine.

    Attributes:
        name: Engine identifier
        thrust: Vacuum thrust (N)
        specific_impulse: Vacuum specific impulse (s)
    """
    name: str
    thrust: float
    specific_impulse: float

    def __post_init__(self):
        if self.thrust < 0.0:
            raise ValueError(f"Engine thrust must be non-negative, got {self.thrust}")
        if self.specific_impulse <= 0.0:
            raise ValueError(f"Specific impulse must be positive, got {self.specific_impulse}")

    @property
    def mass_flow_rate(self) -> float:
        """Propellant mass flow rate at full thrust (kg/s)."""
        return self.thrust / (G0 * self.specific_impulse)

    @property
    def effective_exhaust_velocity(self) -> float:
        """Effective exhaust velocity Isp * g0 (m/s)."""
        return self.specific_impulse * G0

    def delta_velocity(self, mass_before: float, mass_after: float) -> float:
        """Delta-V (m/s) produced while the mass drops from before to after."""
        return tsiolkovsky_delta_v(self.specific_impulse, mass_before, mass_after)


@dataclass(frozen=True)
class RocketStage:
    """
    One stage of a rocket.

    Attributes:
        name: Stage identifier
        engines: Engines firing while this stage is active
        dry_mass: Structure and engine mass without propellant (kg)
        fuel_mass: Initial propellant mass (kg)
        fuel_mass_remaining: Propellant still on board (kg); defaults to full
    """
    name: str
    engines: Tuple[RocketEngine, ...] = ()
    dry_mass: float = 0.0
    fuel_mass: float = 0.0
    fuel_mass_remaining: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'engines', tuple(self.engines))
        if self.dry_mass < 0.0 or self.fuel_mass < 0.0:
            raise ValueError(f"Stage '{self.name}' masses must be non-negative")
        if self.fuel_mass_remaining is None:
            object.__setattr__(self, 'fuel_mass_remaining', self.fuel_mass)
        if not 0.0 <= self.fuel_mass_remaining <= self.fuel_mass:
            raise ValueError(
                f"Stage '{self.name}' remaining fuel {self.fuel_mass_remaining} "
                f"outside [0, {self.fuel_mass}]"
            )

    # ------------------------------------------------------------------ #
    @classmethod
    def from_burn_time(cls, name: str, number_of_engines: int, thrust: float,
                       specific_impulse: float, non_engine_dry_mass: float,
                       engine_mass: float, burn_time: float) -> 'RocketStage':
        """
        Size a stage so that its engines burn for *burn_time* seconds.

        Args:
            name: Stage identifier
            number_of_engines: Number of identical engines
            thrust: Thrust per engine (N)
            specific_impulse: Isp per engine (s)
            non_engine_dry_mass: Structure mass excluding engines (kg)
            engine_mass: Mass of a single engine (kg)
            burn_time: Full-thrust burn duration (s)
        """
        engines = tuple(RocketEngine(f"{name} engine {i + 1}", thrust, specific_impulse)
                        for i in range(number_of_engines))
        fuel_mass = number_of_engines * burn_time * engines[0].mass_flow_rate if engines else 0.0
        dry_mass = non_engine_dry_mass + number_of_engines * engine_mass
        return cls(name, engines, dry_mass, fuel_mass)

    @classmethod
    def payload(cls, name: str, mass: float) -> 'RocketStage':
        """An inert stage without engines or propellant."""
        return cls(name, (), mass, 0.0)

    # ------------------------------------------------------------------ #
    @property
    def total_thrust(self) -> float:
        """Sum of the engines' thrust (N)."""
        return sum(engine.thrust for engine in self.engines)

    @property
    def total_mass_flow_rate(self) -> float:
        """Sum of the engines' mass flow rates (kg/s)."""
        return sum(engine.mass_flow_rate for engine in self.engines)

    @property
    def effective_exhaust_velocity(self) -> float:
        """Thrust-weighted exhaust velocity of the stage (m/s)."""
        flow = self.total_mass_flow_rate
        if flow == 0.0:
            return 0.0
        return self.total_thrust / flow

    @property
    def mass(self) -> float:
        """Current stage mass = dry + remaining propellant (kg)."""
        return self.dry_mass + self.fuel_mass_remaining

    @property
    def has_engines(self) -> bool:
        return len(self.engines) > 0

    @property
    def burn_time_remaining(self) -> float:
        flow = self.total_mass_flow_rate
        if flow == 0.0:
            return 0.0
        return self.fuel_mass_remaining / flow

    # ------------------------------------------------------------------ #
    def use_fuel(self, time: float) -> Optional[Tuple['RocketStage', float]]:
        """
        Burn the stage's engines for *time* seconds.

        Returns:
            (stage after the burn, consumed mass in kg), or None when the
            burn would leave the tanks empty or negative.  A zero-length burn
            returns an unchanged copy.  This stage is never modified.
        """
        consumed = self.total_mass_flow_rate * time
        remaining = self.fuel_mass_remaining - consumed
        if remaining <= 0.0:
            return None
        return replace(self, fuel_mass_remaining=remaining), consumed

    def refueled(self) -> 'RocketStage':
        return replace(self, fuel_mass_remaining=self.fuel_mass)


@dataclass(frozen=True)
class RocketStages:
    """
    Ordered stack of stages; index 0 is the stage currently firing.

    Attributes:
        stages: Remaining stages, bottom first
    """
    stages: Tuple[RocketStage, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'stages', tuple(self.stages))
        if not self.stages:
            raise ValueError("A rocket needs at least one stage")

    @classmethod
    def from_config(cls, stages_cfg: Sequence[dict]) -> 'RocketStages':
        """
        Build the stack from configuration dictionaries.

        Each entry either sizes the stage from a burn time (``burn_time_s``)
        or lists its masses directly; ``payload: true`` marks an inert stage.
        """
        stages = []
        for s_cfg in stages_cfg:
            name = s_cfg.get('name', f"Stage {len(stages) + 1}")
            if s_cfg.get('payload', False):
                stages.append(RocketStage.payload(name, float(s_cfg.get('mass_kg', 0.0))))
            elif 'burn_time_s' in s_cfg:
                stages.append(RocketStage.from_burn_time(
                    name,
                    int(s_cfg.get('engines', 1)),
                    float(s_cfg.get('thrust_N', 1.0e6)),
                    float(s_cfg.get('isp_s', 300.0)),
                    float(s_cfg.get('dry_mass_kg', 0.0)),
                    float(s_cfg.get('engine_mass_kg', 0.0)),
                    float(s_cfg['burn_time_s']),
                ))
            else:
                engines = tuple(
                    RocketEngine(f"{name} engine {i + 1}",
                                 float(s_cfg.get('thrust_N', 1.0e6)),
                                 float(s_cfg.get('isp_s', 300.0)))
                    for i in range(int(s_cfg.get('engines', 1)))
                )
                stages.append(RocketStage(name, engines,
                                          float(s_cfg.get('dry_mass_kg', 0.0)),
                                          float(s_cfg.get('fuel_mass_kg', 0.0))))
        return cls(tuple(stages))

    # ------------------------------------------------------------------ #
    @property
    def current(self) -> RocketStage:
        return self.stages[0]

    @property
    def has_next(self) -> bool:
        return len(self.stages) > 1

    @property
    def total_mass(self) -> float:
        """Mass of every remaining stage including unburnt propellant (kg)."""
        return sum(stage.mass for stage in self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    def with_current(self, stage: RocketStage) -> 'RocketStages':
        """Replace the firing stage."""
        return RocketStages((stage,) + self.stages[1:])

    def stage(self) -> Optional[Tuple[RocketStage, 'RocketStages']]:
        """
        Drop the current stage.

        Returns:
            (separated stage, remaining stack), or None when the current
            stage is the last one.
        """
        if not self.has_next:
            return None
        return self.stages[0], RocketStages(self.stages[1:])
