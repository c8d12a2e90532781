"""
===============================================================================
SPACESIM - Scenario Configuration
===============================================================================
YAML scenario files and the builder that turns them into a populated
SimulationEngine.

Layout of a scenario file (all sections except 'bodies' are optional):

    simulation:   engine settings passed to SimulationEngine (dt, mode,
                  kepler_solver, gauss_solver, integrator, seed, ...)
                  plus 'duration' for the command-line runner
    bodies:       natural bodies; the first one without a 'primary' is the
                  object of reference
    satellites:   unpowered bodies with optional drag properties
    rockets:      staged vehicles, on a launch site or in orbit
    maneuvers:    impulsive burns, finite burns of a rocket's engines
                  (finite_burn: true) or Hohmann transfers

Orbits are given either as classical elements

    orbit: {semi_major_axis_m | altitude_m, eccentricity, inclination_deg,
            raan_deg, arg_periapsis_deg, true_anomaly_deg}

or as an explicit relative state

    state: {position_m: [x, y, z], velocity_m_s: [vx, vy, vz]}
===============================================================================
"""

import logging
from pathlib import Path
from typing import Any, Dict, Tuple

import numpy as np
import yaml

from spacesim.core.constants import DEG2RAD
from spacesim.core.orbit import Orbit
from spacesim.core.state import ObjectConfig, ObjectState
from spacesim.dynamics.atmosphere import AtmosphericProperties, create_atmospheric_model
from spacesim.dynamics.propulsion import RocketStages
from spacesim.guidance.maneuver_planner import plan_hohmann
from spacesim.simulation.engine import SimulationEngine

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[3] / 'config' / 'simulation_config.yaml'


def load_config(config_path=None) -> Dict[str, Any]:
    """
    Load a scenario from a YAML file.

    Args:
        config_path: Path to the YAML file. Defaults to
            config/simulation_config.yaml at the repository root.

    Returns:
        Scenario dictionary.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    logger.info("Loading configuration from: %s", config_path)
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    if not isinstance(config, dict):
        raise ValueError(f"{config_path} does not contain a scenario mapping")
    logger.info("Scenario: %s", config.get('name', Path(config_path).stem))
    return config


# =============================================================================
# SECTION PARSERS
# =============================================================================

def _number(cfg: Dict[str, Any], key: str, default: float = 0.0) -> float:
    """Numeric field; YAML 1.1 reads exponents without a sign (1e6) as strings."""
    return float(cfg.get(key, default))


def _vector(value) -> np.ndarray:
    return np.asarray(value, dtype=np.float64)


def _object_config(entry: Dict[str, Any]) -> ObjectConfig:
    inertia = entry.get('moment_of_inertia_kg_m2')
    return ObjectConfig(
        mass=_number(entry, 'mass_kg'),
        radius=_number(entry, 'radius_m'),
        rotational_period=_number(entry, 'rotational_period_s'),
        axis_of_rotation=_vector(entry.get('axis', [0.0, 0.0, 1.0])),
        moment_of_inertia=None if inertia is None else float(inertia),
    )


def _placement(engine: SimulationEngine, entry: Dict[str, Any], primary: int):
    """(orbit, state, true anomaly) keyword arguments for an engine factory."""
    if 'state' in entry:
        state_cfg = entry['state']
        state = ObjectState(engine.current_time, _vector(state_cfg['position_m']),
                            _vector(state_cfg['velocity_m_s']))
        return {'state': state}

    orbit_cfg = entry.get('orbit')
    if orbit_cfg is None:
        raise ValueError(f"'{entry.get('name')}' needs an 'orbit' or a 'state'")

    primary_body = engine.get_object(primary)
    if 'semi_major_axis_m' in orbit_cfg:
        semi_major_axis = float(orbit_cfg['semi_major_axis_m'])
    else:
        semi_major_axis = primary_body.config.radius + float(orbit_cfg['altitude_m'])

    orbit = Orbit.from_semi_major_axis(
        primary_body.config.standard_gravitational_parameter,
        semi_major_axis,
        eccentricity=_number(orbit_cfg, 'eccentricity'),
        inclination=_number(orbit_cfg, 'inclination_deg') * DEG2RAD,
        longitude_of_ascending_node=_number(orbit_cfg, 'raan_deg') * DEG2RAD,
        argument_of_periapsis=_number(orbit_cfg, 'arg_periapsis_deg') * DEG2RAD,
    )
    return {'orbit': orbit, 'true_anomaly': _number(orbit_cfg, 'true_anomaly_deg') * DEG2RAD}


def _drag_properties(entry: Dict[str, Any]):
    drag_cfg = entry.get('drag')
    if not drag_cfg:
        return None
    cd = _number(drag_cfg, 'cd', 2.2)
    if 'diameter_m' in drag_cfg:
        return AtmosphericProperties.from_diameter(float(drag_cfg['diameter_m']), cd)
    return AtmosphericProperties(_number(drag_cfg, 'area_m2', 1.0), cd)


def _handle(handles: Dict[str, int], name: str) -> int:
    if name not in handles:
        raise ValueError(f"Unknown object '{name}' in configuration")
    return handles[name]


# =============================================================================
# BUILDER
# =============================================================================

def build_simulation(config: Dict[str, Any]) -> Tuple[SimulationEngine, Dict[str, int]]:
    """
    Build an engine and populate it from a scenario dictionary.

    Args:
        config: Scenario, as returned by load_config.

    Returns:
        (engine, mapping of object name to handle)
    """
    engine = SimulationEngine(config.get('simulation', {}))
    handles: Dict[str, int] = {}

    bodies = config.get('bodies', [])
    if not bodies:
        raise ValueError("A scenario needs at least one body")

    for entry in bodies:
        name = entry['name']
        atmosphere = create_atmospheric_model(entry.get('atmosphere'))
        if 'primary' not in entry:
            handles[name] = engine.add_object_of_reference(name, _object_config(entry), atmosphere)
            continue
        primary = _handle(handles, entry['primary'])
        handles[name] = engine.add_planet_in_orbit(
            name, _object_config(entry), primary, atmospheric_model=atmosphere,
            **_placement(engine, entry, primary))

    for entry in config.get('satellites', []):
        primary = _handle(handles, entry['primary'])
        handles[entry['name']] = engine.add_satellite_in_orbit(
            entry['name'], _object_config(entry), primary,
            atmospheric_properties=_drag_properties(entry),
            **_placement(engine, entry, primary))

    for entry in config.get('rockets', []):
        name = entry['name']
        primary = _handle(handles, entry['primary'])
        stages = RocketStages.from_config(entry['stages'])
        if 'launch_site' in entry:
            site = entry['launch_site']
            placement = {'state': engine.surface_state(
                primary,
                _number(site, 'latitude_deg') * DEG2RAD,
                _number(site, 'longitude_deg') * DEG2RAD,
                _number(site, 'altitude_m'))}
        else:
            placement = _placement(engine, entry, primary)
        handles[name] = engine.add_rocket(name, _object_config(entry), primary, stages,
                                          atmospheric_properties=_drag_properties(entry),
                                          **placement)
        if 'thrust_direction' in entry:
            engine.set_thrust_direction(handles[name], entry['thrust_direction'])
        if entry.get('engine_on', False):
            engine.start_engine(handles[name])

    for entry in config.get('maneuvers', []):
        handle = _handle(handles, entry['object'])
        if 'hohmann' in entry:
            hohmann = entry['hohmann']
            if 'radius_m' in hohmann:
                radius = float(hohmann['radius_m'])
            else:
                primary = engine.get_object(engine.primary_of(handle))
                radius = primary.config.radius + float(hohmann['altitude_m'])
            plan_hohmann(engine, handle, radius, hohmann.get('when', 'now'))
        elif entry.get('finite_burn', False):
            engine.execute_maneuver(handle, float(entry['time_s']),
                                    _vector(entry['delta_v_m_s']))
        else:
            engine.schedule_maneuver(handle, float(entry['time_s']),
                                      _vector(entry['delta_v_m_s']))

    logger.info("Scenario built: %d objects", len(handles))
    return engine, handles
