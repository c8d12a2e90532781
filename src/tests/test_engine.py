"""
===============================================================================
SPACESIM - Simulation Engine Test Suite
===============================================================================
End-to-end tests of the step scheduler:
  - Unperturbed, Cowell and two-body propagation of a LEO satellite
  - Maneuver splitting, execution and checkpoint rebasing
  - Rocket liftoff, staging and deferred merge of separated stages
  - Impact detection and surface co-rotation
  - Sphere-of-influence frame changes and the primary-chain perturbation
  - Isolation of solver failures
  - Hierarchy validation, telemetry and event frames
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose

from spacesim.core.constants import (
    EARTH_MASS,
    EARTH_RADIUS,
    LEO_RADIUS,
    MOON_MASS,
    MOON_RADIUS,
    MOON_SMA,
    SIDEREAL_DAY,
    TWO_PI,
)
from spacesim.core.exceptions import InvalidHierarchyError
from spacesim.core.orbit import Orbit
from spacesim.core.state import ObjectConfig, ObjectState
from spacesim.dynamics.kepler import UniversalVariableKeplerSolver
from spacesim.dynamics.propulsion import RocketStage, RocketStages
from spacesim.simulation.engine import SimulationEngine, SimulationMode
from spacesim.simulation.objects import PropagationMode, SatelliteObject


# =============================================================================
# Fixtures and Helpers
# =============================================================================

EARTH = ObjectConfig(mass=EARTH_MASS, radius=EARTH_RADIUS)
SPINNING_EARTH = ObjectConfig(mass=EARTH_MASS, radius=EARTH_RADIUS,
                              rotational_period=SIDEREAL_DAY)
MOON = ObjectConfig(mass=MOON_MASS, radius=MOON_RADIUS)
SATELLITE = ObjectConfig(mass=1000.0, radius=2.0)

MU = EARTH.standard_gravitational_parameter
LEO_PERIOD = TWO_PI * np.sqrt(LEO_RADIUS ** 3 / MU)


def leo_orbit(eccentricity=0.0, inclination=0.0):
    return Orbit.from_semi_major_axis(0.0, LEO_RADIUS, eccentricity, inclination)


def make_engine(root=EARTH, **config):
    engine = SimulationEngine(dict({'dt': 10.0}, **config))
    earth = engine.add_object_of_reference('Earth', root)
    return engine, earth


def small_stack(first_burn=5.0):
    return RocketStages((
        RocketStage.from_burn_time('S1', 1, 20000.0, 300.0, 200.0, 50.0, first_burn),
        RocketStage.from_burn_time('S2', 1, 5000.0, 320.0, 100.0, 20.0, 100.0),
        RocketStage.payload('Payload', 300.0),
    ))


def event_kinds(engine):
    return [e.kind for e in engine.events]


# =============================================================================
# Propagation modes
# =============================================================================

class TestPropagation:

    def test_unperturbed_leo_returns_after_one_period(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        start = engine.state(sat)

        engine.run(LEO_PERIOD)

        assert engine.mode(sat) is PropagationMode.UNPERTURBED
        assert_allclose(engine.current_time, LEO_PERIOD)
        assert_allclose(engine.state(sat).position, start.position, atol=0.1)
        assert_allclose(engine.state(sat).velocity, start.velocity, atol=1e-4)

    def test_unperturbed_motion_is_evaluated_from_checkpoint(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth,
                                            orbit=leo_orbit(eccentricity=0.01), true_anomaly=1.0)
        start = engine.state(sat)
        for _ in range(25):
            engine.step()

        expected = UniversalVariableKeplerSolver().solve(MU, start, 250.0)
        assert engine.get_object(sat).reference_state is start
        assert_allclose(engine.state(sat).position, expected.position, atol=1e-3)

    def test_cowell_leo_returns_after_one_period(self):
        engine, earth = make_engine(mode='cowell')
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        start = engine.state(sat)

        engine.run(LEO_PERIOD)

        assert engine.mode(sat) is PropagationMode.PERTURBED
        assert_allclose(engine.state(sat).position, start.position, atol=10.0)

    def test_two_body_mode_ignores_thrust(self):
        engine, earth = make_engine(mode='two_body')
        rocket = engine.add_rocket('R', SATELLITE, earth, small_stack(), orbit=leo_orbit())
        engine.start_engine(rocket)
        start = engine.state(rocket)

        engine.run(60.0)

        expected = UniversalVariableKeplerSolver().solve(MU, start, 60.0)
        assert engine.get_object(rocket).used_delta_v == 0.0
        assert_allclose(engine.state(rocket).position, expected.position, atol=1e-3)

    def test_root_only_rotates(self):
        engine, earth = make_engine(root=SPINNING_EARTH)
        engine.run(SIDEREAL_DAY / 4.0, dt=600.0)

        root = engine.state(earth)
        assert_allclose(root.position, np.zeros(3))
        assert root.orientation.rotation_angle == pytest.approx(np.pi / 2.0)

    def test_non_positive_step_rejected(self):
        engine, _ = make_engine()
        with pytest.raises(ValueError):
            engine.step(0.0)
        with pytest.raises(ValueError):
            SimulationEngine({'dt': -1.0})

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            SimulationEngine({'mode': 'patched_conics'})


# =============================================================================
# Maneuvers
# =============================================================================

class TestManeuvers:

    def test_maneuver_splits_step_and_rebases(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        start = engine.state(sat)
        dv = np.array([0.0, 0.0, 25.0])
        engine.schedule_maneuver(sat, 15.0, dv)

        engine.step()
        assert engine.get_object(sat).maneuvers
        engine.step()

        obj = engine.get_object(sat)
        assert not obj.maneuvers
        assert obj.reference_state.time == pytest.approx(15.0)
        assert obj.used_delta_v == pytest.approx(25.0)
        assert event_kinds(engine) == ['maneuver']

        kepler = UniversalVariableKeplerSolver()
        burn = kepler.solve(MU, start, 15.0).with_delta_velocity(dv)
        expected = kepler.solve(MU, burn, 5.0)
        assert_allclose(obj.state.position, expected.position, atol=1e-2)
        assert_allclose(obj.state.velocity, expected.velocity, atol=1e-5)

    def test_maneuver_at_step_start(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        v0 = engine.state(sat).velocity
        engine.schedule_maneuver(sat, 0.0, [0.0, 100.0, 0.0])

        engine.step()

        assert engine.events[0].time == 0.0
        assert engine.get_object(sat).reference_state.time == 0.0
        assert engine.get_object(sat).reference_state.velocity[1] == pytest.approx(v0[1] + 100.0)

    def test_maneuver_in_the_past_rejected(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        engine.step()
        with pytest.raises(ValueError):
            engine.schedule_maneuver(sat, 5.0, [1.0, 0.0, 0.0])

    def test_root_cannot_maneuver(self):
        engine, earth = make_engine()
        with pytest.raises(ValueError):
            engine.schedule_maneuver(earth, 10.0, [1.0, 0.0, 0.0])

    def test_clear_maneuvers(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        engine.schedule_maneuver(sat, 50.0, [1.0, 0.0, 0.0])
        engine.clear_maneuvers(sat)
        engine.run(100.0)
        assert engine.get_object(sat).used_delta_v == 0.0

    def test_maneuver_on_impacted_object_dropped(self):
        engine, earth = make_engine()
        lander = engine.add_satellite_in_orbit('Lander', SATELLITE, earth,
                                               state=engine.surface_state(earth, 0.0, 0.0))
        engine.schedule_maneuver(lander, 5.0, [0.0, 0.0, 50.0])
        engine.step()

        assert engine.has_impacted(lander)
        assert engine.get_object(lander).used_delta_v == 0.0
        assert 'maneuver' not in event_kinds(engine)


# =============================================================================
# Rockets
# =============================================================================

class TestRockets:

    def test_liftoff_from_pad(self):
        engine, earth = make_engine(root=SPINNING_EARTH)
        stages = RocketStages((
            RocketStage.from_burn_time('S1', 1, 60000.0, 300.0, 1000.0, 0.0, 100.0),
            RocketStage.payload('Payload', 500.0),
        ))
        rocket = engine.add_rocket('Launcher', SATELLITE, earth, stages,
                                   state=engine.surface_state(earth, 0.0, 0.0))
        engine.set_thrust_direction(rocket, 'radial')
        assert engine.mode(rocket) is PropagationMode.IMPACTED

        assert engine.start_engine(rocket)
        assert not engine.has_impacted(rocket)
        assert event_kinds(engine) == ['liftoff']

        engine.run(30.0, dt=1.0)

        state = engine.state(rocket)
        assert not state.impacted
        assert state.r_mag - EARTH_RADIUS > 1000.0
        assert engine.mode(rocket) is PropagationMode.PERTURBED
        assert engine.get_object(rocket).used_delta_v > 0.0

    def test_staging_creates_derelict_once(self):
        engine, earth = make_engine()
        rocket = engine.add_rocket('R', SATELLITE, earth, small_stack(), orbit=leo_orbit())
        engine.start_engine(rocket)
        s1 = engine.get_object(rocket).stages.current

        fuel = [s1.fuel_mass_remaining]
        for _ in range(10):
            engine.step(1.0)
            if len(engine.objects) == 3:
                break
            fuel.append(engine.get_object(rocket).stages.current.fuel_mass_remaining)
        assert all(b < a for a, b in zip(fuel, fuel[1:]))

        derelict = [h for h in engine.handles if h not in (earth, rocket)][0]
        debris = engine.get_object(derelict)
        assert isinstance(debris, SatelliteObject)
        assert debris.name == 'R S1'
        assert debris.primary == earth
        assert s1.dry_mass <= debris.mass < s1.dry_mass + s1.total_mass_flow_rate * 1.0 + 1e-6
        assert_allclose(engine.state(derelict).position, engine.state(rocket).position)
        assert_allclose(engine.state(derelict).velocity, engine.state(rocket).velocity)

        for _ in range(5):
            engine.step(1.0)
        assert event_kinds(engine).count('staging') == 1
        assert engine.get_object(rocket).stages.current.name == 'S2'
        assert engine.get_object(rocket).is_thrusting
        assert engine.mode(derelict) is PropagationMode.UNPERTURBED

    def test_burn_mass_follows_stage_fuel(self):
        engine, earth = make_engine()
        rocket = engine.add_rocket('R', SATELLITE, earth, small_stack(50.0), orbit=leo_orbit())
        obj = engine.get_object(rocket)
        start_mass = obj.mass
        flow = obj.stages.current.total_mass_flow_rate
        engine.start_engine(rocket)

        for _ in range(3):
            engine.step(1.0)

        assert obj.mass == pytest.approx(start_mass - 3.0 * flow)
        assert obj.config.mass == pytest.approx(obj.mass)

    def test_engine_commands_on_non_rocket(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        assert not engine.start_engine(sat)
        assert not engine.stop_engine(sat)
        assert not engine.set_thrust_direction(sat, 'radial')

    def test_stop_engine_returns_to_kepler(self):
        engine, earth = make_engine()
        rocket = engine.add_rocket('R', SATELLITE, earth, small_stack(50.0), orbit=leo_orbit())
        engine.start_engine(rocket)
        engine.step()
        assert engine.mode(rocket) is PropagationMode.PERTURBED

        engine.stop_engine(rocket)
        engine.step()
        assert engine.mode(rocket) is PropagationMode.UNPERTURBED


class TestFiniteBurns:

    def test_burn_lands_close_to_the_impulse(self):
        engine, earth = make_engine()
        rocket = engine.add_rocket('R', SATELLITE, earth, small_stack(50.0), orbit=leo_orbit())
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        dv = np.array([0.0, 0.0, 50.0])
        fuel_before = engine.get_object(rocket).stages.current.fuel_mass_remaining

        program = engine.execute_maneuver(rocket, 20.0, dv)
        engine.schedule_maneuver(sat, 20.0, dv)
        assert engine.burn_program(rocket) is program
        assert program.profile.start_time == pytest.approx(20.0 - 0.5 * program.profile.duration)

        engine.run(60.0, dt=1.0)

        obj = engine.get_object(rocket)
        assert program.completed
        assert engine.burn_program(rocket) is None
        assert not obj.engine_running
        assert obj.throttle == 1.0
        assert obj.used_delta_v == pytest.approx(50.0, rel=1e-6)
        assert fuel_before - obj.stages.current.fuel_mass_remaining == pytest.approx(
            program.profile.propellant_mass, rel=1e-6)

        kinds = event_kinds(engine)
        assert kinds.count('burn_start') == 1
        assert kinds.count('burn_complete') == 1
        start = next(e for e in engine.events if e.kind == 'burn_start')
        assert start.time == pytest.approx(program.profile.start_time)

        assert_allclose(engine.state(rocket).position, engine.state(sat).position, atol=20.0)
        assert_allclose(engine.state(rocket).velocity, engine.state(sat).velocity, atol=0.05)

    def test_burn_ends_short_when_propellant_runs_out(self):
        engine, earth = make_engine()
        stages = RocketStages((
            RocketStage.from_burn_time('S1', 1, 20000.0, 300.0, 200.0, 50.0, 3.0),
            RocketStage.payload('Payload', 300.0),
        ))
        rocket = engine.add_rocket('R', SATELLITE, earth, stages, orbit=leo_orbit())
        program = engine.execute_maneuver(rocket, 5.0, [0.0, 500.0, 0.0])

        engine.run(30.0, dt=1.0)

        assert program.completed
        assert 0.0 < program.applied_delta_v < 500.0
        assert not engine.get_object(rocket).engine_running
        assert 'burn_complete' in event_kinds(engine)

    def test_burn_starting_in_the_past_starts_now(self):
        engine, earth = make_engine()
        rocket = engine.add_rocket('R', SATELLITE, earth, small_stack(50.0), orbit=leo_orbit())
        program = engine.execute_maneuver(rocket, 0.0, [0.0, 20.0, 0.0])
        assert program.profile.start_time == 0.0

        engine.step(1.0)
        assert engine.get_object(rocket).engine_running
        assert engine.mode(rocket) is PropagationMode.PERTURBED

    def test_burn_commands_need_a_rocket(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        assert engine.execute_maneuver(sat, 10.0, [1.0, 0.0, 0.0]) is None

        rocket = engine.add_rocket('R', SATELLITE, earth, small_stack(50.0), orbit=leo_orbit())
        engine.step()
        with pytest.raises(ValueError):
            engine.execute_maneuver(rocket, 5.0, [1.0, 0.0, 0.0])


# =============================================================================
# Impacts
# =============================================================================

class TestImpacts:

    @staticmethod
    def falling(engine, earth):
        state = ObjectState(0.0, [EARTH_RADIUS + 100e3, 0.0, 0.0], [-1000.0, 500.0, 0.0])
        return engine.add_satellite_in_orbit('Faller', SATELLITE, earth, state=state)

    def test_impact_on_still_primary(self):
        engine, earth = make_engine()
        sat = self.falling(engine, earth)

        engine.run(200.0)

        state = engine.state(sat)
        assert state.impacted
        assert state.r_mag == pytest.approx(EARTH_RADIUS)
        assert_allclose(state.velocity, np.zeros(3))
        assert event_kinds(engine) == ['impact']
        assert engine.get_summary()['impacted'] == ['Faller']

    def test_impacted_object_co_rotates(self):
        engine, earth = make_engine(root=SPINNING_EARTH)
        sat = self.falling(engine, earth)
        engine.run(200.0)
        contact = engine.state(sat).position

        engine.run(3600.0, dt=600.0)

        state = engine.state(sat)
        omega = SPINNING_EARTH.angular_velocity
        assert engine.mode(sat) is PropagationMode.IMPACTED
        assert state.r_mag == pytest.approx(EARTH_RADIUS)
        assert np.linalg.norm(state.position - contact) > 1000.0
        assert_allclose(state.velocity, np.cross(omega, state.position), atol=1e-9)

    def test_orbiting_object_does_not_impact(self):
        engine, earth = make_engine()
        engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        engine.run(600.0)
        assert engine.check_impacts() == []
        assert 'impact' not in event_kinds(engine)

    def test_surface_state(self):
        engine, earth = make_engine(root=SPINNING_EARTH)
        state = engine.surface_state(earth, 0.0, 0.0)
        assert state.impacted
        assert_allclose(state.position, [EARTH_RADIUS, 0.0, 0.0])
        assert_allclose(state.velocity, [0.0, TWO_PI * EARTH_RADIUS / SIDEREAL_DAY, 0.0])

        pole = engine.surface_state(earth, np.pi / 2.0, 0.0, altitude=1000.0)
        assert not pole.impacted
        assert_allclose(pole.position, [0.0, 0.0, EARTH_RADIUS + 1000.0], atol=1e-6)


# =============================================================================
# Hierarchy
# =============================================================================

class TestHierarchy:

    @staticmethod
    def earth_moon():
        engine, earth = make_engine()
        moon = engine.add_planet_in_orbit('Moon', MOON, earth,
                                          orbit=Orbit.from_semi_major_axis(0.0, MOON_SMA, 0.0))
        return engine, earth, moon

    def test_enters_moon_sphere_of_influence(self):
        engine, earth, moon = self.earth_moon()
        moon_state = engine.state(moon)
        offset = np.array([0.0, 0.0, 20000e3])
        sat = engine.add_satellite_in_orbit(
            'Probe', SATELLITE, earth,
            state=ObjectState(0.0, moon_state.position + offset, moon_state.velocity))

        engine.step()

        assert engine.primary_of(sat) == moon
        assert_allclose(engine.state(sat).position, offset, atol=1e3)
        assert engine.children_of(moon) == [sat]
        assert event_kinds(engine) == ['soi_change']

    def test_leaves_moon_sphere_of_influence(self):
        engine, earth, moon = self.earth_moon()
        radius = engine.sphere_of_influence_of(moon)
        assert 6.0e7 < radius < 7.0e7

        relative = ObjectState(0.0, [1.0e8, 0.0, 0.0], [0.0, 100.0, 0.0])
        sat = engine.add_satellite_in_orbit('Probe', SATELLITE, moon, state=relative)
        engine.step()

        assert engine.primary_of(sat) == earth
        assert_allclose(engine.state(sat).position,
                        engine.absolute_state(moon).position + [1.0e8, 0.0, 0.0], atol=1e4)

    def test_swap_reference_frame_keeps_absolute_state(self):
        earth = ObjectState(0.0, [1.0e3, 2.0e3, 0.0], [0.5, 0.0, 0.0])
        moon = ObjectState(0.0, [MOON_SMA, 0.0, 0.0], [0.0, 1022.0, 0.0])
        sat = ObjectState(0.0, [7.0e6, 0.0, 0.0], [0.0, 7500.0, 0.0])

        swapped = sat.swap_reference_frame(earth, moon)
        assert_allclose(swapped.make_absolute(moon).position,
                        sat.make_absolute(earth).position, atol=1e-6)
        assert_allclose(swapped.make_absolute(moon).velocity,
                        sat.make_absolute(earth).velocity, atol=1e-9)

    def test_absolute_state_walks_the_chain(self):
        engine, earth, moon = self.earth_moon()
        relative = ObjectState(0.0, [5.0e6, 0.0, 0.0], [0.0, 900.0, 0.0])
        sat = engine.add_satellite_in_orbit('Probe', SATELLITE, moon, state=relative)

        absolute = engine.absolute_state(sat)
        assert_allclose(absolute.position, engine.state(moon).position + relative.position)
        assert_allclose(absolute.velocity, engine.state(moon).velocity + relative.velocity)

    def test_primary_chain_perturbs_moon_orbiter(self):
        final = []
        for include in (True, False):
            engine, earth = make_engine(mode='cowell', include_primary_chain=include, dt=60.0)
            moon = engine.add_planet_in_orbit(
                'Moon', MOON, earth, orbit=Orbit.from_semi_major_axis(0.0, MOON_SMA, 0.0))
            sat = engine.add_satellite_in_orbit(
                'Probe', SATELLITE, moon, orbit=Orbit.from_semi_major_axis(0.0, 5.0e6, 0.0))
            engine.run(3600.0)
            final.append(engine.state(sat).position)
        assert np.linalg.norm(final[0] - final[1]) > 1.0

    def test_unknown_handle(self):
        engine, _ = make_engine()
        with pytest.raises(InvalidHierarchyError):
            engine.get_object(42)
        with pytest.raises(InvalidHierarchyError):
            engine.add_satellite_in_orbit('Lost', SATELLITE, 42, orbit=leo_orbit())

    def test_satellite_cannot_be_primary(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        with pytest.raises(InvalidHierarchyError):
            engine.add_satellite_in_orbit('Moonlet', SATELLITE, sat,
                                          state=ObjectState(0.0, [100.0, 0.0, 0.0], [0.0, 0.1, 0.0]))

    def test_single_root(self):
        engine, _ = make_engine()
        with pytest.raises(InvalidHierarchyError):
            engine.add_object_of_reference('Sun', EARTH)
        with pytest.raises(InvalidHierarchyError):
            engine.add_object(SatelliteObject('Orphan', SATELLITE,
                                              ObjectState(0.0, [1.0, 0.0, 0.0], [0.0, 0.0, 0.0])))

    def test_orbit_or_state_required(self):
        engine, earth = make_engine()
        with pytest.raises(ValueError):
            engine.add_satellite_in_orbit('Sat', SATELLITE, earth)
        with pytest.raises(ValueError):
            engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit(),
                                          state=ObjectState(0.0, [LEO_RADIUS, 0, 0], [0, 7000, 0]))

    def test_orbit_takes_primary_parameters(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        orbit = engine.orbit(sat)
        assert orbit.mu == pytest.approx(MU)
        assert orbit.primary == earth
        assert orbit.primary_radius == EARTH_RADIUS
        assert orbit.is_circular
        assert engine.orbit(earth) is None


# =============================================================================
# Failure isolation
# =============================================================================

class TestFailures:

    def test_solver_failure_leaves_state_stale(self):
        engine, earth = make_engine()
        eccentric = engine.add_satellite_in_orbit(
            'Eccentric', SATELLITE, earth,
            orbit=Orbit.from_semi_major_axis(0.0, 20000e3, 0.6), true_anomaly=0.5)
        engine.kepler_solver = UniversalVariableKeplerSolver(max_iterations=1, max_reseeds=0)

        engine.step()

        assert engine.current_time == 10.0
        assert engine.state(eccentric).time == 0.0
        assert event_kinds(engine) == ['propagation_failed']
        assert engine.get_summary()['propagation_failed'] == 1


# =============================================================================
# Output
# =============================================================================

class TestOutput:

    def test_telemetry_frame(self, tmp_path):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())

        df = engine.run(30.0)

        assert len(df) == 8
        assert df.index.name == 'time'
        for column in ('handle', 'name', 'primary', 'mode', 'pos_x', 'vel_z', 'quat_w',
                       'altitude_m', 'velocity_m_s', 'mass', 'used_delta_v', 'impacted'):
            assert column in df.columns

        sat_df = engine.get_telemetry(sat)
        assert list(sat_df.index) == [0.0, 10.0, 20.0, 30.0]
        assert_allclose(sat_df["altitude_m"], LEO_RADIUS - EARTH_RADIUS, atol=1e-3)
        assert (engine.get_telemetry(earth)['primary'] == -1).all()

        path = tmp_path / 'telemetry.csv'
        engine.save_telemetry(str(path))
        assert len(pd.read_csv(path)) == 8

    def test_no_telemetry_recorded(self):
        engine, earth = make_engine(record_telemetry=False)
        engine.run(20.0)
        assert engine.get_telemetry().empty

    def test_events_frame(self):
        engine, earth = make_engine()
        sat = engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        engine.schedule_maneuver(sat, 5.0, [1.0, 0.0, 0.0])
        engine.run(10.0)

        events = engine.get_events()
        assert list(events.columns) == ['time', 'kind', 'handle', 'name', 'detail']
        assert events.iloc[0]['kind'] == 'maneuver'
        assert events.iloc[0]['handle'] == sat

    def test_summary(self):
        engine, earth = make_engine()
        engine.add_satellite_in_orbit('Sat', SATELLITE, earth, orbit=leo_orbit())
        engine.run(50.0)

        summary = engine.get_summary()
        assert summary['total_time'] == pytest.approx(50.0)
        assert summary['steps'] == 5
        assert summary['objects'] == 2
        assert summary['total_delta_v'] == 0.0
        assert 'SimulationEngine' in repr(engine)

    def test_mode_enum(self):
        engine = SimulationEngine({'mode': 'cowell'})
        assert engine.simulation_mode is SimulationMode.COWELL
