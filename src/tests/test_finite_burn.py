"""
===============================================================================
SPACESIM - Finite Burn Test Suite
===============================================================================
Tests for finite-burn planning (rocket equation sizing, centring on the
impulse epoch) and for the program that commands a rocket through the burn.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from spacesim.core.constants import LEO_RADIUS, STANDARD_GRAVITY
from spacesim.core.state import ObjectConfig, ObjectState
from spacesim.dynamics.propulsion import RocketStage, RocketStages
from spacesim.guidance.finite_burn import FiniteBurnProgram, plan_finite_burn
from spacesim.simulation.objects import RocketObject


VE = 300.0 * STANDARD_GRAVITY


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def rocket():
    stages = RocketStages((
        RocketStage.from_burn_time('Core', 1, 20000.0, 300.0, 200.0, 50.0, 60.0),
        RocketStage.payload('Payload', 300.0),
    ))
    state = ObjectState(0.0, [LEO_RADIUS, 0.0, 0.0], [0.0, 7700.0, 0.0])
    return RocketObject('Tug', ObjectConfig(mass=1.0, radius=1.0), state, stages, primary=0)


@pytest.fixture
def profile(rocket):
    stage = rocket.stages.current
    return plan_finite_burn([0.0, 30.0, 40.0], rocket.mass, stage.total_thrust,
                            stage.effective_exhaust_velocity, 100.0)


# =============================================================================
# Planning
# =============================================================================

class TestPlanFiniteBurn:

    def test_rocket_equation_sizing(self, rocket, profile):
        propellant = rocket.mass * (1.0 - np.exp(-50.0 / VE))

        assert profile.delta_v == pytest.approx(50.0)
        assert profile.propellant_mass == pytest.approx(propellant)
        assert profile.duration == pytest.approx(propellant * VE / 20000.0)
        assert_allclose(profile.direction, [0.0, 0.6, 0.8])

    def test_centred_on_impulse_epoch(self, profile):
        assert profile.start_time == pytest.approx(100.0 - 0.5 * profile.duration)
        assert profile.end_time == pytest.approx(100.0 + 0.5 * profile.duration)

    @pytest.mark.parametrize("delta_v, thrust, ve", [
        ([0.0, 0.0, 0.0], 1000.0, VE),
        ([1.0, 0.0, 0.0], 0.0, VE),
        ([1.0, 0.0, 0.0], 1000.0, 0.0),
    ])
    def test_rejects_impossible_burns(self, delta_v, thrust, ve):
        with pytest.raises(ValueError):
            plan_finite_burn(delta_v, 1000.0, thrust, ve, 0.0)


# =============================================================================
# Program
# =============================================================================

class TestFiniteBurnProgram:

    def test_waits_for_ignition(self, rocket, profile):
        program = FiniteBurnProgram(profile)

        assert not program.command(rocket, profile.start_time - 5.0, 1.0)
        assert not rocket.engine_running
        assert not program.poll(rocket)

    def test_ignition_sets_direction_and_full_throttle(self, rocket, profile):
        program = FiniteBurnProgram(profile)

        assert program.command(rocket, profile.start_time, 1.0)
        assert program.started
        assert rocket.engine_running
        assert_allclose(rocket.thrust_direction, profile.direction)
        assert rocket.throttle == 1.0
        assert not program.command(rocket, profile.start_time + 1.0, 1.0)

    def test_last_step_is_throttled(self, rocket, profile):
        program = FiniteBurnProgram(profile)
        program.command(rocket, profile.start_time, 2.0 * profile.duration)

        expected = profile.propellant_mass / (rocket.stages.current.total_mass_flow_rate
                                              * 2.0 * profile.duration)
        assert rocket.throttle == pytest.approx(expected)
        assert rocket.throttle == pytest.approx(0.5)

    def test_completes_on_delivered_delta_v(self, rocket, profile):
        program = FiniteBurnProgram(profile)
        program.command(rocket, profile.start_time, 2.0 * profile.duration)
        rocket.after_impulse(2.0 * profile.duration)

        assert program.poll(rocket)
        assert program.applied_delta_v == pytest.approx(50.0)
        assert not rocket.engine_running
        assert rocket.throttle == 1.0

    def test_stage_without_engines_is_skipped(self, profile):
        stages = RocketStages((RocketStage.payload('Payload', 300.0),))
        state = ObjectState(0.0, [LEO_RADIUS, 0.0, 0.0], [0.0, 7700.0, 0.0])
        inert = RocketObject('Inert', ObjectConfig(mass=1.0, radius=1.0), state, stages,
                             primary=0)
        program = FiniteBurnProgram(profile)

        assert not program.command(inert, profile.start_time, 1.0)
        assert program.completed
        assert not inert.engine_running
