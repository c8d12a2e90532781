"""
===============================================================================
SPACESIM - Atmosphere Test Suite
===============================================================================
Tests for the density models and the drag force they produce.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from spacesim.core.constants import EARTH_MASS, EARTH_RADIUS, SIDEREAL_DAY
from spacesim.core.state import ObjectConfig, ObjectState
from spacesim.dynamics.atmosphere import (
    AtmosphericProperties,
    EarthAtmosphere,
    ExponentialAtmosphere,
    NoAtmosphere,
    create_atmospheric_model,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def earth():
    return ObjectConfig(mass=EARTH_MASS, radius=EARTH_RADIUS, rotational_period=SIDEREAL_DAY)


@pytest.fixture
def still_earth():
    return ObjectConfig(mass=EARTH_MASS, radius=EARTH_RADIUS)


@pytest.fixture
def sphere():
    return AtmosphericProperties.from_diameter(2.0, 0.5)


def at_altitude(altitude, velocity):
    return ObjectState(0.0, [EARTH_RADIUS + altitude, 0.0, 0.0], velocity)


# =============================================================================
# Density profiles
# =============================================================================

class TestEarthAtmosphere:

    def test_sea_level_density(self):
        assert EarthAtmosphere().density(0.0) == pytest.approx(1.225, rel=1e-2)

    def test_density_decreases_with_altitude(self):
        model = EarthAtmosphere()
        altitudes = [0.0, 5000.0, 11000.0, 20000.0, 30000.0, 60000.0, 90000.0]
        densities = [model.density(h) for h in altitudes]
        assert all(b < a for a, b in zip(densities, densities[1:]))

    def test_zero_above_limit(self):
        model = EarthAtmosphere(limit=80000.0)
        assert model.density(80001.0) == 0.0

    def test_stratosphere_temperature(self):
        temperature, _ = EarthAtmosphere.temperature_and_pressure(15000.0)
        assert temperature == pytest.approx(-56.46)


class TestExponentialAtmosphere:

    def test_scale_height(self):
        model = ExponentialAtmosphere(rho_0=1.2, scale_height=7000.0)
        assert model.density(0.0) == pytest.approx(1.2)
        assert model.density(7000.0) == pytest.approx(1.2 / np.e)

    def test_zero_above_limit(self):
        model = ExponentialAtmosphere(limit=50000.0)
        assert model.density(60000.0) == 0.0


# =============================================================================
# Drag
# =============================================================================

class TestDrag:

    def test_reference_area_from_diameter(self, sphere):
        assert sphere.reference_area == pytest.approx(np.pi)

    def test_drag_opposes_relative_velocity(self, still_earth, sphere):
        model = EarthAtmosphere()
        state = at_altitude(10000.0, [0.0, 300.0, 0.0])
        force = model.drag(still_earth, sphere, state)

        rho = model.density(10000.0)
        expected = -0.5 * rho * 300.0 * 300.0 * 0.5 * np.pi
        assert_allclose(force, [0.0, expected, 0.0])

    def test_co_rotating_body_feels_no_drag(self, earth, sphere):
        model = EarthAtmosphere()
        position = np.array([EARTH_RADIUS + 1000.0, 0.0, 0.0])
        surface_velocity = np.cross(earth.angular_velocity, position)
        state = ObjectState(0.0, position, surface_velocity)

        assert_allclose(model.relative_velocity(earth, state), np.zeros(3), atol=1e-12)
        assert_allclose(model.drag(earth, sphere, state), np.zeros(3), atol=1e-12)

    def test_no_drag_outside_atmosphere(self, still_earth, sphere):
        model = EarthAtmosphere()
        state = at_altitude(150000.0, [0.0, 7800.0, 0.0])
        assert not model.inside(still_earth, state)
        assert_allclose(model.drag(still_earth, sphere, state), np.zeros(3))

    def test_airless_body(self, still_earth, sphere):
        model = NoAtmosphere()
        state = at_altitude(100.0, [0.0, 300.0, 0.0])
        assert not model.inside(still_earth, state)
        assert_allclose(model.drag(still_earth, sphere, state), np.zeros(3))


# =============================================================================
# Factory
# =============================================================================

class TestAtmosphereFactory:

    @pytest.mark.parametrize("config, expected", [
        (None, NoAtmosphere),
        ({'model': 'none'}, NoAtmosphere),
        ({'model': 'earth'}, EarthAtmosphere),
        ({'model': 'Exponential', 'scale_height_m': 11000.0}, ExponentialAtmosphere),
    ])
    def test_models(self, config, expected):
        assert isinstance(create_atmospheric_model(config), expected)

    def test_limit_is_read(self):
        model = create_atmospheric_model({'model': 'earth', 'limit_m': 120000.0})
        assert model.limit == 120000.0

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            create_atmospheric_model({'model': 'venus'})
