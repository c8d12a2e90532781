"""
===============================================================================
SPACESIM - Physical and Astronomical Constants
===============================================================================
Central repository for the physical constants used by the propagation engine.
SI units throughout (meters, seconds, kilograms, radians).
===============================================================================
"""

import numpy as np


# =============================================================================
# MATHEMATICAL CONSTANTS
# =============================================================================
PI = np.pi
TWO_PI = 2.0 * np.pi
DEG2RAD = PI / 180.0
RAD2DEG = 180.0 / PI

# =============================================================================
# FUNDAMENTAL PHYSICAL CONSTANTS
# =============================================================================
GRAVITATIONAL_CONSTANT = 6.67408e-11   # m^3 / (kg * s^2)
STANDARD_GRAVITY = 9.80665             # m/s^2, used with specific impulse
AU = 149597870700.0                    # Astronomical Unit (m)
SIDEREAL_DAY = 86164.0916              # s

# =============================================================================
# NUMERICAL TOLERANCES
# =============================================================================
ECCENTRICITY_EPSILON = 1e-4            # circular / parabolic classification
MANEUVER_TIME_EPSILON = 1e-6           # s, a maneuver is due within this
STUMPFF_SERIES_LIMIT = 1e-3            # |z| below which series are used

# =============================================================================
# SUN PARAMETERS
# =============================================================================
SUN_MASS = 1.98855e30                  # kg
SUN_RADIUS = 6.957e8                   # m
SUN_ROTATIONAL_PERIOD = 25.05 * 86400.0

# =============================================================================
# EARTH PARAMETERS
# =============================================================================
EARTH_MASS = 5.97237e24                # kg
EARTH_RADIUS = 6.371e6                 # Mean radius (m)
EARTH_MU = GRAVITATIONAL_CONSTANT * EARTH_MASS
EARTH_ROTATIONAL_PERIOD = SIDEREAL_DAY
EARTH_SMA = 1.00000261 * AU            # Semi-major axis around the Sun (m)
EARTH_ECCENTRICITY = 0.01671123
EARTH_ATMOSPHERE_LIMIT = 100000.0      # m, Karman line

# =============================================================================
# MOON PARAMETERS
# =============================================================================
MOON_MASS = 7.342e22                   # kg
MOON_RADIUS = 1.7371e6                 # Mean radius (m)
MOON_SMA = 384399000.0                 # Semi-major axis around Earth (m)
MOON_ECCENTRICITY = 0.0549
MOON_INCLINATION = 5.145 * DEG2RAD
MOON_ROTATIONAL_PERIOD = 27.321661 * 86400.0

# =============================================================================
# USEFUL DERIVED QUANTITIES
# =============================================================================
LEO_ALTITUDE = 400000.0                # m
LEO_RADIUS = EARTH_RADIUS + LEO_ALTITUDE
LEO_VELOCITY = np.sqrt(EARTH_MU / LEO_RADIUS)
