"""
===============================================================================
SPACESIM - Orbital Propagation Engine
===============================================================================
Propagates celestial and artificial bodies under gravity, powered flight and
atmospheric drag, and solves Lambert's problem for maneuver planning.

Subpackages:
    core          -- Constants, value types (state, orbit), quaternion maths
    dynamics      -- Kepler solver, RK4 integrator, atmosphere, propulsion
    guidance      -- Lambert solvers and maneuver planning
    simulation    -- Physics objects, scheduler, configuration loading
    visualization -- Post-run telemetry plots
===============================================================================
"""

__version__ = "1.0.0"
