"""
===============================================================================
SPACESIM - Core Package
===============================================================================
Shared building blocks for the propagation engine.

Modules:
    constants   -- Physical constants and solar-system body parameters
    exceptions  -- Error taxonomy raised by the solvers and the scheduler
    math_utils  -- Stumpff functions, angle helpers, spherical coordinates
    quaternion  -- Scalar-first unit quaternion used for orientation
    state       -- ObjectConfig, ObjectState and integrator value types
    orbit       -- Osculating conic orbit and position along it
===============================================================================
"""
