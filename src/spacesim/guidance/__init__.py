"""
===============================================================================
SPACESIM - Guidance Package
===============================================================================
Transfer design used by maneuver planning.  Planners call the solvers out
of band and hand the resulting burns to the simulation engine; only the
finite burn programs run on every simulation step.

Modules:
    lambert          : Gauss/Lambert problem solvers (universal variable,
                       p-iteration, Gauss's method, adaptive fallback)
    maneuver_planner : Impulsive maneuvers, Hohmann transfers and intercepts
    finite_burn      : Finite-duration burns flown by a rocket in place of an
                       impulse
===============================================================================
"""
