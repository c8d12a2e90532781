"""
===============================================================================
SPACESIM - Simulation Package
===============================================================================
Physics objects, the step scheduler and scenario configuration.

Modules:
    objects : PhysicsObject hierarchy, propagation modes, events
    engine  : SimulationEngine (arena, step scheduling, telemetry)
    config  : YAML scenario loading and engine construction
===============================================================================
"""
