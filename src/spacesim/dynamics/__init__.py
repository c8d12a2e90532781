"""
===============================================================================
SPACESIM - Dynamics Package
===============================================================================
Propagation of a single body over one time step.

Submodules:
    kepler      -- Universal-variable Kepler solver and surface co-rotation
    integrator  -- RK4 (Cowell) integrator for perturbed and powered flight
    atmosphere  -- Atmospheric density models and drag
    propulsion  -- Rocket engines, stages and staging bookkeeping
===============================================================================
"""
