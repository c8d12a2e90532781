"""
===============================================================================
SPACESIM - Visualization Package
===============================================================================
Offline matplotlib plots of recorded telemetry.

Modules:
    trajectory_plots : trajectories, altitude, mass and delta-V histories
===============================================================================
"""
