"""
===============================================================================
SPACESIM - Telemetry Plots
===============================================================================
Post-run plots of the telemetry DataFrame produced by SimulationEngine.

Plots:
  1. 3D trajectories of selected objects, relative to their primaries
  2. Altitude above the primary's surface over time
  3. Mass and accumulated delta-V over time (rockets and maneuvering objects)

Every function takes the telemetry frame (indexed by time, one row per
object per step) and writes a PNG; nothing is shown interactively.
===============================================================================
"""

import logging
import os
from typing import Iterable, List, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

plt.rcParams.update({
    'font.size': 11,
    'axes.labelsize': 12,
    'axes.titlesize': 14,
    'legend.fontsize': 10,
    'figure.dpi': 150,
    'savefig.dpi': 200,
    'lines.linewidth': 1.5,
    'axes.grid': True,
    'grid.alpha': 0.3,
})

COLORS = [
    '#2c3e50',
    '#e74c3c',
    '#27ae60',
    '#9b59b6',
    '#f39c12',
    '#1abc9c',
    '#3498db',
]


def _selected(telemetry: pd.DataFrame, names: Optional[Iterable[str]]) -> List[str]:
    available = list(dict.fromkeys(telemetry['name']))
    if names is None:
        return available
    return [name for name in names if name in available]


def _save(fig, output_path: str) -> str:
    fig.tight_layout()
    fig.savefig(output_path, bbox_inches='tight', facecolor='white', edgecolor='none')
    plt.close(fig)
    logger.info("Saved: %s", output_path)
    return output_path


def plot_trajectories(telemetry: pd.DataFrame, output_path: str,
                      names: Optional[Iterable[str]] = None,
                      primary_radius: Optional[float] = None) -> str:
    """
    3D trajectories of the selected objects in km.

    Positions are relative to each object's primary, so objects around
    different primaries share the plot only for a rough comparison.  When
    *primary_radius* is given a wireframe sphere marks the primary.
    """
    fig = plt.figure(figsize=(10, 10))
    ax = fig.add_subplot(111, projection='3d')

    for i, name in enumerate(_selected(telemetry, names)):
        rows = telemetry[telemetry['name'] == name]
        pos = rows[['pos_x', 'pos_y', 'pos_z']].to_numpy() / 1000.0
        ax.plot(pos[:, 0], pos[:, 1], pos[:, 2], color=COLORS[i % len(COLORS)], label=name)

    if primary_radius:
        u, v = np.mgrid[0:2 * np.pi:24j, 0:np.pi:12j]
        r = primary_radius / 1000.0
        ax.plot_wireframe(r * np.cos(u) * np.sin(v), r * np.sin(u) * np.sin(v),
                          r * np.cos(v), color='#95a5a6', alpha=0.4, linewidth=0.5)

    ax.set_xlabel('X (km)')
    ax.set_ylabel('Y (km)')
    ax.set_zlabel('Z (km)')
    ax.set_title('Trajectories (primary-relative)')
    ax.legend(loc='upper left')
    return _save(fig, output_path)


def plot_altitude_history(telemetry: pd.DataFrame, output_path: str,
                          names: Optional[Iterable[str]] = None) -> str:
    """Altitude above the primary's surface versus time."""
    fig, ax = plt.subplots(figsize=(12, 6))
    for i, name in enumerate(_selected(telemetry, names)):
        rows = telemetry[telemetry['name'] == name]
        if (rows['primary'] < 0).all():
            continue
        ax.plot(rows.index / 3600.0, rows['altitude_m'] / 1000.0,
                color=COLORS[i % len(COLORS)], label=name)
    ax.set_xlabel('Time (h)')
    ax.set_ylabel('Altitude (km)')
    ax.set_title('Altitude History')
    ax.legend()
    return _save(fig, output_path)


def plot_mass_and_delta_v(telemetry: pd.DataFrame, output_path: str,
                          names: Optional[Iterable[str]] = None) -> str:
    """Mass and accumulated delta-V of objects that used any delta-V."""
    fig, (ax_mass, ax_dv) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)
    for i, name in enumerate(_selected(telemetry, names)):
        rows = telemetry[telemetry['name'] == name]
        if rows['used_delta_v'].max() <= 0.0:
            continue
        color = COLORS[i % len(COLORS)]
        ax_mass.plot(rows.index, rows['mass'], color=color, label=name)
        ax_dv.plot(rows.index, rows['used_delta_v'], color=color, label=name)

    ax_mass.set_ylabel('Mass (kg)')
    ax_mass.set_title('Mass and Delta-V Budget')
    ax_dv.set_ylabel('Used delta-V (m/s)')
    ax_dv.set_xlabel('Time (s)')
    if ax_mass.lines:
        ax_mass.legend()
    return _save(fig, output_path)


def generate_all_plots(telemetry: pd.DataFrame, output_dir: str,
                       primary_radius: Optional[float] = None) -> List[str]:
    """Write every telemetry plot into *output_dir*; returns the file paths."""
    os.makedirs(output_dir, exist_ok=True)
    if telemetry.empty:
        logger.warning("Empty telemetry, no plots generated.")
        return []

    return [
        plot_trajectories(telemetry, os.path.join(output_dir, 'trajectories.png'),
                          primary_radius=primary_radius),
        plot_altitude_history(telemetry, os.path.join(output_dir, 'altitude.png')),
        plot_mass_and_delta_v(telemetry, os.path.join(output_dir, 'mass_delta_v.png')),
    ]
