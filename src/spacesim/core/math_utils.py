"""
===============================================================================
SPACESIM - Mathematical Helpers
===============================================================================
Stumpff functions used by the universal-variable formulations, together with
small vector and angle helpers shared by the solvers.

Stumpff functions:

    C(z) = (1 - cos(sqrt(z))) / z              z > 0
         = (cosh(sqrt(-z)) - 1) / (-z)         z < 0
    S(z) = (sqrt(z) - sin(sqrt(z))) / z^(3/2)  z > 0
         = (sinh(sqrt(-z)) - sqrt(-z)) / (-z)^(3/2)  z < 0

Near z = 0 both are evaluated with their Maclaurin series to avoid the
catastrophic cancellation of the closed forms.

References
----------
    [1] Bate, Mueller & White, "Fundamentals of Astrodynamics", Ch. 4-5.
    [2] Curtis, "Orbital Mechanics for Engineering Students", Sec. 3.7.
===============================================================================
"""

import numpy as np

from spacesim.core.constants import STUMPFF_SERIES_LIMIT


# =============================================================================
# STUMPFF FUNCTIONS
# =============================================================================

def stumpff_c(z: float) -> float:
    """Stumpff function C(z)."""
    if abs(z) < STUMPFF_SERIES_LIMIT:
        return 1.0 / 2.0 - z / 24.0 + z * z / 720.0 - z * z * z / 40320.0
    if z > 0.0:
        return (1.0 - np.cos(np.sqrt(z))) / z
    return (1.0 - np.cosh(np.sqrt(-z))) / z


def stumpff_s(z: float) -> float:
    """Stumpff function S(z)."""
    if abs(z) < STUMPFF_SERIES_LIMIT:
        return 1.0 / 6.0 - z / 120.0 + z * z / 5040.0 - z * z * z / 362880.0
    if z > 0.0:
        sz = np.sqrt(z)
        return (sz - np.sin(sz)) / (z * sz)
    sz = np.sqrt(-z)
    return (np.sinh(sz) - sz) / ((-z) * sz)


def stumpff_derivatives(z: float, c: float, s: float):
    """
    Derivatives dC/dz and dS/dz.

    The closed forms divide by 2z, so a truncated series is used close to
    zero instead.

    Returns
    -------
    tuple of (dC/dz, dS/dz)
    """
    if abs(z) < STUMPFF_SERIES_LIMIT:
        cp = (-1.0 / 24.0 + 2.0 * z / 720.0 - 3.0 * z * z / 40320.0
              + 4.0 * z ** 3 / 3628800.0)
        sp = (-1.0 / 120.0 + 2.0 * z / 5040.0 - 3.0 * z * z / 362880.0
              + 4.0 * z ** 3 / 39916800.0)
        return cp, sp
    cp = (1.0 - z * s - 2.0 * c) / (2.0 * z)
    sp = (c - 3.0 * s) / (2.0 * z)
    return cp, sp


# =============================================================================
# VECTOR AND ANGLE HELPERS
# =============================================================================

def normalized(v: np.ndarray) -> np.ndarray:
    """Unit vector along *v*; the zero vector is returned unchanged."""
    v = np.asarray(v, dtype=np.float64)
    norm = np.linalg.norm(v)
    if norm == 0.0:
        return v.copy()
    return v / norm


def angle_between(u: np.ndarray, v: np.ndarray) -> float:
    """Unsigned angle between two vectors in [0, pi] (rad)."""
    return float(np.arctan2(np.linalg.norm(np.cross(u, v)), np.dot(u, v)))
