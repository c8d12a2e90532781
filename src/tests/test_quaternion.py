"""
===============================================================================
SPACESIM - Quaternion Test Suite
===============================================================================
Tests for the orientation quaternion: construction, normalization, the
Hamilton product, vector rotation and constant-rate propagation.

All floating-point comparisons use numpy.testing.assert_allclose with
explicit tolerances appropriate for double-precision arithmetic.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from spacesim.core.quaternion import Quaternion


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def identity_quat():
    """Return the identity quaternion [1, 0, 0, 0]."""
    return Quaternion.identity()


@pytest.fixture
def quat_90z():
    """Return a quaternion representing 90-degree rotation about Z axis."""
    return Quaternion.from_axis_angle(np.array([0.0, 0.0, 1.0]), np.pi / 2)


@pytest.fixture
def quat_45x():
    """Return a quaternion representing 45-degree rotation about X axis."""
    return Quaternion.from_axis_angle(np.array([1.0, 0.0, 0.0]), np.pi / 4)


# =============================================================================
# Test: Construction
# =============================================================================

class TestConstruction:

    def test_identity(self, identity_quat):
        assert_allclose(identity_quat.components, [1.0, 0.0, 0.0, 0.0], atol=1e-15)
        assert_allclose(identity_quat.rotation_angle, 0.0, atol=1e-15)

    def test_normalizes_input(self):
        q = Quaternion(2.0, 0.0, 0.0, 0.0)
        assert_allclose(q.components, [1.0, 0.0, 0.0, 0.0])

    def test_sign_convention(self):
        """q and -q are the same rotation; the stored scalar part is never negative."""
        q = Quaternion(-0.5, 0.5, 0.5, 0.5)
        assert q.w > 0.0
        assert q == Quaternion(0.5, -0.5, -0.5, -0.5)

    def test_zero_quaternion_rejected(self):
        with pytest.raises(ValueError):
            Quaternion(0.0, 0.0, 0.0, 0.0)

    def test_components_are_immutable(self, quat_90z):
        with pytest.raises(ValueError):
            quat_90z._q[0] = 0.0
        copy = quat_90z.components
        copy[0] = 0.0
        assert quat_90z.w != 0.0

    def test_axis_angle(self, quat_90z):
        half = np.sqrt(0.5)
        assert_allclose(quat_90z.components, [half, 0.0, 0.0, half], atol=1e-15)
        assert quat_90z.rotation_angle == pytest.approx(np.pi / 2)

    def test_zero_axis_rejected(self):
        with pytest.raises(ValueError):
            Quaternion.from_axis_angle([0.0, 0.0, 0.0], 1.0)

    def test_rotation_vector(self):
        q = Quaternion.from_rotation_vector([0.0, 0.3, 0.0])
        assert q == Quaternion.from_axis_angle([0.0, 1.0, 0.0], 0.3)
        assert Quaternion.from_rotation_vector(np.zeros(3)) == Quaternion.identity()


# =============================================================================
# Test: Algebra
# =============================================================================

class TestAlgebra:

    def test_conjugate_inverts(self, quat_45x):
        assert quat_45x * quat_45x.conjugate() == Quaternion.identity()

    def test_composition_adds_angles(self, quat_90z):
        half_turn = quat_90z * quat_90z
        assert half_turn == Quaternion.from_axis_angle([0.0, 0.0, 1.0], np.pi)

    def test_product_order(self, quat_90z, quat_45x):
        """self * other applies other first."""
        v = np.array([0.0, 1.0, 0.0])
        combined = (quat_90z * quat_45x).rotate_vector(v)
        sequential = quat_90z.rotate_vector(quat_45x.rotate_vector(v))
        assert_allclose(combined, sequential, atol=1e-15)

    def test_multiply_non_quaternion(self, quat_90z):
        with pytest.raises(TypeError):
            quat_90z * 2.0

    def test_rotate_vector(self, quat_90z):
        assert_allclose(quat_90z.rotate_vector([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-15)

    def test_rotation_preserves_length(self, quat_45x):
        v = np.array([3.0, -4.0, 12.0])
        assert np.linalg.norm(quat_45x.rotate_vector(v)) == pytest.approx(13.0)

    def test_angle_to(self, quat_90z, identity_quat):
        assert identity_quat.angle_to(quat_90z) == pytest.approx(np.pi / 2)
        assert quat_90z.angle_to(quat_90z) == pytest.approx(0.0, abs=1e-7)

    def test_hash_matches_equality(self):
        a = Quaternion(0.5, 0.5, 0.5, 0.5)
        b = Quaternion(-0.5, -0.5, -0.5, -0.5)
        assert a == b
        assert len({a, b}) == 1


# =============================================================================
# Test: Rotation over time
# =============================================================================

class TestPropagation:

    def test_rotated_about_inertial_axis(self, quat_45x):
        turned = quat_45x.rotated([0.0, 0.0, 1.0], np.pi / 2)
        expected = Quaternion.from_axis_angle([0.0, 0.0, 1.0], np.pi / 2) * quat_45x
        assert turned == expected

    def test_rotated_by_zero_is_same_object(self, quat_45x):
        assert quat_45x.rotated([0.0, 0.0, 1.0], 0.0) is quat_45x

    def test_propagate_constant_rate(self, identity_quat):
        omega = np.array([0.0, 0.0, 0.1])
        q = identity_quat
        for _ in range(10):
            q = q.propagate(omega, 0.5)
        assert q == Quaternion.from_axis_angle([0.0, 0.0, 1.0], 0.5)

    def test_full_turn_returns_to_start(self, quat_45x):
        omega = np.array([0.0, 2.0 * np.pi / 100.0, 0.0])
        q = quat_45x
        for _ in range(100):
            q = q.propagate(omega, 1.0)
        assert q == quat_45x
        assert_allclose(np.linalg.norm(q.components), 1.0, atol=1e-12)
