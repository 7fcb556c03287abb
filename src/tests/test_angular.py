"""
===============================================================================
ORBITDYN - Quaternion and Angular Coordinates Test Suite
===============================================================================
Tests for the scalar-first quaternion (composition order, exp / log maps,
DCM consistency), linear shifts of angular coordinates and Hermite
interpolation of rotations with each derivatives filter.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from core.angular import (AngularCoordinates, AngularDerivativesFilter,
                          TimeStampedAngularCoordinates)
from core.quaternion import Quaternion


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def spin():
    """Constant body rate about a fixed axis (rad/s)."""
    return np.array([0.01, -0.02, 0.015])


def rotation_at(t, spin, q0=None):
    q0 = q0 if q0 is not None else Quaternion.identity()
    return q0 * Quaternion.from_rotation_vector(spin * t)


# =============================================================================
# Quaternion
# =============================================================================

class TestQuaternion:

    def test_rotate_about_z(self):
        q = Quaternion.from_axis_angle(np.array([0.0, 0.0, 1.0]), np.pi / 2)
        assert_allclose(q.rotate_vector([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-15)

    def test_composition_order(self):
        qa = Quaternion.from_axis_angle([0.0, 0.0, 1.0], np.pi / 2)
        qb = Quaternion.from_axis_angle([1.0, 0.0, 0.0], np.pi / 2)
        v = np.array([0.0, 1.0, 0.0])
        # qa * qb applies qb first
        assert_allclose((qa * qb).rotate_vector(v), qa.rotate_vector(qb.rotate_vector(v)),
                        atol=1e-15)

    def test_dcm_matches_rotation(self):
        q = Quaternion.from_rotation_vector([0.3, -0.2, 0.5])
        v = np.array([1.0, 2.0, 3.0])
        assert_allclose(q.to_dcm() @ v, q.rotate_vector(v), atol=1e-14)
        assert_allclose(Quaternion.from_dcm(q.to_dcm()).components, q.components, atol=1e-12)

    @pytest.mark.parametrize("rot_vec", [
        [1e-10, 0.0, 0.0],
        [0.1, 0.2, -0.3],
        [0.0, 3.0, 0.0],
    ])
    def test_exp_log(self, rot_vec):
        q = Quaternion.from_rotation_vector(rot_vec)
        assert_allclose(q.to_rotation_vector(), rot_vec, atol=1e-14)

    def test_inverse_rotation(self):
        q = Quaternion.from_rotation_vector([0.4, 0.1, -0.7])
        v = np.array([-1.0, 0.5, 2.0])
        assert_allclose(q.apply_inverse_to(q.rotate_vector(v)), v, atol=1e-14)

    def test_angle_to(self):
        q1 = Quaternion.identity()
        q2 = Quaternion.from_axis_angle([0.0, 1.0, 0.0], 0.25)
        assert q1.angle_to(q2) == pytest.approx(0.25, abs=1e-12)


# =============================================================================
# Angular coordinates
# =============================================================================

class TestShift:

    def test_constant_rate_shift(self, spin):
        ac = AngularCoordinates(Quaternion.identity(), spin)
        shifted = ac.shifted_by(20.0)
        assert shifted.rotation.angle_to(rotation_at(20.0, spin)) < 1e-12
        assert_allclose(shifted.rotation_rate, spin)

    def test_time_stamped_shift_moves_date(self, spin):
        ac = TimeStampedAngularCoordinates(100.0, Quaternion.identity(), spin)
        assert ac.shifted_by(-5.0).date == 95.0


class TestInterpolation:

    @pytest.mark.parametrize("angular_filter", list(AngularDerivativesFilter))
    def test_reproduces_constant_rate(self, spin, angular_filter):
        q0 = Quaternion.from_rotation_vector([0.2, 0.1, -0.4])
        samples = [TimeStampedAngularCoordinates(t, rotation_at(t, spin, q0), spin)
                   for t in (0.0, 30.0, 60.0)]
        result = TimeStampedAngularCoordinates.interpolate(42.0, angular_filter, samples)
        assert result.date == 42.0
        assert result.rotation.angle_to(rotation_at(42.0, spin, q0)) < 1e-9
        if angular_filter is not AngularDerivativesFilter.USE_R:
            assert_allclose(result.rotation_rate, spin, atol=1e-10)

    def test_matches_samples_at_nodes(self, spin):
        q_start = Quaternion.identity()
        q_end = Quaternion.from_rotation_vector([0.0, 0.0, 0.8])
        samples = [TimeStampedAngularCoordinates(0.0, q_start, spin),
                   TimeStampedAngularCoordinates(60.0, q_end, np.zeros(3))]
        for sample in samples:
            result = TimeStampedAngularCoordinates.interpolate(
                sample.date, AngularDerivativesFilter.USE_RR, samples)
            assert result.rotation.angle_to(sample.rotation) < 1e-10
            assert_allclose(result.rotation_rate, sample.rotation_rate, atol=1e-10)

    def test_single_sample_is_constant(self):
        q = Quaternion.from_rotation_vector([0.1, 0.0, 0.0])
        sample = TimeStampedAngularCoordinates(0.0, q)
        result = TimeStampedAngularCoordinates.interpolate(
            10.0, AngularDerivativesFilter.USE_R, [sample])
        assert result.rotation.angle_to(q) < 1e-12

    def test_requires_samples(self):
        with pytest.raises(ValueError):
            TimeStampedAngularCoordinates.interpolate(0.0, AngularDerivativesFilter.USE_R, [])
