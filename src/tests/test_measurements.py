"""
===============================================================================
ORBITDYN - Measurements Test Suite
===============================================================================
Tests for the observed measurement types (Position, PV, Range) and their
theoretical evaluation: values, residuals, state derivatives against
finite differences and range bias derivatives.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from core.constants import EARTH_EQUATORIAL_RADIUS, EARTH_MU
from estimation.measurements import PV, GroundStation, Position, Range
from propagation.state import SpacecraftState


@pytest.fixture
def state():
    return SpacecraftState(0.0, [7.0e6, 1.0e5, -2.0e5], [100.0, 7.4e3, 1.0e3], mu=EARTH_MU)


@pytest.fixture
def station():
    return GroundStation("equator", 0.0, 0.0, 0.0, range_bias=12.0)


class TestPosition:

    def test_value_and_residual(self, state):
        observed = state.position + np.array([1.0, -2.0, 3.0])
        estimated = Position(0.0, observed, 5.0).estimate(0, 1, [state])
        assert_allclose(estimated.estimated_value, state.position)
        assert_allclose(estimated.residuals, [1.0, -2.0, 3.0])
        assert_allclose(estimated.get_state_derivatives(0)[:, 0:3], np.eye(3))
        assert_allclose(estimated.get_state_derivatives(0)[:, 3:6], np.zeros((3, 3)))

    def test_sigma_broadcast(self, state):
        measurement = Position(0.0, state.position, 5.0)
        assert_allclose(measurement.theoretical_standard_deviation, [5.0, 5.0, 5.0])
        assert measurement.dimension == 3

    @pytest.mark.parametrize("sigma", [0.0, -1.0, [1.0, 0.0, 1.0]])
    def test_invalid_sigma(self, state, sigma):
        with pytest.raises(ValueError):
            Position(0.0, state.position, sigma)

    def test_observed_value_is_read_only(self, state):
        measurement = Position(0.0, state.position, 1.0)
        with pytest.raises(ValueError):
            measurement.observed_value[0] = 0.0

    def test_enabled_flag(self, state):
        measurement = Position(0.0, state.position, 1.0)
        assert measurement.enabled
        measurement.enabled = False
        assert not measurement.enabled


class TestPV:

    def test_identity_jacobian(self, state):
        measurement = PV(0.0, state.position, state.velocity, 10.0, 0.01)
        estimated = measurement.estimate(0, 1, [state])
        assert_allclose(estimated.residuals, np.zeros(6))
        assert_allclose(estimated.get_state_derivatives(0), np.eye(6))
        assert_allclose(measurement.theoretical_standard_deviation, [10.0] * 3 + [0.01] * 3)


class TestRange:

    def test_value_includes_bias(self, state, station):
        estimated = Range(station, 0.0, 0.0, 1.0).estimate(0, 1, [state])
        geometric = np.linalg.norm(state.position - np.array([EARTH_EQUATORIAL_RADIUS, 0.0, 0.0]))
        assert estimated.estimated_value[0] == pytest.approx(geometric + 12.0, rel=1e-12)

    def test_state_derivatives(self, state, station):
        measurement = Range(station, 0.0, 0.0, 1.0)
        jacobian = measurement.estimate(0, 1, [state]).get_state_derivatives(0)
        step = 1.0
        for j in range(3):
            dr = np.zeros(3)
            dr[j] = step
            plus = SpacecraftState(0.0, state.position + dr, state.velocity, mu=EARTH_MU)
            minus = SpacecraftState(0.0, state.position - dr, state.velocity, mu=EARTH_MU)
            fd = (measurement.estimate(0, 1, [plus]).estimated_value[0]
                  - measurement.estimate(0, 1, [minus]).estimated_value[0]) / (2.0 * step)
            assert jacobian[0, j] == pytest.approx(fd, abs=1e-8)
        assert_allclose(jacobian[0, 3:6], np.zeros(3))

    def test_bias_derivative(self, state, station):
        measurement = Range(station, 0.0, 0.0, 1.0)
        estimated = measurement.estimate(0, 1, [state])
        assert measurement.parameter_drivers == [station.range_bias_driver]
        assert_allclose(estimated.get_parameter_derivatives(station.range_bias_driver), [1.0])

    def test_station_moves_with_earth(self, station):
        r0, v0 = station.position_velocity(0.0)
        r1, _ = station.position_velocity(3600.0)
        assert np.linalg.norm(r1) == pytest.approx(np.linalg.norm(r0))
        assert not np.allclose(r0, r1)
        assert np.dot(r0, v0) == pytest.approx(0.0, abs=1e-6)

    def test_unknown_driver_has_zero_derivative(self, state, station):
        other = GroundStation("other", 10.0, 20.0)
        estimated = Range(station, 0.0, 0.0, 1.0).estimate(0, 1, [state])
        assert_allclose(estimated.get_parameter_derivatives(other.range_bias_driver), [0.0])
