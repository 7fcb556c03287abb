"""
===============================================================================
ORBITDYN - Kalman Orbit Determination Test Suite
===============================================================================
Tests for the sequential orbit determination stack:

    - matrix decomposers and the Joseph form correction
    - convergence of the extended and semi-analytical estimators on
      noiseless position measurements of a Keplerian orbit
    - range measurements from ground stations with an estimated bias
    - three epochs of zero-noise ranges on a straight-line dynamics stub
    - measurement ordering, disabled measurements, configuration errors
    - estimation history tables
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from core.constants import EARTH_EQUATORIAL_RADIUS, EARTH_MU
from core.errors import ConfigurationError, EstimationNumericalError, MeasurementOrderError
from estimation.builders import AbstractPropagatorBuilder, KeplerianPropagatorBuilder
from estimation.covariance import ConstantProcessNoise, LinearProcessNoise
from estimation.decomposers import CholeskyDecomposer, MatrixDecomposer, QRDecomposer
from estimation.estimator import (KalmanEstimator, KalmanEstimatorBuilder,
                                  SemiAnalyticalKalmanEstimator)
from estimation.filter import ExtendedKalmanFilter
from estimation.measurements import GroundStation, Position, Range
from estimation.observer import EstimationHistory
from propagation.harvester import MatricesHarvester
from propagation.keplerian import KeplerianPropagator
from propagation.propagator import AbstractAnalyticalPropagator
from propagation.state import SpacecraftState

POSITION_OFFSET = np.array([100.0, -50.0, 30.0])
VELOCITY_OFFSET = np.array([0.1, -0.05, 0.02])
INITIAL_COVARIANCE = np.diag([200.0 ** 2] * 3 + [0.2 ** 2] * 3)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def truth():
    r = EARTH_EQUATORIAL_RADIUS + 600.0e3
    v = np.sqrt(EARTH_MU / r)
    inc = np.radians(63.0)
    state = SpacecraftState(0.0, [r, 0.0, 0.0], [0.0, v * np.cos(inc), v * np.sin(inc)],
                            mu=EARTH_MU)
    return KeplerianPropagator(state)


@pytest.fixture
def guess(truth):
    state = truth.get_initial_state()
    return SpacecraftState(0.0, state.position + POSITION_OFFSET,
                           state.velocity + VELOCITY_OFFSET, mu=EARTH_MU)


def position_measurements(truth, dates, sigma=1.0):
    return [Position(t, truth.propagate(t).position, sigma) for t in dates]


def position_error(propagator, truth):
    state = propagator.get_initial_state()
    return np.linalg.norm(state.position - truth.propagate(state.date).position)


# =============================================================================
# Linear dynamics stub
# =============================================================================

class StraightLinePropagator(AbstractAnalyticalPropagator):
    """Uniform rectilinear motion, no gravity."""

    def __init__(self, state):
        super().__init__()
        self.reset_initial_state(state)

    def _propagate_orbit(self, date):
        s0 = self.get_initial_state()
        return SpacecraftState(date, s0.position + (date - s0.date) * s0.velocity, s0.velocity,
                               mu=s0.mu, mass=s0.mass)

    def setup_matrices_computation(self, name, initial_stm=None, initial_jacobian=None):
        return StraightLineHarvester(name, self.get_initial_state().date)


class StraightLineHarvester(MatricesHarvester):

    def __init__(self, name, reference_date):
        super().__init__(name)
        self.reference_date = reference_date

    def get_state_transition_matrix(self, state):
        phi = np.eye(6)
        phi[0:3, 3:6] = (state.date - self.reference_date) * np.eye(3)
        return phi

    def get_parameters_jacobian(self, state):
        return None

    def get_jacobians_columns_names(self):
        return []


class StraightLineBuilder(AbstractPropagatorBuilder):

    def _create_propagator(self, state):
        return StraightLinePropagator(state)


class FailingDecomposer(MatrixDecomposer):
    """Cholesky for the first *successes* solves, singular afterwards."""

    def __init__(self, successes=0):
        self.successes = successes

    def solve(self, matrix, rhs):
        if self.successes > 0:
            self.successes -= 1
            return CholeskyDecomposer().solve(matrix, rhs)
        raise np.linalg.LinAlgError("forced failure")


def estimation_snapshot(estimator):
    return {
        'state': estimator.get_physical_estimated_state(),
        'covariance': estimator.get_physical_estimated_covariance_matrix(),
        'stm': estimator.get_physical_state_transition_matrix(),
        'jacobian': estimator.get_physical_measurement_jacobian(),
        'innovation': estimator.get_physical_innovation_covariance_matrix(),
        'gain': estimator.get_physical_kalman_gain(),
    }


def assert_same_snapshot(before, after):
    for key, value in before.items():
        assert_allclose(after[key], value, rtol=0.0, atol=0.0, err_msg=key)


# =============================================================================
# Linear algebra
# =============================================================================

class TestDecomposers:

    @pytest.mark.parametrize("decomposer", [CholeskyDecomposer(), QRDecomposer()])
    def test_solve(self, decomposer):
        matrix = np.array([[4.0, 1.0, 0.5], [1.0, 3.0, 0.2], [0.5, 0.2, 2.0]])
        rhs = np.array([[1.0, 0.0], [2.0, 1.0], [3.0, -1.0]])
        assert_allclose(decomposer.solve(matrix, rhs), np.linalg.solve(matrix, rhs), atol=1e-12)

    @pytest.mark.parametrize("decomposer", [CholeskyDecomposer(), QRDecomposer()])
    def test_singular(self, decomposer):
        with pytest.raises(np.linalg.LinAlgError):
            decomposer.solve(np.array([[1.0, 1.0], [1.0, 1.0]]), np.eye(2))

    def test_cholesky_rejects_indefinite(self):
        with pytest.raises(np.linalg.LinAlgError):
            CholeskyDecomposer().solve(np.array([[1.0, 2.0], [2.0, 1.0]]), np.eye(2))


class TestExtendedKalmanFilter:

    def test_scalar_correction(self):
        kalman_filter = ExtendedKalmanFilter(CholeskyDecomposer())
        state, covariance = kalman_filter.correct(np.array([0.0]), np.array([[1.0]]),
                                                  np.array([[1.0]]), np.array([2.0]),
                                                  np.array([[1.0]]))
        assert_allclose(state, [1.0])
        assert_allclose(covariance, [[0.5]])
        assert_allclose(kalman_filter.gain, [[0.5]])
        assert_allclose(kalman_filter.innovation_covariance, [[2.0]])

    def test_prediction(self):
        phi = np.array([[1.0, 10.0], [0.0, 1.0]])
        predicted = ExtendedKalmanFilter.predict(np.eye(2), phi, 0.1 * np.eye(2))
        assert_allclose(predicted, phi @ phi.T + 0.1 * np.eye(2))

    def test_corrected_covariance_is_symmetric(self):
        rng = np.random.default_rng(3)
        a = rng.normal(size=(4, 4))
        P = a @ a.T + np.eye(4)
        H = rng.normal(size=(2, 4))
        _, corrected = ExtendedKalmanFilter(QRDecomposer()).correct(
            np.zeros(4), P, H, np.ones(2), np.eye(2))
        assert_allclose(corrected, corrected.T, atol=0.0)
        assert np.all(np.linalg.eigvalsh(corrected) > 0.0)

    def test_singular_innovation(self):
        kalman_filter = ExtendedKalmanFilter(CholeskyDecomposer())
        with pytest.raises(EstimationNumericalError):
            kalman_filter.correct(np.zeros(2), np.zeros((2, 2)), np.eye(2), np.ones(2),
                                  np.zeros((2, 2)))
        assert kalman_filter.innovation_covariance is None
        assert kalman_filter.gain is None


# =============================================================================
# Estimators
# =============================================================================

class TestKalmanEstimator:

    def make_estimator(self, guess, decomposer=None):
        builder = KeplerianPropagatorBuilder(guess, 10.0)
        return (KalmanEstimatorBuilder()
                .decomposer(decomposer or CholeskyDecomposer())
                .add_propagation_configuration(builder, ConstantProcessNoise(INITIAL_COVARIANCE))
                .build())

    def test_initial_estimate(self, guess):
        estimator = self.make_estimator(guess)
        assert estimator.get_estimated_names() == ["x", "y", "z", "vx", "vy", "vz"]
        assert_allclose(estimator.get_physical_estimated_state(), guess.to_array())
        assert_allclose(estimator.get_physical_estimated_covariance_matrix(), INITIAL_COVARIANCE,
                        rtol=1e-12)
        assert estimator.get_current_measurement_number() == 0

    def test_failed_correction_keeps_estimate(self, truth, guess):
        estimator = self.make_estimator(guess, FailingDecomposer())
        with pytest.raises(EstimationNumericalError):
            estimator.process_measurement(position_measurements(truth, [60.0])[0])
        assert estimator.get_current_measurement_number() == 0
        assert estimator.get_current_date() == 0.0
        assert_allclose(estimator.get_physical_estimated_state(), guess.to_array())

    def test_failed_correction_keeps_last_step(self, truth, guess):
        estimator = self.make_estimator(guess, FailingDecomposer(successes=1))
        first, second = position_measurements(truth, [60.0, 120.0])
        estimator.process_measurement(first)
        before = estimation_snapshot(estimator)
        predicted = estimator.get_predicted_measurement()
        corrected_states = estimator.get_corrected_spacecraft_states()

        with pytest.raises(EstimationNumericalError):
            estimator.process_measurement(second)
        assert_same_snapshot(before, estimation_snapshot(estimator))
        assert estimator.get_predicted_measurement() is predicted
        assert estimator.get_corrected_spacecraft_states()[0] is corrected_states[0]
        assert estimator.get_current_date() == 60.0
        assert estimator.get_current_measurement_number() == 1

    @pytest.mark.parametrize("decomposer", [CholeskyDecomposer(), QRDecomposer()])
    def test_position_convergence(self, truth, guess, decomposer):
        estimator = self.make_estimator(guess, decomposer)
        measurements = position_measurements(truth, np.arange(60.0, 1201.0, 60.0))
        initial_sigma = np.sqrt(np.diag(estimator.get_physical_estimated_covariance_matrix()))

        propagators = estimator.process_measurements(measurements)

        assert estimator.get_current_measurement_number() == len(measurements)
        assert estimator.get_current_date() == 1200.0
        assert position_error(propagators[0], truth) < 1.0
        state = propagators[0].get_initial_state()
        assert np.linalg.norm(state.velocity - truth.propagate(1200.0).velocity) < 0.01
        sigma = np.sqrt(np.diag(estimator.get_physical_estimated_covariance_matrix()))
        assert np.all(sigma < initial_sigma)
        assert_allclose(estimator.get_corrected_measurement().residuals, np.zeros(3), atol=1.0)

    def test_physical_matrices_shapes(self, truth, guess):
        estimator = self.make_estimator(guess)
        estimator.process_measurement(position_measurements(truth, [60.0])[0])
        assert estimator.get_physical_state_transition_matrix().shape == (6, 6)
        assert estimator.get_physical_measurement_jacobian().shape == (3, 6)
        assert_allclose(estimator.get_physical_measurement_jacobian()[:, 0:3], np.eye(3),
                        atol=1e-12)
        assert estimator.get_physical_kalman_gain().shape == (6, 3)
        assert estimator.get_physical_innovation_covariance_matrix().shape == (3, 3)

    def test_out_of_order_measurement(self, truth, guess):
        estimator = self.make_estimator(guess)
        later, earlier = position_measurements(truth, [120.0, 60.0])
        estimator.process_measurement(later)
        with pytest.raises(MeasurementOrderError):
            estimator.process_measurement(earlier)

    def test_disabled_measurement_only_predicts(self, truth, guess):
        estimator = self.make_estimator(guess)
        measurement = position_measurements(truth, [300.0])[0]
        measurement.enabled = False
        estimator.process_measurement(measurement)
        expected = KeplerianPropagator(guess).propagate(300.0)
        assert_allclose(estimator.get_physical_estimated_state()[0:3], expected.position,
                        atol=1e-6)
        assert estimator.get_current_measurement_number() == 1

    def test_builder_requires_configuration(self):
        with pytest.raises(ConfigurationError):
            KalmanEstimatorBuilder().build()

    def test_covariance_shape_mismatch(self, guess):
        builder = KeplerianPropagatorBuilder(guess, 10.0)
        with pytest.raises(ConfigurationError):
            KalmanEstimator(CholeskyDecomposer(), [builder],
                            [ConstantProcessNoise(np.eye(3))])

    def test_measurement_for_unknown_satellite(self, truth, guess):
        estimator = self.make_estimator(guess)
        observed = Position(60.0, truth.propagate(60.0).position, 1.0, satellite_index=1)
        with pytest.raises(ConfigurationError):
            estimator.process_measurement(observed)


class TestRangeEstimation:

    STATIONS = [("north", 60.0, 10.0), ("equator", 0.0, 30.0), ("south", -40.0, 20.0)]
    TRUE_BIAS = 10.0

    def test_orbit_and_bias(self, truth, guess):
        stations = [GroundStation(name, lat, lon, bias_scale=1.0) for name, lat, lon in self.STATIONS]
        biased = stations[1]
        biased.range_bias_driver.selected = True

        measurements = []
        for t in np.arange(30.0, 1801.0, 30.0):
            position = truth.propagate(t).position
            for station in stations:
                station_r, _ = station.position_velocity(t)
                value = np.linalg.norm(position - station_r)
                if station is biased:
                    value += self.TRUE_BIAS
                measurements.append(Range(station, t, value, 1.0))

        builder = KeplerianPropagatorBuilder(guess, 10.0)
        estimator = (KalmanEstimatorBuilder()
                     .add_propagation_configuration(
                         builder, LinearProcessNoise(INITIAL_COVARIANCE, np.zeros(6)))
                     .estimated_measurements_parameters(
                         [s.range_bias_driver for s in stations],
                         ConstantProcessNoise([[20.0 ** 2]]))
                     .build())
        assert estimator.get_estimated_names()[-1] == "equator-range-bias"

        propagators = estimator.process_measurements(measurements)

        assert position_error(propagators[0], truth) < 5.0
        assert abs(biased.range_bias_driver.value - self.TRUE_BIAS) < 3.0
        assert stations[0].range_bias_driver.value == 0.0

    def test_bias_estimation_requires_noise_provider(self, guess):
        station = GroundStation("s", 0.0, 0.0)
        station.range_bias_driver.selected = True
        builder = KeplerianPropagatorBuilder(guess, 10.0)
        with pytest.raises(ConfigurationError):
            KalmanEstimator(CholeskyDecomposer(), [builder],
                            [ConstantProcessNoise(INITIAL_COVARIANCE)],
                            [station.range_bias_driver], None)


class TestLinearDynamicsRanges:

    STATIONS = [("a", 0.0, 0.0), ("b", 45.0, 0.0), ("c", 0.0, 45.0)]

    def test_three_range_epochs_converge(self):
        truth = SpacecraftState(0.0, [7.0e6, 0.0, 0.0], [0.0, 7.5e3, 0.0], mu=EARTH_MU)
        guess = SpacecraftState(0.0, truth.position + [5.0, -3.0, 4.0],
                                truth.velocity + [0.05, -0.02, 0.01], mu=EARTH_MU)
        stations = [GroundStation(name, lat, lon) for name, lat, lon in self.STATIONS]
        reference = StraightLinePropagator(truth)

        measurements = []
        for t in (0.0, 10.0, 20.0):
            position = reference.propagate(t).position
            for station in stations:
                station_r, _ = station.position_velocity(t)
                measurements.append(Range(station, t, np.linalg.norm(position - station_r), 1.0))

        covariance = np.diag([10.0 ** 2] * 3 + [0.1 ** 2] * 3)
        estimator = KalmanEstimator(CholeskyDecomposer(), [StraightLineBuilder(guess, 1.0)],
                                    [ConstantProcessNoise(covariance)])
        propagators = estimator.process_measurements(measurements)

        final = propagators[0].get_initial_state()
        expected = reference.propagate(20.0)
        error = np.concatenate([final.position - expected.position,
                                final.velocity - expected.velocity])
        sigma = np.sqrt(np.diag(estimator.get_physical_estimated_covariance_matrix()))
        assert final.date == 20.0
        assert np.all(np.abs(error) < 3.0 * sigma)
        assert np.linalg.norm(error[0:3]) < 1.0
        assert np.all(sigma < np.sqrt(np.diag(covariance)))


class TestSemiAnalyticalEstimator:

    def test_position_convergence(self, truth, guess):
        builder = KeplerianPropagatorBuilder(guess, 10.0)
        estimator = SemiAnalyticalKalmanEstimator(CholeskyDecomposer(), builder,
                                                  ConstantProcessNoise(INITIAL_COVARIANCE))
        measurements = position_measurements(truth, np.arange(60.0, 1201.0, 60.0))
        propagator = estimator.process_measurements(measurements)

        assert propagator.get_initial_state().date == 1200.0
        assert position_error(propagator, truth) < 1.0

    def test_nominal_trajectory_is_kept(self, truth, guess):
        builder = KeplerianPropagatorBuilder(guess, 10.0)
        estimator = SemiAnalyticalKalmanEstimator(CholeskyDecomposer(), builder,
                                                  ConstantProcessNoise(INITIAL_COVARIANCE))
        nominal = estimator._model.get_nominal_propagator()
        for measurement in position_measurements(truth, [60.0, 120.0]):
            estimator.process_measurement(measurement)
        assert nominal is estimator._model.get_nominal_propagator()
        assert_allclose(nominal.get_initial_state().position, guess.position)
        assert_allclose(estimator._model.get_nominal_state().position,
                        KeplerianPropagator(guess).propagate(120.0).position, atol=1e-6)

    def test_failed_correction_keeps_last_step(self, truth, guess):
        builder = KeplerianPropagatorBuilder(guess, 10.0)
        estimator = SemiAnalyticalKalmanEstimator(FailingDecomposer(successes=1), builder,
                                                  ConstantProcessNoise(INITIAL_COVARIANCE))
        first, second, third = position_measurements(truth, [60.0, 120.0, 180.0])
        estimator.process_measurement(first)
        before = estimation_snapshot(estimator)
        predicted = estimator.get_predicted_measurement()

        with pytest.raises(EstimationNumericalError):
            estimator.process_measurement(second)
        assert_same_snapshot(before, estimation_snapshot(estimator))
        assert estimator.get_predicted_measurement() is predicted
        assert estimator.get_current_date() == 60.0

        # the deviation still refers to t = 60 s, the next step spans 60 -> 180 s
        estimator._model._filter.decomposer = CholeskyDecomposer()
        estimator.process_measurement(third)
        assert estimator.get_current_measurement_number() == 2
        state = estimator.get_corrected_spacecraft_states()[0]
        assert np.linalg.norm(state.position - truth.propagate(180.0).position) < 10.0

    def test_requires_builder(self):
        with pytest.raises(ConfigurationError):
            SemiAnalyticalKalmanEstimator(CholeskyDecomposer(), None, None)


# =============================================================================
# Observer
# =============================================================================

class TestEstimationHistory:

    def test_rows_and_csv(self, truth, guess, tmp_path):
        builder = KeplerianPropagatorBuilder(guess, 10.0)
        estimator = KalmanEstimator(CholeskyDecomposer(), [builder],
                                    [ConstantProcessNoise(INITIAL_COVARIANCE)])
        history = EstimationHistory()
        estimator.set_observer(history)
        estimator.process_measurements(position_measurements(truth, [60.0, 120.0, 180.0]))

        assert len(history) == 3
        frame = history.to_dataframe()
        assert list(frame['number']) == [1, 2, 3]
        assert list(frame['date']) == [60.0, 120.0, 180.0]
        assert set(frame['measurement']) == {'Position'}
        for column in ('x', 'sigma_x', 'residual_0', 'corrected_residual_2'):
            assert column in frame.columns
        assert frame['sigma_x'].iloc[-1] < frame['sigma_x'].iloc[0]

        path = history.to_csv(tmp_path / 'out' / 'history.csv')
        assert path.exists()
        assert path.read_text().splitlines()[0].startswith('number,date')
