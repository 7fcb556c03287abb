"""
===============================================================================
ORBITDYN - Propagation Test Suite
===============================================================================
Tests for the propagators and their event handling loop:

    - Keplerian propagation (period closure, backward / forward symmetry)
    - event detection (date, apsides, eclipse), stop and continue handlers,
      chronological ordering, backward propagation
    - fixed step handlers and additional state providers
    - numerical propagation against the Keplerian flow, state transition
      matrix against the two-body finite differences
    - generated ephemerides and aggregate bounded propagators
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from core.constants import EARTH_EQUATORIAL_RADIUS, EARTH_MU
from core.errors import ConfigurationError, PropagationError
from core.frames import EME2000
from core.orbits import keplerian_to_cartesian
from propagation.additional import FunctionalStateProvider
from propagation.ephemeris import AggregateBoundedPropagator, Ephemeris
from propagation.events.detectors import (ApsideDetector, DateDetector, EclipseDetector,
                                          FunctionalDetector)
from propagation.events.handlers import ContinueOnEvent, RecordAndContinue
from propagation.integrators import DormandPrince54Integrator
from propagation.keplerian import KeplerianPropagator
from propagation.numerical import NumericalPropagator
from propagation.state import SpacecraftState


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def leo_state():
    """Circular 700 km orbit, 98 deg inclination."""
    r, v = keplerian_to_cartesian(EARTH_EQUATORIAL_RADIUS + 700.0e3, 0.0, np.radians(98.0),
                                  np.radians(30.0), 0.0, 0.0, EARTH_MU)
    return SpacecraftState(0.0, r, v, frame=EME2000, mu=EARTH_MU, mass=800.0)


@pytest.fixture
def eccentric_state():
    """e = 0.1, true anomaly 0.5 rad (between perigee and apogee)."""
    r, v = keplerian_to_cartesian(8000.0e3, 0.1, np.radians(40.0), 0.0, 0.0, 0.5, EARTH_MU)
    return SpacecraftState(0.0, r, v, frame=EME2000, mu=EARTH_MU)


def numerical_propagator(state):
    integrator = DormandPrince54Integrator(1.0e-3, 300.0, abs_tol=1.0e-6, rel_tol=1.0e-12)
    propagator = NumericalPropagator(integrator)
    propagator.reset_initial_state(state)
    return propagator


# =============================================================================
# Keplerian propagation
# =============================================================================

class TestKeplerian:

    def test_period_closure(self, eccentric_state):
        period = eccentric_state.keplerian_period
        final = KeplerianPropagator(eccentric_state).propagate(period)
        assert_allclose(final.position, eccentric_state.position, atol=1e-3)
        assert_allclose(final.velocity, eccentric_state.velocity, atol=1e-6)

    def test_forward_backward(self, leo_state):
        propagator = KeplerianPropagator(leo_state)
        later = propagator.propagate(2500.0)
        back = KeplerianPropagator(later).propagate(0.0)
        assert_allclose(back.position, leo_state.position, atol=1e-3)

    def test_propagate_from_start(self, leo_state):
        propagator = KeplerianPropagator(leo_state)
        direct = propagator.propagate(1200.0)
        from_start = propagator.propagate(600.0, 1200.0)
        assert_allclose(from_start.position, direct.position, atol=1e-6)

    def test_default_attitude_is_inertial(self, leo_state):
        final = KeplerianPropagator(leo_state).propagate(100.0)
        assert final.attitude is not None
        assert final.attitude.rotation.rotation_angle < 1e-14


# =============================================================================
# Events
# =============================================================================

class TestEvents:

    def test_date_detector_stops(self, leo_state):
        propagator = KeplerianPropagator(leo_state)
        propagator.add_event_detector(DateDetector(500.0))
        final = propagator.propagate(2000.0)
        assert final.date == pytest.approx(500.0, abs=1e-9)

    def test_date_detector_backward(self, leo_state):
        start = KeplerianPropagator(leo_state).propagate(2000.0)
        propagator = KeplerianPropagator(start)
        propagator.add_event_detector(DateDetector(700.0))
        final = propagator.propagate(0.0)
        assert final.date == pytest.approx(700.0, abs=1e-9)

    def test_multiple_dates_alternate(self, leo_state):
        recorder = RecordAndContinue()
        propagator = KeplerianPropagator(leo_state)
        propagator.add_event_detector(DateDetector(100.0, 200.0, 300.0, max_check=50.0,
                                                   handler=recorder))
        final = propagator.propagate(400.0)
        assert final.date == 400.0
        assert_allclose([e[0] for e in recorder.events], [100.0, 200.0, 300.0], atol=1e-9)
        assert [e[1] for e in recorder.events] == [True, False, True]

    def test_apsides(self, eccentric_state):
        recorder = RecordAndContinue()
        propagator = KeplerianPropagator(eccentric_state)
        propagator.add_event_detector(ApsideDetector(eccentric_state, handler=recorder))
        propagator.propagate(eccentric_state.keplerian_period)
        assert len(recorder.events) == 2
        apogee, perigee = recorder.events
        # r.v decreases through the apogee and increases through the perigee
        assert not apogee[1]
        assert perigee[1]
        assert apogee[0] < perigee[0]
        assert np.linalg.norm(apogee[2].position) == pytest.approx(8000.0e3 * 1.1, rel=1e-8)
        assert np.linalg.norm(perigee[2].position) == pytest.approx(8000.0e3 * 0.9, rel=1e-8)

    def test_chronological_order(self, leo_state):
        log = []

        class Logger(ContinueOnEvent):
            def __init__(self, label):
                self.label = label

            def event_occurred(self, state, detector, increasing):
                log.append((self.label, state.date))
                return super().event_occurred(state, detector, increasing)

        propagator = KeplerianPropagator(leo_state)
        propagator.add_event_detector(DateDetector(900.0, handler=Logger('late')))
        propagator.add_event_detector(DateDetector(300.0, handler=Logger('early')))
        propagator.propagate(1000.0)
        assert [label for label, _ in log] == ['early', 'late']

    def test_functional_detector_continues(self, leo_state):
        propagator = KeplerianPropagator(leo_state)
        propagator.add_event_detector(FunctionalDetector(lambda s: s.date - 100.0))
        assert propagator.propagate(500.0).date == 500.0

    @pytest.mark.parametrize("slope", [1.0, -1.0])
    def test_root_on_leg_boundary_reported_once(self, leo_state, slope):
        recorder = RecordAndContinue()
        propagator = KeplerianPropagator(leo_state)
        propagator.add_event_detector(FunctionalDetector(lambda s: slope * (s.date - 300.0),
                                                         max_check=60.0, handler=recorder))
        propagator.propagate(300.0)
        propagator.propagate(300.0, 600.0)
        assert len(recorder.events) == 1
        date, increasing, _ = recorder.events[0]
        assert date == 300.0
        assert increasing == (slope > 0.0)

    def test_eclipse_detector_sign(self, leo_state):
        detector = EclipseDetector(sun_position=lambda t: np.array([1.5e11, 0.0, 0.0]))
        day = SpacecraftState(0.0, [7.0e6, 0.0, 0.0], [0.0, 7.5e3, 0.0])
        night = SpacecraftState(0.0, [-7.0e6, 0.0, 0.0], [0.0, -7.5e3, 0.0])
        assert detector.g(day) > 0.0
        assert detector.g(night) < 0.0

    def test_eclipse_exit_stops(self):
        # equatorial orbit, Sun along +X: one shadow crossing per revolution
        r = EARTH_EQUATORIAL_RADIUS + 700.0e3
        state = SpacecraftState(0.0, [r, 0.0, 0.0], [0.0, np.sqrt(EARTH_MU / r), 0.0])
        detector = EclipseDetector(sun_position=lambda t: np.array([1.5e11, 0.0, 0.0]),
                                   max_check=60.0)
        propagator = KeplerianPropagator(state)
        propagator.add_event_detector(detector)
        final = propagator.propagate(2.0 * state.keplerian_period)
        assert 0.5 * state.keplerian_period < final.date < state.keplerian_period
        assert final.position[0] < 0.0
        assert detector.g(final) == pytest.approx(0.0, abs=50.0)

    @pytest.mark.parametrize("value", [0.0, -1.0])
    def test_invalid_detector_settings(self, value):
        with pytest.raises(ValueError):
            FunctionalDetector(lambda s: 1.0, max_check=value)
        with pytest.raises(ValueError):
            FunctionalDetector(lambda s: 1.0).with_threshold(value)


# =============================================================================
# Step handlers and additional states
# =============================================================================

class TestStepHandlersAndAdditionalStates:

    def test_fixed_step_grid(self, leo_state):
        dates = []
        propagator = KeplerianPropagator(leo_state)
        propagator.set_step_handler(60.0, lambda s: dates.append(s.date))
        propagator.propagate(300.0)
        assert_allclose(dates, [0.0, 60.0, 120.0, 180.0, 240.0, 300.0])

    def test_step_handler_sees_final_stop(self, leo_state):
        dates = []
        propagator = KeplerianPropagator(leo_state)
        propagator.set_step_handler(60.0, lambda s: dates.append(s.date))
        propagator.add_event_detector(DateDetector(150.0))
        propagator.propagate(300.0)
        assert dates[-1] == pytest.approx(150.0, abs=1e-9)

    def test_additional_state(self, leo_state):
        propagator = KeplerianPropagator(leo_state)
        propagator.add_additional_state_provider(
            FunctionalStateProvider('radius', lambda s: np.linalg.norm(s.position)))
        final = propagator.propagate(100.0)
        assert final.get_additional_state('radius')[0] == pytest.approx(
            np.linalg.norm(final.position))

    def test_duplicate_provider_rejected(self, leo_state):
        propagator = KeplerianPropagator(leo_state)
        propagator.add_additional_state_provider(FunctionalStateProvider('a', lambda s: 1.0))
        with pytest.raises(ConfigurationError):
            propagator.add_additional_state_provider(FunctionalStateProvider('a', lambda s: 2.0))


# =============================================================================
# Numerical propagation
# =============================================================================

class TestNumerical:

    def test_matches_keplerian(self, leo_state):
        numerical = numerical_propagator(leo_state).propagate(3000.0)
        keplerian = KeplerianPropagator(leo_state).propagate(3000.0)
        assert_allclose(numerical.position, keplerian.position, atol=1.0)
        assert_allclose(numerical.velocity, keplerian.velocity, atol=1e-3)
        assert numerical.mass == leo_state.mass

    def test_stm_against_two_body(self, leo_state):
        propagator = numerical_propagator(leo_state)
        harvester = propagator.setup_matrices_computation('stm')
        final = propagator.propagate(600.0)
        stm = harvester.get_state_transition_matrix(final)

        keplerian = KeplerianPropagator(leo_state)
        reference = keplerian.setup_matrices_computation('stm').get_state_transition_matrix(
            keplerian.propagate(600.0))
        assert np.linalg.norm(stm - reference) / np.linalg.norm(reference) < 1e-5
        assert harvester.get_parameters_jacobian(final) is None

    def test_missing_matrices(self, leo_state):
        propagator = numerical_propagator(leo_state)
        harvester = propagator.setup_matrices_computation('stm')
        with pytest.raises(PropagationError):
            harvester.get_state_transition_matrix(leo_state)

    def test_reset_at_end(self, leo_state):
        propagator = numerical_propagator(leo_state)
        propagator.propagate(100.0)
        assert propagator.get_initial_state().date == 100.0
        propagator.set_reset_at_end(False)
        propagator.propagate(200.0)
        assert propagator.get_initial_state().date == 100.0

    def test_backward(self, leo_state):
        final = numerical_propagator(leo_state).propagate(-1200.0)
        reference = KeplerianPropagator(leo_state).propagate(-1200.0)
        assert_allclose(final.position, reference.position, atol=1.0)

    def test_event_inside_step(self, leo_state):
        """Stop date located in the dense output between two steps."""
        propagator = numerical_propagator(leo_state)
        propagator.add_event_detector(DateDetector(1234.5))
        final = propagator.propagate(3000.0)
        assert final.date == pytest.approx(1234.5, abs=1e-6)
        reference = KeplerianPropagator(leo_state).propagate(final.date)
        assert_allclose(final.position, reference.position, atol=1.0)

    def test_tolerances_cover_orbit_only(self):
        integrator = DormandPrince54Integrator(1.0e-3, 300.0, abs_tol=1.0e-6)
        integrator.n_controlled = 7
        atol = integrator.absolute_tolerances(43)
        assert_allclose(atol[:7], 1.0e-6)
        assert np.all(np.isinf(atol[7:]))

        integrator.abs_tol = np.array([1.0] * 3 + [1.0e-3] * 3 + [1.0e-6])
        assert_allclose(integrator.absolute_tolerances(7), integrator.abs_tol)

    def test_step_below_minimum(self, leo_state):
        integrator = DormandPrince54Integrator(100.0, 300.0, abs_tol=1.0e-9, rel_tol=1.0e-13)
        propagator = NumericalPropagator(integrator)
        propagator.reset_initial_state(leo_state)
        with pytest.raises(PropagationError):
            propagator.propagate(3000.0)

    @pytest.mark.parametrize("bounds", [(0.0, 10.0), (10.0, 1.0)])
    def test_invalid_step_bounds(self, bounds):
        with pytest.raises(ValueError):
            DormandPrince54Integrator(*bounds)


# =============================================================================
# Ephemerides
# =============================================================================

class TestEphemeris:

    @pytest.fixture
    def ephemeris(self, leo_state):
        propagator = KeplerianPropagator(leo_state)
        propagator.set_ephemeris_mode()
        propagator.propagate(1200.0)
        return propagator.get_generated_ephemeris()

    def test_bounds(self, ephemeris):
        assert ephemeris.min_date == 0.0
        assert ephemeris.max_date == 1200.0

    @pytest.mark.parametrize("date", [15.0, 333.3, 1199.0])
    def test_interpolation(self, ephemeris, leo_state, date):
        expected = KeplerianPropagator(leo_state).propagate(date)
        assert_allclose(ephemeris.propagate(date).position, expected.position, atol=1e-2)

    def test_out_of_range(self, ephemeris):
        with pytest.raises(PropagationError):
            ephemeris.propagate(1300.0)

    def test_no_reset(self, ephemeris, leo_state):
        with pytest.raises(PropagationError):
            ephemeris.reset_initial_state(leo_state)

    def test_requires_two_states(self, leo_state):
        with pytest.raises(ConfigurationError):
            Ephemeris([leo_state])

    def test_not_activated(self, leo_state):
        with pytest.raises(PropagationError):
            KeplerianPropagator(leo_state).get_generated_ephemeris()


class TestAggregate:

    def test_chains_by_start_date(self, leo_state):
        states = [KeplerianPropagator(leo_state).propagate(t) for t in np.arange(0.0, 2001.0, 60.0)]
        first = Ephemeris([s for s in states if s.date <= 1020.0])
        second = Ephemeris([s for s in states if s.date >= 960.0])
        aggregate = AggregateBoundedPropagator([second, first])
        assert aggregate.min_date == 0.0
        assert aggregate.max_date == states[-1].date
        expected = KeplerianPropagator(leo_state).propagate(1500.0)
        assert_allclose(aggregate.propagate(1500.0).position, expected.position, atol=1e-2)
        assert_allclose(aggregate.propagate(500.0).position,
                        KeplerianPropagator(leo_state).propagate(500.0).position, atol=1e-2)

    def test_empty(self):
        with pytest.raises(ConfigurationError):
            AggregateBoundedPropagator([])

    def test_no_reset(self, leo_state):
        states = [KeplerianPropagator(leo_state).propagate(t) for t in (0.0, 60.0, 120.0)]
        aggregate = AggregateBoundedPropagator([Ephemeris(states)])
        with pytest.raises(PropagationError):
            aggregate.reset_initial_state(leo_state)
