"""
===============================================================================
ORBITDYN - Scenario Engine
===============================================================================
Runs the two end-to-end scenarios and records their telemetry in pandas
DataFrames for post-run analysis.

Attitude scenario:

    1. build the initial orbit and a Keplerian propagator
    2. set up an attitudes sequence (past law -> future law) switched by a
       date or an eclipse event, with a transition law
    3. propagate with a fixed step handler recording the attitude, the
       active law and the angular distance to the future law

Orbit determination scenario:

    1. propagate a truth trajectory and simulate noisy range measurements
       from the configured ground stations
    2. perturb the initial orbit and run the Kalman estimator over the
       measurements, recording the estimation history
    3. compare the final estimate with the truth
===============================================================================
"""

import logging
import time
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from attitudes.laws import InertialProvider, LofOffset, SpinStabilized, SunPointing
from attitudes.sequence import AttitudesSequence, SwitchRecorder
from core.angular import AngularDerivativesFilter
from core.config import AttitudeScenarioConfig, OrbitConfig, OrbitDeterminationConfig
from core.constants import DEG2RAD, EARTH_EQUATORIAL_RADIUS, EARTH_MU, RAD2DEG
from core.frames import EME2000
from core.orbits import keplerian_to_cartesian
from estimation.builders import KeplerianPropagatorBuilder, NumericalPropagatorBuilder
from estimation.covariance import ConstantProcessNoise, LinearProcessNoise
from estimation.decomposers import CholeskyDecomposer, QRDecomposer
from estimation.estimator import KalmanEstimatorBuilder
from estimation.measurements import GroundStation, Range
from estimation.observer import EstimationHistory
from forces.drag import ExponentialAtmosphere, IsotropicDrag
from forces.gravity import J2Perturbation
from forces.radiation import IsotropicRadiationClassicalConvention
from propagation.events.detectors import DateDetector, EclipseDetector
from propagation.events.handlers import ContinueOnEvent
from propagation.integrators import DormandPrince54Integrator
from propagation.keplerian import KeplerianPropagator
from propagation.numerical import NumericalPropagator
from propagation.state import SpacecraftState

logger = logging.getLogger(__name__)

SPIN_AXIS = np.array([0.0, 0.0, 1.0])
SPIN_RATE = 0.01    # rad/s


def initial_state(orbit: OrbitConfig, date: float = 0.0) -> SpacecraftState:
    """Circular orbit state from the orbit section of a scenario."""
    a = EARTH_EQUATORIAL_RADIUS + orbit.altitude
    r, v = keplerian_to_cartesian(a, 0.0, orbit.inclination_deg * DEG2RAD,
                                  orbit.raan_deg * DEG2RAD, 0.0,
                                  orbit.argument_of_latitude_deg * DEG2RAD, EARTH_MU)
    return SpacecraftState(date, r, v, frame=EME2000, mu=EARTH_MU, mass=orbit.mass)


def make_law(name: str, start: float):
    if name == 'inertial':
        return InertialProvider()
    if name == 'sun_pointing':
        return SunPointing()
    if name == 'lof':
        return LofOffset()
    if name == 'spin':
        return SpinStabilized(InertialProvider(), start, SPIN_AXIS, SPIN_RATE)
    raise ValueError(f"unknown attitude law '{name}'")


class AttitudeScenario:
    """
    Attitude switching scenario.

    Parameters
    ----------
    config : AttitudeScenarioConfig
    """

    def __init__(self, config: AttitudeScenarioConfig) -> None:
        self.config = config
        self.state0 = initial_state(config.orbit, config.start)
        self.past = make_law(config.past_law, config.start)
        self.future = make_law(config.future_law, config.start)
        self.recorder = SwitchRecorder()
        self.sequence = AttitudesSequence()
        self.sequence.add_switching_condition(
            self.past, self.future, self._switch_event(),
            switch_on_increase=not config.use_eclipse, switch_on_decrease=True,
            transition_time=config.transition_time,
            transition_filter=AngularDerivativesFilter[config.transition_filter],
            handler=self.recorder)
        self.propagator = KeplerianPropagator(self.state0, self.sequence)
        self.sequence.register_switch_events(self.propagator)
        self.telemetry: List[Dict[str, Any]] = []

    def _switch_event(self):
        c = self.config
        if c.use_eclipse:
            # entering the shadow is the decreasing crossing
            return EclipseDetector(max_check=c.max_check, threshold=c.threshold,
                                   handler=ContinueOnEvent())
        return DateDetector(c.switch_date, max_check=c.max_check, threshold=c.threshold,
                            handler=ContinueOnEvent())

    def _log_telemetry(self, state: SpacecraftState) -> None:
        q = state.attitude.rotation
        omega = state.attitude.spin
        target = self.future.get_attitude(self.propagator, state.date, state.frame).rotation
        self.telemetry.append({
            'time': state.date,
            'law': type(self.sequence.get_active_provider(state.date)).__name__,
            'pos_x': state.position[0],
            'pos_y': state.position[1],
            'pos_z': state.position[2],
            'quat_w': q.w,
            'quat_x': q.x,
            'quat_y': q.y,
            'quat_z': q.z,
            'omega_x': omega[0],
            'omega_y': omega[1],
            'omega_z': omega[2],
            'error_to_future_deg': q.angle_to(target) * RAD2DEG,
        })

    def run(self) -> pd.DataFrame:
        c = self.config
        wall_start = time.time()
        logger.info("Attitude scenario started: %s -> %s over [%.1f, %.1f] s",
                    c.past_law, c.future_law, c.start, c.end)
        self.propagator.set_step_handler(c.step, self._log_telemetry)
        self.propagator.propagate(c.end)
        # a row logged at a switch date precedes the switch, read the final map
        for row in self.telemetry:
            row['law'] = type(self.sequence.get_active_provider(row['time'])).__name__
        logger.info("Attitude scenario complete: %d switch(es), %d records in %.2f s wall time",
                    len(self.recorder.switches), len(self.telemetry), time.time() - wall_start)
        return self.get_telemetry()

    def get_telemetry(self) -> pd.DataFrame:
        if not self.telemetry:
            logger.warning("No telemetry recorded.")
            return pd.DataFrame()
        df = pd.DataFrame(self.telemetry)
        df.set_index('time', inplace=True)
        return df

    def save_telemetry(self, filepath) -> None:
        df = self.get_telemetry()
        df.to_csv(filepath)
        logger.info("Telemetry saved to %s  (%d records)", filepath, len(df))

    def get_summary(self) -> Dict[str, Any]:
        spans = self.sequence.get_activated_spans()
        summary = {
            'switches': [date for date, _, _ in self.recorder.switches],
            'spans': [(s.start, s.end, type(s.data).__name__) for s in spans],
            'records': len(self.telemetry),
        }
        for key, value in summary.items():
            logger.info("  %-10s: %s", key, value)
        return summary


class OrbitDeterminationScenario:
    """
    Synthetic range tracking followed by a Kalman orbit determination.

    Parameters
    ----------
    config : OrbitDeterminationConfig
    """

    def __init__(self, config: OrbitDeterminationConfig) -> None:
        self.config = config
        self.rng = np.random.default_rng(config.seed)
        self.truth_state = initial_state(config.orbit)
        self.stations = [GroundStation(s.name, s.latitude_deg, s.longitude_deg, s.altitude,
                                       range_bias=0.0, bias_scale=config.range_bias_sigma)
                         for s in config.stations]
        self._true_bias = {s.name: s.range_bias for s in config.stations}
        for station, sc in zip(self.stations, config.stations):
            station.range_bias_driver.selected = sc.estimate_bias
        self.history = EstimationHistory()
        self.truth: Dict[float, SpacecraftState] = {}
        self.measurements: List[Range] = []
        self.estimator = None
        self.final_propagators = []

    # -------------------------------------------------------------------------
    # set-up
    # -------------------------------------------------------------------------

    def _force_models(self, estimated: bool) -> list:
        f = self.config.forces
        models = []
        if f.j2:
            models.append(J2Perturbation())
        if f.drag:
            drag = IsotropicDrag(ExponentialAtmosphere(), f.drag_area, f.cd)
            drag.parameter_drivers[0].selected = estimated and f.estimate_cd
            models.append(drag)
        if f.radiation:
            srp = IsotropicRadiationClassicalConvention(f.radiation_area, f.cr)
            srp.parameter_drivers[0].selected = estimated and f.estimate_cr
            models.append(srp)
        return models

    def _truth_propagator(self):
        if self.config.propagator == 'keplerian':
            return KeplerianPropagator(self.truth_state)
        propagator = NumericalPropagator(
            DormandPrince54Integrator(1.0e-3, 300.0, abs_tol=1.0e-4, rel_tol=1.0e-12))
        for model in self._force_models(estimated=False):
            propagator.add_force_model(model)
        propagator.reset_initial_state(self.truth_state)
        return propagator

    def _visible(self, station: GroundStation, state: SpacecraftState) -> bool:
        station_r, _ = station.position_velocity(state.date)
        line_of_sight = state.position - station_r
        sin_elevation = (np.dot(line_of_sight, station_r)
                         / (np.linalg.norm(line_of_sight) * np.linalg.norm(station_r)))
        return sin_elevation >= np.sin(self.config.min_elevation_deg * DEG2RAD)

    def simulate_measurements(self) -> List[Range]:
        c = self.config
        propagator = self._truth_propagator()
        dates = np.arange(c.measurement_step, c.duration + 0.5 * c.measurement_step,
                          c.measurement_step)
        measurements = []
        for date in dates:
            state = propagator.propagate(float(date))
            self.truth[float(date)] = state
            for station in self.stations:
                if not self._visible(station, state):
                    continue
                station_r, _ = station.position_velocity(state.date)
                observed = (np.linalg.norm(state.position - station_r)
                            + self._true_bias[station.name]
                            + self.rng.normal(0.0, c.range_sigma))
                measurements.append(Range(station, float(date), observed, c.range_sigma))
        logger.info("Simulated %d range measurements from %d station(s) over %.1f s",
                    len(measurements), len(self.stations), c.duration)
        self.measurements = measurements
        return measurements

    def _estimated_initial_state(self) -> SpacecraftState:
        c = self.config
        s = self.truth_state
        dr = self.rng.normal(0.0, 1.0, 3) * c.initial_position_error / np.sqrt(3.0)
        dv = self.rng.normal(0.0, 1.0, 3) * c.initial_velocity_error / np.sqrt(3.0)
        return SpacecraftState(s.date, s.position + dr, s.velocity + dv, frame=s.frame,
                               mu=s.mu, mass=s.mass)

    def build_estimator(self):
        c = self.config
        state0 = self._estimated_initial_state()
        if c.propagator == 'keplerian':
            builder = KeplerianPropagatorBuilder(state0, c.position_scale)
        else:
            builder = NumericalPropagatorBuilder(state0, c.position_scale)
            for model in self._force_models(estimated=True):
                builder.add_force_model(model)
        n_parameters = sum(1 for d in builder.get_propagation_parameters_drivers() if d.selected)
        initial = np.diag([c.initial_position_sigma ** 2] * 3
                          + [c.initial_velocity_sigma ** 2] * 3
                          + [1.0] * n_parameters)
        noise = LinearProcessNoise(initial, np.full(6 + n_parameters, c.process_noise_rate))
        decomposer = (CholeskyDecomposer(c.decomposer_threshold) if c.decomposer == 'cholesky'
                      else QRDecomposer(c.decomposer_threshold))
        biases = [s.range_bias_driver for s in self.stations if s.range_bias_driver.selected]
        bias_noise = ConstantProcessNoise(np.eye(len(biases)) * c.range_bias_sigma ** 2) if biases else None
        self.estimator = (KalmanEstimatorBuilder()
                          .decomposer(decomposer)
                          .add_propagation_configuration(builder, noise)
                          .estimated_measurements_parameters(biases, bias_noise)
                          .build())
        self.estimator.set_observer(self.history)
        return self.estimator

    # -------------------------------------------------------------------------
    # run
    # -------------------------------------------------------------------------

    def run(self) -> pd.DataFrame:
        wall_start = time.time()
        if not self.measurements:
            self.simulate_measurements()
        if self.estimator is None:
            self.build_estimator()
        if not self.measurements:
            logger.warning("No station saw the spacecraft, nothing to estimate.")
            return self.history.to_dataframe()
        self.final_propagators = self.estimator.process_measurements(self.measurements)
        logger.info("Orbit determination complete: %d measurements in %.2f s wall time",
                    self.estimator.get_current_measurement_number(), time.time() - wall_start)
        return self.history.to_dataframe()

    def get_summary(self) -> Dict[str, Any]:
        summary = {'measurements': len(self.measurements)}
        if self.final_propagators:
            final = self.final_propagators[0].get_initial_state()
            truth = self.truth[final.date]
            summary['final_date'] = final.date
            summary['position_error'] = float(np.linalg.norm(final.position - truth.position))
            summary['velocity_error'] = float(np.linalg.norm(final.velocity - truth.velocity))
            summary['position_sigma'] = float(np.sqrt(np.trace(
                self.estimator.get_physical_estimated_covariance_matrix()[:3, :3])))
        for key, value in summary.items():
            if isinstance(value, float):
                logger.info("  %-16s: %.4f", key, value)
            else:
                logger.info("  %-16s: %s", key, value)
        return summary
