"""
===============================================================================
ORBITDYN - Scenario Test Suite
===============================================================================
End-to-end runs of the attitude switching and orbit determination
scenarios, and of the command line entry point, on small Keplerian
set-ups.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
import yaml

from core.config import AttitudeScenarioConfig, OrbitDeterminationConfig
from core.constants import EARTH_EQUATORIAL_RADIUS, EARTH_MU, TWO_PI
from main import main
from simulation.scenarios import AttitudeScenario, OrbitDeterminationScenario, make_law

OD_SETUP = {
    'orbit': {'altitude': 700000.0, 'inclination_deg': 98.0},
    'stations': [
        {'name': 'north', 'latitude_deg': 60.0, 'longitude_deg': 10.0},
        {'name': 'south', 'latitude_deg': -40.0, 'longitude_deg': 30.0},
    ],
    'propagator': 'keplerian',
    'duration': 900.0,
    'measurement_step': 30.0,
    'min_elevation_deg': -90.0,
    'range_sigma': 1.0,
    'initial_position_error': 100.0,
    'initial_velocity_error': 0.1,
    'process_noise_rate': 0.0,
    'seed': 7,
}


class TestAttitudeScenario:

    def test_run_records_switch(self):
        scenario = AttitudeScenario(AttitudeScenarioConfig.from_dict({'end': 1500.0, 'step': 50.0}))
        telemetry = scenario.run()
        assert telemetry.index[0] == 0.0
        assert telemetry.index[-1] == 1500.0
        assert len(telemetry) == 31
        assert telemetry.loc[0.0, 'law'] == 'InertialProvider'
        assert telemetry.loc[1000.0, 'law'] == 'TransitionProvider'
        assert telemetry.loc[1050.0, 'law'] == 'TransitionProvider'
        assert telemetry.loc[1100.0, 'law'] == 'SunPointing'
        assert telemetry.loc[1500.0, 'law'] == 'SunPointing'
        assert set(telemetry['law']) == {'InertialProvider', 'TransitionProvider', 'SunPointing'}
        assert telemetry.loc[1500.0, 'error_to_future_deg'] < 1e-6
        summary = scenario.get_summary()
        assert summary['switches'] == [pytest.approx(1000.0, abs=1e-3)]
        assert len(summary['spans']) == 3

    def test_eclipse_switch(self):
        config = AttitudeScenarioConfig.from_dict({'end': 3000.0, 'step': 10.0,
                                                   'use_eclipse': True})
        scenario = AttitudeScenario(config)
        telemetry = scenario.run()
        assert telemetry.index[-1] == 3000.0
        assert set(telemetry['law']) == {'InertialProvider', 'TransitionProvider', 'SunPointing'}

        # near-zero beta angle: shadow entry at u = pi - asin(R / r)
        a = EARTH_EQUATORIAL_RADIUS + config.orbit.altitude
        period = TWO_PI * np.sqrt(a ** 3 / EARTH_MU)
        entry = (np.pi - np.arcsin(EARTH_EQUATORIAL_RADIUS / a)) / TWO_PI * period
        summary = scenario.get_summary()
        assert len(summary['switches']) == 1
        assert summary['switches'][0] == pytest.approx(entry, abs=5.0)
        assert telemetry.loc[1700.0, 'law'] == 'InertialProvider'
        assert telemetry.loc[3000.0, 'law'] == 'SunPointing'

    def test_save_telemetry(self, tmp_path):
        scenario = AttitudeScenario(AttitudeScenarioConfig.from_dict({'end': 200.0, 'step': 50.0}))
        scenario.run()
        path = tmp_path / 'telemetry.csv'
        scenario.save_telemetry(path)
        assert path.read_text().splitlines()[0].startswith('time,law')

    def test_unknown_law(self):
        with pytest.raises(ValueError):
            make_law('tumbling', 0.0)


class TestOrbitDeterminationScenario:

    def test_keplerian_run(self):
        scenario = OrbitDeterminationScenario(OrbitDeterminationConfig.from_dict(OD_SETUP))
        history = scenario.run()
        assert len(scenario.measurements) == 2 * 30
        assert len(history) == len(scenario.measurements)
        summary = scenario.get_summary()
        assert summary['final_date'] == 900.0
        assert summary['position_error'] < 50.0

    def test_true_bias_in_measurements(self):
        setup = dict(OD_SETUP)
        setup['stations'] = [{'name': 'north', 'latitude_deg': 60.0, 'range_bias': 25.0}]
        setup['range_sigma'] = 1.0e-6
        scenario = OrbitDeterminationScenario(OrbitDeterminationConfig.from_dict(setup))
        measurements = scenario.simulate_measurements()
        first = measurements[0]
        station_r, _ = first.station.position_velocity(first.date)
        geometric = np.linalg.norm(scenario.truth[first.date].position - station_r)
        assert first.observed_value[0] - geometric == pytest.approx(25.0, abs=1e-3)


class TestMain:

    def test_od_command_line(self, tmp_path):
        config = tmp_path / 'od.yaml'
        config.write_text(yaml.safe_dump(OD_SETUP))
        output = tmp_path / 'out'
        assert main(['--scenario', 'od', '--config', str(config), '--output', str(output)]) == 0
        assert (output / 'od_history.csv').exists()

    def test_invalid_config_returns_error(self, tmp_path):
        config = tmp_path / 'bad.yaml'
        config.write_text(yaml.safe_dump({'stations': []}))
        assert main(['--scenario', 'od', '--config', str(config),
                     '--output', str(tmp_path / 'out')]) == 1
