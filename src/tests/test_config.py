"""
===============================================================================
ORBITDYN - Configuration Test Suite
===============================================================================
Tests for YAML loading and scenario configuration validation, including the
shipped scenario files under config/.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from pathlib import Path

import pytest
import yaml

from core.config import AttitudeScenarioConfig, OrbitDeterminationConfig, load_config
from core.errors import ConfigurationError

CONFIG_DIR = Path(__file__).resolve().parents[2] / 'config'


@pytest.fixture
def write_yaml(tmp_path):
    def _write(data, name='scenario.yaml'):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path
    return _write


class TestLoadConfig:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / 'missing.yaml')

    def test_not_a_mapping(self, write_yaml):
        with pytest.raises(ConfigurationError):
            load_config(write_yaml([1, 2, 3]))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text("orbit: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_round_trip(self, write_yaml):
        assert load_config(write_yaml({'end': 100.0})) == {'end': 100.0}


class TestAttitudeScenarioConfig:

    def test_defaults(self):
        config = AttitudeScenarioConfig.from_dict({})
        assert config.transition_time == 60.0
        assert config.switch_date == 1000.0

    def test_nested_orbit(self):
        config = AttitudeScenarioConfig.from_dict({'orbit': {'altitude': 800000.0}})
        assert config.orbit.altitude == 800000.0

    @pytest.mark.parametrize("data", [
        {'unknown_key': 1},
        {'past_law': 'tumbling'},
        {'transition_filter': 'USE_RRRR'},
        {'transition_time': 1.0e-6},
        {'step': 0.0},
        {'orbit': {'mass': -1.0}},
        {'switch_date': None, 'use_eclipse': False},
    ])
    def test_rejections(self, data):
        with pytest.raises(ConfigurationError):
            AttitudeScenarioConfig.from_dict(data)

    def test_shipped_file(self):
        config = AttitudeScenarioConfig.from_dict(load_config(CONFIG_DIR / 'attitude_scenario.yaml'))
        assert config.past_law == 'inertial'
        assert config.future_law == 'sun_pointing'


class TestOrbitDeterminationConfig:

    def test_requires_station(self):
        with pytest.raises(ConfigurationError):
            OrbitDeterminationConfig.from_dict({})

    def test_stations_parsed(self):
        config = OrbitDeterminationConfig.from_dict(
            {'stations': [{'name': 'a', 'latitude_deg': 10.0}]})
        assert config.stations[0].name == 'a'
        assert config.stations[0].latitude_deg == 10.0

    @pytest.mark.parametrize("data", [
        {'decomposer': 'lu'},
        {'propagator': 'sgp4'},
        {'range_sigma': 0.0},
        {'stations': {'name': 'not a list'}},
        {'forces': {'j3': True}},
    ])
    def test_rejections(self, data):
        data = dict(data)
        data.setdefault('stations', [{'name': 'a'}])
        with pytest.raises(ConfigurationError):
            OrbitDeterminationConfig.from_dict(data)

    def test_shipped_file(self):
        config = OrbitDeterminationConfig.from_dict(load_config(CONFIG_DIR / 'od_scenario.yaml'))
        assert len(config.stations) == 3
        assert config.decomposer == 'cholesky'
