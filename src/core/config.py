"""
===============================================================================
ORBITDYN - Scenario Configuration
===============================================================================
YAML scenario files are loaded with ``yaml.safe_load`` and turned into
typed dataclasses. Validation happens once, at load time, and raises
``ConfigurationError`` so that nothing starts propagating with a bad set-up.

Two scenario kinds are supported:

    attitude   inertial -> sun pointing switch on an orbit, telemetry table
    od         synthetic range tracking and Kalman orbit determination
===============================================================================
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import yaml

from core.errors import ConfigurationError

logger = logging.getLogger(__name__)

_FILTERS = ('USE_R', 'USE_RR', 'USE_RRA')
_LAWS = ('inertial', 'sun_pointing', 'lof', 'spin')
_DECOMPOSERS = ('cholesky', 'qr')


def load_config(path) -> dict:
    """
    Read a YAML file into a dictionary.

    Raises
    ------
    ConfigurationError
        If the file does not exist or does not hold a mapping.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"configuration file not found: {path}")
    logger.info("Loading configuration from %s", path)
    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at top level")
    return data


def _build(cls, data: Optional[dict], section: str):
    """Instantiate dataclass *cls* from *data*, rejecting unknown keys."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"unknown key(s) in section '{section}': {', '.join(sorted(unknown))}")
    return cls(**data)


def _positive(value, name: str) -> None:
    if value is None or value <= 0.0:
        raise ConfigurationError(f"{name} must be strictly positive, got {value}")


@dataclass
class OrbitConfig:
    """Circular-ish initial orbit given by altitude and inclination."""

    altitude: float = 500000.0           # m
    inclination_deg: float = 51.6
    raan_deg: float = 0.0
    argument_of_latitude_deg: float = 0.0
    mass: float = 500.0                  # kg

    def validate(self) -> None:
        _positive(self.altitude, 'orbit.altitude')
        _positive(self.mass, 'orbit.mass')


@dataclass
class AttitudeScenarioConfig:
    """Attitude switching scenario."""

    orbit: OrbitConfig = field(default_factory=OrbitConfig)
    start: float = 0.0
    end: float = 2000.0
    step: float = 10.0
    past_law: str = 'inertial'
    future_law: str = 'sun_pointing'
    switch_date: Optional[float] = 1000.0
    use_eclipse: bool = False
    transition_time: float = 60.0
    transition_filter: str = 'USE_RR'
    threshold: float = 1.0e-3
    max_check: float = 60.0

    def validate(self) -> None:
        self.orbit.validate()
        _positive(self.step, 'step')
        _positive(self.threshold, 'threshold')
        _positive(self.max_check, 'max_check')
        for name in (self.past_law, self.future_law):
            if name not in _LAWS:
                raise ConfigurationError(f"unknown attitude law '{name}', expected one of {_LAWS}")
        if self.transition_filter not in _FILTERS:
            raise ConfigurationError(
                f"unknown transition filter '{self.transition_filter}', expected one of {_FILTERS}")
        if self.transition_time < self.threshold:
            raise ConfigurationError(
                f"transition time {self.transition_time} s is shorter than the event "
                f"threshold {self.threshold} s")
        if not self.use_eclipse and self.switch_date is None:
            raise ConfigurationError("either switch_date or use_eclipse must be set")

    @classmethod
    def from_dict(cls, data: dict) -> 'AttitudeScenarioConfig':
        data = dict(data or {})
        orbit = _build(OrbitConfig, data.pop('orbit', None), 'orbit')
        config = _build(cls, data, 'attitude')
        config.orbit = orbit
        config.validate()
        return config


@dataclass
class StationConfig:
    name: str = 'station'
    latitude_deg: float = 0.0
    longitude_deg: float = 0.0
    altitude: float = 0.0
    range_bias: float = 0.0
    estimate_bias: bool = False


@dataclass
class ForceConfig:
    j2: bool = True
    drag: bool = False
    cd: float = 2.2
    drag_area: float = 1.0
    estimate_cd: bool = False
    radiation: bool = False
    cr: float = 1.5
    radiation_area: float = 1.0
    estimate_cr: bool = False


@dataclass
class OrbitDeterminationConfig:
    """Synthetic tracking and Kalman orbit determination scenario."""

    orbit: OrbitConfig = field(default_factory=OrbitConfig)
    forces: ForceConfig = field(default_factory=ForceConfig)
    stations: List[StationConfig] = field(default_factory=list)
    duration: float = 3600.0
    measurement_step: float = 60.0
    range_sigma: float = 5.0
    range_bias_sigma: float = 10.0
    min_elevation_deg: float = 0.0
    initial_position_error: float = 100.0
    initial_velocity_error: float = 0.1
    initial_position_sigma: float = 1000.0
    initial_velocity_sigma: float = 1.0
    process_noise_rate: float = 1.0e-8
    position_scale: float = 10.0
    decomposer: str = 'cholesky'
    decomposer_threshold: float = 1.0e-14
    seed: int = 42
    propagator: str = 'numerical'

    def validate(self) -> None:
        self.orbit.validate()
        _positive(self.duration, 'duration')
        _positive(self.measurement_step, 'measurement_step')
        _positive(self.range_sigma, 'range_sigma')
        _positive(self.range_bias_sigma, 'range_bias_sigma')
        _positive(self.position_scale, 'position_scale')
        _positive(self.initial_position_sigma, 'initial_position_sigma')
        _positive(self.initial_velocity_sigma, 'initial_velocity_sigma')
        if not self.stations:
            raise ConfigurationError("at least one ground station is required")
        if self.decomposer not in _DECOMPOSERS:
            raise ConfigurationError(
                f"unknown decomposer '{self.decomposer}', expected one of {_DECOMPOSERS}")
        if self.propagator not in ('numerical', 'keplerian'):
            raise ConfigurationError(f"unknown propagator '{self.propagator}'")

    @classmethod
    def from_dict(cls, data: dict) -> 'OrbitDeterminationConfig':
        data = dict(data or {})
        orbit = _build(OrbitConfig, data.pop('orbit', None), 'orbit')
        forces = _build(ForceConfig, data.pop('forces', None), 'forces')
        raw_stations = data.pop('stations', None) or []
        if not isinstance(raw_stations, list):
            raise ConfigurationError("section 'stations' must be a list")
        stations = [_build(StationConfig, s, 'stations') for s in raw_stations]
        config = _build(cls, data, 'od')
        config.orbit = orbit
        config.forces = forces
        config.stations = stations
        config.validate()
        return config
