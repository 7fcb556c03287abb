"""
===============================================================================
ORBITDYN - Parameter Drivers
===============================================================================
Every quantity that the orbit determination may estimate (orbital
coordinates, drag and radiation coefficients, central attraction,
measurement biases) is exposed through a ``ParameterDriver``:

    normalized = (value - reference) / scale

The estimator works on normalized values only, which keeps covariance
matrices well conditioned when meters, meters per second and unitless
coefficients share one state vector. Setting a value clamps it to the
[min, max] range of the driver.
===============================================================================
"""

import math
from typing import Iterable, Iterator, List, Optional

from core.errors import ConfigurationError


class ParameterDriver:
    """
    Parameters
    ----------
    name : str
        Unique parameter name.
    reference_value : float
        Value giving normalized value 0 (also the initial value).
    scale : float
        Normalization scale, strictly positive.
    min_value, max_value : float
        Clamping bounds.
    """

    def __init__(self, name: str, reference_value: float, scale: float,
                 min_value: float = -math.inf, max_value: float = math.inf) -> None:
        if not scale > 0.0 or math.isinf(scale):
            raise ConfigurationError(
                f"scale of parameter '{name}' must be strictly positive and finite, got {scale}")
        if min_value > max_value:
            raise ConfigurationError(
                f"min value {min_value} of parameter '{name}' exceeds max value {max_value}")
        self._name = name
        self._reference = float(reference_value)
        self._scale = float(scale)
        self._min = float(min_value)
        self._max = float(max_value)
        self._value = self._clamp(float(reference_value))
        self._selected = False

    def _clamp(self, value: float) -> float:
        return max(self._min, min(self._max, value))

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, name: str) -> None:
        self._name = name

    @property
    def reference_value(self) -> float:
        return self._reference

    @reference_value.setter
    def reference_value(self, value: float) -> None:
        self._reference = float(value)

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def min_value(self) -> float:
        return self._min

    @property
    def max_value(self) -> float:
        return self._max

    @property
    def value(self) -> float:
        return self._value

    @value.setter
    def value(self, value: float) -> None:
        self._value = self._clamp(float(value))

    @property
    def normalized_value(self) -> float:
        return (self.value - self.reference_value) / self.scale

    @normalized_value.setter
    def normalized_value(self, normalized: float) -> None:
        self.value = self.reference_value + self.scale * normalized

    @property
    def selected(self) -> bool:
        return self._selected

    @selected.setter
    def selected(self, selected: bool) -> None:
        self._selected = bool(selected)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, value={self.value!r}, selected={self.selected})"


class DelegatingDriver(ParameterDriver):
    """
    Driver shared by several components under the same name.

    Reads come from the first underlying driver; writes to the value, the
    reference value or the selection flag update every underlying driver.
    """

    def __init__(self, driver: ParameterDriver) -> None:
        super().__init__(driver.name, driver.reference_value, driver.scale,
                         driver.min_value, driver.max_value)
        self._raw_drivers = [driver]

    @property
    def raw_drivers(self) -> List[ParameterDriver]:
        return list(self._raw_drivers)

    def add_raw_driver(self, driver: ParameterDriver) -> None:
        if driver in self._raw_drivers:
            return
        selected = self.selected or driver.selected
        driver.value = self.value
        self._raw_drivers.append(driver)
        self.selected = selected

    @property
    def name(self) -> str:
        return self._raw_drivers[0].name

    @name.setter
    def name(self, name: str) -> None:
        for driver in self._raw_drivers:
            driver.name = name

    @property
    def reference_value(self) -> float:
        return self._raw_drivers[0].reference_value

    @reference_value.setter
    def reference_value(self, value: float) -> None:
        for driver in self._raw_drivers:
            driver.reference_value = value

    @property
    def value(self) -> float:
        return self._raw_drivers[0].value

    @value.setter
    def value(self, value: float) -> None:
        for driver in self._raw_drivers:
            driver.value = value

    @property
    def selected(self) -> bool:
        return self._raw_drivers[0].selected

    @selected.setter
    def selected(self, selected: bool) -> None:
        for driver in self._raw_drivers:
            driver.selected = selected


class ParameterDriversList:
    """
    Ordered collection of drivers, drivers with the same name are merged.
    """

    def __init__(self, drivers: Iterable[ParameterDriver] = ()) -> None:
        self._drivers: List[DelegatingDriver] = []
        for driver in drivers:
            self.add(driver)

    def add(self, driver: ParameterDriver) -> None:
        raw = driver.raw_drivers if isinstance(driver, DelegatingDriver) else [driver]
        existing = self.find_by_name(driver.name)
        if existing is None:
            existing = DelegatingDriver(raw[0])
            self._drivers.append(existing)
        for d in raw:
            existing.add_raw_driver(d)

    def find_by_name(self, name: str) -> Optional[DelegatingDriver]:
        for driver in self._drivers:
            if driver.name == name:
                return driver
        return None

    def get(self, name: str) -> DelegatingDriver:
        driver = self.find_by_name(name)
        if driver is None:
            raise ConfigurationError(f"unknown parameter '{name}'")
        return driver

    def sort(self) -> None:
        self._drivers.sort(key=lambda d: d.name)

    def selected(self) -> 'ParameterDriversList':
        """New list with only the selected drivers (same underlying drivers)."""
        selected = ParameterDriversList()
        for driver in self._drivers:
            if driver.selected:
                selected._drivers.append(driver)
        return selected

    def get_drivers(self) -> List[DelegatingDriver]:
        return list(self._drivers)

    def get_nb_params(self) -> int:
        return len(self._drivers)

    def names(self) -> List[str]:
        return [d.name for d in self._drivers]

    def __iter__(self) -> Iterator[DelegatingDriver]:
        return iter(list(self._drivers))

    def __len__(self) -> int:
        return len(self._drivers)

    def __getitem__(self, index: int) -> DelegatingDriver:
        return self._drivers[index]
