"""
Exception hierarchy shared by every ORBITDYN subsystem.

Configuration problems are raised at set-up time, before any propagation
starts. Numerical failures inside the Kalman correction are wrapped with
their original linear-algebra cause attached (``raise ... from exc``).
Nothing here is retried automatically.
"""


class OrbitDynError(Exception):
    """Base class for all library specific errors."""


class ConfigurationError(OrbitDynError, ValueError):
    """Invalid set-up: too short transitions, empty collections, bad files."""


class MeasurementOrderError(OrbitDynError, ValueError):
    """A measurement is dated before the current filter date."""

    def __init__(self, measurement_date: float, current_date: float) -> None:
        super().__init__(
            f"measurement at t={measurement_date:.6f} s precedes the current "
            f"filter date t={current_date:.6f} s"
        )
        self.measurement_date = measurement_date
        self.current_date = current_date


class EstimationNumericalError(OrbitDynError, ArithmeticError):
    """The Kalman correction hit a singular or ill-conditioned matrix."""


class PropagationError(OrbitDynError, RuntimeError):
    """Propagation could not be performed (bounds, resets, integration)."""
