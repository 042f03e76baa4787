"""Linear inverted pendulum model driven by the divergent component of motion."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from dcmwalking.utils import ConfigError, get_number

__all__ = ["Integrator", "StableDCMModel"]

_DEFAULT_GRAVITY = 9.81


class Integrator:
    """Discrete integrator based on the trapezoidal (Tustin) rule."""

    def __init__(self, sampling_time: float, initial_value: Sequence[float]) -> None:
        if sampling_time <= 0:
            raise ValueError("the sampling time has to be positive")
        self._sampling_time = float(sampling_time)
        self._value = np.array(initial_value, dtype=float)
        self._previous_derivative = np.zeros_like(self._value)

    @property
    def value(self) -> np.ndarray:
        """Current integrated value."""
        return self._value.copy()

    def _as_vector(self, data: Sequence[float]) -> np.ndarray:
        vector = np.array(data, dtype=float)
        if vector.shape != self._value.shape:
            raise ValueError(
                f"expected a vector of shape {self._value.shape}, got {vector.shape}"
            )
        return vector

    def integrate(self, derivative: Sequence[float]) -> np.ndarray:
        """Advance one sampling period and return the new value."""
        current = self._as_vector(derivative)
        self._value = self._value + (
            0.5 * self._sampling_time * (current + self._previous_derivative)
        )
        self._previous_derivative = current
        return self._value.copy()

    def reset(self, value: Sequence[float]) -> None:
        """Restart the integration from ``value``."""
        self._value = self._as_vector(value)
        self._previous_derivative = np.zeros_like(self._value)


class StableDCMModel:
    """Integrates the CoM position from a desired DCM position."""

    def __init__(self, omega: float, sampling_time: float) -> None:
        self._omega = float(omega)
        self._integrator = Integrator(sampling_time, np.zeros(2))
        self._dcm_position = np.zeros(2)
        self._com_position = np.zeros(2)
        self._com_velocity = np.zeros(2)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "StableDCMModel":
        """Build the model from ``com_height``, ``sampling_time`` and gravity."""
        if not config:
            raise ConfigError("empty configuration for the DCM model")
        com_height = get_number(config, "com_height")
        gravity = float(config.get("gravity_acceleration", _DEFAULT_GRAVITY))
        sampling_time = get_number(config, "sampling_time")
        return cls(math.sqrt(gravity / com_height), sampling_time)

    @property
    def omega(self) -> float:
        """Natural frequency of the pendulum."""
        return self._omega

    def set_input(self, dcm_position: Sequence[float]) -> None:
        """Set the DCM position that drives the model."""
        self._dcm_position = np.array(dcm_position, dtype=float).reshape(2)

    def integrate(self) -> None:
        """Advance the CoM by one sampling period."""
        self._com_velocity = -self._omega * (self._com_position - self._dcm_position)
        self._com_position = self._integrator.integrate(self._com_velocity)

    def reset(self, initial_value: Sequence[float]) -> None:
        """Place the CoM at ``initial_value`` and restart the integration."""
        value = np.array(initial_value, dtype=float).reshape(2)
        self._integrator.reset(value)
        self._com_position = value.copy()

    @property
    def com_position(self) -> np.ndarray:
        """Current CoM position."""
        return self._com_position.copy()

    @property
    def com_velocity(self) -> np.ndarray:
        """CoM velocity used in the last integration step."""
        return self._com_velocity.copy()