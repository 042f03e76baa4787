"""Reactive DCM controller that produces a desired ZMP."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from dcmwalking.utils import ConfigError, get_number

__all__ = ["DCMReactiveController"]

_DEFAULT_GRAVITY = 9.81


class DCMReactiveController:
    """Proportional DCM controller with velocity feed-forward."""

    def __init__(self, k_dcm: float, omega: float) -> None:
        if omega == 0:
            raise ValueError("omega must not be zero")
        self._k_dcm = float(k_dcm)
        self._omega = float(omega)
        self._dcm_feedback = np.zeros(2)
        self._dcm_position_desired = np.zeros(2)
        self._dcm_velocity_desired = np.zeros(2)
        self._output = np.zeros(2)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DCMReactiveController":
        """Build the controller from ``kDCM``, ``com_height`` and gravity."""
        if not config:
            raise ConfigError("empty configuration for the DCM controller")
        k_dcm = get_number(config, "kDCM")
        com_height = get_number(config, "com_height")
        gravity = float(config.get("gravity_acceleration", _DEFAULT_GRAVITY))
        return cls(k_dcm, math.sqrt(gravity / com_height))

    @property
    def omega(self) -> float:
        """Natural frequency of the pendulum."""
        return self._omega

    def set_feedback(self, dcm_feedback: Sequence[float]) -> None:
        """Set the measured DCM position."""
        self._dcm_feedback = np.array(dcm_feedback, dtype=float).reshape(2)

    def set_reference(
        self, position: Sequence[float], velocity: Sequence[float]
    ) -> None:
        """Set the desired DCM position and velocity."""
        self._dcm_position_desired = np.array(position, dtype=float).reshape(2)
        self._dcm_velocity_desired = np.array(velocity, dtype=float).reshape(2)

    def evaluate_control(self) -> np.ndarray:
        """Compute and return the desired ZMP."""
        error = self._dcm_position_desired - self._dcm_feedback
        self._output = (
            self._dcm_position_desired
            - self._dcm_velocity_desired / self._omega
            - self._k_dcm * error
        )
        return self._output.copy()

    @property
    def output(self) -> np.ndarray:
        """Last computed desired ZMP."""
        return self._output.copy()