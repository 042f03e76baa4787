"""Turns joypad buttons and sticks into walking commands and goals."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

import numpy as np

from dcmwalking.utils import get_int, get_number, get_string, ConfigError

__all__ = ["JoypadCommand", "JoypadModule", "deadzone"]

logger = logging.getLogger(__name__)

_DEFAULT_PERIOD = 0.1
_CLIENT_DEVICE = "JoypadControlClient"

_BUTTON_A = 0
_BUTTON_B = 1
_BUTTON_X = 3
_BUTTON_Y = 4
_BUTTON_L1 = 6
_BUTTON_R1 = 7


class Joypad(Protocol):
    def get_button(self, index: int) -> float: ...

    def get_axis(self, index: int) -> float: ...


class Connector(Protocol):
    def connect(self, source: str, destination: str) -> Any: ...

    def is_connected(self, source: str, destination: str) -> bool: ...


class JoypadCommand(enum.Enum):
    """Commands sent to the walking module."""

    PREPARE_ROBOT = "prepareRobot"
    START_WALKING = "startWalking"
    PAUSE_WALKING = "pauseWalking"
    STOP_WALKING = "stopWalking"


def deadzone(value: float, dead_zone: float, full_scale: float) -> float:
    """Zero inside ``[-dead_zone, dead_zone]``, rescaled to full scale outside."""
    if value >= 0:
        if value > dead_zone:
            return (value - dead_zone) / (full_scale - dead_zone)
        return 0.0
    if value < -dead_zone:
        return (value + dead_zone) / (full_scale - dead_zone)
    return 0.0


class JoypadModule:
    """Reads a joypad every period and drives the walking module."""

    def __init__(
        self,
        joypad: Joypad,
        rpc: Callable[[list[str]], Any],
        goal_sink: Callable[[np.ndarray], Any],
        connector: Connector,
        *,
        name: str,
        dead_zone: float,
        full_scale: float,
        scale_x: float,
        scale_y: float,
        rpc_client_port: str,
        rpc_server_port: str,
        goal_output_port: str,
        goal_input_port: str,
        period: float = _DEFAULT_PERIOD,
        device_options: Mapping[str, Any] | None = None,
    ) -> None:
        self.joypad = joypad
        self._rpc = rpc
        self._goal_sink = goal_sink
        self._connector = connector
        self.name = name
        self.dead_zone = float(dead_zone)
        self.full_scale = float(full_scale)
        self.scale_x = float(scale_x)
        self.scale_y = float(scale_y)
        self.rpc_client_port = rpc_client_port
        self.rpc_server_port = rpc_server_port
        self.goal_output_port = goal_output_port
        self.goal_input_port = goal_input_port
        self.period = float(period)
        self.device_options = dict(device_options or {})
        self.closed = False

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        joypad: Joypad,
        rpc: Callable[[list[str]], Any],
        goal_sink: Callable[[np.ndarray], Any],
        connector: Connector,
    ) -> "JoypadModule":
        """Read the configuration and connect the command and goal ports."""
        if not config:
            raise ConfigError("empty configuration for the joypad module")
        period = float(config.get("period", _DEFAULT_PERIOD))
        name = get_string(config, "name")
        dead_zone = get_number(config, "deadzone")
        full_scale = get_number(config, "fullscale")
        scale_x = get_number(config, "scale_x")
        scale_y = get_number(config, "scale_y")

        device = get_string(config, "device")
        options: dict[str, Any] = {"device": device}
        if device == _CLIENT_DEVICE:
            options["local"] = get_string(config, "local")
            options["remote"] = get_string(config, "remote")
        else:
            options["sticks"] = get_int(config, "sticks")

        rpc_client = "/" + name + get_string(config, "rpcClientPort_name")
        rpc_server = get_string(config, "rpcServerPort_name")
        connector.connect(rpc_client, rpc_server)

        goal_output = "/" + name + get_string(config, "robotGoalOutputPort_name")
        goal_input = get_string(config, "robotGoalInputPort_name")
        connector.connect(goal_output, goal_input)

        return cls(
            joypad,
            rpc,
            goal_sink,
            connector,
            name=name,
            dead_zone=dead_zone,
            full_scale=full_scale,
            scale_x=scale_x,
            scale_y=scale_y,
            rpc_client_port=rpc_client,
            rpc_server_port=rpc_server,
            goal_output_port=goal_output,
            goal_input_port=goal_input,
            period=period,
            device_options=options,
        )

    def _send(self, command: JoypadCommand) -> JoypadCommand:
        self._rpc([command.value])
        return command

    def _reconnect(self) -> None:
        for source, destination in (
            (self.rpc_client_port, self.rpc_server_port),
            (self.goal_output_port, self.goal_input_port),
        ):
            if not self._connector.is_connected(source, destination):
                self._connector.connect(source, destination)

    def update(self) -> JoypadCommand | None:
        """Handle one cycle; return the command sent, or ``None`` otherwise."""
        pad = self.joypad
        a_button = pad.get_button(_BUTTON_A)
        b_button = pad.get_button(_BUTTON_B)
        x_button = pad.get_button(_BUTTON_X)
        y_button = pad.get_button(_BUTTON_Y)
        l1_button = pad.get_button(_BUTTON_L1)
        r1_button = pad.get_button(_BUTTON_R1)

        x = -self.scale_x * deadzone(pad.get_axis(0), self.dead_zone, self.full_scale)
        y = -self.scale_y * deadzone(pad.get_axis(1), self.dead_zone, self.full_scale)
        x, y = y, x

        if a_button > 0:
            return self._send(JoypadCommand.PREPARE_ROBOT)
        if b_button > 0:
            return self._send(JoypadCommand.START_WALKING)
        if y_button > 0:
            return self._send(JoypadCommand.PAUSE_WALKING)
        if x_button > 0:
            return self._send(JoypadCommand.STOP_WALKING)
        if l1_button > 0 and r1_button > 0:
            self._reconnect()
            return None
        self._goal_sink(np.array([x, y], dtype=float))
        return None

    def close(self) -> None:
        """Release the joypad and the command channel."""
        if self.closed:
            return
        for resource in (self.joypad, self._rpc, self._goal_sink):
            closer = getattr(resource, "close", None)
            if callable(closer):
                closer()
        self.closed = True

    def __enter__(self) -> "JoypadModule":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()