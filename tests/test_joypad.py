import numpy as np
import pytest

from dcmwalking.joypad import JoypadCommand, JoypadModule, deadzone
from dcmwalking.utils import ConfigError


class FakeJoypad:
    def __init__(self):
        self.buttons = {}
        self.axes = {}
        self.closed = False

    def get_button(self, index):
        return self.buttons.get(index, 0.0)

    def get_axis(self, index):
        return self.axes.get(index, 0.0)

    def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self):
        self.calls = []
        self.connected = set()

    def connect(self, source, destination):
        self.calls.append((source, destination))
        self.connected.add((source, destination))
        return True

    def is_connected(self, source, destination):
        return (source, destination) in self.connected


def base_config(**overrides):
    config = {
        "name": "joypad",
        "deadzone": 0.0,
        "fullscale": 1.0,
        "scale_x": 2.0,
        "scale_y": 3.0,
        "device": "SDLJoypad",
        "sticks": 2,
        "rpcClientPort_name": "/rpc:o",
        "rpcServerPort_name": "/walking/rpc:i",
        "robotGoalOutputPort_name": "/goal:o",
        "robotGoalInputPort_name": "/walking/goal:i",
    }
    config.update(overrides)
    return config


@pytest.fixture
def setup():
    pad = FakeJoypad()
    sent = []
    goals = []
    connector = FakeConnector()
    module = JoypadModule.from_config(
        base_config(), pad, sent.append, goals.append, connector
    )
    return module, pad, sent, goals, connector


def test_deadzone_inside_is_zero():
    assert deadzone(0.05, 0.1, 1.0) == 0.0
    assert deadzone(-0.1, 0.1, 1.0) == 0.0


def test_deadzone_full_scale_maps_to_one():
    assert deadzone(1.0, 0.1, 1.0) == pytest.approx(1.0)
    assert deadzone(-1.0, 0.1, 1.0) == pytest.approx(-1.0)


def test_deadzone_is_odd():
    for value in (0.2, 0.5, 0.9):
        assert deadzone(-value, 0.1, 1.0) == pytest.approx(-deadzone(value, 0.1, 1.0))


def test_from_config_connects_ports(setup):
    module, _, _, _, connector = setup
    assert connector.calls == [
        ("/joypad/rpc:o", "/walking/rpc:i"),
        ("/joypad/goal:o", "/walking/goal:i"),
    ]
    assert module.period == 0.1
    assert module.device_options == {"device": "SDLJoypad", "sticks": 2}


def test_client_device_requires_local():
    config = base_config(device="JoypadControlClient")
    with pytest.raises(ConfigError):
        JoypadModule.from_config(config, FakeJoypad(), print, print, FakeConnector())


def test_sticks_must_be_integer():
    config = base_config(sticks=2.0)
    with pytest.raises(ConfigError):
        JoypadModule.from_config(config, FakeJoypad(), print, print, FakeConnector())


def test_scale_must_be_double():
    config = base_config(scale_x=2)
    with pytest.raises(ConfigError):
        JoypadModule.from_config(config, FakeJoypad(), print, print, FakeConnector())


def test_a_button_prepares_robot(setup):
    module, pad, sent, goals, _ = setup
    pad.buttons[0] = 1.0
    pad.buttons[1] = 1.0
    assert module.update() is JoypadCommand.PREPARE_ROBOT
    assert sent == [["prepareRobot"]]
    assert goals == []


def test_y_has_priority_over_x(setup):
    module, pad, sent, _, _ = setup
    pad.buttons[3] = 1.0
    pad.buttons[4] = 1.0
    assert module.update() is JoypadCommand.PAUSE_WALKING
    assert sent == [["pauseWalking"]]


def test_x_button_stops(setup):
    module, pad, sent, _, _ = setup
    pad.buttons[3] = 1.0
    assert module.update() is JoypadCommand.STOP_WALKING
    assert sent == [["stopWalking"]]


def test_l1_r1_reconnects_missing(setup):
    module, pad, sent, goals, connector = setup
    connector.connected.discard(("/joypad/goal:o", "/walking/goal:i"))
    connector.calls.clear()
    pad.buttons[6] = 1.0
    pad.buttons[7] = 1.0
    assert module.update() is None
    assert connector.calls == [("/joypad/goal:o", "/walking/goal:i")]
    assert sent == [] and goals == []


def test_sticks_send_swapped_scaled_goal(setup):
    module, pad, sent, goals, _ = setup
    pad.axes[0] = 1.0
    pad.axes[1] = 0.5
    assert module.update() is None
    assert sent == []
    np.testing.assert_allclose(goals[0], [-3.0 * 0.5, -2.0 * 1.0])


def test_close_releases_joypad(setup):
    module, pad, _, _, _ = setup
    module.close()
    assert pad.closed
    assert module.closed