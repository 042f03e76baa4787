import numpy as np
import pytest

from dcmwalking.dcm_model import Integrator, StableDCMModel
from dcmwalking.utils import ConfigError


def _config(**extra):
    config = {"com_height": 9.81, "sampling_time": 0.01}
    config.update(extra)
    return config


def test_integrator_steady_increment():
    integrator = Integrator(0.1, [0.0])
    values = [integrator.integrate([2.0])[0] for _ in range(5)]
    increments = np.diff(values)
    assert np.allclose(increments, 0.2)
    assert values[0] < values[1]


def test_integrator_reset_forgets_previous_derivative():
    integrator = Integrator(0.1, [0.0])
    integrator.integrate([5.0])
    integrator.reset([3.0])
    assert integrator.integrate([0.0])[0] == pytest.approx(3.0)


def test_integrator_rejects_wrong_shape():
    integrator = Integrator(0.1, [0.0, 0.0])
    with pytest.raises(ValueError):
        integrator.integrate([1.0])


def test_integrator_rejects_bad_sampling_time():
    with pytest.raises(ValueError):
        Integrator(0.0, [0.0])


def test_omega_with_default_gravity():
    model = StableDCMModel.from_config(_config())
    assert model.omega == pytest.approx(1.0)


def test_omega_with_custom_gravity():
    model = StableDCMModel.from_config(
        {"com_height": 1.0, "sampling_time": 0.01, "gravity_acceleration": 4.0}
    )
    assert model.omega == pytest.approx(2.0)


def test_missing_com_height():
    with pytest.raises(ConfigError):
        StableDCMModel.from_config({"sampling_time": 0.01})


def test_integer_sampling_time_rejected():
    with pytest.raises(ConfigError):
        StableDCMModel.from_config({"com_height": 0.5, "sampling_time": 1})


def test_empty_config_rejected():
    with pytest.raises(ConfigError):
        StableDCMModel.from_config({})


def test_velocity_points_towards_dcm():
    model = StableDCMModel.from_config(_config())
    model.set_input([1.0, 2.0])
    model.integrate()
    assert np.allclose(model.com_velocity, [1.0, 2.0])


def test_com_converges_to_dcm():
    model = StableDCMModel.from_config(_config())
    model.set_input([0.3, -0.2])
    distances = []
    for _ in range(1000):
        model.integrate()
        distances.append(np.linalg.norm(model.com_position - [0.3, -0.2]))
    assert distances[-1] < 1e-3
    assert all(b <= a + 1e-12 for a, b in zip(distances[1:], distances[2:]))


def test_reset_sets_com_position():
    model = StableDCMModel.from_config(_config())
    model.reset([0.5, 0.25])
    assert np.allclose(model.com_position, [0.5, 0.25])
    model.set_input([0.5, 0.25])
    model.integrate()
    assert np.allclose(model.com_position, [0.5, 0.25])
    assert np.allclose(model.com_velocity, [0.0, 0.0])