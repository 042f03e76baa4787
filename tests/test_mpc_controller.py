import numpy as np
import pytest

from dcmwalking.mpc_controller import (
    ConvexHull2D,
    DCMModelPredictiveController,
    equality_constraints_triplets,
    hessian_matrix,
    rectangle_from_offsets,
    stacked_triplets,
    theta_matrix,
)
from dcmwalking.mpc_solver import SolverError
from dcmwalking.utils import ConfigError, Triplet, sparse_from_triplets


def _transform(x, y):
    matrix = np.eye(4)
    matrix[0, 3] = x
    matrix[1, 3] = y
    return matrix


def _config(**overrides):
    config = {
        "initial_zmp_position": [0.0, 0.0],
        "sampling_time": 0.016,
        "controllerHorizon": 0.08,
        "stateWeightTriplets": [[0, 0, 10.0], [1, 1, 10.0]],
        "inputWeightTriplets": [[0, 0, 1.0], [1, 1, 1.0]],
        "com_height": 0.5,
        "foot_size": [[-0.05, 0.1], [-0.03, 0.03]],
    }
    config.update(overrides)
    return config


def test_rectangle_margin_at_origin():
    hull = ConvexHull2D()
    hull.build([rectangle_from_offsets(0.1, 0.05, 0.03, 0.03)], [np.eye(4)])
    assert hull.compute_margin([0.0, 0.0]) == pytest.approx(0.03)
    assert hull.compute_margin([0.2, 0.0]) < 0


def test_hull_rows_are_unit_and_vertices_inside():
    hull = ConvexHull2D()
    square = rectangle_from_offsets(0.1, 0.05, 0.03, 0.03)
    hull.build([square, square], [_transform(0, 0.05), _transform(0, -0.05)])
    assert np.allclose(np.linalg.norm(hull.matrix, axis=1), 1.0)
    for vertex in hull.vertices:
        assert hull.compute_margin(vertex) == pytest.approx(0.0, abs=1e-12)


def test_hull_errors():
    hull = ConvexHull2D()
    with pytest.raises(ValueError):
        hull.compute_margin([0.0, 0.0])
    with pytest.raises(ValueError):
        hull.build([rectangle_from_offsets(1, 1, 1, 1)], [])


def test_theta_matrix_maps_constant_input_to_first_block():
    theta = theta_matrix(2, 4)
    result = theta @ np.ones(8)
    assert np.allclose(result, [1, 1, 0, 0, 0, 0, 0, 0])


def test_stacked_triplets_block_diagonal():
    weights = [Triplet(0, 0, 2.0), Triplet(1, 1, 3.0)]
    stacked = sparse_from_triplets(stacked_triplets(weights, 2, 3), 6, 6).toarray()
    assert np.allclose(stacked, np.diag([2.0, 3.0] * 3))


def test_equality_constraints_satisfied_by_dynamics():
    a, b = 2.0, 0.5
    horizon = 3
    triplets = equality_constraints_triplets(
        [Triplet(0, 0, a), Triplet(1, 1, a)],
        [Triplet(0, 0, b), Triplet(1, 1, b)],
        2,
        2,
        horizon,
    )
    matrix = sparse_from_triplets(triplets, 8, 14).toarray()
    rng = np.random.default_rng(3)
    inputs = rng.normal(size=(horizon, 2))
    states = [np.array([1.0, 2.0])]
    for u in inputs:
        states.append(a * states[-1] + b * u)
    z = np.concatenate([np.concatenate(states), inputs.ravel()])
    expected = np.zeros(8)
    expected[:2] = -states[0]
    assert np.allclose(matrix @ z, expected)


def test_hessian_places_input_block():
    block = np.array([[1.0, 2.0], [2.0, 5.0]])
    hessian = hessian_matrix([Triplet(0, 0, 7.0)], block, 1, 1).toarray()
    assert hessian.shape == (4, 4)
    assert np.allclose(hessian[2:, 2:], block)
    assert hessian[0, 0] == 7.0


def test_solve_keeps_zmp_at_steady_state():
    controller = DCMModelPredictiveController.from_config(_config())
    controller.set_convex_hull_constraint(
        [_transform(0, 0.05)], [_transform(0, -0.05)], [True], [True]
    )
    controller.set_feedback([0.0, 0.0])
    controller.set_reference_signal([[0.0, 0.0]] * 3, False)
    output = controller.solve()
    assert np.allclose(output, [0.0, 0.0], atol=1e-4)
    assert np.allclose(controller.output, output)


def test_solve_output_within_hull():
    controller = DCMModelPredictiveController.from_config(_config())
    controller.set_convex_hull_constraint(
        [_transform(0, 0.05)], [_transform(0, -0.05)], [True], [False]
    )
    controller.set_feedback([0.01, 0.05])
    controller.set_reference_signal([[0.02, 0.05]] * 10, True)
    output = controller.solve()
    assert controller.convex_hull.compute_margin(output) >= -0.01


def test_horizon_from_config():
    controller = DCMModelPredictiveController.from_config(_config())
    assert controller.horizon == 5


def test_no_contact_raises():
    controller = DCMModelPredictiveController.from_config(_config())
    controller.set_convex_hull_constraint(
        [_transform(0, 0.05)], [_transform(0, -0.05)], [True], [True]
    )
    with pytest.raises(ValueError):
        controller.set_convex_hull_constraint(
            [_transform(0, 0.05)], [_transform(0, -0.05)], [False], [False]
        )


def test_feedback_without_hull_raises():
    controller = DCMModelPredictiveController.from_config(_config())
    with pytest.raises(SolverError):
        controller.set_feedback([0.0, 0.0])


@pytest.mark.parametrize(
    "overrides",
    [
        {"initial_zmp_position": [0, 0]},
        {"initial_zmp_position": [0.0]},
        {"foot_size": [[-0.05, 0.1]]},
        {"stateWeightTriplets": [[0, 5, 1.0]]},
        {"com_height": 1},
    ],
)
def test_bad_config_raises(overrides):
    with pytest.raises(ConfigError):
        DCMModelPredictiveController.from_config(_config(**overrides))


def test_missing_foot_size_raises():
    config = _config()
    del config["foot_size"]
    with pytest.raises(ConfigError):
        DCMModelPredictiveController.from_config(config)