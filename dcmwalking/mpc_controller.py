"""Model predictive controller that tracks a DCM reference with the ZMP."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import numpy as np
from scipy import sparse

from dcmwalking.mpc_solver import MPCSolver, SolverError
from dcmwalking.utils import (
    ConfigError,
    Triplet,
    get_number,
    shift_triplets,
    sparse_from_triplets,
    triplets_from_values,
)

__all__ = [
    "ConvexHull2D",
    "rectangle_from_offsets",
    "theta_matrix",
    "stacked_triplets",
    "equality_constraints_triplets",
    "hessian_matrix",
    "DCMModelPredictiveController",
]

_DEFAULT_GRAVITY = 9.81
_DEFAULT_SAMPLING_TIME = 0.016
_DEFAULT_HORIZON_SECONDS = 2.0
_DEFAULT_HULL_TOLERANCE = 0.01
_PRUNE_THRESHOLD = 0.00001 * 1e-12


def _cross(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def _hull_vertices(points: list[np.ndarray]) -> list[np.ndarray]:
    """Counter-clockwise convex hull without collinear vertices."""
    unique = sorted({(float(p[0]), float(p[1])) for p in points})
    pts = [np.array(p) for p in unique]
    if len(pts) < 3:
        return pts

    def half(sequence: list[np.ndarray]) -> list[np.ndarray]:
        chain: list[np.ndarray] = []
        for point in sequence:
            while len(chain) >= 2 and _cross(chain[-2], chain[-1], point) <= 0:
                chain.pop()
            chain.append(point)
        return chain

    lower = half(pts)
    upper = half(list(reversed(pts)))
    return lower[:-1] + upper[:-1]


def _as_transform(transform: Any) -> np.ndarray:
    matrix = np.asarray(transform, dtype=float)
    if matrix.shape != (4, 4):
        raise ValueError("a transform has to be a 4x4 homogeneous matrix")
    return matrix


class ConvexHull2D:
    """Convex hull of feet polygons projected on the ground as ``A p <= b``.

    The rows of ``A`` have unit norm, so ``b - A p`` are the distances of
    ``p`` from the hull edges.
    """

    def __init__(self) -> None:
        self.matrix = np.zeros((0, 2))
        self.vector = np.zeros(0)
        self.vertices: list[np.ndarray] = []

    def build(
        self, polygons: Sequence[Sequence[Sequence[float]]], transforms: Sequence[Any]
    ) -> None:
        """Transform each polygon, project it on the x-y plane and hull them."""
        if len(polygons) != len(transforms):
            raise ValueError("there must be one transform for each polygon")
        if not polygons:
            raise ValueError("at least one polygon is required")
        points = []
        for polygon, transform in zip(polygons, transforms):
            matrix = _as_transform(transform)
            for vertex in polygon:
                local = np.asarray(vertex, dtype=float).ravel()
                if local.size == 2:
                    local = np.append(local, 0.0)
                world = matrix[:3, :3] @ local + matrix[:3, 3]
                points.append(world[:2])
        vertices = _hull_vertices(points)
        if len(vertices) < 3:
            raise ValueError("the projected convex hull is degenerate")

        rows, limits = [], []
        for current, following in zip(vertices, vertices[1:] + vertices[:1]):
            normal = np.array(
                [following[1] - current[1], current[0] - following[0]]
            )
            norm = float(np.linalg.norm(normal))
            normal = normal / norm
            rows.append(normal)
            limits.append(float(normal @ current))
        self.vertices = vertices
        self.matrix = np.array(rows)
        self.vector = np.array(limits)

    def compute_margin(self, point: Sequence[float]) -> float:
        """Smallest distance of ``point`` from the edges; negative outside."""
        if self.vector.size == 0:
            raise ValueError("the convex hull has not been built")
        position = np.asarray(point, dtype=float).reshape(2)
        return float(np.min(self.vector - self.matrix @ position))


def rectangle_from_offsets(
    x_forward: float, x_backward: float, y_left: float, y_right: float
) -> list[np.ndarray]:
    """Rectangle in the x-y plane given its distances from the origin."""
    return [
        np.array([x_forward, y_left, 0.0]),
        np.array([x_forward, -y_right, 0.0]),
        np.array([-x_backward, -y_right, 0.0]),
        np.array([-x_backward, y_left, 0.0]),
    ]


def _diagonal(start_row: int, start_column: int, value: float, size: int) -> list[Triplet]:
    return [Triplet(start_row + i, start_column + i, value) for i in range(size)]


def theta_matrix(input_size: int, horizon: int) -> sparse.csc_matrix:
    """Matrix that maps stacked inputs to their increments."""
    dimension = input_size * horizon
    triplets = _diagonal(0, 0, 1.0, dimension)
    triplets += _diagonal(input_size, 0, -1.0, input_size * (horizon - 1))
    return sparse_from_triplets(triplets, dimension, dimension)


def stacked_triplets(
    weight_triplets: Iterable[Triplet], block_size: int, count: int
) -> list[Triplet]:
    """Block diagonal ``diag(W, W, ..., W)`` with ``count`` blocks."""
    weights = list(weight_triplets)
    stacked: list[Triplet] = []
    for index in range(count):
        stacked.extend(
            shift_triplets(weights, index * block_size, index * block_size)
        )
    return stacked


def equality_constraints_triplets(
    state_dynamics: Iterable[Triplet],
    input_dynamics: Iterable[Triplet],
    state_size: int,
    input_size: int,
    horizon: int,
) -> list[Triplet]:
    """Dynamics constraints ``-x_{k+1} + A x_k + B u_k = 0`` and ``-x_0``."""
    state = list(state_dynamics)
    inputs = list(input_dynamics)
    triplets = _diagonal(0, 0, -1.0, state_size * (horizon + 1))
    for step in range(horizon):
        triplets.extend(
            shift_triplets(state, step * state_size + state_size, step * state_size)
        )
    input_offset = state_size * (horizon + 1)
    for step in range(horizon):
        triplets.extend(
            shift_triplets(
                inputs,
                step * state_size + state_size,
                input_offset + step * input_size,
            )
        )
    return triplets


def hessian_matrix(
    state_triplets: Iterable[Triplet],
    input_submatrix: Any,
    state_size: int,
    horizon: int,
) -> sparse.csc_matrix:
    """Hessian with the state block first and the input block after it."""
    block = sparse.coo_matrix(input_submatrix)
    offset = state_size * (horizon + 1)
    dimension = offset + block.shape[0]
    triplets = list(state_triplets) + [
        Triplet(int(r) + offset, int(c) + offset, float(v))
        for r, c, v in zip(block.row, block.col, block.data)
    ]
    return sparse_from_triplets(triplets, dimension, dimension)


def _pruned(matrix: Any) -> sparse.csc_matrix:
    result = sparse.csc_matrix(matrix, dtype=float)
    result.data[np.abs(result.data) <= _PRUNE_THRESHOLD] = 0.0
    result.eliminate_zeros()
    return result


def _read_limits(value: Any, name: str) -> tuple[float, float]:
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"error while reading the {name} limits")
    if len(value) != 2:
        raise ConfigError(f"error while reading the {name} limits, wrong dimensions")
    return float(value[0]), float(value[1])


class DCMModelPredictiveController:
    """Chooses the ZMP so that the DCM follows a reference inside the support polygon."""

    def __init__(
        self,
        initial_output: Sequence[float],
        horizon: int,
        state_weight_triplets: Iterable[Triplet],
        input_weight_triplets: Iterable[Triplet],
        omega: float,
        sampling_time: float,
        foot_polygon: Sequence[Sequence[float]],
        convex_hull_tolerance: float = _DEFAULT_HULL_TOLERANCE,
        state_size: int = 2,
        input_size: int = 2,
    ) -> None:
        if horizon < 1:
            raise ValueError("the controller horizon has to be at least one step")
        self._state_size = state_size
        self._input_size = input_size
        self._horizon = horizon
        self._output = np.array(initial_output, dtype=float).reshape(input_size)
        self._foot_polygon = [np.asarray(v, dtype=float) for v in foot_polygon]
        self._tolerance = float(convex_hull_tolerance)

        state_weights = list(state_weight_triplets)
        input_weights = list(input_weight_triplets)
        self._state_weight = sparse_from_triplets(state_weights, state_size, state_size)

        theta = theta_matrix(input_size, horizon)
        input_dimension = input_size * horizon
        input_stacked = sparse_from_triplets(
            stacked_triplets(input_weights, input_size, horizon),
            input_dimension,
            input_dimension,
        )
        state_stacked = stacked_triplets(state_weights, state_size, horizon + 1)
        hessian_input = _pruned(theta.T @ input_stacked @ theta)
        self._hessian = hessian_matrix(state_stacked, hessian_input, state_size, horizon)

        e1 = sparse_from_triplets(
            _diagonal(0, 0, 1.0, input_size), input_dimension, input_size
        )
        self._gradient_submatrix = _pruned(-(theta.T @ input_stacked @ e1))

        factor = math.exp(omega * sampling_time)
        self._equality_triplets = equality_constraints_triplets(
            _diagonal(0, 0, factor, state_size),
            _diagonal(0, 0, 1.0 - factor, input_size),
            state_size,
            input_size,
            horizon,
        )

        self._hull = ConvexHull2D()
        self._solver: MPCSolver | None = None
        self._feet_status = (False, False)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DCMModelPredictiveController":
        """Build the controller from a configuration mapping."""
        initial = config.get("initial_zmp_position") if config else None
        if initial is None:
            raise ConfigError("empty initial zmp position")
        if not isinstance(initial, (list, tuple)):
            raise ConfigError("unable to read the zmp position")
        if len(initial) != 2:
            raise ConfigError("the dimension of the initial zmp position is not 2")
        if not all(isinstance(item, float) for item in initial):
            raise ConfigError("the zmp position is expected to be a double")

        sampling_time = float(config.get("sampling_time", _DEFAULT_SAMPLING_TIME))
        horizon_seconds = float(config.get("controllerHorizon", _DEFAULT_HORIZON_SECONDS))
        horizon = int(math.floor(horizon_seconds / sampling_time + 0.5))

        state_weights = triplets_from_values(config.get("stateWeightTriplets"), 2)
        input_weights = triplets_from_values(config.get("inputWeightTriplets"), 2)

        com_height = get_number(config, "com_height")
        gravity = float(config.get("gravity_acceleration", _DEFAULT_GRAVITY))
        omega = math.sqrt(gravity / com_height)

        feet = config.get("foot_size")
        if not isinstance(feet, (list, tuple)):
            raise ConfigError("please set the foot_size in the configuration")
        if len(feet) != 2:
            raise ConfigError("wrong number of elements in foot_size")
        x1, x2 = _read_limits(feet[0], "X")
        y1, y2 = _read_limits(feet[1], "Y")
        polygon = rectangle_from_offsets(
            abs(max(x1, x2)), abs(min(x1, x2)), abs(max(y1, y2)), abs(min(y1, y2))
        )
        tolerance = float(config.get("convex_hull_tolerance", _DEFAULT_HULL_TOLERANCE))

        return cls(
            initial,
            horizon,
            state_weights,
            input_weights,
            omega,
            sampling_time,
            polygon,
            tolerance,
        )

    @property
    def horizon(self) -> int:
        """Number of steps in the prediction horizon."""
        return self._horizon

    @property
    def convex_hull(self) -> ConvexHull2D:
        """Support polygon used by the current problem."""
        return self._hull

    def set_convex_hull_constraint(
        self,
        left_foot: Sequence[Any],
        right_foot: Sequence[Any],
        left_in_contact: Sequence[bool],
        right_in_contact: Sequence[bool],
    ) -> None:
        """Rebuild the support polygon and the problem when the contacts change."""
        status = (bool(left_in_contact[0]), bool(right_in_contact[0]))
        if status == self._feet_status:
            return
        self._feet_status = status

        if status == (True, True):
            self._hull.build(
                [self._foot_polygon, self._foot_polygon],
                [left_foot[0], right_foot[0]],
            )
        elif status == (True, False):
            self._hull.build([self._foot_polygon], [left_foot[0]])
        elif status == (False, True):
            self._hull.build([self._foot_polygon], [right_foot[0]])
        else:
            raise ValueError("no foot is in contact")

        solver = MPCSolver(
            self._state_size,
            self._input_size,
            self._horizon,
            self._hull.matrix.shape[0],
            self._equality_triplets,
            self._gradient_submatrix,
            self._state_weight,
        )
        solver.set_hessian(self._hessian)
        solver.set_constraints_matrix(self._hull.matrix)
        self._solver = solver

    def _current(self) -> MPCSolver:
        if self._solver is None:
            raise SolverError("no convex hull constraint has been set")
        return self._solver

    def set_feedback(self, current_state: Sequence[float]) -> None:
        """Set the measured DCM."""
        self._current().set_bounds(current_state, self._hull.vector)

    def set_reference_signal(
        self, reference_signal: Iterable[Sequence[float]], reset_trajectory: bool = False
    ) -> None:
        """Set the DCM reference over the horizon."""
        self._current().set_gradient(reference_signal, self._output, reset_trajectory)

    def solve(self) -> np.ndarray:
        """Solve the problem and return the new ZMP."""
        solver = self._current()
        if not solver.is_initialized():
            solver.initialize()
        solver.solve()
        offset = self._state_size * (self._horizon + 1)
        candidate = solver.solution()[offset:offset + self._input_size]
        self._output = candidate.copy()
        if self._hull.compute_margin(self._output) < -self._tolerance:
            raise SolverError("the evaluated ZMP is outside the convex hull")
        return self._output.copy()

    @property
    def output(self) -> np.ndarray:
        """Last computed ZMP."""
        return self._output.copy()

    def reset(self) -> None:
        """Forget the contact status, as at the first step."""
        self._feet_status = (False, False)