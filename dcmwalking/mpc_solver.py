"""Quadratic program behind the DCM model predictive controller."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np
from scipy import sparse
from scipy.optimize import minimize

from dcmwalking.utils import Triplet, sparse_from_triplets

__all__ = ["SolverError", "MPCSolver"]


class SolverError(RuntimeError):
    """Raised when the optimisation problem cannot be set up or solved."""


def _dense(matrix: Any) -> np.ndarray:
    if sparse.issparse(matrix):
        return matrix.toarray()
    return np.asarray(matrix, dtype=float)


class MPCSolver:
    """Solves ``min 0.5 x'Px + q'x`` subject to ``l <= Ax <= u``.

    The variables are the stacked states over the horizon followed by the
    stacked inputs. The first constraint rows encode the dynamics, the
    remaining rows the inequality constraints on the first input.
    """

    def __init__(
        self,
        state_size: int,
        input_size: int,
        horizon: int,
        number_of_inequality_constraints: int,
        equality_triplets: Iterable[Triplet],
        gradient_submatrix: Any,
        state_weight_matrix: Any,
    ) -> None:
        self._state_size = state_size
        self._input_size = input_size
        self._horizon = horizon
        self._inequality_count = number_of_inequality_constraints
        self._equality_triplets = list(equality_triplets)

        self._state_variables = state_size * (horizon + 1)
        self._variables = self._state_variables + input_size * horizon
        self._constraints_count = self._state_variables + number_of_inequality_constraints

        self._gradient_submatrix = _dense(gradient_submatrix)
        if self._gradient_submatrix.shape != (input_size * horizon, input_size):
            raise ValueError("the gradient submatrix has the wrong shape")
        self._state_weight = _dense(state_weight_matrix)
        if self._state_weight.shape != (state_size, state_size):
            raise ValueError("the state weight matrix has the wrong shape")

        self._gradient = np.zeros(self._variables)
        self._lower = np.zeros(self._constraints_count)
        self._upper = np.zeros(self._constraints_count)
        self._lower[self._state_variables:] = -np.inf

        self._hessian: sparse.csc_matrix | None = None
        self._constraints: sparse.csc_matrix | None = None
        self._bounds_set = False
        self._gradient_set = False
        self._initialized = False
        self._primal: np.ndarray | None = None
        self._solution: np.ndarray | None = None

    def set_hessian(self, hessian: Any) -> None:
        """Set the Hessian; it is constant and cannot change after initialisation."""
        if self._initialized:
            raise SolverError("the hessian matrix is constant and is already set")
        matrix = sparse.csc_matrix(_dense(hessian))
        if matrix.shape != (self._variables, self._variables):
            raise ValueError(
                f"the hessian has to be {self._variables}x{self._variables}"
            )
        self._hessian = matrix

    def set_constraints_matrix(self, inequality_matrix: Any) -> None:
        """Combine the dynamics with the inequality matrix on the first input."""
        block = _dense(inequality_matrix)
        if block.ndim != 2 or block.shape[0] != self._inequality_count:
            raise ValueError(
                f"the inequality matrix must have {self._inequality_count} rows"
            )
        if block.shape[1] > self._variables - self._state_variables:
            raise ValueError("the inequality matrix has too many columns")
        offset = self._state_variables
        triplets = self._equality_triplets + [
            Triplet(row + offset, column + offset, float(value))
            for (row, column), value in np.ndenumerate(block)
        ]
        self._constraints = sparse_from_triplets(
            triplets, self._constraints_count, self._variables
        )

    def set_bounds(
        self, current_state: Sequence[float], inequality_vector: Sequence[float]
    ) -> None:
        """Set the initial state and the right-hand side of the inequalities."""
        state = np.asarray(current_state, dtype=float).ravel()
        if state.size != self._state_size:
            raise ValueError(
                f"the size of the current state has to equal {self._state_size}"
            )
        limits = np.asarray(inequality_vector, dtype=float).ravel()
        if limits.size != self._inequality_count:
            raise ValueError(
                "the size of the inequality vector has to equal "
                f"{self._inequality_count}"
            )
        self._lower[: self._state_size] = -state
        self._upper[: self._state_size] = -state
        self._upper[self._state_variables:] = limits
        self._bounds_set = True

    def _state_term(self, reference: Sequence[float]) -> np.ndarray:
        return -self._state_weight @ np.asarray(reference, dtype=float).ravel()

    def set_gradient(
        self,
        reference_signal: Iterable[Sequence[float]],
        previous_output: Sequence[float],
        reset_trajectory: bool = False,
    ) -> None:
        """Update the linear cost from the reference and the last applied input.

        Once initialised, and unless the trajectory is reset, the state part
        is shifted by one step and only its last block is recomputed. A
        reference shorter than the horizon is held at its last value.
        """
        references = list(reference_signal)
        if not references:
            raise ValueError("the reference signal is empty")
        size = self._state_size
        horizon = self._horizon

        if not self._initialized or reset_trajectory:
            for step in range(horizon + 1):
                reference = references[min(step, len(references) - 1)]
                self._gradient[step * size:(step + 1) * size] = self._state_term(
                    reference
                )
        else:
            self._gradient[: horizon * size] = self._gradient[
                size:(horizon + 1) * size
            ].copy()
            last = references[horizon] if len(references) > horizon else references[-1]
            self._gradient[horizon * size:(horizon + 1) * size] = self._state_term(last)

        output = np.asarray(previous_output, dtype=float).ravel()
        self._gradient[self._state_variables:] = self._gradient_submatrix @ output
        self._gradient_set = True

    def initialize(self) -> None:
        """Check that every piece of the problem is set and mark it ready."""
        if self._initialized:
            return
        missing = [
            name
            for name, ready in (
                ("hessian", self._hessian is not None),
                ("constraints matrix", self._constraints is not None),
                ("bounds", self._bounds_set),
                ("gradient", self._gradient_set),
            )
            if not ready
        ]
        if missing:
            raise SolverError("unable to initialize, missing: " + ", ".join(missing))
        self._initialized = True

    def is_initialized(self) -> bool:
        """Whether :meth:`initialize` has succeeded."""
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise SolverError("the solver is not initialized")

    def warm_start(self, primal_variable: Sequence[float]) -> None:
        """Use ``primal_variable`` as the starting point of the next solve."""
        self._require_initialized()
        guess = np.asarray(primal_variable, dtype=float).ravel()
        if guess.size != self._variables:
            raise ValueError(f"the primal variable must have {self._variables} items")
        self._primal = guess.copy()

    def solve(self) -> None:
        """Solve the problem; the result is available from :meth:`solution`."""
        self._require_initialized()
        assert self._hessian is not None and self._constraints is not None
        hessian = self._hessian.toarray()
        hessian = 0.5 * (hessian + hessian.T)
        gradient = self._gradient.copy()
        matrix = self._constraints.toarray()
        lower, upper = self._lower, self._upper

        equal = np.isfinite(lower) & np.isfinite(upper) & (lower == upper)
        upper_rows = ~equal & np.isfinite(upper)
        lower_rows = ~equal & np.isfinite(lower)

        constraints = []
        if equal.any():
            a_eq, b_eq = matrix[equal], upper[equal]
            constraints.append(
                {
                    "type": "eq",
                    "fun": lambda x, a=a_eq, b=b_eq: a @ x - b,
                    "jac": lambda x, a=a_eq: a,
                }
            )
        if upper_rows.any():
            a_up, b_up = matrix[upper_rows], upper[upper_rows]
            constraints.append(
                {
                    "type": "ineq",
                    "fun": lambda x, a=a_up, b=b_up: b - a @ x,
                    "jac": lambda x, a=a_up: -a,
                }
            )
        if lower_rows.any():
            a_lo, b_lo = matrix[lower_rows], lower[lower_rows]
            constraints.append(
                {
                    "type": "ineq",
                    "fun": lambda x, a=a_lo, b=b_lo: a @ x - b,
                    "jac": lambda x, a=a_lo: a,
                }
            )

        start = self._primal if self._primal is not None else np.zeros(self._variables)
        result = minimize(
            lambda x: 0.5 * x @ hessian @ x + gradient @ x,
            start,
            jac=lambda x: hessian @ x + gradient,
            constraints=constraints,
            method="SLSQP",
            options={"maxiter": 1000, "ftol": 1e-12},
        )
        if not result.success:
            raise SolverError(f"unable to solve the problem: {result.message}")
        self._solution = np.asarray(result.x, dtype=float)
        self._primal = self._solution.copy()

    def solution(self) -> np.ndarray:
        """The stacked states and inputs found by the last :meth:`solve`."""
        if self._solution is None:
            raise SolverError("no solution is available")
        return self._solution.copy()