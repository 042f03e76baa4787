"""Helpers for configuration lookup, sparse triplets, angles and containers."""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy import sparse

__all__ = [
    "ConfigError",
    "Triplet",
    "shift_triplets",
    "triplets_from_values",
    "sparse_from_triplets",
    "skew_symmetric",
    "normalize_angle_positive",
    "normalize_angle",
    "shortest_angular_distance",
    "get_string",
    "get_number",
    "get_int",
    "list_to_vector",
    "get_vector",
    "list_to_strings",
    "add_string_list",
    "merge_vectors",
    "append_to_deque",
]

_TWO_PI = 2.0 * math.pi


class ConfigError(ValueError):
    """Raised when a configuration entry is missing or malformed."""


@dataclass(frozen=True)
class Triplet:
    """One non-zero entry of a sparse matrix."""

    row: int
    column: int
    value: float


def shift_triplets(
    triplets: Iterable[Triplet], starting_row: int, starting_column: int
) -> list[Triplet]:
    """Return the triplets moved so they form a sub-matrix at the given corner."""
    if starting_row == 0 and starting_column == 0:
        return list(triplets)
    return [
        Triplet(t.row + starting_row, t.column + starting_column, t.value)
        for t in triplets
    ]


def triplets_from_values(values: Any, matrix_dimension: int) -> list[Triplet]:
    """Read a list of ``[index, index, value]`` entries into triplets.

    The first index of each entry is taken as the column and the second as the
    row. Both must be smaller than ``matrix_dimension``.
    """
    if values is None:
        raise ConfigError("empty input values")
    if not isinstance(values, (list, tuple)):
        raise ConfigError("unable to read the input as a list")

    triplets = []
    for entry in values:
        if not isinstance(entry, (list, tuple)) or len(entry) != 3:
            raise ConfigError("the triplet must have three elements")
        first, second, value = entry
        first, second = int(first), int(second)
        if second >= matrix_dimension or first >= matrix_dimension:
            raise ConfigError("element position exceeds the matrix dimension")
        triplets.append(Triplet(second, first, float(value)))
    return triplets


def sparse_from_triplets(
    triplets: Iterable[Triplet], rows: int, columns: int
) -> sparse.csc_matrix:
    """Build a column-major sparse matrix; duplicate positions are summed."""
    items = list(triplets)
    data = [t.value for t in items]
    row_index = [t.row for t in items]
    col_index = [t.column for t in items]
    matrix = sparse.coo_matrix(
        (data, (row_index, col_index)), shape=(rows, columns), dtype=float
    )
    return matrix.tocsc()


def skew_symmetric(matrix: Any) -> np.ndarray:
    """Return the skew-symmetric part of a 3x3 matrix."""
    array = np.asarray(matrix, dtype=float)
    if array.shape != (3, 3):
        raise ValueError("a 3x3 matrix is required")
    return 0.5 * (array - array.T)


def normalize_angle_positive(angle: float) -> float:
    """Map an angle into ``[0, 2*pi)``."""
    return math.fmod(math.fmod(angle, _TWO_PI) + _TWO_PI, _TWO_PI)


def normalize_angle(angle: float) -> float:
    """Map an angle into ``(-pi, pi]``."""
    result = normalize_angle_positive(angle)
    if result > math.pi:
        result -= _TWO_PI
    return result


def shortest_angular_distance(from_rad: float, to_rad: float) -> float:
    """Shortest signed angle that turns ``from_rad`` into ``to_rad``."""
    return normalize_angle(to_rad - from_rad)


def _lookup(config: Mapping[str, Any], key: str) -> Any:
    if key not in config:
        raise ConfigError(f"missing field {key}")
    return config[key]


def get_string(config: Mapping[str, Any], key: str) -> str:
    """Return the string stored under ``key``."""
    value = _lookup(config, key)
    if not isinstance(value, str):
        raise ConfigError(f"the value of {key} is not a string")
    return value


def get_number(config: Mapping[str, Any], key: str) -> float:
    """Return the floating point number stored under ``key``."""
    value = _lookup(config, key)
    if not isinstance(value, float):
        raise ConfigError(f"the value of {key} is not a double")
    return value


def get_int(config: Mapping[str, Any], key: str) -> int:
    """Return the integer stored under ``key``."""
    value = _lookup(config, key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"the value of {key} is not an integer")
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def list_to_vector(value: Any, size: int) -> np.ndarray:
    """Convert a list of ``size`` numbers into a float vector."""
    if value is None:
        raise ConfigError("empty input value")
    if not isinstance(value, (list, tuple)):
        raise ConfigError("unable to read the input list")
    if len(value) != size:
        raise ConfigError(f"the dimension set in the configuration is not {size}")
    if not all(_is_number(item) for item in value):
        raise ConfigError("the input is expected to be a double or an int")
    return np.array(value, dtype=float)


def get_vector(config: Mapping[str, Any], key: str, size: int) -> np.ndarray:
    """Return the vector of ``size`` numbers stored under ``key``."""
    return list_to_vector(_lookup(config, key), size)


def list_to_strings(value: Any) -> list[str]:
    """Convert a list whose items are all strings."""
    if not isinstance(value, (list, tuple)):
        raise ConfigError("the input is not a list")
    if not all(isinstance(item, str) for item in value):
        raise ConfigError("there is a field that is not a string")
    return list(value)


def add_string_list(
    prop: MutableMapping[str, Any], key: str, items: Iterable[str]
) -> None:
    """Store a list of strings under a key that must not exist yet."""
    if key in prop:
        raise ConfigError(f"the property {key} already exists")
    prop[key] = [str(item) for item in items]


def merge_vectors(*args: Sequence[float]) -> np.ndarray:
    """Concatenate several vectors into one flat float vector."""
    if not args:
        return np.zeros(0)
    return np.concatenate([np.asarray(arg, dtype=float).ravel() for arg in args])


def append_to_deque(items: Iterable[Any], target: deque, start: int) -> None:
    """Overwrite ``target`` from position ``start`` with ``items``.

    Everything after ``start`` is dropped, so the deque ends up with
    ``start + len(items)`` elements.
    """
    if start > len(target):
        raise ValueError(
            "the start point has to be less or equal to the size of the deque"
        )
    while len(target) > start:
        target.pop()
    target.extend(items)