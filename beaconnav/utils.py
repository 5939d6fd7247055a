"""Utility helpers shared across beaconnav modules.

Purpose:
- Convert between Cartesian node coordinates and grid row/col indices.
- Convert numpy grids and point paths to JSON-safe payload types.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np

from beaconnav.errors import OutOfBoundsError
from beaconnav.models import Point


def validate_grid(grid: np.ndarray) -> None:
    """Validate occupancy grid contract (2D, non-empty, non-negative)."""
    if not isinstance(grid, np.ndarray):
        raise ValueError("Grid must be a numpy array")
    if grid.ndim != 2 or grid.size == 0:
        raise ValueError("Grid must be a non-empty 2D array")
    if np.any(grid < 0):
        raise ValueError("Grid values must be >= 0")


def in_bounds(grid: np.ndarray, point: Point) -> bool:
    height, width = grid.shape
    return 0 <= point.x < width and 0 <= point.y < height


def to_cell(grid: np.ndarray, point: Point) -> tuple[int, int]:
    """Map Cartesian `(x, y)` to `(row, col)`, flipping `y` so up is row 0."""
    if not in_bounds(grid, point):
        raise OutOfBoundsError(f"Point ({point.x}, {point.y}) is out of grid bounds {grid.shape}")
    return grid.shape[0] - 1 - point.y, point.x


def to_point(grid: np.ndarray, row: int, col: int) -> Point:
    """Inverse of `to_cell`."""
    return Point(col, grid.shape[0] - 1 - row)


def cell_value(grid: np.ndarray, point: Point) -> int:
    row, col = to_cell(grid, point)
    return int(grid[row, col])


def to_serializable_path(path: Iterable[Point]) -> list[dict[str, int]]:
    """Convert points to JSON-friendly dictionary objects."""
    return [{"x": int(p[0]), "y": int(p[1])} for p in path]


def json_grid(grid: np.ndarray) -> list[list[int]]:
    """Convert a numpy occupancy grid to nested Python int lists."""
    if not isinstance(grid, np.ndarray) or grid.ndim != 2:
        raise ValueError("grid must be a 2D numpy array")
    return grid.astype(int).tolist()
