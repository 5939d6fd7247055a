"""Occupancy grid generation from floor outlines and door edits.

Purpose:
- Rasterize a closed floor outline to wall cells.
- Carve door openings back to free space.
- Mark special zones (rooms, stairs, restricted areas) inside bounding boxes.

Usage example:
    >>> grid = build_floor_grid(
    ...     outline=[Point(0, 0), Point(15, 0), Point(15, 10), Point(0, 10)],
    ...     doors=[(Point(15, 2), Point(15, 3))],
    ... )
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np

from beaconnav.errors import InvalidGeometryError, OutOfBoundsError
from beaconnav.models import FREE, WALL, Point
from beaconnav.utils import in_bounds, to_cell, validate_grid

LOGGER = logging.getLogger(__name__)

Door = tuple[Point, Point]
RegionRequest = tuple[Sequence[Point], int]


def _as_point(raw: Point | Sequence[int]) -> Point:
    return Point(int(raw[0]), int(raw[1]))


def draw_line(grid: np.ndarray, p1: Point, p2: Point, value: int) -> None:
    """Write `value` into every cell visited by Bresenham's line from p1 to p2.

    Cells falling outside the grid are skipped.
    """
    x1, y1 = p1
    x2, y2 = p2
    dx = abs(x2 - x1)
    dy = abs(y2 - y1)
    sx = 1 if x1 < x2 else -1
    sy = 1 if y1 < y2 else -1
    err = dx - dy
    height = grid.shape[0]

    while True:
        if in_bounds(grid, Point(x1, y1)):
            grid[height - 1 - y1, x1] = value

        if x1 == x2 and y1 == y2:
            break

        e2 = err * 2
        if e2 > -dy:
            err -= dy
            x1 += sx
        if e2 < dx:
            err += dx
            y1 += sy


def generate_geometry(points: Sequence[Point | Sequence[int]]) -> np.ndarray:
    """Rasterize a closed polygon outline into a fresh occupancy grid.

    Args:
        points: Ordered outline vertices; the closing edge is implied.

    Returns:
        Grid of shape `(maxY + 1, maxX + 1)` with the outline marked as walls.

    Raises:
        InvalidGeometryError: If the outline is empty or its bounding box is
            degenerate.
    """
    if not points:
        raise InvalidGeometryError("Outline polygon has no points")

    outline = [_as_point(p) for p in points]
    max_x = max(p.x for p in outline)
    max_y = max(p.y for p in outline)
    min_x = min(p.x for p in outline)
    min_y = min(p.y for p in outline)

    if max_x < 0 or max_y < 0:
        raise InvalidGeometryError("Invalid shape dimensions: negative bounding box extent")
    if min_x < 0 or min_y < 0:
        raise InvalidGeometryError("Outline coordinates must be >= 0")

    grid = np.zeros((max_y + 1, max_x + 1), dtype=np.int32)

    for i in range(len(outline) - 1):
        draw_line(grid, outline[i], outline[i + 1], WALL)

    if len(outline) > 1:
        draw_line(grid, outline[-1], outline[0], WALL)

    return grid


def carve_doors(grid: np.ndarray, doors: Iterable[Door]) -> np.ndarray:
    """Return a copy of `grid` with every door segment rasterized as free."""
    validate_grid(grid)
    out = grid.copy()
    for start, end in doors:
        draw_line(out, _as_point(start), _as_point(end), FREE)
    return out


def transform_region(grid: np.ndarray, points: Sequence[Point | Sequence[int]], new_value: int) -> None:
    """Mark free cells inside the bounding box of `points` with `new_value`.

    Walls and already-marked cells are left untouched; parts of the box that
    fall outside the grid are ignored. Mutates `grid` in place.
    """
    validate_grid(grid)
    if not points:
        raise InvalidGeometryError("Region has no points")

    region = [_as_point(p) for p in points]
    height, width = grid.shape

    x0 = max(0, min(p.x for p in region))
    x1 = min(width - 1, max(p.x for p in region))
    y0 = max(0, min(p.y for p in region))
    y1 = min(height - 1, max(p.y for p in region))
    if x0 > x1 or y0 > y1:
        return

    # Rows run top-down, so the y range flips.
    r0, r1 = height - 1 - y1, height - 1 - y0
    window = grid[r0 : r1 + 1, x0 : x1 + 1]
    window[window == FREE] = new_value


def update_point(grid: np.ndarray, point: Point | Sequence[int], new_value: int) -> None:
    """Set one cell; raises `OutOfBoundsError` outside the grid."""
    row, col = to_cell(grid, _as_point(point))
    grid[row, col] = new_value


def update_points(grid: np.ndarray, points: Iterable[Point | Sequence[int]], new_value: int) -> None:
    """Set many cells, skipping (and logging) points outside the grid."""
    for raw in points:
        point = _as_point(raw)
        try:
            update_point(grid, point, new_value)
        except OutOfBoundsError:
            LOGGER.warning("Point (%s, %s) is out of bounds and will be ignored", point.x, point.y)


def build_floor_grid(
    outline: Sequence[Point | Sequence[int]],
    doors: Iterable[Door] | None = None,
    regions: Iterable[RegionRequest] | None = None,
) -> np.ndarray:
    """Build one floor grid: outline walls, then doors, then region markers."""
    grid = generate_geometry(outline)
    if doors:
        grid = carve_doors(grid, doors)
    for region_points, value in regions or []:
        if value == WALL:
            raise ValueError("Region marker must not be the wall value")
        transform_region(grid, region_points, value)
    return grid
