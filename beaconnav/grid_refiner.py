"""Wall-aware A* refinement of floor waypoints on an occupancy grid.

Purpose:
- Compute cell-by-cell routes between consecutive waypoints on one floor.
- Penalize cells next to walls so routes keep to the middle of corridors.
- Stitch segments into one point sequence without duplicated joins.

Moves are 4-directional; the step cost into a cell is `1 + wall neighbours`
(out of 8), and the Manhattan heuristic keeps the search admissible.

Usage example:
    >>> import numpy as np
    >>> grid = np.zeros((10, 10), dtype=np.int32)
    >>> refine(grid, [Point(1, 1), Point(8, 8)])[-1]
    Point(x=8, y=8)
"""

from __future__ import annotations

import heapq
import itertools
import logging
from typing import Sequence

import cv2
import numpy as np

from beaconnav.config import grid_search_factor
from beaconnav.models import WALL, Point, Waypoint
from beaconnav.utils import to_cell, to_point, validate_grid

LOGGER = logging.getLogger(__name__)

GridCell = tuple[int, int]

_NEIGHBOR_KERNEL = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.float32)
_MOVES = ((-1, 0), (1, 0), (0, -1), (0, 1))


def wall_penalty_map(grid: np.ndarray) -> np.ndarray:
    """Count wall cells among the 8 neighbours of every cell.

    Cells outside the grid do not count as walls.
    """
    validate_grid(grid)
    walls = (grid == WALL).astype(np.float32)
    padded = cv2.copyMakeBorder(walls, 1, 1, 1, 1, cv2.BORDER_CONSTANT, value=0)
    counts = cv2.filter2D(padded, -1, _NEIGHBOR_KERNEL)
    return np.rint(counts[1:-1, 1:-1]).astype(np.int32)


def _heuristic(a: GridCell, b: GridCell) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def _astar_cells(
    grid: np.ndarray,
    penalty: np.ndarray,
    start: GridCell,
    goal: GridCell,
    max_iterations: int,
) -> list[GridCell] | None:
    rows, cols = grid.shape
    counter = itertools.count()
    open_heap: list[tuple[int, int, GridCell]] = [(_heuristic(start, goal), next(counter), start)]
    came_from: dict[GridCell, GridCell] = {}
    g_score: dict[GridCell, int] = {start: 0}
    closed: set[GridCell] = set()

    iterations = 0
    while open_heap:
        _, _, current = heapq.heappop(open_heap)
        if current in closed:
            continue

        if current == goal:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path

        iterations += 1
        if iterations > max_iterations:
            LOGGER.warning("Grid search hit iteration cap %s", max_iterations)
            return None

        closed.add(current)
        r, c = current
        for dr, dc in _MOVES:
            nr, nc = r + dr, c + dc
            if nr < 0 or nr >= rows or nc < 0 or nc >= cols:
                continue
            if grid[nr, nc] == WALL:
                continue
            neighbor = (nr, nc)
            if neighbor in closed:
                continue

            tentative = g_score[current] + 1 + int(penalty[nr, nc])
            if tentative < g_score.get(neighbor, 1 << 62):
                came_from[neighbor] = current
                g_score[neighbor] = tentative
                heapq.heappush(open_heap, (tentative + _heuristic(neighbor, goal), next(counter), neighbor))

    return None


def find_segment_path(
    grid: np.ndarray,
    start: Point,
    end: Point,
    penalty: np.ndarray | None = None,
    max_iterations: int | None = None,
) -> list[Point] | None:
    """Compute one wall-aware route between two cells, endpoints included.

    Args:
        grid: Floor occupancy grid (0 free, 1 wall, >= 2 marked).
        start: Start point in Cartesian coordinates.
        end: End point in Cartesian coordinates.
        penalty: Precomputed `wall_penalty_map(grid)`.
        max_iterations: Expansion cap; defaults to cell count times the
            configured search factor.

    Returns:
        Points from start to end, or `None` if an endpoint is a wall, no route
        exists, or the cap is hit.

    Raises:
        OutOfBoundsError: If start or end lies outside the grid.
    """
    validate_grid(grid)
    start_cell = to_cell(grid, start)
    goal_cell = to_cell(grid, end)

    if grid[start_cell] == WALL or grid[goal_cell] == WALL:
        LOGGER.debug("Segment %s -> %s has a wall endpoint", start, end)
        return None

    if penalty is None:
        penalty = wall_penalty_map(grid)
    if max_iterations is None:
        max_iterations = grid.size * grid_search_factor()

    cells = _astar_cells(grid, penalty, start_cell, goal_cell, max_iterations)
    if cells is None:
        return None
    return [to_point(grid, r, c) for r, c in cells]


def refine(
    grid: np.ndarray,
    waypoints: Sequence[Point | Waypoint],
    max_iterations: int | None = None,
) -> list[Point] | None:
    """Refine same-floor waypoints into one stitched grid path.

    Returns:
        Ordered points starting at the first waypoint and ending at the last,
        with every join point present once. `None` if any segment has no
        route; callers must not render a partial path.
    """
    points = [w.point if isinstance(w, Waypoint) else Point(int(w[0]), int(w[1])) for w in waypoints]
    if not points:
        return []

    validate_grid(grid)
    if len(points) == 1:
        row, col = to_cell(grid, points[0])
        return None if grid[row, col] == WALL else [points[0]]

    penalty = wall_penalty_map(grid)
    full_path: list[Point] = []
    for i in range(len(points) - 1):
        segment = find_segment_path(grid, points[i], points[i + 1], penalty=penalty, max_iterations=max_iterations)
        if segment is None:
            LOGGER.debug("No grid route for segment %s: %s -> %s", i, points[i], points[i + 1])
            return None
        if i > 0:
            segment = segment[1:]
        full_path.extend(segment)

    return full_path
