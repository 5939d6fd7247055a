"""Unit tests for beaconnav.geometry."""

from __future__ import annotations

import numpy as np
import pytest

from beaconnav.errors import InvalidGeometryError, OutOfBoundsError
from beaconnav.geometry import (
    build_floor_grid,
    carve_doors,
    draw_line,
    generate_geometry,
    transform_region,
    update_point,
    update_points,
)
from beaconnav.models import FREE, WALL, Point

L_SHAPE = [Point(0, 0), Point(15, 0), Point(15, 5), Point(10, 5), Point(10, 10), Point(0, 10)]


def test_generate_geometry_shape_and_outline() -> None:
    """Grid spans the bounding box and every outline vertex is a wall."""
    grid = generate_geometry(L_SHAPE)
    height = grid.shape[0]

    assert grid.shape == (11, 16)
    for p in L_SHAPE:
        assert grid[height - 1 - p.y, p.x] == WALL
    # Interior and the cut-out corner stay free.
    assert grid[height - 1 - 2, 2] == FREE
    assert grid[height - 1 - 8, 14] == FREE


def test_door_carving_frees_wall_cells() -> None:
    """Door (15,2)-(15,3) on the east wall opens exactly those cells."""
    walls = generate_geometry(L_SHAPE)
    height = walls.shape[0]
    assert walls[height - 1 - 2, 15] == WALL

    grid = carve_doors(walls, [(Point(15, 2), Point(15, 3))])

    assert grid[height - 1 - 2, 15] == FREE
    assert grid[height - 1 - 3, 15] == FREE
    assert grid[height - 1 - 4, 15] == WALL
    # carve_doors leaves its input untouched.
    assert walls[height - 1 - 2, 15] == WALL


def test_generate_geometry_accepts_plain_pairs() -> None:
    grid = generate_geometry([(0, 0), (4, 0), (4, 4), (0, 4)])
    assert grid.shape == (5, 5)
    assert grid[2, 2] == FREE
    assert np.all(grid[0, :] == WALL)


@pytest.mark.parametrize(
    "points",
    [
        [],
        [Point(-1, 0), Point(4, 0), Point(4, 4)],
        [Point(-5, -5), Point(-1, -1)],
    ],
)
def test_generate_geometry_invalid_outline_raises(points) -> None:
    with pytest.raises(InvalidGeometryError):
        generate_geometry(points)


def test_invalid_geometry_is_value_error() -> None:
    with pytest.raises(ValueError):
        generate_geometry([])


def test_draw_line_skips_cells_outside_grid() -> None:
    grid = np.zeros((3, 3), dtype=np.int32)
    draw_line(grid, Point(0, 1), Point(5, 1), WALL)
    assert np.all(grid[1, :] == WALL)
    assert grid.sum() == 3


def test_transform_region_marks_only_free_cells() -> None:
    grid = generate_geometry([(0, 0), (9, 0), (9, 9), (0, 9)])

    transform_region(grid, [Point(0, 0), Point(3, 3)], 3)

    assert grid[9 - 2, 2] == 3
    assert grid[9 - 3, 3] == 3
    assert grid[9 - 0, 0] == WALL
    assert grid[9 - 4, 4] == FREE


def test_transform_region_clips_to_grid() -> None:
    grid = np.zeros((4, 4), dtype=np.int32)
    transform_region(grid, [Point(2, 2), Point(10, 10)], 5)
    assert np.count_nonzero(grid == 5) == 4

    untouched = np.zeros((4, 4), dtype=np.int32)
    transform_region(untouched, [Point(6, 6), Point(8, 8)], 5)
    assert np.all(untouched == FREE)


def test_update_point_out_of_bounds_raises() -> None:
    grid = np.zeros((4, 4), dtype=np.int32)
    update_point(grid, Point(1, 0), 2)
    assert grid[3, 1] == 2

    with pytest.raises(OutOfBoundsError):
        update_point(grid, Point(4, 0), 2)


def test_update_points_skips_out_of_bounds(caplog) -> None:
    grid = np.zeros((4, 4), dtype=np.int32)
    update_points(grid, [Point(0, 0), Point(9, 9), Point(3, 3)], 4)

    assert grid[3, 0] == 4
    assert grid[0, 3] == 4
    assert np.count_nonzero(grid) == 2
    assert "out of bounds" in caplog.text


def test_build_floor_grid_applies_doors_then_regions() -> None:
    grid = build_floor_grid(
        outline=[Point(0, 0), Point(9, 0), Point(9, 9), Point(0, 9)],
        doors=[(Point(0, 4), Point(0, 5))],
        regions=[([Point(1, 1), Point(2, 2)], 7)],
    )
    assert grid[9 - 4, 0] == FREE
    assert grid[9 - 1, 1] == 7


def test_build_floor_grid_rejects_wall_region_value() -> None:
    with pytest.raises(ValueError, match="wall value"):
        build_floor_grid(outline=[Point(0, 0), Point(3, 3)], regions=[([Point(1, 1)], WALL)])
