"""Unit tests for beaconnav.planner."""

from __future__ import annotations

import numpy as np
import pytest

from beaconnav.errors import NodeNotFoundError, NoGraphPathError, NoGridPathError
from beaconnav.models import WALL, Edge, MapData, Node, Point
from beaconnav.planner import (
    MISSING_FLOOR_GRID,
    NO_GRAPH_PATH,
    NO_GRID_PATH,
    OUT_OF_BOUNDS,
    UNKNOWN_NODE,
    PathPlanner,
    RoutingFailure,
)


def test_plan_two_floor_route(two_floor_map) -> None:
    result = PathPlanner().plan(two_floor_map, 1, 4)

    assert result.found_route
    assert result.node_ids == [1, 2, 3, 4]
    assert result.failures == []
    assert sorted(result.floor_paths) == [0, 1]
    assert [floor for floor, _ in result.run_paths] == [0, 1]
    (ground,) = result.floor_paths[0]
    (first,) = result.floor_paths[1]
    assert ground[0] == Point(1, 1)
    assert ground[-1] == Point(8, 8)
    assert first[0] == Point(8, 8)
    assert first[-1] == Point(1, 1)
    assert result.waypoints_for_floor(1) == [Point(8, 8), Point(8, 8), Point(1, 1)]
    assert result.info == "Take the corridor"
    result.raise_for_failure(allow_partial=False)


def test_plan_without_commented_first_edge_has_no_info(two_floor_map) -> None:
    result = PathPlanner().plan(two_floor_map, 4, 1)
    assert result.found_route
    assert result.info is None


def test_plan_unknown_node(two_floor_map) -> None:
    result = PathPlanner().plan(two_floor_map, 1, 99)

    assert not result.found_route
    assert result.failures == [RoutingFailure(UNKNOWN_NODE)]
    with pytest.raises(NodeNotFoundError):
        result.raise_for_failure()


def test_plan_no_graph_path(two_floor_map) -> None:
    two_floor_map.edges[:] = [e for e in two_floor_map.edges if e.id != 2]

    result = PathPlanner().plan(two_floor_map, 1, 4)

    assert result.failures == [RoutingFailure(NO_GRAPH_PATH)]
    assert result.floor_paths == {}
    assert result.run_paths == []
    with pytest.raises(NoGraphPathError):
        result.raise_for_failure()


def test_plan_reports_unreachable_floor_and_keeps_the_rest(two_floor_map) -> None:
    blocked = np.zeros((10, 10), dtype=np.int32)
    blocked[:, 5] = WALL
    two_floor_map.floors[1] = blocked

    result = PathPlanner().plan(two_floor_map, 1, 4)

    assert result.found_route
    assert list(result.floor_paths) == [0]
    assert result.failures == [RoutingFailure(NO_GRID_PATH, 1)]
    assert [floor for floor, _ in result.run_paths] == [0]
    assert result.unreachable_floors == [1]
    result.raise_for_failure(allow_partial=True)
    with pytest.raises(NoGridPathError) as excinfo:
        result.raise_for_failure(allow_partial=False)
    assert excinfo.value.floor == 1


def test_plan_missing_floor_grid(two_floor_map) -> None:
    del two_floor_map.floors[1]

    result = PathPlanner().plan(two_floor_map, 1, 4)

    assert result.failures == [RoutingFailure(MISSING_FLOOR_GRID, 1)]
    assert list(result.floor_paths) == [0]


def test_plan_waypoint_outside_grid(two_floor_map) -> None:
    two_floor_map.floors[1] = np.zeros((5, 5), dtype=np.int32)

    result = PathPlanner().plan(two_floor_map, 1, 4)

    assert result.failures == [RoutingFailure(OUT_OF_BOUNDS, 1)]
    assert 1 not in result.floor_paths


def test_plan_origin_equals_destination(two_floor_map) -> None:
    result = PathPlanner().plan(two_floor_map, 2, 2)
    assert result.node_ids == [2]
    assert result.floor_paths == {0: [[Point(8, 8)]]}
    assert result.run_paths == [(0, [Point(8, 8)])]


def _down_and_back_map() -> MapData:
    """A on floor 0, up to floor 1, across, and back down to D on floor 0."""
    nodes = [
        Node(1, "A", "b-1", 1, 1, floor_number=0),
        Node(2, "Up", "b-2", 8, 8, floor_number=1),
        Node(3, "Down", "b-3", 8, 1, floor_number=1),
        Node(4, "D", "b-4", 1, 8, floor_number=0),
    ]
    edges = [Edge(1, 1, 2, 5.0), Edge(2, 2, 3, 5.0), Edge(3, 3, 4, 5.0)]
    free = {floor: np.zeros((10, 10), dtype=np.int32) for floor in (0, 1)}
    return MapData(id=7, name="Annex", nodes=nodes, edges=edges, floors=free)


def _is_contiguous(points: list[Point]) -> bool:
    return all(abs(a.x - b.x) + abs(a.y - b.y) == 1 for a, b in zip(points, points[1:]))


def test_plan_revisited_floor_keeps_one_polyline_per_visit() -> None:
    result = PathPlanner().plan(_down_and_back_map(), 1, 4)

    assert result.found_route
    assert [run.floor for run in result.runs] == [0, 1, 0]
    assert [floor for floor, _ in result.run_paths] == [0, 1, 0]

    first_visit, second_visit = result.floor_paths[0]
    assert first_visit == [Point(1, 1)]
    assert second_visit[0] == Point(8, 1)
    assert second_visit[-1] == Point(1, 8)
    assert _is_contiguous(second_visit)
    for _, points in result.run_paths:
        assert _is_contiguous(points)
    assert result.waypoints_for_floor(0) == [Point(1, 1), Point(8, 1), Point(1, 8)]
