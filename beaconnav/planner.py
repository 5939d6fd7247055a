"""Multi-floor route planning: graph route, floor runs, per-floor grid paths."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from beaconnav.errors import NodeNotFoundError, NoGraphPathError, NoGridPathError, OutOfBoundsError
from beaconnav.graph_router import Heuristic, euclidean_heuristic, group_by_floor, route, route_edges
from beaconnav.grid_refiner import refine
from beaconnav.models import FloorRun, MapData, Point

LOGGER = logging.getLogger(__name__)

NO_GRAPH_PATH = "no_graph_path"
NO_GRID_PATH = "no_grid_path"
MISSING_FLOOR_GRID = "missing_floor_grid"
OUT_OF_BOUNDS = "out_of_bounds"
UNKNOWN_NODE = "unknown_node"


@dataclass(frozen=True, slots=True)
class RoutingFailure:
    kind: str
    floor: int | None = None


@dataclass(slots=True)
class PlanResult:
    """Outcome of one planning pass.

    `run_paths` holds one refined polyline per floor run, in traversal order.
    A floor visited twice (down and back up again) gets two polylines in
    `floor_paths`, never one joined across the gap. Only floors whose every
    run refined are kept; failed floors are listed in `failures` instead of
    carrying a partial path.
    """

    node_ids: list[int] = field(default_factory=list)
    runs: list[FloorRun] = field(default_factory=list)
    run_paths: list[tuple[int, list[Point]]] = field(default_factory=list)
    floor_paths: dict[int, list[list[Point]]] = field(default_factory=dict)
    failures: list[RoutingFailure] = field(default_factory=list)
    info: str | None = None

    @property
    def found_route(self) -> bool:
        return bool(self.node_ids)

    @property
    def unreachable_floors(self) -> list[int]:
        return [f.floor for f in self.failures if f.floor is not None]

    def waypoints_for_floor(self, floor: int) -> list[Point]:
        """Waypoints of every run on `floor`, in traversal order."""
        out: list[Point] = []
        for run in self.runs:
            if run.floor == floor:
                out.extend(run.points)
        return out

    def raise_for_failure(self, allow_partial: bool = True) -> None:
        """Raise the error matching the first failure.

        With `allow_partial`, per-floor grid failures are tolerated as long as
        a graph route exists.
        """
        for failure in self.failures:
            if failure.kind == UNKNOWN_NODE:
                raise NodeNotFoundError("Origin or destination node not found")
            if failure.kind == NO_GRAPH_PATH:
                raise NoGraphPathError("No navigable path found")
            if not allow_partial:
                raise NoGridPathError(failure.floor)  # type: ignore[arg-type]


class PathPlanner:
    """Stateless planner combining the graph router and the grid refiner."""

    def __init__(self, heuristic: Heuristic = euclidean_heuristic, max_grid_iterations: int | None = None) -> None:
        self.heuristic = heuristic
        self.max_grid_iterations = max_grid_iterations

    def plan(self, map_data: MapData, origin_id: int, destination_id: int) -> PlanResult:
        """Route once over the whole trip, then refine each floor run."""
        if map_data.node_by_id(origin_id) is None or map_data.node_by_id(destination_id) is None:
            LOGGER.warning("Unknown origin %s or destination %s in map %s", origin_id, destination_id, map_data.id)
            return PlanResult(failures=[RoutingFailure(UNKNOWN_NODE)])

        node_ids = route(map_data, origin_id, destination_id, heuristic=self.heuristic)
        if not node_ids:
            LOGGER.warning("No graph path from node %s to node %s", origin_id, destination_id)
            return PlanResult(failures=[RoutingFailure(NO_GRAPH_PATH)])

        nodes = [map_data.node_by_id(i) for i in node_ids]
        result = PlanResult(node_ids=node_ids, runs=group_by_floor(nodes))  # type: ignore[arg-type]
        result.info = self._first_comment(map_data, node_ids)

        for run in result.runs:
            # A floor can appear in more than one run (down and back up again).
            grid = map_data.grid_for_floor(run.floor)
            if grid is None:
                result.failures.append(RoutingFailure(MISSING_FLOOR_GRID, run.floor))
                continue
            try:
                points = refine(grid, run.waypoints, max_iterations=self.max_grid_iterations)
            except OutOfBoundsError:
                LOGGER.warning("Waypoint outside floor %s grid in map %s", run.floor, map_data.id)
                result.failures.append(RoutingFailure(OUT_OF_BOUNDS, run.floor))
                continue
            if points is None:
                LOGGER.warning("No grid path on floor %s in map %s", run.floor, map_data.id)
                result.failures.append(RoutingFailure(NO_GRID_PATH, run.floor))
                continue
            result.run_paths.append((run.floor, points))

        unreachable = set(result.unreachable_floors)
        result.run_paths = [(floor, points) for floor, points in result.run_paths if floor not in unreachable]
        for floor, points in result.run_paths:
            result.floor_paths.setdefault(floor, []).append(points)
        return result

    @staticmethod
    def _first_comment(map_data: MapData, node_ids: list[int]) -> str | None:
        """Comment of the first edge leaving the origin, if it has one."""
        if len(node_ids) < 2:
            return None
        first = route_edges(map_data, node_ids[:2])[0]
        return first.comment or None
