"""Weighted shortest-path search over a map's node/edge graph.

Purpose:
- One best-first search with a pluggable heuristic (zero => Dijkstra,
  Euclidean/Manhattan => A*).
- Group the resulting node path into per-floor waypoint runs.

Ties on equal f-score resolve in first-pushed order; that order is an
implementation detail and not part of the contract.

Usage example:
    >>> node_ids = route(map_data, start_node_id=1, end_node_id=7)
    >>> runs = group_by_floor([map_data.node_by_id(i) for i in node_ids])
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from typing import Callable, Sequence

from beaconnav.models import Edge, FloorRun, MapData, Node, Waypoint

LOGGER = logging.getLogger(__name__)

Heuristic = Callable[[Node, Node], float]


def zero_heuristic(a: Node, b: Node) -> float:
    return 0.0


def _has_coordinates(node: Node) -> bool:
    return isinstance(node.x, (int, float)) and isinstance(node.y, (int, float))


def euclidean_heuristic(a: Node, b: Node) -> float:
    """Straight-line distance; 0 when either node lacks numeric coordinates."""
    if not (_has_coordinates(a) and _has_coordinates(b)):
        return 0.0
    return math.hypot(a.x - b.x, a.y - b.y)


def manhattan_heuristic(a: Node, b: Node) -> float:
    if not (_has_coordinates(a) and _has_coordinates(b)):
        return 0.0
    return float(abs(a.x - b.x) + abs(a.y - b.y))


def _adjacency(edges: Sequence[Edge]) -> dict[int, list[Edge]]:
    out: dict[int, list[Edge]] = {}
    for edge in edges:
        out.setdefault(edge.from_node, []).append(edge)
    return out


def shortest_path(
    map_data: MapData,
    start_id: int,
    end_id: int,
    heuristic: Heuristic = euclidean_heuristic,
    max_iterations: int | None = None,
) -> list[int]:
    """Compute the lowest-cost node id path from `start_id` to `end_id`.

    Args:
        map_data: Map owning nodes and directed edges.
        start_id: Origin node id.
        end_id: Destination node id.
        heuristic: Estimated remaining cost between two nodes.
        max_iterations: Expansion cap; defaults to `nodes * edges + nodes`.

    Returns:
        Ordered node ids from start to end. Empty list if unreachable, if
        either id is unknown, or if the expansion cap is hit.
    """
    nodes = {node.id: node for node in map_data.nodes}
    if start_id not in nodes or end_id not in nodes:
        return []

    adjacency = _adjacency(map_data.edges)
    goal = nodes[end_id]
    limit = max_iterations if max_iterations is not None else len(nodes) * (len(map_data.edges) + 1)

    counter = itertools.count()
    g_score: dict[int, float] = {start_id: 0.0}
    f_score: dict[int, float] = {start_id: heuristic(nodes[start_id], goal)}
    came_from: dict[int, int] = {}
    open_heap: list[tuple[float, int, int]] = [(f_score[start_id], next(counter), start_id)]

    iterations = 0
    while open_heap:
        f, _, current = heapq.heappop(open_heap)
        # Skip heap entries superseded by a cheaper push of the same node.
        if f > f_score.get(current, math.inf):
            continue

        if current == end_id:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path

        iterations += 1
        if iterations > limit:
            LOGGER.warning("Graph search from %s to %s hit iteration cap %s", start_id, end_id, limit)
            return []

        for edge in adjacency.get(current, []):
            neighbor = edge.to_node
            if neighbor not in nodes:
                continue
            tentative = g_score[current] + edge.weight
            if tentative < g_score.get(neighbor, math.inf):
                came_from[neighbor] = current
                g_score[neighbor] = tentative
                f_score[neighbor] = tentative + heuristic(nodes[neighbor], goal)
                heapq.heappush(open_heap, (f_score[neighbor], next(counter), neighbor))

    return []


def route(
    map_data: MapData,
    start_node_id: int,
    end_node_id: int,
    heuristic: Heuristic = euclidean_heuristic,
) -> list[int]:
    """Ordered node ids of the cheapest route, or empty if unreachable."""
    return shortest_path(map_data, start_node_id, end_node_id, heuristic=heuristic)


def route_edges(map_data: MapData, node_ids: Sequence[int]) -> list[Edge]:
    """Edges traversed by a node path, picking the cheapest parallel edge."""
    adjacency = _adjacency(map_data.edges)
    out: list[Edge] = []
    for a, b in zip(node_ids, node_ids[1:]):
        candidates = [e for e in adjacency.get(a, []) if e.to_node == b]
        if not candidates:
            raise ValueError(f"No edge from node {a} to node {b}")
        out.append(min(candidates, key=lambda e: e.weight))
    return out


def path_cost(map_data: MapData, node_ids: Sequence[int]) -> float:
    return float(sum(edge.weight for edge in route_edges(map_data, node_ids)))


def to_waypoints(nodes: Sequence[Node]) -> list[Waypoint]:
    return [Waypoint(point=node.point, node_id=node.id, floor=node.floor_number) for node in nodes]


def group_by_floor(nodes: Sequence[Node]) -> list[FloorRun]:
    """Split a node path into contiguous same-floor runs in traversal order.

    A run boundary occurs exactly when the floor number changes between two
    consecutive nodes. The last node before the change is repeated as the
    first waypoint of the next run (tagged with the new floor), so each run
    starts where the previous one left the floor.
    """
    runs: list[FloorRun] = []
    current: list[Waypoint] = []
    current_floor: int | None = None

    for waypoint in to_waypoints(nodes):
        if current_floor is None:
            current_floor = waypoint.floor
        elif waypoint.floor != current_floor:
            runs.append(FloorRun(floor=current_floor, waypoints=tuple(current)))
            boundary = current[-1]
            current = [Waypoint(point=boundary.point, node_id=boundary.node_id, floor=waypoint.floor)]
            current_floor = waypoint.floor
        current.append(waypoint)

    if current_floor is not None:
        runs.append(FloorRun(floor=current_floor, waypoints=tuple(current)))
    return runs
