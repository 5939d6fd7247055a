"""Domain model for beacon positioning and indoor routing.

Grid convention (per floor):
- grid[row, col] == 0 => free
- grid[row, col] == 1 => wall
- grid[row, col] >= 2 => marked/special zone (walkable)

Row 0 is the maximum `y`; use `height - 1 - y` to go from a node coordinate
to a grid row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np

FREE = 0
WALL = 1


class Point(NamedTuple):
    """Integer Cartesian grid coordinate."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class Node:
    """Named location anchored to one beacon and one floor cell."""

    id: int
    name: str
    beacon_id: str
    x: int
    y: int
    floor_number: int = 0
    comment: str = ""
    area: tuple[Point, ...] = ()

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


@dataclass(frozen=True, slots=True)
class Edge:
    """Directed weighted connection between two nodes of the same map."""

    id: int
    from_node: int
    to_node: int
    weight: float
    comment: str = ""


@dataclass(slots=True, eq=False)
class MapData:
    """A loaded building section: graph plus one occupancy grid per floor.

    Compared by identity; grids are numpy arrays.
    """

    id: int
    name: str
    north_angle: float = 0.0
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    floors: dict[int, np.ndarray] = field(default_factory=dict)
    outlines: dict[int, list[Point]] = field(default_factory=dict)

    def node_by_id(self, node_id: int) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_by_beacon(self, beacon_id: str) -> list[Node]:
        return [node for node in self.nodes if node.beacon_id == beacon_id]

    def grid_for_floor(self, floor: int) -> np.ndarray | None:
        return self.floors.get(floor)

    def floor_numbers(self) -> list[int]:
        """Sorted floors that carry nodes or grids."""
        return sorted({n.floor_number for n in self.nodes} | set(self.floors))


@dataclass(frozen=True, slots=True)
class Resolution:
    """Node owning a beacon identifier together with its map."""

    node: Node
    map_data: MapData


@dataclass(frozen=True, slots=True)
class BeaconReading:
    """Raw advertisement as delivered by the radio layer."""

    identifier: str
    rssi: float | None
    timestamp: float


@dataclass(frozen=True, slots=True)
class BeaconSample:
    """Ranked sighting kept alive for the liveness TTL."""

    identifier: str
    rssi: float | None
    distance: float | None
    observed_at: float


@dataclass(frozen=True, slots=True)
class PositionCandidate:
    node: Node
    map_data: MapData
    since: float


@dataclass(frozen=True, slots=True)
class ConfirmedPosition:
    node: Node
    map_data: MapData
    confirmed_at: float


@dataclass(frozen=True, slots=True)
class Waypoint:
    """Graph-path node projected to its floor cell."""

    point: Point
    node_id: int
    floor: int


@dataclass(frozen=True, slots=True)
class FloorRun:
    """Maximal contiguous part of a graph path lying on one floor."""

    floor: int
    waypoints: tuple[Waypoint, ...]

    @property
    def points(self) -> list[Point]:
        return [w.point for w in self.waypoints]
