"""Pytest global fixtures and test isolation hooks."""

from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from beaconnav.api import STATE
from beaconnav.models import Edge, MapData, Node
from beaconnav.resolver import InMemoryNodeLookup
from beaconnav.scheduling import VirtualScheduler


@pytest.fixture(autouse=True)
def reset_processing_state() -> None:
    """Reset in-memory API state before each test."""
    STATE.lookup = InMemoryNodeLookup()
    STATE.clock = VirtualScheduler()
    STATE.session = None


@pytest.fixture()
def open_grid() -> np.ndarray:
    """Provide a simple reusable free-space grid."""
    return np.zeros((10, 10), dtype=np.int32)


def build_two_floor_map() -> MapData:
    """Entrance -> Hall on floor 0, stairs up, Stairs -> Office on floor 1."""
    nodes = [
        Node(1, "Entrance", "b-a", 1, 1, floor_number=0, comment="main door"),
        Node(2, "Hall", "b-m", 8, 8, floor_number=0, comment="stairs lobby"),
        Node(3, "Stairs", "b-b", 8, 8, floor_number=1),
        Node(4, "Office", "b-c", 1, 1, floor_number=1, comment="meeting room"),
    ]
    edges = [
        Edge(1, 1, 2, 10.0, comment="Take the corridor"),
        Edge(2, 2, 3, 5.0),
        Edge(3, 3, 4, 10.0),
        Edge(4, 2, 1, 10.0),
        Edge(5, 3, 2, 5.0),
        Edge(6, 4, 3, 10.0),
    ]
    return MapData(
        id=1,
        name="Main building",
        nodes=nodes,
        edges=edges,
        floors={0: np.zeros((10, 10), dtype=np.int32), 1: np.zeros((10, 10), dtype=np.int32)},
    )


@pytest.fixture()
def two_floor_map() -> MapData:
    return build_two_floor_map()


@pytest.fixture()
def two_floor_payload() -> dict[str, Any]:
    """Same map as `two_floor_map`, in the lookup service's JSON shape."""
    empty = [[0] * 10 for _ in range(10)]
    return {
        "id": 1,
        "name": "Main building",
        "northAngle": 12.5,
        "nodes": [
            {"id": 1, "name": "Entrance", "beaconId": "b-a", "x": 1, "y": 1, "floorNumber": 0, "comment": "main door"},
            {"id": 2, "name": "Hall", "beaconId": "b-m", "x": 8, "y": 8, "floorNumber": 0, "comment": "stairs lobby"},
            {"id": 3, "name": "Stairs", "beaconId": "b-b", "x": 8, "y": 8, "floorNumber": 1},
            {"id": 4, "name": "Office", "beaconId": "b-c", "x": 1, "y": 1, "floorNumber": 1, "comment": "meeting room"},
        ],
        "edges": [
            {"id": 1, "fromNode": 1, "toNode": 2, "weight": 10, "comment": "Take the corridor"},
            {"id": 2, "fromNode": {"id": 2}, "toNode": {"id": 3}, "weight": 5},
            {"id": 3, "fromNode": 3, "toNode": 4, "weight": 10},
            {"id": 4, "fromNode": 2, "toNode": 1, "weight": 10},
            {"id": 5, "fromNode": 3, "toNode": 2, "weight": 5},
            {"id": 6, "fromNode": 4, "toNode": 3, "weight": 10},
        ],
        "matrices": [
            {"floorNumber": 0, "name": "Ground", "data": empty},
            {"floorNumber": 1, "name": "First", "data": empty},
        ],
    }
