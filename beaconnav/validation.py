"""Data quality checks for loaded maps (nodes, edges, floor grids)."""

from __future__ import annotations

from typing import Any

from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon

from beaconnav.models import WALL, MapData, Node, Point


def _outline_polygon(outline: list[Point]) -> Polygon | None:
    if len(outline) < 3:
        return None
    poly = Polygon([(float(p.x), float(p.y)) for p in outline])
    return poly if poly.is_valid else poly.buffer(0)


def _issue(kind: str, severity: str, message: str, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"kind": kind, "severity": severity, "message": message}
    payload.update(extra)
    return payload


def _check_node_cell(map_data: MapData, node: Node) -> dict[str, Any] | None:
    grid = map_data.grid_for_floor(node.floor_number)
    if grid is None:
        return _issue(
            "missing_floor_grid",
            "error",
            f"Floor {node.floor_number} has no occupancy grid",
            floor=node.floor_number,
            node_id=node.id,
        )

    height, width = grid.shape
    if not (0 <= node.x < width and 0 <= node.y < height):
        return _issue(
            "node_out_of_bounds",
            "error",
            f"Node ({node.x}, {node.y}) lies outside grid {width}x{height}",
            floor=node.floor_number,
            node_id=node.id,
        )
    if int(grid[height - 1 - node.y, node.x]) == WALL:
        return _issue(
            "node_on_wall",
            "warning",
            "Node sits on a wall cell and cannot anchor a grid route",
            floor=node.floor_number,
            node_id=node.id,
        )
    return None


def validate_map_data(map_data: MapData) -> dict[str, Any]:
    """Validate node placement, beacon uniqueness and edge consistency."""
    issues: list[dict[str, Any]] = []
    node_ids = {node.id for node in map_data.nodes}

    for node in map_data.nodes:
        cell_issue = _check_node_cell(map_data, node)
        if cell_issue is not None:
            issues.append(cell_issue)

        outline = _outline_polygon(map_data.outlines.get(node.floor_number, []))
        if outline is None or not node.area:
            continue
        # Boundary cells are walls, so covers() rather than contains().
        outside = [p for p in node.area if not outline.covers(ShapelyPoint(float(p.x), float(p.y)))]
        if outside:
            issues.append(
                _issue(
                    "node_area_outside_outline",
                    "warning",
                    f"{len(outside)} area point(s) fall outside the floor outline",
                    floor=node.floor_number,
                    node_id=node.id,
                )
            )

    by_beacon: dict[str, list[int]] = {}
    for node in map_data.nodes:
        by_beacon.setdefault(node.beacon_id, []).append(node.id)
    for beacon_id, ids in by_beacon.items():
        if len(ids) > 1:
            issues.append(
                _issue(
                    "ambiguous_beacon",
                    "warning",
                    f"Beacon is shared by nodes {ids}; first match wins",
                    beacon_id=beacon_id,
                    node_ids=ids,
                )
            )

    for edge in map_data.edges:
        if edge.from_node not in node_ids or edge.to_node not in node_ids:
            issues.append(
                _issue("dangling_edge", "error", "Edge references a node outside this map", edge_id=edge.id)
            )
        if edge.weight < 0:
            issues.append(_issue("negative_weight", "error", "Edge weight must be >= 0", edge_id=edge.id))

    error_count = sum(1 for issue in issues if issue["severity"] == "error")
    warning_count = sum(1 for issue in issues if issue["severity"] == "warning")

    return {
        "ok": error_count == 0,
        "summary": {
            "nodes": len(map_data.nodes),
            "edges": len(map_data.edges),
            "floors": len(map_data.floors),
            "errors": error_count,
            "warnings": warning_count,
        },
        "issues": issues,
    }
