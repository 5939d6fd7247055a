"""Wire schemas for map payloads exchanged with the lookup service and API.

Field names follow the lookup service's camelCase JSON; snake_case names are
accepted as well.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from beaconnav.geometry import build_floor_grid
from beaconnav.models import Edge, MapData, Node, Point


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PointPayload(_Payload):
    x: int
    y: int

    @model_validator(mode="before")
    @classmethod
    def accept_pairs(cls, value: Any) -> Any:
        """Allow `[x, y]` pairs as well as `{"x": .., "y": ..}` objects."""
        if isinstance(value, (list, tuple)):
            if len(value) != 2:
                raise ValueError("Point must be [x, y]")
            return {"x": value[0], "y": value[1]}
        return value

    def to_point(self) -> Point:
        return Point(self.x, self.y)


class NodePayload(_Payload):
    id: int
    name: str
    beacon_id: str = Field(..., alias="beaconId")
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    floor_number: int = Field(0, alias="floorNumber")
    comment: str = ""
    area: list[PointPayload] = Field(default_factory=list)

    def to_node(self) -> Node:
        return Node(
            id=self.id,
            name=self.name,
            beacon_id=self.beacon_id,
            x=self.x,
            y=self.y,
            floor_number=self.floor_number,
            comment=self.comment or "",
            area=tuple(p.to_point() for p in self.area),
        )


class EdgePayload(_Payload):
    id: int
    from_node: int = Field(..., alias="fromNode")
    to_node: int = Field(..., alias="toNode")
    weight: float = Field(..., ge=0)
    comment: str | None = ""

    @field_validator("from_node", "to_node", mode="before")
    @classmethod
    def accept_embedded_node(cls, value: Any) -> Any:
        """The lookup service embeds full node objects in edges."""
        if isinstance(value, dict):
            return value.get("id")
        return value

    def to_edge(self) -> Edge:
        return Edge(
            id=self.id,
            from_node=self.from_node,
            to_node=self.to_node,
            weight=float(self.weight),
            comment=self.comment or "",
        )


class DoorPayload(_Payload):
    start: PointPayload
    end: PointPayload


class RegionPayload(_Payload):
    points: list[PointPayload] = Field(..., min_length=1)
    value: int = Field(..., ge=2)


class FloorGeometryPayload(_Payload):
    """Authoring data for one floor: outline, doors and marked regions."""

    floor_number: int = Field(0, alias="floorNumber")
    outline: list[PointPayload] = Field(..., min_length=1)
    doors: list[DoorPayload] = Field(default_factory=list)
    regions: list[RegionPayload] = Field(default_factory=list)

    def build_grid(self) -> np.ndarray:
        return build_floor_grid(
            outline=[p.to_point() for p in self.outline],
            doors=[(d.start.to_point(), d.end.to_point()) for d in self.doors],
            regions=[([p.to_point() for p in r.points], r.value) for r in self.regions],
        )


class MatrixPayload(_Payload):
    floor_number: int = Field(..., alias="floorNumber")
    name: str = ""
    data: list[list[int]]

    @field_validator("data")
    @classmethod
    def rectangular(cls, value: list[list[int]]) -> list[list[int]]:
        if not value or not value[0]:
            raise ValueError("Matrix must be non-empty")
        width = len(value[0])
        if any(len(row) != width for row in value):
            raise ValueError("Matrix must be rectangular")
        if any(cell < 0 for row in value for cell in row):
            raise ValueError("Matrix values must be >= 0")
        return value


class MapDataPayload(_Payload):
    id: int
    name: str
    north_angle: float = Field(0.0, alias="northAngle")
    nodes: list[NodePayload] = Field(default_factory=list)
    edges: list[EdgePayload] = Field(default_factory=list)
    matrices: list[MatrixPayload] = Field(default_factory=list)
    geometry: list[FloorGeometryPayload] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self) -> "MapDataPayload":
        ids = [n.id for n in self.nodes]
        if len(set(ids)) != len(ids):
            raise ValueError("Node ids must be unique")
        known = set(ids)
        for edge in self.edges:
            if edge.from_node not in known or edge.to_node not in known:
                raise ValueError(f"Edge {edge.id} references an unknown node")
        return self

    def to_map_data(self) -> MapData:
        """Build the domain map; authored geometry wins over raw matrices."""
        floors = {m.floor_number: np.array(m.data, dtype=np.int32) for m in self.matrices}
        outlines: dict[int, list[Point]] = {}
        for geom in self.geometry:
            floors[geom.floor_number] = geom.build_grid()
            outlines[geom.floor_number] = [p.to_point() for p in geom.outline]

        return MapData(
            id=self.id,
            name=self.name,
            north_angle=self.north_angle,
            nodes=[n.to_node() for n in self.nodes],
            edges=[e.to_edge() for e in self.edges],
            floors=floors,
            outlines=outlines,
        )
