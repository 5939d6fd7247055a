"""FastAPI routes for floor grids, route planning and live beacon navigation.

Everything is held in memory for the lifetime of the process:
- `/maps` loads map payloads into an in-memory node lookup
- `/grids` and `/routes` are stateless helpers over that data
- `/readings`, `/origin`, `/destination`, `/floor`, `/navigation` drive one
  navigation session whose clock follows the reading timestamps
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from beaconnav.config import FusionSettings
from beaconnav.errors import NavigationError, NoGraphPathError, NodeNotFoundError
from beaconnav.graph_router import euclidean_heuristic, manhattan_heuristic, path_cost, zero_heuristic
from beaconnav.models import BeaconReading, FloorRun, MapData
from beaconnav.planner import PathPlanner, PlanResult
from beaconnav.resolver import InMemoryNodeLookup, MapResolver
from beaconnav.scheduling import VirtualScheduler
from beaconnav.schemas import FloorGeometryPayload, MapDataPayload
from beaconnav.session import NavigationSession, NavigationSnapshot
from beaconnav.utils import json_grid, to_serializable_path
from beaconnav.validation import validate_map_data

HEURISTICS = {
    "euclidean": euclidean_heuristic,
    "manhattan": manhattan_heuristic,
    "dijkstra": zero_heuristic,
}


@dataclass
class ProcessingState:
    """In-memory state for loaded maps and the live navigation session."""

    lookup: InMemoryNodeLookup = field(default_factory=InMemoryNodeLookup)
    clock: VirtualScheduler = field(default_factory=VirtualScheduler)
    session: NavigationSession | None = None


STATE = ProcessingState()


class RouteRequest(BaseModel):
    """Request payload for multi-floor route planning."""

    map_id: int
    origin_id: int
    destination_id: int
    heuristic: str = Field("euclidean", pattern="^(euclidean|manhattan|dijkstra)$")


class ReadingPayload(BaseModel):
    identifier: str = Field(..., min_length=1)
    rssi: float | None = None
    timestamp: float = Field(..., ge=0)


class ReadingsRequest(BaseModel):
    """Batch of beacon readings; `now` advances the clock past the last one."""

    readings: list[ReadingPayload] = Field(default_factory=list)
    now: float | None = Field(default=None, ge=0)


class NodeSelection(BaseModel):
    map_id: int | None = None
    node_id: int | None = None


class FloorSelection(BaseModel):
    floor: int | None = None


def _serialize_runs(runs: tuple[FloorRun, ...] | list[FloorRun]) -> list[dict[str, Any]]:
    return [
        {
            "floor": run.floor,
            "waypoints": [
                {"x": w.point.x, "y": w.point.y, "node_id": w.node_id, "floor": w.floor} for w in run.waypoints
            ],
        }
        for run in runs
    ]


def _serialize_floor_paths(floor_paths: dict[int, list]) -> dict[str, list[list[dict[str, int]]]]:
    return {
        str(floor): [to_serializable_path(points) for points in polylines]
        for floor, polylines in sorted(floor_paths.items())
    }


def _serialize_run_paths(run_paths) -> list[dict[str, Any]]:
    return [{"floor": floor, "points": to_serializable_path(points)} for floor, points in run_paths]


def _serialize_plan(result: PlanResult, map_data: MapData) -> dict[str, Any]:
    return {
        "node_ids": result.node_ids,
        "cost": path_cost(map_data, result.node_ids),
        "runs": _serialize_runs(result.runs),
        "floor_paths": _serialize_floor_paths(result.floor_paths),
        "run_paths": _serialize_run_paths(result.run_paths),
        "failures": [{"kind": f.kind, "floor": f.floor} for f in result.failures],
        "info": result.info,
    }


def _serialize_snapshot(snapshot: NavigationSnapshot) -> dict[str, Any]:
    position = None
    if snapshot.position is not None:
        node = snapshot.position.node
        position = {
            "node_id": node.id,
            "name": node.name,
            "floor": node.floor_number,
            "x": node.x,
            "y": node.y,
            "map_id": snapshot.position.map_data.id,
            "confirmed_at": snapshot.position.confirmed_at,
        }
    return {
        "position": position,
        "map_id": snapshot.map_id,
        "origin_id": snapshot.origin_id,
        "destination_id": snapshot.destination_id,
        "selected_floor": snapshot.selected_floor,
        "floor_paths": _serialize_floor_paths(snapshot.floor_paths),
        "run_paths": _serialize_run_paths(snapshot.run_paths),
        "current_floor_paths": [to_serializable_path(points) for points in snapshot.current_floor_paths],
        "current_floor_waypoints": to_serializable_path(snapshot.current_floor_waypoints),
        "runs": _serialize_runs(snapshot.runs),
        "failures": [{"kind": f.kind, "floor": f.floor} for f in snapshot.failures],
        "info": snapshot.info,
        "stale": snapshot.stale,
    }


def _map_or_404(map_id: int) -> MapData:
    map_data = STATE.lookup.get_map(map_id)
    if map_data is None:
        raise HTTPException(status_code=404, detail=f"Map {map_id} is not loaded")
    return map_data


def _session() -> NavigationSession:
    """Get or lazily create the live session (must run inside the event loop)."""
    if STATE.session is None:
        STATE.session = NavigationSession(
            MapResolver(STATE.lookup),
            scheduler=STATE.clock,
            settings=FusionSettings.from_env(),
        )
    return STATE.session


async def _select_map(session: NavigationSession, map_id: int | None) -> None:
    if map_id is None:
        return
    map_data = _map_or_404(map_id)
    if session.map_data is not map_data:
        await session.use_map(map_data)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title="beaconnav API", version="0.3.0")

    raw_origins = os.getenv("BEACONNAV_CORS_ORIGINS", "*").strip()
    if raw_origins == "*":
        cors_origins = ["*"]
        allow_credentials = False
    else:
        cors_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        allow_credentials = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Health endpoint with loaded-map count."""
        return {"status": "ok", "version": app.version, "maps": len(STATE.lookup.maps())}

    @app.post("/maps")
    def load_map(payload: MapDataPayload) -> dict[str, Any]:
        """Load (or replace) a map in the in-memory lookup."""
        try:
            map_data = payload.to_map_data()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Map loading failed: {exc}") from exc

        STATE.lookup.add_map(map_data)
        report = validate_map_data(map_data)
        return {
            "message": "Map loaded successfully",
            "map_id": map_data.id,
            "floors": map_data.floor_numbers(),
            "validation": report["summary"],
        }

    @app.post("/maps/{map_id}/validate")
    def validate_map(map_id: int) -> dict[str, Any]:
        """Run data quality checks on a loaded map."""
        return validate_map_data(_map_or_404(map_id))

    @app.post("/grids")
    def build_grid(payload: FloorGeometryPayload) -> dict[str, Any]:
        """Rasterize one floor outline with doors and regions."""
        try:
            grid = payload.build_grid()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Grid building failed: {exc}") from exc

        rows, cols = grid.shape
        return {
            "floor": payload.floor_number,
            "grid": json_grid(grid),
            "grid_shape": {"rows": rows, "cols": cols},
        }

    @app.post("/routes")
    def plan_route(payload: RouteRequest) -> dict[str, Any]:
        """Plan a multi-floor route between two nodes of a loaded map."""
        map_data = _map_or_404(payload.map_id)
        planner = PathPlanner(heuristic=HEURISTICS[payload.heuristic])

        try:
            result = planner.plan(map_data, payload.origin_id, payload.destination_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid route query: {exc}") from exc
        except Exception as exc:  # pragma: no cover - safety net
            raise HTTPException(status_code=500, detail=f"Unexpected routing error: {exc}") from exc

        try:
            result.raise_for_failure(allow_partial=True)
        except (NodeNotFoundError, NoGraphPathError) as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _serialize_plan(result, map_data)

    @app.get("/search")
    async def search(q: str = Query(..., min_length=1), limit: int = Query(10, ge=1, le=100)) -> dict[str, Any]:
        """Keyword search over node names and comments."""
        results = await MapResolver(STATE.lookup).search(q, limit)
        return {
            "results": [
                {"node_id": r.node.id, "name": r.node.name, "floor": r.node.floor_number, "map_id": r.map_data.id}
                for r in results
            ]
        }

    @app.post("/readings")
    async def ingest_readings(payload: ReadingsRequest) -> dict[str, Any]:
        """Feed beacon readings in timestamp order and return the newest state."""
        session = _session()
        for item in sorted(payload.readings, key=lambda r: r.timestamp):
            if item.timestamp < STATE.clock.time():
                raise HTTPException(status_code=400, detail="Reading timestamps must not go back in time")
            STATE.clock.advance_to(item.timestamp)
            await session.handle_reading(BeaconReading(item.identifier, item.rssi, item.timestamp))
            await session.wait_idle()

        if payload.now is not None and payload.now > STATE.clock.time():
            STATE.clock.advance_to(payload.now)
            session.tick()
        await session.wait_idle()

        events = session.channel.drain()
        return {
            "navigation": _serialize_snapshot(session.snapshot()),
            "events": [type(e).__name__ for e in events],
        }

    @app.put("/origin")
    async def set_origin(payload: NodeSelection) -> dict[str, Any]:
        session = _session()
        await _select_map(session, payload.map_id)
        try:
            await session.set_origin(payload.node_id)
        except NodeNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _serialize_snapshot(session.snapshot())

    @app.put("/destination")
    async def set_destination(payload: NodeSelection) -> dict[str, Any]:
        session = _session()
        await _select_map(session, payload.map_id)
        try:
            await session.set_destination(payload.node_id)
        except NodeNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _serialize_snapshot(session.snapshot())

    @app.put("/floor")
    async def select_floor(payload: FloorSelection) -> dict[str, Any]:
        session = _session()
        await session.select_floor(payload.floor)
        return _serialize_snapshot(session.snapshot())

    @app.get("/navigation")
    def navigation() -> dict[str, Any]:
        if STATE.session is None:
            raise HTTPException(status_code=400, detail="No navigation session started yet")
        return _serialize_snapshot(STATE.session.snapshot())

    @app.exception_handler(NavigationError)
    async def navigation_error_handler(request, exc: NavigationError):  # pragma: no cover - safety net
        status = 400 if isinstance(exc, ValueError) else 500
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    return app
