"""Navigation session: the composition root wiring positioning and planning.

One session per scanning user. Inputs are beacon readings, the destination,
the selected floor and (when no beacon position is confirmed yet) a manual
origin. Every change of confirmed position, destination or selected floor
triggers a planning pass; passes carry a generation number and a result whose
generation is no longer current is discarded instead of applied.

Outputs go to `session.channel` (ordered events) and `session.snapshot()`
(newest state).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace

from beaconnav.config import FusionSettings
from beaconnav.errors import NodeNotFoundError, ResolutionFailedError
from beaconnav.events import (
    DestinationReached,
    Event,
    EventChannel,
    InfoAvailable,
    MapIdle,
    PathUpdated,
    PositionCleared,
    PositionConfirmed,
    RoutingFailed,
)
from beaconnav.models import BeaconReading, ConfirmedPosition, FloorRun, MapData, Point
from beaconnav.planner import PathPlanner, PlanResult, RoutingFailure
from beaconnav.resolver import MapResolver
from beaconnav.scheduling import Scheduler
from beaconnav.signal_fusion import SignalFusion

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NavigationSnapshot:
    """Immutable view of the newest session state."""

    position: ConfirmedPosition | None = None
    map_id: int | None = None
    origin_id: int | None = None
    destination_id: int | None = None
    selected_floor: int | None = None
    floor_paths: dict[int, list[list[Point]]] = field(default_factory=dict)
    run_paths: tuple[tuple[int, list[Point]], ...] = ()
    runs: tuple[FloorRun, ...] = ()
    failures: tuple[RoutingFailure, ...] = ()
    info: str | None = None
    stale: bool = False
    generation: int = 0

    @property
    def full_path(self) -> list[tuple[int, list[Point]]]:
        """One polyline per floor run, in traversal order."""
        return list(self.run_paths)

    @property
    def current_floor_paths(self) -> list[list[Point]]:
        """Polylines on the selected floor; more than one if the route revisits it."""
        if self.selected_floor is None:
            return []
        return self.floor_paths.get(self.selected_floor, [])

    @property
    def current_floor_waypoints(self) -> list[Point]:
        out: list[Point] = []
        for run in self.runs:
            if run.floor == self.selected_floor:
                out.extend(run.points)
        return out


class NavigationSession:
    """Event-driven session owning signal fusion, resolver and planner.

    Must be created inside a running event loop unless a `scheduler` is given.
    """

    def __init__(
        self,
        resolver: MapResolver,
        scheduler: Scheduler | None = None,
        settings: FusionSettings | None = None,
        planner: PathPlanner | None = None,
        channel: EventChannel | None = None,
        offload_planning: bool = True,
    ) -> None:
        self.resolver = resolver
        self.channel = channel or EventChannel()
        self.planner = planner or PathPlanner()
        self.fusion = SignalFusion(
            scheduler or asyncio.get_running_loop(),
            channel=self.channel,
            settings=settings,
            on_transition=self._on_transition,
        )
        self._offload = offload_planning
        self._tasks: set[asyncio.Task] = set()
        self._generation = 0
        self._map: MapData | None = None
        self._snapshot = NavigationSnapshot()

    # State

    @property
    def map_data(self) -> MapData | None:
        return self._map

    def snapshot(self) -> NavigationSnapshot:
        return replace(self._snapshot, position=self.fusion.confirmed, stale=self.fusion.stale)

    # Inputs

    async def handle_reading(self, reading: BeaconReading) -> None:
        for identifier in self.fusion.observe(reading):
            self._spawn(self._resolve(identifier))

    def tick(self) -> None:
        self.fusion.tick()

    async def use_map(self, map_data: MapData) -> None:
        """Plan on `map_data` before (or instead of) a beacon-confirmed map."""
        self._map = map_data
        self.resolver.use_map(map_data)
        await self._replan()

    async def set_origin(self, node_id: int | None) -> None:
        self._require_node(node_id)
        self._snapshot = replace(self._snapshot, origin_id=node_id)
        await self._replan()

    async def set_destination(self, node_id: int | None) -> None:
        self._require_node(node_id)
        self._snapshot = replace(self._snapshot, destination_id=node_id)
        confirmed = self.fusion.confirmed
        if node_id is not None and confirmed is not None and confirmed.node.id == node_id:
            LOGGER.info("Destination node %s is the current position", node_id)
            self.channel.publish(DestinationReached(confirmed.node))
        await self._replan()

    async def select_floor(self, floor: int | None) -> None:
        self._snapshot = replace(self._snapshot, selected_floor=floor)
        await self._replan()

    async def wait_idle(self) -> None:
        """Wait for background resolutions and planning passes to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self.fusion.close()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Internals

    def _require_node(self, node_id: int | None) -> None:
        if node_id is None or self._map is None:
            return
        if self._map.node_by_id(node_id) is None:
            raise NodeNotFoundError(f"Node {node_id} is not part of map {self._map.id}")

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve(self, identifier: str) -> None:
        try:
            resolution = await self.resolver.resolve(identifier)
        except NodeNotFoundError:
            LOGGER.debug("Beacon %s is not registered", identifier)
            self.fusion.forget(identifier)
            return
        except ResolutionFailedError:
            LOGGER.exception("Resolution failed for beacon %s", identifier)
            self.fusion.forget(identifier)
            return
        self.fusion.learn(identifier, resolution)

    def _on_transition(self, event: Event) -> None:
        if isinstance(event, PositionConfirmed):
            if self._map is not event.map_data:
                self._map = event.map_data
                self.resolver.use_map(event.map_data)
            if self._snapshot.selected_floor is None:
                self._snapshot = replace(self._snapshot, selected_floor=event.node.floor_number)
            if self._snapshot.destination_id == event.node.id:
                LOGGER.info("Destination node %s reached", event.node.id)
                self.channel.publish(DestinationReached(event.node))
            self._spawn(self._replan())
        elif isinstance(event, MapIdle):
            self.resolver.clear()
        elif isinstance(event, PositionCleared):
            LOGGER.debug("Position cleared (%s); keeping last path", event.reason)

    def _origin(self) -> int | None:
        confirmed = self.fusion.confirmed
        if confirmed is not None and self._map is not None and confirmed.map_data is self._map:
            return confirmed.node.id
        return self._snapshot.origin_id

    async def _replan(self) -> None:
        self._generation += 1
        generation = self._generation

        origin_id = self._origin()
        destination_id = self._snapshot.destination_id
        map_data = self._map
        if map_data is None or origin_id is None or destination_id is None:
            self._withdraw_path(generation)
            return

        if self._offload:
            result = await asyncio.to_thread(self.planner.plan, map_data, origin_id, destination_id)
        else:
            result = self.planner.plan(map_data, origin_id, destination_id)

        if generation != self._generation:
            LOGGER.debug("Discarding stale plan (generation %s, current %s)", generation, self._generation)
            return
        self._apply(result, map_data, generation)

    def _apply(self, result: PlanResult, map_data: MapData, generation: int) -> None:
        if not result.found_route:
            # Keep the previous route on screen rather than a half-updated one.
            for failure in result.failures:
                self.channel.publish(RoutingFailed(kind=failure.kind, floor=failure.floor))
            return

        selected = self._snapshot.selected_floor
        if selected is None and result.runs:
            selected = result.runs[0].floor

        self._snapshot = replace(
            self._snapshot,
            map_id=map_data.id,
            selected_floor=selected,
            floor_paths=dict(result.floor_paths),
            run_paths=tuple(result.run_paths),
            runs=tuple(result.runs),
            failures=tuple(result.failures),
            info=result.info,
            generation=generation,
        )
        self.channel.publish(
            PathUpdated(
                floor_paths=dict(result.floor_paths),
                runs=tuple(result.runs),
                run_paths=tuple(result.run_paths),
            )
        )
        for failure in result.failures:
            self.channel.publish(RoutingFailed(kind=failure.kind, floor=failure.floor))
        if result.info:
            self.channel.publish(InfoAvailable(comment=result.info))

    def _withdraw_path(self, generation: int) -> None:
        """Drop the route once origin, destination or map is unset."""
        if not self._snapshot.runs and not self._snapshot.floor_paths:
            return
        LOGGER.info("Route inputs incomplete; withdrawing the current path")
        self._snapshot = replace(
            self._snapshot,
            floor_paths={},
            run_paths=(),
            runs=(),
            failures=(),
            info=None,
            generation=generation,
        )
        self.channel.publish(PathUpdated(floor_paths={}, runs=()))
