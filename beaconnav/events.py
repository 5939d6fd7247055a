"""Output events and the channel that carries them to the renderer."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TypeVar, Union

from beaconnav.models import FloorRun, MapData, Node, Point


@dataclass(frozen=True, slots=True)
class PositionConfirmed:
    node: Node
    map_data: MapData
    confirmed_at: float


@dataclass(frozen=True, slots=True)
class PositionCleared:
    reason: str


@dataclass(frozen=True, slots=True)
class MapIdle:
    map_id: int


@dataclass(frozen=True, slots=True)
class PathUpdated:
    """New route; empty fields mean the previous route was withdrawn."""

    floor_paths: dict[int, list[list[Point]]]
    runs: tuple[FloorRun, ...]
    run_paths: tuple[tuple[int, list[Point]], ...] = ()


@dataclass(frozen=True, slots=True)
class RoutingFailed:
    kind: str
    floor: int | None = None


@dataclass(frozen=True, slots=True)
class InfoAvailable:
    comment: str


@dataclass(frozen=True, slots=True)
class DestinationReached:
    node: Node


Event = Union[
    PositionConfirmed,
    PositionCleared,
    MapIdle,
    PathUpdated,
    RoutingFailed,
    InfoAvailable,
    DestinationReached,
]

E = TypeVar("E")


class EventChannel:
    """Ordered event queue plus the newest event of each type.

    Consumers either `drain()` every event in arrival order or read
    `latest(EventType)` when only the newest state matters. The queue is
    bounded; when full, the oldest events are dropped but `latest` is kept.
    """

    def __init__(self, maxlen: int = 1024) -> None:
        self._events: deque[Event] = deque(maxlen=maxlen)
        self._latest: dict[type, Event] = {}
        self.version = 0

    def publish(self, event: Event) -> None:
        self._events.append(event)
        self._latest[type(event)] = event
        self.version += 1

    def drain(self) -> list[Event]:
        events = list(self._events)
        self._events.clear()
        return events

    def latest(self, event_type: type[E]) -> E | None:
        return self._latest.get(event_type)  # type: ignore[return-value]

    def __len__(self) -> int:
        return len(self._events)
