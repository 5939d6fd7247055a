"""Unit tests for beaconnav.resolver."""

from __future__ import annotations

import asyncio

import pytest

from beaconnav.errors import AmbiguousBeaconError, NodeNotFoundError, ResolutionFailedError
from beaconnav.models import MapData, Node, Resolution
from beaconnav.resolver import InMemoryNodeLookup, MapResolver, first_node_for_beacon


class CountingLookup(InMemoryNodeLookup):
    """In-memory lookup that counts external calls and can be held open."""

    def __init__(self, maps: list[MapData], gate: asyncio.Event | None = None, slow: set[str] | None = None):
        super().__init__(maps)
        self.calls = 0
        self.gate = gate
        self.slow = slow or set()

    async def get_node_by_beacon_id(self, beacon_id: str) -> Node | None:
        self.calls += 1
        if self.gate is not None and beacon_id in self.slow:
            await self.gate.wait()
        return await super().get_node_by_beacon_id(beacon_id)


class BrokenLookup(InMemoryNodeLookup):
    async def get_node_by_beacon_id(self, beacon_id: str) -> Node | None:
        raise RuntimeError("lookup service unavailable")

    async def search_nodes(self, query: str, limit: int) -> list[Resolution]:
        raise RuntimeError("lookup service unavailable")


def test_cached_map_answers_without_lookup(two_floor_map) -> None:
    lookup = CountingLookup([two_floor_map])
    resolver = MapResolver(lookup)
    resolver.use_map(two_floor_map)

    resolution = asyncio.run(resolver.resolve("b-c"))

    assert resolution.node.id == 4
    assert resolution.map_data is two_floor_map
    assert lookup.calls == 0


def test_cache_miss_queries_lookup_and_replaces_cache(two_floor_map) -> None:
    other = MapData(id=2, name="Annex", nodes=[Node(10, "Lab", "b-x", 0, 0)])
    lookup = CountingLookup([two_floor_map, other])
    resolver = MapResolver(lookup)
    resolver.use_map(two_floor_map)

    resolution = asyncio.run(resolver.resolve("b-x"))

    assert resolution.node.id == 10
    assert resolver.cached_map is other
    assert lookup.calls == 1


def test_unknown_identifier_raises_not_found(two_floor_map) -> None:
    resolver = MapResolver(InMemoryNodeLookup([two_floor_map]))
    with pytest.raises(NodeNotFoundError):
        asyncio.run(resolver.resolve("nope"))
    assert resolver.cached_map is None


def test_lookup_failure_is_wrapped() -> None:
    resolver = MapResolver(BrokenLookup())
    with pytest.raises(ResolutionFailedError, match="unavailable"):
        asyncio.run(resolver.resolve("b-a"))
    with pytest.raises(ResolutionFailedError):
        asyncio.run(resolver.search("hall"))


def test_overlapping_lookups_both_resolve(two_floor_map) -> None:
    async def scenario():
        gate = asyncio.Event()
        lookup = CountingLookup([two_floor_map], gate=gate, slow={"b-a"})
        resolver = MapResolver(lookup)

        first = asyncio.create_task(resolver.resolve("b-a"))
        await asyncio.sleep(0)
        second = await resolver.resolve("b-b")
        gate.set()
        return await first, second, resolver

    first, second, resolver = asyncio.run(scenario())

    assert first.node.id == 1
    assert first.map_data is two_floor_map
    assert second.node.id == 3
    assert resolver.cached_map is two_floor_map


def test_late_lookup_does_not_replace_newer_cache(two_floor_map) -> None:
    other = MapData(id=2, name="Annex", nodes=[Node(10, "Lab", "b-x", 0, 0)])

    async def scenario():
        gate = asyncio.Event()
        lookup = CountingLookup([two_floor_map, other], gate=gate, slow={"b-x"})
        resolver = MapResolver(lookup)

        late = asyncio.create_task(resolver.resolve("b-x"))
        await asyncio.sleep(0)
        newest = await resolver.resolve("b-a")
        gate.set()
        return await late, newest, resolver

    late, newest, resolver = asyncio.run(scenario())

    assert late.node.id == 10
    assert late.map_data is other
    assert newest.map_data is two_floor_map
    assert resolver.cached_map is two_floor_map


def test_clear_drops_cache(two_floor_map) -> None:
    resolver = MapResolver(InMemoryNodeLookup([two_floor_map]))
    asyncio.run(resolver.resolve("b-a"))
    assert resolver.cached_map is two_floor_map

    resolver.clear()
    assert resolver.cached_map is None


def test_ambiguous_beacon_first_match_wins(caplog) -> None:
    map_data = MapData(
        id=3,
        name="Shared",
        nodes=[Node(1, "Left", "dup", 0, 0), Node(2, "Right", "dup", 4, 0)],
    )

    assert first_node_for_beacon(map_data, "dup").id == 1
    assert "Ambiguous beacon dup" in caplog.text
    with pytest.raises(AmbiguousBeaconError):
        first_node_for_beacon(map_data, "dup", strict=True)
    assert first_node_for_beacon(map_data, "missing") is None


def test_keyword_search_scores_name_and_comment(two_floor_map) -> None:
    resolver = MapResolver(InMemoryNodeLookup([two_floor_map]))

    results = asyncio.run(resolver.search("stairs lobby", limit=10))
    assert [r.node.id for r in results] == [2, 3]

    assert asyncio.run(resolver.search("MEETING", limit=10))[0].node.name == "Office"
    assert asyncio.run(resolver.search("   ", limit=10)) == []
    assert len(asyncio.run(resolver.search("o", limit=2))) == 2
