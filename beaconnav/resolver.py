"""Beacon identifier -> (Node, MapData) resolution with a one-map cache.

The lookup service itself is an external collaborator; `NodeLookup` is its
contract and `InMemoryNodeLookup` serves maps loaded in-process (tests, the
HTTP surface).
"""

from __future__ import annotations

import logging
from typing import Protocol

from beaconnav.errors import AmbiguousBeaconError, NodeNotFoundError, ResolutionFailedError
from beaconnav.models import MapData, Node, Resolution

LOGGER = logging.getLogger(__name__)


class NodeLookup(Protocol):
    async def get_node_by_beacon_id(self, beacon_id: str) -> Node | None: ...

    async def get_map_data_by_node_id(self, node_id: int) -> MapData: ...

    async def search_nodes(self, query: str, limit: int) -> list[Resolution]: ...


def first_node_for_beacon(map_data: MapData, beacon_id: str, strict: bool = False) -> Node | None:
    """First node carrying `beacon_id`; logs when the identifier is ambiguous.

    With `strict`, an ambiguous identifier raises `AmbiguousBeaconError`.
    """
    matches = map_data.nodes_by_beacon(beacon_id)
    if not matches:
        return None
    if len(matches) > 1:
        if strict:
            raise AmbiguousBeaconError(f"Beacon {beacon_id} is shared by nodes {[n.id for n in matches]}")
        LOGGER.warning(
            "Ambiguous beacon %s shared by nodes %s in map %s; using node %s",
            beacon_id,
            [n.id for n in matches],
            map_data.id,
            matches[0].id,
        )
    return matches[0]


class InMemoryNodeLookup:
    """`NodeLookup` over maps held in memory."""

    def __init__(self, maps: list[MapData] | None = None) -> None:
        self._maps: dict[int, MapData] = {}
        for map_data in maps or []:
            self.add_map(map_data)

    def add_map(self, map_data: MapData) -> None:
        self._maps[map_data.id] = map_data

    def get_map(self, map_id: int) -> MapData | None:
        return self._maps.get(map_id)

    def maps(self) -> list[MapData]:
        return list(self._maps.values())

    async def get_node_by_beacon_id(self, beacon_id: str) -> Node | None:
        for map_data in self._maps.values():
            node = first_node_for_beacon(map_data, beacon_id)
            if node is not None:
                return node
        return None

    async def get_map_data_by_node_id(self, node_id: int) -> MapData:
        for map_data in self._maps.values():
            if map_data.node_by_id(node_id) is not None:
                return map_data
        raise NodeNotFoundError(f"No map contains node {node_id}")

    async def search_nodes(self, query: str, limit: int) -> list[Resolution]:
        """Keyword search: one point per keyword found in name or comment."""
        keywords = [k for k in query.strip().lower().split() if k]
        if not keywords or limit <= 0:
            return []

        scored: list[tuple[int, str, Resolution]] = []
        for map_data in self._maps.values():
            for node in map_data.nodes:
                haystack = f"{node.name} {node.comment}".lower()
                score = sum(1 for k in keywords if k in haystack)
                if score > 0:
                    scored.append((score, node.name, Resolution(node, map_data)))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [res for _, _, res in scored[:limit]]


class MapResolver:
    """Resolve beacon identifiers, preferring the currently cached map."""

    def __init__(self, lookup: NodeLookup) -> None:
        self._lookup = lookup
        self._cached: MapData | None = None
        self._generation = 0

    @property
    def cached_map(self) -> MapData | None:
        return self._cached

    def use_map(self, map_data: MapData) -> None:
        self._cached = map_data

    def clear(self) -> None:
        self._cached = None

    async def resolve(self, identifier: str) -> Resolution:
        """Resolve `identifier` to its node and map.

        Every successful lookup returns its resolution. Only the newest
        external lookup may replace the cached map; an older one that finishes
        late leaves the cache alone.

        Raises:
            NodeNotFoundError: If no node carries the identifier.
            ResolutionFailedError: If the lookup service fails.
        """
        if self._cached is not None:
            node = first_node_for_beacon(self._cached, identifier)
            if node is not None:
                return Resolution(node, self._cached)

        self._generation += 1
        token = self._generation

        try:
            node = await self._lookup.get_node_by_beacon_id(identifier)
            if node is None:
                raise NodeNotFoundError(f"No node for beacon {identifier}")
            map_data = await self._lookup.get_map_data_by_node_id(node.id)
        except NodeNotFoundError:
            raise
        except Exception as exc:
            raise ResolutionFailedError(f"Lookup for beacon {identifier} failed: {exc}") from exc

        # Prefer the map's own copy of the node so identity matches map_data.nodes.
        owned = map_data.node_by_id(node.id) or node
        if token == self._generation:
            self._cached = map_data
        else:
            LOGGER.debug("Newer lookup in flight; not caching map %s for beacon %s", map_data.id, identifier)
        LOGGER.info("Resolved beacon %s to node %s in map %s", identifier, owned.id, map_data.id)
        return Resolution(owned, map_data)

    async def search(self, query: str, limit: int = 10) -> list[Resolution]:
        try:
            return await self._lookup.search_nodes(query, limit)
        except Exception as exc:
            raise ResolutionFailedError(f"Node search failed: {exc}") from exc
