"""Error taxonomy for positioning and route planning.

Geometry and coordinate errors subclass `ValueError` so callers that already
treat bad input as `ValueError` (the API layer does) keep working.
"""

from __future__ import annotations


class NavigationError(Exception):
    """Base class for all beaconnav errors."""


class InvalidGeometryError(NavigationError, ValueError):
    """Polygon has no points or a degenerate bounding box."""


class OutOfBoundsError(NavigationError, ValueError):
    """Coordinate lies outside the floor grid."""


class AmbiguousBeaconError(NavigationError):
    """Two or more nodes share the same beacon identifier."""


class NoGraphPathError(NavigationError):
    """Start and end nodes are disconnected in the node graph."""


class NoGridPathError(NavigationError):
    """A floor segment has no walkable route."""

    def __init__(self, floor: int, message: str | None = None) -> None:
        super().__init__(message or f"No walkable route on floor {floor}")
        self.floor = floor


class StaleSignalError(NavigationError):
    """Every known beacon has expired."""


class NodeNotFoundError(NavigationError, LookupError):
    """No node is registered for the requested identifier."""


class ResolutionFailedError(NavigationError):
    """External node/map lookup failed."""
