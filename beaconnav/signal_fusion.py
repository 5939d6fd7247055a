"""Beacon signal fusion and position debouncing.

Turns a stream of flickering beacon sightings into a stable position:

    Idle -> Candidate -> Confirmed -> (Confirmed | Idle)

- Every sample refreshes its beacon's liveness entry; entries older than the
  liveness TTL are pruned before ranking.
- The closest live beacon whose node is already known becomes the candidate.
- A candidate is promoted to a confirmed position only after staying the best
  one for the whole stability window.
- A confirmed position is cleared when its beacon stays silent for the node
  timeout, or when its map sees no sample for the map timeout.

Usage example:
    >>> scheduler = VirtualScheduler()
    >>> fusion = SignalFusion(scheduler, channel=EventChannel())
    >>> fusion.observe(BeaconReading("b1", -60, 0.0))
    ['b1']
"""

from __future__ import annotations

import logging
from typing import Callable

from beaconnav.config import DEFAULT_MEASURED_POWER, DEFAULT_PATH_LOSS_EXPONENT, FusionSettings
from beaconnav.errors import StaleSignalError
from beaconnav.events import Event, EventChannel, MapIdle, PositionCleared, PositionConfirmed
from beaconnav.models import BeaconReading, BeaconSample, ConfirmedPosition, PositionCandidate, Resolution
from beaconnav.scheduling import Scheduler, TimerHandle

LOGGER = logging.getLogger(__name__)


def estimate_distance(
    rssi: float | None,
    measured_power: float = DEFAULT_MEASURED_POWER,
    path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
) -> float | None:
    """Log-distance path loss estimate in meters; `None` when RSSI is unknown."""
    if rssi is None:
        return None
    return float(10 ** ((measured_power - rssi) / (10 * path_loss_exponent)))


class SignalFusion:
    """Per-session beacon state: liveness, known beacons, candidate and position."""

    def __init__(
        self,
        scheduler: Scheduler,
        channel: EventChannel | None = None,
        settings: FusionSettings | None = None,
        on_transition: Callable[[Event], None] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self.channel = channel or EventChannel()
        self.settings = settings or FusionSettings()
        self._on_transition = on_transition

        self._samples: dict[str, BeaconSample] = {}
        self._known: dict[str, Resolution] = {}
        self._pending: set[str] = set()

        self._candidate: PositionCandidate | None = None
        self._confirmed: ConfirmedPosition | None = None
        self._active_map_id: int | None = None

        self._candidate_timer: TimerHandle | None = None
        self._node_timer: TimerHandle | None = None
        self._map_timer: TimerHandle | None = None

        self.stale = False

    # Snapshots

    @property
    def candidate(self) -> PositionCandidate | None:
        return self._candidate

    @property
    def confirmed(self) -> ConfirmedPosition | None:
        return self._confirmed

    @property
    def active_map_id(self) -> int | None:
        return self._active_map_id

    def known_identifiers(self) -> frozenset[str]:
        return frozenset(self._known)

    def pending_identifiers(self) -> frozenset[str]:
        return frozenset(self._pending)

    def live_samples(self) -> list[BeaconSample]:
        self._prune()
        return sorted(self._samples.values(), key=lambda s: s.identifier)

    # Inputs

    def observe(self, reading: BeaconReading) -> list[str]:
        """Ingest one reading and re-rank.

        Returns:
            Identifiers that were seen for the first time and need resolution.
        """
        now = self._scheduler.time()
        sample = BeaconSample(
            identifier=reading.identifier,
            rssi=reading.rssi,
            distance=estimate_distance(
                reading.rssi,
                self.settings.measured_power,
                self.settings.path_loss_exponent,
            ),
            observed_at=now,
        )
        self._samples[sample.identifier] = sample
        LOGGER.debug("Sample %s rssi=%s distance=%s", sample.identifier, sample.rssi, sample.distance)

        needs_resolution: list[str] = []
        if sample.identifier not in self._known and sample.identifier not in self._pending:
            self._pending.add(sample.identifier)
            needs_resolution.append(sample.identifier)

        self._keep_alive(sample.identifier)
        self._rerank()
        return needs_resolution

    def learn(self, identifier: str, resolution: Resolution) -> None:
        """Promote a resolved identifier to the known set."""
        self._pending.discard(identifier)
        self._known[identifier] = resolution
        LOGGER.debug("Beacon %s resolved to node %s", identifier, resolution.node.id)
        self._keep_alive(identifier)
        self._rerank()

    def forget(self, identifier: str) -> None:
        """Drop a pending identifier so its next sample retries resolution."""
        self._pending.discard(identifier)

    def tick(self) -> None:
        """Periodic prune and re-rank without a new sample."""
        self._rerank()

    def close(self) -> None:
        for timer in (self._candidate_timer, self._node_timer, self._map_timer):
            if timer is not None:
                timer.cancel()
        self._candidate_timer = self._node_timer = self._map_timer = None

    # Ranking

    def closest(self) -> BeaconSample | None:
        """Closest live sample with a known node and a usable distance."""
        self._prune()
        best: BeaconSample | None = None
        for sample in self._samples.values():
            if sample.distance is None or sample.identifier not in self._known:
                continue
            if best is None or sample.distance < best.distance:  # type: ignore[operator]
                best = sample
        return best

    def require_closest(self) -> BeaconSample:
        """Like `closest()`, but raise `StaleSignalError` when nothing is live."""
        best = self.closest()
        if best is None:
            raise StaleSignalError("No live sample for any known beacon")
        return best

    def _prune(self) -> None:
        now = self._scheduler.time()
        ttl = self.settings.liveness_ttl_s
        expired = [key for key, s in self._samples.items() if now - s.observed_at > ttl]
        for key in expired:
            del self._samples[key]

    def _rerank(self) -> None:
        best = self.closest()
        if best is None:
            self._drop_candidate()
            if not self.stale and self._known:
                self.stale = True
                LOGGER.warning("All known beacons expired; no position candidate")
            return
        self.stale = False

        resolution = self._known[best.identifier]
        node = resolution.node

        if self._confirmed is not None and self._confirmed.node.id == node.id:
            # Best beacon went back to the confirmed node: a pending switch was flicker.
            self._drop_candidate()
            return
        if self._candidate is not None and self._candidate.node.id == node.id:
            return

        self._drop_candidate()
        self._candidate = PositionCandidate(node=node, map_data=resolution.map_data, since=self._scheduler.time())
        self._candidate_timer = self._scheduler.call_later(
            self.settings.stability_window_s, self._promote, node.id
        )
        LOGGER.debug("Candidate node %s (%s)", node.id, node.name)

    def _drop_candidate(self) -> None:
        if self._candidate_timer is not None:
            self._candidate_timer.cancel()
            self._candidate_timer = None
        self._candidate = None

    def _emit(self, event: Event) -> None:
        self.channel.publish(event)
        if self._on_transition is not None:
            self._on_transition(event)

    # Timers

    def _promote(self, node_id: int) -> None:
        candidate = self._candidate
        if candidate is None or candidate.node.id != node_id:
            return
        self._candidate_timer = None
        self._candidate = None

        now = self._scheduler.time()
        sample = self._samples.get(candidate.node.beacon_id)
        if sample is None or now - sample.observed_at > self.settings.node_timeout_s:
            LOGGER.debug("Candidate node %s went silent before confirmation", node_id)
            return

        self._confirmed = ConfirmedPosition(node=candidate.node, map_data=candidate.map_data, confirmed_at=now)
        self._active_map_id = candidate.map_data.id
        self._restart_node_timer()
        self._restart_map_timer()
        LOGGER.info("Position confirmed at node %s (%s)", candidate.node.id, candidate.node.name)
        self._emit(PositionConfirmed(candidate.node, candidate.map_data, now))

    def _keep_alive(self, identifier: str) -> None:
        if self._confirmed is not None and identifier == self._confirmed.node.beacon_id:
            self._restart_node_timer()
        resolution = self._known.get(identifier)
        if (
            resolution is not None
            and self._active_map_id is not None
            and resolution.map_data.id == self._active_map_id
        ):
            self._restart_map_timer()

    def _restart_node_timer(self) -> None:
        if self._node_timer is not None:
            self._node_timer.cancel()
        self._node_timer = self._scheduler.call_later(self.settings.node_timeout_s, self._clear_node)

    def _restart_map_timer(self) -> None:
        if self._map_timer is not None:
            self._map_timer.cancel()
        self._map_timer = self._scheduler.call_later(self.settings.map_timeout_s, self._clear_map)

    def _clear_node(self) -> None:
        self._node_timer = None
        if self._confirmed is None:
            return
        LOGGER.info("Position cleared: node %s timed out", self._confirmed.node.id)
        self._confirmed = None
        self._emit(PositionCleared(reason="node_timeout"))

    def _clear_map(self) -> None:
        self._map_timer = None
        map_id = self._active_map_id
        if map_id is None:
            return
        self._active_map_id = None
        if self._confirmed is not None and self._confirmed.map_data.id == map_id:
            if self._node_timer is not None:
                self._node_timer.cancel()
                self._node_timer = None
            self._confirmed = None
            self._emit(PositionCleared(reason="map_idle"))
        LOGGER.info("Map %s idle; cleared", map_id)
        self._emit(MapIdle(map_id=map_id))
