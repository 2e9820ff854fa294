"""Snapshot fan-out for dashboard sessions.

Every registry mutation publishes the full zone list for its restaurant.
Subscribers never patch incrementally: they rebuild their view from the
latest snapshot, so a lost or reordered delivery is repaired by the next one.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Optional

from ...models.domain import DeliveryZone, ZoneSnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[ZoneSnapshot], None]


class SnapshotBroker:
    """Thread-safe publish/subscribe channel keyed by restaurant id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: dict[str, dict[int, SnapshotCallback]] = {}

    def subscribe(self, restaurant_id: str, callback: SnapshotCallback) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""

        with self._lock:
            token = next(self._ids)
            self._subscribers.setdefault(restaurant_id, {})[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(restaurant_id)
                if callbacks is None:
                    return
                callbacks.pop(token, None)
                if not callbacks:
                    del self._subscribers[restaurant_id]

        return unsubscribe

    def subscriber_count(self, restaurant_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(restaurant_id, {}))

    def publish(self, snapshot: ZoneSnapshot) -> int:
        """Deliver ``snapshot`` to every subscriber of its restaurant.

        A failing subscriber is logged and skipped. Returns the number of
        successful deliveries.
        """

        with self._lock:
            callbacks = list(self._subscribers.get(snapshot.restaurant_id, {}).values())
        delivered = 0
        for callback in callbacks:
            try:
                callback(snapshot)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "Snapshot v%d delivery to a subscriber of %s failed: %s",
                    snapshot.version,
                    snapshot.restaurant_id,
                    exc,
                )
        return delivered


class ZoneMapView:
    """A session's cell colouring, rebuilt wholesale from each snapshot."""

    def __init__(self, restaurant_id: str) -> None:
        self.restaurant_id = restaurant_id
        self.version = -1
        self.zones: dict[str, DeliveryZone] = {}
        self.cell_zones: dict[str, str] = {}

    def apply(self, snapshot: ZoneSnapshot) -> bool:
        """Replace the view with ``snapshot`` unless it is older than what is shown."""

        if snapshot.restaurant_id != self.restaurant_id or snapshot.version < self.version:
            return False
        zones = {zone.zone_id: zone for zone in snapshot.zones}
        cell_zones = {cell_id: zone.zone_id for zone in snapshot.zones for cell_id in zone.cell_ids}
        self.zones, self.cell_zones, self.version = zones, cell_zones, snapshot.version
        return True

    __call__ = apply

    def zone_for_cell(self, cell_id: str) -> Optional[DeliveryZone]:
        zone_id = self.cell_zones.get(cell_id)
        return self.zones.get(zone_id) if zone_id else None

    def color_for(self, cell_id: str) -> Optional[str]:
        zone = self.zone_for_cell(cell_id)
        return zone.color if zone else None


broker = SnapshotBroker()


def get_broker() -> SnapshotBroker:
    return broker
