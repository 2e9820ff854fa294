"""High-level orchestration for a restaurant's zone map."""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Optional

from ...config import settings
from ...db.supabase import get_supabase_client
from ...models.domain import GeoPoint, ServiceArea
from ...persistence.zones import InMemoryZoneStore, SupabaseZoneStore, ZoneStore
from ..grid.generator import validate_parameters
from ..sync.broker import SnapshotBroker, get_broker
from .assignment import ZoneAssignmentService
from .registry import ZoneRegistry

logger = logging.getLogger(__name__)


@lru_cache()
def get_zone_store() -> ZoneStore:
    """Supabase-backed store when configured, otherwise a process-local one."""
    client = get_supabase_client()
    if client is None:
        logger.warning("Supabase not configured - zone state is kept in memory only")
        return InMemoryZoneStore()
    return SupabaseZoneStore(client)


class ZoneMap:
    """Registry, assignment service and snapshot feed wired together for one restaurant."""

    def __init__(self, restaurant_id: str, store: ZoneStore, broker: SnapshotBroker) -> None:
        self.restaurant_id = restaurant_id
        self.broker = broker
        state = store.load(restaurant_id)
        self.registry = ZoneRegistry(restaurant_id, store, state=state, publisher=broker.publish)
        self.assignments = ZoneAssignmentService(self.registry, area=state.service_area)
        if state.service_area is not None:
            orphaned = self.assignments.orphaned_cells()
            if orphaned:
                self.registry.release_cells(orphaned)

    @property
    def service_area(self) -> Optional[ServiceArea]:
        return self.assignments.service_area

    def configure_service_area(
        self,
        latitude: float,
        longitude: float,
        radius_m: float | None = None,
        cell_radius_m: float | None = None,
    ) -> tuple[str, ...]:
        """Set the restaurant location and radius, returning orphaned cell ids."""
        center = GeoPoint(latitude, longitude)
        radius = settings.default_service_radius_m if radius_m is None else radius_m
        cell_radius = settings.default_cell_radius_m if cell_radius_m is None else cell_radius_m
        validate_parameters(center, radius, cell_radius)
        area = ServiceArea(center=center, radius_m=float(radius), cell_radius_m=float(cell_radius))
        orphaned = self.assignments.update_service_area(area)
        logger.info(
            "Service area for %s set to (%.5f, %.5f) r=%.0fm; %d assignments orphaned",
            self.restaurant_id,
            latitude,
            longitude,
            area.radius_m,
            len(orphaned),
        )
        return orphaned


_zone_maps: dict[str, ZoneMap] = {}
_zone_maps_lock = threading.Lock()


def get_zone_map(restaurant_id: str) -> ZoneMap:
    """Return the shared zone map for a restaurant, loading it on first use."""
    with _zone_maps_lock:
        zone_map = _zone_maps.get(restaurant_id)
        if zone_map is None:
            zone_map = ZoneMap(restaurant_id, get_zone_store(), get_broker())
            _zone_maps[restaurant_id] = zone_map
        return zone_map


def reset_zone_maps() -> None:
    """Forget loaded zone maps so the next access reloads from the store."""
    with _zone_maps_lock:
        _zone_maps.clear()
