"""Backing store for delivery zones, cell assignments and service areas.

Cell assignments are stored one row per cell, keyed by ``(restaurant_id,
cell_id)``. A toggle writes or deletes exactly one row, so two sessions editing
different cells never overwrite each other's work. The zone's list of cell ids
is never stored; it is derived from these rows on read.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import DeliveryZone, GeoPoint, ServiceArea
from ..services.errors import ZonePersistenceError

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


@dataclass(slots=True)
class StoredState:
    """Everything persisted for one restaurant."""

    service_area: Optional[ServiceArea] = None
    zones: list[DeliveryZone] = field(default_factory=list)
    assignments: dict[str, str] = field(default_factory=dict)


class ZoneStore(Protocol):
    def load(self, restaurant_id: str) -> StoredState: ...

    def save_service_area(self, restaurant_id: str, area: ServiceArea) -> None: ...

    def save_zone(self, zone: DeliveryZone) -> None: ...

    def set_cell_zone(self, restaurant_id: str, cell_id: str, zone_id: Optional[str]) -> None: ...

    def deactivate_zone(self, restaurant_id: str, zone_id: str) -> None: ...

    def clear_cells(self, restaurant_id: str, cell_ids: Iterable[str]) -> None: ...


def zone_to_record(zone: DeliveryZone) -> dict[str, Any]:
    """Document representation of a zone.

    ``minimumOrder`` and ``estimatedTime`` duplicate ``minPrice`` and
    ``deliveryTime`` for older clients that read those names.
    """
    return {
        "id": zone.zone_id,
        "restaurantId": zone.restaurant_id,
        "name": zone.name,
        "minPrice": zone.min_order,
        "minimumOrder": zone.min_order,
        "deliveryTime": zone.eta_minutes,
        "estimatedTime": zone.eta_minutes,
        "color": zone.color,
        "isActive": zone.is_active,
        "createdAt": zone.created_at.isoformat(),
    }


def record_to_zone(row: dict[str, Any]) -> DeliveryZone:
    min_order = row.get("minPrice", row.get("minimumOrder"))
    eta = row.get("deliveryTime", row.get("estimatedTime"))
    created_at = row.get("createdAt")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    if not isinstance(created_at, datetime):
        created_at = datetime.now(timezone.utc)
    elif created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return DeliveryZone(
        zone_id=str(row["id"]),
        restaurant_id=str(row["restaurantId"]),
        name=str(row["name"]),
        min_order=float(min_order),
        eta_minutes=int(eta),
        color=str(row["color"]),
        is_active=bool(row.get("isActive", True)),
        created_at=created_at,
    )


class InMemoryZoneStore:
    """Process-local store used when Supabase is not configured, and in tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._areas: dict[str, ServiceArea] = {}
        self._zones: dict[str, dict[str, DeliveryZone]] = {}
        self._cells: dict[str, dict[str, str]] = {}

    def load(self, restaurant_id: str) -> StoredState:
        with self._lock:
            zones = [
                zone
                for zone in self._zones.get(restaurant_id, {}).values()
                if zone.is_active
            ]
            zones.sort(key=lambda zone: zone.created_at)
            return StoredState(
                service_area=self._areas.get(restaurant_id),
                zones=zones,
                assignments=dict(self._cells.get(restaurant_id, {})),
            )

    def save_service_area(self, restaurant_id: str, area: ServiceArea) -> None:
        with self._lock:
            self._areas[restaurant_id] = area

    def save_zone(self, zone: DeliveryZone) -> None:
        with self._lock:
            self._zones.setdefault(zone.restaurant_id, {})[zone.zone_id] = replace(zone, cell_ids=())

    def set_cell_zone(self, restaurant_id: str, cell_id: str, zone_id: Optional[str]) -> None:
        with self._lock:
            cells = self._cells.setdefault(restaurant_id, {})
            if zone_id is None:
                cells.pop(cell_id, None)
            else:
                cells[cell_id] = zone_id

    def deactivate_zone(self, restaurant_id: str, zone_id: str) -> None:
        with self._lock:
            cells = self._cells.setdefault(restaurant_id, {})
            for cell_id in [cid for cid, zid in cells.items() if zid == zone_id]:
                del cells[cell_id]
            zones = self._zones.setdefault(restaurant_id, {})
            if zone_id in zones:
                zones[zone_id] = replace(zones[zone_id], is_active=False)

    def clear_cells(self, restaurant_id: str, cell_ids: Iterable[str]) -> None:
        with self._lock:
            cells = self._cells.setdefault(restaurant_id, {})
            for cell_id in cell_ids:
                cells.pop(cell_id, None)


class SupabaseZoneStore:
    """Zone store backed by Supabase tables."""

    def __init__(self, client: Any | None = None) -> None:
        self.client = client or get_supabase_client()
        if self.client is None:
            raise ValueError("Supabase is not configured. Set DZ_SUPABASE_URL and DZ_SUPABASE_KEY.")
        self.zones_table = settings.zones_table
        self.cells_table = settings.cells_table
        self.areas_table = settings.service_areas_table

    def _fail(self, action: str, restaurant_id: str, exc: Exception) -> ZonePersistenceError:
        logger.error("Failed to %s for restaurant %s: %s", action, restaurant_id, exc)
        return ZonePersistenceError(f"Failed to {action}: {exc}")

    def load(self, restaurant_id: str) -> StoredState:
        try:
            area_rows = (
                self.client.table(self.areas_table)
                .select("*")
                .eq("restaurant_id", restaurant_id)
                .limit(1)
                .execute()
            ).data or []
            zone_rows = (
                self.client.table(self.zones_table)
                .select("*")
                .eq("restaurantId", restaurant_id)
                .eq("isActive", True)
                .order("createdAt")
                .execute()
            ).data or []
            cell_rows = (
                self.client.table(self.cells_table)
                .select("cell_id, zone_id")
                .eq("restaurant_id", restaurant_id)
                .execute()
            ).data or []
        except Exception as exc:
            raise self._fail("load zone state", restaurant_id, exc) from exc

        area = None
        if area_rows:
            row = area_rows[0]
            area = ServiceArea(
                center=GeoPoint(float(row["latitude"]), float(row["longitude"])),
                radius_m=float(row["radius_m"]),
                cell_radius_m=float(row["cell_radius_m"]),
            )

        zones: list[DeliveryZone] = []
        for row in zone_rows:
            try:
                zones.append(record_to_zone(row))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping invalid zone row: %s", e)

        assignments = {str(row["cell_id"]): str(row["zone_id"]) for row in cell_rows if row.get("zone_id")}
        return StoredState(service_area=area, zones=zones, assignments=assignments)

    def save_service_area(self, restaurant_id: str, area: ServiceArea) -> None:
        record = {
            "restaurant_id": restaurant_id,
            "latitude": area.center.latitude,
            "longitude": area.center.longitude,
            "radius_m": area.radius_m,
            "cell_radius_m": area.cell_radius_m,
        }
        try:
            self.client.table(self.areas_table).upsert(record, on_conflict="restaurant_id").execute()
        except Exception as exc:
            raise self._fail("save service area", restaurant_id, exc) from exc

    def save_zone(self, zone: DeliveryZone) -> None:
        try:
            self.client.table(self.zones_table).upsert(zone_to_record(zone), on_conflict="id").execute()
        except Exception as exc:
            raise self._fail(f"save zone {zone.zone_id}", zone.restaurant_id, exc) from exc

    def set_cell_zone(self, restaurant_id: str, cell_id: str, zone_id: Optional[str]) -> None:
        table = self.client.table(self.cells_table)
        try:
            if zone_id is None:
                table.delete().eq("restaurant_id", restaurant_id).eq("cell_id", cell_id).execute()
            else:
                table.upsert(
                    {"restaurant_id": restaurant_id, "cell_id": cell_id, "zone_id": zone_id},
                    on_conflict="restaurant_id,cell_id",
                ).execute()
        except Exception as exc:
            raise self._fail(f"update cell {cell_id}", restaurant_id, exc) from exc

    def deactivate_zone(self, restaurant_id: str, zone_id: str) -> None:
        # Cell rows go before the zone flag so no row points at an inactive zone.
        try:
            (
                self.client.table(self.cells_table)
                .delete()
                .eq("restaurant_id", restaurant_id)
                .eq("zone_id", zone_id)
                .execute()
            )
            (
                self.client.table(self.zones_table)
                .update({"isActive": False})
                .eq("id", zone_id)
                .execute()
            )
        except Exception as exc:
            raise self._fail(f"delete zone {zone_id}", restaurant_id, exc) from exc

    def clear_cells(self, restaurant_id: str, cell_ids: Iterable[str]) -> None:
        ids = list(cell_ids)
        for i in range(0, len(ids), BATCH_SIZE):
            batch = ids[i:i + BATCH_SIZE]
            try:
                (
                    self.client.table(self.cells_table)
                    .delete()
                    .eq("restaurant_id", restaurant_id)
                    .in_("cell_id", batch)
                    .execute()
                )
            except Exception as exc:
                raise self._fail(f"clear {len(batch)} cells", restaurant_id, exc) from exc
