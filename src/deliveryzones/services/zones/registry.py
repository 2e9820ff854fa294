"""Catalog of a restaurant's delivery zones and the cell assignments pointing at them.

The cell -> zone mapping is the single source of truth. A zone's ``cell_ids``
is computed from it whenever a zone is read, so the two directions cannot
drift apart.

Every mutation follows the same order while holding the registry lock:
validate, write to the backing store, commit to memory, bump the version and
publish a snapshot. A validation or store failure raises before anything is
committed, which leaves the registry at its last known-good state.
"""

from __future__ import annotations

import logging
import math
import re
import threading
import uuid
from collections import Counter
from dataclasses import replace
from numbers import Real
from typing import Callable, Iterable, Optional, Sequence

from ...config import settings
from ...models.domain import DeliveryZone, ZoneSnapshot
from ...persistence.zones import StoredState, ZoneStore
from ..errors import UnknownZoneError, ZoneNotFoundError, ZoneValidationError

logger = logging.getLogger(__name__)

Publisher = Callable[[ZoneSnapshot], None]

_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


def validate_zone_fields(
    name: object = None,
    min_order: object = None,
    eta_minutes: object = None,
    *,
    partial: bool = False,
) -> dict:
    """Check zone attributes and return them normalised.

    With ``partial=True`` only the fields that are not None are checked.
    """

    cleaned: dict = {}
    if name is not None or not partial:
        if not isinstance(name, str) or not name.strip():
            raise ZoneValidationError("Zone name must be a non-empty string.")
        cleaned["name"] = name.strip()
    if min_order is not None or not partial:
        if isinstance(min_order, bool) or not isinstance(min_order, Real) or not math.isfinite(min_order):
            raise ZoneValidationError("Minimum order must be a number.")
        if min_order < 0:
            raise ZoneValidationError("Minimum order must be >= 0.")
        cleaned["min_order"] = float(min_order)
    if eta_minutes is not None or not partial:
        if isinstance(eta_minutes, bool) or not isinstance(eta_minutes, Real):
            raise ZoneValidationError("Estimated delivery time must be a whole number of minutes.")
        if not math.isfinite(eta_minutes) or int(eta_minutes) != eta_minutes:
            raise ZoneValidationError("Estimated delivery time must be a whole number of minutes.")
        if eta_minutes <= 0:
            raise ZoneValidationError("Estimated delivery time must be > 0 minutes.")
        cleaned["eta_minutes"] = int(eta_minutes)
    return cleaned


class ZoneRegistry:
    """Zones and cell assignments for a single restaurant."""

    def __init__(
        self,
        restaurant_id: str,
        store: ZoneStore,
        *,
        state: StoredState | None = None,
        palette: Sequence[str] | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        self.restaurant_id = restaurant_id
        self.store = store
        self.palette: tuple[str, ...] = tuple(palette or settings.zone_color_palette)
        self.lock = threading.RLock()
        self._publisher = publisher
        self._version = 0
        self._zones: dict[str, DeliveryZone] = {}
        self._cells: dict[str, str] = {}
        if state is not None:
            self._restore(state)

    def _restore(self, state: StoredState) -> None:
        for zone in sorted(state.zones, key=lambda z: z.created_at):
            if zone.is_active:
                self._zones[zone.zone_id] = replace(zone, cell_ids=())
        dangling = []
        for cell_id, zone_id in state.assignments.items():
            if zone_id in self._zones:
                self._cells[cell_id] = zone_id
            else:
                dangling.append(cell_id)
        if dangling:
            logger.warning(
                "Ignoring %d stored cell assignments that reference missing zones for restaurant %s",
                len(dangling),
                self.restaurant_id,
            )

    # ------------------------------------------------------------------ reads

    @property
    def version(self) -> int:
        return self._version

    def _with_cells(self, zone: DeliveryZone) -> DeliveryZone:
        cell_ids = tuple(sorted(cid for cid, zid in self._cells.items() if zid == zone.zone_id))
        return replace(zone, cell_ids=cell_ids)

    def list_zones(self) -> list[DeliveryZone]:
        """Active zones in creation order, each with its current cell ids."""
        with self.lock:
            return [self._with_cells(zone) for zone in self._zones.values()]

    def get_zone(self, zone_id: str) -> DeliveryZone:
        with self.lock:
            zone = self._zones.get(zone_id)
            if zone is None:
                raise ZoneNotFoundError(zone_id)
            return self._with_cells(zone)

    def is_active(self, zone_id: str) -> bool:
        return zone_id in self._zones

    def zone_of(self, cell_id: str) -> Optional[str]:
        return self._cells.get(cell_id)

    def cells_for_zone(self, zone_id: str) -> tuple[str, ...]:
        with self.lock:
            if zone_id not in self._zones:
                raise ZoneNotFoundError(zone_id)
            return tuple(sorted(cid for cid, zid in self._cells.items() if zid == zone_id))

    def cell_counts(self) -> dict[str, int]:
        with self.lock:
            counts = Counter(self._cells.values())
            return {zone_id: counts.get(zone_id, 0) for zone_id in self._zones}

    def assignments(self) -> dict[str, str]:
        with self.lock:
            return dict(self._cells)

    def snapshot(self) -> ZoneSnapshot:
        with self.lock:
            return ZoneSnapshot(
                restaurant_id=self.restaurant_id,
                version=self._version,
                zones=tuple(self.list_zones()),
            )

    # -------------------------------------------------------------- mutations

    def _commit(self) -> None:
        self._version += 1
        if self._publisher is not None:
            self._publisher(self.snapshot())

    def next_color(self) -> str:
        """First palette colour unused by active zones, else the least used one."""
        with self.lock:
            usage = Counter(zone.color for zone in self._zones.values())
            for color in self.palette:
                if usage[color] == 0:
                    return color
            return min(self.palette, key=lambda color: usage[color])

    def _palette_color(self, color: object) -> str:
        if isinstance(color, str) and _COLOR_PATTERN.match(color):
            for entry in self.palette:
                if entry.upper() == color.upper():
                    return entry
        raise ZoneValidationError(f"Zone colour must be one of the palette colours (got {color!r}).")

    def create_zone(self, name: str, min_order: float, eta_minutes: int) -> str:
        fields = validate_zone_fields(name, min_order, eta_minutes)
        with self.lock:
            zone = DeliveryZone(
                zone_id=uuid.uuid4().hex,
                restaurant_id=self.restaurant_id,
                color=self.next_color(),
                **fields,
            )
            self.store.save_zone(zone)
            self._zones[zone.zone_id] = zone
            logger.info("Created zone %s (%s) for restaurant %s", zone.zone_id, zone.name, self.restaurant_id)
            self._commit()
            return zone.zone_id

    def update_zone(
        self,
        zone_id: str,
        *,
        name: str | None = None,
        min_order: float | None = None,
        eta_minutes: int | None = None,
        color: str | None = None,
    ) -> DeliveryZone:
        changes = validate_zone_fields(name, min_order, eta_minutes, partial=True)
        if color is not None:
            changes["color"] = self._palette_color(color)
        with self.lock:
            current = self._zones.get(zone_id)
            if current is None:
                raise ZoneNotFoundError(zone_id)
            if not changes:
                return self._with_cells(current)
            updated = replace(current, **changes)
            self.store.save_zone(updated)
            self._zones[zone_id] = updated
            logger.info("Updated zone %s: %s", zone_id, sorted(changes))
            self._commit()
            return self._with_cells(updated)

    def delete_zone(self, zone_id: str) -> tuple[str, ...]:
        """Deactivate a zone and clear every cell pointing at it.

        Returns the ids of the cells that were released.
        """
        with self.lock:
            if zone_id not in self._zones:
                raise ZoneNotFoundError(zone_id)
            released = tuple(sorted(cid for cid, zid in self._cells.items() if zid == zone_id))
            self.store.deactivate_zone(self.restaurant_id, zone_id)
            for cell_id in released:
                del self._cells[cell_id]
            del self._zones[zone_id]
            logger.info("Deleted zone %s and released %d cells", zone_id, len(released))
            self._commit()
            return released

    def set_cell_zone(self, cell_id: str, zone_id: Optional[str]) -> Optional[str]:
        """Point ``cell_id`` at ``zone_id`` (or clear it) and return the previous zone.

        Callers are expected to hold :attr:`lock` when the decision depends on
        the cell's current zone.
        """
        with self.lock:
            if zone_id is not None and zone_id not in self._zones:
                raise UnknownZoneError(zone_id)
            previous = self._cells.get(cell_id)
            if previous == zone_id:
                return previous
            self.store.set_cell_zone(self.restaurant_id, cell_id, zone_id)
            if zone_id is None:
                del self._cells[cell_id]
            else:
                self._cells[cell_id] = zone_id
            logger.debug("Cell %s: %s -> %s", cell_id, previous, zone_id)
            self._commit()
            return previous

    def release_cells(self, cell_ids: Iterable[str]) -> tuple[str, ...]:
        """Clear assignments for cells that no longer exist in the grid."""
        with self.lock:
            assigned = tuple(sorted(cid for cid in set(cell_ids) if cid in self._cells))
            if not assigned:
                return ()
            self.store.clear_cells(self.restaurant_id, assigned)
            for cell_id in assigned:
                del self._cells[cell_id]
            logger.warning(
                "Released %d orphaned cell assignments for restaurant %s",
                len(assigned),
                self.restaurant_id,
            )
            self._commit()
            return assigned
