"""Cell membership mutations and point lookups on top of the zone registry."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from ...models.domain import AssignmentAction, CellZoneState, GeoPoint, HexCell, ServiceArea
from ..errors import (
    CellAlreadyAssignedError,
    ServiceAreaNotConfiguredError,
    UnknownCellError,
    UnknownZoneError,
    ZonePersistenceError,
)
from ..grid.generator import HexGrid, grid_for_area
from .registry import ZoneRegistry

logger = logging.getLogger(__name__)


class ZoneAssignmentService:
    """Assign, unassign and reassign grid cells to zones.

    Three explicit operations exist:

    * ``assign_cell`` only claims unassigned cells.
    * ``unassign_cell`` clears a cell.
    * ``reassign_cell`` moves a cell into a zone, taking it from whichever
      zone held it.

    ``toggle_cell`` is the map-click behaviour built on them: clicking a cell
    of the selected zone clears it, clicking any other cell paints it with the
    selected zone, even when that takes it from another zone.

    Concurrent calls on the same cell are serialised by the registry lock and
    the last one applied wins.
    """

    def __init__(self, registry: ZoneRegistry, area: ServiceArea | None = None) -> None:
        self.registry = registry
        self._area = area

    @property
    def service_area(self) -> Optional[ServiceArea]:
        return self._area

    @property
    def grid(self) -> HexGrid:
        if self._area is None:
            raise ServiceAreaNotConfiguredError(self.registry.restaurant_id)
        return grid_for_area(self._area)

    def _require_cell(self, cell_id: str) -> None:
        if cell_id not in self.grid:
            raise UnknownCellError(cell_id)

    def _require_zone(self, zone_id: str) -> None:
        if not self.registry.is_active(zone_id):
            raise UnknownZoneError(zone_id)

    def _state(self, cell_id: str, previous: Optional[str], action: AssignmentAction) -> CellZoneState:
        return CellZoneState(
            cell_id=cell_id,
            zone_id=self.registry.zone_of(cell_id),
            previous_zone_id=previous,
            action=action,
            version=self.registry.version,
        )

    def assign_cell(self, zone_id: str, cell_id: str) -> CellZoneState:
        """Put an unassigned cell into ``zone_id``. Assigning it to its own zone is a no-op."""
        with self.registry.lock:
            self._require_zone(zone_id)
            self._require_cell(cell_id)
            current = self.registry.zone_of(cell_id)
            if current is not None and current != zone_id:
                raise CellAlreadyAssignedError(cell_id, current)
            previous = self.registry.set_cell_zone(cell_id, zone_id)
            return self._state(cell_id, previous, AssignmentAction.ASSIGNED)

    def unassign_cell(self, cell_id: str, *, zone_id: str | None = None) -> CellZoneState:
        """Clear a cell. With ``zone_id``, only a cell of that zone may be cleared."""
        with self.registry.lock:
            if zone_id is not None:
                self._require_zone(zone_id)
            self._require_cell(cell_id)
            current = self.registry.zone_of(cell_id)
            if zone_id is not None and current not in (None, zone_id):
                raise CellAlreadyAssignedError(cell_id, current)
            previous = self.registry.set_cell_zone(cell_id, None)
            return self._state(cell_id, previous, AssignmentAction.UNASSIGNED)

    def reassign_cell(self, zone_id: str, cell_id: str) -> CellZoneState:
        """Move a cell into ``zone_id`` regardless of its current zone."""
        with self.registry.lock:
            self._require_zone(zone_id)
            self._require_cell(cell_id)
            previous = self.registry.set_cell_zone(cell_id, zone_id)
            action = (
                AssignmentAction.REASSIGNED
                if previous is not None and previous != zone_id
                else AssignmentAction.ASSIGNED
            )
            if action is AssignmentAction.REASSIGNED:
                logger.info("Cell %s moved from zone %s to zone %s", cell_id, previous, zone_id)
            return self._state(cell_id, previous, action)

    def toggle_cell(self, zone_id: str, cell_id: str) -> CellZoneState:
        with self.registry.lock:
            self._require_zone(zone_id)
            self._require_cell(cell_id)
            current = self.registry.zone_of(cell_id)
            if current == zone_id:
                return self.unassign_cell(cell_id)
            if current is None:
                return self.assign_cell(zone_id, cell_id)
            return self.reassign_cell(zone_id, cell_id)

    def cells(self) -> list[HexCell]:
        """Grid cells annotated with their current zone ids."""
        with self.registry.lock:
            assignments = self.registry.assignments()
        return [
            replace(cell, zone_id=assignments[cell.cell_id]) if cell.cell_id in assignments else cell
            for cell in self.grid.cells
        ]

    def zone_for_point(self, point: GeoPoint) -> Optional[str]:
        """Zone covering ``point``, or None when the point is outside every zone."""
        cell = self.grid.locate(point)
        if cell is None:
            return None
        return self.registry.zone_of(cell.cell_id)

    def orphaned_cells(self, grid: HexGrid | None = None) -> tuple[str, ...]:
        if grid is None:
            grid = self.grid
        return tuple(sorted(cid for cid in self.registry.assignments() if cid not in grid))

    def update_service_area(self, area: ServiceArea) -> tuple[str, ...]:
        """Switch to a new service area and clear assignments for cells that disappeared.

        Returns the ids of the released cells. If releasing them fails the
        previous area is written back and kept.
        """
        grid = grid_for_area(area)
        restaurant_id = self.registry.restaurant_id
        with self.registry.lock:
            previous = self._area
            orphaned = self.orphaned_cells(grid)
            self.registry.store.save_service_area(restaurant_id, area)
            try:
                if orphaned:
                    self.registry.release_cells(orphaned)
            except ZonePersistenceError:
                if previous is not None:
                    self.registry.store.save_service_area(restaurant_id, previous)
                logger.error("Service area change for %s rolled back", restaurant_id)
                raise
            self._area = area
            return orphaned
