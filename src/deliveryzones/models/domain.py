"""Domain models for service areas, hexagonal cells and delivery zones."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """A latitude/longitude pair in degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class ServiceArea:
    """The disc around a restaurant inside which delivery is offered."""

    center: GeoPoint
    radius_m: float
    cell_radius_m: float


@dataclass(frozen=True, slots=True)
class HexCell:
    """One hexagonal tile of the coverage grid.

    ``zone_id`` is a weak reference into the zone registry; the grid itself
    always produces cells with ``zone_id=None`` and the registry annotates
    copies of them.
    """

    cell_id: str
    row: int
    col: int
    vertices: tuple[GeoPoint, ...]
    centroid: GeoPoint
    clipped: bool = False
    zone_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DeliveryZone:
    """Operator-defined group of cells carrying price and time attributes."""

    zone_id: str
    restaurant_id: str
    name: str
    min_order: float
    eta_minutes: int
    color: str
    is_active: bool = True
    cell_ids: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def cell_count(self) -> int:
        return len(self.cell_ids)


class AssignmentAction(str, Enum):
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    REASSIGNED = "reassigned"


@dataclass(frozen=True, slots=True)
class CellZoneState:
    """Outcome of a single cell mutation."""

    cell_id: str
    zone_id: Optional[str]
    previous_zone_id: Optional[str]
    action: AssignmentAction
    version: int


@dataclass(frozen=True, slots=True)
class ZoneSnapshot:
    """Full zone list for one restaurant at a given registry version."""

    restaurant_id: str
    version: int
    zones: tuple[DeliveryZone, ...]

    def zone_for_cell(self, cell_id: str) -> Optional[DeliveryZone]:
        for zone in self.zones:
            if cell_id in zone.cell_ids:
                return zone
        return None
