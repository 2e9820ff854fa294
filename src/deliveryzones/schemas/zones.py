"""Pydantic request/response models for service area and zone endpoints.

Response field names follow the zone documents the dashboard already reads
(``minPrice``, ``deliveryTime``, ``hexagonIds``...).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field

from ..models.domain import CellZoneState, DeliveryZone, GeoPoint, HexCell, ServiceArea, ZoneSnapshot


class LatLngModel(BaseModel):
    lat: float
    lng: float

    @classmethod
    def from_point(cls, point: GeoPoint) -> "LatLngModel":
        return cls(lat=point.latitude, lng=point.longitude)


class ServiceAreaRequest(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(..., ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lng"))
    radius_m: Optional[float] = Field(
        default=None, gt=0.0, description="Service radius in meters (defaults to the configured radius)."
    )
    cell_radius_m: Optional[float] = Field(
        default=None, gt=0.0, description="Hexagon radius in meters (defaults to the configured size)."
    )


class ServiceAreaModel(BaseModel):
    center: LatLngModel
    radiusM: float
    cellRadiusM: float

    @classmethod
    def from_domain(cls, area: ServiceArea) -> "ServiceAreaModel":
        return cls(
            center=LatLngModel.from_point(area.center),
            radiusM=area.radius_m,
            cellRadiusM=area.cell_radius_m,
        )


class ServiceAreaResponse(BaseModel):
    restaurantId: str
    serviceArea: ServiceAreaModel
    cellCount: int
    orphanedCellIds: List[str]


class ZoneCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    min_order: float = Field(..., ge=0.0, validation_alias=AliasChoices("minOrder", "minPrice", "min_order"))
    eta_minutes: int = Field(..., gt=0, validation_alias=AliasChoices("etaMinutes", "deliveryTime", "eta_minutes"))


class ZoneUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    min_order: Optional[float] = Field(
        default=None, ge=0.0, validation_alias=AliasChoices("minOrder", "minPrice", "min_order")
    )
    eta_minutes: Optional[int] = Field(
        default=None, gt=0, validation_alias=AliasChoices("etaMinutes", "deliveryTime", "eta_minutes")
    )
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class ZoneModel(BaseModel):
    id: str
    restaurantId: str
    name: str
    minPrice: float
    deliveryTime: int
    color: str
    isActive: bool
    hexagonIds: List[str]
    hexagonCount: int
    createdAt: datetime

    @classmethod
    def from_domain(cls, zone: DeliveryZone) -> "ZoneModel":
        return cls(
            id=zone.zone_id,
            restaurantId=zone.restaurant_id,
            name=zone.name,
            minPrice=zone.min_order,
            deliveryTime=zone.eta_minutes,
            color=zone.color,
            isActive=zone.is_active,
            hexagonIds=list(zone.cell_ids),
            hexagonCount=zone.cell_count,
            createdAt=zone.created_at,
        )


class ZoneSnapshotModel(BaseModel):
    restaurantId: str
    version: int
    zones: List[ZoneModel]

    @classmethod
    def from_domain(cls, snapshot: ZoneSnapshot) -> "ZoneSnapshotModel":
        return cls(
            restaurantId=snapshot.restaurant_id,
            version=snapshot.version,
            zones=[ZoneModel.from_domain(zone) for zone in snapshot.zones],
        )


class ZoneDeletedResponse(BaseModel):
    id: str
    releasedHexagonIds: List[str]


class CellStateModel(BaseModel):
    cellId: str
    zoneId: Optional[str]
    previousZoneId: Optional[str]
    action: str
    version: int

    @classmethod
    def from_domain(cls, state: CellZoneState) -> "CellStateModel":
        return cls(
            cellId=state.cell_id,
            zoneId=state.zone_id,
            previousZoneId=state.previous_zone_id,
            action=state.action.value,
            version=state.version,
        )


class HexCellModel(BaseModel):
    id: str
    row: int
    col: int
    paths: List[LatLngModel]
    center: LatLngModel
    clipped: bool
    zoneId: Optional[str] = None
    color: Optional[str] = None

    @classmethod
    def from_domain(cls, cell: HexCell, color: Optional[str] = None) -> "HexCellModel":
        return cls(
            id=cell.cell_id,
            row=cell.row,
            col=cell.col,
            paths=[LatLngModel.from_point(vertex) for vertex in cell.vertices],
            center=LatLngModel.from_point(cell.centroid),
            clipped=cell.clipped,
            zoneId=cell.zone_id,
            color=color,
        )


class GridResponse(BaseModel):
    restaurantId: str
    serviceArea: ServiceAreaModel
    cells: List[HexCellModel]
    metadata: dict[str, Any]


class ZoneLookupResponse(BaseModel):
    latitude: float
    longitude: float
    zoneId: Optional[str] = None
    name: Optional[str] = None
    minOrder: Optional[float] = None
    etaMinutes: Optional[int] = None
