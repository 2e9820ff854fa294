"""API routes for delivery zones and cell assignment."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Query, status

from ...models.domain import GeoPoint
from ...schemas.zones import (
    CellStateModel,
    ZoneCreateRequest,
    ZoneDeletedResponse,
    ZoneLookupResponse,
    ZoneModel,
    ZoneSnapshotModel,
    ZoneUpdateRequest,
)
from ...services.errors import ZoneEngineError
from ...services.zones.service import get_zone_map
from ..errors import to_http_exception

router = APIRouter(prefix="/restaurants/{restaurant_id}/zones", tags=["zones"])


@router.get("", response_model=List[ZoneModel], status_code=status.HTTP_200_OK)
def list_zones(restaurant_id: str) -> List[ZoneModel]:
    try:
        zones = get_zone_map(restaurant_id).registry.list_zones()
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return [ZoneModel.from_domain(zone) for zone in zones]


@router.get("/snapshot", response_model=ZoneSnapshotModel, status_code=status.HTTP_200_OK)
def get_snapshot(restaurant_id: str) -> ZoneSnapshotModel:
    """Current full zone list with its version, for sessions that reconnect."""
    try:
        snapshot = get_zone_map(restaurant_id).registry.snapshot()
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return ZoneSnapshotModel.from_domain(snapshot)


@router.get("/lookup", response_model=ZoneLookupResponse, status_code=status.HTTP_200_OK)
def lookup_zone(
    restaurant_id: str,
    lat: float = Query(..., ge=-90.0, le=90.0),
    lng: float = Query(..., ge=-180.0, le=180.0),
) -> ZoneLookupResponse:
    """Zone covering a delivery point, with its minimum order and delivery time."""
    try:
        zone_map = get_zone_map(restaurant_id)
        zone_id = zone_map.assignments.zone_for_point(GeoPoint(lat, lng))
        zone = zone_map.registry.get_zone(zone_id) if zone_id else None
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    if zone is None:
        return ZoneLookupResponse(latitude=lat, longitude=lng)
    return ZoneLookupResponse(
        latitude=lat,
        longitude=lng,
        zoneId=zone.zone_id,
        name=zone.name,
        minOrder=zone.min_order,
        etaMinutes=zone.eta_minutes,
    )


@router.post("", response_model=ZoneModel, status_code=status.HTTP_201_CREATED)
def create_zone(restaurant_id: str, payload: ZoneCreateRequest) -> ZoneModel:
    try:
        registry = get_zone_map(restaurant_id).registry
        zone_id = registry.create_zone(payload.name, payload.min_order, payload.eta_minutes)
        return ZoneModel.from_domain(registry.get_zone(zone_id))
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{zone_id}", response_model=ZoneModel, status_code=status.HTTP_200_OK)
def get_zone(restaurant_id: str, zone_id: str) -> ZoneModel:
    try:
        return ZoneModel.from_domain(get_zone_map(restaurant_id).registry.get_zone(zone_id))
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/{zone_id}", response_model=ZoneModel, status_code=status.HTTP_200_OK)
def update_zone(restaurant_id: str, zone_id: str, payload: ZoneUpdateRequest) -> ZoneModel:
    try:
        zone = get_zone_map(restaurant_id).registry.update_zone(zone_id, **payload.model_dump(exclude_none=True))
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return ZoneModel.from_domain(zone)


@router.delete("/{zone_id}", response_model=ZoneDeletedResponse, status_code=status.HTTP_200_OK)
def delete_zone(restaurant_id: str, zone_id: str) -> ZoneDeletedResponse:
    try:
        released = get_zone_map(restaurant_id).registry.delete_zone(zone_id)
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return ZoneDeletedResponse(id=zone_id, releasedHexagonIds=list(released))


@router.post("/{zone_id}/cells/{cell_id}/toggle", response_model=CellStateModel, status_code=status.HTTP_200_OK)
def toggle_cell(restaurant_id: str, zone_id: str, cell_id: str) -> CellStateModel:
    """Map click: clear the cell if it is in this zone, otherwise paint it with this zone."""
    try:
        state = get_zone_map(restaurant_id).assignments.toggle_cell(zone_id, cell_id)
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return CellStateModel.from_domain(state)


@router.post("/{zone_id}/cells/{cell_id}", response_model=CellStateModel, status_code=status.HTTP_200_OK)
def assign_cell(
    restaurant_id: str,
    zone_id: str,
    cell_id: str,
    reassign: bool = Query(default=False, description="Take the cell from another zone if it has one."),
) -> CellStateModel:
    try:
        assignments = get_zone_map(restaurant_id).assignments
        if reassign:
            state = assignments.reassign_cell(zone_id, cell_id)
        else:
            state = assignments.assign_cell(zone_id, cell_id)
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return CellStateModel.from_domain(state)


@router.delete("/{zone_id}/cells/{cell_id}", response_model=CellStateModel, status_code=status.HTTP_200_OK)
def unassign_cell(restaurant_id: str, zone_id: str, cell_id: str) -> CellStateModel:
    try:
        state = get_zone_map(restaurant_id).assignments.unassign_cell(cell_id, zone_id=zone_id)
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return CellStateModel.from_domain(state)
