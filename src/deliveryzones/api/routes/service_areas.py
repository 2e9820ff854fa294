"""API routes for the service area and its hex grid."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from ...persistence.filesystem import FileStorage
from ...schemas.zones import (
    GridResponse,
    HexCellModel,
    ServiceAreaModel,
    ServiceAreaRequest,
    ServiceAreaResponse,
)
from ...services.errors import ZoneEngineError
from ...services.export.geojson import cells_to_feature_collection
from ...services.zones.service import get_zone_map
from ..errors import to_http_exception

router = APIRouter(prefix="/restaurants/{restaurant_id}", tags=["grid"])


@router.put("/service-area", response_model=ServiceAreaResponse, status_code=status.HTTP_200_OK)
def set_service_area(restaurant_id: str, payload: ServiceAreaRequest) -> ServiceAreaResponse:
    """Set the restaurant location and radius, regenerating the grid.

    Assignments for cells that are not part of the new grid are cleared and
    reported in ``orphanedCellIds``.
    """
    try:
        zone_map = get_zone_map(restaurant_id)
        orphaned = zone_map.configure_service_area(
            payload.latitude,
            payload.longitude,
            radius_m=payload.radius_m,
            cell_radius_m=payload.cell_radius_m,
        )
        grid = zone_map.assignments.grid
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    return ServiceAreaResponse(
        restaurantId=restaurant_id,
        serviceArea=ServiceAreaModel.from_domain(grid.area),
        cellCount=len(grid),
        orphanedCellIds=list(orphaned),
    )


@router.get("/grid", response_model=GridResponse, status_code=status.HTTP_200_OK)
def get_grid(restaurant_id: str) -> GridResponse:
    try:
        zone_map = get_zone_map(restaurant_id)
        grid = zone_map.assignments.grid
        cells = zone_map.assignments.cells()
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc
    colors = {zone.zone_id: zone.color for zone in zone_map.registry.list_zones()}
    return GridResponse(
        restaurantId=restaurant_id,
        serviceArea=ServiceAreaModel.from_domain(grid.area),
        cells=[HexCellModel.from_domain(cell, colors.get(cell.zone_id or "")) for cell in cells],
        metadata={key: value for key, value in grid.metadata.items() if key != "dropped_cell_ids"},
    )


@router.get("/grid/geojson", status_code=status.HTTP_200_OK)
def get_grid_geojson(
    restaurant_id: str,
    persist: bool = Query(default=False, description="Also write the collection under the data root."),
) -> dict:
    try:
        zone_map = get_zone_map(restaurant_id)
        grid = zone_map.assignments.grid
        cells = zone_map.assignments.cells()
    except ZoneEngineError as exc:
        raise to_http_exception(exc) from exc

    collection = cells_to_feature_collection(cells, zone_map.registry.list_zones(), center=grid.area.center)
    if persist:
        try:
            storage = FileStorage()
            run_dir = storage.make_run_directory(prefix=f"grid_{restaurant_id}")
            storage.write_json(run_dir / "grid.geojson", collection)
        except OSError as exc:
            logging.error(f"Failed to write grid export for {restaurant_id}: {exc}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to write grid export: {exc}",
            ) from exc
    return collection
