"""GeoJSON export of the hex grid coloured by delivery zone."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from ...models.domain import DeliveryZone, GeoPoint, HexCell

UNASSIGNED_COLOR = "#e5e7eb"


def _ring(vertices: Sequence[GeoPoint]) -> List[List[float]]:
    ring = [[point.longitude, point.latitude] for point in vertices]
    if ring and ring[0] != ring[-1]:
        ring.append(ring[0])
    return ring


def cells_to_feature_collection(
    cells: Sequence[HexCell],
    zones: Sequence[DeliveryZone],
    *,
    center: GeoPoint | None = None,
) -> Dict[str, Any]:
    """Build a FeatureCollection with one Polygon feature per cell.

    Assigned cells carry the zone's name, colour, minimum order and delivery
    time so a map can style and label them without a second lookup.
    """
    zones_by_id = {zone.zone_id: zone for zone in zones}
    features: List[Dict[str, Any]] = []
    for cell in cells:
        zone = zones_by_id.get(cell.zone_id) if cell.zone_id else None
        properties: Dict[str, Any] = {
            "cell_id": cell.cell_id,
            "row": cell.row,
            "col": cell.col,
            "clipped": cell.clipped,
            "zone_id": zone.zone_id if zone else None,
            "zone_name": zone.name if zone else None,
            "fill_color": zone.color if zone else UNASSIGNED_COLOR,
            "fill_opacity": 0.25 if zone else 0.0,
        }
        if zone:
            properties["min_order"] = zone.min_order
            properties["eta_minutes"] = zone.eta_minutes
        features.append(
            {
                "type": "Feature",
                "id": cell.cell_id,
                "geometry": {"type": "Polygon", "coordinates": [_ring(cell.vertices)]},
                "properties": properties,
            }
        )

    collection: Dict[str, Any] = {"type": "FeatureCollection", "features": features}
    if center is not None:
        collection["properties"] = {"center": [center.longitude, center.latitude]}
    return collection

