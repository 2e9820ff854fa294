"""Hexagonal tessellation of a restaurant's service area.

Cells are pointy-top hexagons laid out in offset rows: horizontal spacing is
``sqrt(3) * r``, vertical spacing ``1.5 * r`` and every odd row is shifted by
half the horizontal spacing. Layout happens in local metric coordinates
anchored at the service-area center and is converted to coordinates with the
equirectangular projection from :mod:`..geospatial`.

Cells straddling the boundary are clipped by walking the polygon edges and
emitting the point where an edge meets the circle. The arc between two
crossing points is represented by its chord, so clipped area is slightly
underestimated near the boundary. That is fine for map display and zone
lookup; it is not an exact covered-area computation.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Iterator, Optional, Sequence

from ...config import settings
from ...models.domain import GeoPoint, HexCell, ServiceArea
from ..errors import GridParameterError
from ..geospatial import offset_to_point, planar_distance_m, point_in_polygon, point_to_offset

logger = logging.getLogger(__name__)

SQRT3 = math.sqrt(3.0)
MIN_POLYGON_VERTICES = 3
MAX_POLYGON_VERTICES = 6
_EPSILON_M = 1e-9

Offset = tuple[float, float]


def cell_id_for(row: int, col: int) -> str:
    """Stable identifier for the cell at a nominal grid position."""

    return f"hex_r{row:+d}_c{col:+d}"


def hexagon_offsets(center: Offset, cell_radius_m: float) -> list[Offset]:
    """Vertices of a pointy-top hexagon around ``center``, counter-clockwise."""

    cx, cy = center
    vertices: list[Offset] = []
    for i in range(6):
        angle = math.radians(60 * i - 30)
        vertices.append((cx + cell_radius_m * math.cos(angle), cy + cell_radius_m * math.sin(angle)))
    return vertices


def _inside(vertex: Offset, radius_m: float) -> bool:
    return math.hypot(*vertex) <= radius_m


def _edge_circle_crossing(start: Offset, end: Offset, radius_m: float) -> Offset:
    """Point where the segment start->end meets the circle. One endpoint must be inside."""

    (x0, y0), (x1, y1) = start, end
    dx, dy = x1 - x0, y1 - y0
    a = dx * dx + dy * dy
    b = 2 * (x0 * dx + y0 * dy)
    c = x0 * x0 + y0 * y0 - radius_m * radius_m
    root = math.sqrt(max(b * b - 4 * a * c, 0.0))
    candidates = sorted(((-b - root) / (2 * a), (-b + root) / (2 * a)))
    t = next((value for value in candidates if 0.0 <= value <= 1.0), None)
    if t is None:
        t = min(max(candidates[0], 0.0), 1.0)
    return (x0 + dx * t, y0 + dy * t)


def _radial_projection(vertex: Offset, radius_m: float) -> Offset:
    distance = math.hypot(*vertex)
    return (vertex[0] * radius_m / distance, vertex[1] * radius_m / distance)


def _drop_repeated(vertices: list[Offset]) -> list[Offset]:
    result: list[Offset] = []
    for vertex in vertices:
        if result and math.dist(result[-1], vertex) <= _EPSILON_M:
            continue
        result.append(vertex)
    if len(result) > 1 and math.dist(result[0], result[-1]) <= _EPSILON_M:
        result.pop()
    return result


def clip_polygon_to_circle(polygon: Sequence[Offset], radius_m: float) -> list[Offset]:
    """Clip a polygon, given as offsets from the circle center, to the circle.

    Each edge contributes its start vertex when that vertex is inside, plus the
    crossing point when exactly one endpoint is inside. Edges with both
    endpoints outside contribute nothing, even if they graze the circle.
    """

    count = len(polygon)
    inside = [_inside(vertex, radius_m) for vertex in polygon]
    if all(inside):
        return list(polygon)

    clipped: list[Offset] = []
    for i in range(count):
        current, following = polygon[i], polygon[(i + 1) % count]
        if inside[i]:
            clipped.append(current)
        if inside[i] != inside[(i + 1) % count]:
            clipped.append(_edge_circle_crossing(current, following, radius_m))
    clipped = _drop_repeated(clipped)
    if len(clipped) > MAX_POLYGON_VERTICES:
        clipped = _drop_repeated(_collapse_isolated_vertices(polygon, inside, radius_m))
    return clipped


def _collapse_isolated_vertices(
    polygon: Sequence[Offset],
    inside: Sequence[bool],
    radius_m: float,
) -> list[Offset]:
    """Clip again, replacing each lone outside vertex with its projection onto the circle.

    Cutting a single corner off a hexagon yields seven vertices; merging the
    two crossing points into one keeps cells at six vertices at most.
    """

    count = len(polygon)
    result: list[Offset] = []
    for i in range(count):
        current, following = polygon[i], polygon[(i + 1) % count]
        prev_inside, next_inside = inside[(i - 1) % count], inside[(i + 1) % count]
        if inside[i]:
            result.append(current)
            if not next_inside and not inside[(i + 2) % count]:
                result.append(_edge_circle_crossing(current, following, radius_m))
        elif prev_inside and next_inside:
            result.append(_radial_projection(current, radius_m))
        elif next_inside:
            result.append(_edge_circle_crossing(current, following, radius_m))
    return result


def validate_parameters(center: GeoPoint, radius_m: float, cell_radius_m: float) -> None:
    if radius_m is None or not radius_m > 0:
        raise GridParameterError(f"radius_m must be > 0 (got {radius_m}).")
    if cell_radius_m is None or not cell_radius_m > 0:
        raise GridParameterError(f"cell_radius_m must be > 0 (got {cell_radius_m}).")
    if not math.isfinite(radius_m) or not math.isfinite(cell_radius_m):
        raise GridParameterError("radius_m and cell_radius_m must be finite.")
    if radius_m < cell_radius_m:
        raise GridParameterError(
            f"radius_m ({radius_m}) must be at least cell_radius_m ({cell_radius_m})."
        )
    if not -90.0 < center.latitude < 90.0:
        raise GridParameterError(f"center latitude must be within (-90, 90) (got {center.latitude}).")
    if not -180.0 <= center.longitude <= 180.0:
        raise GridParameterError(f"center longitude must be within [-180, 180] (got {center.longitude}).")


def _candidate_positions(radius_m: float, cell_radius_m: float) -> Iterator[tuple[int, int, Offset]]:
    horizontal = SQRT3 * cell_radius_m
    vertical = 1.5 * cell_radius_m
    reach = radius_m + cell_radius_m
    rows = math.ceil(reach / vertical)
    cols = math.ceil(reach / horizontal) + 1
    for row in range(-rows, rows + 1):
        shift = horizontal / 2 if row % 2 else 0.0
        for col in range(-cols, cols + 1):
            yield row, col, (col * horizontal + shift, row * vertical)


class HexGrid:
    """Immutable result of a grid generation run."""

    def __init__(self, area: ServiceArea, cells: Sequence[HexCell], metadata: dict | None = None):
        self.area = area
        self.cells: tuple[HexCell, ...] = tuple(cells)
        self._metadata = dict(metadata or {})
        self._index = {cell.cell_id: cell for cell in self.cells}

    def __len__(self) -> int:
        return len(self.cells)

    def __contains__(self, cell_id: object) -> bool:
        return cell_id in self._index

    @property
    def metadata(self) -> dict:
        """Copy of the generation statistics."""
        return dict(self._metadata)

    @property
    def cell_ids(self) -> frozenset[str]:
        return frozenset(self._index)

    def get(self, cell_id: str) -> Optional[HexCell]:
        return self._index.get(cell_id)

    def locate(self, point: GeoPoint) -> Optional[HexCell]:
        """Return the cell whose polygon contains ``point``, if any.

        Points on a shared edge resolve to the first cell in row/column order.
        """

        origin = self.area.center
        if planar_distance_m(origin, point) > self.area.radius_m:
            return None
        px, py = point_to_offset(origin, point)
        reach = self.area.cell_radius_m * 1.01
        for cell in self.cells:
            cx, cy = point_to_offset(origin, cell.centroid)
            if math.hypot(px - cx, py - cy) > reach:
                continue
            if point_in_polygon(point, cell.vertices):
                return cell
        return None


def generate_grid(center: GeoPoint, radius_m: float, cell_radius_m: float) -> HexGrid:
    """Tile the disc around ``center`` with hexagonal cells."""

    validate_parameters(center, radius_m, cell_radius_m)
    area = ServiceArea(center=center, radius_m=float(radius_m), cell_radius_m=float(cell_radius_m))

    cells: list[HexCell] = []
    dropped: list[str] = []
    clipped_count = 0
    reach = radius_m + cell_radius_m
    for row, col, offset in _candidate_positions(radius_m, cell_radius_m):
        if math.hypot(*offset) > reach:
            continue
        cell_id = cell_id_for(row, col)
        outline = hexagon_offsets(offset, cell_radius_m)
        polygon = clip_polygon_to_circle(outline, radius_m)
        if len(polygon) < MIN_POLYGON_VERTICES:
            logger.debug("Dropping degenerate cell %s (%d vertices after clipping)", cell_id, len(polygon))
            dropped.append(cell_id)
            continue
        was_clipped = polygon != outline
        clipped_count += int(was_clipped)
        cells.append(
            HexCell(
                cell_id=cell_id,
                row=row,
                col=col,
                vertices=tuple(offset_to_point(center, east, north) for east, north in polygon),
                centroid=offset_to_point(center, *offset),
                clipped=was_clipped,
            )
        )

    if dropped:
        logger.info("Dropped %d degenerate boundary cells while clipping", len(dropped))
    logger.info(
        "Generated %d hex cells (radius=%.0fm, cell_radius=%.0fm, clipped=%d)",
        len(cells),
        radius_m,
        cell_radius_m,
        clipped_count,
    )
    metadata = {
        "cell_count": len(cells),
        "clipped_cells": clipped_count,
        "dropped_degenerate": len(dropped),
        "dropped_cell_ids": tuple(dropped),
    }
    return HexGrid(area, cells, metadata=metadata)


def generate(center: GeoPoint, radius_m: float, cell_radius_m: float) -> list[HexCell]:
    """Return the cells covering the disc, in row/column order."""

    return list(generate_grid(center, radius_m, cell_radius_m).cells)


@lru_cache(maxsize=settings.grid_cache_size)
def _cached_grid(latitude: float, longitude: float, radius_m: float, cell_radius_m: float) -> HexGrid:
    return generate_grid(GeoPoint(latitude, longitude), radius_m, cell_radius_m)


def grid_for_area(area: ServiceArea) -> HexGrid:
    """Grid for a service area, memoised on (center, radius, cell radius)."""

    validate_parameters(area.center, area.radius_m, area.cell_radius_m)
    return _cached_grid(area.center.latitude, area.center.longitude, float(area.radius_m), float(area.cell_radius_m))


def clear_grid_cache() -> None:
    _cached_grid.cache_clear()
