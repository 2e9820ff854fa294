import math

import pytest

from src.deliveryzones.models.domain import GeoPoint, ServiceArea
from src.deliveryzones.services.errors import GridParameterError
from src.deliveryzones.services.geospatial import offset_to_point, planar_distance_m
from src.deliveryzones.services.grid.generator import (
    MAX_POLYGON_VERTICES,
    MIN_POLYGON_VERTICES,
    cell_id_for,
    clear_grid_cache,
    clip_polygon_to_circle,
    generate,
    generate_grid,
    grid_for_area,
    hexagon_offsets,
)

ISTANBUL = GeoPoint(41.0082, 28.9784)
RADIUS_M = 7000.0
CELL_RADIUS_M = 300.0


@pytest.fixture(autouse=True)
def clear_cache():
    clear_grid_cache()
    yield
    clear_grid_cache()


@pytest.fixture(scope="module")
def istanbul_grid():
    return generate_grid(ISTANBUL, RADIUS_M, CELL_RADIUS_M)


def test_clip_keeps_polygon_fully_inside() -> None:
    hexagon = hexagon_offsets((0.0, 0.0), CELL_RADIUS_M)
    assert clip_polygon_to_circle(hexagon, RADIUS_M) == hexagon


def test_clip_drops_polygon_fully_outside() -> None:
    hexagon = hexagon_offsets((0.0, RADIUS_M + 2 * CELL_RADIUS_M), CELL_RADIUS_M)
    assert clip_polygon_to_circle(hexagon, RADIUS_M) == []


def test_clip_with_one_corner_outside_keeps_six_vertices() -> None:
    # only the top corner (90 degrees) pokes through the circle
    hexagon = hexagon_offsets((0.0, RADIUS_M - 0.9 * CELL_RADIUS_M), CELL_RADIUS_M)
    clipped = clip_polygon_to_circle(hexagon, RADIUS_M)

    assert len(clipped) == MAX_POLYGON_VERTICES
    assert all(math.hypot(x, y) <= RADIUS_M + 1e-6 for x, y in clipped)
    assert any(abs(x) < 1e-6 and abs(y - RADIUS_M) < 1e-6 for x, y in clipped)


def test_clip_with_three_corners_outside_adds_two_crossings() -> None:
    hexagon = hexagon_offsets((0.0, RADIUS_M - 0.3 * CELL_RADIUS_M), CELL_RADIUS_M)
    clipped = clip_polygon_to_circle(hexagon, RADIUS_M)

    assert len(clipped) == 5
    on_circle = [p for p in clipped if abs(math.hypot(*p) - RADIUS_M) < 1e-6]
    assert len(on_circle) == 2


def test_generate_grid_is_deterministic() -> None:
    first = generate(ISTANBUL, RADIUS_M, CELL_RADIUS_M)
    second = generate(ISTANBUL, RADIUS_M, CELL_RADIUS_M)

    assert [(c.cell_id, c.vertices) for c in first] == [(c.cell_id, c.vertices) for c in second]


def test_grid_size_matches_disc_area(istanbul_grid) -> None:
    hex_area = 1.5 * math.sqrt(3) * CELL_RADIUS_M**2
    expected = math.pi * RADIUS_M**2 / hex_area

    assert 0.9 * expected < len(istanbul_grid) < 1.15 * expected
    assert istanbul_grid.metadata["cell_count"] == len(istanbul_grid)
    assert istanbul_grid.metadata["clipped_cells"] > 0


def test_cells_have_valid_polygons(istanbul_grid) -> None:
    for cell in istanbul_grid.cells:
        assert MIN_POLYGON_VERTICES <= len(cell.vertices) <= MAX_POLYGON_VERTICES
        assert cell.zone_id is None
        if not cell.clipped:
            assert len(cell.vertices) == 6


def test_cells_stay_inside_service_radius(istanbul_grid) -> None:
    for cell in istanbul_grid.cells:
        assert planar_distance_m(ISTANBUL, cell.centroid) <= RADIUS_M + CELL_RADIUS_M
        for vertex in cell.vertices:
            assert planar_distance_m(ISTANBUL, vertex) <= RADIUS_M + 1e-3


def test_cell_ids_are_unique_and_positional(istanbul_grid) -> None:
    ids = [cell.cell_id for cell in istanbul_grid.cells]
    assert len(ids) == len(set(ids))

    origin_cell = istanbul_grid.get(cell_id_for(0, 0))
    assert origin_cell is not None
    assert origin_cell.cell_id == "hex_r+0_c+0"
    assert origin_cell.centroid == ISTANBUL
    assert istanbul_grid.get(cell_id_for(2, -3)).row == 2


def test_cell_ids_survive_radius_change(istanbul_grid) -> None:
    smaller = generate_grid(ISTANBUL, 3000.0, CELL_RADIUS_M)
    for cell in smaller.cells:
        if not cell.clipped:
            assert istanbul_grid.get(cell.cell_id).centroid == cell.centroid


def test_interior_points_are_covered_without_gaps(istanbul_grid) -> None:
    step = 500.0
    limit = RADIUS_M - 2 * CELL_RADIUS_M
    steps = int(limit // step)
    missing = []
    for i in range(-steps, steps + 1):
        for j in range(-steps, steps + 1):
            east, north = i * step + 17.0, j * step + 11.0
            if math.hypot(east, north) > limit:
                continue
            point = offset_to_point(ISTANBUL, east, north)
            if istanbul_grid.locate(point) is None:
                missing.append((east, north))

    assert missing == []


def test_locate_returns_own_cell_for_centroid(istanbul_grid) -> None:
    for cell in istanbul_grid.cells[::25]:
        if cell.clipped:
            continue
        assert istanbul_grid.locate(cell.centroid).cell_id == cell.cell_id


def test_locate_outside_service_area_returns_none(istanbul_grid) -> None:
    outside = offset_to_point(ISTANBUL, 0.0, RADIUS_M + 100.0)
    assert istanbul_grid.locate(outside) is None


@pytest.mark.parametrize(
    "radius_m, cell_radius_m",
    [
        (0.0, 300.0),
        (-5.0, 300.0),
        (7000.0, 0.0),
        (7000.0, -1.0),
        (float("nan"), 300.0),
        (float("inf"), 300.0),
        (100.0, 300.0),
    ],
)
def test_invalid_radii_are_rejected(radius_m: float, cell_radius_m: float) -> None:
    with pytest.raises(GridParameterError):
        generate_grid(ISTANBUL, radius_m, cell_radius_m)


def test_invalid_center_is_rejected() -> None:
    with pytest.raises(ValueError):
        generate_grid(GeoPoint(95.0, 28.9), RADIUS_M, CELL_RADIUS_M)


def test_grid_for_area_is_memoised() -> None:
    area = ServiceArea(center=ISTANBUL, radius_m=2000.0, cell_radius_m=CELL_RADIUS_M)

    assert grid_for_area(area) is grid_for_area(area)
    clear_grid_cache()
    rebuilt = grid_for_area(area)
    assert rebuilt.cell_ids == generate_grid(ISTANBUL, 2000.0, CELL_RADIUS_M).cell_ids


def test_cached_grid_metadata_cannot_be_changed_by_callers() -> None:
    area = ServiceArea(center=ISTANBUL, radius_m=2000.0, cell_radius_m=CELL_RADIUS_M)
    metadata = grid_for_area(area).metadata
    metadata["cell_count"] = -1
    metadata.pop("dropped_cell_ids")

    fresh = grid_for_area(area).metadata
    assert fresh["cell_count"] == len(grid_for_area(area))
    assert isinstance(fresh["dropped_cell_ids"], tuple)
