import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.deliveryzones.models.domain import AssignmentAction, GeoPoint, ServiceArea
from src.deliveryzones.persistence.zones import InMemoryZoneStore
from src.deliveryzones.services.errors import (
    CellAlreadyAssignedError,
    ServiceAreaNotConfiguredError,
    UnknownCellError,
    UnknownZoneError,
    ZonePersistenceError,
)
from src.deliveryzones.services.geospatial import offset_to_point, planar_distance_m
from src.deliveryzones.services.grid.generator import clear_grid_cache
from src.deliveryzones.services.zones.assignment import ZoneAssignmentService
from src.deliveryzones.services.zones.registry import ZoneRegistry

CENTER = GeoPoint(41.0082, 28.9784)
AREA = ServiceArea(center=CENTER, radius_m=2000.0, cell_radius_m=300.0)


@pytest.fixture(autouse=True)
def clear_cache():
    clear_grid_cache()
    yield
    clear_grid_cache()


@pytest.fixture
def store() -> InMemoryZoneStore:
    return InMemoryZoneStore()


@pytest.fixture
def registry(store) -> ZoneRegistry:
    return ZoneRegistry("rest-1", store)


@pytest.fixture
def service(registry) -> ZoneAssignmentService:
    return ZoneAssignmentService(registry, area=AREA)


def _unclipped_ids(service: ZoneAssignmentService, count: int) -> list[str]:
    return [cell.cell_id for cell in service.grid.cells if not cell.clipped][:count]


def _assert_consistent(registry: ZoneRegistry) -> None:
    zones = registry.list_zones()
    active = {zone.zone_id for zone in zones}
    assert set(registry.assignments().values()) <= active
    seen: set[str] = set()
    for zone in zones:
        assert seen.isdisjoint(zone.cell_ids)
        seen.update(zone.cell_ids)
    assert seen == set(registry.assignments())


def test_toggle_assigns_then_unassigns(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    cell_id = _unclipped_ids(service, 1)[0]

    first = service.toggle_cell(zone_id, cell_id)
    assert first.action is AssignmentAction.ASSIGNED
    assert first.zone_id == zone_id
    assert first.previous_zone_id is None
    assert registry.get_zone(zone_id).cell_ids == (cell_id,)

    second = service.toggle_cell(zone_id, cell_id)
    assert second.action is AssignmentAction.UNASSIGNED
    assert second.zone_id is None
    assert second.previous_zone_id == zone_id
    assert second.version > first.version
    assert registry.get_zone(zone_id).cell_ids == ()


def test_toggle_twice_restores_assigned_cell(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    cell_id = _unclipped_ids(service, 1)[0]
    service.assign_cell(zone_id, cell_id)

    service.toggle_cell(zone_id, cell_id)
    service.toggle_cell(zone_id, cell_id)

    assert registry.zone_of(cell_id) == zone_id


def test_toggle_moves_cell_between_zones(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    north = registry.create_zone("North", 20, 25)
    south = registry.create_zone("South", 30, 40)
    cell_id = _unclipped_ids(service, 1)[0]
    service.toggle_cell(north, cell_id)

    state = service.toggle_cell(south, cell_id)

    assert state.action is AssignmentAction.REASSIGNED
    assert state.previous_zone_id == north
    assert state.zone_id == south
    assert cell_id not in registry.get_zone(north).cell_ids
    assert registry.get_zone(south).cell_ids == (cell_id,)
    _assert_consistent(registry)


def test_plain_assign_refuses_cell_of_other_zone(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    north = registry.create_zone("North", 20, 25)
    south = registry.create_zone("South", 30, 40)
    cell_id = _unclipped_ids(service, 1)[0]
    service.assign_cell(north, cell_id)

    with pytest.raises(CellAlreadyAssignedError) as excinfo:
        service.assign_cell(south, cell_id)
    assert excinfo.value.zone_id == north
    assert registry.zone_of(cell_id) == north

    assert service.assign_cell(north, cell_id).zone_id == north
    assert service.reassign_cell(south, cell_id).action is AssignmentAction.REASSIGNED


def test_unassign_with_zone_guard(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    north = registry.create_zone("North", 20, 25)
    south = registry.create_zone("South", 30, 40)
    cell_id = _unclipped_ids(service, 1)[0]
    service.assign_cell(north, cell_id)

    with pytest.raises(CellAlreadyAssignedError):
        service.unassign_cell(cell_id, zone_id=south)

    state = service.unassign_cell(cell_id, zone_id=north)
    assert state.zone_id is None
    assert service.unassign_cell(cell_id).previous_zone_id is None


def test_unknown_zone_and_cell_are_rejected(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    cell_id = _unclipped_ids(service, 1)[0]

    with pytest.raises(UnknownZoneError):
        service.toggle_cell("missing", cell_id)
    with pytest.raises(UnknownCellError):
        service.toggle_cell(zone_id, "hex_r+99_c+99")

    registry.delete_zone(zone_id)
    with pytest.raises(UnknownZoneError):
        service.toggle_cell(zone_id, cell_id)
    assert registry.assignments() == {}


def test_operations_need_a_service_area(registry: ZoneRegistry) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    service = ZoneAssignmentService(registry)

    with pytest.raises(ServiceAreaNotConfiguredError):
        service.toggle_cell(zone_id, "hex_r+0_c+0")
    with pytest.raises(ServiceAreaNotConfiguredError):
        service.zone_for_point(CENTER)


def test_cells_are_annotated_with_zone(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    cell_id = _unclipped_ids(service, 1)[0]
    service.toggle_cell(zone_id, cell_id)

    annotated = {cell.cell_id: cell.zone_id for cell in service.cells()}

    assert annotated[cell_id] == zone_id
    assert sum(1 for zid in annotated.values() if zid is not None) == 1
    assert service.grid.get(cell_id).zone_id is None


def test_zone_for_point(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    service.toggle_cell(zone_id, "hex_r+0_c+0")

    near_center = offset_to_point(CENTER, 40.0, -60.0)
    unassigned = service.grid.get("hex_r+2_c+1").centroid
    outside = offset_to_point(CENTER, 0.0, 2500.0)

    assert service.zone_for_point(near_center) == zone_id
    assert service.zone_for_point(unassigned) is None
    assert service.zone_for_point(outside) is None


def test_shrinking_service_area_releases_orphaned_cells(
    service: ZoneAssignmentService, registry: ZoneRegistry, store: InMemoryZoneStore
) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    outer = [cell.cell_id for cell in service.grid.cells if planar_distance_m(CENTER, cell.centroid) > 1500][:3]
    inner = "hex_r+0_c+0"
    for cell_id in [*outer, inner]:
        service.toggle_cell(zone_id, cell_id)

    smaller = ServiceArea(center=CENTER, radius_m=1000.0, cell_radius_m=300.0)
    orphaned = service.update_service_area(smaller)

    assert len(outer) == 3
    assert orphaned == tuple(sorted(outer))
    assert registry.get_zone(zone_id).cell_ids == (inner,)
    assert store.load("rest-1").assignments == {inner: zone_id}
    assert store.load("rest-1").service_area == smaller
    with pytest.raises(UnknownCellError):
        service.toggle_cell(zone_id, outer[0])


def test_random_mutations_keep_zones_consistent(service: ZoneAssignmentService, registry: ZoneRegistry) -> None:
    rng = random.Random(7)
    cell_ids = sorted(service.grid.cell_ids)[:40]
    zone_ids = [registry.create_zone(f"Zone {i}", 10 * i, 20 + i) for i in range(3)]

    for step in range(300):
        if step % 60 == 59:
            victim = rng.choice(zone_ids)
            registry.delete_zone(victim)
            zone_ids.remove(victim)
            zone_ids.append(registry.create_zone(f"Zone {step}", 5, 15))
        else:
            service.toggle_cell(rng.choice(zone_ids), rng.choice(cell_ids))
        _assert_consistent(registry)


def test_concurrent_toggles_on_different_cells_all_apply(
    service: ZoneAssignmentService, registry: ZoneRegistry
) -> None:
    zone_id = registry.create_zone("Merkez", 25, 30)
    cell_ids = _unclipped_ids(service, 20)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda cid: service.toggle_cell(zone_id, cid), cell_ids))

    assert registry.get_zone(zone_id).cell_ids == tuple(sorted(cell_ids))
    assert registry.version == 1 + len(cell_ids)


def test_concurrent_toggles_on_same_cell_last_writer_wins(
    service: ZoneAssignmentService, registry: ZoneRegistry
) -> None:
    north = registry.create_zone("North", 20, 25)
    south = registry.create_zone("South", 30, 40)
    cell_id = _unclipped_ids(service, 1)[0]
    barrier = threading.Barrier(2)
    results = {}

    def click(zone_id: str) -> None:
        barrier.wait()
        results[zone_id] = service.toggle_cell(zone_id, cell_id)

    threads = [threading.Thread(target=click, args=(zid,)) for zid in (north, south)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    last = max(results.values(), key=lambda state: state.version)
    assert registry.zone_of(cell_id) == last.zone_id
    assert {state.version for state in results.values()} == {3, 4}
    _assert_consistent(registry)


class ClearFailingStore(InMemoryZoneStore):
    def clear_cells(self, restaurant_id, cell_ids):
        raise ZonePersistenceError("Failed to clear cells: timeout")


def test_failed_orphan_release_keeps_previous_service_area() -> None:
    store = ClearFailingStore()
    registry = ZoneRegistry("rest-1", store)
    service = ZoneAssignmentService(registry)
    service.update_service_area(AREA)
    zone_id = registry.create_zone("Merkez", 25, 30)
    outer = next(cell.cell_id for cell in service.grid.cells if planar_distance_m(CENTER, cell.centroid) > 1500)
    service.toggle_cell(zone_id, outer)
    version = registry.version

    smaller = ServiceArea(center=CENTER, radius_m=1000.0, cell_radius_m=300.0)
    with pytest.raises(ZonePersistenceError):
        service.update_service_area(smaller)

    assert service.service_area == AREA
    assert store.load("rest-1").service_area == AREA
    assert registry.get_zone(zone_id).cell_ids == (outer,)
    assert outer in service.grid
    assert registry.version == version
    assert service.toggle_cell(zone_id, outer).action is AssignmentAction.UNASSIGNED
