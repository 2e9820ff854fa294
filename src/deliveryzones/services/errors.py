"""Error taxonomy for grid generation, zone registry and assignment."""

from __future__ import annotations


class ZoneEngineError(Exception):
    """Base class for all delivery-zone engine errors."""


class GridParameterError(ZoneEngineError, ValueError):
    """Raised when a service area or cell size cannot produce a grid."""


class ZoneValidationError(ZoneEngineError, ValueError):
    """Raised when zone fields are malformed. Nothing is applied."""


class ZoneNotFoundError(ZoneEngineError, LookupError):
    """Raised when a zone id does not exist or the zone is no longer active."""

    def __init__(self, zone_id: str) -> None:
        super().__init__(f"Zone '{zone_id}' not found.")
        self.zone_id = zone_id


class ServiceAreaNotConfiguredError(ZoneEngineError):
    """Raised when a grid operation runs before the restaurant has a service area."""

    def __init__(self, restaurant_id: str) -> None:
        super().__init__(f"Restaurant '{restaurant_id}' has no service area configured.")
        self.restaurant_id = restaurant_id


class AssignmentError(ZoneEngineError):
    """Base class for referential errors raised by cell assignment."""


class UnknownZoneError(AssignmentError, LookupError):
    def __init__(self, zone_id: str) -> None:
        super().__init__(f"Zone '{zone_id}' does not exist or is inactive.")
        self.zone_id = zone_id


class UnknownCellError(AssignmentError, LookupError):
    def __init__(self, cell_id: str) -> None:
        super().__init__(
            f"Cell '{cell_id}' is not part of the current grid. Refresh the grid and retry."
        )
        self.cell_id = cell_id


class CellAlreadyAssignedError(AssignmentError):
    """Raised by a plain assign when the cell belongs to another zone.

    Moving a cell between zones is only done through reassignment.
    """

    def __init__(self, cell_id: str, zone_id: str) -> None:
        super().__init__(f"Cell '{cell_id}' already belongs to zone '{zone_id}'.")
        self.cell_id = cell_id
        self.zone_id = zone_id


class ZonePersistenceError(ZoneEngineError, RuntimeError):
    """Raised when the backing store did not durably accept a write."""
