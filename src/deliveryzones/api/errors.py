"""Translate engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from ..services.errors import (
    AssignmentError,
    CellAlreadyAssignedError,
    GridParameterError,
    ServiceAreaNotConfiguredError,
    ZoneEngineError,
    ZoneNotFoundError,
    ZonePersistenceError,
    ZoneValidationError,
)


def to_http_exception(exc: ZoneEngineError) -> HTTPException:
    if isinstance(exc, (ZoneValidationError, GridParameterError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, (ServiceAreaNotConfiguredError, CellAlreadyAssignedError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (ZoneNotFoundError, AssignmentError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ZonePersistenceError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))
