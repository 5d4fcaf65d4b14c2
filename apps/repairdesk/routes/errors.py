from __future__ import annotations

from fastapi import HTTPException, status

from apps.repairdesk.orders.errors import (
    ClientNotFoundError,
    ConcurrentModificationError,
    GateBlockedError,
    InvalidTransitionError,
    OrderNotFoundError,
    PermissionDeniedError,
    PersistenceError,
    RegistryConfigurationError,
    ServiceOrderError,
    StatusInUseError,
    StatusNotFoundError,
    ValidationError,
)

# First match wins, so subclasses come before their bases.
_STATUS_CODES: tuple[tuple[type[ServiceOrderError], int], ...] = (
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (ClientNotFoundError, status.HTTP_404_NOT_FOUND),
    (StatusNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (StatusInUseError, status.HTTP_409_CONFLICT),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (RegistryConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def to_http_exception(exc: ServiceOrderError) -> HTTPException:
    """Translate a domain error into the HTTP error the API documents."""

    if isinstance(exc, GateBlockedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "missing_service_ids": list(exc.missing_service_ids)},
        )
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
