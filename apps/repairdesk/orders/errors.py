from __future__ import annotations

from typing import Iterable


class ServiceOrderError(RuntimeError):
    """Base error for service order issues."""


class OrderNotFoundError(ServiceOrderError):
    """Raised when an operation targets a non-existent order."""


class ClientNotFoundError(ServiceOrderError):
    """Raised when a client id does not resolve."""


class StatusNotFoundError(ServiceOrderError):
    """Raised when an administrative operation targets a missing status."""


class ValidationError(ServiceOrderError):
    """Request rejected before any mutation took place."""


class UnknownStatusError(ValidationError):
    """Raised when a status id is not part of the registry."""


class InvalidTransitionError(ValidationError):
    """Raised when the actor may not move the order to the requested status."""


class FinalStatusError(ValidationError):
    """Raised when mutating an order that sits in a final status."""


class PermissionDeniedError(ServiceOrderError):
    """Raised when the actor lacks the capability an operation needs."""


class NoOpError(ServiceOrderError):
    """Nothing changed. Informational rather than a failure."""


class GateBlockedError(ServiceOrderError):
    """Raised when a notifying transition still has unconfirmed services."""

    def __init__(self, missing_service_ids: Iterable[str]) -> None:
        self.missing_service_ids = tuple(sorted(missing_service_ids))
        super().__init__(
            "All contracted services must be confirmed before notifying the client: "
            + ", ".join(self.missing_service_ids)
        )


class PersistenceError(ServiceOrderError):
    """Raised when the underlying write failed. Nothing was applied."""


class ConcurrentModificationError(PersistenceError):
    """Raised when another writer changed the order in the meantime."""


class NotificationError(ServiceOrderError):
    """Raised by notifiers when the client could not be notified."""


class StatusInUseError(ServiceOrderError):
    """Raised when deleting a status that orders still hold."""


class RegistryConfigurationError(ServiceOrderError):
    """Raised when the status configuration breaks a registry invariant."""
