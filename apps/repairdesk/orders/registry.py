from __future__ import annotations

from typing import Iterable

from .errors import RegistryConfigurationError, UnknownStatusError
from .models import Status

UNKNOWN_STATUS_NAME = "Status removido"


class StatusRegistry:
    """Request-scoped, read-only view over the configured statuses.

    Build a new instance whenever fresh data is needed; the registry never
    reloads itself.
    """

    def __init__(self, statuses: Iterable[Status]) -> None:
        ordered = sorted(statuses, key=lambda status: (status.order, status.name))
        self._statuses: tuple[Status, ...] = tuple(ordered)
        self._by_id: dict[str, Status] = {status.id: status for status in ordered}

    def __len__(self) -> int:
        return len(self._statuses)

    def __contains__(self, status_id: object) -> bool:
        return status_id in self._by_id

    def all(self) -> tuple[Status, ...]:
        return self._statuses

    def get(self, status_id: str) -> Status | None:
        return self._by_id.get(status_id)

    def require(self, status_id: str) -> Status:
        status = self._by_id.get(status_id)
        if status is None:
            raise UnknownStatusError(f"Status {status_id} is not defined")
        return status

    def initial(self) -> Status:
        initial = [status for status in self._statuses if status.is_initial]
        if not initial:
            raise RegistryConfigurationError("No initial status is configured")
        if len(initial) > 1:
            names = ", ".join(status.name for status in initial)
            raise RegistryConfigurationError(f"More than one initial status is configured: {names}")
        return initial[0]

    def display_name(self, status_id: str) -> str:
        status = self._by_id.get(status_id)
        return status.name if status is not None else UNKNOWN_STATUS_NAME

    def pickup_ids(self) -> frozenset[str]:
        return frozenset(status.id for status in self._statuses if status.is_pickup_status)

    def final_ids(self) -> frozenset[str]:
        return frozenset(status.id for status in self._statuses if status.is_final)
