from __future__ import annotations

from enum import Enum
from typing import Protocol


class Capability(str, Enum):
    """Enumerated permissions checked through :meth:`Actor.can`."""

    UNRESTRICTED_TRANSITION = "unrestricted_transition"
    TRANSITION_ORDER = "transition_order"
    UPDATE_ORDER = "update_order"
    CREATE_ORDER = "create_order"
    MANAGE_STATUSES = "manage_statuses"
    MANAGE_CLIENTS = "manage_clients"
    DELETE_ORDER = "delete_order"
    VIEW_DASHBOARD = "view_dashboard"


class Actor(Protocol):
    """Whoever performs an operation on an order."""

    username: str

    def can(self, capability: Capability) -> bool:
        ...
