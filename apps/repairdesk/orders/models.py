from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .registry import StatusRegistry


@dataclass(slots=True, frozen=True)
class Status:
    """Administrator-defined stage of the order lifecycle."""

    id: str
    name: str
    order: int
    color: str
    icon: str | None = None
    is_initial: bool = False
    is_final: bool = False
    is_pickup_status: bool = False
    triggers_email: bool = False
    allowed_next_statuses: frozenset[str] = frozenset()
    allowed_previous_statuses: frozenset[str] = frozenset()


@dataclass(slots=True, frozen=True)
class Equipment:
    type: str
    brand: str
    model: str
    serial_number: str


@dataclass(slots=True, frozen=True)
class Collaborator:
    """On-site contact, distinct from the client company."""

    name: str
    email: str = ""
    phone: str = ""


@dataclass(slots=True, frozen=True)
class ContractedService:
    """Snapshot of a catalog service taken when the order was opened."""

    id: str
    name: str


@dataclass(slots=True, frozen=True)
class LogEntry:
    """One status transition in the order history."""

    timestamp: datetime
    responsible: str
    from_status: str
    to_status: str
    observation: str | None = None


@dataclass(slots=True, frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any


@dataclass(slots=True, frozen=True)
class EditLogEntry:
    """Field-level changes recorded by a single detail edit."""

    timestamp: datetime
    responsible: str
    changes: tuple[FieldChange, ...]
    observation: str | None = None


@dataclass(slots=True, frozen=True)
class ServiceOrder:
    """Aggregate representing a repair service order and its history."""

    id: str
    order_number: str
    client_id: str
    equipment: Equipment
    collaborator: Collaborator
    reported_problem: str
    analyst: str
    status: str
    created_at: datetime
    updated_at: datetime
    technical_solution: str | None = None
    contracted_services: tuple[ContractedService, ...] = ()
    confirmed_service_ids: frozenset[str] = frozenset()
    attachments: tuple[str, ...] = ()
    logs: tuple[LogEntry, ...] = ()
    edit_logs: tuple[EditLogEntry, ...] = ()
    version: int = 1

    @property
    def contracted_service_ids(self) -> frozenset[str]:
        return frozenset(service.id for service in self.contracted_services)


@dataclass(slots=True, frozen=True)
class TransitionRequest:
    """Input of a status change. ``None`` keeps the current value."""

    new_status_id: str
    responsible: str
    technical_solution: str | None = None
    observation: str | None = None
    attachments: tuple[str, ...] | None = None
    confirmed_service_ids: frozenset[str] | None = None


@dataclass(slots=True, frozen=True)
class TransitionCandidate:
    status: Status
    is_back_button: bool


@dataclass(slots=True, frozen=True)
class TransitionPlan:
    """Validated outcome of the state machine, ready to be persisted."""

    order: ServiceOrder
    log_entry: LogEntry
    status_changed: bool
    should_notify: bool
    target: Status


@dataclass(slots=True, frozen=True)
class NotificationOutcome:
    """Result of the post-commit notification side effect."""

    attempted: bool
    sent: bool
    error: str | None = None

    @classmethod
    def skipped(cls) -> "NotificationOutcome":
        return cls(attempted=False, sent=False)

    @classmethod
    def delivered(cls) -> "NotificationOutcome":
        return cls(attempted=True, sent=True)

    @classmethod
    def failed(cls, error: str) -> "NotificationOutcome":
        return cls(attempted=True, sent=False, error=error)


@dataclass(slots=True, frozen=True)
class TransitionResult:
    """Committed transition. ``registry`` is the status view it was validated against."""

    order: ServiceOrder
    log_entry: LogEntry
    notification: NotificationOutcome = field(default_factory=NotificationOutcome.skipped)
    registry: StatusRegistry | None = None


@dataclass(slots=True, frozen=True)
class EditResult:
    """Outcome of a detail edit. ``entry`` is ``None`` when nothing differed."""

    order: ServiceOrder
    entry: EditLogEntry | None
    registry: StatusRegistry | None = None


@dataclass(slots=True, frozen=True)
class DashboardStats:
    """Order counts shown on the dashboard.

    ``status_counts`` is keyed by status id and lists every configured status,
    including those with no orders. ``delivered_by`` credits whoever logged the
    last move into the order's current final status.
    """

    total_orders: int
    status_counts: dict[str, int]
    created_by: dict[str, int]
    delivered_by: dict[str, int]
