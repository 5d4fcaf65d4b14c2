"""Service order lifecycle: status registry, transitions, audit and orchestration."""

from .access import Actor, Capability
from .audit import EDITABLE_FIELDS, compute_changes, flatten_details, record_edit
from .errors import (
    ClientNotFoundError,
    ConcurrentModificationError,
    FinalStatusError,
    GateBlockedError,
    InvalidTransitionError,
    NoOpError,
    NotificationError,
    OrderNotFoundError,
    PermissionDeniedError,
    PersistenceError,
    RegistryConfigurationError,
    ServiceOrderError,
    StatusInUseError,
    StatusNotFoundError,
    UnknownStatusError,
    ValidationError,
)
from .models import (
    Collaborator,
    ContractedService,
    DashboardStats,
    EditLogEntry,
    EditResult,
    Equipment,
    FieldChange,
    LogEntry,
    NotificationOutcome,
    ServiceOrder,
    Status,
    TransitionCandidate,
    TransitionPlan,
    TransitionRequest,
    TransitionResult,
)
from .numbering import format_order_number
from .registry import UNKNOWN_STATUS_NAME, StatusRegistry
from .repository import ServiceOrderRepository
from .service import OrderDetails, ServiceOrderService
from .state import OrderStateMachine, ServiceConfirmationGate, TransitionResolver
from .stats import compute_dashboard_stats

__all__ = [
    "Actor",
    "Capability",
    "ClientNotFoundError",
    "Collaborator",
    "ConcurrentModificationError",
    "ContractedService",
    "DashboardStats",
    "EDITABLE_FIELDS",
    "EditLogEntry",
    "EditResult",
    "Equipment",
    "FieldChange",
    "FinalStatusError",
    "GateBlockedError",
    "InvalidTransitionError",
    "LogEntry",
    "NoOpError",
    "NotificationError",
    "NotificationOutcome",
    "OrderDetails",
    "OrderNotFoundError",
    "OrderStateMachine",
    "PermissionDeniedError",
    "PersistenceError",
    "RegistryConfigurationError",
    "ServiceConfirmationGate",
    "ServiceOrder",
    "ServiceOrderError",
    "ServiceOrderRepository",
    "ServiceOrderService",
    "Status",
    "StatusInUseError",
    "StatusNotFoundError",
    "StatusRegistry",
    "TransitionCandidate",
    "TransitionPlan",
    "TransitionRequest",
    "TransitionResolver",
    "TransitionResult",
    "UNKNOWN_STATUS_NAME",
    "UnknownStatusError",
    "ValidationError",
    "compute_changes",
    "compute_dashboard_stats",
    "flatten_details",
    "format_order_number",
    "record_edit",
]
