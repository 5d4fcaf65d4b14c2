from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from apps.repairdesk.dependencies.auth import CurrentUser, DashboardViewer
from apps.repairdesk.dependencies.services import OrderServiceDep
from apps.repairdesk.orders.audit import flatten_details
from apps.repairdesk.orders.errors import NoOpError, ServiceOrderError
from apps.repairdesk.orders.models import (
    Collaborator,
    DashboardStats,
    Equipment,
    NotificationOutcome,
    ServiceOrder,
    TransitionCandidate,
    TransitionRequest,
)
from apps.repairdesk.orders.registry import StatusRegistry
from apps.repairdesk.orders.service import ServiceOrderService

from .errors import to_http_exception

router = APIRouter(prefix="/orders", tags=["orders"])

NOTHING_TO_SAVE = {"detail": "Nothing to save", "changed": False}


class EquipmentModel(BaseModel):
    type: str
    brand: str = ""
    model: str = ""
    serial_number: str = ""


class CollaboratorModel(BaseModel):
    name: str
    email: str = ""
    phone: str = ""


class CollaboratorInput(BaseModel):
    name: str
    email: EmailStr | None = None
    phone: str = ""

    def to_collaborator(self) -> Collaborator:
        return Collaborator(name=self.name, email=self.email or "", phone=self.phone)


class EquipmentPatch(BaseModel):
    type: str | None = None
    brand: str | None = None
    model: str | None = None
    serial_number: str | None = None


class CollaboratorPatch(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None


class OrderCreateRequest(BaseModel):
    client_id: str = Field(..., min_length=1)
    equipment: EquipmentModel
    collaborator: CollaboratorInput
    reported_problem: str = Field(..., min_length=1)
    analyst: str = Field(..., min_length=1)
    service_ids: list[str] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list)


class OrderEditRequest(BaseModel):
    client_id: str | None = None
    equipment: EquipmentPatch | None = None
    collaborator: CollaboratorPatch | None = None
    reported_problem: str | None = None
    observation: str | None = Field(default=None, max_length=500)

    def changed_fields(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True, exclude_none=True, exclude={"observation"})
        return flatten_details(data)


class TransitionPayload(BaseModel):
    new_status_id: str = Field(..., min_length=1)
    technical_solution: str | None = None
    observation: str | None = Field(default=None, max_length=500)
    attachments: list[str] | None = None
    confirmed_service_ids: list[str] | None = None


class ServiceSnapshot(BaseModel):
    id: str
    name: str


class LogEntryResponse(BaseModel):
    timestamp: datetime
    responsible: str
    from_status: str
    from_status_name: str
    to_status: str
    to_status_name: str
    observation: str | None


class FieldChangeResponse(BaseModel):
    field: str
    old_value: Any
    new_value: Any


class EditLogEntryResponse(BaseModel):
    timestamp: datetime
    responsible: str
    observation: str | None
    changes: list[FieldChangeResponse]


class OrderSummaryResponse(BaseModel):
    id: str
    order_number: str
    client_id: str
    status: str
    status_name: str
    equipment: EquipmentModel
    collaborator: CollaboratorModel
    reported_problem: str
    analyst: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: ServiceOrder, registry: StatusRegistry) -> "OrderSummaryResponse":
        return cls(**_summary_fields(order, registry))


class OrderResponse(OrderSummaryResponse):
    client_name: str | None
    technical_solution: str | None
    contracted_services: list[ServiceSnapshot]
    confirmed_service_ids: list[str]
    attachments: list[str]
    logs: list[LogEntryResponse]
    edit_logs: list[EditLogEntryResponse]
    version: int

    @classmethod
    def from_details(
        cls, order: ServiceOrder, registry: StatusRegistry, *, client_name: str | None = None
    ) -> "OrderResponse":
        return cls(
            **_summary_fields(order, registry),
            client_name=client_name,
            technical_solution=order.technical_solution,
            contracted_services=[ServiceSnapshot(id=item.id, name=item.name) for item in order.contracted_services],
            confirmed_service_ids=sorted(order.confirmed_service_ids),
            attachments=list(order.attachments),
            logs=[
                LogEntryResponse(
                    timestamp=entry.timestamp,
                    responsible=entry.responsible,
                    from_status=entry.from_status,
                    from_status_name=registry.display_name(entry.from_status),
                    to_status=entry.to_status,
                    to_status_name=registry.display_name(entry.to_status),
                    observation=entry.observation,
                )
                for entry in order.logs
            ],
            edit_logs=[
                EditLogEntryResponse(
                    timestamp=entry.timestamp,
                    responsible=entry.responsible,
                    observation=entry.observation,
                    changes=[
                        FieldChangeResponse(field=change.field, old_value=change.old_value, new_value=change.new_value)
                        for change in entry.changes
                    ],
                )
                for entry in order.edit_logs
            ],
            version=order.version,
        )


class CandidateResponse(BaseModel):
    id: str
    name: str
    color: str
    icon: str | None
    is_back_button: bool

    @classmethod
    def from_candidate(cls, candidate: TransitionCandidate) -> "CandidateResponse":
        return cls(
            id=candidate.status.id,
            name=candidate.status.name,
            color=candidate.status.color,
            icon=candidate.status.icon,
            is_back_button=candidate.is_back_button,
        )


class NotificationResponse(BaseModel):
    attempted: bool
    sent: bool
    error: str | None

    @classmethod
    def from_outcome(cls, outcome: NotificationOutcome) -> "NotificationResponse":
        return cls(attempted=outcome.attempted, sent=outcome.sent, error=outcome.error)


class TransitionResponse(BaseModel):
    changed: bool = True
    order: OrderResponse
    notification: NotificationResponse
    warning: str | None = None


class EditResponse(BaseModel):
    changed: bool = True
    order: OrderResponse
    changes: list[FieldChangeResponse]


class StatusCountResponse(BaseModel):
    id: str
    name: str
    count: int


class DashboardResponse(BaseModel):
    total_orders: int
    by_status: list[StatusCountResponse]
    created_by_analyst: dict[str, int]
    delivered_by_analyst: dict[str, int]

    @classmethod
    def from_stats(cls, stats: DashboardStats, registry: StatusRegistry) -> "DashboardResponse":
        return cls(
            total_orders=stats.total_orders,
            by_status=[
                StatusCountResponse(id=status_id, name=registry.display_name(status_id), count=count)
                for status_id, count in stats.status_counts.items()
            ],
            created_by_analyst=stats.created_by,
            delivered_by_analyst=stats.delivered_by,
        )


def _summary_fields(order: ServiceOrder, registry: StatusRegistry) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "client_id": order.client_id,
        "status": order.status,
        "status_name": registry.display_name(order.status),
        "equipment": EquipmentModel(
            type=order.equipment.type,
            brand=order.equipment.brand,
            model=order.equipment.model,
            serial_number=order.equipment.serial_number,
        ),
        "collaborator": CollaboratorModel(
            name=order.collaborator.name,
            email=order.collaborator.email,
            phone=order.collaborator.phone,
        ),
        "reported_problem": order.reported_problem,
        "analyst": order.analyst,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


async def _summaries(service: ServiceOrderService, orders: Sequence[ServiceOrder]) -> list[OrderSummaryResponse]:
    registry = await service.load_registry()
    return [OrderSummaryResponse.from_order(order, registry) for order in orders]


async def _registry_for(service: ServiceOrderService, registry: StatusRegistry | None) -> StatusRegistry:
    if registry is not None:
        return registry
    return await service.load_registry()


@router.get("", response_model=list[OrderSummaryResponse])
async def list_orders(
    service: OrderServiceDep,
    status_filter: str | None = Query(default=None, alias="status"),
) -> list[OrderSummaryResponse]:
    try:
        orders = await service.list_orders(status_id=status_filter)
        return await _summaries(service, orders)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc


@router.get("/ready-for-pickup", response_model=list[OrderSummaryResponse])
async def list_ready_for_pickup(service: OrderServiceDep) -> list[OrderSummaryResponse]:
    try:
        orders = await service.list_ready_for_pickup()
        return await _summaries(service, orders)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc


@router.get("/stats", response_model=DashboardResponse)
async def dashboard_stats(service: OrderServiceDep, user: DashboardViewer) -> DashboardResponse:
    try:
        registry = await service.load_registry()
        stats = await service.dashboard_stats(actor=user)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return DashboardResponse.from_stats(stats, registry)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreateRequest, service: OrderServiceDep, user: CurrentUser) -> OrderResponse:
    try:
        registry = await service.load_registry()
        order = await service.create_order(
            actor=user,
            client_id=payload.client_id,
            equipment=Equipment(**payload.equipment.model_dump()),
            collaborator=payload.collaborator.to_collaborator(),
            reported_problem=payload.reported_problem,
            analyst=payload.analyst,
            service_ids=payload.service_ids,
            attachments=payload.attachments,
        )
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderResponse.from_details(order, registry)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, service: OrderServiceDep) -> OrderResponse:
    try:
        details = await service.get_order_details(order_id)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderResponse.from_details(details.order, details.registry, client_name=details.client_name)


@router.patch("/{order_id}", response_model=EditResponse)
async def edit_order(order_id: str, payload: OrderEditRequest, service: OrderServiceDep, user: CurrentUser):
    try:
        result = await service.record_edit(
            order_id, payload.changed_fields(), actor=user, observation=payload.observation
        )
        if result.entry is None:
            return JSONResponse(status_code=status.HTTP_200_OK, content=NOTHING_TO_SAVE)
        registry = await _registry_for(service, result.registry)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return EditResponse(
        order=OrderResponse.from_details(result.order, registry),
        changes=[
            FieldChangeResponse(field=change.field, old_value=change.old_value, new_value=change.new_value)
            for change in result.entry.changes
        ],
    )


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(order_id: str, service: OrderServiceDep, user: CurrentUser) -> None:
    try:
        await service.delete_order(order_id, actor=user)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{order_id}/transitions", response_model=list[CandidateResponse])
async def list_transitions(order_id: str, service: OrderServiceDep, user: CurrentUser) -> list[CandidateResponse]:
    try:
        candidates = await service.available_transitions(order_id, actor=user)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return [CandidateResponse.from_candidate(candidate) for candidate in candidates]


@router.post("/{order_id}/transitions", response_model=TransitionResponse)
async def apply_transition(order_id: str, payload: TransitionPayload, service: OrderServiceDep, user: CurrentUser):
    request = TransitionRequest(
        new_status_id=payload.new_status_id,
        responsible=user.username,
        technical_solution=payload.technical_solution,
        observation=payload.observation,
        attachments=tuple(payload.attachments) if payload.attachments is not None else None,
        confirmed_service_ids=(
            frozenset(payload.confirmed_service_ids) if payload.confirmed_service_ids is not None else None
        ),
    )
    try:
        result = await service.apply_transition(order_id, request, actor=user)
        registry = await _registry_for(service, result.registry)
    except NoOpError:
        return JSONResponse(status_code=status.HTTP_200_OK, content=NOTHING_TO_SAVE)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc

    warning = None
    if result.notification.attempted and not result.notification.sent:
        warning = f"Status saved, but the client was not notified: {result.notification.error}"
    return TransitionResponse(
        order=OrderResponse.from_details(result.order, registry),
        notification=NotificationResponse.from_outcome(result.notification),
        warning=warning,
    )
