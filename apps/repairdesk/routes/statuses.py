from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from apps.repairdesk.dependencies.auth import StatusAdmin
from apps.repairdesk.dependencies.services import StatusServiceDep
from apps.repairdesk.orders.errors import ServiceOrderError
from apps.repairdesk.orders.models import Status

from .errors import to_http_exception

router = APIRouter(prefix="/statuses", tags=["statuses"])


class StatusPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    order: int = Field(default=0)
    color: str = Field(default="#9e9e9e", max_length=32)
    icon: str | None = Field(default=None, max_length=64)
    is_initial: bool = False
    is_final: bool = False
    is_pickup_status: bool = False
    triggers_email: bool = False
    allowed_next_statuses: list[str] = Field(default_factory=list)
    allowed_previous_statuses: list[str] = Field(default_factory=list)

    def to_status(self, status_id: str) -> Status:
        return Status(
            id=status_id,
            name=self.name,
            order=self.order,
            color=self.color,
            icon=self.icon,
            is_initial=self.is_initial,
            is_final=self.is_final,
            is_pickup_status=self.is_pickup_status,
            triggers_email=self.triggers_email,
            allowed_next_statuses=frozenset(self.allowed_next_statuses),
            allowed_previous_statuses=frozenset(self.allowed_previous_statuses),
        )


class StatusResponse(StatusPayload):
    id: str

    @classmethod
    def from_status(cls, item: Status) -> "StatusResponse":
        return cls(
            id=item.id,
            name=item.name,
            order=item.order,
            color=item.color,
            icon=item.icon,
            is_initial=item.is_initial,
            is_final=item.is_final,
            is_pickup_status=item.is_pickup_status,
            triggers_email=item.triggers_email,
            allowed_next_statuses=sorted(item.allowed_next_statuses),
            allowed_previous_statuses=sorted(item.allowed_previous_statuses),
        )


@router.get("", response_model=list[StatusResponse])
async def list_statuses(service: StatusServiceDep) -> list[StatusResponse]:
    try:
        statuses = await service.list_statuses()
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return [StatusResponse.from_status(item) for item in statuses]


@router.post("", response_model=StatusResponse, status_code=status.HTTP_201_CREATED)
async def create_status(payload: StatusPayload, service: StatusServiceDep, _: StatusAdmin) -> StatusResponse:
    try:
        created = await service.create_status(payload.to_status(""))
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return StatusResponse.from_status(created)


@router.put("/{status_id}", response_model=StatusResponse)
async def update_status(
    status_id: str,
    payload: StatusPayload,
    service: StatusServiceDep,
    _: StatusAdmin,
) -> StatusResponse:
    try:
        updated = await service.update_status(payload.to_status(status_id))
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
    return StatusResponse.from_status(updated)


@router.delete("/{status_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_status(status_id: str, service: StatusServiceDep, _: StatusAdmin) -> None:
    if not status_id.strip():
        raise HTTPException(status_code=400, detail="Status id is required")
    try:
        await service.delete_status(status_id)
    except ServiceOrderError as exc:
        raise to_http_exception(exc) from exc
