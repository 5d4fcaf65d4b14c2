from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request

from apps.repairdesk.dependencies.auth import CurrentUser, Role, User, role_required

router = APIRouter(prefix="/ping", tags=["ping"])

require_admin = role_required(Role.ADMIN)
AdminUser = Annotated[User, Depends(require_admin)]


@router.get("")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/secure")
async def secure_ping(user: CurrentUser) -> dict[str, Any]:
    return {"status": "ok", "user": user.username, "roles": [role.value for role in user.roles]}


@router.get("/metrics")
async def metrics(request: Request, _: AdminUser) -> dict[str, Any]:
    order_service = getattr(request.app.state, "order_service", None)
    if order_service is None:
        return {}
    return order_service.metrics.snapshot()
