from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from apps.repairdesk.catalog.service import ClientService, StatusAdminService
from apps.repairdesk.notifications.email import EmailNotificationService
from apps.repairdesk.orders.service import ServiceOrderService


def _from_state(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} is not configured")
    return service


async def get_order_service(request: Request) -> ServiceOrderService:
    return _from_state(request, "order_service", "Service order service")


async def get_status_service(request: Request) -> StatusAdminService:
    return _from_state(request, "status_service", "Status service")


async def get_client_service(request: Request) -> ClientService:
    return _from_state(request, "client_service", "Client service")


async def get_email_service(request: Request) -> EmailNotificationService:
    return _from_state(request, "email_service", "Email notification service")


OrderServiceDep = Annotated[ServiceOrderService, Depends(get_order_service)]
StatusServiceDep = Annotated[StatusAdminService, Depends(get_status_service)]
ClientServiceDep = Annotated[ClientService, Depends(get_client_service)]
EmailServiceDep = Annotated[EmailNotificationService, Depends(get_email_service)]
