from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from apps.repairdesk.dependencies.services import EmailServiceDep
from apps.repairdesk.notifications.email import MissingRecipientError
from apps.repairdesk.orders.errors import ClientNotFoundError, OrderNotFoundError, ServiceOrderError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


class NotifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str | None = Field(default=None, alias="orderId")
    status_name: str | None = Field(default=None, alias="statusName")


@router.post("/notify")
async def notify(payload: NotifyRequest, service: EmailServiceDep) -> JSONResponse:
    """Email the client of an order about its new status."""

    if not payload.order_id or not payload.status_name:
        return JSONResponse(status_code=400, content={"error": "orderId and statusName are required"})

    try:
        recipient = await service.send_status_update(payload.order_id, payload.status_name)
    except MissingRecipientError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except (OrderNotFoundError, ClientNotFoundError) as exc:
        return JSONResponse(status_code=404, content={"error": str(exc)})
    except ServiceOrderError as exc:
        logger.error("Notification for order %s failed: %s", payload.order_id, exc)
        return JSONResponse(status_code=500, content={"error": "Failed to send notification", "details": str(exc)})

    return JSONResponse(status_code=200, content={"message": f"Notification sent to {recipient}"})
