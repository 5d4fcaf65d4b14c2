from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import httpx

from apps.repairdesk.orders.models import NotificationOutcome

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Client notification collaborator called after a committed transition."""

    async def notify(self, order_id: str, status_name: str) -> NotificationOutcome:
        ...


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"Notification endpoint answered {response.status_code}"

    if isinstance(data, Mapping):
        error = data.get("error")
        details = data.get("details")
        if isinstance(error, str) and isinstance(details, str):
            return f"{error}: {details}"
        if isinstance(error, str):
            return error
    return f"Notification endpoint answered {response.status_code}"


class HttpNotifier:
    """Call an external ``POST /notify`` endpoint."""

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def notify(self, order_id: str, status_name: str) -> NotificationOutcome:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        payload: dict[str, Any] = {"orderId": order_id, "statusName": status_name}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Notification request for order %s failed: %s", order_id, exc)
            return NotificationOutcome.failed(f"Notification request failed: {exc}")

        if response.status_code >= 400:
            message = _extract_error_message(response)
            logger.warning("Notification for order %s rejected: %s", order_id, message)
            return NotificationOutcome.failed(message)
        return NotificationOutcome.delivered()
