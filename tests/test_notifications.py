from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from apps.repairdesk.catalog.models import Client
from apps.repairdesk.notifications import (
    EmailConfigurationError,
    EmailDeliveryError,
    EmailNotificationService,
    EmailNotifier,
    HttpNotifier,
    MissingRecipientError,
    SmtpConfiguration,
    SmtpMailer,
    compose_status_email,
)
from apps.repairdesk.orders.errors import OrderNotFoundError
from apps.repairdesk.orders.models import Collaborator, NotificationOutcome


def _client(email: str | None = "contato@acme.example") -> Client:
    return Client(id="client-1", name="Acme Ltda", email=email, created_at=datetime.now(timezone.utc))


def _smtp(**overrides) -> SmtpConfiguration:
    values = {
        "server": "smtp.example.com",
        "port": 587,
        "security": "starttls",
        "sender_email": "os@example.com",
        "password": "secret",
        "sender_name": "Repair Desk",
    }
    values.update(overrides)
    return SmtpConfiguration(**values)


@pytest.mark.asyncio
async def test_http_notifier_posts_order_and_status():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"message": "ok"})

    notifier = HttpNotifier("http://mailer.local/notify", token="t0k", transport=httpx.MockTransport(handler))

    outcome = await notifier.notify("order-1", "Pronto para retirada")

    assert outcome == NotificationOutcome.delivered()
    assert seen[0].headers["Authorization"] == "Bearer t0k"
    assert json.loads(seen[0].content) == {"orderId": "order-1", "statusName": "Pronto para retirada"}


@pytest.mark.asyncio
async def test_http_notifier_reports_endpoint_errors():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(500, json={"error": "Failed to send", "details": "SMTP timeout"})
    )
    notifier = HttpNotifier("http://mailer.local/notify", transport=transport)

    outcome = await notifier.notify("order-1", "Pronto")

    assert outcome == NotificationOutcome.failed("Failed to send: SMTP timeout")


@pytest.mark.asyncio
async def test_http_notifier_reports_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    notifier = HttpNotifier("http://mailer.local/notify", transport=httpx.MockTransport(handler))

    outcome = await notifier.notify("order-1", "Pronto")

    assert outcome.attempted is True
    assert outcome.sent is False
    assert "connection refused" in (outcome.error or "")


def test_status_email_layout(make_order):
    order = make_order(technical_solution="Troca de <fonte>")

    email = compose_status_email(
        order,
        client_name="Acme & Filhos",
        recipient="contato@acme.example",
        status_name="Pronto",
        today=datetime(2024, 3, 9, tzinfo=timezone.utc),
    )

    assert email.subject == "Atualização da Ordem de Serviço OS-001 - Status: Pronto"
    assert "Acme &amp; Filhos" in email.html
    assert "Troca de &lt;fonte&gt;" in email.html
    assert "09/03/2024" in email.html
    assert "Notebook - Dell Latitude 5420" in email.html


def test_status_email_omits_missing_solution(make_order):
    email = compose_status_email(make_order(), client_name="Acme", recipient="a@b.c", status_name="Pronto")

    assert "Solução Técnica" not in email.html


def test_smtp_security_modes():
    assert _smtp(port=465, security="starttls").implicit_tls is True
    assert _smtp(security="ssl").implicit_tls is True
    assert _smtp().starttls is True
    assert _smtp(security="none").starttls is False


@pytest.mark.asyncio
async def test_incomplete_smtp_settings_are_rejected(make_order):
    mailer = SmtpMailer(_smtp(password=None))
    email = compose_status_email(make_order(), client_name="Acme", recipient="a@b.c", status_name="Pronto")

    with pytest.raises(EmailConfigurationError):
        await mailer.send(email)


@pytest.mark.asyncio
async def test_email_service_uses_client_address(make_order):
    orders = AsyncMock()
    orders.get_order = AsyncMock(return_value=make_order())
    clients = AsyncMock()
    clients.get_client = AsyncMock(return_value=_client())
    mailer = AsyncMock()
    service = EmailNotificationService(orders, clients, mailer)

    recipient = await service.send_status_update("order-1", "Pronto")

    assert recipient == "contato@acme.example"
    sent = mailer.send.await_args.args[0]
    assert sent.recipient == "contato@acme.example"
    assert "Status: Pronto" in sent.subject


@pytest.mark.asyncio
async def test_email_service_falls_back_to_collaborator(make_order):
    orders = AsyncMock()
    orders.get_order = AsyncMock(return_value=make_order())
    clients = AsyncMock()
    clients.get_client = AsyncMock(return_value=_client(email=None))
    service = EmailNotificationService(orders, clients, AsyncMock())

    assert await service.send_status_update("order-1", "Pronto") == "ana@example.com"


@pytest.mark.asyncio
async def test_email_service_requires_a_recipient(make_order):
    orders = AsyncMock()
    orders.get_order = AsyncMock(return_value=make_order(collaborator=Collaborator(name="Ana")))
    clients = AsyncMock()
    clients.get_client = AsyncMock(return_value=_client(email=None))
    service = EmailNotificationService(orders, clients, AsyncMock())

    with pytest.raises(MissingRecipientError):
        await service.send_status_update("order-1", "Pronto")


@pytest.mark.asyncio
async def test_email_service_requires_the_order():
    orders = AsyncMock()
    orders.get_order = AsyncMock(return_value=None)
    service = EmailNotificationService(orders, AsyncMock(), AsyncMock())

    with pytest.raises(OrderNotFoundError):
        await service.send_status_update("missing", "Pronto")


@pytest.mark.asyncio
async def test_email_notifier_turns_failures_into_outcomes():
    service = AsyncMock()
    service.send_status_update = AsyncMock(side_effect=EmailDeliveryError("550 mailbox unavailable"))

    outcome = await EmailNotifier(service).notify("order-1", "Pronto")

    assert outcome == NotificationOutcome.failed("550 mailbox unavailable")

    service.send_status_update = AsyncMock(return_value="a@b.c")
    assert await EmailNotifier(service).notify("order-1", "Pronto") == NotificationOutcome.delivered()


@pytest.mark.asyncio
async def test_header_injection_in_recipient_is_a_delivery_error(make_order):
    mailer = SmtpMailer(_smtp())
    email = compose_status_email(
        make_order(),
        client_name="Acme",
        recipient="a@acme.example\nBcc: x@evil.example",
        status_name="Pronto",
    )

    with pytest.raises(EmailDeliveryError):
        await mailer.send(email)
