from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from apps.repairdesk.dependencies import services as service_deps
from apps.repairdesk.main import create_app
from apps.repairdesk.notifications import EmailConfigurationError, EmailDeliveryError, MissingRecipientError
from apps.repairdesk.orders.errors import ClientNotFoundError, OrderNotFoundError, PersistenceError


@pytest.fixture
def notify_client():
    app = create_app()
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[service_deps.get_email_service] = override_service
    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_notify_sends_email(notify_client):
    client, service = notify_client
    service.send_status_update = AsyncMock(return_value="contato@acme.example")

    response = client.post("/notify", json={"orderId": "order-1", "statusName": "Pronto"})

    assert response.status_code == 200
    assert "contato@acme.example" in response.json()["message"]
    service.send_status_update.assert_awaited_with("order-1", "Pronto")


def test_notify_requires_both_fields(notify_client):
    client, service = notify_client

    response = client.post("/notify", json={"orderId": "order-1"})

    assert response.status_code == 400
    assert "error" in response.json()
    service.send_status_update.assert_not_awaited()


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (MissingRecipientError("No recipient"), 400),
        (OrderNotFoundError("Service order x not found"), 404),
        (ClientNotFoundError("Client y not found"), 404),
    ],
)
def test_notify_client_errors(notify_client, error, status_code):
    client, service = notify_client
    service.send_status_update = AsyncMock(side_effect=error)

    response = client.post("/notify", json={"orderId": "x", "statusName": "Pronto"})

    assert response.status_code == status_code
    assert response.json() == {"error": str(error)}


@pytest.mark.parametrize(
    "error",
    [
        EmailConfigurationError("SMTP settings are incomplete"),
        EmailDeliveryError("550"),
        PersistenceError("database unavailable"),
    ],
)
def test_notify_delivery_failures_are_500(notify_client, error):
    client, service = notify_client
    service.send_status_update = AsyncMock(side_effect=error)

    response = client.post("/notify", json={"orderId": "x", "statusName": "Pronto"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to send notification", "details": str(error)}
