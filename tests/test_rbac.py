import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from apps.repairdesk.dependencies.auth import (
    ROLE_CAPABILITIES,
    Role,
    User,
    capability_required,
    resolve_user_from_token,
    role_required,
)
from apps.repairdesk.main import create_app
from apps.repairdesk.orders.access import Capability


@pytest.mark.asyncio
async def test_capability_required_allows_authorized_user():
    dependency = capability_required(Capability.UPDATE_ORDER)
    user = User("lab", (Role.LAB,))
    result = await dependency(user)  # type: ignore[arg-type]
    assert result.username == "lab"


@pytest.mark.asyncio
async def test_capability_required_rejects_unauthorized_user():
    dependency = capability_required(Capability.UPDATE_ORDER)
    user = User("support", (Role.SUPPORT,))
    with pytest.raises(HTTPException) as exc:
        await dependency(user)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


@pytest.mark.asyncio
async def test_role_required_rejects_other_roles():
    dependency = role_required(Role.ADMIN)
    with pytest.raises(HTTPException):
        await dependency(User("lab", (Role.LAB,)))  # type: ignore[arg-type]


def test_role_capability_table():
    assert ROLE_CAPABILITIES[Role.ADMIN] == frozenset(Capability)
    assert User("lab", (Role.LAB,)).can(Capability.UPDATE_ORDER)
    assert not User("lab", (Role.LAB,)).can(Capability.UNRESTRICTED_TRANSITION)
    assert User("support", (Role.SUPPORT,)).can(Capability.MANAGE_CLIENTS)
    assert not User("support", (Role.SUPPORT,)).can(Capability.UPDATE_ORDER)
    assert not any(User("anonymous", (Role.VIEWER,)).can(capability) for capability in Capability)


def test_tokens_resolve_to_users():
    assert resolve_user_from_token(None).roles == (Role.VIEWER,)
    assert resolve_user_from_token("lab-token").username == "lab"
    with pytest.raises(HTTPException) as exc:
        resolve_user_from_token("forged")
    assert exc.value.status_code == 401


def test_middleware_rejects_malformed_credentials():
    client = TestClient(create_app())

    assert client.get("/ping/secure", headers={"Authorization": "Basic abc"}).status_code == 401
    assert client.get("/ping/secure", headers={"Authorization": "Bearer forged"}).status_code == 401

    response = client.get("/ping/secure", headers={"Authorization": "Bearer support-token"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "user": "support", "roles": ["support"]}


def test_metrics_endpoint_is_admin_only():
    client = TestClient(create_app())

    assert client.get("/ping/metrics", headers={"Authorization": "Bearer lab-token"}).status_code == 403
    assert client.get("/ping/metrics", headers={"Authorization": "Bearer admin-token"}).status_code == 200
