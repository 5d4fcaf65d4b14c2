from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from apps.repairdesk.catalog import ClientRepository, StatusRepository
from apps.repairdesk.dependencies.auth import Role, User
from apps.repairdesk.orders.models import (
    Collaborator,
    ContractedService,
    Equipment,
    LogEntry,
    ServiceOrder,
    Status,
)
from apps.repairdesk.orders.repository import ServiceOrderRepository

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def build_status(status_id: str, order: int, **overrides: Any) -> Status:
    values: dict[str, Any] = {
        "id": status_id,
        "name": status_id.replace("_", " ").title(),
        "order": order,
        "color": "#607d8b",
    }
    values.update(overrides)
    for key in ("allowed_next_statuses", "allowed_previous_statuses"):
        values[key] = frozenset(values.get(key, ()))
    return Status(**values)


@pytest.fixture
def workflow_statuses() -> list[Status]:
    """received -> diagnosis -> repair -> ready (notifies, pickup) -> delivered (final)."""

    return [
        build_status("received", 1, is_initial=True, allowed_next_statuses={"diagnosis"}),
        build_status(
            "diagnosis", 2, allowed_next_statuses={"repair"}, allowed_previous_statuses={"received"}
        ),
        build_status("repair", 3, allowed_next_statuses={"ready"}, allowed_previous_statuses={"diagnosis"}),
        build_status(
            "ready",
            4,
            is_pickup_status=True,
            triggers_email=True,
            allowed_next_statuses={"delivered"},
            allowed_previous_statuses={"repair"},
        ),
        build_status("delivered", 5, is_final=True, allowed_previous_statuses={"ready"}),
    ]


@pytest.fixture
def make_order() -> Callable[..., ServiceOrder]:
    def factory(**overrides: Any) -> ServiceOrder:
        status = overrides.pop("status", "received")
        order = ServiceOrder(
            id="order-1",
            order_number="OS-001",
            client_id="client-1",
            equipment=Equipment(type="Notebook", brand="Dell", model="Latitude 5420", serial_number="SN123"),
            collaborator=Collaborator(name="Ana", email="ana@example.com", phone="111"),
            reported_problem="Does not power on",
            analyst="lab",
            status=status,
            created_at=NOW,
            updated_at=NOW,
            logs=(LogEntry(timestamp=NOW, responsible="lab", from_status=status, to_status=status),),
        )
        if "service_ids" in overrides:
            services = tuple(ContractedService(id=item, name=item.upper()) for item in overrides.pop("service_ids"))
            overrides["contracted_services"] = services
        return replace(order, **overrides)

    return factory


@pytest.fixture
def admin() -> User:
    return User("admin", (Role.ADMIN,))


@pytest.fixture
def lab() -> User:
    return User("lab", (Role.LAB,))


@pytest.fixture
def support() -> User:
    return User("support", (Role.SUPPORT,))


@pytest.fixture
def viewer() -> User:
    return User("anonymous", (Role.VIEWER,))


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'repairdesk.db'}")
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def order_repository(engine: AsyncEngine, session_factory: async_sessionmaker) -> ServiceOrderRepository:
    repository = ServiceOrderRepository(session_factory, engine=engine)
    await repository.ensure_schema()
    return repository


@pytest.fixture
def status_repository(order_repository: ServiceOrderRepository, session_factory: async_sessionmaker) -> StatusRepository:
    return StatusRepository(session_factory)


@pytest.fixture
def client_repository(order_repository: ServiceOrderRepository, session_factory: async_sessionmaker) -> ClientRepository:
    return ClientRepository(session_factory)
