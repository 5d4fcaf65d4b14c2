from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Protocol, Sequence

from apps.repairdesk.orders.errors import (
    ClientNotFoundError,
    StatusInUseError,
    StatusNotFoundError,
    ValidationError,
)
from apps.repairdesk.orders.models import ContractedService, Status
from apps.repairdesk.orders.registry import StatusRegistry

from .models import CatalogService, Client
from .repository import ClientRepository, StatusRepository

logger = logging.getLogger(__name__)


class OrderUsage(Protocol):
    async def count_orders_in_status(self, status_id: str) -> int:
        ...


class StatusAdminService:
    """Administrative maintenance of the status configuration."""

    def __init__(self, repository: StatusRepository, orders: OrderUsage) -> None:
        self._repository = repository
        self._orders = orders

    async def load_registry(self) -> StatusRegistry:
        return StatusRegistry(await self._repository.list_statuses())

    async def list_statuses(self) -> Sequence[Status]:
        return (await self.load_registry()).all()

    async def create_status(self, status: Status) -> Status:
        created = replace(status, id=status.id or str(uuid.uuid4()))
        await self._validate_references(created)
        await self._repository.save_status(created)
        logger.info("Status %s created", created.name)
        return created

    async def update_status(self, status: Status) -> Status:
        if await self._repository.get_status(status.id) is None:
            raise StatusNotFoundError(f"Status {status.id} not found")
        await self._validate_references(status)
        await self._repository.save_status(status)
        logger.info("Status %s updated", status.name)
        return status

    async def delete_status(self, status_id: str) -> None:
        in_use = await self._orders.count_orders_in_status(status_id)
        if in_use:
            raise StatusInUseError(f"Status {status_id} is still held by {in_use} order(s)")
        deleted = await self._repository.delete_status(status_id)
        if not deleted:
            raise StatusNotFoundError(f"Status {status_id} not found")
        logger.info("Status %s deleted", status_id)

    async def _validate_references(self, status: Status) -> None:
        known = {item.id for item in await self._repository.list_statuses()} | {status.id}
        referenced = status.allowed_next_statuses | status.allowed_previous_statuses
        unknown = referenced - known
        if unknown:
            raise ValidationError(f"Unknown statuses in allow-lists: {', '.join(sorted(unknown))}")


class ClientService:
    """Client directory and contractable service catalog."""

    def __init__(self, repository: ClientRepository) -> None:
        self._repository = repository

    async def create_client(
        self,
        *,
        name: str,
        cnpj: str | None = None,
        address: str | None = None,
        email: str | None = None,
    ) -> Client:
        client = Client(
            id=str(uuid.uuid4()),
            name=name,
            cnpj=cnpj,
            address=address,
            email=email,
            created_at=datetime.now(timezone.utc),
        )
        return await self._repository.create_client(client)

    async def get_client(self, client_id: str) -> Client:
        client = await self._repository.get_client(client_id)
        if client is None:
            raise ClientNotFoundError(f"Client {client_id} not found")
        return client

    async def find_client(self, client_id: str) -> Client | None:
        return await self._repository.get_client(client_id)

    async def list_clients(self) -> Sequence[Client]:
        return await self._repository.list_clients()

    async def create_service(self, *, name: str, description: str | None = None) -> CatalogService:
        service = CatalogService(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            created_at=datetime.now(timezone.utc),
        )
        return await self._repository.create_service(service)

    async def list_services(self) -> Sequence[CatalogService]:
        return await self._repository.list_services()

    async def snapshot_services(self, service_ids: Iterable[str]) -> tuple[ContractedService, ...]:
        """Resolve catalog ids into the snapshots stored on an order."""

        requested = list(dict.fromkeys(service_ids))
        if not requested:
            return ()
        found = {item.id: item for item in await self._repository.list_services(requested)}
        missing = [service_id for service_id in requested if service_id not in found]
        if missing:
            raise ValidationError(f"Unknown services: {', '.join(missing)}")
        return tuple(ContractedService(id=found[item].id, name=found[item].name) for item in requested)
