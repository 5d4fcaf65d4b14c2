from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from apps.repairdesk.orders.errors import PersistenceError
from apps.repairdesk.orders.models import Status
from packages.db.models import CatalogServiceTable, ClientTable, StatusTable

from .models import CatalogService, Client


class StatusRepository:
    """Persistence helper for the `statuses` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_statuses(self) -> Sequence[Status]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(StatusTable).order_by(StatusTable.sort_order.asc(), StatusTable.name.asc())
                )
                return [self._table_to_status(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load statuses") from exc

    async def get_status(self, status_id: str) -> Status | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(StatusTable, status_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load status {status_id}") from exc
        return None if row is None else self._table_to_status(row)

    async def save_status(self, status: Status) -> Status:
        """Insert or update ``status``.

        When the status is flagged initial, every other status loses the flag
        in the same transaction, so there is never more than one entry point.
        """

        now = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if status.is_initial:
                        await session.execute(
                            update(StatusTable)
                            .where(StatusTable.id != status.id)
                            .where(StatusTable.is_initial.is_(True))
                            .values(is_initial=False, updated_at=now)
                        )
                    row = await session.get(StatusTable, status.id)
                    if row is None:
                        row = StatusTable(id=status.id, created_at=now, name=status.name, color=status.color)
                        session.add(row)
                    row.name = status.name
                    row.sort_order = status.order
                    row.color = status.color
                    row.icon = status.icon
                    row.is_initial = status.is_initial
                    row.is_final = status.is_final
                    row.is_pickup_status = status.is_pickup_status
                    row.triggers_email = status.triggers_email
                    row.allowed_next_statuses = sorted(status.allowed_next_statuses)
                    row.allowed_previous_statuses = sorted(status.allowed_previous_statuses)
                    row.updated_at = now
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save status {status.name}") from exc
        return status

    async def delete_status(self, status_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(StatusTable, status_id)
                    if row is None:
                        return False
                    await session.delete(row)
            return True
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete status {status_id}") from exc

    @staticmethod
    def _table_to_status(row: StatusTable) -> Status:
        return Status(
            id=row.id,
            name=row.name,
            order=row.sort_order,
            color=row.color,
            icon=row.icon,
            is_initial=bool(row.is_initial),
            is_final=bool(row.is_final),
            is_pickup_status=bool(row.is_pickup_status),
            triggers_email=bool(row.triggers_email),
            allowed_next_statuses=frozenset(row.allowed_next_statuses or []),
            allowed_previous_statuses=frozenset(row.allowed_previous_statuses or []),
        )


class ClientRepository:
    """Persistence helper for `clients` and `catalog_services`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_client(self, client: Client) -> Client:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        ClientTable(
                            id=client.id,
                            name=client.name,
                            cnpj=client.cnpj,
                            address=client.address,
                            email=client.email,
                            created_at=client.created_at,
                        )
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create client {client.name}") from exc
        return client

    async def get_client(self, client_id: str) -> Client | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ClientTable, client_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load client {client_id}") from exc
        return None if row is None else self._table_to_client(row)

    async def list_clients(self) -> Sequence[Client]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(ClientTable).order_by(ClientTable.name.asc()))
                return [self._table_to_client(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list clients") from exc

    async def create_service(self, service: CatalogService) -> CatalogService:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        CatalogServiceTable(
                            id=service.id,
                            name=service.name,
                            description=service.description,
                            created_at=service.created_at,
                        )
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create service {service.name}") from exc
        return service

    async def list_services(self, service_ids: Sequence[str] | None = None) -> Sequence[CatalogService]:
        statement = select(CatalogServiceTable).order_by(CatalogServiceTable.name.asc())
        if service_ids is not None:
            statement = statement.where(CatalogServiceTable.id.in_(list(service_ids)))
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return [self._table_to_service(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list services") from exc

    @staticmethod
    def _table_to_client(row: ClientTable) -> Client:
        return Client(
            id=row.id,
            name=row.name,
            cnpj=row.cnpj,
            address=row.address,
            email=row.email,
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def _table_to_service(row: CatalogServiceTable) -> CatalogService:
        return CatalogService(
            id=row.id,
            name=row.name,
            description=row.description,
            created_at=_ensure_datetime(row.created_at),
        )


def _ensure_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
