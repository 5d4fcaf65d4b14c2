from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import (
    OrderCounterTable,
    ServiceOrderEditLogTable,
    ServiceOrderLogTable,
    ServiceOrderTable,
)

from .errors import ConcurrentModificationError, PersistenceError
from .models import (
    Collaborator,
    ContractedService,
    EditLogEntry,
    Equipment,
    FieldChange,
    LogEntry,
    ServiceOrder,
)
from .numbering import format_order_number, highest_sequence

ORDER_COUNTER = "service_order"
_MAX_CREATE_ATTEMPTS = 5


class ServiceOrderRepository:
    """Persistence helper wrapping `service_orders` and its two append-only logs.

    Every mutation is a single transaction: the order row is updated with a
    compare-and-swap on ``version`` and the log row is inserted alongside it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
        number_prefix: str = "OS",
        number_width: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine
        self._number_prefix = number_prefix
        self._number_width = number_width

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)
        await self.seed_counter()

    async def seed_counter(self) -> None:
        """Create the order number counter from the highest existing number."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if await session.get(OrderCounterTable, ORDER_COUNTER) is not None:
                        return
                    start = await self._highest_existing_sequence(session)
                    session.add(OrderCounterTable(name=ORDER_COUNTER, value=start))
        except IntegrityError:
            # Another process seeded it first.
            return
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to seed the order number counter") from exc

    async def create_order(self, order: ServiceOrder) -> ServiceOrder:
        """Insert a new order, assigning its order number atomically.

        ``order.order_number`` is ignored and replaced by the next counter value.
        """

        last_error: Exception | None = None
        for _ in range(_MAX_CREATE_ATTEMPTS):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        sequence = await self._next_sequence(session)
                        number = format_order_number(
                            sequence, prefix=self._number_prefix, width=self._number_width
                        )
                        session.add(self._order_to_table(order, order_number=number))
                        await session.flush()
                        for position, entry in enumerate(order.logs):
                            session.add(self._log_to_table(order.id, position, entry))
                return _with_number(order, number)
            except IntegrityError as exc:
                last_error = exc
                continue
            except SQLAlchemyError as exc:
                raise PersistenceError("Failed to create service order") from exc
        raise PersistenceError("Could not allocate a unique order number") from last_error

    async def get_order(self, order_id: str) -> ServiceOrder | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ServiceOrderTable, order_id)
                if row is None:
                    return None
                log_result = await session.execute(
                    select(ServiceOrderLogTable)
                    .where(ServiceOrderLogTable.order_id == order_id)
                    .order_by(ServiceOrderLogTable.sequence.asc())
                )
                edit_result = await session.execute(
                    select(ServiceOrderEditLogTable)
                    .where(ServiceOrderEditLogTable.order_id == order_id)
                    .order_by(ServiceOrderEditLogTable.sequence.asc())
                )
                logs = [self._table_to_log(item) for item in log_result.scalars().all()]
                edit_logs = [self._table_to_edit_log(item) for item in edit_result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load service order {order_id}") from exc
        return self._table_to_order(row, logs=logs, edit_logs=edit_logs)

    async def list_orders(self, *, status_ids: Sequence[str] | None = None) -> Sequence[ServiceOrder]:
        """List orders without their histories, newest first."""

        statement = select(ServiceOrderTable).order_by(ServiceOrderTable.created_at.desc())
        if status_ids is not None:
            if not status_ids:
                return []
            statement = statement.where(ServiceOrderTable.status.in_(list(status_ids)))
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return [self._table_to_order(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list service orders") from exc

    async def count_orders_in_status(self, status_id: str) -> int:
        try:
            async with self._session_factory() as session:
                count = await session.scalar(
                    select(func.count(ServiceOrderTable.id)).where(ServiceOrderTable.status == status_id)
                )
                return int(count or 0)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to count service orders") from exc

    async def save_transition(self, order: ServiceOrder, entry: LogEntry, *, expected_version: int) -> ServiceOrder:
        """Commit the new order state and append ``entry`` in one transaction."""

        values = {
            "status": order.status,
            "technical_solution": order.technical_solution,
            "confirmed_service_ids": sorted(order.confirmed_service_ids),
            "attachments": list(order.attachments),
        }
        position = len(order.logs) - 1
        return await self._commit(
            order,
            values,
            self._log_to_table(order.id, position, entry),
            expected_version=expected_version,
        )

    async def save_edit(self, order: ServiceOrder, entry: EditLogEntry, *, expected_version: int) -> ServiceOrder:
        """Commit edited detail fields and append ``entry`` in one transaction."""

        values = {
            "client_id": order.client_id,
            "equipment": _equipment_to_dict(order.equipment),
            "collaborator": _collaborator_to_dict(order.collaborator),
            "reported_problem": order.reported_problem,
        }
        position = len(order.edit_logs) - 1
        return await self._commit(
            order,
            values,
            self._edit_log_to_table(order.id, position, entry),
            expected_version=expected_version,
        )

    async def delete_order(self, order_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(ServiceOrderTable, order_id)
                    if row is None:
                        return False
                    for table in (ServiceOrderLogTable, ServiceOrderEditLogTable):
                        result = await session.execute(select(table).where(table.order_id == order_id))
                        for item in result.scalars().all():
                            await session.delete(item)
                    await session.delete(row)
            return True
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete service order {order_id}") from exc

    async def _commit(
        self,
        order: ServiceOrder,
        values: dict[str, Any],
        log_row: SQLModel,
        *,
        expected_version: int,
    ) -> ServiceOrder:
        new_version = expected_version + 1
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(ServiceOrderTable)
                        .where(ServiceOrderTable.id == order.id)
                        .where(ServiceOrderTable.version == expected_version)
                        .values(**values, version=new_version, updated_at=order.updated_at)
                    )
                    if result.rowcount != 1:
                        raise ConcurrentModificationError(
                            f"Service order {order.order_number} was modified concurrently"
                        )
                    session.add(log_row)
        except IntegrityError as exc:
            raise ConcurrentModificationError(
                f"Service order {order.order_number} history was appended concurrently"
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save service order {order.order_number}") from exc
        return _with_version(order, new_version)

    async def _next_sequence(self, session: AsyncSession) -> int:
        # The UPDATE comes first so the counter row is locked for the rest of the transaction.
        result = await session.execute(
            update(OrderCounterTable)
            .where(OrderCounterTable.name == ORDER_COUNTER)
            .values(value=OrderCounterTable.value + 1)
        )
        if result.rowcount == 0:
            start = await self._highest_existing_sequence(session)
            session.add(OrderCounterTable(name=ORDER_COUNTER, value=start + 1))
            await session.flush()
            return start + 1
        value = await session.scalar(select(OrderCounterTable.value).where(OrderCounterTable.name == ORDER_COUNTER))
        return int(value)

    async def _highest_existing_sequence(self, session: AsyncSession) -> int:
        result = await session.execute(select(ServiceOrderTable.order_number))
        return highest_sequence((row[0] for row in result.all()), prefix=self._number_prefix)

    @staticmethod
    def _order_to_table(order: ServiceOrder, *, order_number: str) -> ServiceOrderTable:
        return ServiceOrderTable(
            id=order.id,
            order_number=order_number,
            client_id=order.client_id,
            equipment=_equipment_to_dict(order.equipment),
            collaborator=_collaborator_to_dict(order.collaborator),
            reported_problem=order.reported_problem,
            analyst=order.analyst,
            status=order.status,
            technical_solution=order.technical_solution,
            contracted_services=[{"id": item.id, "name": item.name} for item in order.contracted_services],
            confirmed_service_ids=sorted(order.confirmed_service_ids),
            attachments=list(order.attachments),
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    @staticmethod
    def _log_to_table(order_id: str, position: int, entry: LogEntry) -> ServiceOrderLogTable:
        return ServiceOrderLogTable(
            id=str(uuid.uuid4()),
            order_id=order_id,
            sequence=position,
            responsible=entry.responsible,
            from_status=entry.from_status,
            to_status=entry.to_status,
            observation=entry.observation,
            created_at=entry.timestamp,
        )

    @staticmethod
    def _edit_log_to_table(order_id: str, position: int, entry: EditLogEntry) -> ServiceOrderEditLogTable:
        return ServiceOrderEditLogTable(
            id=str(uuid.uuid4()),
            order_id=order_id,
            sequence=position,
            responsible=entry.responsible,
            observation=entry.observation,
            changes=[
                {"field": change.field, "old_value": change.old_value, "new_value": change.new_value}
                for change in entry.changes
            ],
            created_at=entry.timestamp,
        )

    @staticmethod
    def _table_to_order(
        row: ServiceOrderTable,
        *,
        logs: Sequence[LogEntry] = (),
        edit_logs: Sequence[EditLogEntry] = (),
    ) -> ServiceOrder:
        equipment = row.equipment or {}
        collaborator = row.collaborator or {}
        return ServiceOrder(
            id=row.id,
            order_number=row.order_number,
            client_id=row.client_id,
            equipment=Equipment(
                type=str(equipment.get("type", "")),
                brand=str(equipment.get("brand", "")),
                model=str(equipment.get("model", "")),
                serial_number=str(equipment.get("serial_number", "")),
            ),
            collaborator=Collaborator(
                name=str(collaborator.get("name", "")),
                email=str(collaborator.get("email", "")),
                phone=str(collaborator.get("phone", "")),
            ),
            reported_problem=row.reported_problem,
            analyst=row.analyst,
            status=row.status,
            technical_solution=row.technical_solution,
            contracted_services=tuple(
                ContractedService(id=str(item["id"]), name=str(item.get("name", "")))
                for item in row.contracted_services or []
            ),
            confirmed_service_ids=frozenset(row.confirmed_service_ids or []),
            attachments=tuple(row.attachments or []),
            logs=tuple(logs),
            edit_logs=tuple(edit_logs),
            version=row.version,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_log(row: ServiceOrderLogTable) -> LogEntry:
        return LogEntry(
            timestamp=_ensure_datetime(row.created_at),
            responsible=row.responsible,
            from_status=row.from_status,
            to_status=row.to_status,
            observation=row.observation,
        )

    @staticmethod
    def _table_to_edit_log(row: ServiceOrderEditLogTable) -> EditLogEntry:
        return EditLogEntry(
            timestamp=_ensure_datetime(row.created_at),
            responsible=row.responsible,
            observation=row.observation,
            changes=tuple(
                FieldChange(field=item["field"], old_value=item.get("old_value"), new_value=item.get("new_value"))
                for item in row.changes or []
            ),
        )


def _equipment_to_dict(equipment: Equipment) -> dict[str, str]:
    return {
        "type": equipment.type,
        "brand": equipment.brand,
        "model": equipment.model,
        "serial_number": equipment.serial_number,
    }


def _collaborator_to_dict(collaborator: Collaborator) -> dict[str, str]:
    return {"name": collaborator.name, "email": collaborator.email, "phone": collaborator.phone}


def _with_number(order: ServiceOrder, number: str) -> ServiceOrder:
    return replace(order, order_number=number)


def _with_version(order: ServiceOrder, version: int) -> ServiceOrder:
    return replace(order, version=version)


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")
