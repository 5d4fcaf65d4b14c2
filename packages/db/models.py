"""SQLModel table definitions for the repair desk data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class StatusTable(SQLModel, table=True):
    """Administrator-defined lifecycle stage."""

    __tablename__ = "statuses"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(100), nullable=False))
    sort_order: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    color: str = Field(sa_column=Column(String(30), nullable=False))
    icon: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    is_initial: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    is_final: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    is_pickup_status: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    triggers_email: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    allowed_next_statuses: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    allowed_previous_statuses: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ClientTable(SQLModel, table=True):
    """Client companies owning service orders."""

    __tablename__ = "clients"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    cnpj: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    address: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class CatalogServiceTable(SQLModel, table=True):
    """Services that can be contracted for an order."""

    __tablename__ = "catalog_services"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ServiceOrderTable(SQLModel, table=True):
    """Repair service order."""

    __tablename__ = "service_orders"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    order_number: str = Field(sa_column=Column(String(30), nullable=False, unique=True))
    client_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    equipment: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    collaborator: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    reported_problem: str = Field(sa_column=Column(Text, nullable=False))
    analyst: str = Field(sa_column=Column(String(255), nullable=False))
    # No foreign key: statuses may be deleted while history still references them.
    status: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    technical_solution: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    contracted_services: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    confirmed_service_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    attachments: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ServiceOrderLogTable(SQLModel, table=True):
    """Append-only status history of a service order."""

    __tablename__ = "service_order_logs"
    __table_args__ = (UniqueConstraint("order_id", "sequence", name="uq_service_order_logs_position"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    order_id: str = Field(
        sa_column=Column(String(36), ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False)
    )
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    responsible: str = Field(sa_column=Column(String(255), nullable=False))
    from_status: str = Field(sa_column=Column(String(36), nullable=False))
    to_status: str = Field(sa_column=Column(String(36), nullable=False))
    observation: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ServiceOrderEditLogTable(SQLModel, table=True):
    """Append-only field-level change log of a service order."""

    __tablename__ = "service_order_edit_logs"
    __table_args__ = (UniqueConstraint("order_id", "sequence", name="uq_service_order_edit_logs_position"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    order_id: str = Field(
        sa_column=Column(String(36), ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False)
    )
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    responsible: str = Field(sa_column=Column(String(255), nullable=False))
    observation: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    changes: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class OrderCounterTable(SQLModel, table=True):
    """Monotonic counters used to hand out human-facing order numbers."""

    __tablename__ = "order_counters"

    name: str = Field(primary_key=True)
    value: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
