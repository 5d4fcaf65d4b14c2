"""Service order schema: statuses, clients, catalog services, orders and their logs."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20240301_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "statuses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("color", sa.String(length=30), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=True),
        sa.Column("is_initial", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_final", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_pickup_status", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("triggers_email", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("allowed_next_statuses", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("allowed_previous_statuses", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_statuses_id", "statuses", ["id"])

    op.create_table(
        "clients",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("cnpj", sa.String(length=20), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_clients_id", "clients", ["id"])

    op.create_table(
        "catalog_services",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_catalog_services_id", "catalog_services", ["id"])

    op.create_table(
        "service_orders",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("order_number", sa.String(length=30), nullable=False, unique=True),
        sa.Column("client_id", sa.String(length=36), nullable=False),
        sa.Column("equipment", sa.JSON(), nullable=False),
        sa.Column("collaborator", sa.JSON(), nullable=False),
        sa.Column("reported_problem", sa.Text(), nullable=False),
        sa.Column("analyst", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=36), nullable=False),
        sa.Column("technical_solution", sa.Text(), nullable=True),
        sa.Column("contracted_services", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("confirmed_service_ids", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("attachments", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_service_orders_id", "service_orders", ["id"])
    op.create_index("ix_service_orders_client_id", "service_orders", ["client_id"])
    op.create_index("ix_service_orders_status", "service_orders", ["status"])

    op.create_table(
        "service_order_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "order_id", sa.String(length=36), sa.ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("responsible", sa.String(length=255), nullable=False),
        sa.Column("from_status", sa.String(length=36), nullable=False),
        sa.Column("to_status", sa.String(length=36), nullable=False),
        sa.Column("observation", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("order_id", "sequence", name="uq_service_order_logs_position"),
    )
    op.create_index("ix_service_order_logs_id", "service_order_logs", ["id"])

    op.create_table(
        "service_order_edit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "order_id", sa.String(length=36), sa.ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("responsible", sa.String(length=255), nullable=False),
        sa.Column("observation", sa.Text(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("order_id", "sequence", name="uq_service_order_edit_logs_position"),
    )
    op.create_index("ix_service_order_edit_logs_id", "service_order_edit_logs", ["id"])

    op.create_table(
        "order_counters",
        sa.Column("name", sa.String(), primary_key=True, nullable=False),
        sa.Column("value", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )


def downgrade() -> None:
    op.drop_table("order_counters")
    op.drop_table("service_order_edit_logs")
    op.drop_table("service_order_logs")
    op.drop_table("service_orders")
    op.drop_table("catalog_services")
    op.drop_table("clients")
    op.drop_table("statuses")
