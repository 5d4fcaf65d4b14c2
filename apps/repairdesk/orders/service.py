from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol, Sequence

from opentelemetry import trace

from apps.repairdesk.core.metrics import WorkflowMetrics

from .access import Actor, Capability
from .audit import record_edit
from .errors import (
    ClientNotFoundError,
    FinalStatusError,
    GateBlockedError,
    NoOpError,
    OrderNotFoundError,
    PermissionDeniedError,
    ServiceOrderError,
    ValidationError,
)
from .models import (
    Collaborator,
    ContractedService,
    DashboardStats,
    EditResult,
    Equipment,
    LogEntry,
    NotificationOutcome,
    ServiceOrder,
    TransitionCandidate,
    TransitionRequest,
    TransitionResult,
)
from .registry import StatusRegistry
from .repository import ServiceOrderRepository
from .state import OrderStateMachine
from .stats import compute_dashboard_stats

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CREATION_OBSERVATION = "Service order created"


class StatusSource(Protocol):
    async def load_registry(self) -> StatusRegistry:
        ...


class ClientDirectory(Protocol):
    async def find_client(self, client_id: str) -> Any:
        ...

    async def snapshot_services(self, service_ids: Sequence[str]) -> tuple[ContractedService, ...]:
        ...


class OrderNotifier(Protocol):
    async def notify(self, order_id: str, status_name: str) -> NotificationOutcome:
        ...


@dataclass(slots=True, frozen=True)
class OrderDetails:
    """Order plus the read-time lookups needed to render it."""

    order: ServiceOrder
    client_name: str | None
    registry: StatusRegistry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(actor: Actor, capability: Capability) -> None:
    if not actor.can(capability):
        raise PermissionDeniedError(f"{actor.username} is not allowed to {capability.value.replace('_', ' ')}")


class ServiceOrderService:
    """High level orchestration for order creation, transitions and detail edits.

    Every operation loads a fresh :class:`StatusRegistry`; the state machine and
    the edit audit decide, the repository commits, and only then is the client
    notified.
    """

    def __init__(
        self,
        repository: ServiceOrderRepository,
        *,
        statuses: StatusSource,
        clients: ClientDirectory,
        notifier: OrderNotifier | None = None,
        state_machine: OrderStateMachine | None = None,
        metrics: WorkflowMetrics | None = None,
        notification_timeout: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._statuses = statuses
        self._clients = clients
        self._notifier = notifier
        self._state_machine = state_machine or OrderStateMachine()
        self._metrics = metrics or WorkflowMetrics()
        self._notification_timeout = notification_timeout
        self._clock = clock

    @property
    def metrics(self) -> WorkflowMetrics:
        return self._metrics

    async def create_order(
        self,
        *,
        actor: Actor,
        client_id: str,
        equipment: Equipment,
        collaborator: Collaborator,
        reported_problem: str,
        analyst: str,
        service_ids: Sequence[str] = (),
        attachments: Sequence[str] = (),
    ) -> ServiceOrder:
        _require(actor, Capability.CREATE_ORDER)
        with tracer.start_as_current_span("service_order.create") as span:
            if await self._clients.find_client(client_id) is None:
                raise ClientNotFoundError(f"Client {client_id} not found")
            contracted = await self._clients.snapshot_services(service_ids)
            registry = await self._statuses.load_registry()
            initial = registry.initial()

            now = self._clock()
            first_entry = LogEntry(
                timestamp=now,
                responsible=actor.username,
                from_status=initial.id,
                to_status=initial.id,
                observation=CREATION_OBSERVATION,
            )
            order = ServiceOrder(
                id=str(uuid.uuid4()),
                order_number="",
                client_id=client_id,
                equipment=equipment,
                collaborator=collaborator,
                reported_problem=reported_problem,
                analyst=analyst,
                status=initial.id,
                created_at=now,
                updated_at=now,
                contracted_services=contracted,
                attachments=tuple(attachments),
                logs=(first_entry,),
            )
            created = await self._repository.create_order(order)
            span.set_attribute("service_order.number", created.order_number)
        logger.info("Service order %s created by %s", created.order_number, actor.username)
        return created

    async def get_order(self, order_id: str) -> ServiceOrder:
        order = await self._repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Service order {order_id} not found")
        return order

    async def get_order_details(self, order_id: str) -> OrderDetails:
        order = await self.get_order(order_id)
        client = await self._clients.find_client(order.client_id)
        return OrderDetails(
            order=order,
            client_name=getattr(client, "name", None),
            registry=await self._statuses.load_registry(),
        )

    async def list_orders(self, *, status_id: str | None = None) -> Sequence[ServiceOrder]:
        status_ids = [status_id] if status_id is not None else None
        return await self._repository.list_orders(status_ids=status_ids)

    async def list_ready_for_pickup(self) -> Sequence[ServiceOrder]:
        registry = await self._statuses.load_registry()
        return await self._repository.list_orders(status_ids=sorted(registry.pickup_ids()))

    async def load_registry(self) -> StatusRegistry:
        return await self._statuses.load_registry()

    async def dashboard_stats(self, *, actor: Actor) -> DashboardStats:
        _require(actor, Capability.VIEW_DASHBOARD)
        registry = await self._statuses.load_registry()
        orders = await self._repository.list_orders()
        return compute_dashboard_stats(orders, registry)

    async def available_transitions(self, order_id: str, *, actor: Actor) -> list[TransitionCandidate]:
        order = await self.get_order(order_id)
        registry = await self._statuses.load_registry()
        return self._state_machine.available_transitions(order, registry, actor)

    async def apply_transition(self, order_id: str, request: TransitionRequest, *, actor: Actor) -> TransitionResult:
        """Validate, commit and, when the target status asks for it, notify the client.

        Raises before any write when the request is rejected. A failed
        notification never undoes the commit; it is reported in the result.
        """

        _require(actor, Capability.TRANSITION_ORDER)
        with tracer.start_as_current_span("service_order.transition") as span:
            span.set_attribute("service_order.id", order_id)
            span.set_attribute("service_order.target_status", request.new_status_id)
            with self._metrics.transition_duration.time():
                order = await self.get_order(order_id)
                registry = await self._statuses.load_registry()
                try:
                    plan = self._state_machine.plan(
                        order, request, registry=registry, actor=actor, now=self._clock()
                    )
                except GateBlockedError:
                    self._metrics.gate_blocks.inc()
                    raise
                except ServiceOrderError as exc:
                    if not isinstance(exc, NoOpError):
                        self._metrics.rejections.inc(labels={"reason": type(exc).__name__})
                    raise

                saved = await self._repository.save_transition(
                    plan.order, plan.log_entry, expected_version=order.version
                )

            if plan.status_changed:
                self._metrics.transitions.inc(labels={"status": plan.target.id})
            logger.info(
                "Service order %s moved %s -> %s by %s",
                saved.order_number,
                registry.display_name(plan.log_entry.from_status),
                plan.target.name,
                actor.username,
            )

            notification = NotificationOutcome.skipped()
            if plan.should_notify:
                notification = await self._notify(saved, plan.target.name)
                span.set_attribute("service_order.notification_sent", notification.sent)
        return TransitionResult(
            order=saved, log_entry=plan.log_entry, notification=notification, registry=registry
        )

    async def record_edit(
        self,
        order_id: str,
        new_fields: Mapping[str, Any],
        *,
        actor: Actor,
        observation: str | None = None,
    ) -> EditResult:
        """Apply a detail edit. Nothing is written when no tracked field differs."""

        _require(actor, Capability.UPDATE_ORDER)
        with tracer.start_as_current_span("service_order.edit") as span:
            span.set_attribute("service_order.id", order_id)
            order = await self.get_order(order_id)
            registry = await self._statuses.load_registry()
            unrestricted = actor.can(Capability.UNRESTRICTED_TRANSITION)
            if self._state_machine.resolver.is_frozen(registry.get(order.status), unrestricted=unrestricted):
                raise FinalStatusError(f"Order {order.order_number} is closed and can no longer change")

            updated, entry = record_edit(
                order, new_fields, responsible=actor.username, now=self._clock(), observation=observation
            )
            if entry is None:
                return EditResult(order=order, entry=None, registry=registry)

            if any(change.field == "client_id" for change in entry.changes):
                client_id = updated.client_id
                if not isinstance(client_id, str) or not client_id:
                    raise ValidationError("client_id must be a non-empty string")
                if await self._clients.find_client(client_id) is None:
                    raise ClientNotFoundError(f"Client {client_id} not found")

            saved = await self._repository.save_edit(updated, entry, expected_version=order.version)
            span.set_attribute("service_order.changed_fields", len(entry.changes))
        self._metrics.edits.inc()
        logger.info(
            "Service order %s edited by %s (%s)",
            saved.order_number,
            actor.username,
            ", ".join(change.field for change in entry.changes),
        )
        return EditResult(order=saved, entry=entry, registry=registry)

    async def delete_order(self, order_id: str, *, actor: Actor) -> None:
        _require(actor, Capability.DELETE_ORDER)
        deleted = await self._repository.delete_order(order_id)
        if not deleted:
            raise OrderNotFoundError(f"Service order {order_id} not found")
        logger.info("Service order %s deleted by %s", order_id, actor.username)

    async def _notify(self, order: ServiceOrder, status_name: str) -> NotificationOutcome:
        if self._notifier is None:
            logger.warning("No notifier configured; order %s was not announced", order.order_number)
            outcome = NotificationOutcome.failed("No notifier configured")
        else:
            try:
                outcome = await asyncio.wait_for(
                    self._notifier.notify(order.id, status_name), timeout=self._notification_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("Notification for order %s timed out", order.order_number)
                outcome = NotificationOutcome.failed("Notification timed out")
            except ServiceOrderError as exc:
                logger.warning("Notification for order %s failed: %s", order.order_number, exc)
                outcome = NotificationOutcome.failed(str(exc))
            except Exception as exc:
                # Already committed: any notifier failure becomes a failed outcome.
                logger.exception("Notifier crashed for order %s", order.order_number)
                outcome = NotificationOutcome.failed(f"Unexpected notification error: {exc}")

        self._metrics.notifications.inc(labels={"outcome": "sent" if outcome.sent else "failed"})
        return outcome
