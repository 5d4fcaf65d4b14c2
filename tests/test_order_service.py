from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest
import pytest_asyncio

from apps.repairdesk.catalog import ClientService, StatusAdminService
from apps.repairdesk.core.metrics import WorkflowMetrics
from apps.repairdesk.orders.errors import (
    ClientNotFoundError,
    FinalStatusError,
    GateBlockedError,
    NoOpError,
    NotificationError,
    OrderNotFoundError,
    PermissionDeniedError,
    RegistryConfigurationError,
)
from apps.repairdesk.orders.models import Collaborator, Equipment, NotificationOutcome, TransitionRequest
from apps.repairdesk.orders.service import CREATION_OBSERVATION, ServiceOrderService


@dataclass
class RecordingNotifier:
    calls: list[tuple[str, str]] = field(default_factory=list)
    error: Exception | None = None
    delay: float = 0.0

    async def notify(self, order_id: str, status_name: str) -> NotificationOutcome:
        self.calls.append((order_id, status_name))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return NotificationOutcome.delivered()


@dataclass
class Workflow:
    service: ServiceOrderService
    notifier: RecordingNotifier
    metrics: WorkflowMetrics
    client_id: str
    service_id: str


@pytest_asyncio.fixture
async def workflow(order_repository, status_repository, client_repository, workflow_statuses):
    for status in workflow_statuses:
        await status_repository.save_status(status)
    status_service = StatusAdminService(status_repository, order_repository)
    clients = ClientService(client_repository)
    client = await clients.create_client(name="Acme Ltda", email="contato@acme.example")
    catalog_service = await clients.create_service(name="Formatting")
    notifier = RecordingNotifier()
    metrics = WorkflowMetrics()
    service = ServiceOrderService(
        order_repository,
        statuses=status_service,
        clients=clients,
        notifier=notifier,
        metrics=metrics,
        notification_timeout=0.5,
    )
    return Workflow(service, notifier, metrics, client.id, catalog_service.id)


async def _open_order(workflow: Workflow, actor, *, with_service: bool = True):
    return await workflow.service.create_order(
        actor=actor,
        client_id=workflow.client_id,
        equipment=Equipment(type="Notebook", brand="Lenovo", model="T14", serial_number="PF123"),
        collaborator=Collaborator(name="Bruno", email="bruno@acme.example", phone="111"),
        reported_problem="Blue screen on boot",
        analyst=actor.username,
        service_ids=[workflow.service_id] if with_service else [],
    )


async def _advance(workflow: Workflow, order_id: str, actor, *status_ids: str):
    for status_id in status_ids:
        await workflow.service.apply_transition(
            order_id, TransitionRequest(new_status_id=status_id, responsible=actor.username), actor=actor
        )


@pytest.mark.asyncio
async def test_creation_writes_initial_log(workflow, support):
    order = await _open_order(workflow, support)

    assert order.order_number == "OS-001"
    assert order.status == "received"
    assert len(order.logs) == 1
    first = order.logs[0]
    assert (first.from_status, first.to_status) == ("received", "received")
    assert first.observation == CREATION_OBSERVATION
    assert [service.name for service in order.contracted_services] == ["Formatting"]

    details = await workflow.service.get_order_details(order.id)
    assert details.client_name == "Acme Ltda"


@pytest.mark.asyncio
async def test_creation_checks_permission_and_client(workflow, viewer, lab):
    with pytest.raises(PermissionDeniedError):
        await _open_order(workflow, viewer)

    with pytest.raises(ClientNotFoundError):
        await workflow.service.create_order(
            actor=lab,
            client_id="nobody",
            equipment=Equipment(type="Printer", brand="HP", model="M404", serial_number="X"),
            collaborator=Collaborator(name="Carla"),
            reported_problem="Paper jam",
            analyst="lab",
        )


@pytest.mark.asyncio
async def test_creation_requires_initial_status(order_repository, status_repository, client_repository, lab):
    clients = ClientService(client_repository)
    client = await clients.create_client(name="Acme")
    service = ServiceOrderService(
        order_repository, statuses=StatusAdminService(status_repository, order_repository), clients=clients
    )

    with pytest.raises(RegistryConfigurationError):
        await service.create_order(
            actor=lab,
            client_id=client.id,
            equipment=Equipment(type="Router", brand="TP-Link", model="AX10", serial_number="R1"),
            collaborator=Collaborator(name="Davi"),
            reported_problem="No signal",
            analyst="lab",
        )


@pytest.mark.asyncio
async def test_gate_blocks_notification_until_services_confirmed(workflow, lab):
    order = await _open_order(workflow, lab)
    await _advance(workflow, order.id, lab, "diagnosis", "repair")

    with pytest.raises(GateBlockedError) as exc:
        await _advance(workflow, order.id, lab, "ready")
    assert exc.value.missing_service_ids == (workflow.service_id,)

    blocked = await workflow.service.get_order(order.id)
    assert blocked.status == "repair"
    assert len(blocked.logs) == 3
    assert workflow.notifier.calls == []
    assert workflow.metrics.gate_blocks.value() == 1

    result = await workflow.service.apply_transition(
        order.id,
        TransitionRequest(
            new_status_id="ready",
            responsible="lab",
            confirmed_service_ids=frozenset({workflow.service_id}),
            technical_solution="Reinstalled the OS",
        ),
        actor=lab,
    )

    assert result.order.status == "ready"
    assert result.order.logs[-1] == result.log_entry
    assert (result.log_entry.from_status, result.log_entry.to_status) == ("repair", "ready")
    assert result.notification == NotificationOutcome.delivered()
    assert workflow.notifier.calls == [(order.id, "Ready")]
    assert workflow.metrics.transitions.value(labels={"status": "ready"}) == 1
    assert workflow.metrics.notifications.value(labels={"outcome": "sent"}) == 1

    stored = await workflow.service.get_order(order.id)
    assert stored.version == result.order.version == 4
    assert stored.technical_solution == "Reinstalled the OS"


@pytest.mark.asyncio
async def test_notification_failure_keeps_the_transition(workflow, lab):
    workflow.notifier.error = NotificationError("SMTP refused the message")
    order = await _open_order(workflow, lab, with_service=False)
    await _advance(workflow, order.id, lab, "diagnosis", "repair")

    result = await workflow.service.apply_transition(
        order.id, TransitionRequest(new_status_id="ready", responsible="lab"), actor=lab
    )

    assert result.notification.attempted is True
    assert result.notification.sent is False
    assert "SMTP refused" in (result.notification.error or "")
    assert (await workflow.service.get_order(order.id)).status == "ready"
    assert workflow.metrics.notifications.value(labels={"outcome": "failed"}) == 1


@pytest.mark.asyncio
async def test_unexpected_notifier_error_becomes_a_warning(workflow, lab):
    workflow.notifier.error = ValueError("Header values may not contain linefeed or carriage return characters")
    order = await _open_order(workflow, lab, with_service=False)
    await _advance(workflow, order.id, lab, "diagnosis", "repair")

    result = await workflow.service.apply_transition(
        order.id, TransitionRequest(new_status_id="ready", responsible="lab"), actor=lab
    )

    assert result.order.status == "ready"
    assert result.notification.attempted is True
    assert result.notification.sent is False
    assert "linefeed" in (result.notification.error or "")
    stored = await workflow.service.get_order(order.id)
    assert stored.status == "ready"
    assert len(stored.logs) == 4
    assert workflow.metrics.notifications.value(labels={"outcome": "failed"}) == 1


@pytest.mark.asyncio
async def test_slow_notifier_times_out(workflow, admin):
    workflow.notifier.delay = 5
    order = await _open_order(workflow, admin, with_service=False)

    result = await workflow.service.apply_transition(
        order.id, TransitionRequest(new_status_id="ready", responsible="admin"), actor=admin
    )

    assert result.notification == NotificationOutcome.failed("Notification timed out")
    assert (await workflow.service.get_order(order.id)).status == "ready"


@pytest.mark.asyncio
async def test_no_op_writes_nothing(workflow, lab):
    order = await _open_order(workflow, lab)

    with pytest.raises(NoOpError):
        await workflow.service.apply_transition(
            order.id, TransitionRequest(new_status_id="received", responsible="lab"), actor=lab
        )

    stored = await workflow.service.get_order(order.id)
    assert len(stored.logs) == 1
    assert stored.version == 1


@pytest.mark.asyncio
async def test_viewer_cannot_transition(workflow, lab, viewer):
    order = await _open_order(workflow, lab)

    with pytest.raises(PermissionDeniedError):
        await workflow.service.apply_transition(
            order.id, TransitionRequest(new_status_id="diagnosis", responsible="anonymous"), actor=viewer
        )


@pytest.mark.asyncio
async def test_detail_edit_is_audited(workflow, lab):
    order = await _open_order(workflow, lab)

    result = await workflow.service.record_edit(order.id, {"collaborator.phone": "222"}, actor=lab)

    assert result.entry is not None
    assert [(c.field, c.old_value, c.new_value) for c in result.entry.changes] == [
        ("collaborator.phone", "111", "222")
    ]
    stored = await workflow.service.get_order(order.id)
    assert stored.collaborator.phone == "222"
    assert len(stored.edit_logs) == 1
    assert stored.logs == order.logs
    assert workflow.metrics.edits.value() == 1

    unchanged = await workflow.service.record_edit(order.id, {"collaborator.phone": "222"}, actor=lab)
    assert unchanged.entry is None
    assert (await workflow.service.get_order(order.id)).version == stored.version


@pytest.mark.asyncio
async def test_edit_rules(workflow, lab, support, admin):
    order = await _open_order(workflow, lab, with_service=False)

    with pytest.raises(PermissionDeniedError):
        await workflow.service.record_edit(order.id, {"reported_problem": "x"}, actor=support)

    with pytest.raises(ClientNotFoundError):
        await workflow.service.record_edit(order.id, {"client_id": "nobody"}, actor=lab)

    await _advance(workflow, order.id, admin, "delivered")
    with pytest.raises(FinalStatusError):
        await workflow.service.record_edit(order.id, {"reported_problem": "x"}, actor=admin)


@pytest.mark.asyncio
async def test_pickup_listing_and_delete(workflow, lab, admin):
    waiting = await _open_order(workflow, lab, with_service=False)
    other = await _open_order(workflow, lab, with_service=False)
    await _advance(workflow, waiting.id, admin, "ready")

    ready = await workflow.service.list_ready_for_pickup()
    assert [order.id for order in ready] == [waiting.id]
    assert [order.id for order in await workflow.service.list_orders(status_id="received")] == [other.id]

    with pytest.raises(PermissionDeniedError):
        await workflow.service.delete_order(other.id, actor=lab)
    await workflow.service.delete_order(other.id, actor=admin)
    with pytest.raises(OrderNotFoundError):
        await workflow.service.get_order(other.id)


@pytest.mark.asyncio
async def test_available_transitions_depend_on_actor(workflow, lab, admin):
    order = await _open_order(workflow, lab)

    restricted = await workflow.service.available_transitions(order.id, actor=lab)
    unrestricted = await workflow.service.available_transitions(order.id, actor=admin)

    assert [candidate.status.id for candidate in restricted] == ["diagnosis"]
    assert {candidate.status.id for candidate in unrestricted} == {"diagnosis", "repair", "ready", "delivered"}


@pytest.mark.asyncio
async def test_dashboard_counts_orders_by_status_and_analyst(workflow, lab, support, admin, viewer):
    first = await _open_order(workflow, lab, with_service=False)
    await _open_order(workflow, lab, with_service=False)
    await _open_order(workflow, support, with_service=False)
    await _advance(workflow, first.id, admin, "ready")
    await _advance(workflow, first.id, lab, "delivered")

    stats = await workflow.service.dashboard_stats(actor=support)

    assert stats.total_orders == 3
    assert stats.status_counts == {"received": 2, "diagnosis": 0, "repair": 0, "ready": 0, "delivered": 1}
    assert stats.created_by == {"lab": 2, "support": 1}
    assert stats.delivered_by == {"lab": 1}

    with pytest.raises(PermissionDeniedError):
        await workflow.service.dashboard_stats(actor=viewer)


@pytest.mark.asyncio
async def test_edit_result_carries_the_registry_it_used(workflow, lab):
    order = await _open_order(workflow, lab)

    result = await workflow.service.record_edit(order.id, {"reported_problem": "No video"}, actor=lab)

    assert result.registry is not None
    assert result.registry.display_name(result.order.status) == "Received"
