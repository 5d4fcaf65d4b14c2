from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Sequence

from .access import Actor, Capability
from .errors import (
    FinalStatusError,
    GateBlockedError,
    InvalidTransitionError,
    NoOpError,
    PermissionDeniedError,
    ValidationError,
)
from .models import LogEntry, ServiceOrder, Status, TransitionCandidate, TransitionPlan, TransitionRequest
from .registry import StatusRegistry


class TransitionResolver:
    """Compute which statuses an order may move to from its current one."""

    def __init__(self, *, allow_unrestricted_reopen: bool = False) -> None:
        self._allow_unrestricted_reopen = allow_unrestricted_reopen

    def is_frozen(self, current: Status | None, *, unrestricted: bool) -> bool:
        if current is None or not current.is_final:
            return False
        return not (unrestricted and self._allow_unrestricted_reopen)

    def candidates(
        self,
        current: Status | None,
        statuses: Sequence[Status],
        *,
        unrestricted: bool,
    ) -> list[TransitionCandidate]:
        if self.is_frozen(current, unrestricted=unrestricted):
            return []

        current_id = current.id if current is not None else None
        forward = current.allowed_next_statuses if current is not None else frozenset()
        backward = current.allowed_previous_statuses if current is not None else frozenset()

        resolved: list[TransitionCandidate] = []
        for status in statuses:
            if status.id == current_id:
                continue
            if status.id in forward:
                resolved.append(TransitionCandidate(status=status, is_back_button=False))
            elif status.id in backward:
                resolved.append(TransitionCandidate(status=status, is_back_button=True))
            elif unrestricted:
                resolved.append(TransitionCandidate(status=status, is_back_button=False))

        resolved.sort(key=lambda candidate: (not candidate.is_back_button, candidate.status.order))
        return resolved

    def is_valid_transition(
        self,
        current: Status | None,
        statuses: Sequence[Status],
        candidate_id: str,
        *,
        unrestricted: bool,
    ) -> bool:
        return any(
            candidate.status.id == candidate_id
            for candidate in self.candidates(current, statuses, unrestricted=unrestricted)
        )

    def assert_transition(
        self,
        current: Status | None,
        statuses: Sequence[Status],
        candidate_id: str,
        *,
        unrestricted: bool,
    ) -> None:
        if not self.is_valid_transition(current, statuses, candidate_id, unrestricted=unrestricted):
            source = current.name if current is not None else "unknown status"
            raise InvalidTransitionError(f"Invalid status transition: {source} -> {candidate_id}")


class ServiceConfirmationGate:
    """Every contracted service must be confirmed before the client is notified."""

    def missing(self, order: ServiceOrder, confirmed_service_ids: Iterable[str]) -> frozenset[str]:
        return order.contracted_service_ids - frozenset(confirmed_service_ids)

    def can_notify(self, order: ServiceOrder, confirmed_service_ids: Iterable[str]) -> bool:
        return not self.missing(order, confirmed_service_ids)

    def check(self, order: ServiceOrder, confirmed_service_ids: Iterable[str]) -> None:
        missing = self.missing(order, confirmed_service_ids)
        if missing:
            raise GateBlockedError(missing)


class OrderStateMachine:
    """Validate a transition request and derive the resulting order state.

    The machine never persists anything: it returns a :class:`TransitionPlan`
    that the caller commits atomically.
    """

    def __init__(
        self,
        *,
        resolver: TransitionResolver | None = None,
        gate: ServiceConfirmationGate | None = None,
    ) -> None:
        self._resolver = resolver or TransitionResolver()
        self._gate = gate or ServiceConfirmationGate()

    @property
    def resolver(self) -> TransitionResolver:
        return self._resolver

    def available_transitions(
        self, order: ServiceOrder, registry: StatusRegistry, actor: Actor
    ) -> list[TransitionCandidate]:
        return self._resolver.candidates(
            registry.get(order.status),
            registry.all(),
            unrestricted=actor.can(Capability.UNRESTRICTED_TRANSITION),
        )

    def plan(
        self,
        order: ServiceOrder,
        request: TransitionRequest,
        *,
        registry: StatusRegistry,
        actor: Actor,
        now: datetime,
    ) -> TransitionPlan:
        target = registry.require(request.new_status_id)
        current = registry.get(order.status)
        unrestricted = actor.can(Capability.UNRESTRICTED_TRANSITION)

        if self._resolver.is_frozen(current, unrestricted=unrestricted):
            raise FinalStatusError(f"Order {order.order_number} is closed and can no longer change")

        status_changed = target.id != order.status
        technical_solution = (
            request.technical_solution if request.technical_solution is not None else order.technical_solution
        )
        confirmed = (
            frozenset(request.confirmed_service_ids)
            if request.confirmed_service_ids is not None
            else order.confirmed_service_ids
        )
        solution_changed = (technical_solution or "") != (order.technical_solution or "")
        confirmation_changed = confirmed != order.confirmed_service_ids

        if not (status_changed or solution_changed or confirmation_changed):
            raise NoOpError("Nothing to save")

        if status_changed:
            self._resolver.assert_transition(current, registry.all(), target.id, unrestricted=unrestricted)

        if confirmation_changed:
            if not actor.can(Capability.UPDATE_ORDER):
                raise PermissionDeniedError("Confirming services requires the update order permission")
            unknown = confirmed - order.contracted_service_ids
            if unknown:
                raise ValidationError(f"Services not contracted for this order: {', '.join(sorted(unknown))}")

        if status_changed and target.triggers_email:
            self._gate.check(order, confirmed)

        entry = LogEntry(
            timestamp=now,
            responsible=request.responsible,
            from_status=order.status,
            to_status=target.id,
            observation=request.observation,
        )
        updated = replace(
            order,
            status=target.id,
            technical_solution=technical_solution,
            confirmed_service_ids=confirmed,
            attachments=tuple(request.attachments) if request.attachments is not None else order.attachments,
            logs=(*order.logs, entry),
            updated_at=now,
        )
        return TransitionPlan(
            order=updated,
            log_entry=entry,
            status_changed=status_changed,
            should_notify=status_changed and target.triggers_email,
            target=target,
        )
