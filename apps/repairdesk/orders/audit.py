"""Field-level change tracking for service order detail edits."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Mapping

from .models import EditLogEntry, FieldChange, ServiceOrder

_Getter = Callable[[ServiceOrder], Any]
_Setter = Callable[[ServiceOrder, Any], ServiceOrder]


def _nested(attribute: str, key: str) -> tuple[_Getter, _Setter]:
    def getter(order: ServiceOrder) -> Any:
        return getattr(getattr(order, attribute), key)

    def setter(order: ServiceOrder, value: Any) -> ServiceOrder:
        return replace(order, **{attribute: replace(getattr(order, attribute), **{key: value})})

    return getter, setter


def _plain(attribute: str) -> tuple[_Getter, _Setter]:
    def getter(order: ServiceOrder) -> Any:
        return getattr(order, attribute)

    def setter(order: ServiceOrder, value: Any) -> ServiceOrder:
        return replace(order, **{attribute: value})

    return getter, setter


# Dotted name -> accessors. ``analyst`` is fixed at creation.
EDITABLE_FIELDS: Mapping[str, tuple[_Getter, _Setter]] = {
    "client_id": _plain("client_id"),
    "collaborator.name": _nested("collaborator", "name"),
    "collaborator.email": _nested("collaborator", "email"),
    "collaborator.phone": _nested("collaborator", "phone"),
    "equipment.type": _nested("equipment", "type"),
    "equipment.brand": _nested("equipment", "brand"),
    "equipment.model": _nested("equipment", "model"),
    "equipment.serial_number": _nested("equipment", "serial_number"),
    "reported_problem": _plain("reported_problem"),
}


def compute_changes(order: ServiceOrder, new_fields: Mapping[str, Any]) -> list[FieldChange]:
    """Diff ``new_fields`` against the order, restricted to the editable fields."""

    changes: list[FieldChange] = []
    for name, (getter, _) in EDITABLE_FIELDS.items():
        if name not in new_fields:
            continue
        old_value = getter(order)
        new_value = new_fields[name]
        if old_value != new_value:
            changes.append(FieldChange(field=name, old_value=old_value, new_value=new_value))
    return changes


def record_edit(
    order: ServiceOrder,
    new_fields: Mapping[str, Any],
    *,
    responsible: str,
    now: datetime,
    observation: str | None = None,
) -> tuple[ServiceOrder, EditLogEntry | None]:
    """Apply a detail edit and produce its audit entry.

    Returns the order unchanged and ``None`` when no tracked field differs.
    Status and status history are never touched.
    """

    changes = compute_changes(order, new_fields)
    if not changes:
        return order, None

    updated = order
    for change in changes:
        _, setter = EDITABLE_FIELDS[change.field]
        updated = setter(updated, change.new_value)

    entry = EditLogEntry(
        timestamp=now,
        responsible=responsible,
        changes=tuple(changes),
        observation=observation,
    )
    updated = replace(updated, edit_logs=(*order.edit_logs, entry), updated_at=now)
    return updated, entry


def flatten_details(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Turn ``{"collaborator": {"phone": "1"}}`` into ``{"collaborator.phone": "1"}``."""

    flat: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, Mapping):
            for inner_key, inner_value in value.items():
                flat[f"{key}.{inner_key}"] = inner_value
        else:
            flat[key] = value
    return flat
