from datetime import datetime, timezone

from apps.repairdesk.orders.audit import compute_changes, flatten_details, record_edit

LATER = datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc)


def test_phone_change_writes_single_entry(make_order):
    order = make_order()

    updated, entry = record_edit(order, {"collaborator.phone": "222"}, responsible="lab", now=LATER)

    assert entry is not None
    assert len(entry.changes) == 1
    change = entry.changes[0]
    assert (change.field, change.old_value, change.new_value) == ("collaborator.phone", "111", "222")
    assert updated.collaborator.phone == "222"
    assert updated.edit_logs == (entry,)
    assert updated.updated_at == LATER


def test_identical_values_write_nothing(make_order):
    order = make_order()

    updated, entry = record_edit(
        order,
        {"collaborator.phone": "111", "equipment.brand": "Dell"},
        responsible="lab",
        now=LATER,
    )

    assert entry is None
    assert updated is order


def test_untracked_fields_are_ignored(make_order):
    order = make_order()

    updated, entry = record_edit(
        order,
        {"analyst": "someone else", "status": "delivered", "order_number": "OS-999"},
        responsible="lab",
        now=LATER,
    )

    assert entry is None
    assert updated.analyst == "lab"
    assert updated.status == "received"


def test_multiple_changes_share_one_entry(make_order):
    order = make_order()

    updated, entry = record_edit(
        order,
        {"equipment.serial_number": "SN999", "reported_problem": "Fan noise", "client_id": "client-2"},
        responsible="support",
        now=LATER,
        observation="Client called",
    )

    assert entry is not None
    assert {change.field for change in entry.changes} == {"equipment.serial_number", "reported_problem", "client_id"}
    assert entry.observation == "Client called"
    assert updated.status == order.status
    assert updated.logs == order.logs
    assert updated.equipment.serial_number == "SN999"
    assert updated.equipment.model == order.equipment.model


def test_compute_changes_reports_old_and_new(make_order):
    changes = compute_changes(make_order(), {"collaborator.email": "new@example.com"})

    assert [(c.field, c.old_value, c.new_value) for c in changes] == [
        ("collaborator.email", "ana@example.com", "new@example.com")
    ]


def test_flatten_details_builds_dotted_names():
    assert flatten_details({"collaborator": {"phone": "1"}, "client_id": "c"}) == {
        "collaborator.phone": "1",
        "client_id": "c",
    }
