"""Tests for ledger functionality."""

import json
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from khata.ledger import InMemoryEventStore, JsonlEventStore, read_events, read_events_tail
from khata.models.event import EventType

from conftest import NOW, TickingClock


def test_ledger_append_creates_file(data_root):
    """Test that appending to ledger creates the file if it doesn't exist."""
    events_path = data_root / "events.jsonl"

    assert not events_path.exists()

    store = JsonlEventStore(events_path, device_id="dev-1", clock=TickingClock())
    event = store.append("area-1", EventType.EXPENSE, {"amount": "250", "description": "tea"})

    assert events_path.exists()

    assert event.event_id
    assert event.schema_version == 1
    assert event.account_id == "default"
    assert event.created_by == "owner"
    assert event.device_id == "dev-1"
    assert event.synced_at is None
    assert event.payload.amount == Decimal("250")


def test_ledger_append_multiple_events(data_paths):
    """Test appending multiple events to ledger."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1", clock=TickingClock())

    e1 = store.append("area-1", EventType.CAPITAL_ADDED, {"amount": 1000, "description": ""})
    e2 = store.append("area-1", EventType.EXPENSE, {"amount": 100, "description": ""})
    e3 = store.append("area-1", EventType.EXPENSE, {"amount": 200, "description": ""})

    assert len({e1.event_id, e2.event_id, e3.event_id}) == 3

    lines = data_paths.events_file.read_text().strip().split("\n")
    assert len(lines) == 3

    for line in lines:
        data = json.loads(line)
        assert "eventId" in data
        assert "areaId" in data
        assert "createdAt" in data


def test_ledger_event_format(data_paths):
    """Test that events are written with camelCase keys and ISO8601 UTC timestamps."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1", clock=TickingClock())
    store.append(
        "area-1",
        EventType.INSTALLMENT_PAYMENT,
        {
            "customer_id": "cust-1",
            "customer_name": "Sita",
            "loan_event_id": "loan-1",
            "online_amount": 0,
            "offline_amount": 500,
            "total_amount": 500,
        },
    )

    data = json.loads(data_paths.events_file.read_text().strip())

    for key in ("eventId", "schemaVersion", "accountId", "areaId", "createdBy",
                "deviceId", "createdAt", "syncedAt", "eventType", "payload"):
        assert key in data
    assert data["eventType"] == "INSTALLMENT_PAYMENT"
    assert data["payload"]["loanEventId"] == "loan-1"
    assert data["payload"]["isOnboarding"] is False

    parsed = datetime.fromisoformat(data["createdAt"].replace("Z", "+00:00"))
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() == timedelta(0)


def test_ledger_rejects_invalid_payload(data_paths):
    """Test that an invalid payload is rejected and nothing is written."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1")

    with pytest.raises(ValidationError):
        store.append("area-1", EventType.NEW_LOAN, {"amount": 100})

    assert data_paths.events_file.read_text() == ""


def test_append_batch_is_all_or_nothing(data_paths):
    """Test that one invalid item prevents the whole batch from being written."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1")

    with pytest.raises(ValidationError):
        store.append_batch(
            "area-1",
            [
                (EventType.EXPENSE, {"amount": 10, "description": ""}),
                (EventType.EXPENSE, {"description": "missing amount"}),
            ],
        )

    assert store.all_events() == []


def test_roundtrip_preserves_decimal_amounts(data_paths):
    """Test that amounts read back exactly as written."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1")
    store.append("area-1", EventType.EXPENSE, {"amount": "1234.56", "description": "seed"})

    events = read_events(data_paths.events_file)
    assert events[0].payload.amount == Decimal("1234.56")


def test_list_by_area_newest_first():
    """Test that area listing is newest first and scoped to the area."""
    clock = TickingClock()
    store = InMemoryEventStore(clock=clock)
    first = store.append("area-1", EventType.EXPENSE, {"amount": 1, "description": ""})
    store.append("area-2", EventType.EXPENSE, {"amount": 2, "description": ""})
    second = store.append("area-1", EventType.EXPENSE, {"amount": 3, "description": ""})

    listed = store.list_by_area("area-1")
    assert [e.event_id for e in listed] == [second.event_id, first.event_id]


def test_equal_timestamps_keep_log_order():
    """Test that events sharing a timestamp keep append order in newest-first listings."""
    store = InMemoryEventStore(clock=lambda: NOW)
    first = store.append("area-1", EventType.EXPENSE, {"amount": 1, "description": ""})
    second = store.append("area-1", EventType.EXPENSE, {"amount": 2, "description": ""})

    listed = store.list_by_area("area-1")
    assert [e.event_id for e in listed] == [first.event_id, second.event_id]


def test_list_by_customer_spans_areas(loan_payload):
    """Test that customer listing follows payload references across areas."""
    store = InMemoryEventStore(clock=TickingClock())
    loan = store.append("area-1", EventType.NEW_LOAN, loan_payload())
    store.append("area-2", EventType.NEW_LOAN, loan_payload(customer_id="cust-2"))
    store.append("area-1", EventType.EXPENSE, {"amount": 5, "description": ""})
    renewal = store.append(
        "area-2",
        EventType.RENEW_LOAN,
        loan_payload(previous_loan_event_id=loan.event_id),
    )

    listed = store.list_by_customer("cust-1")
    assert [e.event_id for e in listed] == [renewal.event_id, loan.event_id]


def test_get_unknown_event_returns_none():
    """Test that looking up an unknown id returns None."""
    store = InMemoryEventStore()
    assert store.get("nope") is None


def test_delete_area_removes_only_that_area(data_paths):
    """Test that deleting an area rewrites the log without its events."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1", clock=TickingClock())
    store.append("area-1", EventType.EXPENSE, {"amount": 1, "description": ""})
    kept = store.append("area-2", EventType.EXPENSE, {"amount": 2, "description": ""})
    store.append("area-1", EventType.EXPENSE, {"amount": 3, "description": ""})

    removed = store.delete_area("area-1")

    assert removed == 2
    assert [e.event_id for e in store.all_events()] == [kept.event_id]
    assert not data_paths.events_file.with_suffix(".tmp").exists()


def test_ledger_tail_reads_last_n(data_paths):
    """Test reading last N events from ledger."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1", clock=TickingClock())
    for i in range(10):
        store.append("area-1", EventType.EXPENSE, {"amount": i + 1, "description": str(i)})

    events = read_events_tail(data_paths.events_file, n=5)

    assert len(events) == 5
    for i, event in enumerate(events):
        assert event.payload.description == str(i + 5)


def test_ledger_tail_handles_malformed(data_paths):
    """Test that reading skips malformed lines gracefully."""
    store = JsonlEventStore(data_paths.events_file, device_id="dev-1", clock=TickingClock())
    store.append("area-1", EventType.EXPENSE, {"amount": 1, "description": "1"})
    store.append("area-1", EventType.EXPENSE, {"amount": 2, "description": "2"})

    with open(data_paths.events_file, "a") as f:
        f.write("this is not json\n")
        f.write("{\"incomplete\": \n")

    store.append("area-1", EventType.EXPENSE, {"amount": 3, "description": "3"})

    events = read_events_tail(data_paths.events_file, n=10)

    assert [e.payload.description for e in events] == ["1", "2", "3"]


def test_ledger_tail_empty_file(data_paths):
    """Test tail on empty ledger file."""
    assert read_events_tail(data_paths.events_file, n=10) == []


def test_ledger_tail_nonexistent_file(data_root):
    """Test tail on nonexistent ledger file."""
    assert read_events_tail(data_root / "nonexistent.jsonl", n=10) == []
