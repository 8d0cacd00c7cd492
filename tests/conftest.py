"""Pytest fixtures for Khata tests."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from khata.config import KhataConfig
from khata.ledger import InMemoryEventStore
from khata.models.event import EventType, FinanceEvent
from khata.models.registry import Customer
from khata.paths import DataPaths
from khata.registry import AreaStore, CustomerStore, VillageStore
from khata.service import Bookkeeper

# Mid-morning UTC on a fixed day; tests pass tz=UTC so "today" is 2026-03-05
NOW = datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = NOW - timedelta(hours=1)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value

    def set(self, moment: datetime) -> None:
        self.current = moment


@pytest.fixture
def data_root(tmp_path):
    """Create a temporary data root for testing.

    Args:
        tmp_path: pytest's built-in temporary directory fixture

    Returns:
        Path to temporary data root
    """
    root = tmp_path / "test_data"
    root.mkdir()
    return root


@pytest.fixture
def data_config(data_root):
    """Create KhataConfig pointing to the temporary data root."""
    return KhataConfig(data_path=data_root, timezone="UTC")


@pytest.fixture
def data_paths(data_config):
    """Create DataPaths for the temporary data root with empty collections.

    Args:
        data_config: KhataConfig instance

    Returns:
        DataPaths instance
    """
    paths = DataPaths.from_config(data_config)
    paths.config_file.write_text(data_config.to_yaml_str(), encoding="utf-8")
    paths.events_file.touch()
    return paths


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def memory_store(clock):
    return InMemoryEventStore(clock=clock)


@pytest.fixture
def books(data_paths, memory_store, clock):
    """Bookkeeper over JSON registry files and an in-memory event store.

    "Today" is pinned to NOW in UTC.
    """
    return Bookkeeper(
        events=memory_store,
        areas=AreaStore(data_paths.areas_file, clock=clock),
        villages=VillageStore(data_paths.villages_file, clock=clock),
        customers=CustomerStore(data_paths.customers_file, clock=clock),
        state_file=data_paths.state_file,
        tz=timezone.utc,
        now=lambda: NOW,
    )


@pytest.fixture
def customer():
    return Customer(
        id="cust-1",
        area_id="area-1",
        village_id="village-1",
        village_name="Rampur",
        name="Sita Devi",
        phone="9876543210",
        serial_number=1,
        created_at=NOW - timedelta(days=30),
    )


@pytest.fixture
def make_event():
    """Factory for events with explicit timestamps."""

    def _make(
        event_type: EventType,
        payload: dict,
        created_at: datetime = NOW,
        area_id: str = "area-1",
        event_id: str = None,
    ) -> FinanceEvent:
        return FinanceEvent(
            event_id=event_id or str(uuid.uuid4()),
            area_id=area_id,
            device_id="test-device",
            created_at=created_at,
            event_type=event_type,
            payload=payload,
        )

    return _make


@pytest.fixture
def loan_payload():
    """Factory for NEW_LOAN / RENEW_LOAN payload dicts."""

    def _payload(amount="10000", payable="12000", installments=12, customer_id="cust-1", **extra):
        return {
            "customer_id": customer_id,
            "customer_name": "Sita Devi",
            "loan_amount": Decimal(amount),
            "total_payable": Decimal(payable),
            "total_installments": installments,
            **extra,
        }

    return _payload


@pytest.fixture
def payment_payload():
    """Factory for INSTALLMENT_PAYMENT payload dicts."""

    def _payload(loan_event_id, online="0", offline="1000", customer_id="cust-1", **extra):
        return {
            "customer_id": customer_id,
            "customer_name": "Sita Devi",
            "loan_event_id": loan_event_id,
            "online_amount": Decimal(online),
            "offline_amount": Decimal(offline),
            "total_amount": Decimal(online) + Decimal(offline),
            **extra,
        }

    return _payload
