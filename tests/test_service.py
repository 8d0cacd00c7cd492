"""Tests for the Bookkeeper mutation and query API."""

from datetime import timedelta
from decimal import Decimal

import pytest

from khata.exceptions import (
    CustomerNotFoundError,
    InvalidInputError,
    NoAreaSelectedError,
    VillageNotFoundError,
)
from khata.models.event import EventType
from khata.models.views import DateFilter
from khata.state import AppState

from conftest import NOW


@pytest.fixture
def village(books):
    books.create_area("North")
    return books.create_village("Rampur")


@pytest.fixture
def borrower(books, village):
    return books.create_customer(village.id, "Sita Devi", phone="98765")


def test_first_area_is_selected_and_persisted(books, data_paths):
    """Test that creating the first area selects it and saves the selection."""
    area = books.create_area("North")
    books.create_area("South")

    assert books.selected_area_id == area.id
    assert AppState.load(data_paths.state_file).selected_area_id == area.id


def test_onboarding_area_records_opening_balance(books):
    """Test that an onboarding area appends an ONBOARDING_BALANCE event."""
    books.create_area("North", is_onboarding=True, opening_balance="25000")

    [event] = books.events()
    assert event.event_type is EventType.ONBOARDING_BALANCE
    assert books.dashboard().opening_balance == Decimal("25000")


def test_zero_opening_balance_appends_nothing(books):
    """Test that an onboarding area with a zero balance has no events."""
    books.create_area("North", is_onboarding=True, opening_balance="0")
    assert books.events() == []


def test_mutations_require_selected_area(books):
    """Test that ledger mutations fail without a selected area."""
    with pytest.raises(NoAreaSelectedError):
        books.add_expense("100")
    with pytest.raises(NoAreaSelectedError):
        books.create_village("Rampur")
    assert books.events() == []
    assert books.villages() == []


def test_serial_numbers_are_per_village(books, village):
    """Test that each village numbers its customers from 1."""
    other = books.create_village("Sonpur")

    a = books.create_customer(village.id, "A")
    b = books.create_customer(village.id, "B")
    c = books.create_customer(other.id, "C")

    assert (a.serial_number, b.serial_number, c.serial_number) == (1, 2, 1)
    assert a.village_name == "Rampur"


def test_serial_numbers_not_reused_after_delete(books, village):
    """Test that deleting a customer does not free its serial number."""
    a = books.create_customer(village.id, "A")
    books.delete_customer(a.id)
    b = books.create_customer(village.id, "B")
    assert b.serial_number == 2


def test_create_customer_unknown_village(books):
    """Test that a customer cannot be created in a missing village."""
    books.create_area("North")
    with pytest.raises(VillageNotFoundError):
        books.create_customer("missing", "A")


def test_create_customer_rejects_village_of_other_area(books, village):
    """Test that a village from another area is treated as missing."""
    south = books.create_area("South")
    books.select_area(south.id)

    with pytest.raises(VillageNotFoundError):
        books.create_customer(village.id, "Gita")

    assert books.customers_store.by_area(south.id) == []
    assert books.villages_store.get(village.id).next_serial_number == 1


def test_create_customer_requires_name(books, village):
    """Test that blank names are rejected."""
    with pytest.raises(InvalidInputError) as exc_info:
        books.create_customer(village.id, "   ")
    assert exc_info.value.field == "name"


def test_new_loan_and_payment(books, borrower):
    """Test the basic loan lifecycle through the summary view."""
    [loan] = books.create_new_loan(borrower.id, "10000", "12000", 12)
    books.make_payment(borrower.id, loan.event_id, online_amount="400", offline_amount="600")

    summary = books.customer_summary(borrower.id)
    assert summary.active_loan_event_id == loan.event_id
    assert summary.amount_paid == Decimal("1000")
    assert summary.remaining_amount == Decimal("11000")
    assert summary.paid_today is True

    data = books.dashboard()
    assert data.total_given_new == Decimal("10000")
    assert data.total_collected == Decimal("1000")
    assert data.vk == Decimal("2000")


def test_loan_validation(books, borrower):
    """Test that malformed loan terms are rejected before anything is written."""
    with pytest.raises(InvalidInputError):
        books.create_new_loan(borrower.id, "0", "100", 1)
    with pytest.raises(InvalidInputError):
        books.create_new_loan(borrower.id, "100", "abc", 1)
    with pytest.raises(InvalidInputError):
        books.create_new_loan(borrower.id, "100", "120", 0)
    with pytest.raises(InvalidInputError):
        books.create_new_loan(borrower.id, "100", "90", 1)
    with pytest.raises(CustomerNotFoundError):
        books.create_new_loan("missing", "100", "120", 1)
    assert books.events() == []


def test_backfill_writes_onboarding_payments(books, borrower):
    """Test that already-paid installments become flagged cash payments."""
    events = books.create_new_loan(borrower.id, "10000", "12000", 12, backfill_installments=3, backfill_amount="1000")

    loan, *payments = events
    assert loan.event_type is EventType.NEW_LOAN
    assert len(payments) == 3
    for payment in payments:
        assert payment.payload.loan_event_id == loan.event_id
        assert payment.payload.is_onboarding is True
        assert payment.payload.online_amount == Decimal("0")
        assert payment.payload.offline_amount == payment.payload.total_amount

    assert [p.payload.total_amount for p in payments] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]

    summary = books.customer_summary(borrower.id)
    assert summary.installments_paid == 3
    assert summary.amount_paid == Decimal("1000")
    assert summary.paid_today is False

    # Backfill is history, not cash collected
    assert books.dashboard().total_collected == Decimal("0")


def test_backfill_ignored_when_incomplete(books, borrower):
    """Test that a backfill count without an amount writes only the loan."""
    events = books.create_new_loan(borrower.id, "10000", "12000", 12, backfill_installments=3)
    assert len(events) == 1


@pytest.mark.parametrize("installments, amount", [(3, "0.00"), (3, "0"), ("0", "1000")])
def test_backfill_skipped_when_zero(books, borrower, installments, amount):
    """Test that a zero backfill count or amount writes only the loan."""
    events = books.create_new_loan(
        borrower.id, "10000", "12000", 12, backfill_installments=installments, backfill_amount=amount
    )
    assert [e.event_type for e in events] == [EventType.NEW_LOAN]
    assert books.customer_summary(borrower.id).installments_paid == 0


def test_backfill_rejects_huge_amount(books, borrower):
    """Test that an out-of-range backfill amount is an input error and writes nothing."""
    with pytest.raises(InvalidInputError) as exc_info:
        books.create_new_loan(borrower.id, "10000", "12000", 12, backfill_installments=3, backfill_amount="1e27")
    assert exc_info.value.field == "backfill_amount"
    assert books.events() == []


def test_renew_loan(books, borrower):
    """Test that a renewal references the previous loan and becomes active."""
    [loan] = books.create_new_loan(borrower.id, "10000", "12000", 12)
    books.make_payment(borrower.id, loan.event_id, offline_amount="5000")

    renewal = books.renew_loan(borrower.id, loan.event_id, "20000", "24000", 24)

    assert renewal.payload.previous_loan_event_id == loan.event_id
    summary = books.customer_summary(borrower.id)
    assert summary.active_loan_event_id == renewal.event_id
    assert summary.amount_paid == Decimal("0")

    sections = books.customer_sections(borrower.id)
    assert [s.is_active for s in sections] == [True, False]
    assert sections[1].remaining_amount == Decimal("7000")

    assert books.dashboard().total_given_renewed == Decimal("20000")


def test_renew_rejects_foreign_loan(books, village, borrower):
    """Test that a customer cannot renew another customer's loan."""
    other = books.create_customer(village.id, "Ram")
    [loan] = books.create_new_loan(other.id, "1000", "1200", 4)

    with pytest.raises(InvalidInputError):
        books.renew_loan(borrower.id, loan.event_id, "1000", "1200", 4)


def test_loan_mutations_reject_customer_of_other_area(books, borrower):
    """Test that loans and payments cannot be recorded in an area the customer is not in."""
    north_id = books.selected_area_id
    [loan] = books.create_new_loan(borrower.id, "1000", "1200", 4)
    before = books.dashboard()
    south = books.create_area("South")
    books.select_area(south.id)

    with pytest.raises(InvalidInputError):
        books.make_payment(borrower.id, loan.event_id, offline_amount="100")
    with pytest.raises(InvalidInputError):
        books.renew_loan(borrower.id, loan.event_id, "2000", "2400", 8)
    with pytest.raises(InvalidInputError):
        books.create_new_loan(borrower.id, "500", "600", 2)

    assert books.events() == []
    books.select_area(north_id)
    assert books.dashboard() == before
    assert books.customer_summary(borrower.id).amount_paid == Decimal("0")


def test_adjustment_rejects_event_of_other_area(books):
    """Test that an adjustment cannot reference another area's event."""
    books.create_area("North")
    expense = books.add_expense("200")
    south = books.create_area("South")
    books.select_area(south.id)

    with pytest.raises(InvalidInputError):
        books.create_adjustment(expense.event_id, "-50", "typo")
    assert books.events() == []


def test_payment_validation(books, borrower):
    """Test payment amount and loan reference checks."""
    [loan] = books.create_new_loan(borrower.id, "1000", "1200", 4)

    with pytest.raises(InvalidInputError):
        books.make_payment(borrower.id, loan.event_id)
    with pytest.raises(InvalidInputError):
        books.make_payment(borrower.id, loan.event_id, offline_amount="-5")
    with pytest.raises(InvalidInputError):
        books.make_payment(borrower.id, "missing-loan", offline_amount="100")


def test_overpayment_allowed(books, borrower):
    """Test that paying more than the remaining amount is accepted."""
    [loan] = books.create_new_loan(borrower.id, "1000", "1200", 4)
    books.make_payment(borrower.id, loan.event_id, offline_amount="1500")

    summary = books.customer_summary(borrower.id)
    assert summary.remaining_amount == Decimal("0")
    assert summary.is_fully_paid


def test_expense_capital_and_adjustment(books):
    """Test cash movements and corrections in the closing balance."""
    books.create_area("North", is_onboarding=True, opening_balance="1000")
    expense = books.add_expense("200", "fuel")
    books.add_capital("5000", "partner")
    books.create_adjustment(expense.event_id, "-50", "receipt was 150")

    data = books.dashboard()
    assert data.expenses == Decimal("200")
    assert data.capital_added == Decimal("5000")
    assert data.adjustments == Decimal("-50")
    assert data.closing_balance == Decimal("5750")
    # The corrected event is left as it was
    assert books.event_store.get(expense.event_id).payload.amount == Decimal("200")


def test_adjustment_validation(books):
    """Test that adjustments need a known reference, a nonzero amount and a reason."""
    books.create_area("North")
    expense = books.add_expense("200")

    with pytest.raises(InvalidInputError):
        books.create_adjustment("missing", "10", "x")
    with pytest.raises(InvalidInputError):
        books.create_adjustment(expense.event_id, "0", "x")
    with pytest.raises(InvalidInputError):
        books.create_adjustment(expense.event_id, "10", " ")


def test_dashboard_today_filter(books, clock):
    """Test that the dashboard honors the date filter."""
    books.create_area("North")
    clock.set(NOW - timedelta(days=1))
    books.add_expense("100")
    clock.set(NOW)
    books.add_expense("30")

    assert books.dashboard(DateFilter(mode="today")).expenses == Decimal("30")
    assert books.dashboard(DateFilter(mode="yesterday")).expenses == Decimal("100")
    assert books.dashboard().expenses == Decimal("130")


def test_views_scoped_to_selected_area(books):
    """Test that switching area switches every view."""
    north = books.create_area("North")
    books.add_expense("100")
    south = books.create_area("South")
    books.select_area(south.id)

    assert books.events() == []
    books.add_expense("7")
    assert books.dashboard().expenses == Decimal("7")

    books.select_area(north.id)
    assert books.dashboard().expenses == Decimal("100")


def test_delete_area_cascades(books, borrower):
    """Test that deleting an area removes its villages, customers and events."""
    area_id = books.selected_area_id
    books.create_new_loan(borrower.id, "1000", "1200", 4)
    south = books.create_area("South")

    books.delete_area(area_id)

    assert books.areas.get(area_id) is None
    assert books.villages_store.by_area(area_id) == []
    assert books.customers_store.by_area(area_id) == []
    assert books.event_store.list_by_area(area_id) == []
    assert books.selected_area_id == south.id


def test_delete_area_keeps_records_when_event_purge_fails(books, borrower, monkeypatch):
    """Test that a failed event purge leaves the area and its registry intact."""
    area_id = books.selected_area_id
    books.create_new_loan(borrower.id, "1000", "1200", 4)

    def fail(area_id):
        raise OSError("disk full")

    monkeypatch.setattr(books.event_store, "delete_area", fail)

    with pytest.raises(OSError):
        books.delete_area(area_id)

    assert books.areas.get(area_id) is not None
    assert books.villages_store.by_area(area_id) != []
    assert books.customers_store.get(borrower.id) is not None
    assert len(books.event_store.list_by_area(area_id)) == 1
    assert books.selected_area_id == area_id


def test_deleted_village_customers_grouped_as_other(books, village, borrower):
    """Test that customers of a deleted village remain listed under Other."""
    books.delete_village(village.id)

    groups = books.village_groups()
    assert [g.name for g in groups] == ["Other"]
    assert groups[0].customers[0].customer.id == borrower.id


def test_customer_history_survives_delete(books, borrower):
    """Test that deleting a customer keeps their ledger events."""
    books.create_new_loan(borrower.id, "1000", "1200", 4)
    books.delete_customer(borrower.id)

    assert books.get_customer(borrower.id) is None
    assert len(books.customer_events(borrower.id)) == 1
    assert books.dashboard().total_given == Decimal("1000")


def test_customer_summaries_sorted_and_searchable(books, village):
    """Test the collection list order and search."""
    a = books.create_customer(village.id, "Asha")
    b = books.create_customer(village.id, "Bela", phone="55555")
    [loan] = books.create_new_loan(b.id, "1000", "1200", 4)
    books.create_new_loan(a.id, "1000", "1200", 4)
    books.make_payment(b.id, loan.event_id, offline_amount="300")

    # Asha has not paid today, so comes before Bela
    assert [s.customer.name for s in books.customer_summaries()] == ["Asha", "Bela"]
    assert [s.customer.name for s in books.search_customers("555")] == ["Bela"]
    assert [s.customer.name for s in books.search_customers("2")] == ["Bela"]
