"""Display formatting for amounts, timestamps and event types."""

from datetime import datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from .date_filter import local_now
from .models.event import EventType

Number = Union[Decimal, int, float, str]

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

EVENT_LABELS = {
    EventType.ONBOARDING_BALANCE: "Opening Balance",
    EventType.NEW_LOAN: "New Loan",
    EventType.RENEW_LOAN: "Renewed Loan",
    EventType.INSTALLMENT_PAYMENT: "Payment",
    EventType.EXPENSE: "Expense",
    EventType.CAPITAL_ADDED: "Capital Added",
    EventType.ADJUSTMENT_EVENT: "Adjustment",
}

# Rich styles per event type
EVENT_STYLES = {
    EventType.ONBOARDING_BALANCE: "medium_purple",
    EventType.NEW_LOAN: "blue",
    EventType.RENEW_LOAN: "purple",
    EventType.INSTALLMENT_PAYMENT: "green",
    EventType.EXPENSE: "red",
    EventType.CAPITAL_ADDED: "deep_sky_blue1",
    EventType.ADJUSTMENT_EVENT: "dark_orange",
}


def group_indian(digits: str) -> str:
    """Group an unsigned digit string the Indian way: 12,34,567."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_currency(amount: Number, symbol: str = "₹") -> str:
    """Round to whole units, group digits, prefix the currency symbol.

    Negative amounts put the sign before the symbol: -₹1,200.
    """
    value = Decimal(str(amount)).to_integral_value(rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{group_indian(str(abs(int(value))))}"


def format_date(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """Format as ``5 Mar 2026`` in the display zone."""
    d = local_now(moment, tz)
    return f"{d.day} {_MONTHS[d.month - 1]} {d.year}"


def format_datetime(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """Format as ``5 Mar 2026, 2:07 PM`` in the display zone."""
    d = local_now(moment, tz)
    hour = d.hour % 12 or 12
    ampm = "PM" if d.hour >= 12 else "AM"
    return f"{d.day} {_MONTHS[d.month - 1]} {d.year}, {hour}:{d.minute:02d} {ampm}"


def event_label(event_type: EventType | str) -> str:
    try:
        return EVENT_LABELS[EventType(event_type)]
    except ValueError:
        return str(event_type)
