"""Fold the event log into a dashboard money-flow snapshot."""

from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from .date_filter import filter_events_by_date
from .models.event import EventType, FinanceEvent
from .models.views import ZERO, DashboardData, DateFilter


def opening_balance(events: Iterable[FinanceEvent]) -> Decimal:
    """Sum of every ONBOARDING_BALANCE amount; never period-scoped."""
    return sum(
        (e.payload.amount for e in events if e.event_type is EventType.ONBOARDING_BALANCE),
        ZERO,
    )


@dataclass
class LedgerTotals:
    """Running period totals, updated one event at a time."""

    total_given_new: Decimal = ZERO
    total_given_renewed: Decimal = ZERO
    total_payable_new: Decimal = ZERO
    total_payable_renewed: Decimal = ZERO
    total_collected_online: Decimal = ZERO
    total_collected_offline: Decimal = ZERO
    expenses: Decimal = ZERO
    capital_added: Decimal = ZERO
    adjustments: Decimal = ZERO

    def apply(self, event: FinanceEvent) -> None:
        # Backfilled history is not real-time cash flow
        if event.is_onboarding_payment:
            return

        p = event.payload
        kind = event.event_type
        if kind is EventType.NEW_LOAN:
            self.total_given_new += p.loan_amount
            self.total_payable_new += p.total_payable
        elif kind is EventType.RENEW_LOAN:
            self.total_given_renewed += p.loan_amount
            self.total_payable_renewed += p.total_payable
        elif kind is EventType.INSTALLMENT_PAYMENT:
            self.total_collected_online += p.online_amount
            self.total_collected_offline += p.offline_amount
        elif kind is EventType.EXPENSE:
            self.expenses += p.amount
        elif kind is EventType.CAPITAL_ADDED:
            self.capital_added += p.amount
        elif kind is EventType.ADJUSTMENT_EVENT:
            self.adjustments += p.amount
        # ONBOARDING_BALANCE feeds the opening balance only

    def to_dashboard(self, opening: Decimal) -> DashboardData:
        total_given = self.total_given_new + self.total_given_renewed
        total_collected = self.total_collected_online + self.total_collected_offline
        vk_new = self.total_payable_new - self.total_given_new if self.total_given_new > 0 else ZERO
        vk_renewed = (
            self.total_payable_renewed - self.total_given_renewed
            if self.total_given_renewed > 0
            else ZERO
        )
        closing = (
            opening
            + total_collected
            + self.capital_added
            - total_given
            - self.expenses
            + self.adjustments
        )
        return DashboardData(
            opening_balance=opening,
            total_given=total_given,
            total_given_new=self.total_given_new,
            total_given_renewed=self.total_given_renewed,
            total_payable_new=self.total_payable_new,
            total_payable_renewed=self.total_payable_renewed,
            total_collected_online=self.total_collected_online,
            total_collected_offline=self.total_collected_offline,
            total_collected=total_collected,
            vk=vk_new + vk_renewed,
            vk_new=vk_new,
            vk_renewed=vk_renewed,
            expenses=self.expenses,
            capital_added=self.capital_added,
            adjustments=self.adjustments,
            closing_balance=closing,
        )


def calculate_dashboard(
    events: Sequence[FinanceEvent],
    date_filter: Optional[DateFilter] = None,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> DashboardData:
    """Compute the dashboard for ``events``, optionally limited to a period.

    The opening balance always comes from the full, unfiltered event list;
    every other figure uses only the events inside the filter window.
    """
    opening = opening_balance(events)

    totals = LedgerTotals()
    for event in filter_events_by_date(events, date_filter, now=now, tz=tz):
        totals.apply(event)

    return totals.to_dashboard(opening)
