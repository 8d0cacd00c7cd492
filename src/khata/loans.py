"""Per-customer loan state and loan history derived from the event log."""

from datetime import datetime, tzinfo
from typing import Optional, Sequence

from .date_filter import local_date, local_now
from .models.event import EventType, FinanceEvent
from .models.registry import Customer, Village
from .models.views import (
    ZERO,
    CustomerLoanSummary,
    LoanSection,
    LoanType,
    PaymentMode,
    VillageGroup,
)


def _loan_type(event: FinanceEvent) -> LoanType:
    return "RENEWED" if event.event_type is EventType.RENEW_LOAN else "NEW"


def customer_events(customer_id: str, events: Sequence[FinanceEvent]) -> list[FinanceEvent]:
    """Events whose payload references the customer, in input order."""
    return [e for e in events if e.customer_id == customer_id]


def loan_events_oldest_first(customer_id: str, events: Sequence[FinanceEvent]) -> list[FinanceEvent]:
    """NEW_LOAN / RENEW_LOAN events of a customer, oldest first.

    ``sorted`` is stable, so loans sharing a timestamp keep input order and
    the later one in that order counts as more recent.
    """
    loans = [e for e in customer_events(customer_id, events) if e.is_loan]
    return sorted(loans, key=lambda e: e.created_at)


def payments_for_loan(loan_event_id: str, events: Sequence[FinanceEvent]) -> list[FinanceEvent]:
    return [
        e
        for e in events
        if e.event_type is EventType.INSTALLMENT_PAYMENT and e.payload.loan_event_id == loan_event_id
    ]


def get_customer_loan_summary(
    customer: Customer,
    events: Sequence[FinanceEvent],
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> CustomerLoanSummary:
    """Current loan state of ``customer``.

    The most recent loan-creation event is the active loan; payments are
    matched to it by ``loan_event_id``. A customer without any loan gets a
    "no loan" summary that counts as fully paid.
    """
    relevant = customer_events(customer.id, events)
    loans = loan_events_oldest_first(customer.id, relevant)
    if not loans:
        return CustomerLoanSummary(customer=customer, has_loan=False, is_fully_paid=True)

    active = loans[-1]
    loan = active.payload
    payments = payments_for_loan(active.event_id, relevant)

    today = local_now(now, tz).date()
    amount_paid = ZERO
    paid_today = False
    for payment in payments:
        amount_paid += payment.payload.total_amount
        if not payment.payload.is_onboarding and local_date(payment.created_at, tz) == today:
            paid_today = True

    installments_paid = len(payments)
    remaining_amount = max(ZERO, loan.total_payable - amount_paid)

    return CustomerLoanSummary(
        customer=customer,
        active_loan_event_id=active.event_id,
        loan_type=_loan_type(active),
        loan_amount=loan.loan_amount,
        total_payable=loan.total_payable,
        total_installments=loan.total_installments,
        installments_paid=installments_paid,
        amount_paid=amount_paid,
        remaining_amount=remaining_amount,
        remaining_installments=max(0, loan.total_installments - installments_paid),
        is_fully_paid=remaining_amount <= 0,
        paid_today=paid_today,
        has_loan=True,
    )


def get_customer_loan_sections(customer: Customer, events: Sequence[FinanceEvent]) -> list[LoanSection]:
    """One section per loan-creation event, most recent first.

    Only the latest loan is active. Earlier loans are closed as of the
    creation time of the loan that superseded them, whether or not they were
    repaid; a remaining balance is not carried forward.
    """
    relevant = customer_events(customer.id, events)
    loans = loan_events_oldest_first(customer.id, relevant)

    sections: list[LoanSection] = []
    for index, loan_event in enumerate(loans):
        loan = loan_event.payload
        payments = payments_for_loan(loan_event.event_id, relevant)
        amount_paid = sum((p.payload.total_amount for p in payments), ZERO)
        remaining = max(ZERO, loan.total_payable - amount_paid)

        superseded_by = loans[index + 1] if index + 1 < len(loans) else None
        is_active = superseded_by is None

        sections.append(
            LoanSection(
                loan_event=loan_event,
                loan_type=_loan_type(loan_event),
                loan_amount=loan.loan_amount,
                total_payable=loan.total_payable,
                total_installments=loan.total_installments,
                payments=payments,
                amount_paid=amount_paid,
                remaining_amount=remaining,
                installments_paid=len(payments),
                is_active=is_active,
                is_closed=not is_active or remaining <= 0,
                start_date=loan_event.created_at,
                closed_date=superseded_by.created_at if superseded_by is not None else None,
            )
        )

    sections.reverse()
    return sections


def sort_customer_summaries(summaries: Sequence[CustomerLoanSummary]) -> list[CustomerLoanSummary]:
    """Collection order: unpaid first, then not yet paid today, then serial number."""
    return sorted(
        summaries,
        key=lambda s: (s.is_fully_paid, s.paid_today, s.customer.serial_number),
    )


def search_customer_summaries(
    summaries: Sequence[CustomerLoanSummary],
    query: str,
) -> list[CustomerLoanSummary]:
    """Match on exact serial number, or substring of name, phone or village."""
    q = query.strip().lower()
    if not q:
        return list(summaries)

    serial = int(q) if q.isdigit() else None
    matches = []
    for summary in summaries:
        c = summary.customer
        if serial is not None and c.serial_number == serial:
            matches.append(summary)
        elif q in c.name.lower() or q in c.phone or q in c.village_name.lower():
            matches.append(summary)
    return matches


def group_by_village(
    villages: Sequence[Village],
    summaries: Sequence[CustomerLoanSummary],
    *,
    include_empty: bool = True,
) -> list[VillageGroup]:
    """Group summaries under their village; orphaned customers go to "Other"."""
    known = {v.id for v in villages}
    groups = [
        VillageGroup(
            village=v,
            name=v.name,
            customers=[s for s in summaries if s.customer.village_id == v.id],
        )
        for v in villages
    ]
    orphans = [s for s in summaries if s.customer.village_id not in known]
    if orphans:
        groups.append(VillageGroup(village=None, name="Other", customers=orphans))
    if not include_empty:
        groups = [g for g in groups if g.customers]
    return groups


def payment_mode(event: FinanceEvent) -> PaymentMode:
    if event.event_type is not EventType.INSTALLMENT_PAYMENT:
        return "cash"
    p = event.payload
    if p.online_amount > 0 and p.offline_amount > 0:
        return "mixed"
    if p.online_amount > 0:
        return "online"
    return "cash"
