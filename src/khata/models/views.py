"""Pydantic models for views derived from the event log.

None of these are persisted; every view is recomputed from the full log.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .event import FinanceEvent
from .registry import Customer, Village

ZERO = Decimal("0")

DateFilterMode = Literal["today", "yesterday", "custom", "range", "all"]
LoanType = Literal["NEW", "RENEWED"]
PaymentMode = Literal["cash", "online", "mixed"]


class DateFilter(BaseModel):
    """Selection of a creation-time window over the event log."""

    mode: DateFilterMode = "all"
    custom_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    model_config = {"frozen": True}


class DashboardData(BaseModel):
    """Money-flow snapshot over a set of events."""

    opening_balance: Decimal = ZERO
    total_given: Decimal = ZERO
    total_given_new: Decimal = ZERO
    total_given_renewed: Decimal = ZERO
    total_payable_new: Decimal = ZERO
    total_payable_renewed: Decimal = ZERO
    total_collected_online: Decimal = ZERO
    total_collected_offline: Decimal = ZERO
    total_collected: Decimal = ZERO
    vk: Decimal = Field(default=ZERO, description="Margin: payable minus principal")
    vk_new: Decimal = ZERO
    vk_renewed: Decimal = ZERO
    expenses: Decimal = ZERO
    capital_added: Decimal = ZERO
    adjustments: Decimal = ZERO
    closing_balance: Decimal = ZERO

    model_config = {"frozen": True}


class CustomerLoanSummary(BaseModel):
    """Current loan state of one customer."""

    customer: Customer
    active_loan_event_id: Optional[str] = None
    loan_type: Optional[LoanType] = None
    loan_amount: Decimal = ZERO
    total_payable: Decimal = ZERO
    total_installments: int = 0
    installments_paid: int = 0
    amount_paid: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    remaining_installments: int = 0
    is_fully_paid: bool = True
    paid_today: bool = False
    has_loan: bool = False

    model_config = {"frozen": True}

    @property
    def installment_amount(self) -> Decimal:
        if self.total_installments <= 0:
            return ZERO
        return self.total_payable / self.total_installments

    @property
    def progress_percent(self) -> Decimal:
        if self.total_payable <= 0:
            return ZERO
        return min(Decimal(100), self.amount_paid / self.total_payable * 100)


class LoanSection(BaseModel):
    """One loan-creation event and the payments applied against it."""

    loan_event: FinanceEvent
    loan_type: LoanType
    loan_amount: Decimal
    total_payable: Decimal
    total_installments: int
    payments: list[FinanceEvent] = Field(default_factory=list)
    amount_paid: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    installments_paid: int = 0
    is_active: bool = False
    is_closed: bool = False
    start_date: datetime
    closed_date: Optional[datetime] = None

    model_config = {"frozen": True}

    @property
    def is_fully_paid(self) -> bool:
        return self.remaining_amount <= 0


class VillageGroup(BaseModel):
    """Customer summaries grouped under their village."""

    village: Optional[Village] = None
    name: str
    customers: list[CustomerLoanSummary] = Field(default_factory=list)

    model_config = {"frozen": True}
