"""Pydantic models for Khata."""

from .event import (
    LOAN_EVENT_TYPES,
    PAYLOAD_TYPES,
    SCHEMA_VERSION,
    AdjustmentPayload,
    CapitalAddedPayload,
    EventType,
    ExpensePayload,
    FinanceEvent,
    InstallmentPaymentPayload,
    NewLoanPayload,
    OnboardingBalancePayload,
    Payload,
    RenewLoanPayload,
    build_payload,
)
from .registry import Area, Customer, Village
from .views import (
    CustomerLoanSummary,
    DashboardData,
    DateFilter,
    DateFilterMode,
    LoanSection,
    LoanType,
    PaymentMode,
    VillageGroup,
)

__all__ = [
    # Events
    "EventType",
    "FinanceEvent",
    "Payload",
    "PAYLOAD_TYPES",
    "LOAN_EVENT_TYPES",
    "SCHEMA_VERSION",
    "build_payload",
    "OnboardingBalancePayload",
    "NewLoanPayload",
    "RenewLoanPayload",
    "InstallmentPaymentPayload",
    "ExpensePayload",
    "CapitalAddedPayload",
    "AdjustmentPayload",
    # Registry
    "Area",
    "Village",
    "Customer",
    # Views
    "DateFilter",
    "DateFilterMode",
    "DashboardData",
    "CustomerLoanSummary",
    "LoanSection",
    "LoanType",
    "PaymentMode",
    "VillageGroup",
]
