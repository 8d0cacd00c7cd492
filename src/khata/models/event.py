"""Pydantic models for finance ledger events.

Events are written as JSONL to <data>/events.jsonl with camelCase keys.
Never mutate or delete an event; corrections are new ADJUSTMENT_EVENT records.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 1


class EventType(str, Enum):
    """Types of events that can be appended to the ledger."""

    ONBOARDING_BALANCE = "ONBOARDING_BALANCE"
    NEW_LOAN = "NEW_LOAN"
    RENEW_LOAN = "RENEW_LOAN"
    INSTALLMENT_PAYMENT = "INSTALLMENT_PAYMENT"
    EXPENSE = "EXPENSE"
    CAPITAL_ADDED = "CAPITAL_ADDED"
    ADJUSTMENT_EVENT = "ADJUSTMENT_EVENT"


LOAN_EVENT_TYPES = (EventType.NEW_LOAN, EventType.RENEW_LOAN)


class _Payload(BaseModel):
    model_config = {
        "frozen": True,
        "extra": "forbid",
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class OnboardingBalancePayload(_Payload):
    amount: Decimal


class NewLoanPayload(_Payload):
    customer_id: str
    customer_name: str
    loan_amount: Decimal
    total_payable: Decimal
    total_installments: int


class RenewLoanPayload(_Payload):
    customer_id: str
    customer_name: str
    loan_amount: Decimal
    total_payable: Decimal
    total_installments: int
    previous_loan_event_id: str


class InstallmentPaymentPayload(_Payload):
    customer_id: str
    customer_name: str
    loan_event_id: str
    online_amount: Decimal
    offline_amount: Decimal
    total_amount: Decimal
    is_onboarding: bool = False


class ExpensePayload(_Payload):
    amount: Decimal
    description: str


class CapitalAddedPayload(_Payload):
    amount: Decimal
    description: str


class AdjustmentPayload(_Payload):
    reference_event_id: str
    amount: Decimal = Field(description="Signed; negative means a deduction")
    reason: str


Payload = Union[
    OnboardingBalancePayload,
    NewLoanPayload,
    RenewLoanPayload,
    InstallmentPaymentPayload,
    ExpensePayload,
    CapitalAddedPayload,
    AdjustmentPayload,
]

PAYLOAD_TYPES: dict[EventType, type[_Payload]] = {
    EventType.ONBOARDING_BALANCE: OnboardingBalancePayload,
    EventType.NEW_LOAN: NewLoanPayload,
    EventType.RENEW_LOAN: RenewLoanPayload,
    EventType.INSTALLMENT_PAYMENT: InstallmentPaymentPayload,
    EventType.EXPENSE: ExpensePayload,
    EventType.CAPITAL_ADDED: CapitalAddedPayload,
    EventType.ADJUSTMENT_EVENT: AdjustmentPayload,
}


def build_payload(event_type: EventType | str, data: Any) -> _Payload:
    """Validate raw payload data against the model for ``event_type``."""
    payload_cls = PAYLOAD_TYPES[EventType(event_type)]
    if isinstance(data, payload_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return payload_cls.model_validate(data)


class FinanceEvent(BaseModel):
    """Append-only finance ledger event.

    The payload model is selected by ``event_type``; a payload that does not
    match its event type is rejected at validation time.
    """

    event_id: str = Field(description="Unique event identifier (uuid4)")
    schema_version: int = Field(default=SCHEMA_VERSION)
    account_id: str = Field(default="default")
    area_id: str = Field(description="Owning area")
    created_by: str = Field(default="owner")
    device_id: str = Field(description="Stable per-installation identifier")
    created_at: datetime = Field(description="Creation timestamp (ISO8601 UTC)")
    synced_at: datetime | None = Field(default=None)
    event_type: EventType
    payload: Payload

    model_config = {
        "frozen": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    @model_validator(mode="before")
    @classmethod
    def _select_payload_model(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        event_type = data.get("eventType", data.get("event_type"))
        if event_type is None or "payload" not in data:
            return data
        try:
            kind = EventType(event_type)
        except ValueError:
            # Let field validation report the bad event type
            return data
        return {**data, "payload": build_payload(kind, data["payload"])}

    @field_validator("created_at", "synced_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_payload_matches(self) -> "FinanceEvent":
        expected = PAYLOAD_TYPES[self.event_type]
        if type(self.payload) is not expected:
            raise ValueError(
                f"{self.event_type.value} requires {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )
        return self

    @property
    def customer_id(self) -> str | None:
        """Customer referenced by the payload, if this payload type carries one."""
        return getattr(self.payload, "customer_id", None)

    @property
    def is_loan(self) -> bool:
        return self.event_type in LOAN_EVENT_TYPES

    @property
    def is_onboarding_payment(self) -> bool:
        return (
            self.event_type is EventType.INSTALLMENT_PAYMENT
            and self.payload.is_onboarding
        )

    def to_json_dict(self) -> dict:
        """Serialize with the on-disk camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)
