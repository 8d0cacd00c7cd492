"""Ledger mutation and query API used by the CLI and other front ends.

Mutations validate their input, then append events; views are recomputed
from the full event log of the selected area on every call.
"""

import logging
from datetime import datetime, tzinfo
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from .config import KhataConfig
from .dashboard import calculate_dashboard
from .exceptions import (
    CustomerNotFoundError,
    InvalidInputError,
    NoAreaSelectedError,
    VillageNotFoundError,
)
from .ledger import Clock, EventStore, JsonlEventStore, newest_first
from .loans import (
    customer_events,
    get_customer_loan_sections,
    get_customer_loan_summary,
    group_by_village,
    search_customer_summaries,
    sort_customer_summaries,
)
from .models.event import EventType, FinanceEvent
from .models.registry import Area, Customer, Village
from .models.views import CustomerLoanSummary, DashboardData, DateFilter, LoanSection, VillageGroup
from .paths import DataPaths
from .registry import AreaStore, CustomerStore, VillageStore
from .state import AppState
from .validation import (
    non_negative_amount,
    nonzero_amount,
    parse_decimal,
    positive_amount,
    positive_count,
    required_text,
    split_evenly,
)

logger = logging.getLogger(__name__)


class Bookkeeper:
    """Entry point for every ledger operation on one data directory."""

    def __init__(
        self,
        events: EventStore,
        areas: AreaStore,
        villages: VillageStore,
        customers: CustomerStore,
        state: Optional[AppState] = None,
        state_file: Optional[Path] = None,
        tz: Optional[tzinfo] = None,
        now: Optional[Clock] = None,
    ):
        self.event_store = events
        self.areas = areas
        self.villages_store = villages
        self.customers_store = customers
        self.state = state or AppState(device_id=events.device_id)
        self.state_file = state_file
        self.tz = tz
        # Reference time for "today" views; None means the real clock
        self.now = now

    @classmethod
    def open(cls, config: KhataConfig, clock: Optional[Clock] = None) -> "Bookkeeper":
        """Open the books stored under ``config.data_path``."""
        paths = DataPaths.from_config(config)
        state = AppState.load_or_create(paths.state_file)
        kwargs: dict[str, Any] = {"clock": clock} if clock else {}
        return cls(
            events=JsonlEventStore(
                paths.events_file,
                device_id=state.device_id,
                account_id=config.account_id,
                created_by=config.created_by,
                **kwargs,
            ),
            areas=AreaStore(paths.areas_file, **kwargs),
            villages=VillageStore(paths.villages_file, **kwargs),
            customers=CustomerStore(paths.customers_file, **kwargs),
            state=state,
            state_file=paths.state_file,
            tz=config.tzinfo(),
            now=clock,
        )

    # ------------------------------------------------------------------
    # Area selection
    # ------------------------------------------------------------------

    @property
    def selected_area_id(self) -> Optional[str]:
        return self.state.selected_area_id

    @property
    def selected_area(self) -> Optional[Area]:
        if self.selected_area_id is None:
            return None
        return self.areas.get(self.selected_area_id)

    def select_area(self, area_id: Optional[str]) -> None:
        self.state.selected_area_id = area_id
        if self.state_file is not None:
            self.state.save(self.state_file)

    def _require_area(self, area_id: Optional[str] = None) -> str:
        area_id = area_id or self.selected_area_id
        if not area_id:
            raise NoAreaSelectedError()
        return area_id

    def _require_customer(self, customer_id: str, area_id: str) -> Customer:
        customer = self.customers_store.get(customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        if customer.area_id != area_id:
            raise InvalidInputError("customer_id", f"customer {customer_id} belongs to another area")
        return customer

    def _require_loan(self, loan_event_id: str, customer: Customer, field: str) -> FinanceEvent:
        loan = self.event_store.get(loan_event_id)
        if (
            loan is None
            or not loan.is_loan
            or loan.customer_id != customer.id
            or loan.area_id != customer.area_id
        ):
            raise InvalidInputError(field, f"no loan {loan_event_id} for this customer")
        return loan

    def _current_time(self) -> Optional[datetime]:
        return self.now() if self.now is not None else None

    # ------------------------------------------------------------------
    # Registry mutations
    # ------------------------------------------------------------------

    def create_area(self, name: str, is_onboarding: bool = False, opening_balance: Any = None) -> Area:
        """Create an area, recording its opening cash position when onboarding."""
        name = required_text(name, "name")
        balance: Optional[Decimal] = None
        if is_onboarding and opening_balance not in (None, ""):
            balance = non_negative_amount(opening_balance, "opening_balance")

        area = self.areas.create(name, is_onboarding)
        if balance is not None and balance > 0:
            self.event_store.append(area.id, EventType.ONBOARDING_BALANCE, {"amount": balance})
        if not self.selected_area_id:
            self.select_area(area.id)
        return area

    def delete_area(self, area_id: str) -> None:
        """Delete an area with its villages, customers and events.

        The area record goes last so a failed purge can be retried.
        """
        events = self.event_store.delete_area(area_id)
        customers = self.customers_store.delete_by_area(area_id)
        villages = self.villages_store.delete_by_area(area_id)
        self.areas.delete(area_id)
        logger.info(
            f"Deleted area {area_id}: {villages} village(s), {customers} customer(s), {events} event(s)"
        )
        if self.selected_area_id == area_id:
            remaining = self.areas.all()
            self.select_area(remaining[0].id if remaining else None)

    def create_village(self, name: str, area_id: Optional[str] = None) -> Village:
        area_id = self._require_area(area_id)
        return self.villages_store.create(area_id, required_text(name, "name"))

    def delete_village(self, village_id: str) -> None:
        # Customers stay and show up under "Other"
        self.villages_store.delete(village_id)

    def create_customer(
        self,
        village_id: str,
        name: str,
        phone: str = "",
        area_id: Optional[str] = None,
    ) -> Customer:
        """Create a customer with the village's next serial number."""
        area_id = self._require_area(area_id)
        name = required_text(name, "name")
        village = self.villages_store.get(village_id)
        if village is None or village.area_id != area_id:
            raise VillageNotFoundError(village_id)

        serial = self.villages_store.allocate_serial(village_id)
        return self.customers_store.create(
            area_id=area_id,
            village_id=village.id,
            village_name=village.name,
            name=name,
            phone=(phone or "").strip(),
            serial_number=serial,
        )

    def delete_customer(self, customer_id: str) -> None:
        # Historical events keep referencing the customer by id
        self.customers_store.delete(customer_id)

    # ------------------------------------------------------------------
    # Ledger mutations
    # ------------------------------------------------------------------

    def _loan_terms(self, loan_amount: Any, total_payable: Any, total_installments: Any) -> dict:
        principal = positive_amount(loan_amount, "loan_amount")
        payable = positive_amount(total_payable, "total_payable")
        installments = positive_count(total_installments, "total_installments")
        if payable < principal:
            raise InvalidInputError("total_payable", "must not be less than loan_amount")
        return {
            "loan_amount": principal,
            "total_payable": payable,
            "total_installments": installments,
        }

    def create_new_loan(
        self,
        customer_id: str,
        loan_amount: Any,
        total_payable: Any,
        total_installments: Any,
        backfill_installments: Any = None,
        backfill_amount: Any = None,
    ) -> list[FinanceEvent]:
        """Give a new loan, optionally with already-paid installments.

        Backfilled installments are recorded as cash payments flagged
        ``is_onboarding`` and written in the same atomic batch as the loan.

        Returns:
            The NEW_LOAN event followed by any synthetic payments
        """
        area_id = self._require_area()
        customer = self._require_customer(customer_id, area_id)
        terms = self._loan_terms(loan_amount, total_payable, total_installments)

        # Backfill needs both values; a zero count or amount means none
        shares: list[Decimal] = []
        if backfill_installments not in (None, "") and backfill_amount not in (None, ""):
            paid = non_negative_amount(backfill_amount, "backfill_amount")
            if paid > 0 and parse_decimal(backfill_installments, "backfill_installments") != 0:
                count = positive_count(backfill_installments, "backfill_installments")
                shares = split_evenly(paid, count)

        loan_payload = {"customer_id": customer.id, "customer_name": customer.name, **terms}
        if not shares:
            return [self.event_store.append(area_id, EventType.NEW_LOAN, loan_payload)]

        # Payments must reference the loan's id, so build the loan event first
        # and write it together with its payments.
        loan_event = self.event_store.build_event(area_id, EventType.NEW_LOAN, loan_payload)
        payments = [
            self.event_store.build_event(
                area_id,
                EventType.INSTALLMENT_PAYMENT,
                {
                    "customer_id": customer.id,
                    "customer_name": customer.name,
                    "loan_event_id": loan_event.event_id,
                    "online_amount": Decimal("0"),
                    "offline_amount": share,
                    "total_amount": share,
                    "is_onboarding": True,
                },
            )
            for share in shares
        ]
        batch = [loan_event, *payments]
        self.event_store.commit(batch)
        logger.info(f"Onboarded loan {loan_event.event_id} with {len(payments)} backfilled payment(s)")
        return batch

    def renew_loan(
        self,
        customer_id: str,
        previous_loan_event_id: str,
        loan_amount: Any,
        total_payable: Any,
        total_installments: Any,
    ) -> FinanceEvent:
        """Give a renewal loan; the previous loan's remaining balance is not carried over."""
        area_id = self._require_area()
        customer = self._require_customer(customer_id, area_id)
        terms = self._loan_terms(loan_amount, total_payable, total_installments)
        previous = self._require_loan(previous_loan_event_id, customer, "previous_loan_event_id")

        return self.event_store.append(
            area_id,
            EventType.RENEW_LOAN,
            {
                "customer_id": customer.id,
                "customer_name": customer.name,
                "previous_loan_event_id": previous.event_id,
                **terms,
            },
        )

    def make_payment(
        self,
        customer_id: str,
        loan_event_id: str,
        online_amount: Any = 0,
        offline_amount: Any = 0,
    ) -> FinanceEvent:
        """Record an installment; overpayment is allowed."""
        area_id = self._require_area()
        customer = self._require_customer(customer_id, area_id)
        online = non_negative_amount(online_amount or 0, "online_amount")
        offline = non_negative_amount(offline_amount or 0, "offline_amount")
        if online + offline <= 0:
            raise InvalidInputError("amount", "payment must be greater than zero")
        self._require_loan(loan_event_id, customer, "loan_event_id")

        return self.event_store.append(
            area_id,
            EventType.INSTALLMENT_PAYMENT,
            {
                "customer_id": customer.id,
                "customer_name": customer.name,
                "loan_event_id": loan_event_id,
                "online_amount": online,
                "offline_amount": offline,
                "total_amount": online + offline,
            },
        )

    def add_expense(self, amount: Any, description: str = "") -> FinanceEvent:
        area_id = self._require_area()
        value = positive_amount(amount, "amount")
        return self.event_store.append(
            area_id, EventType.EXPENSE, {"amount": value, "description": (description or "").strip()}
        )

    def add_capital(self, amount: Any, description: str = "") -> FinanceEvent:
        area_id = self._require_area()
        value = positive_amount(amount, "amount")
        return self.event_store.append(
            area_id, EventType.CAPITAL_ADDED, {"amount": value, "description": (description or "").strip()}
        )

    def create_adjustment(self, reference_event_id: str, amount: Any, reason: str) -> FinanceEvent:
        """Correct an earlier event with a signed amount; the original is untouched."""
        area_id = self._require_area()
        value = nonzero_amount(amount, "amount")
        reason = required_text(reason, "reason")
        reference = self.event_store.get(reference_event_id)
        if reference is None or reference.area_id != area_id:
            raise InvalidInputError("reference_event_id", f"unknown event {reference_event_id}")

        return self.event_store.append(
            area_id,
            EventType.ADJUSTMENT_EVENT,
            {"reference_event_id": reference_event_id, "amount": value, "reason": reason},
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def events(self) -> list[FinanceEvent]:
        """Events of the selected area, newest first; empty when none is selected."""
        if not self.selected_area_id:
            return []
        return self.event_store.list_by_area(self.selected_area_id)

    def villages(self) -> list[Village]:
        if not self.selected_area_id:
            return []
        return self.villages_store.by_area(self.selected_area_id)

    def customers(self) -> list[Customer]:
        if not self.selected_area_id:
            return []
        return self.customers_store.by_area(self.selected_area_id)

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.customers_store.get(customer_id)

    def dashboard(self, date_filter: Optional[DateFilter] = None) -> DashboardData:
        return calculate_dashboard(self.events(), date_filter, now=self._current_time(), tz=self.tz)

    def customer_summaries(self) -> list[CustomerLoanSummary]:
        events = self.events()
        now = self._current_time()
        return sort_customer_summaries(
            [get_customer_loan_summary(c, events, now=now, tz=self.tz) for c in self.customers()]
        )

    def customer_summary(self, customer_id: str) -> Optional[CustomerLoanSummary]:
        customer = self.get_customer(customer_id)
        if customer is None:
            return None
        return get_customer_loan_summary(
            customer,
            self.event_store.list_by_customer(customer_id),
            now=self._current_time(),
            tz=self.tz,
        )

    def customer_sections(self, customer_id: str) -> list[LoanSection]:
        customer = self.get_customer(customer_id)
        if customer is None:
            return []
        return get_customer_loan_sections(customer, self.event_store.list_by_customer(customer_id))

    def customer_events(self, customer_id: str) -> list[FinanceEvent]:
        """History of one customer, newest first."""
        return newest_first(customer_events(customer_id, self.event_store.all_events()))

    def search_customers(self, query: str) -> list[CustomerLoanSummary]:
        return search_customer_summaries(self.customer_summaries(), query)

    def village_groups(self, query: str = "") -> list[VillageGroup]:
        return group_by_village(
            self.villages(),
            self.search_customers(query),
            include_empty=not query.strip(),
        )
