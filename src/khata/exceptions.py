"""Typed exceptions for the Khata ledger.

    KhataError (base)
    |
    +-- NoAreaSelectedError
    +-- InvalidInputError
    +-- NotFoundError
        +-- VillageNotFoundError
        +-- CustomerNotFoundError

Validation errors are raised before any event is appended. Plain lookups
return None instead of raising; only operations that cannot proceed without
the record raise a NotFoundError.
"""


class KhataError(Exception):
    """Base exception for all Khata errors."""

    code: str = "KHATA_ERROR"


class NoAreaSelectedError(KhataError):
    """A ledger mutation needs an area but none is selected."""

    code: str = "NO_AREA_SELECTED"

    def __init__(self) -> None:
        super().__init__("No area selected")


class InvalidInputError(KhataError):
    """Malformed input rejected before any state change."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class NotFoundError(KhataError):
    """Base for records an operation cannot proceed without."""

    code: str = "NOT_FOUND"


class VillageNotFoundError(NotFoundError):
    code: str = "VILLAGE_NOT_FOUND"

    def __init__(self, village_id: str):
        self.village_id = village_id
        super().__init__(f"Village not found: {village_id}")


class CustomerNotFoundError(NotFoundError):
    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")
