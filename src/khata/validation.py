"""Input parsing for ledger mutations.

Everything here raises InvalidInputError before any state is touched.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .exceptions import InvalidInputError

CENT = Decimal("0.01")
# Largest magnitude accepted for any amount
MAX_AMOUNT = Decimal("1e15")


def money(x: Any) -> Decimal:
    """Return a 2-decimal Decimal with HALF_UP rounding."""
    if x is None:
        x = 0
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a finite decimal below MAX_AMOUNT from str / int / float / Decimal."""
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(field, "must be a number")
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInputError(field, f"not a number: {value!r}") from None
    if not parsed.is_finite():
        raise InvalidInputError(field, f"not a number: {value!r}")
    if abs(parsed) >= MAX_AMOUNT:
        raise InvalidInputError(field, "is too large")
    return parsed


def positive_amount(value: Any, field: str) -> Decimal:
    amount = parse_decimal(value, field)
    if amount <= 0:
        raise InvalidInputError(field, "must be greater than zero")
    return amount


def non_negative_amount(value: Any, field: str) -> Decimal:
    amount = parse_decimal(value, field)
    if amount < 0:
        raise InvalidInputError(field, "must not be negative")
    return amount


def nonzero_amount(value: Any, field: str) -> Decimal:
    amount = parse_decimal(value, field)
    if amount == 0:
        raise InvalidInputError(field, "must not be zero")
    return amount


def positive_count(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(field, "must be a whole number")
    try:
        count = int(str(value).strip())
    except ValueError:
        raise InvalidInputError(field, f"not a whole number: {value!r}") from None
    if count <= 0:
        raise InvalidInputError(field, "must be greater than zero")
    return count


def required_text(value: Any, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise InvalidInputError(field, "must not be empty")
    return text


def split_evenly(total: Decimal, parts: int) -> list[Decimal]:
    """Split ``total`` into ``parts`` cent-rounded shares summing exactly to it.

    The rounding remainder goes to the last share.
    """
    share = money(total / parts)
    shares = [share] * (parts - 1)
    shares.append(total - share * (parts - 1))
    return shares
