"""
Input validation for ledger operations.

Pure checks that turn raw caller values into ledger values or raise the
InvalidInputError naming the field.  Services call these before touching
the database, so a bad request never takes a row lock.
"""

from datetime import MAXYEAR, MINYEAR, date, datetime
from decimal import Decimal
from typing import Any

from letably_kernel.domain.money import MAX_AMOUNT, format_money, to_money
from letably_kernel.domain.values import PAYMENT_TYPES
from letably_kernel.exceptions import (
    InvalidInputError,
    InvalidPaymentTypeError,
    MissingFieldError,
    ZeroAmountError,
)


def require_amount(value: Any, field: str) -> Decimal:
    """A signed, non-zero money amount."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingFieldError(field)
    try:
        amount = to_money(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{field} must be a money amount: {exc}") from exc
    if amount == 0:
        raise ZeroAmountError(field)
    if abs(amount) > MAX_AMOUNT:
        raise InvalidInputError(
            f"{field} cannot exceed {format_money(MAX_AMOUNT)} either way"
        )
    return amount


def require_date(value: Any, field: str) -> date:
    """A calendar date; ISO strings are accepted."""
    if value is None or value == "":
        raise MissingFieldError(field)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise InvalidInputError(f"{field} must be an ISO date (YYYY-MM-DD)") from None
    raise InvalidInputError(f"{field} must be a date")


def require_payment_type(value: Any) -> str:
    if value is None or value == "":
        raise MissingFieldError("payment_type")
    if value not in PAYMENT_TYPES:
        raise InvalidPaymentTypeError(str(value), PAYMENT_TYPES)
    return str(value)


def require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise MissingFieldError(field)
    return str(value).strip()


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_month(year: Any, month: Any) -> date:
    """The first day of a calendar month given as integer year and month."""
    if isinstance(year, bool) or not isinstance(year, int):
        raise InvalidInputError(f"year must be an integer, got {year!r}")
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidInputError(f"month must be between 1 and 12, got {month!r}")
    if not MINYEAR <= year <= MAXYEAR:
        raise InvalidInputError(f"year must be between {MINYEAR} and {MAXYEAR}, got {year}")
    return date(year, month, 1)
