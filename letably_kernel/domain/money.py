"""
Money helpers -- pounds and pence as Decimal.

All ledger amounts are ``Decimal`` quantized to two places with
ROUND_HALF_UP.  Floats are rejected outright: a float that reaches the
ledger has already lost precision.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

PENNY = Decimal("0.01")
ZERO = Decimal("0.00")

# payment_schedules.amount_due and payments.amount are NUMERIC(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert ``value`` to a two-place Decimal.

    Raises:
        TypeError: for floats and other non-numeric types.
        ValueError: for strings that are not numbers, or non-finite values.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money must be Decimal, int or str, not {type(value).__name__}")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, str)):
        try:
            d = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise ValueError(f"Not a money amount: {value!r}") from None
    else:
        raise TypeError(f"Money must be Decimal, int or str, not {type(value).__name__}")
    if not d.is_finite():
        raise ValueError(f"Not a money amount: {value!r}")
    try:
        return d.quantize(PENNY, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount out of range: {value!r}") from None


def round_money(value: Decimal) -> Decimal:
    """Round an intermediate Decimal result to pennies, half-up."""
    return value.quantize(PENNY, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, symbol: str = "£") -> str:
    """Format as ``£1,234.50``; negative amounts render as ``-£50.00``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(round_money(amount)):,.2f}"
