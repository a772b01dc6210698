"""
Balance -- the one sign-aware comparison for schedule settlement.

Responsibility:
    Decides whether a payment (new or edited) keeps a schedule's total paid
    within its settlement bounds, and builds the rejection naming the exact
    violation.  Every ledger write goes through ``check_payment_fits``; no
    call site compares signs itself.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    After any accepted mutation the total paid lies in
    ``[min(0, amount_due), max(0, amount_due)]``:
      - charge (amount_due > 0): 0 <= total <= amount_due
      - credit (amount_due < 0): amount_due <= total <= 0

Failure modes:
    - BalanceExceededError carrying the remaining balance before the
      payment (amount_due minus every other payment).
"""

from decimal import Decimal

from letably_kernel.domain.money import ZERO, format_money
from letably_kernel.exceptions import BalanceExceededError


def remaining_balance(amount_due: Decimal, total_paid: Decimal) -> Decimal:
    """Signed amount still to settle.  Negative for an outstanding credit."""
    return amount_due - total_paid


def settlement_bounds(amount_due: Decimal) -> tuple[Decimal, Decimal]:
    """Inclusive (low, high) range the total paid must stay within."""
    return min(ZERO, amount_due), max(ZERO, amount_due)


def check_payment_fits(
    amount_due: Decimal,
    other_payments_total: Decimal,
    amount: Decimal,
    *,
    editing: bool = False,
    currency_symbol: str = "£",
) -> Decimal:
    """
    Validate that ``amount`` on top of ``other_payments_total`` settles
    within bounds and return the new total.

    Args:
        amount_due: Schedule amount (signed, non-zero).
        other_payments_total: Sum of every payment on the schedule except
            the one being edited (or all of them for a new payment).
        amount: The new or edited payment amount.
        editing: Word the rejection for an edit rather than a new record.

    Raises:
        BalanceExceededError: the new total would leave the bounds.
    """
    remaining = remaining_balance(amount_due, other_payments_total)
    new_total = other_payments_total + amount
    low, high = settlement_bounds(amount_due)

    if low <= new_total <= high:
        return new_total

    def fmt(value: Decimal) -> str:
        return format_money(value, currency_symbol)

    is_credit = amount_due < 0
    overshoots = new_total < low if is_credit else new_total > high

    if overshoots and editing:
        message = (
            f"Total payments ({fmt(new_total)}) would exceed "
            f"amount due ({fmt(amount_due)})"
        )
    elif overshoots and is_credit:
        message = (
            f"Refund amount ({fmt(abs(amount))}) exceeds "
            f"remaining credit ({fmt(abs(remaining))})"
        )
    elif overshoots:
        message = (
            f"Payment amount ({fmt(amount)}) exceeds "
            f"remaining balance ({fmt(remaining)})"
        )
    elif is_credit:
        message = (
            f"Refund amount ({fmt(amount)}) would take the total refunded "
            f"({fmt(new_total)}) past zero"
        )
    else:
        message = (
            f"Payment amount ({fmt(amount)}) would take the total paid "
            f"({fmt(new_total)}) below zero"
        )

    raise BalanceExceededError(
        amount=amount,
        amount_due=amount_due,
        remaining_balance=remaining,
        message=message,
    )
