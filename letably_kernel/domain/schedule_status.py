"""
Status calculator -- schedule status as a pure function.

Responsibility:
    ``derive_status(amount_due, total_paid, due_date, today)`` is the only
    writer of ``payment_schedules.status`` and the only way reads compute a
    displayed status.  Same inputs, same output, in any order.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Rules:
    - total == 0                              -> pending
    - same sign, |total| <  |amount_due|      -> partial
    - same sign, |total| >= |amount_due|      -> paid
    - opposite sign to amount_due             -> pending
    - due_date < today and not paid           -> overdue

    Paid always wins over overdue.  The pending/partial distinction under an
    overdue display is kept by ``settlement_status``.  Over-settlement can
    only arise from an amount_due edit after payments were recorded; it is
    reported as paid.
"""

from datetime import date
from decimal import Decimal

from letably_kernel.domain.values import ScheduleStatus


def settlement_status(amount_due: Decimal, total_paid: Decimal) -> ScheduleStatus:
    """pending / partial / paid, ignoring dates."""
    if total_paid == 0:
        return ScheduleStatus.PENDING
    if (total_paid > 0) != (amount_due > 0):
        return ScheduleStatus.PENDING
    if abs(total_paid) >= abs(amount_due):
        return ScheduleStatus.PAID
    return ScheduleStatus.PARTIAL


def derive_status(
    amount_due: Decimal,
    total_paid: Decimal,
    due_date: date,
    today: date,
) -> ScheduleStatus:
    """Displayed status of a schedule as of ``today``."""
    settled = settlement_status(amount_due, total_paid)
    if settled is ScheduleStatus.PAID:
        return settled
    if due_date < today:
        return ScheduleStatus.OVERDUE
    return settled
