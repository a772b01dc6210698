"""
Domain -- pure functional core of the ledger kernel.

Nothing in this package performs I/O (SystemClock aside) or imports the ORM
at runtime.  Services and selectors feed it plain values and persist what it
returns.
"""

from letably_kernel.domain.balance import (
    check_payment_fits,
    remaining_balance,
    settlement_bounds,
)
from letably_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from letably_kernel.domain.money import format_money, to_money
from letably_kernel.domain.schedule_status import derive_status, settlement_status
from letably_kernel.domain.values import (
    PAYMENT_TYPES,
    PaymentOption,
    PaymentType,
    ScheduleStatus,
    ScheduleType,
    TenancyStatus,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "to_money",
    "format_money",
    "remaining_balance",
    "settlement_bounds",
    "check_payment_fits",
    "derive_status",
    "settlement_status",
    "PAYMENT_TYPES",
    "PaymentOption",
    "PaymentType",
    "ScheduleStatus",
    "ScheduleType",
    "TenancyStatus",
]
