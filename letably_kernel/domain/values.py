"""
Value enums shared by the domain, the ORM models and the services.

Stored columns hold the ``.value`` strings; every enum is a ``str`` subclass
so a loaded column compares equal to its member.
"""

from enum import Enum


class TenancyStatus(str, Enum):
    """Lifecycle of a tenancy.  Ledger writes require ACTIVE."""

    PENDING = "pending"
    AWAITING_SIGNATURES = "awaiting_signatures"
    ACTIVE = "active"
    EXPIRED = "expired"


class PaymentOption(str, Enum):
    """How a member's rent is split into schedules."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    MONTHLY_TO_QUARTERLY = "monthly_to_quarterly"
    UPFRONT = "upfront"


class PaymentType(str, Enum):
    RENT = "rent"
    DEPOSIT = "deposit"
    UTILITIES = "utilities"
    FEES = "fees"
    OTHER = "other"


class ScheduleType(str, Enum):
    AUTOMATED = "automated"
    MANUAL = "manual"


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


PAYMENT_TYPES: tuple[str, ...] = tuple(t.value for t in PaymentType)
