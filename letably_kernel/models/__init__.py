"""ORM models.  Importing this package registers every table on Base.metadata."""

from letably_kernel.domain.values import (
    PAYMENT_TYPES,
    PaymentOption,
    PaymentType,
    ScheduleStatus,
    ScheduleType,
    TenancyStatus,
)
from letably_kernel.models.agency import Agency
from letably_kernel.models.payment import Payment, PaymentSchedule
from letably_kernel.models.property import Landlord, Property
from letably_kernel.models.tenancy import Tenancy, TenancyMember

__all__ = [
    "Agency",
    "Landlord",
    "Property",
    "Tenancy",
    "TenancyMember",
    "TenancyStatus",
    "PaymentOption",
    "PaymentSchedule",
    "Payment",
    "PaymentType",
    "ScheduleType",
    "ScheduleStatus",
    "PAYMENT_TYPES",
]
