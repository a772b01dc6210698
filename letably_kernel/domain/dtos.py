"""
DTOs -- immutable data leaving the ledger.

Responsibility:
    Frozen value objects returned by services and selectors: the enriched
    schedule ``{...schedule, amount_paid, status, payments}``, listing pages
    with their overdue summary, tenancy statistics, status transition events
    for the notification layer, and the resolved tenant context.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model`` converters are called
    from the service and selector layers only.

Invariants enforced:
    - Callers never receive ORM entities, so nothing outside a transaction
      can lazily load (or mutate) ledger rows.
    - ``EnrichedSchedule.status`` is derived by the status calculator at
      read time; ``stored_status`` is the cached column as written by the
      last mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from letably_kernel.domain.balance import remaining_balance
from letably_kernel.domain.money import ZERO
from letably_kernel.domain.schedule_status import derive_status, settlement_status
from letably_kernel.domain.values import ScheduleStatus

if TYPE_CHECKING:
    from letably_kernel.models.payment import Payment as PaymentModel
    from letably_kernel.models.payment import PaymentSchedule as ScheduleModel


@dataclass(frozen=True)
class PaymentInfo:
    """One recorded payment as shown in a schedule's history."""

    id: UUID
    amount: Decimal
    payment_date: date
    payment_reference: str | None
    created_at: datetime | None

    @classmethod
    def from_model(cls, payment: PaymentModel) -> PaymentInfo:
        return cls(
            id=payment.id,
            amount=payment.amount,
            payment_date=payment.payment_date,
            payment_reference=payment.payment_reference,
            created_at=payment.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "amount": str(self.amount),
            "payment_date": self.payment_date.isoformat(),
            "payment_reference": self.payment_reference,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _naive_utc(value: datetime | None) -> datetime:
    # SQLite hands back naive timestamps; compare everything as naive UTC
    if value is None:
        return datetime.min
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _history_key(payment: PaymentInfo) -> tuple:
    return (payment.payment_date, _naive_utc(payment.created_at))


@dataclass(frozen=True)
class EnrichedSchedule:
    """A schedule with its payments, total paid and derived status."""

    id: UUID
    agency_id: UUID
    tenancy_id: UUID
    tenancy_member_id: UUID
    payment_type: str
    description: str | None
    due_date: date
    amount_due: Decimal
    schedule_type: str
    stored_status: str
    status: ScheduleStatus
    amount_paid: Decimal
    remaining_balance: Decimal
    payments: tuple[PaymentInfo, ...]
    covers_from: date | None = None
    covers_to: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Listing context, filled by the reporting queries
    tenant_name: str | None = None
    property_address: str | None = None
    tenancy_status: str | None = None

    @classmethod
    def build(
        cls,
        schedule: ScheduleModel,
        payments: list[PaymentModel],
        today: date,
        **context: Any,
    ) -> EnrichedSchedule:
        infos = tuple(
            sorted(
                (PaymentInfo.from_model(p) for p in payments),
                key=_history_key,
                reverse=True,
            )
        )
        total = sum((p.amount for p in infos), ZERO)
        return cls(
            id=schedule.id,
            agency_id=schedule.agency_id,
            tenancy_id=schedule.tenancy_id,
            tenancy_member_id=schedule.tenancy_member_id,
            payment_type=schedule.payment_type,
            description=schedule.description,
            due_date=schedule.due_date,
            amount_due=schedule.amount_due,
            schedule_type=schedule.schedule_type,
            stored_status=schedule.status,
            status=derive_status(schedule.amount_due, total, schedule.due_date, today),
            amount_paid=total,
            remaining_balance=remaining_balance(schedule.amount_due, total),
            payments=infos,
            covers_from=schedule.covers_from,
            covers_to=schedule.covers_to,
            created_at=schedule.created_at,
            updated_at=schedule.updated_at,
            **context,
        )

    @property
    def settlement(self) -> ScheduleStatus:
        """pending/partial/paid without the overdue overlay."""
        return settlement_status(self.amount_due, self.amount_paid)

    @property
    def is_credit(self) -> bool:
        return self.amount_due < 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": str(self.id),
            "agency_id": str(self.agency_id),
            "tenancy_id": str(self.tenancy_id),
            "tenancy_member_id": str(self.tenancy_member_id),
            "payment_type": self.payment_type,
            "description": self.description,
            "due_date": self.due_date.isoformat(),
            "amount_due": str(self.amount_due),
            "schedule_type": self.schedule_type,
            "status": self.status.value,
            "amount_paid": str(self.amount_paid),
            "remaining_balance": str(self.remaining_balance),
            "payments": [p.to_dict() for p in self.payments],
            "covers_from": self.covers_from.isoformat() if self.covers_from else None,
            "covers_to": self.covers_to.isoformat() if self.covers_to else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        for key in ("tenant_name", "property_address", "tenancy_status"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class StatusTransition:
    """
    A stored status change, handed to the notification layer after commit.

    ``cause`` names the ledger operation (payment_recorded, payment_updated,
    payment_deleted, schedule_reverted, schedule_amount_updated).
    """

    agency_id: UUID
    schedule_id: UUID
    previous_status: str
    new_status: str
    cause: str


@dataclass(frozen=True)
class ScheduleFilter:
    """Reporting filters for the agency-wide schedule listing."""

    year: int | None = None
    month: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    property_id: UUID | None = None
    landlord_id: UUID | None = None
    tenancy_id: UUID | None = None


@dataclass(frozen=True)
class OverdueSummary:
    """Agency-wide overdue figures, independent of the listing filters."""

    overdue: int = 0
    overdue_previous_months: int = 0
    overdue_amount: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "overdue": self.overdue,
            "overdue_previous_months": self.overdue_previous_months,
            "overdue_amount": str(self.overdue_amount),
        }


@dataclass(frozen=True)
class SchedulePage:
    items: tuple[EnrichedSchedule, ...]
    page: int
    limit: int
    total: int
    summary: OverdueSummary = field(default_factory=OverdueSummary)

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.total else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedules": [s.to_dict() for s in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "total_pages": self.total_pages,
            },
            "summary": {"total": len(self.items), **self.summary.to_dict()},
        }


@dataclass(frozen=True)
class TenancyPaymentStats:
    """Counts by displayed status plus money totals for one tenancy."""

    total_schedules: int
    pending_count: int
    partial_count: int
    paid_count: int
    overdue_count: int
    total_due: Decimal
    total_paid: Decimal

    @property
    def total_outstanding(self) -> Decimal:
        return self.total_due - self.total_paid


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of automated schedule generation for one tenancy."""

    tenancy_id: UUID
    members_processed: int
    schedules: tuple[EnrichedSchedule, ...]
    is_rolling_monthly: bool = False

    @property
    def schedules_created(self) -> int:
        return len(self.schedules)


@dataclass(frozen=True)
class RollingGenerationResult:
    """Outcome of billing one month across an agency's rolling tenancies."""

    year: int
    month: int
    tenancies_processed: int
    schedules: tuple[EnrichedSchedule, ...]
    skipped: int = 0

    @property
    def schedules_created(self) -> int:
        return len(self.schedules)


@dataclass(frozen=True)
class RollingTenancySummary:
    """Active rolling tenancies of an agency, split by whether they end."""

    total_rolling: int = 0
    ongoing: int = 0
    terminating: int = 0


@dataclass(frozen=True)
class TenantContext:
    """
    The single agency a request is confined to.

    ``source`` records how it was resolved: url_slug, custom_domain,
    header, query, body, auth_claim.
    """

    agency_id: UUID
    agency_slug: str
    source: str
