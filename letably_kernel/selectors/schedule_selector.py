"""
ScheduleSelector -- enriched schedule reads and agency-wide reporting.

Responsibility:
    Single schedules, a tenancy's schedules, a tenant's own schedules, the
    filtered and paginated payment calendar with its overdue summary, and
    per-tenancy statistics and the rolling tenancy summary.  Every schedule leaves as an EnrichedSchedule
    whose status is derived at read time.

Architecture position:
    Kernel > Selectors -- read-only.

Failure modes:
    - ScheduleNotFoundError / TenancyNotFoundError /
      TenancyMemberNotFoundError for absent or foreign rows.
    - InvalidPaginationError when page or limit is not an integer.
    - InvalidInputError when a filter month is not a calendar month.
"""

from collections import defaultdict
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from letably_config.schema import PaginationConfig
from letably_kernel.domain.clock import Clock
from letably_kernel.domain.dtos import (
    EnrichedSchedule,
    OverdueSummary,
    RollingTenancySummary,
    ScheduleFilter,
    SchedulePage,
    TenancyPaymentStats,
)
from letably_kernel.domain.money import ZERO
from letably_kernel.domain.rent import month_end
from letably_kernel.domain.validation import require_month
from letably_kernel.domain.values import ScheduleStatus, TenancyStatus
from letably_kernel.exceptions import (
    InvalidPaginationError,
    ScheduleNotFoundError,
    TenancyMemberNotFoundError,
    TenancyNotFoundError,
)
from letably_kernel.models.payment import Payment, PaymentSchedule
from letably_kernel.models.property import Property
from letably_kernel.models.tenancy import Tenancy, TenancyMember
from letably_kernel.selectors.base import BaseSelector


def parse_pagination(
    page: Any,
    limit: Any,
    config: PaginationConfig,
) -> tuple[int, int]:
    """
    Normalize page/limit.

    Missing values take the defaults; page is at least 1 and limit is
    clamped to [1, max_limit].  Values that are not integers are rejected.
    """

    def as_int(name: str, value: Any, default: int) -> int:
        if value is None or value == "":
            return default
        if isinstance(value, bool):
            raise InvalidPaginationError(name, value)
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            raise InvalidPaginationError(name, value) from None

    page_num = max(1, as_int("page", page, 1))
    limit_num = min(config.max_limit, max(1, as_int("limit", limit, config.default_limit)))
    return page_num, limit_num


class ScheduleSelector(BaseSelector):
    """Read-only schedule queries.  Every method takes ``agency_id``."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        pagination: PaginationConfig | None = None,
    ):
        super().__init__(session, clock)
        self.pagination = pagination or PaginationConfig()

    # ------------------------------------------------------------------
    # Single schedule
    # ------------------------------------------------------------------

    def get_schedule(self, schedule_id: UUID, agency_id: UUID) -> EnrichedSchedule:
        self._bind(agency_id)
        schedule = self.session.execute(
            select(PaymentSchedule).where(
                PaymentSchedule.id == schedule_id,
                PaymentSchedule.agency_id == agency_id,
            )
        ).scalar_one_or_none()
        if schedule is None:
            raise ScheduleNotFoundError(str(schedule_id))
        payments = self._payments_by_schedule([schedule.id], agency_id)
        return EnrichedSchedule.build(schedule, payments[schedule.id], self.clock.today())

    # ------------------------------------------------------------------
    # Tenancy and member views
    # ------------------------------------------------------------------

    def tenancy_schedules(self, tenancy_id: UUID, agency_id: UUID) -> list[EnrichedSchedule]:
        """All schedules of a tenancy, by due date then member surname."""
        self._bind(agency_id)
        self._require_tenancy(tenancy_id, agency_id)
        stmt = (
            self._listing_query(agency_id)
            .where(PaymentSchedule.tenancy_id == tenancy_id)
            .order_by(PaymentSchedule.due_date, TenancyMember.surname, PaymentSchedule.id)
        )
        return self._enrich_rows(self.session.execute(stmt).all(), agency_id)

    def member_schedules(
        self, tenancy_id: UUID, member_id: UUID, agency_id: UUID
    ) -> list[EnrichedSchedule]:
        self._bind(agency_id)
        member = self.session.execute(
            select(TenancyMember).where(
                TenancyMember.id == member_id,
                TenancyMember.tenancy_id == tenancy_id,
                TenancyMember.agency_id == agency_id,
            )
        ).scalar_one_or_none()
        if member is None:
            raise TenancyMemberNotFoundError(str(member_id), str(tenancy_id))
        stmt = (
            self._listing_query(agency_id)
            .where(PaymentSchedule.tenancy_member_id == member.id)
            .order_by(PaymentSchedule.due_date, PaymentSchedule.id)
        )
        return self._enrich_rows(self.session.execute(stmt).all(), agency_id)

    def my_schedules(self, user_id: UUID, agency_id: UUID) -> list[EnrichedSchedule]:
        """Schedules of the member that ``user_id`` is in an active tenancy."""
        self._bind(agency_id)
        member = self.session.execute(
            select(TenancyMember)
            .join(Tenancy, Tenancy.id == TenancyMember.tenancy_id)
            .where(
                TenancyMember.user_id == user_id,
                TenancyMember.agency_id == agency_id,
                Tenancy.agency_id == agency_id,
                Tenancy.status == TenancyStatus.ACTIVE.value,
            )
            .order_by(Tenancy.start_date.desc())
            .limit(1)
        ).scalar_one_or_none()
        if member is None:
            raise TenancyNotFoundError(f"active tenancy for user {user_id}")
        return self.member_schedules(member.tenancy_id, member.id, agency_id)

    def tenancy_stats(self, tenancy_id: UUID, agency_id: UUID) -> TenancyPaymentStats:
        """Counts by displayed status and money totals for one tenancy."""
        schedules = self.tenancy_schedules(tenancy_id, agency_id)
        counts: dict[ScheduleStatus, int] = defaultdict(int)
        for schedule in schedules:
            counts[schedule.status] += 1
        return TenancyPaymentStats(
            total_schedules=len(schedules),
            pending_count=counts[ScheduleStatus.PENDING],
            partial_count=counts[ScheduleStatus.PARTIAL],
            paid_count=counts[ScheduleStatus.PAID],
            overdue_count=counts[ScheduleStatus.OVERDUE],
            total_due=sum((s.amount_due for s in schedules), ZERO),
            total_paid=sum((s.amount_paid for s in schedules), ZERO),
        )

    # ------------------------------------------------------------------
    # Agency-wide reporting
    # ------------------------------------------------------------------

    def list_schedules(
        self,
        agency_id: UUID,
        filters: ScheduleFilter | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> SchedulePage:
        """
        The payment calendar: filtered, paginated, ordered by due date, with
        the agency-wide overdue summary.
        """
        filters = filters or ScheduleFilter()
        page_num, limit_num = parse_pagination(page, limit, self.pagination)

        self._bind(agency_id)
        conditions = self._filter_conditions(filters)

        total = self.session.execute(
            self._joined(select(func.count(PaymentSchedule.id)), agency_id).where(*conditions)
        ).scalar_one()

        stmt = (
            self._listing_query(agency_id)
            .where(*conditions)
            .order_by(PaymentSchedule.due_date, PaymentSchedule.id)
            .limit(limit_num)
            .offset((page_num - 1) * limit_num)
        )
        items = self._enrich_rows(self.session.execute(stmt).all(), agency_id)

        return SchedulePage(
            items=tuple(items),
            page=page_num,
            limit=limit_num,
            total=total,
            summary=self.overdue_summary(agency_id),
        )

    def overdue_schedules(self, agency_id: UUID) -> list[EnrichedSchedule]:
        """Every schedule of the agency currently displayed as overdue."""
        self._bind(agency_id)
        stmt = (
            self._listing_query(agency_id)
            .where(PaymentSchedule.due_date < self.clock.today())
            .order_by(PaymentSchedule.due_date, PaymentSchedule.id)
        )
        enriched = self._enrich_rows(self.session.execute(stmt).all(), agency_id)
        return [s for s in enriched if s.status is ScheduleStatus.OVERDUE]

    def overdue_summary(self, agency_id: UUID) -> OverdueSummary:
        overdue = self.overdue_schedules(agency_id)
        today = self.clock.today()
        month_start = date(today.year, today.month, 1)
        return OverdueSummary(
            overdue=len(overdue),
            overdue_previous_months=sum(1 for s in overdue if s.due_date < month_start),
            overdue_amount=sum((s.remaining_balance for s in overdue), ZERO),
        )

    def rolling_summary(self, agency_id: UUID) -> RollingTenancySummary:
        """Active rolling tenancies of the agency, ongoing versus terminating."""
        self._bind(agency_id)
        ongoing, terminating = self.session.execute(
            select(
                func.count(case((Tenancy.end_date.is_(None), Tenancy.id))),
                func.count(case((Tenancy.end_date.is_not(None), Tenancy.id))),
            ).where(
                Tenancy.agency_id == agency_id,
                Tenancy.is_rolling_monthly.is_(True),
                Tenancy.status == TenancyStatus.ACTIVE.value,
            )
        ).one()
        return RollingTenancySummary(
            total_rolling=ongoing + terminating,
            ongoing=ongoing,
            terminating=terminating,
        )

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    @staticmethod
    def _joined(stmt: Select, agency_id: UUID) -> Select:
        return (
            stmt.select_from(PaymentSchedule)
            .join(TenancyMember, TenancyMember.id == PaymentSchedule.tenancy_member_id)
            .join(Tenancy, Tenancy.id == PaymentSchedule.tenancy_id)
            .join(Property, Property.id == Tenancy.property_id)
            .where(
                PaymentSchedule.agency_id == agency_id,
                TenancyMember.agency_id == agency_id,
                Tenancy.agency_id == agency_id,
                Property.agency_id == agency_id,
            )
        )

    def _listing_query(self, agency_id: UUID) -> Select:
        return self._joined(
            select(
                PaymentSchedule,
                TenancyMember.first_name,
                TenancyMember.surname,
                Property.address_line1,
                Tenancy.status,
            ),
            agency_id,
        )

    @staticmethod
    def _filter_conditions(filters: ScheduleFilter) -> list:
        conditions = []
        if filters.year is not None and filters.month is not None:
            first = require_month(filters.year, filters.month)
            conditions.append(
                PaymentSchedule.due_date.between(first, month_end(first.year, first.month))
            )
        if filters.date_from is not None:
            conditions.append(PaymentSchedule.due_date >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(PaymentSchedule.due_date <= filters.date_to)
        if filters.property_id is not None:
            conditions.append(Tenancy.property_id == filters.property_id)
        if filters.landlord_id is not None:
            conditions.append(Property.landlord_id == filters.landlord_id)
        if filters.tenancy_id is not None:
            conditions.append(PaymentSchedule.tenancy_id == filters.tenancy_id)
        return conditions

    def _payments_by_schedule(
        self, schedule_ids: list[UUID], agency_id: UUID
    ) -> dict[UUID, list[Payment]]:
        grouped: dict[UUID, list[Payment]] = defaultdict(list)
        if not schedule_ids:
            return grouped
        rows = self.session.execute(
            select(Payment).where(
                Payment.payment_schedule_id.in_(schedule_ids),
                Payment.agency_id == agency_id,
            )
        ).scalars()
        for payment in rows:
            grouped[payment.payment_schedule_id].append(payment)
        return grouped

    def _enrich_rows(self, rows, agency_id: UUID) -> list[EnrichedSchedule]:
        payments = self._payments_by_schedule([row[0].id for row in rows], agency_id)
        today = self.clock.today()
        return [
            EnrichedSchedule.build(
                schedule,
                payments[schedule.id],
                today,
                tenant_name=f"{first_name} {surname}",
                property_address=address,
                tenancy_status=tenancy_status,
            )
            for schedule, first_name, surname, address, tenancy_status in rows
        ]

    def _require_tenancy(self, tenancy_id: UUID, agency_id: UUID) -> None:
        found = self.session.execute(
            select(Tenancy.id).where(
                Tenancy.id == tenancy_id,
                Tenancy.agency_id == agency_id,
            )
        ).scalar_one_or_none()
        if found is None:
            raise TenancyNotFoundError(str(tenancy_id))
