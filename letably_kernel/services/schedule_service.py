"""
ScheduleService -- the schedule engine.

Responsibility:
    Creates, edits, deletes and reverts payment schedules, generates the
    automated deposit, rent and deposit-return schedules of a tenancy, and
    bills each later month of the agency's rolling monthly tenancies.

Architecture position:
    Kernel > Services -- imperative shell.  Pure calculations come from
    domain/rent.py, domain/validation.py and domain/schedule_status.py.

Invariants enforced:
    - A schedule is created only against an ACTIVE tenancy of the caller's
      agency, for a member of that tenancy, and copies the tenancy's
      agency_id.
    - amount_due is never zero.
    - An edit of amount, date, type or description turns an automated
      schedule into a manual one, permanently.
    - A schedule with recorded payments cannot be deleted; revert first.
    - Revert removes every payment and resets the status to pending.

Failure modes:
    - TenancyNotFoundError / TenancyMemberNotFoundError /
      ScheduleNotFoundError for absent or foreign rows.
    - TenancyNotActiveError when the tenancy is not active.
    - ZeroAmountError, InvalidPaymentTypeError, MissingFieldError,
      InvalidPaymentOptionError for bad input.
    - ScheduleHasPaymentsError when deleting a schedule with payments.
    - SchedulesAlreadyGeneratedError when generating twice.
    - InvalidInputError for a target month that is not a calendar month.

Audit relevance:
    Every mutation is logged with agency_id and schedule_id.  An amount edit
    that leaves more recorded than is now due is logged as
    ``schedule_amount_below_paid``; existing payments are not revalidated.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from letably_config.schema import ScheduleConfig
from letably_kernel.domain.balance import settlement_bounds
from letably_kernel.domain.clock import Clock
from letably_kernel.domain.dtos import (
    EnrichedSchedule,
    GenerationResult,
    RollingGenerationResult,
)
from letably_kernel.domain.rent import (
    first_month_payment,
    first_payment_months,
    generate_rent_schedule,
    month_end,
    rolling_month_payment,
)
from letably_kernel.domain.validation import (
    optional_text,
    require_amount,
    require_date,
    require_month,
    require_payment_type,
    require_text,
)
from letably_kernel.domain.values import (
    PaymentType,
    ScheduleStatus,
    ScheduleType,
    TenancyStatus,
)
from letably_kernel.exceptions import (
    MissingFieldError,
    ScheduleHasPaymentsError,
    SchedulesAlreadyGeneratedError,
    TenancyNotActiveError,
)
from letably_kernel.logging_config import get_logger
from letably_kernel.models.payment import PaymentSchedule
from letably_kernel.models.property import Landlord, Property
from letably_kernel.models.tenancy import Tenancy, TenancyMember
from letably_kernel.services.base import BaseService

logger = get_logger("services.schedule")

DEPOSIT_DESCRIPTION = "Security Deposit"
DEPOSIT_RETURN_DESCRIPTION = "Deposit Return"


class ScheduleService(BaseService):
    """
    Schedule engine.

    Every public method takes ``agency_id`` explicitly and binds the session
    to it before the first query.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ScheduleConfig | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or ScheduleConfig()

    # ------------------------------------------------------------------
    # Manual schedules
    # ------------------------------------------------------------------

    def create_manual_schedule(
        self,
        tenancy_id: UUID,
        member_id: UUID,
        due_date: date | str,
        amount_due: Any,
        payment_type: str,
        description: str | None,
        agency_id: UUID,
    ) -> EnrichedSchedule:
        """
        Create a manual schedule for one member of an active tenancy.

        Returns the created schedule with ``schedule_type='manual'`` and
        ``status='pending'``.
        """
        if tenancy_id is None:
            raise MissingFieldError("tenancy_id")
        if member_id is None:
            raise MissingFieldError("member_id")
        due = require_date(due_date, "due_date")
        amount = require_amount(amount_due, "amount_due")
        kind = require_payment_type(payment_type)

        self._bind(agency_id)
        tenancy = self._get_active_tenancy(tenancy_id, agency_id, "Payment schedules")
        member = self._get_member(member_id, tenancy.id, agency_id)

        schedule = PaymentSchedule(
            agency_id=tenancy.agency_id,
            tenancy_id=tenancy.id,
            tenancy_member_id=member.id,
            payment_type=kind,
            description=optional_text(description),
            due_date=due,
            amount_due=amount,
            status=ScheduleStatus.PENDING.value,
            schedule_type=ScheduleType.MANUAL.value,
        )
        self.session.add(schedule)
        self.session.flush()

        logger.info(
            "schedule_created",
            extra={
                "agency_id": str(agency_id),
                "schedule_id": str(schedule.id),
                "tenancy_id": str(tenancy.id),
                "amount_due": str(amount),
                "payment_type": kind,
            },
        )
        return self._enrich(schedule, [])

    def update_schedule_amount(
        self,
        schedule_id: UUID,
        amount_due: Any,
        due_date: date | str,
        payment_type: str,
        description: str | None,
        agency_id: UUID,
    ) -> EnrichedSchedule:
        """
        Edit a schedule's amount, date, type and description.

        An automated schedule becomes manual.  Recorded payments are kept as
        they are even if they no longer fit the new amount.
        """
        amount = require_amount(amount_due, "amount_due")
        due = require_date(due_date, "due_date")
        kind = require_payment_type(payment_type)
        text = require_text(description, "description")

        self._bind(agency_id)
        schedule = self._get_schedule(schedule_id, agency_id, for_update=True)
        payments = self._get_payments(schedule.id, agency_id)
        total = self._total(payments)

        previous_type = schedule.schedule_type
        schedule.amount_due = amount
        schedule.due_date = due
        schedule.payment_type = kind
        schedule.description = text
        if previous_type == ScheduleType.AUTOMATED.value:
            schedule.schedule_type = ScheduleType.MANUAL.value

        low, high = settlement_bounds(amount)
        if payments and not (low <= total <= high):
            logger.warning(
                "schedule_amount_below_paid",
                extra={
                    "agency_id": str(agency_id),
                    "schedule_id": str(schedule.id),
                    "amount_due": str(amount),
                    "total_paid": str(total),
                },
            )

        self._store_status(schedule, total, "schedule_amount_updated")
        self.session.flush()

        logger.info(
            "schedule_updated",
            extra={
                "agency_id": str(agency_id),
                "schedule_id": str(schedule.id),
                "amount_due": str(amount),
                "schedule_type": schedule.schedule_type,
                "previous_schedule_type": previous_type,
            },
        )
        return self._enrich(schedule, payments)

    def delete_schedule(self, schedule_id: UUID, agency_id: UUID) -> None:
        """Delete a schedule that has no recorded payments."""
        self._bind(agency_id)
        schedule = self._get_schedule(schedule_id, agency_id, for_update=True)
        payments = self._get_payments(schedule.id, agency_id)
        if payments:
            total = self._total(payments)
            logger.warning(
                "schedule_delete_rejected",
                extra={
                    "agency_id": str(agency_id),
                    "schedule_id": str(schedule.id),
                    "payment_count": len(payments),
                    "total_paid": str(total),
                },
            )
            raise ScheduleHasPaymentsError(str(schedule.id), len(payments), total)

        self.session.delete(schedule)
        self.session.flush()
        logger.info(
            "schedule_deleted",
            extra={"agency_id": str(agency_id), "schedule_id": str(schedule_id)},
        )

    def revert_schedule(self, schedule_id: UUID, agency_id: UUID) -> EnrichedSchedule:
        """Remove every payment on the schedule and reset it to pending."""
        self._bind(agency_id)
        schedule = self._get_schedule(schedule_id, agency_id, for_update=True)
        payments = self._get_payments(schedule.id, agency_id)
        for payment in payments:
            self.session.delete(payment)

        self._store_status(
            schedule,
            Decimal("0"),
            "schedule_reverted",
            status=ScheduleStatus.PENDING.value,
        )
        self.session.flush()

        logger.info(
            "schedule_reverted",
            extra={
                "agency_id": str(agency_id),
                "schedule_id": str(schedule.id),
                "payments_deleted": len(payments),
            },
        )
        return self._enrich(schedule, [])

    # ------------------------------------------------------------------
    # Automated schedules
    # ------------------------------------------------------------------

    def generate_for_tenancy(self, tenancy_id: UUID, agency_id: UUID) -> GenerationResult:
        """
        Generate deposit and rent schedules for every member of a tenancy.

        Deposits are always created for members with a deposit.  Rent is
        created only when the landlord manages rent (default: yes).  Rolling
        monthly tenancies get their first rent period only.
        """
        self._bind(agency_id)
        tenancy = self._get_active_tenancy(tenancy_id, agency_id, "Payment schedules")

        existing = self.session.execute(
            select(func.count(PaymentSchedule.id)).where(
                PaymentSchedule.tenancy_id == tenancy.id,
                PaymentSchedule.agency_id == agency_id,
                PaymentSchedule.schedule_type == ScheduleType.AUTOMATED.value,
                PaymentSchedule.description != DEPOSIT_RETURN_DESCRIPTION,
            )
        ).scalar_one()
        if existing:
            raise SchedulesAlreadyGeneratedError(str(tenancy.id), "Automated payment")

        manage_rent = self._landlord_manages_rent(tenancy, agency_id)
        if manage_rent and not tenancy.is_rolling_monthly and tenancy.end_date is None:
            raise MissingFieldError("end_date")

        members = self._members(tenancy.id, agency_id)
        deposit_due = tenancy.start_date - timedelta(
            days=self.config.deposit_due_days_before_start
        )

        created: list[PaymentSchedule] = []
        for member in members:
            if not member.payment_option:
                logger.warning(
                    "member_without_payment_option",
                    extra={
                        "agency_id": str(agency_id),
                        "tenancy_id": str(tenancy.id),
                        "member_id": str(member.id),
                    },
                )
                continue

            if member.deposit_amount and member.deposit_amount > 0:
                created.append(
                    self._automated(
                        tenancy,
                        member,
                        PaymentType.DEPOSIT.value,
                        DEPOSIT_DESCRIPTION,
                        deposit_due,
                        member.deposit_amount,
                    )
                )

            if not manage_rent:
                continue

            if tenancy.is_rolling_monthly:
                periods = [first_month_payment(tenancy.start_date, member.rent_pppw)]
            else:
                periods = generate_rent_schedule(
                    tenancy.start_date,
                    tenancy.end_date,
                    member.payment_option,
                    member.rent_pppw,
                )
            for period in periods:
                if period is None or period.amount_due == 0:
                    continue
                created.append(
                    self._automated(
                        tenancy,
                        member,
                        PaymentType.RENT.value,
                        period.description,
                        period.due_date,
                        period.amount_due,
                        covers_from=period.covers_from,
                        covers_to=period.covers_to,
                    )
                )

        self.session.flush()
        logger.info(
            "schedules_generated",
            extra={
                "agency_id": str(agency_id),
                "tenancy_id": str(tenancy.id),
                "members_processed": len(members),
                "schedules_created": len(created),
                "is_rolling_monthly": tenancy.is_rolling_monthly,
                "manage_rent": manage_rent,
            },
        )
        return GenerationResult(
            tenancy_id=tenancy.id,
            members_processed=len(members),
            schedules=tuple(self._enrich(s, []) for s in created),
            is_rolling_monthly=tenancy.is_rolling_monthly,
        )

    def create_deposit_returns(
        self,
        tenancy_id: UUID,
        key_return_date: date | str,
        agency_id: UUID,
    ) -> GenerationResult:
        """
        Create one negative (credit) schedule per member holding a deposit,
        due a fixed number of days after the keys come back.
        """
        returned = require_date(key_return_date, "key_return_date")

        self._bind(agency_id)
        tenancy = self._get_active_tenancy(tenancy_id, agency_id, "Payment schedules")

        existing = self.session.execute(
            select(func.count(PaymentSchedule.id)).where(
                PaymentSchedule.tenancy_id == tenancy.id,
                PaymentSchedule.agency_id == agency_id,
                PaymentSchedule.payment_type == PaymentType.DEPOSIT.value,
                PaymentSchedule.description == DEPOSIT_RETURN_DESCRIPTION,
            )
        ).scalar_one()
        if existing:
            raise SchedulesAlreadyGeneratedError(str(tenancy.id), "Deposit return")

        members = [m for m in self._members(tenancy.id, agency_id) if m.deposit_amount > 0]
        due = returned + timedelta(days=self.config.deposit_return_days_after_key_return)

        created = [
            self._automated(
                tenancy,
                member,
                PaymentType.DEPOSIT.value,
                DEPOSIT_RETURN_DESCRIPTION,
                due,
                -member.deposit_amount,
            )
            for member in members
        ]
        tenancy.key_return_date = returned
        self.session.flush()

        logger.info(
            "deposit_returns_created",
            extra={
                "agency_id": str(agency_id),
                "tenancy_id": str(tenancy.id),
                "schedules_created": len(created),
                "due_date": due,
            },
        )
        return GenerationResult(
            tenancy_id=tenancy.id,
            members_processed=len(members),
            schedules=tuple(self._enrich(s, []) for s in created),
        )

    def generate_rolling_month(
        self, target_year: int, target_month: int, agency_id: UUID
    ) -> RollingGenerationResult:
        """
        Bill ``target_month`` for every active rolling tenancy of the agency.

        Safe to repeat: a member whose month already has a rent schedule, or
        whose month is covered by the combined first payment of a mid-month
        start, is skipped.  A mid-month start with no first payment yet gets
        that combined payment instead of a single month.
        """
        target = require_month(target_year, target_month)
        self._bind(agency_id)

        tenancies = list(
            self.session.execute(
                select(Tenancy)
                .where(
                    Tenancy.agency_id == agency_id,
                    Tenancy.is_rolling_monthly.is_(True),
                    Tenancy.status == TenancyStatus.ACTIVE.value,
                    or_(Tenancy.end_date.is_(None), Tenancy.end_date >= target),
                )
                .order_by(Tenancy.start_date, Tenancy.id)
            ).scalars()
        )

        created: list[PaymentSchedule] = []
        skipped = 0
        processed = 0
        for tenancy in tenancies:
            if not self._landlord_manages_rent(tenancy, agency_id):
                logger.info(
                    "rolling_tenancy_rent_not_managed",
                    extra={"agency_id": str(agency_id), "tenancy_id": str(tenancy.id)},
                )
                continue
            processed += 1
            first_months = first_payment_months(tenancy.start_date)

            for member in self._members(tenancy.id, agency_id):
                if not member.rent_pppw or member.rent_pppw <= 0:
                    continue

                if target in first_months:
                    first = first_month_payment(tenancy.start_date, member.rent_pppw)
                    if first is None:
                        continue
                    if self._rent_due_on(tenancy.id, member.id, first.due_date, agency_id):
                        skipped += 1
                        continue
                    period = first
                else:
                    if self._rent_billed_in_month(tenancy.id, member.id, target, agency_id):
                        skipped += 1
                        continue
                    period = rolling_month_payment(
                        target.year,
                        target.month,
                        tenancy.start_date,
                        tenancy.end_date,
                        member.rent_pppw,
                    )
                    if period is None:
                        continue

                created.append(
                    self._automated(
                        tenancy,
                        member,
                        PaymentType.RENT.value,
                        period.description,
                        period.due_date,
                        period.amount_due,
                        covers_from=period.covers_from,
                        covers_to=period.covers_to,
                    )
                )

        self.session.flush()
        logger.info(
            "rolling_month_generated",
            extra={
                "agency_id": str(agency_id),
                "target_month": target,
                "tenancies_processed": processed,
                "schedules_created": len(created),
                "schedules_skipped": skipped,
            },
        )
        return RollingGenerationResult(
            year=target.year,
            month=target.month,
            tenancies_processed=processed,
            schedules=tuple(self._enrich(s, []) for s in created),
            skipped=skipped,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_active_tenancy(self, tenancy_id: UUID, agency_id: UUID, action: str) -> Tenancy:
        tenancy = self._get_tenancy(tenancy_id, agency_id)
        if tenancy.status != TenancyStatus.ACTIVE.value:
            logger.warning(
                "tenancy_not_active",
                extra={
                    "agency_id": str(agency_id),
                    "tenancy_id": str(tenancy.id),
                    "tenancy_status": tenancy.status,
                },
            )
            raise TenancyNotActiveError(str(tenancy.id), tenancy.status, action)
        return tenancy

    def _members(self, tenancy_id: UUID, agency_id: UUID) -> list[TenancyMember]:
        return list(
            self.session.execute(
                select(TenancyMember)
                .where(
                    TenancyMember.tenancy_id == tenancy_id,
                    TenancyMember.agency_id == agency_id,
                )
                .order_by(TenancyMember.surname, TenancyMember.first_name)
            ).scalars()
        )

    def _landlord_manages_rent(self, tenancy: Tenancy, agency_id: UUID) -> bool:
        manage_rent = self.session.execute(
            select(Landlord.manage_rent)
            .join(Property, Property.landlord_id == Landlord.id)
            .where(
                Property.id == tenancy.property_id,
                Property.agency_id == agency_id,
                Landlord.agency_id == agency_id,
            )
        ).scalar_one_or_none()
        # No landlord, or no preference recorded: the agency manages rent
        return True if manage_rent is None else manage_rent

    def _rent_due_on(
        self, tenancy_id: UUID, member_id: UUID, due_date: date, agency_id: UUID
    ) -> bool:
        return self._rent_exists(
            tenancy_id, member_id, agency_id, PaymentSchedule.due_date == due_date
        )

    def _rent_billed_in_month(
        self, tenancy_id: UUID, member_id: UUID, first_of_month: date, agency_id: UUID
    ) -> bool:
        return self._rent_exists(
            tenancy_id,
            member_id,
            agency_id,
            PaymentSchedule.due_date.between(
                first_of_month, month_end(first_of_month.year, first_of_month.month)
            ),
        )

    def _rent_exists(self, tenancy_id: UUID, member_id: UUID, agency_id: UUID, when) -> bool:
        found = self.session.execute(
            select(PaymentSchedule.id)
            .where(
                PaymentSchedule.tenancy_id == tenancy_id,
                PaymentSchedule.tenancy_member_id == member_id,
                PaymentSchedule.agency_id == agency_id,
                PaymentSchedule.payment_type == PaymentType.RENT.value,
                when,
            )
            .limit(1)
        ).scalar_one_or_none()
        return found is not None

    def _automated(
        self,
        tenancy: Tenancy,
        member: TenancyMember,
        payment_type: str,
        description: str,
        due_date: date,
        amount_due: Decimal,
        *,
        covers_from: date | None = None,
        covers_to: date | None = None,
    ) -> PaymentSchedule:
        schedule = PaymentSchedule(
            agency_id=tenancy.agency_id,
            tenancy_id=tenancy.id,
            tenancy_member_id=member.id,
            payment_type=payment_type,
            description=description,
            due_date=due_date,
            amount_due=amount_due,
            status=ScheduleStatus.PENDING.value,
            schedule_type=ScheduleType.AUTOMATED.value,
            covers_from=covers_from,
            covers_to=covers_to,
        )
        self.session.add(schedule)
        return schedule

