"""
LedgerService -- the ledger engine.

Responsibility:
    Records, edits and deletes individual payments against a schedule,
    enforcing the settlement bounds and recomputing the schedule's status on
    every mutation.

Architecture position:
    Kernel > Services -- imperative shell.  The sign-aware comparison lives
    in domain/balance.py; the status rule in domain/schedule_status.py.

Invariants enforced:
    - The balance check and the write happen in one transaction while the
      schedule row is locked (SELECT ... FOR UPDATE), so concurrent payments
      on one schedule cannot both pass against the same remaining balance.
    - After every accepted mutation the schedule's total paid lies within
      [min(0, amount_due), max(0, amount_due)].
    - A payment copies its schedule's agency_id.
    - Payments are recorded only against schedules of ACTIVE tenancies.

Failure modes:
    - ScheduleNotFoundError / PaymentNotFoundError for absent or foreign rows.
    - ZeroAmountError / MissingFieldError for bad input.
    - TenancyNotActiveError when recording against an inactive tenancy.
    - BalanceExceededError with the computed remaining balance.

Audit relevance:
    Every accepted mutation logs agency_id, schedule_id, payment_id, amount
    and the resulting total.  Rejections log at WARNING with the same keys.
"""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from letably_kernel.domain.balance import check_payment_fits
from letably_kernel.domain.clock import Clock
from letably_kernel.domain.dtos import EnrichedSchedule
from letably_kernel.domain.validation import optional_text, require_amount, require_date
from letably_kernel.domain.values import TenancyStatus
from letably_kernel.exceptions import (
    BalanceExceededError,
    PaymentNotFoundError,
    TenancyNotActiveError,
)
from letably_kernel.logging_config import get_logger
from letably_kernel.models.payment import Payment, PaymentSchedule
from letably_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class LedgerService(BaseService):
    """Ledger engine.  Every public method takes ``agency_id`` explicitly."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        currency_symbol: str = "£",
    ):
        super().__init__(session, clock)
        self.currency_symbol = currency_symbol

    def record_payment(
        self,
        schedule_id: UUID,
        amount: Any,
        payment_date: date | str,
        reference: str | None,
        agency_id: UUID,
    ) -> EnrichedSchedule:
        """
        Append a payment to a schedule of an active tenancy.

        Positive schedules accept up to the remaining balance; negative
        (credit) schedules accept refunds down to the remaining credit.
        """
        value = require_amount(amount, "amount")
        paid_on = require_date(payment_date, "payment_date")

        self._bind(agency_id)
        schedule = self._get_schedule(schedule_id, agency_id, for_update=True)
        tenancy = self._get_tenancy(schedule.tenancy_id, agency_id)
        if tenancy.status != TenancyStatus.ACTIVE.value:
            logger.warning(
                "payment_rejected_inactive_tenancy",
                extra={
                    "agency_id": str(agency_id),
                    "schedule_id": str(schedule.id),
                    "tenancy_status": tenancy.status,
                },
            )
            raise TenancyNotActiveError(str(tenancy.id), tenancy.status, "Payments")

        payments = self._get_payments(schedule.id, agency_id)
        new_total = self._check(schedule, self._total(payments), value, editing=False)

        payment = Payment(
            agency_id=schedule.agency_id,
            payment_schedule_id=schedule.id,
            amount=value,
            payment_date=paid_on,
            payment_reference=optional_text(reference),
        )
        self.session.add(payment)
        payments.append(payment)

        self._store_status(schedule, new_total, "payment_recorded")
        self.session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "agency_id": str(agency_id),
                "schedule_id": str(schedule.id),
                "payment_id": str(payment.id),
                "amount": str(value),
                "total_paid": str(new_total),
                "status": schedule.status,
            },
        )
        return self._enrich(schedule, payments)

    def update_payment(
        self,
        payment_id: UUID,
        schedule_id: UUID,
        amount: Any,
        payment_date: date | str,
        reference: str | None,
        agency_id: UUID,
    ) -> EnrichedSchedule:
        """
        Edit a payment's amount, date and reference.

        The would-be total is every other payment on the schedule plus the
        new amount, checked against the same bounds as a new payment.
        """
        value = require_amount(amount, "amount")
        paid_on = require_date(payment_date, "payment_date")

        self._bind(agency_id)
        schedule = self._get_schedule(schedule_id, agency_id, for_update=True)
        payments = self._get_payments(schedule.id, agency_id)
        payment = self._find(payments, payment_id, schedule.id)

        others = self._total([p for p in payments if p.id != payment.id])
        new_total = self._check(schedule, others, value, editing=True)

        previous_amount = payment.amount
        payment.amount = value
        payment.payment_date = paid_on
        payment.payment_reference = optional_text(reference)

        self._store_status(schedule, new_total, "payment_updated")
        self.session.flush()

        logger.info(
            "payment_updated",
            extra={
                "agency_id": str(agency_id),
                "schedule_id": str(schedule.id),
                "payment_id": str(payment.id),
                "previous_amount": str(previous_amount),
                "amount": str(value),
                "total_paid": str(new_total),
                "status": schedule.status,
            },
        )
        return self._enrich(schedule, payments)

    def delete_payment(
        self,
        payment_id: UUID,
        schedule_id: UUID,
        agency_id: UUID,
    ) -> EnrichedSchedule:
        """Remove one payment and recompute the schedule's status."""
        self._bind(agency_id)
        schedule = self._get_schedule(schedule_id, agency_id, for_update=True)
        payments = self._get_payments(schedule.id, agency_id)
        payment = self._find(payments, payment_id, schedule.id)

        self.session.delete(payment)
        remaining = [p for p in payments if p.id != payment.id]
        new_total = self._total(remaining)

        self._store_status(schedule, new_total, "payment_deleted")
        self.session.flush()

        logger.info(
            "payment_deleted",
            extra={
                "agency_id": str(agency_id),
                "schedule_id": str(schedule.id),
                "payment_id": str(payment_id),
                "amount": str(payment.amount),
                "total_paid": str(new_total),
                "status": schedule.status,
            },
        )
        return self._enrich(schedule, remaining)

    # ------------------------------------------------------------------

    @staticmethod
    def _find(payments: list[Payment], payment_id: UUID, schedule_id: UUID) -> Payment:
        for payment in payments:
            if payment.id == payment_id:
                return payment
        raise PaymentNotFoundError(str(payment_id), str(schedule_id))

    def _check(self, schedule: PaymentSchedule, others, value, *, editing: bool):
        try:
            return check_payment_fits(
                schedule.amount_due,
                others,
                value,
                editing=editing,
                currency_symbol=self.currency_symbol,
            )
        except BalanceExceededError as exc:
            logger.warning(
                "payment_rejected_balance",
                extra={
                    "agency_id": str(schedule.agency_id),
                    "schedule_id": str(schedule.id),
                    "amount": str(value),
                    "amount_due": str(schedule.amount_due),
                    "remaining_balance": str(exc.remaining_balance),
                    "editing": editing,
                },
            )
            raise
