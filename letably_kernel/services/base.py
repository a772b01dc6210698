"""
BaseService -- common shell for the ledger's write services.

Responsibility:
    Holds the caller's Session and Clock, binds the session to the agency
    named by each call, and provides the tenant-filtered loaders and status
    recompute shared by the schedule and ledger engines.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back; PaymentLedger (or the test harness) owns the transaction.
    - Every query carries ``agency_id == :agency_id`` explicitly, even though
      the bound session and PostgreSQL row-level security would also reject
      a mismatch.
    - ``payment_schedules.status`` is written only by ``_store_status``
      (status calculator) or by an explicit revert to pending.
    - Entities outside the agency are reported exactly like absent ones.

Failure modes:
    - NotFoundError subclasses for absent or foreign rows.
    - TenantBindingError if the session is already bound to another agency.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from letably_kernel.db.tenant import bind_agency
from letably_kernel.domain.clock import Clock, SystemClock
from letably_kernel.domain.dtos import EnrichedSchedule, StatusTransition
from letably_kernel.domain.money import ZERO
from letably_kernel.domain.schedule_status import derive_status
from letably_kernel.exceptions import (
    ScheduleNotFoundError,
    TenancyMemberNotFoundError,
    TenancyNotFoundError,
)
from letably_kernel.models.payment import Payment, PaymentSchedule
from letably_kernel.models.tenancy import Tenancy, TenancyMember


class BaseService:
    """
    Base class for services that mutate the ledger.

    Contract:
        Accepts a Session from the caller and persists with ``flush()``.
        Status transitions produced during the call are collected and handed
        out by ``drain_transitions()`` once the caller has committed.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
        self._transitions: list[StatusTransition] = []

    # -- tenant binding ----------------------------------------------------

    def _bind(self, agency_id: UUID) -> None:
        bind_agency(self.session, agency_id)

    # -- loaders -----------------------------------------------------------

    def _get_tenancy(self, tenancy_id: UUID, agency_id: UUID) -> Tenancy:
        tenancy = self.session.execute(
            select(Tenancy).where(
                Tenancy.id == tenancy_id,
                Tenancy.agency_id == agency_id,
            )
        ).scalar_one_or_none()
        if tenancy is None:
            raise TenancyNotFoundError(str(tenancy_id))
        return tenancy

    def _get_member(
        self, member_id: UUID, tenancy_id: UUID, agency_id: UUID
    ) -> TenancyMember:
        member = self.session.execute(
            select(TenancyMember).where(
                TenancyMember.id == member_id,
                TenancyMember.tenancy_id == tenancy_id,
                TenancyMember.agency_id == agency_id,
            )
        ).scalar_one_or_none()
        if member is None:
            raise TenancyMemberNotFoundError(str(member_id), str(tenancy_id))
        return member

    def _get_schedule(
        self, schedule_id: UUID, agency_id: UUID, *, for_update: bool = False
    ) -> PaymentSchedule:
        """
        Load a schedule of this agency.

        ``for_update`` takes the row lock that serializes every
        check-then-write on the schedule's balance (SELECT ... FOR UPDATE on
        PostgreSQL; a no-op on SQLite, whose writers are already serialized).
        """
        stmt = select(PaymentSchedule).where(
            PaymentSchedule.id == schedule_id,
            PaymentSchedule.agency_id == agency_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        schedule = self.session.execute(stmt).scalar_one_or_none()
        if schedule is None:
            raise ScheduleNotFoundError(str(schedule_id))
        return schedule

    def _get_payments(self, schedule_id: UUID, agency_id: UUID) -> list[Payment]:
        return list(
            self.session.execute(
                select(Payment).where(
                    Payment.payment_schedule_id == schedule_id,
                    Payment.agency_id == agency_id,
                )
            ).scalars()
        )

    # -- status ------------------------------------------------------------

    @staticmethod
    def _total(payments: list[Payment]) -> Decimal:
        return sum((p.amount for p in payments), ZERO)

    def _store_status(
        self,
        schedule: PaymentSchedule,
        total_paid: Decimal,
        cause: str,
        *,
        status: str | None = None,
    ) -> None:
        """
        Write the derived status to the schedule and record any transition.

        ``status`` overrides the calculator; only revert uses it, to reset a
        schedule to pending.
        """
        new_status = status or derive_status(
            schedule.amount_due, total_paid, schedule.due_date, self.clock.today()
        ).value
        previous = schedule.status
        if previous == new_status:
            return
        schedule.status = new_status
        self._transitions.append(
            StatusTransition(
                agency_id=schedule.agency_id,
                schedule_id=schedule.id,
                previous_status=previous,
                new_status=new_status,
                cause=cause,
            )
        )

    def _enrich(self, schedule: PaymentSchedule, payments: list[Payment]) -> EnrichedSchedule:
        return EnrichedSchedule.build(schedule, payments, self.clock.today())

    def drain_transitions(self) -> list[StatusTransition]:
        """Return and forget the transitions collected so far."""
        transitions, self._transitions = self._transitions, []
        return transitions
