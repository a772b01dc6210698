"""
PaymentLedger -- the public entry point of the ledger kernel.

Responsibility:
    Exposes every schedule and payment operation as one call that runs in
    its own tenant-bound transaction.  Wraps ScheduleService, LedgerService
    and ScheduleSelector; owns commit, rollback and contention retry through
    TransactionRunner; dispatches status-transition notifications after the
    transaction has committed.

Architecture position:
    Kernel > Services -- the only layer that commits.  Hosts (HTTP
    controllers, jobs, scripts) resolve the agency with
    TenantContextResolver and then call PaymentLedger with that agency id.

Invariants enforced:
    - One call is one transaction: it commits completely or leaves no trace.
    - Notifications only describe committed changes; a failed or retried
      attempt never notifies.
    - Ids arrive as UUIDs or strings; a malformed id is reported exactly like
      an absent entity.
"""

import time
from collections.abc import Callable
from datetime import date
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from letably_config.schema import LedgerConfig
from letably_kernel.db.tenant import bind_agency
from letably_kernel.domain.clock import Clock, SystemClock
from letably_kernel.domain.dtos import (
    EnrichedSchedule,
    GenerationResult,
    RollingGenerationResult,
    RollingTenancySummary,
    ScheduleFilter,
    SchedulePage,
    StatusTransition,
    TenancyPaymentStats,
)
from letably_kernel.exceptions import (
    PaymentNotFoundError,
    ScheduleNotFoundError,
    TenancyMemberNotFoundError,
    TenancyNotFoundError,
    TenantContextError,
)
from letably_kernel.logging_config import operation_scope
from letably_kernel.selectors.schedule_selector import ScheduleSelector
from letably_kernel.services.ledger_service import LedgerService
from letably_kernel.services.notifications import Notifier, NullNotifier, dispatch
from letably_kernel.services.schedule_service import ScheduleService
from letably_kernel.services.transactions import TransactionRunner

T = TypeVar("T")


def _as_uuid(value: Any, not_found: Callable[[str], Exception]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise not_found(str(value)) from None


def _agency(value: Any) -> UUID:
    if value is None:
        raise TenantContextError("agency_id is required")
    return _as_uuid(value, lambda raw: TenantContextError(f"malformed agency id {raw!r}"))


class _Engines:
    """The write services for one transaction attempt."""

    def __init__(self, session: Session, clock: Clock, config: LedgerConfig):
        self.schedules = ScheduleService(session, clock, config.schedules)
        self.ledger = LedgerService(session, clock, config.currency_symbol)

    def transitions(self) -> list[StatusTransition]:
        return self.schedules.drain_transitions() + self.ledger.drain_transitions()


class PaymentLedger:
    """
    Schedule and payment operations for every agency on the platform.

    Every method takes ``agency_id`` as its last argument.  Writes return
    the enriched schedule (or generation result) as committed.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self._session_factory = session_factory
        self.config = config or LedgerConfig()
        self.clock = clock or SystemClock()
        self.notifier = notifier or NullNotifier()
        self._runner = TransactionRunner(
            session_factory, self.config.retry, sleep or time.sleep
        )

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def create_manual_schedule(
        self,
        tenancy_id: UUID | str,
        member_id: UUID | str,
        due_date: date | str,
        amount_due: Any,
        payment_type: str,
        description: str | None,
        agency_id: UUID | str,
    ) -> EnrichedSchedule:
        tenancy = _as_uuid(tenancy_id, TenancyNotFoundError) if tenancy_id is not None else None
        member = _as_uuid(member_id, TenancyMemberNotFoundError) if member_id is not None else None
        return self._write(
            "create_manual_schedule",
            agency_id,
            lambda engines, agency: engines.schedules.create_manual_schedule(
                tenancy, member, due_date, amount_due, payment_type, description, agency
            ),
        )

    def update_schedule_amount(
        self,
        schedule_id: UUID | str,
        amount_due: Any,
        due_date: date | str,
        payment_type: str,
        description: str | None,
        agency_id: UUID | str,
    ) -> EnrichedSchedule:
        schedule = _as_uuid(schedule_id, ScheduleNotFoundError)
        return self._write(
            "update_schedule_amount",
            agency_id,
            lambda engines, agency: engines.schedules.update_schedule_amount(
                schedule, amount_due, due_date, payment_type, description, agency
            ),
        )

    def delete_schedule(self, schedule_id: UUID | str, agency_id: UUID | str) -> None:
        schedule = _as_uuid(schedule_id, ScheduleNotFoundError)
        self._write(
            "delete_schedule",
            agency_id,
            lambda engines, agency: engines.schedules.delete_schedule(schedule, agency),
        )

    def revert_schedule(
        self, schedule_id: UUID | str, agency_id: UUID | str
    ) -> EnrichedSchedule:
        schedule = _as_uuid(schedule_id, ScheduleNotFoundError)
        return self._write(
            "revert_schedule",
            agency_id,
            lambda engines, agency: engines.schedules.revert_schedule(schedule, agency),
        )

    def generate_for_tenancy(
        self, tenancy_id: UUID | str, agency_id: UUID | str
    ) -> GenerationResult:
        tenancy = _as_uuid(tenancy_id, TenancyNotFoundError)
        return self._write(
            "generate_for_tenancy",
            agency_id,
            lambda engines, agency: engines.schedules.generate_for_tenancy(tenancy, agency),
        )

    def create_deposit_returns(
        self,
        tenancy_id: UUID | str,
        key_return_date: date | str,
        agency_id: UUID | str,
    ) -> GenerationResult:
        tenancy = _as_uuid(tenancy_id, TenancyNotFoundError)
        return self._write(
            "create_deposit_returns",
            agency_id,
            lambda engines, agency: engines.schedules.create_deposit_returns(
                tenancy, key_return_date, agency
            ),
        )

    def generate_rolling_month(
        self, target_year: int, target_month: int, agency_id: UUID | str
    ) -> RollingGenerationResult:
        return self._write(
            "generate_rolling_month",
            agency_id,
            lambda engines, agency: engines.schedules.generate_rolling_month(
                target_year, target_month, agency
            ),
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(
        self,
        schedule_id: UUID | str,
        amount: Any,
        payment_date: date | str,
        reference: str | None,
        agency_id: UUID | str,
    ) -> EnrichedSchedule:
        schedule = _as_uuid(schedule_id, ScheduleNotFoundError)
        return self._write(
            "record_payment",
            agency_id,
            lambda engines, agency: engines.ledger.record_payment(
                schedule, amount, payment_date, reference, agency
            ),
        )

    def update_payment(
        self,
        payment_id: UUID | str,
        schedule_id: UUID | str,
        amount: Any,
        payment_date: date | str,
        reference: str | None,
        agency_id: UUID | str,
    ) -> EnrichedSchedule:
        schedule = _as_uuid(schedule_id, ScheduleNotFoundError)
        payment = _as_uuid(payment_id, PaymentNotFoundError)
        return self._write(
            "update_payment",
            agency_id,
            lambda engines, agency: engines.ledger.update_payment(
                payment, schedule, amount, payment_date, reference, agency
            ),
        )

    def delete_payment(
        self,
        payment_id: UUID | str,
        schedule_id: UUID | str,
        agency_id: UUID | str,
    ) -> EnrichedSchedule:
        schedule = _as_uuid(schedule_id, ScheduleNotFoundError)
        payment = _as_uuid(payment_id, PaymentNotFoundError)
        return self._write(
            "delete_payment",
            agency_id,
            lambda engines, agency: engines.ledger.delete_payment(payment, schedule, agency),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_schedule(self, schedule_id: UUID | str, agency_id: UUID | str) -> EnrichedSchedule:
        schedule = _as_uuid(schedule_id, ScheduleNotFoundError)
        return self._read(agency_id, lambda sel, agency: sel.get_schedule(schedule, agency))

    def tenancy_schedules(
        self, tenancy_id: UUID | str, agency_id: UUID | str
    ) -> list[EnrichedSchedule]:
        tenancy = _as_uuid(tenancy_id, TenancyNotFoundError)
        return self._read(agency_id, lambda sel, agency: sel.tenancy_schedules(tenancy, agency))

    def member_schedules(
        self, tenancy_id: UUID | str, member_id: UUID | str, agency_id: UUID | str
    ) -> list[EnrichedSchedule]:
        tenancy = _as_uuid(tenancy_id, TenancyNotFoundError)
        member = _as_uuid(member_id, TenancyMemberNotFoundError)
        return self._read(
            agency_id, lambda sel, agency: sel.member_schedules(tenancy, member, agency)
        )

    def my_schedules(self, user_id: UUID | str, agency_id: UUID | str) -> list[EnrichedSchedule]:
        user = _as_uuid(user_id, lambda raw: TenancyNotFoundError(f"active tenancy for user {raw}"))
        return self._read(agency_id, lambda sel, agency: sel.my_schedules(user, agency))

    def list_schedules(
        self,
        agency_id: UUID | str,
        filters: ScheduleFilter | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> SchedulePage:
        return self._read(
            agency_id, lambda sel, agency: sel.list_schedules(agency, filters, page, limit)
        )

    def overdue_schedules(self, agency_id: UUID | str) -> list[EnrichedSchedule]:
        return self._read(agency_id, lambda sel, agency: sel.overdue_schedules(agency))

    def tenancy_stats(
        self, tenancy_id: UUID | str, agency_id: UUID | str
    ) -> TenancyPaymentStats:
        tenancy = _as_uuid(tenancy_id, TenancyNotFoundError)
        return self._read(agency_id, lambda sel, agency: sel.tenancy_stats(tenancy, agency))

    def rolling_summary(self, agency_id: UUID | str) -> RollingTenancySummary:
        return self._read(agency_id, lambda sel, agency: sel.rolling_summary(agency))

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _write(
        self,
        operation: str,
        agency_id: UUID | str,
        call: Callable[[_Engines, UUID], T],
    ) -> T:
        agency = _agency(agency_id)
        committed: list[StatusTransition] = []

        def work(session: Session) -> T:
            engines = _Engines(session, self.clock, self.config)
            result = call(engines, agency)
            # overwritten on every attempt so only the committed one survives
            committed[:] = engines.transitions()
            return result

        result = self._runner.run(operation, agency, work)
        if committed:
            with operation_scope(operation):
                dispatch(self.notifier, committed)
        return result

    def _read(self, agency_id: UUID | str, call: Callable[[ScheduleSelector, UUID], T]) -> T:
        agency = _agency(agency_id)
        session = self._session_factory()
        try:
            bind_agency(session, agency)
            selector = ScheduleSelector(session, self.clock, self.config.pagination)
            return call(selector, agency)
        finally:
            session.rollback()
            session.close()
