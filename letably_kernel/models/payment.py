"""
Module: letably_kernel.models.payment
Responsibility: ORM persistence for payment schedules (expected cash
    movements) and payments (recorded settlements against one schedule).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount_due and amount are signed and never zero (CHECK constraints
      plus service validation).  Positive: owed to the agency.  Negative:
      credit owed to the occupant.
    - The sum of a schedule's payments stays within
      [min(0, amount_due), max(0, amount_due)] after every ledger write
      (services, under a row lock on the schedule).
    - status is a cache written only from the status calculator.
    - schedule_type moves automated -> manual only, never back.
    - A payment's agency_id equals its schedule's agency_id.

Failure modes:
    - IntegrityError on a zero amount that bypassed the services.
    - IntegrityError when deleting a schedule that still has payments
      (foreign key without cascade).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from letably_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString
from letably_kernel.domain.values import ScheduleStatus, ScheduleType


class PaymentSchedule(TenantScopedMixin, TrackedBase):
    """One expected cash movement for one tenancy member."""

    __tablename__ = "payment_schedules"

    __table_args__ = (
        CheckConstraint("amount_due <> 0", name="ck_schedule_amount_nonzero"),
        Index("idx_schedule_agency_due", "agency_id", "due_date"),
        Index("idx_schedule_tenancy", "tenancy_id"),
        Index("idx_schedule_member", "tenancy_member_id"),
    )

    tenancy_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenancies.id"),
        nullable=False,
    )

    tenancy_member_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenancy_members.id"),
        nullable=False,
    )

    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount_due: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ScheduleStatus.PENDING.value,
        nullable=False,
    )

    schedule_type: Mapped[str] = mapped_column(
        String(20),
        default=ScheduleType.MANUAL.value,
        nullable=False,
    )

    # Rent period the schedule pays for; NULL for deposits and manual rows
    covers_from: Mapped[date | None] = mapped_column(Date, nullable=True)

    covers_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentSchedule {self.id}: {self.amount_due} due {self.due_date}>"


class Payment(TenantScopedMixin, TrackedBase):
    """One recorded settlement.  Identity is fixed; amount/date/reference are editable."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_payment_amount_nonzero"),
        Index("idx_payment_schedule", "payment_schedule_id"),
    )

    payment_schedule_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_schedules.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.id}: {self.amount} on {self.payment_date}>"
