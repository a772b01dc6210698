"""
Module: letably_kernel.models.tenancy
Responsibility: ORM persistence for tenancies (lease instances) and their
    members (one row per occupant).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Only an ACTIVE tenancy may receive new schedules or payments (checked
      by the services, which load the tenancy before any ledger write).
    - A member's agency_id equals its tenancy's agency_id.

Members carry the per-person rent terms (rent_pppw, deposit_amount,
payment_option) that drive automated schedule generation.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from letably_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString
from letably_kernel.domain.values import TenancyStatus


class Tenancy(TenantScopedMixin, TrackedBase):
    """A lease of one property for a date range."""

    __tablename__ = "tenancies"

    __table_args__ = (
        Index("idx_tenancy_agency_status", "agency_id", "status"),
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("properties.id"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(30),
        default=TenancyStatus.PENDING.value,
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Open-ended for rolling monthly tenancies
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_rolling_monthly: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    key_return_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == TenancyStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<Tenancy {self.id}: {self.status}>"


class TenancyMember(TenantScopedMixin, TrackedBase):
    """One occupant of a tenancy, owning the schedules assigned to them."""

    __tablename__ = "tenancy_members"

    tenancy_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenancies.id"),
        nullable=False,
        index=True,
    )

    # Portal login of the occupant, if they have one
    user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
        index=True,
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)

    surname: Mapped[str] = mapped_column(String(100), nullable=False)

    rent_pppw: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    deposit_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    payment_option: Mapped[str | None] = mapped_column(String(30), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.surname}"

    def __repr__(self) -> str:
        return f"<TenancyMember {self.full_name}>"
