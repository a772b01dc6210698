"""
Module: letably_kernel.models.property
Responsibility: Landlords and the properties they let through an agency.
    The ledger reads them to decide whether rent is managed and to label
    listings with an address.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from letably_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString


class Landlord(TenantScopedMixin, TrackedBase):
    """
    A property owner.

    ``manage_rent`` false means the agency does not collect rent for this
    landlord: schedule generation creates deposits only.
    """

    __tablename__ = "landlords"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    manage_rent: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    def __repr__(self) -> str:
        return f"<Landlord {self.name}>"


class Property(TenantScopedMixin, TrackedBase):
    __tablename__ = "properties"

    landlord_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("landlords.id"),
        nullable=True,
        index=True,
    )

    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)

    city: Mapped[str | None] = mapped_column(String(100), nullable=True)

    postcode: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<Property {self.address_line1}>"
