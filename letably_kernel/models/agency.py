"""
Module: letably_kernel.models.agency
Responsibility: ORM persistence for agencies, the tenant boundary.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - slug is unique; it is the primary way requests name their agency.
    - custom_portal_domain is unique when present and only used for
      resolution once custom_domain_verified is true.

Agencies are not tenant-scoped: the resolver reads them before any agency
is bound.  They are never deleted while referencing rows exist (foreign keys
from every tenant-scoped table).
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from letably_kernel.db.base import TrackedBase


class Agency(TrackedBase):
    """A letting agency using the platform."""

    __tablename__ = "agencies"

    __table_args__ = (
        UniqueConstraint("slug", name="uq_agency_slug"),
        UniqueConstraint("custom_portal_domain", name="uq_agency_custom_domain"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    custom_portal_domain: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    custom_domain_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Agency {self.slug}>"
