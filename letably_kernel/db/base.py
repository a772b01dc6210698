"""
Module: letably_kernel.db.base
Responsibility: Declarative base classes for every ORM model.  Provides the
    UUID primary key convention, the type annotation map for money columns,
    TrackedBase timestamps, and TenantScopedMixin, the marker every
    agency-owned table carries.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - UUID primary keys generated with uuid4, stored as String(36).
    - Money precision: Decimal maps to Numeric(12, 2).  Amounts are pounds
      and pence; NEVER use float for money.
    - Every TenantScopedMixin table has a NOT NULL, indexed agency_id that
      references agencies.id.  The session guards in db/tenant.py and the
      row-level security policies in db/sql/ key off this column.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    The string form is also what ``current_setting('app.agency_id')`` holds,
    so row-level security policies compare text with text.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """
    Declarative base for all models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(12, 2).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(12, 2),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """Abstract base with created/updated timestamps."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


class TenantScopedMixin:
    """
    Marker and column for rows owned by exactly one agency.

    Contract:
        ``agency_id`` is set explicitly by the service that creates the row,
        copied from the owning parent.  It is never defaulted.
    """

    @declared_attr
    def agency_id(cls) -> Mapped[PyUUID]:
        return mapped_column(
            UUIDString(),
            ForeignKey("agencies.id"),
            nullable=False,
            index=True,
        )
