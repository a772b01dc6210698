"""
Module: letably_kernel.db.tenant
Responsibility: Session-level tenant isolation (layer 2 of 3).  Binds one
    agency id to a SQLAlchemy Session and enforces it on every ORM statement
    and every flush, independently of the explicit ``agency_id`` filters the
    services write into their queries.
Architecture position: Kernel > DB.  May import from db/base.py and
    exceptions only.

Layers of isolation:
    1. Services filter every query with ``agency_id == :agency_id``.
    2. This module: a bound session adds ``agency_id = <bound>`` criteria to
       every SELECT that touches a tenant-scoped entity, refuses unbound
       SELECTs of tenant-scoped entities, and refuses to flush rows that
       belong to another agency.
    3. PostgreSQL row-level security (db/rls.py), fed by
       ``set_config('app.agency_id', <bound>, true)`` issued at the start of
       every transaction of a bound session.

Invariants enforced:
    - A session is bound to at most one agency for its lifetime.
    - An unbound session can read only unscoped tables (agencies).
    - No row of agency B can be inserted, updated or deleted through a
      session bound to agency A.

Failure modes:
    - TenantBindingError when rebinding to a different agency, or when a
      flush carries a row of another agency.
    - TenantContextError when a tenant-scoped statement or flush runs on an
      unbound session.
"""

from itertools import chain
from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria

from letably_kernel.db.base import TenantScopedMixin
from letably_kernel.exceptions import TenantBindingError, TenantContextError
from letably_kernel.logging_config import get_logger

logger = get_logger("db.tenant")

AGENCY_KEY = "agency_id"

# PostgreSQL setting read by the row-level security policies
RLS_SETTING = "app.agency_id"

_SET_AGENCY_SQL = text("SELECT set_config('app.agency_id', :agency_id, true)")


def bound_agency(session: Session) -> UUID | None:
    """Return the agency id the session is bound to, if any."""
    return session.info.get(AGENCY_KEY)


def bind_agency(session: Session, agency_id: UUID) -> None:
    """
    Bind ``session`` to ``agency_id``.

    Rebinding to the same agency is a no-op; rebinding to a different one
    raises TenantBindingError.  If a transaction is already open the
    PostgreSQL setting is applied immediately, otherwise at the next begin.
    """
    if agency_id is None:
        raise TenantContextError("cannot bind a session to no agency")
    current = bound_agency(session)
    if current is not None:
        if current != agency_id:
            raise TenantBindingError(
                str(current), str(agency_id), "session already bound"
            )
        return
    session.info[AGENCY_KEY] = agency_id
    if session.in_transaction():
        _apply_agency_setting(session.connection(), agency_id)
    logger.debug("session_bound", extra={"agency_id": str(agency_id)})


def _apply_agency_setting(connection, agency_id: UUID) -> None:
    if connection.dialect.name == "postgresql":
        connection.execute(_SET_AGENCY_SQL, {"agency_id": str(agency_id)})


def _touches_tenant_rows(orm_execute_state: ORMExecuteState) -> bool:
    return any(
        issubclass(mapper.class_, TenantScopedMixin)
        for mapper in orm_execute_state.all_mappers
    )


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------


def _scope_statement(orm_execute_state: ORMExecuteState) -> None:
    if orm_execute_state.is_column_load or orm_execute_state.is_relationship_load:
        return

    agency_id = bound_agency(orm_execute_state.session)

    if orm_execute_state.is_select:
        if agency_id is None:
            if _touches_tenant_rows(orm_execute_state):
                raise TenantContextError(
                    "tenant-scoped query on a session with no bound agency"
                )
            return
        orm_execute_state.statement = orm_execute_state.statement.options(
            with_loader_criteria(
                TenantScopedMixin,
                lambda cls: cls.agency_id == agency_id,
                include_aliases=True,
            )
        )
    elif orm_execute_state.is_update or orm_execute_state.is_delete:
        if agency_id is None and _touches_tenant_rows(orm_execute_state):
            raise TenantContextError(
                "tenant-scoped bulk write on a session with no bound agency"
            )


def _guard_flush(session: Session, flush_context, instances) -> None:
    agency_id = bound_agency(session)
    for obj in chain(session.new, session.dirty, session.deleted):
        if not isinstance(obj, TenantScopedMixin):
            continue
        if agency_id is None:
            raise TenantContextError(
                f"flush of {type(obj).__name__} on a session with no bound agency"
            )
        if obj.agency_id != agency_id:
            logger.warning(
                "cross_tenant_write_blocked",
                extra={
                    "agency_id": str(agency_id),
                    "row_agency_id": str(obj.agency_id),
                    "entity": type(obj).__name__,
                },
            )
            raise TenantBindingError(
                str(agency_id),
                str(obj.agency_id),
                f"{type(obj).__name__} belongs to another agency",
            )


def _set_agency_on_begin(session: Session, transaction, connection) -> None:
    agency_id = bound_agency(session)
    if agency_id is not None:
        _apply_agency_setting(connection, agency_id)


_HANDLERS = (
    ("do_orm_execute", _scope_statement),
    ("before_flush", _guard_flush),
    ("after_begin", _set_agency_on_begin),
)


def register_tenant_guards() -> None:
    """Install the guards on every Session (idempotent)."""
    for name, handler in _HANDLERS:
        if not event.contains(Session, name, handler):
            event.listen(Session, name, handler)


def unregister_tenant_guards() -> None:
    """Remove the guards.  FOR TESTING ONLY."""
    for name, handler in _HANDLERS:
        if event.contains(Session, name, handler):
            event.remove(Session, name, handler)
