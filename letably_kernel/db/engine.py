"""
Module: letably_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management
    and transactional scope utilities.  Single point of database connection
    configuration for the ledger.
Architecture position: Kernel > DB.  May import from db/base.py, db/tenant.py
    and db/rls.py (create_tables/drop_tables also import the models).

Invariants enforced:
    - PostgreSQL is the production backend: READ COMMITTED with explicit
      row-level locking (SELECT ... FOR UPDATE) around balance checks, and
      row-level security installed by create_tables().
    - SQLite is accepted for local runs and the default test suite; the
      session-level tenant guards still apply, row-level security does not.
    - Tenant guards are registered on every engine initialization.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory are called
      before init_engine_from_url().
    - OperationalError on deadlock during policy installation (retried up
      to 3x).
"""

import atexit
import time
from contextlib import contextmanager
from typing import Generator
from uuid import UUID

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from letably_kernel.db.tenant import bind_agency, register_tenant_guards
from letably_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level engine and session factory are initialized
        and the tenant guards are registered.  A second call overwrites the
        first.

    Args:
        database_url: ``postgresql://...`` in production; ``sqlite://`` (in
            memory, single shared connection) or ``sqlite:///path`` for local
            runs.
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections beyond pool_size (PostgreSQL only).
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        _engine = create_engine(database_url, echo=echo, **kwargs)
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    register_tenant_guards()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new, unbound session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.  Each thread needs its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(agency_id: UUID | None = None) -> Generator[Session, None, None]:
    """
    Provide a transactional scope, optionally bound to one agency.

    Postconditions: On normal exit the session is committed and closed.  On
        exception it is rolled back and closed, and the exception re-raised.

    Usage:
        with session_scope(agency_id) as session:
            session.add(schedule)
    """
    session = get_session()
    if agency_id is not None:
        bind_agency(session, agency_id)
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(install_rls: bool = True) -> None:
    """
    Create all tables and, on PostgreSQL, install row-level security.

    Raises:
        RuntimeError: If engine is not initialized.
        OperationalError: If policy installation fails after 3 retries.
    """
    from letably_kernel.db.base import Base
    from letably_kernel.db.rls import install_row_level_security
    import letably_kernel.models  # noqa: F401  registers every table

    engine = get_engine()
    Base.metadata.create_all(engine)

    if not (install_rls and is_postgres()):
        return

    max_retries = 3
    for attempt in range(max_retries):
        try:
            install_row_level_security(engine)
            break
        except OperationalError as exc:
            if "deadlock" in str(exc).lower() and attempt < max_retries - 1:
                logger.warning(
                    "rls_install_deadlock_retry",
                    extra={"attempt": attempt + 1, "max_retries": max_retries},
                )
                engine.dispose()
                time.sleep(0.5 * (attempt + 1))
            else:
                raise
    logger.info("rls_installed")


def drop_tables() -> None:
    """Drop all tables.  Primarily for testing."""
    from letably_kernel.db.base import Base
    from letably_kernel.db.rls import uninstall_row_level_security
    import letably_kernel.models  # noqa: F401

    engine = get_engine()
    if is_postgres():
        uninstall_row_level_security(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Reset the engine and session factory.  Useful for test cleanup."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    global _engine
    if _engine is not None:
        try:
            _engine.dispose()
        except Exception:
            pass


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"
