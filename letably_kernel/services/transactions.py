"""
TransactionRunner -- one tenant-bound transaction per ledger call, with
bounded retry on storage contention.

Responsibility:
    Opens a session, binds it to the caller's agency, runs the work,
    commits, and closes.  Serialization failures, deadlocks and lock
    timeouts are retried from scratch on a fresh session with exponential
    backoff; every other error propagates unchanged after rollback.

Architecture position:
    Kernel > Services -- transaction boundary used by PaymentLedger.

Invariants enforced:
    - All-or-nothing: a failed attempt is rolled back completely before the
      next attempt or before the error surfaces.
    - Caller errors (LetablyError) are never retried.
    - Retries are bounded by RetryConfig.max_attempts; exhaustion raises
      ConcurrentModificationError (a ConflictError).
"""

import time
from collections.abc import Callable
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from letably_config.schema import RetryConfig
from letably_kernel.db.tenant import bind_agency
from letably_kernel.exceptions import ConcurrentModificationError
from letably_kernel.logging_config import get_logger, operation_scope

logger = get_logger("services.transactions")

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
CONTENTION_PGCODES = frozenset({"40001", "40P01", "55P03"})

_CONTENTION_MESSAGES = (
    "deadlock",
    "could not serialize",
    "could not obtain lock",
    "database is locked",
)


def is_contention(exc: DBAPIError) -> bool:
    """True when ``exc`` is transient storage contention worth retrying."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in CONTENTION_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(fragment in message for fragment in _CONTENTION_MESSAGES)


class TransactionRunner:
    """Runs units of work in tenant-bound transactions."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        retry: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._retry = retry or RetryConfig()
        self._sleep = sleep

    def run(self, operation: str, agency_id: UUID, work: Callable[[Session], T]) -> T:
        """
        Run ``work(session)`` in its own transaction bound to ``agency_id``.

        Raises:
            ConcurrentModificationError: contention persisted through every
                attempt.
            Anything ``work`` raises, after rollback.
        """
        with operation_scope(operation):
            return self._attempt(operation, agency_id, work)

    def _attempt(self, operation: str, agency_id: UUID, work: Callable[[Session], T]) -> T:
        max_attempts = self._retry.max_attempts
        for attempt in range(1, max_attempts + 1):
            session = self._session_factory()
            try:
                bind_agency(session, agency_id)
                result = work(session)
                session.commit()
                logger.debug(
                    "transaction_committed",
                    extra={"agency_id": str(agency_id)},
                )
                return result
            except DBAPIError as exc:
                session.rollback()
                if not is_contention(exc):
                    raise
                if attempt == max_attempts:
                    logger.error(
                        "transaction_retries_exhausted",
                        extra={
                            "agency_id": str(agency_id),
                            "attempts": attempt,
                        },
                    )
                    raise ConcurrentModificationError(operation, attempt) from exc
                delay = self._retry.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "transaction_retry",
                    extra={
                        "agency_id": str(agency_id),
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        raise AssertionError("unreachable")  # pragma: no cover
