"""
Module: letably_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.  Displayed
      status is recomputed from payments and the injected clock; the stored
      status column is never written from a read.
    - Every query filters on the agency passed in, and the session is bound
      to that agency before the first query.
    - Selectors return DTOs, not ORM instances.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from letably_kernel.db.tenant import bind_agency
from letably_kernel.domain.clock import Clock, SystemClock


class BaseSelector:
    """Read-only access to ledger data for one session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _bind(self, agency_id: UUID) -> None:
        bind_agency(self.session, agency_id)
