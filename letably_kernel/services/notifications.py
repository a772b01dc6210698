"""
Notification dispatch for schedule status transitions.

The ledger hands each committed StatusTransition to a Notifier (e-mail,
webhooks, ...).  Delivery happens after commit and its failures are logged,
never raised: a notification problem cannot undo a ledger write.
"""

from collections.abc import Iterable
from typing import Protocol

from letably_kernel.domain.dtos import StatusTransition
from letably_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class Notifier(Protocol):
    def notify(self, transition: StatusTransition) -> None: ...


class NullNotifier:
    """Discards every transition."""

    def notify(self, transition: StatusTransition) -> None:
        return None


def dispatch(notifier: Notifier, transitions: Iterable[StatusTransition]) -> int:
    """Deliver ``transitions`` in order.  Returns how many were delivered."""
    delivered = 0
    for transition in transitions:
        try:
            notifier.notify(transition)
        except Exception:
            logger.error(
                "notification_failed",
                exc_info=True,
                extra={
                    "agency_id": str(transition.agency_id),
                    "schedule_id": str(transition.schedule_id),
                    "new_status": transition.new_status,
                    "cause": transition.cause,
                },
            )
            continue
        delivered += 1
    return delivered
