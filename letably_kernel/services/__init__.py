"""Ledger services: write engines, tenant resolution and the PaymentLedger facade."""

from letably_kernel.services.base import BaseService
from letably_kernel.services.ledger_service import LedgerService
from letably_kernel.services.notifications import Notifier, NullNotifier, dispatch
from letably_kernel.services.payment_ledger import PaymentLedger
from letably_kernel.services.schedule_service import ScheduleService
from letably_kernel.services.tenant_context import InboundRequest, TenantContextResolver
from letably_kernel.services.transactions import TransactionRunner, is_contention

__all__ = [
    "BaseService",
    "InboundRequest",
    "LedgerService",
    "Notifier",
    "NullNotifier",
    "PaymentLedger",
    "ScheduleService",
    "TenantContextResolver",
    "TransactionRunner",
    "dispatch",
    "is_contention",
]
