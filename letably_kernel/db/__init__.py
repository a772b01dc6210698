"""Database layer - engine, base classes, tenant guards and row-level security."""

from letably_kernel.db.base import Base, TenantScopedMixin, TrackedBase, UUIDString
from letably_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from letably_kernel.db.tenant import (
    bind_agency,
    bound_agency,
    register_tenant_guards,
)

__all__ = [
    "Base",
    "TrackedBase",
    "TenantScopedMixin",
    "UUIDString",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "is_postgres",
    "bind_agency",
    "bound_agency",
    "register_tenant_guards",
]
