"""
Module: letably_kernel.db.rls
Responsibility: Loading, installing and verifying the PostgreSQL row-level
    security policies (tenant isolation layer 3 of 3).
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced (via one policy per agency-owned table):
    - No row whose agency_id differs from current_setting('app.agency_id')
      can be selected, inserted, updated or deleted, even by the table
      owner (FORCE ROW LEVEL SECURITY).
    - With no agency set, no agency-owned row is visible.

Failure modes:
    - FileNotFoundError if SQL files are missing from the sql/ directory.
    - PostgreSQL raises "new row violates row-level security policy" on a
      cross-agency INSERT/UPDATE (surfaced as ProgrammingError).

Audit relevance:
    Superusers and roles with BYPASSRLS are not subject to these policies.
    Production connections must use an ordinary role.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

POLICY_FILES = [
    "01_enable_rls.sql",
]

DROP_FILE = "99_drop_rls.sql"

TENANT_TABLES = [
    "landlords",
    "properties",
    "tenancies",
    "tenancy_members",
    "payment_schedules",
    "payments",
]

ALL_POLICY_NAMES = [f"agency_isolation_{table}" for table in TENANT_TABLES]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def install_row_level_security(engine: Engine) -> None:
    """
    Enable row-level security and create the agency isolation policies.

    Preconditions: Tables must exist.  Engine must be PostgreSQL.
    Postconditions: Every table in TENANT_TABLES has its policy installed.
        Re-running is safe (policies are dropped and recreated).
    """
    sql_content = "\n".join(_load_sql_file(f) for f in POLICY_FILES)
    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def uninstall_row_level_security(engine: Engine) -> None:
    """Drop the policies and disable row-level security.  Tests and migrations only."""
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()


def get_installed_policies(engine: Engine) -> list[str]:
    """Names of the agency isolation policies present in pg_policies."""
    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT policyname FROM pg_policies "
                "WHERE policyname LIKE 'agency_isolation_%' ORDER BY policyname"
            )
        )
        return [row[0] for row in result]


def rls_installed(engine: Engine) -> bool:
    """True iff every expected policy is present."""
    return set(ALL_POLICY_NAMES) <= set(get_installed_policies(engine))


def role_bypasses_rls(engine: Engine) -> bool:
    """True when the connected role is a superuser or has BYPASSRLS."""
    with engine.connect() as conn:
        row = conn.execute(
            text(
                "SELECT rolsuper OR rolbypassrls FROM pg_roles "
                "WHERE rolname = current_user"
            )
        ).first()
    return bool(row and row[0])
