#!/usr/bin/env python3
"""
Create the ledger schema and install PostgreSQL row-level security.

The database URL comes from --db-url, else from the active configuration
(LETABLY_DATABASE_URL, an override file in LETABLY_CONFIG_PATH, or the
packaged defaults).

Usage:
  python3 scripts/init_db.py [--db-url URL] [--config PATH] [--drop] [--no-rls]

Prerequisites:
  - PostgreSQL running and the target database created, or a sqlite:/// URL.
  - For row-level security to apply, connect the application with a role
    that is neither superuser nor BYPASSRLS.
"""

import argparse
import sys


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create ledger tables and row-level security policies")
    p.add_argument("--db-url", default=None, help="Database URL (default: from configuration)")
    p.add_argument("--config", default=None, help="Override YAML configuration file")
    p.add_argument("--drop", action="store_true", help="Drop existing tables first")
    p.add_argument("--no-rls", action="store_true", help="Skip row-level security policies")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from letably_config import get_active_config
    from letably_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        is_postgres,
        reset_engine,
    )
    from letably_kernel.db.rls import get_installed_policies, role_bypasses_rls

    config = get_active_config(args.config)
    db_url = args.db_url or config.database.url

    engine = init_engine_from_url(
        db_url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    try:
        if args.drop:
            print("  Dropping existing tables ...")
            drop_tables()
        create_tables(install_rls=not args.no_rls)
        print(f"  Schema ready on {engine.dialect.name}.")

        if is_postgres() and not args.no_rls:
            policies = get_installed_policies(engine)
            print(f"  Row-level security policies: {len(policies)}")
            if role_bypasses_rls(engine):
                print(
                    "  WARNING: the connected role bypasses row-level security; "
                    "use an ordinary role for the application.",
                    file=sys.stderr,
                )
    finally:
        reset_engine()
    return 0


if __name__ == "__main__":
    sys.exit(main())
