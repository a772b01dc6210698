"""
letably_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits beside ``letably_kernel``; the kernel receives the
    frozen ``LedgerConfig`` (or one of its sections) as a constructor
    argument and never imports YAML itself.

Invariants enforced:
    - Defaults always load from the packaged ``defaults.yaml``.
    - An override file (explicit ``path`` or ``LETABLY_CONFIG_PATH``) is
      merged over the defaults key by key.
    - ``LETABLY_DATABASE_URL`` wins over any file for ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- override path does not exist.
    - ``ValueError`` -- unknown keys, wrong types, or out-of-range values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from letably_config.loader import load_yaml_file, merge_dicts, parse_config
from letably_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    PaginationConfig,
    RetryConfig,
    ScheduleConfig,
    TenancyConfig,
)

__all__ = [
    "DatabaseConfig",
    "LedgerConfig",
    "PaginationConfig",
    "RetryConfig",
    "ScheduleConfig",
    "TenancyConfig",
    "get_active_config",
]

_logger = logging.getLogger("letably_kernel.config")

_DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "LETABLY_CONFIG_PATH"
DATABASE_URL_ENV = "LETABLY_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional override YAML file.  Falls back to
            ``$LETABLY_CONFIG_PATH`` when not given.

    Returns:
        A frozen ``LedgerConfig``.  Not cached: callers hold the returned
        object for as long as they need it.

    Raises:
        FileNotFoundError: If the override file does not exist.
        ValueError: If the merged configuration does not validate.
    """
    data = load_yaml_file(_DEFAULTS_FILE)

    override = path or os.environ.get(CONFIG_PATH_ENV)
    if override:
        data = merge_dicts(data, load_yaml_file(Path(override)))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        data = merge_dicts(data, {"database": {"url": database_url}})

    config = parse_config(data)

    _logger.info(
        "config_loaded",
        extra={
            "override_path": str(override) if override else None,
            "retry_max_attempts": config.retry.max_attempts,
            "pagination_max_limit": config.pagination.max_limit,
        },
    )
    return config
