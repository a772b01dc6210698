"""
Configuration Loader (``letably_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen dataclasses of
``letably_config.schema``.  Runtime code obtains configuration through
``letably_config.get_active_config()``; this module is its implementation.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or values of the wrong type  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from letably_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    PaginationConfig,
    RetryConfig,
    ScheduleConfig,
    TenancyConfig,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "retry": RetryConfig,
    "pagination": PaginationConfig,
    "schedules": ScheduleConfig,
    "tenancy": TenancyConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce(section: str, name: str, expected: Any, value: Any) -> Any:
    # bool is an int subclass; reject it where a number is expected
    if expected is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{section}.{name} must be a boolean")
        return value
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{section}.{name} must be an integer")
        return value
    if expected is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{section}.{name} must be a number")
        return float(value)
    if expected is str:
        if not isinstance(value, str):
            raise ValueError(f"{section}.{name} must be a string")
        return value
    if expected == tuple[str, ...]:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{section}.{name} must be a list of strings")
        return tuple(value)
    raise ValueError(f"{section}.{name}: unsupported type {expected!r}")


_TYPE_NAMES: dict[str, Any] = {
    "bool": bool,
    "int": int,
    "float": float,
    "str": str,
    "tuple[str, ...]": tuple[str, ...],
}


def parse_section(section: str, cls: type, data: Any) -> Any:
    """Parse one mapping into its dataclass, rejecting unknown keys."""
    if not isinstance(data, dict):
        raise ValueError(f"{section} must be a mapping")
    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(f"Unknown keys in {section}: {', '.join(sorted(unknown))}")
    kwargs = {}
    for name, value in data.items():
        # schema uses postponed annotations, so field types are strings
        expected = _TYPE_NAMES[known[name].type]
        kwargs[name] = _coerce(section, name, expected, value)
    return cls(**kwargs)


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a complete configuration mapping into a ``LedgerConfig``.

    Sections that are absent fall back to their dataclass defaults.
    """
    allowed = set(_SECTIONS) | {"currency_symbol"}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    kwargs: dict[str, Any] = {}
    if "currency_symbol" in data:
        kwargs["currency_symbol"] = _coerce(
            "root", "currency_symbol", str, data["currency_symbol"]
        )
    for section, cls in _SECTIONS.items():
        if section in data:
            kwargs[section] = parse_section(section, cls, data[section])
    return LedgerConfig(**kwargs)
