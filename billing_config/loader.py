"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Reads the YAML configuration file and parses each section into the frozen
dataclasses of ``billing_config.schema``.  Runtime callers go through
``billing_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing file  -> ``ConfigError``.
* Malformed YAML  -> ``ConfigError`` chaining the ``yaml.YAMLError``.
* Wrong type or unknown value for a key  -> ``ConfigError`` naming the key.
"""

from __future__ import annotations

import decimal
import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingConfig,
    BillingRulesConfig,
    DatabaseConfig,
    LoggingConfig,
    PrecisionConfig,
)

_ROUNDING_NAMES = frozenset({
    "ROUND_CEILING",
    "ROUND_DOWN",
    "ROUND_FLOOR",
    "ROUND_HALF_DOWN",
    "ROUND_HALF_EVEN",
    "ROUND_HALF_UP",
    "ROUND_UP",
})

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class ConfigError(ValueError):
    """Invalid or unreadable configuration; ``key`` names the offending entry."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration at {key!r}: {reason}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its top-level mapping.

    Raises:
        ConfigError: if the file is missing, unparsable, or not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(str(path), "file not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(str(path), f"malformed YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(name, "must be a mapping")
    return value


def _int(section: dict[str, Any], prefix: str, key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{prefix}.{key}", f"expected an integer, got {value!r}")
    return value


def _bool(section: dict[str, Any], prefix: str, key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{prefix}.{key}", f"expected true/false, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    url = data.get("url")
    if not isinstance(url, str) or not url:
        raise ConfigError("database.url", "a non-empty URL is required")
    return DatabaseConfig(
        url=url,
        echo=_bool(data, "database", "echo", False),
        pool_size=_int(data, "database", "pool_size", 20),
    )


def parse_precision(data: dict[str, Any]) -> PrecisionConfig:
    rounding = str(data.get("rounding", "ROUND_HALF_UP")).upper()
    if rounding not in _ROUNDING_NAMES:
        raise ConfigError("precision.rounding", f"unknown rounding mode {rounding!r}")

    raw_max = data.get("max_amount", "1000000.00")
    if isinstance(raw_max, float):
        # YAML floats lose cents; demand a quoted string
        raise ConfigError("precision.max_amount", "quote decimal amounts as strings")
    try:
        max_amount = Decimal(str(raw_max))
    except InvalidOperation as exc:
        raise ConfigError("precision.max_amount", f"not a number: {raw_max!r}") from exc

    precision = _int(data, "precision", "precision", 28)
    currency_places = _int(data, "precision", "currency_places", 2)
    if precision <= 0:
        raise ConfigError("precision.precision", "must be positive")
    if currency_places < 0:
        raise ConfigError("precision.currency_places", "cannot be negative")
    if max_amount <= 0:
        raise ConfigError("precision.max_amount", "must be positive")

    return PrecisionConfig(
        precision=precision,
        rounding=rounding,
        currency_places=currency_places,
        max_amount=max_amount,
    )


def parse_billing_rules(data: dict[str, Any]) -> BillingRulesConfig:
    rules = BillingRulesConfig(
        min_year=_int(data, "billing", "min_year", 2000),
        max_year=_int(data, "billing", "max_year", 2100),
        audit_query_limit=_int(data, "billing", "audit_query_limit", 50),
        period_list_limit=_int(data, "billing", "period_list_limit", 12),
    )
    if rules.min_year > rules.max_year:
        raise ConfigError("billing.min_year", "must not be after billing.max_year")
    if rules.audit_query_limit <= 0:
        raise ConfigError("billing.audit_query_limit", "must be positive")
    if rules.period_list_limit <= 0:
        raise ConfigError("billing.period_list_limit", "must be positive")
    return rules


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError("logging.level", f"unknown level {level!r}")
    return LoggingConfig(level=level)


def parse_config(
    data: dict[str, Any],
    source: str = "",
    database_url: str | None = None,
) -> BillingConfig:
    """
    Build a ``BillingConfig`` from a parsed YAML mapping.

    ``database_url``, when given, replaces ``database.url``.
    """
    database = dict(_section(data, "database"))
    if database_url:
        database["url"] = database_url
    return BillingConfig(
        database=parse_database(database),
        precision=parse_precision(_section(data, "precision")),
        billing=parse_billing_rules(_section(data, "billing")),
        logging=parse_logging(_section(data, "logging")),
        source=source,
        checksum=compute_checksum(data),
    )


def rounding_constant(name: str) -> str:
    """Map a rounding mode name (``ROUND_HALF_UP``) to the ``decimal`` constant."""
    if name not in _ROUNDING_NAMES:
        raise ConfigError("precision.rounding", f"unknown rounding mode {name!r}")
    return getattr(decimal, name)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical input, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
