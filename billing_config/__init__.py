"""
billing_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``BillingConfig``.

Architecture position:
    Configuration -- sits above ``billing_kernel`` and ``billing_engines``.
    The kernel MUST NEVER import from ``billing_config``; the bridges in
    this package translate configuration into kernel inputs.

Failure modes:
    - ``ConfigError`` -- missing file, malformed YAML, or an invalid value
      (the error names the offending key).

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BILLING_CONFIG_TRACE`` log entry with the source path and checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from billing_config.bridges import (
    build_billing_limits,
    build_precision_context,
    build_precision_math,
    init_engine_from_config,
)
from billing_config.loader import ConfigError, load_yaml_file, parse_config
from billing_config.schema import BillingConfig
from billing_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "RENTAL_BILLING_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> BillingConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``path`` argument, then the
    ``RENTAL_BILLING_CONFIG`` environment variable, then the packaged
    ``defaults.yaml``.  ``DATABASE_URL``, when set, replaces
    ``database.url``.

    Raises:
        ConfigError: If the file cannot be read or a value is invalid.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    data = load_yaml_file(config_path)
    config = parse_config(
        data,
        source=str(config_path),
        database_url=os.environ.get(DATABASE_URL_ENV) or None,
    )

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "config_source": config.source,
            "checksum": config.checksum,
            "rounding": config.precision.rounding,
            "currency_places": config.precision.currency_places,
        },
    )
    return config


__all__ = [
    "BillingConfig",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
    "build_precision_context",
    "build_precision_math",
    "build_billing_limits",
    "init_engine_from_config",
]
