"""
Configuration schema (``billing_config.schema``).

Frozen dataclasses for each section of the billing configuration file.
Parsing lives in ``billing_config.loader``; nothing here reads files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20


@dataclass(frozen=True)
class PrecisionConfig:
    """Decimal settings; ``rounding`` is a ``decimal`` constant name."""

    precision: int = 28
    rounding: str = "ROUND_HALF_UP"
    currency_places: int = 2
    max_amount: Decimal = Decimal("1000000.00")


@dataclass(frozen=True)
class BillingRulesConfig:
    min_year: int = 2000
    max_year: int = 2100
    audit_query_limit: int = 50
    period_list_limit: int = 12


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class BillingConfig:
    """
    The complete runtime configuration.

    ``source`` is the file it was loaded from and ``checksum`` the SHA-256
    of its parsed content, for tracing which configuration was active.
    """

    database: DatabaseConfig
    precision: PrecisionConfig = field(default_factory=PrecisionConfig)
    billing: BillingRulesConfig = field(default_factory=BillingRulesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: str = ""
    checksum: str = ""
