"""
Config -> Kernel bridges.

Convert ``BillingConfig`` sections into the objects the kernel consumes.
These live here because the kernel must never import billing_config.

Usage:
    from billing_config import get_active_config
    from billing_config.bridges import build_billing_limits, build_precision_math

    config = get_active_config()
    math = build_precision_math(config)
    limits = build_billing_limits(config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from billing_config.loader import rounding_constant
from billing_config.schema import BillingConfig
from billing_kernel.db.engine import init_engine_from_url
from billing_kernel.domain.dtos import BillingLimits
from billing_kernel.domain.precision import PrecisionContext, PrecisionMath


def build_precision_context(config: BillingConfig) -> PrecisionContext:
    section = config.precision
    return PrecisionContext(
        precision=section.precision,
        rounding=rounding_constant(section.rounding),
        currency_places=section.currency_places,
        max_amount=section.max_amount,
    )


def build_precision_math(config: BillingConfig) -> PrecisionMath:
    """PrecisionMath bound to the configured precision section."""
    return PrecisionMath(build_precision_context(config))


def build_billing_limits(config: BillingConfig) -> BillingLimits:
    rules = config.billing
    return BillingLimits(
        min_year=rules.min_year,
        max_year=rules.max_year,
        audit_query_limit=rules.audit_query_limit,
        period_list_limit=rules.period_list_limit,
    )


def init_engine_from_config(config: BillingConfig) -> Engine:
    """Initialize the kernel engine from the ``database`` section."""
    db = config.database
    return init_engine_from_url(db.url, echo=db.echo, pool_size=db.pool_size)
