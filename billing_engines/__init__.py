"""
Module: billing_engines
Responsibility:
    Package entrypoint for the pure calculation engines used by the billing
    services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel.domain, billing_kernel.exceptions and
    billing_kernel.logging_config.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Decimal-only arithmetic through PrecisionMath.
    - Every engine invocation is traced (BILLING_ENGINE_TRACE).
"""

from billing_engines.allocation import (
    AllocationEngine,
    AllocationLine,
    AllocationMethod,
    AllocationResult,
    WeightStrategy,
    strategy_for,
)
from billing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AllocationEngine",
    "AllocationLine",
    "AllocationMethod",
    "AllocationResult",
    "WeightStrategy",
    "strategy_for",
    "traced_engine",
    "compute_input_fingerprint",
]
