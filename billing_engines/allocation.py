"""
Module: billing_engines.allocation
Responsibility:
    Split one utility bill across the tenants of a property for one billing
    month, using the bill's allocation method, with cent-exact rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel.domain and billing_kernel.exceptions.

Invariants enforced:
    - Sum preservation: when any tenant is allocated, the allocated amounts
      sum to the bill total to the cent (remainder absorbed by the last
      tenant in input order).
    - Eligibility: only ACTIVE tenants whose lease overlaps the month take
      part; time-weighted methods further drop tenants with zero weight.
    - Determinism: tenants are processed in the order given, so identical
      inputs give identical lines.

Failure modes:
    - InvalidInputError on an unknown method string or a bad total, and
      when the total is too small for the split: the leading shares round
      up past the total and the last share would go negative.
    - No eligible tenants (or a zero total weight) is NOT an error: the
      result is empty and ``is_allocated`` is False.

Usage:
    from billing_engines.allocation import AllocationEngine, AllocationMethod

    engine = AllocationEngine()
    result = engine.allocate(
        total_amount=Decimal("100.00"),
        method=AllocationMethod.PER_PERSON,
        billing_month=BillingMonth(2024, 6),
        tenants=[...],
    )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from billing_engines.tracer import traced_engine
from billing_kernel.domain.dtos import AllocationMethod, OccupancyStatus, TenantOccupancy
from billing_kernel.domain.occupancy import BillingMonth, occupied_days
from billing_kernel.domain.precision import ZERO, PrecisionMath
from billing_kernel.exceptions import InvalidInputError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


# ---------------------------------------------------------------------------
# Weight strategies
# ---------------------------------------------------------------------------


class WeightStrategy(ABC):
    """
    Weight of one tenant's claim on a bill.

    Contract:
        ``compute_weight`` is only called for eligible tenants and returns
        a non-negative Decimal.  A zero weight drops the tenant.
    """

    method: AllocationMethod

    def __init__(self, math: PrecisionMath):
        self.math = math

    @abstractmethod
    def compute_weight(self, tenant: TenantOccupancy, billing_month: BillingMonth) -> Decimal:
        ...


class PerPersonStrategy(WeightStrategy):
    method = AllocationMethod.PER_PERSON

    def compute_weight(self, tenant, billing_month):
        return Decimal(1)


class PerSqmStrategy(WeightStrategy):
    method = AllocationMethod.PER_SQM

    def compute_weight(self, tenant, billing_month):
        return self.math.decimal(tenant.room_area)


class PersonDaysStrategy(WeightStrategy):
    """Occupied days in the month, one unit per tenant."""

    method = AllocationMethod.PER_PERSON_WEIGHTED

    def compute_weight(self, tenant, billing_month):
        return Decimal(
            occupied_days(
                tenant.move_in_date,
                tenant.move_out_date,
                billing_month.year,
                billing_month.month,
            )
        )


class SqmDaysStrategy(WeightStrategy):
    """Room area times occupied days in the month."""

    method = AllocationMethod.PER_SQM_WEIGHTED

    def compute_weight(self, tenant, billing_month):
        days = occupied_days(
            tenant.move_in_date,
            tenant.move_out_date,
            billing_month.year,
            billing_month.month,
        )
        return self.math.multiply(tenant.room_area, days)


_STRATEGIES: dict[AllocationMethod, type[WeightStrategy]] = {
    AllocationMethod.PER_PERSON: PerPersonStrategy,
    AllocationMethod.PER_SQM: PerSqmStrategy,
    AllocationMethod.PER_PERSON_WEIGHTED: PersonDaysStrategy,
    AllocationMethod.PER_SQM_WEIGHTED: SqmDaysStrategy,
}


def strategy_for(method: AllocationMethod | str, math: PrecisionMath) -> WeightStrategy:
    """Strategy instance for ``method``; unknown strings raise InvalidInputError."""
    return _STRATEGIES[AllocationMethod.parse(method)](math)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocationLine:
    """
    One tenant's share of a bill.

    Guarantees:
        - ``rate`` is weight / total weight at full precision.
        - ``allocated_amount`` is rounded to currency places.
    """

    tenant_id: UUID | str
    occupied_days: int
    weight: Decimal
    rate: Decimal
    allocated_amount: Decimal


@dataclass(frozen=True)
class AllocationResult:
    """
    Complete allocation of one bill.

    Guarantees:
        - Empty ``lines`` or ``sum(allocated_amount) == total_amount``.
    Non-goals:
        - Does not persist; callers replace the stored set.
    """

    method: AllocationMethod
    billing_month: BillingMonth
    total_amount: Decimal
    total_weight: Decimal
    lines: tuple[AllocationLine, ...]

    @property
    def is_allocated(self) -> bool:
        return bool(self.lines)

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.allocated_amount for line in self.lines), ZERO)

    @property
    def unallocated(self) -> Decimal:
        return self.total_amount - self.total_allocated

    def amounts(self) -> dict[UUID | str, Decimal]:
        """tenant_id -> allocated amount, in line order."""
        return {line.tenant_id: line.allocated_amount for line in self.lines}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AllocationEngine:
    """
    Allocate utility bills across tenants.

    Contract:
        Pure: no clock, no database.  Money arithmetic goes through the
        injected ``PrecisionMath``.
    Guarantees:
        - Rounding:
            * Weights and rates are kept at full precision.
            * Each share is rounded half-up to currency places.
            * The last tenant absorbs the rounding remainder.
        - The same empty-result policy applies to every method.
    Non-goals:
        - Does not pick the method; it comes from the utility entry.
    """

    def __init__(self, math: PrecisionMath | None = None):
        self.math = math or PrecisionMath()

    @staticmethod
    def eligible_tenants(
        tenants: Sequence[TenantOccupancy],
        billing_month: BillingMonth,
    ) -> list[TenantOccupancy]:
        """ACTIVE tenants whose lease overlaps the billing month, order kept."""
        return [
            t for t in tenants
            if t.occupancy_status == OccupancyStatus.ACTIVE and t.overlaps(billing_month)
        ]

    @traced_engine(
        "allocation", "1.0",
        fingerprint_fields=("total_amount", "method", "billing_month", "tenants"),
    )
    def allocate(
        self,
        *,
        total_amount: Decimal,
        method: AllocationMethod | str,
        billing_month: BillingMonth,
        tenants: Sequence[TenantOccupancy],
    ) -> AllocationResult:
        """
        Allocate ``total_amount`` for ``billing_month`` among ``tenants``.

        Args:
            total_amount: Bill total, > 0; rounded to currency places first.
            method: Allocation method (enum or its string value).
            billing_month: Month the bill covers.
            tenants: Candidate tenants in a deterministic order.

        Returns:
            AllocationResult; empty when nobody is eligible.

        Raises:
            InvalidInputError: Unknown method, a total below one cent, or a
                total too small to split to the cent.
        """
        strategy = strategy_for(method, self.math)
        total = self.math.to_currency(
            self.math.validate_amount(total_amount, field="total_amount", allow_zero=False)
        )
        if total.is_zero():
            raise InvalidInputError("total_amount", str(total_amount), "must be at least one cent")

        logger.info("allocation_started", extra={
            "total_amount": str(total),
            "method": strategy.method.value,
            "billing_month": billing_month.label,
            "tenant_count": len(tenants),
        })

        weighted: list[tuple[TenantOccupancy, int, Decimal]] = []
        for tenant in self.eligible_tenants(tenants, billing_month):
            weight = strategy.compute_weight(tenant, billing_month)
            if weight <= ZERO:
                continue
            days = occupied_days(
                tenant.move_in_date,
                tenant.move_out_date,
                billing_month.year,
                billing_month.month,
            )
            weighted.append((tenant, days, weight))

        total_weight = self.math.add(*(w for _, _, w in weighted))
        if not weighted or total_weight.is_zero():
            logger.warning("allocation_no_eligible_tenants", extra={
                "total_amount": str(total),
                "method": strategy.method.value,
                "billing_month": billing_month.label,
                "candidate_count": len(tenants),
            })
            return AllocationResult(
                method=strategy.method,
                billing_month=billing_month,
                total_amount=total,
                total_weight=ZERO,
                lines=(),
            )

        # Positional keys: tenant ids are not guaranteed unique in the input
        shares = self.math.proportional_allocation(
            total, {i: w for i, (_, _, w) in enumerate(weighted)}
        )
        if any(share < ZERO for share in shares.values()):
            # Round-ups on the leading shares exceed what is left for the last
            raise InvalidInputError(
                "total_amount",
                str(total),
                f"too small to split among {len(weighted)} tenants to the cent",
            )

        lines = tuple(
            AllocationLine(
                tenant_id=tenant.tenant_id,
                occupied_days=days,
                weight=weight,
                rate=self.math.divide(weight, total_weight, "allocation rate"),
                allocated_amount=shares[i],
            )
            for i, (tenant, days, weight) in enumerate(weighted)
        )
        result = AllocationResult(
            method=strategy.method,
            billing_month=billing_month,
            total_amount=total,
            total_weight=total_weight,
            lines=lines,
        )

        logger.info("allocation_completed", extra={
            "method": strategy.method.value,
            "billing_month": billing_month.label,
            "allocated_count": len(lines),
            "total_weight": str(total_weight),
            "total_allocated": str(result.total_allocated),
        })
        return result
