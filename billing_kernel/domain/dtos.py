"""
DTOs -- frozen value objects exchanged across the billing core.

Responsibility:
    Defines the closed enums (occupancy status, allocation method, billing
    status, audit action) and the immutable snapshots that services return
    instead of ORM rows, so callers can never mutate persisted state by
    accident.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by engines, services and
    tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from billing_kernel.domain.occupancy import BillingMonth
from billing_kernel.exceptions import InvalidInputError


class OccupancyStatus(str, Enum):
    """Lease status of a tenant."""

    ACTIVE = "active"
    PENDING = "pending"
    MOVED_OUT = "moved_out"


class AllocationMethod(str, Enum):
    """How a utility bill is split among the tenants of a property."""

    PER_PERSON = "per_person"  # Equal split per eligible tenant
    PER_SQM = "per_sqm"  # By room area
    PER_PERSON_WEIGHTED = "per_person_weighted"  # By person-days in the month
    PER_SQM_WEIGHTED = "per_sqm_weighted"  # By area x occupied days

    @classmethod
    def parse(cls, value: str | AllocationMethod) -> AllocationMethod:
        """Strict parse; unknown strings raise InvalidInputError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError as exc:
            raise InvalidInputError(
                "allocation_method",
                value,
                f"must be one of {', '.join(m.value for m in cls)}",
            ) from exc

    @property
    def is_time_weighted(self) -> bool:
        return self in (AllocationMethod.PER_PERSON_WEIGHTED, AllocationMethod.PER_SQM_WEIGHTED)


class BillingStatus(str, Enum):
    """Lifecycle status of a billing period.

    Contract: CALCULATED -> FINALIZED.  A FINALIZED period only returns to
    CALCULATED through an explicit, audited force override.
    """

    CALCULATED = "calculated"
    FINALIZED = "finalized"


class AuditAction(str, Enum):
    """Actions recorded in the billing audit trail."""

    CREATED = "created"
    CALCULATED = "calculated"
    FINALIZED = "finalized"
    RECALCULATED = "recalculated"


@dataclass(frozen=True)
class TenantOccupancy:
    """
    The slice of a tenant the allocation engine reads.

    Guarantees:
        - ``move_out_date`` is None or strictly after ``move_in_date``.
    """

    tenant_id: UUID | str
    move_in_date: date
    move_out_date: date | None = None
    room_area: Decimal = Decimal("1")
    number_of_people: int = 1
    occupancy_status: OccupancyStatus = OccupancyStatus.ACTIVE
    rent_amount: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.move_out_date is not None and self.move_out_date <= self.move_in_date:
            raise InvalidInputError(
                "move_out_date",
                self.move_out_date.isoformat(),
                "must be after move_in_date",
            )
        if not isinstance(self.occupancy_status, OccupancyStatus):
            object.__setattr__(
                self, "occupancy_status", OccupancyStatus(self.occupancy_status)
            )

    def overlaps(self, billing_month: BillingMonth) -> bool:
        """True if the lease window touches any day of the month."""
        return self.move_in_date <= billing_month.last_day and (
            self.move_out_date is None or self.move_out_date >= billing_month.first_day
        )


@dataclass(frozen=True)
class UtilityEntryInfo:
    """Snapshot of a utility bill."""

    id: UUID
    property_id: UUID
    month: int
    year: int
    utility_type: str
    total_amount: Decimal
    allocation_method: AllocationMethod

    @property
    def billing_month(self) -> BillingMonth:
        return BillingMonth(self.year, self.month)


@dataclass(frozen=True)
class AllocationInfo:
    """One persisted tenant share of a utility bill."""

    id: UUID
    tenant_id: UUID
    utility_entry_id: UUID
    allocated_amount: Decimal


@dataclass(frozen=True)
class AllocationBreakdownLine:
    """Per-tenant detail of a weighted allocation, for display and audit."""

    tenant_id: UUID
    occupied_days: int
    weight: Decimal
    rate: Decimal
    allocated_amount: Decimal


@dataclass(frozen=True)
class AllocationBreakdown:
    """
    Weighted allocation of one utility entry.

    ``effective_rate`` is the amount per unit of weight
    (total_amount / total_weight); zero when nothing was allocated.
    """

    utility_entry_id: UUID
    allocation_method: AllocationMethod
    total_amount: Decimal
    total_weight: Decimal
    effective_rate: Decimal
    lines: tuple[AllocationBreakdownLine, ...]

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.allocated_amount for line in self.lines), Decimal("0"))

    @property
    def is_allocated(self) -> bool:
        return bool(self.lines)


@dataclass(frozen=True)
class BillingPeriodInfo:
    """Snapshot of a billing period."""

    id: UUID
    property_id: UUID
    month: int
    year: int
    tenant_count: int
    total_rent_calculated: Decimal
    total_utilities_calculated: Decimal
    calculation_status: BillingStatus
    notes: str | None
    calculation_date: datetime | None = None
    finalized_at: datetime | None = None

    @property
    def billing_month(self) -> BillingMonth:
        return BillingMonth(self.year, self.month)

    @property
    def is_finalized(self) -> bool:
        return self.calculation_status == BillingStatus.FINALIZED

    @property
    def total_due(self) -> Decimal:
        return self.total_rent_calculated + self.total_utilities_calculated


@dataclass(frozen=True)
class AuditTrailEntryInfo:
    """One append-only audit record."""

    id: UUID
    seq: int
    billing_period_id: UUID
    action: AuditAction
    details: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class RecalculationRequest:
    """
    Adjustments for a billing period recalculation.

    ``force`` permits recalculating a finalized period; the override is
    recorded in the audit trail together with ``reason``.
    """

    reason: str | None = None
    notes: str | None = None
    force: bool = False


class AllocationCheckStatus(str, Enum):
    CORRECT = "correct"
    ISSUE = "issue"
    UNALLOCATED = "unallocated"


@dataclass(frozen=True)
class AllocationCheck:
    """Result of checking that a utility entry's shares add up to its bill."""

    utility_entry_id: UUID
    property_id: UUID
    month: int
    year: int
    utility_type: str
    total_amount: Decimal
    total_allocated: Decimal
    allocation_count: int
    status: AllocationCheckStatus

    @property
    def difference(self) -> Decimal:
        return abs(self.total_amount - self.total_allocated)


@dataclass(frozen=True)
class RecalculationSummary:
    """Outcome of re-running allocation over many utility entries."""

    property_id: UUID
    total: int
    recalculated: int
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class BillingLimits:
    """
    Input bounds and query limits applied by the billing services.

    Built from the ``billing`` configuration section by
    ``billing_config.build_billing_limits``; the defaults match it.
    """

    min_year: int = 2000
    max_year: int = 2100
    audit_query_limit: int = 50
    period_list_limit: int = 12

    def __post_init__(self) -> None:
        if self.min_year > self.max_year:
            raise ValueError(
                f"min_year {self.min_year} is after max_year {self.max_year}"
            )
        if self.audit_query_limit <= 0 or self.period_list_limit <= 0:
            raise ValueError("query limits must be positive")

    def check_period(self, year: int, month: int) -> BillingMonth:
        """Validated billing month; InvalidInputError outside the bounds."""
        if isinstance(year, int) and not isinstance(year, bool) and not (
            self.min_year <= year <= self.max_year
        ):
            raise InvalidInputError(
                "year", year, f"must be between {self.min_year} and {self.max_year}"
            )
        return BillingMonth(year, month)


@dataclass(frozen=True)
class TenantRentShare:
    """One tenant's prorated rent for a billing month."""

    tenant_id: UUID
    tenant_name: str
    monthly_rent: Decimal
    days_in_month: int
    occupied_days: int
    daily_rate: Decimal
    prorated_amount: Decimal
    occupancy_period: str
