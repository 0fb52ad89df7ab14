"""
BillingPeriodService -- monthly billing period lifecycle.

Responsibility:
    Computes a property's billing period for one month (prorated rent plus
    utility totals), finalizes it, and recalculates it, recording every
    transition in the audit trail.

Architecture position:
    Kernel > Services -- imperative shell.
    Uses AllocationService to allocate bills that have no allocations yet
    and BillingAuditService to record each action in the same transaction.

Invariants enforced:
    - One period per (property, month, year); the row is read with
      ``SELECT ... FOR UPDATE`` before it is changed.
    - A FINALIZED period is never overwritten without ``force``; a forced
      overwrite is always audited with ``forced_override``.
    - Rent: every tenant with at least one occupied day in the month owes
      ``round(monthly_rent / days_in_month * occupied_days)``, whatever
      the occupancy status; a full month owes exactly the monthly rent.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - BillingPeriodNotFoundError / PropertyNotFoundError on unknown ids.
    - AlreadyFinalizedError on overwrite without force or on a second
      finalize.
    - CannotRecalculateFinalizedError on recalculate without force.
    - InvalidInputError for a month outside 1-12 or a year out of bounds.

Audit relevance:
    created, calculated, finalized and recalculated entries carry the
    totals before and after each change so a figure can be reconstructed.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import (
    AuditAction,
    AuditTrailEntryInfo,
    BillingLimits,
    BillingPeriodInfo,
    BillingStatus,
    RecalculationRequest,
    TenantRentShare,
)
from billing_kernel.domain.occupancy import (
    BillingMonth,
    describe_occupancy_period,
    prorate_rent,
)
from billing_kernel.domain.precision import ZERO, PrecisionMath
from billing_kernel.exceptions import (
    AlreadyFinalizedError,
    BillingPeriodNotFoundError,
    CannotRecalculateFinalizedError,
    PropertyNotFoundError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.billing_period import BillingPeriod
from billing_kernel.models.property import Property
from billing_kernel.models.tenant import Tenant
from billing_kernel.models.utility_entry import UtilityEntry
from billing_kernel.services.allocation_service import AllocationService
from billing_kernel.services.audit_trail_service import BillingAuditService
from billing_kernel.services.base import BaseService

logger = get_logger("services.billing_period")


class BillingPeriodService(BaseService):
    """
    Create, finalize and recalculate billing periods.

    Contract:
        Returns ``BillingPeriodInfo`` DTOs.  Every state change appends
        exactly one audit entry (plus a ``calculated`` entry when bills
        were allocated on the way).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        math: PrecisionMath | None = None,
        limits: BillingLimits | None = None,
        allocations: AllocationService | None = None,
        audit: BillingAuditService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.math = math or PrecisionMath()
        self.limits = limits or BillingLimits()
        self.allocations = allocations or AllocationService(
            session, math=self.math, limits=self.limits
        )
        self.audit = audit or BillingAuditService(
            session, clock=self._clock, default_limit=self.limits.audit_query_limit
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_or_update(
        self,
        property_id: UUID,
        month: int,
        year: int,
        *,
        notes: str | None = None,
        force: bool = False,
        reason: str | None = None,
    ) -> BillingPeriodInfo:
        """
        Calculate the period for ``property_id`` and ``year``-``month``.

        Creates the row on first calculation (audit ``created``) and
        overwrites it afterwards (audit ``recalculated``).  Bills of the
        month without allocations are allocated first (audit
        ``calculated``).

        Args:
            property_id: Property to bill.
            month: 1-12.
            year: Within the configured bounds.
            notes: Replaces the stored notes when given.
            force: Allow overwriting a finalized period.
            reason: Recorded in the ``recalculated`` audit entry.

        Raises:
            PropertyNotFoundError: Unknown property.
            AlreadyFinalizedError: Period is finalized and ``force`` is False.
            InvalidInputError: Bad month or year.
        """
        billing_month = self.limits.check_period(year, month)
        if self.session.get(Property, property_id) is None:
            raise PropertyNotFoundError(str(property_id))

        period = self._get_for_month_for_update(property_id, month, year)
        if period is not None and period.status == BillingStatus.FINALIZED and not force:
            logger.warning(
                "billing_period_overwrite_rejected",
                extra={"billing_period_id": str(period.id), "period": period.period_label},
            )
            raise AlreadyFinalizedError(str(period.id), period.period_label)

        with LogContext.bind(
            property_id=property_id,
            billing_month=billing_month,
            billing_period_id=period.id if period is not None else None,
        ):
            allocated_ids, allocation_count = self._allocate_unallocated(
                property_id, billing_month
            )
            shares = self.rent_breakdown(property_id, month, year)
            total_rent = self.math.add(*(s.prorated_amount for s in shares))
            total_utilities = self._utilities_total(property_id, billing_month)

            is_new = period is None
            previous = None if is_new else period.to_info()
            if is_new:
                period = BillingPeriod(property_id=property_id, month=month, year=year)
                self.session.add(period)

            period.tenant_count = len(shares)
            period.total_rent_calculated = total_rent
            period.total_utilities_calculated = total_utilities
            period.calculation_status = BillingStatus.CALCULATED.value
            period.calculation_date = self._clock.now()
            period.finalized_at = None
            if notes is not None:
                period.notes = notes
            self.session.flush()

            if is_new:
                self.audit.append(period.id, AuditAction.CREATED, {
                    "total_rent": total_rent,
                    "total_utilities": total_utilities,
                    "tenant_count": len(shares),
                })
            else:
                forced_override = previous.calculation_status == BillingStatus.FINALIZED
                self.audit.append(period.id, AuditAction.RECALCULATED, {
                    "previous_status": previous.calculation_status,
                    "previous_total_rent": previous.total_rent_calculated,
                    "previous_total_utilities": previous.total_utilities_calculated,
                    "new_total_rent": total_rent,
                    "new_total_utilities": total_utilities,
                    "tenant_count": len(shares),
                    "force": force,
                    "forced_override": forced_override,
                    "reason": reason,
                })

            if allocated_ids:
                self.audit.append(period.id, AuditAction.CALCULATED, {
                    "utility_entry_ids": allocated_ids,
                    "allocation_count": allocation_count,
                })

            logger.info(
                "billing_period_calculated",
                extra={
                    "billing_period_id": str(period.id),
                    "is_new": is_new,
                    "tenant_count": len(shares),
                    "total_rent": str(total_rent),
                    "total_utilities": str(total_utilities),
                },
            )
        return period.to_info()

    def finalize(self, billing_period_id: UUID, notes: str | None = None) -> BillingPeriodInfo:
        """
        Lock a calculated period.

        Raises:
            BillingPeriodNotFoundError: Unknown period.
            AlreadyFinalizedError: Already finalized.
        """
        period = self._get_for_update(billing_period_id)
        if period.status == BillingStatus.FINALIZED:
            raise AlreadyFinalizedError(str(period.id), period.period_label)

        with LogContext.bind(
            property_id=period.property_id,
            billing_month=period.period_label,
            billing_period_id=period.id,
        ):
            previous_status = period.status
            period.calculation_status = BillingStatus.FINALIZED.value
            period.finalized_at = self._clock.now()
            if notes is not None:
                period.notes = notes
            self.session.flush()

            self.audit.append(period.id, AuditAction.FINALIZED, {
                "previous_status": previous_status,
                "total_rent": period.total_rent_calculated,
                "total_utilities": period.total_utilities_calculated,
                "notes": notes,
            })
            logger.info("billing_period_finalized", extra={"period": period.period_label})
        return period.to_info()

    def recalculate(
        self,
        billing_period_id: UUID,
        adjustments: RecalculationRequest | None = None,
    ) -> BillingPeriodInfo:
        """
        Recompute an existing period from current tenants and bills.

        Raises:
            BillingPeriodNotFoundError: Unknown period.
            CannotRecalculateFinalizedError: Finalized and not ``force``.
        """
        adjustments = adjustments or RecalculationRequest()
        period = self._get_for_update(billing_period_id)
        if period.status == BillingStatus.FINALIZED and not adjustments.force:
            logger.warning(
                "billing_period_recalculation_rejected",
                extra={"billing_period_id": str(period.id), "period": period.period_label},
            )
            raise CannotRecalculateFinalizedError(str(period.id), period.period_label)

        return self.create_or_update(
            period.property_id,
            period.month,
            period.year,
            notes=adjustments.notes,
            force=True,
            reason=adjustments.reason,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, billing_period_id: UUID) -> BillingPeriodInfo:
        period = self.session.get(BillingPeriod, billing_period_id)
        if period is None:
            raise BillingPeriodNotFoundError(str(billing_period_id))
        return period.to_info()

    def get_for_month(self, property_id: UUID, month: int, year: int) -> BillingPeriodInfo | None:
        period = self.session.execute(
            select(BillingPeriod).where(
                BillingPeriod.property_id == property_id,
                BillingPeriod.month == month,
                BillingPeriod.year == year,
            )
        ).scalar_one_or_none()
        return period.to_info() if period else None

    def list_for_property(self, property_id: UUID, limit: int | None = None) -> list[BillingPeriodInfo]:
        """Most recent periods first."""
        rows = self.session.execute(
            select(BillingPeriod)
            .where(BillingPeriod.property_id == property_id)
            .order_by(BillingPeriod.year.desc(), BillingPeriod.month.desc())
            .limit(limit or self.limits.period_list_limit)
        ).scalars().all()
        return [row.to_info() for row in rows]

    def audit_trail(self, billing_period_id: UUID) -> list[AuditTrailEntryInfo]:
        """Audit entries of a period, newest first."""
        self.get(billing_period_id)
        return self.audit.query(billing_period_id)

    def rent_breakdown(self, property_id: UUID, month: int, year: int) -> list[TenantRentShare]:
        """Prorated rent of every tenant present in the month, in move-in order."""
        billing_month = BillingMonth(year, month)
        tenants = self.session.execute(
            select(Tenant)
            .where(Tenant.property_id == property_id)
            .order_by(Tenant.move_in_date, Tenant.id)
        ).scalars().all()

        shares: list[TenantRentShare] = []
        for tenant in tenants:
            rent = prorate_rent(
                tenant.rent_amount,
                tenant.move_in_date,
                tenant.move_out_date,
                billing_month,
                self.math,
            )
            if rent.occupied_days == 0:
                continue
            shares.append(
                TenantRentShare(
                    tenant_id=tenant.id,
                    tenant_name=tenant.full_name,
                    monthly_rent=rent.monthly_rent,
                    days_in_month=rent.days_in_month,
                    occupied_days=rent.occupied_days,
                    daily_rate=rent.daily_rate,
                    prorated_amount=rent.prorated_amount,
                    occupancy_period=describe_occupancy_period(
                        tenant.move_in_date, tenant.move_out_date, billing_month
                    ),
                )
            )
        return shares

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get_for_update(self, billing_period_id: UUID) -> BillingPeriod:
        period = self.session.execute(
            select(BillingPeriod)
            .where(BillingPeriod.id == billing_period_id)
            .with_for_update()
        ).scalar_one_or_none()
        if period is None:
            raise BillingPeriodNotFoundError(str(billing_period_id))
        return period

    def _get_for_month_for_update(
        self, property_id: UUID, month: int, year: int
    ) -> BillingPeriod | None:
        return self.session.execute(
            select(BillingPeriod)
            .where(
                BillingPeriod.property_id == property_id,
                BillingPeriod.month == month,
                BillingPeriod.year == year,
            )
            .with_for_update()
        ).scalar_one_or_none()

    def _month_entries(self, property_id: UUID, billing_month: BillingMonth) -> list[UtilityEntry]:
        return list(
            self.session.execute(
                select(UtilityEntry)
                .where(
                    UtilityEntry.property_id == property_id,
                    UtilityEntry.month == billing_month.month,
                    UtilityEntry.year == billing_month.year,
                )
                .order_by(UtilityEntry.utility_type)
            ).scalars().all()
        )

    def _allocate_unallocated(
        self, property_id: UUID, billing_month: BillingMonth
    ) -> tuple[list[UUID], int]:
        """Allocate the month's bills that have no allocations yet."""
        allocated_ids: list[UUID] = []
        allocation_count = 0
        for entry in self._month_entries(property_id, billing_month):
            if self.allocations.count_allocations(entry.id) > 0:
                continue
            created = self.allocations.calculate_allocations(entry.id)
            if created:
                allocated_ids.append(entry.id)
                allocation_count += len(created)
        return allocated_ids, allocation_count

    def _utilities_total(self, property_id: UUID, billing_month: BillingMonth):
        entries = self._month_entries(property_id, billing_month)
        if not entries:
            return ZERO
        return self.math.to_currency(self.math.add(*(e.total_amount for e in entries)))
