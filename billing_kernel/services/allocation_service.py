"""
AllocationService -- utility bills and their per-tenant allocation sets.

Responsibility:
    Creates, updates and deletes utility entries and keeps each entry's
    allocation set in step with it: load the entry and the property's
    tenants, run the AllocationEngine, and replace the stored set.

Architecture position:
    Kernel > Services -- imperative shell around the pure
    ``billing_engines.allocation`` engine.

Invariants enforced:
    - Replace-set: an entry's allocations are deleted and re-inserted
      inside one SAVEPOINT; on any storage error the savepoint rolls back
      and the previous set survives intact.
    - Sum preservation: a stored set is either empty or sums to the
      entry's total_amount to the cent.
    - Single writer per entry: the entry row is read with
      ``SELECT ... FOR UPDATE`` before its allocations are replaced.
    - Deterministic tenant order (move_in_date, id), so recomputing with
      unchanged tenants yields the identical set.
    - Validation happens before any session mutation.
    - A bill write and its new allocation set share one SAVEPOINT: if the
      bill cannot be allocated, the write is rolled back with it.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - UtilityEntryNotFoundError / PropertyNotFoundError on unknown ids.
    - InvalidInputError on a bad amount, month, year, method or type, on a
      second bill of one type for a month, and on a total too small to
      split among the tenants.
    - PersistenceFailureError wrapping the SQLAlchemyError of a failed
      replace or write.
    - No eligible tenants is NOT an error: the stored set is emptied and
      an empty list is returned.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_engines.allocation import AllocationEngine, AllocationResult
from billing_kernel.domain.dtos import (
    AllocationBreakdown,
    AllocationBreakdownLine,
    AllocationCheck,
    AllocationCheckStatus,
    AllocationInfo,
    AllocationMethod,
    BillingLimits,
    RecalculationSummary,
    UtilityEntryInfo,
)
from billing_kernel.domain.occupancy import BillingMonth
from billing_kernel.domain.precision import ZERO, PrecisionMath
from billing_kernel.exceptions import (
    BillingKernelError,
    InvalidInputError,
    PersistenceFailureError,
    PropertyNotFoundError,
    UtilityEntryNotFoundError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.property import Property
from billing_kernel.models.tenant import Tenant
from billing_kernel.models.utility_entry import TenantUtilityAllocation, UtilityEntry
from billing_kernel.services.base import BaseService

logger = get_logger("services.allocation")

# A stored set off by at most this much, after rounding to cents, reads as correct
VERIFY_TOLERANCE = Decimal("0.01")


class AllocationService(BaseService):
    """
    Allocate utility bills and persist the allocation sets.

    Contract:
        Returns frozen DTOs, never ORM rows.  All writes are flushed into
        the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        math: PrecisionMath | None = None,
        limits: BillingLimits | None = None,
        engine: AllocationEngine | None = None,
    ):
        super().__init__(session)
        self.math = math or PrecisionMath()
        self.limits = limits or BillingLimits()
        self.engine = engine or AllocationEngine(self.math)

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def calculate_allocations(self, utility_entry_id: UUID) -> list[AllocationInfo]:
        """
        (Re)compute and store the allocation set of one utility entry.

        Returns:
            The stored allocations in tenant order; empty when no tenant
            is eligible (the previous set is removed in that case too).

        Raises:
            UtilityEntryNotFoundError: Unknown entry.
            PersistenceFailureError: The replace failed and was rolled back.
        """
        entry = self._get_entry_for_update(utility_entry_id)
        with LogContext.bind(
            property_id=entry.property_id,
            billing_month=entry.billing_label,
            utility_entry_id=entry.id,
        ):
            result = self._allocate(entry)
            return self._replace_allocations(entry, result)

    def calculate_weighted_allocations(self, utility_entry_id: UUID) -> AllocationBreakdown:
        """
        Like ``calculate_allocations`` but returns the per-tenant weights,
        occupied days and the effective rate (amount per unit of weight).

        The same empty-result policy applies: no eligible tenant or a zero
        total weight gives a breakdown with no lines and a zero rate.
        """
        entry = self._get_entry_for_update(utility_entry_id)
        with LogContext.bind(
            property_id=entry.property_id,
            billing_month=entry.billing_label,
            utility_entry_id=entry.id,
        ):
            result = self._allocate(entry)
            self._replace_allocations(entry, result)

        effective_rate = ZERO
        if result.is_allocated:
            effective_rate = self.math.divide(
                result.total_amount, result.total_weight, "effective rate"
            )
        return AllocationBreakdown(
            utility_entry_id=entry.id,
            allocation_method=result.method,
            total_amount=result.total_amount,
            total_weight=result.total_weight,
            effective_rate=effective_rate,
            lines=tuple(
                AllocationBreakdownLine(
                    tenant_id=line.tenant_id,
                    occupied_days=line.occupied_days,
                    weight=line.weight,
                    rate=line.rate,
                    allocated_amount=line.allocated_amount,
                )
                for line in result.lines
            ),
        )

    def get_allocations(self, utility_entry_id: UUID) -> list[AllocationInfo]:
        """Stored allocations of an entry in tenant order."""
        self._get_entry(utility_entry_id)
        rows = self.session.execute(
            select(TenantUtilityAllocation)
            .join(Tenant, Tenant.id == TenantUtilityAllocation.tenant_id)
            .where(TenantUtilityAllocation.utility_entry_id == utility_entry_id)
            .order_by(Tenant.move_in_date, Tenant.id)
        ).scalars().all()
        return [row.to_info() for row in rows]

    # ------------------------------------------------------------------
    # Utility entries
    # ------------------------------------------------------------------

    def create_utility_entry(
        self,
        property_id: UUID,
        month: int,
        year: int,
        utility_type: str,
        total_amount: Decimal | int | str,
        allocation_method: AllocationMethod | str = AllocationMethod.PER_PERSON,
    ) -> UtilityEntryInfo:
        """
        Record a utility bill and allocate it.

        ``total_amount`` is rounded to currency places.

        Raises:
            PropertyNotFoundError: Unknown property.
            InvalidInputError: Bad input, or the property already has a
                bill of this type for the month.
        """
        billing_month = self.limits.check_period(year, month)
        method = AllocationMethod.parse(allocation_method)
        amount = self._validate_total(total_amount)
        kind = self._validate_utility_type(utility_type)
        if self.session.get(Property, property_id) is None:
            raise PropertyNotFoundError(str(property_id))

        self._check_not_duplicate(property_id, billing_month, kind)

        entry = UtilityEntry(
            property_id=property_id,
            month=month,
            year=year,
            utility_type=kind,
            total_amount=amount,
            allocation_method=method.value,
        )
        # The bill and its allocations land together or not at all
        try:
            with self.session.begin_nested():
                self.session.add(entry)
                self._flush("create_utility_entry")
                self.calculate_allocations(entry.id)
        except BillingKernelError as exc:
            logger.warning(
                "utility_entry_create_rejected",
                extra={
                    "property_id": str(property_id),
                    "billing_month": billing_month.label,
                    "utility_type": kind,
                    "error_code": exc.code,
                },
            )
            raise

        logger.info(
            "utility_entry_created",
            extra={
                "utility_entry_id": str(entry.id),
                "property_id": str(property_id),
                "billing_month": billing_month.label,
                "utility_type": kind,
                "total_amount": str(amount),
                "allocation_method": method.value,
            },
        )
        return entry.to_info()

    def update_utility_entry(
        self,
        utility_entry_id: UUID,
        *,
        total_amount: Decimal | int | str | None = None,
        allocation_method: AllocationMethod | str | None = None,
        utility_type: str | None = None,
    ) -> UtilityEntryInfo:
        """
        Change a bill and atomically replace its allocations.

        The change and the new allocation set share one savepoint: when
        the new values cannot be allocated (for example a total too small
        to split among the tenants) the bill and its previous allocations
        are left exactly as they were.

        Raises:
            UtilityEntryNotFoundError: Unknown entry.
            InvalidInputError: Bad input, a type already recorded for the
                month, or a total that cannot be split (nothing is changed).
        """
        amount = self._validate_total(total_amount) if total_amount is not None else None
        method = (
            AllocationMethod.parse(allocation_method)
            if allocation_method is not None else None
        )
        kind = self._validate_utility_type(utility_type) if utility_type is not None else None

        entry = self._get_entry_for_update(utility_entry_id)
        if kind is not None and kind != entry.utility_type:
            self._check_not_duplicate(
                entry.property_id,
                BillingMonth(entry.year, entry.month),
                kind,
                exclude_id=entry.id,
            )

        try:
            with self.session.begin_nested():
                if amount is not None:
                    entry.total_amount = amount
                if method is not None:
                    entry.allocation_method = method.value
                if kind is not None:
                    entry.utility_type = kind
                self._flush("update_utility_entry")
                self.calculate_allocations(entry.id)
        except BillingKernelError as exc:
            logger.warning(
                "utility_entry_update_rejected",
                extra={"utility_entry_id": str(utility_entry_id), "error_code": exc.code},
            )
            raise

        logger.info(
            "utility_entry_updated",
            extra={
                "utility_entry_id": str(entry.id),
                "total_amount": str(entry.total_amount),
                "allocation_method": entry.allocation_method,
            },
        )
        return entry.to_info()

    def delete_utility_entry(self, utility_entry_id: UUID) -> None:
        """Delete a bill together with its allocations."""
        entry = self._get_entry_for_update(utility_entry_id)
        try:
            with self.session.begin_nested():
                self.session.execute(
                    delete(TenantUtilityAllocation).where(
                        TenantUtilityAllocation.utility_entry_id == entry.id
                    )
                )
                self.session.delete(entry)
                self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "utility_entry_delete_failed",
                extra={"utility_entry_id": str(utility_entry_id)},
                exc_info=True,
            )
            raise PersistenceFailureError("delete_utility_entry", exc) from exc

        logger.info(
            "utility_entry_deleted",
            extra={"utility_entry_id": str(utility_entry_id)},
        )

    def get_utility_entry(self, utility_entry_id: UUID) -> UtilityEntryInfo:
        return self._get_entry(utility_entry_id).to_info()

    def list_utility_entries(
        self,
        property_id: UUID,
        month: int | None = None,
        year: int | None = None,
    ) -> list[UtilityEntryInfo]:
        """Entries of a property, optionally for one month or year."""
        return [entry.to_info() for entry in self._query_entries(property_id, month, year)]

    def count_allocations(self, utility_entry_id: UUID) -> int:
        return self.session.execute(
            select(func.count(TenantUtilityAllocation.id)).where(
                TenantUtilityAllocation.utility_entry_id == utility_entry_id
            )
        ).scalar_one()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def recalculate_all(
        self,
        property_id: UUID,
        month: int | None = None,
        year: int | None = None,
    ) -> RecalculationSummary:
        """
        Re-run allocation for every matching entry of a property.

        A failing entry does not stop the sweep: its error is recorded in
        the summary and its previous set is left as it was.
        """
        if self.session.get(Property, property_id) is None:
            raise PropertyNotFoundError(str(property_id))

        entries = self._query_entries(property_id, month, year)
        recalculated = 0
        errors: list[str] = []
        for entry in entries:
            try:
                self.calculate_allocations(entry.id)
                recalculated += 1
            except BillingKernelError as exc:
                label = f"{entry.utility_type} {entry.year}-{entry.month:02d}"
                errors.append(f"{label}: {exc}")
                logger.warning(
                    "allocation_recalculation_failed",
                    extra={"utility_entry_id": str(entry.id), "error_code": exc.code},
                )

        summary = RecalculationSummary(
            property_id=property_id,
            total=len(entries),
            recalculated=recalculated,
            errors=tuple(errors),
        )
        logger.info(
            "allocations_recalculated",
            extra={
                "property_id": str(property_id),
                "total": summary.total,
                "recalculated": summary.recalculated,
                "error_count": len(summary.errors),
            },
        )
        return summary

    def verify_allocations(self, property_id: UUID | None = None) -> list[AllocationCheck]:
        """
        Compare each entry's total with the sum of its stored allocations.

        Status is UNALLOCATED without allocations, CORRECT when the sum is
        at most one cent off, ISSUE otherwise.
        """
        stmt = (
            select(
                UtilityEntry,
                func.count(TenantUtilityAllocation.id),
                func.coalesce(func.sum(TenantUtilityAllocation.allocated_amount), 0),
            )
            .outerjoin(
                TenantUtilityAllocation,
                TenantUtilityAllocation.utility_entry_id == UtilityEntry.id,
            )
            .group_by(UtilityEntry.id)
            .order_by(UtilityEntry.year.desc(), UtilityEntry.month.desc(), UtilityEntry.utility_type)
        )
        if property_id is not None:
            stmt = stmt.where(UtilityEntry.property_id == property_id)

        checks: list[AllocationCheck] = []
        for entry, count, allocated in self.session.execute(stmt).all():
            total = Decimal(entry.total_amount)
            allocated_sum = self.math.to_currency(Decimal(str(allocated)))
            if count == 0:
                status = AllocationCheckStatus.UNALLOCATED
            elif self.math.to_currency(abs(total - allocated_sum)) <= VERIFY_TOLERANCE:
                status = AllocationCheckStatus.CORRECT
            else:
                status = AllocationCheckStatus.ISSUE
            checks.append(
                AllocationCheck(
                    utility_entry_id=entry.id,
                    property_id=entry.property_id,
                    month=entry.month,
                    year=entry.year,
                    utility_type=entry.utility_type,
                    total_amount=total,
                    total_allocated=allocated_sum,
                    allocation_count=count,
                    status=status,
                )
            )

        issues = sum(1 for c in checks if c.status != AllocationCheckStatus.CORRECT)
        logger.info(
            "allocations_verified",
            extra={"entry_count": len(checks), "issue_count": issues},
        )
        return checks

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _validate_total(self, value: Decimal | int | str) -> Decimal:
        amount = self.math.validate_amount(value, field="total_amount", allow_zero=False)
        rounded = self.math.to_currency(amount)
        if rounded.is_zero():
            raise InvalidInputError("total_amount", value, "must be at least one cent")
        return rounded

    @staticmethod
    def _validate_utility_type(value: str) -> str:
        kind = (value or "").strip().lower() if isinstance(value, str) else ""
        if not kind or len(kind) > 50:
            raise InvalidInputError("utility_type", value, "must be 1-50 characters")
        return kind

    def _check_not_duplicate(
        self,
        property_id: UUID,
        billing_month: BillingMonth,
        kind: str,
        exclude_id: UUID | None = None,
    ) -> None:
        """One bill per (property, month, year, utility type)."""
        stmt = select(UtilityEntry.id).where(
            UtilityEntry.property_id == property_id,
            UtilityEntry.month == billing_month.month,
            UtilityEntry.year == billing_month.year,
            UtilityEntry.utility_type == kind,
        )
        if exclude_id is not None:
            stmt = stmt.where(UtilityEntry.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise InvalidInputError(
                "utility_type", kind, f"already recorded for {billing_month.label}"
            )

    def _get_entry(self, utility_entry_id: UUID) -> UtilityEntry:
        entry = self.session.get(UtilityEntry, utility_entry_id)
        if entry is None:
            raise UtilityEntryNotFoundError(str(utility_entry_id))
        return entry

    def _get_entry_for_update(self, utility_entry_id: UUID) -> UtilityEntry:
        entry = self.session.execute(
            select(UtilityEntry)
            .where(UtilityEntry.id == utility_entry_id)
            .with_for_update()
        ).scalar_one_or_none()
        if entry is None:
            raise UtilityEntryNotFoundError(str(utility_entry_id))
        return entry

    def _query_entries(
        self,
        property_id: UUID,
        month: int | None,
        year: int | None,
    ) -> Sequence[UtilityEntry]:
        stmt = select(UtilityEntry).where(UtilityEntry.property_id == property_id)
        if month is not None:
            stmt = stmt.where(UtilityEntry.month == month)
        if year is not None:
            stmt = stmt.where(UtilityEntry.year == year)
        stmt = stmt.order_by(UtilityEntry.year, UtilityEntry.month, UtilityEntry.utility_type)
        return self.session.execute(stmt).scalars().all()

    def _tenants_for(self, property_id: UUID) -> list[Tenant]:
        return list(
            self.session.execute(
                select(Tenant)
                .where(Tenant.property_id == property_id)
                .order_by(Tenant.move_in_date, Tenant.id)
            ).scalars().all()
        )

    def _allocate(self, entry: UtilityEntry) -> AllocationResult:
        info = entry.to_info()
        tenants = [t.to_occupancy() for t in self._tenants_for(entry.property_id)]
        return self.engine.allocate(
            total_amount=info.total_amount,
            method=info.allocation_method,
            billing_month=self.limits.check_period(info.year, info.month),
            tenants=tenants,
        )

    def _replace_allocations(
        self,
        entry: UtilityEntry,
        result: AllocationResult,
    ) -> list[AllocationInfo]:
        """Delete-then-insert the entry's set inside one savepoint."""
        rows = [
            TenantUtilityAllocation(
                tenant_id=line.tenant_id,
                utility_entry_id=entry.id,
                allocated_amount=line.allocated_amount,
            )
            for line in result.lines
        ]
        try:
            with self.session.begin_nested():
                removed = self.session.execute(
                    delete(TenantUtilityAllocation).where(
                        TenantUtilityAllocation.utility_entry_id == entry.id
                    )
                ).rowcount
                self.session.add_all(rows)
                self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "allocation_replace_failed",
                extra={"utility_entry_id": str(entry.id)},
                exc_info=True,
            )
            raise PersistenceFailureError("replace_allocations", exc) from exc

        logger.info(
            "allocations_replaced",
            extra={
                "utility_entry_id": str(entry.id),
                "removed": removed,
                "inserted": len(rows),
                "total_allocated": str(result.total_allocated),
            },
        )
        return [row.to_info() for row in rows]

    def _flush(self, operation: str) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailureError(operation, exc) from exc
