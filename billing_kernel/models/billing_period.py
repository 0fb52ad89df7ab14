"""
Module: billing_kernel.models.billing_period
Responsibility: ORM persistence for monthly billing periods -- the per-property
    snapshot of rent and utility totals and its calculated/finalized status.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One period per (property, month, year).
    - calculation_status is 'calculated' or 'finalized'.
    - Totals are non-negative.

Failure modes:
    - IntegrityError on a duplicate (property, month, year) insert; the
      service looks the row up with FOR UPDATE first.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.db.types import LONG_TEXT, MONEY
from billing_kernel.domain.dtos import BillingPeriodInfo, BillingStatus


class BillingPeriod(TrackedBase):
    """
    Billing snapshot of one property for one calendar month.

    Contract:
        Written only by BillingPeriodService.  A FINALIZED row changes again
        only through a forced recalculation, which is audited.

    Guarantees:
        - (property_id, month, year) is unique (uq_billing_period_property_month).

    Non-goals:
        - Per-tenant invoices are derived on read, not stored here.
    """

    __tablename__ = "billing_periods"

    __table_args__ = (
        UniqueConstraint(
            "property_id", "month", "year", name="uq_billing_period_property_month"
        ),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_billing_period_month"),
        CheckConstraint(
            "calculation_status IN ('calculated', 'finalized')",
            name="ck_billing_period_status",
        ),
        CheckConstraint(
            "total_rent_calculated >= 0 AND total_utilities_calculated >= 0",
            name="ck_billing_period_totals_non_negative",
        ),
        Index("idx_billing_period_property_period", "property_id", "year", "month"),
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Tenants with at least one occupied day in the month
    tenant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_rent_calculated: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )

    total_utilities_calculated: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )

    calculation_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BillingStatus.CALCULATED.value,
    )

    calculation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(LONG_TEXT, nullable=True)

    @property
    def status(self) -> BillingStatus:
        return BillingStatus(self.calculation_status)

    @property
    def period_label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def to_info(self) -> BillingPeriodInfo:
        return BillingPeriodInfo(
            id=self.id,
            property_id=self.property_id,
            month=self.month,
            year=self.year,
            tenant_count=self.tenant_count,
            total_rent_calculated=Decimal(self.total_rent_calculated),
            total_utilities_calculated=Decimal(self.total_utilities_calculated),
            calculation_status=self.status,
            notes=self.notes,
            calculation_date=self.calculation_date,
            finalized_at=self.finalized_at,
        )

    def __repr__(self) -> str:
        return f"<BillingPeriod {self.period_label} [{self.calculation_status}]>"
