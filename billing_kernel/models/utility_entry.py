"""
Module: billing_kernel.models.utility_entry
Responsibility: ORM persistence for utility bills and their per-tenant shares.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One bill per (property, month, year, utility_type).
    - At most one allocation per (tenant, utility entry).
    - total_amount > 0; allocated_amount >= 0.
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
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, TrackedBase, UUIDString
from billing_kernel.db.types import MONEY, SHORT_CODE
from billing_kernel.domain.dtos import AllocationInfo, AllocationMethod, UtilityEntryInfo


class UtilityEntry(TrackedBase):
    """
    A utility bill for one property and month.

    Contract:
        ``allocation_method`` is stored as the enum value string and parsed
        strictly when read back through ``to_info()``.
    """

    __tablename__ = "utility_entries"

    __table_args__ = (
        UniqueConstraint(
            "property_id", "month", "year", "utility_type",
            name="uq_utility_entry_property_month_type",
        ),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_utility_entry_month"),
        CheckConstraint("total_amount > 0", name="ck_utility_entry_amount_positive"),
        Index("idx_utility_entry_property_period", "property_id", "year", "month"),
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # e.g. "electricity", "water", "gas", "internet"
    utility_type: Mapped[str] = mapped_column(SHORT_CODE, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    allocation_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=AllocationMethod.PER_PERSON.value,
    )

    @property
    def billing_label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def to_info(self) -> UtilityEntryInfo:
        return UtilityEntryInfo(
            id=self.id,
            property_id=self.property_id,
            month=self.month,
            year=self.year,
            utility_type=self.utility_type,
            total_amount=Decimal(self.total_amount),
            allocation_method=AllocationMethod.parse(self.allocation_method),
        )

    def __repr__(self) -> str:
        return f"<UtilityEntry {self.utility_type} {self.billing_label}>"


class TenantUtilityAllocation(Base):
    """
    One tenant's share of one utility bill.

    Contract:
        Rows for an entry are replaced as a set whenever the entry is
        (re)allocated; they are never edited in place.
    """

    __tablename__ = "tenant_utility_allocations"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "utility_entry_id", name="uq_allocation_tenant_entry"
        ),
        CheckConstraint("allocated_amount >= 0", name="ck_allocation_non_negative"),
        Index("idx_allocation_entry", "utility_entry_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    utility_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("utility_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    allocated_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def to_info(self) -> AllocationInfo:
        return AllocationInfo(
            id=self.id,
            tenant_id=self.tenant_id,
            utility_entry_id=self.utility_entry_id,
            allocated_amount=Decimal(self.allocated_amount),
        )
