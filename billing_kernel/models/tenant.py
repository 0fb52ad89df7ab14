"""
Module: billing_kernel.models.tenant
Responsibility: ORM persistence for tenants and their lease window.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - room_area > 0, number_of_people >= 1, rent_amount > 0.
    - move_out_date is NULL or strictly after move_in_date.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.db.types import AREA, MONEY
from billing_kernel.domain.dtos import OccupancyStatus, TenantOccupancy


class Tenant(TrackedBase):
    """
    A person renting a room in a property.

    Contract:
        The lease window ``[move_in_date, move_out_date]`` is inclusive;
        ``move_out_date`` of NULL means the tenant still lives there.

    Guarantees:
        - Row-level CHECK constraints mirror the domain validation so that
          raw SQL cannot store an impossible lease.
    """

    __tablename__ = "tenants"

    __table_args__ = (
        CheckConstraint("room_area > 0", name="ck_tenant_room_area_positive"),
        CheckConstraint("number_of_people >= 1", name="ck_tenant_people_positive"),
        CheckConstraint("rent_amount > 0", name="ck_tenant_rent_positive"),
        CheckConstraint(
            "move_out_date IS NULL OR move_out_date > move_in_date",
            name="ck_tenant_move_out_after_move_in",
        ),
        Index("idx_tenant_property_move_in", "property_id", "move_in_date"),
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    surname: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    room_area: Mapped[Decimal] = mapped_column(AREA, nullable=False)

    number_of_people: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    move_in_date: Mapped[date] = mapped_column(Date, nullable=False)

    move_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    occupancy_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OccupancyStatus.ACTIVE.value,
    )

    rent_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip()

    def to_occupancy(self) -> TenantOccupancy:
        """The engine's view of this tenant."""
        return TenantOccupancy(
            tenant_id=self.id,
            move_in_date=self.move_in_date,
            move_out_date=self.move_out_date,
            room_area=Decimal(self.room_area),
            number_of_people=self.number_of_people,
            occupancy_status=OccupancyStatus(self.occupancy_status),
            rent_amount=Decimal(self.rent_amount),
        )

    def __repr__(self) -> str:
        return f"<Tenant {self.full_name} {self.move_in_date}..{self.move_out_date}>"
