"""
Module: billing_kernel.models.property
Responsibility: ORM persistence for rental properties, the unit that utility
    bills and billing periods are scoped to.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from decimal import Decimal

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase
from billing_kernel.db.types import AREA, LONG_TEXT


class Property(TrackedBase):
    """
    A rental property shared by several tenants.

    Non-goals:
        - Ownership and landlord records live outside the billing core.
    """

    __tablename__ = "properties"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    address: Mapped[str | None] = mapped_column(LONG_TEXT, nullable=True)

    # Total floor area in m², informational
    house_area: Mapped[Decimal | None] = mapped_column(AREA, nullable=True)

    def __repr__(self) -> str:
        return f"<Property {self.name}>"
