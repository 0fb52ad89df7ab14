"""
Module: billing_kernel.models.billing_audit
Responsibility: ORM persistence for the append-only billing audit trail.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Append-only: ORM listeners in db/immutability.py reject UPDATE and
      DELETE with AuditImmutabilityError.
    - seq is unique and strictly increasing in insertion order; it is the
      authoritative ordering of the trail (timestamps may tie).

Audit relevance:
    Every create, calculate, finalize and recalculate of a billing period
    leaves exactly one row here, with a JSON ``details`` payload whose
    amounts are stored as decimal strings.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, UUIDString
from billing_kernel.domain.dtos import AuditAction, AuditTrailEntryInfo


class BillingAuditEntry(Base):
    """
    One immutable audit record of a billing period lifecycle action.

    Contract:
        Created only by BillingAuditService.append().

    Guarantees:
        - ``seq`` comes from the locked "billing_audit" sequence counter.
        - ``created_at`` comes from the injected clock, not the database.
    """

    __tablename__ = "billing_audit_trail"

    __table_args__ = (
        Index("idx_billing_audit_period_seq", "billing_period_id", "seq"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    billing_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("billing_periods.id"),
        nullable=False,
    )

    action: Mapped[str] = mapped_column(String(20), nullable=False)

    details: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def to_info(self) -> AuditTrailEntryInfo:
        return AuditTrailEntryInfo(
            id=self.id,
            seq=self.seq,
            billing_period_id=self.billing_period_id,
            action=AuditAction(self.action),
            details=dict(self.details or {}),
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<BillingAuditEntry #{self.seq} {self.action}>"
