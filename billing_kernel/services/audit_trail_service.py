"""
BillingAuditService -- append-only audit trail of billing period actions.

Responsibility:
    Appends one ``BillingAuditEntry`` per lifecycle action (created,
    calculated, finalized, recalculated) and reads the trail back newest
    first.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by BillingPeriodService inside the same transaction as the
    period mutation it records, so a period change and its audit entry
    commit or roll back together.

Invariants enforced:
    - Append-only: entries are never updated or deleted (also enforced by
      the ORM listeners in db/immutability.py).
    - Ordering: ``seq`` comes from SequenceService; queries order by
      ``seq`` descending, never by timestamp.
    - ``details`` is JSON-safe: Decimals are stored as strings, UUIDs and
      dates in their canonical string forms.

Failure modes:
    - InvalidInputError for an action outside AuditAction.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import AuditAction, AuditTrailEntryInfo
from billing_kernel.exceptions import InvalidInputError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.billing_audit import BillingAuditEntry
from billing_kernel.models.billing_period import BillingPeriod
from billing_kernel.services.base import BaseService
from billing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.audit_trail")


def to_json_safe(value: Any) -> Any:
    """Recursively convert a details payload to JSON-native values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_safe(v) for v in value]
    return value


class BillingAuditService(BaseService):
    """
    Append and query billing audit entries.

    Contract:
        ``append`` flushes a new row and returns its DTO.  It never commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_limit: int = 50,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequence = SequenceService(session)
        self._default_limit = default_limit

    def append(
        self,
        billing_period_id: UUID,
        action: AuditAction | str,
        details: Mapping[str, Any] | None = None,
    ) -> AuditTrailEntryInfo:
        """
        Record one action against a billing period.

        Args:
            billing_period_id: Period the action applies to.
            action: One of AuditAction (or its value).
            details: Key/value payload; converted to JSON-safe values.

        Raises:
            InvalidInputError: Unknown action.
        """
        try:
            audit_action = AuditAction(action)
        except ValueError as exc:
            raise InvalidInputError("action", action, "unknown audit action") from exc

        entry = BillingAuditEntry(
            seq=self._sequence.next_value(SequenceService.BILLING_AUDIT),
            billing_period_id=billing_period_id,
            action=audit_action.value,
            details=to_json_safe(dict(details or {})),
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "billing_audit_appended",
            extra={
                "billing_period_id": str(billing_period_id),
                "action": audit_action.value,
                "seq": entry.seq,
            },
        )
        return entry.to_info()

    def query(self, billing_period_id: UUID) -> list[AuditTrailEntryInfo]:
        """All entries for one period, newest first."""
        rows = self.session.execute(
            select(BillingAuditEntry)
            .where(BillingAuditEntry.billing_period_id == billing_period_id)
            .order_by(BillingAuditEntry.seq.desc())
        ).scalars().all()
        return [row.to_info() for row in rows]

    def query_for_property(
        self,
        property_id: UUID,
        limit: int | None = None,
    ) -> list[AuditTrailEntryInfo]:
        """Most recent entries across every period of a property, newest first."""
        rows = self.session.execute(
            select(BillingAuditEntry)
            .join(BillingPeriod, BillingPeriod.id == BillingAuditEntry.billing_period_id)
            .where(BillingPeriod.property_id == property_id)
            .order_by(BillingAuditEntry.seq.desc())
            .limit(limit or self._default_limit)
        ).scalars().all()
        return [row.to_info() for row in rows]
