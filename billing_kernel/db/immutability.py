"""
ORM-level immutability enforcement for the billing audit trail.

The audit trail is append-only.  SQLAlchemy fires mapper events before an
UPDATE or DELETE reaches the database; the listeners registered here raise
``AuditImmutabilityError`` for any ``BillingAuditEntry`` so the flush is
aborted and nothing is written:

    session.flush()
         |
         v
    [before_update] --> _reject_audit_update() --> AuditImmutabilityError
    [before_delete] --> _reject_audit_delete() --> AuditImmutabilityError

Bulk Core statements (``session.execute(update(...))``) do not fire mapper
events and are never issued against the audit table by the services.

Usage:

    from billing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # init_engine_from_url() does this

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from billing_kernel.exceptions import AuditImmutabilityError
from billing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(target, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "BillingAuditEntry",
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise AuditImmutabilityError(entry_id=str(target.id), operation=operation)


def _reject_audit_update(mapper, connection, target):
    """Audit entries are never modified after insert."""
    _reject(target, "UPDATE")


def _reject_audit_delete(mapper, connection, target):
    """Audit entries are never deleted."""
    _reject(target, "DELETE")


_LISTENERS = (
    ("before_update", _reject_audit_update),
    ("before_delete", _reject_audit_delete),
)


def register_immutability_listeners() -> None:
    """Register the audit listeners.  Safe to call more than once."""
    from billing_kernel.models.billing_audit import BillingAuditEntry

    for identifier, fn in _LISTENERS:
        if not event.contains(BillingAuditEntry, identifier, fn):
            event.listen(BillingAuditEntry, identifier, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """
    Remove the audit listeners.

    WARNING: Only use this in tests that must bypass the guard.
    """
    from billing_kernel.models.billing_audit import BillingAuditEntry

    for identifier, fn in _LISTENERS:
        if event.contains(BillingAuditEntry, identifier, fn):
            event.remove(BillingAuditEntry, identifier, fn)
