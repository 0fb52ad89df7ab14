"""Billing services: flush-only imperative shell around the domain and engines."""

from billing_kernel.services.allocation_service import AllocationService
from billing_kernel.services.audit_trail_service import BillingAuditService
from billing_kernel.services.billing_period_service import BillingPeriodService
from billing_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "AllocationService",
    "BillingAuditService",
    "BillingPeriodService",
    "SequenceService",
    "SequenceCounter",
]
