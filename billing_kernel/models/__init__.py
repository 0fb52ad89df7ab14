"""ORM models for the billing kernel."""

from billing_kernel.models.billing_audit import BillingAuditEntry
from billing_kernel.models.billing_period import BillingPeriod
from billing_kernel.models.property import Property
from billing_kernel.models.tenant import Tenant
from billing_kernel.models.utility_entry import TenantUtilityAllocation, UtilityEntry

__all__ = [
    "Property",
    "Tenant",
    "UtilityEntry",
    "TenantUtilityAllocation",
    "BillingPeriod",
    "BillingAuditEntry",
]
