"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the billing core (the HTTP layer, operator scripts) must map
failures to status codes without parsing message strings:

    try:
        periods.finalize(billing_period_id, notes="March closed")
    except AlreadyFinalizedError as e:
        api_response(status=409, code=e.code, period=e.billing_period_id)
    except BillingPeriodNotFoundError as e:
        api_response(status=404, code=e.code)
    except PersistenceFailureError as e:
        api_response(status=500, code=e.code, operation=e.operation)

Every exception:
  1. Is a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries its context as attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- InvalidInputError
    +-- DivisionByZeroError
    |
    +-- NotFoundError
    |   +-- PropertyNotFoundError
    |   +-- UtilityEntryNotFoundError
    |   +-- BillingPeriodNotFoundError
    |
    +-- BillingStateError
    |   +-- AlreadyFinalizedError
    |   +-- CannotRecalculateFinalizedError
    |
    +-- PersistenceFailureError
    |
    +-- AuditError
        +-- AuditImmutabilityError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|-----------------------------------
Validation   | INVALID_INPUT                 | Bad amount, date, month, method
             | DIVISION_BY_ZERO              | Divide by zero / zero weight sum
-------------|-------------------------------|-----------------------------------
Lookup       | PROPERTY_NOT_FOUND            | Property ID doesn't exist
             | UTILITY_ENTRY_NOT_FOUND       | Utility entry ID doesn't exist
             | BILLING_PERIOD_NOT_FOUND      | Billing period ID doesn't exist
-------------|-------------------------------|-----------------------------------
State        | ALREADY_FINALIZED             | Overwrite/finalize a finalized period
             | CANNOT_RECALCULATE_FINALIZED  | Recalculate finalized without force
-------------|-------------------------------|-----------------------------------
Storage      | PERSISTENCE_FAILURE           | Store failure, cause attached
-------------|-------------------------------|-----------------------------------
Audit        | AUDIT_IMMUTABLE               | UPDATE/DELETE of an audit entry

===============================================================================
PROPAGATION
===============================================================================

- InvalidInputError is raised before any session mutation.
- State errors are deterministic and non-retryable: the caller must change
  inputs or pass ``force``.
- PersistenceFailureError always chains the original exception
  (``raise ... from exc``) so ``__cause__`` holds the driver error.
- DivisionByZeroError never escapes the allocation engine: a bill with no
  eligible tenants is an empty allocation, not an error.
"""

from typing import Any


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Validation exceptions


class InvalidInputError(BillingKernelError):
    """An input value was rejected before any side effect took place."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} ({value!r}): {reason}")


class DivisionByZeroError(BillingKernelError):
    """Division by a zero divisor (including a zero total weight)."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, dividend: str, context: str = "division"):
        self.dividend = dividend
        self.context = context
        super().__init__(f"Division by zero in {context} (dividend={dividend})")


# Lookup exceptions


class NotFoundError(BillingKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class PropertyNotFoundError(NotFoundError):
    """Property with given ID was not found."""

    code: str = "PROPERTY_NOT_FOUND"

    def __init__(self, property_id: str):
        self.property_id = property_id
        super().__init__(f"Property not found: {property_id}")


class UtilityEntryNotFoundError(NotFoundError):
    """Utility entry with given ID was not found."""

    code: str = "UTILITY_ENTRY_NOT_FOUND"

    def __init__(self, utility_entry_id: str):
        self.utility_entry_id = utility_entry_id
        super().__init__(f"Utility entry not found: {utility_entry_id}")


class BillingPeriodNotFoundError(NotFoundError):
    """Billing period with given ID was not found."""

    code: str = "BILLING_PERIOD_NOT_FOUND"

    def __init__(self, billing_period_id: str):
        self.billing_period_id = billing_period_id
        super().__init__(f"Billing period not found: {billing_period_id}")


# Billing period state-machine exceptions


class BillingStateError(BillingKernelError):
    """Base exception for billing period lifecycle violations."""

    code: str = "BILLING_STATE_ERROR"


class AlreadyFinalizedError(BillingStateError):
    """
    Billing period is finalized and may not be overwritten.

    Raised by create-or-update without ``force`` and by a second finalize.
    """

    code: str = "ALREADY_FINALIZED"

    def __init__(self, billing_period_id: str, period_label: str):
        self.billing_period_id = billing_period_id
        self.period_label = period_label
        super().__init__(
            f"Billing period {period_label} ({billing_period_id}) is already finalized"
        )


class CannotRecalculateFinalizedError(BillingStateError):
    """Recalculation of a finalized period was requested without force."""

    code: str = "CANNOT_RECALCULATE_FINALIZED"

    def __init__(self, billing_period_id: str, period_label: str):
        self.billing_period_id = billing_period_id
        self.period_label = period_label
        super().__init__(
            f"Cannot recalculate finalized billing period {period_label} "
            f"({billing_period_id}) without force"
        )


# Storage exceptions


class PersistenceFailureError(BillingKernelError):
    """
    Opaque storage failure wrapped with operation context.

    The original driver/ORM exception is chained as ``__cause__`` and kept
    on ``cause``.
    """

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Persistence failure during {operation}: {cause}")


# Audit exceptions


class AuditError(BillingKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditImmutabilityError(AuditError):
    """Attempted UPDATE or DELETE of an append-only audit entry."""

    code: str = "AUDIT_IMMUTABLE"

    def __init__(self, entry_id: str, operation: str):
        self.entry_id = entry_id
        self.operation = operation
        super().__init__(
            f"Billing audit entries are append-only: {operation} of {entry_id} rejected"
        )
