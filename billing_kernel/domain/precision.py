"""
Precision -- exact fixed-point money arithmetic.

Responsibility:
    Every money-bearing computation in the billing core (allocation shares,
    prorated rent, period totals) goes through ``PrecisionMath`` so that no
    binary floating point ever touches a currency amount and rounding drift
    cannot accumulate across many small allocations.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by the occupancy module, the allocation engine and services.

Invariants enforced:
    - Floats are rejected at the boundary (``InvalidInputError``).
    - Rounding is ROUND_HALF_UP at the currency's decimal places unless the
      injected ``PrecisionContext`` says otherwise.
    - ``proportional_allocation`` returns shares that sum to the rounded
      total exactly: every key but the last gets ``round(total * w / W)``,
      the last key absorbs ``total - sum(previous)``.
    - No process-global ``decimal`` state is read or written; each
      ``PrecisionMath`` owns a private ``decimal.Context``.

Failure modes:
    - InvalidInputError on non-numeric, non-finite, float or negative-weight
      input, and on amounts outside the configured bounds.
    - DivisionByZeroError on a zero divisor or a zero weight sum.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
)
from typing import Any, TypeVar

from billing_kernel.exceptions import DivisionByZeroError, InvalidInputError

K = TypeVar("K", bound=Hashable)

NumericLike = Decimal | int | str | None

_ROUNDING_MODES = frozenset({
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
})

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PrecisionContext:
    """
    Explicit arithmetic configuration for ``PrecisionMath``.

    Contract:
        Built once (normally from the ``precision`` section of the active
        configuration) and passed to ``PrecisionMath`` at construction.

    Guarantees:
        - ``precision`` > 0 significant digits.
        - ``rounding`` is one of the ``decimal`` rounding constants.
        - ``currency_places`` >= 0.
    """

    precision: int = 28
    rounding: str = ROUND_HALF_UP
    currency_places: int = 2
    max_amount: Decimal = Decimal("1000000")

    def __post_init__(self) -> None:
        if self.precision <= 0:
            raise ValueError(f"precision must be positive, got {self.precision}")
        if self.rounding not in _ROUNDING_MODES:
            raise ValueError(f"Unknown rounding mode: {self.rounding}")
        if self.currency_places < 0:
            raise ValueError(
                f"currency_places cannot be negative, got {self.currency_places}"
            )
        if not isinstance(self.max_amount, Decimal):
            object.__setattr__(self, "max_amount", Decimal(str(self.max_amount)))

    def decimal_context(self) -> Context:
        """A fresh ``decimal.Context`` carrying these settings."""
        return Context(
            prec=self.precision,
            rounding=self.rounding,
            traps=[InvalidOperation, DivisionByZero, Overflow],
        )


class PrecisionMath:
    """
    Decimal arithmetic for currency amounts.

    Contract:
        Accepts ``Decimal``, ``int`` or numeric ``str`` operands (``None`` and
        ``""`` read as zero) and returns ``Decimal`` results computed in the
        injected context.

    Non-goals:
        - No currency conversion; a single implicit currency is assumed.
        - No display formatting.
    """

    def __init__(self, context: PrecisionContext | None = None):
        self.context = context or PrecisionContext()
        self._ctx = self.context.decimal_context()

    # ------------------------------------------------------------------
    # Coercion
    # ------------------------------------------------------------------

    def decimal(self, value: Any) -> Decimal:
        """Coerce ``value`` to a finite Decimal."""
        if value is None or value == "":
            return ZERO
        if isinstance(value, bool) or isinstance(value, float):
            raise InvalidInputError(
                "value", value, "binary floating point is not accepted for money"
            )
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, (int, str)):
            try:
                result = Decimal(str(value).strip())
            except InvalidOperation as exc:
                raise InvalidInputError("value", value, "not a number") from exc
        else:
            raise InvalidInputError(
                "value", value, f"unsupported numeric type {type(value).__name__}"
            )
        if not result.is_finite():
            raise InvalidInputError("value", value, "not a finite number")
        return result

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, *values: NumericLike) -> Decimal:
        total = ZERO
        for value in values:
            total = self._ctx.add(total, self.decimal(value))
        return total

    def subtract(self, a: NumericLike, b: NumericLike) -> Decimal:
        return self._ctx.subtract(self.decimal(a), self.decimal(b))

    def multiply(self, *values: NumericLike) -> Decimal:
        product = ONE
        for value in values:
            product = self._ctx.multiply(product, self.decimal(value))
        return product

    def divide(
        self,
        dividend: NumericLike,
        divisor: NumericLike,
        context: str = "division",
    ) -> Decimal:
        """
        Divide at full context precision.

        Raises:
            DivisionByZeroError: If ``divisor`` is zero.
        """
        numerator = self.decimal(dividend)
        denominator = self.decimal(divisor)
        if denominator.is_zero():
            raise DivisionByZeroError(str(numerator), context)
        return self._ctx.divide(numerator, denominator)

    def percentage(self, value: NumericLike, percent: NumericLike) -> Decimal:
        """``value * percent / 100``."""
        return self.divide(self.multiply(value, percent), HUNDRED)

    def round(self, value: NumericLike, places: int | None = None) -> Decimal:
        """Round to ``places`` (default: currency places) with the context's mode."""
        if places is None:
            places = self.context.currency_places
        quantum = ONE.scaleb(-places)
        return self.decimal(value).quantize(
            quantum, rounding=self.context.rounding, context=self._ctx
        )

    def to_currency(self, value: NumericLike) -> Decimal:
        return self.round(value, self.context.currency_places)

    # ------------------------------------------------------------------
    # Comparison and sign
    # ------------------------------------------------------------------

    def compare(self, a: NumericLike, b: NumericLike) -> int:
        """-1 if a < b, 0 if equal, 1 if a > b."""
        return int(self.decimal(a).compare(self.decimal(b)))

    def is_zero(self, value: NumericLike) -> bool:
        return self.decimal(value).is_zero()

    def is_positive(self, value: NumericLike) -> bool:
        return self.decimal(value) > ZERO

    def is_negative(self, value: NumericLike) -> bool:
        return self.decimal(value) < ZERO

    def abs(self, value: NumericLike) -> Decimal:
        return self._ctx.abs(self.decimal(value))

    # ------------------------------------------------------------------
    # Billing primitives
    # ------------------------------------------------------------------

    def proportional_allocation(
        self,
        total: NumericLike,
        weights: Mapping[K, NumericLike],
    ) -> dict[K, Decimal]:
        """
        Split ``total`` across ``weights`` keys in proportion to their weight.

        Preconditions:
            - Every weight is >= 0 and the weights sum to a non-zero value.

        Postconditions:
            - Keys keep the mapping's iteration order.
            - Every amount except the last is
              ``round(total * weight / sum(weights))``.
            - The last key absorbs ``total - sum(previous amounts)``, so the
              amounts sum to ``to_currency(total)`` exactly.

        Raises:
            InvalidInputError: On a negative weight.
            DivisionByZeroError: If the weights are empty or sum to zero.
        """
        total_amount = self.decimal(total)
        parsed: list[tuple[K, Decimal]] = []
        for key, raw in weights.items():
            weight = self.decimal(raw)
            if weight < ZERO:
                raise InvalidInputError("weight", raw, f"negative weight for {key!r}")
            parsed.append((key, weight))

        weight_sum = self.add(*(w for _, w in parsed))
        if weight_sum.is_zero():
            raise DivisionByZeroError(str(total_amount), "proportional allocation")

        result: dict[K, Decimal] = {}
        distributed = ZERO
        last_index = len(parsed) - 1
        for i, (key, weight) in enumerate(parsed):
            if i == last_index:
                # Remainder absorption: the last key makes the sum exact
                result[key] = self.to_currency(self.subtract(total_amount, distributed))
            else:
                share = self.to_currency(
                    self.divide(
                        self.multiply(total_amount, weight),
                        weight_sum,
                        "proportional allocation",
                    )
                )
                result[key] = share
                distributed = self.add(distributed, share)
        return result

    def prorated_amount(
        self,
        monthly_amount: NumericLike,
        days_in_month: int,
        occupied_days: int,
    ) -> Decimal:
        """
        Prorate a monthly amount by occupied days.

        ``daily_rate = monthly / days_in_month``; the result is
        ``round(daily_rate * occupied_days)``.  A full (or over-full) month
        returns the monthly amount itself, rounded to currency.
        """
        if days_in_month <= 0:
            raise InvalidInputError("days_in_month", days_in_month, "must be positive")
        if occupied_days < 0:
            raise InvalidInputError("occupied_days", occupied_days, "cannot be negative")
        if occupied_days >= days_in_month:
            return self.to_currency(monthly_amount)
        daily_rate = self.divide(monthly_amount, days_in_month, "daily rate")
        return self.to_currency(self.multiply(daily_rate, occupied_days))

    def validate_amount(
        self,
        value: NumericLike,
        *,
        field: str = "amount",
        allow_zero: bool = True,
    ) -> Decimal:
        """
        Validate a currency amount at an input boundary.

        Raises:
            InvalidInputError: If negative, zero while ``allow_zero`` is
                False, or above ``PrecisionContext.max_amount``.
        """
        amount = self.decimal(value)
        if amount < ZERO:
            raise InvalidInputError(field, value, "cannot be negative")
        if not allow_zero and amount.is_zero():
            raise InvalidInputError(field, value, "must be greater than zero")
        if amount > self.context.max_amount:
            raise InvalidInputError(
                field, value, f"exceeds maximum of {self.context.max_amount}"
            )
        return amount
