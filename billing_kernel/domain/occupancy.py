"""
Occupancy -- calendar-day occupancy of a unit within a billing month.

Responsibility:
    Converts a tenant's move-in / move-out dates into the number of days the
    tenant occupied the unit in a given (year, month), and derives the
    person-day and sqm-day weights used by the weighted allocation methods
    and the daily-rate rent proration used by billing periods.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Depends only on ``billing_kernel.domain.precision`` for money math.

Invariants enforced:
    - Day counts are inclusive of both ends: a same-day move-in/move-out
      occupies exactly 1 day.
    - A tenant absent for the whole month (moved in after the last day or
      moved out before the first) occupies 0 days, never a negative count.
    - Month length follows the Gregorian leap-year rule.

Failure modes:
    - InvalidInputError on a month outside 1-12, a malformed date, or a
      move-out that is not strictly after move-in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, date, datetime
from decimal import ROUND_HALF_UP, Decimal

from billing_kernel.domain.precision import HUNDRED, NumericLike, PrecisionMath
from billing_kernel.exceptions import InvalidInputError

_DAYS_PER_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def _check_year_month(year: int, month: int) -> None:
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidInputError("month", month, "must be an integer between 1 and 12")
    if isinstance(year, bool) or not isinstance(year, int) or not MINYEAR <= year <= MAXYEAR:
        raise InvalidInputError("year", year, "must be a valid calendar year")


def days_in_month(year: int, month: int) -> int:
    """Canonical day count of the month (28/29/30/31)."""
    _check_year_month(year, month)
    if month == 2 and is_leap_year(year):
        return 29
    return _DAYS_PER_MONTH[month - 1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of the month, both inclusive."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


@dataclass(frozen=True, order=True)
class BillingMonth:
    """
    A calendar month that bills are issued for.

    Guarantees:
        - 1 <= month <= 12 and year is a valid calendar year.
        - Orders chronologically.
    """

    year: int
    month: int

    def __post_init__(self) -> None:
        _check_year_month(self.year, self.month)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days)

    @property
    def days(self) -> int:
        return days_in_month(self.year, self.month)

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def contains(self, day: date) -> bool:
        return self.first_day <= day <= self.last_day

    def __str__(self) -> str:
        return self.label


def parse_date(value: date | datetime | str | None, field: str = "date") -> date:
    """
    Normalize a date input.

    Accepts ``date``, ``datetime`` (date part is kept) or an ISO
    ``YYYY-MM-DD`` string.

    Raises:
        InvalidInputError: For anything else, including impossible dates
            such as ``2023-02-29``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidInputError(field, value, "expected YYYY-MM-DD") from exc
    raise InvalidInputError(field, value, "expected a date or YYYY-MM-DD string")


def validate_occupancy(move_in: date, move_out: date | None) -> None:
    """Move-out, when set, must fall strictly after move-in."""
    if move_out is not None and move_out <= move_in:
        raise InvalidInputError(
            "move_out_date", move_out.isoformat(), "must be after move_in_date"
        )


def occupied_days(
    move_in: date,
    move_out: date | None,
    year: int,
    month: int,
) -> int:
    """
    Days the tenant occupied the unit during ``year``-``month``.

    ``move_out`` of ``None`` means the tenant still lives there.  Both the
    move-in and the move-out day count as occupied.
    """
    month_start, month_end = month_bounds(year, month)

    if move_in > month_end:
        return 0
    if move_out is not None and move_out < month_start:
        return 0

    effective_start = max(move_in, month_start)
    effective_end = min(move_out, month_end) if move_out is not None else month_end
    return max(0, (effective_end - effective_start).days + 1)


def person_days(
    move_in: date,
    move_out: date | None,
    year: int,
    month: int,
) -> int:
    """Occupied days weighted by one tenant-unit."""
    return occupied_days(move_in, move_out, year, month) * 1


def sqm_days(
    room_area: NumericLike,
    move_in: date,
    move_out: date | None,
    year: int,
    month: int,
    math: PrecisionMath | None = None,
) -> Decimal:
    """Occupied days multiplied by the room area in m²."""
    math = math or PrecisionMath()
    return math.multiply(room_area, occupied_days(move_in, move_out, year, month))


def occupancy_fraction(
    move_in: date,
    move_out: date | None,
    billing_month: BillingMonth,
    math: PrecisionMath | None = None,
) -> Decimal:
    """Share of the month occupied, in [0, 1] at full precision."""
    math = math or PrecisionMath()
    days = occupied_days(move_in, move_out, billing_month.year, billing_month.month)
    return math.divide(days, billing_month.days, "occupancy fraction")


@dataclass(frozen=True)
class ProratedRent:
    """Breakdown of one tenant's rent for one billing month."""

    monthly_rent: Decimal
    days_in_month: int
    occupied_days: int
    daily_rate: Decimal
    prorated_amount: Decimal

    @property
    def is_full_month(self) -> bool:
        return self.occupied_days == self.days_in_month

    @property
    def occupancy_percentage(self) -> int:
        """Whole-number percentage of the month occupied (half-up)."""
        pct = Decimal(self.occupied_days) * HUNDRED / Decimal(self.days_in_month)
        return int(pct.to_integral_value(rounding=ROUND_HALF_UP))


def prorate_rent(
    monthly_rent: NumericLike,
    move_in: date,
    move_out: date | None,
    billing_month: BillingMonth,
    math: PrecisionMath | None = None,
) -> ProratedRent:
    """
    Prorate a monthly rent by the days occupied in ``billing_month``.

    ``daily_rate = monthly_rent / days_in_month`` and
    ``prorated_amount = round(daily_rate * occupied_days)``; a full month
    yields exactly ``monthly_rent``.  ``daily_rate`` is reported rounded to
    currency places for display only.
    """
    math = math or PrecisionMath()
    rent = math.decimal(monthly_rent)
    total_days = billing_month.days
    days = occupied_days(move_in, move_out, billing_month.year, billing_month.month)
    return ProratedRent(
        monthly_rent=rent,
        days_in_month=total_days,
        occupied_days=days,
        daily_rate=math.to_currency(math.divide(rent, total_days, "daily rate")),
        prorated_amount=math.prorated_amount(rent, total_days, days),
    )


def _fmt(day: date) -> str:
    return day.strftime("%d/%m/%Y")


def describe_occupancy_period(
    move_in: date,
    move_out: date | None,
    billing_month: BillingMonth,
) -> str:
    """Human-readable occupancy window for reports; empty if absent."""
    if occupied_days(move_in, move_out, billing_month.year, billing_month.month) == 0:
        return ""
    start = max(move_in, billing_month.first_day)
    end = min(move_out, billing_month.last_day) if move_out else billing_month.last_day
    if start == billing_month.first_day and end == billing_month.last_day:
        return f"Full month ({_fmt(start)} - {_fmt(end)})"
    return f"{_fmt(start)} - {_fmt(end)}"

