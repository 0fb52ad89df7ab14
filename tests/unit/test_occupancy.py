"""
Tests for occupancy day counting and rent proration.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from billing_kernel.domain.occupancy import (
    BillingMonth,
    days_in_month,
    describe_occupancy_period,
    is_leap_year,
    occupancy_fraction,
    occupied_days,
    parse_date,
    person_days,
    prorate_rent,
    sqm_days,
    validate_occupancy,
)
from billing_kernel.exceptions import InvalidInputError


class TestMonthLengths:

    @pytest.mark.parametrize(
        "year,expected",
        [(2024, True), (2023, False), (1900, False), (2000, True)],
    )
    def test_leap_years(self, year, expected):
        assert is_leap_year(year) is expected

    def test_february_lengths(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2023, 2) == 28
        assert days_in_month(1900, 2) == 28

    def test_thirty_and_thirty_one_day_months(self):
        assert days_in_month(2024, 4) == 30
        assert days_in_month(2024, 12) == 31

    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_invalid_month_rejected(self, month):
        with pytest.raises(InvalidInputError) as exc_info:
            days_in_month(2024, month)
        assert exc_info.value.field == "month"


class TestBillingMonth:

    def test_bounds_and_label(self):
        bm = BillingMonth(2024, 2)
        assert bm.first_day == date(2024, 2, 1)
        assert bm.last_day == date(2024, 2, 29)
        assert bm.days == 29
        assert bm.label == "2024-02"
        assert str(bm) == "2024-02"

    def test_orders_chronologically(self):
        assert BillingMonth(2023, 12) < BillingMonth(2024, 1) < BillingMonth(2024, 2)

    def test_contains(self):
        bm = BillingMonth(2024, 6)
        assert bm.contains(date(2024, 6, 30))
        assert not bm.contains(date(2024, 7, 1))

    def test_invalid_month_rejected(self):
        with pytest.raises(InvalidInputError):
            BillingMonth(2024, 13)


class TestOccupiedDays:

    def test_full_month_without_move_out(self):
        assert occupied_days(date(2023, 1, 1), None, 2024, 6) == 30

    def test_leap_february(self):
        assert occupied_days(date(2020, 1, 1), None, 2024, 2) == 29

    def test_mid_month_move_in_counts_move_in_day(self):
        assert occupied_days(date(2024, 6, 11), None, 2024, 6) == 20

    def test_mid_month_move_out_counts_move_out_day(self):
        assert occupied_days(date(2023, 1, 1), date(2024, 6, 10), 2024, 6) == 10

    def test_same_day_window_inside_month(self):
        assert occupied_days(date(2024, 6, 14), date(2024, 6, 15), 2024, 6) == 2

    def test_move_out_on_first_day_counts_one_day(self):
        assert occupied_days(date(2024, 5, 1), date(2024, 6, 1), 2024, 6) == 1

    def test_move_in_on_last_day_counts_one_day(self):
        assert occupied_days(date(2024, 6, 30), None, 2024, 6) == 1

    def test_moved_in_after_month_is_zero(self):
        assert occupied_days(date(2024, 7, 1), None, 2024, 6) == 0

    def test_moved_out_before_month_is_zero(self):
        assert occupied_days(date(2023, 1, 1), date(2024, 5, 31), 2024, 6) == 0

    def test_person_days_and_sqm_days(self):
        assert person_days(date(2024, 6, 16), None, 2024, 6) == 15
        assert sqm_days("12.5", date(2024, 6, 16), None, 2024, 6) == Decimal("187.5")

    def test_occupancy_fraction(self):
        fraction = occupancy_fraction(date(2024, 6, 16), None, BillingMonth(2024, 6))
        assert fraction == Decimal("0.5")


class TestDateInputs:

    def test_parse_date_variants(self):
        assert parse_date("2024-06-01") == date(2024, 6, 1)
        assert parse_date(datetime(2024, 6, 1, 15, 30)) == date(2024, 6, 1)
        assert parse_date(date(2024, 6, 1)) == date(2024, 6, 1)

    @pytest.mark.parametrize("value", ["2023-02-29", "06/01/2024", None, 20240601])
    def test_parse_date_rejects_bad_input(self, value):
        with pytest.raises(InvalidInputError):
            parse_date(value, "move_in_date")

    def test_move_out_must_follow_move_in(self):
        validate_occupancy(date(2024, 1, 1), None)
        validate_occupancy(date(2024, 1, 1), date(2024, 1, 2))
        with pytest.raises(InvalidInputError) as exc_info:
            validate_occupancy(date(2024, 1, 2), date(2024, 1, 2))
        assert exc_info.value.field == "move_out_date"


class TestProrateRent:

    def test_full_month_is_exact_monthly_rent(self):
        result = prorate_rent("1000.00", date(2023, 1, 1), None, BillingMonth(2024, 6))
        assert result.prorated_amount == Decimal("1000.00")
        assert result.is_full_month
        assert result.occupancy_percentage == 100

    def test_half_month(self):
        result = prorate_rent("900.00", date(2024, 6, 16), None, BillingMonth(2024, 6))
        assert result.occupied_days == 15
        assert result.daily_rate == Decimal("30.00")
        assert result.prorated_amount == Decimal("450.00")
        assert result.occupancy_percentage == 50

    def test_rounds_half_up_to_cents(self):
        # 1000 / 31 * 10 = 322.5806...
        result = prorate_rent("1000.00", date(2024, 7, 22), None, BillingMonth(2024, 7))
        assert result.occupied_days == 10
        assert result.prorated_amount == Decimal("322.58")
        assert result.daily_rate == Decimal("32.26")

    def test_absent_tenant_pays_nothing(self):
        result = prorate_rent("1000.00", date(2024, 8, 1), None, BillingMonth(2024, 7))
        assert result.occupied_days == 0
        assert result.prorated_amount == Decimal("0.00")


class TestDescribeOccupancyPeriod:

    def test_full_month(self):
        text = describe_occupancy_period(date(2023, 1, 1), None, BillingMonth(2024, 6))
        assert text == "Full month (01/06/2024 - 30/06/2024)"

    def test_partial_month(self):
        text = describe_occupancy_period(
            date(2024, 6, 5), date(2024, 6, 20), BillingMonth(2024, 6)
        )
        assert text == "05/06/2024 - 20/06/2024"

    def test_absent_is_empty(self):
        assert describe_occupancy_period(date(2024, 7, 1), None, BillingMonth(2024, 6)) == ""
