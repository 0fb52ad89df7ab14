"""
Tests for the utility bill allocation engine.

Covers:
- Each allocation method on hand-checked examples
- Remainder absorption by the last tenant
- Eligibility (status and lease window)
- The empty-result policy
- Input validation
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_engines.allocation import (
    AllocationEngine,
    PerPersonStrategy,
    PerSqmStrategy,
    PersonDaysStrategy,
    SqmDaysStrategy,
    strategy_for,
)
from billing_kernel.domain.dtos import AllocationMethod, OccupancyStatus, TenantOccupancy
from billing_kernel.domain.occupancy import BillingMonth
from billing_kernel.domain.precision import PrecisionMath
from billing_kernel.exceptions import InvalidInputError

JUNE = BillingMonth(2024, 6)


def _tenant(
    move_in=date(2023, 1, 1),
    move_out=None,
    area="20",
    status=OccupancyStatus.ACTIVE,
    tenant_id=None,
):
    return TenantOccupancy(
        tenant_id=tenant_id or uuid4(),
        move_in_date=move_in,
        move_out_date=move_out,
        room_area=Decimal(area),
        occupancy_status=status,
    )


class TestStrategies:

    def setup_method(self):
        self.math = PrecisionMath()

    @pytest.mark.parametrize(
        "method,cls",
        [
            (AllocationMethod.PER_PERSON, PerPersonStrategy),
            (AllocationMethod.PER_SQM, PerSqmStrategy),
            ("per_person_weighted", PersonDaysStrategy),
            ("per_sqm_weighted", SqmDaysStrategy),
        ],
    )
    def test_strategy_lookup(self, method, cls):
        assert isinstance(strategy_for(method, self.math), cls)

    def test_unknown_method_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            strategy_for("per_window", self.math)
        assert exc_info.value.field == "allocation_method"

    def test_weights(self):
        tenant = _tenant(move_in=date(2024, 6, 21), area="12.5")
        assert PerPersonStrategy(self.math).compute_weight(tenant, JUNE) == Decimal("1")
        assert PerSqmStrategy(self.math).compute_weight(tenant, JUNE) == Decimal("12.5")
        assert PersonDaysStrategy(self.math).compute_weight(tenant, JUNE) == Decimal("10")
        assert SqmDaysStrategy(self.math).compute_weight(tenant, JUNE) == Decimal("125.0")


class TestPerPerson:

    def setup_method(self):
        self.engine = AllocationEngine()

    def test_three_way_split_sums_to_total(self):
        tenants = [_tenant(), _tenant(), _tenant()]
        result = self.engine.allocate(
            total_amount=Decimal("100.00"),
            method=AllocationMethod.PER_PERSON,
            billing_month=JUNE,
            tenants=tenants,
        )
        amounts = [line.allocated_amount for line in result.lines]
        assert amounts == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert result.total_allocated == Decimal("100.00")
        assert result.unallocated == Decimal("0")
        assert result.total_weight == Decimal("3")

    def test_lines_follow_input_order(self):
        tenants = [_tenant(), _tenant(), _tenant()]
        result = self.engine.allocate(
            total_amount=Decimal("10.00"),
            method="per_person",
            billing_month=JUNE,
            tenants=tenants,
        )
        assert [line.tenant_id for line in result.lines] == [t.tenant_id for t in tenants]
        assert list(result.amounts()) == [t.tenant_id for t in tenants]

    def test_partial_month_tenant_still_gets_full_share(self):
        tenants = [_tenant(), _tenant(move_in=date(2024, 6, 29))]
        result = self.engine.allocate(
            total_amount=Decimal("50.00"),
            method=AllocationMethod.PER_PERSON,
            billing_month=JUNE,
            tenants=tenants,
        )
        assert [line.allocated_amount for line in result.lines] == [
            Decimal("25.00"), Decimal("25.00"),
        ]
        assert result.lines[1].occupied_days == 2


class TestPerSqm:

    def test_area_split(self):
        tenants = [_tenant(area="20"), _tenant(area="30"), _tenant(area="50")]
        result = AllocationEngine().allocate(
            total_amount=Decimal("300.00"),
            method=AllocationMethod.PER_SQM,
            billing_month=JUNE,
            tenants=tenants,
        )
        assert [line.allocated_amount for line in result.lines] == [
            Decimal("60.00"), Decimal("90.00"), Decimal("150.00"),
        ]
        assert [line.rate for line in result.lines] == [
            Decimal("0.2"), Decimal("0.3"), Decimal("0.5"),
        ]


class TestTimeWeighted:

    def setup_method(self):
        self.engine = AllocationEngine()

    def test_person_days_mid_month_move_in(self):
        tenants = [_tenant(), _tenant(move_in=date(2024, 6, 16))]
        result = self.engine.allocate(
            total_amount=Decimal("100.00"),
            method=AllocationMethod.PER_PERSON_WEIGHTED,
            billing_month=JUNE,
            tenants=tenants,
        )
        assert [line.occupied_days for line in result.lines] == [30, 15]
        assert [line.allocated_amount for line in result.lines] == [
            Decimal("66.67"), Decimal("33.33"),
        ]
        assert result.total_weight == Decimal("45")

    def test_sqm_days(self):
        # 20 m2 x 30 days = 600, 40 m2 x 15 days = 600
        tenants = [
            _tenant(area="20"),
            _tenant(area="40", move_out=date(2024, 6, 15)),
        ]
        result = self.engine.allocate(
            total_amount=Decimal("80.00"),
            method=AllocationMethod.PER_SQM_WEIGHTED,
            billing_month=JUNE,
            tenants=tenants,
        )
        assert [line.allocated_amount for line in result.lines] == [
            Decimal("40.00"), Decimal("40.00"),
        ]

    def test_leap_february_uses_twenty_nine_days(self):
        tenants = [_tenant(), _tenant(move_in=date(2024, 2, 15))]
        result = self.engine.allocate(
            total_amount=Decimal("44.00"),
            method=AllocationMethod.PER_PERSON_WEIGHTED,
            billing_month=BillingMonth(2024, 2),
            tenants=tenants,
        )
        # 29 + 15 = 44 person-days, one unit of money each
        assert [line.allocated_amount for line in result.lines] == [
            Decimal("29.00"), Decimal("15.00"),
        ]


class TestEligibility:

    def setup_method(self):
        self.engine = AllocationEngine()

    def test_non_active_tenants_excluded(self):
        active = _tenant()
        tenants = [
            _tenant(status=OccupancyStatus.PENDING),
            active,
            _tenant(status=OccupancyStatus.MOVED_OUT),
        ]
        result = self.engine.allocate(
            total_amount=Decimal("75.00"),
            method=AllocationMethod.PER_PERSON,
            billing_month=JUNE,
            tenants=tenants,
        )
        assert result.amounts() == {active.tenant_id: Decimal("75.00")}

    def test_tenants_outside_month_excluded(self):
        current = _tenant()
        tenants = [
            _tenant(move_in=date(2024, 7, 1)),
            current,
            _tenant(move_out=date(2024, 5, 31)),
        ]
        result = self.engine.allocate(
            total_amount=Decimal("75.00"),
            method=AllocationMethod.PER_SQM,
            billing_month=JUNE,
            tenants=tenants,
        )
        assert list(result.amounts()) == [current.tenant_id]

    def test_eligible_tenants_keeps_order(self):
        a, b = _tenant(), _tenant()
        tenants = [a, _tenant(status=OccupancyStatus.PENDING), b]
        assert AllocationEngine.eligible_tenants(tenants, JUNE) == [a, b]


class TestEmptyResult:

    def setup_method(self):
        self.engine = AllocationEngine()

    @pytest.mark.parametrize("method", list(AllocationMethod))
    def test_no_tenants_gives_empty_result(self, method):
        result = self.engine.allocate(
            total_amount=Decimal("100.00"),
            method=method,
            billing_month=JUNE,
            tenants=[],
        )
        assert not result.is_allocated
        assert result.lines == ()
        assert result.total_weight == Decimal("0")
        assert result.unallocated == Decimal("100.00")

    def test_zero_area_tenants_give_empty_result(self):
        result = self.engine.allocate(
            total_amount=Decimal("100.00"),
            method=AllocationMethod.PER_SQM,
            billing_month=JUNE,
            tenants=[_tenant(area="0"), _tenant(area="0")],
        )
        assert not result.is_allocated

    def test_zero_area_tenant_is_dropped_from_split(self):
        keep = _tenant(area="10")
        result = self.engine.allocate(
            total_amount=Decimal("100.00"),
            method=AllocationMethod.PER_SQM,
            billing_month=JUNE,
            tenants=[keep, _tenant(area="0")],
        )
        assert result.amounts() == {keep.tenant_id: Decimal("100.00")}

    def test_empty_result_is_logged(self, captured_logs):
        self.engine.allocate(
            total_amount=Decimal("100.00"),
            method=AllocationMethod.PER_PERSON,
            billing_month=JUNE,
            tenants=[_tenant(status=OccupancyStatus.PENDING)],
        )
        records = [r for r in captured_logs() if r["message"] == "allocation_no_eligible_tenants"]
        assert len(records) == 1
        assert records[0]["level"] == "WARNING"
        assert records[0]["candidate_count"] == 1


class TestInputValidation:

    def setup_method(self):
        self.engine = AllocationEngine()

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00")])
    def test_non_positive_total_rejected(self, amount):
        with pytest.raises(InvalidInputError) as exc_info:
            self.engine.allocate(
                total_amount=amount,
                method=AllocationMethod.PER_PERSON,
                billing_month=JUNE,
                tenants=[_tenant()],
            )
        assert exc_info.value.field == "total_amount"

    def test_float_total_rejected(self):
        with pytest.raises(InvalidInputError):
            self.engine.allocate(
                total_amount=100.0,
                method=AllocationMethod.PER_PERSON,
                billing_month=JUNE,
                tenants=[_tenant()],
            )

    def test_unknown_method_rejected(self):
        with pytest.raises(InvalidInputError):
            self.engine.allocate(
                total_amount=Decimal("10.00"),
                method="by_height",
                billing_month=JUNE,
                tenants=[_tenant()],
            )

    def test_sub_cent_total_rounded_before_split(self):
        result = self.engine.allocate(
            total_amount=Decimal("100.005"),
            method=AllocationMethod.PER_PERSON,
            billing_month=JUNE,
            tenants=[_tenant(), _tenant()],
        )
        assert result.total_amount == Decimal("100.01")
        assert result.total_allocated == result.total_amount
        assert result.unallocated == Decimal("0")

    def test_total_below_one_cent_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            self.engine.allocate(
                total_amount=Decimal("0.004"),
                method=AllocationMethod.PER_PERSON,
                billing_month=JUNE,
                tenants=[_tenant()],
            )
        assert exc_info.value.field == "total_amount"
        assert exc_info.value.reason == "must be at least one cent"

    def test_move_out_before_move_in_rejected(self):
        with pytest.raises(InvalidInputError):
            _tenant(move_in=date(2024, 6, 10), move_out=date(2024, 6, 1))


class TestTooSmallToSplit:

    def test_round_ups_exceeding_total_rejected(self):
        # 0.05 / 8 = 0.00625 rounds to 0.01; seven of those leave -0.02 for the last
        with pytest.raises(InvalidInputError) as exc_info:
            AllocationEngine().allocate(
                total_amount=Decimal("0.05"),
                method=AllocationMethod.PER_PERSON,
                billing_month=JUNE,
                tenants=[_tenant() for _ in range(8)],
            )
        assert exc_info.value.field == "total_amount"
        assert "8 tenants" in exc_info.value.reason

    def test_last_tenant_can_absorb_down_to_zero(self):
        result = AllocationEngine().allocate(
            total_amount=Decimal("0.02"),
            method=AllocationMethod.PER_PERSON,
            billing_month=JUNE,
            tenants=[_tenant() for _ in range(3)],
        )
        # 0.00666 rounds to 0.01 twice, leaving 0.00
        assert [line.allocated_amount for line in result.lines] == [
            Decimal("0.01"), Decimal("0.01"), Decimal("0.00"),
        ]


class TestAllocationMethod:

    def test_parse(self):
        assert AllocationMethod.parse(" per_sqm ") == AllocationMethod.PER_SQM
        assert AllocationMethod.parse(AllocationMethod.PER_PERSON) is AllocationMethod.PER_PERSON

    def test_time_weighted_flag(self):
        assert AllocationMethod.PER_PERSON_WEIGHTED.is_time_weighted
        assert AllocationMethod.PER_SQM_WEIGHTED.is_time_weighted
        assert not AllocationMethod.PER_PERSON.is_time_weighted
        assert not AllocationMethod.PER_SQM.is_time_weighted
