"""Tests for engine invocation tracing."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from billing_engines.allocation import AllocationEngine
from billing_engines.tracer import compute_input_fingerprint, traced_engine
from billing_kernel.domain.dtos import AllocationMethod, TenantOccupancy
from billing_kernel.domain.occupancy import BillingMonth


class TestInputFingerprint:

    def test_deterministic_and_short(self):
        kwargs = {"total_amount": Decimal("10.00"), "method": AllocationMethod.PER_SQM}
        fp1 = compute_input_fingerprint(("total_amount", "method"), kwargs)
        fp2 = compute_input_fingerprint(("total_amount", "method"), dict(kwargs))
        assert fp1 == fp2
        assert len(fp1) == 16

    def test_changes_with_input(self):
        fields = ("total_amount",)
        assert compute_input_fingerprint(fields, {"total_amount": Decimal("10.00")}) != \
            compute_input_fingerprint(fields, {"total_amount": Decimal("10.01")})

    def test_enum_and_string_value_fingerprint_alike(self):
        fields = ("method",)
        assert compute_input_fingerprint(fields, {"method": AllocationMethod.PER_SQM}) == \
            compute_input_fingerprint(fields, {"method": "per_sqm"})

    def test_missing_field_reads_as_null(self):
        assert compute_input_fingerprint(("x",), {}) == \
            compute_input_fingerprint(("x",), {"x": None})

    def test_dict_key_order_does_not_matter(self):
        fields = ("weights",)
        assert compute_input_fingerprint(fields, {"weights": {"a": 1, "b": 2}}) == \
            compute_input_fingerprint(fields, {"weights": {"b": 2, "a": 1}})


class TestTracedEngine:

    def test_emits_trace_record(self, captured_logs):
        @traced_engine("demo", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=21) == 42
        traces = [r for r in captured_logs() if r["message"] == "BILLING_ENGINE_TRACE"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["engine_name"] == "demo"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(("value",), {"value": 21})
        assert trace["duration_ms"] >= 0

    def test_allocation_is_traced(self, captured_logs):
        tenant = TenantOccupancy(
            tenant_id=UUID("00000000-0000-0000-0000-000000000001"),
            move_in_date=date(2024, 1, 1),
        )
        AllocationEngine().allocate(
            total_amount=Decimal("10.00"),
            method=AllocationMethod.PER_PERSON,
            billing_month=BillingMonth(2024, 6),
            tenants=[tenant],
        )
        traces = [r for r in captured_logs() if r["message"] == "BILLING_ENGINE_TRACE"]
        assert [t["engine_name"] for t in traces] == ["allocation"]
        assert traces[0]["function"] == "AllocationEngine.allocate"
