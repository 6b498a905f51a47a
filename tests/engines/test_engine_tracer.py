"""Tests for the @traced_engine decorator and input fingerprinting."""

from dataclasses import dataclass
from decimal import Decimal

from procurement_engines.tracer import (
    TRACE_TYPE,
    compute_input_fingerprint,
    traced_engine,
)


@dataclass(frozen=True)
class _Sample:
    amount: Decimal
    label: str


class TestFingerprint:
    def test_deterministic(self):
        kwargs = {"a": Decimal("1.0"), "b": [_Sample(Decimal("2"), "x")]}
        first = compute_input_fingerprint(("a", "b"), kwargs)
        second = compute_input_fingerprint(("a", "b"), dict(kwargs))
        assert first == second
        assert len(first) == 16

    def test_dict_order_irrelevant(self):
        fields = ("m",)
        assert compute_input_fingerprint(fields, {"m": {"x": 1, "y": 2}}) == (
            compute_input_fingerprint(fields, {"m": {"y": 2, "x": 1}})
        )

    def test_value_changes_fingerprint(self):
        assert compute_input_fingerprint(("a",), {"a": "PEN"}) != (
            compute_input_fingerprint(("a",), {"a": "USD"})
        )

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("a",), {}) == compute_input_fingerprint(
            ("a",), {"a": None}
        )


class TestTracedEngine:
    def test_emits_trace_and_returns_result(self, captured_logs):
        @traced_engine("sample", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=Decimal("3")) == Decimal("6")

        (trace,) = [r for r in captured_logs() if r["message"] == TRACE_TYPE]
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(
            ("value",), {"value": Decimal("3")}
        )
        assert trace["duration_ms"] >= 0

    def test_no_fingerprint_fields(self, captured_logs):
        @traced_engine("bare", "1.0")
        def noop():
            return None

        noop()
        (trace,) = [r for r in captured_logs() if r["message"] == TRACE_TYPE]
        assert trace["input_fingerprint"] == ""
