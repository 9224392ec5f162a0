"""Tests for the @traced_engine decorator and its input fingerprint."""

from decimal import Decimal

from travel_engines.summary import build_expense_summary
from travel_engines.tracer import compute_input_fingerprint, traced_engine
from travel_kernel.domain.currency import SupportedCurrency
from tests.factories import StaticConverter


class TestFingerprint:

    def test_deterministic(self):
        kwargs = {"display_currency": SupportedCurrency.NOK, "ignored": object()}
        assert compute_input_fingerprint(("display_currency",), kwargs) == compute_input_fingerprint(
            ("display_currency",), {"display_currency": "NOK"}
        )

    def test_sensitive_to_selected_fields(self):
        a = compute_input_fingerprint(("amount",), {"amount": Decimal("1.00")})
        b = compute_input_fingerprint(("amount",), {"amount": Decimal("1.01")})
        assert a != b
        assert len(a) == 16


class TestTracedEngine:

    def test_result_passes_through_and_trace_is_logged(self, captured_logs):
        @traced_engine("demo", "2.1", fingerprint_fields=("x",))
        def double(*, x):
            return x * 2

        assert double(x=21) == 42
        traces = [r for r in captured_logs() if r["message"] == "TRAVEL_ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "demo"
        assert traces[-1]["engine_version"] == "2.1"
        assert traces[-1]["input_fingerprint"]

    def test_summary_engine_is_traced(self, captured_logs):
        build_expense_summary([], display_currency=SupportedCurrency.NOK, converter=StaticConverter())
        names = [r.get("engine_name") for r in captured_logs() if r["message"] == "TRAVEL_ENGINE_TRACE"]
        assert "summary" in names
