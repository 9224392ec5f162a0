"""
Tests for build_expense_summary.

Includes property tests: grand_total == approved + pending for any expense
list, and aggregation does not depend on expense order.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from travel_engines.summary import build_expense_summary
from travel_kernel.domain.currency import SupportedCurrency
from travel_kernel.domain.models import ExpenseCategory, ExpenseStatus, Receipt, TravelExpense
from travel_kernel.domain.rates import StalenessKind
from tests.factories import FIXED_NOW, StaticConverter, make_expense_input

NOK = SupportedCurrency.NOK


def _expense(
    expense_id: str,
    amount: str,
    currency: str,
    status: ExpenseStatus = ExpenseStatus.PENDING,
    category: ExpenseCategory = ExpenseCategory.TRANSPORTATION,
    custom_currency: str | None = None,
) -> TravelExpense:
    expense = TravelExpense.from_input(
        expense_id,
        "req-1",
        make_expense_input(
            amount=Decimal(amount),
            currency=currency,
            category=category,
            custom_currency=custom_currency,
        ),
    )
    return replace(expense, status=status)


expense_strategy = st.builds(
    lambda i, amount, currency, status: _expense(f"e{i}", str(amount), currency.value, status),
    st.integers(min_value=0, max_value=10_000),
    st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2),
    st.sampled_from([SupportedCurrency.NOK, SupportedCurrency.USD, SupportedCurrency.GBP, SupportedCurrency.EUR]),
    st.sampled_from(list(ExpenseStatus)),
)


class TestSummaryTotals:

    def test_per_status_totals(self):
        expenses = [
            _expense("e1", "1850", "GBP", ExpenseStatus.APPROVED),
            _expense("e2", "1000", "NOK", ExpenseStatus.PENDING),
            _expense("e3", "200", "USD", ExpenseStatus.REJECTED),
        ]
        summary = build_expense_summary(expenses, display_currency=NOK, converter=StaticConverter())
        assert summary.approved.count == 1
        assert summary.approved.total == Decimal("24420.00")
        assert summary.pending.total == Decimal("1000.00")
        assert summary.rejected.total == Decimal("2100.00")
        assert summary.grand_total == Decimal("25420.00")
        assert summary.expense_count == 3
        assert summary.is_exact

    def test_totals_rounded_half_up(self):
        # 0.333 USD * 10.5 = 3.4965 -> 3.50
        summary = build_expense_summary(
            [_expense("e1", "0.333", "USD")], display_currency=NOK, converter=StaticConverter()
        )
        assert summary.pending.total == Decimal("3.50")

    def test_breakdown_by_original_currency(self):
        expenses = [
            _expense("e1", "10", "USD", ExpenseStatus.APPROVED),
            _expense("e2", "5", "USD", ExpenseStatus.REJECTED),
            _expense("e3", "80", "OTHER", custom_currency="CAD"),
            _expense("e4", "100", "NOK"),
        ]
        summary = build_expense_summary(expenses, display_currency=NOK, converter=StaticConverter())
        by_code = {b.currency: b for b in summary.by_currency}
        assert list(by_code) == ["CAD", "NOK", "USD"]
        assert by_code["USD"].approved == Decimal("10")
        assert by_code["USD"].rejected == Decimal("5")
        assert by_code["USD"].total == Decimal("10")
        assert by_code["USD"].count == 2
        assert by_code["CAD"].pending == Decimal("80")
        assert summary.currencies_used == ("CAD", "NOK", "USD")

    def test_other_is_listed_but_not_totalled(self):
        expenses = [_expense("e1", "80", "OTHER", custom_currency="CAD"), _expense("e2", "100", "NOK")]
        summary = build_expense_summary(expenses, display_currency=NOK, converter=StaticConverter())
        assert summary.pending.total == Decimal("100.00")
        assert [n.kind for n in summary.notices] == [StalenessKind.NOT_CONVERTIBLE]
        assert not summary.is_exact

    def test_category_breakdown_and_receipts(self):
        receipt = Receipt(file_reference="ref", filename="a.pdf", uploaded_at=FIXED_NOW)
        expenses = [
            _expense("e1", "100", "NOK", category=ExpenseCategory.MEALS).with_receipts_added((receipt, receipt)),
            _expense("e2", "300", "NOK", category=ExpenseCategory.ACCOMMODATION),
            _expense("e3", "50", "NOK", category=ExpenseCategory.MEALS),
        ]
        summary = build_expense_summary(expenses, display_currency=NOK, converter=StaticConverter())
        assert [(c.category, c.count, c.total) for c in summary.by_category] == [
            (ExpenseCategory.ACCOMMODATION, 1, Decimal("300.00")),
            (ExpenseCategory.MEALS, 2, Decimal("150.00")),
        ]
        assert summary.receipt_count == 2

    def test_empty_list(self):
        summary = build_expense_summary([], display_currency=NOK, converter=StaticConverter())
        assert summary.expense_count == 0
        assert summary.grand_total == Decimal("0.00")
        assert summary.by_currency == ()


class TestSummaryDegradation:

    def test_no_rates_still_produces_totals_with_notice(self):
        expenses = [_expense("e1", "10", "USD"), _expense("e2", "20", "USD")]
        summary = build_expense_summary(expenses, display_currency=NOK, converter=StaticConverter(rates=None))
        assert summary.pending.total == Decimal("30.00")
        assert len(summary.notices) == 1
        assert summary.notices[0].kind is StalenessKind.UNAVAILABLE

    def test_stale_rates_flagged(self):
        summary = build_expense_summary(
            [_expense("e1", "10", "USD")], display_currency=NOK, converter=StaticConverter(stale=True)
        )
        assert summary.pending.total == Decimal("105.00")
        assert summary.notices[0].kind is StalenessKind.STALE


class TestSummaryProperties:

    @given(expenses=st.lists(expense_strategy, max_size=12))
    @settings(max_examples=100)
    def test_grand_total_is_approved_plus_pending(self, expenses):
        summary = build_expense_summary(expenses, display_currency=NOK, converter=StaticConverter())
        assert summary.grand_total == summary.approved.total + summary.pending.total

    @given(expenses=st.lists(expense_strategy, min_size=1, max_size=12), data=st.data())
    @settings(max_examples=100)
    def test_order_independent(self, expenses, data):
        shuffled = data.draw(st.permutations(expenses))
        a = build_expense_summary(expenses, display_currency=NOK, converter=StaticConverter())
        b = build_expense_summary(shuffled, display_currency=NOK, converter=StaticConverter())
        assert (a.approved, a.pending, a.rejected, a.grand_total) == (
            b.approved, b.pending, b.rejected, b.grand_total
        )
        assert a.by_currency == b.by_currency

    def test_usd_pair_converted_once_equals_converted_separately(self):
        nok = _expense("e1", "100", "NOK")
        usd_a = _expense("e2", "12.40", "USD")
        usd_b = _expense("e3", "7.60", "USD")
        summary = build_expense_summary([nok, usd_a, usd_b], display_currency=NOK, converter=StaticConverter())
        combined = Decimal("100") + (Decimal("12.40") + Decimal("7.60")) * Decimal("10.5")
        assert summary.pending.total == combined.quantize(Decimal("0.01"))
        assert summary.grand_total == Decimal("310.00")
