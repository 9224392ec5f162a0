"""
travel_engines.summary -- Expense roll-up for display.

Responsibility:
    Given expenses and a display currency, compute per-status counts and
    totals, the grand total, breakdowns by original currency and by
    category, the receipt count, and every caveat that applies.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Conversion goes through
    an injected ``Converter``.

Invariants enforced:
    - ``grand_total == approved.total + pending.total``; rejected is never
      part of the grand total.
    - Order independence: the same expenses in any order give the same
      summary (totals are summed unrounded, rounded once at the end, and
      breakdowns are sorted).
    - Never raises on conversion problems.  Non-convertible amounts are
      left out of display totals and listed in ``by_currency``; every
      caveat appears in ``notices`` and clears ``is_exact``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from travel_engines.conversion import Converter, counts_in_target
from travel_engines.tracer import traced_engine
from travel_kernel.domain.currency import CurrencyRegistry, SupportedCurrency
from travel_kernel.domain.models import ExpenseCategory, ExpenseStatus, TravelExpense
from travel_kernel.domain.rates import StalenessWarning

_ZERO = Decimal("0")


@dataclass(frozen=True)
class StatusTotals:
    count: int = 0
    total: Decimal = _ZERO


@dataclass(frozen=True)
class CurrencyBreakdown:
    """Unconverted amounts for one original currency code."""

    currency: str
    approved: Decimal = _ZERO
    pending: Decimal = _ZERO
    rejected: Decimal = _ZERO
    count: int = 0

    @property
    def total(self) -> Decimal:
        return self.approved + self.pending


@dataclass(frozen=True)
class CategoryBreakdown:
    category: ExpenseCategory
    count: int
    total: Decimal


@dataclass(frozen=True)
class ExpenseSummary:
    display_currency: SupportedCurrency
    expense_count: int
    approved: StatusTotals
    pending: StatusTotals
    rejected: StatusTotals
    grand_total: Decimal
    by_currency: tuple[CurrencyBreakdown, ...]
    by_category: tuple[CategoryBreakdown, ...]
    receipt_count: int
    currencies_used: tuple[str, ...]
    notices: tuple[StalenessWarning, ...] = ()

    @property
    def is_exact(self) -> bool:
        return not self.notices


def _round(amount: Decimal, currency: SupportedCurrency) -> Decimal:
    return amount.quantize(
        CurrencyRegistry.quantize_exponent(currency.value), rounding=ROUND_HALF_UP
    )


@traced_engine("summary", "1.0", fingerprint_fields=("display_currency",))
def build_expense_summary(
    expenses: Iterable[TravelExpense],
    *,
    display_currency: SupportedCurrency,
    converter: Converter,
) -> ExpenseSummary:
    """Roll up ``expenses`` into ``display_currency``."""
    expenses = list(expenses)

    counts: dict[ExpenseStatus, int] = defaultdict(int)
    totals: dict[ExpenseStatus, Decimal] = defaultdict(lambda: _ZERO)
    per_currency: dict[str, dict[ExpenseStatus, Decimal]] = defaultdict(
        lambda: defaultdict(lambda: _ZERO)
    )
    per_currency_count: dict[str, int] = defaultdict(int)
    category_count: dict[ExpenseCategory, int] = defaultdict(int)
    category_total: dict[ExpenseCategory, Decimal] = defaultdict(lambda: _ZERO)
    notices: dict[tuple[str, str, str], StalenessWarning] = {}
    receipt_count = 0

    for expense in expenses:
        code = expense.currency_code
        counts[expense.status] += 1
        per_currency[code][expense.status] += expense.amount
        per_currency_count[code] += 1
        category_count[expense.category] += 1
        receipt_count += len(expense.receipts)

        result = converter.convert_with_details(
            expense.amount,
            expense.currency,
            display_currency,
            custom_currency=expense.custom_currency,
        )
        if result.notice is not None:
            key = (result.notice.kind.value, result.notice.from_currency, result.notice.to_currency)
            notices.setdefault(key, result.notice)
        if counts_in_target(result):
            totals[expense.status] += result.amount
            category_total[expense.category] += result.amount

    def status_totals(status: ExpenseStatus) -> StatusTotals:
        return StatusTotals(counts[status], _round(totals[status], display_currency))

    approved = status_totals(ExpenseStatus.APPROVED)
    pending = status_totals(ExpenseStatus.PENDING)
    rejected = status_totals(ExpenseStatus.REJECTED)

    by_currency = tuple(
        CurrencyBreakdown(
            currency=code,
            approved=amounts[ExpenseStatus.APPROVED],
            pending=amounts[ExpenseStatus.PENDING],
            rejected=amounts[ExpenseStatus.REJECTED],
            count=per_currency_count[code],
        )
        for code, amounts in sorted(per_currency.items())
    )
    by_category = tuple(
        CategoryBreakdown(
            category=category,
            count=category_count[category],
            total=_round(category_total[category], display_currency),
        )
        for category in ExpenseCategory
        if category_count[category]
    )

    return ExpenseSummary(
        display_currency=display_currency,
        expense_count=len(expenses),
        approved=approved,
        pending=pending,
        rejected=rejected,
        grand_total=approved.total + pending.total,
        by_currency=by_currency,
        by_category=by_category,
        receipt_count=receipt_count,
        currencies_used=tuple(sorted(per_currency)),
        notices=tuple(notices[k] for k in sorted(notices)),
    )
