"""
Module: travel_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for higher
    layers (travel_services, travel_modules).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import travel_kernel domain types and sibling engine modules.
    MUST NOT import travel_services or travel_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Callers pass dates and timestamps in explicitly.
    - Decimal-only arithmetic for every monetary amount.
    - Determinism: identical inputs always produce identical outputs.
"""

from travel_engines.conversion import (
    Converter,
    convert_amount,
    counts_in_target,
    cross_rate,
)
from travel_engines.expense_validation import (
    ExpenseAdvisoryLimits,
    ExpenseWarning,
    ReceiptFile,
    ReceiptRules,
    RejectedFile,
    ScreeningResult,
    expense_warnings,
    screen_receipt_files,
    validate_banking_details,
    validate_expense,
)
from travel_engines.review import (
    AmountTotal,
    approved_total,
    check_reviewer,
    decide_expense,
    effective_approved_amount,
    total_reimbursable,
)
from travel_engines.summary import (
    CategoryBreakdown,
    CurrencyBreakdown,
    ExpenseSummary,
    StatusTotals,
    build_expense_summary,
)

__all__ = [
    "AmountTotal",
    "CategoryBreakdown",
    "Converter",
    "CurrencyBreakdown",
    "ExpenseAdvisoryLimits",
    "ExpenseSummary",
    "ExpenseWarning",
    "ReceiptFile",
    "ReceiptRules",
    "RejectedFile",
    "ScreeningResult",
    "StatusTotals",
    "approved_total",
    "build_expense_summary",
    "check_reviewer",
    "convert_amount",
    "counts_in_target",
    "cross_rate",
    "decide_expense",
    "effective_approved_amount",
    "expense_warnings",
    "screen_receipt_files",
    "total_reimbursable",
    "validate_banking_details",
    "validate_expense",
]
