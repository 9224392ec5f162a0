"""
travel_engines.expense_validation -- Pure expense, banking and receipt checks.

Responsibility:
    Field-level validation of a candidate expense, completeness of banking
    details, screening of receipt files at attachment time, and the
    non-blocking business warnings shown next to an expense.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  No clock access: callers
    pass ``today`` explicitly.

Invariants enforced:
    - Validation never raises for bad input; it returns ``{field: reason}``
      and an empty dict means valid.
    - The receipt rule applies only when ``require_receipts`` is set, so a
      draft may be saved with an incomplete expense while submission
      re-validates everything.
    - Receipt screening is per file: rejected files are listed with a
      reason and accepted files are kept (partial acceptance).
    - Warnings never block a save or a submission.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from travel_kernel.domain.currency import SupportedCurrency, is_valid_custom_code
from travel_kernel.domain.models import BankingDetails, ExpenseCategory

ALLOWED_RECEIPT_CONTENT_TYPES: frozenset[str] = frozenset({
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
})
MAX_RECEIPT_BYTES = 10 * 1024 * 1024

DEFAULT_CATEGORY_LIMITS: Mapping[ExpenseCategory, Decimal] = MappingProxyType({
    ExpenseCategory.ACCOMMODATION: Decimal("5000"),
    ExpenseCategory.TRANSPORTATION: Decimal("10000"),
    ExpenseCategory.MEALS: Decimal("1000"),
    ExpenseCategory.VISA: Decimal("2000"),
    ExpenseCategory.OTHER: Decimal("3000"),
})

REASON_INVALID_FILE_TYPE = "invalid file type"
REASON_FILE_TOO_LARGE = "file too large"


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptRules:
    """Attachment-time file rules."""

    allowed_content_types: frozenset[str] = ALLOWED_RECEIPT_CONTENT_TYPES
    max_bytes: int = MAX_RECEIPT_BYTES

    def __post_init__(self) -> None:
        if self.max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        object.__setattr__(
            self,
            "allowed_content_types",
            frozenset(t.lower() for t in self.allowed_content_types),
        )


@dataclass(frozen=True)
class ExpenseAdvisoryLimits:
    """Thresholds for the non-blocking expense warnings."""

    category_limits: Mapping[ExpenseCategory, Decimal] = field(
        default_factory=lambda: DEFAULT_CATEGORY_LIMITS
    )
    max_age_years: int = 2
    older_expense_days: int = 30
    round_amount_threshold: Decimal = Decimal("100")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptFile:
    """An incoming file, before it is stored."""

    filename: str
    content_type: str
    content: bytes = b""

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class RejectedFile:
    filename: str
    reason: str
    retriable: bool = False
    code: str = "VALIDATION_FAILED"

    def __str__(self) -> str:
        return f"{self.filename} ({self.reason})"


@dataclass(frozen=True)
class ScreeningResult:
    accepted: tuple[ReceiptFile, ...] = ()
    rejected: tuple[RejectedFile, ...] = ()


@dataclass(frozen=True)
class ExpenseWarning:
    code: str
    message: str


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_expense(
    candidate: Any,
    *,
    require_receipts: bool = False,
    pending_receipts: int = 0,
) -> dict[str, str]:
    """
    Validate one expense (an ``ExpenseInput`` or a ``TravelExpense``).

    Args:
        require_receipts: Enforce the at-least-one-receipt rule.
        pending_receipts: Receipts attached in the same operation that are
            not yet on the candidate.

    Returns:
        Mapping of field name to reason; empty when valid.
    """
    errors: dict[str, str] = {}

    if not (candidate.description or "").strip():
        errors["description"] = "Description is required"

    amount = candidate.amount
    if amount is None or not amount.is_finite() or amount <= 0:
        errors["amount"] = "Amount must be greater than 0"

    if candidate.expense_date is None:
        errors["expense_date"] = "Expense date is required"

    if candidate.currency is SupportedCurrency.OTHER:
        custom = candidate.custom_currency
        if not custom:
            errors["custom_currency"] = "Currency code is required when currency is OTHER"
        elif not is_valid_custom_code(custom):
            errors["custom_currency"] = "Currency code must be three letters, e.g. CAD"

    if require_receipts:
        existing = len(getattr(candidate, "receipts", ()))
        if existing + pending_receipts == 0:
            errors["receipts"] = "At least one receipt is required"

    return errors


def validate_banking_details(details: BankingDetails) -> dict[str, str]:
    """Completeness of the payout account. Empty dict means complete."""
    errors: dict[str, str] = {}
    required = {
        "beneficiary_name": "Beneficiary name is required",
        "bank_name": "Bank name is required",
        "swift_code": "SWIFT/BIC code is required",
        "country": "Country is required",
    }
    for name, reason in required.items():
        if not (getattr(details, name) or "").strip():
            errors[name] = reason
    if not details.has_account_identifier:
        errors["account_number"] = "Either IBAN or account number is required"
    if not details.preferred_currency.is_convertible:
        errors["preferred_currency"] = "Preferred currency must be one of the supported currencies"
    return errors


def screen_receipt_files(
    files: Iterable[ReceiptFile],
    rules: ReceiptRules | None = None,
) -> ScreeningResult:
    """Split files into accepted and rejected, keeping input order."""
    rules = rules or ReceiptRules()
    accepted: list[ReceiptFile] = []
    rejected: list[RejectedFile] = []
    for f in files:
        if (f.content_type or "").lower() not in rules.allowed_content_types:
            rejected.append(RejectedFile(f.filename, REASON_INVALID_FILE_TYPE))
        elif f.size > rules.max_bytes:
            rejected.append(RejectedFile(f.filename, REASON_FILE_TOO_LARGE))
        else:
            accepted.append(f)
    return ScreeningResult(accepted=tuple(accepted), rejected=tuple(rejected))


# ---------------------------------------------------------------------------
# Advisory warnings
# ---------------------------------------------------------------------------


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def expense_warnings(
    expense: Any,
    *,
    today: date,
    limits: ExpenseAdvisoryLimits | None = None,
) -> tuple[ExpenseWarning, ...]:
    """Non-blocking warnings for an expense, in a stable order."""
    limits = limits or ExpenseAdvisoryLimits()
    warnings: list[ExpenseWarning] = []

    expense_date = expense.expense_date
    if expense_date is not None:
        if expense_date > today:
            warnings.append(ExpenseWarning("future_date", "Expense date is in the future"))
        elif expense_date < _years_before(today, limits.max_age_years):
            warnings.append(ExpenseWarning(
                "too_old",
                f"Expense date is more than {limits.max_age_years} years old",
            ))

    amount = expense.amount
    if amount is not None and amount.is_finite():
        limit = limits.category_limits.get(expense.category)
        if limit is not None and amount > limit:
            warnings.append(ExpenseWarning(
                "above_category_limit",
                f"Amount {amount} seems high for {expense.category.value} (limit: {limit})",
            ))
        if amount > limits.round_amount_threshold and amount == amount.to_integral_value():
            warnings.append(ExpenseWarning(
                "round_amount",
                "Round amounts might need additional documentation",
            ))

    if expense_date is not None and expense_date < today - timedelta(days=limits.older_expense_days):
        warnings.append(ExpenseWarning(
            "older_expense",
            "This is an older expense - ensure receipt is clear",
        ))

    return tuple(warnings)
