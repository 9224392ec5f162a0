"""
Travel Support Domain Models.

Responsibility:
    The nouns of travel-support reimbursement: the request aggregate, its
    expenses, receipts, banking details, and the acting user.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.  Every mutation returns
    a new frozen snapshot via ``dataclasses.replace``; persistence adapters
    store snapshots, engines read them.

Invariants enforced:
    - A request is editable iff its status is draft.  Banking-detail and
      expense mutations raise ``RequestNotEditableError`` otherwise.
    - Expense fields and receipts change only while the expense is pending
      (``ExpenseAlreadyReviewedError``).
    - Monetary amounts are ``Decimal``; a ``float`` is refused at construction.
    - An expense belongs to exactly one request (``request_id``).

Failure modes:
    - ``ExpenseNotFoundError`` / ``ReceiptNotFoundError`` for unknown ids or
      out-of-range receipt indexes.
    - ``UnsupportedCurrencyError`` for currencies outside the supported set.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from travel_kernel.domain.currency import (
    SupportedCurrency,
    currency_label,
    normalize_custom_code,
)
from travel_kernel.domain.values import Money
from travel_kernel.exceptions import (
    ExpenseAlreadyReviewedError,
    ExpenseNotFoundError,
    ReceiptNotFoundError,
    RequestNotEditableError,
)


class ExpenseCategory(str, Enum):
    ACCOMMODATION = "accommodation"
    TRANSPORTATION = "transportation"
    MEALS = "meals"
    VISA = "visa"
    OTHER = "other"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestStatus(str, Enum):
    """Travel support request lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class Role(str, Enum):
    SPEAKER = "speaker"
    ORGANIZER = "organizer"
    ADMIN = "admin"


REVIEWER_ROLES: frozenset[Role] = frozenset({Role.ORGANIZER, Role.ADMIN})


def _coerce_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValueError(f"Amount must be Decimal, not float: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""

    actor_id: str
    roles: frozenset[Role] = frozenset({Role.SPEAKER})

    def __post_init__(self) -> None:
        object.__setattr__(self, "roles", frozenset(Role(r) for r in self.roles))

    @property
    def is_reviewer(self) -> bool:
        return bool(self.roles & REVIEWER_ROLES)

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @classmethod
    def speaker(cls, actor_id: str) -> Actor:
        return cls(actor_id, frozenset({Role.SPEAKER}))

    @classmethod
    def organizer(cls, actor_id: str) -> Actor:
        return cls(actor_id, frozenset({Role.SPEAKER, Role.ORGANIZER}))


@dataclass(frozen=True)
class Receipt:
    """A stored receipt file attached to an expense."""

    file_reference: str
    filename: str
    uploaded_at: datetime
    url: str | None = None
    content_type: str | None = None
    size: int | None = None


@dataclass(frozen=True)
class BankingDetails:
    """Where the reimbursement is paid. IBAN or account number identifies the account."""

    beneficiary_name: str = ""
    bank_name: str = ""
    iban: str | None = None
    account_number: str | None = None
    swift_code: str = ""
    country: str = ""
    preferred_currency: SupportedCurrency = SupportedCurrency.NOK

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "preferred_currency", SupportedCurrency.parse(self.preferred_currency)
        )

    @property
    def has_account_identifier(self) -> bool:
        return bool((self.iban or "").strip() or (self.account_number or "").strip())

    @property
    def is_present(self) -> bool:
        return bool(self.beneficiary_name.strip())


@dataclass(frozen=True)
class ExpenseInput:
    """
    Caller-supplied expense fields, before validation.

    Deliberately permissive: the validator reports problems field by field
    instead of the constructor raising on the first one.
    """

    category: ExpenseCategory
    description: str
    amount: Decimal | None
    currency: SupportedCurrency
    expense_date: date | None
    custom_currency: str | None = None
    location: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", ExpenseCategory(self.category))
        object.__setattr__(self, "currency", SupportedCurrency.parse(self.currency))
        object.__setattr__(self, "amount", _coerce_amount(self.amount))
        object.__setattr__(
            self, "custom_currency", normalize_custom_code(self.custom_currency)
        )

    def as_changes(self) -> dict[str, Any]:
        custom = self.custom_currency if self.currency is SupportedCurrency.OTHER else None
        return {
            "category": self.category,
            "description": (self.description or "").strip(),
            "amount": self.amount,
            "currency": self.currency,
            "custom_currency": custom,
            "expense_date": self.expense_date,
            "location": (self.location or "").strip() or None,
        }


@dataclass(frozen=True)
class TravelExpense:
    """A single expense line on a travel support request."""

    id: str
    request_id: str
    category: ExpenseCategory
    description: str
    amount: Decimal
    currency: SupportedCurrency
    expense_date: date | None
    custom_currency: str | None = None
    location: str | None = None
    receipts: tuple[Receipt, ...] = ()
    status: ExpenseStatus = ExpenseStatus.PENDING
    review_notes: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", ExpenseCategory(self.category))
        object.__setattr__(self, "currency", SupportedCurrency.parse(self.currency))
        object.__setattr__(self, "status", ExpenseStatus(self.status))
        object.__setattr__(self, "amount", _coerce_amount(self.amount))
        object.__setattr__(
            self, "custom_currency", normalize_custom_code(self.custom_currency)
        )
        object.__setattr__(self, "receipts", tuple(self.receipts))

    @classmethod
    def from_input(
        cls,
        expense_id: str,
        request_id: str,
        data: ExpenseInput,
        created_at: datetime | None = None,
    ) -> TravelExpense:
        return cls(id=expense_id, request_id=request_id, created_at=created_at, **data.as_changes())

    @property
    def currency_code(self) -> str:
        """Code shown to users; the custom code when currency is OTHER."""
        return currency_label(self.currency, self.custom_currency)

    @property
    def is_pending(self) -> bool:
        return self.status is ExpenseStatus.PENDING

    def require_pending(self) -> None:
        if not self.is_pending:
            raise ExpenseAlreadyReviewedError(self.id, self.status.value)

    def with_input(self, data: ExpenseInput) -> TravelExpense:
        self.require_pending()
        return replace(self, **data.as_changes())

    def with_receipts_added(self, receipts: tuple[Receipt, ...]) -> TravelExpense:
        self.require_pending()
        return replace(self, receipts=self.receipts + tuple(receipts))

    def without_receipt(self, index: int) -> TravelExpense:
        self.require_pending()
        if index < 0 or index >= len(self.receipts):
            raise ReceiptNotFoundError(self.id, index)
        return replace(self, receipts=self.receipts[:index] + self.receipts[index + 1:])

    def with_decision(
        self,
        status: ExpenseStatus,
        notes: str | None,
        reviewer_id: str,
        reviewed_at: datetime,
    ) -> TravelExpense:
        """Record a review decision. Authorization is the review engine's job."""
        if status is ExpenseStatus.PENDING:
            raise ValueError("A review decision must approve or reject")
        return replace(
            self,
            status=status,
            review_notes=notes,
            reviewed_by=reviewer_id,
            reviewed_at=reviewed_at,
        )


@dataclass(frozen=True)
class TravelSupportRequest:
    """
    Aggregate root: one speaker's reimbursement request for one conference.

    ``approved_amount`` is only set when a reviewer overrides the computed
    sum of approved expenses; it is expressed in the organisation's base
    currency.
    """

    id: str
    speaker_id: str
    conference_id: str
    banking_details: BankingDetails = field(default_factory=BankingDetails)
    expenses: tuple[TravelExpense, ...] = ()
    status: RequestStatus = RequestStatus.DRAFT
    approved_amount: Money | None = None
    expected_payment_date: date | None = None
    paid_at: datetime | None = None
    review_notes: str | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", RequestStatus(self.status))
        object.__setattr__(self, "expenses", tuple(self.expenses))

    @property
    def is_editable(self) -> bool:
        return self.status is RequestStatus.DRAFT

    def require_editable(self) -> None:
        if not self.is_editable:
            raise RequestNotEditableError(self.id, self.status.value)

    def find_expense(self, expense_id: str) -> TravelExpense:
        for expense in self.expenses:
            if expense.id == expense_id:
                return expense
        raise ExpenseNotFoundError(expense_id)

    def _replace_expense(self, updated: TravelExpense) -> TravelSupportRequest:
        self.find_expense(updated.id)
        return replace(
            self,
            expenses=tuple(updated if e.id == updated.id else e for e in self.expenses),
        )

    def with_banking_details(self, details: BankingDetails) -> TravelSupportRequest:
        self.require_editable()
        return replace(self, banking_details=details)

    def with_expense_added(self, expense: TravelExpense) -> TravelSupportRequest:
        self.require_editable()
        if expense.request_id != self.id:
            raise ValueError(
                f"Expense {expense.id} belongs to request {expense.request_id}, not {self.id}"
            )
        return replace(self, expenses=self.expenses + (expense,))

    def with_expense_updated(self, expense_id: str, data: ExpenseInput) -> TravelSupportRequest:
        self.require_editable()
        return self._replace_expense(self.find_expense(expense_id).with_input(data))

    def with_expense_removed(self, expense_id: str) -> TravelSupportRequest:
        self.require_editable()
        self.find_expense(expense_id)
        return replace(self, expenses=tuple(e for e in self.expenses if e.id != expense_id))

    def with_receipts_attached(
        self, expense_id: str, receipts: tuple[Receipt, ...]
    ) -> TravelSupportRequest:
        self.require_editable()
        return self._replace_expense(self.find_expense(expense_id).with_receipts_added(receipts))

    def with_receipt_removed(self, expense_id: str, index: int) -> TravelSupportRequest:
        self.require_editable()
        return self._replace_expense(self.find_expense(expense_id).without_receipt(index))

    def with_reviewed_expense(self, expense: TravelExpense) -> TravelSupportRequest:
        """Swap in a reviewed expense; editability does not apply to reviews."""
        return self._replace_expense(expense)

    def with_state_of(self, other: TravelSupportRequest) -> TravelSupportRequest:
        """Take status and request-level review fields from ``other``; keep everything else."""
        return replace(
            self,
            status=other.status,
            approved_amount=other.approved_amount,
            expected_payment_date=other.expected_payment_date,
            paid_at=other.paid_at,
            review_notes=other.review_notes,
            submitted_at=other.submitted_at,
            reviewed_at=other.reviewed_at,
            reviewed_by=other.reviewed_by,
        )

    def expenses_with_status(self, *statuses: ExpenseStatus) -> tuple[TravelExpense, ...]:
        return tuple(e for e in self.expenses if e.status in statuses)
