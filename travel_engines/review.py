"""
travel_engines.review -- Pure review authorization and reimbursable totals.

Responsibility:
    Decide whether an actor may review a request, apply a per-expense
    decision to a snapshot, and compute the reimbursable and approved
    totals in a target currency.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Conversion is delegated
    to an injected ``Converter``; persistence and logging of decisions
    belong to ``travel_services.review_engine``.

Invariants enforced:
    - Self-approval block: a reviewer whose id equals the request's
      speaker id is refused regardless of roles, checked first.
    - Reviewer role required for every review action.
    - Expense decisions only while the parent request is submitted;
      re-deciding overwrites, and nothing else on the request changes.
    - Totals never raise on conversion problems; notices explain them.

Failure modes:
    - SelfApprovalError / AuthorizationError / ReviewFrozenError, all
      raised before any state is produced.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from travel_engines.conversion import Converter, counts_in_target
from travel_engines.tracer import traced_engine
from travel_kernel.domain.currency import SupportedCurrency
from travel_kernel.domain.models import (
    Actor,
    ExpenseStatus,
    RequestStatus,
    TravelExpense,
    TravelSupportRequest,
)
from travel_kernel.domain.rates import StalenessWarning
from travel_kernel.domain.values import Money
from travel_kernel.exceptions import (
    AuthorizationError,
    ReviewFrozenError,
    SelfApprovalError,
)

REIMBURSABLE_STATUSES: tuple[ExpenseStatus, ...] = (
    ExpenseStatus.APPROVED,
    ExpenseStatus.PENDING,
)


@dataclass(frozen=True)
class AmountTotal:
    """A converted total with the caveats that apply to it."""

    total: Money
    notices: tuple[StalenessWarning, ...] = ()
    is_override: bool = False

    @property
    def is_exact(self) -> bool:
        return not self.notices


def check_reviewer(request: TravelSupportRequest, reviewer: Actor) -> None:
    """Raise unless ``reviewer`` may take review actions on ``request``."""
    if reviewer.actor_id == request.speaker_id:
        raise SelfApprovalError(reviewer.actor_id, request.id)
    if not reviewer.is_reviewer:
        raise AuthorizationError(
            f"Actor {reviewer.actor_id} is not authorized to review travel support requests",
            actor_id=reviewer.actor_id,
        )


def decide_expense(
    request: TravelSupportRequest,
    expense_id: str,
    decision: ExpenseStatus,
    *,
    reviewer: Actor,
    notes: str | None,
    decided_at: datetime,
) -> TravelExpense:
    """
    Apply one review decision and return the updated expense.

    Preconditions:
        ``decision`` is APPROVED or REJECTED.
    Raises:
        SelfApprovalError, AuthorizationError, ReviewFrozenError,
        ExpenseNotFoundError.
    """
    check_reviewer(request, reviewer)
    expense = request.find_expense(expense_id)
    if request.status is not RequestStatus.SUBMITTED:
        raise ReviewFrozenError(expense_id, request.status.value)
    cleaned = (notes or "").strip() or None
    return expense.with_decision(decision, cleaned, reviewer.actor_id, decided_at)


def _sum_converted(
    expenses: Iterable[TravelExpense],
    target_currency: SupportedCurrency,
    converter: Converter,
) -> AmountTotal:
    total = Decimal("0")
    notices: list[StalenessWarning] = []
    for expense in expenses:
        result = converter.convert_with_details(
            expense.amount,
            expense.currency,
            target_currency,
            custom_currency=expense.custom_currency,
        )
        if result.notice is not None:
            notices.append(result.notice)
        if counts_in_target(result):
            total += result.amount
    return AmountTotal(Money(total, target_currency), tuple(notices))


@traced_engine("review_totals", "1.0", fingerprint_fields=("target_currency",))
def total_reimbursable(
    expenses: Iterable[TravelExpense],
    *,
    target_currency: SupportedCurrency,
    converter: Converter,
) -> AmountTotal:
    """Advisory sum of approved and pending expenses in ``target_currency``."""
    eligible = [e for e in expenses if e.status in REIMBURSABLE_STATUSES]
    return _sum_converted(eligible, target_currency, converter)


@traced_engine("review_totals", "1.0", fingerprint_fields=("target_currency",))
def approved_total(
    expenses: Iterable[TravelExpense],
    *,
    target_currency: SupportedCurrency,
    converter: Converter,
) -> AmountTotal:
    approved = [e for e in expenses if e.status is ExpenseStatus.APPROVED]
    return _sum_converted(approved, target_currency, converter)


def effective_approved_amount(
    request: TravelSupportRequest,
    *,
    target_currency: SupportedCurrency,
    converter: Converter,
) -> AmountTotal:
    """The reviewer override when set, else the converted approved sum."""
    if request.approved_amount is not None:
        return AmountTotal(request.approved_amount, is_override=True)
    return approved_total(
        request.expenses, target_currency=target_currency, converter=converter
    )
