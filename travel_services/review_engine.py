"""
travel_services.review_engine -- Per-expense review decisions with persistence.

Responsibility:
    Load the request that owns an expense, apply a reviewer's decision via
    the pure ``travel_engines.review`` engine, and write back only that
    expense.

Architecture position:
    Services -- stateful orchestration over the review engine, a store and
    the clock.

Invariants enforced:
    - Authorization is checked before anything is written (fail closed).
    - Decisions are written per expense, last write wins; the request
      row and sibling expenses are never rewritten by a decision.
    - Re-deciding while the request is submitted is an overwrite.
    - The store re-checks that the request is still submitted inside the
      write, so a decision racing a request-level approve or reject is
      refused rather than applied to a frozen request.

Failure modes:
    - SelfApprovalError, AuthorizationError, ReviewFrozenError and
      ExpenseNotFoundError propagate to the caller after logging.
"""

from __future__ import annotations

from typing import Protocol

from travel_engines.review import decide_expense
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.models import (
    Actor,
    ExpenseStatus,
    TravelExpense,
    TravelSupportRequest,
)
from travel_kernel.exceptions import (
    AuthorizationError,
    ExpenseNotFoundError,
    ReviewFrozenError,
    SelfApprovalError,
)
from travel_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.review_engine")


class ExpenseReviewStore(Protocol):
    """The slice of the repository the review engine needs."""

    def find_request_id_for_expense(self, expense_id: str) -> str | None: ...

    def get_request(self, request_id: str) -> TravelSupportRequest: ...

    def save_expense(self, expense: TravelExpense, actor_id: str | None = None) -> None: ...


class ReviewEngine:
    def __init__(self, store: ExpenseReviewStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def decide(
        self,
        expense_id: str,
        decision: ExpenseStatus,
        notes: str | None,
        reviewer: Actor,
    ) -> TravelSupportRequest:
        """
        Approve or reject one expense.

        Returns:
            The request snapshot with the decided expense swapped in.
        """
        decision = ExpenseStatus(decision)
        if decision is ExpenseStatus.PENDING:
            raise ValueError("decision must be approved or rejected")

        request_id = self._store.find_request_id_for_expense(expense_id)
        if request_id is None:
            raise ExpenseNotFoundError(expense_id)
        request = self._store.get_request(request_id)

        with LogContext.bind(
            actor_id=reviewer.actor_id, request_id=request.id, expense_id=expense_id
        ):
            try:
                updated = decide_expense(
                    request,
                    expense_id,
                    decision,
                    reviewer=reviewer,
                    notes=notes,
                    decided_at=self._clock.now_utc(),
                )
            except SelfApprovalError:
                logger.warning("self_approval_blocked", extra={"action": f"expense_{decision.value}"})
                raise
            except AuthorizationError as exc:
                logger.warning(
                    "expense_review_refused",
                    extra={"error_code": exc.code, "decision": decision.value},
                )
                raise

            previous = request.find_expense(expense_id).status
            try:
                self._store.save_expense(updated, actor_id=reviewer.actor_id)
            except ReviewFrozenError as exc:
                # The request left submitted between the read and this write.
                logger.warning(
                    "expense_review_refused",
                    extra={"error_code": exc.code, "decision": decision.value},
                )
                raise
            logger.info(
                "expense_reviewed",
                extra={
                    "decision": decision.value,
                    "previous_status": previous.value,
                    "overwrite": previous is not ExpenseStatus.PENDING,
                },
            )
        return request.with_reviewed_expense(updated)
