"""Travel Support Workflows.

State machine for a travel support request, declared once as data and
executed by ``apply_transition``.

    draft --submit--> submitted --approve--> approved --mark_paid--> paid
                          |
                          +------reject----> rejected

``rejected`` and ``paid`` are terminal; there is no way back to draft.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from travel_engines.expense_validation import validate_expense
from travel_engines.review import check_reviewer
from travel_kernel.domain.models import Actor, RequestStatus, TravelSupportRequest
from travel_kernel.domain.values import Money
from travel_kernel.domain.workflow import Guard, Transition, Workflow
from travel_kernel.exceptions import (
    InvalidTransitionError,
    NotRequestOwnerError,
    SubmissionNotAllowedError,
    ValidationError,
)
from travel_kernel.logging_config import get_logger

logger = get_logger("modules.travel_support.workflows")

SUBMISSION_BASELINE_MESSAGE = "Cannot submit: add banking details and at least one expense"


class RequestAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    MARK_PAID = "mark_paid"


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

SUBMISSION_COMPLETE = Guard(
    name="submission_complete",
    description=(
        "Actor owns the request, banking details are present, and at least "
        "one expense exists with every expense valid including receipts"
    ),
)

REVIEWER_AUTHORIZED = Guard(
    name="reviewer_authorized",
    description="Actor holds a reviewer role and is not the request's speaker",
)


# -----------------------------------------------------------------------------
# Travel Support Request Workflow
# -----------------------------------------------------------------------------

TRAVEL_SUPPORT_WORKFLOW = Workflow(
    name="travel_support_request",
    description="Travel support reimbursement request lifecycle",
    initial_state=RequestStatus.DRAFT.value,
    states=tuple(s.value for s in RequestStatus),
    transitions=(
        Transition("draft", "submitted", action="submit", guard=SUBMISSION_COMPLETE),
        Transition("submitted", "approved", action="approve", guard=REVIEWER_AUTHORIZED),
        Transition("submitted", "rejected", action="reject", guard=REVIEWER_AUTHORIZED),
        Transition("approved", "paid", action="mark_paid", guard=REVIEWER_AUTHORIZED),
    ),
    terminal_states=("rejected", "paid"),
)

logger.debug(
    "travel_support_workflow_registered",
    extra={
        "workflow_name": TRAVEL_SUPPORT_WORKFLOW.name,
        "state_count": len(TRAVEL_SUPPORT_WORKFLOW.states),
        "transition_count": len(TRAVEL_SUPPORT_WORKFLOW.transitions),
    },
)


@dataclass(frozen=True)
class TransitionContext:
    """Who is acting, when, and the optional payload of a review decision."""

    actor: Actor
    at: datetime
    notes: str | None = None
    approved_amount: Money | None = None
    expected_payment_date: date | None = None


# -----------------------------------------------------------------------------
# Guard evaluation
# -----------------------------------------------------------------------------


def check_submission(request: TravelSupportRequest, context: TransitionContext) -> None:
    """Raise unless ``request`` may move from draft to submitted."""
    if context.actor.actor_id != request.speaker_id:
        raise NotRequestOwnerError(context.actor.actor_id, request.id)

    field_errors: dict[str, str] = {}
    if not request.banking_details.is_present:
        field_errors["banking_details"] = "Banking details are required before submission"
    if not request.expenses:
        field_errors["expenses"] = "At least one expense is required"
    if field_errors:
        raise SubmissionNotAllowedError(SUBMISSION_BASELINE_MESSAGE, field_errors)

    expense_errors = {
        expense.id: errors
        for expense in request.expenses
        if (errors := validate_expense(expense, require_receipts=True))
    }
    if expense_errors:
        raise SubmissionNotAllowedError(
            f"Cannot submit: {len(expense_errors)} expense(s) need attention",
            expense_errors=expense_errors,
        )


def _check_reviewer(request: TravelSupportRequest, context: TransitionContext) -> None:
    check_reviewer(request, context.actor)


_GUARD_CHECKS: dict[str, Callable[[TravelSupportRequest, TransitionContext], None]] = {
    SUBMISSION_COMPLETE.name: check_submission,
    REVIEWER_AUTHORIZED.name: _check_reviewer,
}


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------


def _clean_notes(notes: str | None) -> str | None:
    return (notes or "").strip() or None


def _submit(request: TravelSupportRequest, context: TransitionContext) -> TravelSupportRequest:
    return replace(request, status=RequestStatus.SUBMITTED, submitted_at=context.at)


def _approve(request: TravelSupportRequest, context: TransitionContext) -> TravelSupportRequest:
    override = context.approved_amount
    if override is not None and override.amount < 0:
        raise ValidationError(
            "Approved amount cannot be negative",
            {"approved_amount": "Approved amount cannot be negative"},
        )
    return replace(
        request,
        status=RequestStatus.APPROVED,
        approved_amount=override,
        expected_payment_date=context.expected_payment_date,
        review_notes=_clean_notes(context.notes),
        reviewed_at=context.at,
        reviewed_by=context.actor.actor_id,
    )


def _reject(request: TravelSupportRequest, context: TransitionContext) -> TravelSupportRequest:
    notes = _clean_notes(context.notes)
    if notes is None:
        logger.warning(
            "request_rejected_without_notes",
            extra={"request_id": request.id, "actor_id": context.actor.actor_id},
        )
    return replace(
        request,
        status=RequestStatus.REJECTED,
        review_notes=notes,
        reviewed_at=context.at,
        reviewed_by=context.actor.actor_id,
    )


def _mark_paid(request: TravelSupportRequest, context: TransitionContext) -> TravelSupportRequest:
    return replace(request, status=RequestStatus.PAID, paid_at=context.at)


_EFFECTS: dict[RequestAction, Callable[[TravelSupportRequest, TransitionContext], TravelSupportRequest]] = {
    RequestAction.SUBMIT: _submit,
    RequestAction.APPROVE: _approve,
    RequestAction.REJECT: _reject,
    RequestAction.MARK_PAID: _mark_paid,
}


def apply_transition(
    request: TravelSupportRequest,
    action: RequestAction | str,
    context: TransitionContext,
) -> TravelSupportRequest:
    """
    Fire ``action`` on ``request`` and return the new snapshot.

    The guard runs first; the input snapshot is never modified, so a
    failure leaves the caller with the unchanged request.

    Raises:
        InvalidTransitionError: no such edge from the current status.
        SubmissionNotAllowedError, NotRequestOwnerError, SelfApprovalError,
        AuthorizationError, ValidationError: guard or payload failures.
    """
    action = RequestAction(action)
    transition = TRAVEL_SUPPORT_WORKFLOW.find_transition(request.status.value, action.value)
    if transition is None:
        raise InvalidTransitionError(request.id, request.status.value, action.value)

    if transition.guard is not None:
        _GUARD_CHECKS[transition.guard.name](request, context)

    updated = _EFFECTS[action](request, context)
    if updated.status.value != transition.to_state:
        raise InvalidTransitionError(request.id, request.status.value, action.value)
    return updated
