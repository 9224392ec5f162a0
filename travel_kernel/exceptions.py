"""
Typed Exception Hierarchy for the Travel Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the travel support core must react differently to different
failures: a validation failure is shown inline next to the offending field,
an authorization failure is a blocking message, and a network failure offers
"retry" rather than "fix your input". Parsing message strings for that is
fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (field errors, ids, statuses)

Example:
    try:
        service.submit(request_id, actor)
    except SubmissionNotAllowedError as e:
        render_inline(e.field_errors)
    except NetworkError as e:
        offer_retry(e.message)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from TravelKernelError:

    TravelKernelError (base)
    |
    +-- ValidationError
    |   +-- SubmissionNotAllowedError
    |
    +-- AuthorizationError
    |   +-- SelfApprovalError
    |   +-- NotRequestOwnerError
    |   +-- NotEligibleForTravelFundingError
    |   +-- StateError
    |       +-- InvalidTransitionError
    |       +-- ConcurrentStatusChangeError
    |       +-- RequestNotEditableError
    |       +-- ExpenseAlreadyReviewedError
    |       +-- ReviewFrozenError
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- ReceiptNotFoundError
    |   +-- DuplicateRequestError
    |
    +-- CurrencyError
    |   +-- UnsupportedCurrencyError
    |
    +-- NetworkError
        +-- ExchangeRateFetchError
        |   +-- RateLimitedError
        +-- ReceiptUploadError
            +-- UploadTimeoutError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Field-level rule violated
                | SUBMISSION_INCOMPLETE       | Request not eligible for submission
----------------|-----------------------------|-----------------------------------------
Authorization   | NOT_AUTHORIZED              | Actor lacks the reviewer role / wrong state
                | SELF_APPROVAL               | Reviewer is the request's own speaker
                | NOT_REQUEST_OWNER           | Speaker acting on someone else's request
                | NOT_ELIGIBLE_FOR_FUNDING    | Speaker has not asked for travel funding
----------------|-----------------------------|-----------------------------------------
State           | INVALID_TRANSITION          | No such edge in the request state machine
                | CONCURRENT_STATUS_CHANGE    | Request status moved since it was read
                | REQUEST_NOT_EDITABLE        | Mutation while request is not draft
                | EXPENSE_ALREADY_REVIEWED    | Editing an expense that is not pending
                | REVIEW_FROZEN               | Deciding an expense after the request left
                |                             | submitted
----------------|-----------------------------|-----------------------------------------
Not found       | REQUEST_NOT_FOUND           | Unknown request id
                | EXPENSE_NOT_FOUND           | Unknown expense id
                | RECEIPT_NOT_FOUND           | Receipt index out of range
                | REQUEST_ALREADY_EXISTS      | Second request for speaker + conference
----------------|-----------------------------|-----------------------------------------
Currency        | UNSUPPORTED_CURRENCY        | Code outside the supported set
----------------|-----------------------------|-----------------------------------------
Network         | EXCHANGE_RATE_FETCH_FAILED  | Rate provider unreachable / bad payload
                | EXCHANGE_RATE_RATE_LIMITED  | Provider answered HTTP 429
                | RECEIPT_UPLOAD_FAILED       | File storage rejected or failed upload
                | RECEIPT_UPLOAD_TIMEOUT      | Upload exceeded the configured timeout

===============================================================================
HANDLING PATTERNS
===============================================================================

1. NetworkError subclasses carry ``retriable = True``; everything else is
   ``retriable = False``. The service facade copies that flag onto its
   result objects.

2. Exchange-rate staleness is NOT an exception. It is reported through
   ``travel_kernel.domain.rates.StalenessWarning`` values attached to
   conversion results and summaries.
"""

from __future__ import annotations

from typing import Any


class TravelKernelError(Exception):
    """
    Base exception for all travel kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "TRAVEL_KERNEL_ERROR"
    retriable: bool = False

    def __init__(self, message: str = ""):
        self.message = message or self.code
        super().__init__(self.message)


# Validation


class ValidationError(TravelKernelError):
    """One or more fields failed validation. Recoverable; nothing was written."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        self.field_errors: dict[str, str] = dict(field_errors or {})
        super().__init__(message)


class SubmissionNotAllowedError(ValidationError):
    """Request is not eligible for the draft -> submitted transition."""

    code: str = "SUBMISSION_INCOMPLETE"

    def __init__(
        self,
        message: str,
        field_errors: dict[str, str] | None = None,
        expense_errors: dict[str, dict[str, str]] | None = None,
    ):
        self.expense_errors: dict[str, dict[str, str]] = dict(expense_errors or {})
        super().__init__(message, field_errors)


# Authorization


class AuthorizationError(TravelKernelError):
    """Actor may not perform this action. Checked before any write."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, message: str, actor_id: str | None = None):
        self.actor_id = actor_id
        super().__init__(message)


class SelfApprovalError(AuthorizationError):
    """Reviewer attempted to decide on their own request."""

    code: str = "SELF_APPROVAL"

    def __init__(self, actor_id: str, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Reviewer {actor_id} cannot review their own travel support "
            f"request {request_id}",
            actor_id=actor_id,
        )


class NotRequestOwnerError(AuthorizationError):
    """Speaker attempted to act on a request they do not own."""

    code: str = "NOT_REQUEST_OWNER"

    def __init__(self, actor_id: str, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Access denied to travel support request {request_id}",
            actor_id=actor_id,
        )


class NotEligibleForTravelFundingError(AuthorizationError):
    """Speaker is not flagged as requiring travel funding."""

    code: str = "NOT_ELIGIBLE_FOR_FUNDING"

    def __init__(self, speaker_id: str):
        self.speaker_id = speaker_id
        super().__init__(
            f"Speaker {speaker_id} is not eligible for travel funding",
            actor_id=speaker_id,
        )


# State


class StateError(AuthorizationError):
    """Action not permitted in the current lifecycle state.

    A wrong-status action is refused the same way a missing permission is:
    as a blocking message, before any write.
    """

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """Requested action has no edge from the current request status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, request_id: str, from_status: str, action: str):
        self.request_id = request_id
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot {action} travel support request {request_id} "
            f"when status is {from_status}"
        )


class ConcurrentStatusChangeError(StateError):
    """Another writer moved the request to a different status first."""

    code: str = "CONCURRENT_STATUS_CHANGE"

    def __init__(self, request_id: str, expected_status: str, actual_status: str):
        self.request_id = request_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Travel support request {request_id} is {actual_status}, "
            f"expected {expected_status}"
        )


class RequestNotEditableError(StateError):
    """Banking details and expenses are only mutable while the request is draft."""

    code: str = "REQUEST_NOT_EDITABLE"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Cannot modify travel support request {request_id} "
            f"when status is {status}"
        )


class ExpenseAlreadyReviewedError(StateError):
    """Expense fields are only mutable while the expense is pending."""

    code: str = "EXPENSE_ALREADY_REVIEWED"

    def __init__(self, expense_id: str, status: str):
        self.expense_id = expense_id
        self.status = status
        super().__init__(f"Cannot update expense {expense_id} that has been {status}")


class ReviewFrozenError(StateError):
    """Expense decisions are frozen once the parent request leaves submitted."""

    code: str = "REVIEW_FROZEN"

    def __init__(self, expense_id: str, request_status: str):
        self.expense_id = expense_id
        self.request_status = request_status
        super().__init__(
            f"Cannot review expense {expense_id} when request is {request_status}"
        )


# Not found


class NotFoundError(TravelKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Travel support request not found: {request_id}")


class ExpenseNotFoundError(NotFoundError):
    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class ReceiptNotFoundError(NotFoundError):
    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, expense_id: str, receipt_index: int):
        self.expense_id = expense_id
        self.receipt_index = receipt_index
        super().__init__(
            f"Invalid receipt index {receipt_index} for expense {expense_id}"
        )


class DuplicateRequestError(NotFoundError):
    """A speaker has at most one request per conference."""

    code: str = "REQUEST_ALREADY_EXISTS"

    def __init__(self, speaker_id: str, conference_id: str, existing_id: str):
        self.speaker_id = speaker_id
        self.conference_id = conference_id
        self.existing_id = existing_id
        super().__init__(
            f"Speaker {speaker_id} already has travel support request "
            f"{existing_id} for conference {conference_id}"
        )


# Currency


class CurrencyError(TravelKernelError):
    code: str = "CURRENCY_ERROR"


class UnsupportedCurrencyError(CurrencyError):
    code: str = "UNSUPPORTED_CURRENCY"

    def __init__(self, currency: Any):
        self.currency = currency
        super().__init__(f"Unsupported currency: {currency!r}")


# Network


class NetworkError(TravelKernelError):
    """Transport failure. The caller may retry the same input unchanged."""

    code: str = "NETWORK_ERROR"
    retriable: bool = True


class ExchangeRateFetchError(NetworkError):
    code: str = "EXCHANGE_RATE_FETCH_FAILED"

    def __init__(self, base_currency: str, reason: str):
        self.base_currency = base_currency
        self.reason = reason
        super().__init__(
            f"Failed to fetch exchange rates for {base_currency}: {reason}"
        )


class RateLimitedError(ExchangeRateFetchError):
    code: str = "EXCHANGE_RATE_RATE_LIMITED"

    def __init__(self, base_currency: str):
        super().__init__(base_currency, "rate limit exceeded")


class ReceiptUploadError(NetworkError):
    code: str = "RECEIPT_UPLOAD_FAILED"

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f'Failed to upload "{filename}": {reason}')


class UploadTimeoutError(ReceiptUploadError):
    code: str = "RECEIPT_UPLOAD_TIMEOUT"

    def __init__(self, filename: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(filename, f"upload timed out after {timeout_seconds}s")
