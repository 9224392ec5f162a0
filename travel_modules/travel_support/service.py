"""
Travel Support Module Service (``travel_modules.travel_support.service``).

Responsibility
--------------
Orchestrates the travel-support reimbursement workflow -- request creation,
banking details, expenses and receipts, submission, request-level review,
per-expense review, currency conversion and summaries -- by delegating
pure computation to ``travel_engines`` and I/O to ``travel_services`` and
the repository.

Architecture position
---------------------
**Modules layer** -- ``TravelSupportService`` is the sole public entry
point for travel support operations.  It composes the state machine in
``workflows``, the stateless engines, the ``ReviewEngine``, the
``ExchangeRateService`` and the ``ReceiptService``.

Invariants enforced
-------------------
* Every command returns a ``TravelSupportResult``: either the new request
  snapshot or a typed failure.  Nothing is written when a guard fails.
* Authorization is checked before any write (fail closed).  Speakers read
  and modify only their own request; reviewers read every request.
* Draft-only editing is enforced by the aggregate, not by this class.
* Reviewer overrides of the approved amount are in the base currency.

Failure modes
-------------
* Typed ``TravelKernelError`` from a guard or lookup  -> failed result with
  a ``CommandStatus`` and ``retriable`` flag; logged as a warning.
* Unexpected exception  -> logged with traceback, re-raised.
* Read operations (``get_*``, ``convert_currency``) raise typed errors
  directly.

Usage::

    service = TravelSupportService.from_settings(get_settings(), repository, storage)
    result = service.create_request("spk-1", "conf-2025", actor=Actor.speaker("spk-1"))
    result = service.add_expense(result.request.id, expense_input, actor=actor)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol

from travel_config.schema import TravelSupportSettings
from travel_engines.expense_validation import (
    ExpenseWarning,
    ReceiptFile,
    RejectedFile,
    expense_warnings,
    validate_banking_details,
    validate_expense,
)
from travel_engines.review import AmountTotal, effective_approved_amount, total_reimbursable
from travel_engines.summary import ExpenseSummary, build_expense_summary
from travel_kernel.db.base import new_id
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.currency import SupportedCurrency
from travel_kernel.domain.models import (
    Actor,
    BankingDetails,
    ExpenseInput,
    ExpenseStatus,
    TravelExpense,
    TravelSupportRequest,
)
from travel_kernel.domain.rates import ConversionResult
from travel_kernel.domain.values import Money
from travel_kernel.exceptions import (
    AuthorizationError,
    DuplicateRequestError,
    NetworkError,
    NotEligibleForTravelFundingError,
    NotFoundError,
    NotRequestOwnerError,
    SelfApprovalError,
    StateError,
    SubmissionNotAllowedError,
    TravelKernelError,
    ValidationError,
)
from travel_kernel.logging_config import LogContext, get_logger
from travel_modules.travel_support.repository import TravelSupportRepository
from travel_modules.travel_support.workflows import (
    RequestAction,
    TransitionContext,
    apply_transition,
)
from travel_services.exchange_rate_service import ExchangeRateService
from travel_services.rate_provider import HttpExchangeRateProvider
from travel_services.receipt_service import FileStorage, ReceiptService, UploadBatchResult
from travel_services.review_engine import ReviewEngine

logger = get_logger("modules.travel_support.service")


class SpeakerEligibility(Protocol):
    """Whether a speaker asked for travel funding when they submitted their talk."""

    def requires_travel_funding(self, speaker_id: str) -> bool: ...


class AllSpeakersEligible:
    def requires_travel_funding(self, speaker_id: str) -> bool:
        return True


class CommandStatus(str, Enum):
    """Outcome classification for a facade command."""

    SUCCESS = "success"
    VALIDATION_FAILED = "validation_failed"
    UNAUTHORIZED = "unauthorized"
    INVALID_STATE = "invalid_state"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    NETWORK_ERROR = "network_error"


@dataclass(frozen=True)
class TravelSupportResult:
    """
    Result of a travel support command.

    On success ``request`` is the new snapshot.  On failure it is None and
    the caller keeps its last known-good snapshot; ``message`` is
    human-readable and ``retriable`` tells retry apart from fix-your-input.
    """

    status: CommandStatus
    request: TravelSupportRequest | None = None
    message: str = ""
    error_code: str | None = None
    field_errors: Mapping[str, str] = field(default_factory=dict)
    expense_errors: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    rejected_files: tuple[RejectedFile, ...] = ()
    warnings: tuple[ExpenseWarning, ...] = ()
    retriable: bool = False

    @property
    def is_success(self) -> bool:
        return self.status is CommandStatus.SUCCESS

    @classmethod
    def success(cls, request: TravelSupportRequest, message: str = "", **kwargs) -> TravelSupportResult:
        return cls(status=CommandStatus.SUCCESS, request=request, message=message, **kwargs)

    @classmethod
    def from_error(cls, exc: TravelKernelError, **kwargs) -> TravelSupportResult:
        field_errors: Mapping[str, str] = {}
        expense_errors: Mapping[str, Mapping[str, str]] = {}
        if isinstance(exc, ValidationError):
            status = CommandStatus.VALIDATION_FAILED
            field_errors = exc.field_errors
            if isinstance(exc, SubmissionNotAllowedError):
                expense_errors = exc.expense_errors
        elif isinstance(exc, StateError):
            status = CommandStatus.INVALID_STATE
        elif isinstance(exc, AuthorizationError):
            status = CommandStatus.UNAUTHORIZED
        elif isinstance(exc, DuplicateRequestError):
            status = CommandStatus.CONFLICT
        elif isinstance(exc, NotFoundError):
            status = CommandStatus.NOT_FOUND
        elif isinstance(exc, NetworkError):
            status = CommandStatus.NETWORK_ERROR
        else:
            status = CommandStatus.VALIDATION_FAILED
        return cls(
            status=status,
            message=str(exc),
            error_code=exc.code,
            field_errors=field_errors,
            expense_errors=expense_errors,
            retriable=exc.retriable,
            **kwargs,
        )


class TravelSupportService:
    """
    Facade over the travel support workflow.

    Contract:
        Commands take the acting ``Actor`` explicitly and return a
        ``TravelSupportResult``.  Queries return domain values and raise
        typed errors.
    """

    def __init__(
        self,
        repository: TravelSupportRepository,
        exchange_rates: ExchangeRateService,
        receipts: ReceiptService,
        settings: TravelSupportSettings | None = None,
        clock: Clock | None = None,
        eligibility: SpeakerEligibility | None = None,
    ):
        self._repository = repository
        self._rates = exchange_rates
        self._receipts = receipts
        self._settings = settings or TravelSupportSettings()
        self._clock = clock or SystemClock()
        self._eligibility = eligibility or AllSpeakersEligible()
        self._review = ReviewEngine(repository, clock=self._clock)
        self._warning_limits = self._settings.expense_warnings.limits()
        self._closers: list[Callable[[], None]] = []

    @classmethod
    def from_settings(
        cls,
        settings: TravelSupportSettings,
        repository: TravelSupportRepository,
        storage: FileStorage,
        clock: Clock | None = None,
        eligibility: SpeakerEligibility | None = None,
    ) -> TravelSupportService:
        """
        Wire the HTTP rate provider and receipt service from settings.

        The service owns the provider's HTTP client; call ``close()`` when done.
        """
        clock = clock or SystemClock()
        rate_settings = settings.exchange_rates
        provider = HttpExchangeRateProvider(
            rate_settings.api_key,
            timeout=rate_settings.http_timeout_seconds,
            open_url=rate_settings.open_access_url,
            keyed_url=rate_settings.keyed_url,
        )
        receipt_settings = settings.receipts
        service = cls(
            repository=repository,
            exchange_rates=ExchangeRateService(
                provider,
                clock=clock,
                refresh_window=rate_settings.refresh_window,
                retry_after=rate_settings.retry_after,
            ),
            receipts=ReceiptService(
                storage,
                clock=clock,
                rules=receipt_settings.rules(),
                timeout_seconds=receipt_settings.upload_timeout_seconds,
                max_workers=receipt_settings.max_upload_workers,
            ),
            settings=settings,
            clock=clock,
            eligibility=eligibility,
        )
        service._closers.append(provider.close)
        return service

    def close(self) -> None:
        """Release resources created by ``from_settings``. Safe to call twice."""
        while self._closers:
            self._closers.pop()()
        logger.debug("travel_support_service_closed")

    @property
    def base_currency(self) -> SupportedCurrency:
        return self._settings.base_currency

    # =========================================================================
    # Command plumbing
    # =========================================================================

    def _run(
        self,
        operation: str,
        actor: Actor,
        command: Callable[[], TravelSupportResult],
        request_id: str | None = None,
        expense_id: str | None = None,
    ) -> TravelSupportResult:
        with LogContext.bind(
            actor_id=actor.actor_id, request_id=request_id, expense_id=expense_id
        ):
            try:
                result = command()
            except TravelKernelError as exc:
                logger.warning(
                    f"{operation}_failed",
                    extra={"error_code": exc.code, "retriable": exc.retriable},
                )
                return TravelSupportResult.from_error(exc)
            except Exception:
                logger.exception(f"{operation}_error")
                raise
            return result

    def _load_for_owner(self, request_id: str, actor: Actor) -> TravelSupportRequest:
        request = self._repository.get_request(request_id)
        if request.speaker_id != actor.actor_id:
            raise NotRequestOwnerError(actor.actor_id, request_id)
        return request

    def _load_for_reader(self, request_id: str, actor: Actor) -> TravelSupportRequest:
        request = self._repository.get_request(request_id)
        if request.speaker_id != actor.actor_id and not actor.is_reviewer:
            raise NotRequestOwnerError(actor.actor_id, request_id)
        return request

    def _upload(self, files: Sequence[ReceiptFile]) -> UploadBatchResult:
        if not files:
            return UploadBatchResult()
        return self._receipts.upload_receipts(files)

    def _warnings_for(self, expense: TravelExpense | ExpenseInput) -> tuple[ExpenseWarning, ...]:
        return expense_warnings(expense, today=self._clock.today(), limits=self._warning_limits)

    # =========================================================================
    # Request lifecycle
    # =========================================================================

    def create_request(
        self,
        speaker_id: str,
        conference_id: str,
        actor: Actor,
    ) -> TravelSupportResult:
        """
        Open a draft request. One per speaker and conference.

        Only speakers who asked for travel funding may open one.
        """

        def command() -> TravelSupportResult:
            if actor.actor_id != speaker_id:
                raise AuthorizationError(
                    f"Actor {actor.actor_id} cannot create a request for speaker {speaker_id}",
                    actor_id=actor.actor_id,
                )
            if not self._eligibility.requires_travel_funding(speaker_id):
                raise NotEligibleForTravelFundingError(speaker_id)
            existing = self._repository.find_request(speaker_id, conference_id)
            if existing is not None:
                raise DuplicateRequestError(speaker_id, conference_id, existing.id)

            request = TravelSupportRequest(
                id=new_id(),
                speaker_id=speaker_id,
                conference_id=conference_id,
                created_at=self._clock.now_utc(),
            )
            self._repository.save_request(request, actor_id=actor.actor_id)
            logger.info(
                "travel_request_created",
                extra={"request_id": request.id, "conference_id": conference_id},
            )
            return TravelSupportResult.success(request, "Travel support request created")

        return self._run("travel_request_create", actor, command)

    def update_banking_details(
        self,
        request_id: str,
        details: BankingDetails,
        actor: Actor,
    ) -> TravelSupportResult:
        def command() -> TravelSupportResult:
            request = self._load_for_owner(request_id, actor)
            updated = request.with_banking_details(details)
            errors = validate_banking_details(details)
            if errors:
                raise ValidationError("Banking details are incomplete", errors)
            self._repository.save_request(updated, actor_id=actor.actor_id)
            logger.info(
                "banking_details_updated",
                extra={"preferred_currency": details.preferred_currency.value},
            )
            return TravelSupportResult.success(updated, "Banking details saved")

        return self._run("banking_details_update", actor, command, request_id=request_id)

    def submit(self, request_id: str, actor: Actor) -> TravelSupportResult:
        def command() -> TravelSupportResult:
            request = self._load_for_owner(request_id, actor)
            updated = apply_transition(
                request,
                RequestAction.SUBMIT,
                TransitionContext(actor=actor, at=self._clock.now_utc()),
            )
            persisted = self._repository.save_request_state(
                updated, expected_status=request.status, actor_id=actor.actor_id
            )
            logger.info("request_submitted", extra={"expense_count": len(persisted.expenses)})
            return TravelSupportResult.success(persisted, "Travel support request submitted")

        return self._run("request_submit", actor, command, request_id=request_id)

    def update_status(
        self,
        request_id: str,
        action: RequestAction | str,
        actor: Actor,
        *,
        notes: str | None = None,
        approved_amount: Money | Decimal | None = None,
        expected_payment_date: date | None = None,
    ) -> TravelSupportResult:
        """
        Reviewer decision on the whole request: approve, reject or mark_paid.

        ``approved_amount`` overrides the computed approved total; a bare
        ``Decimal`` is taken to be in the base currency.  Only request-level
        fields are written, so expense decisions made concurrently survive.
        """

        def command() -> TravelSupportResult:
            request = self._repository.get_request(request_id)
            context = TransitionContext(
                actor=actor,
                at=self._clock.now_utc(),
                notes=notes,
                approved_amount=self._override_amount(approved_amount),
                expected_payment_date=expected_payment_date,
            )
            try:
                updated = apply_transition(request, action, context)
            except SelfApprovalError:
                logger.warning("self_approval_blocked", extra={"action": RequestAction(action).value})
                raise
            persisted = self._repository.save_request_state(
                updated, expected_status=request.status, actor_id=actor.actor_id
            )
            logger.info(
                "request_status_updated",
                extra={
                    "action": RequestAction(action).value,
                    "from_status": request.status.value,
                    "to_status": persisted.status.value,
                    "has_override": persisted.approved_amount is not None,
                },
            )
            return TravelSupportResult.success(
                persisted, f"Travel support request {persisted.status.value}"
            )

        return self._run("request_status_update", actor, command, request_id=request_id)

    def _override_amount(self, amount: Money | Decimal | None) -> Money | None:
        if amount is None:
            return None
        if isinstance(amount, Money):
            if amount.currency is not self.base_currency:
                raise ValidationError(
                    "Approved amount must be in the base currency",
                    {"approved_amount": f"Use {self.base_currency.value}"},
                )
            return amount
        return Money.of(amount, self.base_currency)

    # =========================================================================
    # Expenses
    # =========================================================================

    def add_expense(
        self,
        request_id: str,
        data: ExpenseInput,
        actor: Actor,
        files: Sequence[ReceiptFile] = (),
    ) -> TravelSupportResult:
        """
        Add an expense, uploading any receipt files with it.

        Field errors block the add and nothing is uploaded.  Rejected or
        failed files are listed on the result; the expense keeps the rest.
        """

        def command() -> TravelSupportResult:
            request = self._load_for_owner(request_id, actor)
            request.require_editable()
            errors = validate_expense(data)
            if errors:
                raise ValidationError("Expense is invalid", errors)

            upload = self._upload(files)
            expense = TravelExpense.from_input(
                new_id(), request.id, data, created_at=self._clock.now_utc()
            ).with_receipts_added(upload.accepted)
            updated = request.with_expense_added(expense)
            self._repository.save_request(updated, actor_id=actor.actor_id)
            logger.info(
                "expense_added",
                extra={
                    "expense_id": expense.id,
                    "category": expense.category.value,
                    "amount": expense.amount,
                    "currency": expense.currency_code,
                    "receipt_count": len(expense.receipts),
                    "rejected_files": len(upload.rejected),
                },
            )
            return TravelSupportResult.success(
                updated,
                "Expense added",
                rejected_files=upload.rejected,
                warnings=self._warnings_for(expense),
                retriable=bool(upload.retriable_failures),
            )

        return self._run("expense_add", actor, command, request_id=request_id)

    def update_expense(
        self,
        request_id: str,
        expense_id: str,
        data: ExpenseInput,
        actor: Actor,
    ) -> TravelSupportResult:
        def command() -> TravelSupportResult:
            request = self._load_for_owner(request_id, actor)
            updated = request.with_expense_updated(expense_id, data)
            errors = validate_expense(data)
            if errors:
                raise ValidationError("Expense is invalid", errors)
            self._repository.save_request(updated, actor_id=actor.actor_id)
            expense = updated.find_expense(expense_id)
            logger.info("expense_updated", extra={"amount": expense.amount})
            return TravelSupportResult.success(
                updated, "Expense updated", warnings=self._warnings_for(expense)
            )

        return self._run(
            "expense_update", actor, command, request_id=request_id, expense_id=expense_id
        )

    def delete_expense(self, request_id: str, expense_id: str, actor: Actor) -> TravelSupportResult:
        def command() -> TravelSupportResult:
            request = self._load_for_owner(request_id, actor)
            updated = request.with_expense_removed(expense_id)
            self._repository.save_request(updated, actor_id=actor.actor_id)
            logger.info("expense_deleted")
            return TravelSupportResult.success(updated, "Expense deleted")

        return self._run(
            "expense_delete", actor, command, request_id=request_id, expense_id=expense_id
        )

    def attach_receipts(
        self,
        request_id: str,
        expense_id: str,
        files: Sequence[ReceiptFile],
        actor: Actor,
    ) -> TravelSupportResult:
        """
        Upload and attach receipts; partial acceptance.

        Succeeds when at least one file is attached.  When every file fails,
        the result is a network error if any failure is retriable and a
        validation failure otherwise.
        """

        def command() -> TravelSupportResult:
            request = self._load_for_owner(request_id, actor)
            # Nothing is uploaded to a locked request or a reviewed expense.
            request.require_editable()
            request.find_expense(expense_id).require_pending()

            upload = self._upload(files)
            if not upload.accepted:
                retriable = bool(upload.retriable_failures)
                logger.warning(
                    "receipts_not_attached",
                    extra={"rejected_files": len(upload.rejected), "retriable": retriable},
                )
                return TravelSupportResult(
                    status=CommandStatus.NETWORK_ERROR if retriable else CommandStatus.VALIDATION_FAILED,
                    message="No receipts were attached: "
                    + ", ".join(str(r) for r in upload.rejected),
                    error_code=upload.rejected[0].code if upload.rejected else None,
                    field_errors={"receipts": "No valid receipt files"},
                    rejected_files=upload.rejected,
                    retriable=retriable,
                )

            updated = request.with_receipts_attached(expense_id, upload.accepted)
            self._repository.save_request(updated, actor_id=actor.actor_id)
            logger.info(
                "receipts_attached",
                extra={"accepted": len(upload.accepted), "rejected_files": len(upload.rejected)},
            )
            return TravelSupportResult.success(
                updated,
                f"{len(upload.accepted)} receipt(s) attached",
                rejected_files=upload.rejected,
                retriable=bool(upload.retriable_failures),
            )

        return self._run(
            "receipts_attach", actor, command, request_id=request_id, expense_id=expense_id
        )

    def delete_receipt(
        self,
        request_id: str,
        expense_id: str,
        receipt_index: int,
        actor: Actor,
    ) -> TravelSupportResult:
        def command() -> TravelSupportResult:
            request = self._load_for_owner(request_id, actor)
            updated = request.with_receipt_removed(expense_id, receipt_index)
            self._repository.save_request(updated, actor_id=actor.actor_id)
            logger.info("receipt_deleted", extra={"receipt_index": receipt_index})
            return TravelSupportResult.success(updated, "Receipt deleted")

        return self._run(
            "receipt_delete", actor, command, request_id=request_id, expense_id=expense_id
        )

    def update_expense_status(
        self,
        expense_id: str,
        decision: ExpenseStatus | str,
        actor: Actor,
        notes: str | None = None,
    ) -> TravelSupportResult:
        """Approve or reject a single expense while the request is submitted."""

        def command() -> TravelSupportResult:
            request = self._review.decide(expense_id, ExpenseStatus(decision), notes, actor)
            return TravelSupportResult.success(
                request, f"Expense {ExpenseStatus(decision).value}"
            )

        return self._run("expense_review", actor, command, expense_id=expense_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_request(self, request_id: str, actor: Actor) -> TravelSupportRequest:
        return self._load_for_reader(request_id, actor)

    def get_request_for_speaker(
        self, speaker_id: str, conference_id: str, actor: Actor
    ) -> TravelSupportRequest | None:
        if speaker_id != actor.actor_id and not actor.is_reviewer:
            raise AuthorizationError(
                f"Actor {actor.actor_id} cannot read requests of speaker {speaker_id}",
                actor_id=actor.actor_id,
            )
        return self._repository.find_request(speaker_id, conference_id)

    def list_requests(
        self, actor: Actor, conference_id: str | None = None
    ) -> list[TravelSupportRequest]:
        """Reviewers see every request; speakers see their own."""
        requests = self._repository.list_requests(conference_id=conference_id)
        if actor.is_reviewer:
            return requests
        return [r for r in requests if r.speaker_id == actor.actor_id]

    def convert_currency(
        self,
        amount: Decimal,
        from_currency: SupportedCurrency | str,
        to_currency: SupportedCurrency | str,
        custom_currency: str | None = None,
    ) -> ConversionResult:
        return self._rates.convert_with_details(
            amount, from_currency, to_currency, custom_currency=custom_currency
        )

    def get_summary(
        self,
        request_id: str,
        actor: Actor,
        display_currency: SupportedCurrency | str | None = None,
    ) -> ExpenseSummary:
        """Totals in ``display_currency``; defaults to the speaker's preferred currency."""
        request = self._load_for_reader(request_id, actor)
        currency = (
            SupportedCurrency.parse(display_currency)
            if display_currency is not None
            else request.banking_details.preferred_currency
        )
        summary = build_expense_summary(
            request.expenses, display_currency=currency, converter=self._rates
        )
        if not summary.is_exact:
            logger.info(
                "summary_not_exact",
                extra={"request_id": request_id, "notice_count": len(summary.notices)},
            )
        return summary

    def get_total_reimbursable(
        self,
        request_id: str,
        actor: Actor,
        target_currency: SupportedCurrency | str | None = None,
    ) -> AmountTotal:
        request = self._load_for_reader(request_id, actor)
        target = (
            SupportedCurrency.parse(target_currency)
            if target_currency is not None
            else self.base_currency
        )
        return total_reimbursable(request.expenses, target_currency=target, converter=self._rates)

    def get_approved_amount(self, request_id: str, actor: Actor) -> AmountTotal:
        """The reviewer override when set, else approved expenses in the base currency."""
        request = self._load_for_reader(request_id, actor)
        return effective_approved_amount(
            request, target_currency=self.base_currency, converter=self._rates
        )

    def get_expense_warnings(
        self, request_id: str, expense_id: str, actor: Actor
    ) -> tuple[ExpenseWarning, ...]:
        request = self._load_for_reader(request_id, actor)
        return self._warnings_for(request.find_expense(expense_id))
