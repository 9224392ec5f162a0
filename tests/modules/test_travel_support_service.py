"""
End-to-end tests for TravelSupportService over the in-memory repository.

Commands are checked through their TravelSupportResult (status, error code,
field errors, retriable flag); queries through their return values and
typed errors.
"""

from decimal import Decimal

import pytest

from travel_config.schema import TravelSupportSettings
from travel_engines.expense_validation import REASON_INVALID_FILE_TYPE, ReceiptFile
from travel_kernel.domain.models import (
    Actor,
    BankingDetails,
    ExpenseCategory,
    ExpenseStatus,
    RequestStatus,
    Role,
)
from travel_kernel.domain.rates import StalenessKind
from travel_kernel.domain.values import Money
from travel_kernel.exceptions import AuthorizationError, NotRequestOwnerError, RequestNotFoundError
from travel_modules.travel_support import service as service_module
from travel_modules.travel_support.repository import InMemoryTravelSupportRepository
from travel_modules.travel_support.service import CommandStatus, TravelSupportService
from travel_modules.travel_support.workflows import SUBMISSION_BASELINE_MESSAGE
from travel_services.rate_provider import HttpExchangeRateProvider
from tests.factories import (
    CONFERENCE_ID,
    FIXED_NOW,
    OTHER_SPEAKER_ID,
    SPEAKER_ID,
    FakeStorage,
    make_banking_details,
    make_expense_input,
    pdf_receipt,
)

TEXT_FILE = ReceiptFile("notes.txt", "text/plain", b"not a receipt")


@pytest.fixture
def draft(service, speaker):
    """A draft request with banking details and no expenses."""
    request = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker).request
    return service.update_banking_details(request.id, make_banking_details(), actor=speaker).request


# =============================================================================
# Request creation and banking details
# =============================================================================


class TestCreateRequest:

    def test_creates_draft(self, service, speaker, repository):
        result = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker)
        assert result.is_success
        assert result.request.status is RequestStatus.DRAFT
        assert result.request.created_at == FIXED_NOW
        assert repository.get_request(result.request.id) == result.request

    def test_second_request_is_a_conflict(self, service, speaker):
        first = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker)
        second = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker)
        assert second.status is CommandStatus.CONFLICT
        assert second.error_code == "REQUEST_ALREADY_EXISTS"
        assert first.request.id in second.message

    def test_cannot_create_for_someone_else(self, service, organizer):
        result = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=organizer)
        assert result.status is CommandStatus.UNAUTHORIZED
        assert result.request is None


class FundingRequested:
    def __init__(self, *speaker_ids):
        self.speaker_ids = set(speaker_ids)

    def requires_travel_funding(self, speaker_id):
        return speaker_id in self.speaker_ids


class TestTravelFundingEligibility:

    def _service(self, repository, exchange_rates, receipt_service, clock, eligibility):
        return TravelSupportService(
            repository, exchange_rates, receipt_service, clock=clock, eligibility=eligibility
        )

    def test_speaker_without_funding_flag_is_refused(
        self, repository, exchange_rates, receipt_service, deterministic_clock, other_speaker
    ):
        service = self._service(
            repository, exchange_rates, receipt_service, deterministic_clock, FundingRequested(SPEAKER_ID)
        )
        result = service.create_request(OTHER_SPEAKER_ID, CONFERENCE_ID, actor=other_speaker)
        assert result.status is CommandStatus.UNAUTHORIZED
        assert result.error_code == "NOT_ELIGIBLE_FOR_FUNDING"
        assert repository.find_request(OTHER_SPEAKER_ID, CONFERENCE_ID) is None

    def test_flagged_speaker_can_create(
        self, repository, exchange_rates, receipt_service, deterministic_clock, speaker
    ):
        service = self._service(
            repository, exchange_rates, receipt_service, deterministic_clock, FundingRequested(SPEAKER_ID)
        )
        assert service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker).is_success

    def test_ownership_checked_before_eligibility(
        self, repository, exchange_rates, receipt_service, deterministic_clock, organizer
    ):
        service = self._service(
            repository, exchange_rates, receipt_service, deterministic_clock, FundingRequested()
        )
        result = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=organizer)
        assert result.error_code == "NOT_AUTHORIZED"


class TestBankingDetails:

    def test_incomplete_details_refused(self, service, speaker, draft, repository):
        result = service.update_banking_details(
            draft.id, BankingDetails(beneficiary_name="Ada Lovelace"), actor=speaker
        )
        assert result.status is CommandStatus.VALIDATION_FAILED
        assert {"bank_name", "swift_code", "country", "account_number"} <= set(result.field_errors)
        assert repository.get_request(draft.id).banking_details == make_banking_details()

    def test_only_owner_may_edit(self, service, other_speaker, draft):
        result = service.update_banking_details(draft.id, make_banking_details(), actor=other_speaker)
        assert result.status is CommandStatus.UNAUTHORIZED
        assert result.error_code == "NOT_REQUEST_OWNER"

    def test_unknown_request(self, service, speaker):
        result = service.update_banking_details("missing", make_banking_details(), actor=speaker)
        assert result.status is CommandStatus.NOT_FOUND

    def test_locked_after_submit(self, service, speaker, submitted_request):
        result = service.update_banking_details(
            submitted_request.id, make_banking_details(bank_name="Nordea"), actor=speaker
        )
        assert result.status is CommandStatus.INVALID_STATE
        assert result.error_code == "REQUEST_NOT_EDITABLE"


# =============================================================================
# Expenses and receipts
# =============================================================================


class TestAddExpense:

    def test_add_with_receipt(self, service, speaker, draft):
        result = service.add_expense(draft.id, make_expense_input(), actor=speaker, files=[pdf_receipt()])
        assert result.is_success
        expense = result.request.expenses[0]
        assert expense.amount == Decimal("1850.50")
        assert expense.status is ExpenseStatus.PENDING
        assert [r.filename for r in expense.receipts] == ["receipt.pdf"]
        assert result.warnings == ()

    def test_invalid_input_uploads_nothing(self, service, speaker, draft, storage):
        result = service.add_expense(
            draft.id, make_expense_input(amount=Decimal("0")), actor=speaker, files=[pdf_receipt()]
        )
        assert result.status is CommandStatus.VALIDATION_FAILED
        assert "amount" in result.field_errors
        assert storage.uploaded == []

    def test_other_currency_requires_code(self, service, speaker, draft):
        result = service.add_expense(draft.id, make_expense_input(currency="OTHER"), actor=speaker)
        assert result.field_errors == {"custom_currency": "Currency code is required when currency is OTHER"}

    def test_partial_receipt_acceptance(self, service, speaker, draft):
        result = service.add_expense(
            draft.id, make_expense_input(), actor=speaker, files=[TEXT_FILE, pdf_receipt("ok.pdf")]
        )
        assert result.is_success
        assert [r.filename for r in result.request.expenses[0].receipts] == ["ok.pdf"]
        assert [(r.filename, r.reason) for r in result.rejected_files] == [("notes.txt", REASON_INVALID_FILE_TYPE)]
        assert not result.retriable

    def test_storage_failure_keeps_expense_and_is_retriable(self, service, speaker, draft, storage):
        storage.fail.add("receipt.pdf")
        result = service.add_expense(draft.id, make_expense_input(), actor=speaker, files=[pdf_receipt()])
        assert result.is_success
        assert result.request.expenses[0].receipts == ()
        assert result.retriable

    def test_warnings_returned(self, service, speaker, draft):
        result = service.add_expense(
            draft.id,
            make_expense_input(category=ExpenseCategory.MEALS, amount=Decimal("1200.50")),
            actor=speaker,
        )
        assert [w.code for w in result.warnings] == ["above_category_limit"]

    def test_expense_added_logged_with_context(self, service, speaker, draft, captured_logs):
        service.add_expense(draft.id, make_expense_input(), actor=speaker)
        added = [r for r in captured_logs() if r["message"] == "expense_added"]
        assert added[0]["request_id"] == draft.id
        assert added[0]["actor_id"] == SPEAKER_ID
        assert added[0]["amount"] == "1850.50"


class TestEditExpenses:

    def test_update_expense(self, service, speaker, draft):
        expense = service.add_expense(draft.id, make_expense_input(), actor=speaker).request.expenses[0]
        result = service.update_expense(
            draft.id, expense.id, make_expense_input(amount=Decimal("1700.00"), location=" London "), actor=speaker
        )
        assert result.is_success
        updated = result.request.find_expense(expense.id)
        assert updated.amount == Decimal("1700.00")
        assert updated.location == "London"

    def test_update_with_invalid_input(self, service, speaker, draft):
        expense = service.add_expense(draft.id, make_expense_input(), actor=speaker).request.expenses[0]
        result = service.update_expense(draft.id, expense.id, make_expense_input(description=""), actor=speaker)
        assert result.status is CommandStatus.VALIDATION_FAILED
        assert "description" in result.field_errors

    def test_delete_expense(self, service, speaker, draft):
        expense = service.add_expense(draft.id, make_expense_input(), actor=speaker).request.expenses[0]
        result = service.delete_expense(draft.id, expense.id, actor=speaker)
        assert result.is_success
        assert result.request.expenses == ()

    def test_delete_unknown_expense(self, service, speaker, draft):
        result = service.delete_expense(draft.id, "nope", actor=speaker)
        assert result.status is CommandStatus.NOT_FOUND
        assert result.error_code == "EXPENSE_NOT_FOUND"

    def test_delete_receipt(self, service, speaker, draft):
        request = service.add_expense(
            draft.id, make_expense_input(), actor=speaker, files=[pdf_receipt("a.pdf"), pdf_receipt("b.pdf")]
        ).request
        expense_id = request.expenses[0].id
        result = service.delete_receipt(draft.id, expense_id, 0, actor=speaker)
        assert [r.filename for r in result.request.expenses[0].receipts] == ["b.pdf"]
        missing = service.delete_receipt(draft.id, expense_id, 5, actor=speaker)
        assert missing.error_code == "RECEIPT_NOT_FOUND"


class TestAttachReceipts:

    def test_partial(self, service, speaker, draft):
        expense = service.add_expense(draft.id, make_expense_input(), actor=speaker).request.expenses[0]
        result = service.attach_receipts(draft.id, expense.id, [pdf_receipt("a.pdf"), TEXT_FILE], actor=speaker)
        assert result.is_success
        assert result.message == "1 receipt(s) attached"
        assert len(result.rejected_files) == 1

    def test_all_invalid_is_validation_failure(self, service, speaker, draft):
        expense = service.add_expense(draft.id, make_expense_input(), actor=speaker).request.expenses[0]
        result = service.attach_receipts(draft.id, expense.id, [TEXT_FILE], actor=speaker)
        assert result.status is CommandStatus.VALIDATION_FAILED
        assert result.field_errors == {"receipts": "No valid receipt files"}
        assert not result.retriable
        assert "notes.txt" in result.message

    def test_all_failed_in_storage_is_retriable(self, service, speaker, draft, storage):
        expense = service.add_expense(draft.id, make_expense_input(), actor=speaker).request.expenses[0]
        storage.fail.add("a.pdf")
        result = service.attach_receipts(draft.id, expense.id, [pdf_receipt("a.pdf")], actor=speaker)
        assert result.status is CommandStatus.NETWORK_ERROR
        assert result.retriable
        assert result.error_code == "RECEIPT_UPLOAD_FAILED"

    def test_nothing_uploaded_once_submitted(self, service, speaker, submitted_request, storage):
        before = list(storage.uploaded)
        result = service.attach_receipts(
            submitted_request.id, submitted_request.expenses[0].id, [pdf_receipt("late.pdf")], actor=speaker
        )
        assert result.status is CommandStatus.INVALID_STATE
        assert storage.uploaded == before


# =============================================================================
# Submission
# =============================================================================


class TestSubmit:

    def test_zero_expenses_gets_baseline_message(self, service, speaker, draft):
        result = service.submit(draft.id, actor=speaker)
        assert result.status is CommandStatus.VALIDATION_FAILED
        assert result.message == SUBMISSION_BASELINE_MESSAGE
        assert result.error_code == "SUBMISSION_INCOMPLETE"
        assert set(result.field_errors) == {"expenses"}

    def test_missing_banking_details(self, service, speaker):
        request = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker).request
        service.add_expense(request.id, make_expense_input(), actor=speaker, files=[pdf_receipt()])
        result = service.submit(request.id, actor=speaker)
        assert set(result.field_errors) == {"banking_details"}

    def test_expense_without_receipt_blocks(self, service, speaker, draft, repository):
        expense = service.add_expense(draft.id, make_expense_input(), actor=speaker).request.expenses[0]
        result = service.submit(draft.id, actor=speaker)
        assert result.status is CommandStatus.VALIDATION_FAILED
        assert result.message == "Cannot submit: 1 expense(s) need attention"
        assert result.expense_errors == {expense.id: {"receipts": "At least one receipt is required"}}
        assert repository.get_request(draft.id).status is RequestStatus.DRAFT

    def test_submit(self, submitted_request):
        assert submitted_request.status is RequestStatus.SUBMITTED
        assert submitted_request.submitted_at == FIXED_NOW

    def test_only_owner_submits(self, service, organizer, draft):
        result = service.submit(draft.id, actor=organizer)
        assert result.status is CommandStatus.UNAUTHORIZED

    def test_cannot_submit_twice(self, service, speaker, submitted_request):
        result = service.submit(submitted_request.id, actor=speaker)
        assert result.status is CommandStatus.INVALID_STATE
        assert result.error_code == "INVALID_TRANSITION"


# =============================================================================
# Request-level review
# =============================================================================


class TestUpdateStatus:

    def test_approve(self, service, organizer, submitted_request):
        result = service.update_status(submitted_request.id, "approve", actor=organizer, notes=" Welcome ")
        assert result.is_success
        assert result.request.status is RequestStatus.APPROVED
        assert result.request.reviewed_by == organizer.actor_id
        assert result.request.review_notes == "Welcome"
        assert result.request.approved_amount is None

    def test_approve_with_decimal_override(self, service, organizer, submitted_request):
        result = service.update_status(
            submitted_request.id, "approve", actor=organizer, approved_amount=Decimal("20000")
        )
        assert result.request.approved_amount == Money.of("20000", "NOK")

    def test_override_in_wrong_currency(self, service, organizer, submitted_request):
        result = service.update_status(
            submitted_request.id, "approve", actor=organizer, approved_amount=Money.of("1000", "GBP")
        )
        assert result.status is CommandStatus.VALIDATION_FAILED
        assert "approved_amount" in result.field_errors

    def test_negative_override(self, service, organizer, submitted_request):
        result = service.update_status(
            submitted_request.id, "approve", actor=organizer, approved_amount=Decimal("-1")
        )
        assert result.status is CommandStatus.VALIDATION_FAILED

    def test_self_approval_blocked_even_for_admin(self, service, submitted_request, repository, captured_logs):
        speaker_admin = Actor(SPEAKER_ID, frozenset({Role.SPEAKER, Role.ADMIN}))
        result = service.update_status(submitted_request.id, "approve", actor=speaker_admin)
        assert result.status is CommandStatus.UNAUTHORIZED
        assert result.error_code == "SELF_APPROVAL"
        assert repository.get_request(submitted_request.id).status is RequestStatus.SUBMITTED
        assert any(r["message"] == "self_approval_blocked" for r in captured_logs())

    def test_plain_speaker_cannot_review(self, service, other_speaker, submitted_request):
        result = service.update_status(submitted_request.id, "reject", actor=other_speaker)
        assert result.status is CommandStatus.UNAUTHORIZED
        assert result.error_code == "NOT_AUTHORIZED"

    def test_reject_is_terminal(self, service, organizer, submitted_request):
        rejected = service.update_status(submitted_request.id, "reject", actor=organizer, notes="Over budget")
        assert rejected.request.status is RequestStatus.REJECTED
        again = service.update_status(submitted_request.id, "approve", actor=organizer)
        assert again.status is CommandStatus.INVALID_STATE

    def test_mark_paid(self, service, admin, organizer, submitted_request):
        service.update_status(submitted_request.id, "approve", actor=organizer)
        paid = service.update_status(submitted_request.id, "mark_paid", actor=admin)
        assert paid.request.status is RequestStatus.PAID
        assert paid.request.paid_at == FIXED_NOW

    def test_cannot_pay_unapproved(self, service, admin, submitted_request):
        result = service.update_status(submitted_request.id, "mark_paid", actor=admin)
        assert result.error_code == "INVALID_TRANSITION"

    def test_unknown_request(self, service, organizer):
        assert service.update_status("missing", "approve", actor=organizer).status is CommandStatus.NOT_FOUND


# =============================================================================
# Per-expense review
# =============================================================================


class TestUpdateExpenseStatus:

    def test_decide_one_expense(self, service, organizer, submitted_request):
        flight, hotel = submitted_request.expenses
        result = service.update_expense_status(flight.id, "approved", actor=organizer, notes="ok")
        assert result.is_success
        assert result.request.find_expense(flight.id).status is ExpenseStatus.APPROVED
        assert result.request.find_expense(hotel.id).status is ExpenseStatus.PENDING

    def test_self_review_blocked(self, service, speaker, submitted_request, captured_logs):
        result = service.update_expense_status(submitted_request.expenses[0].id, "approved", actor=speaker)
        assert result.error_code == "SELF_APPROVAL"
        blocked = [r for r in captured_logs() if r["message"] == "self_approval_blocked"]
        assert len(blocked) == 1

    def test_frozen_after_request_decision(self, service, organizer, submitted_request):
        service.update_status(submitted_request.id, "approve", actor=organizer)
        result = service.update_expense_status(submitted_request.expenses[0].id, "rejected", actor=organizer)
        assert result.status is CommandStatus.INVALID_STATE
        assert result.error_code == "REVIEW_FROZEN"

    def test_unknown_expense(self, service, organizer):
        result = service.update_expense_status("missing", "approved", actor=organizer)
        assert result.status is CommandStatus.NOT_FOUND


class InterleavingRepository(InMemoryTravelSupportRepository):
    """Runs ``on_next_read`` once, after a read has taken its snapshot."""

    def __init__(self):
        super().__init__()
        self.on_next_read = None

    def get_request(self, request_id):
        snapshot = super().get_request(request_id)
        hook, self.on_next_read = self.on_next_read, None
        if hook is not None:
            hook()
        return snapshot


class TestConcurrentReviewers:

    @pytest.fixture
    def repository(self):
        return InterleavingRepository()

    def test_request_approval_keeps_expense_decision_made_after_its_read(
        self, service, repository, submitted_request, organizer, admin
    ):
        flight, hotel = submitted_request.expenses
        repository.on_next_read = lambda: service.update_expense_status(flight.id, "rejected", actor=admin)

        result = service.update_status(submitted_request.id, "approve", actor=organizer)

        assert result.is_success
        stored = repository.get_request(submitted_request.id)
        assert stored.status is RequestStatus.APPROVED
        assert stored.find_expense(flight.id).status is ExpenseStatus.REJECTED
        assert stored.find_expense(flight.id).reviewed_by == admin.actor_id
        assert result.request == stored
        assert service.get_approved_amount(submitted_request.id, organizer).total == Money.of("0", "NOK")

    def test_expense_decision_after_request_rejected_is_frozen(
        self, service, repository, submitted_request, organizer, admin
    ):
        flight = submitted_request.expenses[0]
        repository.on_next_read = lambda: service.update_status(
            submitted_request.id, "reject", actor=admin, notes="Over budget"
        )

        result = service.update_expense_status(flight.id, "approved", actor=organizer)

        assert result.status is CommandStatus.INVALID_STATE
        assert result.error_code == "REVIEW_FROZEN"
        stored = repository.get_request(submitted_request.id)
        assert stored.status is RequestStatus.REJECTED
        assert stored.find_expense(flight.id).status is ExpenseStatus.PENDING

    def test_competing_request_decisions_first_one_wins(
        self, service, repository, submitted_request, organizer, admin
    ):
        repository.on_next_read = lambda: service.update_status(
            submitted_request.id, "reject", actor=admin, notes="Over budget"
        )

        result = service.update_status(submitted_request.id, "approve", actor=organizer)

        assert result.status is CommandStatus.INVALID_STATE
        assert result.error_code == "CONCURRENT_STATUS_CHANGE"
        assert repository.get_request(submitted_request.id).status is RequestStatus.REJECTED


# =============================================================================
# Queries
# =============================================================================


class TestAccess:

    def test_owner_and_reviewer_can_read(self, service, speaker, organizer, submitted_request):
        assert service.get_request(submitted_request.id, speaker) == submitted_request
        assert service.get_request(submitted_request.id, organizer) == submitted_request

    def test_other_speaker_cannot_read(self, service, other_speaker, submitted_request):
        with pytest.raises(NotRequestOwnerError):
            service.get_request(submitted_request.id, other_speaker)
        with pytest.raises(NotRequestOwnerError):
            service.get_summary(submitted_request.id, other_speaker)

    def test_unknown_request(self, service, speaker):
        with pytest.raises(RequestNotFoundError):
            service.get_request("missing", speaker)

    def test_get_request_for_speaker(self, service, speaker, other_speaker, organizer, submitted_request):
        assert service.get_request_for_speaker(SPEAKER_ID, CONFERENCE_ID, speaker) == submitted_request
        assert service.get_request_for_speaker(SPEAKER_ID, "conf-2030", organizer) is None
        with pytest.raises(AuthorizationError):
            service.get_request_for_speaker(SPEAKER_ID, CONFERENCE_ID, other_speaker)

    def test_list_requests(self, service, speaker, other_speaker, organizer, submitted_request):
        service.create_request(OTHER_SPEAKER_ID, CONFERENCE_ID, actor=other_speaker)
        assert [r.id for r in service.list_requests(speaker)] == [submitted_request.id]
        assert len(service.list_requests(organizer, conference_id=CONFERENCE_ID)) == 2
        assert service.list_requests(organizer, conference_id="conf-2030") == []


class TestMoneyQueries:

    def test_convert_currency(self, service):
        result = service.convert_currency(Decimal("1850"), "GBP", "NOK")
        assert result.amount == Decimal("24420.0")
        assert result.is_exact

    def test_summary_in_preferred_currency(self, service, organizer, submitted_request):
        summary = service.get_summary(submitted_request.id, organizer)
        # (1850.50 + 420.00) GBP * 13.2
        assert summary.pending.total == Decimal("29970.60")
        assert summary.grand_total == Decimal("29970.60")
        assert summary.receipt_count == 2
        assert summary.is_exact

    def test_summary_in_requested_currency(self, service, speaker, submitted_request):
        summary = service.get_summary(submitted_request.id, speaker, display_currency="USD")
        # 2270.50 * 1.25 = 2838.125, rounded half up
        assert summary.pending.total == Decimal("2838.13")

    def test_summary_degrades_when_rates_unavailable(
        self, service, speaker, submitted_request, rate_provider, captured_logs
    ):
        rate_provider.failing = True
        summary = service.get_summary(submitted_request.id, speaker)
        assert summary.pending.total == Decimal("2270.50")
        assert summary.notices[0].kind is StalenessKind.UNAVAILABLE
        assert any(r["message"] == "summary_not_exact" for r in captured_logs())

    def test_outage_does_not_refetch_per_expense(self, service, speaker, draft, rate_provider, exchange_rates):
        for i in range(5):
            service.add_expense(
                draft.id, make_expense_input(amount=Decimal("10") + i, currency="USD"), actor=speaker
            )
        exchange_rates.clear_cache()
        rate_provider.failing = True
        rate_provider.calls.clear()

        first = service.get_summary(draft.id, speaker, "NOK")
        second = service.get_summary(draft.id, speaker, "NOK")

        assert rate_provider.calls == ["USD"]
        assert first.pending.total == second.pending.total == Decimal("60.00")

    def test_total_reimbursable_excludes_rejected(self, service, speaker, organizer, submitted_request):
        hotel = submitted_request.expenses[1]
        service.update_expense_status(hotel.id, "rejected", actor=organizer)
        total = service.get_total_reimbursable(submitted_request.id, speaker)
        assert total.total == Money.of("24426.6", "NOK")

    def test_approved_amount_sums_approved_expenses(self, service, organizer, submitted_request):
        flight = submitted_request.expenses[0]
        service.update_expense_status(flight.id, "approved", actor=organizer)
        amount = service.get_approved_amount(submitted_request.id, organizer)
        assert amount.total == Money.of("24426.6", "NOK")
        assert not amount.is_override

    def test_approved_amount_prefers_override(self, service, organizer, submitted_request):
        service.update_status(submitted_request.id, "approve", actor=organizer, approved_amount=Decimal("20000"))
        amount = service.get_approved_amount(submitted_request.id, organizer)
        assert amount.total == Money.of("20000", "NOK")
        assert amount.is_override

    def test_expense_warnings(self, service, speaker, draft):
        request = service.add_expense(
            draft.id, make_expense_input(amount=Decimal("500")), actor=speaker
        ).request
        warnings = service.get_expense_warnings(draft.id, request.expenses[0].id, speaker)
        assert [w.code for w in warnings] == ["round_amount"]


# =============================================================================
# Wiring and unexpected failures
# =============================================================================


class ExplodingRepository(InMemoryTravelSupportRepository):
    def find_request(self, speaker_id, conference_id):
        raise RuntimeError("database is on fire")


class TestWiring:

    def test_from_settings(self, repository, deterministic_clock):
        settings = TravelSupportSettings(base_currency="EUR")
        service = TravelSupportService.from_settings(settings, repository, FakeStorage(), clock=deterministic_clock)
        assert service.base_currency.value == "EUR"
        assert service.convert_currency(Decimal("5"), "EUR", "EUR").amount == Decimal("5")

    def test_close_releases_rate_client_once(self, monkeypatch, repository, deterministic_clock):
        closed = []

        class RecordingProvider(HttpExchangeRateProvider):
            def close(self):
                closed.append(self)
                super().close()

        monkeypatch.setattr(service_module, "HttpExchangeRateProvider", RecordingProvider)
        service = TravelSupportService.from_settings(
            TravelSupportSettings(), repository, FakeStorage(), clock=deterministic_clock
        )
        service.close()
        service.close()
        assert len(closed) == 1

    def test_close_without_owned_clients(self, service):
        service.close()

    def test_unexpected_errors_propagate(self, exchange_rates, receipt_service, deterministic_clock, speaker, captured_logs):
        service = TravelSupportService(
            ExplodingRepository(), exchange_rates, receipt_service, clock=deterministic_clock
        )
        with pytest.raises(RuntimeError):
            service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker)
        errors = [r for r in captured_logs() if r["message"] == "travel_request_create_error"]
        assert errors and errors[0]["exc_type"] == "RuntimeError"
