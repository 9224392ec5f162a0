"""
Pytest fixtures for the travel support test suite.

Provides:
- Structured logging configured once per session, plus a log capture fixture
- A deterministic clock
- Fake exchange-rate provider and file storage collaborators
- Wired services over the in-memory repository
- An in-memory SQLite engine for ORM and repository tests
- A submitted-request scenario built through the service facade
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from travel_config.schema import TravelSupportSettings
from travel_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from travel_kernel.domain.clock import DeterministicClock
from travel_kernel.domain.models import Actor, ExpenseCategory, Role
from travel_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from travel_modules.travel_support.repository import InMemoryTravelSupportRepository
from travel_modules.travel_support.service import TravelSupportService
from travel_services.exchange_rate_service import ExchangeRateService
from travel_services.receipt_service import ReceiptService
from tests.factories import (
    ADMIN_ID,
    CONFERENCE_ID,
    FIXED_NOW,
    ORGANIZER_ID,
    OTHER_SPEAKER_ID,
    SPEAKER_ID,
    FakeRateProvider,
    FakeStorage,
    make_banking_details,
    make_expense_input,
    pdf_receipt,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture travel_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "request_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("travel_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def rate_provider() -> FakeRateProvider:
    return FakeRateProvider()


@pytest.fixture
def exchange_rates(rate_provider, deterministic_clock) -> ExchangeRateService:
    return ExchangeRateService(rate_provider, clock=deterministic_clock)


@pytest.fixture
def storage():
    storage = FakeStorage()
    yield storage
    storage.release.set()


@pytest.fixture
def receipt_service(storage, deterministic_clock) -> ReceiptService:
    return ReceiptService(storage, clock=deterministic_clock, timeout_seconds=5.0)


@pytest.fixture
def repository() -> InMemoryTravelSupportRepository:
    return InMemoryTravelSupportRepository()


@pytest.fixture
def settings() -> TravelSupportSettings:
    return TravelSupportSettings()


@pytest.fixture
def service(repository, exchange_rates, receipt_service, settings, deterministic_clock):
    return TravelSupportService(
        repository=repository,
        exchange_rates=exchange_rates,
        receipts=receipt_service,
        settings=settings,
        clock=deterministic_clock,
    )


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def speaker() -> Actor:
    return Actor.speaker(SPEAKER_ID)


@pytest.fixture
def other_speaker() -> Actor:
    return Actor.speaker(OTHER_SPEAKER_ID)


@pytest.fixture
def organizer() -> Actor:
    return Actor.organizer(ORGANIZER_ID)


@pytest.fixture
def admin() -> Actor:
    return Actor(ADMIN_ID, frozenset({Role.ADMIN}))


# =============================================================================
# Scenarios
# =============================================================================


@pytest.fixture
def submitted_request(service, speaker):
    """A submitted request with two GBP expenses, each with one receipt."""
    request = service.create_request(SPEAKER_ID, CONFERENCE_ID, actor=speaker).request
    service.update_banking_details(request.id, make_banking_details(), actor=speaker)
    service.add_expense(request.id, make_expense_input(), actor=speaker, files=[pdf_receipt("flight.pdf")])
    service.add_expense(
        request.id,
        make_expense_input(
            category=ExpenseCategory.ACCOMMODATION,
            description="Hotel, 3 nights",
            amount=Decimal("420.00"),
        ),
        actor=speaker,
        files=[pdf_receipt("hotel.pdf")],
    )
    result = service.submit(request.id, actor=speaker)
    assert result.is_success, result.message
    return result.request


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite schema per test."""
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()
