"""
Travel support persistence adapters.

``TravelSupportRepository`` is the port the service facade and the review
engine write through.  Two adapters implement it:

* ``InMemoryTravelSupportRepository`` -- dict-backed, for tests and
  single-process demos.
* ``SqlAlchemyTravelSupportRepository`` -- the ORM models in ``orm.py``,
  one ``session_scope`` per call.

Both enforce one request per (speaker, conference).  Three write paths
never overlap:

* ``save_request`` -- creation and draft edits; refused when the stored
  status has moved on.
* ``save_request_state`` -- lifecycle transitions; request-level columns
  only, guarded by the status the transition was computed from.
* ``save_expense`` -- one expense's review decision; refused unless the
  parent is still submitted at write time.
"""

from __future__ import annotations

import threading
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from travel_kernel.db.engine import session_scope
from travel_kernel.domain.models import RequestStatus, TravelExpense, TravelSupportRequest
from travel_kernel.exceptions import (
    ConcurrentStatusChangeError,
    DuplicateRequestError,
    ExpenseNotFoundError,
    RequestNotFoundError,
    ReviewFrozenError,
)
from travel_kernel.logging_config import get_logger
from travel_modules.travel_support.orm import TravelExpenseModel, TravelSupportRequestModel

logger = get_logger("modules.travel_support.repository")


class TravelSupportRepository(Protocol):
    def get_request(self, request_id: str) -> TravelSupportRequest: ...

    def find_request(self, speaker_id: str, conference_id: str) -> TravelSupportRequest | None: ...

    def list_requests(
        self,
        conference_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> list[TravelSupportRequest]: ...

    def save_request(self, request: TravelSupportRequest, actor_id: str | None = None) -> None: ...

    def save_request_state(
        self,
        request: TravelSupportRequest,
        expected_status: RequestStatus,
        actor_id: str | None = None,
    ) -> TravelSupportRequest: ...

    def find_request_id_for_expense(self, expense_id: str) -> str | None: ...

    def save_expense(self, expense: TravelExpense, actor_id: str | None = None) -> None: ...


class InMemoryTravelSupportRepository:
    """Process-local repository. Snapshots are immutable, so no copying is needed."""

    def __init__(self) -> None:
        self._requests: dict[str, TravelSupportRequest] = {}
        self._lock = threading.RLock()

    def get_request(self, request_id: str) -> TravelSupportRequest:
        with self._lock:
            try:
                return self._requests[request_id]
            except KeyError:
                raise RequestNotFoundError(request_id) from None

    def find_request(self, speaker_id: str, conference_id: str) -> TravelSupportRequest | None:
        with self._lock:
            for request in self._requests.values():
                if request.speaker_id == speaker_id and request.conference_id == conference_id:
                    return request
        return None

    def list_requests(
        self,
        conference_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> list[TravelSupportRequest]:
        with self._lock:
            return [
                r for r in self._requests.values()
                if (conference_id is None or r.conference_id == conference_id)
                and (status is None or r.status is RequestStatus(status))
            ]

    def save_request(self, request: TravelSupportRequest, actor_id: str | None = None) -> None:
        with self._lock:
            stored = self._requests.get(request.id)
            if stored is None:
                existing = self.find_request(request.speaker_id, request.conference_id)
                if existing is not None:
                    raise DuplicateRequestError(
                        request.speaker_id, request.conference_id, existing.id
                    )
            elif stored.status is not request.status:
                raise ConcurrentStatusChangeError(
                    request.id, request.status.value, stored.status.value
                )
            self._requests[request.id] = request

    def save_request_state(
        self,
        request: TravelSupportRequest,
        expected_status: RequestStatus,
        actor_id: str | None = None,
    ) -> TravelSupportRequest:
        with self._lock:
            stored = self.get_request(request.id)
            expected = RequestStatus(expected_status)
            if stored.status is not expected:
                raise ConcurrentStatusChangeError(request.id, expected.value, stored.status.value)
            # Expenses come from the store so decisions made since the read survive.
            persisted = stored.with_state_of(request)
            self._requests[request.id] = persisted
            return persisted

    def find_request_id_for_expense(self, expense_id: str) -> str | None:
        with self._lock:
            for request in self._requests.values():
                if any(e.id == expense_id for e in request.expenses):
                    return request.id
        return None

    def save_expense(self, expense: TravelExpense, actor_id: str | None = None) -> None:
        with self._lock:
            request = self._requests.get(expense.request_id)
            if request is None or not any(e.id == expense.id for e in request.expenses):
                raise ExpenseNotFoundError(expense.id)
            if request.status is not RequestStatus.SUBMITTED:
                raise ReviewFrozenError(expense.id, request.status.value)
            # Re-read under the lock so concurrent decisions on siblings survive.
            self._requests[request.id] = request.with_reviewed_expense(expense)


class SqlAlchemyTravelSupportRepository:
    """
    Repository over the travel support ORM models.

    Args:
        session_factory: Session factory; defaults to the one configured by
            ``travel_kernel.db.engine.init_engine_from_url``.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory)

    @staticmethod
    def _lock_request(session: Session, request_id: str) -> TravelSupportRequestModel:
        # Row lock serializes transitions and expense decisions on one request.
        model = session.execute(
            select(TravelSupportRequestModel)
            .where(TravelSupportRequestModel.id == request_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(request_id)
        return model

    def get_request(self, request_id: str) -> TravelSupportRequest:
        with self._scope() as session:
            model = session.get(TravelSupportRequestModel, request_id)
            if model is None:
                raise RequestNotFoundError(request_id)
            return model.to_dto()

    def find_request(self, speaker_id: str, conference_id: str) -> TravelSupportRequest | None:
        with self._scope() as session:
            model = session.scalars(
                select(TravelSupportRequestModel).where(
                    TravelSupportRequestModel.speaker_id == speaker_id,
                    TravelSupportRequestModel.conference_id == conference_id,
                )
            ).one_or_none()
            return model.to_dto() if model is not None else None

    def list_requests(
        self,
        conference_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> list[TravelSupportRequest]:
        stmt = select(TravelSupportRequestModel)
        if conference_id is not None:
            stmt = stmt.where(TravelSupportRequestModel.conference_id == conference_id)
        if status is not None:
            stmt = stmt.where(TravelSupportRequestModel.status == RequestStatus(status).value)
        stmt = stmt.order_by(TravelSupportRequestModel.created_at, TravelSupportRequestModel.id)
        with self._scope() as session:
            return [m.to_dto() for m in session.scalars(stmt)]

    def save_request(self, request: TravelSupportRequest, actor_id: str | None = None) -> None:
        with self._scope() as session:
            model = session.get(TravelSupportRequestModel, request.id, with_for_update=True)
            if model is None:
                existing_id = session.scalars(
                    select(TravelSupportRequestModel.id).where(
                        TravelSupportRequestModel.speaker_id == request.speaker_id,
                        TravelSupportRequestModel.conference_id == request.conference_id,
                    )
                ).one_or_none()
                if existing_id is not None:
                    raise DuplicateRequestError(
                        request.speaker_id, request.conference_id, existing_id
                    )
                session.add(TravelSupportRequestModel.from_dto(
                    request, created_by_id=actor_id or request.speaker_id
                ))
            elif model.status != request.status.value:
                raise ConcurrentStatusChangeError(request.id, request.status.value, model.status)
            else:
                model.apply_dto(request, updated_by_id=actor_id)
        logger.debug(
            "travel_request_persisted",
            extra={"request_id": request.id, "status": request.status.value},
        )

    def save_request_state(
        self,
        request: TravelSupportRequest,
        expected_status: RequestStatus,
        actor_id: str | None = None,
    ) -> TravelSupportRequest:
        """Persist a lifecycle transition without rewriting any expense row."""
        expected = RequestStatus(expected_status)
        with self._scope() as session:
            model = self._lock_request(session, request.id)
            if model.status != expected.value:
                raise ConcurrentStatusChangeError(request.id, expected.value, model.status)
            model.apply_state(request, updated_by_id=actor_id)
            session.flush()
            persisted = model.to_dto()
        logger.debug(
            "travel_request_state_persisted",
            extra={
                "request_id": request.id,
                "from_status": expected.value,
                "status": request.status.value,
            },
        )
        return persisted

    def find_request_id_for_expense(self, expense_id: str) -> str | None:
        with self._scope() as session:
            return session.scalars(
                select(TravelExpenseModel.request_id).where(TravelExpenseModel.id == expense_id)
            ).one_or_none()

    def save_expense(self, expense: TravelExpense, actor_id: str | None = None) -> None:
        """Persist a review decision on one expense row only."""
        with self._scope() as session:
            model = session.get(TravelExpenseModel, expense.id)
            if model is None or model.request_id != expense.request_id:
                raise ExpenseNotFoundError(expense.id)
            parent = self._lock_request(session, model.request_id)
            if parent.status != RequestStatus.SUBMITTED.value:
                raise ReviewFrozenError(expense.id, parent.status)
            model.apply_review(expense, updated_by_id=actor_id)
