"""
SQLAlchemy ORM persistence models for the Travel Support module.

Responsibility
--------------
Persist travel support requests, their expenses and the receipts attached
to each expense.  Conversion results, summaries and warnings are computed
on read and never stored.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``SqlAlchemyTravelSupportRepository``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* One request per (speaker, conference): ``uq_travel_request_speaker_conference``.
* ``TravelExpenseModel`` belongs to exactly one request; ``ReceiptModel``
  belongs to exactly one expense.  Children are owned (delete-orphan).
* The reviewer override is stored as amount + currency; both or neither.
* Request transitions write through ``apply_state`` and per-expense
  decisions through ``apply_review``; neither touches the other's rows.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from travel_kernel.db.base import TrackedBase


# ---------------------------------------------------------------------------
# TravelSupportRequestModel
# ---------------------------------------------------------------------------


class TravelSupportRequestModel(TrackedBase):
    """
    One speaker's reimbursement request for one conference.

    Maps to the ``TravelSupportRequest`` DTO in ``travel_kernel.domain.models``.

    Guarantees:
        - (``speaker_id``, ``conference_id``) is unique.
        - ``status`` follows draft -> submitted -> approved -> paid, or
          submitted -> rejected.
        - Banking details are stored inline; they have no identity of their own.
    """

    __tablename__ = "travel_support_requests"

    __table_args__ = (
        UniqueConstraint("speaker_id", "conference_id", name="uq_travel_request_speaker_conference"),
        Index("idx_travel_request_conference", "conference_id"),
        Index("idx_travel_request_status", "status"),
    )

    speaker_id: Mapped[str] = mapped_column(String(64), nullable=False)
    conference_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")

    beneficiary_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    iban: Mapped[str | None] = mapped_column(String(64), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    swift_code: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    preferred_currency: Mapped[str] = mapped_column(String(5), nullable=False, default="NOK")

    approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    approved_currency: Mapped[str | None] = mapped_column(String(5), nullable=True)
    expected_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Relationships
    expenses: Mapped[list["TravelExpenseModel"]] = relationship(
        "TravelExpenseModel",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TravelExpenseModel.position",
    )

    def to_dto(self):
        from travel_kernel.domain.models import BankingDetails, TravelSupportRequest
        from travel_kernel.domain.values import Money

        approved = None
        if self.approved_amount is not None and self.approved_currency is not None:
            approved = Money.of(self.approved_amount, self.approved_currency)

        return TravelSupportRequest(
            id=self.id,
            speaker_id=self.speaker_id,
            conference_id=self.conference_id,
            banking_details=BankingDetails(
                beneficiary_name=self.beneficiary_name,
                bank_name=self.bank_name,
                iban=self.iban,
                account_number=self.account_number,
                swift_code=self.swift_code,
                country=self.country,
                preferred_currency=self.preferred_currency,
            ),
            expenses=tuple(e.to_dto() for e in self.expenses),
            status=self.status,
            approved_amount=approved,
            expected_payment_date=self.expected_payment_date,
            paid_at=self.paid_at,
            review_notes=self.review_notes,
            submitted_at=self.submitted_at,
            reviewed_at=self.reviewed_at,
            reviewed_by=self.reviewed_by,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: str) -> "TravelSupportRequestModel":
        model = cls(id=dto.id, created_by_id=created_by_id)
        if dto.created_at is not None:
            model.created_at = dto.created_at
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto, updated_by_id: str | None = None) -> None:
        """Copy every scalar field of ``dto`` onto this row and sync expenses by id."""
        banking = dto.banking_details
        self.speaker_id = dto.speaker_id
        self.conference_id = dto.conference_id
        self.beneficiary_name = banking.beneficiary_name
        self.bank_name = banking.bank_name
        self.iban = banking.iban
        self.account_number = banking.account_number
        self.swift_code = banking.swift_code
        self.country = banking.country
        self.preferred_currency = banking.preferred_currency.value
        self.apply_state(dto, updated_by_id=updated_by_id)

        existing = {e.id: e for e in self.expenses}
        synced: list[TravelExpenseModel] = []
        for position, expense in enumerate(dto.expenses):
            row = existing.get(expense.id)
            if row is None:
                row = TravelExpenseModel.from_dto(expense, created_by_id=self.created_by_id)
            else:
                row.apply_dto(expense, updated_by_id=updated_by_id)
            row.position = position
            synced.append(row)
        self.expenses = synced

    def apply_state(self, dto, updated_by_id: str | None = None) -> None:
        """Copy only the lifecycle and request-level review columns."""
        self.status = dto.status.value
        if dto.approved_amount is not None:
            self.approved_amount = dto.approved_amount.amount
            self.approved_currency = dto.approved_amount.currency.value
        else:
            self.approved_amount = None
            self.approved_currency = None
        self.expected_payment_date = dto.expected_payment_date
        self.paid_at = dto.paid_at
        self.review_notes = dto.review_notes
        self.submitted_at = dto.submitted_at
        self.reviewed_at = dto.reviewed_at
        self.reviewed_by = dto.reviewed_by
        if updated_by_id is not None:
            self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return f"<TravelSupportRequestModel {self.id} {self.speaker_id}@{self.conference_id} [{self.status}]>"


# ---------------------------------------------------------------------------
# TravelExpenseModel
# ---------------------------------------------------------------------------


class TravelExpenseModel(TrackedBase):
    """
    A single expense line on a travel support request.

    Maps to the ``TravelExpense`` DTO in ``travel_kernel.domain.models``.

    Guarantees:
        - ``request_id`` references an existing request.
        - ``custom_currency`` is only set when ``currency`` is ``OTHER``.
        - Review fields are written independently of the parent row.
    """

    __tablename__ = "travel_expenses"

    __table_args__ = (
        Index("idx_travel_expense_request", "request_id"),
        Index("idx_travel_expense_status", "status"),
    )

    request_id: Mapped[str] = mapped_column(
        ForeignKey("travel_support_requests.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(5), nullable=False)
    custom_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    expense_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    request: Mapped["TravelSupportRequestModel"] = relationship(
        "TravelSupportRequestModel",
        back_populates="expenses",
    )
    receipts: Mapped[list["ReceiptModel"]] = relationship(
        "ReceiptModel",
        back_populates="expense",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReceiptModel.position",
    )

    def to_dto(self):
        from travel_kernel.domain.models import TravelExpense

        return TravelExpense(
            id=self.id,
            request_id=self.request_id,
            category=self.category,
            description=self.description,
            amount=self.amount,
            currency=self.currency,
            expense_date=self.expense_date,
            custom_currency=self.custom_currency,
            location=self.location,
            receipts=tuple(r.to_dto() for r in self.receipts),
            status=self.status,
            review_notes=self.review_notes,
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: str) -> "TravelExpenseModel":
        model = cls(id=dto.id, request_id=dto.request_id, created_by_id=created_by_id)
        if dto.created_at is not None:
            model.created_at = dto.created_at
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto, updated_by_id: str | None = None) -> None:
        self.category = dto.category.value
        self.description = dto.description
        self.amount = dto.amount
        self.currency = dto.currency.value
        self.custom_currency = dto.custom_currency
        self.expense_date = dto.expense_date
        self.location = dto.location
        self.apply_review(dto, updated_by_id=updated_by_id)
        self.receipts = [
            ReceiptModel.from_dto(receipt, position=i, created_by_id=self.created_by_id)
            for i, receipt in enumerate(dto.receipts)
        ]

    def apply_review(self, dto, updated_by_id: str | None = None) -> None:
        """Copy only the review decision fields."""
        self.status = dto.status.value
        self.review_notes = dto.review_notes
        self.reviewed_by = dto.reviewed_by
        self.reviewed_at = dto.reviewed_at
        if updated_by_id is not None:
            self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return f"<TravelExpenseModel {self.id} {self.category} {self.amount} {self.currency} [{self.status}]>"


# ---------------------------------------------------------------------------
# ReceiptModel
# ---------------------------------------------------------------------------


class ReceiptModel(TrackedBase):
    """
    A stored receipt file attached to an expense.

    Maps to the ``Receipt`` DTO in ``travel_kernel.domain.models``.
    Receipts are identified by their position within the expense.
    """

    __tablename__ = "travel_expense_receipts"

    __table_args__ = (
        Index("idx_travel_receipt_expense", "expense_id"),
    )

    expense_id: Mapped[str] = mapped_column(ForeignKey("travel_expenses.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_reference: Mapped[str] = mapped_column(String(500), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(nullable=False)
    url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    expense: Mapped["TravelExpenseModel"] = relationship(
        "TravelExpenseModel",
        back_populates="receipts",
    )

    def to_dto(self):
        from travel_kernel.domain.models import Receipt

        return Receipt(
            file_reference=self.file_reference,
            filename=self.filename,
            uploaded_at=self.uploaded_at,
            url=self.url,
            content_type=self.content_type,
            size=self.size,
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by_id: str) -> "ReceiptModel":
        return cls(
            position=position,
            file_reference=dto.file_reference,
            filename=dto.filename,
            uploaded_at=dto.uploaded_at,
            url=dto.url,
            content_type=dto.content_type,
            size=dto.size,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<ReceiptModel {self.filename} #{self.position}>"
