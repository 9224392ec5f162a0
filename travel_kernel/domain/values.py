"""
Values -- Immutable, self-validating money value object.

Responsibility:
    Pairs a ``Decimal`` amount with a ``SupportedCurrency`` wherever a
    monetary value crosses a module boundary (approved-amount overrides,
    summary totals, reimbursable totals).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are ``Decimal``, never ``float``.
    - Arithmetic never mixes currencies silently.
    - No implicit rounding; callers call ``round()`` for display.

Failure modes:
    - ValueError on construction with an invalid amount or float input.
    - UnsupportedCurrencyError for currency codes outside the supported set.
    - ValueError when arithmetic mixes different currencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from travel_kernel.domain.currency import CurrencyRegistry, SupportedCurrency


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - amount is always a Decimal (never float)
        - currency is always a SupportedCurrency member
    """

    amount: Decimal
    currency: SupportedCurrency

    def __post_init__(self) -> None:
        if isinstance(self.amount, float):
            raise ValueError(f"Money amount must not be float: {self.amount!r}")
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount}") from e
        if not self.amount.is_finite():
            raise ValueError(f"Invalid amount: {self.amount}")
        object.__setattr__(self, "currency", SupportedCurrency.parse(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | SupportedCurrency) -> Money:
        """Factory accepting a code string or enum member."""
        if isinstance(amount, (str, int)):
            amount = Decimal(str(amount))
        return cls(amount=amount, currency=SupportedCurrency.parse(currency))

    @classmethod
    def zero(cls, currency: str | SupportedCurrency) -> Money:
        return cls(amount=Decimal("0"), currency=SupportedCurrency.parse(currency))

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's display precision."""
        exponent = CurrencyRegistry.quantize_exponent(self.currency.value)
        return Money(self.amount.quantize(exponent, rounding=rounding), self.currency)

    def _check_currency(self, other: Money) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency is not self.currency:
            raise ValueError(
                f"Currency mismatch: {self.currency.value} vs {other.currency.value}"
            )

    def __add__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.value}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency.value!r})"
