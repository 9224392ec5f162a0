"""
Exchange-rate value objects.

Responsibility:
    Immutable carriers for a fetched rate table, the cache status exposed to
    callers, and the outcome of a single conversion including any staleness
    caveat.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.  Produced by
    ``travel_services.exchange_rate_service`` and consumed by
    ``travel_engines.conversion`` and ``travel_engines.summary``.

Invariants enforced:
    - Rates are positive ``Decimal`` values keyed by upper-case code.
    - A table always converts its own base currency at rate 1.
    - Staleness is a value (``StalenessWarning``), never an exception.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class ExchangeRateTable:
    """Rates quoted as units of ``target`` per one unit of ``base``."""

    base: str
    rates: Mapping[str, Decimal] = field(hash=False)
    fetched_at: datetime
    refresh_window: timedelta

    def __post_init__(self) -> None:
        base = self.base.upper()
        normalized: dict[str, Decimal] = {}
        for code, rate in self.rates.items():
            if not isinstance(rate, Decimal):
                raise TypeError(f"Rate for {code} must be Decimal, got {type(rate).__name__}")
            if rate <= 0:
                raise ValueError(f"Rate for {code} must be positive, got {rate}")
            normalized[code.upper()] = rate
        normalized[base] = Decimal("1")
        object.__setattr__(self, "base", base)
        object.__setattr__(self, "rates", MappingProxyType(normalized))

    @property
    def next_update(self) -> datetime:
        return self.fetched_at + self.refresh_window

    def is_expired(self, now: datetime) -> bool:
        return now >= self.next_update

    def rate_to(self, target: str) -> Decimal | None:
        """Rate from ``base`` to ``target``, or None if the table lacks it."""
        return self.rates.get(target.upper())


@dataclass(frozen=True)
class CacheStatus:
    """What a caller can learn about the cached table for one base currency."""

    cached: bool
    last_updated: datetime | None = None
    next_update: datetime | None = None


class StalenessKind(str, Enum):
    STALE = "stale"
    UNAVAILABLE = "unavailable"
    NOT_CONVERTIBLE = "not_convertible"


@dataclass(frozen=True)
class StalenessWarning:
    """A caveat attached to a converted amount or a summary total."""

    kind: StalenessKind
    message: str
    from_currency: str
    to_currency: str
    last_updated: datetime | None = None


@dataclass(frozen=True)
class ConversionResult:
    """
    Outcome of converting one amount.

    ``converted`` is False when the amount was passed through unchanged
    because no conversion could be performed; ``amount`` is then still in
    ``original_currency``.
    """

    amount: Decimal
    currency: str
    original_amount: Decimal
    original_currency: str
    rate: Decimal | None
    converted: bool
    notice: StalenessWarning | None = None

    @property
    def is_exact(self) -> bool:
        return self.notice is None
