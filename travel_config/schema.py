"""
Travel support settings schema.

Frozen dataclasses the loader parses YAML into.  Each section converts
itself into the policy object its engine or service consumes, so callers
never thread raw numbers through.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from travel_engines.expense_validation import (
    ALLOWED_RECEIPT_CONTENT_TYPES,
    DEFAULT_CATEGORY_LIMITS,
    MAX_RECEIPT_BYTES,
    ExpenseAdvisoryLimits,
    ReceiptRules,
)
from travel_kernel.domain.currency import SupportedCurrency
from travel_kernel.domain.models import ExpenseCategory
from travel_services.rate_provider import KEYED_URL, OPEN_ACCESS_URL


@dataclass(frozen=True)
class ExchangeRateSettings:
    refresh_hours: int = 6
    retry_after_minutes: int = 15
    http_timeout_seconds: float = 10.0
    open_access_url: str = OPEN_ACCESS_URL
    keyed_url: str = KEYED_URL
    api_key: str | None = None

    def __post_init__(self) -> None:
        if self.refresh_hours <= 0:
            raise ValueError("exchange_rates.refresh_hours must be positive")
        if self.retry_after_minutes <= 0:
            raise ValueError("exchange_rates.retry_after_minutes must be positive")
        if self.http_timeout_seconds <= 0:
            raise ValueError("exchange_rates.http_timeout_seconds must be positive")
        for name in ("open_access_url", "keyed_url"):
            if "{base}" not in getattr(self, name):
                raise ValueError(f"exchange_rates.{name} must contain '{{base}}'")

    @property
    def refresh_window(self) -> timedelta:
        return timedelta(hours=self.refresh_hours)

    @property
    def retry_after(self) -> timedelta:
        return timedelta(minutes=self.retry_after_minutes)


@dataclass(frozen=True)
class ReceiptSettings:
    upload_timeout_seconds: float = 30.0
    max_upload_workers: int = 4
    max_bytes: int = MAX_RECEIPT_BYTES
    allowed_content_types: frozenset[str] = ALLOWED_RECEIPT_CONTENT_TYPES

    def __post_init__(self) -> None:
        if self.upload_timeout_seconds <= 0:
            raise ValueError("receipts.upload_timeout_seconds must be positive")
        if self.max_upload_workers <= 0:
            raise ValueError("receipts.max_upload_workers must be positive")
        if not self.allowed_content_types:
            raise ValueError("receipts.allowed_content_types cannot be empty")

    def rules(self) -> ReceiptRules:
        return ReceiptRules(
            allowed_content_types=self.allowed_content_types,
            max_bytes=self.max_bytes,
        )


@dataclass(frozen=True)
class ExpenseWarningSettings:
    max_age_years: int = 2
    older_expense_days: int = 30
    round_amount_threshold: Decimal = Decimal("100")
    category_limits: Mapping[ExpenseCategory, Decimal] = field(
        default_factory=lambda: DEFAULT_CATEGORY_LIMITS
    )

    def __post_init__(self) -> None:
        for category, limit in self.category_limits.items():
            if limit < 0:
                raise ValueError(f"expense_warnings.category_limits.{category.value} cannot be negative")
        object.__setattr__(
            self, "category_limits", MappingProxyType(dict(self.category_limits))
        )

    def limits(self) -> ExpenseAdvisoryLimits:
        return ExpenseAdvisoryLimits(
            category_limits=self.category_limits,
            max_age_years=self.max_age_years,
            older_expense_days=self.older_expense_days,
            round_amount_threshold=self.round_amount_threshold,
        )


@dataclass(frozen=True)
class TravelSupportSettings:
    """Everything configurable about the travel support core."""

    base_currency: SupportedCurrency = SupportedCurrency.NOK
    exchange_rates: ExchangeRateSettings = field(default_factory=ExchangeRateSettings)
    receipts: ReceiptSettings = field(default_factory=ReceiptSettings)
    expense_warnings: ExpenseWarningSettings = field(default_factory=ExpenseWarningSettings)
    checksum: str = ""

    def __post_init__(self) -> None:
        if not SupportedCurrency.parse(self.base_currency).is_convertible:
            raise ValueError("base_currency must be a convertible currency")
        object.__setattr__(self, "base_currency", SupportedCurrency.parse(self.base_currency))
