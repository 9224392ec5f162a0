"""Pure domain layer: value objects, models and workflow types. Zero I/O."""

from travel_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from travel_kernel.domain.currency import CurrencyRegistry, SupportedCurrency
from travel_kernel.domain.models import (
    REVIEWER_ROLES,
    Actor,
    BankingDetails,
    ExpenseCategory,
    ExpenseInput,
    ExpenseStatus,
    Receipt,
    RequestStatus,
    Role,
    TravelExpense,
    TravelSupportRequest,
)
from travel_kernel.domain.rates import (
    CacheStatus,
    ConversionResult,
    ExchangeRateTable,
    StalenessKind,
    StalenessWarning,
)
from travel_kernel.domain.values import Money
from travel_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Actor",
    "BankingDetails",
    "CacheStatus",
    "Clock",
    "ConversionResult",
    "CurrencyRegistry",
    "DeterministicClock",
    "ExchangeRateTable",
    "ExpenseCategory",
    "ExpenseInput",
    "ExpenseStatus",
    "Guard",
    "Money",
    "REVIEWER_ROLES",
    "Receipt",
    "RequestStatus",
    "Role",
    "StalenessKind",
    "StalenessWarning",
    "SupportedCurrency",
    "SystemClock",
    "Transition",
    "TravelExpense",
    "TravelSupportRequest",
    "Workflow",
]
