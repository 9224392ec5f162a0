"""
travel_services -- Stateful services around the pure engines.

Responsibility:
    Services that hold I/O: the exchange-rate cache and its HTTP provider,
    receipt intake against file storage, and per-expense review decisions
    against a store.  This is the only layer below the module facade that
    may use wall-clock time, threads or the network.

Dependency direction:
    travel_services/ -> travel_engines/  (allowed)
    travel_services/ -> travel_kernel/   (allowed)
    travel_engines/  -> travel_services/ (FORBIDDEN)
    travel_kernel/   -> travel_services/ (FORBIDDEN)
"""

from travel_services.exchange_rate_service import ExchangeRateService
from travel_services.rate_provider import ExchangeRateProvider, HttpExchangeRateProvider
from travel_services.receipt_service import (
    FileStorage,
    ReceiptService,
    StoredFile,
    UploadBatchResult,
)
from travel_services.review_engine import ExpenseReviewStore, ReviewEngine

__all__ = [
    "ExchangeRateProvider",
    "ExchangeRateService",
    "ExpenseReviewStore",
    "FileStorage",
    "HttpExchangeRateProvider",
    "ReceiptService",
    "ReviewEngine",
    "StoredFile",
    "UploadBatchResult",
]
