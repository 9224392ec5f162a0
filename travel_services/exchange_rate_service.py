"""
travel_services.exchange_rate_service -- Cached, fail-soft currency conversion.

Responsibility:
    Keep one rate table per base currency, refetch it when its refresh
    window expires (or on ``refresh()``), and convert amounts through the
    pure ``travel_engines.conversion`` engine.

Architecture position:
    Services -- holds the cache, the provider and the clock.  An explicit,
    injectable object: there is no module-level cache.

Invariants enforced:
    - Same-currency and OTHER conversions never touch the cache or the
      provider.
    - Only one refetch runs at a time.  While it runs, readers that already
      have a table get the previous one without blocking; readers with no
      table at all wait for the fetch.
    - A failed refetch keeps the old table and marks it stale; with no
      table, conversion degrades to identity with an UNAVAILABLE notice.
      Conversion never raises because rates are unavailable.
    - After a failed fetch the provider is not called again for that base
      until ``retry_after`` has passed, whether or not a table exists.
      ``refresh()`` and ``clear_cache()`` ignore the backoff.

Failure modes:
    - Provider errors are logged (``exchange_rate_fetch_failed``) and
      surfaced as notices, never propagated from ``convert*``.
    - ``refresh()`` reports failures per base in its return value.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from travel_engines.conversion import convert_amount
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.currency import SupportedCurrency
from travel_kernel.domain.rates import CacheStatus, ConversionResult, ExchangeRateTable
from travel_kernel.exceptions import ExchangeRateFetchError
from travel_kernel.logging_config import get_logger
from travel_services.rate_provider import ExchangeRateProvider

logger = get_logger("services.exchange_rates")

DEFAULT_REFRESH_WINDOW = timedelta(hours=6)
DEFAULT_RETRY_AFTER = timedelta(minutes=15)


@dataclass(frozen=True)
class _CacheEntry:
    table: ExchangeRateTable
    stale: bool = False


class ExchangeRateService:
    """
    Converts amounts using cached live rates.

    Usage::

        service = ExchangeRateService(HttpExchangeRateProvider(), clock=clock)
        service.convert(Decimal("1850"), "GBP", "NOK")
    """

    def __init__(
        self,
        provider: ExchangeRateProvider,
        *,
        clock: Clock | None = None,
        refresh_window: timedelta = DEFAULT_REFRESH_WINDOW,
        retry_after: timedelta = DEFAULT_RETRY_AFTER,
    ):
        if refresh_window <= timedelta(0):
            raise ValueError("refresh_window must be positive")
        if retry_after <= timedelta(0):
            raise ValueError("retry_after must be positive")
        self._provider = provider
        self._clock = clock or SystemClock()
        self._refresh_window = refresh_window
        self._retry_after = retry_after
        self._cache: dict[str, _CacheEntry] = {}
        self._retry_at: dict[str, datetime] = {}
        self._fetch_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def convert(
        self,
        amount: Decimal,
        from_currency: SupportedCurrency | str,
        to_currency: SupportedCurrency | str,
    ) -> Decimal:
        """Converted amount only; see ``convert_with_details`` for caveats."""
        return self.convert_with_details(amount, from_currency, to_currency).amount

    def convert_with_details(
        self,
        amount: Decimal,
        from_currency: SupportedCurrency | str,
        to_currency: SupportedCurrency | str,
        *,
        custom_currency: str | None = None,
    ) -> ConversionResult:
        source = SupportedCurrency.parse(from_currency)
        target = SupportedCurrency.parse(to_currency)

        needs_table = (
            source is not target
            and source.is_convertible
            and target.is_convertible
        )
        entry = self._entry_for(source.value) if needs_table else None

        return convert_amount(
            amount,
            source,
            target,
            entry.table if entry else None,
            custom_currency=custom_currency,
            stale=entry.stale if entry else False,
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def cache_status(self, base: SupportedCurrency | str) -> CacheStatus:
        entry = self._cache.get(SupportedCurrency.parse(base).value)
        if entry is None:
            return CacheStatus(cached=False)
        return CacheStatus(
            cached=True,
            last_updated=entry.table.fetched_at,
            next_update=entry.table.next_update,
        )

    def clear_cache(self) -> None:
        """Drop every table; the next conversion refetches."""
        with self._fetch_lock:
            self._cache.clear()
            self._retry_at.clear()
        logger.info("exchange_rate_cache_cleared")

    def refresh(
        self, bases: tuple[SupportedCurrency | str, ...] | None = None
    ) -> dict[str, bool]:
        """
        Refetch eagerly, for a scheduler.

        Args:
            bases: Currencies to refresh; defaults to every cached base.

        Returns:
            ``{base: succeeded}`` for each base attempted.
        """
        codes = (
            [SupportedCurrency.parse(b).value for b in bases]
            if bases is not None
            else list(self._cache)
        )
        outcome: dict[str, bool] = {}
        with self._fetch_lock:
            for code in codes:
                outcome[code] = self._fetch_locked(code) is not None
        return outcome

    def _is_fresh(self, entry: _CacheEntry | None) -> bool:
        return entry is not None and not entry.table.is_expired(self._clock.now_utc())

    def _backing_off(self, base: str) -> bool:
        retry_at = self._retry_at.get(base)
        return retry_at is not None and self._clock.now_utc() < retry_at

    def _entry_for(self, base: str) -> _CacheEntry | None:
        entry = self._cache.get(base)
        if self._is_fresh(entry) or self._backing_off(base):
            return entry

        if entry is not None:
            # Someone else is refetching: serve the previous table.
            if not self._fetch_lock.acquire(blocking=False):
                return entry
        else:
            self._fetch_lock.acquire()

        try:
            current = self._cache.get(base)
            # Another reader may have fetched, or failed, while this one waited.
            if self._is_fresh(current) or self._backing_off(base):
                return current
            refreshed = self._fetch_locked(base)
            return refreshed if refreshed is not None else self._cache.get(base)
        finally:
            self._fetch_lock.release()

    def _fetch_locked(self, base: str) -> _CacheEntry | None:
        """Fetch and store a table. Caller holds ``_fetch_lock``."""
        try:
            rates = self._provider.fetch_rates(base)
        except ExchangeRateFetchError as exc:
            previous = self._cache.get(base)
            if previous is not None:
                self._cache[base] = _CacheEntry(previous.table, stale=True)
            retry_at = self._clock.now_utc() + self._retry_after
            self._retry_at[base] = retry_at
            logger.warning(
                "exchange_rate_fetch_failed",
                extra={
                    "base_currency": base,
                    "error_code": exc.code,
                    "reason": exc.reason,
                    "has_cached_table": previous is not None,
                    "retry_at": retry_at,
                },
            )
            return None

        self._retry_at.pop(base, None)

        table = ExchangeRateTable(
            base=base,
            rates=rates,
            fetched_at=self._clock.now_utc(),
            refresh_window=self._refresh_window,
        )
        entry = _CacheEntry(table)
        self._cache[base] = entry
        logger.info(
            "exchange_rates_refreshed",
            extra={
                "base_currency": base,
                "rate_count": len(table.rates),
                "next_update": table.next_update,
            },
        )
        return entry
