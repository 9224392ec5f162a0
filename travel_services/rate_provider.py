"""
travel_services.rate_provider -- Live exchange-rate source over HTTP.

Responsibility:
    Fetch the latest rate table for one base currency from the
    exchangerate-api.com family of endpoints and return it as Decimal
    rates.  The open-access endpoint is used unless an API key is
    configured.

Architecture position:
    Services -- the only module that talks to the rate API.  Caching and
    fallback live in ``travel_services.exchange_rate_service``.

Failure modes:
    - ``RateLimitedError`` on HTTP 429.
    - ``ExchangeRateFetchError`` on transport errors, other non-2xx
      responses, a non-"success" result, or a malformed payload.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

from travel_kernel.exceptions import ExchangeRateFetchError, RateLimitedError
from travel_kernel.logging_config import get_logger

logger = get_logger("services.rate_provider")

OPEN_ACCESS_URL = "https://open.er-api.com/v6/latest/{base}"
KEYED_URL = "https://v6.exchangerate-api.com/v6/{key}/latest/{base}"


class ExchangeRateProvider(Protocol):
    """Source of the latest rates for a base currency."""

    def fetch_rates(self, base: str) -> dict[str, Decimal]:
        """Units of each target currency per one unit of ``base``."""
        ...


class HttpExchangeRateProvider:
    """
    ``ExchangeRateProvider`` backed by exchangerate-api.com.

    Both endpoints answer ``{"result": "success", ...}``; the open one puts
    rates under ``rates`` and the keyed one under ``conversion_rates``.
    Rates are parsed straight into ``Decimal`` so no float ever enters the
    conversion path.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        open_url: str = OPEN_ACCESS_URL,
        keyed_url: str = KEYED_URL,
    ):
        self._api_key = api_key or None
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None
        self._open_url = open_url
        self._keyed_url = keyed_url
        if self._api_key is None:
            logger.info("exchange_rate_api_open_access")

    def url_for(self, base: str) -> str:
        if self._api_key:
            return self._keyed_url.format(key=self._api_key, base=base)
        return self._open_url.format(base=base)

    def fetch_rates(self, base: str) -> dict[str, Decimal]:
        base = base.upper()
        try:
            response = self._client.get(self.url_for(base))
        except httpx.HTTPError as exc:
            raise ExchangeRateFetchError(base, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError(base)
        if response.is_error:
            raise ExchangeRateFetchError(base, f"HTTP {response.status_code}")

        try:
            payload = response.json(parse_float=Decimal)
        except ValueError as exc:
            raise ExchangeRateFetchError(base, "response is not valid JSON") from exc

        return self._parse_rates(base, payload)

    def _parse_rates(self, base: str, payload: Any) -> dict[str, Decimal]:
        if not isinstance(payload, dict) or payload.get("result") != "success":
            reason = payload.get("error-type", "unsuccessful result") if isinstance(payload, dict) else "unexpected payload"
            raise ExchangeRateFetchError(base, str(reason))

        raw = payload.get("rates") or payload.get("conversion_rates")
        if not isinstance(raw, dict) or not raw:
            raise ExchangeRateFetchError(base, "payload has no rates")

        rates: dict[str, Decimal] = {}
        for code, value in raw.items():
            try:
                rate = Decimal(str(value))
            except InvalidOperation as exc:
                raise ExchangeRateFetchError(base, f"invalid rate for {code}: {value!r}") from exc
            if rate.is_finite() and rate > 0:
                rates[str(code).upper()] = rate

        logger.debug(
            "exchange_rates_parsed",
            extra={"base_currency": base, "rate_count": len(rates)},
        )
        return rates

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
