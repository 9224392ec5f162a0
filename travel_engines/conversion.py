"""
travel_engines.conversion -- Pure currency conversion against a rate table.

Responsibility:
    Turn (amount, from, to, table) into a ``ConversionResult``.  Decides the
    identity, non-convertible and missing-rate cases; the caching and
    fetching of tables lives in ``travel_services.exchange_rate_service``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import travel_kernel/domain/ types.

Invariants enforced:
    - Same currency is identity: rate 1, no table lookup, no rounding, so
      sums over identical-currency amounts are exact.
    - ``OTHER`` on either side is never converted; the raw amount is
      returned in its own currency with a NOT_CONVERTIBLE notice.
    - A missing table or missing rate degrades to identity with an
      UNAVAILABLE notice instead of raising.
    - Results are not rounded; display rounding belongs to the caller.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from travel_kernel.domain.currency import SupportedCurrency, currency_label
from travel_kernel.domain.rates import (
    ConversionResult,
    ExchangeRateTable,
    StalenessKind,
    StalenessWarning,
)


class Converter(Protocol):
    """Anything that can convert one amount with a staleness caveat."""

    def convert_with_details(
        self,
        amount: Decimal,
        from_currency: SupportedCurrency | str,
        to_currency: SupportedCurrency | str,
        *,
        custom_currency: str | None = None,
    ) -> ConversionResult: ...


def cross_rate(table: ExchangeRateTable, from_code: str, to_code: str) -> Decimal | None:
    """Rate converting ``from_code`` into ``to_code`` using any table base."""
    if table.base == from_code:
        return table.rate_to(to_code)
    from_rate = table.rate_to(from_code)
    to_rate = table.rate_to(to_code)
    if from_rate is None or to_rate is None:
        return None
    return to_rate / from_rate


def identity_result(amount: Decimal, currency: SupportedCurrency) -> ConversionResult:
    return ConversionResult(
        amount=amount,
        currency=currency.value,
        original_amount=amount,
        original_currency=currency.value,
        rate=Decimal("1"),
        converted=True,
    )


def not_convertible_result(
    amount: Decimal,
    from_currency: SupportedCurrency,
    to_currency: SupportedCurrency,
    custom_currency: str | None = None,
) -> ConversionResult:
    label = currency_label(from_currency, custom_currency)
    return ConversionResult(
        amount=amount,
        currency=label,
        original_amount=amount,
        original_currency=label,
        rate=None,
        converted=False,
        notice=StalenessWarning(
            kind=StalenessKind.NOT_CONVERTIBLE,
            message=f"Cannot convert {label} to {to_currency.value}; showing the original amount",
            from_currency=label,
            to_currency=to_currency.value,
        ),
    )


def convert_amount(
    amount: Decimal,
    from_currency: SupportedCurrency,
    to_currency: SupportedCurrency,
    table: ExchangeRateTable | None,
    *,
    custom_currency: str | None = None,
    stale: bool = False,
) -> ConversionResult:
    """
    Convert ``amount`` with the given table.

    Args:
        table: Table whose base is normally ``from_currency``; any base that
            quotes both currencies works.  None means no rates are known.
        custom_currency: Display code when ``from_currency`` is OTHER.
        stale: The table is past its refresh window and a refetch failed;
            a successful conversion carries a STALE notice.
    """
    if SupportedCurrency.OTHER in (from_currency, to_currency):
        return not_convertible_result(amount, from_currency, to_currency, custom_currency)

    if from_currency is to_currency:
        return identity_result(amount, from_currency)

    rate = cross_rate(table, from_currency.value, to_currency.value) if table else None
    if rate is None:
        return ConversionResult(
            amount=amount,
            currency=from_currency.value,
            original_amount=amount,
            original_currency=from_currency.value,
            rate=None,
            converted=False,
            notice=StalenessWarning(
                kind=StalenessKind.UNAVAILABLE,
                message=(
                    f"Exchange rate {from_currency.value}->{to_currency.value} unavailable; "
                    "amount shown unconverted and may not be accurate"
                ),
                from_currency=from_currency.value,
                to_currency=to_currency.value,
                last_updated=table.fetched_at if table else None,
            ),
        )

    notice = None
    if stale:
        notice = StalenessWarning(
            kind=StalenessKind.STALE,
            message=(
                f"Exchange rates for {table.base} last updated "
                f"{table.fetched_at.isoformat()}; amounts may not be accurate"
            ),
            from_currency=from_currency.value,
            to_currency=to_currency.value,
            last_updated=table.fetched_at,
        )

    return ConversionResult(
        amount=amount * rate,
        currency=to_currency.value,
        original_amount=amount,
        original_currency=from_currency.value,
        rate=rate,
        converted=True,
        notice=notice,
    )


def counts_in_target(result: ConversionResult) -> bool:
    """Whether a result may be added into a target-currency total.

    Non-convertible (OTHER) amounts are never added; identity fallbacks for
    unavailable rates are added as a best effort, carrying their notice.
    """
    return result.notice is None or result.notice.kind is not StalenessKind.NOT_CONVERTIBLE
