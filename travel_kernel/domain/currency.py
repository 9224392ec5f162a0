"""Currency -- supported reimbursement currencies and precision-derived rounding."""

import re
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from travel_kernel.exceptions import UnsupportedCurrencyError

_CUSTOM_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")


class SupportedCurrency(str, Enum):
    """Currencies an expense may be entered in.

    ``OTHER`` carries a free-text code on the expense and is never converted.
    """

    NOK = "NOK"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    SEK = "SEK"
    DKK = "DKK"
    OTHER = "OTHER"

    @property
    def is_convertible(self) -> bool:
        return self is not SupportedCurrency.OTHER

    @classmethod
    def parse(cls, value: Any) -> "SupportedCurrency":
        """Coerce a code or enum member, raising UnsupportedCurrencyError."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise UnsupportedCurrencyError(value)


class CurrencyRegistry:
    """Display precision of each supported currency."""

    _DECIMAL_PLACES: ClassVar[dict[str, int]] = {
        "NOK": 2,
        "USD": 2,
        "EUR": 2,
        "GBP": 2,
        "SEK": 2,
        "DKK": 2,
    }

    # Custom (OTHER) codes are displayed with two decimals.
    _DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        return cls._DECIMAL_PLACES.get(code.upper(), cls._DEFAULT_DECIMAL_PLACES)

    @classmethod
    def quantize_exponent(cls, code: str) -> Decimal:
        places = cls.get_decimal_places(code)
        return Decimal(1).scaleb(-places)


def is_valid_custom_code(code: str | None) -> bool:
    """A custom currency code is three ASCII letters, e.g. ``CAD``."""
    if not code:
        return False
    return bool(_CUSTOM_CODE_PATTERN.match(code.strip().upper()))


def normalize_custom_code(code: str | None) -> str | None:
    if code is None:
        return None
    stripped = code.strip().upper()
    return stripped or None


def currency_label(currency: SupportedCurrency, custom_currency: str | None = None) -> str:
    """Code shown to users: the custom code for OTHER, the ISO code otherwise."""
    if currency is SupportedCurrency.OTHER:
        return normalize_custom_code(custom_currency) or SupportedCurrency.OTHER.value
    return currency.value
