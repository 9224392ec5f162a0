"""
travel_config -- single public entrypoint for travel support settings.

Responsibility:
    ``get_settings()`` is the only way to obtain configuration at runtime.
    It reads the packaged ``defaults.yaml``, merges an optional override
    file on top, applies the environment override for the exchange-rate
    API key, and returns frozen ``TravelSupportSettings``.

Failure modes:
    - ``FileNotFoundError`` -- override path does not exist.
    - ``ValueError`` -- a value fails schema validation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from travel_config.loader import API_KEY_ENV_VAR, load_yaml_file, merge_settings, parse_settings
from travel_config.schema import (
    ExchangeRateSettings,
    ExpenseWarningSettings,
    ReceiptSettings,
    TravelSupportSettings,
)

_logger = logging.getLogger("travel_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> TravelSupportSettings:
    """
    Load settings.

    Args:
        path: Optional YAML file whose keys override the defaults.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge_settings(data, load_yaml_file(Path(path)))

    settings = parse_settings(data, os.environ if environ is None else environ)

    _logger.info(
        "TRAVEL_CONFIG_TRACE",
        extra={
            "trace_type": "TRAVEL_CONFIG_TRACE",
            "source": str(path) if path is not None else "defaults",
            "checksum": settings.checksum,
            "base_currency": settings.base_currency.value,
            "api_key_configured": settings.exchange_rates.api_key is not None,
        },
    )
    return settings


__all__ = [
    "API_KEY_ENV_VAR",
    "ExchangeRateSettings",
    "ExpenseWarningSettings",
    "ReceiptSettings",
    "TravelSupportSettings",
    "get_settings",
]
