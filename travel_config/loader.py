"""
Configuration Loader (``travel_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into the frozen
``travel_config.schema`` dataclasses.  Callers go through
``travel_config.get_settings()``; this module is the parsing half.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Money-like values are parsed as ``Decimal`` from their string form;
  a YAML float for a limit is refused.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed source, recorded on the settings object.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` with the offending key in the message.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from travel_config.schema import (
    ExchangeRateSettings,
    ExpenseWarningSettings,
    ReceiptSettings,
    TravelSupportSettings,
)
from travel_kernel.domain.currency import SupportedCurrency
from travel_kernel.domain.models import ExpenseCategory

API_KEY_ENV_VAR = "TRAVEL_EXCHANGE_RATE_API_KEY"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: Mapping[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed settings mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, float):
        raise ValueError(f"{key} must be quoted or an integer, got float {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{key} is not a valid decimal: {value!r}") from e


def merge_settings(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; override wins, nested sections merge key by key."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_exchange_rates(data: Mapping[str, Any], environ: Mapping[str, str]) -> ExchangeRateSettings:
    defaults = ExchangeRateSettings()
    api_key = environ.get(API_KEY_ENV_VAR) or data.get("api_key") or None
    return ExchangeRateSettings(
        refresh_hours=int(data.get("refresh_hours", defaults.refresh_hours)),
        retry_after_minutes=int(data.get("retry_after_minutes", defaults.retry_after_minutes)),
        http_timeout_seconds=float(data.get("http_timeout_seconds", defaults.http_timeout_seconds)),
        open_access_url=str(data.get("open_access_url", defaults.open_access_url)),
        keyed_url=str(data.get("keyed_url", defaults.keyed_url)),
        api_key=api_key,
    )


def parse_receipts(data: Mapping[str, Any]) -> ReceiptSettings:
    defaults = ReceiptSettings()
    types = data.get("allowed_content_types")
    return ReceiptSettings(
        upload_timeout_seconds=float(data.get("upload_timeout_seconds", defaults.upload_timeout_seconds)),
        max_upload_workers=int(data.get("max_upload_workers", defaults.max_upload_workers)),
        max_bytes=int(data.get("max_bytes", defaults.max_bytes)),
        allowed_content_types=(
            frozenset(str(t).lower() for t in types) if types is not None
            else defaults.allowed_content_types
        ),
    )


def parse_expense_warnings(data: Mapping[str, Any]) -> ExpenseWarningSettings:
    defaults = ExpenseWarningSettings()
    limits = dict(defaults.category_limits)
    for name, value in (data.get("category_limits") or {}).items():
        try:
            category = ExpenseCategory(name)
        except ValueError as e:
            raise ValueError(f"expense_warnings.category_limits: unknown category {name!r}") from e
        limits[category] = parse_decimal(value, f"expense_warnings.category_limits.{name}")

    threshold = data.get("round_amount_threshold")
    return ExpenseWarningSettings(
        max_age_years=int(data.get("max_age_years", defaults.max_age_years)),
        older_expense_days=int(data.get("older_expense_days", defaults.older_expense_days)),
        round_amount_threshold=(
            parse_decimal(threshold, "expense_warnings.round_amount_threshold")
            if threshold is not None
            else defaults.round_amount_threshold
        ),
        category_limits=limits,
    )


def parse_settings(
    data: Mapping[str, Any],
    environ: Mapping[str, str] | None = None,
) -> TravelSupportSettings:
    """
    Parse a settings mapping.

    Postconditions:
        - Returns a fully populated frozen ``TravelSupportSettings``.
        - ``TRAVEL_EXCHANGE_RATE_API_KEY`` in ``environ`` overrides the
          file's ``exchange_rates.api_key``.
    """
    environ = environ if environ is not None else {}
    return TravelSupportSettings(
        base_currency=SupportedCurrency.parse(data.get("base_currency", "NOK")),
        exchange_rates=parse_exchange_rates(data.get("exchange_rates") or {}, environ),
        receipts=parse_receipts(data.get("receipts") or {}),
        expense_warnings=parse_expense_warnings(data.get("expense_warnings") or {}),
        checksum=compute_checksum(data),
    )
