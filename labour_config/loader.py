"""
Configuration Loader (``labour_config.loader``).

Responsibility
--------------
Loads YAML configuration files, overlays an organization's file on the
default set, and parses the result into ``labour_config.schema``
dataclasses.  Runtime callers go through ``labour_config.get_active_config()``.

Failure modes
-------------
* Missing default file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError`` with a descriptive message.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from labour_config.schema import (
    CurrencySettings,
    DatabaseSettings,
    LedgerSettings,
    ProductionRates,
    RetrySettings,
    SplitSettings,
)

DEFAULT_SET_NAME = "default"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_overlay(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``overlay`` onto a copy of ``base``."""
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_overlay(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_raw_config(
    config_dir: Path, organization_id: str | None = None
) -> dict[str, Any]:
    """Default set, overlaid with ``<organization_id>.yaml`` when present."""
    data = load_yaml_file(config_dir / f"{DEFAULT_SET_NAME}.yaml")
    if organization_id is not None:
        org_path = config_dir / f"{organization_id}.yaml"
        if org_path.exists():
            data = merge_overlay(data, load_yaml_file(org_path))
    return data


def _positive_int(data: dict[str, Any], key: str, default: int, *, allow_zero: bool = False) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{key} must be {'>= 0' if allow_zero else '> 0'}, got {value}")
    return value


def parse_currency(data: dict[str, Any]) -> CurrencySettings:
    code = str(data.get("code", "INR")).upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"currency.code must be a 3-letter ISO code, got {code!r}")
    return CurrencySettings(
        code=code,
        decimal_places=_positive_int(data, "decimal_places", 2, allow_zero=True),
    )


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    retry = RetrySettings(
        max_attempts=_positive_int(data, "max_attempts", 4),
        base_delay_ms=_positive_int(data, "base_delay_ms", 20, allow_zero=True),
        max_delay_ms=_positive_int(data, "max_delay_ms", 500, allow_zero=True),
    )
    if retry.max_delay_ms < retry.base_delay_ms:
        raise ValueError("retry.max_delay_ms must be >= retry.base_delay_ms")
    return retry


def parse_split(data: dict[str, Any]) -> SplitSettings:
    try:
        tolerance = Decimal(str(data.get("manual_tolerance", "0.01")))
    except InvalidOperation:
        raise ValueError(
            f"split.manual_tolerance is not a number: {data.get('manual_tolerance')!r}"
        ) from None
    if not tolerance.is_finite() or tolerance < 0:
        raise ValueError(f"split.manual_tolerance must be >= 0, got {tolerance}")
    return SplitSettings(
        manual_tolerance=tolerance,
        verify_plan_on_reversal=bool(data.get("verify_plan_on_reversal", True)),
    )


def parse_production(data: dict[str, Any]) -> ProductionRates:
    return ProductionRates(
        production_rate=_positive_int(data, "production_rate", 23000, allow_zero=True),
        thappi_rate=_positive_int(data, "thappi_rate", 12000, allow_zero=True),
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=str(data.get("url", DatabaseSettings.url)),
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data, "pool_size", 20),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(
    data: dict[str, Any], organization_id: str | None = None
) -> LedgerSettings:
    """Build a ``LedgerSettings`` from a merged raw dict."""
    return LedgerSettings(
        config_id=str(data.get("config_id", DEFAULT_SET_NAME)),
        version=_positive_int(data, "version", 1),
        organization_id=organization_id,
        currency=parse_currency(data.get("currency") or {}),
        retry=parse_retry(data.get("retry") or {}),
        split=parse_split(data.get("split") or {}),
        production=parse_production(data.get("production") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
    )
