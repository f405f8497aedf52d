"""
Configuration schema (``labour_config.schema``).

Frozen dataclasses produced by the loader.  Nothing here reads files; the
loader builds these from parsed YAML and ``get_active_config()`` returns
a ``LedgerSettings``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CurrencySettings:
    code: str = "INR"
    decimal_places: int = 2


@dataclass(frozen=True)
class RetrySettings:
    """Bounded optimistic-concurrency retry with exponential backoff."""

    max_attempts: int = 4
    base_delay_ms: int = 20
    max_delay_ms: int = 500


@dataclass(frozen=True)
class SplitSettings:
    manual_tolerance: Decimal = Decimal("0.01")
    # Re-run the calculator on reversal and compare with stored entries
    verify_plan_on_reversal: bool = True


@dataclass(frozen=True)
class ProductionRates:
    """Minor units paid per 1000 pieces."""

    production_rate: int = 23000
    thappi_rate: int = 12000


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///labour_ledger.db"
    echo: bool = False
    pool_size: int = 20


@dataclass(frozen=True)
class LedgerSettings:
    """The sole runtime configuration artifact."""

    config_id: str
    version: int
    organization_id: str | None
    currency: CurrencySettings
    retry: RetrySettings
    split: SplitSettings
    production: ProductionRates
    database: DatabaseSettings
    checksum: str
