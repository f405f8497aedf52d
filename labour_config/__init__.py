"""
labour_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It loads ``sets/default.yaml``, overlays
    ``sets/<organization_id>.yaml`` when one exists, validates the result
    and returns a frozen ``LedgerSettings``.

Audit relevance:
    Every call emits a ``LEDGER_CONFIG_TRACE`` log entry with the config id,
    version and checksum, tying ledger behaviour (retry bounds, split
    tolerance, production rates) to the exact configuration in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from labour_config.loader import load_raw_config, parse_settings
from labour_config.schema import LedgerSettings

_logger = logging.getLogger("labour_ledger.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = ["get_active_config", "LedgerSettings"]


def get_active_config(
    organization_id: str | None = None,
    config_dir: Path | None = None,
) -> LedgerSettings:
    """
    Load, validate and return the active configuration.

    Args:
        organization_id: Overlay ``<organization_id>.yaml`` if present.
        config_dir: Override path to the configuration sets directory.

    Raises:
        FileNotFoundError: If ``default.yaml`` is missing.
        ValueError: If a value is out of range.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    org_key = str(organization_id) if organization_id is not None else None

    settings = parse_settings(load_raw_config(sets_dir, org_key), org_key)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "config_organization_id": org_key,
            "currency": settings.currency.code,
            "max_attempts": settings.retry.max_attempts,
        },
    )
    return settings
