"""
Configuration loading tests.

Covers the default set, organization overlays, validation errors, checksum
determinism and the LEDGER_CONFIG_TRACE audit line.
"""

import shutil
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

import labour_config
from labour_config import get_active_config
from labour_config.loader import compute_checksum, merge_overlay, parse_settings
from labour_ledger.services.ledger_orchestrator import LedgerOrchestrator
from labour_ledger.services.transaction_runner import RetryPolicy

SETS_DIR = Path(labour_config.__file__).parent / "sets"


@pytest.fixture
def config_dir(tmp_path):
    shutil.copy(SETS_DIR / "default.yaml", tmp_path / "default.yaml")
    return tmp_path


def _write(path, data):
    path.write_text(yaml.safe_dump(data))


class TestDefaultSet:
    def test_defaults(self):
        settings = get_active_config()
        assert settings.config_id == "default"
        assert settings.currency.code == "INR"
        assert settings.currency.decimal_places == 2
        assert settings.split.manual_tolerance == Decimal("0.01")
        assert settings.split.verify_plan_on_reversal is True
        assert settings.production.production_rate == 23000
        assert settings.production.thappi_rate == 12000
        assert settings.retry.max_attempts == 4

    def test_retry_policy_from_settings(self):
        policy = RetryPolicy.from_settings(get_active_config().retry)
        assert policy.max_attempts == 4
        assert policy.base_delay == pytest.approx(0.02)
        assert policy.max_delay == pytest.approx(0.5)

    def test_checksum_is_deterministic(self):
        assert get_active_config().checksum == get_active_config().checksum


class TestOverlay:
    def test_org_overlay_replaces_only_given_keys(self, config_dir):
        _write(config_dir / "org-7.yaml", {"production": {"thappi_rate": 15000}})
        settings = get_active_config("org-7", config_dir=config_dir)
        assert settings.organization_id == "org-7"
        assert settings.production.thappi_rate == 15000
        assert settings.production.production_rate == 23000

    def test_missing_overlay_uses_default(self, config_dir):
        settings = get_active_config("no-such-org", config_dir=config_dir)
        assert settings.production.thappi_rate == 12000

    def test_overlay_changes_checksum(self, config_dir):
        _write(config_dir / "org-7.yaml", {"split": {"manual_tolerance": "0.05"}})
        base = get_active_config(config_dir=config_dir)
        overlaid = get_active_config("org-7", config_dir=config_dir)
        assert base.checksum != overlaid.checksum
        assert overlaid.split.manual_tolerance == Decimal("0.05")

    def test_currency_overlay_drives_money_codec(self, config_dir):
        currency = {"code": "jpy", "decimal_places": 0}
        _write(config_dir / "org-jp.yaml", {"currency": currency})
        settings = get_active_config("org-jp", config_dir=config_dir)
        ledger = LedgerOrchestrator(lambda: None, settings=settings)
        assert ledger.money.to_minor_units("1500") == 1500
        assert ledger.money.format(1500) == "JPY 1500"

    def test_merge_is_recursive(self):
        merged = merge_overlay({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}


class TestValidation:
    def test_missing_default_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(config_dir=tmp_path)

    @pytest.mark.parametrize(
        "data",
        [
            {"retry": {"max_attempts": 0}},
            {"retry": {"base_delay_ms": 100, "max_delay_ms": 10}},
            {"currency": {"code": "RUPEE"}},
            {"split": {"manual_tolerance": "-1"}},
            {"split": {"manual_tolerance": "lots"}},
            {"production": {"production_rate": -5}},
            {"version": "one"},
        ],
    )
    def test_out_of_range_values(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


def test_config_trace_logged(captured_logs):
    settings = get_active_config()
    traces = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
    assert traces
    assert traces[-1]["checksum"] == settings.checksum
    assert traces[-1]["config_id"] == "default"
