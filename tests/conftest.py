"""
Pytest fixtures for the labour ledger test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- A LedgerOrchestrator wired to a DeterministicClock and no-op backoff
- Worker / account factories
- Structured log capture

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of a
  temporary SQLite file.  Tables are dropped and recreated for every test.
"""

import json
import logging
import os
from io import StringIO
from uuid import uuid4

import pytest

from labour_config import get_active_config
from labour_ledger.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from labour_ledger.domain.clock import DeterministicClock
from labour_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from labour_ledger.services.ledger_orchestrator import LedgerOrchestrator


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture labour_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.apply_wage_event(...)
            logs = captured_logs()
            assert any(r["message"] == "mutation_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("labour_ledger")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Engine with freshly created tables; disposed after the test."""
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'ledger.db'}"
    engine = init_engine_from_url(url, pool_size=10, max_overflow=10)
    if os.environ.get("DATABASE_URL"):
        drop_tables()
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A bare session for service-level tests; rolled back afterwards."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def settings():
    return get_active_config()


@pytest.fixture
def ledger(session_factory, deterministic_clock, settings):
    """LedgerOrchestrator with a fixed clock and no retry sleeps."""
    return LedgerOrchestrator(
        session_factory,
        clock=deterministic_clock,
        settings=settings,
        sleep=lambda seconds: None,
    )


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def org_id():
    return uuid4()


@pytest.fixture
def make_worker(ledger, org_id):
    """Factory: ``make_worker("B1", opening_balance=0)`` -> WorkerInfo."""
    counter = iter(range(1, 10_000))

    def _make(labour_code=None, opening_balance=0, name=None):
        code = labour_code or f"L{next(counter)}"
        return ledger.create_worker(
            org_id, name or f"Worker {code}", code, opening_balance
        )

    return _make


@pytest.fixture
def three_workers(make_worker):
    return [make_worker("B1"), make_worker("B2"), make_worker("B3")]
