"""Engine setup from configuration and the session_scope helper."""

import pytest
from sqlalchemy import func, select

from labour_config.schema import DatabaseSettings
from labour_ledger.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine,
    reset_engine,
    session_scope,
)
from labour_ledger.models.worker import Worker


@pytest.fixture
def configured_engine(tmp_path):
    engine = init_engine(DatabaseSettings(url=f"sqlite:///{tmp_path / 'cfg.db'}"))
    create_tables()
    yield engine
    reset_engine()


def test_init_engine_uses_database_settings(configured_engine, tmp_path):
    assert get_engine() is configured_engine
    assert configured_engine.dialect.name == "sqlite"
    assert str(tmp_path / "cfg.db") in str(configured_engine.url)


def test_session_scope_commits(configured_engine, org_id):
    with session_scope() as session:
        session.add(Worker(organization_id=org_id, name="Asha", labour_code="B1"))

    with get_session_factory()() as session:
        assert session.scalar(select(func.count()).select_from(Worker)) == 1


def test_session_scope_rolls_back_on_error(configured_engine, org_id):
    with pytest.raises(RuntimeError):
        with session_scope() as session:
            session.add(Worker(organization_id=org_id, name="Asha", labour_code="B1"))
            session.flush()
            raise RuntimeError("abort")

    with get_session_factory()() as session:
        assert session.scalar(select(func.count()).select_from(Worker)) == 0


def test_uninitialized_engine_raises():
    reset_engine()
    with pytest.raises(RuntimeError, match="not initialized"):
        get_engine()
