"""
Engine and session factory for the labour ledger.

One engine per process, created from a URL or from the ``database`` block of
the active LedgerSettings.  Services never open sessions themselves: the
orchestrator takes the session factory so each retry attempt gets a fresh
session.

Dialect handling:
    - PostgreSQL runs at READ COMMITTED.  Lost updates on balances are caught
      by the version counters on workers and accounts, not by isolation.
    - SQLite (tests, single-user installs) gets foreign keys switched on and
      a busy timeout so a second writer waits for the lock.

The immutability listeners are registered every time an engine is created.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from labour_config.schema import DatabaseSettings
from labour_ledger.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_on_connect(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Create the process engine, replacing (and disposing) any previous one.

    Args:
        database_url: ``postgresql+psycopg://...`` or ``sqlite:///path``.
        echo: Log every SQL statement.
        pool_size, max_overflow: Connection pool bounds (PostgreSQL only).
        sqlite_busy_timeout: Seconds a SQLite writer waits for the lock.
    """
    global _engine, _session_factory

    reset_engine()

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": sqlite_busy_timeout},
        )
        event.listen(engine, "connect", _sqlite_on_connect)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    from labour_ledger.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


def init_engine(settings: DatabaseSettings) -> Engine:
    """Create the process engine from the ``database`` block of LedgerSettings."""
    return init_engine_from_url(
        settings.url, echo=settings.echo, pool_size=settings.pool_size
    )


def _require_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine() first.")
    return _session_factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    return _require_factory()


def get_session() -> Session:
    return _require_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on normal exit; roll back and re-raise on error."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from labour_ledger.db.base import Base
    import labour_ledger.models  # noqa: F401  (registers the tables)

    return Base.metadata


def create_tables() -> None:
    metadata = _metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(metadata.tables)})


def drop_tables() -> None:
    """Drop every ledger table.  Test and local use only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
