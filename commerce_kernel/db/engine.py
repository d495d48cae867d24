"""
Engine and session management for the commerce kernel.

One process-wide engine and session factory, created by
``init_engine_from_url`` and torn down by ``reset_engine``.  Only
``create_tables`` / ``drop_tables`` import the models package.

Locking model:
    PostgreSQL runs READ COMMITTED; correlative allocation and stock
    adjustment take explicit row locks (SELECT ... FOR UPDATE).

    SQLite ignores FOR UPDATE, so every transaction is opened with
    BEGIN IMMEDIATE.  The write lock is taken at the start of the unit and
    writers queue behind each other for up to ``lock_timeout`` seconds,
    which gives the counter row and item stock the same protection.

Failure modes:
    - RuntimeError when a session is requested before initialization.
    - OperationalError when a lock wait times out; the unit rolls back.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from commerce_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine is not initialized; call init_engine_from_url() first"


def _sqlite_options(lock_timeout: int) -> dict[str, Any]:
    return {"connect_args": {"check_same_thread": False, "timeout": lock_timeout}}


def _server_options(pool_pre_ping: bool, pool_recycle: int) -> dict[str, Any]:
    return {
        "pool_pre_ping": pool_pre_ping,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def _begin_immediate(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Take BEGIN away from the driver so the "begin" hook below issues it
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str | URL,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_timeout: int = 30,
) -> Engine:
    """
    Create the kernel engine, replacing any previous one.

    In-memory SQLite is not supported: each pooled connection would see its
    own empty database.
    """
    global _engine, _session_factory

    url = make_url(database_url)
    dialect = url.get_backend_name()
    if dialect == "sqlite":
        options = _sqlite_options(lock_timeout)
    else:
        options = _server_options(pool_pre_ping, pool_recycle)

    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        **options,
    )
    if dialect == "sqlite":
        _begin_immediate(_engine)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "pool_size": pool_size, "lock_timeout": lock_timeout},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need their own sessions (audit sink, threads)."""
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session that commits on normal exit and rolls back on error.

    For flush-only services (contacts, items) whose caller owns the unit::

        with session_scope() as session:
            ContactService(session, actor_id).create(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from commerce_kernel.db.base import Base
    import commerce_kernel.models  # noqa: F401  registers every table

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every kernel table.  Tests and local resets only."""
    from commerce_kernel.db.base import Base
    import commerce_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


atexit.register(reset_engine)
