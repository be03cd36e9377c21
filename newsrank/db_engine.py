"""
SQLAlchemy engine and session management for the article store.

The engine is created lazily from ``config.get_database_url()``. Tests swap
in their own engine with ``set_engine``.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from newsrank.config import get_database_url

# SQLite waits this long (ms) for a competing writer instead of failing.
SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _on_sqlite_connect(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.close()


def build_engine(url: str) -> Engine:
    """Engine for ``url``. File-backed SQLite is shared with worker threads
    and tolerates overlapping ingestion runs; other backends pre-ping."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)
    engine = create_engine(url, connect_args={"check_same_thread": False})
    if parsed.database and parsed.database != ":memory:":
        event.listen(engine, "connect", _on_sqlite_connect)
    return engine


def _bind(engine: Engine) -> None:
    global _engine, _session_factory
    _engine = engine
    # Dataclass conversion happens after commit; keep loaded attributes.
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)


def get_engine() -> Engine:
    if _engine is None:
        _bind(build_engine(get_database_url()))
    return _engine


def set_engine(engine: Engine) -> None:
    _bind(engine)


def reset_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """One unit of work: commit on clean exit, roll back on any error."""
    if _session_factory is None:
        get_engine()
    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
