"""SQLite engines and sessions.

One engine per database file is shared by request handlers and the
background job worker. SQLite connections are opened with foreign keys
enforced so ON DELETE CASCADE / SET NULL behave as declared in the schema.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from engui.config import get_db_path
from engui.db.schema import Base


@dataclass
class Database:
    """An engine and the session factory bound to it."""

    engine: Engine
    sessions: sessionmaker


# Keyed by resolved database file path
_databases: dict[str, Database] = {}


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_sqlite_engine(url: str) -> Engine:
    """Create a SQLite engine with foreign keys enforced.

    StaticPool with check_same_thread=False lets FastAPI's worker threads
    and background tasks share the connection.

    Args:
        url: SQLAlchemy URL, e.g. "sqlite:///data/engui.db" or "sqlite://".
    """
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    return engine


def _database(db_path: Path | None) -> Database:
    path = Path(db_path) if db_path is not None else get_db_path()
    key = str(path.resolve())
    database = _databases.get(key)
    if database is None:
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_sqlite_engine(f"sqlite:///{path}")
        database = Database(engine, sessionmaker(bind=engine))
        _databases[key] = database
    return database


def get_engine(db_path: Path | None = None) -> Engine:
    """Cached engine for a database file (default ENGUI_DB_PATH)."""
    return _database(db_path).engine


def get_session(db_path: Path | None = None) -> Session:
    """New session; the caller closes it."""
    return _database(db_path).sessions()


@contextmanager
def get_db_session(db_path: Path | None = None) -> Generator[Session, None, None]:
    """Session scope for scripts and background work.

    Commits on success, rolls back on error, always closes.

    Example:
        with get_db_session() as session:
            repo.update_job(session, job_id, status="completed")
    """
    session = get_session(db_path)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(db_path: Path | None = None) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(get_engine(db_path))
