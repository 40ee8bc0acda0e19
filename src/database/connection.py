"""Database connection and session management."""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.paths import DATA_DIR


def get_database_url() -> str:
    """Build the database URL from environment variables.

    Uses DATABASE_URL when set, otherwise a SQLite file under the data directory.

    :returns: The database connection URL.
    """
    url = os.environ.get("DATABASE_URL")
    if url:
        return url

    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DATA_DIR / 'medication_reminders.db'}"


def create_db_engine(url: str | None = None, *, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine for the database.

    :param url: Database URL. Defaults to get_database_url().
    :param echo: If True, log all SQL statements.
    :returns: A configured SQLAlchemy engine.
    """
    url = url or get_database_url()
    if url.startswith("sqlite"):
        # Timer handlers and API requests share the engine across threads
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


@dataclass
class _DatabaseState:
    """Container for database connection state."""

    engine: Engine | None = field(default=None)
    session_factory: sessionmaker[Session] | None = field(default=None)


_state = _DatabaseState()


def get_engine() -> Engine:
    """Get or create the database engine singleton.

    :returns: The database engine.
    """
    if _state.engine is None:
        _state.engine = create_db_engine()
    return _state.engine


def get_session_factory() -> sessionmaker[Session]:
    """Get or create the session factory singleton.

    :returns: A sessionmaker bound to the database engine.
    """
    if _state.session_factory is None:
        _state.session_factory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _state.session_factory


def reset_database_state() -> None:
    """Dispose the engine and forget the cached session factory."""
    if _state.engine is not None:
        _state.engine.dispose()
    _state.engine = None
    _state.session_factory = None


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Open a session from the given factory with automatic cleanup.

    Commits on successful completion, rolls back on exception.

    :param factory: Session factory to open the session from.
    :yields: A database session.
    """
    session = factory()
    try:
        yield session
        session.commit()

    except Exception:
        session.rollback()
        raise

    finally:
        session.close()


@contextmanager
def get_session() -> Iterator[Session]:
    """Create a new database session with automatic cleanup.

    Commits on successful completion, rolls back on exception.

    :yields: A database session.
    """
    with session_scope(get_session_factory()) as session:
        yield session
