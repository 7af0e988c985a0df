"""Database engine and the store handle passed through the pipeline."""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from trial_harvest.db.models import Base
from trial_harvest.errors import StoreConnectionError

# Default database path (can be overridden via environment variable)
DEFAULT_DB_PATH = Path.home() / ".trial_harvest" / "trial_harvest.db"


def get_database_url(url_or_path: Path | str | None = None) -> str:
    """
    Get the database URL.

    Args:
        url_or_path: A SQLAlchemy URL, a path to a SQLite file, or None to
                     use the DATABASE_URL env var or the default path.

    Returns:
        SQLAlchemy connection URL.
    """
    if url_or_path is None:
        url_or_path = os.environ.get("DATABASE_URL") or DEFAULT_DB_PATH

    if isinstance(url_or_path, str) and "://" in url_or_path:
        return url_or_path

    path = Path(url_or_path).expanduser()
    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine.

    SQLite connections may be used from worker threads and wait for
    concurrent writers instead of failing immediately.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # pysqlite defers BEGIN until the first DML statement, which breaks
    # SAVEPOINT. Take over transaction control and take the write lock up
    # front so concurrent writers queue on the busy timeout.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class Store:
    """
    Handle to the persistent store.

    Constructed once at startup and passed to whatever needs the database;
    nothing in the package keeps a module-level engine.

    Usage:
        store = Store("sqlite:////tmp/harvest.db")
        store.connect()
        with store.session() as session:
            ...
    """

    def __init__(self, url: Path | str | None = None, echo: bool = False) -> None:
        self.url = get_database_url(url)
        self.engine = create_db_engine(self.url, echo=echo)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def ping(self) -> None:
        """
        Check the database is reachable.

        Raises:
            StoreConnectionError: If a connection cannot be established
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreConnectionError(f"Cannot connect to {self.engine.url!r}: {e}") from e

    def init_db(self) -> None:
        """Create all tables that do not exist yet."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StoreConnectionError(f"Cannot initialize {self.engine.url!r}: {e}") from e

    def connect(self) -> "Store":
        """Ping and create tables; returns self for chaining."""
        self.ping()
        self.init_db()
        return self

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Usage:
            with store.session() as session:
                # use session
                session.commit()
        """
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
