"""
Database Engine and Sessions

Wraps the SQLAlchemy engine. The invoice write is the only multi-row
write in the system; session_scope() gives it all-or-nothing semantics.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocketbook.config import DatabaseSettings, get_settings
from pocketbook.errors import ConnectionError
from pocketbook.storage.tables import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE / SET NULL unless this is on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Engine plus session factory for one database URL.

    Usage:
        db = Database.from_settings()
        db.connect()
        db.init_db()
        with db.session_scope() as session:
            ...
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        connect_attempts: int = 3,
    ):
        self.url = url
        self._connect_attempts = connect_attempts
        self.engine = self._create_engine(url, echo)
        self._session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Optional[DatabaseSettings] = None) -> "Database":
        settings = settings or get_settings().database
        return cls(
            url=settings.url,
            echo=settings.echo,
            connect_attempts=settings.connect_attempts,
        )

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        kwargs: dict = {"echo": echo}
        is_sqlite = url.startswith("sqlite")

        if is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session
                # would see its own empty in-memory database
                kwargs["poolclass"] = StaticPool

        engine = create_engine(url, **kwargs)

        if is_sqlite:
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)

        return engine

    def connect(self) -> None:
        """
        Verify the database is reachable.

        Retries with exponential backoff; raises ConnectionError
        once the attempts are exhausted.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._connect_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    with self.engine.connect() as conn:
                        conn.execute(text("SELECT 1"))
        except OperationalError as e:
            raise ConnectionError(f"Failed to connect to database: {e}") from e

    def init_db(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Transactional scope around a series of operations.

        Commits on success, rolls back everything on any exception.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
