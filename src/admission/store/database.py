"""Database connection manager for the admission store."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from admission.exceptions import ConcurrencyConflictError
from admission.store.models import Base

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _is_unique_violation(error: IntegrityError) -> bool:
    """Check whether an IntegrityError came from a unique index."""
    message = str(error.orig).lower()
    pgcode = getattr(error.orig, "pgcode", None)
    return "unique" in message or pgcode == "23505"


def _is_lock_contention(error: OperationalError) -> bool:
    """Check whether an OperationalError is SQLite write-lock contention."""
    return "database is locked" in str(error.orig).lower()


class Database:
    """Database connection manager.

    Manages SQLite database connections with WAL mode enabled. Every
    transaction starts with BEGIN IMMEDIATE, so writers are serialized and a
    count taken inside a unit of work cannot be invalidated by a concurrent
    commit before this one finishes.
    """

    def __init__(self, db_path: str = "admission.db", busy_timeout: float = 30.0) -> None:
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. Use ":memory:" for in-memory DB.
            busy_timeout: Seconds a connection waits for the write lock.
        """
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            # For in-memory databases, use StaticPool to share connection across threads
            if self.db_path == ":memory:":
                self._engine = create_engine(
                    "sqlite:///:memory:",
                    echo=False,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )
            else:
                self._engine = create_engine(
                    f"sqlite:///{self.db_path}",
                    echo=False,
                    connect_args={"timeout": self.busy_timeout},
                )

            @event.listens_for(self._engine, "connect")
            def set_sqlite_pragma(dbapi_connection: object, _connection_record: object) -> None:
                # Let SQLAlchemy emit BEGIN itself instead of the driver
                dbapi_connection.isolation_level = None  # type: ignore[attr-defined]
                cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            @event.listens_for(self._engine, "begin")
            def begin_immediate(conn: object) -> None:
                conn.exec_driver_sql("BEGIN IMMEDIATE")  # type: ignore[attr-defined]

        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_tables(self) -> None:
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    def get_session(self) -> Session:
        """Get a new database session.

        Returns:
            A new SQLAlchemy session.
        """
        return self.session_factory()

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """Run a block as one atomic transaction.

        Commits when the block finishes and rolls back on any exception.
        Unique-index violations and write-lock contention are raised as
        ConcurrencyConflictError.

        Yields:
            The session owning the transaction.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if _is_unique_violation(e):
                logger.warning("Unique constraint fired at commit: %s", e.orig)
                raise ConcurrencyConflictError(
                    "Conflicting registration committed concurrently; retry the attempt"
                ) from e
            raise
        except OperationalError as e:
            session.rollback()
            if _is_lock_contention(e):
                logger.warning("Write lock contention: %s", e.orig)
                raise ConcurrencyConflictError(
                    "Database busy with a concurrent registration; retry the attempt"
                ) from e
            raise
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def is_wal_mode(self) -> bool:
        """Check if WAL mode is enabled.

        Returns:
            True if WAL mode is enabled.
        """
        with self.engine.connect() as conn:
            result = conn.execute(text("PRAGMA journal_mode"))
            mode = result.scalar()
            return mode == "wal"

    def close(self) -> None:
        """Close the database connection."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
