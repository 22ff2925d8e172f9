"""SQLite engine with WAL mode and retrying write transactions.

This module provides:
- Database: Connection manager with WAL mode for concurrent access
- immediate_transaction: BEGIN IMMEDIATE session with busy retry
- read_transaction: single deferred transaction for consistent scans

Writers (indexing workers) and readers (searches) share one file. WAL lets
searches read the last committed snapshot while a file record is being
replaced.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from semindex.core.errors import StorageError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = structlog.get_logger()

# Retry configuration for SQLite busy handling
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.1  # 100ms base
DEFAULT_RETRY_MAX_DELAY = 2.0  # 2s max
DEFAULT_BUSY_TIMEOUT_MS = 30000


def _is_database_locked_error(error: Exception) -> bool:
    """Check if error is a SQLite database locked error."""
    error_str = str(error).lower()
    return "database is locked" in error_str or "database is busy" in error_str


class Database:
    """SQLite connection manager with WAL mode for concurrent access.

    Includes retry logic with exponential backoff for handling
    SQLite busy timeouts during concurrent writes.
    """

    def __init__(
        self,
        db_path: Path,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._busy_timeout_ms = busy_timeout_ms
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        busy_timeout_ms = self._busy_timeout_ms

        def _on_connect(dbapi_conn: Any, connection_record: Any) -> None:
            _configure_pragmas(dbapi_conn, connection_record, busy_timeout_ms)

        event.listen(engine, "connect", _on_connect)
        return engine

    def create_all(self) -> None:
        """Create all tables from SQLModel metadata."""
        try:
            SQLModel.metadata.create_all(self.engine)
        except OperationalError as e:
            raise StorageError.unavailable("create_all", str(e)) from e

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for low-volume reads."""
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serializable writes.

        BEGIN IMMEDIATE acquires a RESERVED lock up front, blocking other
        writers but allowing readers. Lock acquisition is retried with
        exponential backoff; once the body has started running, errors
        are not retried.

        The session auto-commits on successful exit and rolls back
        on exception.

        Args:
            max_retries: Override default max retries (default: 3)

        Raises:
            StorageError: If the database stays locked or is unusable.
        """
        retries = max_retries if max_retries is not None else self._max_retries

        session: Session | None = None
        for attempt in range(retries + 1):  # +1 for initial attempt
            candidate = Session(self.engine)
            try:
                candidate.execute(text("BEGIN IMMEDIATE"))
            except OperationalError as e:
                candidate.close()
                if _is_database_locked_error(e) and attempt < retries:
                    delay = min(
                        self._retry_base_delay * (2**attempt),
                        self._retry_max_delay,
                    )
                    logger.warning(
                        "sqlite_busy_retry",
                        attempt=attempt + 1,
                        max_retries=retries,
                        delay_sec=delay,
                    )
                    time.sleep(delay)
                    continue
                raise StorageError.unavailable("begin_immediate", str(e)) from e
            session = candidate
            break

        if session is None:
            raise StorageError.unavailable("begin_immediate", "retries exhausted")

        with session:
            try:
                yield session
                session.commit()
            except OperationalError as e:
                session.rollback()
                raise StorageError.unavailable("write", str(e)) from e
            except Exception:
                session.rollback()
                raise

    @contextmanager
    def read_transaction(self) -> Generator[Connection, None, None]:
        """Connection inside one read transaction (stable WAL snapshot)."""
        with self.engine.connect() as conn:
            try:
                conn.execute(text("BEGIN"))
                # First read pins the snapshot for the rest of the transaction
                conn.execute(text("SELECT 1 FROM sqlite_master LIMIT 1"))
            except OperationalError as e:
                raise StorageError.unavailable("read", str(e)) from e
            try:
                yield conn
            finally:
                conn.rollback()


def _configure_pragmas(dbapi_conn: Any, _connection_record: Any, busy_timeout_ms: int) -> None:
    """Configure SQLite for concurrent access and performance."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA cache_size=-64000")  # 64MB cache
    cursor.close()
