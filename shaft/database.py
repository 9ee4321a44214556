"""Persistence gateway: pooled, transactional access to SQLite or PostgreSQL."""
from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import psycopg2
from psycopg2 import pool as pg_pool

from .errors import Conflict, CorruptData, LedgerError, ResourceUnavailable

logger = logging.getLogger("shaft.database")

DEFAULT_POOL_SIZE = 5
DEFAULT_POOL_TIMEOUT = 5.0

MEMORY_DATABASE = ":memory:"


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the SQLite database."""

    if env_value == MEMORY_DATABASE:
        return Path(MEMORY_DATABASE)
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "shaft.sqlite3").resolve(strict=False)


def is_postgres_url(value: Optional[str]) -> bool:
    return bool(value) and str(value).startswith(("postgres://", "postgresql://"))


class Connection:
    """A connection checked out for one unit of work.

    Statements always use ``?`` placeholders; backends that expect another
    parameter style rewrite them before execution.
    """

    def __init__(self, raw: Any, placeholder: str) -> None:
        self._raw = raw
        self._placeholder = placeholder

    def _render(self, sql: str) -> str:
        if self._placeholder == "?":
            return sql
        return sql.replace("?", self._placeholder)

    def execute(self, sql: str, params: Sequence[object] = ()) -> int:
        cursor = self._raw.cursor()
        try:
            cursor.execute(self._render(sql), tuple(params))
            return cursor.rowcount
        finally:
            cursor.close()

    def fetchone(self, sql: str, params: Sequence[object] = ()) -> Optional[Tuple[Any, ...]]:
        cursor = self._raw.cursor()
        try:
            cursor.execute(self._render(sql), tuple(params))
            row = cursor.fetchone()
        finally:
            cursor.close()
        return tuple(row) if row is not None else None

    def fetchall(self, sql: str, params: Sequence[object] = ()) -> List[Tuple[Any, ...]]:
        cursor = self._raw.cursor()
        try:
            cursor.execute(self._render(sql), tuple(params))
            rows = cursor.fetchall()
        finally:
            cursor.close()
        return [tuple(row) for row in rows]


class Database:
    """Storage backend shared by the identity, session and ledger stores.

    Every ``write()`` block is a single atomic transaction: it commits when the
    block exits normally and rolls back on any exception. ``read()`` blocks run
    inside a transaction as well so that multi-statement reads observe one
    consistent snapshot. Driver failures surface as :class:`ResourceUnavailable`,
    :class:`Conflict` or :class:`CorruptData`.
    """

    backend = "abstract"
    _placeholder = "?"
    _driver_errors: Tuple[type, ...] = ()

    def __init__(
        self,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        pool_timeout: float = DEFAULT_POOL_TIMEOUT,
    ) -> None:
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        self._pool_size = pool_size
        self._pool_timeout = pool_timeout

    @property
    def pool_size(self) -> int:
        return self._pool_size

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self.write() as conn:
            for statement in self._schema():
                conn.execute(statement)
        logger.info("Initialised %s database schema", self.backend)

    @contextmanager
    def write(self) -> Iterator[Connection]:
        with self._unit_of_work(write=True) as conn:
            yield conn

    @contextmanager
    def read(self) -> Iterator[Connection]:
        with self._unit_of_work(write=False) as conn:
            yield conn

    @contextmanager
    def _unit_of_work(self, *, write: bool) -> Iterator[Connection]:
        raw = self._acquire()
        try:
            try:
                self._begin(raw, write=write)
                yield Connection(raw, self._placeholder)
                raw.commit()
            except BaseException:
                with suppress(*self._driver_errors):
                    raw.rollback()
                raise
        except self._driver_errors as exc:
            translated = self._translate(exc)
            if translated is None:
                raise
            raise translated from exc
        finally:
            self._release(raw)

    def close(self) -> None:
        """Close every pooled connection."""

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------
    def _schema(self) -> Sequence[str]:
        raise NotImplementedError

    def _acquire(self) -> Any:
        raise NotImplementedError

    def _release(self, raw: Any) -> None:
        raise NotImplementedError

    def _begin(self, raw: Any, *, write: bool) -> None:
        raise NotImplementedError

    def _translate(self, exc: BaseException) -> Optional[LedgerError]:
        raise NotImplementedError

    def _pool_exhausted(self) -> ResourceUnavailable:
        logger.warning(
            "No %s connection became available within %.1fs (pool size %d)",
            self.backend,
            self._pool_timeout,
            self._pool_size,
        )
        return ResourceUnavailable(
            f"Timed out after {self._pool_timeout}s waiting for a database connection"
        )


_SQLITE_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY NOT NULL,
        display_name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS external_identities (
        external_id TEXT PRIMARY KEY NOT NULL,
        user_id TEXT NOT NULL UNIQUE REFERENCES users(user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        token TEXT PRIMARY KEY NOT NULL,
        user_id TEXT NOT NULL REFERENCES users(user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        shafter TEXT NOT NULL REFERENCES users(user_id),
        shaftee TEXT NOT NULL REFERENCES users(user_id),
        amount BIGINT NOT NULL,
        occurred_at BIGINT NOT NULL,
        reason TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_shafter ON transactions(shafter)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_shaftee ON transactions(shaftee)",
)


class SqliteDatabase(Database):
    """SQLite backend with a small pool of reusable connections.

    Writers open their transaction with ``BEGIN IMMEDIATE`` so concurrent
    appends are serialised by SQLite's write lock. File databases run in WAL
    mode so readers keep a stable snapshot while a writer commits. An in-memory
    database only exists per connection, so its pool holds exactly one.
    """

    backend = "sqlite"
    _driver_errors = (sqlite3.Error,)

    def __init__(
        self,
        path: Path | str,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        pool_timeout: float = DEFAULT_POOL_TIMEOUT,
        busy_timeout: float = 30.0,
    ) -> None:
        self._memory = str(path) == MEMORY_DATABASE
        if self._memory:
            pool_size = 1
        super().__init__(pool_size=pool_size, pool_timeout=pool_timeout)
        self._path = Path(path)
        if not self._memory:
            _ensure_directory(self._path)
        self._busy_timeout = busy_timeout
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue()
        self._opened: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        target = MEMORY_DATABASE if self._memory else str(self._path)
        try:
            conn = sqlite3.connect(
                target,
                timeout=self._busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute("PRAGMA foreign_keys = ON")
            if not self._memory:
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            translated = self._translate(exc)
            if not isinstance(translated, CorruptData):
                translated = ResourceUnavailable(f"Could not open SQLite database at {target}")
            raise translated from exc
        return conn

    def _acquire(self) -> sqlite3.Connection:
        with suppress(queue.Empty):
            return self._idle.get_nowait()

        with self._lock:
            if len(self._opened) < self._pool_size:
                conn = self._connect()
                self._opened.append(conn)
                return conn

        try:
            return self._idle.get(timeout=self._pool_timeout)
        except queue.Empty:
            raise self._pool_exhausted() from None

    def _release(self, raw: sqlite3.Connection) -> None:
        self._idle.put(raw)

    def _begin(self, raw: sqlite3.Connection, *, write: bool) -> None:
        raw.execute("BEGIN IMMEDIATE" if write else "BEGIN")

    def _schema(self) -> Sequence[str]:
        return _SQLITE_SCHEMA

    def _translate(self, exc: BaseException) -> Optional[LedgerError]:
        if isinstance(exc, sqlite3.IntegrityError):
            return Conflict(str(exc))
        if isinstance(exc, sqlite3.OperationalError) and "integer overflow" in str(exc):
            return CorruptData(str(exc))
        if isinstance(exc, (sqlite3.OperationalError, sqlite3.InterfaceError)):
            return ResourceUnavailable(str(exc))
        if isinstance(exc, sqlite3.ProgrammingError):
            return None
        if isinstance(exc, sqlite3.DatabaseError):
            return CorruptData(str(exc))
        return ResourceUnavailable(str(exc))

    def close(self) -> None:
        with self._lock:
            opened, self._opened = self._opened, []
        for conn in opened:
            conn.close()
        self._idle = queue.LifoQueue()


_POSTGRES_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY NOT NULL,
        display_name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS external_identities (
        external_id TEXT PRIMARY KEY NOT NULL,
        user_id TEXT NOT NULL UNIQUE REFERENCES users(user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        token TEXT PRIMARY KEY NOT NULL,
        user_id TEXT NOT NULL REFERENCES users(user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id BIGSERIAL PRIMARY KEY,
        shafter TEXT NOT NULL REFERENCES users(user_id),
        shaftee TEXT NOT NULL REFERENCES users(user_id),
        amount BIGINT NOT NULL,
        occurred_at BIGINT NOT NULL,
        reason TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_shafter ON transactions(shafter)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_shaftee ON transactions(shaftee)",
)


class PostgresDatabase(Database):
    """PostgreSQL backend over ``psycopg2``'s threaded connection pool.

    The pool is created lazily on first use. ``ThreadedConnectionPool`` fails
    immediately when exhausted, so a semaphore bounds checkouts and lets
    callers wait up to ``pool_timeout`` for a free connection.
    """

    backend = "postgres"
    _placeholder = "%s"
    _driver_errors = (psycopg2.Error,)

    def __init__(
        self,
        dsn: str,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        pool_timeout: float = DEFAULT_POOL_TIMEOUT,
    ) -> None:
        super().__init__(pool_size=pool_size, pool_timeout=pool_timeout)
        self._dsn = dsn
        self._pool: Optional[pg_pool.ThreadedConnectionPool] = None
        self._slots = threading.BoundedSemaphore(pool_size)
        self._lock = threading.Lock()

    def _connection_pool(self) -> pg_pool.ThreadedConnectionPool:
        with self._lock:
            if self._pool is None:
                try:
                    self._pool = pg_pool.ThreadedConnectionPool(
                        minconn=1,
                        maxconn=self._pool_size,
                        dsn=self._dsn,
                    )
                except psycopg2.Error as exc:
                    raise ResourceUnavailable("Could not connect to PostgreSQL") from exc
                logger.info("PostgreSQL connection pool created (max %d)", self._pool_size)
            return self._pool

    def _acquire(self) -> Any:
        if not self._slots.acquire(timeout=self._pool_timeout):
            raise self._pool_exhausted()
        try:
            conn = self._connection_pool().getconn()
        except pg_pool.PoolError as exc:
            self._slots.release()
            raise ResourceUnavailable("PostgreSQL connection pool is exhausted") from exc
        except psycopg2.Error as exc:
            self._slots.release()
            raise ResourceUnavailable("Could not connect to PostgreSQL") from exc
        except BaseException:
            self._slots.release()
            raise
        conn.autocommit = False
        return conn

    def _release(self, raw: Any) -> None:
        try:
            if self._pool is not None:
                self._pool.putconn(raw, close=bool(raw.closed))
        finally:
            self._slots.release()

    def _begin(self, raw: Any, *, write: bool) -> None:
        if not write:
            with raw.cursor() as cursor:
                cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")

    def _schema(self) -> Sequence[str]:
        return _POSTGRES_SCHEMA

    def _translate(self, exc: BaseException) -> Optional[LedgerError]:
        if isinstance(exc, psycopg2.IntegrityError):
            return Conflict(str(exc).strip())
        if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
            return ResourceUnavailable(str(exc).strip())
        if isinstance(exc, psycopg2.DataError):
            return CorruptData(str(exc).strip())
        return None

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None


def open_database(
    target: Optional[str],
    *,
    pool_size: int = DEFAULT_POOL_SIZE,
    pool_timeout: float = DEFAULT_POOL_TIMEOUT,
) -> Database:
    """Return the backend for ``target``: a PostgreSQL URL or a SQLite path."""

    if target is not None and is_postgres_url(target):
        return PostgresDatabase(target, pool_size=pool_size, pool_timeout=pool_timeout)
    return SqliteDatabase(
        resolve_database_path(target),
        pool_size=pool_size,
        pool_timeout=pool_timeout,
    )


__all__ = [
    "Connection",
    "Database",
    "PostgresDatabase",
    "SqliteDatabase",
    "is_postgres_url",
    "open_database",
    "resolve_database_path",
]
