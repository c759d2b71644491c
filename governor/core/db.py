"""
Datastore connections (raw SQL) for the supported drivers.

`connect()` turns an application's datastore descriptor into an open
connection handle:
- `sqlite3` / `sqlite`: one aiosqlite connection on `dbpath`.
- `postgres` / `postgresql`: an asyncpg pool built from server/port/database/user/password.

SQL parameter style is the driver's own:
- asyncpg uses positional placeholders: $1, $2, $3, ...
- sqlite uses `?`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable
from urllib.parse import quote, urlunsplit

import aiosqlite
import asyncpg

from . import GovernorError
from .config import env_int

if TYPE_CHECKING:
    from governor.manager.descriptor import DatastoreDescriptor

logger = logging.getLogger(__name__)

SQLITE_DRIVERS = frozenset({"sqlite3", "sqlite"})
POSTGRES_DRIVERS = frozenset({"postgres", "postgresql"})


class BuildError(GovernorError):
    def __init__(self, app: str, message: str):
        self.app = app
        super().__init__(message)


class DatastoreConnectionError(BuildError):
    def __init__(self, app: str, cause: Exception | str):
        self.cause = cause
        super().__init__(app, f"Datastore connection for [{app}] failed: {cause}")


class Connection:
    """
    Open connection handle returned by `connect()`.

    Application code uses these primitives for schema migration and records;
    the governor itself only opens and closes handles.
    """

    driver: str = ""

    async def execute(self, sql: str, *args: Any) -> None:
        raise NotImplementedError

    async def fetch_one(self, sql: str, *args: Any) -> dict[str, Any] | None:
        raise NotImplementedError

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def migrate(self, statements: Iterable[str]) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        raise NotImplementedError


class PostgresConnection(Connection):
    driver = "postgres"

    def __init__(self, pool: asyncpg.Pool):
        self._pool: asyncpg.Pool | None = pool

    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Postgres pool is closed.")
        return self._pool

    async def execute(self, sql: str, *args: Any) -> None:
        """
        Run a statement (INSERT/UPDATE/DELETE/DDL). No result returned.
        """
        await self.pool().execute(sql, *args)

    async def fetch_one(self, sql: str, *args: Any) -> dict[str, Any] | None:
        row = await self.pool().fetchrow(sql, *args)
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        rows = await self.pool().fetch(sql, *args)
        return [dict(r) for r in rows]

    async def migrate(self, statements: Iterable[str]) -> int:
        """
        Apply DDL statements in order inside one transaction.
        """
        applied = 0
        async with self.pool().acquire() as conn:
            async with conn.transaction():
                for stmt in statements:
                    await conn.execute(stmt)
                    applied += 1
        return applied

    async def close(self) -> None:
        if self._pool is None:
            return None
        await self._pool.close()
        self._pool = None

    @property
    def closed(self) -> bool:
        return self._pool is None


class SqliteConnection(Connection):
    driver = "sqlite3"

    def __init__(self, conn: aiosqlite.Connection, path: str):
        self._conn: aiosqlite.Connection | None = conn
        self.path = path

    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError(f"SQLite connection to '{self.path}' is closed.")
        return self._conn

    async def execute(self, sql: str, *args: Any) -> None:
        conn = self.conn()
        await conn.execute(sql, args)
        await conn.commit()

    async def fetch_one(self, sql: str, *args: Any) -> dict[str, Any] | None:
        async with self.conn().execute(sql, args) as cur:
            row = await cur.fetchone()
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        async with self.conn().execute(sql, args) as cur:
            rows = await cur.fetchall()
        return [dict(r) for r in rows]

    async def migrate(self, statements: Iterable[str]) -> int:
        conn = self.conn()
        applied = 0
        try:
            for stmt in statements:
                await conn.execute(stmt)
                applied += 1
        except Exception:
            await conn.rollback()
            raise
        await conn.commit()
        return applied

    async def close(self) -> None:
        if self._conn is None:
            return None
        await self._conn.close()
        self._conn = None

    @property
    def closed(self) -> bool:
        return self._conn is None


def postgres_dsn(descriptor: "DatastoreDescriptor") -> str:
    userinfo = ""
    if descriptor.user:
        userinfo = quote(descriptor.user, safe="")
        if descriptor.password:
            userinfo += ":" + quote(descriptor.password, safe="")
        userinfo += "@"

    netloc = userinfo + (descriptor.server or "localhost")
    if descriptor.port:
        netloc += ":" + descriptor.port

    path = "/" + quote(descriptor.database, safe="") if descriptor.database else ""
    return urlunsplit(("postgresql", netloc, path, "", ""))


async def _connect_sqlite(descriptor: "DatastoreDescriptor") -> SqliteConnection:
    if not descriptor.path:
        raise DatastoreConnectionError(descriptor.app, "sqlite driver requires 'dbpath'.")
    try:
        conn = await aiosqlite.connect(descriptor.path)
    except Exception as exc:
        raise DatastoreConnectionError(descriptor.app, exc) from exc
    conn.row_factory = aiosqlite.Row
    return SqliteConnection(conn, descriptor.path)


async def _connect_postgres(descriptor: "DatastoreDescriptor") -> PostgresConnection:
    try:
        pool = await asyncpg.create_pool(
            dsn=postgres_dsn(descriptor),
            min_size=env_int("GOVERNOR_DB_POOL_MIN", 1),
            max_size=env_int("GOVERNOR_DB_POOL_MAX", 5),
            command_timeout=env_int("GOVERNOR_DB_COMMAND_TIMEOUT", 30),
        )
    except Exception as exc:
        raise DatastoreConnectionError(descriptor.app, exc) from exc
    return PostgresConnection(pool)


async def connect(descriptor: "DatastoreDescriptor") -> Connection:
    """
    Open a connection for `descriptor`, raising DatastoreConnectionError with the cause.
    """
    driver = (descriptor.driver or "").strip().lower()
    if driver in SQLITE_DRIVERS:
        handle: Connection = await _connect_sqlite(descriptor)
    elif driver in POSTGRES_DRIVERS:
        handle = await _connect_postgres(descriptor)
    elif not driver:
        raise DatastoreConnectionError(descriptor.app, "no 'dbdriver' configured.")
    else:
        raise DatastoreConnectionError(descriptor.app, f"unsupported driver '{descriptor.driver}'.")

    logger.info("datastore_connected app=%s driver=%s", descriptor.app, handle.driver)
    return handle
