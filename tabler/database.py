"""
Execution contract and its SQLite implementations.

Tables and selects never open connections themselves; they hand generated
SQL to a `Queryer`. Two implementations are provided:

- `Database`: a direct connection in autocommit mode.
- `Transaction`: a queryer bound to an open transaction on a `Database`.

Usage:
    db = Database("app.db")
    await db.open()

    await users.insert([alice, bob], db)

    async with db.transaction() as tx:
        await users.update(alice, tx)
        await audit.insert([entry], tx)

    await db.close()

Notes:
- One connection per `Database`; statements are serialized with a lock, so a
  transaction excludes direct statements from other tasks until it ends.
- Inside a transaction, use the `Transaction` queryer, not the `Database`
  (the database lock is held for the duration of the transaction).
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Protocol, TypeVar

import aiosqlite

from tabler.errors import ExecutionError
from tabler.types import adapt_value

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Turns one result row into a value (usually a record).
RowFactory = Callable[[Mapping[str, Any]], T]

DEFAULT_PRAGMAS: dict[str, str] = {
    "foreign_keys": "ON",
}


@dataclass(frozen=True, slots=True)
class ExecResult:
    """Outcome of a statement executed through `Queryer.execute`."""

    rows_affected: int
    last_insert_id: int | None


class Queryer(Protocol):
    """Anything that can run SQL: a direct connection or a transaction."""

    async def execute(self, sql: str, *args: Any) -> ExecResult: ...

    async def query(self, factory: RowFactory[T], sql: str, *args: Any) -> list[T]: ...

    async def query_one(self, factory: RowFactory[T], sql: str, *args: Any) -> T | None: ...


def _params(args: tuple[Any, ...]) -> tuple[Any, ...]:
    return tuple(adapt_value(a) for a in args)


async def _execute(conn: aiosqlite.Connection, sql: str, args: tuple[Any, ...]) -> ExecResult:
    try:
        cursor = await conn.execute(sql, _params(args))
    except sqlite3.Error as e:
        raise ExecutionError(str(e), sql=sql) from e
    try:
        return ExecResult(rows_affected=cursor.rowcount, last_insert_id=cursor.lastrowid)
    finally:
        await cursor.close()


async def _fetch(
    conn: aiosqlite.Connection, sql: str, args: tuple[Any, ...], *, one: bool
) -> list[dict[str, Any]]:
    try:
        cursor = await conn.execute(sql, _params(args))
        try:
            rows = [await cursor.fetchone()] if one else await cursor.fetchall()
        finally:
            await cursor.close()
    except sqlite3.Error as e:
        raise ExecutionError(str(e), sql=sql) from e
    return [{k: r[k] for k in r.keys()} for r in rows if r is not None]


class Transaction:
    """Queryer bound to an open transaction."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def execute(self, sql: str, *args: Any) -> ExecResult:
        return await _execute(self._conn, sql, args)

    async def query(self, factory: RowFactory[T], sql: str, *args: Any) -> list[T]:
        return [factory(row) for row in await _fetch(self._conn, sql, args, one=False)]

    async def query_one(self, factory: RowFactory[T], sql: str, *args: Any) -> T | None:
        rows = await _fetch(self._conn, sql, args, one=True)
        return factory(rows[0]) if rows else None


class Database:
    """
    Direct SQLite connection implementing `Queryer`.

    Each statement outside `transaction()` is committed on its own.
    """

    def __init__(self, db_path: str | Path, *, pragmas: Mapping[str, str] | None = None) -> None:
        self._db_path = str(db_path)
        self._pragmas = dict(DEFAULT_PRAGMAS if pragmas is None else pragmas)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        # isolation_level=None: autocommit, transactions are explicit BEGIN/COMMIT.
        self._conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._conn.row_factory = aiosqlite.Row

        for name, value in self._pragmas.items():
            await self._conn.execute(f"PRAGMA {name} = {value};")

        logger.debug("Opened database %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.debug("Closed database %s", self._db_path)

    async def __aenter__(self) -> Database:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not open. Call await db.open() first.")
        return self._conn

    async def execute(self, sql: str, *args: Any) -> ExecResult:
        conn = self._require_conn()
        async with self._lock:
            return await _execute(conn, sql, args)

    async def query(self, factory: RowFactory[T], sql: str, *args: Any) -> list[T]:
        conn = self._require_conn()
        async with self._lock:
            rows = await _fetch(conn, sql, args, one=False)
        return [factory(row) for row in rows]

    async def query_one(self, factory: RowFactory[T], sql: str, *args: Any) -> T | None:
        conn = self._require_conn()
        async with self._lock:
            rows = await _fetch(conn, sql, args, one=True)
        return factory(rows[0]) if rows else None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """
        Run a block inside a transaction.

        Commits when the block exits normally and rolls back on any exception.
        """
        conn = self._require_conn()
        async with self._lock:
            await conn.execute("BEGIN")
            try:
                yield Transaction(conn)
            except BaseException:
                await conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back")
                raise
            await conn.execute("COMMIT")

    async def transactional(self, fn: Callable[[Transaction], Awaitable[bool]]) -> bool:
        """
        Run `fn` inside a transaction and commit only if it returns True.

        A False result rolls back silently; an exception rolls back and is
        re-raised.

        Returns:
            True if the transaction was committed.
        """
        conn = self._require_conn()
        async with self._lock:
            await conn.execute("BEGIN")
            try:
                commit = await fn(Transaction(conn))
            except BaseException:
                await conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back after error")
                raise
            if not commit:
                await conn.execute("ROLLBACK")
                return False
            await conn.execute("COMMIT")
            return True
