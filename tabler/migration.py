"""
Versioned schema migrations.

The stored schema version lives in a one-row bookkeeping table (`_migration`
by default) created on first run. A run compares the stored version with the
target version the code declares:

- target > stored: every declared `Version` with stored < version <= target
  is applied, in declaration order, then the stored version becomes target.
- target == stored: nothing happens.
- target < stored: `MigrationOrderError`; the code is older than the database.

Design notes:
- Versions are compared as plain strings, not semantically ("1.10" < "1.9").
  Use zero-padded or same-width version strings.
- Migrations are forward-only. A failing migration stops the run and the
  stored version is left untouched; migrations applied earlier in the same
  run are NOT rolled back unless the caller runs the migration inside a
  transaction. A failed run needs manual attention before retrying.

Usage:
    versions = [
        Version("1.1", [QueryMigration("ALTER TABLE users ADD COLUMN nick text")]),
        Version("1.2", [ScriptMigration("migrations/1.2.sql"), CustomMigration(backfill)]),
    ]
    await migrate(db, "1.2", versions)
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Protocol, Sequence

from tabler.config import TableOptions
from tabler.database import Queryer
from tabler.errors import MigrationError, MigrationOrderError
from tabler.schema import column
from tabler.table import Table
from tabler.types import DateTime

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "_migration"
INITIAL_VERSION = "0"


@dataclass
class MigrationInfo:
    """The bookkeeping row."""

    id: int = 1
    version: str = column(override="VARCHAR(64)", default=INITIAL_VERSION)
    migration_date: DateTime = field(default_factory=DateTime.now_utc)


class Migration(Protocol):
    async def migrate(self, queryer: Queryer) -> None: ...


@dataclass(frozen=True)
class QueryMigration:
    """Run a single SQL statement."""

    query: str

    async def migrate(self, queryer: Queryer) -> None:
        await queryer.execute(self.query)


@dataclass(frozen=True)
class ScriptMigration:
    """Run the SQL statement stored in a file (one statement per file)."""

    script: Path | str

    async def migrate(self, queryer: Queryer) -> None:
        query = Path(self.script).read_text(encoding="utf-8")
        await queryer.execute(query)


@dataclass(frozen=True)
class CustomMigration:
    """Run an arbitrary coroutine function."""

    func: Callable[[Queryer], Awaitable[None]]

    async def migrate(self, queryer: Queryer) -> None:
        await self.func(queryer)


@dataclass(frozen=True)
class Version:
    """Migrations that together bring the schema to `version`."""

    version: str
    migrations: Sequence[Migration] = ()

    async def migrate(self, queryer: Queryer) -> None:
        for migration in self.migrations:
            await migration.migrate(queryer)


class MigrationState(Enum):
    UNINITIALIZED = "uninitialized"
    CHECKED = "checked"
    NOOP = "noop"
    MIGRATING = "migrating"
    MIGRATED = "migrated"
    ERROR = "error"


def _check_order(versions: Sequence[Version]) -> None:
    for previous, current in zip(versions, versions[1:]):
        if not previous.version < current.version:
            raise MigrationOrderError(
                f"Migration versions must be strictly ascending: "
                f"{previous.version!r} is followed by {current.version!r}"
            )


class MigrationRunner:
    """Applies declared versions against the stored version marker."""

    def __init__(
        self,
        *,
        options: TableOptions | None = None,
        table_name: str = DEFAULT_TABLE_NAME,
    ) -> None:
        options = options or TableOptions()
        self._table = Table(
            table_name,
            MigrationInfo,
            engine=options.engine,
            charset=options.charset,
            strict_templates=options.strict_templates,
        )
        self._state = MigrationState.UNINITIALIZED

    @property
    def table(self) -> Table:
        return self._table

    @property
    def state(self) -> MigrationState:
        return self._state

    async def current_version(self, queryer: Queryer) -> str | None:
        """Stored version, or None if nothing was recorded yet."""
        info = await self._table.select("*").run_one(queryer)
        return info.version if info is not None else None

    async def run(self, queryer: Queryer, target: str, versions: Sequence[Version]) -> int:
        """
        Bring the database to `target`.

        Returns:
            Number of individual migrations executed.

        Raises:
            MigrationOrderError: If `versions` is not ascending or the stored
                version is ahead of `target`.
            MigrationError: If a previous run of this runner failed.
        """
        if self._state is MigrationState.ERROR:
            raise MigrationError("A previous migration run failed; manual intervention required")

        try:
            return await self._run(queryer, target, versions)
        except BaseException:
            self._state = MigrationState.ERROR
            raise

    async def _run(self, queryer: Queryer, target: str, versions: Sequence[Version]) -> int:
        _check_order(versions)

        await self._table.create(queryer)

        info = await self._table.select("*").run_one(queryer)
        if info is None:
            info = MigrationInfo(id=1, version=INITIAL_VERSION, migration_date=DateTime.now_utc())
            await self._table.insert([info], queryer)

        self._state = MigrationState.CHECKED
        stored = info.version

        if target < stored:
            raise MigrationOrderError(
                f"Database version {stored!r} is newer than code version {target!r}"
            )

        if target == stored:
            logger.debug("Database is at version %s; nothing to migrate", stored)
            self._state = MigrationState.NOOP
            return 0

        self._state = MigrationState.MIGRATING
        executed = 0
        for version in versions:
            if not stored < version.version <= target:
                continue
            logger.info(
                "Migrating to version %s (%d migrations)", version.version, len(version.migrations)
            )
            try:
                await version.migrate(queryer)
            except Exception:
                logger.exception("Migration to version %s failed", version.version)
                raise
            executed += len(version.migrations)

        info = dataclasses.replace(info, version=target, migration_date=DateTime.now_utc())
        await self._table.update(info, queryer)

        logger.info("Migrated database from version %s to %s", stored, target)
        self._state = MigrationState.MIGRATED
        return executed


async def migrate(
    queryer: Queryer,
    target: str,
    versions: Sequence[Version],
    *,
    options: TableOptions | None = None,
    table_name: str = DEFAULT_TABLE_NAME,
) -> int:
    """Run a fresh `MigrationRunner`; see `MigrationRunner.run`."""
    runner = MigrationRunner(options=options, table_name=table_name)
    return await runner.run(queryer, target, versions)
