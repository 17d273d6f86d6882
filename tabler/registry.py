"""
Explicit table registry and database bootstrap.

Build one registry at startup and pass it to the code that needs tables,
instead of keeping tables in module globals:

    registry = TableRegistry(config.tables)
    users = registry.register("users", User, keys=["UNIQUE KEY (`email`)"])

    db = await open_database(config, registry, version="1.2", versions=VERSIONS)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Sequence

from tabler.config import TableOptions, TablerConfig
from tabler.database import Database, Queryer
from tabler.errors import TablerError
from tabler.migration import MigrationRunner, Version
from tabler.table import Table

logger = logging.getLogger(__name__)


class TableRegistry:
    """Named tables, in registration order."""

    def __init__(self, options: TableOptions | None = None) -> None:
        self._options = options or TableOptions()
        self._tables: dict[str, Table] = {}

    @property
    def options(self) -> TableOptions:
        return self._options

    def register(self, name: str, record_type: Any, *, keys: Iterable[str] = ()) -> Table:
        """Build a table for `record_type` and register it under `name`."""
        if name in self._tables:
            raise TablerError(f"Table {name!r} is already registered")
        table = Table(
            name,
            record_type,
            engine=self._options.engine,
            charset=self._options.charset,
            keys=keys,
            strict_templates=self._options.strict_templates,
        )
        self._tables[name] = table
        return table

    def get(self, name: str) -> Table | None:
        return self._tables.get(name)

    def __getitem__(self, name: str) -> Table:
        return self._tables[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def create_statements(self) -> list[str]:
        return [table.create_statement() for table in self._tables.values()]

    async def create_all(self, queryer: Queryer) -> None:
        """Create every registered table that does not exist yet."""
        for table in self._tables.values():
            logger.debug("Creating table %s", table.name)
            await table.create(queryer)


async def open_database(
    config: TablerConfig,
    registry: TableRegistry,
    *,
    version: str | None = None,
    versions: Sequence[Version] = (),
) -> Database:
    """
    Open the configured database, create registered tables and migrate.

    Migrations only run when `version` is given. The database is closed again
    if any step fails.
    """
    db = Database(config.database.path, pragmas=config.database.pragmas)
    await db.open()
    try:
        await registry.create_all(db)
        if version is not None:
            runner = MigrationRunner(options=config.tables, table_name=config.migration_table)
            await runner.run(db, version, versions)
    except BaseException:
        await db.close()
        raise
    return db
