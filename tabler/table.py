"""
Tables bound to record types.

A `Table` pairs a table name with the descriptor of a record type and
generates SQL for it:

    @dataclass
    class User:
        id: int = column(sql="auto,primary")
        email: str = ""
        born_on: Date | None = None

    users = Table("users", User)
    users.create_statement()
    await users.insert([User(email="a@example.com")], db)
    rows = await users.select("*").where("{{email}} = ?").run(db, "a@example.com")

Statement builders (`*_statement`) are pure; the async methods execute the
statement through a `Queryer`. Key and constraint clauses may be added until
the table produces its first statement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Mapping, NamedTuple, Sequence

from tabler.errors import EmptyInsertError, RecordTypeError, SchemaError, TablerError
from tabler.schema import ColumnDescriptor, TableDescriptor, build_table_descriptor, column
from tabler.select import Select, resolve_templates
from tabler.types import DateTime

if TYPE_CHECKING:
    from tabler.database import ExecResult, Queryer

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "InnoDB"
DEFAULT_CHARSET = "utf8mb4"


class Statement(NamedTuple):
    """Generated SQL with its positional parameters."""

    sql: str
    params: tuple[Any, ...]


@dataclass
class Model:
    """
    Base block for records that are updated and deleted by id.

    Embed it with `embedded(Model)`. The column definitions target MySQL.
    """

    id: int = column(db="id", sql="auto,NOT NULL AUTO_INCREMENT", default=0)
    created_at: DateTime | None = column(
        db="created_at", sql="auto,DEFAULT CURRENT_TIMESTAMP", default=None
    )
    modified_at: DateTime | None = column(
        db="modified_at",
        sql="auto,DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP",
        default=None,
    )
    deleted: bool = column(db="deleted", sql="auto,DEFAULT 0", default=False)


class Table:
    """A SQL table generated from a record type."""

    def __init__(
        self,
        name: str,
        record_type: Any,
        *,
        engine: str | None = DEFAULT_ENGINE,
        charset: str | None = DEFAULT_CHARSET,
        keys: Iterable[str] = (),
        strict_templates: bool = True,
    ) -> None:
        self._name = name
        self._engine = engine or ""
        self._charset = charset or ""
        self._keys: list[str] = list(keys)
        self._strict = strict_templates
        self._descriptor = build_table_descriptor(record_type)
        self._sealed = False

    def __repr__(self) -> str:
        return f"Table({self._name!r}, {self._descriptor.record.name})"

    @property
    def engine(self) -> str:
        return self._engine

    @property
    def charset(self) -> str:
        return self._charset

    @property
    def name(self) -> str:
        return self._name

    @property
    def keys_and_constraints(self) -> tuple[str, ...]:
        return tuple(self._keys)

    @property
    def descriptor(self) -> TableDescriptor:
        return self._descriptor

    @property
    def strict_templates(self) -> bool:
        return self._strict

    def add_key(self, clause: str) -> None:
        """Append a raw KEY / CONSTRAINT clause to the CREATE statement."""
        if self._sealed:
            raise TablerError(f"Table {self._name!r} is in use; keys can no longer be added")
        self._keys.append(clause)

    def resolve_templates(self, query: str) -> str:
        """Resolve `{{Field}}` references in a raw query against this table."""
        return resolve_templates(query, self.name_map(), strict=self._strict)

    # -----------------------------------------------------------------------
    # Statement builders
    # -----------------------------------------------------------------------

    def create_statement(self, *, if_not_exists: bool = True) -> str:
        """CREATE TABLE statement for this table."""
        self._sealed = True
        desc = self._descriptor

        entries = [c.definition() for c in desc.columns]
        if desc.primary_column is not None:
            entries.append(f"PRIMARY KEY (`{desc.primary_column.name}`)")
        entries.extend(self._keys)

        exists = "IF NOT EXISTS " if if_not_exists else ""
        body = ",\n".join(f"\t{entry}" for entry in entries)

        options = ""
        if self._engine:
            options += f" ENGINE={self._engine}"
        if self._charset:
            options += f" DEFAULT CHARSET={self._charset}"

        return f"CREATE TABLE {exists}`{self._name}` (\n{body}\n){options};"

    def insert_statement(self, records: Sequence[Any]) -> Statement:
        """Multi-row INSERT for `records`, skipping auto columns."""
        if not records:
            raise EmptyInsertError(f"Nothing to insert into {self._name!r}")
        for record in records:
            self._check_record(record)

        self._sealed = True
        columns = self._descriptor.insert_columns()

        names = ",".join(f"`{c.name}`" for c in columns)
        group = "(" + ",".join("?" for _ in columns) + ")"
        values = ",".join(group for _ in records)
        params = tuple(c.value(record) for record in records for c in columns)

        return Statement(f"INSERT INTO `{self._name}` ({names}) VALUES {values}", params)

    def update_statement(self, record: Any) -> Statement:
        """UPDATE of every updatable column, keyed by the primary column."""
        self._check_record(record)
        primary = self._require_primary("update")
        columns = self._descriptor.update_columns()
        if not columns:
            raise SchemaError(f"Table {self._name!r} has no updatable columns")

        self._sealed = True
        assignments = ",".join(f"`{c.name}`=?" for c in columns)
        params = tuple(c.value(record) for c in columns) + (primary.value(record),)

        return Statement(
            f"UPDATE `{self._name}` SET {assignments} WHERE `{primary.name}`=?", params
        )

    def delete_statement(self, record: Any) -> Statement:
        """DELETE keyed by the primary column."""
        self._check_record(record)
        primary = self._require_primary("delete")

        self._sealed = True
        return Statement(
            f"DELETE FROM `{self._name}` WHERE `{primary.name}`=?", (primary.value(record),)
        )

    # -----------------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------------

    async def create(self, queryer: Queryer, *, if_not_exists: bool = True) -> ExecResult:
        return await queryer.execute(self.create_statement(if_not_exists=if_not_exists))

    async def insert(self, records: Sequence[Any], queryer: Queryer) -> ExecResult:
        statement = self.insert_statement(records)
        logger.debug("insert: %s (%d params)", statement.sql, len(statement.params))
        return await queryer.execute(statement.sql, *statement.params)

    async def update(self, record: Any, queryer: Queryer) -> ExecResult:
        statement = self.update_statement(record)
        logger.debug("update: %s (%d params)", statement.sql, len(statement.params))
        return await queryer.execute(statement.sql, *statement.params)

    async def delete(self, record: Any, queryer: Queryer) -> ExecResult:
        statement = self.delete_statement(record)
        logger.debug("delete: %s", statement.sql)
        return await queryer.execute(statement.sql, *statement.params)

    def select(self, fields: str = "*") -> Select:
        """Start a SELECT with this table as source."""
        self._sealed = True
        return Select.new(fields, self, strict=self._strict)

    # -----------------------------------------------------------------------
    # Selectable
    # -----------------------------------------------------------------------

    def from_clause(self) -> str:
        return f"`{self._name}`"

    def name_map(self) -> Mapping[str, str]:
        return self._descriptor.name_map()

    @property
    def result_type(self) -> type:
        return self._descriptor.record_type

    def materialize(self, row: Mapping[str, Any]) -> Any:
        return self._descriptor.materialize(row)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _check_record(self, record: Any) -> None:
        if not isinstance(record, self._descriptor.record_type):
            raise RecordTypeError(
                f"Table {self._name!r} expects {self._descriptor.record.name}, "
                f"got {type(record).__name__}"
            )

    def _require_primary(self, operation: str) -> ColumnDescriptor:
        primary = self._descriptor.primary_column
        if primary is None:
            raise SchemaError(f"Cannot {operation} on {self._name!r}: no primary column")
        return primary
