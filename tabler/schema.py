"""
Schema inference for record types.

`build_table_descriptor()` walks a record (embedded records flattened, private
fields ignored) and produces one `ColumnDescriptor` per field. Three layers
decide what a column looks like:

1. Inference: the physical name is the snake_case form of the field name and
   the SQL type comes from the field annotation (see `tabler.types`).
2. The explicit-name layer, `db` metadata: a column name, or `"-"` to skip
   the field outright.
3. Directives, set with `column(...)` or as a free-form `sql` metadata
   string:

       id: int = column(sql="auto,primary,NOT NULL AUTO_INCREMENT")
       version: str = column(override="VARCHAR(64)")
       email: str = column(db="email_address", raw="NOT NULL")

   - `skip` / `-`      exclude the field
   - `override`        the raw fragment is the complete column type
   - `primary`         primary key (otherwise the first column is used)
   - `auto`            value is generated by the database; excluded from
                       INSERT and UPDATE
   - `noupdate`        excluded from UPDATE only
   - `name=<x>`        column name (last one wins)
   - anything else     raw fragment appended after the type (last one wins)
"""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Final, Mapping, Union

from tabler.descriptor import FieldDescriptor, RecordDescriptor, describe
from tabler.errors import SchemaError
from tabler.types import Kind, adapt_value, convert_value, resolve_kind

logger = logging.getLogger(__name__)

# Field metadata keys.
DB_KEY: Final[str] = "db"
SQL_KEY: Final[str] = "sql"
DIRECTIVES_KEY: Final[str] = "tabler.directives"

SKIP_SENTINEL: Final[str] = "-"


# ---------------------------------------------------------------------------
# Directives
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Skip:
    pass


@dataclass(frozen=True, slots=True)
class Override:
    pass


@dataclass(frozen=True, slots=True)
class Primary:
    pass


@dataclass(frozen=True, slots=True)
class Auto:
    pass


@dataclass(frozen=True, slots=True)
class NoUpdate:
    pass


@dataclass(frozen=True, slots=True)
class Name:
    value: str


@dataclass(frozen=True, slots=True)
class Raw:
    fragment: str


Directive = Union[Skip, Override, Primary, Auto, NoUpdate, Name, Raw]

_KEYWORDS: Final[dict[str, Directive]] = {
    SKIP_SENTINEL: Skip(),
    "skip": Skip(),
    "override": Override(),
    "primary": Primary(),
    "auto": Auto(),
    "noupdate": NoUpdate(),
}


def _split_components(tag: str) -> list[str]:
    # Commas inside parentheses or quotes belong to the fragment, e.g. DECIMAL(10,2).
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    current: list[str] = []
    for ch in tag:
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    parts.append("".join(current))
    return parts


def parse_directives(tag: str) -> tuple[Directive, ...]:
    """Parse a free-form `sql` metadata string into directives."""
    directives: list[Directive] = []
    for component in _split_components(tag):
        component = component.strip()
        if not component:
            continue
        keyword = _KEYWORDS.get(component.lower())
        if keyword is not None:
            directives.append(keyword)
            continue
        key, sep, value = component.partition("=")
        if sep and key.strip() == "name":
            directives.append(Name(value.strip()))
        else:
            directives.append(Raw(component))
    return tuple(directives)


def column(
    *,
    db: str | None = None,
    sql: str | None = None,
    skip: bool = False,
    override: str | None = None,
    primary: bool = False,
    auto: bool = False,
    noupdate: bool = False,
    name: str | None = None,
    raw: str | None = None,
    **kwargs: Any,
) -> Any:
    """
    Declare a record field with column metadata.

    Remaining keyword arguments (`default`, `default_factory`, ...) are passed
    to `dataclasses.field`.
    """
    if override is not None and raw is not None:
        raise SchemaError("column() takes either override or raw, not both")

    directives: list[Directive] = []
    if skip:
        directives.append(Skip())
    if override is not None:
        directives += [Override(), Raw(override)]
    if primary:
        directives.append(Primary())
    if auto:
        directives.append(Auto())
    if noupdate:
        directives.append(NoUpdate())
    if name is not None:
        directives.append(Name(name))
    if raw is not None:
        directives.append(Raw(raw))

    metadata = dict(kwargs.pop("metadata", None) or {})
    if db is not None:
        metadata[DB_KEY] = db
    if sql is not None:
        metadata[SQL_KEY] = sql
    if directives:
        metadata[DIRECTIVES_KEY] = tuple(directives)
    return dataclasses.field(metadata=metadata, **kwargs)


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(name: str) -> str:
    """`UserID` -> `user_id`, `HTTPServer` -> `http_server`."""
    snake = _FIRST_CAP.sub(r"\1_\2", name)
    snake = _ALL_CAP.sub(r"\1_\2", snake)
    return snake.lower()


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """One table column derived from one record field."""

    name: str
    field_name: str
    path: tuple[str, ...]
    sql_type: str
    raw: str = ""
    override: bool = False
    primary: bool = False
    auto: bool = False
    no_update: bool = False
    kind: Kind | None = None
    nullable: bool = False

    def definition(self) -> str:
        """Column definition as used inside CREATE TABLE."""
        if self.override:
            return f"`{self.name}` {self.raw}"
        if not self.raw:
            return f"`{self.name}` {self.sql_type}"
        return f"`{self.name}` {self.sql_type} {self.raw}"

    def value(self, record: Any) -> Any:
        """Read this column's bindable value from a record."""
        for attr in self.path:
            record = getattr(record, attr)
        return adapt_value(record)

    def convert(self, stored: Any) -> Any:
        return convert_value(self.kind, stored, nullable=self.nullable)


@dataclass(frozen=True)
class TableDescriptor:
    """Ordered columns of a record type plus the primary key designation."""

    record: RecordDescriptor
    columns: tuple[ColumnDescriptor, ...]
    column_map: Mapping[str, ColumnDescriptor]
    primary_column: ColumnDescriptor | None

    @property
    def record_type(self) -> type:
        return self.record.record_type

    def insert_columns(self) -> tuple[ColumnDescriptor, ...]:
        return tuple(c for c in self.columns if not c.auto)

    def update_columns(self) -> tuple[ColumnDescriptor, ...]:
        return tuple(
            c
            for c in self.columns
            if c is not self.primary_column and not c.auto and not c.no_update
        )

    def name_map(self) -> dict[str, str]:
        """Logical field name -> physical column name."""
        return {field_name: c.name for field_name, c in self.column_map.items()}

    def materialize(self, row: Mapping[str, Any]) -> Any:
        """Build a record from a result row keyed by column name."""
        values = {c.path: c.convert(row[c.name]) for c in self.columns if c.name in row}
        return self.record.instantiate(values)


def _column_for_field(field: FieldDescriptor) -> ColumnDescriptor | None:
    kind, nullable = resolve_kind(field.annotation)

    name = to_snake_case(field.name)
    skip = False

    db_name = field.metadata.get(DB_KEY)
    if db_name:
        if db_name == SKIP_SENTINEL:
            return None
        name = db_name

    directives: list[Directive] = list(field.metadata.get(DIRECTIVES_KEY, ()))
    sql = field.metadata.get(SQL_KEY)
    if sql:
        directives += parse_directives(sql)

    raw = ""
    override = primary = auto = no_update = False
    for directive in directives:
        if isinstance(directive, Skip):
            skip = True
        elif isinstance(directive, Override):
            override = True
        elif isinstance(directive, Primary):
            primary = True
        elif isinstance(directive, Auto):
            auto = True
        elif isinstance(directive, NoUpdate):
            no_update = True
        elif isinstance(directive, Name):
            name = directive.value
        else:
            raw = directive.fragment

    if skip:
        return None

    if kind is None and not override:
        raise SchemaError(f"Unmappable field {field.uid}: {field.annotation!r}")

    if override and not raw:
        raise SchemaError(f"Field {field.uid} is marked override but has no column type")

    return ColumnDescriptor(
        name=name,
        field_name=field.name,
        path=field.path,
        sql_type=kind.sql_type if kind is not None else "",
        raw=raw,
        override=override,
        primary=primary,
        auto=auto,
        no_update=no_update,
        kind=kind,
        nullable=nullable,
    )


def build_table_descriptor(record: Any) -> TableDescriptor:
    """
    Build the table descriptor for a record class or instance.

    Raises:
        ConstructionError: If `record` is not a dataclass.
        SchemaError: On unmappable fields, duplicate column names or more
            than one primary key.
    """
    desc = describe(record)

    columns: list[ColumnDescriptor] = []
    column_map: dict[str, ColumnDescriptor] = {}
    physical: set[str] = set()
    primary: ColumnDescriptor | None = None

    def visit(field: FieldDescriptor) -> None:
        nonlocal primary

        col = _column_for_field(field)
        if col is None:
            return

        if col.name in physical:
            raise SchemaError(f"Duplicate column name {col.name!r} in {desc.uid}")
        if col.field_name in column_map:
            raise SchemaError(f"Duplicate field name {col.field_name!r} in {desc.uid}")

        if col.primary:
            if primary is not None:
                raise SchemaError(
                    f"Both {primary.field_name!r} and {col.field_name!r} are marked primary "
                    f"in {desc.uid}"
                )
            primary = col

        physical.add(col.name)
        columns.append(col)
        column_map[col.field_name] = col

    desc.scan_fields(visit, exported_only=True, flatten_embedded=True)

    if primary is None and columns:
        primary = columns[0]

    logger.debug(
        "Built table descriptor for %s: %d columns, primary=%s",
        desc.uid,
        len(columns),
        primary.name if primary else None,
    )

    return TableDescriptor(
        record=desc,
        columns=tuple(columns),
        column_map=MappingProxyType(column_map),
        primary_column=primary,
    )
