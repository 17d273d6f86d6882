"""
Composable SELECT construction.

Field references in select fragments use the record's field names inside
double braces and are replaced with the quoted column name:

    table.select("{{ID}}, {{Name}}").where("{{ID}} > ?").order_by("{{Name}} DESC")
    -> SELECT `id`, `name` FROM `users` WHERE `id` > ? ORDER BY `name` DESC

A `Select` can itself be the source of another select:

    inner = table.select("*").where("{{Deleted}} = 0")
    outer = inner.select("*").as_("live").limit(0, 10)

`Select` is immutable; every builder method returns a new instance.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol

from tabler.errors import TemplateResolutionError

if TYPE_CHECKING:
    from tabler.database import Queryer

logger = logging.getLogger(__name__)

_TEMPLATE = re.compile(r"\{\{(.+?)\}\}")


class Selectable(Protocol):
    """Anything a Select can read FROM: a Table or another Select."""

    def from_clause(self) -> str: ...

    def name_map(self) -> Mapping[str, str]: ...

    @property
    def result_type(self) -> type: ...

    def materialize(self, row: Mapping[str, Any]) -> Any: ...


def resolve_templates(template: str, name_map: Mapping[str, str], *, strict: bool = True) -> str:
    """
    Replace `{{Field}}` references with quoted column names.

    In strict mode an unknown field raises `TemplateResolutionError`;
    otherwise the reference is dropped and a warning is logged.
    """

    def replace(match: re.Match[str]) -> str:
        field_name = match.group(1).strip()
        name = name_map.get(field_name)
        if name:
            return f"`{name}`"
        if strict:
            raise TemplateResolutionError(field_name, template)
        logger.warning("Dropping unknown field %r from template %r", field_name, template)
        return ""

    return _TEMPLATE.sub(replace, template)


@dataclass(frozen=True, slots=True)
class Limit:
    offset: int
    row_count: int


@dataclass(frozen=True)
class Select:
    """SELECT statement builder bound to a source."""

    source: Selectable
    fields: str = "*"
    alias: str = ""
    where_clause: str = ""
    group_by_clause: str = ""
    order_by_clause: str = ""
    limit_clause: Limit | None = None
    strict: bool = True

    @classmethod
    def new(cls, fields: str, source: Selectable, *, strict: bool = True) -> Select:
        """Start a select over `source` with a field template."""
        return cls(
            source=source,
            fields=resolve_templates(fields, source.name_map(), strict=strict),
            strict=strict,
        )

    def _resolve(self, template: str) -> str:
        return resolve_templates(template, self.source.name_map(), strict=self.strict)

    def as_(self, alias: str) -> Select:
        return dataclasses.replace(self, alias=self._resolve(alias))

    def where(self, condition: str) -> Select:
        return dataclasses.replace(self, where_clause=self._resolve(condition))

    def group_by(self, expression: str) -> Select:
        return dataclasses.replace(self, group_by_clause=self._resolve(expression))

    def order_by(self, expression: str) -> Select:
        return dataclasses.replace(self, order_by_clause=self._resolve(expression))

    def limit(self, offset: int, row_count: int) -> Select:
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if row_count < 0:
            raise ValueError("row_count must be >= 0")
        return dataclasses.replace(self, limit_clause=Limit(int(offset), int(row_count)))

    def select(self, fields: str) -> Select:
        """Start a new select that reads from this one."""
        return Select.new(fields, self, strict=self.strict)

    def query(self) -> str:
        parts = [f"SELECT {self.fields} FROM {self.source.from_clause()}"]

        if self.alias:
            parts.append(f"AS {self.alias}")
        if self.where_clause:
            parts.append(f"WHERE {self.where_clause}")
        if self.group_by_clause:
            parts.append(f"GROUP BY {self.group_by_clause}")
        if self.order_by_clause:
            parts.append(f"ORDER BY {self.order_by_clause}")
        if self.limit_clause is not None:
            parts.append(f"LIMIT {self.limit_clause.offset}, {self.limit_clause.row_count}")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.query()

    # Selectable

    def from_clause(self) -> str:
        return f"({self.query()})"

    def name_map(self) -> Mapping[str, str]:
        return self.source.name_map()

    @property
    def result_type(self) -> type:
        return self.source.result_type

    def materialize(self, row: Mapping[str, Any]) -> Any:
        return self.source.materialize(row)

    # Execution

    async def run(self, queryer: Queryer, *args: Any) -> list[Any]:
        """Execute the query and return one record per row."""
        sql = self.query()
        logger.debug("select: %s (%d args)", sql, len(args))
        return await queryer.query(self.materialize, sql, *args)

    async def run_one(self, queryer: Queryer, *args: Any) -> Any | None:
        """Execute the query and return the first record, or None."""
        sql = self.query()
        logger.debug("select one: %s (%d args)", sql, len(args))
        return await queryer.query_one(self.materialize, sql, *args)
