"""
Runtime description of record types.

A record is a dataclass (class or instance). `describe()` returns a
`RecordDescriptor` that enumerates fields in declaration order and can
flatten embedded sub-records, so shared blocks of fields can be reused
across records:

    @dataclass
    class Audit:
        created_by: str = ""
        modified_by: str = ""

    @dataclass
    class Invoice:
        number: str = ""
        audit: Audit = embedded(Audit)

Scanning `Invoice` with `flatten_embedded=True` visits `number`,
`created_by`, `modified_by`.

Embedding is assumed to be acyclic (a record never embeds itself, directly
or indirectly); there is no cycle guard.
"""

from __future__ import annotations

import dataclasses
import typing
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from tabler.errors import ConstructionError

# Metadata key marking a field as an embedded sub-record.
EMBEDDED_KEY = "tabler.embedded"

# Signature of the callback given to `RecordDescriptor.scan_fields`.
ScanFunction = Callable[["FieldDescriptor"], None]


def embedded(record_type: type, **kwargs: Any) -> Any:
    """Declare a field holding an embedded sub-record of `record_type`."""
    if not dataclasses.is_dataclass(record_type):
        raise ConstructionError(f"Embedded type {record_type!r} is not a record")
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[EMBEDDED_KEY] = True
    return dataclasses.field(default_factory=record_type, metadata=metadata, **kwargs)


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """One field of a record, possibly reached through embedded records."""

    field: dataclasses.Field
    annotation: Any
    owner: type
    path: tuple[str, ...]

    @property
    def name(self) -> str:
        return self.field.name

    @property
    def uid(self) -> str:
        return f"{self.owner.__module__}.{self.owner.__qualname__}.{self.name}"

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self.field.metadata

    @property
    def is_exported(self) -> bool:
        return not self.name.startswith("_")

    @property
    def is_embedded(self) -> bool:
        return bool(self.field.metadata.get(EMBEDDED_KEY, False))

    @property
    def can_set(self) -> bool:
        params = getattr(self.owner, "__dataclass_params__", None)
        return self.field.init or not (params is not None and params.frozen)

    def value(self, record: Any) -> Any:
        """Read this field's value from a root record."""
        for name in self.path:
            record = getattr(record, name)
        return record

    def record_descriptor(self) -> RecordDescriptor:
        """Describe the embedded record type held by this field."""
        if not isinstance(self.annotation, type) or not dataclasses.is_dataclass(
            self.annotation
        ):
            raise ConstructionError(f"Field {self.uid} is not a record field")
        return RecordDescriptor(self.annotation, prefix=self.path)


class RecordDescriptor:
    """Field enumerator for a dataclass record type."""

    def __init__(self, record_type: type, *, prefix: tuple[str, ...] = ()) -> None:
        self.record_type = record_type
        hints = typing.get_type_hints(record_type, include_extras=True)
        self._fields = tuple(
            FieldDescriptor(
                field=f,
                annotation=hints.get(f.name, f.type),
                owner=record_type,
                path=(*prefix, f.name),
            )
            for f in dataclasses.fields(record_type)
        )

    def __repr__(self) -> str:
        return f"RecordDescriptor({self.uid})"

    @property
    def name(self) -> str:
        return self.record_type.__name__

    @property
    def uid(self) -> str:
        return f"{self.record_type.__module__}.{self.record_type.__qualname__}"

    def fields(self) -> tuple[FieldDescriptor, ...]:
        return self._fields

    def field_by_name(self, name: str) -> FieldDescriptor | None:
        for f in self._fields:
            if f.name == name:
                return f
        return None

    def scan_fields(
        self,
        visit: ScanFunction,
        *,
        exported_only: bool = True,
        flatten_embedded: bool = True,
    ) -> None:
        """
        Call `visit` for every field in declaration order.

        Embedded fields are recursed into instead of visited when
        `flatten_embedded` is set. Exceptions raised by `visit` stop the scan
        and propagate.
        """
        for f in self._fields:
            if exported_only and not f.is_exported:
                continue
            if flatten_embedded and f.is_embedded:
                f.record_descriptor().scan_fields(
                    visit, exported_only=exported_only, flatten_embedded=flatten_embedded
                )
            else:
                visit(f)

    def instantiate(self, values: Mapping[tuple[str, ...], Any]) -> Any:
        """
        Build a record from values keyed by field path.

        Embedded records are built recursively. Init fields with no value and
        no default are passed as None; non-init fields are assigned after
        construction.
        """
        kwargs: dict[str, Any] = {}
        late: dict[str, Any] = {}

        for f in self._fields:
            if f.is_embedded and f.path not in values:
                value = f.record_descriptor().instantiate(values)
            elif f.path in values:
                value = values[f.path]
            elif _has_default(f.field):
                continue
            else:
                value = None

            if f.field.init:
                kwargs[f.name] = value
            else:
                late[f.name] = value

        record = self.record_type(**kwargs)
        for name, value in late.items():
            object.__setattr__(record, name, value)
        return record


def _has_default(f: dataclasses.Field) -> bool:
    return f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING


def describe(obj: Any) -> RecordDescriptor:
    """
    Describe a record class or instance.

    Raises:
        ConstructionError: If `obj` is neither a dataclass nor a dataclass instance.
    """
    if obj is None:
        raise ConstructionError("Cannot describe None")
    record_type = obj if isinstance(obj, type) else type(obj)
    if not dataclasses.is_dataclass(record_type):
        raise ConstructionError(f"Can't get record descriptor from {obj!r}")
    return RecordDescriptor(record_type)
