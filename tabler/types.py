"""
Semantic column kinds and value adaptation.

Python integers and floats carry no width, so sized kinds are spelled with
`typing.Annotated` aliases:

    @dataclass
    class Sample:
        id: UInt64
        level: Int8
        ratio: Float32
        taken_on: Date
        taken_at: DateTime | None = None

Plain `int`, `float`, `bool`, `str` and `bytes` map to their natural kinds.

Temporal values are exchanged with the database as fixed-format UTC text:
`"2024-03-01"` for dates and `"2024-03-01 13:45:00"` for date-times.
"""

from __future__ import annotations

import datetime as _dt
import types as _types
from enum import Enum
from typing import Annotated, Any, Final, Union, get_args, get_origin

DATE_FORMAT: Final[str] = "%Y-%m-%d"
DATETIME_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"


class Kind(Enum):
    """Column kinds with their SQL type names."""

    INT8 = "tinyint"
    INT16 = "smallint"
    INT32 = "int"
    INT64 = "bigint"
    UINT8 = "tinyint unsigned"
    UINT16 = "smallint unsigned"
    UINT32 = "int unsigned"
    UINT64 = "bigint unsigned"
    FLOAT32 = "float"
    FLOAT64 = "double"
    BOOL = "tinyint(1)"
    TEXT = "text"
    BLOB = "blob"
    DATE = "date"
    DATETIME = "datetime"

    @property
    def sql_type(self) -> str:
        return self.value


_INTEGER_KINDS = frozenset(
    {
        Kind.INT8,
        Kind.INT16,
        Kind.INT32,
        Kind.INT64,
        Kind.UINT8,
        Kind.UINT16,
        Kind.UINT32,
        Kind.UINT64,
    }
)

Int8 = Annotated[int, Kind.INT8]
Int16 = Annotated[int, Kind.INT16]
Int32 = Annotated[int, Kind.INT32]
Int64 = Annotated[int, Kind.INT64]
UInt8 = Annotated[int, Kind.UINT8]
UInt16 = Annotated[int, Kind.UINT16]
UInt32 = Annotated[int, Kind.UINT32]
UInt64 = Annotated[int, Kind.UINT64]
Float32 = Annotated[float, Kind.FLOAT32]
Float64 = Annotated[float, Kind.FLOAT64]


class Date(_dt.date):
    """Calendar date stored as `YYYY-MM-DD`."""

    def __str__(self) -> str:
        return self.strftime(DATE_FORMAT)

    @classmethod
    def today_utc(cls) -> Date:
        now = _dt.datetime.now(_dt.timezone.utc)
        return cls(now.year, now.month, now.day)

    @classmethod
    def parse(cls, text: str) -> Date:
        # Accept a full date-time as well; some backends hand dates back that way.
        parsed = _dt.datetime.strptime(text.strip()[:10], DATE_FORMAT)
        return cls(parsed.year, parsed.month, parsed.day)

    @classmethod
    def from_value(cls, value: Any) -> Date:
        if isinstance(value, Date):
            return value
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, _dt.date):
            return cls(value.year, value.month, value.day)
        raise ValueError(f"Cannot convert {value!r} to Date")


class DateTime(_dt.datetime):
    """Naive UTC date-time stored as `YYYY-MM-DD HH:MM:SS`."""

    def __str__(self) -> str:
        return self.strftime(DATETIME_FORMAT)

    @classmethod
    def now_utc(cls) -> DateTime:
        return cls._from_datetime(_dt.datetime.now(_dt.timezone.utc))

    @classmethod
    def parse(cls, text: str) -> DateTime:
        text = text.strip()
        try:
            parsed = _dt.datetime.strptime(text, DATETIME_FORMAT)
        except ValueError:
            parsed = _dt.datetime.fromisoformat(text)
        return cls._from_datetime(parsed)

    @classmethod
    def from_value(cls, value: Any) -> DateTime:
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, _dt.datetime):
            return cls._from_datetime(value)
        if isinstance(value, _dt.date):
            return cls(value.year, value.month, value.day)
        raise ValueError(f"Cannot convert {value!r} to DateTime")

    @classmethod
    def _from_datetime(cls, value: _dt.datetime) -> DateTime:
        if value.tzinfo is not None:
            value = value.astimezone(_dt.timezone.utc)
        return cls(value.year, value.month, value.day, value.hour, value.minute, value.second)


_PLAIN_KINDS: dict[Any, Kind] = {
    int: Kind.INT64,
    float: Kind.FLOAT64,
    bool: Kind.BOOL,
    str: Kind.TEXT,
    bytes: Kind.BLOB,
    bytearray: Kind.BLOB,
    Date: Kind.DATE,
    _dt.date: Kind.DATE,
    DateTime: Kind.DATETIME,
    _dt.datetime: Kind.DATETIME,
}


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is Union or origin is _types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1 and len(args) != len(get_args(annotation)):
            return args[0], True
    return annotation, False


def resolve_kind(annotation: Any) -> tuple[Kind | None, bool]:
    """
    Resolve a field annotation to its column kind.

    Returns:
        `(kind, nullable)`; kind is None when the annotation is unmappable.
    """
    annotation, nullable = _unwrap_optional(annotation)

    if get_origin(annotation) is Annotated:
        base, *extras = get_args(annotation)
        for extra in extras:
            if isinstance(extra, Kind):
                return extra, nullable
        annotation, inner_nullable = _unwrap_optional(base)
        nullable = nullable or inner_nullable

    try:
        return _PLAIN_KINDS.get(annotation), nullable
    except TypeError:
        # Unhashable annotation objects can never be a known kind.
        return None, nullable


def adapt_value(value: Any) -> Any:
    """Convert a Python value to something the SQLite driver can bind."""
    if isinstance(value, _dt.datetime):
        return str(DateTime.from_value(value))
    if isinstance(value, _dt.date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def convert_value(kind: Kind | None, value: Any, *, nullable: bool = True) -> Any:
    """Convert a stored value back to the Python type of `kind`."""
    if value is None:
        if kind is Kind.TEXT and not nullable:
            return ""
        return None
    if kind is None:
        return value
    if kind in _INTEGER_KINDS:
        return int(value)
    if kind in (Kind.FLOAT32, Kind.FLOAT64):
        return float(value)
    if kind is Kind.BOOL:
        return bool(int(value))
    if kind is Kind.TEXT:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode()
        return str(value)
    if kind is Kind.BLOB:
        if isinstance(value, str):
            return value.encode()
        return bytes(value)
    if kind is Kind.DATE:
        return Date.from_value(value)
    return DateTime.from_value(value)
