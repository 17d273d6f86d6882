"""
Tests for tabler.types.

Tests cover:
- Annotation to column kind resolution
- Date / DateTime textual format and parsing
- Value adaptation for binding and conversion on read
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

import pytest

from tabler.types import (
    Date,
    DateTime,
    Float32,
    Int8,
    Kind,
    UInt64,
    adapt_value,
    convert_value,
    resolve_kind,
)


class TestResolveKind:
    """Tests for resolve_kind()."""

    @pytest.mark.parametrize(
        ("annotation", "kind"),
        [
            (int, Kind.INT64),
            (float, Kind.FLOAT64),
            (bool, Kind.BOOL),
            (str, Kind.TEXT),
            (bytes, Kind.BLOB),
            (Date, Kind.DATE),
            (DateTime, Kind.DATETIME),
            (dt.date, Kind.DATE),
            (dt.datetime, Kind.DATETIME),
            (Int8, Kind.INT8),
            (UInt64, Kind.UINT64),
            (Float32, Kind.FLOAT32),
        ],
    )
    def test_known_annotations(self, annotation: object, kind: Kind) -> None:
        assert resolve_kind(annotation) == (kind, False)

    def test_optional_is_nullable(self) -> None:
        assert resolve_kind(Optional[str]) == (Kind.TEXT, True)
        assert resolve_kind(Int8 | None) == (Kind.INT8, True)
        assert resolve_kind(DateTime | None) == (Kind.DATETIME, True)

    def test_unmappable(self) -> None:
        assert resolve_kind(list[int]) == (None, False)
        assert resolve_kind(dict) == (None, False)
        assert resolve_kind(int | str) == (None, False)

    def test_sql_type_names(self) -> None:
        assert Kind.BOOL.sql_type == "tinyint(1)"
        assert Kind.UINT32.sql_type == "int unsigned"
        assert Kind.FLOAT64.sql_type == "double"


class TestTemporal:
    """Tests for Date and DateTime."""

    def test_date_format(self) -> None:
        assert str(Date(2024, 3, 1)) == "2024-03-01"

    def test_datetime_format(self) -> None:
        assert str(DateTime(2024, 3, 1, 13, 45, 0)) == "2024-03-01 13:45:00"

    def test_date_parse(self) -> None:
        assert Date.parse("2024-03-01") == Date(2024, 3, 1)
        assert Date.parse("2024-03-01 13:45:00") == Date(2024, 3, 1)

    def test_datetime_parse(self) -> None:
        assert DateTime.parse("2024-03-01 13:45:00") == DateTime(2024, 3, 1, 13, 45, 0)
        assert DateTime.parse("2024-03-01T13:45:00") == DateTime(2024, 3, 1, 13, 45, 0)

    def test_datetime_from_aware_value_is_utc(self) -> None:
        cet = dt.timezone(dt.timedelta(hours=1))
        value = dt.datetime(2024, 3, 1, 14, 45, 0, tzinfo=cet)
        assert DateTime.from_value(value) == DateTime(2024, 3, 1, 13, 45, 0)

    def test_from_bytes(self) -> None:
        assert Date.from_value(b"2024-03-01") == Date(2024, 3, 1)
        assert DateTime.from_value(b"2024-03-01 13:45:00") == DateTime(2024, 3, 1, 13, 45)

    def test_now_utc_has_second_resolution(self) -> None:
        now = DateTime.now_utc()
        assert now.microsecond == 0
        assert now.tzinfo is None

    def test_invalid_value(self) -> None:
        with pytest.raises(ValueError):
            Date.from_value(12)


class TestValueConversion:
    """Tests for adapt_value() and convert_value()."""

    def test_adapt_temporal_values(self) -> None:
        assert adapt_value(Date(2024, 3, 1)) == "2024-03-01"
        assert adapt_value(dt.date(2024, 3, 1)) == "2024-03-01"
        assert adapt_value(DateTime(2024, 3, 1, 13, 45)) == "2024-03-01 13:45:00"
        assert adapt_value(dt.datetime(2024, 3, 1, 13, 45, 10, 999)) == "2024-03-01 13:45:10"

    def test_adapt_scalars(self) -> None:
        assert adapt_value(True) == 1
        assert adapt_value(bytearray(b"ab")) == b"ab"
        assert adapt_value("x") == "x"
        assert adapt_value(None) is None

    def test_convert_values(self) -> None:
        assert convert_value(Kind.BOOL, 1) is True
        assert convert_value(Kind.INT8, "7") == 7
        assert convert_value(Kind.FLOAT32, 1) == 1.0
        assert convert_value(Kind.BLOB, memoryview(b"ab")) == b"ab"
        assert convert_value(Kind.DATE, "2024-03-01") == Date(2024, 3, 1)
        assert isinstance(convert_value(Kind.DATETIME, "2024-03-01 13:45:00"), DateTime)

    def test_convert_null(self) -> None:
        assert convert_value(Kind.INT64, None) is None
        assert convert_value(Kind.TEXT, None, nullable=True) is None
        assert convert_value(Kind.TEXT, None, nullable=False) == ""

    def test_unknown_kind_passes_through(self) -> None:
        assert convert_value(None, [1, 2]) == [1, 2]
