"""
Tests for tabler.table.

Tests cover:
- CREATE TABLE generation (column order, primary key, keys, table options)
- INSERT / UPDATE / DELETE statement generation and parameter order
- Caller errors (empty insert, wrong record type, missing primary key)
- Round trips through an in-memory SQLite database
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

import pytest

from tabler.database import Database
from tabler.descriptor import embedded
from tabler.errors import EmptyInsertError, RecordTypeError, SchemaError, TablerError
from tabler.schema import column
from tabler.table import Model, Table
from tabler.types import Date, DateTime, Float64, UInt32


@dataclass
class Account:
    id: int = column(sql="auto,primary,NOT NULL AUTO_INCREMENT", default=0)
    email: str = ""
    display_name: str = column(raw="NOT NULL DEFAULT ''", default="")
    created_at: DateTime | None = column(auto=True, raw="DEFAULT CURRENT_TIMESTAMP", default=None)
    login_count: UInt32 = column(noupdate=True, default=0)


@dataclass
class Other:
    id: int = 0


@dataclass
class NoColumns:
    _hidden: int = 0


@dataclass
class OnlyKey:
    id: int = 0


@dataclass
class Pair:
    id: int = 0
    value: str = ""


@dataclass
class Article:
    model: Model = embedded(Model)
    title: str = ""


@dataclass
class Event:
    # INTEGER PRIMARY KEY makes SQLite assign ids.
    id: int = column(override="INTEGER NOT NULL", auto=True, default=0)
    title: str = ""
    day: Date = field(default_factory=lambda: Date(2024, 3, 1))
    at: DateTime = field(default_factory=lambda: DateTime(2024, 3, 1, 13, 45, 0))
    flag: bool = False
    payload: bytes = b""
    ratio: Float64 = 0.0
    note: str | None = None


def _accounts() -> Table:
    return Table("accounts", Account)


class TestCreateStatement:
    """Tests for Table.create_statement()."""

    def test_mysql_statement(self) -> None:
        table = _accounts()
        table.add_key("UNIQUE KEY `email` (`email`(191))")

        assert table.create_statement() == (
            "CREATE TABLE IF NOT EXISTS `accounts` (\n"
            "\t`id` bigint NOT NULL AUTO_INCREMENT,\n"
            "\t`email` text,\n"
            "\t`display_name` text NOT NULL DEFAULT '',\n"
            "\t`created_at` datetime DEFAULT CURRENT_TIMESTAMP,\n"
            "\t`login_count` int unsigned,\n"
            "\tPRIMARY KEY (`id`),\n"
            "\tUNIQUE KEY `email` (`email`(191))\n"
            ") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;"
        )

    def test_without_table_options(self) -> None:
        table = Table("others", Other, engine=None, charset="")
        assert table.create_statement(if_not_exists=False) == (
            "CREATE TABLE `others` (\n\t`id` bigint,\n\tPRIMARY KEY (`id`)\n);"
        )

    def test_auto_columns_are_created(self) -> None:
        statement = _accounts().create_statement()
        assert "`created_at`" in statement
        assert "`id`" in statement

    def test_empty_record_has_no_primary_key_clause(self) -> None:
        statement = Table("empty", NoColumns, engine="", charset="").create_statement()
        assert "PRIMARY KEY" not in statement

    def test_keys_sealed_after_use(self) -> None:
        table = _accounts()
        table.add_key("KEY `by_email` (`email`(32))")
        table.create_statement()

        with pytest.raises(TablerError):
            table.add_key("KEY `late` (`display_name`(32))")
        assert table.keys_and_constraints == ("KEY `by_email` (`email`(32))",)

    def test_properties(self) -> None:
        table = Table("accounts", Account, keys=["KEY a (b)"])
        assert table.name == "accounts"
        assert table.engine == "InnoDB"
        assert table.charset == "utf8mb4"
        assert table.keys_and_constraints == ("KEY a (b)",)
        assert table.result_type is Account
        assert table.from_clause() == "`accounts`"

    def test_model_block(self) -> None:
        statement = Table("articles", Article).create_statement()
        assert "\t`id` bigint NOT NULL AUTO_INCREMENT,\n" in statement
        assert "`modified_at` datetime DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP" in statement
        assert "\t`deleted` tinyint(1) DEFAULT 0,\n" in statement
        assert "PRIMARY KEY (`id`)" in statement


class TestInsertStatement:
    """Tests for Table.insert_statement()."""

    def test_two_records(self) -> None:
        a = Account(email="a@example.com", display_name="A", login_count=1)
        b = Account(email="b@example.com", display_name="B", login_count=2)

        statement = _accounts().insert_statement([a, b])

        assert statement.sql == (
            "INSERT INTO `accounts` (`email`,`display_name`,`login_count`) "
            "VALUES (?,?,?),(?,?,?)"
        )
        # 2 x (5 columns - 2 auto columns)
        assert statement.params == ("a@example.com", "A", 1, "b@example.com", "B", 2)

    def test_auto_columns_not_inserted(self) -> None:
        sql = _accounts().insert_statement([Account()]).sql
        column_list = sql[sql.index("(") : sql.index(")")]
        assert "`id`" not in column_list
        assert "`created_at`" not in column_list

    def test_values_are_adapted(self) -> None:
        statement = Table("events", Event).insert_statement([Event(flag=True)])
        assert statement.params == (
            "",
            "2024-03-01",
            "2024-03-01 13:45:00",
            1,
            b"",
            0.0,
            None,
        )

    def test_embedded_values(self) -> None:
        article = Article(title="Hello")
        statement = Table("articles", Article).insert_statement([article])
        assert statement.sql == "INSERT INTO `articles` (`title`) VALUES (?)"
        assert statement.params == ("Hello",)

    def test_empty_insert_is_rejected(self) -> None:
        with pytest.raises(EmptyInsertError):
            _accounts().insert_statement([])

    def test_wrong_record_type(self) -> None:
        with pytest.raises(RecordTypeError):
            _accounts().insert_statement([Account(), Other()])


class TestUpdateDeleteStatement:
    """Tests for Table.update_statement() and Table.delete_statement()."""

    def test_update(self) -> None:
        record = Account(id=7, email="new@example.com", display_name="New", login_count=9)
        statement = _accounts().update_statement(record)

        assert statement.sql == (
            "UPDATE `accounts` SET `email`=?,`display_name`=? WHERE `id`=?"
        )
        assert statement.params == ("new@example.com", "New", 7)

    def test_update_binds_primary_last(self) -> None:
        statement = Table("pairs", Pair).update_statement(Pair(id=3, value="x"))
        assert statement.sql == "UPDATE `pairs` SET `value`=? WHERE `id`=?"
        assert statement.params == ("x", 3)

    def test_update_without_updatable_columns(self) -> None:
        with pytest.raises(SchemaError):
            Table("only", OnlyKey).update_statement(OnlyKey(id=1))

    def test_delete(self) -> None:
        statement = _accounts().delete_statement(Account(id=7))
        assert statement.sql == "DELETE FROM `accounts` WHERE `id`=?"
        assert statement.params == (7,)

    def test_missing_primary_key(self) -> None:
        table = Table("empty", NoColumns)
        with pytest.raises(SchemaError):
            table.delete_statement(NoColumns())
        with pytest.raises(SchemaError):
            table.update_statement(NoColumns())

    def test_wrong_record_type(self) -> None:
        with pytest.raises(RecordTypeError):
            _accounts().delete_statement(Other())


class TestTableRoundTrip:
    """Tests executing generated statements against SQLite."""

    @pytest.fixture
    async def db(self) -> Database:
        """Create an in-memory database for testing."""
        db = Database(":memory:")
        await db.open()
        yield db
        await db.close()

    @pytest.fixture
    async def events(self, db: Database) -> Table:
        table = Table("events", Event, engine=None, charset=None)
        await table.create(db)
        return table

    async def test_insert_select_round_trip(self, db: Database, events: Table) -> None:
        original = Event(
            title="launch",
            day=Date(2024, 3, 1),
            at=DateTime(2024, 3, 1, 13, 45, 0),
            flag=True,
            payload=b"\x00\x01",
            ratio=0.5,
            note=None,
        )

        result = await events.insert([original], db)
        assert result.rows_affected == 1

        rows = await events.select("*").run(db)
        assert rows == [dataclasses.replace(original, id=1)]
        assert isinstance(rows[0].day, Date)
        assert isinstance(rows[0].at, DateTime)

    async def test_temporal_values_stored_as_text(self, db: Database, events: Table) -> None:
        await events.insert([Event()], db)

        stored = await db.query_one(
            lambda row: (row["day"], row["at"]), "SELECT day, at FROM events"
        )
        assert stored == ("2024-03-01", "2024-03-01 13:45:00")

    async def test_multi_row_insert(self, db: Database, events: Table) -> None:
        result = await events.insert([Event(title=f"e{i}") for i in range(3)], db)
        assert result.rows_affected == 3

        rows = await events.select("*").order_by("{{id}}").run(db)
        assert [r.title for r in rows] == ["e0", "e1", "e2"]
        assert [r.id for r in rows] == [1, 2, 3]

    async def test_update_and_delete(self, db: Database, events: Table) -> None:
        await events.insert([Event(title="before"), Event(title="other")], db)
        first = await events.select("*").where("{{id}} = ?").run_one(db, 1)

        first.title = "after"
        first.flag = True
        result = await events.update(first, db)
        assert result.rows_affected == 1

        updated = await events.select("*").where("{{id}} = ?").run_one(db, 1)
        assert updated.title == "after"
        assert updated.flag is True

        result = await events.delete(updated, db)
        assert result.rows_affected == 1
        remaining = await events.select("*").run(db)
        assert [r.title for r in remaining] == ["other"]

    async def test_select_subset_of_columns(self, db: Database, events: Table) -> None:
        await events.insert([Event(title="partial", ratio=2.5)], db)

        rows = await events.select("{{title}}").run(db)
        assert rows[0].title == "partial"
        # Columns that were not selected keep their defaults.
        assert rows[0].ratio == 0.0
