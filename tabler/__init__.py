"""
tabler - SQL schema and query generation from dataclass records.

Describe a record as a dataclass, bind it to a `Table`, and tabler derives the
CREATE TABLE statement, INSERT/UPDATE/DELETE statements and composable
SELECTs. A versioned migration runner keeps the schema in step with the code.
"""

__version__ = "0.1.0"

from tabler.database import Database, ExecResult, Queryer, Transaction
from tabler.descriptor import describe, embedded
from tabler.errors import (
    ConfigError,
    ConstructionError,
    EmptyInsertError,
    ExecutionError,
    MigrationError,
    MigrationOrderError,
    RecordTypeError,
    SchemaError,
    TablerError,
    TemplateResolutionError,
)
from tabler.migration import (
    CustomMigration,
    MigrationRunner,
    QueryMigration,
    ScriptMigration,
    Version,
    migrate,
)
from tabler.registry import TableRegistry, open_database
from tabler.schema import build_table_descriptor, column
from tabler.select import Select
from tabler.table import Model, Statement, Table
from tabler.types import Date, DateTime

__all__ = [
    "__version__",
    # records
    "column",
    "embedded",
    "describe",
    "build_table_descriptor",
    "Model",
    "Date",
    "DateTime",
    # tables and queries
    "Table",
    "Select",
    "Statement",
    "TableRegistry",
    # execution
    "Database",
    "Transaction",
    "Queryer",
    "ExecResult",
    "open_database",
    # migrations
    "Version",
    "QueryMigration",
    "ScriptMigration",
    "CustomMigration",
    "MigrationRunner",
    "migrate",
    # errors
    "TablerError",
    "SchemaError",
    "ConstructionError",
    "RecordTypeError",
    "EmptyInsertError",
    "TemplateResolutionError",
    "ExecutionError",
    "MigrationError",
    "MigrationOrderError",
    "ConfigError",
]
