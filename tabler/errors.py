"""
Error taxonomy for tabler.

Schema and construction errors are raised while a `Table` is being built and
indicate a programming error in the record definition; they are not meant to
be retried. Execution errors wrap whatever the database driver raised.
"""

from __future__ import annotations


class TablerError(RuntimeError):
    """Base class for all tabler errors."""


class SchemaError(TablerError):
    """A record cannot be mapped to a table (unmappable type, missing primary key, ...)."""


class ConstructionError(TablerError):
    """The root value handed to the descriptor is not a record."""


class RecordTypeError(TablerError, TypeError):
    """A record of the wrong type was passed to a table operation."""


class EmptyInsertError(TablerError, ValueError):
    """An INSERT was requested without any records."""


class TemplateResolutionError(TablerError):
    """A `{{Field}}` template reference does not name a known field."""

    def __init__(self, field_name: str, template: str) -> None:
        super().__init__(f"Unknown field {field_name!r} in template {template!r}")
        self.field_name = field_name
        self.template = template


class ExecutionError(TablerError):
    """The database rejected a statement."""

    def __init__(self, message: str, *, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


class MigrationError(TablerError):
    """A migration run cannot continue."""


class MigrationOrderError(MigrationError):
    """Declared versions are out of order or behind the stored version."""


class ConfigError(TablerError):
    """Configuration file is missing required values or has bad types."""
