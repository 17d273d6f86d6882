"""
Configuration management for tabler.

Configuration is read from TOML files. The defaults ship next to this module
in `tabler.toml`; a user file only needs the values it changes.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tabler.errors import ConfigError

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "tabler.toml"


@dataclass(frozen=True)
class TableOptions:
    """Options applied to every table built through a registry."""

    engine: str = ""
    charset: str = ""
    strict_templates: bool = True


@dataclass(frozen=True)
class DatabaseConfig:
    path: str = "tabler.db"
    pragmas: dict[str, str] = field(default_factory=lambda: {"foreign_keys": "ON"})


@dataclass(frozen=True)
class TablerConfig:
    """Loaded configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    tables: TableOptions = field(default_factory=TableOptions)
    migration_table: str = "_migration"


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _str(section: dict[str, Any], key: str, default: str, where: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str):
        raise ConfigError(f"{where}.{key} must be a string, got {value!r}")
    return value


def _parse(data: dict[str, Any], base: TablerConfig) -> TablerConfig:
    db = _section(data, "database")
    pragmas = db.get("pragmas", base.database.pragmas)
    if not isinstance(pragmas, dict):
        raise ConfigError("database.pragmas must be a table")

    tables = _section(data, "tables")
    strict = tables.get("strict_templates", base.tables.strict_templates)
    if not isinstance(strict, bool):
        raise ConfigError(f"tables.strict_templates must be a boolean, got {strict!r}")

    migration = _section(data, "migration")

    return TablerConfig(
        database=DatabaseConfig(
            path=_str(db, "path", base.database.path, "database"),
            pragmas={str(k): str(v) for k, v in pragmas.items()},
        ),
        tables=TableOptions(
            engine=_str(tables, "engine", base.tables.engine, "tables"),
            charset=_str(tables, "charset", base.tables.charset, "tables"),
            strict_templates=strict,
        ),
        migration_table=_str(migration, "table", base.migration_table, "migration"),
    )


def _read(path: Path) -> dict[str, Any]:
    logger.debug("Loading config from %s", path)
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def load_config(config_path: Path | str | None = None) -> TablerConfig:
    """
    Load configuration, layering `config_path` over the shipped defaults.

    Args:
        config_path: Path to a TOML file. If None, only the defaults are used.

    Returns:
        Loaded TablerConfig instance.
    """
    config = _parse(_read(DEFAULT_CONFIG_PATH), TablerConfig())
    if config_path is None:
        return config
    return _parse(_read(Path(config_path)), config)
