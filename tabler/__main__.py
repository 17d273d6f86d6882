"""
tabler - Entry Point

Run with: python -m tabler

    python -m tabler ddl myapp.models:User --table users
    python -m tabler --config db.toml migrate --target 1.2 --versions myapp.migrations:VERSIONS
"""

import argparse
import asyncio
import importlib
import logging
import sys
from typing import Any

from tabler import __version__
from tabler.config import TablerConfig, load_config
from tabler.database import Database
from tabler.errors import TablerError
from tabler.migration import MigrationRunner
from tabler.schema import to_snake_case
from tabler.table import Table


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="tabler",
        description="Generate SQL schemas from dataclass records and run migrations",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to a TOML config file (default: built-in defaults)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    ddl = commands.add_parser("ddl", help="Print the CREATE TABLE statement for a record")
    ddl.add_argument("record", help="Record class as MODULE:NAME")
    ddl.add_argument("--table", default=None, help="Table name (default: snake_case record name)")

    mig = commands.add_parser("migrate", help="Migrate the configured database")
    mig.add_argument("--target", required=True, help="Version the database should end up at")
    mig.add_argument(
        "--versions",
        required=True,
        help="Sequence of tabler.migration.Version objects as MODULE:NAME",
    )

    return parser.parse_args(argv)


def load_object(path: str) -> Any:
    """Import `MODULE:NAME` and return the named attribute."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected MODULE:NAME, got {path!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"Module {module_name!r} has no attribute {attr!r}") from e


def print_ddl(config: TablerConfig, record_path: str, table_name: str | None) -> None:
    record_type = load_object(record_path)
    table = Table(
        table_name or to_snake_case(record_type.__name__),
        record_type,
        engine=config.tables.engine,
        charset=config.tables.charset,
    )
    print(table.create_statement())


async def run_migrations(config: TablerConfig, target: str, versions_path: str) -> int:
    """Open the configured database and migrate it to `target`."""
    versions = load_object(versions_path)
    runner = MigrationRunner(options=config.tables, table_name=config.migration_table)

    async with Database(config.database.path, pragmas=config.database.pragmas) as db:
        return await runner.run(db, target, list(versions))


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
        if args.command == "ddl":
            print_ddl(config, args.record, args.table)
        else:
            executed = asyncio.run(run_migrations(config, args.target, args.versions))
            logger.info("Done: %d migrations executed", executed)
    except (TablerError, ValueError, ImportError) as e:
        logger.error("%s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
