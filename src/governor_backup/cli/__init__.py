"""Command line interface for governor backup and restore.

Usage:
    GOVERNOR_DB_URI=postgresql://root@localhost:26257/governor governor-backup backup --driver crdb > governor.json
    governor-backup --profile local restore --driver postgres --input governor.json --migrate --yes
    governor-backup validate --driver crdb --input governor.json
    governor-backup --profile local check

Commands:
    backup    - Write every governed collection to a JSON document
    restore   - Replay a JSON document into a database in one transaction
    validate  - Check a JSON document offline (no database)
    check     - Compare a live schema against the dialect's row models

Stdout carries only the backup document; logs and reports go to stderr.
"""

import argparse
import asyncio
import io
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from governor_backup.backup.backup_restore import (
    backup_database,
    restore_database,
    validate_backup,
)
from governor_backup.config.loader import load_db_config
from governor_backup.dialects import Driver, EntityModelSet, resolve_dialect
from governor_backup.errors import BackupError
from governor_backup.factory import (
    ProfileNotFoundError,
    check_explicit_driver,
    connect_and_validate,
    get_adapter,
    resolve_database_url,
    resolve_driver,
)
from governor_backup.schema.migrate import run_migrations

logger = logging.getLogger(__name__)

console = Console(stderr=True)

DEFAULT_ENV_PREFIX = "GOVERNOR_"

# Errors reported as a failed command rather than a traceback
_COMMAND_ERRORS = (
    BackupError,
    ProfileNotFoundError,
    KeyError,
    OSError,
    SQLAlchemyError,
)


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _config_path(args: argparse.Namespace) -> Path | None:
    return Path(args.config) if args.config else None


def _resolve_connection(args: argparse.Namespace) -> tuple[str, EntityModelSet]:
    """Return ``(database_url, model_set)`` for the parsed arguments.

    An explicit driver is checked before any URL or profile is resolved.
    """
    check_explicit_driver(args.driver, args.env_prefix)
    url, profile = resolve_database_url(
        database_url=args.db_uri,
        profile_name=args.profile,
        env_prefix=args.env_prefix,
        config_path=_config_path(args),
    )
    driver = resolve_driver(args.driver, profile, args.env_prefix)
    return url, resolve_dialect(driver)


def _resolve_migrations_dir(args: argparse.Namespace) -> Path:
    if args.migrations_dir:
        return Path(args.migrations_dir)

    config = load_db_config(_config_path(args))
    if not config.migrations_dir:
        raise FileNotFoundError(
            "No migrations directory configured.\n"
            "Pass --migrations-dir or set [migrations] dir in db.toml."
        )
    return Path(config.migrations_dir)


def _read_input(path: str | None) -> bytes:
    if path in (None, "-"):
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def _write_output(path: str | None, data: bytes) -> None:
    if path in (None, "-"):
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.write(b"\n")
        sys.stdout.buffer.flush()
    else:
        Path(path).write_bytes(data)


def _print_counts(title: str, counts: dict[str, int]) -> None:
    table = Table(title=title)
    table.add_column("Collection")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    table.add_row("[bold]total[/bold]", f"[bold]{sum(counts.values())}[/bold]")
    console.print(table)


def _run(command: Callable[[argparse.Namespace], Awaitable[int]], args: argparse.Namespace) -> int:
    """Run an async command, turning expected failures into exit code 1."""
    try:
        return asyncio.run(command(args))
    except _COMMAND_ERRORS as e:
        logger.critical("%s failed: %s", args.command, e)
        console.print(f"[bold red]x[/bold red] {args.command} failed")
        return 1


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_backup(args: argparse.Namespace) -> int:
    """Async implementation for backup command."""
    url, model_set = _resolve_connection(args)

    adapter = await get_adapter(
        database_url=url,
        jsonb_columns=model_set.jsonb_columns,
        driver=model_set.driver.value,
    )
    buffer = io.BytesIO()
    try:
        counts = await backup_database(
            adapter, model_set.driver, buffer, consistent=not args.inconsistent
        )
    finally:
        await adapter.close()

    _write_output(args.output, buffer.getvalue())
    _print_counts(f"Backup ({model_set.driver.value})", counts)
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command."""
    url, model_set = _resolve_connection(args)

    if not args.yes and args.input in (None, "-"):
        console.print("[red]--yes is required when the backup is read from stdin[/red]")
        return 1
    data = _read_input(args.input)

    if not args.yes:
        console.print(
            f"This will insert every row of the backup into the "
            f"[bold]{model_set.driver.value}[/bold] database."
        )
        response = console.input("Continue? [y/N] ")
        if response.lower() not in ("y", "yes"):
            console.print("Cancelled.")
            return 0

    adapter = await get_adapter(
        database_url=url,
        jsonb_columns=model_set.jsonb_columns,
        driver=model_set.driver.value,
    )
    try:
        if args.migrate:
            applied = await run_migrations(adapter, _resolve_migrations_dir(args))
            console.print(f"Applied {len(applied)} migrations")
        summary = await restore_database(adapter, data, model_set.driver)
    finally:
        await adapter.close()

    _print_counts(f"Restore ({model_set.driver.value})", summary)
    console.print("[bold green]v[/bold green] Restore committed")
    return 0


async def _async_check(args: argparse.Namespace) -> int:
    """Async implementation for check command."""
    result = await connect_and_validate(
        profile_name=args.profile,
        env_prefix=args.env_prefix,
        database_url=args.db_uri,
        driver=args.driver,
        config_path=_config_path(args),
    )

    if result.schema_report:
        console.print(result.schema_report.format_report())

    if result.success:
        console.print(
            f"[bold green]v[/bold green] Schema matches the "
            f"[bold cyan]{result.driver}[/bold cyan] row models"
        )
        return 0

    console.print(f"[bold red]x[/bold red] {result.error}")
    return 1


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_backup(args: argparse.Namespace) -> int:
    """Back up every governed collection.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_backup, args)


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore a backup document in one transaction.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_restore, args)


def cmd_check(args: argparse.Namespace) -> int:
    """Compare the live schema with the row models."""
    return _run(_async_check, args)


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a backup document offline.

    Returns:
        0 when the document is restorable (warnings allowed), 1 otherwise.
    """
    try:
        driver = resolve_driver(args.driver, None, args.env_prefix)
        report = validate_backup(_read_input(args.input), driver)
    except _COMMAND_ERRORS as e:
        logger.critical("validate failed: %s", e)
        console.print("[bold red]x[/bold red] validate failed")
        return 1

    if report.valid:
        _print_counts(f"Backup ({report.driver})", report.counts)

    for error in report.errors:
        console.print(f"[red]error:[/red] {error}")
    for warning in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")

    if report.valid:
        suffix = " (with warnings)" if report.warnings else ""
        console.print(f"[bold green]v[/bold green] Backup is valid{suffix}")
        return 0

    console.print("[bold red]x[/bold red] Backup is invalid")
    return 1


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all commands."""
    parser = argparse.ArgumentParser(
        prog="governor-backup",
        description="Back up and restore governor data across CockroachDB and PostgreSQL",
    )

    parser.add_argument("--profile", help="db.toml profile to connect with")
    parser.add_argument("--db-uri", help="Database URL (overrides --profile)")
    parser.add_argument(
        "--env-prefix",
        default=DEFAULT_ENV_PREFIX,
        help=(
            "Prefix for environment variable lookup "
            f"(default: {DEFAULT_ENV_PREFIX}, reads {DEFAULT_ENV_PREFIX}DB_URI)"
        ),
    )
    parser.add_argument("--config", help="Path to db.toml (default: ./db.toml)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    drivers = [d.value for d in Driver]
    driver_help = "Database driver: crdb or postgres (default: profile driver, else postgres)"

    subparsers = parser.add_subparsers(dest="command", required=True)

    # backup command
    p_backup = subparsers.add_parser("backup", help="Write a full backup document")
    # Choices are not enforced here so an unknown driver reaches resolve_dialect
    p_backup.add_argument("--driver", metavar="{" + ",".join(drivers) + "}", help=driver_help)
    p_backup.add_argument("--output", "-o", help="Output file (default: stdout)")
    p_backup.add_argument(
        "--inconsistent",
        action="store_true",
        help="Read each collection independently instead of from one snapshot",
    )
    p_backup.set_defaults(func=cmd_backup)

    # restore command
    p_restore = subparsers.add_parser("restore", help="Restore a backup document")
    p_restore.add_argument("--driver", metavar="{" + ",".join(drivers) + "}", help=driver_help)
    p_restore.add_argument("--input", "-i", help="Backup file (default: stdin)")
    p_restore.add_argument(
        "--migrate",
        action="store_true",
        help="Apply pending migrations before restoring",
    )
    p_restore.add_argument("--migrations-dir", help="Directory of goose-style .sql migrations")
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_restore.set_defaults(func=cmd_restore)

    # validate command
    p_validate = subparsers.add_parser("validate", help="Validate a backup document offline")
    p_validate.add_argument("--driver", metavar="{" + ",".join(drivers) + "}", help=driver_help)
    p_validate.add_argument("--input", "-i", help="Backup file (default: stdin)")
    p_validate.set_defaults(func=cmd_validate)

    # check command
    p_check = subparsers.add_parser("check", help="Check the live schema")
    p_check.add_argument("--driver", metavar="{" + ",".join(drivers) + "}", help=driver_help)
    p_check.set_defaults(func=cmd_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _configure_logging(args.debug)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
