"""Apply goose-style SQL migrations before a restore.

Migration files are named ``<version>_<name>.sql`` and carry a
``-- +goose Up`` section (the ``Down`` section is ignored).  Statements
wrapped in ``-- +goose StatementBegin`` / ``-- +goose StatementEnd`` run as
one statement; elsewhere statements end at a line ending in ``;``.  Each
statement is sent as a script through the simple query protocol, so a
block may hold several statements and dollar-quoted function bodies.

A file annotated ``-- +goose NO TRANSACTION`` runs its statements one by
one outside a transaction (for ``CREATE INDEX CONCURRENTLY`` and enum
changes); its version is recorded once every statement has succeeded.

Applied versions are recorded in ``goose_db_version`` using goose's own
layout, so a database migrated by goose and one migrated here agree on
which versions are applied.

Usage:
    from governor_backup.schema.migrate import run_migrations

    applied = await run_migrations(adapter, Path("db/psql/migrations"))
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from governor_backup.adapters.base import DatabaseClient
from governor_backup.errors import MigrationError

logger = logging.getLogger(__name__)

VERSION_TABLE = "goose_db_version"

_CREATE_VERSION_TABLE = f"""
CREATE TABLE IF NOT EXISTS {VERSION_TABLE} (
    id SERIAL PRIMARY KEY,
    version_id BIGINT NOT NULL,
    is_applied BOOLEAN NOT NULL,
    tstamp TIMESTAMP DEFAULT now()
)
"""

_FILENAME_RE = re.compile(r"^(\d+)_.+\.sql$")
_ANNOTATION_RE = re.compile(r"^--\s*\+goose\s+(\w+)", re.IGNORECASE)
_NO_TRANSACTION_RE = re.compile(
    r"^\s*--\s*\+goose\s+NO\s+TRANSACTION\b", re.IGNORECASE | re.MULTILINE
)


@dataclass
class Migration:
    """One migration file's Up statements."""

    version: int
    path: Path
    statements: list[str] = field(default_factory=list)
    transactional: bool = True


def parse_up_statements(sql: str) -> list[str]:
    """Split the ``Up`` section of a goose migration into statements.

    Example:
        >>> parse_up_statements("-- +goose Up\\nCREATE TABLE a (id INT);\\n-- +goose Down\\nDROP TABLE a;")
        ['CREATE TABLE a (id INT);']
    """
    statements: list[str] = []
    buffer: list[str] = []
    in_up = False
    in_block = False

    for line in sql.splitlines():
        annotation = _ANNOTATION_RE.match(line.strip())
        if annotation:
            directive = annotation.group(1).lower()
            if directive == "up":
                in_up = True
            elif directive == "down":
                break
            elif directive == "statementbegin":
                in_block = True
            elif directive == "statementend":
                in_block = False
                if buffer:
                    statements.append("\n".join(buffer).strip())
                    buffer = []
            continue

        if not in_up:
            continue
        if not buffer and (not line.strip() or line.strip().startswith("--")):
            continue

        buffer.append(line)
        if not in_block and line.rstrip().endswith(";"):
            statements.append("\n".join(buffer).strip())
            buffer = []

    if buffer and "\n".join(buffer).strip():
        statements.append("\n".join(buffer).strip())

    return statements


def uses_no_transaction(sql: str) -> bool:
    """True when the file carries a ``-- +goose NO TRANSACTION`` annotation."""
    return _NO_TRANSACTION_RE.search(sql) is not None


def load_migrations(migrations_dir: Path) -> list[Migration]:
    """Read every migration file in ``migrations_dir``, ordered by version.

    Raises:
        MigrationError: If the directory is missing or two files share a
            version.
    """
    if not migrations_dir.is_dir():
        raise MigrationError(f"migrations directory not found: {migrations_dir}")

    migrations: dict[int, Migration] = {}
    for path in sorted(migrations_dir.iterdir()):
        match = _FILENAME_RE.match(path.name)
        if not match:
            continue
        version = int(match.group(1))
        sql = path.read_text()
        if version in migrations:
            raise MigrationError(
                f"duplicate migration version {version}: "
                f"{migrations[version].path.name} and {path.name}"
            )
        migrations[version] = Migration(
            version=version,
            path=path,
            statements=parse_up_statements(sql),
            transactional=not uses_no_transaction(sql),
        )

    return [migrations[v] for v in sorted(migrations)]


async def applied_versions(adapter: DatabaseClient) -> set[int]:
    """Return the versions currently applied, creating the version table if needed."""
    await adapter.execute(_CREATE_VERSION_TABLE)
    rows = await adapter.select(VERSION_TABLE, "version_id, is_applied", order_by="id")

    # The latest row for a version wins
    state: dict[int, bool] = {}
    for row in rows:
        state[int(row["version_id"])] = bool(row["is_applied"])
    return {version for version, applied in state.items() if applied}


def _version_row(migration: Migration) -> dict:
    return {"version_id": migration.version, "is_applied": True}


async def _apply_in_transaction(adapter: DatabaseClient, migration: Migration) -> None:
    async with adapter.transaction() as tx:
        for statement in migration.statements:
            await tx.execute_script(statement)
        await tx.insert(VERSION_TABLE, _version_row(migration))


async def _apply_without_transaction(adapter: DatabaseClient, migration: Migration) -> None:
    # A failure part way leaves earlier statements applied and the version unrecorded
    for statement in migration.statements:
        await adapter.execute_script(statement)
    async with adapter.transaction() as tx:
        await tx.insert(VERSION_TABLE, _version_row(migration))


async def run_migrations(adapter: DatabaseClient, migrations_dir: Path) -> list[int]:
    """Apply pending migrations in version order, one transaction per file.

    Files annotated ``NO TRANSACTION`` run statement by statement in
    autocommit mode instead.

    Args:
        adapter: Database handle.
        migrations_dir: Directory of goose-style ``.sql`` files.

    Returns:
        Versions applied by this call (empty when already up to date).

    Raises:
        MigrationError: If a migration file cannot be loaded or applied.
            Earlier files stay applied.
    """
    migrations = load_migrations(migrations_dir)
    done = await applied_versions(adapter)

    applied: list[int] = []
    for migration in migrations:
        if migration.version in done:
            continue

        logger.info("Applying migration %s", migration.path.name)
        try:
            if migration.transactional:
                await _apply_in_transaction(adapter, migration)
            else:
                await _apply_without_transaction(adapter, migration)
        except Exception as e:
            logger.error("Migration %s failed: %s", migration.path.name, e)
            raise MigrationError(f"migration {migration.path.name} failed: {e}") from e
        applied.append(migration.version)

    logger.info("Migrations complete: applied=%d", len(applied))
    return applied
