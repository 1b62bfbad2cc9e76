"""Live schema introspection via information_schema.

Reads table and column names through the same ``DatabaseClient`` used for
backup and restore, so it works against CockroachDB and PostgreSQL alike.

Usage:
    from governor_backup.schema.introspector import get_column_names

    actual = await get_column_names(adapter)
    actual["groups"]  # {"id", "name", "slug", ...}
"""

import logging

from governor_backup.adapters.base import DatabaseClient

logger = logging.getLogger(__name__)

# Bookkeeping tables that are never part of a backup
EXCLUDED_TABLES = frozenset({
    "schema_migrations",
    "goose_db_version",
})


async def get_column_names(
    adapter: DatabaseClient,
    schema_name: str = "public",
) -> dict[str, set[str]]:
    """Get column names for every table in a schema.

    Args:
        adapter: Database handle.
        schema_name: Schema to query (default: public).

    Returns:
        Dict mapping table name to set of column names.  Tables in
        ``EXCLUDED_TABLES`` are left out.
    """
    rows = await adapter.select(
        "information_schema.columns",
        "table_name, column_name",
        filters={"table_schema": schema_name},
        order_by="table_name",
    )

    result: dict[str, set[str]] = {}
    for row in rows:
        table = row["table_name"]
        if table in EXCLUDED_TABLES:
            continue
        result.setdefault(table, set()).add(row["column_name"])

    logger.debug("Introspected %d tables in schema %s", len(result), schema_name)
    return result
