"""Async adapter for CockroachDB and PostgreSQL.

``AsyncPostgresAdapter`` implements ``DatabaseClient`` on a pooled
SQLAlchemy async engine driving ``asyncpg``.  PostgreSQL uses SQLAlchemy's
own ``postgresql+asyncpg`` dialect; CockroachDB uses the
``cockroachdb+asyncpg`` dialect from ``sqlalchemy-cockroachdb``, which
knows CockroachDB's version string and catalog.

Usage:
    from governor_backup.adapters.postgres import AsyncPostgresAdapter

    adapter = AsyncPostgresAdapter(
        "postgresql://root@localhost:26257/governor",
        jsonb_columns=["metadata", "resource"],
        driver="crdb",
    )

    rows = await adapter.select("groups", "id, name")
    async with adapter.transaction() as tx:
        await tx.insert("groups", row)
    await adapter.close()
"""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

# SQLAlchemy URL scheme per driver identifier
ASYNC_SCHEMES = {
    "postgres": "postgresql+asyncpg://",
    "crdb": "cockroachdb+asyncpg://",
}

# Schemes accepted in db.toml or --db-uri
_SCHEME_ALIASES = {
    "postgres://": "postgres",
    "postgresql://": "postgres",
    "postgresql+asyncpg://": "postgres",
    "cockroachdb://": "crdb",
    "cockroachdb+asyncpg://": "crdb",
}

_POOL_DEFAULTS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_recycle": 300,
    "echo": False,
    # asyncpg takes the connect timeout as a keyword, not a URL option
    "connect_args": {"timeout": 5},
}


def create_async_engine_pooled(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Build the pooled async engine.

    A backup or restore holds one connection for its whole run, so the
    pool stays small: five connections plus ten overflow, pinged before
    checkout and recycled after five minutes.  Keyword arguments replace
    any of these defaults.
    """
    return create_async_engine(database_url, **{**_POOL_DEFAULTS, **kwargs})


def normalize_url(database_url: str, driver: str | None = None) -> str:
    """Rewrite a connection URL for the driver's async SQLAlchemy dialect.

    The scheme becomes ``postgresql+asyncpg://`` for ``postgres`` and
    ``cockroachdb+asyncpg://`` for ``crdb``.  Without ``driver`` the
    dialect follows the URL's own scheme, so ``cockroachdb://`` still
    selects CockroachDB.  libpq's ``sslmode=`` query option becomes
    asyncpg's ``ssl=``.

    Example:
        >>> normalize_url("postgresql://root@localhost:26257/governor?sslmode=disable", "crdb")
        'cockroachdb+asyncpg://root@localhost:26257/governor?ssl=disable'

    Raises:
        ValueError: If ``driver`` is not ``crdb`` or ``postgres``
    """
    if driver is not None and driver not in ASYNC_SCHEMES:
        raise ValueError(f"no SQLAlchemy dialect for driver {driver!r}")

    url = database_url
    for alias, implied in _SCHEME_ALIASES.items():
        if url.startswith(alias):
            url = ASYNC_SCHEMES[driver or implied] + url[len(alias):]
            break
    return url.replace("sslmode=", "ssl=")


# ------------------------------------------------------------------
# Statement builders
# ------------------------------------------------------------------


def _build_select(
    table: str,
    columns: str,
    filters: dict[str, Any] | None,
    order_by: str | None,
) -> tuple[Any, dict[str, Any]]:
    """Render ``SELECT columns FROM table [WHERE ...] [ORDER BY ...]``.

    Filter values bind as ``:p_0``, ``:p_1`` ... and are ANDed together.
    """
    params = {f"p_{i}": value for i, value in enumerate((filters or {}).values())}
    sql = f"SELECT {columns} FROM {table}"
    if filters:
        sql += " WHERE " + " AND ".join(
            f"{column} = :p_{i}" for i, column in enumerate(filters)
        )
    if order_by:
        sql += f" ORDER BY {order_by}"
    return text(sql), params


def _bind_value(column: str, value: Any, jsonb_columns: frozenset[str]) -> Any:
    if value is not None and (column in jsonb_columns or isinstance(value, dict)):
        return json.dumps(value)
    return value


def _build_insert(
    table: str,
    data: dict,
    jsonb_columns: frozenset[str],
) -> tuple[Any, dict[str, Any]]:
    """Render a plain ``INSERT`` for one row.

    There is no ``RETURNING`` and no upsert clause: restored rows keep
    their ids and a conflicting id is an error.  Keys starting with ``_``
    are not columns and are dropped.  jsonb values are sent as JSON text
    behind ``CAST(... AS jsonb)``; other lists bind as SQL arrays.
    """
    row = {column: value for column, value in data.items() if not column.startswith("_")}

    # Quoted so column names such as "schema" are never read as keywords
    quoted = ", ".join(f'"{column}"' for column in row)
    values = ", ".join(
        f"CAST(:{column} AS jsonb)" if column in jsonb_columns else f":{column}"
        for column in row
    )
    params = {
        column: _bind_value(column, value, jsonb_columns) for column, value in row.items()
    }
    return text(f"INSERT INTO {table} ({quoted}) VALUES ({values})"), params


def _serialize_value(value: Any) -> Any:
    """UUIDs to strings and datetimes to ISO 8601, as the row models parse them."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _serialize_row(row: dict) -> dict:
    return {column: _serialize_value(value) for column, value in row.items()}


async def _fetch(conn: AsyncConnection, query: Any, params: dict[str, Any]) -> list[dict]:
    result = await conn.execute(query, params)
    names = list(result.keys())
    return [_serialize_row(dict(zip(names, values))) for values in result.fetchall()]


# ------------------------------------------------------------------
# Transaction handle
# ------------------------------------------------------------------


class AsyncPostgresTransaction:
    """Statements run on the connection of one open transaction.

    Obtained from ``AsyncPostgresAdapter.transaction()``, which owns the
    commit or rollback.
    """

    def __init__(self, conn: AsyncConnection, jsonb_columns: frozenset[str]) -> None:
        self._conn = conn
        self._jsonb_columns = jsonb_columns

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        query, params = _build_select(table, columns, filters, order_by)
        return await _fetch(self._conn, query, params)

    async def insert(self, table: str, data: dict) -> None:
        query, params = _build_insert(table, data, self._jsonb_columns)
        await self._conn.execute(query, params)

    async def execute(self, sql: str, params: dict | None = None) -> None:
        await self._conn.execute(text(sql), params or {})

    async def execute_script(self, sql: str) -> None:
        """Run a multi-statement script inside this transaction.

        The script goes to asyncpg as one simple query, so it may hold
        several statements and dollar-quoted bodies.
        """
        # The asyncpg adapter opens its transaction on the first statement
        await self._conn.execute(text("SELECT 1"))
        raw = await self._conn.get_raw_connection()
        await raw.driver_connection.execute(sql)


# ------------------------------------------------------------------
# Adapter
# ------------------------------------------------------------------


class AsyncPostgresAdapter:
    """``DatabaseClient`` for CockroachDB and PostgreSQL over asyncpg.

    Args:
        database_url: Connection URL in any scheme ``normalize_url``
            accepts.
        jsonb_columns: Column names bound as jsonb on insert.  Usually
            ``resolve_dialect(driver).jsonb_columns``.
        driver: ``crdb`` or ``postgres``; picks the SQLAlchemy dialect.
            ``None`` lets the URL scheme decide.
        **engine_kwargs: Overrides for ``create_async_engine_pooled``.
    """

    def __init__(
        self,
        database_url: str,
        jsonb_columns: list[str] | frozenset[str] | None = None,
        driver: str | None = None,
        **engine_kwargs: Any,
    ) -> None:
        self._jsonb_columns = frozenset(jsonb_columns or ())
        self._engine: AsyncEngine = create_async_engine_pooled(
            normalize_url(database_url, driver), **engine_kwargs
        )

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Run one SELECT on a pooled connection outside any transaction."""
        query, params = _build_select(table, columns, filters, order_by)
        async with self._engine.connect() as conn:
            return await _fetch(conn, query, params)

    @asynccontextmanager
    async def transaction(self, read_only: bool = False) -> AsyncIterator[AsyncPostgresTransaction]:
        """Open one transaction on a pooled connection.

        Commits when the block exits cleanly and rolls back on any
        exception, ``asyncio.CancelledError`` included.

        Args:
            read_only: Run as a read-only ``REPEATABLE READ`` transaction so
                every read sees the same snapshot.
        """
        async with self._engine.connect() as conn:
            if read_only:
                conn = await conn.execution_options(
                    isolation_level="REPEATABLE READ",
                    postgresql_readonly=True,
                )
            async with conn.begin():
                yield AsyncPostgresTransaction(conn, self._jsonb_columns)

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Run one statement in its own short transaction."""
        async with self._engine.begin() as conn:
            await conn.execute(text(sql), params or {})

    async def execute_script(self, sql: str) -> None:
        """Run a multi-statement script outside any transaction.

        For statements that refuse to run in a transaction block, such as
        ``CREATE INDEX CONCURRENTLY``.
        """
        async with self._engine.connect() as conn:
            conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
            raw = await conn.get_raw_connection()
            await raw.driver_connection.execute(sql)

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self._engine.dispose()

    async def test_connection(self) -> bool:
        """Return ``True`` when ``SELECT 1`` succeeds; connection errors propagate."""
        async with self._engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1
