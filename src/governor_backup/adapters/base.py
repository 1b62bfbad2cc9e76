"""Protocols the backup engine talks to.

The extractor, the restore orchestrator, the migration runner and the
schema check only need a few operations: read rows, open a transaction,
run raw SQL and close.  ``DatabaseClient`` names them;
``Transaction`` is the handle an open transaction yields.

Usage:
    from governor_backup.adapters.base import DatabaseClient

    async def count_groups(db: DatabaseClient) -> int:
        async with db.transaction(read_only=True) as tx:
            return len(await tx.select("groups", "id"))
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol


class Transaction(Protocol):
    """Statements bound to one open transaction.

    The owning ``async with`` block commits on a clean exit and rolls back
    on any exception, cancellation included.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Same contract as ``DatabaseClient.select``."""
        ...

    async def insert(self, table: str, data: dict) -> None:
        """Insert ``data`` as one row, primary key included.

        A plain INSERT: a conflicting key or any constraint violation
        raises.
        """
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        ...

    async def execute_script(self, sql: str) -> None:
        """Run several statements, dollar-quoted bodies included, as one script."""
        ...


class DatabaseClient(Protocol):
    """A connection source for one database."""

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Read rows as dicts keyed by column name.

        Args:
            table: Table to read.
            columns: Comma-separated column list, used verbatim.
            filters: Equality conditions, ANDed.
            order_by: Sort expression.
        """
        ...

    def transaction(self, read_only: bool = False) -> AbstractAsyncContextManager[Transaction]:
        """Open one transaction.

        With ``read_only`` every read inside the block sees the same
        snapshot of the database.
        """
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Run one statement (DDL included) in its own transaction."""
        ...

    async def execute_script(self, sql: str) -> None:
        """Run a multi-statement script in autocommit mode, outside any transaction."""
        ...

    async def close(self) -> None:
        ...
