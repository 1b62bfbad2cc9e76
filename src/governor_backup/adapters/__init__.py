"""Database adapters package.

Provides the ``DatabaseClient`` and ``Transaction`` Protocols and the
async PostgreSQL adapter used for both CockroachDB and PostgreSQL.

Usage:
    from governor_backup.adapters import DatabaseClient, AsyncPostgresAdapter
"""

from governor_backup.adapters.base import DatabaseClient, Transaction
from governor_backup.adapters.postgres import AsyncPostgresAdapter, AsyncPostgresTransaction

__all__ = [
    "DatabaseClient",
    "Transaction",
    "AsyncPostgresAdapter",
    "AsyncPostgresTransaction",
]
