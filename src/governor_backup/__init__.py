"""governor-backup: full backup and restore of governor data.

Exports every governed collection (soft-deleted rows included) to one JSON
document and replays it into a CockroachDB or PostgreSQL database inside a
single transaction.

Usage:
    from governor_backup import backup_database, restore_database, get_adapter
    from governor_backup import resolve_dialect, BackupError
"""

__version__ = "0.1.0"

# Adapters
from governor_backup.adapters.base import DatabaseClient, Transaction
from governor_backup.adapters.postgres import AsyncPostgresAdapter

# Backup
from governor_backup.backup.backup_restore import (
    backup_database,
    restore_database,
    validate_backup,
)
from governor_backup.backup.models import PostgresSnapshot, Snapshot

# Config
from governor_backup.config.loader import load_db_config
from governor_backup.config.models import DatabaseConfig, DatabaseProfile

# Dialects
from governor_backup.dialects import Driver, EntityModelSet, resolve_dialect

# Errors
from governor_backup.errors import (
    BackupError,
    ConsistencyRepairError,
    CycleDetectedError,
    ExtractionError,
    MigrationError,
    RestoreRowError,
    SerializationError,
    UnsupportedDialectError,
)

# Factory
from governor_backup.factory import ProfileNotFoundError, get_adapter, resolve_url

__all__ = [
    # Adapters
    "DatabaseClient",
    "Transaction",
    "AsyncPostgresAdapter",
    # Backup
    "backup_database",
    "restore_database",
    "validate_backup",
    "Snapshot",
    "PostgresSnapshot",
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    # Dialects
    "Driver",
    "EntityModelSet",
    "resolve_dialect",
    # Errors
    "BackupError",
    "UnsupportedDialectError",
    "ExtractionError",
    "CycleDetectedError",
    "SerializationError",
    "RestoreRowError",
    "ConsistencyRepairError",
    "MigrationError",
    # Factory
    "get_adapter",
    "ProfileNotFoundError",
    "resolve_url",
]
