"""Error taxonomy for the backup/restore engine.

Every failure aborts the current operation in full.  Errors carry the
failing entity kind or restoration group so operators can tell which
collection broke.

Usage:
    from governor_backup.errors import BackupError, RestoreRowError

    try:
        await restore_database(adapter, data, driver="postgres")
    except RestoreRowError as e:
        print(f"restore failed in {e.group}")
"""


class BackupError(Exception):
    """Base class for every backup/restore failure."""

    pass


class UnsupportedDialectError(BackupError):
    """Raised when a driver identifier is not ``crdb`` or ``postgres``."""

    def __init__(self, driver: str) -> None:
        self.driver = driver
        super().__init__(f"unsupported database driver: {driver}")


class ExtractionError(BackupError):
    """Raised when reading one entity kind fails during backup."""

    def __init__(self, kind: str, message: str) -> None:
        self.kind = kind
        super().__init__(f"failed to back up {kind}: {message}")


class CycleDetectedError(BackupError):
    """Raised when the group approver graph contains a cycle.

    The whole sort fails, not only the nodes on the cycle.
    """

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"detected cycle in group dependencies at {node_id}")


class SerializationError(BackupError):
    """Raised when a backup document cannot be encoded or decoded."""

    pass


class RestoreRowError(BackupError):
    """Raised when inserting a row fails; names the restoration group."""

    def __init__(self, group: str, message: str) -> None:
        self.group = group
        super().__init__(f"failed to restore {group}: {message}")


class ConsistencyRepairError(BackupError):
    """Raised when the post-restore repair step fails."""

    pass


class MigrationError(BackupError):
    """Raised when schema migrations cannot be loaded or applied."""

    pass
