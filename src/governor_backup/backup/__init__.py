"""Full backup and restore of the governed collections.

Usage:
    from governor_backup.backup import backup_database, restore_database, validate_backup
    from governor_backup.backup import Snapshot, PostgresSnapshot
"""

from governor_backup.backup.backup_restore import (
    backup_database,
    build_restoration_groups,
    restore_database,
    validate_backup,
)
from governor_backup.backup.extractor import extract_snapshot
from governor_backup.backup.models import (
    ENTITY_KINDS,
    RESTORE_ORDER,
    BackupReport,
    EntityKind,
    PostgresSnapshot,
    RestorationGroup,
    Snapshot,
    SortableNode,
)
from governor_backup.backup.repair import refresh_notification_defaults
from governor_backup.backup.serializer import decode_snapshot, encode_snapshot
from governor_backup.backup.sorter import sort_groups, sort_nodes

__all__ = [
    "backup_database",
    "restore_database",
    "validate_backup",
    "build_restoration_groups",
    "extract_snapshot",
    "encode_snapshot",
    "decode_snapshot",
    "sort_nodes",
    "sort_groups",
    "refresh_notification_defaults",
    "ENTITY_KINDS",
    "RESTORE_ORDER",
    "EntityKind",
    "Snapshot",
    "PostgresSnapshot",
    "SortableNode",
    "RestorationGroup",
    "BackupReport",
]
