"""Full backup and restore of the governed collections.

Backups are one JSON document per database (see ``serializer``).  Restore
replays a document into a target database inside a single transaction:
every row keeps its original primary key and soft-delete timestamp, and
nothing is committed unless every insert and the final consistency
repair succeed.

Usage:
    from governor_backup.backup.backup_restore import (
        backup_database,
        restore_database,
        validate_backup,
    )

    # Backup
    with open("governor.json", "wb") as f:
        counts = await backup_database(adapter, "crdb", f)

    # Restore
    with open("governor.json", "rb") as f:
        summary = await restore_database(adapter, f, "postgres")

    # Validate (sync -- no database I/O)
    report = validate_backup(data, "crdb")
"""

import logging
from collections.abc import Awaitable, Callable
from typing import BinaryIO

from governor_backup.adapters.base import DatabaseClient, Transaction
from governor_backup.backup.extractor import extract_snapshot
from governor_backup.backup.models import (
    RESTORE_ORDER,
    BackupReport,
    RestorationGroup,
    Snapshot,
)
from governor_backup.backup.repair import refresh_notification_defaults
from governor_backup.backup.serializer import decode_snapshot, encode_snapshot
from governor_backup.backup.sorter import sort_groups
from governor_backup.dialects import Driver, resolve_dialect
from governor_backup.errors import (
    ConsistencyRepairError,
    CycleDetectedError,
    RestoreRowError,
    SerializationError,
)

logger = logging.getLogger(__name__)

RepairFunc = Callable[[Transaction], Awaitable[None]]

# (collection, column) pairs that reference a group by id
_GROUP_REFERENCES: tuple[tuple[str, str], ...] = (
    ("applications", "approver_group_id"),
    ("group_application_requests", "group_id"),
    ("group_application_requests", "approver_group_id"),
    ("group_applications", "group_id"),
    ("group_hierarchies", "parent_group_id"),
    ("group_hierarchies", "member_group_id"),
    ("group_membership_requests", "group_id"),
    ("group_memberships", "group_id"),
    ("group_organizations", "group_id"),
)


async def backup_database(
    adapter: DatabaseClient,
    driver: str | Driver,
    output: BinaryIO,
    consistent: bool = True,
) -> dict[str, int]:
    """Export every governed collection to ``output`` as a JSON document.

    The driver is resolved before the database is touched.  The document
    is encoded in full before anything is written, so a failed backup
    leaves ``output`` untouched.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        driver: ``"crdb"`` or ``"postgres"``.
        output: Writable binary stream.
        consistent: Read all collections from one snapshot (see
            ``extract_snapshot``).

    Returns:
        Row count per collection.

    Raises:
        UnsupportedDialectError: If ``driver`` is not recognized.
        ExtractionError: If reading any collection fails.
        CycleDetectedError: If the group approver links form a cycle.
        SerializationError: If the snapshot cannot be encoded.

    Example:
        with open("backup.json", "wb") as f:
            counts = await backup_database(adapter, "postgres", f)
    """
    model_set = resolve_dialect(driver)
    snapshot = await extract_snapshot(adapter, model_set, consistent=consistent)
    data = encode_snapshot(snapshot)
    output.write(data)

    counts = snapshot.counts()
    logger.info(
        "Backup complete: driver=%s rows=%d", model_set.driver.value, sum(counts.values())
    )
    return counts


def build_restoration_groups(snapshot: Snapshot) -> list[RestorationGroup]:
    """Arrange snapshot rows into the fixed restore sequence.

    Groups are re-sorted approver-first whatever their order in the
    snapshot.

    Raises:
        CycleDetectedError: If the group approver links form a cycle.
    """
    groups: list[RestorationGroup] = []
    for kind in RESTORE_ORDER:
        rows = getattr(snapshot, kind.field)
        if kind.field == "groups":
            rows = sort_groups(rows)
        groups.append(RestorationGroup(name=kind.label, table=kind.table, rows=list(rows)))
    return groups


async def _restore_group(tx: Transaction, group: RestorationGroup) -> int:
    """Insert every row of one restoration group; stop at the first failure."""
    for row in group.rows:
        try:
            await tx.insert(group.table, row.to_row())
        except Exception as e:
            logger.error("Failed to restore %s: %s", group.name, e)
            raise RestoreRowError(group.name, str(e)) from e

    logger.info("restored %s: count=%d", group.name, len(group.rows))
    return len(group.rows)


async def restore_database(
    adapter: DatabaseClient,
    source: bytes | str | BinaryIO,
    driver: str | Driver,
    repair: RepairFunc = refresh_notification_defaults,
) -> dict[str, int]:
    """Restore a backup document into the database in one transaction.

    The document is decoded in full before the database is touched.  Rows
    are inserted as-is (original ids, soft-deleted rows included) in the
    fixed restore order, then ``repair`` runs on the same transaction.  Any
    failure rolls the whole restore back.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        source: Document bytes or a readable binary stream.
        driver: ``"crdb"`` or ``"postgres"``; must match the document's
            row shapes.
        repair: Async callable run on the transaction after all inserts.

    Returns:
        Inserted row count per restoration group, in restore order.

    Raises:
        UnsupportedDialectError: If ``driver`` is not recognized.
        SerializationError: If the document does not decode for ``driver``.
        CycleDetectedError: If the group approver links form a cycle.
        RestoreRowError: If any insert fails.
        ConsistencyRepairError: If ``repair`` fails.

    Example:
        with open("backup.json", "rb") as f:
            summary = await restore_database(adapter, f, "crdb")
    """
    model_set = resolve_dialect(driver)
    data = source if isinstance(source, (bytes, str)) else source.read()
    snapshot = decode_snapshot(data, model_set)
    groups = build_restoration_groups(snapshot)

    summary: dict[str, int] = {}
    async with adapter.transaction() as tx:
        for group in groups:
            summary[group.name] = await _restore_group(tx, group)

        try:
            await repair(tx)
        except Exception as e:
            logger.error("Failed to repair restored data: %s", e)
            raise ConsistencyRepairError(f"failed to repair restored data: {e}") from e

    logger.info(
        "Restore complete: driver=%s rows=%d", model_set.driver.value, sum(summary.values())
    )
    return summary


def validate_backup(data: bytes | str, driver: str | Driver) -> BackupReport:
    """Check a backup document without touching a database.

    Decodes ``data`` for ``driver`` and checks the group approver graph.
    Rows referencing groups that are absent from the document are reported
    as warnings.

    This function is **sync** -- it only inspects the given bytes.

    Args:
        data: Document bytes.
        driver: ``"crdb"`` or ``"postgres"``.

    Returns:
        ``BackupReport`` with ``valid``, per-collection ``counts``,
        ``errors`` and ``warnings``.

    Raises:
        UnsupportedDialectError: If ``driver`` is not recognized.

    Example:
        report = validate_backup(Path("backup.json").read_bytes(), "crdb")
        if not report.valid:
            print(report.format_report())
    """
    model_set = resolve_dialect(driver)
    errors: list[str] = []
    warnings: list[str] = []

    try:
        snapshot = decode_snapshot(data, model_set)
    except SerializationError as e:
        errors.append(str(e))
        return BackupReport(
            valid=False, driver=model_set.driver.value, errors=errors, warnings=warnings
        )

    try:
        sort_groups(snapshot.groups)
    except CycleDetectedError as e:
        errors.append(str(e))

    group_ids = {group.id for group in snapshot.groups}
    for group in snapshot.groups:
        if group.approver_group is not None and group.approver_group not in group_ids:
            warnings.append(
                f"group {group.slug!r}: approver group {group.approver_group} not in backup"
            )

    for field_name, column in _GROUP_REFERENCES:
        for row in getattr(snapshot, field_name):
            ref = getattr(row, column)
            if ref is not None and ref not in group_ids:
                warnings.append(f"{field_name} {row.id}: {column} {ref} not in backup")

    return BackupReport(
        valid=not errors,
        driver=model_set.driver.value,
        counts=snapshot.counts(),
        errors=errors,
        warnings=warnings,
    )
