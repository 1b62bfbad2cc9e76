"""Snapshot extraction.

Reads every row of every governed table, soft-deleted rows included, into
a dialect-specific ``Snapshot``.  Any failed read or row validation aborts
the whole extraction; a partial snapshot is never returned.

Usage:
    from governor_backup.backup.extractor import extract_snapshot
    from governor_backup.dialects import resolve_dialect

    snapshot = await extract_snapshot(adapter, resolve_dialect("crdb"))
"""

import logging
from typing import Any

from governor_backup.adapters.base import DatabaseClient, Transaction
from governor_backup.backup.entities import Entity
from governor_backup.backup.models import ENTITY_KINDS, EntityKind, Snapshot
from governor_backup.backup.sorter import sort_groups
from governor_backup.dialects import EntityModelSet
from governor_backup.errors import ExtractionError

logger = logging.getLogger(__name__)


def _column_list(model: type[Entity]) -> str:
    return ", ".join(f'"{name}"' for name in model.column_names())


async def _read_kind(
    source: DatabaseClient | Transaction,
    kind: EntityKind,
    model: type[Entity],
) -> list[Entity]:
    try:
        rows = await source.select(kind.table, _column_list(model), order_by="id")
        records = [model.model_validate(row) for row in rows]
    except Exception as e:
        logger.error("Failed to back up %s: %s", kind.label, e)
        raise ExtractionError(kind.label, str(e)) from e

    logger.info("getting %s: count=%d", kind.label, len(records))
    return records


async def _read_all(
    source: DatabaseClient | Transaction,
    model_set: EntityModelSet,
) -> dict[str, Any]:
    collections: dict[str, Any] = {}
    for kind in ENTITY_KINDS:
        collections[kind.field] = await _read_kind(
            source, kind, model_set.model_for(kind.field)
        )
    return collections


async def extract_snapshot(
    adapter: DatabaseClient,
    model_set: EntityModelSet,
    consistent: bool = True,
) -> Snapshot:
    """Read all 19 entity collections into a snapshot.

    Tables are read one after another in ``ENTITY_KINDS`` order with no
    soft-delete filter, each ordered by ``id``.  Groups are then put in
    approver-first order.

    Args:
        adapter: Database handle.
        model_set: Dialect whose row models describe the tables.
        consistent: Read every table inside one read-only ``REPEATABLE
            READ`` transaction so the snapshot reflects a single point in
            time.  With ``False`` each table is read independently and
            rows written concurrently may appear in some collections but
            not others.

    Returns:
        A ``Snapshot`` of the dialect's snapshot class.

    Raises:
        ExtractionError: If reading or validating any kind fails.
        CycleDetectedError: If the group approver links form a cycle.
    """
    if consistent:
        async with adapter.transaction(read_only=True) as tx:
            collections = await _read_all(tx, model_set)
    else:
        collections = await _read_all(adapter, model_set)

    collections["groups"] = sort_groups(collections["groups"])
    return model_set.snapshot_model(**collections)
