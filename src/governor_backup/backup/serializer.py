"""Backup document encoding.

A backup is one pretty-printed JSON object with exactly one key per
entity collection.  Encoding is deterministic (fixed key order, 2-space
indent); decoding validates every record against the dialect's row
models and never touches a database.

Usage:
    from governor_backup.backup.serializer import decode_snapshot, encode_snapshot
    from governor_backup.dialects import resolve_dialect

    data = encode_snapshot(snapshot)
    snapshot = decode_snapshot(data, resolve_dialect("crdb"))
"""

import json
from typing import Any

from pydantic import ValidationError

from governor_backup.backup.models import ENTITY_FIELDS, Snapshot
from governor_backup.dialects import EntityModelSet
from governor_backup.errors import SerializationError


def encode_snapshot(snapshot: Snapshot) -> bytes:
    """Encode a snapshot as an indented UTF-8 JSON document.

    Raises:
        SerializationError: If a value cannot be represented as JSON.
    """
    try:
        document: dict[str, Any] = {
            name: [
                row.model_dump(mode="json", by_alias=True)
                for row in getattr(snapshot, name)
            ]
            for name in ENTITY_FIELDS
        }
        return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"failed to encode backup: {e}") from e


def decode_snapshot(data: bytes | str, model_set: EntityModelSet) -> Snapshot:
    """Decode a backup document into the dialect's snapshot class.

    Args:
        data: Raw document bytes (or text).
        model_set: Dialect whose row shapes the document must match.

    Returns:
        A ``Snapshot`` (``PostgresSnapshot`` for the postgres dialect).

    Raises:
        SerializationError: If the document is not valid JSON, is not an
            object, is missing or has extra top-level keys, or any record
            does not match the dialect's row shape.
    """
    try:
        document = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SerializationError(f"invalid backup document: {e}") from e

    if not isinstance(document, dict):
        raise SerializationError(
            f"invalid backup document: expected an object, got {type(document).__name__}"
        )

    missing = [name for name in ENTITY_FIELDS if name not in document]
    if missing:
        raise SerializationError(
            f"invalid backup document: missing keys: {', '.join(missing)}"
        )

    try:
        return model_set.snapshot_model.model_validate(document)
    except ValidationError as e:
        raise SerializationError(
            f"backup does not match the {model_set.driver.value} row shapes: {e}"
        ) from e
