"""Tests for backup document encoding and decoding."""

import json

import pytest

from governor_backup.backup.models import ENTITY_FIELDS, PostgresSnapshot, Snapshot
from governor_backup.backup.serializer import decode_snapshot, encode_snapshot
from governor_backup.dialects import resolve_dialect
from governor_backup.errors import SerializationError

CRDB = resolve_dialect("crdb")
POSTGRES = resolve_dialect("postgres")


class TestEncodeSnapshot:
    """encode_snapshot() produces a deterministic indented document."""

    def test_top_level_keys_in_order(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        assert list(document) == list(ENTITY_FIELDS)
        assert len(document) == 19

    def test_two_space_indent(self, crdb_snapshot: Snapshot) -> None:
        text = encode_snapshot(crdb_snapshot).decode("utf-8")
        assert text.startswith('{\n  "application_types": [\n    {')

    def test_empty_snapshot_has_every_key(self) -> None:
        document = json.loads(encode_snapshot(Snapshot()))
        assert document == {name: [] for name in ENTITY_FIELDS}

    def test_deterministic(self, crdb_snapshot: Snapshot) -> None:
        assert encode_snapshot(crdb_snapshot) == encode_snapshot(crdb_snapshot)

    def test_schema_column_uses_column_name(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        erd = document["extension_resource_definitions"][0]
        assert "schema" in erd
        assert "resource_schema" not in erd
        assert erd["schema"]["type"] == "object"

    def test_soft_deleted_rows_included(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        assert any(u["deleted_at"] is not None for u in document["users"])

    def test_non_ascii_kept_as_utf8(self, crdb_snapshot: Snapshot) -> None:
        crdb_snapshot.users[0].name = "Zoë"
        data = encode_snapshot(crdb_snapshot)
        assert "Zoë".encode("utf-8") in data

    def test_postgres_columns_present(self, postgres_snapshot: PostgresSnapshot) -> None:
        document = json.loads(encode_snapshot(postgres_snapshot))
        assert document["groups"][0]["metadata"]
        resource = document["system_extension_resources"][0]
        assert resource["resource_version"] == 2
        assert resource["annotations"] == {"owner": "root"}


class TestDecodeSnapshot:
    """decode_snapshot() validates strictly against the dialect's shapes."""

    def test_round_trip_is_stable(self, crdb_snapshot: Snapshot) -> None:
        once = decode_snapshot(encode_snapshot(crdb_snapshot), CRDB)
        twice = decode_snapshot(encode_snapshot(once), CRDB)
        assert once == twice
        assert once == crdb_snapshot

    def test_postgres_round_trip(self, postgres_snapshot: PostgresSnapshot) -> None:
        decoded = decode_snapshot(encode_snapshot(postgres_snapshot), POSTGRES)
        assert isinstance(decoded, PostgresSnapshot)
        assert decoded == postgres_snapshot

    def test_accepts_str(self, crdb_snapshot: Snapshot) -> None:
        text = encode_snapshot(crdb_snapshot).decode("utf-8")
        assert decode_snapshot(text, CRDB) == crdb_snapshot

    def test_invalid_json(self) -> None:
        with pytest.raises(SerializationError, match="invalid backup document"):
            decode_snapshot(b"{not json", CRDB)

    def test_invalid_utf8(self) -> None:
        with pytest.raises(SerializationError):
            decode_snapshot(b"{\"users\": \"\xc3\x28\"}", CRDB)

    def test_not_an_object(self) -> None:
        with pytest.raises(SerializationError, match="expected an object"):
            decode_snapshot(b"[]", CRDB)

    def test_missing_key(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        del document["audit_events"]
        with pytest.raises(SerializationError, match="audit_events"):
            decode_snapshot(json.dumps(document).encode(), CRDB)

    def test_extra_top_level_key(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        document["ssh_keys"] = []
        with pytest.raises(SerializationError):
            decode_snapshot(json.dumps(document).encode(), CRDB)

    def test_missing_column(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        del document["users"][0]["email"]
        with pytest.raises(SerializationError):
            decode_snapshot(json.dumps(document).encode(), CRDB)

    def test_crdb_document_rejected_for_postgres(self, crdb_snapshot: Snapshot) -> None:
        """Groups without metadata do not match the postgres row shape."""
        with pytest.raises(SerializationError, match="postgres"):
            decode_snapshot(encode_snapshot(crdb_snapshot), POSTGRES)

    def test_postgres_document_rejected_for_crdb(
        self, postgres_snapshot: PostgresSnapshot
    ) -> None:
        """Extra postgres-only columns are unknown fields for crdb."""
        with pytest.raises(SerializationError, match="crdb"):
            decode_snapshot(encode_snapshot(postgres_snapshot), CRDB)

    def test_null_for_nullable_column_accepted(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        document["users"][0]["avatar_url"] = None
        decoded = decode_snapshot(json.dumps(document).encode(), CRDB)
        assert decoded.users[0].avatar_url is None

    def test_crdb_pending_user_accepted(self, crdb_snapshot: Snapshot) -> None:
        document = json.loads(encode_snapshot(crdb_snapshot))
        document["users"][0]["status"] = "pending"
        decoded = decode_snapshot(json.dumps(document).encode(), CRDB)
        assert decoded.users[0].status == "pending"
