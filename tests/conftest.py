"""Shared fixtures: an in-memory transactional database and sample rows."""

import copy
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import pytest

from governor_backup.backup.models import ENTITY_FIELDS, PostgresSnapshot, Snapshot
from governor_backup.dialects import resolve_dialect

ZERO_UUID = UUID(int=0)

T0 = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
DELETED_AT = T0 + timedelta(days=30)


# ============================================================================
# Fake database
# ============================================================================


def _matches(row: dict, filters: dict[str, Any] | None) -> bool:
    return all(row.get(k) == v for k, v in (filters or {}).items())


def _project(rows: list[dict], columns: str, order_by: str | None) -> list[dict]:
    names = [c.strip().strip('"') for c in columns.split(",")]
    if order_by:
        rows = sorted(rows, key=lambda r: str(r.get(order_by)))
    return [{name: copy.deepcopy(row.get(name)) for name in names} for row in rows]


class FakeTransaction:
    """Statements against a staged copy of the fake database's tables."""

    def __init__(self, db: "FakeDatabase", tables: dict[str, list[dict]], read_only: bool):
        self._db = db
        self._tables = tables
        self.read_only = read_only

    async def select(self, table, columns, filters=None, order_by=None) -> list[dict]:
        self._db.check_select(table)
        rows = [r for r in self._tables.get(table, []) if _matches(r, filters)]
        return _project(rows, columns, order_by)

    async def insert(self, table: str, data: dict) -> None:
        if self.read_only:
            raise RuntimeError("cannot execute INSERT in a read-only transaction")
        if self._db.fail_insert is not None and self._db.fail_insert(table, data):
            raise RuntimeError(f"injected insert failure in {table}")
        if table == "notification_preferences":
            if "notification_target_id_null_string" in data:
                raise RuntimeError("cannot insert a value into a generated column")
            data = {
                **data,
                "notification_target_id_null_string": data.get("notification_target_id")
                or ZERO_UUID,
            }
        rows = self._tables.setdefault(table, [])
        if "id" in data and any(r.get("id") == data["id"] for r in rows):
            raise RuntimeError(f"duplicate key value violates unique constraint on {table}")
        rows.append(copy.deepcopy(data))
        self._db.insert_log.append(table)

    async def execute(self, sql: str, params: dict | None = None) -> None:
        if self._db.fail_execute is not None and self._db.fail_execute(sql):
            raise RuntimeError(f"injected failure: {sql}")
        self._db.executed.append(sql)

    async def execute_script(self, sql: str) -> None:
        if self._db.fail_execute is not None and self._db.fail_execute(sql):
            raise RuntimeError(f"injected failure: {sql}")
        self._db.scripts.append(sql)


class FakeDatabase:
    """In-memory ``DatabaseClient`` with all-or-nothing transactions.

    Each transaction works on a deep copy of the tables; the copy replaces
    the committed state only when the ``async with`` block exits cleanly.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {name: [] for name in ENTITY_FIELDS}
        self.executed: list[str] = []
        self.scripts: list[str] = []
        self.autocommit_scripts: list[str] = []
        self.insert_log: list[str] = []
        self.outcomes: list[str] = []
        self.transaction_modes: list[bool] = []
        self.select_calls: list[str] = []
        self.fail_select: set[str] = set()
        self.fail_insert: Callable[[str, dict], bool] | None = None
        self.fail_execute: Callable[[str], bool] | None = None
        self.closed = False

    def check_select(self, table: str) -> None:
        self.select_calls.append(table)
        if table in self.fail_select:
            raise RuntimeError(f'relation "{table}" does not exist')

    async def select(self, table, columns, filters=None, order_by=None) -> list[dict]:
        self.check_select(table)
        rows = [r for r in self.tables.get(table, []) if _matches(r, filters)]
        return _project(rows, columns, order_by)

    @asynccontextmanager
    async def transaction(self, read_only: bool = False):
        self.transaction_modes.append(read_only)
        staged = copy.deepcopy(self.tables)
        try:
            yield FakeTransaction(self, staged, read_only)
        except BaseException:
            self.outcomes.append("rollback")
            raise
        self.tables = staged
        self.outcomes.append("commit")

    async def execute(self, sql: str, params: dict | None = None) -> None:
        self.executed.append(sql)

    async def execute_script(self, sql: str) -> None:
        """Autocommit script: applied at once, never rolled back."""
        if self.fail_execute is not None and self.fail_execute(sql):
            raise RuntimeError(f"injected failure: {sql}")
        self.autocommit_scripts.append(sql)

    async def close(self) -> None:
        self.closed = True

    def total_rows(self) -> int:
        return sum(len(rows) for rows in self.tables.values())

    def load(self, snapshot: Snapshot) -> None:
        """Seed committed state directly from a snapshot's rows."""
        for name in ENTITY_FIELDS:
            self.tables[name] = [
                row.model_dump(by_alias=True) for row in getattr(snapshot, name)
            ]


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


# ============================================================================
# Sample rows
# ============================================================================


def _stamps(deleted: bool = False) -> dict[str, Any]:
    return {
        "created_at": T0,
        "updated_at": T0 + timedelta(hours=1),
        "deleted_at": DELETED_AT if deleted else None,
    }


def group_row(
    name: str,
    approver: UUID | None = None,
    driver: str = "crdb",
    deleted: bool = False,
    group_id: UUID | None = None,
) -> dict[str, Any]:
    """Build a group row dict for ``driver``."""
    row: dict[str, Any] = {
        "id": group_id or uuid4(),
        "name": name,
        "slug": name.lower().replace(" ", "-"),
        "description": f"{name} group",
        **_stamps(deleted),
        "note": "",
        "approver_group": approver,
    }
    if driver == "postgres":
        row["metadata"] = {"team": name}
    return row


def build_snapshot(driver: str = "crdb") -> Snapshot:
    """A snapshot with rows in every collection, soft-deleted rows included.

    Groups form a three-level approver chain stored child-first.
    """
    model_set = resolve_dialect(driver)

    root = group_row("Root", driver=driver)
    middle = group_row("Middle", approver=root["id"], driver=driver)
    leaf = group_row("Leaf", approver=middle["id"], driver=driver, deleted=True)
    groups = [leaf, middle, root]

    user = {
        "id": uuid4(),
        "external_id": "ext-1",
        "name": "Ada",
        "email": "ada@example.com",
        "login_count": 3,
        "avatar_url": None,
        "last_login_at": T0,
        "created_at": T0,
        "updated_at": T0,
        "github_id": 42,
        "github_username": "ada",
        "deleted_at": None,
        "status": "active",
        "metadata": {"source": "oidc"},
    }
    gone_user = {**user, "id": uuid4(), "email": "gone@example.com", "deleted_at": DELETED_AT}

    app_type = {
        "id": uuid4(),
        "name": "Service",
        "slug": "service",
        "description": "A service",
        "logo_url": None,
        **_stamps(),
    }
    app = {
        "id": uuid4(),
        "name": "Billing",
        "slug": "billing",
        **_stamps(),
        "approver_group_id": root["id"],
        "type_id": app_type["id"],
    }
    org = {"id": uuid4(), "name": "Acme", "created_at": T0, "updated_at": T0, "slug": "acme",
           "deleted_at": None}
    target = {"id": uuid4(), "name": "Slack", "slug": "slack", "description": "",
              "default_enabled": True, **_stamps()}
    ntype = {"id": uuid4(), "name": "Alert", "slug": "alert", "description": "",
             "default_enabled": False, **_stamps()}
    extension = {"id": uuid4(), "name": "Ext", "description": "", "enabled": True,
                 "slug": "ext", "status": "online", **_stamps()}
    erd = {
        "id": uuid4(),
        "name": "Widget",
        "description": "",
        "enabled": True,
        "slug_singular": "widget",
        "slug_plural": "widgets",
        "version": "v1",
        "scope": "system",
        "schema": {"type": "object", "properties": {"size": {"type": "integer"}}},
        **_stamps(),
        "extension_id": extension["id"],
        "admin_group": root["id"],
    }
    system_resource = {
        "id": uuid4(),
        "resource": {"size": 3, "tags": ["a", "b"]},
        **_stamps(),
        "extension_resource_definition_id": erd["id"],
    }
    if driver == "postgres":
        system_resource.update(
            owner_id=root["id"], resource_version=2, annotations={"owner": "root"}
        )

    data = {
        "application_types": [app_type],
        "applications": [app],
        "audit_events": [{
            "id": uuid4(),
            "actor_id": user["id"],
            "action": "group.create",
            "message": "created",
            "changeset": ["name: Root"],
            "subject_group_id": root["id"],
            "subject_user_id": None,
            "created_at": T0,
            "subject_organization_id": None,
            "subject_application_id": None,
            "parent_id": None,
        }],
        "group_application_requests": [{
            "id": uuid4(),
            "group_id": middle["id"],
            "application_id": app["id"],
            "approver_group_id": root["id"],
            "requester_user_id": user["id"],
            "note": None,
            "created_at": T0,
            "updated_at": T0,
        }],
        "group_applications": [{"id": uuid4(), "group_id": middle["id"],
                                "application_id": app["id"], **_stamps(deleted=True)}],
        "group_hierarchies": [{"id": uuid4(), "parent_group_id": root["id"],
                               "member_group_id": middle["id"], "created_at": T0,
                               "updated_at": T0, "expires_at": None}],
        "group_membership_requests": [{
            "id": uuid4(),
            "group_id": root["id"],
            "user_id": user["id"],
            "created_at": T0,
            "updated_at": T0,
            "is_admin": False,
            "note": "please",
            "expires_at": None,
            "kind": "new_member",
            "admin_expires_at": None,
        }],
        "group_memberships": [{"id": uuid4(), "group_id": root["id"], "user_id": user["id"],
                               "is_admin": True, "created_at": T0, "updated_at": T0,
                               "expires_at": None, "admin_expires_at": None}],
        "group_organizations": [{"id": uuid4(), "group_id": root["id"],
                                 "organization_id": org["id"], "created_at": T0,
                                 "updated_at": T0}],
        "groups": groups,
        "notification_preferences": [{
            "id": uuid4(),
            "user_id": user["id"],
            "notification_type_id": ntype["id"],
            "notification_target_id": None,
            "notification_target_id_null_string": ZERO_UUID,
            "enabled": True,
        }],
        "notification_targets": [target],
        "notification_types": [ntype],
        "organizations": [org],
        "users": [user, gone_user],
        "extension_resource_definitions": [erd],
        "extensions": [extension],
        "system_extension_resources": [system_resource],
        "user_extension_resources": [{"id": uuid4(), "resource": {"color": "blue"},
                                      **_stamps(), "user_id": user["id"],
                                      "extension_resource_definition_id": erd["id"]}],
    }
    return model_set.snapshot_model.model_validate(data)


@pytest.fixture
def crdb_snapshot() -> Snapshot:
    return build_snapshot("crdb")


@pytest.fixture
def postgres_snapshot() -> PostgresSnapshot:
    return build_snapshot("postgres")
