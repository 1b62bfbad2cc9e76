"""Row models for the governed entity kinds.

One pydantic model per table.  Field names mirror the persisted column
names (``ExtensionResourceDefinition.resource_schema`` is aliased to the
``schema`` column), so a model validates straight from a selected row and
dumps straight back into an INSERT.

Two model families exist.  The base classes describe the CockroachDB
tables; the ``Postgres*`` subclasses add the columns that only the
PostgreSQL schema carries.  Models forbid unknown fields and every column
is required (nullable columns may be ``None`` but must be present), so a
document produced for one family does not validate against the other.

Database enum columns (``users.status``, ``extensions.status`` and the
like) are plain strings here.  Each dialect's enum type holds a different
set of labels and the database enforces its own on insert.

Usage:
    from governor_backup.backup.entities import Group, PostgresGroup

    group = Group.model_validate(row)
    await tx.insert("groups", group.to_row())
"""

import json
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Entity(BaseModel):
    """Base class for a persisted row.

    Subclasses list their jsonb columns in ``json_columns`` and any
    database-generated columns in ``generated_columns`` (those are read
    during backup but never inserted).
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    json_columns: ClassVar[frozenset[str]] = frozenset()
    generated_columns: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def _decode_json_text(cls, data: Any) -> Any:
        # Some drivers hand jsonb back as text
        if isinstance(data, dict):
            for column in cls.json_columns:
                value = data.get(column)
                if isinstance(value, str):
                    data = {**data, column: json.loads(value)}
        return data

    @classmethod
    def column_names(cls) -> list[str]:
        """Column names in declaration order (aliases resolved)."""
        return [info.alias or name for name, info in cls.model_fields.items()]

    def to_row(self) -> dict[str, Any]:
        """Return an insertable ``{column: value}`` dict.

        Generated columns are dropped; values keep their Python types
        (``UUID``, ``datetime``) for the driver to bind.
        """
        return self.model_dump(by_alias=True, exclude=set(self.generated_columns))


# ------------------------------------------------------------------
# Applications
# ------------------------------------------------------------------


class ApplicationType(Entity):
    id: UUID
    name: str
    slug: str
    description: str
    logo_url: str | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None


class Application(Entity):
    id: UUID
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None
    approver_group_id: UUID | None
    type_id: UUID | None


class AuditEvent(Entity):
    id: UUID
    actor_id: UUID | None
    action: str
    message: str
    changeset: list[str]
    subject_group_id: UUID | None
    subject_user_id: UUID | None
    created_at: datetime
    subject_organization_id: UUID | None
    subject_application_id: UUID | None
    parent_id: UUID | None


# ------------------------------------------------------------------
# Groups
# ------------------------------------------------------------------


class Group(Entity):
    """A group.  ``approver_group`` references another group by id."""

    id: UUID
    name: str
    slug: str
    description: str
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None
    note: str
    approver_group: UUID | None


class PostgresGroup(Group):
    json_columns: ClassVar[frozenset[str]] = frozenset({"metadata"})

    metadata: dict[str, Any]


class GroupApplication(Entity):
    id: UUID
    group_id: UUID
    application_id: UUID
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None


class GroupApplicationRequest(Entity):
    id: UUID
    group_id: UUID
    application_id: UUID
    approver_group_id: UUID
    requester_user_id: UUID
    note: str | None
    created_at: datetime
    updated_at: datetime


class GroupHierarchy(Entity):
    id: UUID
    parent_group_id: UUID
    member_group_id: UUID
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None


class GroupMembership(Entity):
    id: UUID
    group_id: UUID
    user_id: UUID
    is_admin: bool
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None
    admin_expires_at: datetime | None


class GroupMembershipRequest(Entity):
    id: UUID
    group_id: UUID
    user_id: UUID
    created_at: datetime
    updated_at: datetime
    is_admin: bool
    note: str
    expires_at: datetime | None
    kind: str
    admin_expires_at: datetime | None


class GroupOrganization(Entity):
    id: UUID
    group_id: UUID
    organization_id: UUID
    created_at: datetime
    updated_at: datetime


# ------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------


class NotificationPreference(Entity):
    """A user's notification switch.

    ``notification_target_id_null_string`` is a stored generated column
    (the target id with NULL mapped to the zero UUID).
    """

    generated_columns: ClassVar[frozenset[str]] = frozenset(
        {"notification_target_id_null_string"}
    )

    id: UUID
    user_id: UUID
    notification_type_id: UUID
    notification_target_id: UUID | None
    notification_target_id_null_string: UUID | None
    enabled: bool


class NotificationTarget(Entity):
    id: UUID
    name: str
    slug: str
    description: str
    default_enabled: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None


class NotificationType(Entity):
    id: UUID
    name: str
    slug: str
    description: str
    default_enabled: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None


# ------------------------------------------------------------------
# Organizations and users
# ------------------------------------------------------------------


class Organization(Entity):
    id: UUID
    name: str
    created_at: datetime
    updated_at: datetime
    slug: str
    deleted_at: datetime | None


class User(Entity):
    json_columns: ClassVar[frozenset[str]] = frozenset({"metadata"})

    id: UUID
    external_id: str | None
    name: str
    email: str
    login_count: int
    avatar_url: str | None
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime
    github_id: int | None
    github_username: str | None
    deleted_at: datetime | None
    status: str | None
    metadata: dict[str, Any]


# ------------------------------------------------------------------
# Extensions
# ------------------------------------------------------------------


class Extension(Entity):
    id: UUID
    name: str
    description: str
    enabled: bool
    slug: str
    status: str
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None


class ExtensionResourceDefinition(Entity):
    json_columns: ClassVar[frozenset[str]] = frozenset({"schema"})

    id: UUID
    name: str
    description: str
    enabled: bool
    slug_singular: str
    slug_plural: str
    version: str
    scope: str
    resource_schema: dict[str, Any] = Field(alias="schema")
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None
    extension_id: UUID
    admin_group: UUID | None


class SystemExtensionResource(Entity):
    json_columns: ClassVar[frozenset[str]] = frozenset({"resource"})

    id: UUID
    resource: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None
    extension_resource_definition_id: UUID


class PostgresSystemExtensionResource(SystemExtensionResource):
    json_columns: ClassVar[frozenset[str]] = frozenset({"resource", "annotations"})

    owner_id: UUID | None
    resource_version: int
    annotations: dict[str, Any]


class UserExtensionResource(Entity):
    json_columns: ClassVar[frozenset[str]] = frozenset({"resource"})

    id: UUID
    resource: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None
    user_id: UUID
    extension_resource_definition_id: UUID
