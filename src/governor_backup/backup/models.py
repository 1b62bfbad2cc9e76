"""Snapshot and restore-plan models.

``Snapshot`` is the top-level aggregate written to and read from a backup
document: one list per entity kind, soft-deleted rows included.
``PostgresSnapshot`` swaps in the PostgreSQL row shapes for the two
tables whose columns differ between dialects.

``SortableNode`` and ``RestorationGroup`` are transient helpers for the
dependency sorter and the restore orchestrator.

Usage:
    from governor_backup.backup.models import ENTITY_KINDS, Snapshot

    snapshot = Snapshot(groups=[group_a, group_b])
    for kind in ENTITY_KINDS:
        print(kind.label, len(getattr(snapshot, kind.field)))
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from governor_backup.backup.entities import (
    Application,
    ApplicationType,
    AuditEvent,
    Entity,
    Extension,
    ExtensionResourceDefinition,
    Group,
    GroupApplication,
    GroupApplicationRequest,
    GroupHierarchy,
    GroupMembership,
    GroupMembershipRequest,
    GroupOrganization,
    NotificationPreference,
    NotificationTarget,
    NotificationType,
    Organization,
    PostgresGroup,
    PostgresSystemExtensionResource,
    SystemExtensionResource,
    User,
    UserExtensionResource,
)


@dataclass(frozen=True)
class EntityKind:
    """A governed entity collection.

    Attributes:
        field: Snapshot field name and document key (also the table name).
        label: Human-readable name used in logs and restore summaries.
    """

    field: str
    label: str

    @property
    def table(self) -> str:
        return self.field


# Extraction (and document) order.  Order is for logging only.
ENTITY_KINDS: tuple[EntityKind, ...] = (
    EntityKind("application_types", "application types"),
    EntityKind("applications", "applications"),
    EntityKind("audit_events", "audit events"),
    EntityKind("group_application_requests", "group application requests"),
    EntityKind("group_applications", "group applications"),
    EntityKind("group_hierarchies", "group hierarchies"),
    EntityKind("group_membership_requests", "group membership requests"),
    EntityKind("group_memberships", "group memberships"),
    EntityKind("group_organizations", "group organizations"),
    EntityKind("groups", "groups"),
    EntityKind("notification_preferences", "notification preferences"),
    EntityKind("notification_targets", "notification targets"),
    EntityKind("notification_types", "notification types"),
    EntityKind("organizations", "organizations"),
    EntityKind("users", "users"),
    EntityKind("extension_resource_definitions", "extension resource definitions"),
    EntityKind("extensions", "extensions"),
    EntityKind("system_extension_resources", "system extension resources"),
    EntityKind("user_extension_resources", "user extension resources"),
)

ENTITY_FIELDS: tuple[str, ...] = tuple(kind.field for kind in ENTITY_KINDS)

_KINDS_BY_FIELD: dict[str, EntityKind] = {kind.field: kind for kind in ENTITY_KINDS}

# Restore order.  Reflects foreign keys between tables and must not be
# re-derived from schema metadata.
RESTORE_ORDER: tuple[EntityKind, ...] = tuple(
    _KINDS_BY_FIELD[name]
    for name in (
        "application_types",
        "groups",
        "users",
        "extensions",
        "notification_targets",
        "notification_types",
        "organizations",
        "applications",
        "audit_events",
        "extension_resource_definitions",
        "group_application_requests",
        "group_applications",
        "group_hierarchies",
        "group_membership_requests",
        "group_memberships",
        "group_organizations",
        "notification_preferences",
        "system_extension_resources",
        "user_extension_resources",
    )
)


class Snapshot(BaseModel):
    """Full export of every governed collection (CockroachDB row shapes)."""

    model_config = ConfigDict(extra="forbid")

    application_types: list[ApplicationType] = Field(default_factory=list)
    applications: list[Application] = Field(default_factory=list)
    audit_events: list[AuditEvent] = Field(default_factory=list)
    group_application_requests: list[GroupApplicationRequest] = Field(default_factory=list)
    group_applications: list[GroupApplication] = Field(default_factory=list)
    group_hierarchies: list[GroupHierarchy] = Field(default_factory=list)
    group_membership_requests: list[GroupMembershipRequest] = Field(default_factory=list)
    group_memberships: list[GroupMembership] = Field(default_factory=list)
    group_organizations: list[GroupOrganization] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)
    notification_preferences: list[NotificationPreference] = Field(default_factory=list)
    notification_targets: list[NotificationTarget] = Field(default_factory=list)
    notification_types: list[NotificationType] = Field(default_factory=list)
    organizations: list[Organization] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)
    extension_resource_definitions: list[ExtensionResourceDefinition] = Field(
        default_factory=list
    )
    extensions: list[Extension] = Field(default_factory=list)
    system_extension_resources: list[SystemExtensionResource] = Field(default_factory=list)
    user_extension_resources: list[UserExtensionResource] = Field(default_factory=list)

    def counts(self) -> dict[str, int]:
        """Row count per collection, in document order."""
        return {name: len(getattr(self, name)) for name in ENTITY_FIELDS}


class PostgresSnapshot(Snapshot):
    """Full export using the PostgreSQL row shapes."""

    groups: list[PostgresGroup] = Field(default_factory=list)
    system_extension_resources: list[PostgresSystemExtensionResource] = Field(
        default_factory=list
    )


@dataclass
class SortableNode:
    """A row wrapped for topological sorting.

    ``parent`` is the parent id, or ``""`` when the row has none.
    """

    id: str
    parent: str
    row: Any = None


@dataclass
class RestorationGroup:
    """One named batch of rows inserted together during restore."""

    name: str
    table: str
    rows: list[Entity] = field(default_factory=list)


class BackupReport(BaseModel):
    """Result of validating a backup document without a database.

    ``errors`` make the document unrestorable; ``warnings`` flag rows whose
    references point outside the document (these rows may still restore
    into a database that already holds the referenced groups).
    """

    valid: bool
    driver: str
    counts: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def format_report(self) -> str:
        """Format the report as human-readable text."""
        lines = [f"Backup {'valid' if self.valid else 'invalid'} ({self.driver})"]
        if self.counts:
            total = sum(self.counts.values())
            lines.append(f"  {total} rows in {len(self.counts)} collections")
        for error in self.errors:
            lines.append(f"  error: {error}")
        for warning in self.warnings:
            lines.append(f"  warning: {warning}")
        return "\n".join(lines)
