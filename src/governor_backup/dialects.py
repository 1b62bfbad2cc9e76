"""Database dialect resolution.

Maps a driver identifier to the entity model family used to read, write
and decode rows for that database.  Only ``crdb`` and ``postgres`` are
recognized; anything else fails before a database is touched.

Usage:
    from governor_backup.dialects import resolve_dialect

    model_set = resolve_dialect("postgres")
    model_set.model_for("groups")        # PostgresGroup
    model_set.snapshot_model             # PostgresSnapshot
"""

from dataclasses import dataclass
from enum import Enum
from typing import get_args

from governor_backup.backup.entities import Entity
from governor_backup.backup.models import ENTITY_FIELDS, PostgresSnapshot, Snapshot
from governor_backup.errors import UnsupportedDialectError


class Driver(str, Enum):
    """Supported database drivers."""

    CRDB = "crdb"
    POSTGRES = "postgres"


@dataclass(frozen=True)
class EntityModelSet:
    """The row models for one dialect.

    Attributes:
        driver: Driver this model set belongs to.
        snapshot_model: Snapshot class whose field types select the row
            model for each collection.
    """

    driver: Driver
    snapshot_model: type[Snapshot]

    def model_for(self, field: str) -> type[Entity]:
        """Return the row model for a snapshot field (e.g. ``"groups"``)."""
        annotation = self.snapshot_model.model_fields[field].annotation
        (model,) = get_args(annotation)
        return model

    @property
    def jsonb_columns(self) -> frozenset[str]:
        """Every jsonb column name used by any model in the set."""
        columns: set[str] = set()
        for name in ENTITY_FIELDS:
            columns |= self.model_for(name).json_columns
        return frozenset(columns)


_MODEL_SETS: dict[Driver, EntityModelSet] = {
    Driver.CRDB: EntityModelSet(Driver.CRDB, Snapshot),
    Driver.POSTGRES: EntityModelSet(Driver.POSTGRES, PostgresSnapshot),
}


def resolve_dialect(driver: str | Driver) -> EntityModelSet:
    """Resolve a driver identifier to its entity model set.

    Args:
        driver: ``"crdb"`` or ``"postgres"``.

    Returns:
        The ``EntityModelSet`` for that driver.

    Raises:
        UnsupportedDialectError: For any other identifier.

    Example:
        >>> resolve_dialect("crdb").driver
        <Driver.CRDB: 'crdb'>
    """
    try:
        return _MODEL_SETS[Driver(driver)]
    except ValueError:
        raise UnsupportedDialectError(str(driver)) from None
