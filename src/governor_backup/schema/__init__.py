"""Live schema checks and migrations.

Provides column introspection (``get_column_names``), comparison against
the row models (``validate_schema``, ``expected_columns``) and the
goose-style migration runner used by ``restore --migrate``.

Usage:
    from governor_backup.schema import expected_columns, get_column_names, validate_schema
    from governor_backup.schema import run_migrations
"""

from governor_backup.schema.comparator import expected_columns, validate_schema
from governor_backup.schema.introspector import get_column_names
from governor_backup.schema.migrate import run_migrations
from governor_backup.schema.models import (
    ColumnDiff,
    ConnectionResult,
    SchemaValidationResult,
)

__all__ = [
    "validate_schema",
    "expected_columns",
    "get_column_names",
    "run_migrations",
    "SchemaValidationResult",
    "ColumnDiff",
    "ConnectionResult",
]
