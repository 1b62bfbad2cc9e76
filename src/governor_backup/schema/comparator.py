"""Schema comparison using set operations.

Compares the columns the row models read and write against the columns a
live database reports.  Pure logic -- no I/O.

Usage:
    from governor_backup.dialects import resolve_dialect
    from governor_backup.schema.comparator import expected_columns, validate_schema
    from governor_backup.schema.introspector import get_column_names

    actual = await get_column_names(adapter)
    result = validate_schema(actual, expected_columns(resolve_dialect("crdb")))
    if not result.valid:
        print(result.format_report())
"""

from governor_backup.backup.models import ENTITY_KINDS
from governor_backup.dialects import EntityModelSet
from governor_backup.schema.models import ColumnDiff, SchemaValidationResult


def expected_columns(model_set: EntityModelSet) -> dict[str, set[str]]:
    """Map each governed table to the columns its row model declares."""
    return {
        kind.table: set(model_set.model_for(kind.field).column_names())
        for kind in ENTITY_KINDS
    }


def validate_schema(
    actual_columns: dict[str, set[str]],
    expected: dict[str, set[str]],
) -> SchemaValidationResult:
    """Validate a live schema against the expected table columns.

    - Missing tables: in ``expected`` but not in ``actual_columns``.
    - Missing columns: expected columns absent from an existing table.
    - Extra tables: in ``actual_columns`` only (warning, does not affect
      ``valid``).  Extra columns are ignored; a backup never reads them.

    Examples:
        >>> validate_schema({"groups": {"id", "name"}}, {"groups": {"id", "name"}}).valid
        True
        >>> result = validate_schema({"groups": {"id"}}, {"groups": {"id", "name"}})
        >>> result.missing_columns[0].column
        'name'
    """
    actual_tables = set(actual_columns)
    expected_tables = set(expected)

    missing_columns: list[ColumnDiff] = []
    for table in sorted(expected_tables & actual_tables):
        for column in sorted(expected[table] - actual_columns[table]):
            missing_columns.append(
                ColumnDiff(
                    table=table,
                    column=column,
                    message=f"Column '{column}' missing from table '{table}'",
                )
            )

    missing_tables = sorted(expected_tables - actual_tables)

    return SchemaValidationResult(
        valid=not missing_tables and not missing_columns,
        missing_tables=missing_tables,
        missing_columns=missing_columns,
        extra_tables=sorted(actual_tables - expected_tables),
    )
