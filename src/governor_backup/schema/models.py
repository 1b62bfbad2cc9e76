"""Results of checking a live schema against the row models."""

from pydantic import BaseModel, Field


class ColumnDiff(BaseModel):
    """A column a row model reads that the live table lacks."""

    table: str
    column: str
    message: str = ""


class SchemaValidationResult(BaseModel):
    """Outcome of ``validate_schema``.

    ``extra_tables`` are tables outside the governed set; they are listed
    but never make the result invalid.
    """

    valid: bool
    missing_tables: list[str] = Field(default_factory=list)
    missing_columns: list[ColumnDiff] = Field(default_factory=list)
    extra_tables: list[str] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.missing_tables) + len(self.missing_columns)

    def format_report(self) -> str:
        """Render the result for the ``check`` command."""
        if self.valid:
            lines = ["Schema matches the governed tables"]
        else:
            lines = [f"Schema check failed ({self.error_count} errors):"]

        sections = (
            ("Missing tables", self.missing_tables),
            ("Missing columns", [f"{d.table}.{d.column}" for d in self.missing_columns]),
        )
        for title, items in sections:
            if items:
                lines.append(f"\n  {title} ({len(items)}):")
                lines.extend(f"    - {item}" for item in items)

        if self.extra_tables:
            lines.append(f"\n  Extra tables (warning): {', '.join(self.extra_tables)}")
        return "\n".join(lines)


class ConnectionResult(BaseModel):
    """Outcome of ``connect_and_validate``; ``error`` is set when ``success`` is false."""

    success: bool
    profile_name: str | None = None
    driver: str | None = None
    schema_valid: bool = False
    schema_report: SchemaValidationResult | None = None
    error: str | None = None
