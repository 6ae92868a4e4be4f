"""Pydantic models for schema introspection and validation.

This module contains schema-domain models:
- Introspection models: ColumnSchema, TriggerSchema, TableSchema, DatabaseSchema
- Validation models: ColumnDiff, SchemaValidationResult

Configuration models (DatabaseProfile, SnapshotConfig) live in
db_snapshot.config.models.
"""

from pydantic import BaseModel, Field


# ============================================================================
# Validation Result Models
# ============================================================================


class ColumnDiff(BaseModel):
    """A missing column detected during validation."""

    table: str
    column: str
    message: str = ""


class SchemaValidationResult(BaseModel):
    """Result of schema validation.

    Example:
        >>> result = SchemaValidationResult(valid=True)
        >>> result.error_count
        0
        >>> result.format_report()
        'Schema valid'
    """

    valid: bool
    missing_tables: list[str] = Field(default_factory=list)
    missing_columns: list[ColumnDiff] = Field(default_factory=list)
    extra_columns: list[ColumnDiff] = Field(default_factory=list)  # Warning only

    @property
    def error_count(self) -> int:
        """Count of critical errors (missing tables + missing columns)."""
        return len(self.missing_tables) + len(self.missing_columns)

    def format_report(self) -> str:
        """Format validation result as human-readable report."""
        if self.valid:
            return "Schema valid"

        lines = ["Schema validation failed:"]

        if self.missing_tables:
            lines.append(f"\n  Missing tables ({len(self.missing_tables)}):")
            for table in self.missing_tables:
                lines.append(f"    - {table}")

        if self.missing_columns:
            lines.append(f"\n  Missing columns ({len(self.missing_columns)}):")
            for diff in self.missing_columns:
                lines.append(f"    - {diff.table}.{diff.column}")

        if self.extra_columns:
            extra = ", ".join(f"{d.table}.{d.column}" for d in self.extra_columns)
            lines.append(f"\n  Extra columns (warning): {extra}")

        return "\n".join(lines)


# ============================================================================
# Schema Introspection Models
# ============================================================================


class ColumnSchema(BaseModel):
    """Schema for a database column.

    Example:
        >>> col = ColumnSchema(name="id", data_type="int", default="nextval('users_id_seq'::regclass)")
        >>> col.is_sequence
        True
    """

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    is_identity: bool = False

    @property
    def is_sequence(self) -> bool:
        """True if the column draws its values from a sequence."""
        return self.is_identity or (
            self.default is not None and self.default.startswith("nextval(")
        )


class TriggerSchema(BaseModel):
    """Schema for a user-defined trigger."""

    name: str
    enabled: bool = True


class TableSchema(BaseModel):
    """Schema for a database table.

    ``columns`` preserves ordinal position order.
    """

    name: str
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    triggers: dict[str, TriggerSchema] = Field(default_factory=dict)
    references: list[str] = Field(default_factory=list)  # FK target tables


class DatabaseSchema(BaseModel):
    """Complete database schema."""

    tables: dict[str, TableSchema] = Field(default_factory=dict)
