"""Schema introspection and compatibility validation.

Usage:
    from db_snapshot.schema import SchemaIntrospector, validate_schema
"""

from db_snapshot.schema.comparator import validate_schema
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.models import (
    ColumnDiff,
    ColumnSchema,
    DatabaseSchema,
    SchemaValidationResult,
    TableSchema,
    TriggerSchema,
)

__all__ = [
    "validate_schema",
    "SchemaIntrospector",
    "SchemaValidationResult",
    "ColumnDiff",
    "ColumnSchema",
    "TriggerSchema",
    "TableSchema",
    "DatabaseSchema",
]
