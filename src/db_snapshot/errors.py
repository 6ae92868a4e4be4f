"""Error taxonomy for snapshot export and restore.

Configuration and planning errors are raised before any I/O against the
target database.  Execution errors are raised from inside the restore
transaction, which rolls back as the exception propagates.

Usage:
    from db_snapshot.errors import SnapshotError, MissingDefaultError

    try:
        plan = plan_restore(tables)
    except SnapshotError as e:
        console.print(f"[red]{e}[/red]")
"""


class SnapshotError(Exception):
    """Base class for every error raised by db-snapshot."""

    pass


class ConfigurationError(SnapshotError):
    """Raised when the table configuration is inconsistent."""

    pass


class MissingDefaultError(ConfigurationError):
    """Raised when an excluded NOT NULL column has no registered default."""

    def __init__(self, table: str, column: str):
        self.table = table
        self.column = column
        super().__init__(
            f"Column '{table}.{column}' is private and NOT NULL but has no "
            f"entry in column_defaults"
        )


class CircularDefaultError(ConfigurationError):
    """Raised when a default expression references an excluded column."""

    def __init__(self, table: str, column: str, referenced: str):
        self.table = table
        self.column = column
        self.referenced = referenced
        super().__init__(
            f"Default for '{table}.{column}' references excluded column "
            f"'{referenced}'"
        )


class SchemaIntrospectionError(SnapshotError):
    """Raised when a configured table or column no longer exists."""

    pass


class ArtifactError(SnapshotError):
    """Raised when an artifact cannot be read or is malformed."""

    pass


class MissingArtifactError(ArtifactError):
    """Raised when a file the artifact declares is missing."""

    pass


class SchemaMismatchError(ArtifactError):
    """Raised when artifact contents do not match the declared columns."""

    pass


class ExecutionError(SnapshotError):
    """Raised when the database rejects a statement during restore.

    Attributes:
        phase: Name of the restore phase that was running.
        statement: SQL text of the failing statement.
    """

    def __init__(self, phase: str, statement: str, message: str):
        self.phase = phase
        self.statement = statement
        super().__init__(f"Restore failed in phase '{phase}': {message}")
