"""db-snapshot: Consistent PostgreSQL snapshot export and transactional restore.

Exports the public columns of configured tables from one database snapshot
into CSV files, and restores them into a database with the same schema in a
single transaction, with triggers suspended and temporary defaults filling
the private columns.

Usage:
    from db_snapshot import load_snapshot_config, run_export, run_restore
    from db_snapshot import build_descriptors, plan_restore
    from db_snapshot import SnapshotError, ExecutionError
"""

__version__ = "0.1.0"

# Config
from db_snapshot.config.loader import load_snapshot_config
from db_snapshot.config.models import DatabaseProfile, SnapshotConfig, TableConfig

# Errors
from db_snapshot.errors import (
    ArtifactError,
    CircularDefaultError,
    ConfigurationError,
    ExecutionError,
    MissingArtifactError,
    MissingDefaultError,
    SchemaIntrospectionError,
    SchemaMismatchError,
    SnapshotError,
)

# Factory
from db_snapshot.factory import ProfileNotFoundError, resolve_database_url, resolve_url

# Registry and planning
from db_snapshot.registry import ExcludedColumn, TableDescriptor, build_descriptors
from db_snapshot.planner import Phase, RestorePlan, plan_restore

# Artifact
from db_snapshot.artifact.models import ArtifactManifest
from db_snapshot.artifact.store import validate_artifact

# Execution
from db_snapshot.restore.executor import RestoreExecutor, RestoreResult
from db_snapshot.pipeline import ExportResult, run_export, run_restore

__all__ = [
    # Config
    "load_snapshot_config",
    "DatabaseProfile",
    "SnapshotConfig",
    "TableConfig",
    # Errors
    "SnapshotError",
    "ConfigurationError",
    "MissingDefaultError",
    "CircularDefaultError",
    "SchemaIntrospectionError",
    "ArtifactError",
    "MissingArtifactError",
    "SchemaMismatchError",
    "ExecutionError",
    # Factory
    "ProfileNotFoundError",
    "resolve_database_url",
    "resolve_url",
    # Registry and planning
    "ExcludedColumn",
    "TableDescriptor",
    "build_descriptors",
    "Phase",
    "RestorePlan",
    "plan_restore",
    # Artifact
    "ArtifactManifest",
    "validate_artifact",
    # Execution
    "RestoreExecutor",
    "RestoreResult",
    "ExportResult",
    "run_export",
    "run_restore",
]
