"""End-to-end export and restore.

Wires the registry, planner, script generator, export coordinator and
restore executor together.  Each step fails before the next one touches a
database:

Export:
    introspect source -> descriptors -> plan (configuration errors surface
    here, before any data is read) -> export CSV files -> manifest, scripts,
    README -> optional ``.tar.gz``.

Restore:
    open artifact -> manifest -> plan -> check data files (no database yet)
    -> target schema check -> record trigger states and column defaults ->
    execute in one transaction -> verify.

Usage:
    from db_snapshot.pipeline import run_export, run_restore

    result = await run_export(config, source_url, Path("snapshots/today"))
    restored = await run_restore(target_url, result.artifact_path)
"""

import logging
from pathlib import Path

from psycopg import AsyncConnection
from pydantic import BaseModel, Field

from db_snapshot.artifact.models import MANIFEST_FILE, ArtifactManifest
from db_snapshot.artifact.store import (
    create_archive,
    open_artifact,
    read_manifest,
    write_artifact_files,
)
from db_snapshot.config.models import SnapshotConfig
from db_snapshot.errors import ArtifactError, SchemaMismatchError
from db_snapshot.export.coordinator import export_snapshot
from db_snapshot.planner import RestorePlan, plan_restore
from db_snapshot.registry import TableDescriptor, introspect_descriptors
from db_snapshot.restore.executor import RestoreExecutor, RestoreResult, StatementHook
from db_snapshot.restore.verify import (
    disabled_triggers,
    fetch_column_defaults,
    fetch_trigger_states,
    verify_restore,
)
from db_snapshot.schema.comparator import validate_schema
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.models import SchemaValidationResult
from db_snapshot.script.generator import check_artifact_files, generate_restore_script

logger = logging.getLogger(__name__)


class ExportResult(BaseModel):
    """Outcome of ``run_export()``."""

    artifact_path: str
    archive_path: str | None = None
    tables: list[str] = Field(default_factory=list)  # load order
    row_counts: dict[str, int] = Field(default_factory=dict)


async def _connect(database_url: str) -> AsyncConnection:
    # Autocommit, so the executor's transaction is a real top-level one
    return await AsyncConnection.connect(database_url, autocommit=True)


# ============================================================================
# Export
# ============================================================================


async def plan_from_database(
    config: SnapshotConfig,
    database_url: str,
) -> tuple[list[TableDescriptor], RestorePlan]:
    """Introspect *database_url* and plan a restore of the configured tables.

    Raises:
        SchemaIntrospectionError: A configured table or column is missing.
        ConfigurationError: The table rules are inconsistent.
    """
    async with SchemaIntrospector(database_url) as introspector:
        tables = await introspect_descriptors(introspector, config)
    return tables, plan_restore(tables)


async def run_export(
    config: SnapshotConfig,
    database_url: str,
    output_dir: Path,
    jobs: int = 1,
    source: str = "",
    archive: bool = False,
) -> ExportResult:
    """Export a consistent snapshot of the configured tables.

    Args:
        config: Table rules.
        database_url: Source database.
        output_dir: Artifact directory to create.
        jobs: Parallel export connections.
        source: Label stored in the manifest (profile name).
        archive: Also pack the directory as ``<output_dir>.tar.gz``.

    Returns:
        ``ExportResult`` with per-table row counts.

    Raises:
        ConfigurationError: Before any data is exported.
        SchemaIntrospectionError: Before any data is exported.
        ArtifactError: If *output_dir* already holds a snapshot.
    """
    output_dir = Path(output_dir)
    if (output_dir / MANIFEST_FILE).exists():
        raise ArtifactError(f"{output_dir} already contains a snapshot")

    tables, plan = await plan_from_database(config, database_url)
    logger.info(f"Exporting {len(tables)} tables to {output_dir}")

    output_dir.mkdir(parents=True, exist_ok=True)
    row_counts = await export_snapshot(database_url, tables, output_dir, jobs=jobs)

    manifest = ArtifactManifest(
        source=source,
        schema_name=config.schema_name,
        tables=tables,
        row_counts=row_counts,
    )
    script = generate_restore_script(plan, output_dir)
    write_artifact_files(output_dir, manifest, script)

    archive_path = None
    if archive:
        archive_path = str(create_archive(output_dir))
        logger.info(f"Archive written to {archive_path}")

    return ExportResult(
        artifact_path=str(output_dir),
        archive_path=archive_path,
        tables=[t.name for t in tables],
        row_counts=row_counts,
    )


# ============================================================================
# Restore
# ============================================================================


async def check_target_schema(
    database_url: str,
    manifest: ArtifactManifest,
) -> SchemaValidationResult:
    """Compare the target's columns with the artifact's descriptors.

    Every exported and excluded column must exist on the target.  Extra
    target columns are reported as warnings.
    """
    async with SchemaIntrospector(database_url) as introspector:
        actual = await introspector.get_column_names(manifest.schema_name)

    expected = {t.name: set(t.all_columns) for t in manifest.tables}
    return validate_schema(actual, expected)


async def run_restore(
    database_url: str,
    artifact_path: str | Path,
    schema_check: bool = True,
    dry_run: bool = False,
    on_statement: StatementHook | None = None,
) -> RestoreResult:
    """Restore an artifact into *database_url*.

    Args:
        database_url: Target database, with the same schema as the source.
        artifact_path: Artifact directory or ``.tar.gz`` archive.
        schema_check: Compare target columns with the artifact first.
        dry_run: Execute the whole restore, then roll back.
        on_statement: Execution trace callback.

    Returns:
        ``RestoreResult``; ``verification`` is set after a commit.

    Raises:
        ArtifactError: Missing or malformed artifact (target untouched).
        SchemaMismatchError: Artifact and target schema differ (target
            untouched).
        ConfigurationError: The embedded descriptors cannot be planned.
        ExecutionError: A statement failed; the transaction was rolled back.
    """
    with open_artifact(artifact_path) as root:
        manifest = read_manifest(root)
        plan = plan_restore(manifest.tables)
        check_artifact_files(plan.tables, root)

        if schema_check:
            report = await check_target_schema(database_url, manifest)
            if not report.valid:
                raise SchemaMismatchError(
                    f"Target schema does not match the snapshot:\n{report.format_report()}"
                )
            for diff in report.extra_columns:
                logger.warning(diff.message)

        conn = await _connect(database_url)
        async with conn:
            table_names = [t.name for t in plan.tables]
            triggers_before = await fetch_trigger_states(conn, table_names, manifest.schema_name)
            # Removing a temporary default puts back the target's own default
            defaults_before = await fetch_column_defaults(
                conn, table_names, manifest.schema_name
            )
            plan = plan.with_previous_defaults(defaults_before)
            script = generate_restore_script(
                plan, root, keep_disabled=disabled_triggers(triggers_before)
            )

            result = await RestoreExecutor(conn, on_statement).run(script, commit=not dry_run)

            if result.committed:
                result.verification = await verify_restore(
                    conn, plan, triggers_before, manifest.schema_name
                )
                if not result.verification.valid:
                    logger.warning("Post-restore verification found differences")

    return result
