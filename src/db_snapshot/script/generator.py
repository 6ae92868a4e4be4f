"""Restore and export script generation.

Turns a ``RestorePlan`` into a ``RestoreScript`` bound to an artifact
directory, after checking that the artifact actually matches the plan:
every table's CSV file must exist and its header must equal the
descriptor's column list exactly (no reordering by name at load time).

The same script renders to a psql file (``import.sql``) that an operator
can run by hand from the artifact root.

Usage:
    from db_snapshot.planner import plan_restore
    from db_snapshot.script.generator import generate_restore_script, render_psql

    plan = plan_restore(manifest.tables)
    script = generate_restore_script(plan, artifact_root)
    Path(artifact_root, "import.sql").write_text(render_psql(script))
"""

from __future__ import annotations

import csv
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from db_snapshot.errors import MissingArtifactError, SchemaMismatchError
from db_snapshot.planner import Phase, PlannedPhase, RestorePlan
from db_snapshot.registry import TableDescriptor
from db_snapshot.script.statements import DisableTrigger, ExportTable, LoadTable, Statement

if TYPE_CHECKING:
    from db_snapshot.artifact.models import ArtifactManifest


_PHASE_TITLES = {
    Phase.DISABLE_TRIGGERS: "Disable all triggers",
    Phase.INSTALL_DEFAULTS: "Install temporary defaults for excluded columns",
    Phase.TRUNCATE: "Truncate tables and restart identities",
    Phase.ENABLE_ACTIVE_TRIGGERS: "Re-enable triggers that maintain derived columns",
    Phase.LOAD: "Load table data",
    Phase.RESET_SEQUENCES: "Move sequences past restored keys",
    Phase.DROP_DEFAULTS: "Remove temporary defaults",
    Phase.ENABLE_TRIGGERS: "Re-enable all triggers",
}


@dataclass
class RestoreScript:
    """A restore plan bound to an artifact directory."""

    root: Path
    phases: list[PlannedPhase] = field(default_factory=list)

    def statements(self) -> Iterator[tuple[Phase, Statement]]:
        for planned in self.phases:
            for statement in planned.statements:
                yield planned.phase, statement

    def data_file(self, statement: LoadTable) -> Path:
        return self.root / statement.path


# ------------------------------------------------------------------
# Artifact checks
# ------------------------------------------------------------------


def read_csv_header(path: Path) -> list[str] | None:
    """Return the header row of a CSV file, or None if the file is empty."""
    with open(path, newline="", encoding="utf-8") as f:
        return next(csv.reader(f), None)


def check_artifact_files(tables: list[TableDescriptor], root: Path) -> None:
    """Check that each table's CSV file exists and matches its columns.

    Raises:
        MissingArtifactError: A declared table has no data file.
        SchemaMismatchError: A header is missing, has a different column
            count, or names columns in a different order.
    """
    for table in tables:
        path = root / table.data_path
        if not path.is_file():
            raise MissingArtifactError(f"Data file for table '{table.name}' not found: {path}")

        header = read_csv_header(path)
        if header is None:
            raise SchemaMismatchError(f"{table.data_path} is empty (expected a header row)")

        expected = list(table.columns)
        if len(header) != len(expected):
            raise SchemaMismatchError(
                f"{table.data_path} has {len(header)} columns, "
                f"table '{table.name}' declares {len(expected)}"
            )
        if header != expected:
            raise SchemaMismatchError(
                f"{table.data_path} header {header} does not match "
                f"declared column order {expected}"
            )


# ------------------------------------------------------------------
# Script generation
# ------------------------------------------------------------------


def generate_restore_script(
    plan: RestorePlan,
    root: Path,
    keep_disabled: dict[str, list[str]] | None = None,
) -> RestoreScript:
    """Bind *plan* to the artifact at *root*.

    Args:
        plan: Plan from ``plan_restore()``.
        root: Artifact directory containing ``data/<table>.csv``.
        keep_disabled: Table -> trigger names that are disabled on the
            target before restore.  They are disabled again at the end of
            the last phase, so the set of enabled triggers is unchanged.

    Returns:
        ``RestoreScript`` with the plan's phases.

    Raises:
        MissingArtifactError: See ``check_artifact_files``.
        SchemaMismatchError: See ``check_artifact_files``.
    """
    root = Path(root)
    check_artifact_files(plan.tables, root)

    phases = [PlannedPhase(p.phase, list(p.statements)) for p in plan.phases]

    if keep_disabled:
        final = phases[-1]
        schemas = {t.name: t.schema_name for t in plan.tables}
        for table in sorted(keep_disabled):
            if table not in schemas:
                continue
            for trigger in sorted(keep_disabled[table]):
                final.statements.append(DisableTrigger(table, trigger, schemas[table]))

    return RestoreScript(root=root, phases=phases)


def render_psql(script: RestoreScript) -> str:
    """Render *script* as a psql file, run from the artifact root.

    The whole script is one transaction: with ``ON_ERROR_STOP`` any
    failing statement aborts psql before ``COMMIT``.
    """
    lines = [
        "-- Restore script generated by db-snapshot.",
        "-- Run from the artifact directory: psql \"$DATABASE_URL\" -f import.sql",
        "",
        "\\set ON_ERROR_STOP on",
        "",
        "BEGIN;",
    ]
    for planned in script.phases:
        lines.append("")
        lines.append(f"-- {_PHASE_TITLES[planned.phase]}")
        for statement in planned.statements:
            lines.append(statement.to_psql())
    lines.extend(["", "COMMIT;", ""])
    return "\n".join(lines)


def export_statements(tables: list[TableDescriptor]) -> list[ExportTable]:
    return [
        ExportTable(table.name, table.columns, table.data_path, table.filter, table.schema_name)
        for table in tables
    ]


def render_export_script(tables: list[TableDescriptor]) -> str:
    """Render a psql script that re-creates the artifact's data files.

    All tables are read inside one REPEATABLE READ, READ ONLY transaction,
    so the files form a consistent snapshot.
    """
    lines = [
        "-- Export script generated by db-snapshot.",
        "-- Run from an empty directory containing data/: psql \"$DATABASE_URL\" -f export.sql",
        "",
        "\\set ON_ERROR_STOP on",
        "",
        "BEGIN ISOLATION LEVEL REPEATABLE READ, READ ONLY;",
        "",
    ]
    lines.extend(statement.to_psql() for statement in export_statements(tables))
    lines.extend(["", "COMMIT;", ""])
    return "\n".join(lines)


def render_readme(manifest: ArtifactManifest) -> str:
    """Render the README shipped inside an artifact."""
    created = manifest.created_at
    if isinstance(created, datetime):
        created = created.isoformat()

    table_lines = [
        f"- `{t.name}` ({manifest.row_counts.get(t.name, 0)} rows): "
        f"{', '.join(t.columns)}"
        for t in manifest.tables
    ]
    return "\n".join([
        "# Database snapshot",
        "",
        f"Created {created} from `{manifest.source or 'unknown'}` "
        f"(schema `{manifest.schema_name}`).",
        "",
        "Private columns are not included. Temporary defaults are installed",
        "for them while loading and removed before the restore commits.",
        "",
        "## Restoring",
        "",
        "The target database must already have the same schema. From this",
        "directory, either run:",
        "",
        "    db-snapshot restore . --profile <target>",
        "",
        "or, with psql only:",
        "",
        "    psql \"$DATABASE_URL\" -f import.sql",
        "",
        "Either way the restore is a single transaction: it fully succeeds or",
        "leaves the target unchanged.",
        "",
        "## Tables",
        "",
        *table_lines,
        "",
    ])
