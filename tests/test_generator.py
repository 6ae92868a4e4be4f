"""Tests for restore/export script generation and artifact file checks."""

import pytest

from db_snapshot.artifact.models import ArtifactManifest
from db_snapshot.errors import MissingArtifactError, SchemaMismatchError
from db_snapshot.planner import Phase, plan_restore
from db_snapshot.script.generator import (
    check_artifact_files,
    export_statements,
    generate_restore_script,
    read_csv_header,
    render_export_script,
    render_psql,
    render_readme,
)
from db_snapshot.script.statements import DisableTrigger, LoadTable


# ============================================================
# Test: artifact file checks
# ============================================================


class TestCheckArtifactFiles:

    def test_matching_files_pass(self, artifact_dir, sample_tables):
        check_artifact_files(sample_tables, artifact_dir)

    def test_missing_file(self, artifact_dir, sample_tables):
        (artifact_dir / "data" / "crates.csv").unlink()
        with pytest.raises(MissingArtifactError, match="crates"):
            check_artifact_files(sample_tables, artifact_dir)

    def test_empty_file(self, artifact_dir, sample_tables):
        (artifact_dir / "data" / "crates.csv").write_text("")
        with pytest.raises(SchemaMismatchError, match="empty"):
            check_artifact_files(sample_tables, artifact_dir)

    def test_column_count_mismatch(self, artifact_dir, sample_tables):
        (artifact_dir / "data" / "crates.csv").write_text("id,name\n1,serde\n")
        with pytest.raises(SchemaMismatchError, match="2 columns"):
            check_artifact_files(sample_tables, artifact_dir)

    def test_reordered_header_is_rejected(self, artifact_dir, sample_tables):
        (artifact_dir / "data" / "crates.csv").write_text("name,id,created_by\nserde,10,1\n")
        with pytest.raises(SchemaMismatchError, match="column order"):
            check_artifact_files(sample_tables, artifact_dir)

    def test_read_csv_header(self, artifact_dir):
        assert read_csv_header(artifact_dir / "data" / "users.csv") == ["id", "gh_login", "name"]


# ============================================================
# Test: restore script
# ============================================================


class TestGenerateRestoreScript:

    def test_phases_copied_from_plan(self, artifact_dir, sample_tables):
        plan = plan_restore(sample_tables)
        script = generate_restore_script(plan, artifact_dir)

        assert [p.phase for p in script.phases] == [p.phase for p in plan.phases]
        assert [(p.value, s.to_sql()) for p, s in script.statements()] == plan.trace()

    def test_does_not_mutate_plan(self, artifact_dir, sample_tables):
        plan = plan_restore(sample_tables)
        before = plan.trace()
        generate_restore_script(plan, artifact_dir, keep_disabled={"crates": ["legacy"]})
        assert plan.trace() == before

    def test_keep_disabled_appended_to_last_phase(self, artifact_dir, sample_tables):
        plan = plan_restore(sample_tables)
        script = generate_restore_script(
            plan,
            artifact_dir,
            keep_disabled={"crates": ["b_trigger", "a_trigger"], "not_restored": ["x"]},
        )

        final = script.phases[-1]
        assert final.phase == Phase.ENABLE_TRIGGERS
        assert final.statements[-2:] == [
            DisableTrigger("crates", "a_trigger"),
            DisableTrigger("crates", "b_trigger"),
        ]

    def test_keep_disabled_uses_table_schema(self, artifact_dir, sample_tables):
        tables = [t.model_copy(update={"schema_name": "app"}) for t in sample_tables]
        script = generate_restore_script(
            plan_restore(tables), artifact_dir, keep_disabled={"crates": ["legacy"]}
        )
        assert script.phases[-1].statements[-1].to_sql() == (
            'ALTER TABLE "app"."crates" DISABLE TRIGGER "legacy"'
        )

    def test_data_file_resolves_against_root(self, artifact_dir, sample_tables):
        script = generate_restore_script(plan_restore(sample_tables), artifact_dir)
        load = script.phases[4].statements[0]
        assert isinstance(load, LoadTable)
        assert script.data_file(load) == artifact_dir / "data" / "users.csv"

    def test_checks_files_first(self, tmp_path, sample_tables):
        with pytest.raises(MissingArtifactError):
            generate_restore_script(plan_restore(sample_tables), tmp_path)


class TestRenderPsql:

    def test_single_transaction_with_stop_on_error(self, artifact_dir, sample_tables):
        sql = render_psql(generate_restore_script(plan_restore(sample_tables), artifact_dir))
        lines = sql.splitlines()

        assert "\\set ON_ERROR_STOP on" in lines
        assert lines.count("BEGIN;") == 1
        assert lines.count("COMMIT;") == 1
        assert lines.index("BEGIN;") < lines.index("COMMIT;")

    def test_statements_in_plan_order(self, artifact_dir, sample_tables):
        sql = render_psql(generate_restore_script(plan_restore(sample_tables), artifact_dir))

        truncate = sql.index('TRUNCATE "public"."users"')
        enable_active = sql.index('ENABLE TRIGGER "trigger_crates_tsvector_update"')
        load = sql.index("\\copy \"public\".\"users\"")
        drop_default = sql.index("DROP DEFAULT")
        assert truncate < enable_active < load < drop_default

    def test_phase_comments(self, artifact_dir, sample_tables):
        sql = render_psql(generate_restore_script(plan_restore(sample_tables), artifact_dir))
        assert "-- Disable all triggers" in sql
        assert "-- Re-enable all triggers" in sql


class TestExportScript:

    def test_export_statements_follow_descriptors(self, sample_tables):
        statements = export_statements(sample_tables)
        assert [(s.table, s.columns, s.path) for s in statements] == [
            ("users", ("id", "gh_login", "name"), "data/users.csv"),
            ("crates", ("id", "name", "created_by"), "data/crates.csv"),
        ]

    def test_tables_qualified_with_schema(self, sample_tables):
        tables = [t.model_copy(update={"schema_name": "app"}) for t in sample_tables]
        sql = render_export_script(tables)
        assert 'SELECT "id", "gh_login", "name" FROM "app"."users"' in sql
        assert 'FROM "app"."crates"' in sql
        assert '"public".' not in sql

    def test_private_columns_never_selected(self, sample_tables):
        sql = render_export_script(sample_tables)
        assert "gh_access_token" not in sql
        assert "textsearchable_index_col" not in sql

    def test_snapshot_transaction(self, sample_tables):
        sql = render_export_script(sample_tables)
        assert "BEGIN ISOLATION LEVEL REPEATABLE READ, READ ONLY;" in sql
        assert sql.rstrip().endswith("COMMIT;")


class TestRenderReadme:

    def test_lists_tables_and_row_counts(self, sample_tables):
        manifest = ArtifactManifest(
            source="prod", tables=sample_tables, row_counts={"users": 2, "crates": 1}
        )
        readme = render_readme(manifest)

        assert "`prod`" in readme
        assert "- `users` (2 rows): id, gh_login, name" in readme
        assert "- `crates` (1 rows): id, name, created_by" in readme
        assert "psql \"$DATABASE_URL\" -f import.sql" in readme
