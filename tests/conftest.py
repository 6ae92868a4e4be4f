"""Shared fixtures: a two-table snapshot (users, crates) and its artifact."""

from pathlib import Path

import pytest

from db_snapshot.artifact.models import ArtifactManifest
from db_snapshot.artifact.store import write_artifact_files
from db_snapshot.planner import plan_restore
from db_snapshot.registry import ExcludedColumn, TableDescriptor
from db_snapshot.script.generator import generate_restore_script


USERS_CSV = 'id,gh_login,name\n1,alice,Alice\n2,bob,"Bob, Jr."\n'
CRATES_CSV = "id,name,created_by\n10,serde,1\n"


@pytest.fixture
def users_table() -> TableDescriptor:
    return TableDescriptor(
        name="users",
        columns=("id", "gh_login", "name"),
        column_defaults={"gh_access_token": "''"},
        excluded=(
            ExcludedColumn(name="gh_access_token", nullable=False),
            ExcludedColumn(name="email", nullable=True),
        ),
        triggers=(),
        sequence_columns=("id",),
    )


@pytest.fixture
def crates_table() -> TableDescriptor:
    return TableDescriptor(
        name="crates",
        columns=("id", "name", "created_by"),
        column_defaults={"textsearchable_index_col": "''"},
        excluded=(ExcludedColumn(name="textsearchable_index_col", nullable=False),),
        active_triggers=("trigger_crates_tsvector_update",),
        triggers=("touch_crate_updated_at", "trigger_crates_tsvector_update"),
        dependencies=("users",),
        sequence_columns=("id",),
    )


@pytest.fixture
def sample_tables(users_table, crates_table) -> list[TableDescriptor]:
    """Descriptors in load order (users before crates)."""
    return [users_table, crates_table]


@pytest.fixture
def artifact_dir(tmp_path, sample_tables) -> Path:
    """A complete artifact directory for ``sample_tables``."""
    root = tmp_path / "snapshot"
    (root / "data").mkdir(parents=True)
    (root / "data" / "users.csv").write_text(USERS_CSV)
    (root / "data" / "crates.csv").write_text(CRATES_CSV)

    manifest = ArtifactManifest(
        source="prod",
        tables=sample_tables,
        row_counts={"users": 2, "crates": 1},
    )
    script = generate_restore_script(plan_restore(sample_tables), root)
    write_artifact_files(root, manifest, script)
    return root
