"""Tests for post-restore verification."""

from unittest.mock import AsyncMock, MagicMock

from db_snapshot.planner import plan_restore
from db_snapshot.registry import ExcludedColumn, TableDescriptor
from db_snapshot.restore.verify import (
    disabled_triggers,
    fetch_column_defaults,
    fetch_trigger_states,
    verify_restore,
)


def _connection_with_results(*results: list[tuple]) -> tuple[MagicMock, AsyncMock]:
    mock_cursor = AsyncMock()
    mock_cursor.fetchall.side_effect = list(results)

    mock_conn = MagicMock()
    mock_ctx = MagicMock()
    mock_ctx.__aenter__ = AsyncMock(return_value=mock_cursor)
    mock_ctx.__aexit__ = AsyncMock(return_value=None)
    mock_conn.cursor.return_value = mock_ctx
    return mock_conn, mock_cursor


class TestFetchTriggerStates:

    async def test_groups_by_table(self):
        conn, cursor = _connection_with_results(
            [
                ("crates", "touch_crate_updated_at", "D"),
                ("crates", "trigger_crates_tsvector_update", "O"),
            ]
        )

        states = await fetch_trigger_states(conn, ["users", "crates"])

        assert states == {
            "users": {},
            "crates": {
                "touch_crate_updated_at": False,
                "trigger_crates_tsvector_update": True,
            },
        }
        assert cursor.execute.await_args[0][1] == ("public", ["users", "crates"])

    def test_disabled_triggers(self):
        states = {"users": {"a": True}, "crates": {"z": False, "b": False, "c": True}}
        assert disabled_triggers(states) == {"crates": ["b", "z"]}


class TestFetchColumnDefaults:

    async def test_keyed_by_table_and_column(self):
        conn, cursor = _connection_with_results(
            [("users", "gh_access_token", "''::character varying"), ("users", "email", None)]
        )

        defaults = await fetch_column_defaults(conn, ["users"], "app")

        assert defaults == {
            ("users", "gh_access_token"): "''::character varying",
            ("users", "email"): None,
        }
        assert cursor.execute.await_args[0][1] == ("app", ["users"])


class TestVerifyRestore:

    async def test_clean_restore(self, sample_tables):
        plan = plan_restore(sample_tables)
        before = {"users": {}, "crates": {"trigger_crates_tsvector_update": True}}
        conn, _ = _connection_with_results(
            [("users", "gh_access_token", None), ("crates", "textsearchable_index_col", None)],
            [("crates", "trigger_crates_tsvector_update", "O")],
        )

        report = await verify_restore(conn, plan, before)

        assert report.valid
        assert report.leftover_defaults == []
        assert report.trigger_mismatches == []

    async def test_leftover_temporary_default(self, sample_tables):
        plan = plan_restore(sample_tables)
        conn, _ = _connection_with_results(
            [("users", "gh_access_token", "''::character varying")],
            [],
        )

        report = await verify_restore(conn, plan, {})

        assert not report.valid
        assert report.leftover_defaults == [
            "users.gh_access_token has default \"''::character varying\""
        ]

    async def test_previous_default_expected_back(self):
        table = TableDescriptor(
            name="users",
            columns=("id",),
            column_defaults={"token": "''"},
            excluded=(ExcludedColumn(name="token", nullable=False, schema_default="'none'"),),
        )
        plan = plan_restore([table])
        conn, _ = _connection_with_results([("users", "token", "'none'")], [])

        report = await verify_restore(conn, plan, {})

        assert report.valid

    async def test_trigger_state_changed(self, sample_tables):
        plan = plan_restore(sample_tables)
        before = {"crates": {"touch_crate_updated_at": False}}
        conn, _ = _connection_with_results(
            [],
            [("crates", "touch_crate_updated_at", "O")],
        )

        report = await verify_restore(conn, plan, before)

        assert not report.valid
        assert report.trigger_mismatches == [
            "crates.touch_crate_updated_at: enabled before=False, after=True"
        ]
