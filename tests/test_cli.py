"""Tests for the db-snapshot CLI (argument parsing and command handlers)."""

import argparse
import asyncio
import inspect
from unittest.mock import AsyncMock, patch

import pytest

from db_snapshot import cli
from db_snapshot.errors import ConfigurationError
from db_snapshot.pipeline import ExportResult
from db_snapshot.restore.executor import RestoreResult
from db_snapshot.restore.verify import VerificationReport


CONFIG_TOML = """
[profiles.prod]
url = "postgresql://prod/app"
description = "Production"

[profiles.local]
url = "postgresql://localhost/app"
"""


def _args(**kwargs) -> argparse.Namespace:
    defaults = {
        "config": None,
        "profile": None,
        "env_prefix": "",
        "verbose": False,
    }
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "snapshot.toml"
    path.write_text(CONFIG_TOML)
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("DB_PROFILE", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)


# ============================================================
# Test: command structure
# ============================================================


class TestCommandStructure:

    @pytest.mark.parametrize("name", ["cmd_check", "cmd_export", "cmd_restore"])
    def test_database_commands_wrap_async(self, name):
        source = inspect.getsource(getattr(cli, name))
        assert "asyncio.run(" in source

    @pytest.mark.parametrize("name", ["_async_check", "_async_export", "_async_restore"])
    def test_async_implementations(self, name):
        assert asyncio.iscoroutinefunction(getattr(cli, name))

    def test_global_options_reach_command(self):
        argv = ["db-snapshot", "--env-prefix", "APP_", "--profile", "prod", "profiles"]
        with patch("sys.argv", argv), patch("db_snapshot.cli.cmd_profiles", return_value=0) as mock_cmd:
            assert cli.main() == 0

        args = mock_cmd.call_args[0][0]
        assert args.env_prefix == "APP_"
        assert args.profile == "prod"

    def test_restore_flags(self):
        argv = ["db-snapshot", "restore", "snap.tar.gz", "--yes", "--dry-run", "--skip-schema-check"]
        with patch("sys.argv", argv), patch("db_snapshot.cli.cmd_restore", return_value=0) as mock_cmd:
            cli.main()

        args = mock_cmd.call_args[0][0]
        assert args.artifact == "snap.tar.gz"
        assert args.yes and args.dry_run and args.skip_schema_check

    def test_export_defaults(self):
        with patch("sys.argv", ["db-snapshot", "export", "out"]), patch(
            "db_snapshot.cli.cmd_export", return_value=0
        ) as mock_cmd:
            cli.main()

        args = mock_cmd.call_args[0][0]
        assert args.output == "out"
        assert args.jobs == 1
        assert args.archive is False

    def test_command_required(self):
        with patch("sys.argv", ["db-snapshot"]):
            with pytest.raises(SystemExit):
                cli.main()

    def test_snapshot_error_exit_code(self):
        with patch("sys.argv", ["db-snapshot", "check"]), patch(
            "db_snapshot.cli.cmd_check", side_effect=ConfigurationError("bad rules")
        ):
            assert cli.main() == 1


# ============================================================
# Test: local commands
# ============================================================


class TestLocalCommands:

    def test_profiles(self, config_file, capsys):
        assert cli.cmd_profiles(_args(config=str(config_file), profile="prod")) == 0
        output = capsys.readouterr().out
        assert "prod" in output
        assert "local" in output
        assert "Production" in output

    def test_profiles_missing_config(self, tmp_path):
        assert cli.cmd_profiles(_args(config=str(tmp_path / "none.toml"))) == 1

    def test_validate_valid(self, artifact_dir):
        assert cli.cmd_validate(_args(artifact=str(artifact_dir))) == 0

    def test_validate_invalid(self, artifact_dir):
        (artifact_dir / "data" / "users.csv").unlink()
        assert cli.cmd_validate(_args(artifact=str(artifact_dir))) == 1

    def test_plan_prints_restore_script(self, artifact_dir, capsys):
        assert cli.cmd_plan(_args(artifact=str(artifact_dir))) == 0
        output = capsys.readouterr().out
        assert "BEGIN;" in output
        assert 'TRUNCATE "public"."users" RESTART IDENTITY CASCADE;' in output


# ============================================================
# Test: database commands (pipeline mocked)
# ============================================================


class TestDatabaseCommands:

    def test_export(self, config_file, tmp_path):
        result = ExportResult(
            artifact_path=str(tmp_path / "out"), tables=["users"], row_counts={"users": 3}
        )
        with patch("db_snapshot.cli.run_export", AsyncMock(return_value=result)) as mock_run:
            code = cli.cmd_export(
                _args(
                    config=str(config_file), profile="prod",
                    output=str(tmp_path / "out"), jobs=2, archive=False,
                )
            )

        assert code == 0
        call = mock_run.await_args
        assert call.args[1] == "postgresql://prod/app"
        assert call.kwargs["jobs"] == 2
        assert call.kwargs["source"] == "prod"

    def test_restore_declined(self, config_file, artifact_dir):
        with patch("db_snapshot.cli.Confirm.ask", return_value=False), patch(
            "db_snapshot.cli.run_restore", AsyncMock()
        ) as mock_run:
            code = cli.cmd_restore(
                _args(
                    config=str(config_file), profile="local", artifact=str(artifact_dir),
                    yes=False, dry_run=False, skip_schema_check=False,
                )
            )

        assert code == 1
        mock_run.assert_not_awaited()

    def test_restore_with_yes(self, config_file, artifact_dir):
        result = RestoreResult(
            committed=True, rows_loaded={"users": 2}, verification=VerificationReport()
        )
        with patch("db_snapshot.cli.Confirm.ask") as mock_ask, patch(
            "db_snapshot.cli.run_restore", AsyncMock(return_value=result)
        ) as mock_run:
            code = cli.cmd_restore(
                _args(
                    config=str(config_file), profile="local", artifact=str(artifact_dir),
                    yes=True, dry_run=False, skip_schema_check=True,
                )
            )

        assert code == 0
        mock_ask.assert_not_called()
        call = mock_run.await_args
        assert call.args[0] == "postgresql://localhost/app"
        assert call.kwargs["schema_check"] is False
        assert call.kwargs["dry_run"] is False

    def test_restore_verification_failure(self, config_file, artifact_dir):
        report = VerificationReport(valid=False, leftover_defaults=["users.token has default ''"])
        result = RestoreResult(committed=True, verification=report)
        with patch("db_snapshot.cli.run_restore", AsyncMock(return_value=result)):
            code = cli.cmd_restore(
                _args(
                    config=str(config_file), profile="local", artifact=str(artifact_dir),
                    yes=True, dry_run=False, skip_schema_check=False,
                )
            )
        assert code == 1

    def test_restore_with_database_url_and_no_config(self, tmp_path, artifact_dir, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABASE_URL", "postgresql://ci/app")
        result = RestoreResult(committed=False)
        with patch("db_snapshot.cli.run_restore", AsyncMock(return_value=result)) as mock_run:
            code = cli.cmd_restore(
                _args(artifact=str(artifact_dir), yes=False, dry_run=True, skip_schema_check=False)
            )

        assert code == 0
        assert mock_run.await_args.args[0] == "postgresql://ci/app"
