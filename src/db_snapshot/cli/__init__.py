"""CLI module for database snapshot export and restore.

Provides commands for profile listing, configuration checks, snapshot
export, restore, artifact validation and restore script preview.

Usage:
    DB_PROFILE=prod db-snapshot check
    db-snapshot profiles
    db-snapshot --profile prod export snapshots/2026-10-18 --jobs 4 --archive
    db-snapshot validate snapshots/2026-10-18.tar.gz
    db-snapshot plan snapshots/2026-10-18.tar.gz
    db-snapshot --profile staging restore snapshots/2026-10-18.tar.gz --dry-run
    db-snapshot --profile staging restore snapshots/2026-10-18.tar.gz --yes

Commands:
    profiles  - List available profiles
    check     - Check table rules against the live schema and plan a restore
    export    - Export a snapshot of the configured tables
    restore   - Restore a snapshot into the current profile's database
    validate  - Validate an artifact's files against its manifest
    plan      - Print the restore script for an artifact
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import psycopg
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from db_snapshot.artifact.store import open_artifact, read_manifest, validate_artifact
from db_snapshot.config.loader import load_snapshot_config
from db_snapshot.config.models import SnapshotConfig
from db_snapshot.errors import SnapshotError
from db_snapshot.factory import ProfileNotFoundError, resolve_database_url
from db_snapshot.pipeline import plan_from_database, run_export, run_restore
from db_snapshot.planner import Phase, plan_restore
from db_snapshot.script.generator import generate_restore_script, render_psql
from db_snapshot.script.statements import Statement

console = Console()


# ============================================================================
# Shared helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # psycopg logs connection internals at DEBUG
    logging.getLogger("psycopg").setLevel(logging.WARNING)


def _load_config(args: argparse.Namespace, required: bool = True) -> SnapshotConfig:
    """Load snapshot.toml from ``--config`` or the working directory.

    With ``required=False`` a missing default file yields an empty config,
    so commands that only need ``DATABASE_URL`` work without one.
    """
    config_path = Path(args.config) if args.config else None
    try:
        return load_snapshot_config(config_path)
    except FileNotFoundError:
        if required or config_path is not None:
            raise
        return SnapshotConfig()


def _resolve_url(args: argparse.Namespace, config: SnapshotConfig) -> tuple[str, str]:
    return resolve_database_url(
        config,
        profile_name=args.profile,
        env_prefix=getattr(args, "env_prefix", ""),
    )


def _print_trace_line(phase: Phase, statement: Statement) -> None:
    console.print(f"  [dim]{phase.value}[/dim] {statement.to_sql()}", highlight=False)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_check(args: argparse.Namespace) -> int:
    """Async implementation for check command.

    Args:
        args: Parsed arguments with config, profile and env_prefix.

    Returns:
        0 if the configuration can be planned, 1 otherwise.
    """
    config = _load_config(args)
    source, url = _resolve_url(args, config)

    console.print(f"Checking tables on: [bold cyan]{source}[/bold cyan]")

    tables, plan = await plan_from_database(config, url)

    console.print()
    table = Table(title="Snapshot Tables", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Table")
    table.add_column("Public", justify="right")
    table.add_column("Private")
    table.add_column("Active triggers")
    table.add_column("Depends on", style="dim")

    for i, descriptor in enumerate(tables, start=1):
        table.add_row(
            str(i),
            descriptor.name,
            str(len(descriptor.columns)),
            ", ".join(descriptor.excluded_names) or "-",
            ", ".join(descriptor.active_triggers) or "-",
            ", ".join(descriptor.dependencies) or "-",
        )

    console.print(table)
    console.print()
    console.print(
        f"[bold green]v[/bold green] Configuration is valid: "
        f"{len(plan.overrides)} temporary defaults, "
        f"{len(plan.trace())} restore statements"
    )
    return 0


async def _async_export(args: argparse.Namespace) -> int:
    """Async implementation for export command.

    Args:
        args: Parsed arguments with output, jobs, archive, config,
            profile and env_prefix.

    Returns:
        0 on success, 1 on failure.
    """
    config = _load_config(args)
    source, url = _resolve_url(args, config)

    console.print(f"Exporting from: [bold cyan]{source}[/bold cyan]")

    result = await run_export(
        config,
        url,
        Path(args.output),
        jobs=args.jobs,
        source=source,
        archive=args.archive,
    )

    console.print()
    table = Table(title="Exported Tables", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for name in result.tables:
        table.add_row(name, str(result.row_counts.get(name, 0)))
    console.print(table)

    console.print()
    console.print(f"[bold green]v[/bold green] Snapshot written to {result.artifact_path}")
    if result.archive_path:
        console.print(f"  Archive: {result.archive_path}")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command.

    Args:
        args: Parsed arguments with artifact, yes, dry_run,
            skip_schema_check, verbose, config, profile and env_prefix.

    Returns:
        0 on success, 1 on failure or verification differences.
    """
    config = _load_config(args, required=False)
    target, url = _resolve_url(args, config)

    if not args.dry_run and not args.yes:
        console.print(
            f"[bold yellow]Warning:[/bold yellow] every snapshot table on "
            f"[bold cyan]{target}[/bold cyan] will be truncated and reloaded."
        )
        if not Confirm.ask("Continue?", console=console, default=False):
            console.print("[dim]Aborted.[/dim]")
            return 1

    console.print(f"Restoring {args.artifact} into: [bold cyan]{target}[/bold cyan]")

    result = await run_restore(
        url,
        args.artifact,
        schema_check=not args.skip_schema_check,
        dry_run=args.dry_run,
        on_statement=_print_trace_line if args.verbose else None,
    )

    console.print()
    table = Table(title="Restored Tables", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for name, rows in result.rows_loaded.items():
        table.add_row(name, str(rows))
    console.print(table)

    if args.dry_run:
        console.print()
        console.print("[bold yellow]DRY RUN[/bold yellow] - Transaction rolled back, no changes made.")
        return 0

    console.print()
    console.print(
        f"[bold green]v[/bold green] Restore committed "
        f"({result.statements_executed} statements)"
    )

    report = result.verification
    if report is not None and not report.valid:
        console.print("[bold red]x[/bold red] Post-restore verification failed:")
        for line in report.leftover_defaults + report.trigger_mismatches:
            console.print(f"    - {line}")
        return 1

    return 0


# ============================================================================
# Sync command wrappers (profiles, validate, plan read local files only)
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from snapshot.toml.

    Reads only local TOML config -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if snapshot.toml not found.
    """
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = args.profile or os.environ.get(f"{args.env_prefix}DB_PROFILE")

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.description or "",
        )

    console.print(table)

    if current in config.profiles:
        console.print("\n[bold green]*[/bold green] = active profile")

    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Check table rules against the live schema.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_check(args))


def cmd_export(args: argparse.Namespace) -> int:
    """Export a snapshot.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_export(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore a snapshot.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_restore(args))


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate an artifact without connecting to a database.

    Args:
        args: Parsed CLI arguments with artifact.

    Returns:
        0 if valid (warnings allowed), 1 otherwise.
    """
    report = validate_artifact(args.artifact)

    for warning in report["warnings"]:
        console.print(f"  [yellow]![/yellow] {warning}")
    for error in report["errors"]:
        console.print(f"  [red]x[/red] {error}")

    if report["valid"]:
        console.print("[bold green]v[/bold green] Artifact is valid")
        return 0

    console.print(f"[bold red]x[/bold red] Artifact is invalid ({len(report['errors'])} errors)")
    return 1


def cmd_plan(args: argparse.Namespace) -> int:
    """Print the restore script for an artifact.

    Plans from the descriptors embedded in the artifact -- no database calls.

    Args:
        args: Parsed CLI arguments with artifact.

    Returns:
        0 on success.
    """
    with open_artifact(args.artifact) as root:
        manifest = read_manifest(root)
        script = generate_restore_script(plan_restore(manifest.tables), root)
        console.print(render_psql(script), highlight=False, markup=False, soft_wrap=True)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-snapshot",
        description="Consistent database snapshot export and restore",
    )

    # Global options
    parser.add_argument(
        "--config",
        help="Path to snapshot.toml (default: ./snapshot.toml)",
    )
    parser.add_argument(
        "--profile",
        "-p",
        help="Database profile to use (default: $DB_PROFILE)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Debug logging and statement trace",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # check command
    p_check = subparsers.add_parser(
        "check",
        help="Check table rules against the live schema and plan a restore",
    )
    p_check.set_defaults(func=cmd_check)

    # export command
    p_export = subparsers.add_parser(
        "export",
        help="Export a snapshot of the configured tables",
    )
    p_export.add_argument(
        "output",
        help="Artifact directory to create",
    )
    p_export.add_argument(
        "--jobs",
        "-j",
        type=int,
        default=1,
        help="Parallel export connections (default: 1)",
    )
    p_export.add_argument(
        "--archive",
        action="store_true",
        help="Also pack the artifact as <output>.tar.gz",
    )
    p_export.set_defaults(func=cmd_export)

    # restore command
    p_restore = subparsers.add_parser(
        "restore",
        help="Restore a snapshot into the current profile's database",
    )
    p_restore.add_argument(
        "artifact",
        help="Artifact directory or .tar.gz archive",
    )
    p_restore.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Do not ask for confirmation",
    )
    p_restore.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the restore and roll it back",
    )
    p_restore.add_argument(
        "--skip-schema-check",
        action="store_true",
        help="Do not compare the target schema with the snapshot first",
    )
    p_restore.set_defaults(func=cmd_restore)

    # validate command
    p_validate = subparsers.add_parser(
        "validate",
        help="Validate an artifact's files against its manifest",
    )
    p_validate.add_argument("artifact", help="Artifact directory or .tar.gz archive")
    p_validate.set_defaults(func=cmd_validate)

    # plan command
    p_plan = subparsers.add_parser(
        "plan",
        help="Print the restore script for an artifact",
    )
    p_plan.add_argument("artifact", help="Artifact directory or .tar.gz archive")
    p_plan.set_defaults(func=cmd_plan)

    args = parser.parse_args()
    _configure_logging(args.verbose)

    try:
        return args.func(args)
    except (SnapshotError, ProfileNotFoundError, FileNotFoundError) as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1
    except psycopg.Error as e:
        console.print(f"[bold red]x[/bold red] Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
