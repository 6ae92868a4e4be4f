"""Reading, writing, validating and archiving snapshot artifacts.

An artifact is a directory::

    manifest.json      descriptors + metadata
    import.sql         psql restore script
    export.sql         psql export script (reproduces data/)
    README.md
    data/<table>.csv   one file per table, header = declared columns

or the same directory packed as ``.tar.gz``.

Usage:
    from db_snapshot.artifact.store import open_artifact, read_manifest, validate_artifact

    report = validate_artifact("snapshots/2026-10-18.tar.gz")
    with open_artifact("snapshots/2026-10-18.tar.gz") as root:
        manifest = read_manifest(root)
"""

import csv
import json
import tarfile
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from db_snapshot.artifact.models import (
    EXPORT_SCRIPT_FILE,
    IMPORT_SCRIPT_FILE,
    MANIFEST_FILE,
    MANIFEST_VERSION,
    README_FILE,
    ArtifactManifest,
)
from db_snapshot.errors import ArtifactError, MissingArtifactError
from db_snapshot.script.generator import (
    RestoreScript,
    read_csv_header,
    render_export_script,
    render_psql,
    render_readme,
)


# ------------------------------------------------------------------
# Manifest
# ------------------------------------------------------------------


def write_manifest(root: Path, manifest: ArtifactManifest) -> Path:
    """Write ``manifest.json`` into *root* and return its path."""
    path = Path(root) / MANIFEST_FILE
    path.write_text(manifest.model_dump_json(indent=2))
    return path


def read_manifest(root: Path) -> ArtifactManifest:
    """Read and validate ``manifest.json`` from *root*.

    Raises:
        MissingArtifactError: If the manifest does not exist.
        ArtifactError: If it is not valid JSON, does not match the model,
            or has an unsupported version.
    """
    path = Path(root) / MANIFEST_FILE
    if not path.is_file():
        raise MissingArtifactError(f"Manifest not found: {path}")

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ArtifactError(f"Invalid JSON in {MANIFEST_FILE}: {e}") from e

    version = data.get("version") if isinstance(data, dict) else None
    if version != MANIFEST_VERSION:
        raise ArtifactError(
            f"Unsupported manifest version '{version}' (expected '{MANIFEST_VERSION}')"
        )

    try:
        return ArtifactManifest.model_validate(data)
    except ValidationError as e:
        raise ArtifactError(f"Invalid {MANIFEST_FILE}: {e}") from e


def write_artifact_files(root: Path, manifest: ArtifactManifest, script: RestoreScript) -> None:
    """Write the manifest, scripts and README next to the exported data."""
    root = Path(root)
    write_manifest(root, manifest)
    (root / IMPORT_SCRIPT_FILE).write_text(render_psql(script))
    (root / EXPORT_SCRIPT_FILE).write_text(render_export_script(manifest.tables))
    (root / README_FILE).write_text(render_readme(manifest))


# ------------------------------------------------------------------
# Archive handling
# ------------------------------------------------------------------


def create_archive(root: Path, archive_path: Path | None = None) -> Path:
    """Pack the artifact directory *root* as ``<root>.tar.gz``.

    The archive holds a single top-level directory named after *root*.
    """
    root = Path(root)
    if archive_path is None:
        archive_path = root.with_name(f"{root.name}.tar.gz")

    with tarfile.open(archive_path, "w:gz") as tar:
        tar.add(root, arcname=root.name)

    return archive_path


def _find_manifest_root(directory: Path) -> Path:
    if (directory / MANIFEST_FILE).is_file():
        return directory
    candidates = [p for p in directory.iterdir() if (p / MANIFEST_FILE).is_file()]
    if len(candidates) == 1:
        return candidates[0]
    raise MissingArtifactError(f"No {MANIFEST_FILE} found in archive")


@contextmanager
def open_artifact(path: str | Path) -> Iterator[Path]:
    """Yield the artifact directory for *path*.

    Directories are used as-is.  ``.tar.gz`` archives are extracted into a
    temporary directory that is removed on exit.

    Raises:
        MissingArtifactError: If *path* does not exist or the archive has
            no manifest.
        ArtifactError: If the archive cannot be read.
    """
    path = Path(path)
    if not path.exists():
        raise MissingArtifactError(f"Artifact not found: {path}")

    if path.is_dir():
        yield path
        return

    with tempfile.TemporaryDirectory(prefix="db-snapshot-") as tmp:
        try:
            with tarfile.open(path, "r:*") as tar:
                tar.extractall(tmp, filter="data")
        except tarfile.TarError as e:
            raise ArtifactError(f"Cannot read archive {path}: {e}") from e
        yield _find_manifest_root(Path(tmp))


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def count_csv_rows(path: Path) -> int:
    """Count data records (excluding the header) in a CSV file."""
    with open(path, newline="", encoding="utf-8") as f:
        return max(sum(1 for _ in csv.reader(f)) - 1, 0)


def validate_artifact(path: str | Path) -> dict:
    """Validate artifact structure and data files.

    Checks that the manifest is readable, every declared table has a data
    file whose header equals its declared columns, and that the record count
    matches the manifest (a count mismatch is a warning).

    This function is **sync** -- it only reads local files.

    Args:
        path: Artifact directory or ``.tar.gz`` archive.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]),
        and ``warnings`` (list[str]).

    Example:
        report = validate_artifact("snapshots/latest")
        if report["errors"]:
            raise ValueError("Artifact is invalid")
    """
    errors: list[str] = []
    warnings: list[str] = []

    try:
        with open_artifact(path) as root:
            manifest = read_manifest(root)

            for script_file in (IMPORT_SCRIPT_FILE, EXPORT_SCRIPT_FILE, README_FILE):
                if not (root / script_file).is_file():
                    warnings.append(f"Missing {script_file}")

            for table in manifest.tables:
                data_file = root / table.data_path
                if not data_file.is_file():
                    errors.append(f"Missing data file for '{table.name}': {table.data_path}")
                    continue

                header = read_csv_header(data_file)
                if header is None:
                    errors.append(f"{table.data_path} is empty")
                    continue
                if header != list(table.columns):
                    errors.append(
                        f"{table.data_path} header {header} does not match "
                        f"declared columns {list(table.columns)}"
                    )
                    continue

                expected_rows = manifest.row_counts.get(table.name)
                if expected_rows is None:
                    warnings.append(f"No row count recorded for '{table.name}'")
                else:
                    actual_rows = count_csv_rows(data_file)
                    if actual_rows != expected_rows:
                        warnings.append(
                            f"{table.data_path} has {actual_rows} rows, "
                            f"manifest records {expected_rows}"
                        )
    except ArtifactError as e:
        errors.append(str(e))

    return {"valid": len(errors) == 0, "errors": errors, "warnings": warnings}
