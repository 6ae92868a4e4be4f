"""Snapshot artifacts: manifest model, file layout, archives, validation.

Usage:
    from db_snapshot.artifact import ArtifactManifest, open_artifact, validate_artifact
"""

from db_snapshot.artifact.models import ArtifactManifest
from db_snapshot.artifact.store import (
    create_archive,
    open_artifact,
    read_manifest,
    validate_artifact,
    write_artifact_files,
    write_manifest,
)

__all__ = [
    "ArtifactManifest",
    "create_archive",
    "open_artifact",
    "read_manifest",
    "validate_artifact",
    "write_artifact_files",
    "write_manifest",
]
