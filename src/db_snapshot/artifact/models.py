"""Artifact manifest model.

The manifest embeds the table descriptors captured at export time, so a
restore plans against exactly the columns that were exported.

Usage:
    from db_snapshot.artifact.models import ArtifactManifest

    manifest = ArtifactManifest(source="prod", tables=tables, row_counts=counts)
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator

from db_snapshot.registry import TableDescriptor

MANIFEST_VERSION = "1.0"
MANIFEST_FILE = "manifest.json"
IMPORT_SCRIPT_FILE = "import.sql"
EXPORT_SCRIPT_FILE = "export.sql"
README_FILE = "README.md"


class ArtifactManifest(BaseModel):
    """Contents of ``manifest.json``."""

    version: str = MANIFEST_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = ""                                # profile name or "env"
    schema_name: str = "public"
    tables: list[TableDescriptor] = Field(default_factory=list)  # load order
    row_counts: dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _qualify_tables(self) -> "ArtifactManifest":
        # The manifest's schema is the one every table is restored into
        self.tables = [
            t if t.schema_name == self.schema_name
            else t.model_copy(update={"schema_name": self.schema_name})
            for t in self.tables
        ]
        return self
