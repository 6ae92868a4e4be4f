"""Pydantic models for snapshot configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class DatabaseProfile(BaseModel):
    """Database connection profile from snapshot.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class TableConfig(BaseModel):
    """Export rules for a single table.

    Every live column must be listed in ``columns`` as ``public`` (exported)
    or ``private`` (never written to the artifact).

    Example:
        >>> cfg = TableConfig(
        ...     columns={"id": "public", "search_vector": "private"},
        ...     column_defaults={"search_vector": "''"},
        ...     active_triggers=["trigger_crates_tsvector_update"],
        ... )
        >>> cfg.private_columns
        ['search_vector']
    """

    columns: dict[str, Literal["public", "private"]]
    column_defaults: dict[str, str] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    active_triggers: list[str] = Field(default_factory=list)
    filter: str | None = None  # optional WHERE clause applied at export

    @property
    def private_columns(self) -> list[str]:
        return [name for name, vis in self.columns.items() if vis == "private"]


class SnapshotConfig(BaseModel):
    """Complete configuration from snapshot.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    tables: dict[str, TableConfig] = Field(default_factory=dict)
    schema_name: str = "public"
