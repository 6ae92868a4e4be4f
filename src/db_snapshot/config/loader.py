"""Snapshot configuration loading from TOML."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_snapshot.config.models import DatabaseProfile, SnapshotConfig, TableConfig
from db_snapshot.errors import ConfigurationError

DEFAULT_CONFIG_FILE = "snapshot.toml"


def load_snapshot_config(config_path: Path | None = None) -> SnapshotConfig:
    """Load snapshot configuration from a TOML file.

    Args:
        config_path: Path to snapshot.toml (default: ``./snapshot.toml``).

    Returns:
        SnapshotConfig with profiles and table rules.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ConfigurationError: If the file is not valid TOML or a section is
            malformed.

    Example:
        >>> config = load_snapshot_config(Path("snapshot.toml"))
        >>> sorted(config.tables)
        ['crates', 'users']
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Snapshot config not found: {config_path}\n"
            f"Copy snapshot.toml.example to snapshot.toml and configure your tables."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path.name}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = DatabaseProfile(**profile_data)

        # Parse table rules
        tables = {}
        for name, table_data in data.get("tables", {}).items():
            tables[name] = TableConfig(**table_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid section in {config_path.name}: {e}") from e

    snapshot_settings = data.get("snapshot", {})

    return SnapshotConfig(
        profiles=profiles,
        tables=tables,
        schema_name=snapshot_settings.get("schema", "public"),
    )
