"""Configuration management: profiles, table rules, and TOML loading.

Usage:
    >>> from db_snapshot.config import load_snapshot_config, SnapshotConfig, TableConfig
"""

from db_snapshot.config.loader import load_snapshot_config
from db_snapshot.config.models import DatabaseProfile, SnapshotConfig, TableConfig

__all__ = ["load_snapshot_config", "DatabaseProfile", "SnapshotConfig", "TableConfig"]
