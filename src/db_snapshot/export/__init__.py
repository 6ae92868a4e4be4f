"""Snapshot export.

Usage:
    from db_snapshot.export import export_snapshot, export_table
"""

from db_snapshot.export.coordinator import export_snapshot, export_table

__all__ = ["export_snapshot", "export_table"]
