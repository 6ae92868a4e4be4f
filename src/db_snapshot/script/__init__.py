"""Restore/export script IR, generation and rendering.

``statements`` holds the typed SQL statements the planner emits;
``generator`` binds a plan to an artifact and renders psql scripts.  The
package does not re-export them: the planner imports ``statements`` and
``generator`` imports the planner.

Usage:
    from db_snapshot.script.statements import TruncateTable
    from db_snapshot.script.generator import generate_restore_script, render_psql
"""
