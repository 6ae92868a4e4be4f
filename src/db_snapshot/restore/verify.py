"""Pre-restore snapshots of target state, and post-restore checks against them.

``fetch_trigger_states()`` and ``fetch_column_defaults()`` are called before
the restore to record which triggers are enabled and which defaults the
target's columns carry; ``verify_restore()`` compares the trigger record with
the state after commit and checks that every overridden column has its
pre-restore default again.
"""

from psycopg import AsyncConnection
from pydantic import BaseModel, Field

from db_snapshot.planner import RestorePlan


class VerificationReport(BaseModel):
    """Result of ``verify_restore()``."""

    valid: bool = True
    leftover_defaults: list[str] = Field(default_factory=list)
    trigger_mismatches: list[str] = Field(default_factory=list)


async def fetch_trigger_states(
    conn: AsyncConnection,
    tables: list[str],
    schema_name: str = "public",
) -> dict[str, dict[str, bool]]:
    """Return ``{table: {trigger: enabled}}`` for user-defined triggers."""
    query = """
        SELECT c.relname, t.tgname, t.tgenabled
        FROM pg_trigger t
        JOIN pg_class c ON c.oid = t.tgrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        WHERE n.nspname = %s
          AND c.relname = ANY(%s)
          AND NOT t.tgisinternal
        ORDER BY c.relname, t.tgname
    """
    states: dict[str, dict[str, bool]] = {table: {} for table in tables}
    async with conn.cursor() as cur:
        await cur.execute(query, (schema_name, list(tables)))
        for table, trigger, enabled in await cur.fetchall():
            states.setdefault(table, {})[trigger] = enabled != "D"
    return states


def disabled_triggers(states: dict[str, dict[str, bool]]) -> dict[str, list[str]]:
    """Tables mapped to the triggers that are disabled in *states*."""
    result = {}
    for table, triggers in states.items():
        disabled = sorted(name for name, enabled in triggers.items() if not enabled)
        if disabled:
            result[table] = disabled
    return result


async def fetch_column_defaults(
    conn: AsyncConnection,
    tables: list[str],
    schema_name: str = "public",
) -> dict[tuple[str, str], str | None]:
    """Return ``{(table, column): default}``; None for columns with no default."""
    query = """
        SELECT table_name, column_name, column_default
        FROM information_schema.columns
        WHERE table_schema = %s
          AND table_name = ANY(%s)
    """
    async with conn.cursor() as cur:
        await cur.execute(query, (schema_name, list(tables)))
        return {(table, column): default for table, column, default in await cur.fetchall()}


async def verify_restore(
    conn: AsyncConnection,
    plan: RestorePlan,
    triggers_before: dict[str, dict[str, bool]],
    schema_name: str = "public",
) -> VerificationReport:
    """Check the target after a committed restore.

    - Every overridden column carries its pre-restore default again
      (no default at all when it had none).
    - Every trigger has the enabled state recorded in *triggers_before*.
    """
    report = VerificationReport()
    table_names = [t.name for t in plan.tables]

    defaults = await fetch_column_defaults(conn, table_names, schema_name)
    for override in plan.overrides:
        current = defaults.get((override.table, override.column))
        if current != override.previous_default:
            report.leftover_defaults.append(
                f"{override.table}.{override.column} has default {current!r}"
            )

    triggers_after = await fetch_trigger_states(conn, table_names, schema_name)
    for table in table_names:
        before = triggers_before.get(table, {})
        after = triggers_after.get(table, {})
        for trigger in sorted(set(before) | set(after)):
            if before.get(trigger) != after.get(trigger):
                report.trigger_mismatches.append(
                    f"{table}.{trigger}: enabled before={before.get(trigger)}, "
                    f"after={after.get(trigger)}"
                )

    report.valid = not (report.leftover_defaults or report.trigger_mismatches)
    return report
