"""Restore planning: trigger suspension, default overrides, phase ordering.

Pure sync logic -- no I/O.  ``plan_restore()`` validates the descriptor set
and produces a ``RestorePlan`` whose phases are applied to *all* tables
before the next phase begins:

1. disable every trigger
2. install temporary defaults for excluded columns
3. truncate (cascading, restarting identities)
4. re-enable the triggers that must stay active during load
5. load every table's CSV file
6. move sequences past the restored keys
7. drop the temporary defaults (or put the schema's own default back)
8. re-enable every trigger

Configuration errors surface here, before the target database is touched.

Usage:
    from db_snapshot.planner import plan_restore

    plan = plan_restore(tables)
    for phase, sql in plan.trace():
        print(phase, sql)
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import Enum

from db_snapshot.errors import (
    CircularDefaultError,
    ConfigurationError,
    MissingDefaultError,
)
from db_snapshot.registry import TableDescriptor
from db_snapshot.script.statements import (
    DisableTriggers,
    DropColumnDefault,
    EnableTrigger,
    EnableTriggers,
    LoadTable,
    ResetSequence,
    SetColumnDefault,
    Statement,
    TruncateTable,
)


class Phase(str, Enum):
    """Restore phases in execution order."""

    DISABLE_TRIGGERS = "disable_triggers"
    INSTALL_DEFAULTS = "install_defaults"
    TRUNCATE = "truncate"
    ENABLE_ACTIVE_TRIGGERS = "enable_active_triggers"
    LOAD = "load"
    RESET_SEQUENCES = "reset_sequences"
    DROP_DEFAULTS = "drop_defaults"
    ENABLE_TRIGGERS = "enable_triggers"


PHASE_ORDER: tuple[Phase, ...] = tuple(Phase)


# ------------------------------------------------------------------
# Plan data classes
# ------------------------------------------------------------------


@dataclass(frozen=True)
class TriggerSuspension:
    """All triggers on ``table`` are off during truncate+load, except ``keep_active``."""

    table: str
    keep_active: tuple[str, ...] = ()
    schema: str = "public"


@dataclass(frozen=True)
class ColumnDefaultOverride:
    """A temporary default on an excluded column.

    Example:
        >>> o = ColumnDefaultOverride("crates", "search_vector", "''")
        >>> o.remove().to_sql()
        'ALTER TABLE "public"."crates" ALTER COLUMN "search_vector" DROP DEFAULT'
    """

    table: str
    column: str
    expression: str
    previous_default: str | None = None
    schema: str = "public"

    def install(self) -> Statement:
        return SetColumnDefault(self.table, self.column, self.expression, self.schema)

    def remove(self) -> Statement:
        """Undo ``install()``; a column that had a schema default gets it back."""
        if self.previous_default is not None:
            return SetColumnDefault(self.table, self.column, self.previous_default, self.schema)
        return DropColumnDefault(self.table, self.column, self.schema)


@dataclass
class PlannedPhase:
    phase: Phase
    statements: list[Statement] = field(default_factory=list)


@dataclass
class RestorePlan:
    """Validated, ordered restore plan.  Treated as read-only once built.

    Attributes:
        tables: Descriptors in load order (parents first).
        suspensions: One trigger suspension per table.
        overrides: Temporary defaults, in table then column order.
        phases: Every phase of ``PHASE_ORDER``, possibly with no statements.
    """

    tables: list[TableDescriptor]
    suspensions: list[TriggerSuspension] = field(default_factory=list)
    overrides: list[ColumnDefaultOverride] = field(default_factory=list)
    phases: list[PlannedPhase] = field(default_factory=list)

    def phase(self, phase: Phase) -> PlannedPhase:
        for planned in self.phases:
            if planned.phase == phase:
                return planned
        raise KeyError(phase)

    def statements(self) -> Iterator[tuple[Phase, Statement]]:
        for planned in self.phases:
            for statement in planned.statements:
                yield planned.phase, statement

    def trace(self) -> list[tuple[str, str]]:
        """Ordered ``(phase, sql)`` pairs -- the planned execution trace."""
        return [(phase.value, stmt.to_sql()) for phase, stmt in self.statements()]

    def with_previous_defaults(
        self, defaults: dict[tuple[str, str], str | None]
    ) -> "RestorePlan":
        """Copy of this plan that restores the given pre-restore defaults.

        A descriptor records the *source* database's defaults.  Before
        restoring, the target's own ``(table, column) -> default`` values are
        read and passed here, so removing a temporary default puts back what
        the target had (or drops it when the target had none).  Columns
        absent from *defaults* keep the recorded value.
        """
        overrides = [
            replace(o, previous_default=defaults.get((o.table, o.column), o.previous_default))
            for o in self.overrides
        ]
        phases = [
            PlannedPhase(p.phase, [o.remove() for o in overrides])
            if p.phase == Phase.DROP_DEFAULTS
            else PlannedPhase(p.phase, list(p.statements))
            for p in self.phases
        ]
        return RestorePlan(
            tables=list(self.tables),
            suspensions=list(self.suspensions),
            overrides=overrides,
            phases=phases,
        )


# ------------------------------------------------------------------
# Default expression analysis
# ------------------------------------------------------------------

_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")
_IDENTIFIER = re.compile(r'"((?:[^"]|"")+)"|([A-Za-z_][A-Za-z0-9_$]*)')


def _referenced_identifiers(expression: str) -> set[str]:
    """Identifiers an SQL expression mentions, ignoring string literals.

    Unquoted identifiers are folded to lower case, as PostgreSQL does.

    Example:
        >>> sorted(_referenced_identifiers("to_tsvector('english', \\"Name\\")"))
        ['Name', 'to_tsvector']
    """
    stripped = _STRING_LITERAL.sub("''", expression)
    names: set[str] = set()
    for match in _IDENTIFIER.finditer(stripped):
        quoted, bare = match.groups()
        if quoted is not None:
            names.add(quoted.replace('""', '"'))
        else:
            names.add(bare.lower())
    return names


def _plan_overrides(table: TableDescriptor) -> list[ColumnDefaultOverride]:
    excluded = {col.name: col for col in table.excluded}

    for column in table.column_defaults:
        if column not in excluded:
            raise ConfigurationError(
                f"Default registered for '{table.name}.{column}', which is not an excluded column"
            )

    overrides = []
    for col in table.excluded:
        expression = table.column_defaults.get(col.name)
        if expression is None:
            if not col.nullable:
                raise MissingDefaultError(table.name, col.name)
            continue

        referenced = _referenced_identifiers(expression) & set(excluded)
        if referenced:
            raise CircularDefaultError(table.name, col.name, sorted(referenced)[0])

        overrides.append(
            ColumnDefaultOverride(
                table=table.name,
                column=col.name,
                expression=expression,
                previous_default=col.schema_default,
                schema=table.schema_name,
            )
        )
    return overrides


def _plan_suspension(table: TableDescriptor) -> TriggerSuspension:
    if table.triggers is not None:
        unknown = [t for t in table.active_triggers if t not in table.triggers]
        if unknown:
            raise ConfigurationError(
                f"Active trigger(s) not defined on table '{table.name}': {', '.join(unknown)}"
            )
    return TriggerSuspension(
        table=table.name,
        keep_active=tuple(table.active_triggers),
        schema=table.schema_name,
    )


# ------------------------------------------------------------------
# Plan generation
# ------------------------------------------------------------------


def plan_restore(tables: list[TableDescriptor]) -> RestorePlan:
    """Plan the restore of *tables*.

    Args:
        tables: Descriptors in load order (as produced by
            ``build_descriptors`` or read from a manifest).

    Returns:
        ``RestorePlan`` with every phase populated.

    Raises:
        ConfigurationError: Duplicate tables, a default on a non-excluded
            column, or an active trigger the table does not have.
        MissingDefaultError: An excluded NOT NULL column has no default.
        CircularDefaultError: A default references an excluded column.
    """
    seen: set[str] = set()
    for table in tables:
        if table.name in seen:
            raise ConfigurationError(f"Table '{table.name}' appears more than once")
        seen.add(table.name)

    suspensions = [_plan_suspension(t) for t in tables]
    overrides = [o for t in tables for o in _plan_overrides(t)]

    phases = {phase: PlannedPhase(phase) for phase in PHASE_ORDER}

    for table in tables:
        phases[Phase.DISABLE_TRIGGERS].statements.append(
            DisableTriggers(table.name, table.schema_name)
        )

    for override in overrides:
        phases[Phase.INSTALL_DEFAULTS].statements.append(override.install())

    for table in tables:
        phases[Phase.TRUNCATE].statements.append(TruncateTable(table.name, table.schema_name))

    for suspension in suspensions:
        for trigger in suspension.keep_active:
            phases[Phase.ENABLE_ACTIVE_TRIGGERS].statements.append(
                EnableTrigger(suspension.table, trigger, suspension.schema)
            )

    for table in tables:
        phases[Phase.LOAD].statements.append(
            LoadTable(table.name, table.columns, table.data_path, table.schema_name)
        )
        for column in table.sequence_columns:
            phases[Phase.RESET_SEQUENCES].statements.append(
                ResetSequence(table.name, column, table.schema_name)
            )

    for override in overrides:
        phases[Phase.DROP_DEFAULTS].statements.append(override.remove())

    for table in tables:
        phases[Phase.ENABLE_TRIGGERS].statements.append(
            EnableTriggers(table.name, table.schema_name)
        )

    return RestorePlan(
        tables=list(tables),
        suspensions=suspensions,
        overrides=overrides,
        phases=[phases[p] for p in PHASE_ORDER],
    )
