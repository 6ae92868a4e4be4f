"""Table descriptor registry.

Combines the live schema (from ``SchemaIntrospector``) with the declarative
table configuration into an ordered list of immutable ``TableDescriptor``
objects.  Descriptors are embedded in the artifact so that restore never
re-derives them from a schema that may have drifted since export.

Ordering is deterministic: tables are sorted parents-first by foreign key
and configured dependencies, ties broken by name; columns keep their
ordinal position.  Two exports of an unchanged database produce identical
descriptors.

Usage:
    from db_snapshot.registry import build_descriptors

    async with SchemaIntrospector(url) as introspector:
        schema = await introspector.introspect()
    tables = build_descriptors(config, schema)
"""

import logging

from pydantic import BaseModel, ConfigDict

from db_snapshot.config.models import SnapshotConfig
from db_snapshot.errors import ConfigurationError, SchemaIntrospectionError
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.models import DatabaseSchema, TableSchema

logger = logging.getLogger(__name__)

DATA_DIR = "data"


class ExcludedColumn(BaseModel):
    """A private column: present in the schema, never exported."""

    model_config = ConfigDict(frozen=True)

    name: str
    nullable: bool = True
    schema_default: str | None = None  # default installed in the source schema


class TableDescriptor(BaseModel):
    """Export/restore metadata for one table.

    ``columns`` is the exact header order of the table's CSV file.
    ``schema_name`` qualifies the table in every generated statement.

    Example:
        >>> t = TableDescriptor(
        ...     name="crates",
        ...     columns=("id", "name"),
        ...     excluded=(ExcludedColumn(name="search_vector", nullable=False),),
        ...     column_defaults={"search_vector": "''"},
        ... )
        >>> t.all_columns
        ('id', 'name', 'search_vector')
        >>> t.data_path
        'data/crates.csv'
    """

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[str, ...]
    schema_name: str = "public"
    column_defaults: dict[str, str] = {}
    excluded: tuple[ExcludedColumn, ...] = ()
    active_triggers: tuple[str, ...] = ()
    triggers: tuple[str, ...] | None = None  # None when the trigger list is unknown
    dependencies: tuple[str, ...] = ()
    sequence_columns: tuple[str, ...] = ()
    filter: str | None = None

    @property
    def excluded_names(self) -> tuple[str, ...]:
        return tuple(col.name for col in self.excluded)

    @property
    def all_columns(self) -> tuple[str, ...]:
        return self.columns + self.excluded_names

    @property
    def data_path(self) -> str:
        """Artifact-relative path of this table's CSV file."""
        return f"{DATA_DIR}/{self.name}.csv"


def _topological_sort(dependencies: dict[str, set[str]], tables: list[str]) -> list[str]:
    """Topological sort of tables based on dependencies.

    Returns tables in forward order: parent tables first, child tables last.
    Tables and their dependencies are visited in name order so the result
    is stable across runs.  Cycles are broken at the first revisited table.
    """
    relevant = {t: dependencies.get(t, set()) & set(tables) for t in tables}

    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()  # For cycle detection

    def visit(table: str) -> None:
        if table in visited:
            return
        if table in visiting:
            # Cycle detected -- break it by just adding the table
            return
        visiting.add(table)
        for dep in sorted(relevant.get(table, set())):
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in sorted(tables):
        visit(table)

    return sorted_tables


def _describe_table(name: str, config: SnapshotConfig, table: TableSchema) -> TableDescriptor:
    table_config = config.tables[name]

    # Configured columns that no longer exist
    vanished = [c for c in table_config.columns if c not in table.columns]
    if vanished:
        raise SchemaIntrospectionError(
            f"Configured column(s) missing from table '{name}': {', '.join(vanished)}"
        )

    # Live columns without a visibility rule
    undeclared = [c for c in table.columns if c not in table_config.columns]
    if undeclared:
        raise ConfigurationError(
            f"Table '{name}' has column(s) with no public/private rule: "
            f"{', '.join(undeclared)}"
        )

    private = set(table_config.private_columns)
    for column in table_config.column_defaults:
        if column not in private:
            raise ConfigurationError(
                f"column_defaults entry '{name}.{column}' is not a private column"
            )

    public_columns: list[str] = []
    excluded: list[ExcludedColumn] = []
    sequence_columns: list[str] = []
    for col in table.columns.values():
        if col.name in private:
            excluded.append(
                ExcludedColumn(
                    name=col.name,
                    nullable=col.is_nullable,
                    schema_default=col.default,
                )
            )
            continue
        public_columns.append(col.name)
        if col.is_sequence:
            sequence_columns.append(col.name)

    return TableDescriptor(
        name=name,
        columns=tuple(public_columns),
        schema_name=config.schema_name,
        column_defaults=dict(table_config.column_defaults),
        excluded=tuple(excluded),
        active_triggers=tuple(table_config.active_triggers),
        triggers=tuple(table.triggers),
        sequence_columns=tuple(sequence_columns),
        filter=table_config.filter,
    )


def build_descriptors(config: SnapshotConfig, schema: DatabaseSchema) -> list[TableDescriptor]:
    """Build ordered table descriptors from configuration and live schema.

    Args:
        config: Table rules from snapshot.toml.
        schema: Introspected schema of the source database.

    Returns:
        Descriptors in parents-first order.

    Raises:
        SchemaIntrospectionError: If a configured table or column does not
            exist in *schema*.
        ConfigurationError: If a live column has no visibility rule, or a
            default is registered for a public column.
    """
    missing = sorted(set(config.tables) - set(schema.tables))
    if missing:
        raise SchemaIntrospectionError(
            f"Configured table(s) not found in database: {', '.join(missing)}"
        )

    unconfigured = sorted(set(schema.tables) - set(config.tables))
    if unconfigured:
        logger.warning(f"Tables not in snapshot configuration (skipped): {', '.join(unconfigured)}")

    names = sorted(config.tables)
    dependencies: dict[str, set[str]] = {}
    for name in names:
        deps = set(config.tables[name].dependencies) | set(schema.tables[name].references)
        deps.discard(name)  # self-references don't constrain order
        dependencies[name] = deps & set(names)

    descriptors = []
    for name in _topological_sort(dependencies, names):
        descriptor = _describe_table(name, config, schema.tables[name])
        descriptors.append(
            descriptor.model_copy(update={"dependencies": tuple(sorted(dependencies[name]))})
        )
    return descriptors


async def introspect_descriptors(
    introspector: SchemaIntrospector,
    config: SnapshotConfig,
) -> list[TableDescriptor]:
    """Introspect the connected database and build descriptors from it."""
    schema = await introspector.introspect(config.schema_name)
    return build_descriptors(config, schema)
