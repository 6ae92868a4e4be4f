"""Typed SQL statements for export and restore scripts.

Each statement is a small frozen dataclass that knows how to render
itself.  Identifiers are always double-quoted and string literals always
single-quoted here, so callers never interpolate raw table or column names.
Table names are always schema-qualified, so neither script depends on the
session's ``search_path``.  Default expressions and row filters are SQL
fragments from the operator's configuration and are emitted verbatim.

Example:
    >>> TruncateTable("users").to_sql()
    'TRUNCATE "public"."users" RESTART IDENTITY CASCADE'
    >>> EnableTrigger("crates", "trigger_crates_tsvector_update", schema="app").to_psql()
    'ALTER TABLE "app"."crates" ENABLE TRIGGER "trigger_crates_tsvector_update";'
"""

from dataclasses import dataclass


def quote_ident(name: str) -> str:
    """Quote a SQL identifier, doubling embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote a SQL string literal, doubling embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


def qualified_name(schema: str, table: str) -> str:
    """``"schema"."table"``, each part quoted."""
    return f"{quote_ident(schema)}.{quote_ident(table)}"


def _column_list(columns: tuple[str, ...]) -> str:
    return ", ".join(quote_ident(c) for c in columns)


class Statement:
    """Base class for script statements."""

    def to_sql(self) -> str:
        raise NotImplementedError

    def to_psql(self) -> str:
        """Render as a line of a psql script."""
        return f"{self.to_sql()};"


@dataclass(frozen=True)
class DisableTriggers(Statement):
    table: str
    schema: str = "public"

    def to_sql(self) -> str:
        return f"ALTER TABLE {qualified_name(self.schema, self.table)} DISABLE TRIGGER ALL"


@dataclass(frozen=True)
class EnableTriggers(Statement):
    table: str
    schema: str = "public"

    def to_sql(self) -> str:
        return f"ALTER TABLE {qualified_name(self.schema, self.table)} ENABLE TRIGGER ALL"


@dataclass(frozen=True)
class EnableTrigger(Statement):
    table: str
    trigger: str
    schema: str = "public"

    def to_sql(self) -> str:
        return (
            f"ALTER TABLE {qualified_name(self.schema, self.table)} "
            f"ENABLE TRIGGER {quote_ident(self.trigger)}"
        )


@dataclass(frozen=True)
class DisableTrigger(Statement):
    table: str
    trigger: str
    schema: str = "public"

    def to_sql(self) -> str:
        return (
            f"ALTER TABLE {qualified_name(self.schema, self.table)} "
            f"DISABLE TRIGGER {quote_ident(self.trigger)}"
        )


@dataclass(frozen=True)
class SetColumnDefault(Statement):
    table: str
    column: str
    expression: str
    schema: str = "public"

    def to_sql(self) -> str:
        return (
            f"ALTER TABLE {qualified_name(self.schema, self.table)} "
            f"ALTER COLUMN {quote_ident(self.column)} SET DEFAULT {self.expression}"
        )


@dataclass(frozen=True)
class DropColumnDefault(Statement):
    table: str
    column: str
    schema: str = "public"

    def to_sql(self) -> str:
        return (
            f"ALTER TABLE {qualified_name(self.schema, self.table)} "
            f"ALTER COLUMN {quote_ident(self.column)} DROP DEFAULT"
        )


@dataclass(frozen=True)
class TruncateTable(Statement):
    table: str
    schema: str = "public"

    def to_sql(self) -> str:
        return f"TRUNCATE {qualified_name(self.schema, self.table)} RESTART IDENTITY CASCADE"


@dataclass(frozen=True)
class LoadTable(Statement):
    """Bulk-load a CSV file whose header matches ``columns`` exactly."""

    table: str
    columns: tuple[str, ...]
    path: str  # artifact-relative
    schema: str = "public"

    def to_sql(self) -> str:
        # Server-side form: the executor streams the file over STDIN
        return (
            f"COPY {qualified_name(self.schema, self.table)} ({_column_list(self.columns)}) "
            f"FROM STDIN WITH (FORMAT csv, HEADER)"
        )

    def to_psql(self) -> str:
        return (
            f"\\copy {qualified_name(self.schema, self.table)} ({_column_list(self.columns)}) "
            f"FROM {quote_literal(self.path)} WITH CSV HEADER"
        )


@dataclass(frozen=True)
class ResetSequence(Statement):
    """Move a column's sequence past the highest restored value."""

    table: str
    column: str
    schema: str = "public"

    def to_sql(self) -> str:
        table = qualified_name(self.schema, self.table)
        column = quote_ident(self.column)
        # pg_get_serial_sequence parses its first argument as a (qualified)
        # identifier but takes the column name literally
        return (
            f"SELECT setval(pg_get_serial_sequence({quote_literal(table)}, "
            f"{quote_literal(self.column)}), COALESCE(MAX({column}), 0) + 1, false) "
            f"FROM {table}"
        )


@dataclass(frozen=True)
class ExportTable(Statement):
    """Bulk-export the public columns of a table as CSV with a header row."""

    table: str
    columns: tuple[str, ...]
    path: str  # artifact-relative
    filter: str | None = None
    schema: str = "public"

    def select_sql(self) -> str:
        sql = (
            f"SELECT {_column_list(self.columns)} "
            f"FROM {qualified_name(self.schema, self.table)}"
        )
        if self.filter:
            sql += f" WHERE {self.filter}"
        return sql

    def to_sql(self) -> str:
        return f"COPY ({self.select_sql()}) TO STDOUT WITH (FORMAT csv, HEADER)"

    def to_psql(self) -> str:
        return f"\\copy ({self.select_sql()}) TO {quote_literal(self.path)} WITH CSV HEADER"
