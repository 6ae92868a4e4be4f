"""PostgreSQL schema introspection via information_schema and pg_catalog.

This module queries the live database to extract the schema information
the snapshot pipeline depends on:
- Tables, columns (ordinal order), data types, nullability, defaults
- Identity / serial columns
- User-defined triggers and whether they are currently enabled
- Foreign key references between tables

Uses psycopg (v3) async connections.
"""

from psycopg import AsyncConnection

from db_snapshot.schema.models import (
    ColumnSchema,
    DatabaseSchema,
    TableSchema,
    TriggerSchema,
)


class SchemaIntrospector:
    """Introspects PostgreSQL database schema.

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            # Get full schema (tables, columns, triggers, references)
            schema = await introspector.introspect()

            # Or just get column names for validation
            columns = await introspector.get_column_names()
    """

    # Tables to exclude from introspection (system tables)
    DEFAULT_EXCLUDED_TABLES = frozenset({
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    })

    def __init__(
        self,
        database_url: str,
        excluded_tables: set[str] | None = None,
    ):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL
            excluded_tables: Table names to skip (default: system tables)
        """
        self._database_url = database_url
        self._excluded_tables = (
            frozenset(excluded_tables)
            if excluded_tables is not None
            else self.DEFAULT_EXCLUDED_TABLES
        )
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Async context manager entry - opens connection."""
        # Append connect_timeout if not already in URL
        url = self._database_url
        if "connect_timeout" not in url:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}connect_timeout=10"

        self._conn = await AsyncConnection.connect(url, autocommit=True)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` to verify the connection is alive."""
        self._require_connection()
        async with self._conn.cursor() as cur:
            await cur.execute("SELECT 1")
            row = await cur.fetchone()
            return row is not None and row[0] == 1

    async def introspect(self, schema_name: str = "public") -> DatabaseSchema:
        """Introspect the database schema.

        Args:
            schema_name: PostgreSQL schema to introspect (default: public)

        Returns:
            DatabaseSchema with all tables, columns, triggers and references.
        """
        self._require_connection()

        db_schema = DatabaseSchema()

        for table_name in await self._get_tables(schema_name):
            if table_name in self._excluded_tables:
                continue

            db_schema.tables[table_name] = TableSchema(
                name=table_name,
                columns=await self._get_columns(schema_name, table_name),
                triggers=await self._get_triggers(schema_name, table_name),
                references=await self._get_references(schema_name, table_name),
            )

        return db_schema

    async def get_column_names(self, schema_name: str = "public") -> dict[str, set[str]]:
        """Get column names for all tables (simplified for comparator).

        Args:
            schema_name: PostgreSQL schema to query (default: public)

        Returns:
            Dict mapping table name to set of column names
        """
        self._require_connection()

        query = """
            SELECT table_name, column_name
            FROM information_schema.columns
            WHERE table_schema = %s
        """
        result: dict[str, set[str]] = {}
        async with self._conn.cursor() as cur:
            await cur.execute(query, (schema_name,))
            for table_name, column_name in await cur.fetchall():
                if table_name in self._excluded_tables:
                    continue
                result.setdefault(table_name, set()).add(column_name)

        return result

    def _require_connection(self) -> None:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")

    async def _get_tables(self, schema_name: str) -> list[str]:
        """Get all table names in schema."""
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        async with self._conn.cursor() as cur:
            await cur.execute(query, (schema_name,))
            return [row[0] for row in await cur.fetchall()]

    async def _get_columns(self, schema_name: str, table_name: str) -> dict[str, ColumnSchema]:
        """Get columns for a table in ordinal order."""
        query = """
            SELECT
                column_name,
                data_type,
                is_nullable,
                column_default,
                is_identity
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
        """
        async with self._conn.cursor() as cur:
            await cur.execute(query, (schema_name, table_name))
            columns = {}
            for row in await cur.fetchall():
                col_name, data_type, is_nullable, default, is_identity = row
                columns[col_name] = ColumnSchema(
                    name=col_name,
                    data_type=self._normalize_data_type(data_type),
                    is_nullable=(is_nullable == "YES"),
                    default=default,
                    is_identity=(is_identity == "YES"),
                )
            return columns

    def _normalize_data_type(self, data_type: str) -> str:
        """Normalize PostgreSQL data type names.

        Maps verbose information_schema types to standard names.
        """
        type_map = {
            "character varying": "varchar",
            "character": "char",
            "timestamp with time zone": "timestamptz",
            "timestamp without time zone": "timestamp",
            "integer": "int",
            "boolean": "bool",
        }
        return type_map.get(data_type.lower(), data_type.lower())

    async def _get_triggers(self, schema_name: str, table_name: str) -> dict[str, TriggerSchema]:
        """Get user-defined triggers for a table.

        information_schema.triggers has no enabled flag, so this reads
        pg_trigger directly.  ``tgenabled = 'D'`` means disabled; internal
        (FK constraint) triggers are skipped.
        """
        query = """
            SELECT t.tgname, t.tgenabled
            FROM pg_trigger t
            JOIN pg_class c ON c.oid = t.tgrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s
              AND c.relname = %s
              AND NOT t.tgisinternal
            ORDER BY t.tgname
        """
        async with self._conn.cursor() as cur:
            await cur.execute(query, (schema_name, table_name))
            triggers = {}
            for name, enabled in await cur.fetchall():
                triggers[name] = TriggerSchema(name=name, enabled=(enabled != "D"))
            return triggers

    async def _get_references(self, schema_name: str, table_name: str) -> list[str]:
        """Get the tables this table references via foreign keys."""
        query = """
            SELECT DISTINCT ref.relname
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_class ref ON ref.oid = con.confrelid
            WHERE con.contype = 'f'
              AND n.nspname = %s
              AND c.relname = %s
            ORDER BY ref.relname
        """
        async with self._conn.cursor() as cur:
            await cur.execute(query, (schema_name, table_name))
            return [row[0] for row in await cur.fetchall()]
