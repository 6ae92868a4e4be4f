"""Export coordinator: per-table CSV export inside one database snapshot.

Every table is read inside a REPEATABLE READ, READ ONLY transaction, so
all files reflect the same point in time.  With ``jobs > 1`` the leader
connection publishes its snapshot with ``pg_export_snapshot()`` and worker
connections adopt it with ``SET TRANSACTION SNAPSHOT`` before draining a
shared queue of tables.  Export order does not affect correctness.

Private columns are never selected, so they never reach the artifact.

Usage:
    from db_snapshot.export.coordinator import export_snapshot

    counts = await export_snapshot(database_url, tables, artifact_root, jobs=4)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from psycopg import AsyncConnection, IsolationLevel

from db_snapshot.artifact.store import count_csv_rows
from db_snapshot.registry import TableDescriptor
from db_snapshot.script.generator import export_statements
from db_snapshot.script.statements import ExportTable, quote_literal

logger = logging.getLogger(__name__)

ConnectFn = Callable[[str], Awaitable[AsyncConnection]]
ExportFn = Callable[[AsyncConnection, ExportTable, Path], Awaitable[int]]


async def export_table(conn: AsyncConnection, statement: ExportTable, path: Path) -> int:
    """Stream ``COPY ... TO STDOUT`` for one table into *path*.

    Args:
        conn: Connection with an open snapshot transaction.
        statement: Export statement for the table.
        path: Destination CSV file (parent directories are created).

    Returns:
        Number of data rows written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    async with conn.cursor() as cur:
        with open(path, "wb") as f:
            async with cur.copy(statement.to_sql()) as copy:
                async for block in copy:
                    f.write(block)
        rows = cur.rowcount

    if rows is None or rows < 0:
        rows = count_csv_rows(path)
    return rows


async def _connect(database_url: str) -> AsyncConnection:
    return await AsyncConnection.connect(database_url)


async def _configure_snapshot(conn: AsyncConnection) -> None:
    await conn.set_isolation_level(IsolationLevel.REPEATABLE_READ)
    await conn.set_read_only(True)


async def _export_one(
    conn: AsyncConnection,
    statement: ExportTable,
    root: Path,
    exporter: ExportFn,
) -> int:
    rows = await exporter(conn, statement, root / statement.path)
    logger.info(f"Exported {statement.table}: {rows} rows")
    return rows


async def _worker(
    database_url: str,
    snapshot_id: str,
    queue: asyncio.Queue,
    root: Path,
    counts: dict[str, int],
    connect: ConnectFn,
    exporter: ExportFn,
) -> None:
    conn = await connect(database_url)
    async with conn:
        await _configure_snapshot(conn)
        async with conn.transaction():
            # Must be the first statement of the transaction
            await conn.execute(f"SET TRANSACTION SNAPSHOT {quote_literal(snapshot_id)}")
            while True:
                try:
                    statement = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                counts[statement.table] = await _export_one(conn, statement, root, exporter)


async def export_snapshot(
    database_url: str,
    tables: list[TableDescriptor],
    root: Path,
    jobs: int = 1,
    connect: ConnectFn | None = None,
    exporter: ExportFn = export_table,
) -> dict[str, int]:
    """Export every table's public columns to ``<root>/data/<table>.csv``.

    Args:
        database_url: Source database connection URL.
        tables: Descriptors to export.
        root: Artifact directory.
        jobs: Number of parallel worker connections (1 = leader only).
        connect: Connection factory (default: ``AsyncConnection.connect``).
        exporter: Bulk-export function for a single table.

    Returns:
        Row count per table, in descriptor order.

    Raises:
        psycopg.Error: If the database rejects the export; the snapshot
            transaction is rolled back (nothing is written to the source).
    """
    connect = connect or _connect
    root = Path(root)
    statements = export_statements(tables)
    counts: dict[str, int] = {}

    leader = await connect(database_url)
    async with leader:
        await _configure_snapshot(leader)
        async with leader.transaction():
            if jobs <= 1 or len(statements) <= 1:
                for statement in statements:
                    counts[statement.table] = await _export_one(leader, statement, root, exporter)
            else:
                cur = await leader.execute("SELECT pg_export_snapshot()")
                snapshot_id = (await cur.fetchone())[0]
                logger.debug(f"Exported snapshot {snapshot_id} to {jobs} workers")

                queue: asyncio.Queue = asyncio.Queue()
                for statement in statements:
                    queue.put_nowait(statement)

                workers = [
                    asyncio.create_task(
                        _worker(database_url, snapshot_id, queue, root, counts, connect, exporter)
                    )
                    for _ in range(min(jobs, len(statements)))
                ]
                try:
                    await asyncio.gather(*workers)
                except BaseException:
                    for task in workers:
                        task.cancel()
                    await asyncio.gather(*workers, return_exceptions=True)
                    raise

    return {table.name: counts[table.name] for table in tables}
