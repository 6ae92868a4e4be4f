"""Restore executor: run a restore script as one transaction.

The whole script runs inside a single ``conn.transaction()``.  Nothing is
visible to other sessions until it commits; any failure (or cancellation)
before commit rolls everything back and leaves the target unchanged.
Failed restores are never retried: the caller decides what to do with the
``ExecutionError``.

The caller must own the connection exclusively for the duration of the
restore.  Open it in autocommit mode; otherwise an earlier query leaves a
transaction open and the restore runs inside a savepoint of it.

Usage:
    async with await AsyncConnection.connect(url, autocommit=True) as conn:
        result = await RestoreExecutor(conn).run(script)
"""

import logging
from collections.abc import Callable
from pathlib import Path

import psycopg
from psycopg import AsyncConnection, AsyncCursor
from pydantic import BaseModel, Field

from db_snapshot.errors import ExecutionError
from db_snapshot.planner import Phase
from db_snapshot.restore.verify import VerificationReport
from db_snapshot.script.generator import RestoreScript
from db_snapshot.script.statements import LoadTable, Statement

logger = logging.getLogger(__name__)

StatementHook = Callable[[Phase, Statement], None]


class RestoreResult(BaseModel):
    """Outcome of a restore.

    Attributes:
        committed: False for dry runs (the transaction was rolled back).
        rows_loaded: Rows loaded per table.
        phases_completed: Phase names, in execution order.
        statements_executed: Number of statements run.
        verification: Post-commit checks, when they were run.
    """

    committed: bool = False
    rows_loaded: dict[str, int] = Field(default_factory=dict)
    phases_completed: list[str] = Field(default_factory=list)
    statements_executed: int = 0
    verification: VerificationReport | None = None


class RestoreExecutor:
    """Execute a ``RestoreScript`` against a target connection.

    Args:
        conn: Target connection, used exclusively by this executor.
        on_statement: Optional callback invoked with ``(phase, statement)``
            before each statement runs (execution trace).
    """

    BLOCK_SIZE = 64 * 1024

    def __init__(self, conn: AsyncConnection, on_statement: StatementHook | None = None):
        self._conn = conn
        self._on_statement = on_statement

    async def run(self, script: RestoreScript, commit: bool = True) -> RestoreResult:
        """Run every phase of *script* in one transaction.

        Args:
            script: Script from ``generate_restore_script()``.
            commit: When False, execute everything and roll back (dry run).

        Returns:
            ``RestoreResult``.

        Raises:
            ExecutionError: If a statement fails.  The transaction has been
                rolled back by the time the error reaches the caller.
        """
        result = RestoreResult()

        async with self._conn.transaction(force_rollback=not commit):
            for planned in script.phases:
                logger.debug(f"Phase {planned.phase.value}: {len(planned.statements)} statements")
                for statement in planned.statements:
                    await self._execute(planned.phase, statement, script, result)
                result.phases_completed.append(planned.phase.value)

        result.committed = commit
        if commit:
            logger.info(f"Restore committed: {sum(result.rows_loaded.values())} rows")
        else:
            logger.info("Dry run complete, transaction rolled back")
        return result

    async def _execute(
        self,
        phase: Phase,
        statement: Statement,
        script: RestoreScript,
        result: RestoreResult,
    ) -> None:
        if self._on_statement is not None:
            self._on_statement(phase, statement)

        try:
            async with self._conn.cursor() as cur:
                if isinstance(statement, LoadTable):
                    rows = await self._load(cur, statement, script.data_file(statement))
                    result.rows_loaded[statement.table] = rows
                    logger.info(f"Loaded {statement.table}: {rows} rows")
                else:
                    await cur.execute(statement.to_sql())
        except (psycopg.Error, OSError) as e:
            logger.error(f"Statement failed in phase {phase.value}: {statement.to_sql()}")
            raise ExecutionError(phase.value, statement.to_sql(), str(e)) from e

        result.statements_executed += 1

    async def _load(self, cur: AsyncCursor, statement: LoadTable, path: Path) -> int:
        with open(path, "rb") as f:
            async with cur.copy(statement.to_sql()) as copy:
                while data := f.read(self.BLOCK_SIZE):
                    await copy.write(data)
        return cur.rowcount
