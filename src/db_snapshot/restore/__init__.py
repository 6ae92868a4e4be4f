"""Single-transaction restore and post-restore verification.

Usage:
    from db_snapshot.restore import RestoreExecutor, verify_restore
"""

from db_snapshot.restore.executor import RestoreExecutor, RestoreResult
from db_snapshot.restore.verify import (
    VerificationReport,
    fetch_column_defaults,
    fetch_trigger_states,
    verify_restore,
)

__all__ = [
    "RestoreExecutor",
    "RestoreResult",
    "VerificationReport",
    "fetch_column_defaults",
    "fetch_trigger_states",
    "verify_restore",
]
