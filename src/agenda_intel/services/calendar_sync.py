"""
Calendar sync dispatcher: queue a task change for mirroring to external calendars.

Fire-and-forget: enqueue_sync never raises; failures are logged. A separate
worker drains calendar_sync_jobs; nothing here waits on it.
"""

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import text

from agenda_intel.db.tasks_repo import get_engine

logger = logging.getLogger(__name__)


class SyncOperation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def _ensure_sync_jobs_table() -> None:
    engine = get_engine()
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS calendar_sync_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id VARCHAR(255) NOT NULL,
                owner_id VARCHAR(255) NOT NULL,
                operation VARCHAR(20) NOT NULL,
                status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
                created_at TEXT NOT NULL
            )
        """))
        conn.commit()


def enqueue_sync(task_id: str, owner_id: str, operation: SyncOperation | str) -> None:
    """Queue a sync job. Never raises."""
    try:
        op = SyncOperation(operation)
        _ensure_sync_jobs_table()
        with get_engine().connect() as conn:
            conn.execute(
                text("""
                    INSERT INTO calendar_sync_jobs (task_id, owner_id, operation, status, created_at)
                    VALUES (:task_id, :owner_id, :operation, 'PENDING', :created_at)
                """),
                {
                    "task_id": task_id,
                    "owner_id": owner_id,
                    "operation": op.value,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            conn.commit()
    except Exception as e:
        logger.warning("[calendar-sync] enqueue %s for task %s failed: %s", operation, task_id, e)


def list_pending_jobs(owner_id: str) -> list[dict]:
    """Pending sync jobs for an owner, oldest first."""
    _ensure_sync_jobs_table()
    with get_engine().connect() as conn:
        rows = conn.execute(
            text("""
                SELECT id, task_id, owner_id, operation, status, created_at
                FROM calendar_sync_jobs
                WHERE owner_id = :owner_id AND status = 'PENDING'
                ORDER BY id
            """),
            {"owner_id": owner_id},
        ).fetchall()
    return [dict(r._mapping) for r in rows]
