"""
Task store: read/write tasks and clients in SQLite (or PostgreSQL when configured).

Dates are stored as ISO TEXT in naive local time so range filters compare lexically.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from agenda_intel.config import get_settings
from agenda_intel.models import STATUS_DONE, Task
from agenda_intel.services.timeutil import parse_instant

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None

UPDATABLE_FIELDS = frozenset({
    "title",
    "due_date",
    "start_at",
    "end_at",
    "assigned_to",
    "priority",
    "estimated_minutes",
})
_DATE_FIELDS = frozenset({"due_date", "start_at", "end_at", "created_at", "completed_at", "started_at"})

_TASK_COLUMNS = (
    "id", "owner_id", "title", "status", "type", "due_date", "start_at", "end_at",
    "estimated_minutes", "assigned_to", "client_id", "lead_name", "sla_minutes",
    "source_module", "priority", "created_at", "completed_at", "started_at",
)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.is_postgres:
            _engine = create_engine(settings.database_url)
        else:
            # check_same_thread=False: FastAPI serves sync routes from a threadpool
            _engine = create_engine(settings.sqlite_conn, connect_args={"check_same_thread": False})
    return _engine


def reset_engine() -> None:
    """Dispose the cached engine (tests point the store at a fresh database)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def _iso(value: Any) -> Optional[str]:
    dt = parse_instant(value)
    return dt.isoformat() if dt else None


def ensure_tables() -> None:
    """Create tasks and clients tables and indexes if they do not exist."""
    engine = get_engine()
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS tasks (
                id VARCHAR(255) PRIMARY KEY,
                owner_id VARCHAR(255) NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                status VARCHAR(50) NOT NULL DEFAULT 'PENDING',
                type VARCHAR(100) NOT NULL DEFAULT '',
                due_date TEXT,
                start_at TEXT,
                end_at TEXT,
                estimated_minutes REAL,
                assigned_to VARCHAR(255),
                client_id VARCHAR(255),
                lead_name TEXT,
                sla_minutes REAL,
                source_module VARCHAR(50),
                priority VARCHAR(20) NOT NULL DEFAULT 'MEDIUM',
                created_at TEXT,
                completed_at TEXT,
                started_at TEXT
            )
        """))
        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_tasks_owner_status ON tasks (owner_id, status)"))
        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_tasks_owner_due ON tasks (owner_id, due_date)"))
        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS clients (
                id VARCHAR(255) PRIMARY KEY,
                owner_id VARCHAR(255) NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                is_vip INTEGER NOT NULL DEFAULT 0
            )
        """))
        conn.commit()


def _row_to_task(row: Any) -> Task:
    return Task.model_validate(dict(row._mapping))


_SELECT = """
    SELECT t.*, c.name AS client_name
    FROM tasks t
    LEFT JOIN clients c ON c.id = t.client_id
"""


def list_tasks(
    owner_id: str,
    status: Optional[str] = None,
    due_from: Optional[datetime] = None,
    due_to: Optional[datetime] = None,
    task_type: Optional[str] = None,
    completed_only: bool = False,
    assigned_only: bool = False,
) -> list[Task]:
    """
    List an owner's tasks. due_from/due_to bound due_date inclusively (tasks without
    a due date are excluded when either bound is set).
    """
    ensure_tables()
    clauses = ["t.owner_id = :owner_id"]
    params: dict[str, Any] = {"owner_id": owner_id}
    if status:
        clauses.append("t.status = :status")
        params["status"] = status
    if due_from is not None:
        clauses.append("t.due_date >= :due_from")
        params["due_from"] = _iso(due_from)
    if due_to is not None:
        clauses.append("t.due_date <= :due_to")
        params["due_to"] = _iso(due_to)
    if task_type:
        clauses.append("t.type = :task_type")
        params["task_type"] = task_type
    if completed_only:
        clauses.append("t.completed_at IS NOT NULL")
    if assigned_only:
        clauses.append("t.assigned_to IS NOT NULL")
    sql = f"{_SELECT} WHERE {' AND '.join(clauses)} ORDER BY t.due_date, t.start_at, t.id"
    with get_engine().connect() as conn:
        rows = conn.execute(text(sql), params).fetchall()
    return [_row_to_task(r) for r in rows]


def list_tasks_in_range(owner_id: str, date_from: datetime, date_to: datetime) -> list[Task]:
    """Tasks visible in [date_from, date_to]: due in range, or scheduled interval overlapping it."""
    ensure_tables()
    sql = f"""
        {_SELECT}
        WHERE t.owner_id = :owner_id
          AND (
            (t.due_date >= :date_from AND t.due_date <= :date_to)
            OR (
              t.start_at IS NOT NULL AND t.start_at <= :date_to
              AND (t.end_at IS NULL OR t.end_at >= :date_from)
            )
          )
        ORDER BY t.due_date, t.start_at, t.id
    """
    params = {"owner_id": owner_id, "date_from": _iso(date_from), "date_to": _iso(date_to)}
    with get_engine().connect() as conn:
        rows = conn.execute(text(sql), params).fetchall()
    return [_row_to_task(r) for r in rows]


def list_completed_tasks(owner_id: str, assigned_only: bool = False) -> list[Task]:
    return list_tasks(owner_id, status=STATUS_DONE, completed_only=True, assigned_only=assigned_only)


def get_task(owner_id: str, task_id: str) -> Optional[Task]:
    ensure_tables()
    with get_engine().connect() as conn:
        row = conn.execute(
            text(f"{_SELECT} WHERE t.owner_id = :owner_id AND t.id = :task_id"),
            {"owner_id": owner_id, "task_id": task_id},
        ).fetchone()
    return _row_to_task(row) if row else None


def update_task(owner_id: str, task_id: str, fields: dict[str, Any]) -> Optional[Task]:
    """
    Update individual fields of a task. Returns the updated task, or None if not found.
    Raises ValueError for fields outside UPDATABLE_FIELDS.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")
    if not fields:
        return get_task(owner_id, task_id)
    ensure_tables()
    params: dict[str, Any] = {"owner_id": owner_id, "task_id": task_id}
    assignments = []
    for name, value in fields.items():
        assignments.append(f"{name} = :{name}")
        params[name] = _iso(value) if name in _DATE_FIELDS else value
    with get_engine().connect() as conn:
        r = conn.execute(
            text(f"UPDATE tasks SET {', '.join(assignments)} WHERE owner_id = :owner_id AND id = :task_id"),
            params,
        )
        conn.commit()
    if not r.rowcount:
        return None
    return get_task(owner_id, task_id)


def upsert_tasks(owner_id: str, tasks: Iterable[Task | dict[str, Any]]) -> int:
    """Insert or replace tasks for an owner. Returns number of rows written."""
    ensure_tables()
    placeholders = ", ".join(f":{c}" for c in _TASK_COLUMNS)
    updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in _TASK_COLUMNS if c != "id")
    sql = text(f"""
        INSERT INTO tasks ({', '.join(_TASK_COLUMNS)})
        VALUES ({placeholders})
        ON CONFLICT (id) DO UPDATE SET {updates}
    """)
    count = 0
    with get_engine().connect() as conn:
        for item in tasks:
            task = item if isinstance(item, Task) else Task.model_validate(item)
            data = task.model_dump()
            params = {c: data.get(c) for c in _TASK_COLUMNS}
            params["owner_id"] = owner_id
            for name in _DATE_FIELDS:
                params[name] = _iso(params[name])
            conn.execute(sql, params)
            count += 1
        conn.commit()
    return count


def upsert_clients(owner_id: str, clients: Iterable[dict[str, Any]]) -> int:
    """Insert or replace clients: [{id, name, is_vip}]."""
    ensure_tables()
    count = 0
    with get_engine().connect() as conn:
        for c in clients:
            conn.execute(
                text("""
                    INSERT INTO clients (id, owner_id, name, is_vip)
                    VALUES (:id, :owner_id, :name, :is_vip)
                    ON CONFLICT (id) DO UPDATE SET
                        owner_id = EXCLUDED.owner_id,
                        name = EXCLUDED.name,
                        is_vip = EXCLUDED.is_vip
                """),
                {"id": c["id"], "owner_id": owner_id, "name": c.get("name") or "", "is_vip": 1 if c.get("is_vip") else 0},
            )
            count += 1
        conn.commit()
    return count


def get_vip_client_ids(owner_id: str) -> set[str]:
    ensure_tables()
    with get_engine().connect() as conn:
        rows = conn.execute(
            text("SELECT id FROM clients WHERE owner_id = :owner_id AND is_vip = 1"),
            {"owner_id": owner_id},
        ).fetchall()
    return {getattr(r, "id") for r in rows}
