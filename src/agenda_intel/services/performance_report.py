"""
Per-assignee performance for the tasks due on one day.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from agenda_intel.models import STATUS_DONE, STATUS_PENDING, PerformanceRow, Task
from agenda_intel.services.timeutil import minutes_between

UNASSIGNED_NAME = "Unassigned"


def _sla_rate(row: PerformanceRow) -> float:
    return row.within_sla / row.assigned * 100 if row.assigned else 100.0


def build_performance(tasks: Iterable[Task], now: datetime) -> list[PerformanceRow]:
    """
    Group tasks by assignee (blank counts as unassigned) and count assigned, completed,
    overdue and within-SLA tasks, average resolution time (created to completed) and
    current pending load.

    Rows are sorted by current load, heaviest first, then by SLA compliance, worst first.
    """
    rows: dict[Optional[str], PerformanceRow] = {}
    resolutions: dict[Optional[str], list[float]] = defaultdict(list)

    for task in tasks:
        user = task.assigned_to if task.assigned_to and task.assigned_to.strip() else None
        row = rows.get(user)
        if row is None:
            row = rows[user] = PerformanceRow(user_id=user, name=user or UNASSIGNED_NAME)
        row.assigned += 1

        if task.status == STATUS_DONE:
            row.completed += 1
            if task.completed_at is None or task.created_at is None:
                continue
            minutes = minutes_between(task.created_at, task.completed_at)
            if minutes < 0:
                continue
            resolutions[user].append(minutes)
            if task.sla_minutes is not None and minutes <= task.sla_minutes:
                row.within_sla += 1
        elif task.status == STATUS_PENDING:
            row.current_load += 1
            if task.due_date is not None and task.due_date < now:
                row.overdue += 1

    for user, minutes in resolutions.items():
        rows[user].avg_resolution_minutes = round(sum(minutes) / len(minutes))

    return sorted(rows.values(), key=lambda r: (-r.current_load, _sla_rate(r)))
