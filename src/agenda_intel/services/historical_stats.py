"""
Historical duration statistics over completed tasks.

Real duration = completed_at - (started_at or created_at), in minutes.
Negative durations are dropped; types or assignees with no usable
completions simply have no entry ("no signal").
"""

from collections import defaultdict
from collections.abc import Iterable
from typing import Optional

from agenda_intel.models import Task
from agenda_intel.services.timeutil import minutes_between


def real_duration_minutes(task: Task) -> Optional[float]:
    """Usable real duration of a completed task, or None."""
    if task.completed_at is None:
        return None
    start = task.started_at or task.created_at
    if start is None:
        return None
    minutes = minutes_between(start, task.completed_at)
    if minutes < 0:
        return None
    return minutes


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def avg_real_by_type(completed: Iterable[Task]) -> dict[str, float]:
    """Mean real duration per task type."""
    by_type: dict[str, list[float]] = defaultdict(list)
    for task in completed:
        minutes = real_duration_minutes(task)
        if minutes is None:
            continue
        by_type[task.type].append(minutes)
    return {task_type: _mean(values) for task_type, values in by_type.items() if values}


def avg_real_by_assignee_and_type(completed: Iterable[Task]) -> dict[tuple[str, str], float]:
    """Mean real duration per (assignee, type); unassigned completions are skipped."""
    by_key: dict[tuple[str, str], list[float]] = defaultdict(list)
    for task in completed:
        if not task.assigned_to:
            continue
        minutes = real_duration_minutes(task)
        if minutes is None:
            continue
        by_key[(task.assigned_to, task.type)].append(minutes)
    return {key: _mean(values) for key, values in by_key.items() if values}


def expected_minutes(task: Task, avg_by_type: dict[str, float], fallback_minutes: float) -> float:
    """Expected workload: own estimate, else type average, else fallback."""
    if task.estimated_minutes is not None:
        return task.estimated_minutes
    avg = avg_by_type.get(task.type)
    if avg is not None:
        return avg
    return fallback_minutes
