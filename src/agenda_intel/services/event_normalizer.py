"""
Event Normalizer: turn a task record into a CalendarEvent with a valid, strictly positive interval.

start = start_at ?? due_date ?? now truncated to the hour
end   = end_at ?? start + estimated_minutes ?? start + 30 min
An invalid start falls back to truncated now; an invalid end, or end <= start, becomes start + 30 min.
A start too close to the end of the datetime range to fit that default also falls back to truncated now.
"""

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel

from agenda_intel.models import CalendarEvent, PriorityTier, RiskFlags, STATUS_PENDING
from agenda_intel.services.timeutil import add_minutes, parse_instant, parse_minutes, shift, truncate_to_hour

DEFAULT_DURATION_MINUTES = 30
DEFAULT_DURATION = timedelta(minutes=DEFAULT_DURATION_MINUTES)


def _raw(task: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(task, BaseModel):
        return task.model_dump()
    return dict(task)


def _end_from_estimate(start: datetime, estimate: Any) -> Optional[datetime]:
    minutes = parse_minutes(estimate)
    if minutes is None:
        return None
    return add_minutes(start, minutes)


def resolve_interval(task: BaseModel | Mapping[str, Any], now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """Return (start, end) for a task; always start < end."""
    raw = _raw(task)
    fallback_start = truncate_to_hour(now or datetime.now())

    start_value = raw.get("start_at")
    if start_value is None:
        start_value = raw.get("due_date")
    start = parse_instant(start_value) if start_value is not None else fallback_start
    if start is None:
        start = fallback_start

    end: Optional[datetime] = None
    end_value = raw.get("end_at")
    if end_value is not None:
        end = parse_instant(end_value)
    elif raw.get("estimated_minutes") is not None:
        end = _end_from_estimate(start, raw.get("estimated_minutes"))
    if end is None or end <= start:
        end = shift(start, DEFAULT_DURATION)
        if end is None:
            start = fallback_start
            end = start + DEFAULT_DURATION
    return start, end


def normalize_task(
    task: BaseModel | Mapping[str, Any],
    now: Optional[datetime] = None,
    auto_priority: Optional[PriorityTier] = None,
    risk: Optional[RiskFlags] = None,
) -> CalendarEvent:
    """Map a Task (or task-shaped mapping with snake_case keys) to a CalendarEvent. Pure."""
    raw = _raw(task)
    start, end = resolve_interval(raw, now)
    return CalendarEvent(
        id=str(raw.get("id", "")),
        title=raw.get("title") or "",
        start=start,
        end=end,
        status=raw.get("status") or STATUS_PENDING,
        priority=raw.get("priority") or "MEDIUM",
        auto_priority=auto_priority,
        due_date=parse_instant(raw.get("due_date")),
        risk=risk,
        assigned_to=raw.get("assigned_to"),
        client_name=raw.get("client_name"),
        lead_name=raw.get("lead_name"),
    )
