"""
Risk Detector: overlap, daily overload and impossible-timing flags for a set of events.

Overlap is whole-set: an event is flagged when it intersects any other event.
Overload groups by the local day of each event's start; every event on a day
whose scheduled minutes exceed capacity is flagged.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from agenda_intel.models import RiskFlags
from agenda_intel.services.timeutil import day_key, minutes_between, parse_instant

DAY_CAPACITY_MINUTES = 480


def _interval(event: BaseModel | Mapping[str, Any]) -> tuple[str, Optional[datetime], Optional[datetime], Optional[datetime]]:
    raw = event.model_dump() if isinstance(event, BaseModel) else event
    return (
        str(raw.get("id")),
        parse_instant(raw.get("start")),
        parse_instant(raw.get("end")),
        parse_instant(raw.get("due_date")),
    )


def detect_risks(
    events: Iterable[BaseModel | Mapping[str, Any]],
    capacity_minutes: float = DAY_CAPACITY_MINUTES,
) -> dict[str, RiskFlags]:
    """
    Compute RiskFlags per event id.

    Pairwise O(n^2) overlap; per-user event volumes are small.
    """
    items = [_interval(e) for e in events]
    flags: dict[str, RiskFlags] = {event_id: RiskFlags() for event_id, _, _, _ in items}
    timed = [(i, s, e) for i, (_, s, e, _) in enumerate(items) if s is not None and e is not None]

    for a in range(len(timed)):
        idx_a, start_a, end_a = timed[a]
        for b in range(a + 1, len(timed)):
            idx_b, start_b, end_b = timed[b]
            if start_a < end_b and end_a > start_b:
                flags[items[idx_a][0]].overlap = True
                flags[items[idx_b][0]].overlap = True

    minutes_by_day: dict[str, float] = defaultdict(float)
    ids_by_day: dict[str, list[str]] = defaultdict(list)
    for event_id, start, end, due in items:
        if start is None or end is None or end <= start:
            flags[event_id].impossible_timing = True
        elif due is not None and start > due:
            flags[event_id].impossible_timing = True
        if start is None:
            continue
        key = day_key(start)
        if end is not None and end > start:
            minutes_by_day[key] += minutes_between(start, end)
        ids_by_day[key].append(event_id)

    for key, total in minutes_by_day.items():
        if total > capacity_minutes:
            for event_id in ids_by_day[key]:
                flags[event_id].overload = True

    return flags
