"""
Conflict rules: per-assignee, per-day violations with a severity, for the calendar UI.

Events are grouped by (assigned_to or "unassigned", local start day) and sorted by start.
- OUTSIDE_HOURS (warning): starts before, or ends after, the working day
- OVERLAP (error): both events of a pair that intersect
- IMPOSSIBLE_TIMING (error): back-to-back events closer than the minimum gap
- DAILY_OVERLOAD (warning): every event of a group whose minutes exceed the daily limit

Unlike the Risk Detector flags, these are scoped to one assignee's day.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from agenda_intel.models import CalendarEvent, Severity, Violation, ViolationType
from agenda_intel.services.timeutil import day_key, minutes_between

UNASSIGNED = "unassigned"


@dataclass(frozen=True)
class RulesConfig:
    daily_hours_limit: float = 8
    working_hours_start: int = 9
    working_hours_end: int = 18
    min_gap_minutes: float = 0


def minutes_from_midnight(event: CalendarEvent) -> int:
    return event.start.hour * 60 + event.start.minute


def duration_minutes(event: CalendarEvent) -> float:
    return minutes_between(event.start, event.end)


def group_by_assignee_and_day(events: Iterable[CalendarEvent]) -> dict[tuple[str, str], list[CalendarEvent]]:
    """(assignee, start day) -> events sorted by start."""
    groups: dict[tuple[str, str], list[CalendarEvent]] = defaultdict(list)
    for event in events:
        groups[(event.assigned_to or UNASSIGNED, day_key(event.start))].append(event)
    return {key: sorted(group, key=lambda e: e.start) for key, group in groups.items()}


def _violation(task_id: str, kind: ViolationType, severity: Severity, message: str) -> Violation:
    return Violation(type=kind, severity=severity, task_id=task_id, message=message)


def _outside_hours(event: CalendarEvent, cfg: RulesConfig) -> list[Violation]:
    out = []
    start_min = minutes_from_midnight(event)
    if start_min < cfg.working_hours_start * 60:
        out.append(_violation(
            event.id, "OUTSIDE_HOURS", "warning", f"Starts before working hours ({cfg.working_hours_start}:00)"
        ))
    if start_min + duration_minutes(event) > cfg.working_hours_end * 60:
        out.append(_violation(
            event.id, "OUTSIDE_HOURS", "warning", f"Ends after working hours ({cfg.working_hours_end}:00)"
        ))
    return out


def _pair_violations(group: Sequence[CalendarEvent], i: int, cfg: RulesConfig) -> list[Violation]:
    out = []
    a = group[i]
    for b in group[i + 1:]:
        if a.end <= b.start:
            # Sorted by start: only the first event after a's end can be too close
            if minutes_between(a.end, b.start) < cfg.min_gap_minutes:
                out.append(_violation(
                    a.id, "IMPOSSIBLE_TIMING", "error",
                    f"No margin before the next task (min. {cfg.min_gap_minutes:g} min)",
                ))
                out.append(_violation(
                    b.id, "IMPOSSIBLE_TIMING", "error",
                    f"No margin after the previous task (min. {cfg.min_gap_minutes:g} min)",
                ))
            break
        out.append(_violation(a.id, "OVERLAP", "error", "Overlaps another task of the same assignee"))
        out.append(_violation(b.id, "OVERLAP", "error", "Overlaps another task of the same assignee"))
    return out


def evaluate_conflict_rules(events: Iterable[CalendarEvent], config: RulesConfig = RulesConfig()) -> list[Violation]:
    """All violations over the events, group by group. Pure."""
    violations: list[Violation] = []
    limit_minutes = config.daily_hours_limit * 60
    for group in group_by_assignee_and_day(events).values():
        for i, event in enumerate(group):
            violations += _outside_hours(event, config)
            violations += _pair_violations(group, i, config)

        total = sum(duration_minutes(e) for e in group)
        if total > limit_minutes:
            excess = (total - limit_minutes) / 60
            message = (
                f"Daily overload: {total / 60:.1f}h assigned "
                f"(limit {config.daily_hours_limit:g}h, +{excess:.1f}h)"
            )
            violations += [_violation(e.id, "DAILY_OVERLOAD", "warning", message) for e in group]
    return violations


def violations_by_task_id(violations: Iterable[Violation]) -> dict[str, list[Violation]]:
    out: dict[str, list[Violation]] = defaultdict(list)
    for v in violations:
        out[v.task_id].append(v)
    return dict(out)
