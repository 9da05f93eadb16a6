"""
Schedule optimizer: read-only suggestions for using the calendar better.

- FILL_GAP: idle time of at least min_gap between consecutive events of one assignee's day
- REORDER: the later event of such a pair fits inside the gap
- BALANCE_LOAD: a day where assignee workloads differ by the imbalance threshold or more
- GROUP_TASKS: two or more events for the same client (or lead) on one day
- BETTER_SCHEDULE: an event starting before or ending after working hours

Sorted by time saved, then confidence. Pure and deterministic given the id generator.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Optional

from agenda_intel.models import CalendarEvent, OptimizationSuggestion
from agenda_intel.services.conflict_rules import (
    UNASSIGNED,
    duration_minutes,
    group_by_assignee_and_day,
    minutes_from_midnight,
)
from agenda_intel.services.recommendation_engine import IdGenerator, sequential_ids
from agenda_intel.services.timeutil import day_key, minutes_between

CONTEXT_SWITCH_MINUTES = 15


@dataclass(frozen=True)
class OptimizerConfig:
    min_gap_minutes: float = 15
    working_hours_start: int = 9
    working_hours_end: int = 18
    load_imbalance_threshold_minutes: float = 120


def _gaps(events: Sequence[CalendarEvent], cfg: OptimizerConfig, next_id: IdGenerator) -> list[OptimizationSuggestion]:
    out = []
    for group in group_by_assignee_and_day(events).values():
        for a, b in zip(group, group[1:]):
            gap = minutes_between(a.end, b.start)
            if gap < cfg.min_gap_minutes:
                continue
            out.append(OptimizationSuggestion(
                id=next_id(),
                type="FILL_GAP",
                title="Idle gap",
                description=f'{round(gap)} min free between "{a.title}" and "{b.title}" that could be used.',
                affected_task_ids=[a.id, b.id],
                time_saved_minutes=round(gap),
                difficulty="low",
                confidence=1.0,
            ))
            if duration_minutes(b) <= gap:
                out.append(OptimizationSuggestion(
                    id=next_id(),
                    type="REORDER",
                    title="Reorder to cut waiting",
                    description=f'Moving "{b.title}" into the earlier gap could save up to {round(gap)} min of waiting.',
                    affected_task_ids=[a.id, b.id],
                    time_saved_minutes=round(gap),
                    difficulty="medium",
                    confidence=0.9,
                ))
    return out


def _label(assignee: str) -> str:
    return "Unassigned" if assignee == UNASSIGNED else assignee


def _load_balance(events: Sequence[CalendarEvent], cfg: OptimizerConfig, next_id: IdGenerator) -> list[OptimizationSuggestion]:
    minutes_by_day: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    ids_by_day: dict[str, list[str]] = defaultdict(list)
    for event in events:
        key = day_key(event.start)
        minutes_by_day[key][event.assigned_to or UNASSIGNED] += duration_minutes(event)
        ids_by_day[key].append(event.id)

    out = []
    for key, loads in minutes_by_day.items():
        if len(loads) < 2:
            continue
        heaviest = max(loads, key=loads.__getitem__)
        lightest = min(loads, key=loads.__getitem__)
        spread = loads[heaviest] - loads[lightest]
        if spread < cfg.load_imbalance_threshold_minutes:
            continue
        out.append(OptimizationSuggestion(
            id=next_id(),
            type="BALANCE_LOAD",
            title="Unbalanced workload",
            description=(
                f"{_label(heaviest)}: {loads[heaviest] / 60:.1f}h, {_label(lightest)}: {loads[lightest] / 60:.1f}h "
                f"on {key}. Redistributing could even out the day."
            ),
            affected_task_ids=ids_by_day[key],
            time_saved_minutes=round(spread / 2),
            difficulty="high",
            confidence=0.85,
        ))
    return out


def _client(event: CalendarEvent) -> Optional[str]:
    return event.client_name or event.lead_name


def _client_groups(events: Sequence[CalendarEvent], next_id: IdGenerator) -> list[OptimizationSuggestion]:
    by_client_and_day: dict[tuple[str, str], list[CalendarEvent]] = defaultdict(list)
    for event in events:
        client = _client(event)
        if client:
            by_client_and_day[(day_key(event.start), client)].append(event)

    out = []
    for (_, client), group in by_client_and_day.items():
        if len(group) < 2:
            continue
        group = sorted(group, key=lambda e: e.start)
        out.append(OptimizationSuggestion(
            id=next_id(),
            type="GROUP_TASKS",
            title="Group by client",
            description=(
                f'{len(group)} tasks for "{client}" on the same day. '
                f"Scheduling them back-to-back can cut transitions."
            ),
            affected_task_ids=[e.id for e in group],
            time_saved_minutes=CONTEXT_SWITCH_MINUTES * (len(group) - 1),
            difficulty="medium",
            confidence=0.8,
        ))
    return out


def _outside_hours(events: Sequence[CalendarEvent], cfg: OptimizerConfig, next_id: IdGenerator) -> list[OptimizationSuggestion]:
    out = []
    for event in events:
        start_min = minutes_from_midnight(event)
        if start_min >= cfg.working_hours_start * 60 and start_min + duration_minutes(event) <= cfg.working_hours_end * 60:
            continue
        out.append(OptimizationSuggestion(
            id=next_id(),
            type="BETTER_SCHEDULE",
            title="Better use of working hours",
            description=(
                f'"{event.title}" falls outside working hours '
                f"({cfg.working_hours_start}:00-{cfg.working_hours_end}:00). Moving it inside may help planning."
            ),
            affected_task_ids=[event.id],
            time_saved_minutes=0,
            difficulty="low",
            confidence=0.9,
        ))
    return out


def compute_suggestions(
    events: Iterable[CalendarEvent],
    config: OptimizerConfig = OptimizerConfig(),
    id_generator: Optional[IdGenerator] = None,
) -> list[OptimizationSuggestion]:
    events = list(events)
    next_id = id_generator or sequential_ids("opt")
    suggestions = (
        _gaps(events, config, next_id)
        + _load_balance(events, config, next_id)
        + _client_groups(events, next_id)
        + _outside_hours(events, config, next_id)
    )
    return sorted(suggestions, key=lambda s: (-s.time_saved_minutes, -s.confidence))
