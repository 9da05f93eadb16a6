"""
Workforce redistribution: suggest moving pending tasks from over-capacity assignees to
assignees with spare capacity, lowest priority first.

Load per assignee is the sum of expected minutes over the window. Unassigned tasks
count as the "unassigned" bucket's load but nobody hands work to that bucket.
Advisory only; the caller decides whether to reassign.
"""

from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Optional

from agenda_intel.models import Task, WorkforceSuggestion

MAX_SUGGESTIONS = 20

_MANUAL_PRIORITY_RANK = {"LOW": 0, "MEDIUM": 1, "HIGH": 2}


def priority_rank(task: Task, scores: Mapping[str, float]) -> float:
    """Computed score when known, else the manual LOW/MEDIUM/HIGH rank (unknown counts as MEDIUM)."""
    if task.id in scores:
        return scores[task.id]
    return _MANUAL_PRIORITY_RANK.get(str(task.priority).upper(), 1)


def load_per_user(tasks: Iterable[Task], minutes_of: Callable[[Task], float]) -> dict[Optional[str], float]:
    load: dict[Optional[str], float] = defaultdict(float)
    for task in tasks:
        load[task.assigned_to or None] += minutes_of(task)
    return dict(load)


def build_workforce_suggestions(
    tasks: Sequence[Task],
    minutes_of: Callable[[Task], float],
    capacity_per_user: float,
    candidates: Iterable[str] = (),
    priority_scores: Optional[Mapping[str, float]] = None,
    max_suggestions: int = MAX_SUGGESTIONS,
) -> list[WorkforceSuggestion]:
    """
    Greedy redistribution.

    For each over-capacity assignee, walk their tasks lowest priority first and hand each
    one to the under-capacity assignee with the most spare minutes that can absorb it,
    until the overflow is gone. `candidates` adds assignees with no pending work in the
    window as possible targets.
    """
    scores = priority_scores or {}
    load = load_per_user(tasks, minutes_of)
    for user in candidates:
        if user:
            load.setdefault(user, 0.0)

    overloaded = [u for u, minutes in load.items() if minutes > capacity_per_user]
    underloaded = [u for u, minutes in load.items() if u is not None and minutes < capacity_per_user]
    if not overloaded or not underloaded:
        return []

    tasks_by_user: dict[Optional[str], list[Task]] = defaultdict(list)
    for task in tasks:
        tasks_by_user[task.assigned_to or None].append(task)

    suggestions: list[WorkforceSuggestion] = []
    for user in overloaded:
        overflow = load[user] - capacity_per_user
        for task in sorted(tasks_by_user[user], key=lambda t: priority_rank(t, scores)):
            if len(suggestions) >= max_suggestions:
                return suggestions
            minutes = minutes_of(task)
            if minutes <= 0:
                continue
            target: Optional[str] = None
            best_spare = -1.0
            for candidate in underloaded:
                if candidate == user:
                    continue
                spare = capacity_per_user - load[candidate]
                if spare >= minutes and spare > best_spare:
                    target, best_spare = candidate, spare
            if target is None:
                continue

            suggestions.append(WorkforceSuggestion(task_id=task.id, from_user=user, to_user=target, benefit=minutes))
            overflow -= minutes
            load[target] += minutes
            if load[target] >= capacity_per_user:
                underloaded.remove(target)
            if overflow <= 0:
                break
    return suggestions
