"""
Recommendation Engine: turn predictions plus the pending agenda into ranked, advisory changes.

Rules:
- extend_time: high-impact DELAY_PROBABILITY / TYPE_OVERRUN tasks (first 5) whose
  type average exceeds the estimate get ceil(avg * 1.2) minutes
- priority_change: first task of each DEADLINE_BREACH goes to HIGH
- reschedule: per DAY_SATURATION, move the least critical, earliest-due task to 09:00 next day
- reassign: another assignee averages < 85% of the current one for the same type
- merge: >= 2 tasks of the same type due the same day

Recommendations are sorted by confidence and truncated; nothing is applied here.
Prediction loading is the only fallible step and degrades to an empty list.
"""

import itertools
import logging
import math
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

import requests

from agenda_intel.models import (
    ExtendTimeChange,
    MergeChange,
    Prediction,
    PriorityChange,
    ReassignChange,
    Recommendation,
    RescheduleChange,
    Task,
    TimeSlot,
)
from agenda_intel.services.historical_stats import (
    avg_real_by_assignee_and_type,
    avg_real_by_type,
    expected_minutes,
)
from agenda_intel.services.timeutil import add_minutes, day_key

logger = logging.getLogger(__name__)

DAY_CAPACITY_MINUTES = 480
FALLBACK_ESTIMATE_MINUTES = 30
RESCHEDULE_FALLBACK_MINUTES = 60
EXTEND_BUFFER = 0.2
EXTEND_MAX_TASKS = 5
REASSIGN_RATIO = 0.85
RESCHEDULE_HOUR = 9
MAX_RECOMMENDATIONS = 15

IdGenerator = Callable[[], str]
PredictionSource = Union[Sequence[Prediction], Callable[[], Sequence[Prediction]]]


def sequential_ids(prefix: str = "rec") -> IdGenerator:
    """Request-scoped id generator: rec-1, rec-2, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


def load_predictions(source: Optional[PredictionSource]) -> list[Prediction]:
    """Resolve a prediction source; any failure yields an empty list."""
    if source is None:
        return []
    if not callable(source):
        return list(source)
    try:
        return list(source())
    except Exception as e:
        logger.warning("Prediction source failed, continuing without predictions: %s", e)
        return []


def fetch_predictions_http(
    url: str,
    owner_id: str,
    date_from: datetime,
    date_to: datetime,
    timeout: float = 5.0,
) -> list[Prediction]:
    """
    Fetch predictions from a remote predictions endpoint returning {"predictions": [...]}.

    Unreachable, non-OK or malformed responses yield an empty list.
    """
    try:
        r = requests.get(
            f"{url.rstrip('/')}/{owner_id}",
            params={"from": date_from.isoformat(), "to": date_to.isoformat()},
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.warning("Predictions endpoint unreachable: %s", e)
        return []
    if not r.ok:
        logger.warning("Predictions endpoint returned %s", r.status_code)
        return []
    try:
        data = r.json()
        items = data.get("predictions") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []
        return [Prediction.model_validate(p) for p in items]
    except ValueError as e:
        logger.warning("Predictions endpoint returned malformed data: %s", e)
        return []


def _extend_time(
    prediction: Prediction,
    by_id: dict[str, Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float,
    next_id: IdGenerator,
) -> list[Recommendation]:
    out = []
    for affected in prediction.affected_tasks[:EXTEND_MAX_TASKS]:
        task = by_id.get(affected.id)
        if task is None or task.due_date is None:
            continue
        avg = avg_by_type.get(task.type)
        estimate = expected_minutes(task, avg_by_type, fallback_minutes)
        if not avg or avg <= estimate:
            continue
        suggested = math.ceil(avg * (1 + EXTEND_BUFFER))
        if suggested <= estimate:
            continue
        out.append(Recommendation(
            id=next_id(),
            type="extend_time",
            title="Extend estimated time",
            explanation=(
                f'"{affected.title}" usually takes longer than estimated (history per type). '
                f"A larger estimate lowers the risk of delay."
            ),
            expected_benefit="Better punctuality and deadline compliance",
            confidence=0.8,
            difficulty="low",
            suggested_change=ExtendTimeChange(task_id=task.id, estimated_minutes=suggested),
            affected_task_titles=[affected.title],
        ))
    return out


def _priority_change(prediction: Prediction, by_id: dict[str, Task], next_id: IdGenerator) -> list[Recommendation]:
    affected = prediction.affected_tasks[0]
    if affected.id not in by_id:
        return []
    return [Recommendation(
        id=next_id(),
        type="priority_change",
        title="Raise priority to meet the deadline",
        explanation=(
            f'"{affected.title}" is due soon and at risk of delay. '
            f"High priority helps make sure it is done on time."
        ),
        expected_benefit="Higher chance of meeting the deadline",
        confidence=0.75,
        difficulty="low",
        suggested_change=PriorityChange(task_id=affected.id, priority="HIGH"),
        affected_task_titles=[affected.title],
    )]


def _reschedule(
    prediction: Prediction,
    pending: Sequence[Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float,
    capacity_minutes: float,
    next_id: IdGenerator,
) -> list[Recommendation]:
    ids = {a.id for a in prediction.affected_tasks}
    tasks = [t for t in pending if t.id in ids and t.due_date is not None]
    if not tasks:
        return []
    total = sum(expected_minutes(t, avg_by_type, fallback_minutes) for t in tasks)
    excess = total - capacity_minutes
    if excess <= 0:
        return []
    # Least critical first (non-HIGH before HIGH), then earliest due
    to_move = min(tasks, key=lambda t: (t.priority == "HIGH", t.due_date))
    if to_move.due_date.date() == date.max:
        return []
    new_start = datetime.combine(to_move.due_date.date() + timedelta(days=1), time(RESCHEDULE_HOUR))
    duration = to_move.estimated_minutes or RESCHEDULE_FALLBACK_MINUTES
    new_end = add_minutes(new_start, duration)
    if new_end is None:
        return []
    return [Recommendation(
        id=next_id(),
        type="reschedule",
        title="Move a task to relieve saturation",
        explanation=(
            f"{day_key(tasks[0].due_date)} is overloaded ({round(excess)} min over capacity). "
            f'Moving "{to_move.title}" to the next day frees up the day.'
        ),
        expected_benefit="Better use of time and less risk of delay",
        confidence=0.85,
        difficulty="medium",
        suggested_change=RescheduleChange(
            task_id=to_move.id,
            due_date=new_start,
            start_at=new_start,
            end_at=new_end,
        ),
        affected_task_titles=[to_move.title],
    )]


def _reassign(pending: Sequence[Task], completed: Sequence[Task], next_id: IdGenerator) -> list[Recommendation]:
    avg_by_key = avg_real_by_assignee_and_type(completed)
    assignees = sorted({a for a, _ in avg_by_key})
    out = []
    for task in pending:
        if not task.assigned_to or not task.type:
            continue
        current = avg_by_key.get((task.assigned_to, task.type))
        if current is None:
            continue
        candidates = [
            (avg_by_key[(a, task.type)], a)
            for a in assignees
            if a != task.assigned_to and (a, task.type) in avg_by_key and avg_by_key[(a, task.type)] < current * REASSIGN_RATIO
        ]
        if not candidates:
            continue
        _, best = min(candidates)
        out.append(Recommendation(
            id=next_id(),
            type="reassign",
            title="Reassign to whoever performs best on this type",
            explanation=(
                f'"{task.title}" is assigned to someone who historically takes longer on "{task.type}" tasks. '
                f"Another assignee usually finishes them faster."
            ),
            expected_benefit="Shorter real time and better productivity",
            confidence=0.7,
            difficulty="medium",
            suggested_change=ReassignChange(task_id=task.id, assigned_to=best),
            affected_task_titles=[task.title],
        ))
    return out


def _merge_slot(group: Sequence[Task], fallback_minutes: float) -> Optional[TimeSlot]:
    starts = [t.start_at for t in group if t.start_at is not None]
    if not starts:
        return None
    start = min(starts)
    total = sum(t.estimated_minutes if t.estimated_minutes else fallback_minutes for t in group)
    end = add_minutes(start, total)
    if end is None:
        return None
    return TimeSlot(start_at=start, end_at=end)


def _merge(pending: Sequence[Task], fallback_minutes: float, next_id: IdGenerator) -> list[Recommendation]:
    groups: dict[str, dict[str, list[Task]]] = defaultdict(lambda: defaultdict(list))
    for task in pending:
        if task.due_date is None or not task.type:
            continue
        groups[day_key(task.due_date)][task.type].append(task)
    out = []
    for by_type in groups.values():
        for task_type, group in by_type.items():
            if len(group) < 2:
                continue
            ordered = sorted(group, key=lambda t: t.start_at or datetime.min)
            out.append(Recommendation(
                id=next_id(),
                type="merge",
                title="Batch tasks of the same type",
                explanation=(
                    f'{len(ordered)} "{task_type}" tasks on the same day. '
                    f"Grouping them in one consecutive block cuts context switches."
                ),
                expected_benefit="Better use of time and fewer transitions",
                confidence=0.65,
                difficulty="high",
                suggested_change=MergeChange(
                    task_ids=[t.id for t in ordered],
                    suggested_slot=_merge_slot(ordered, fallback_minutes),
                ),
                affected_task_titles=[t.title for t in ordered],
            ))
    return out


def generate_recommendations(
    pending: Sequence[Task],
    completed: Sequence[Task],
    predictions: Optional[PredictionSource] = None,
    id_generator: Optional[IdGenerator] = None,
    capacity_minutes: float = DAY_CAPACITY_MINUTES,
    fallback_minutes: float = FALLBACK_ESTIMATE_MINUTES,
    limit: int = MAX_RECOMMENDATIONS,
) -> list[Recommendation]:
    """
    Build recommendations for one owner and window.

    `predictions` may be a list or a zero-argument callable (in-process engine
    call or HTTP fetch); if the callable raises, the prediction-driven rules are
    skipped and reassign/merge still run.
    """
    next_id = id_generator or sequential_ids()
    preds = load_predictions(predictions)
    avg_by_type = avg_real_by_type(completed)
    by_id = {t.id: t for t in pending}

    recommendations: list[Recommendation] = []
    for pred in preds:
        if not pred.affected_tasks:
            continue
        if pred.type in ("DELAY_PROBABILITY", "TYPE_OVERRUN") and pred.impact_level == "high":
            recommendations += _extend_time(pred, by_id, avg_by_type, fallback_minutes, next_id)
        if pred.type == "DEADLINE_BREACH":
            recommendations += _priority_change(pred, by_id, next_id)
        if pred.type == "DAY_SATURATION":
            recommendations += _reschedule(pred, pending, avg_by_type, fallback_minutes, capacity_minutes, next_id)

    recommendations += _reassign(pending, completed, next_id)
    recommendations += _merge(pending, fallback_minutes, next_id)

    recommendations.sort(key=lambda r: r.confidence, reverse=True)
    return recommendations[:limit]
