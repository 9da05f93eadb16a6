"""
Task service: fetch from the task store, run the engines, apply confirmed recommendations.

The engines are pure; this is the only layer that reads settings or touches
the store and the calendar sync dispatcher.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional

from agenda_intel.config import get_settings
from agenda_intel.db.tasks_repo import (
    get_task,
    list_completed_tasks,
    list_tasks,
    list_tasks_in_range,
    update_task,
)
from agenda_intel.models import (
    STATUS_CANCELLED,
    STATUS_PENDING,
    CalendarEvent,
    ExtendTimeChange,
    MergeChange,
    OptimizationSuggestion,
    PerformanceRow,
    Prediction,
    PriorityChange,
    ReassignChange,
    Recommendation,
    RescheduleChange,
    Task,
    Violation,
    WorkforceSuggestion,
)
from agenda_intel.services.calendar_sync import SyncOperation, enqueue_sync
from agenda_intel.services.client_directory import ClientDirectory
from agenda_intel.services.conflict_rules import RulesConfig, evaluate_conflict_rules
from agenda_intel.services.event_normalizer import normalize_task
from agenda_intel.services.historical_stats import avg_real_by_type, expected_minutes
from agenda_intel.services.performance_report import build_performance
from agenda_intel.services.prediction_engine import delay_risk_by_day, generate_predictions
from agenda_intel.services.priority_engine import compute_priority
from agenda_intel.services.recommendation_engine import (
    IdGenerator,
    fetch_predictions_http,
    generate_recommendations,
)
from agenda_intel.services.risk_detector import detect_risks
from agenda_intel.services.schedule_optimizer import OptimizerConfig, compute_suggestions
from agenda_intel.services.timeutil import add_minutes, end_of_day, resolve_window, start_of_day
from agenda_intel.services.workforce import build_workforce_suggestions

logger = logging.getLogger(__name__)


def _window(now: datetime, date_from: Optional[datetime], date_to: Optional[datetime]) -> tuple[datetime, datetime]:
    return resolve_window(now, date_from, date_to, get_settings().lookahead_days)


def _pending_in_window(owner_id: str, start: datetime, end: datetime) -> list[Task]:
    return list_tasks(owner_id, status=STATUS_PENDING, due_from=start, due_to=end)


def build_calendar_events(tasks: list[Task], directory: ClientDirectory, now: datetime) -> list[CalendarEvent]:
    """Normalize tasks and annotate each event with its risk flags and priority tier."""
    capacity = get_settings().day_capacity_minutes
    events = [normalize_task(t, now) for t in tasks]
    risks = detect_risks(events, capacity_minutes=capacity)
    out = []
    for task, event in zip(tasks, events):
        flags = risks[event.id]
        score = compute_priority(
            task,
            now,
            client_is_vip=directory.is_vip_client(task.client_id),
            risk_detected=flags.detected,
        )
        out.append(event.model_copy(update={"risk": flags, "auto_priority": score.priority}))
    return out


def get_calendar_events(
    owner_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> list[CalendarEvent]:
    now = now or datetime.now()
    start, end = _window(now, date_from, date_to)
    tasks = list_tasks_in_range(owner_id, start, end)
    return build_calendar_events(tasks, ClientDirectory(owner_id), now)


def get_task_priority(owner_id: str, task_id: str, now: Optional[datetime] = None) -> Optional[dict[str, Any]]:
    """Priority of one task, with risk computed against the other tasks on its day."""
    now = now or datetime.now()
    task = get_task(owner_id, task_id)
    if task is None:
        return None
    event = normalize_task(task, now)
    day_tasks = list_tasks_in_range(owner_id, start_of_day(event.start), end_of_day(event.start))
    if all(t.id != task.id for t in day_tasks):
        day_tasks.append(task)
    events = [normalize_task(t, now) for t in day_tasks]
    flags = detect_risks(events, capacity_minutes=get_settings().day_capacity_minutes)[task.id]
    score = compute_priority(
        task,
        now,
        client_is_vip=ClientDirectory(owner_id).is_vip_client(task.client_id),
        risk_detected=flags.detected,
    )
    return {"task_id": task.id, "score": score.score, "priority": score.priority, "risk": flags.model_dump()}


def get_predictions(
    owner_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> list[Prediction]:
    settings = get_settings()
    now = now or datetime.now()
    start, end = _window(now, date_from, date_to)
    return generate_predictions(
        completed=list_completed_tasks(owner_id),
        pending=_pending_in_window(owner_id, start, end),
        cancelled=list_tasks(owner_id, status=STATUS_CANCELLED),
        now=now,
        capacity_minutes=settings.day_capacity_minutes,
        fallback_minutes=settings.fallback_estimate_minutes,
        ratio_threshold=settings.overrun_ratio_threshold,
        cancellation_count=settings.client_cancellation_risk_count,
    )


def get_delay_risk(
    owner_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    capacity_minutes: Optional[float] = None,
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    settings = get_settings()
    start, end = _window(now or datetime.now(), date_from, date_to)
    return delay_risk_by_day(
        completed=list_completed_tasks(owner_id),
        pending=_pending_in_window(owner_id, start, end),
        capacity_minutes=settings.day_capacity_minutes if capacity_minutes is None else capacity_minutes,
        fallback_minutes=settings.fallback_estimate_minutes,
    )


def get_recommendations(
    owner_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    now: Optional[datetime] = None,
    id_generator: Optional[IdGenerator] = None,
) -> list[Recommendation]:
    settings = get_settings()
    now = now or datetime.now()
    start, end = _window(now, date_from, date_to)

    if settings.predictions_url:
        def predictions() -> list[Prediction]:
            return fetch_predictions_http(
                settings.predictions_url, owner_id, start, end, timeout=settings.predictions_timeout_seconds
            )
    else:
        def predictions() -> list[Prediction]:
            return get_predictions(owner_id, start, end, now)

    return generate_recommendations(
        pending=_pending_in_window(owner_id, start, end),
        completed=list_completed_tasks(owner_id, assigned_only=True),
        predictions=predictions,
        id_generator=id_generator,
        capacity_minutes=settings.day_capacity_minutes,
        fallback_minutes=settings.fallback_estimate_minutes,
        limit=settings.max_recommendations,
    )


def _window_events(owner_id: str, date_from: Optional[datetime], date_to: Optional[datetime], now: datetime) -> list[CalendarEvent]:
    start, end = _window(now, date_from, date_to)
    return [normalize_task(t, now) for t in list_tasks_in_range(owner_id, start, end)]


def get_conflicts(
    owner_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> list[Violation]:
    """Per-assignee, per-day rule violations (overlap, margin, overload, working hours)."""
    settings = get_settings()
    config = RulesConfig(
        daily_hours_limit=settings.daily_hours_limit,
        working_hours_start=settings.working_hours_start,
        working_hours_end=settings.working_hours_end,
        min_gap_minutes=settings.min_gap_minutes,
    )
    return evaluate_conflict_rules(_window_events(owner_id, date_from, date_to, now or datetime.now()), config)


def get_optimization_suggestions(
    owner_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    now: Optional[datetime] = None,
    id_generator: Optional[IdGenerator] = None,
) -> list[OptimizationSuggestion]:
    settings = get_settings()
    config = OptimizerConfig(
        min_gap_minutes=settings.optimizer_min_gap_minutes,
        working_hours_start=settings.working_hours_start,
        working_hours_end=settings.working_hours_end,
        load_imbalance_threshold_minutes=settings.load_imbalance_threshold_minutes,
    )
    events = _window_events(owner_id, date_from, date_to, now or datetime.now())
    return compute_suggestions(events, config, id_generator)


def get_redistribution_suggestions(
    owner_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    capacity_minutes: Optional[float] = None,
    now: Optional[datetime] = None,
) -> list[WorkforceSuggestion]:
    """
    Reassignment suggestions from over-capacity assignees, lowest computed priority first.

    Capacity per assignee is the daily capacity times the number of days in the window.
    Assignees with completed history but no pending work in the window can receive tasks.
    """
    settings = get_settings()
    now = now or datetime.now()
    start, end = _window(now, date_from, date_to)
    per_day = settings.day_capacity_minutes if capacity_minutes is None else max(0.0, capacity_minutes)
    num_days = max(0, (end.date() - start.date()).days) + 1

    pending = _pending_in_window(owner_id, start, end)
    history = list_completed_tasks(owner_id)
    avg_by_type = avg_real_by_type(history)
    directory = ClientDirectory(owner_id)
    scores = {
        t.id: compute_priority(t, now, client_is_vip=directory.is_vip_client(t.client_id)).score
        for t in pending
    }
    suggestions = build_workforce_suggestions(
        pending,
        lambda t: expected_minutes(t, avg_by_type, settings.fallback_estimate_minutes),
        capacity_per_user=per_day * num_days,
        candidates=[t.assigned_to for t in history if t.assigned_to],
        priority_scores=scores,
        max_suggestions=settings.max_redistribution_suggestions,
    )
    logger.info("Redistribution for %s: %d suggestion(s) over %d day(s)", owner_id, len(suggestions), num_days)
    return suggestions


def get_performance(owner_id: str, day: Optional[date] = None, now: Optional[datetime] = None) -> list[PerformanceRow]:
    """Per-assignee performance over the tasks due on `day` (default today), any status."""
    now = now or datetime.now()
    anchor = datetime.combine(day, datetime.min.time()) if day else now
    tasks = list_tasks(owner_id, due_from=start_of_day(anchor), due_to=end_of_day(anchor))
    return build_performance(tasks, now)


def _merge_updates(owner_id: str, change: MergeChange) -> list[tuple[str, dict[str, Any]]]:
    """Lay the grouped tasks back-to-back from the slot start, in the suggested order."""
    if change.suggested_slot is None:
        return []
    fallback = get_settings().fallback_estimate_minutes
    cursor = change.suggested_slot.start_at
    updates = []
    for task_id in change.task_ids:
        task = get_task(owner_id, task_id)
        if task is None:
            continue
        minutes = task.estimated_minutes or fallback
        end = add_minutes(cursor, minutes)
        if end is None:
            logger.warning("Merge %s: slot for task %s leaves the datetime range, stopping", change.task_ids, task_id)
            break
        updates.append((task_id, {"start_at": cursor, "end_at": end}))
        cursor = end
    return updates


def change_to_updates(owner_id: str, recommendation: Recommendation) -> list[tuple[str, dict[str, Any]]]:
    """Translate a suggested change into (task_id, fields) updates for the task store."""
    change = recommendation.suggested_change
    if isinstance(change, RescheduleChange):
        fields = {k: v for k, v in (("due_date", change.due_date), ("start_at", change.start_at), ("end_at", change.end_at)) if v is not None}
        return [(change.task_id, fields)]
    if isinstance(change, ReassignChange):
        return [(change.task_id, {"assigned_to": change.assigned_to})]
    if isinstance(change, ExtendTimeChange):
        return [(change.task_id, {"estimated_minutes": change.estimated_minutes})]
    if isinstance(change, PriorityChange):
        return [(change.task_id, {"priority": change.priority})]
    if isinstance(change, MergeChange):
        return _merge_updates(owner_id, change)
    return []


def apply_recommendation(owner_id: str, recommendation: Recommendation) -> list[Task]:
    """
    Apply a caller-confirmed recommendation through the task store, then queue calendar sync.
    Returns the updated tasks; tasks that no longer exist are skipped.
    """
    updated: list[Task] = []
    for task_id, fields in change_to_updates(owner_id, recommendation):
        task = update_task(owner_id, task_id, fields)
        if task is None:
            logger.warning("Recommendation %s: task %s not found, skipped", recommendation.id, task_id)
            continue
        updated.append(task)
        enqueue_sync(task.id, owner_id, SyncOperation.UPDATE)
    logger.info("Applied recommendation %s (%s) to %d task(s)", recommendation.id, recommendation.type, len(updated))
    return updated
