"""
Tasks API v1: calendar feed, priority, predictions, delay risk, recommendations,
conflicts, optimization, redistribution and performance.

Resource-centric URIs; version in path. Recommendations are only applied on
an explicit POST from the caller.
"""

from datetime import date, datetime
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query

from agenda_intel.models import Recommendation
from agenda_intel.services.task_service import (
    apply_recommendation,
    get_calendar_events,
    get_conflicts,
    get_delay_risk,
    get_optimization_suggestions,
    get_performance,
    get_predictions,
    get_recommendations,
    get_redistribution_suggestions,
    get_task_priority,
)

router = APIRouter()


@router.get("/calendar/{owner_id}")
def get_calendar(
    owner_id: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
) -> dict:
    """
    Calendar events for an owner in a date range, with risk flags and auto priority.
    Default range: today through the lookahead window.
    """
    events = get_calendar_events(owner_id, date_from, date_to)
    return {
        "owner_id": owner_id,
        "events": [e.model_dump(mode="json") for e in events],
        "count": len(events),
    }


@router.get("/priority/{owner_id}/{task_id}")
def get_priority(owner_id: str, task_id: str) -> dict:
    """Computed priority score and tier for one task."""
    result = get_task_priority(owner_id, task_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@router.get("/predictions/{owner_id}")
def get_predictions_endpoint(
    owner_id: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
) -> dict:
    """Operational predictions (delay, saturation, client risk, overrun, deadline breach). Read-only."""
    predictions = get_predictions(owner_id, date_from, date_to)
    return {"predictions": [p.model_dump(mode="json") for p in predictions]}


@router.get("/delay-risk/{owner_id}")
def get_delay_risk_endpoint(
    owner_id: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    capacity_minutes: Optional[float] = Query(default=None),
) -> list[dict[str, Any]]:
    """Days whose expected workload exceeds capacity."""
    return get_delay_risk(owner_id, date_from, date_to, capacity_minutes)


@router.get("/recommendations/{owner_id}")
def get_recommendations_endpoint(
    owner_id: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
) -> dict:
    """Ranked, advisory recommendations. Never auto-applied."""
    recommendations = get_recommendations(owner_id, date_from, date_to)
    return {"recommendations": [r.model_dump(mode="json") for r in recommendations]}


@router.post("/recommendations/{owner_id}/apply")
def apply_recommendation_endpoint(owner_id: str, body: Recommendation) -> dict:
    """Apply a recommendation the user confirmed."""
    try:
        tasks = apply_recommendation(owner_id, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "applied": bool(tasks),
        "recommendation_id": body.id,
        "tasks": [t.model_dump(mode="json") for t in tasks],
    }


@router.get("/conflicts/{owner_id}")
def get_conflicts_endpoint(
    owner_id: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
) -> dict:
    """Rule violations per task, scoped to each assignee's day."""
    violations = get_conflicts(owner_id, date_from, date_to)
    return {"violations": [v.model_dump(mode="json") for v in violations], "count": len(violations)}


@router.get("/optimization/{owner_id}")
def get_optimization_endpoint(
    owner_id: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
) -> dict:
    """Calendar optimization suggestions, most time saved first. Read-only."""
    suggestions = get_optimization_suggestions(owner_id, date_from, date_to)
    return {"suggestions": [s.model_dump(mode="json") for s in suggestions]}


@router.get("/redistribution-suggestions/{owner_id}")
def get_redistribution_endpoint(
    owner_id: str,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    capacity_minutes: Optional[float] = Query(default=None),
) -> dict:
    """Suggested reassignments from overloaded to available assignees. Never auto-applied."""
    suggestions = get_redistribution_suggestions(owner_id, date_from, date_to, capacity_minutes)
    return {"suggestions": [s.model_dump(mode="json") for s in suggestions]}


@router.get("/performance/{owner_id}")
def get_performance_endpoint(owner_id: str, day: Optional[date] = Query(default=None)) -> list[dict[str, Any]]:
    """Per-assignee performance for the tasks due on one day (default today)."""
    return [row.model_dump(mode="json") for row in get_performance(owner_id, day)]
