"""
Priority Engine: deterministic, additive scoring into CRITICAL / IMPORTANT / NORMAL.

Factors (independent, none suppresses another):
- time pressure: due by end of today +40, within 24h +30, within 72h +15
- revenue: source_module == "SALE" +20
- type/SLA: positive sla_minutes +20, else CALL/MEETING +10, else +5
- risk: caller-supplied risk_detected +20
- client: caller-supplied client_is_vip +20

score > 80 is CRITICAL, 40..80 IMPORTANT, below 40 NORMAL.
"""

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel

from agenda_intel.models import PriorityScore, PriorityTier
from agenda_intel.services.timeutil import end_of_day, parse_instant, parse_minutes, to_local_naive

REVENUE_SOURCE = "SALE"
INTERACTIVE_TYPES = frozenset({"CALL", "MEETING"})


def time_pressure_points(due_date: Optional[datetime], now: datetime) -> int:
    if due_date is None:
        return 0
    now = to_local_naive(now)
    if due_date <= end_of_day(now):
        return 40
    if due_date - now <= timedelta(hours=24):
        return 30
    if due_date - now <= timedelta(hours=72):
        return 15
    return 0


def revenue_points(source_module: Optional[str]) -> int:
    return 20 if source_module == REVENUE_SOURCE else 0


def type_points(task_type: Optional[str], sla_minutes: Optional[float]) -> int:
    if sla_minutes is not None and sla_minutes > 0:
        return 20
    if task_type in INTERACTIVE_TYPES:
        return 10
    return 5


def classify(score: int) -> PriorityTier:
    if score > 80:
        return "CRITICAL"
    if score >= 40:
        return "IMPORTANT"
    return "NORMAL"


def compute_priority(
    task: BaseModel | Mapping[str, Any],
    now: Optional[datetime] = None,
    client_is_vip: bool = False,
    risk_detected: bool = False,
) -> PriorityScore:
    raw = task.model_dump() if isinstance(task, BaseModel) else task
    now = now or datetime.now()
    score = (
        time_pressure_points(parse_instant(raw.get("due_date")), now)
        + revenue_points(raw.get("source_module"))
        + type_points(raw.get("type"), parse_minutes(raw.get("sla_minutes")))
        + (20 if risk_detected else 0)
        + (20 if client_is_vip else 0)
    )
    return PriorityScore(score=score, priority=classify(score))
