"""
Prediction Engine: probability-scored operational predictions from task history.

Inputs are already-fetched tasks: completed history, pending tasks inside the
lookahead window, and cancelled tasks. Produces:
- TYPE_OVERRUN: task types whose real average exceeds estimates
- DAY_SATURATION: due-days whose expected workload exceeds capacity
- CLIENT_RISK: clients with repeated cancellations
- DEADLINE_BREACH: tasks due within two days with a high delay probability
- DELAY_PROBABILITY: aggregate of tasks likely to run late

Stateless; each call closes over its own inputs.
"""

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any, Optional

from agenda_intel.models import AffectedTask, ImpactLevel, Prediction, Task
from agenda_intel.services.historical_stats import avg_real_by_type, expected_minutes
from agenda_intel.services.timeutil import day_key, to_local_naive

DAY_CAPACITY_MINUTES = 480
FALLBACK_ESTIMATE_MINUTES = 30
RATIO_RISK_THRESHOLD = 1.2
CLIENT_CANCELLATION_RISK_COUNT = 2
CLIENT_RISK_PROBABILITY = 0.6
DEADLINE_HORIZON = timedelta(days=2)
DELAY_REPORT_THRESHOLD = 0.5

_IMPACT_ORDER = {"high": 0, "medium": 1, "low": 2}


def to_impact(probability: float) -> ImpactLevel:
    if probability >= 0.7:
        return "high"
    if probability >= 0.4:
        return "medium"
    return "low"


def saturation_probability(total_minutes: float, capacity_minutes: float) -> float:
    ratio = total_minutes / capacity_minutes
    return min(1.0, 0.5 + (ratio - 1) * 0.5)


def overrun_ratio(avg: float, estimate: float) -> Optional[float]:
    """avg / estimate; a zero estimate is infinitely overrun, a negative one has no ratio."""
    if estimate < 0:
        return None
    if estimate == 0:
        return math.inf
    return avg / estimate


def _affected(pending: Sequence[Task], ids: Iterable[str]) -> list[AffectedTask]:
    wanted = set(ids)
    return [AffectedTask(id=t.id, title=t.title) for t in pending if t.id in wanted]


def _type_overrun(
    completed: Sequence[Task],
    pending: Sequence[Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float,
    ratio_threshold: float,
) -> list[Prediction]:
    # Worst ratio seen across the type's completed tasks, each against its own estimate
    ratio_by_type: dict[str, float] = {}
    for task in completed:
        avg = avg_by_type.get(task.type)
        if not avg:
            continue
        estimate = task.estimated_minutes if task.estimated_minutes is not None else fallback_minutes
        ratio = overrun_ratio(avg, estimate)
        if ratio is None:
            continue
        if ratio > ratio_by_type.get(task.type, 0):
            ratio_by_type[task.type] = ratio

    predictions = []
    for task_type, ratio in ratio_by_type.items():
        if ratio < ratio_threshold:
            continue
        ids = [t.id for t in pending if t.type == task_type]
        if not ids:
            continue
        probability = min(1.0, (ratio - 1) * 0.5 + 0.5)
        if math.isinf(ratio):
            overrun = "far longer than their zero-minute estimate"
        else:
            overrun = f"{round((ratio - 1) * 100)}% longer than estimated"
        predictions.append(Prediction(
            type="TYPE_OVERRUN",
            title="Task type that usually runs long",
            description=(
                f'"{task_type}" tasks have taken on average {overrun}. '
                f"Consider a buffer for the {len(ids)} pending task(s)."
            ),
            probability=probability,
            impact_level=to_impact(probability),
            affected_tasks=_affected(pending, ids),
        ))
    return predictions


def _workload_by_due_day(
    pending: Sequence[Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float,
) -> tuple[dict[str, float], dict[str, list[str]]]:
    total_by_day: dict[str, float] = defaultdict(float)
    ids_by_day: dict[str, list[str]] = defaultdict(list)
    for task in pending:
        if task.due_date is None:
            continue
        key = day_key(task.due_date)
        total_by_day[key] += expected_minutes(task, avg_by_type, fallback_minutes)
        ids_by_day[key].append(task.id)
    return total_by_day, ids_by_day


def _day_saturation(
    pending: Sequence[Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float,
    capacity_minutes: float,
) -> list[Prediction]:
    total_by_day, ids_by_day = _workload_by_due_day(pending, avg_by_type, fallback_minutes)
    predictions = []
    for key, total in total_by_day.items():
        if total <= capacity_minutes:
            continue
        probability = saturation_probability(total, capacity_minutes) if capacity_minutes > 0 else 1.0
        predictions.append(Prediction(
            type="DAY_SATURATION",
            title="Day at risk of saturation",
            description=(
                f"{key} has {round(total)} min scheduled (capacity {round(capacity_minutes)} min). "
                f"Delay probability: {probability * 100:.0f}%."
            ),
            probability=probability,
            impact_level=to_impact(probability),
            affected_tasks=_affected(pending, ids_by_day[key]),
        ))
    return predictions


def _client_risk(
    pending: Sequence[Task],
    cancelled: Sequence[Task],
    cancellation_count: int,
) -> list[Prediction]:
    cancellations: dict[str, int] = defaultdict(int)
    for task in cancelled:
        if task.client_id:
            cancellations[task.client_id] += 1
    risky_clients = {client for client, n in cancellations.items() if n >= cancellation_count}
    if not risky_clients:
        return []
    ids = [t.id for t in pending if t.client_id and t.client_id in risky_clients]
    if not ids:
        return []
    return [Prediction(
        type="CLIENT_RISK",
        title="Clients with a troubled history",
        description=(
            f"{len(risky_clients)} client(s) with {cancellation_count}+ cancelled tasks. "
            f"{len(ids)} pending task(s) linked to them."
        ),
        probability=CLIENT_RISK_PROBABILITY,
        impact_level=to_impact(CLIENT_RISK_PROBABILITY),
        affected_tasks=_affected(pending, ids),
    )]


def _deadline_breach(
    pending: Sequence[Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float,
    ratio_threshold: float,
    now: datetime,
) -> list[Prediction]:
    predictions = []
    for task in pending:
        if task.due_date is None:
            continue
        estimate = expected_minutes(task, avg_by_type, fallback_minutes)
        avg = avg_by_type.get(task.type)
        if not avg:
            continue
        ratio = overrun_ratio(avg, estimate)
        if ratio is None or ratio < ratio_threshold:
            continue
        probability = min(1.0, 0.4 + (ratio - 1) * 0.5)
        due_in = task.due_date - now
        if timedelta(0) < due_in <= DEADLINE_HORIZON and probability >= DELAY_REPORT_THRESHOLD:
            predictions.append(Prediction(
                type="DEADLINE_BREACH",
                title="Deadline at risk",
                description=f'"{task.title}" is due soon and this task type usually exceeds its estimate.',
                probability=probability,
                impact_level=to_impact(probability),
                affected_tasks=_affected(pending, [task.id]),
            ))
    return predictions


def task_delay_probabilities(
    pending: Sequence[Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float = FALLBACK_ESTIMATE_MINUTES,
    ratio_threshold: float = RATIO_RISK_THRESHOLD,
) -> dict[str, float]:
    """Per-task delay probability for tasks whose type overruns; others are absent."""
    out: dict[str, float] = {}
    for task in pending:
        avg = avg_by_type.get(task.type)
        estimate = expected_minutes(task, avg_by_type, fallback_minutes)
        if not avg or estimate <= 0:
            continue
        ratio = avg / estimate
        if ratio < ratio_threshold:
            continue
        out[task.id] = min(1.0, 0.3 + (ratio - 1) * 0.4)
    return out


def _delay_probability(
    pending: Sequence[Task],
    avg_by_type: dict[str, float],
    fallback_minutes: float,
    ratio_threshold: float,
) -> list[Prediction]:
    probs = task_delay_probabilities(pending, avg_by_type, fallback_minutes, ratio_threshold)
    high = {task_id: p for task_id, p in probs.items() if p >= DELAY_REPORT_THRESHOLD}
    if not high:
        return []
    return [Prediction(
        type="DELAY_PROBABILITY",
        title="Per-task delay probability",
        description=(
            f"{len(high)} task(s) with a high delay probability based on real average duration "
            f"vs estimate (history per type)."
        ),
        probability=sum(high.values()) / len(high),
        impact_level="high",
        affected_tasks=_affected(pending, high),
    )]


def sort_predictions(predictions: list[Prediction]) -> list[Prediction]:
    """High impact first, then most probable first."""
    return sorted(predictions, key=lambda p: (_IMPACT_ORDER[p.impact_level], -p.probability))


def generate_predictions(
    completed: Sequence[Task],
    pending: Sequence[Task],
    cancelled: Sequence[Task] = (),
    now: Optional[datetime] = None,
    capacity_minutes: float = DAY_CAPACITY_MINUTES,
    fallback_minutes: float = FALLBACK_ESTIMATE_MINUTES,
    ratio_threshold: float = RATIO_RISK_THRESHOLD,
    cancellation_count: int = CLIENT_CANCELLATION_RISK_COUNT,
) -> list[Prediction]:
    """
    Compute all predictions for one owner and window.

    `pending` should already be restricted to the lookahead window; `completed`
    is the owner's full DONE history.
    """
    now = to_local_naive(now or datetime.now())
    avg_by_type = avg_real_by_type(completed)

    predictions: list[Prediction] = []
    predictions += _type_overrun(completed, pending, avg_by_type, fallback_minutes, ratio_threshold)
    predictions += _day_saturation(pending, avg_by_type, fallback_minutes, capacity_minutes)
    predictions += _client_risk(pending, cancelled, cancellation_count)
    predictions += _deadline_breach(pending, avg_by_type, fallback_minutes, ratio_threshold, now)
    predictions += _delay_probability(pending, avg_by_type, fallback_minutes, ratio_threshold)
    return sort_predictions(predictions)


def delay_risk_by_day(
    completed: Sequence[Task],
    pending: Sequence[Task],
    capacity_minutes: float = DAY_CAPACITY_MINUTES,
    fallback_minutes: float = FALLBACK_ESTIMATE_MINUTES,
) -> list[dict[str, Any]]:
    """Days whose expected workload exceeds capacity: [{day, probability, reason}], sorted by day."""
    capacity_minutes = max(0.0, capacity_minutes)
    avg_by_type = avg_real_by_type(completed)
    total_by_day, _ = _workload_by_due_day(pending, avg_by_type, fallback_minutes)
    result = []
    for key, total in total_by_day.items():
        if total <= capacity_minutes:
            continue
        if capacity_minutes > 0:
            ratio = total / capacity_minutes
            probability = saturation_probability(total, capacity_minutes)
            reason = (
                f"Expected {round(total)} min of work vs {round(capacity_minutes)} min capacity "
                f"({ratio * 100:.0f}% of day)."
            )
        else:
            probability = 1.0
            reason = f"Expected {round(total)} min of work with no capacity configured."
        result.append({"day": key, "probability": round(probability, 2), "reason": reason})
    return sorted(result, key=lambda d: d["day"])
