"""
Demo agenda for local runs and API tests.

Dates are relative to `now` so predictions and recommendations always have
something to show: CALL tasks historically overrun their estimate, one day
is saturated, and one client has repeated cancellations.
"""

from datetime import datetime, time, timedelta
from typing import Any, Optional

DEMO_OWNER_ID = "demo-owner"


def _at(day: datetime, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day.date(), time(hour, minute))


def get_demo_clients() -> list[dict[str, Any]]:
    return [
        {"id": "client-acme", "name": "Acme Corp", "is_vip": True},
        {"id": "client-globex", "name": "Globex", "is_vip": False},
        {"id": "client-initech", "name": "Initech", "is_vip": False},
    ]


def get_demo_tasks(now: Optional[datetime] = None) -> list[dict[str, Any]]:
    now = now or datetime.now()
    today = _at(now, 0)
    tomorrow = today + timedelta(days=1)
    busy_day = today + timedelta(days=3)
    history = today - timedelta(days=20)

    tasks: list[dict[str, Any]] = []

    # History: CALLs estimated at 30 min take 45; alice is slower than bob on CALLs
    for i, (assignee, minutes) in enumerate([("alice", 60), ("alice", 60), ("bob", 30), ("bob", 30)]):
        started = _at(history + timedelta(days=i), 10)
        tasks.append({
            "id": f"done-call-{i + 1}",
            "title": f"Follow-up call #{i + 1}",
            "status": "DONE",
            "type": "CALL",
            "estimated_minutes": 30,
            "assigned_to": assignee,
            "created_at": started - timedelta(days=1),
            "started_at": started,
            "completed_at": started + timedelta(minutes=minutes),
            "due_date": started,
        })
    for i in range(2):
        tasks.append({
            "id": f"cancelled-globex-{i + 1}",
            "title": f"Globex visit #{i + 1}",
            "status": "CANCELLED",
            "type": "MEETING",
            "client_id": "client-globex",
            "created_at": history,
            "due_date": history + timedelta(days=i),
        })

    # Pending agenda
    tasks += [
        {
            "id": "task-sale-call",
            "title": "Closing call with Acme",
            "status": "PENDING",
            "type": "CALL",
            "due_date": _at(tomorrow, 10),
            "start_at": _at(tomorrow, 10),
            "estimated_minutes": 30,
            "assigned_to": "alice",
            "client_id": "client-acme",
            "source_module": "SALE",
            "sla_minutes": 60,
            "priority": "MEDIUM",
            "created_at": now,
        },
        {
            "id": "task-call-2",
            "title": "Onboarding call",
            "status": "PENDING",
            "type": "CALL",
            "due_date": _at(tomorrow, 10, 15),
            "start_at": _at(tomorrow, 10, 15),
            "estimated_minutes": 30,
            "assigned_to": "alice",
            "priority": "LOW",
            "created_at": now,
        },
        {
            "id": "task-globex-meeting",
            "title": "Globex quarterly review",
            "status": "PENDING",
            "type": "MEETING",
            "due_date": _at(tomorrow, 15),
            "estimated_minutes": 60,
            "client_id": "client-globex",
            "priority": "MEDIUM",
            "created_at": now,
        },
        {
            "id": "task-delivery-1",
            "title": "Deliver hardware batch",
            "status": "PENDING",
            "type": "DELIVERY",
            "due_date": _at(busy_day, 9),
            "estimated_minutes": 200,
            "priority": "HIGH",
            "created_at": now,
        },
        {
            "id": "task-delivery-2",
            "title": "Deliver spare parts",
            "status": "PENDING",
            "type": "DELIVERY",
            "due_date": _at(busy_day, 13),
            "estimated_minutes": 200,
            "priority": "LOW",
            "created_at": now,
        },
        {
            "id": "task-admin",
            "title": "Prepare monthly report",
            "status": "PENDING",
            "type": "ADMIN",
            "due_date": _at(busy_day, 17),
            "estimated_minutes": 150,
            "priority": "MEDIUM",
            "created_at": now,
        },
    ]
    return tasks
