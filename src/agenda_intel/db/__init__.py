"""DB access for Agenda Intel."""

from agenda_intel.db.tasks_repo import (
    get_task,
    list_tasks,
    update_task,
    upsert_tasks,
)

__all__ = ["get_task", "list_tasks", "update_task", "upsert_tasks"]
