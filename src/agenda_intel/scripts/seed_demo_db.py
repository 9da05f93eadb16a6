"""
Seed the app DB with a demo agenda.

Usage (from repo root):
  PYTHONPATH=src python -m agenda_intel.scripts.seed_demo_db

Ensures the tasks and clients tables exist and upserts the demo owner's tasks
with dates relative to today, so calendar risk, predictions and
recommendations all have data to show.
"""

import logging
import sys

from agenda_intel.db.tasks_repo import ensure_tables, upsert_clients, upsert_tasks
from agenda_intel.services.demo_seed_data import DEMO_OWNER_ID, get_demo_clients, get_demo_tasks

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main() -> int:
    owner_id = DEMO_OWNER_ID
    logger.info("Seeding demo agenda for owner_id=%s", owner_id)

    ensure_tables()
    clients = upsert_clients(owner_id, get_demo_clients())
    tasks = upsert_tasks(owner_id, get_demo_tasks())
    logger.info("Upserted %d clients and %d tasks", clients, tasks)

    logger.info("Seed complete. APIs will serve owner %s from DB.", owner_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
