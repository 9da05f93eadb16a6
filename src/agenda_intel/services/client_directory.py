"""
Client directory: which clients are high-value (VIP).

Consumed only as the Priority Engine's client_is_vip input.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from agenda_intel.db.tasks_repo import get_vip_client_ids

logger = logging.getLogger(__name__)


class ClientDirectory:
    """VIP lookups for one owner, loaded once per request."""

    def __init__(self, owner_id: str) -> None:
        self.owner_id = owner_id
        try:
            self._vip_ids = get_vip_client_ids(owner_id)
        except SQLAlchemyError as e:
            logger.warning("Client directory unavailable for %s, treating all clients as non-VIP: %s", owner_id, e)
            self._vip_ids = set()

    def is_vip_client(self, client_id: Optional[str]) -> bool:
        return bool(client_id) and client_id in self._vip_ids
