from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from appointment_desk.schemas.appointment import Appointment

logger = logging.getLogger(__name__)


class AppointmentStore:
    """Holds the last fetched appointment collection for each business.

    A snapshot is either the full list returned by the backend or absent.
    Nothing patches a snapshot in place: callers replace it with ``set`` or
    drop it with ``invalidate`` and refetch.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, List[Appointment]] = {}

    def get(self, business_id: str) -> Optional[List[Appointment]]:
        snapshot = self._snapshots.get(str(business_id))
        return list(snapshot) if snapshot is not None else None

    def set(self, business_id: str, appointments: Iterable[Appointment]) -> List[Appointment]:
        unique: Dict[str, Appointment] = {}
        for appointment in appointments:
            unique[appointment.id] = appointment
        snapshot = list(unique.values())
        self._snapshots[str(business_id)] = snapshot
        logger.debug("Cached %s appointments for business %s", len(snapshot), business_id)
        return list(snapshot)

    def invalidate(self, business_id: str | None = None) -> None:
        if business_id is None:
            self._snapshots.clear()
            logger.debug("Cleared all cached appointment snapshots")
            return
        self._snapshots.pop(str(business_id), None)
        logger.debug("Cleared cached appointments for business %s", business_id)

    def cached_businesses(self) -> List[str]:
        return list(self._snapshots)
