from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List

from appointment_desk.schemas.appointment import Appointment, AppointmentStatus
from appointment_desk.services.appointment import AppointmentService
from appointment_desk.services.exceptions import IllegalTransitionError, TransitionInProgressError

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.BOOKED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.COMPLETED: frozenset({AppointmentStatus.BOOKED}),
    AppointmentStatus.CANCELED: frozenset({AppointmentStatus.BOOKED}),
    AppointmentStatus.NO_SHOW: frozenset(),
}

INITIAL_STATUS = AppointmentStatus.BOOKED

_ORDER = list(AppointmentStatus)


def allowed_targets(current: AppointmentStatus | str) -> List[AppointmentStatus]:
    """Targets reachable from ``current``, in declaration order."""

    reachable = TRANSITIONS[AppointmentStatus(current)]
    return [status for status in _ORDER if status in reachable]


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    return AppointmentStatus(target) in TRANSITIONS[AppointmentStatus(current)]


def ensure_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> None:
    if not can_transition(current, target):
        raise IllegalTransitionError(
            AppointmentStatus(current).value,
            AppointmentStatus(target).value,
            [status.value for status in allowed_targets(current)],
        )


class StatusController:
    """Applies status transitions, one in-flight change per appointment.

    The in-flight check uses the service's mutation guard, so edits,
    reschedules and deletes on the same id also block a status change.
    """

    def __init__(self, service: AppointmentService) -> None:
        self._service = service

    def is_pending(self, appointment_id: str) -> bool:
        return self._service.is_pending(appointment_id)

    def available_actions(self, appointment: Appointment) -> List[AppointmentStatus]:
        if self.is_pending(appointment.id):
            return []
        return allowed_targets(appointment.status)

    async def apply(self, appointment: Appointment, target: AppointmentStatus | str) -> Appointment:
        """Move ``appointment`` to ``target`` and return the backend's record."""

        target_status = AppointmentStatus(target)
        if self.is_pending(appointment.id):
            logger.warning("Ignoring status change for %s: another change is in flight", appointment.id)
            raise TransitionInProgressError(appointment.id)
        ensure_transition(appointment.status, target_status)

        updated = await self._service.set_status(appointment.id, target_status)

        if updated.status != target_status:
            logger.info(
                "Backend settled appointment %s on %s instead of requested %s",
                appointment.id,
                updated.status.value,
                target_status.value,
            )
        return updated
