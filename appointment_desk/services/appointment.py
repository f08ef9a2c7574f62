from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set

from pydantic import ValidationError

from appointment_desk.clients.backend import BackendGateway
from appointment_desk.schemas.appointment import Appointment, AppointmentStatus
from appointment_desk.schemas.calendar import StatusCounts
from appointment_desk.services.calendar import split_date_time, status_counts
from appointment_desk.services.exceptions import (
    AppointmentNotFoundError,
    AppointmentValidationError,
    DownstreamServiceError,
    MutationInProgressError,
    ServiceError,
    is_rate_limited,
)
from appointment_desk.services.store import AppointmentStore

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60
REQUIRED_PAYLOAD_FIELDS = ("business", "client", "service", "date", "time", "durationMinutes")


class FetchState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    FAILED = "failed"


class FetchErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    GATEWAY = "gateway"


@dataclass
class FetchResult:
    """Outcome of a list read: fresh data, stale cached data, or a failure."""

    state: FetchState
    items: List[Appointment] = field(default_factory=list)
    error_kind: Optional[FetchErrorKind] = None
    error: Optional[Exception] = None

    @property
    def is_fresh(self) -> bool:
        return self.state == FetchState.FRESH


def _classify(exc: Exception) -> FetchErrorKind:
    return FetchErrorKind.RATE_LIMITED if is_rate_limited(exc) else FetchErrorKind.GATEWAY


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def _nested_id(value: Any) -> Any:
    if isinstance(value, Mapping):
        return value.get("id") or value.get("_id")
    return None


def build_create_payload(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Resolve the backend create payload from loosely named input fields.

    Raises ``AppointmentValidationError`` when any identifier or the
    scheduled date/time cannot be resolved.
    """

    business_id = _first_present(data, "business_id", "businessId", "business")
    if not business_id:
        raise AppointmentValidationError("Business ID is required in appointment data", ["business"])

    client_id = _first_present(data, "client", "customer_id", "customerId", "client_id", "clientId")
    if not client_id:
        client_id = _nested_id(data.get("customer"))
    if not client_id:
        raise AppointmentValidationError(
            "Client ID is required but not found in appointment data", ["client"]
        )

    service_id = _first_present(data, "service", "service_id", "serviceId")
    if not service_id:
        service_id = _nested_id(data.get("selected_service") or data.get("selectedService"))
    if not service_id:
        raise AppointmentValidationError(
            "Service ID is required but not found in appointment data", ["service"]
        )

    date_time = _first_present(data, "date_time", "dateTime")
    if date_time:
        try:
            date, time = split_date_time(str(date_time))
        except ValueError as exc:
            raise AppointmentValidationError(str(exc), ["date", "time"]) from exc
    elif data.get("date") and data.get("time"):
        date, time = str(data["date"]), str(data["time"])
    else:
        raise AppointmentValidationError(
            "Either dateTime or both date and time must be provided", ["date", "time"]
        )

    payload: Dict[str, Any] = {
        "business": str(business_id),
        "client": str(client_id),
        "service": str(service_id),
        "date": date,
        "time": time,
        "durationMinutes": _first_present(data, "duration_minutes", "durationMinutes", "duration")
        or DEFAULT_DURATION_MINUTES,
    }
    if data.get("notes"):
        payload["notes"] = data["notes"]

    missing = [name for name in REQUIRED_PAYLOAD_FIELDS if not payload.get(name)]
    if missing:
        raise AppointmentValidationError(
            f"Missing required fields in payload: {', '.join(missing)}", missing
        )
    return payload


class MutationGuard:
    """Tracks appointment ids with a mutation in flight.

    One guard is shared by every service instance that talks to the same
    backend so overlapping requests on one id are detected.
    """

    def __init__(self) -> None:
        self._in_flight: Set[str] = set()

    def is_pending(self, appointment_id: str) -> bool:
        return str(appointment_id) in self._in_flight

    @contextmanager
    def hold(self, appointment_id: str, action: str = "change") -> Iterator[None]:
        key = str(appointment_id)
        if key in self._in_flight:
            logger.warning("Rejecting %s for %s: another change is in flight", action, key)
            raise MutationInProgressError(key, action)
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)


class AppointmentService:
    """Appointment reads and mutations coordinated with the local cache.

    List reads degrade to the cached snapshot (or an empty list) when the
    backend fails. Mutations and single-record lookups propagate failures.
    Every successful mutation invalidates the whole cache.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        *,
        store: AppointmentStore | None = None,
        guard: MutationGuard | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._gateway = gateway
        self._store = store if store is not None else AppointmentStore()
        self._guard = guard if guard is not None else MutationGuard()
        self._clock = clock

    @property
    def store(self) -> AppointmentStore:
        return self._store

    @property
    def guard(self) -> MutationGuard:
        return self._guard

    def is_pending(self, appointment_id: str) -> bool:
        return self._guard.is_pending(appointment_id)

    @staticmethod
    def _parse(record: Any) -> Appointment:
        try:
            return Appointment.model_validate(record)
        except ValidationError as exc:
            raise ServiceError("Backend returned a malformed appointment", cause=exc) from exc

    def _parse_many(self, records: List[Any]) -> List[Appointment]:
        parsed: List[Appointment] = []
        for record in records:
            try:
                parsed.append(Appointment.model_validate(record))
            except ValidationError:
                logger.warning("Skipping malformed appointment record: %s", record)
        return parsed

    async def load(self, business_id: str, force_refresh: bool = False) -> FetchResult:
        if not business_id:
            raise AppointmentValidationError("Business ID is required", ["business"])

        previous = self._store.get(business_id)
        if force_refresh:
            self._store.invalidate(business_id)
        elif previous is not None:
            return FetchResult(FetchState.FRESH, previous)

        try:
            records = await self._gateway.fetch_appointments(business_id)
        except ServiceError as exc:
            kind = _classify(exc)
            if kind == FetchErrorKind.RATE_LIMITED and previous is not None:
                logger.warning("Rate limited while refreshing business %s; keeping cached data", business_id)
                self._store.set(business_id, previous)
                return FetchResult(FetchState.STALE, previous, kind, exc)
            if not force_refresh and previous is not None:
                logger.warning("Falling back to cached appointments for business %s: %s", business_id, exc)
                return FetchResult(FetchState.STALE, previous, kind, exc)
            logger.error("Error getting all appointments for business %s: %s", business_id, exc)
            return FetchResult(FetchState.FAILED, [], kind, exc)

        appointments = self._store.set(business_id, self._parse_many(records))
        return FetchResult(FetchState.FRESH, appointments)

    async def get_all(self, business_id: str, force_refresh: bool = False) -> List[Appointment]:
        result = await self.load(business_id, force_refresh=force_refresh)
        return result.items

    async def get_by_date_range(self, business_id: str, start_date: str, end_date: str) -> List[Appointment]:
        appointments = await self.get_all(business_id)
        return [item for item in appointments if start_date <= item.date <= end_date]

    async def get_for_date(self, business_id: str, day: str) -> List[Appointment]:
        appointments = await self.get_all(business_id)
        return [item for item in appointments if item.date == day]

    async def get_today(self, business_id: str) -> List[Appointment]:
        return await self.get_for_date(business_id, self._clock().date().isoformat())

    async def get_tomorrow(self, business_id: str) -> List[Appointment]:
        tomorrow = self._clock().date() + timedelta(days=1)
        return await self.get_for_date(business_id, tomorrow.isoformat())

    async def get_by_status(self, business_id: str, status: AppointmentStatus | str) -> List[Appointment]:
        wanted = AppointmentStatus(status)
        appointments = await self.get_all(business_id)
        return [item for item in appointments if item.status == wanted]

    async def status_counts(self, business_id: str, day: str | None = None) -> StatusCounts:
        target = day or self._clock().date().isoformat()
        return status_counts(await self.get_for_date(business_id, target))

    async def get_by_id(self, appointment_id: str, business_id: str | None = None) -> Appointment:
        try:
            record = await self._gateway.fetch_appointment_by_id(appointment_id)
            return self._parse(record)
        except DownstreamServiceError as exc:
            logger.warning("Direct lookup of appointment %s failed: %s", appointment_id, exc)
            match = await self._scan_for(appointment_id, business_id)
            if match is not None:
                return match
            if exc.is_not_found:
                raise AppointmentNotFoundError(appointment_id, cause=exc) from exc
            raise

    async def _scan_for(self, appointment_id: str, business_id: str | None) -> Optional[Appointment]:
        if business_id:
            candidates = await self.get_all(business_id)
        else:
            candidates = [
                item
                for cached in self._store.cached_businesses()
                for item in self._store.get(cached) or []
            ]
        for item in candidates:
            if item.id == str(appointment_id):
                return item
        return None

    async def create(self, data: Mapping[str, Any]) -> Appointment:
        payload = build_create_payload(data)
        logger.info(
            "Creating appointment for business %s on %s %s",
            payload["business"],
            payload["date"],
            payload["time"],
        )
        record = await self._gateway.create_appointment(payload)
        self._store.invalidate()
        return self._parse(record)

    async def update(self, appointment_id: str, data: Mapping[str, Any]) -> Appointment:
        payload = dict(data)
        if "duration_minutes" in payload:
            payload["durationMinutes"] = payload.pop("duration_minutes")
        logger.info("Updating appointment %s", appointment_id)
        with self._guard.hold(appointment_id, "update"):
            record = await self._gateway.update_appointment(appointment_id, payload)
        self._store.invalidate()
        return self._parse(record)

    async def delete(self, appointment_id: str) -> None:
        logger.info("Deleting appointment %s", appointment_id)
        with self._guard.hold(appointment_id, "delete"):
            await self._gateway.delete_appointment(appointment_id)
        self._store.invalidate()

    async def reschedule(self, appointment_id: str, new_date_time: str) -> Appointment:
        try:
            date, time = split_date_time(new_date_time)
        except ValueError as exc:
            raise AppointmentValidationError(str(exc), ["date", "time"]) from exc
        logger.info("Rescheduling appointment %s to %s %s", appointment_id, date, time)
        with self._guard.hold(appointment_id, "reschedule"):
            record = await self._gateway.reschedule_appointment(
                appointment_id, {"dateTime": new_date_time, "date": date, "time": time}
            )
        self._store.invalidate()
        return self._parse(record)

    async def set_status(self, appointment_id: str, status: AppointmentStatus | str) -> Appointment:
        value = AppointmentStatus(status).value
        logger.info("Setting status of appointment %s to %s", appointment_id, value)
        with self._guard.hold(appointment_id, "status change"):
            record = await self._gateway.set_appointment_status(appointment_id, value)
        self._store.invalidate()
        return self._parse(record)
