from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from appointment_desk.services.exceptions import DownstreamServiceError

SEED_BUSINESS_ID = "biz-1001"

# Mirrors the backend's own rules, which also tolerate a no-op change.
_SERVER_TRANSITIONS = {
    "booked": {"completed", "canceled", "no-show"},
    "completed": {"booked"},
    "canceled": {"booked"},
    "no-show": set(),
}

_REQUIRED_CREATE_FIELDS = ("business", "client", "service", "date", "time", "durationMinutes")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MockBackend:
    """In-memory stand-in for the booking backend used in mock mode and tests."""

    def __init__(self, records: Iterable[Dict[str, Any]] | None = None, *, seed: bool = True) -> None:
        self._counter = itertools.count(1)
        self._appointments: Dict[str, Dict[str, Any]] = {}
        if records is not None:
            for record in records:
                self._store(dict(record))
        elif seed:
            self._seed_defaults()

    def _next_id(self) -> str:
        return f"APT-{next(self._counter):05d}"

    def _store(self, record: Dict[str, Any]) -> Dict[str, Any]:
        record.setdefault("_id", self._next_id())
        record.setdefault("status", "booked")
        record.setdefault("durationMinutes", 60)
        record.setdefault("notes", "")
        self._appointments[str(record["_id"])] = record
        return record

    def _seed_defaults(self) -> None:
        seeds = [
            {
                "business": SEED_BUSINESS_ID,
                "user": {"_id": "cus-1", "name": "Alex Tan", "phone": "5550101"},
                "service": {"_id": "svc-101", "name": "Signature Haircut", "price": 38.0},
                "date": "2024-06-10",
                "time": "09:15",
                "durationMinutes": 30,
            },
            {
                "business": SEED_BUSINESS_ID,
                "user": {"_id": "cus-2", "name": "Jamie Lee", "phone": "5550102"},
                "service": {"_id": "svc-102", "name": "Beard Trim", "price": 18.0},
                "date": "2024-06-10",
                "time": "09:40",
                "durationMinutes": 20,
            },
            {
                "business": SEED_BUSINESS_ID,
                "user": {"_id": "cus-3", "name": "Priya Nair", "phone": "5550103"},
                "service": {"_id": "svc-101", "name": "Signature Haircut", "price": 38.0},
                "date": "2024-06-12",
                "time": "14:00",
                "durationMinutes": 30,
                "status": "completed",
            },
        ]
        for record in seeds:
            self._store(record)

    def _get(self, appointment_id: str) -> Dict[str, Any]:
        record = self._appointments.get(str(appointment_id))
        if record is None:
            raise DownstreamServiceError("HTTP 404: Appointment not found", status_code=404)
        return record

    def _has_conflict(self, business: str, date: str, time: str, *, exclude: Optional[str] = None) -> bool:
        return any(
            record["business"] == business
            and record["date"] == date
            and record["time"] == time
            and record["status"] != "canceled"
            and key != exclude
            for key, record in self._appointments.items()
        )

    async def fetch_appointments(self, business_id: str) -> List[Dict[str, Any]]:
        return [
            dict(record)
            for record in self._appointments.values()
            if str(record.get("business")) == str(business_id)
        ]

    async def fetch_appointment_by_id(self, appointment_id: str) -> Dict[str, Any]:
        return dict(self._get(appointment_id))

    async def create_appointment(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        missing = [field for field in _REQUIRED_CREATE_FIELDS if not payload.get(field)]
        if missing:
            raise DownstreamServiceError(
                f"HTTP 400: Missing required fields: {', '.join(missing)}", status_code=400
            )
        if self._has_conflict(payload["business"], payload["date"], payload["time"]):
            raise DownstreamServiceError(
                "HTTP 409: The requested timeslot is already booked", status_code=409
            )
        record = {
            "business": payload["business"],
            "user": payload["client"],
            "service": payload["service"],
            "date": payload["date"],
            "time": payload["time"],
            "durationMinutes": payload["durationMinutes"],
            "notes": payload.get("notes") or "",
            "status": "booked",
            "createdAt": _utc_now_iso(),
        }
        return dict(self._store(record))

    async def update_appointment(self, appointment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = self._get(appointment_id)
        for key, value in payload.items():
            if key in {"_id", "id", "status", "business"}:
                continue
            record[key] = value
        record["lastModified"] = _utc_now_iso()
        return dict(record)

    async def delete_appointment(self, appointment_id: str) -> None:
        self._get(appointment_id)
        del self._appointments[str(appointment_id)]

    async def set_appointment_status(self, appointment_id: str, status: str) -> Dict[str, Any]:
        record = self._get(appointment_id)
        current = record["status"]
        if status not in _SERVER_TRANSITIONS:
            raise DownstreamServiceError(f"HTTP 400: Invalid status '{status}'", status_code=400)
        if status != current and status not in _SERVER_TRANSITIONS[current]:
            raise DownstreamServiceError(
                f"HTTP 400: Invalid status transition: Cannot change from '{current}' to '{status}'",
                status_code=400,
            )
        record["status"] = status
        record["statusUpdatedAt"] = _utc_now_iso()
        return dict(record)

    async def reschedule_appointment(self, appointment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = self._get(appointment_id)
        date, time = payload.get("date"), payload.get("time")
        if not date or not time:
            raise DownstreamServiceError("HTTP 400: date and time are required", status_code=400)
        if self._has_conflict(record["business"], date, time, exclude=str(appointment_id)):
            raise DownstreamServiceError(
                "HTTP 409: The requested timeslot is already booked", status_code=409
            )
        record["date"] = date
        record["time"] = time
        record["lastModified"] = _utc_now_iso()
        return dict(record)

    async def close(self) -> None:
        return None
