from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AppointmentStatus(str, Enum):
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELED = "canceled"
    NO_SHOW = "no-show"


def _reference_id(value: Any) -> Optional[str]:
    """Return the id of a backend reference that may arrive populated."""

    if value is None:
        return None
    if isinstance(value, dict):
        inner = value.get("_id") or value.get("id")
        return str(inner) if inner is not None else None
    return str(value)


class Appointment(BaseModel):
    """Appointment as seen by the business-side client."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str
    business_id: Optional[str] = None
    customer_id: Optional[str] = None
    service_id: Optional[str] = None
    date: str = Field(..., description="Calendar date, YYYY-MM-DD")
    time: str = Field(default="", description="Local time of day, HH:mm (24h)")
    duration_minutes: int = Field(default=60, gt=0)
    status: AppointmentStatus = AppointmentStatus.BOOKED
    notes: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    service_name: Optional[str] = None
    service_price: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_backend_record(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        record: Dict[str, Any] = dict(data)

        if "id" not in record and "_id" in record:
            record["id"] = record["_id"]
        if record.get("id") is not None:
            record["id"] = str(record["id"])

        if "business_id" not in record:
            record["business_id"] = _reference_id(record.get("businessId") or record.get("business"))

        customer = record.get("user") or record.get("client") or record.get("customer")
        if "customer_id" not in record:
            record["customer_id"] = _reference_id(
                record.get("customerId") or record.get("clientId") or customer
            )
        if isinstance(customer, dict):
            record.setdefault("customer_name", customer.get("name"))
            record.setdefault("customer_phone", customer.get("phone"))

        service = record.get("service")
        if "service_id" not in record:
            record["service_id"] = _reference_id(record.get("serviceId") or service)
        if isinstance(service, dict):
            record.setdefault("service_name", service.get("name"))
            record.setdefault("service_price", service.get("price"))

        if "duration_minutes" not in record:
            duration = record.get("durationMinutes") or record.get("duration")
            if duration is not None:
                record["duration_minutes"] = duration

        for key in ("business_id", "customer_id", "service_id"):
            if record.get(key) is not None:
                record[key] = str(record[key])
        if record.get("time") is None:
            record["time"] = ""
        return record

    @property
    def date_time(self) -> str:
        return f"{self.date}T{self.time}" if self.time else self.date


class AppointmentCreateRequest(BaseModel):
    """Loose creation payload accepting the legacy field aliases."""

    model_config = ConfigDict(extra="allow")

    business_id: Optional[str] = None
    business: Optional[str] = None
    client: Optional[str] = None
    customer_id: Optional[str] = None
    client_id: Optional[str] = None
    customer: Optional[Dict[str, Any]] = None
    service: Optional[str] = None
    service_id: Optional[str] = None
    selected_service: Optional[Dict[str, Any]] = None
    date_time: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    duration_minutes: Optional[int] = None
    duration: Optional[int] = None
    notes: Optional[str] = None


class AppointmentUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    date: Optional[str] = None
    time: Optional[str] = None
    duration_minutes: Optional[int] = None
    service: Optional[str] = None
    notes: Optional[str] = None


class RescheduleRequest(BaseModel):
    date_time: str = Field(..., description="New ISO date-time, e.g. 2024-06-10T09:30")


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus


class AppointmentListResponse(BaseModel):
    state: str = Field(..., description="fresh | stale | failed")
    total: int
    items: List[Appointment]
