from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, computed_field

from appointment_desk.schemas.appointment import Appointment


class StatusCounts(BaseModel):
    """Appointment totals per lifecycle status."""

    booked: int = 0
    completed: int = 0
    canceled: int = 0
    no_show: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return self.booked + self.completed + self.canceled + self.no_show


class TimeSlot(BaseModel):
    key: str = Field(..., description="Slot start, HH:MM")
    date_time: str = Field(..., description="Slot start as YYYY-MM-DDTHH:MM:00")
    appointments: List[Appointment] = Field(default_factory=list)
    is_current: bool = False

    @computed_field
    @property
    def is_empty(self) -> bool:
        return not self.appointments


class SlotPlaceholder(BaseModel):
    """Synthetic record handed to the caller when an empty slot is tapped."""

    date_time: str


class DayView(BaseModel):
    date: str
    slots: List[TimeSlot]
    unslotted: List[Appointment] = Field(
        default_factory=list,
        description="Appointments of the day that could not be placed in a slot",
    )


class TimelineView(DayView):
    business_hours_start: str
    business_hours_end: str
    summary: StatusCounts


class WeekDay(BaseModel):
    date: str
    weekday: str
    is_today: bool = False
    appointments: List[Appointment] = Field(default_factory=list)
    visible: List[Appointment] = Field(default_factory=list)
    overflow: int = 0


class WeekView(BaseModel):
    start_date: str
    end_date: str
    days: List[WeekDay]


class MonthDayCell(BaseModel):
    date: str
    in_month: bool
    is_today: bool = False
    counts: StatusCounts = Field(default_factory=StatusCounts)
    total: int = 0
    overflow: int = 0


class MonthView(BaseModel):
    year: int
    month: int
    cells: List[MonthDayCell]


class DateGroup(BaseModel):
    date: str
    appointments: List[Appointment]

