"""Projection of a flat appointment list onto calendar grids.

Every view bins appointments into fixed 30 minute slots keyed by the slot
start (``HH:MM``).  The key is ``floor(minutes_since_midnight / 30) * 30`` and
is derived the same way from a bare ``HH:mm`` time or from a combined ISO
date-time.  Appointments whose time cannot be parsed are kept out of the slot
grid but never break the rest of the aggregation.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import date, datetime, timedelta
from itertools import groupby
from typing import DefaultDict, Iterable, List, Optional, Tuple, Union

from appointment_desk.schemas.appointment import Appointment, AppointmentStatus
from appointment_desk.schemas.calendar import (
    DateGroup,
    DayView,
    MonthDayCell,
    MonthView,
    SlotPlaceholder,
    StatusCounts,
    TimelineView,
    TimeSlot,
    WeekDay,
    WeekView,
)

logger = logging.getLogger(__name__)

SLOT_MINUTES = 30
WEEK_VISIBLE_LIMIT = 3
MONTH_DOT_LIMIT = 3
MONTH_GRID_DAYS = 42
WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")

DateLike = Union[date, str]


def _parse_iso_datetime(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def minutes_since_midnight(value: Optional[str]) -> Optional[int]:
    """Return minutes since midnight for ``HH:mm`` or an ISO date-time."""

    if not value:
        return None
    text = value.strip()
    match = _TIME_PATTERN.match(text)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return hours * 60 + minutes
    if "T" in text or " " in text:
        parsed = _parse_iso_datetime(text)
        if parsed is not None:
            return parsed.hour * 60 + parsed.minute
    return None


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def bucket_key(value: Optional[str]) -> Optional[str]:
    minutes = minutes_since_midnight(value)
    if minutes is None:
        return None
    return format_minutes((minutes // SLOT_MINUTES) * SLOT_MINUTES)


def split_date_time(value: str) -> Tuple[str, str]:
    """Split a combined ISO date-time into ``(YYYY-MM-DD, HH:mm)``.

    The wall-clock values of the input are used as-is, no timezone
    conversion happens.
    """

    parsed = _parse_iso_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid date-time value: {value!r}")
    return parsed.date().isoformat(), parsed.strftime("%H:%M")


def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def week_start(value: DateLike) -> date:
    """Monday of the week containing ``value`` (Sunday belongs to the week before)."""

    day = to_date(value)
    return day - timedelta(days=day.weekday())


def month_grid_start(year: int, month: int) -> date:
    """Sunday on or before the first day of the month."""

    first = date(year, month, 1)
    return first - timedelta(days=(first.weekday() + 1) % 7)


def status_counts(appointments: Iterable[Appointment]) -> StatusCounts:
    counts = StatusCounts()
    for appointment in appointments:
        if appointment.status == AppointmentStatus.BOOKED:
            counts.booked += 1
        elif appointment.status == AppointmentStatus.COMPLETED:
            counts.completed += 1
        elif appointment.status == AppointmentStatus.CANCELED:
            counts.canceled += 1
        elif appointment.status == AppointmentStatus.NO_SHOW:
            counts.no_show += 1
    return counts


def _time_sort_key(appointment: Appointment) -> Tuple[int, str]:
    minutes = minutes_since_midnight(appointment.time)
    return (minutes if minutes is not None else 24 * 60, appointment.id)


def sort_for_list(appointments: Iterable[Appointment]) -> List[Appointment]:
    """Newest date first. Same-date appointments keep their incoming order."""

    return sorted(appointments, key=lambda item: item.date, reverse=True)


def sort_for_management(appointments: Iterable[Appointment]) -> List[Appointment]:
    """Oldest date first, then time of day. A missing time counts as midnight."""

    def _key(item: Appointment) -> Tuple[str, int]:
        return item.date, minutes_since_midnight(item.time) or 0

    return sorted(appointments, key=_key)


def search_appointments(appointments: Iterable[Appointment], query: Optional[str]) -> List[Appointment]:
    """Match customer name and service name case-insensitively, phone as typed."""

    items = list(appointments)
    if not query or not query.strip():
        return items
    lowered = query.lower()
    return [
        item
        for item in items
        if lowered in (item.customer_name or "").lower()
        or lowered in (item.service_name or "").lower()
        or query in (item.customer_phone or "")
    ]


def upcoming(appointments: Iterable[Appointment], now: datetime) -> List[Appointment]:
    """Booked appointments scheduled strictly after ``now``."""

    result: List[Appointment] = []
    for item in appointments:
        if item.status != AppointmentStatus.BOOKED:
            continue
        try:
            scheduled = datetime.fromisoformat(f"{item.date}T{item.time or '00:00'}")
        except ValueError:
            logger.warning("Appointment %s has an unparseable date/time", item.id)
            continue
        if scheduled > now:
            result.append(item)
    return result


def group_by_date(appointments: Iterable[Appointment], *, descending: bool = False) -> List[DateGroup]:
    ordered = sort_for_list(appointments) if descending else sort_for_management(appointments)
    return [
        DateGroup(date=day, appointments=list(items))
        for day, items in groupby(ordered, key=lambda item: item.date)
    ]


class ScheduleAggregator:
    """Builds the day, week, month and timeline calendar projections."""

    def __init__(
        self,
        *,
        day_start_hour: int = 8,
        day_end_hour: int = 20,
        business_hours: Tuple[str, str] = ("09:00", "17:00"),
    ) -> None:
        if day_end_hour < day_start_hour:
            raise ValueError("day_end_hour must not be before day_start_hour")
        self._day_start_hour = day_start_hour
        self._day_end_hour = day_end_hour
        self._business_hours = business_hours

    @staticmethod
    def _build_slots(
        day: date,
        start_minutes: int,
        end_minutes: int,
        now: Optional[datetime],
    ) -> List[TimeSlot]:
        now_minutes: Optional[int] = None
        if now is not None and now.date() == day:
            now_minutes = now.hour * 60 + now.minute

        slots: List[TimeSlot] = []
        for start in range(start_minutes, end_minutes + 1, SLOT_MINUTES):
            key = format_minutes(start)
            slots.append(
                TimeSlot(
                    key=key,
                    date_time=f"{day.isoformat()}T{key}:00",
                    is_current=now_minutes is not None and start <= now_minutes < start + SLOT_MINUTES,
                )
            )
        return slots

    def _bin_day(
        self,
        appointments: Iterable[Appointment],
        day: date,
        start_minutes: int,
        end_minutes: int,
        now: Optional[datetime],
    ) -> Tuple[List[Appointment], List[TimeSlot], List[Appointment]]:
        day_text = day.isoformat()
        day_items = sorted(
            (item for item in appointments if item.date == day_text), key=_time_sort_key
        )
        slots = self._build_slots(day, start_minutes, end_minutes, now)
        by_key = {slot.key: slot for slot in slots}

        unslotted: List[Appointment] = []
        for item in day_items:
            key = bucket_key(item.time)
            if key is None:
                logger.warning("Appointment %s has an unparseable time %r", item.id, item.time)
                unslotted.append(item)
            elif key not in by_key:
                unslotted.append(item)
            else:
                by_key[key].appointments.append(item)
        return day_items, slots, unslotted

    def day_view(
        self,
        appointments: Iterable[Appointment],
        view_date: DateLike,
        *,
        now: Optional[datetime] = None,
        start_hour: Optional[int] = None,
        end_hour: Optional[int] = None,
    ) -> DayView:
        day = to_date(view_date)
        first_hour = self._day_start_hour if start_hour is None else start_hour
        last_hour = self._day_end_hour if end_hour is None else end_hour
        # the last hour keeps its half-hour slot
        _, slots, unslotted = self._bin_day(
            appointments,
            day,
            first_hour * 60,
            last_hour * 60 + SLOT_MINUTES,
            now,
        )
        return DayView(date=day.isoformat(), slots=slots, unslotted=unslotted)

    @staticmethod
    def placeholder(slot: TimeSlot) -> SlotPlaceholder:
        return SlotPlaceholder(date_time=slot.date_time)

    def timeline_view(
        self,
        appointments: Iterable[Appointment],
        view_date: DateLike,
        *,
        now: Optional[datetime] = None,
        business_hours: Optional[Tuple[str, str]] = None,
    ) -> TimelineView:
        opening, closing = business_hours or self._business_hours
        start_minutes = minutes_since_midnight(opening)
        end_minutes = minutes_since_midnight(closing)
        if start_minutes is None or end_minutes is None:
            raise ValueError(f"Invalid business hours: {opening!r} - {closing!r}")

        day = to_date(view_date)
        day_items, slots, unslotted = self._bin_day(
            appointments, day, (start_minutes // 60) * 60, (end_minutes // 60) * 60, now
        )
        return TimelineView(
            date=day.isoformat(),
            slots=slots,
            unslotted=unslotted,
            business_hours_start=opening,
            business_hours_end=closing,
            summary=status_counts(day_items),
        )

    def week_view(
        self,
        appointments: Iterable[Appointment],
        start_date: DateLike,
        *,
        today: Optional[date] = None,
    ) -> WeekView:
        first = week_start(start_date)
        days = [first + timedelta(days=offset) for offset in range(7)]
        wanted = {day.isoformat() for day in days}

        by_date: DefaultDict[str, List[Appointment]] = defaultdict(list)
        for item in appointments:
            if item.date in wanted:
                by_date[item.date].append(item)

        columns: List[WeekDay] = []
        for day in days:
            items = sorted(by_date.get(day.isoformat(), []), key=_time_sort_key)
            columns.append(
                WeekDay(
                    date=day.isoformat(),
                    weekday=WEEKDAY_NAMES[day.weekday()],
                    is_today=today == day,
                    appointments=items,
                    visible=items[:WEEK_VISIBLE_LIMIT],
                    overflow=max(0, len(items) - WEEK_VISIBLE_LIMIT),
                )
            )
        return WeekView(
            start_date=days[0].isoformat(),
            end_date=days[-1].isoformat(),
            days=columns,
        )

    def month_view(
        self,
        appointments: Iterable[Appointment],
        month_date: DateLike,
        *,
        today: Optional[date] = None,
    ) -> MonthView:
        anchor = to_date(month_date)
        first = month_grid_start(anchor.year, anchor.month)

        by_date: DefaultDict[str, List[Appointment]] = defaultdict(list)
        for item in appointments:
            by_date[item.date].append(item)

        cells: List[MonthDayCell] = []
        for offset in range(MONTH_GRID_DAYS):
            day = first + timedelta(days=offset)
            items = by_date.get(day.isoformat(), [])
            cells.append(
                MonthDayCell(
                    date=day.isoformat(),
                    in_month=day.month == anchor.month,
                    is_today=today == day,
                    counts=status_counts(items),
                    total=len(items),
                    overflow=max(0, len(items) - MONTH_DOT_LIMIT),
                )
            )
        return MonthView(year=anchor.year, month=anchor.month, cells=cells)
