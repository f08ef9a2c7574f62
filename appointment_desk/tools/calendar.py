from datetime import date, datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from appointment_desk.dependencies.services import get_aggregator, get_appointment_service
from appointment_desk.schemas.calendar import (
    DateGroup,
    DayView,
    MonthView,
    StatusCounts,
    TimelineView,
    WeekView,
)
from appointment_desk.services import AppointmentService, ScheduleAggregator
from appointment_desk.services.calendar import group_by_date, search_appointments, to_date, upcoming

router = APIRouter()


def _parse_day(value: Optional[str]) -> date:
    if not value:
        return datetime.now().date()
    try:
        return to_date(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="date must be provided as YYYY-MM-DD") from exc


@router.get("/{business_id}/day", response_model=DayView)
async def day_view(
    business_id: str,
    day: Optional[str] = Query(default=None, alias="date"),
    service: AppointmentService = Depends(get_appointment_service),
    aggregator: ScheduleAggregator = Depends(get_aggregator),
):
    target = _parse_day(day)
    appointments = await service.get_for_date(business_id, target.isoformat())
    return aggregator.day_view(appointments, target, now=datetime.now())


@router.get("/{business_id}/timeline", response_model=TimelineView)
async def timeline_view(
    business_id: str,
    day: Optional[str] = Query(default=None, alias="date"),
    opening: Optional[str] = None,
    closing: Optional[str] = None,
    service: AppointmentService = Depends(get_appointment_service),
    aggregator: ScheduleAggregator = Depends(get_aggregator),
):
    target = _parse_day(day)
    appointments = await service.get_for_date(business_id, target.isoformat())
    hours = (opening, closing) if opening and closing else None
    try:
        return aggregator.timeline_view(appointments, target, now=datetime.now(), business_hours=hours)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/{business_id}/week", response_model=WeekView)
async def week_view(
    business_id: str,
    start_date: Optional[str] = None,
    service: AppointmentService = Depends(get_appointment_service),
    aggregator: ScheduleAggregator = Depends(get_aggregator),
):
    target = _parse_day(start_date)
    appointments = await service.get_all(business_id)
    return aggregator.week_view(appointments, target, today=datetime.now().date())


@router.get("/{business_id}/month", response_model=MonthView)
async def month_view(
    business_id: str,
    month: Optional[str] = Query(default=None, description="Any date within the month"),
    service: AppointmentService = Depends(get_appointment_service),
    aggregator: ScheduleAggregator = Depends(get_aggregator),
):
    target = _parse_day(month)
    appointments = await service.get_all(business_id)
    return aggregator.month_view(appointments, target, today=datetime.now().date())


@router.get("/{business_id}/groups", response_model=List[DateGroup])
async def date_groups(
    business_id: str,
    order: Literal["asc", "desc"] = "asc",
    q: Optional[str] = Query(default=None, description="Customer name, service name or phone"),
    upcoming_only: bool = Query(default=False, alias="upcoming"),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = search_appointments(await service.get_all(business_id), q)
    if upcoming_only:
        appointments = upcoming(appointments, datetime.now())
    return group_by_date(appointments, descending=order == "desc")


@router.get("/{business_id}/summary", response_model=StatusCounts)
async def day_summary(
    business_id: str,
    day: Optional[str] = Query(default=None, alias="date"),
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.status_counts(business_id, _parse_day(day).isoformat())
