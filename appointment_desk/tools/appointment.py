from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from appointment_desk.dependencies.services import (
    get_appointment_service,
    get_refresh_coordinator,
    get_status_controller,
)
from appointment_desk.schemas.appointment import (
    Appointment,
    AppointmentCreateRequest,
    AppointmentListResponse,
    AppointmentStatus,
    AppointmentUpdateRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)
from appointment_desk.services import AppointmentService, RefreshCoordinator, StatusController
from appointment_desk.services.exceptions import (
    AppointmentNotFoundError,
    AppointmentValidationError,
    DownstreamServiceError,
    IllegalTransitionError,
    MutationInProgressError,
    RateLimitedError,
    ServiceError,
)

router = APIRouter()


def to_http_error(exc: ServiceError) -> HTTPException:
    if isinstance(exc, AppointmentValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, AppointmentNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (IllegalTransitionError, MutationInProgressError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, RateLimitedError):
        return HTTPException(status_code=429, detail=str(exc))
    if isinstance(exc, DownstreamServiceError) and exc.status_code in (400, 404, 409):
        return HTTPException(status_code=exc.status_code, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


@router.get("/business/{business_id}", response_model=AppointmentListResponse)
async def list_appointments(
    business_id: str,
    force_refresh: bool = False,
    service: AppointmentService = Depends(get_appointment_service),
):
    result = await service.load(business_id, force_refresh=force_refresh)
    return AppointmentListResponse(state=result.state.value, total=len(result.items), items=result.items)


@router.get("/business/{business_id}/range", response_model=List[Appointment])
async def list_appointments_in_range(
    business_id: str,
    start_date: str = Query(..., description="YYYY-MM-DD, inclusive"),
    end_date: str = Query(..., description="YYYY-MM-DD, inclusive"),
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.get_by_date_range(business_id, start_date, end_date)


@router.get("/business/{business_id}/today", response_model=List[Appointment])
async def list_today(
    business_id: str,
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.get_today(business_id)


@router.get("/business/{business_id}/tomorrow", response_model=List[Appointment])
async def list_tomorrow(
    business_id: str,
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.get_tomorrow(business_id)


@router.get("/business/{business_id}/status/{status}", response_model=List[Appointment])
async def list_by_status(
    business_id: str,
    status: AppointmentStatus,
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.get_by_status(business_id, status)


@router.get("/{appointment_id}", response_model=Appointment)
async def get_appointment(
    appointment_id: str,
    business_id: Optional[str] = None,
    service: AppointmentService = Depends(get_appointment_service),
):
    try:
        return await service.get_by_id(appointment_id, business_id=business_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("", response_model=Appointment, status_code=201)
async def create_appointment(
    req: AppointmentCreateRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    try:
        return await service.create(req.model_dump(exclude_none=True))
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.put("/{appointment_id}", response_model=Appointment)
async def update_appointment(
    appointment_id: str,
    req: AppointmentUpdateRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    try:
        return await service.update(appointment_id, req.model_dump(exclude_none=True))
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: str,
    service: AppointmentService = Depends(get_appointment_service),
):
    try:
        await service.delete(appointment_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return Response(status_code=204)


@router.patch("/{appointment_id}/reschedule", response_model=Appointment)
async def reschedule_appointment(
    appointment_id: str,
    req: RescheduleRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    try:
        return await service.reschedule(appointment_id, req.date_time)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.patch("/{appointment_id}/status", response_model=Appointment)
async def change_status(
    appointment_id: str,
    req: StatusUpdateRequest,
    business_id: Optional[str] = None,
    service: AppointmentService = Depends(get_appointment_service),
    controller: StatusController = Depends(get_status_controller),
):
    try:
        current = await service.get_by_id(appointment_id, business_id=business_id)
        return await controller.apply(current, req.status)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/business/{business_id}/refresh", response_model=AppointmentListResponse)
async def refresh_appointments(
    business_id: str,
    trigger: Literal["focus", "auto", "pull"] = "auto",
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
):
    if trigger == "pull":
        result = await coordinator.pull_to_refresh()
    elif trigger == "focus":
        result = await coordinator.on_focus()
        if result is None:
            items = coordinator.last_result.items if coordinator.last_result else []
            return AppointmentListResponse(state="throttled", total=len(items), items=items)
    else:
        result = await coordinator.refresh()
    return AppointmentListResponse(state=result.state.value, total=len(result.items), items=result.items)
