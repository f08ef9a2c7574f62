from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends

from appointment_desk.clients.backend import BackendClient, BackendGateway
from appointment_desk.config import Settings, get_settings
from appointment_desk.services import (
    AppointmentService,
    AppointmentStore,
    MockBackend,
    MutationGuard,
    RefreshCoordinator,
    ScheduleAggregator,
    StatusController,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_gateway_cached() -> BackendGateway:
    settings = get_settings()
    if settings.use_mock_data or not settings.backend_base_url:
        logger.info("Using in-memory mock backend")
        return MockBackend()
    return BackendClient(
        str(settings.backend_base_url),
        timeout=settings.backend_timeout,
        token=settings.backend_token,
    )


@lru_cache(maxsize=1)
def get_store_cached() -> AppointmentStore:
    return AppointmentStore()


@lru_cache(maxsize=1)
def get_guard_cached() -> MutationGuard:
    return MutationGuard()


def get_gateway() -> BackendGateway:
    return get_gateway_cached()


def get_store() -> AppointmentStore:
    return get_store_cached()


def get_guard() -> MutationGuard:
    return get_guard_cached()


def get_appointment_service(
    gateway: BackendGateway = Depends(get_gateway),
    store: AppointmentStore = Depends(get_store),
    guard: MutationGuard = Depends(get_guard),
) -> AppointmentService:
    return AppointmentService(gateway, store=store, guard=guard)


@lru_cache(maxsize=1)
def get_status_controller_cached() -> StatusController:
    service = AppointmentService(get_gateway_cached(), store=get_store_cached(), guard=get_guard_cached())
    return StatusController(service)


def get_status_controller() -> StatusController:
    return get_status_controller_cached()


def get_aggregator(settings: Settings = Depends(get_settings)) -> ScheduleAggregator:
    return ScheduleAggregator(
        day_start_hour=settings.day_view_start_hour,
        day_end_hour=settings.day_view_end_hour,
        business_hours=(settings.business_hours_start, settings.business_hours_end),
    )


@lru_cache(maxsize=128)
def get_refresh_coordinator_cached(business_id: str) -> RefreshCoordinator:
    settings = get_settings()
    return RefreshCoordinator(
        AppointmentService(get_gateway_cached(), store=get_store_cached(), guard=get_guard_cached()),
        business_id,
        focus_throttle_seconds=settings.focus_throttle_seconds,
        debounce_seconds=settings.refresh_debounce_seconds,
    )


def get_refresh_coordinator(business_id: str) -> RefreshCoordinator:
    return get_refresh_coordinator_cached(business_id)
