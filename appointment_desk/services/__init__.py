"""Service package public API definitions.

The HTTP client imports ``appointment_desk.services.exceptions``, which runs
this module first. Importing the service implementations eagerly here would
pull the client back in and create a circular import, so they are resolved
lazily on first attribute access.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "AppointmentService",
    "AppointmentStore",
    "MockBackend",
    "MutationGuard",
    "RefreshCoordinator",
    "ScheduleAggregator",
    "StatusController",
]

_SERVICE_MODULES = {
    "AppointmentService": "appointment",
    "AppointmentStore": "store",
    "MockBackend": "mock_store",
    "MutationGuard": "appointment",
    "RefreshCoordinator": "refresh",
    "ScheduleAggregator": "calendar",
    "StatusController": "status",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .appointment import AppointmentService as AppointmentService
    from .appointment import MutationGuard as MutationGuard
    from .calendar import ScheduleAggregator as ScheduleAggregator
    from .mock_store import MockBackend as MockBackend
    from .refresh import RefreshCoordinator as RefreshCoordinator
    from .status import StatusController as StatusController
    from .store import AppointmentStore as AppointmentStore
