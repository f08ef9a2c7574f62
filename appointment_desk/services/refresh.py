from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from appointment_desk.services.appointment import (
    AppointmentService,
    FetchErrorKind,
    FetchResult,
    FetchState,
)

logger = logging.getLogger(__name__)

FOCUS = "focus"
REFRESH = "refresh"


class RefreshCoordinator:
    """Gates refresh triggers for one business so UI events cannot storm the backend.

    * focus/foreground refreshes are dropped while the previous one finished
      less than ``focus_throttle_seconds`` ago;
    * ``refresh`` calls within ``debounce_seconds`` of the previous call
      return the last known value;
    * pull-to-refresh always fetches.

    A rate-limited fetch never replaces the last good result.
    """

    def __init__(
        self,
        service: AppointmentService,
        business_id: str,
        *,
        focus_throttle_seconds: float = 10.0,
        debounce_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._service = service
        self._business_id = business_id
        self._focus_throttle = focus_throttle_seconds
        self._debounce = debounce_seconds
        self._clock = clock
        self.last_call_at: Dict[str, Optional[float]] = {FOCUS: None, REFRESH: None}
        self.last_result: Optional[FetchResult] = None
        self.refreshing = False

    def _last_known(self) -> FetchResult:
        if self.last_result is not None:
            return self.last_result
        return FetchResult(FetchState.STALE, self._service.store.get(self._business_id) or [])

    async def _fetch(self) -> FetchResult:
        result = await self._service.load(self._business_id, force_refresh=True)
        if result.state == FetchState.FRESH:
            self.last_result = result
            return result
        if result.error_kind == FetchErrorKind.RATE_LIMITED:
            logger.warning("Refresh for business %s rate limited; keeping last data", self._business_id)
            # the service already restored its snapshot into result.items
            return result if result.items else self._last_known()
        logger.error("Refresh for business %s failed: %s", self._business_id, result.error)
        return result

    async def on_focus(self) -> Optional[FetchResult]:
        """Refresh on screen focus or app foreground. ``None`` when throttled."""

        last = self.last_call_at[FOCUS]
        if last is not None and self._clock() - last < self._focus_throttle:
            logger.info("Focus refresh throttled for business %s", self._business_id)
            return None
        try:
            return await self._fetch()
        finally:
            self.last_call_at[FOCUS] = self._clock()

    async def refresh(self) -> FetchResult:
        now = self._clock()
        last = self.last_call_at[REFRESH]
        if last is not None and now - last < self._debounce:
            logger.info("Refresh debounced for business %s", self._business_id)
            return self._last_known()
        self.last_call_at[REFRESH] = now
        return await self._fetch()

    async def pull_to_refresh(self) -> FetchResult:
        self.refreshing = True
        try:
            return await self._fetch()
        finally:
            self.refreshing = False
