from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from appointment_desk.services.exceptions import DownstreamServiceError, RateLimitedError

logger = logging.getLogger(__name__)


class BackendGateway(Protocol):
    """Operations the appointment core needs from the booking backend."""

    async def fetch_appointments(self, business_id: str) -> List[Dict[str, Any]]: ...

    async def fetch_appointment_by_id(self, appointment_id: str) -> Dict[str, Any]: ...

    async def create_appointment(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update_appointment(self, appointment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete_appointment(self, appointment_id: str) -> None: ...

    async def set_appointment_status(self, appointment_id: str, status: str) -> Dict[str, Any]: ...

    async def reschedule_appointment(self, appointment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def close(self) -> None: ...


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or response.text)
    return response.text


class BackendClient:
    """Async HTTP client for the booking backend's appointment endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
    ) -> Any:
        client = self._ensure_client()
        try:
            response = await client.request(method, path, json=payload, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            message = _error_message(exc.response)
            if status_code == 429:
                logger.warning("Backend rate limited %s %s", method, path)
                raise RateLimitedError(f"HTTP 429: {message}", cause=exc) from exc
            logger.error("Backend returned error %s for %s %s", status_code, method, path)
            raise DownstreamServiceError(
                f"HTTP {status_code}: {message}",
                status_code=status_code,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Unable to reach backend: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach backend", status_code=None, cause=exc
            ) from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DownstreamServiceError(
                f"Invalid JSON response: {response.text}",
                status_code=response.status_code,
                cause=exc,
            ) from exc

    async def fetch_appointments(self, business_id: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/appointments/business/{business_id}")
        return list(data or [])

    async def fetch_appointment_by_id(self, appointment_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/appointments/{appointment_id}")

    async def create_appointment(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/appointments", payload=payload)

    async def update_appointment(self, appointment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/appointments/{appointment_id}", payload=payload)

    async def delete_appointment(self, appointment_id: str) -> None:
        await self._request("DELETE", f"/appointments/{appointment_id}")

    async def set_appointment_status(self, appointment_id: str, status: str) -> Dict[str, Any]:
        return await self._request(
            "PATCH", f"/appointments/{appointment_id}/status", payload={"status": status}
        )

    async def reschedule_appointment(self, appointment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "PATCH", f"/appointments/{appointment_id}/reschedule", payload=payload
        )
