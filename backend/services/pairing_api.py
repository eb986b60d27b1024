"""HTTP client for the pairing backend REST endpoints."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from observability.logger import log_event
from spec import BACKEND_UNREACHABLE_MESSAGE, HTTP_TIMEOUT_S


class PairingApiError(Exception):
    """
    Backend call failed.

    message is safe to show to the user; status_code is None for
    transport failures.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class ConnectResult:
    session_id: str
    already_connected: bool = False
    instance_name: str | None = None


@dataclass(frozen=True)
class StatusResult:
    connected: bool
    status: str | None = None


class PairingApiClient:
    """Thin wrapper around the pairing REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = HTTP_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout_s,
            transport=transport,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared client; the event stream reuses its connection pool."""
        return self._client

    def stream_url(self, session_id: str) -> str:
        query = urlencode({"sessionId": session_id})
        return f"{self._base_url}/pairing/connect/stream?{query}"

    async def connect(self, session_id: str) -> ConnectResult:
        data = await self._request("POST", "/pairing/connect", json={"sessionId": session_id})
        return ConnectResult(
            session_id=str(data.get("sessionId") or session_id),
            already_connected=data.get("alreadyConnected") is True,
            instance_name=data.get("instanceName"),
        )

    async def status(self, session_id: str) -> StatusResult:
        data = await self._request("GET", "/pairing/status", params={"sessionId": session_id})
        status = data.get("status")
        return StatusResult(
            connected=data.get("connected") is True,
            status=status if isinstance(status, str) else None,
        )

    async def disconnect(self, session_id: str) -> bool:
        data = await self._request("DELETE", "/pairing/disconnect", params={"sessionId": session_id})
        return data.get("success") is True

    async def import_contacts(self, session_id: str) -> None:
        await self._request("POST", "/pairing/import", json={"sessionId": session_id})

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except httpx.HTTPError as e:
            log_event({
                "level": "WARNING",
                "event_type": "PAIRING_API_CLOSE_FAILED",
                "error": repr(e),
            })

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        op = f"{method} {path}"
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            log_event({"level": "ERROR", "event_type": "PAIRING_API_TIMEOUT", "op": op})
            raise PairingApiError(BACKEND_UNREACHABLE_MESSAGE) from e
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            log_event({
                "level": "ERROR",
                "event_type": "PAIRING_API_HTTP_ERROR",
                "op": op,
                "status_code": e.response.status_code,
                "message": message,
            })
            raise PairingApiError(message, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            log_event({
                "level": "ERROR",
                "event_type": "PAIRING_API_NETWORK_ERROR",
                "op": op,
                "error": repr(e),
            })
            raise PairingApiError(BACKEND_UNREACHABLE_MESSAGE) from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise PairingApiError(f"{op}: response is not JSON") from e
        return data if isinstance(data, dict) else {}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return f"Pairing service returned HTTP {response.status_code}"
