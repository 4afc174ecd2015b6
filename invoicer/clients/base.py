from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from invoicer.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class JsonApiClient:
    """Async JSON-over-HTTP client shared by the external collaborators.

    With ``use_mock_data`` (or without a base URL) no connection is ever
    opened; services check the flag and use the mock store instead.
    """

    service_name = "upstream service"

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        headers: Dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = str(base_url).rstrip("/") if base_url else None
        self.use_mock_data = use_mock_data or self.base_url is None
        self._timeout = timeout
        self._headers = {**JSON_HEADERS, **(headers or {})}
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def _connection(self) -> httpx.AsyncClient:
        if self.use_mock_data:
            raise RuntimeError(f"{self.service_name} called while mock mode is enabled")
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        if self._http is None:
            return
        await self._http.aclose()
        self._http = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        payload: Any = None,
        params: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (``None`` if empty)."""

        http = self._connection()
        logger.debug("%s %s %s", self.service_name, method, path)
        try:
            response = await http.request(
                method, path, json=payload, params=params, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.exception("%s answered %s for %s %s", self.service_name, status, method, path)
            raise DownstreamServiceError(
                f"{self.service_name} returned an error response",
                status_code=status,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach %s: %s", self.service_name, exc)
            raise DownstreamServiceError(
                f"Unable to reach {self.service_name}", cause=exc
            ) from exc
        return response.json() if response.content else None

    async def post(
        self, path: str, payload: Any, *, headers: Dict[str, str] | None = None
    ) -> Any:
        return await self.request("POST", path, payload=payload, headers=headers)

    async def get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def patch(
        self,
        path: str,
        payload: Any,
        *,
        params: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        return await self.request(
            "PATCH", path, payload=payload, params=params, headers=headers
        )

    async def simulate_latency(self) -> None:
        """Yield to the event loop so mock responses behave like awaited calls."""

        await asyncio.sleep(0)
