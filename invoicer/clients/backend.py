from __future__ import annotations

from typing import Any, Dict, List

import httpx

from invoicer.clients.base import JsonApiClient

RETURN_REPRESENTATION = {"Prefer": "return=representation"}


class BackendClient(JsonApiClient):
    """Client for the hosted database's REST interface (PostgREST style)."""

    service_name = "Hosted backend"

    def __init__(
        self,
        base_url: str | None,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = None
        if api_key:
            headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
        super().__init__(
            base_url,
            timeout=timeout,
            use_mock_data=use_mock_data,
            headers=headers,
            transport=transport,
        )

    async def insert(self, table: str, rows: Any) -> List[Dict[str, Any]]:
        data = await self.post(f"/rest/v1/{table}", rows, headers=RETURN_REPRESENTATION)
        return list(data or [])

    async def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = await self.get(f"/rest/v1/{table}", params)
        return list(data or [])

    async def update(
        self, table: str, values: Dict[str, Any], filters: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        data = await self.patch(
            f"/rest/v1/{table}", values, params=filters, headers=RETURN_REPRESENTATION
        )
        return list(data or [])
