from __future__ import annotations

from typing import Any, Dict

import httpx

from invoicer.clients.base import JsonApiClient

RESEND_BASE_URL = "https://api.resend.com"


class ResendClient(JsonApiClient):
    service_name = "Email provider"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = RESEND_BASE_URL,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            use_mock_data=use_mock_data or not api_key,
            headers={"Authorization": f"Bearer {api_key}"} if api_key else None,
            transport=transport,
        )

    async def send_email(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/emails", message) or {}
