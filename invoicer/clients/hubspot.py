from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from invoicer.clients.base import JsonApiClient

HUBSPOT_BASE_URL = "https://api.hubapi.com"

# HubSpot-defined association type ids
CONTACT_TO_DEAL = 3
NOTE_TO_DEAL = 214


def _association(target_id: str, type_id: int) -> Dict[str, Any]:
    return {
        "to": {"id": target_id},
        "types": [
            {"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": type_id}
        ],
    }


class HubSpotClient(JsonApiClient):
    service_name = "HubSpot"

    def __init__(
        self,
        access_token: str | None,
        *,
        base_url: str = HUBSPOT_BASE_URL,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            use_mock_data=use_mock_data or not access_token,
            headers={"Authorization": f"Bearer {access_token}"} if access_token else None,
            transport=transport,
        )

    async def create_contact(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/crm/v3/objects/contacts", {"properties": properties})

    async def find_contact_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        query = {
            "filterGroups": [
                {"filters": [{"propertyName": "email", "operator": "EQ", "value": email}]}
            ]
        }
        data = await self.post("/crm/v3/objects/contacts/search", query) or {}
        results: List[Dict[str, Any]] = data.get("results") or []
        return results[0] if results else None

    async def create_deal(
        self, properties: Dict[str, Any], contact_id: str | None = None
    ) -> Dict[str, Any]:
        associations = [_association(contact_id, CONTACT_TO_DEAL)] if contact_id else []
        return await self.post(
            "/crm/v3/objects/deals",
            {"properties": properties, "associations": associations},
        )

    async def create_note(
        self, properties: Dict[str, Any], deal_id: str | None = None
    ) -> Dict[str, Any]:
        associations = [_association(deal_id, NOTE_TO_DEAL)] if deal_id else []
        return await self.post(
            "/crm/v3/objects/notes",
            {"properties": properties, "associations": associations},
        )
