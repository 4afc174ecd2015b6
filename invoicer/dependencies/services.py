from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, HTTPException

from invoicer.clients.backend import BackendClient
from invoicer.clients.hubspot import HubSpotClient
from invoicer.clients.resend import ResendClient
from invoicer.config import Settings, get_settings
from invoicer.services import (
    CrmSyncService,
    DeliveryService,
    ExtractionService,
    InvoiceStore,
    PersistenceService,
)
from invoicer.services.extraction import (
    DocumentExtractor,
    GeminiDocumentExtractor,
    MockDocumentExtractor,
)
from invoicer.services.sessions import EditorSessionRegistry, get_session_registry


@lru_cache(maxsize=1)
def get_backend_client_cached() -> BackendClient:
    settings = get_settings()
    return BackendClient(
        str(settings.backend_base_url) if settings.backend_base_url else None,
        api_key=settings.backend_api_key,
        timeout=settings.backend_timeout,
        use_mock_data=settings.use_mock_data,
    )


@lru_cache(maxsize=1)
def get_email_client_cached() -> ResendClient:
    settings = get_settings()
    return ResendClient(
        settings.resend_api_key,
        timeout=settings.backend_timeout,
        use_mock_data=settings.use_mock_data,
    )


@lru_cache(maxsize=1)
def get_crm_client_cached() -> HubSpotClient:
    settings = get_settings()
    return HubSpotClient(
        settings.hubspot_access_token,
        timeout=settings.backend_timeout,
        use_mock_data=settings.use_mock_data,
    )


def get_backend_client(settings: Settings = Depends(get_settings)) -> BackendClient:
    return get_backend_client_cached()


def get_sessions() -> EditorSessionRegistry:
    return get_session_registry()


def get_invoice_store(
    session_id: str,
    sessions: EditorSessionRegistry = Depends(get_sessions),
) -> InvoiceStore:
    try:
        return sessions.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc


def get_document_extractor(settings: Settings = Depends(get_settings)) -> DocumentExtractor:
    if settings.use_mock_data and not settings.google_api_key:
        return MockDocumentExtractor()
    return GeminiDocumentExtractor(
        api_key=settings.google_api_key,
        model=settings.extraction_model,
    )


def get_extraction_service(
    client: BackendClient = Depends(get_backend_client),
    extractor: DocumentExtractor = Depends(get_document_extractor),
    settings: Settings = Depends(get_settings),
) -> ExtractionService:
    return ExtractionService(
        client, extractor, max_upload_bytes=settings.max_upload_bytes
    )


def get_persistence_service(
    client: BackendClient = Depends(get_backend_client),
) -> PersistenceService:
    return PersistenceService(client)


def get_delivery_service(
    persistence: PersistenceService = Depends(get_persistence_service),
    settings: Settings = Depends(get_settings),
) -> DeliveryService:
    return DeliveryService(
        get_email_client_cached(), persistence, sender=settings.email_sender
    )


def get_crm_service(
    persistence: PersistenceService = Depends(get_persistence_service),
) -> CrmSyncService:
    return CrmSyncService(get_crm_client_cached(), persistence)
