"""Turn uploaded documents into invoice patches with an LLM."""

from __future__ import annotations

import asyncio
import io
import json
import logging
import re
import zipfile
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol
from xml.etree import ElementTree

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError
from pydantic import ValidationError

from invoicer.clients.backend import BackendClient
from invoicer.schemas.extraction import ExtractedInvoice
from invoicer.schemas.invoice import InvoicePatch
from invoicer.services.exceptions import (
    DownstreamServiceError,
    ServiceError,
    UnsupportedDocumentError,
)
from invoicer.services.mock_store import UploadRepository, get_mock_store

logger = logging.getLogger(__name__)

DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

ACCEPTED_TYPES = {
    "application/pdf": ".pdf",
    DOCX_TYPE: ".docx",
    "text/plain": ".txt",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_WORD_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

EXTRACTION_PROMPT = """
You are an expert at extracting invoice data from documents. Extract the
structured information from the attached document and return it as JSON.

Focus on:
1. Line items with: description, quantity, rate (unit price)
2. Client information: name, address, email
3. Invoice details: invoice number, PO number, date, due date

Return the data in exactly this JSON format:
{
  "lineItems": [
    {"description": "Item name", "quantity": 1, "rate": 100.00}
  ],
  "clientInfo": {"name": "Client name", "address": "Client address", "email": "client@example.com"},
  "invoiceInfo": {"invoiceNumber": "INV-001", "poNumber": "PO-001", "date": "2024-01-01", "dueDate": "2024-01-31"}
}

If information is missing, omit those fields. Quantities and rates must be
numbers without currency symbols. Dates use YYYY-MM-DD.
"""


@dataclass(frozen=True)
class UploadedDocument:
    file_name: str
    media_type: str
    content: bytes


class DocumentExtractor(Protocol):
    async def extract(self, document: UploadedDocument) -> str:
        """Return the model's JSON answer for ``document``."""


def docx_text(content: bytes) -> str:
    """Return the paragraph text of a .docx file."""

    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            root = ElementTree.fromstring(archive.read("word/document.xml"))
    except (zipfile.BadZipFile, KeyError, ElementTree.ParseError) as exc:
        raise UnsupportedDocumentError("Could not read the Word document", cause=exc)
    paragraphs = []
    for paragraph in root.iter(f"{_WORD_NS}p"):
        text = "".join(node.text or "" for node in paragraph.iter(f"{_WORD_NS}t"))
        if text:
            paragraphs.append(text)
    return "\n".join(paragraphs)


class GeminiDocumentExtractor:
    """LLM backed extractor that uses Google Gemini models."""

    def __init__(self, *, api_key: Optional[str], model: str = "gemini-1.5-flash") -> None:
        self._api_key = api_key
        self._model = model
        self._configured = False

    def _ensure_configured(self) -> None:
        if self._configured or not self._api_key:
            return
        genai.configure(api_key=self._api_key)
        self._configured = True

    @staticmethod
    def _build_contents(document: UploadedDocument) -> List[Any]:
        if document.media_type == "text/plain":
            text = document.content.decode("utf-8", errors="replace")
            return [EXTRACTION_PROMPT, f"Document text:\n\n{text}"]
        if document.media_type == DOCX_TYPE:
            return [EXTRACTION_PROMPT, f"Document text:\n\n{docx_text(document.content)}"]
        return [
            EXTRACTION_PROMPT,
            {"mime_type": document.media_type, "data": document.content},
        ]

    async def extract(self, document: UploadedDocument) -> str:  # type: ignore[override]
        self._ensure_configured()
        if not self._api_key:
            raise ServiceError("Document extraction is not configured")

        contents = self._build_contents(document)
        model = genai.GenerativeModel(
            self._model,
            generation_config={"response_mime_type": "application/json"},
        )
        try:
            response = await asyncio.to_thread(model.generate_content, contents)
        except GoogleAPIError as exc:
            logger.exception("Gemini extraction failed: %s", exc)
            raise DownstreamServiceError("Document extraction failed", cause=exc) from exc
        try:
            text = response.text
        except ValueError as exc:
            # raised when the candidate was blocked or is empty
            logger.warning("Gemini response did not contain text output: %s", exc)
            return ""
        return text or ""


class MockDocumentExtractor:
    """Canned extraction used while running against mock data."""

    async def extract(self, document: UploadedDocument) -> str:  # type: ignore[override]
        return json.dumps(
            {
                "lineItems": [
                    {"description": f"Service from {document.file_name}", "quantity": 1, "rate": 100},
                    {"description": "Consultation", "quantity": 2, "rate": 75},
                ]
            }
        )


def parse_extraction(text: str) -> ExtractedInvoice:
    """Parse the model's answer, tolerating code fences and surrounding prose.

    An unusable answer yields an empty extraction so the invoice being edited
    is left as it is.
    """

    cleaned = _FENCE.sub("", (text or "").strip())
    data: Any = None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if match:
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError:
                data = None
    if not isinstance(data, dict):
        logger.warning("Extraction answer was not a JSON object; ignoring it")
        return ExtractedInvoice()
    try:
        return ExtractedInvoice.model_validate(data)
    except ValidationError as exc:
        logger.warning("Extraction answer did not match the invoice shape: %s", exc)
        return ExtractedInvoice()


class ExtractionService:
    def __init__(
        self,
        client: BackendClient,
        extractor: DocumentExtractor,
        *,
        repository: UploadRepository | None = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._client = client
        self._extractor = extractor
        self._repository = repository
        self._max_upload_bytes = max_upload_bytes
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().uploads

    def validate(self, document: UploadedDocument) -> None:
        if document.media_type not in ACCEPTED_TYPES:
            raise UnsupportedDocumentError(
                f"Unsupported file type {document.media_type!r}; upload a PDF, DOCX, TXT, JPG or PNG file"
            )
        if not document.content:
            raise UnsupportedDocumentError("The uploaded file is empty")
        if len(document.content) > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes / 1024 / 1024
            raise UnsupportedDocumentError(f"Files must be {limit_mb:g} MB or smaller")

    async def extract(
        self,
        file_name: str,
        media_type: str,
        content: bytes,
        *,
        user_id: Optional[str] = None,
    ) -> InvoicePatch:
        document = UploadedDocument(file_name=file_name, media_type=media_type, content=content)
        self.validate(document)
        logger.info("Processing file %s of type %s", file_name, media_type)

        upload_id = await self._record_upload(document, user_id)
        try:
            answer = await self._extractor.extract(document)
        except ServiceError:
            await self._finish_upload(upload_id, status="failed")
            raise
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected error while extracting %s", file_name)
            await self._finish_upload(upload_id, status="failed")
            raise ServiceError("Failed to extract invoice data", cause=exc)

        extracted = parse_extraction(answer)
        await self._finish_upload(
            upload_id,
            status="completed",
            extracted_data=extracted.model_dump(mode="json", exclude_none=True),
        )
        return extracted.to_patch()

    async def _record_upload(self, document: UploadedDocument, user_id: Optional[str]) -> Optional[str]:
        row: Dict[str, Any] = {
            "filename": document.file_name,
            "file_type": document.media_type,
            "file_size": len(document.content),
            "user_id": user_id,
        }
        if self._client.use_mock_data:
            record = await self._repository.create(**row)
            return str(record["id"])
        if user_id is None:
            return None
        rows = await self._client.insert("uploaded_files", dict(row, status="processing"))
        return str(rows[0]["id"]) if rows else None

    async def _finish_upload(
        self, upload_id: Optional[str], *, status: str, extracted_data: Optional[dict] = None
    ) -> None:
        if upload_id is None:
            return
        if self._client.use_mock_data:
            await self._repository.finish(upload_id, status=status, extracted_data=extracted_data)
            return
        try:
            await self._client.update(
                "uploaded_files",
                {"status": status, "extracted_data": extracted_data},
                {"id": f"eq.{upload_id}"},
            )
        except ServiceError:
            logger.exception("Error updating upload record %s", upload_id)
