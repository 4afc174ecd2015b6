from __future__ import annotations

import itertools
import logging
from typing import Dict, Optional, Tuple

from invoicer.schemas.invoice import RateSettings
from invoicer.services.store import InvoiceStore, new_invoice_state

logger = logging.getLogger(__name__)


class EditorSessionRegistry:
    """Keeps one :class:`InvoiceStore` per open editor."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._stores: Dict[str, InvoiceStore] = {}

    def _next_id(self) -> str:
        return f"SES-{next(self._counter):05d}"

    def create(self, rates: Optional[RateSettings] = None) -> Tuple[str, InvoiceStore]:
        session_id = self._next_id()
        store = InvoiceStore(new_invoice_state(rates))
        self._stores[session_id] = store
        logger.info(
            "Opened editor session %s for %s", session_id, store.state.invoice_number
        )
        return session_id, store

    def get(self, session_id: str) -> InvoiceStore:
        store = self._stores.get(session_id)
        if store is None:
            raise KeyError(f"Editor session {session_id} not found")
        return store

    def close(self, session_id: str) -> bool:
        return self._stores.pop(session_id, None) is not None


_registry: Optional[EditorSessionRegistry] = None


def get_session_registry() -> EditorSessionRegistry:
    global _registry
    if _registry is None:
        _registry = EditorSessionRegistry()
    return _registry


def reset_session_registry() -> None:
    global _registry
    _registry = None
