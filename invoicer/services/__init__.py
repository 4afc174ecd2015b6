"""Lazily exported service classes.

Service implementations import the HTTP clients, and the clients import
``invoicer.services.exceptions``. Importing every service here eagerly would
make that a circular import, so the implementations are loaded lazily on
first attribute access.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "CrmSyncService",
    "DeliveryService",
    "ExtractionService",
    "InvoiceStore",
    "PersistenceService",
]

_SERVICE_MODULES = {
    "CrmSyncService": "crm",
    "DeliveryService": "delivery",
    "ExtractionService": "extraction",
    "InvoiceStore": "store",
    "PersistenceService": "persistence",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .crm import CrmSyncService as CrmSyncService
    from .delivery import DeliveryService as DeliveryService
    from .extraction import ExtractionService as ExtractionService
    from .persistence import PersistenceService as PersistenceService
    from .store import InvoiceStore as InvoiceStore
