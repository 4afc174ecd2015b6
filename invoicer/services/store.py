"""Invoice state store used by editor sessions.

The store owns the current :class:`InvoiceState` and is the only place it
changes. Each operation builds a new immutable state, recomputes the totals
when line items or rates moved, and only then swaps it in, so a caller never
sees totals that disagree with the items.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

from invoicer.schemas.invoice import InvoicePatch, InvoiceState, RateSettings
from invoicer.services.line_items import create_line_item, update_line_item
from invoicer.services.totals import compute_totals

logger = logging.getLogger(__name__)

PatchInput = Union[InvoicePatch, Mapping[str, Any]]

# Nested values replace the current ones wholesale; ``None`` means "not given".
_NESTED_FIELDS = frozenset({"line_items", "rates", "style", "bank"})


def new_invoice_state(
    rates: Optional[RateSettings] = None,
    *,
    now: Optional[datetime] = None,
) -> InvoiceState:
    """Return the blank invoice an editor starts from."""

    moment = now or datetime.now(timezone.utc)
    return InvoiceState(
        invoice_number=f"INV-{int(moment.timestamp() * 1000)}",
        invoice_date=moment.date().isoformat(),
        rates=rates or RateSettings(),
    )


def _with_totals(state: InvoiceState) -> InvoiceState:
    return state.model_copy(
        update={"totals": compute_totals(state.line_items, state.rates)}
    )


class InvoiceStore:
    def __init__(self, state: Optional[InvoiceState] = None) -> None:
        self._state = _with_totals(state or new_invoice_state())

    @property
    def state(self) -> InvoiceState:
        return self._state

    def apply_update(self, patch: PatchInput) -> InvoiceState:
        """Shallow-merge ``patch`` into the current state."""

        if not isinstance(patch, InvoicePatch):
            patch = InvoicePatch.model_validate(dict(patch))

        updates: Dict[str, Any] = {}
        for name in patch.model_fields_set:
            value = getattr(patch, name)
            if value is None and name in _NESTED_FIELDS:
                continue
            updates[name] = value

        prior = self._state
        merged = InvoiceState.model_validate({**dict(prior), **updates})
        if merged.line_items != prior.line_items or merged.rates != prior.rates:
            merged = _with_totals(merged)

        logger.debug("Applied invoice update for fields %s", sorted(updates))
        self._state = merged
        return merged

    def add_line_item(self) -> InvoiceState:
        item = create_line_item()
        logger.debug("Adding line item %s", item.id)
        return self._replace_items([*self._state.line_items, item])

    def remove_line_item(self, item_id: str) -> InvoiceState:
        items = [item for item in self._state.line_items if item.id != item_id]
        if len(items) == len(self._state.line_items):
            logger.debug("Line item %s not found; nothing removed", item_id)
            return self._state
        return self._replace_items(items)

    def update_line_item(self, item_id: str, field: str, value: Any) -> InvoiceState:
        found = False
        items = []
        for item in self._state.line_items:
            if item.id == item_id:
                item = update_line_item(item, field, value)
                found = True
            items.append(item)
        if not found:
            logger.debug("Line item %s not found; edit of %r dropped", item_id, field)
            return self._state
        return self._replace_items(items)

    def merge_extracted_data(self, patch: PatchInput) -> InvoiceState:
        """Apply a patch produced by document extraction.

        Extracted line items replace the current list; they are not appended.
        """

        logger.info("Merging extracted invoice data into %s", self._state.invoice_number)
        return self.apply_update(patch)

    def _replace_items(self, items) -> InvoiceState:
        self._state = _with_totals(self._state.model_copy(update={"line_items": items}))
        return self._state
