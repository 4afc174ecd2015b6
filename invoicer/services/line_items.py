from __future__ import annotations

import logging
from typing import Any, Dict

from invoicer.schemas.invoice import LineItem
from invoicer.utils.numbers import coerce_number

logger = logging.getLogger(__name__)

# Editor payloads use a mix of snake_case, camelCase and the legacy names
# from the first version of the form.
_FIELD_ALIASES: Dict[str, str] = {
    "description": "description",
    "name": "description",
    "quantity": "quantity",
    "qty": "quantity",
    "unit_price": "unit_price",
    "unitPrice": "unit_price",
    "rate": "unit_price",
    "price": "unit_price",
}


def create_line_item() -> LineItem:
    """Return a blank row: quantity 1 at a unit price of 0."""

    return LineItem()


def update_line_item(item: LineItem, field: str, value: Any) -> LineItem:
    """Return a copy of ``item`` with ``field`` set to ``value``.

    ``amount`` is derived from the copy, so changing ``quantity`` or
    ``unit_price`` updates it in the same step. ``id``, ``amount`` and
    unknown fields cannot be set and leave the item as it is.
    """

    target = _FIELD_ALIASES.get(field)
    if target is None:
        logger.debug("Ignoring edit of read-only or unknown field %r", field)
        return item

    if target == "description":
        new_value: Any = "" if value is None else str(value)
    else:
        new_value = coerce_number(value)
    return item.model_copy(update={target: new_value})
