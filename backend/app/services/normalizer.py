# backend/app/services/normalizer.py
"""
Cart -> line item normalization.

Turns the untrusted `products` list posted by the storefront into provider-ready
LineItems. Fail-fast: the first bad entry rejects the whole cart, and nothing
partial is ever returned.

Entry fields:
  - name / title : display name, resolved in NAME_PRECEDENCE order,
                   falling back to "Item <1-based position>"
  - price        : major units (dollars); number or numeric string, finite,
                   > 0 and at most MAX_PRICE (Stripe caps unit_amount at 8 digits)
  - quantity     : optional, whole number in 1..MAX_QUANTITY, defaults to 1

A name or title counts as absent when it is falsy (None, "", 0, false, empty
containers) or a blank string, so `{"name": 0, "title": "Mug"}` is "Mug".
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from backend.app.core.errors import InvalidEntry, MalformedRequest
from backend.app.models.checkout import LineItem

log = logging.getLogger(__name__)

DEFAULT_CURRENCY = "usd"
NAME_PRECEDENCE = ("name", "title")
NO_PRODUCTS_MESSAGE = "No products provided."

_MINOR_UNITS = Decimal(100)

MAX_UNIT_AMOUNT = 99_999_999
MAX_PRICE = Decimal(MAX_UNIT_AMOUNT) / _MINOR_UNITS
MAX_QUANTITY = 999_999


def _present(value: Any) -> bool:
    if not value:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def resolve_first(entry: Any, keys: Iterable[str], default: Any = None) -> Any:
    """
    Return the value of the first key in `keys` that is present on `entry`.
    Falsy values and blank strings count as absent. Non-mapping entries have no keys.
    """
    if not isinstance(entry, Mapping):
        return default
    for key in keys:
        value = entry.get(key)
        if _present(value):
            return value
    return default


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Numeric parse for JSON-ish input. Returns None for anything that isn't a
    finite number: booleans, containers, None, junk strings, NaN, +/-Infinity.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str):
        raw = value.strip()
    else:
        return None
    try:
        number = Decimal(raw)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return number


def to_minor_units(price: Decimal) -> int:
    """Scale a major-unit price by 100 and round half away from zero. Callers bound price by MAX_PRICE."""
    return int((price * _MINOR_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def display_name(entry: Any, position: int) -> str:
    name = resolve_first(entry, NAME_PRECEDENCE)
    if name is None:
        return f"Item {position}"
    return str(name).strip()


def _field(entry: Any, key: str) -> Any:
    return entry.get(key) if isinstance(entry, Mapping) else None


def normalize_entry(entry: Any, index: int, currency: str = DEFAULT_CURRENCY) -> LineItem:
    name = display_name(entry, index + 1)

    raw_price = _field(entry, "price")
    price = parse_decimal(raw_price)
    if price is None or price <= 0 or price > MAX_PRICE:
        raise InvalidEntry(index=index, name=name, field="price", value=raw_price)

    raw_qty = _field(entry, "quantity")
    if raw_qty is None:
        quantity = 1
    else:
        qty = parse_decimal(raw_qty)
        # bound before to_integral_value/int so a huge exponent never gets expanded
        if qty is None or qty <= 0 or qty > MAX_QUANTITY or qty != qty.to_integral_value():
            raise InvalidEntry(index=index, name=name, field="quantity", value=raw_qty)
        quantity = int(qty)

    return LineItem(
        currency=currency,
        name=name,
        unit_amount=to_minor_units(price),
        quantity=quantity,
    )


def normalize_cart(products: Any, currency: str = DEFAULT_CURRENCY) -> List[LineItem]:
    """
    Validate `products` and convert every entry, in order.

    Raises:
      MalformedRequest: products missing, not a list, or empty
      InvalidEntry: the first entry with a bad price or quantity
    """
    if (
        not isinstance(products, Sequence)
        or isinstance(products, (str, bytes, bytearray))
        or len(products) == 0
    ):
        raise MalformedRequest(NO_PRODUCTS_MESSAGE)

    currency = currency.strip().lower()
    items: List[LineItem] = []
    for index, entry in enumerate(products):
        try:
            items.append(normalize_entry(entry, index, currency))
        except InvalidEntry as exc:
            log.info("Rejected cart entry #%d (%s): %s", index + 1, exc.field, exc.message)
            raise
    return items
