"""
Order normalization and pricing.

Turns an untrusted item list into normalized line items plus subtotal, tax and
total. Pure: nothing here touches the database. Any bad item rejects the whole
order.
"""
from __future__ import annotations
import math
from collections.abc import Mapping
from typing import Any, Optional

from errors import InvalidInput
from schemas import LineItem, PricedItems

TAX_RATE = 0.06
MIN_QTY = 1
MAX_QTY = 99


def _parse_qty(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            raw = float(raw.strip())
        except ValueError:
            return None
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    return None


def _coerce_price(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        price = float(raw)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return price if math.isfinite(price) else 0.0


def _item_name(item: Mapping) -> str:
    for key in ("name", "itemId"):
        value = item.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return ""


def normalize_item(item: Any, catalog: Optional[Mapping[str, float]] = None) -> LineItem:
    if not isinstance(item, Mapping):
        raise InvalidInput("each item must be an object")

    name = _item_name(item)
    if not name:
        raise InvalidInput("item name (or itemId) is required")

    qty = _parse_qty(item.get("qty"))
    if qty is None or not MIN_QTY <= qty <= MAX_QTY:
        raise InvalidInput(f"qty must be {MIN_QTY}..{MAX_QTY}")

    if catalog:
        if name not in catalog:
            raise InvalidInput(f"unknown item: {name}")
        price = _coerce_price(catalog[name])
    else:
        price = _coerce_price(item.get("price"))

    line_total = price * qty
    if not math.isfinite(line_total):
        raise InvalidInput(f"price is too large for {name}")

    return LineItem(name=name, qty=qty, price=price, line_total=line_total)


def normalize_items(items: Any, catalog: Optional[Mapping[str, float]] = None) -> PricedItems:
    """Validate and price a raw item list.

    With a catalog, prices come from it and names outside it are rejected;
    without one the caller's prices are used as given.
    """
    if not isinstance(items, list) or not items:
        raise InvalidInput("items must be a non-empty array")

    normalized = [normalize_item(item, catalog) for item in items]
    subtotal = sum(li.line_total for li in normalized)
    tax = subtotal * TAX_RATE
    if not math.isfinite(subtotal + tax):
        raise InvalidInput("order total is too large")
    return PricedItems(
        items=normalized,
        subtotal=subtotal,
        tax_rate=TAX_RATE,
        tax=tax,
        total=subtotal + tax,
    )
