"""
Document Normalization

Raw menu and branch documents (admin imports, legacy exports, API payloads)
are turned into one canonical shape here, once, at the read boundary.
Nothing past this point looks at legacy field names.

Menu field precedence:
    id          id (stripped) -> doc_id -> generated uuid hex
    title       title -> name -> "Untitled"
    price       price -> basePrice -> base_price; NaN or missing -> 0
    available   available; missing -> False
    image_url   imageUrl -> image_url; blank -> None
    category    sides/side -> sides, drinks/drink/beverage -> drinks,
                anything else -> pizza

Usage:
    from pizzeria.normalization import normalize_menu_document

    item = normalize_menu_document({"name": "Margherita", "basePrice": 1000})
    item["title"]  # "Margherita"
"""

import math
import uuid
from decimal import Decimal
from typing import Any, Mapping, Optional

from pizzeria.exceptions import ConfigurationError
from pizzeria.models import MenuCategory
from pizzeria.pricing import parse_size_multipliers, round_money, split_extras

_SIDES = {"sides", "side"}
_DRINKS = {"drinks", "drink", "beverage"}


def _first(doc: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-None value."""
    for key in keys:
        value = doc.get(key)
        if value is not None:
            return value
    return None


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _price(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return round_money(0)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return round_money(0)
    if math.isnan(number) or math.isinf(number):
        return round_money(0)
    if number < 0:
        raise ConfigurationError(f"Menu price must not be negative, got {value!r}")
    return round_money(value)


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def _float_or_none(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Coordinate must be a number, got {value!r}")
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def normalize_category(value: Any) -> MenuCategory:
    """Map free-form category text to a menu category."""
    if isinstance(value, MenuCategory):
        return value
    key = (str(value) if value is not None else "").strip().lower()
    if key in _SIDES:
        return MenuCategory.SIDES
    if key in _DRINKS:
        return MenuCategory.DRINKS
    return MenuCategory.PIZZA


def normalize_menu_document(
    doc: Mapping[str, Any],
    doc_id: Optional[str] = None,
) -> dict:
    """
    Turn a raw menu document into the canonical menu item record.

    Args:
        doc: Raw document with current or legacy field names
        doc_id: Storage key of the document, used when it carries no id

    Returns:
        Dict with keys id, title, description, price, available, image_url,
        category, size_multipliers, extras

    Raises:
        ConfigurationError: Negative price or malformed size multipliers
    """
    item_id = _clean_str(doc.get("id")) or _clean_str(doc_id) or uuid.uuid4().hex
    title = _clean_str(doc.get("title")) or _clean_str(doc.get("name")) or "Untitled"

    multipliers = _first(doc, "size_multipliers", "sizeMultipliers")
    if multipliers is not None and multipliers != {} and multipliers != "":
        multipliers = {k: str(v) for k, v in parse_size_multipliers(multipliers).items()}
    else:
        multipliers = None

    return {
        "id": item_id,
        "title": title,
        "description": _clean_str(doc.get("description")),
        "price": _price(_first(doc, "price", "basePrice", "base_price")),
        "available": _flag(doc.get("available"), default=False),
        "image_url": _clean_str(_first(doc, "imageUrl", "image_url")),
        "category": normalize_category(doc.get("category")),
        "size_multipliers": multipliers,
        "extras": split_extras(_first(doc, "extras", "toppings")),
    }


def normalize_branch_document(
    doc: Mapping[str, Any],
    doc_id: Optional[str] = None,
) -> dict:
    """
    Turn a raw branch document into the canonical branch record.

    Coordinates come from flat latitude/longitude (or lat/lng) fields or
    from a nested "location" mapping.
    """
    location = doc.get("location")
    source = location if isinstance(location, Mapping) else doc

    branch_id = _clean_str(doc.get("id")) or _clean_str(doc_id)
    if not branch_id:
        raise ConfigurationError("Branch document has no id")

    return {
        "id": branch_id,
        "name": _clean_str(doc.get("name")) or branch_id,
        "address": _clean_str(doc.get("address")) or "",
        "phone": _clean_str(doc.get("phone")) or "",
        "active": _flag(doc.get("active"), default=True),
        "latitude": _float_or_none(_first(source, "latitude", "lat")),
        "longitude": _float_or_none(_first(source, "longitude", "lng")),
    }
