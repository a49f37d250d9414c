"""Helpers for the marketplace Finding API (app-id keyed, JSON format).

Every value in a Finding API JSON response is wrapped in a one-element
list, so lookups go through ``finding_value``.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from listingwatch.config import settings
from listingwatch.scrapers.utils.normalizer import stock_from_quantity


def finding_value(obj: Any, *path: str, default=None):
    """Walk ``path`` through list-wrapped Finding API JSON."""
    for key in path:
        if isinstance(obj, list):
            obj = obj[0] if obj else None
        if not isinstance(obj, dict):
            return default
        obj = obj.get(key)
    if isinstance(obj, list):
        obj = obj[0] if obj else None
    return default if obj is None else obj


def finding_params(operation: str, app_id: str, **extra: str) -> Dict[str, str]:
    params = {
        "OPERATION-NAME": operation,
        "SERVICE-VERSION": "1.0.0",
        "SECURITY-APPNAME": app_id,
        "RESPONSE-DATA-FORMAT": "JSON",
        "REST-PAYLOAD": "",
        "GLOBAL-ID": settings.EBAY_GLOBAL_ID,
    }
    params.update(extra)
    return params


def search_items(data: Dict[str, Any], operation: str) -> list:
    response = finding_value(data, f"{operation}Response", default={})
    result = finding_value(response, "searchResult", default={})
    items = result.get("item", []) if isinstance(result, dict) else []
    return items if isinstance(items, list) else []


def total_pages(data: Dict[str, Any], operation: str) -> int:
    response = finding_value(data, f"{operation}Response", default={})
    try:
        return int(finding_value(response, "paginationOutput", "totalPages", default=0))
    except (TypeError, ValueError):
        return 0


def parse_finding_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one Finding API item into plain fields."""
    raw_price = finding_value(item, "sellingStatus", "currentPrice", "__value__")
    try:
        price = Decimal(str(raw_price)) if raw_price is not None else None
    except InvalidOperation:
        price = None

    selling_state = finding_value(item, "sellingStatus", "sellingState", default="Active")
    quantity = finding_value(item, "quantity")
    sold = finding_value(item, "sellingStatus", "quantitySold", default="0")
    if quantity is not None:
        try:
            stock_state = stock_from_quantity(int(quantity), int(sold))
        except (TypeError, ValueError):
            stock_state = "unknown"
    else:
        stock_state = "in_stock" if selling_state == "Active" else "out_of_stock"

    images = [
        url for url in (
            finding_value(item, "pictureURLLarge"),
            finding_value(item, "galleryURL"),
        ) if url
    ]

    return {
        "item_id": finding_value(item, "itemId"),
        "title": finding_value(item, "title", default=""),
        "price": price,
        "url": finding_value(item, "viewItemURL"),
        "images": images,
        "stock_state": stock_state,
        "seller_id": finding_value(item, "sellerInfo", "sellerUserName"),
        "condition": finding_value(item, "condition", "conditionDisplayName"),
        "quantity": int(quantity) if isinstance(quantity, str) and quantity.isdigit() else None,
    }
