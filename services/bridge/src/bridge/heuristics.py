# services/bridge/src/bridge/heuristics.py
"""
Text and payload heuristics used by the orchestrator.

Everything here is a pure function over strings, messages and decoded
backend payloads.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from .models import DeliveryMode, Message, Product

ORDER_CODE_PATTERN = re.compile(r"\b(\d{8})\b")
ORDER_INQUIRY_KEYWORDS = ("order", "detail", "status", "show", "tell", "yes")
MODE_PREFIX_SEPARATORS = re.compile(r"[-_\s]")
UNAUTHORIZED_PATTERN = re.compile(r"\bUnauthorized\b")

MAX_PRODUCTS = 5

EMPTY_CART = {
    "message": "Your cart is currently empty. Start shopping by searching for products!",
    "isEmpty": True,
    "totalItems": 0,
}
EMPTY_REPLY = "Processing your request..."
REAUTH_REPLY = "Your session has expired. Please log in again to continue."
APOLOGY_REPLY = (
    "I apologize, but I encountered an error processing your request. "
    "Please try again."
)


def find_order_code(text: str) -> Optional[str]:
    """Return the last 8-digit order code in ``text``."""
    matches = ORDER_CODE_PATTERN.findall(text or "")
    return matches[-1] if matches else None


def latest_order_code(messages: Sequence[Message], lookback: int = 5) -> Optional[str]:
    """
    Most recent order code mentioned in the last ``lookback`` messages.

    Only plain-text content is searched; newer messages win.
    """
    window = list(messages)[-lookback:] if lookback > 0 else []
    for message in reversed(window):
        code = find_order_code(message.text() or "")
        if code:
            return code
    return None


def is_order_inquiry(text: str) -> bool:
    """A message asks about an order if it carries a code or an inquiry keyword."""
    lowered = (text or "").lower()
    if ORDER_CODE_PATTERN.search(lowered):
        return True
    return any(keyword in lowered for keyword in ORDER_INQUIRY_KEYWORDS)


def correct_delivery_mode_code(code: str, modes: Sequence[DeliveryMode]) -> str:
    """
    Map a model-supplied delivery-mode code onto one the backend offered.

    Exact match first, then a prefix match on the part before the first
    ``-``, ``_`` or space (code startswith, or name contains), then the first
    offered mode. With no known modes the code is returned unchanged.
    """
    if not modes:
        return code

    for mode in modes:
        if mode.code == code:
            return code

    prefix = MODE_PREFIX_SEPARATORS.split(code.lower(), maxsplit=1)[0]
    if prefix:
        for mode in modes:
            if mode.code.lower().startswith(prefix) or prefix in mode.name.lower():
                return mode.code

    return modes[0].code


def parse_products(payload: Any, limit: int = MAX_PRODUCTS) -> List[Product]:
    if not isinstance(payload, dict):
        return []

    products = []
    for item in (payload.get("products") or [])[:limit]:
        if not isinstance(item, dict) or not item.get("code"):
            continue
        price = item.get("price")
        stock = item.get("stock")
        images = item.get("images") or []
        products.append(
            Product(
                code=str(item["code"]),
                name=item.get("name"),
                price=price.get("formattedValue", price.get("value")) if isinstance(price, dict) else price,
                stock=stock.get("stockLevelStatus") if isinstance(stock, dict) else stock,
                image_url=images[0].get("url") if images and isinstance(images[0], dict) else None,
            )
        )
    return products


def parse_delivery_modes(payload: Any) -> List[DeliveryMode]:
    if not isinstance(payload, dict):
        return []

    modes = []
    for item in payload.get("deliveryModes") or []:
        if isinstance(item, dict) and item.get("code"):
            modes.append(DeliveryMode.model_validate({"name": "", **item}))
    return modes


def extract_cart_id(payload: Any, prefer_guid: bool = False) -> Optional[str]:
    """
    Cart identifier from a create-cart response.

    Authenticated carts are addressed by ``code``; anonymous carts by
    ``guid``, so ``prefer_guid`` moves it to the front.
    """
    if not isinstance(payload, dict):
        return None

    keys = ["cartId", "code", "guid", "id"]
    if prefer_guid:
        keys.remove("guid")
        keys.insert(0, "guid")

    for key in keys:
        value = payload.get(key)
        if value:
            return str(value)
    return None


def extract_order_code(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and payload.get("code"):
        return str(payload["code"])
    return None


def is_auth_failure(result_content: str) -> bool:
    """
    True when a tool error reports a rejected caller token.

    Only the structured ``status`` field counts as an HTTP 401; a ``401``
    echoed inside a product code or message does not.
    """
    payload = decode_result(result_content)
    if isinstance(payload, dict) and payload.get("status") == 401:
        return True
    return bool(UNAUTHORIZED_PATTERN.search(result_content or ""))


def decode_result(content: str) -> Any:
    """Decode a tool result, returning None for non-JSON content."""
    try:
        return json.loads(content)
    except (TypeError, ValueError):
        return None
