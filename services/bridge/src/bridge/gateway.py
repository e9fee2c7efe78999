# services/bridge/src/bridge/gateway.py
"""
Tool execution gateway.

Maps a tool name plus raw model-supplied arguments onto one commerce client
call. Arguments are validated against the tool's pydantic model, backend
calls run under the retry policy, cacheable reads go through the TTL cache,
and every outcome is reported to the health monitor. ``execute`` never
raises: failures come back as error-flagged results.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from libs.commerce_shared.cache import BoundedTTLCache
from libs.commerce_shared.health import HealthMonitor
from libs.commerce_shared.logging import get_logger
from libs.commerce_shared.metrics import Metrics
from libs.commerce_shared.retry import RetryExhaustedError, RetryPolicy, with_retry
from pydantic import ValidationError

from .commerce_client import CommerceClient, CommerceError
from .tools import TOOL_SPECS, ToolArguments, ToolName, parse_tool_name

logger = get_logger(__name__)

Handler = Callable[[Any, Optional[str], Optional[str]], Awaitable[Any]]


@dataclass
class ToolResult:
    content: str
    is_error: bool = False

    @classmethod
    def ok(cls, payload: Any) -> "ToolResult":
        return cls(content=json.dumps(payload, default=str))

    @classmethod
    def error(cls, payload: Dict[str, Any]) -> "ToolResult":
        return cls(content=json.dumps(payload, default=str), is_error=True)


def http_error_payload(error: httpx.HTTPStatusError) -> Dict[str, Any]:
    response = error.response
    try:
        detail: Any = response.json()
    except ValueError:
        detail = response.text
    return {
        "error": f"Backend request failed with status {response.status_code}",
        "status": response.status_code,
        "detail": detail,
    }


class ToolGateway:
    def __init__(
        self,
        client: CommerceClient,
        cache: BoundedTTLCache,
        health_monitor: HealthMonitor,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.client = client
        self.cache = cache
        self.health_monitor = health_monitor
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._handlers: Dict[ToolName, Handler] = {
            ToolName.SEARCH_PRODUCTS: self._search_products,
            ToolName.SEARCH_PRODUCTS_ADVANCED: self._search_products_advanced,
            ToolName.GET_PRODUCT_DETAILS: self._get_product_details,
            ToolName.CHECK_PRODUCT_AVAILABILITY: self._check_availability,
            ToolName.GET_CATEGORIES: self._get_categories,
            ToolName.GET_PRODUCTS_BY_CATEGORY: self._get_products_by_category,
            ToolName.GET_PROMOTIONS: self._get_promotions,
            ToolName.GET_PRODUCT_REVIEWS: self._get_product_reviews,
            ToolName.GET_PRODUCT_SUGGESTIONS: self._get_product_suggestions,
            ToolName.GET_COUNTRIES: self._get_countries,
            ToolName.GET_REGIONS: self._get_regions,
            ToolName.CREATE_CART: self._create_cart,
            ToolName.GET_CART: self._get_cart,
            ToolName.ADD_TO_CART: self._add_to_cart,
            ToolName.UPDATE_CART_ENTRY: self._update_cart_entry,
            ToolName.REMOVE_FROM_CART: self._remove_from_cart,
            ToolName.SET_DELIVERY_ADDRESS: self._set_delivery_address,
            ToolName.GET_DELIVERY_MODES: self._get_delivery_modes,
            ToolName.SET_DELIVERY_MODE: self._set_delivery_mode,
            ToolName.SET_PAYMENT_DETAILS: self._set_payment_details,
            ToolName.PLACE_ORDER: self._place_order,
            ToolName.GET_ORDER_STATUS: self._get_order_status,
            ToolName.GET_ORDER_HISTORY: self._get_order_history,
            ToolName.GET_SITE_CONFIG: self._get_site_config,
        }

    async def execute(
        self,
        tool: str,
        arguments: Optional[Dict[str, Any]] = None,
        caller_token: Optional[str] = None,
        *,
        cart_id: Optional[str] = None,
    ) -> ToolResult:
        """
        Execute one tool call.

        Args:
            tool: Tool name as requested by the model
            arguments: Raw arguments; validated against the tool's model
            caller_token: Signed-in caller's bearer token, if any
            cart_id: Active cart of the conversation, for cart tools

        Returns:
            ToolResult with JSON content; ``is_error`` marks failures
        """
        name = parse_tool_name(tool)
        if name is None:
            logger.warning("Unknown tool requested", extra={"tool": tool})
            return ToolResult.error({"error": f"Unknown tool: {tool}"})

        spec = TOOL_SPECS[name]
        try:
            args = spec.args_model.model_validate(arguments or {})
        except ValidationError as e:
            logger.warning(
                "Invalid tool arguments", extra={"tool": tool, "errors": e.errors()}
            )
            return ToolResult.error(
                {"error": f"Invalid arguments for {tool}", "detail": e.errors()}
            )

        if spec.requires_cart and cart_id is None and name != ToolName.GET_CART:
            return ToolResult.error(
                {
                    "error": "No cart exists",
                    "message": "There is no cart for this conversation yet. "
                    "Add a product to the cart first.",
                }
            )

        handler = self._handlers[name]
        cache_key = self.cache_key(name, args) if spec.cacheable else None
        if cache_key is not None:
            hit, cached = self.cache.lookup(cache_key)
            self.health_monitor.record_cache_access(hit)
            if hit:
                Metrics.counter("bridge_tool_cache_hits", labels={"tool": tool})
                return ToolResult.ok(cached)

        started = time.perf_counter()
        try:
            payload = await with_retry(
                lambda: handler(args, caller_token, cart_id),
                self.retry_policy,
                description=tool,
                **({"sleep": self._sleep} if self._sleep else {}),
            )
        except Exception as e:
            self._record(tool, started, error=True)
            return self._error_result(tool, e)

        self._record(tool, started, error=False)
        if cache_key is not None:
            self.cache.set(cache_key, payload)
        return ToolResult.ok(payload)

    @staticmethod
    def cache_key(name: ToolName, args: ToolArguments) -> str:
        normalized = args.model_dump(by_alias=True, exclude_none=True)
        return f"{name.value}:{json.dumps(normalized, sort_keys=True, default=str)}"

    def _record(self, tool: str, started: float, error: bool) -> None:
        latency_ms = (time.perf_counter() - started) * 1000
        self.health_monitor.record_request(latency_ms, error=error)
        Metrics.histogram("bridge_tool_latency_ms", latency_ms, labels={"tool": tool})
        if error:
            Metrics.counter("bridge_tool_errors", labels={"tool": tool})

    def _error_result(self, tool: str, error: Exception) -> ToolResult:
        cause = error.cause if isinstance(error, RetryExhaustedError) else error

        if isinstance(cause, httpx.HTTPStatusError):
            payload = http_error_payload(cause)
            if isinstance(error, RetryExhaustedError):
                payload["attempts"] = error.attempts
            logger.warning(
                f"Tool {tool} failed", extra={"tool": tool, "status": payload["status"]}
            )
            return ToolResult.error(payload)

        if isinstance(error, RetryExhaustedError):
            logger.warning(f"Tool {tool} exhausted retries", extra={"tool": tool})
            return ToolResult.error(
                {"error": str(error), "attempts": error.attempts}
            )

        if isinstance(error, httpx.HTTPError):
            logger.warning(f"Tool {tool} transport error: {error}", extra={"tool": tool})
            return ToolResult.error({"error": f"Backend unreachable: {error}"})

        if isinstance(error, CommerceError):
            return ToolResult.error({"error": str(error)})

        logger.error(f"Tool {tool} failed unexpectedly", exc_info=True)
        return ToolResult.error({"error": f"Tool {tool} failed: {error}"})

    # --- Handlers ---------------------------------------------------------

    async def _search_products(self, args, token, cart_id):
        return await self.client.search_products(
            args.query, page_size=args.page_size, current_page=args.current_page
        )

    async def _search_products_advanced(self, args, token, cart_id):
        return await self.client.search_products_advanced(
            query=args.query,
            min_price=args.min_price,
            max_price=args.max_price,
            category_code=args.category_code,
            sort=args.sort,
            page_size=args.page_size,
            current_page=args.current_page,
        )

    async def _get_product_details(self, args, token, cart_id):
        return await self.client.get_product(args.product_code)

    async def _check_availability(self, args, token, cart_id):
        return await self.client.get_product_stock(args.product_code, args.location)

    async def _get_categories(self, args, token, cart_id):
        return await self.client.get_categories()

    async def _get_products_by_category(self, args, token, cart_id):
        return await self.client.get_products_by_category(
            args.category_code,
            current_page=args.current_page,
            page_size=args.page_size,
            sort=args.sort,
        )

    async def _get_promotions(self, args, token, cart_id):
        return await self.client.get_promotions(args.promotion_id)

    async def _get_product_reviews(self, args, token, cart_id):
        return await self.client.get_product_reviews(args.product_code)

    async def _get_product_suggestions(self, args, token, cart_id):
        return await self.client.get_product_suggestions(args.term, args.max_results)

    async def _get_countries(self, args, token, cart_id):
        return await self.client.get_countries()

    async def _get_regions(self, args, token, cart_id):
        return await self.client.get_regions(args.country_isocode)

    async def _create_cart(self, args, token, cart_id):
        return await self.client.create_cart(caller_token=token)

    async def _get_cart(self, args, token, cart_id):
        return await self.client.get_cart(cart_id, caller_token=token)

    async def _add_to_cart(self, args, token, cart_id):
        return await self.client.add_to_cart(
            cart_id, args.product_code, args.quantity, caller_token=token
        )

    async def _update_cart_entry(self, args, token, cart_id):
        return await self.client.update_cart_entry(
            cart_id, args.entry_number, args.quantity, caller_token=token
        )

    async def _remove_from_cart(self, args, token, cart_id):
        return await self.client.remove_from_cart(
            cart_id, args.entry_number, caller_token=token
        )

    async def _set_delivery_address(self, args, token, cart_id):
        return await self.client.set_delivery_address(
            cart_id, args.to_payload(), caller_token=token
        )

    async def _get_delivery_modes(self, args, token, cart_id):
        return await self.client.get_delivery_modes(cart_id, caller_token=token)

    async def _set_delivery_mode(self, args, token, cart_id):
        return await self.client.set_delivery_mode(
            cart_id, args.delivery_mode_code, caller_token=token
        )

    async def _set_payment_details(self, args, token, cart_id):
        return await self.client.set_payment_details(
            cart_id, args.to_payload(), caller_token=token
        )

    async def _place_order(self, args, token, cart_id):
        return await self.client.place_order(cart_id, caller_token=token)

    async def _get_order_status(self, args, token, cart_id):
        return await self.client.get_order(args.order_code, caller_token=token)

    async def _get_order_history(self, args, token, cart_id):
        return await self.client.get_order_history(
            token, page_size=args.page_size, current_page=args.current_page
        )

    async def _get_site_config(self, args, token, cart_id):
        return self.client.get_site_config()
