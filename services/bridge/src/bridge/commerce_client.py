# services/bridge/src/bridge/commerce_client.py
"""
REST client for the commerce backend (OCC v2 style API).

One coroutine per tool. Each coroutine performs a single HTTP exchange and
returns the decoded JSON body; retries, caching and error encoding belong to
the tool gateway. Calls made on behalf of a signed-in caller carry the
caller's bearer token and address ``/users/current``; everything else uses
the client-credentials token and ``/users/anonymous`` for carts.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional

import httpx
from libs.commerce_shared.logging import get_logger

from .config import BridgeConfig

logger = get_logger(__name__)

TOKEN_EXPIRY_BUFFER_SECONDS = 300
DEFAULT_CATALOG_ID = "electronicsProductCatalog"
DEFAULT_CATALOG_VERSION = "Online"


class CommerceError(Exception):
    """A request could not be made or the backend answered with an unusable payload."""


class CommerceClient:
    def __init__(
        self,
        base_url: str,
        base_site: str = "electronics",
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: float = 15.0,
        verify: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.base_site = base_site
        self.client_id = client_id
        self.client_secret = client_secret
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            verify=verify,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(
        cls, settings: BridgeConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "CommerceClient":
        return cls(
            base_url=settings.commerce_base_url,
            base_site=settings.commerce_base_site,
            client_id=settings.commerce_client_id,
            client_secret=settings.commerce_client_secret,
            timeout=settings.commerce_timeout_seconds,
            verify=settings.commerce_verify_ssl,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Plumbing ---------------------------------------------------------

    @property
    def token_url(self) -> str:
        root = self.base_url.replace("/occ/v2", "")
        return f"{root}/authorizationserver/oauth/token"

    async def get_access_token(self) -> Optional[str]:
        """
        Client-credentials token, cached until five minutes before expiry.

        Returns None when no credentials are configured or the token request
        fails; requests then go out unauthenticated.
        """
        if not self.client_id or not self.client_secret:
            return None

        async with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token

            try:
                response = await self._client.post(
                    self.token_url,
                    params={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "grant_type": "client_credentials",
                    },
                )
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Failed to obtain access token: {e}")
                return None

            self._token = body.get("access_token")
            expires_in = float(body.get("expires_in", 0))
            self._token_expires_at = (
                self._clock() + expires_in - TOKEN_EXPIRY_BUFFER_SECONDS
            )
            logger.info("Access token obtained", extra={"expires_in": expires_in})
            return self._token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        caller_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Dict[str, Any]:
        token = caller_token or await self.get_access_token()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        url = f"/{self.base_site}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        started = time.perf_counter()
        response = await self._client.request(
            method, url, params=params, json=json, headers=headers
        )
        logger.debug(
            "Commerce request completed",
            extra={
                "method": method,
                "path": url,
                "status": response.status_code,
                "duration_ms": (time.perf_counter() - started) * 1000,
            },
        )
        response.raise_for_status()

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _user_prefix(caller_token: Optional[str]) -> str:
        return "/users/current" if caller_token else "/users/anonymous"

    # --- Products ---------------------------------------------------------

    async def search_products(
        self, query: str, page_size: int = 10, current_page: int = 0
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            "/products/search",
            params={
                "query": query,
                "currentPage": current_page,
                "pageSize": page_size,
                "fields": "FULL",
            },
        )

    async def search_products_advanced(
        self,
        query: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        category_code: Optional[str] = None,
        sort: Optional[str] = None,
        page_size: int = 10,
        current_page: int = 0,
    ) -> Dict[str, Any]:
        price_value = None
        if min_price is not None or max_price is not None:
            low = "" if min_price is None else f"{min_price:g}"
            high = "" if max_price is None else f"{max_price:g}"
            price_value = f"{low}:{high}"

        return await self._request(
            "GET",
            "/products/search",
            params={
                "query": query,
                "categoryCode": category_code,
                "priceValue": price_value,
                "sort": sort,
                "currentPage": current_page,
                "pageSize": page_size,
                "fields": "FULL",
            },
        )

    async def get_product(self, product_code: str) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/products/{product_code}", params={"fields": "FULL"}
        )

    async def get_product_stock(
        self, product_code: str, location: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/products/{product_code}/stock",
            params={"fields": "FULL", "location": location},
        )

    async def get_product_reviews(self, product_code: str) -> Dict[str, Any]:
        return await self._request("GET", f"/products/{product_code}/reviews")

    async def get_product_suggestions(self, term: str, max_results: int = 5) -> Dict[str, Any]:
        return await self._request(
            "GET", "/products/suggestions", params={"term": term, "max": max_results}
        )

    # --- Catalog ----------------------------------------------------------

    async def get_categories(self) -> Dict[str, Any]:
        """Categories of the online product catalog."""
        catalogs = await self._request("GET", "/catalogs", params={"fields": "FULL"})
        for catalog in catalogs.get("catalogs", []):
            if catalog.get("id") != DEFAULT_CATALOG_ID:
                continue
            for version in catalog.get("catalogVersions", []):
                if version.get("id") == DEFAULT_CATALOG_VERSION:
                    return {"categories": version.get("categories", [])}
        raise CommerceError(
            f"Catalog {DEFAULT_CATALOG_ID}/{DEFAULT_CATALOG_VERSION} not found"
        )

    async def get_products_by_category(
        self,
        category_code: str,
        current_page: int = 0,
        page_size: int = 20,
        sort: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/categories/{category_code}/products",
            params={
                "currentPage": current_page,
                "pageSize": page_size,
                "sort": sort,
                "fields": "FULL",
            },
        )

    async def get_promotions(self, promotion_id: Optional[str] = None) -> Dict[str, Any]:
        if promotion_id:
            return await self._request(
                "GET", f"/promotions/{promotion_id}", params={"fields": "FULL"}
            )
        return await self._request(
            "GET", "/promotions", params={"type": "all", "fields": "FULL"}
        )

    async def get_countries(self) -> Dict[str, Any]:
        return await self._request("GET", "/countries", params={"fields": "FULL"})

    async def get_regions(self, country_isocode: str) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/countries/{country_isocode}/regions", params={"fields": "FULL"}
        )

    def get_site_config(self) -> Dict[str, Any]:
        """Static storefront configuration; no backend call."""
        return {
            "baseSite": self.base_site,
            "baseUrl": self.base_url,
            "availableLanguages": ["en", "de", "ja", "zh"],
            "availableCurrencies": ["USD", "EUR", "JPY"],
            "features": {
                "productSearch": True,
                "cart": True,
                "checkout": True,
                "orderHistory": True,
                "promotions": True,
                "reviews": True,
            },
            "version": "1.0.0",
        }

    # --- Cart -------------------------------------------------------------

    async def create_cart(self, caller_token: Optional[str] = None) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._user_prefix(caller_token)}/carts",
            caller_token=caller_token,
            params={"fields": "FULL"},
        )

    async def get_cart(self, cart_id: str, caller_token: Optional[str] = None) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}",
            caller_token=caller_token,
            params={"fields": "FULL"},
        )

    async def add_to_cart(
        self,
        cart_id: str,
        product_code: str,
        quantity: int = 1,
        caller_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}/entries",
            caller_token=caller_token,
            json={"product": {"code": product_code}, "quantity": quantity},
        )

    async def update_cart_entry(
        self,
        cart_id: str,
        entry_number: int,
        quantity: int,
        caller_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}/entries/{entry_number}",
            caller_token=caller_token,
            json={"quantity": quantity},
        )

    async def remove_from_cart(
        self, cart_id: str, entry_number: int, caller_token: Optional[str] = None
    ) -> Dict[str, Any]:
        await self._request(
            "DELETE",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}/entries/{entry_number}",
            caller_token=caller_token,
        )
        return {"success": True, "entryNumber": entry_number}

    # --- Checkout ---------------------------------------------------------

    async def set_delivery_address(
        self, cart_id: str, address: Dict[str, Any], caller_token: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}/addresses/delivery",
            caller_token=caller_token,
            json=address,
        )

    async def get_delivery_modes(
        self, cart_id: str, caller_token: Optional[str] = None
    ) -> Dict[str, Any]:
        body = await self._request(
            "GET",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}/deliverymodes",
            caller_token=caller_token,
            params={"fields": "FULL"},
        )
        return {"deliveryModes": body.get("deliveryModes", [])}

    async def set_delivery_mode(
        self, cart_id: str, delivery_mode_code: str, caller_token: Optional[str] = None
    ) -> Dict[str, Any]:
        await self._request(
            "PUT",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}/deliverymode",
            caller_token=caller_token,
            params={"deliveryModeId": delivery_mode_code},
        )
        return {"success": True, "deliveryModeCode": delivery_mode_code}

    async def set_payment_details(
        self, cart_id: str, payment: Dict[str, Any], caller_token: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._user_prefix(caller_token)}/carts/{cart_id}/paymentdetails",
            caller_token=caller_token,
            json=payment,
        )

    # --- Orders -----------------------------------------------------------

    async def place_order(self, cart_id: str, caller_token: Optional[str]) -> Dict[str, Any]:
        if not caller_token:
            raise CommerceError("Placing an order requires a signed-in customer")
        return await self._request(
            "POST",
            "/users/current/orders",
            caller_token=caller_token,
            params={"cartId": cart_id, "fields": "FULL"},
        )

    async def get_order(self, order_code: str, caller_token: Optional[str]) -> Dict[str, Any]:
        if not caller_token:
            raise CommerceError("Order lookup requires a signed-in customer")
        return await self._request(
            "GET",
            f"/users/current/orders/{order_code}",
            caller_token=caller_token,
            params={"fields": "FULL"},
        )

    async def get_order_history(
        self,
        caller_token: Optional[str],
        page_size: int = 10,
        current_page: int = 0,
    ) -> Dict[str, Any]:
        if not caller_token:
            raise CommerceError("Order history requires a signed-in customer")
        return await self._request(
            "GET",
            "/users/current/orders",
            caller_token=caller_token,
            params={"currentPage": current_page, "pageSize": page_size, "fields": "FULL"},
        )
