# services/bridge/tests/unit/test_commerce_client.py

import httpx
import pytest
from bridge.commerce_client import CommerceClient, CommerceError


@pytest.mark.unit
class TestAccessToken:
    def test_token_url_strips_api_prefix(self, commerce_client):
        assert (
            commerce_client.token_url
            == "https://commerce.test/authorizationserver/oauth/token"
        )

    @pytest.mark.asyncio
    async def test_token_is_cached(self, commerce_client, fake_backend):
        first = await commerce_client.get_access_token()
        second = await commerce_client.get_access_token()

        assert first == second == "app-token"
        assert fake_backend.token_requests == 1

    @pytest.mark.asyncio
    async def test_token_refreshed_near_expiry(self, fake_backend):
        now = [1000.0]
        client = CommerceClient(
            "https://commerce.test/occ/v2",
            client_id="id",
            client_secret="secret",
            transport=fake_backend.transport,
            clock=lambda: now[0],
        )

        await client.get_access_token()
        # expires_in 3600 less the five minute buffer
        now[0] += 3301
        await client.get_access_token()

        assert fake_backend.token_requests == 2

    @pytest.mark.asyncio
    async def test_no_credentials_means_no_token(self, fake_backend):
        client = CommerceClient(
            "https://commerce.test/occ/v2", transport=fake_backend.transport
        )

        assert await client.get_access_token() is None
        await client.search_products("camera")

        assert fake_backend.requests[0].authorization is None

    @pytest.mark.asyncio
    async def test_token_failure_returns_none(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        client = CommerceClient(
            "https://commerce.test/occ/v2",
            client_id="id",
            client_secret="secret",
            transport=transport,
        )

        assert await client.get_access_token() is None


@pytest.mark.unit
class TestRequests:
    @pytest.mark.asyncio
    async def test_search_uses_app_token_and_site(self, commerce_client, fake_backend):
        result = await commerce_client.search_products("camera", page_size=5)

        request = fake_backend.requests[0]
        assert request.path == "/occ/v2/electronics/products/search"
        assert request.params["query"] == "camera"
        assert request.params["pageSize"] == "5"
        assert request.authorization == "Bearer app-token"
        assert result["products"][0]["code"] == "ACME-100"

    @pytest.mark.asyncio
    async def test_advanced_search_builds_price_range(self, commerce_client, fake_backend):
        await commerce_client.search_products_advanced(min_price=200, max_price=250.5)
        await commerce_client.search_products_advanced(max_price=100)

        first, second = fake_backend.requests
        assert first.params["priceValue"] == "200:250.5"
        assert "query" not in first.params
        assert second.params["priceValue"] == ":100"

    @pytest.mark.asyncio
    async def test_categories_from_online_catalog(self, commerce_client):
        result = await commerce_client.get_categories()
        assert [c["id"] for c in result["categories"]] == ["cameras", "webcams"]

    @pytest.mark.asyncio
    async def test_missing_catalog_raises(self, test_settings):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"catalogs": []})
        )
        client = CommerceClient.from_config(test_settings, transport=transport)

        with pytest.raises(CommerceError):
            await client.get_categories()

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self, commerce_client):
        with pytest.raises(httpx.HTTPStatusError):
            await commerce_client.get_product("NOPE")

    def test_site_config_is_static(self, commerce_client):
        config = commerce_client.get_site_config()
        assert config["baseSite"] == "electronics"
        assert config["features"]["checkout"] is True


@pytest.mark.unit
class TestCarts:
    @pytest.mark.asyncio
    async def test_anonymous_cart_paths(self, commerce_client, fake_backend):
        cart = await commerce_client.create_cart()
        await commerce_client.add_to_cart(cart["guid"], "ACME-100", 2)

        create, add = fake_backend.requests
        assert create.path.endswith("/users/anonymous/carts")
        assert add.path.endswith(f"/users/anonymous/carts/{cart['guid']}/entries")
        assert add.body == {"product": {"code": "ACME-100"}, "quantity": 2}

    @pytest.mark.asyncio
    async def test_signed_in_cart_uses_caller_token(self, commerce_client, fake_backend):
        cart = await commerce_client.create_cart(caller_token="user-token")
        await commerce_client.get_cart(cart["code"], caller_token="user-token")

        for request in fake_backend.requests:
            assert "/users/current/" in request.path
            assert request.authorization == "Bearer user-token"
        assert fake_backend.token_requests == 0

    @pytest.mark.asyncio
    async def test_remove_from_cart_reports_entry(self, commerce_client):
        cart = await commerce_client.create_cart()
        await commerce_client.add_to_cart(cart["code"], "ACME-100")

        result = await commerce_client.remove_from_cart(cart["code"], 0)

        assert result == {"success": True, "entryNumber": 0}

    @pytest.mark.asyncio
    async def test_set_delivery_mode_sends_query_param(self, commerce_client, fake_backend):
        cart = await commerce_client.create_cart()

        result = await commerce_client.set_delivery_mode(cart["code"], "standard-gross")

        request = fake_backend.requests_to("/deliverymode", "PUT")[0]
        assert request.params["deliveryModeId"] == "standard-gross"
        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_delivery_modes_are_normalized(self, commerce_client):
        cart = await commerce_client.create_cart()
        result = await commerce_client.get_delivery_modes(cart["code"])
        assert [m["code"] for m in result["deliveryModes"]] == [
            "standard-gross",
            "premium-gross",
        ]


@pytest.mark.unit
class TestOrders:
    @pytest.mark.asyncio
    async def test_place_order_requires_caller_token(self, commerce_client, fake_backend):
        with pytest.raises(CommerceError):
            await commerce_client.place_order("00001", caller_token=None)
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_place_order(self, commerce_client, fake_backend):
        cart = await commerce_client.create_cart(caller_token="user-token")

        order = await commerce_client.place_order(cart["code"], caller_token="user-token")

        request = fake_backend.requests_to("/users/current/orders", "POST")[0]
        assert request.params["cartId"] == cart["code"]
        assert order["code"] == "12345678"

    @pytest.mark.asyncio
    async def test_order_lookup_requires_caller_token(self, commerce_client):
        with pytest.raises(CommerceError):
            await commerce_client.get_order("12345678", caller_token=None)
        with pytest.raises(CommerceError):
            await commerce_client.get_order_history(caller_token=None)
