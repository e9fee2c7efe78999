# services/bridge/tests/unit/test_gateway.py

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from bridge.gateway import ToolGateway, ToolResult
from bridge.tools import AddToCartArgs, ToolName
from libs.commerce_shared.models import HealthStatus
from libs.commerce_shared.retry import RetryPolicy


def decoded(result: ToolResult):
    return json.loads(result.content)


@pytest.mark.unit
class TestExecute:
    @pytest.mark.asyncio
    async def test_successful_call(self, gateway):
        result = await gateway.execute("search-products", {"query": "camera"})

        assert not result.is_error
        assert decoded(result)["products"][0]["code"] == "ACME-100"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, gateway, fake_backend):
        result = await gateway.execute("drop-tables", {})

        assert result.is_error
        assert "Unknown tool" in decoded(result)["error"]
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, gateway, fake_backend):
        result = await gateway.execute("add-to-cart", {"quantity": 2}, cart_id="00001")

        assert result.is_error
        assert decoded(result)["error"] == "Invalid arguments for add-to-cart"
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_cart_tool_without_cart(self, gateway, fake_backend):
        result = await gateway.execute("get-delivery-modes", {})

        assert result.is_error
        assert decoded(result)["error"] == "No cart exists"
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_cart_id_is_passed_through(self, gateway, fake_backend):
        cart = await gateway.client.create_cart()

        result = await gateway.execute(
            "add-to-cart", {"productCode": "ACME-100"}, cart_id=cart["code"]
        )

        assert not result.is_error
        assert fake_backend.carts[cart["code"]]["entries"][0]["product"]["code"] == "ACME-100"

    @pytest.mark.asyncio
    async def test_never_raises_on_unexpected_errors(self, cache, health_monitor):
        client = MagicMock()
        client.get_product = AsyncMock(side_effect=RuntimeError("boom"))
        gateway = ToolGateway(client, cache, health_monitor)

        result = await gateway.execute("get-product-details", {"productCode": "X"})

        assert result.is_error
        assert "boom" in decoded(result)["error"]

    @pytest.mark.asyncio
    async def test_auth_required_tool_without_token(self, gateway):
        result = await gateway.execute("get-order-history", {})

        assert result.is_error
        assert "signed-in" in decoded(result)["error"]


@pytest.mark.unit
class TestCaching:
    @pytest.mark.asyncio
    async def test_cacheable_read_is_served_from_cache(self, gateway, fake_backend):
        first = await gateway.execute("search-products", {"query": "camera"})
        second = await gateway.execute("search-products", {"query": "camera"})

        assert first.content == second.content
        assert len(fake_backend.requests_to("/products/search")) == 1

    @pytest.mark.asyncio
    async def test_cache_accesses_feed_health_monitor(self, gateway, health_monitor):
        await gateway.execute("search-products", {"query": "camera"})
        await gateway.execute("search-products", {"query": "camera"})

        snapshot = health_monitor.evaluate()
        assert snapshot.cache_hit_rate == 0.5

    @pytest.mark.asyncio
    async def test_availability_is_not_cached(self, gateway, fake_backend):
        await gateway.execute("check-product-availability", {"productCode": "ACME-100"})
        await gateway.execute("check-product-availability", {"productCode": "ACME-100"})

        assert len(fake_backend.requests_to("/stock")) == 2

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self, gateway, fake_backend):
        fake_backend.fail("/products/search", 404)

        first = await gateway.execute("search-products", {"query": "camera"})
        second = await gateway.execute("search-products", {"query": "camera"})

        assert first.is_error
        assert not second.is_error

    def test_cache_key_ignores_alias_spelling(self):
        by_alias = AddToCartArgs.model_validate({"productCode": "A", "quantity": 2})
        by_name = AddToCartArgs.model_validate({"product_code": "A", "quantity": 2})

        assert ToolGateway.cache_key(ToolName.ADD_TO_CART, by_alias) == ToolGateway.cache_key(
            ToolName.ADD_TO_CART, by_name
        )


@pytest.mark.unit
class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, gateway, fake_backend):
        fake_backend.fail("/products/search", 503, times=2)

        result = await gateway.execute("search-products", {"query": "camera"})

        assert not result.is_error
        assert len(fake_backend.requests_to("/products/search")) == 3
        assert gateway._sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_report_status(self, gateway, fake_backend):
        fake_backend.fail("/products/search", 503, times=5)

        result = await gateway.execute("search-products", {"query": "camera"})

        payload = decoded(result)
        assert result.is_error
        assert payload["status"] == 503
        assert payload["attempts"] == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, gateway, fake_backend):
        result = await gateway.execute("get-product-details", {"productCode": "NOPE"})

        assert result.is_error
        assert decoded(result)["status"] == 400
        assert len(fake_backend.requests_to("/products/NOPE")) == 1

    @pytest.mark.asyncio
    async def test_failures_degrade_health(self, commerce_client, cache, health_monitor, fake_backend):
        gateway = ToolGateway(
            commerce_client,
            cache,
            health_monitor,
            RetryPolicy(max_attempts=1),
        )
        fake_backend.fail("/stock", 500, times=1)

        await gateway.execute("check-product-availability", {"productCode": "ACME-100"})
        await gateway.execute("check-product-availability", {"productCode": "ACME-100"})

        snapshot = health_monitor.evaluate()
        assert snapshot.error_rate == 0.5
        assert snapshot.status == HealthStatus.UNHEALTHY
