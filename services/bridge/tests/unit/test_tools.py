# services/bridge/tests/unit/test_tools.py

import pytest
from bridge.tools import (
    AUTHENTICATED_TOOLS,
    CART_MUTATING_TOOLS,
    TOOL_SPECS,
    AddressArgs,
    AddToCartArgs,
    PaymentDetailsArgs,
    ToolName,
    catalog_for,
    parse_tool_name,
)
from helpers import SAMPLE_ADDRESS, SAMPLE_PAYMENT
from pydantic import ValidationError


@pytest.mark.unit
class TestCatalog:
    def test_every_tool_has_a_spec(self):
        assert set(TOOL_SPECS) == set(ToolName)

    def test_anonymous_catalog_hides_order_tools(self):
        names = {spec.name for spec in catalog_for(is_authenticated=False)}

        assert not names & AUTHENTICATED_TOOLS
        assert ToolName.ADD_TO_CART in names
        assert ToolName.SEARCH_PRODUCTS in names

    def test_authenticated_catalog_includes_order_tools(self):
        names = {spec.name for spec in catalog_for(is_authenticated=True)}

        assert AUTHENTICATED_TOOLS <= names
        assert ToolName.PLACE_ORDER in names

    def test_internal_tools_are_never_offered(self):
        for authenticated in (True, False):
            names = {spec.name for spec in catalog_for(authenticated)}
            assert ToolName.CREATE_CART not in names
            assert ToolName.GET_SITE_CONFIG not in names

    def test_cart_mutators(self):
        assert CART_MUTATING_TOOLS == {
            ToolName.ADD_TO_CART,
            ToolName.UPDATE_CART_ENTRY,
            ToolName.REMOVE_FROM_CART,
            ToolName.SET_DELIVERY_ADDRESS,
            ToolName.SET_DELIVERY_MODE,
            ToolName.SET_PAYMENT_DETAILS,
        }

    def test_availability_is_never_cached(self):
        assert not TOOL_SPECS[ToolName.CHECK_PRODUCT_AVAILABILITY].cacheable
        assert TOOL_SPECS[ToolName.SEARCH_PRODUCTS].cacheable

    def test_no_schema_exposes_a_cart_id(self):
        for spec in TOOL_SPECS.values():
            assert "cartId" not in spec.input_schema.get("properties", {})

    def test_provider_schema(self):
        schema = TOOL_SPECS[ToolName.GET_PRODUCT_DETAILS].provider_schema()

        assert schema["name"] == "get-product-details"
        assert schema["input_schema"]["required"] == ["productCode"]

    def test_parse_tool_name(self):
        assert parse_tool_name("add-to-cart") is ToolName.ADD_TO_CART
        assert parse_tool_name("delete-everything") is None


@pytest.mark.unit
class TestArguments:
    def test_camel_case_aliases_and_defaults(self):
        args = AddToCartArgs.model_validate({"productCode": "ACME-100"})

        assert args.product_code == "ACME-100"
        assert args.quantity == 1

    def test_numeric_codes_are_coerced_to_strings(self):
        args = AddToCartArgs.model_validate({"productCode": 1934793, "quantity": 2})
        assert args.product_code == "1934793"

    def test_unknown_keys_are_ignored(self):
        args = AddToCartArgs.model_validate({"productCode": "ACME-100", "cartId": "x"})
        assert not hasattr(args, "cartId")

    def test_invalid_quantity_rejected(self):
        with pytest.raises(ValidationError):
            AddToCartArgs.model_validate({"productCode": "ACME-100", "quantity": 0})

    def test_address_payload(self):
        payload = AddressArgs.model_validate(SAMPLE_ADDRESS).to_payload()

        assert payload["titleCode"] == "mr"
        assert payload["country"] == {"isocode": "US"}
        assert payload["region"] == {"isocode": "US-NY", "countryIso": "US"}
        assert "line2" not in payload

    def test_address_without_region(self):
        data = {k: v for k, v in SAMPLE_ADDRESS.items() if k != "regionIsocode"}
        payload = AddressArgs.model_validate(data).to_payload()

        assert "region" not in payload

    def test_address_requires_core_fields(self):
        with pytest.raises(ValidationError):
            AddressArgs.model_validate({"firstName": "Ada"})

    def test_payment_payload(self):
        payload = PaymentDetailsArgs.model_validate(SAMPLE_PAYMENT).to_payload()

        assert payload["cardType"] == {"code": "visa"}
        assert payload["expiryYear"] == "2030"
        assert payload["billingAddress"]["postalCode"] == "10001"

    def test_payment_accepts_numeric_expiry(self):
        data = dict(SAMPLE_PAYMENT, expiryMonth=12, expiryYear=2030)
        args = PaymentDetailsArgs.model_validate(data)

        assert args.expiry_month == "12"
        assert args.expiry_year == "2030"
