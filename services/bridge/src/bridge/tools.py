# services/bridge/src/bridge/tools.py
"""
Closed tool catalog.

Every tool the bridge can execute is a ToolName member with a ToolSpec:
its description and JSON schema for the completion model, the pydantic
model its arguments are validated against, and flags the orchestrator and
gateway dispatch on. The cart id is never part of a tool's arguments; the
orchestrator supplies it from the conversation's checkout state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field


class ToolName(str, Enum):
    SEARCH_PRODUCTS = "search-products"
    SEARCH_PRODUCTS_ADVANCED = "search-products-advanced"
    GET_PRODUCT_DETAILS = "get-product-details"
    CHECK_PRODUCT_AVAILABILITY = "check-product-availability"
    GET_CATEGORIES = "get-categories"
    GET_PRODUCTS_BY_CATEGORY = "get-products-by-category"
    GET_PROMOTIONS = "get-promotions"
    GET_PRODUCT_REVIEWS = "get-product-reviews"
    GET_PRODUCT_SUGGESTIONS = "get-product-suggestions"
    GET_COUNTRIES = "get-countries"
    GET_REGIONS = "get-regions"
    CREATE_CART = "create-cart"
    GET_CART = "get-cart"
    ADD_TO_CART = "add-to-cart"
    UPDATE_CART_ENTRY = "update-cart-entry"
    REMOVE_FROM_CART = "remove-from-cart"
    SET_DELIVERY_ADDRESS = "set-delivery-address"
    GET_DELIVERY_MODES = "get-delivery-modes"
    SET_DELIVERY_MODE = "set-delivery-mode"
    SET_PAYMENT_DETAILS = "set-payment-details"
    PLACE_ORDER = "place-order"
    GET_ORDER_STATUS = "get-order-status"
    GET_ORDER_HISTORY = "get-order-history"
    GET_SITE_CONFIG = "get-site-config"


## ARGUMENT MODELS ##


class ToolArguments(BaseModel):
    """Base for tool arguments: camelCase on the wire, unknown keys dropped."""

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
        "coerce_numbers_to_str": True,
    }


class NoArguments(ToolArguments):
    pass


class SearchProductsArgs(ToolArguments):
    query: str
    page_size: int = Field(10, ge=1, le=100, alias="pageSize")
    current_page: int = Field(0, ge=0, alias="currentPage")


class AdvancedSearchArgs(ToolArguments):
    query: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0, alias="minPrice")
    max_price: Optional[float] = Field(None, ge=0, alias="maxPrice")
    category_code: Optional[str] = Field(None, alias="categoryCode")
    sort: Optional[str] = None
    page_size: int = Field(10, ge=1, le=100, alias="pageSize")
    current_page: int = Field(0, ge=0, alias="currentPage")


class ProductCodeArgs(ToolArguments):
    product_code: str = Field(..., min_length=1, alias="productCode")


class AvailabilityArgs(ProductCodeArgs):
    location: Optional[str] = None


class CategoryProductsArgs(ToolArguments):
    category_code: str = Field(..., min_length=1, alias="categoryCode")
    current_page: int = Field(0, ge=0, alias="currentPage")
    page_size: int = Field(20, ge=1, le=100, alias="pageSize")
    sort: Optional[str] = None


class PromotionsArgs(ToolArguments):
    promotion_id: Optional[str] = Field(None, alias="promotionId")


class SuggestionsArgs(ToolArguments):
    term: str = Field(..., min_length=1)
    max_results: int = Field(5, ge=1, le=50, alias="maxResults")


class RegionsArgs(ToolArguments):
    country_isocode: str = Field(..., min_length=2, alias="countryIsocode")


class AddToCartArgs(ProductCodeArgs):
    quantity: int = Field(1, ge=1)


class UpdateCartEntryArgs(ToolArguments):
    entry_number: int = Field(..., ge=0, alias="entryNumber")
    quantity: int = Field(..., ge=1)


class RemoveFromCartArgs(ToolArguments):
    entry_number: int = Field(..., ge=0, alias="entryNumber")


class AddressArgs(ToolArguments):
    title: Optional[str] = None
    title_code: str = Field("mr", alias="titleCode")
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    company_name: Optional[str] = Field(None, alias="companyName")
    line1: str
    line2: Optional[str] = None
    town: str
    postal_code: str = Field(..., alias="postalCode")
    country_isocode: str = Field(..., alias="countryIsocode")
    country_name: Optional[str] = Field(None, alias="countryName")
    region_isocode: Optional[str] = Field(None, alias="regionIsocode")
    region_name: Optional[str] = Field(None, alias="regionName")
    phone: Optional[str] = None
    email: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """OCC address body; region is only sent when an isocode or name is known."""
        payload: Dict[str, Any] = {
            "title": self.title,
            "titleCode": self.title_code,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "companyName": self.company_name,
            "line1": self.line1,
            "line2": self.line2,
            "town": self.town,
            "postalCode": self.postal_code,
            "country": _drop_none(
                {"isocode": self.country_isocode, "name": self.country_name}
            ),
            "phone": self.phone,
            "email": self.email,
        }
        if self.region_isocode or self.region_name:
            payload["region"] = _drop_none(
                {
                    "isocode": self.region_isocode,
                    "name": self.region_name,
                    "countryIso": self.country_isocode,
                }
            )
        return _drop_none(payload)


class DeliveryModeArgs(ToolArguments):
    delivery_mode_code: str = Field(..., min_length=1, alias="deliveryModeCode")


class PaymentDetailsArgs(ToolArguments):
    account_holder_name: str = Field(..., alias="accountHolderName")
    card_number: str = Field(..., alias="cardNumber")
    card_type_code: str = Field(..., alias="cardTypeCode")
    expiry_month: str = Field(..., alias="expiryMonth")
    expiry_year: str = Field(..., alias="expiryYear")
    cvv: Optional[str] = None
    billing_address: AddressArgs = Field(..., alias="billingAddress")

    def to_payload(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "accountHolderName": self.account_holder_name,
                "cardNumber": self.card_number,
                "cardType": {"code": self.card_type_code},
                "expiryMonth": self.expiry_month,
                "expiryYear": self.expiry_year,
                "cvv": self.cvv,
                "billingAddress": self.billing_address.to_payload(),
            }
        )


class OrderStatusArgs(ToolArguments):
    order_code: str = Field(..., min_length=1, alias="orderCode")


class OrderHistoryArgs(ToolArguments):
    page_size: int = Field(10, ge=1, le=100, alias="pageSize")
    current_page: int = Field(0, ge=0, alias="currentPage")


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


## JSON SCHEMA HELPERS ##


def _string(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def _number(description: str) -> Dict[str, Any]:
    return {"type": "number", "description": description}


def _integer(description: str) -> Dict[str, Any]:
    return {"type": "integer", "description": description}


def _object(
    properties: Optional[Dict[str, Any]] = None,
    required: Optional[List[str]] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = required
    if description:
        schema["description"] = description
    return schema


_ADDRESS_PROPERTIES = {
    "title": _string("Title (e.g. Mr., Mrs., Ms., Dr.), optional"),
    "titleCode": _string('Title code (mr, mrs, ms, dr). Use "mr" if not specified'),
    "firstName": _string("First name"),
    "lastName": _string("Last name"),
    "companyName": _string("Company name, optional"),
    "line1": _string("Address line 1 (street address)"),
    "line2": _string("Address line 2 (apartment, suite), optional"),
    "town": _string("City or town"),
    "postalCode": _string("Postal code / ZIP code"),
    "countryIsocode": _string("Country ISO code (e.g. US, GB, DE)"),
    "countryName": _string("Country name, optional"),
    "regionIsocode": _string("State/region ISO code (e.g. US-NY), optional"),
    "regionName": _string("State/region name (e.g. New York), optional"),
    "phone": _string("Phone number, optional"),
    "email": _string("Email address, optional"),
}
_ADDRESS_REQUIRED = ["firstName", "lastName", "line1", "town", "postalCode", "countryIsocode"]


## CATALOG ##


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_schema: Dict[str, Any]
    args_model: Type[ToolArguments]
    requires_auth: bool = False
    cacheable: bool = False
    mutates_cart: bool = False
    requires_cart: bool = False
    internal: bool = False

    def provider_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "description": self.description,
            "input_schema": self.input_schema,
        }


TOOL_SPECS: Dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in [
        ToolSpec(
            ToolName.SEARCH_PRODUCTS,
            "Search for products in the catalog by query string. Use this for keyword searches.",
            _object(
                {
                    "query": _string('The search query (e.g. "camera", "webcam", "tripod")'),
                    "pageSize": _integer("Number of products to return (default: 10)"),
                },
                ["query"],
            ),
            SearchProductsArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.SEARCH_PRODUCTS_ADVANCED,
            "Product search with price range, category filter and sorting. Use this when "
            "the customer asks for products by price range or category, or wants sorted results.",
            _object(
                {
                    "query": _string("Optional search text for product name/description"),
                    "minPrice": _number("Minimum price (e.g. 200)"),
                    "maxPrice": _number("Maximum price (e.g. 250)"),
                    "categoryCode": _string('Category code (e.g. "cameras", "webcams")'),
                    "sort": _string('"price:asc", "price:desc", "name:asc" or "name:desc"'),
                    "pageSize": _integer("Number of products to return (default: 10)"),
                    "currentPage": _integer("Page number, starting from 0"),
                }
            ),
            AdvancedSearchArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.GET_PRODUCT_DETAILS,
            "Get detailed information about a specific product by its product code.",
            _object({"productCode": _string("The product code/SKU")}, ["productCode"]),
            ProductCodeArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.CHECK_PRODUCT_AVAILABILITY,
            "Check whether a product is in stock.",
            _object(
                {
                    "productCode": _string("The product code/SKU to check"),
                    "location": _string("Warehouse or store location code, optional"),
                },
                ["productCode"],
            ),
            AvailabilityArgs,
        ),
        ToolSpec(
            ToolName.GET_CATEGORIES,
            "Get all product categories from the catalog.",
            _object(),
            NoArguments,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.GET_PRODUCTS_BY_CATEGORY,
            "Get the products in a specific category. Use this when the customer wants to "
            "browse by category.",
            _object(
                {
                    "categoryCode": _string('Category code (e.g. "cameras", "webcams")'),
                    "currentPage": _integer("Page number, starting from 0"),
                    "pageSize": _integer("Number of products per page (default: 20)"),
                    "sort": _string('"relevance", "price:asc", "price:desc", "name:asc" or "name:desc"'),
                },
                ["categoryCode"],
            ),
            CategoryProductsArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.GET_PROMOTIONS,
            "Get current promotions, deals and sales.",
            _object({"promotionId": _string("Optional promotion id for a single promotion")}),
            PromotionsArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.GET_PRODUCT_REVIEWS,
            "Get customer reviews and ratings for a specific product.",
            _object({"productCode": _string("The product code/SKU")}, ["productCode"]),
            ProductCodeArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.GET_PRODUCT_SUGGESTIONS,
            "Get search suggestions for a partial search term.",
            _object(
                {
                    "term": _string('Partial search term (e.g. "cam")'),
                    "maxResults": _integer("Maximum number of suggestions (default: 5)"),
                },
                ["term"],
            ),
            SuggestionsArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.GET_COUNTRIES,
            "List the countries available for delivery addresses.",
            _object(),
            NoArguments,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.GET_REGIONS,
            "List the regions/states of a country, for delivery addresses.",
            _object(
                {"countryIsocode": _string("Country ISO code (e.g. US)")},
                ["countryIsocode"],
            ),
            RegionsArgs,
            cacheable=True,
        ),
        ToolSpec(
            ToolName.CREATE_CART,
            "Create a new cart.",
            _object(),
            NoArguments,
            internal=True,
        ),
        ToolSpec(
            ToolName.GET_CART,
            "View the shopping cart for this conversation: items, quantities and prices.",
            _object(),
            NoArguments,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.ADD_TO_CART,
            "Add a product to the shopping cart. A cart is created automatically if this "
            "conversation has none.",
            _object(
                {
                    "productCode": _string("Product code/SKU to add"),
                    "quantity": _integer("Quantity to add (default: 1)"),
                },
                ["productCode"],
            ),
            AddToCartArgs,
            mutates_cart=True,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.UPDATE_CART_ENTRY,
            "Change the quantity of an item already in the cart.",
            _object(
                {
                    "entryNumber": _integer("Entry number of the item in the cart (0, 1, 2, ...)"),
                    "quantity": _integer("New quantity"),
                },
                ["entryNumber", "quantity"],
            ),
            UpdateCartEntryArgs,
            mutates_cart=True,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.REMOVE_FROM_CART,
            "Remove an item from the cart completely.",
            _object(
                {"entryNumber": _integer("Entry number of the item to remove")},
                ["entryNumber"],
            ),
            RemoveFromCartArgs,
            mutates_cart=True,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.SET_DELIVERY_ADDRESS,
            "Set the delivery address for the cart. Call this as soon as the customer "
            "provides address information; acknowledging in text does not save it.",
            _object(_ADDRESS_PROPERTIES, _ADDRESS_REQUIRED),
            AddressArgs,
            mutates_cart=True,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.GET_DELIVERY_MODES,
            "Get the available shipping options for the cart, with their codes and costs.",
            _object(),
            NoArguments,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.SET_DELIVERY_MODE,
            "Set the shipping method for the cart. Use the exact code returned by "
            'get-delivery-modes (e.g. "standard-gross"), not the customer\'s wording.',
            _object(
                {"deliveryModeCode": _string("Exact delivery mode code from get-delivery-modes")},
                ["deliveryModeCode"],
            ),
            DeliveryModeArgs,
            mutates_cart=True,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.SET_PAYMENT_DETAILS,
            "Save payment information for the cart when the customer provides card details. "
            "Payment details must be saved before an order can be placed.",
            _object(
                {
                    "accountHolderName": _string("Cardholder name"),
                    "cardNumber": _string("Credit/debit card number"),
                    "cardTypeCode": _string("Card type code (visa, master, amex)"),
                    "expiryMonth": _string('Expiry month, MM (e.g. "12")'),
                    "expiryYear": _string('Expiry year, YYYY (e.g. "2027")'),
                    "cvv": _string("CVV/security code, optional"),
                    "billingAddress": _object(
                        _ADDRESS_PROPERTIES,
                        _ADDRESS_REQUIRED,
                        description="Billing address, same format as the delivery address",
                    ),
                },
                [
                    "accountHolderName",
                    "cardNumber",
                    "cardTypeCode",
                    "expiryMonth",
                    "expiryYear",
                    "billingAddress",
                ],
            ),
            PaymentDetailsArgs,
            mutates_cart=True,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.PLACE_ORDER,
            "Submit the order. The cart needs items, a delivery address, a shipping method "
            "and payment details. Requires authentication.",
            _object(),
            NoArguments,
            requires_auth=True,
            requires_cart=True,
        ),
        ToolSpec(
            ToolName.GET_ORDER_STATUS,
            "Get the status and details of a specific order of the logged-in customer.",
            _object({"orderCode": _string("The order code/number")}, ["orderCode"]),
            OrderStatusArgs,
            requires_auth=True,
        ),
        ToolSpec(
            ToolName.GET_ORDER_HISTORY,
            "Get the order history of the logged-in customer.",
            _object(
                {
                    "pageSize": _integer("Number of orders to return (default: 10)"),
                    "currentPage": _integer("Page number, starting from 0"),
                }
            ),
            OrderHistoryArgs,
            requires_auth=True,
        ),
        ToolSpec(
            ToolName.GET_SITE_CONFIG,
            "Site configuration: base site, languages, currencies and features.",
            _object(),
            NoArguments,
            cacheable=True,
            internal=True,
        ),
    ]
}

CART_MUTATING_TOOLS = frozenset(
    name for name, spec in TOOL_SPECS.items() if spec.mutates_cart
)
AUTHENTICATED_TOOLS = frozenset(
    name for name, spec in TOOL_SPECS.items() if spec.requires_auth
)


def catalog_for(is_authenticated: bool) -> List[ToolSpec]:
    """Tools offered to the completion model for one caller."""
    return [
        spec
        for spec in TOOL_SPECS.values()
        if not spec.internal and (is_authenticated or not spec.requires_auth)
    ]


def parse_tool_name(name: str) -> Optional[ToolName]:
    try:
        return ToolName(name)
    except ValueError:
        return None
