from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from marketplace.models import ProductKind


def _format_money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(Decimal(value).quantize(Decimal("0.01")), "f")


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ShippingSelection(CamelModel):
    method_id: int | None = Field(default=None, alias="methodId")
    method_name: str | None = Field(default=None, alias="methodName")
    method_type: Literal["delivery", "pickup"] = Field(default="delivery", alias="methodType")
    cost: Decimal = Field(default=Decimal("0"), ge=0)


class CartEntry(CamelModel):
    type: ProductKind
    id: int
    variant_id: int | None = Field(default=None, alias="variantId")
    shipping: ShippingSelection | None = None


class Address(CamelModel):
    line1: str = ""
    line2: str | None = None
    postal_code: str = Field(default="", alias="postalCode")
    city: str = ""
    province: str | None = None
    country: str = "ES"
    lat: float | None = None
    lng: float | None = None


class CheckoutRequest(CamelModel):
    items: list[CartEntry] = []
    email: str | None = None
    phone: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    delivery_address: Address | None = Field(default=None, alias="deliveryAddress")
    invoicing_address: Address | None = Field(default=None, alias="invoicingAddress")
    currency: str | None = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "items": [
                        {
                            "type": "art",
                            "id": 1,
                            "shipping": {"methodId": 2, "methodName": "Courier", "methodType": "delivery", "cost": 5},
                        }
                    ],
                    "email": "buyer@example.com",
                    "phone": "+34600000000",
                    "deliveryAddress": {"line1": "Calle Mayor 1", "postalCode": "28013", "city": "Madrid", "country": "ES"},
                }
            ]
        },
    )


class PlaceOrderRequest(CheckoutRequest):
    revolut_order_id: str | None = Field(default=None, alias="revolutOrderId")


class ConfirmPaymentRequest(BaseModel):
    order_id: int | None = None
    payment_id: str | None = None


class OrderItemResponse(BaseModel):
    id: int
    product_type: ProductKind
    product_id: int
    variant_id: int | None = None
    variant_key: str | None = None
    name: str | None = None
    basename: str | None = None
    seller_id: int | None = None
    price_at_purchase: Decimal
    shipping_method_id: int | None = None
    shipping_cost: Decimal
    shipping_method_name: str | None = None
    shipping_method_type: str | None = None

    @field_serializer("price_at_purchase", "shipping_cost")
    def serialize_money(self, value: Decimal) -> str:
        return _format_money(value)


class OrderResponse(BaseModel):
    id: int
    buyer_email: str
    buyer_phone: str | None = None
    full_name: str | None = None
    total_price: Decimal
    currency: str = "EUR"
    status: str
    token: str
    delivery_address: Address | None = None
    invoicing_address: Address | None = None
    revolut_order_id: str | None = None
    revolut_payment_id: str | None = None
    created_at: str
    items: list[OrderItemResponse] = []

    @field_serializer("total_price")
    def serialize_total(self, value: Decimal) -> str:
        return _format_money(value)


class OrderCreateResponse(BaseModel):
    success: bool = True
    order: OrderResponse
    revolut_order_id: str | None = None
    revolut_token: str | None = None
    amount: int
    currency: str


class ConfirmPaymentResponse(BaseModel):
    success: bool = True
    order_id: int
    status: str
    payment_id: str
    already_paid: bool


class OrderListResponse(BaseModel):
    success: bool = True
    orders: list[OrderResponse]
