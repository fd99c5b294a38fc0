from marketplace.schemas.orders import (
    Address,
    CartEntry,
    CheckoutRequest,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    OrderCreateResponse,
    OrderResponse,
    PlaceOrderRequest,
    ShippingSelection,
)
from marketplace.schemas.payments import InitOrderRequest, InitOrderResponse, LatestPaymentResponse
from marketplace.schemas.seller import SellerStatsResponse

__all__ = [
    "Address",
    "CartEntry",
    "CheckoutRequest",
    "ConfirmPaymentRequest",
    "ConfirmPaymentResponse",
    "OrderCreateResponse",
    "OrderResponse",
    "PlaceOrderRequest",
    "ShippingSelection",
    "InitOrderRequest",
    "InitOrderResponse",
    "LatestPaymentResponse",
    "SellerStatsResponse",
]
