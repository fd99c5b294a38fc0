from pydantic import BaseModel

from marketplace.schemas.orders import CartEntry


class InitOrderRequest(BaseModel):
    items: list[CartEntry] = []
    currency: str | None = None


class InitOrderResponse(BaseModel):
    success: bool = True
    token: str | None = None
    revolut_order_id: str
    amount: int | None = None
    currency: str | None = None
    state: str | None = None


class LatestPaymentResponse(BaseModel):
    success: bool = True
    payment_id: str
    state: str | None = None
    amount: int | None = None


class CancelOrderResponse(BaseModel):
    success: bool = True
    order_id: str
    result: dict | None = None
