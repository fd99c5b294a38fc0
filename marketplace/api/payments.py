import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.dependencies import get_gateway_client
from marketplace.errors import GatewayError
from marketplace.models import get_db
from marketplace.schemas.payments import (
    CancelOrderResponse,
    InitOrderRequest,
    InitOrderResponse,
    LatestPaymentResponse,
)
from marketplace.services.pricing import price_cart
from marketplace.services.revolut_service import RevolutClient, resolve_latest_payment

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/revolut/init-order",
    response_model=InitOrderResponse,
    summary="Create a minimal Revolut order",
)
def init_revolut_order(
    body: InitOrderRequest,
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[RevolutClient, Depends(get_gateway_client)],
):
    """
    Create a Revolut order carrying only amount and currency. Customer, line
    items and shipping are attached later by `POST /api/orders/placeOrder`.
    """
    priced = price_cart(db, body.items, site_base_url=settings.SITE_PUBLIC_BASE_URL)
    payload = {
        "amount": priced.amount_minor,
        "currency": (body.currency or settings.DEFAULT_CURRENCY).upper(),
    }
    if settings.REVOLUT_LOCATION_ID:
        payload["location_id"] = settings.REVOLUT_LOCATION_ID

    remote = client.create_order(payload)
    if not remote.get("id"):
        raise GatewayError("Revolut did not return an order id", response=remote)
    logger.info("Revolut order %s initialised for %s minor units", remote["id"], priced.amount_minor)
    return InitOrderResponse(
        token=remote.get("token"),
        revolut_order_id=remote["id"],
        amount=remote.get("amount", priced.amount_minor),
        currency=remote.get("currency", payload["currency"]),
        state=remote.get("state"),
    )


@router.get(
    "/revolut/order/{order_id}/payments/latest",
    response_model=LatestPaymentResponse,
    summary="Latest payment of a Revolut order",
)
def latest_revolut_payment(
    order_id: str,
    client: Annotated[RevolutClient, Depends(get_gateway_client)],
):
    """Polled by the client after the payment pop-up closes; 404 until a payment exists."""
    return LatestPaymentResponse(**resolve_latest_payment(client, order_id))


@router.post(
    "/revolut/order/{order_id}/cancel",
    response_model=CancelOrderResponse,
    summary="Cancel a pending Revolut order",
)
def cancel_revolut_order(
    order_id: str,
    client: Annotated[RevolutClient, Depends(get_gateway_client)],
):
    """Used when the cart changes after a Revolut order was initialised."""
    result = client.cancel_order(order_id)
    logger.info("Revolut order %s cancelled", order_id)
    return CancelOrderResponse(order_id=order_id, result=result or None)
