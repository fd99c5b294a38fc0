import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from marketplace.dependencies import (
    get_current_user,
    get_current_user_optional,
    get_gateway_client,
    get_notifier,
)
from marketplace.models import Order, User, get_db
from marketplace.schemas.orders import (
    CheckoutRequest,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    PlaceOrderRequest,
)
from marketplace.services import order_ledger, reconciler
from marketplace.services.revolut_service import RevolutClient

router = APIRouter()
logger = logging.getLogger(__name__)


def _with_buyer_defaults(body: CheckoutRequest, buyer: User | None) -> CheckoutRequest:
    if buyer is None or body.email:
        return body
    return body.model_copy(update={"email": buyer.email})


def _create_response(placed: order_ledger.PlacedOrder) -> OrderCreateResponse:
    return OrderCreateResponse(
        order=OrderResponse(**order_ledger.serialize_order(placed.order)),
        revolut_order_id=placed.order.revolut_order_id,
        revolut_token=placed.remote.get("token"),
        amount=placed.amount_minor,
        currency=placed.currency,
    )


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order and gateway payment order",
)
def create_order(
    body: CheckoutRequest,
    buyer: Annotated[User | None, Depends(get_current_user_optional)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[RevolutClient, Depends(get_gateway_client)],
):
    """
    Price the cart, create the Revolut order with the full payload and persist
    the local order in status `pending_payment`. Guest checkout is supported.
    """
    placed = order_ledger.create_order_immediate(db, client, _with_buyer_defaults(body, buyer))
    return _create_response(placed)


@router.post(
    "/placeOrder",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a cart to an existing gateway order",
)
def place_order(
    body: PlaceOrderRequest,
    buyer: Annotated[User | None, Depends(get_current_user_optional)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[RevolutClient, Depends(get_gateway_client)],
):
    """
    Persist the order (status `pending`) for a Revolut order created earlier by
    `POST /api/payments/revolut/init-order`, then PATCH the full payload onto it.
    """
    placed = order_ledger.place_order_deferred(db, client, _with_buyer_defaults(body, buyer))
    return _create_response(placed)


@router.put(
    "",
    response_model=ConfirmPaymentResponse,
    summary="Confirm order payment",
)
def confirm_order_payment(
    body: ConfirmPaymentRequest,
    db: Annotated[Session, Depends(get_db)],
    notifier=Depends(get_notifier),
):
    """Mark the order paid with the gateway payment id. Repeating the call is safe."""
    result = reconciler.confirm_payment(db, body.order_id, body.payment_id, notifier=notifier)
    return ConfirmPaymentResponse(
        order_id=result.order_id,
        status=result.status,
        payment_id=result.payment_id,
        already_paid=result.already_paid,
    )


@router.get(
    "/public/token/{token}",
    response_model=OrderResponse,
    summary="Get order by public token",
)
def get_order_by_token(
    token: str,
    db: Annotated[Session, Depends(get_db)],
):
    """Unauthenticated lookup for guest buyers holding the order token."""
    order = order_ledger.get_order_by_token(db, token)
    return OrderResponse(**order_ledger.serialize_order(order))


@router.get(
    "/me",
    response_model=OrderListResponse,
    summary="List my orders",
)
def my_orders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Orders placed with the authenticated user's email address."""
    orders = (
        db.query(Order)
        .filter(Order.buyer_email == current_user.email)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return OrderListResponse(orders=[OrderResponse(**order_ledger.serialize_order(o)) for o in orders])


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get my order by id",
)
def get_my_order(
    order_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    order = order_ledger.get_order_for_buyer(db, order_id, current_user.email)
    return OrderResponse(**order_ledger.serialize_order(order))
