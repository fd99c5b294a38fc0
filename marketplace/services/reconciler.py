import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from marketplace.errors import ConflictError, InvalidRequestError, NotFoundError
from marketplace.models import ArtOrderItem, Order, OrderStatus, OtherOrderItem, OtherVariant, User
from marketplace.models.order import PENDING_STATUSES, SETTLED_STATUSES
from marketplace.services import inventory
from marketplace.services.order_ledger import order_items

logger = logging.getLogger(__name__)

Notifier = Callable[[dict], object]


@dataclass(frozen=True)
class ConfirmationResult:
    order_id: int
    status: str
    payment_id: str
    already_paid: bool


def _transition_to_paid(db: Session, order_id: int, payment_id: str) -> bool:
    """Move a pending order to paid in one conditional UPDATE.

    Returns True only for the call that performed the transition; concurrent or
    repeated confirmations see zero affected rows.
    """
    updated = (
        db.query(Order)
        .filter(Order.id == order_id, Order.status.in_(PENDING_STATUSES))
        .update(
            {
                Order.status: OrderStatus.PAID.value,
                Order.revolut_payment_id: payment_id,
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def _backfill_payment_id(db: Session, order_id: int, payment_id: str) -> bool:
    updated = (
        db.query(Order)
        .filter(Order.id == order_id, Order.revolut_payment_id.is_(None))
        .update({Order.revolut_payment_id: payment_id}, synchronize_session=False)
    )
    return updated == 1


def apply_inventory_effects(db: Session, order_id: int) -> None:
    """Mark unique products sold and draw variant stock down for every item of the order."""
    art_ids = {
        row.art_id for row in db.query(ArtOrderItem.art_id).filter(ArtOrderItem.order_id == order_id).all()
    }
    for art_id in sorted(art_ids):
        inventory.mark_unique_sold(db, art_id)

    quantities = Counter(
        row.other_var_id
        for row in db.query(OtherOrderItem.other_var_id).filter(OtherOrderItem.order_id == order_id).all()
    )
    parents = {}
    if quantities:
        parents = {
            row.id: row.other_id
            for row in db.query(OtherVariant.id, OtherVariant.other_id)
            .filter(OtherVariant.id.in_(quantities.keys()))
            .all()
        }
    for variant_id, quantity in sorted(quantities.items()):
        remaining = inventory.decrement_variant_stock(db, variant_id, quantity)
        if remaining is None:
            continue
        parent_id = parents.get(variant_id)
        if parent_id is not None:
            inventory.recompute_parent_sold_flag(db, parent_id)


def _resolve_existing_payment(db: Session, order: Order, payment_id: str) -> None:
    """Idempotency guard for an order that is already past the pending states."""
    if order.status in PENDING_STATUSES:
        return
    if order.revolut_payment_id and order.revolut_payment_id != payment_id:
        logger.warning(
            "Order %s already paid with %s, rejecting payment %s",
            order.id,
            order.revolut_payment_id,
            payment_id,
        )
        raise ConflictError(f"Order {order.id} is already paid with a different payment")
    if order.status not in SETTLED_STATUSES and order.revolut_payment_id != payment_id:
        raise ConflictError(f"Order {order.id} is {order.status} and cannot be paid")
    if not order.revolut_payment_id and _backfill_payment_id(db, order.id, payment_id):
        logger.info("Order %s payment id backfilled with %s", order.id, payment_id)


def _sellers_for(db: Session, items: list[dict]) -> list[dict]:
    seller_ids = {item["seller_id"] for item in items if item.get("seller_id") is not None}
    if not seller_ids:
        return []
    sellers = db.query(User).filter(User.id.in_(seller_ids)).order_by(User.id).all()
    return [{"id": seller.id, "email": seller.email, "full_name": seller.full_name} for seller in sellers]


def notify_purchase(db: Session, order_id: int, notifier: Notifier | None) -> None:
    """Send the purchase confirmation; never raises."""
    if notifier is None:
        return
    try:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order or not order.buyer_email:
            return
        items = order_items(order)
        notifier(
            {
                "order_id": order.id,
                "items": items,
                "total_price": order.total_price,
                "currency": order.currency,
                "buyer_email": order.buyer_email,
                "sellers": _sellers_for(db, items),
            }
        )
    except Exception as exc:
        logger.error("Failed to send purchase confirmation for order %s: %s", order_id, exc, exc_info=True)


def confirm_payment(
    db: Session,
    order_id: int | None,
    payment_id: str | None,
    notifier: Notifier | None = None,
) -> ConfirmationResult:
    """Record a successful gateway payment against a local order exactly once.

    The payment id is trusted as supplied; it is not re-verified with the
    gateway before the order is marked paid.
    """
    payment_id = (payment_id or "").strip()
    if not order_id or not payment_id:
        raise InvalidRequestError("order_id and payment_id are required")

    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found", title="Order not found")

    try:
        transitioned = _transition_to_paid(db, order_id, payment_id)
        if transitioned:
            apply_inventory_effects(db, order_id)
        else:
            db.refresh(order)
            _resolve_existing_payment(db, order, payment_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    if transitioned:
        logger.info("Order %s marked as paid with payment %s", order_id, payment_id)
        notify_purchase(db, order_id, notifier)
    else:
        logger.info("Order %s already paid, inventory left untouched", order_id)

    return ConfirmationResult(
        order_id=order.id,
        status=order.status,
        payment_id=order.revolut_payment_id or payment_id,
        already_paid=not transitioned,
    )
