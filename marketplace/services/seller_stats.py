from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.models import ArtOrderItem, ArtProduct, Order, OtherOrderItem, OtherProduct
from marketplace.models.order import PENDING_STATUSES, SETTLED_STATUSES


def _item_rollup(db: Session, item_model, product_model, product_fk, seller_id: int, statuses) -> tuple:
    return (
        db.query(
            func.count(item_model.id),
            func.coalesce(func.sum(item_model.price_at_purchase), 0),
        )
        .join(product_model, product_model.id == product_fk)
        .join(Order, Order.id == item_model.order_id)
        .filter(product_model.seller_id == seller_id, Order.status.in_(statuses))
        .one()
    )


def _order_ids(db: Session, item_model, product_model, product_fk, seller_id: int, statuses) -> set[int]:
    rows = (
        db.query(item_model.order_id)
        .join(product_model, product_model.id == product_fk)
        .join(Order, Order.id == item_model.order_id)
        .filter(product_model.seller_id == seller_id, Order.status.in_(statuses))
        .distinct()
        .all()
    )
    return {row.order_id for row in rows}


def get_seller_stats(db: Session, seller_id: int) -> dict:
    """Read-only sales rollup for one seller over paid-or-later orders."""
    art_listed = db.query(func.count(ArtProduct.id)).filter(ArtProduct.seller_id == seller_id).scalar()
    art_sold = (
        db.query(func.count(ArtProduct.id))
        .filter(ArtProduct.seller_id == seller_id, ArtProduct.is_sold.is_(True))
        .scalar()
    )
    others_listed = db.query(func.count(OtherProduct.id)).filter(OtherProduct.seller_id == seller_id).scalar()
    others_sold_out = (
        db.query(func.count(OtherProduct.id))
        .filter(OtherProduct.seller_id == seller_id, OtherProduct.is_sold.is_(True))
        .scalar()
    )

    art_units, art_revenue = _item_rollup(
        db, ArtOrderItem, ArtProduct, ArtOrderItem.art_id, seller_id, SETTLED_STATUSES
    )
    other_units, other_revenue = _item_rollup(
        db, OtherOrderItem, OtherProduct, OtherOrderItem.other_id, seller_id, SETTLED_STATUSES
    )

    paid_orders = _order_ids(db, ArtOrderItem, ArtProduct, ArtOrderItem.art_id, seller_id, SETTLED_STATUSES)
    paid_orders |= _order_ids(db, OtherOrderItem, OtherProduct, OtherOrderItem.other_id, seller_id, SETTLED_STATUSES)
    pending_orders = _order_ids(db, ArtOrderItem, ArtProduct, ArtOrderItem.art_id, seller_id, PENDING_STATUSES)
    pending_orders |= _order_ids(
        db, OtherOrderItem, OtherProduct, OtherOrderItem.other_id, seller_id, PENDING_STATUSES
    )

    revenue = Decimal(str(art_revenue or 0)) + Decimal(str(other_revenue or 0))
    return {
        "seller_id": seller_id,
        "art_listed": int(art_listed or 0),
        "art_sold": int(art_sold or 0),
        "others_listed": int(others_listed or 0),
        "others_sold_out": int(others_sold_out or 0),
        "units_sold": int(art_units or 0) + int(other_units or 0),
        "orders_count": len(paid_orders),
        "pending_orders_count": len(pending_orders),
        "revenue": revenue.quantize(Decimal("0.01")),
    }
