import logging

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from marketplace.models import ArtProduct, OtherProduct, OtherVariant, ProductKind

logger = logging.getLogger(__name__)

_SOLD_MODELS = {
    ProductKind.ART: ArtProduct,
    ProductKind.OTHER: OtherProduct,
}


def mark_sold(db: Session, kind: ProductKind, product_id: int) -> bool:
    """Flip is_sold to true. Returns True only when this call changed the row."""
    model = _SOLD_MODELS[kind]
    updated = (
        db.query(model)
        .filter(model.id == product_id, model.is_sold.is_(False))
        .update({model.is_sold: True}, synchronize_session=False)
    )
    return updated == 1


def mark_unique_sold(db: Session, product_id: int) -> bool:
    return mark_sold(db, ProductKind.ART, product_id)


def decrement_variant_stock(db: Session, variant_id: int, quantity: int) -> int | None:
    """Subtract quantity from a variant's stock, never going below zero.

    The subtraction happens in the UPDATE itself so concurrent decrements of the
    same variant do not overwrite each other. Returns the stock left, or None
    when the variant does not exist.
    """
    if quantity <= 0:
        row = db.query(OtherVariant.stock).filter(OtherVariant.id == variant_id).first()
        return row.stock if row else None

    updated = (
        db.query(OtherVariant)
        .filter(OtherVariant.id == variant_id)
        .update(
            {
                OtherVariant.stock: case(
                    (OtherVariant.stock > quantity, OtherVariant.stock - quantity),
                    else_=0,
                )
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        logger.warning("Variant %s not found while decrementing stock by %s", variant_id, quantity)
        return None

    remaining = db.query(OtherVariant.stock).filter(OtherVariant.id == variant_id).scalar()
    logger.info("Variant %s stock decremented by %s, %s left", variant_id, quantity, remaining)
    return remaining


def recompute_parent_sold_flag(db: Session, other_id: int) -> bool:
    """Mark the product sold once the sum of its variant stocks is zero. Returns the sold state."""
    total_stock = (
        db.query(func.coalesce(func.sum(OtherVariant.stock), 0))
        .filter(OtherVariant.other_id == other_id)
        .scalar()
    )
    if int(total_stock or 0) > 0:
        return False
    mark_sold(db, ProductKind.OTHER, other_id)
    return True
