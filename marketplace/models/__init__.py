from marketplace.models.database import Base, get_db
from marketplace.models.user import User
from marketplace.models.product import ArtProduct, OtherProduct, OtherVariant, ProductKind
from marketplace.models.order import ArtOrderItem, Order, OrderStatus, OtherOrderItem

__all__ = [
    "Base",
    "get_db",
    "User",
    "ArtProduct",
    "OtherProduct",
    "OtherVariant",
    "ProductKind",
    "Order",
    "OrderStatus",
    "ArtOrderItem",
    "OtherOrderItem",
]
