from enum import Enum

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketplace.models.database import Base


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PENDING = "pending"
    PAID = "paid"
    SENT = "sent"
    ARRIVED = "arrived"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REIMBURSED = "reimbursed"


PENDING_STATUSES = (OrderStatus.PENDING_PAYMENT.value, OrderStatus.PENDING.value)
SETTLED_STATUSES = (
    OrderStatus.PAID.value,
    OrderStatus.SENT.value,
    OrderStatus.ARRIVED.value,
    OrderStatus.CONFIRMED.value,
)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    buyer_email = Column(String(255), nullable=False, index=True)
    buyer_phone = Column(String(50), nullable=True)
    full_name = Column(String(255), nullable=True)
    total_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(String(50), nullable=False, default=OrderStatus.PENDING.value)
    token = Column(String(128), unique=True, index=True, nullable=False)

    delivery_address_line_1 = Column(String(255), nullable=True)
    delivery_address_line_2 = Column(String(255), nullable=True)
    delivery_postal_code = Column(String(20), nullable=True)
    delivery_city = Column(String(255), nullable=True)
    delivery_province = Column(String(255), nullable=True)
    delivery_country = Column(String(2), nullable=True)
    delivery_lat = Column(Float, nullable=True)
    delivery_lng = Column(Float, nullable=True)

    invoicing_address_line_1 = Column(String(255), nullable=True)
    invoicing_address_line_2 = Column(String(255), nullable=True)
    invoicing_postal_code = Column(String(20), nullable=True)
    invoicing_city = Column(String(255), nullable=True)
    invoicing_province = Column(String(255), nullable=True)
    invoicing_country = Column(String(2), nullable=True)

    revolut_order_id = Column(String(255), unique=True, nullable=True)
    revolut_payment_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    art_items = relationship("ArtOrderItem", back_populates="order", order_by="ArtOrderItem.id")
    other_items = relationship("OtherOrderItem", back_populates="order", order_by="OtherOrderItem.id")


class _ShippingSnapshotMixin:
    price_at_purchase = Column(Numeric(10, 2), nullable=False)
    shipping_method_id = Column(Integer, nullable=True)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_method_name = Column(String(255), nullable=True)
    shipping_method_type = Column(String(20), nullable=True)  # delivery | pickup


class ArtOrderItem(_ShippingSnapshotMixin, Base):
    __tablename__ = "art_order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    art_id = Column(Integer, ForeignKey("art.id"), nullable=False, index=True)

    order = relationship("Order", back_populates="art_items")
    product = relationship("ArtProduct")


class OtherOrderItem(_ShippingSnapshotMixin, Base):
    __tablename__ = "other_order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    other_id = Column(Integer, ForeignKey("others.id"), nullable=False, index=True)
    other_var_id = Column(Integer, ForeignKey("other_vars.id"), nullable=False)

    order = relationship("Order", back_populates="other_items")
    product = relationship("OtherProduct")
    variant = relationship("OtherVariant")
