from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketplace.models.database import Base


class ProductKind(str, Enum):
    ART = "art"  # single unit, binary sold flag
    OTHER = "other"  # stock tracked per variant


class ArtProduct(Base):
    __tablename__ = "art"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    type = Column(String(100), nullable=True)
    basename = Column(String(255), nullable=False)
    visible = Column(Boolean, default=True, nullable=False)
    is_sold = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending | approved | rejected
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class OtherProduct(Base):
    __tablename__ = "others"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    basename = Column(String(255), nullable=False)
    visible = Column(Boolean, default=True, nullable=False)
    is_sold = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    variants = relationship("OtherVariant", back_populates="product", order_by="OtherVariant.id")


class OtherVariant(Base):
    __tablename__ = "other_vars"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_other_vars_stock_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    other_id = Column(Integer, ForeignKey("others.id"), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    stock = Column(Integer, nullable=False, default=0)

    product = relationship("OtherProduct", back_populates="variants")
