from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from marketplace.models.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    slug = Column(String(255), unique=True, nullable=True)
    role = Column(String(20), nullable=False, default="buyer")  # buyer | seller | admin
    created_at = Column(DateTime(timezone=True), server_default=func.now())
