from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func

from ..database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(128), primary_key=True)
    frozen = Column(Boolean, nullable=False, default=False)
    frozen_at = Column(BigInteger, nullable=False, default=0)  # only meaningful while frozen
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RedemptionKey(Base):
    __tablename__ = "redemption_keys"

    key = Column(String(64), primary_key=True)
    product_id = Column(
        String(128), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    duration = Column(BigInteger, nullable=False)  # seconds
    created_at = Column(DateTime(timezone=True), server_default=func.now())
