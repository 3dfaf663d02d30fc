from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class License(Base):
    __tablename__ = "licenses"

    key = Column(String(64), primary_key=True)
    hwid = Column(String, nullable=False, default="")  # empty until first use
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    products = relationship(
        "LicenseProduct",
        back_populates="license",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sessions = relationship(
        "UsageSession",
        back_populates="license",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="UsageSession.started.desc()",
    )


class LicenseProduct(Base):
    __tablename__ = "license_products"

    license_key = Column(
        String(64), ForeignKey("licenses.key", ondelete="CASCADE"), primary_key=True
    )
    product_id = Column(
        String(128), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    duration = Column(BigInteger, nullable=False)  # seconds
    started_at = Column(BigInteger, nullable=False)  # grant-window start, epoch seconds

    license = relationship("License", back_populates="products")


class UsageSession(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    license_key = Column(
        String(64), ForeignKey("licenses.key", ondelete="CASCADE"), index=True, nullable=False
    )
    started = Column(BigInteger, nullable=False)
    ended = Column(BigInteger, nullable=True)

    license = relationship("License", back_populates="sessions")
