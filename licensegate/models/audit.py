from sqlalchemy import BigInteger, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from ..database import Base


class BannedHwid(Base):
    __tablename__ = "banned_hwids"

    hwid = Column(String, primary_key=True)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class LoginLog(Base):
    __tablename__ = "login_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    license_key = Column(String(64), index=True, nullable=True)
    subject = Column(String(36), index=True, nullable=True)
    product_id = Column(String(128), nullable=True)
    hwid = Column(String, nullable=True)
    time = Column(BigInteger, index=True, nullable=False)
    response = Column(String(32), nullable=False)
