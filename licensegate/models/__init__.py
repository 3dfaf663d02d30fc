from .audit import BannedHwid, LoginLog
from .license import License, LicenseProduct, UsageSession
from .product import Product, RedemptionKey
from .user import User

__all__ = [
    "BannedHwid",
    "License",
    "LicenseProduct",
    "LoginLog",
    "Product",
    "RedemptionKey",
    "UsageSession",
    "User",
]
