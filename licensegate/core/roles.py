from enum import Enum


class Role(str, Enum):
    USER = "User"
    SUPPORT = "Support"
    DEV = "Dev"
    ADMIN = "Admin"

    def is_privileged(self) -> bool:
        """Admins and devs bypass entitlement checks entirely"""
        return self in (Role.ADMIN, Role.DEV)
