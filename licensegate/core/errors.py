"""Domain errors raised by the core components.

These are transport-agnostic; the API layer maps them onto the HTTP
exceptions in ``licensegate.utils.exceptions``.
"""


class LicenseGateError(Exception):
    """Base class for core errors"""


class CredentialInvalid(LicenseGateError):
    """Token is malformed, badly signed or missing required claims"""


class CredentialExpired(LicenseGateError):
    """Token is past its expiry instant"""


class CredentialRevoked(CredentialInvalid):
    """Token was blacklisted or issued before the subject's cutoff"""


class StoreUnavailable(LicenseGateError):
    """A backing store could not be reached"""


class CollisionExhausted(LicenseGateError):
    """Every candidate key collided with an existing one"""

    def __init__(self, attempts: int):
        super().__init__(f"no unique key after {attempts} attempts")
        self.attempts = attempts


class UnknownSubject(LicenseGateError):
    """Credential subject has no user record"""
