"""Bearer credential encoding and decoding (signed JWT claims)."""
import time
from dataclasses import dataclass
from typing import Callable, Optional

from jose import JWTError, jwt

from .errors import CredentialExpired, CredentialInvalid
from .roles import Role

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


@dataclass(frozen=True)
class Claims:
    subject: str
    role: Role
    issued_at: int
    expires_at: int
    email: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {
            "sub": self.subject,
            "role": self.role.value,
            "iat": self.issued_at,
            "exp": self.expires_at,
        }
        if self.email:
            payload["email"] = self.email
        return payload


class CredentialCodec:
    """Mints and verifies bearer tokens. Holds no per-token state."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        lifetime_seconds: int = 24 * 60 * 60,
        clock: Clock = system_clock,
    ):
        if not secret:
            raise ValueError("a signing secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.lifetime_seconds = lifetime_seconds
        self.clock = clock

    def claims_for(self, subject: str, role: Role, email: Optional[str] = None) -> Claims:
        now = self.clock()
        return Claims(
            subject=subject,
            role=role,
            issued_at=now,
            expires_at=now + self.lifetime_seconds,
            email=email,
        )

    def issue(self, subject: str, role: Role, email: Optional[str] = None) -> str:
        """Create a signed token for subject, valid for the configured lifetime"""
        claims = self.claims_for(subject, role, email)
        return jwt.encode(claims.to_payload(), self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Claims:
        """Verify signature and expiry and return the embedded claims.

        Raises:
            CredentialExpired: the token is past ``exp``
            CredentialInvalid: anything else wrong with the token
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={
                    "verify_signature": True,
                    "verify_exp": False,  # checked against self.clock below
                    "require_iat": True,
                    "require_exp": True,
                    "require_sub": True,
                },
            )
        except JWTError as exc:
            raise CredentialInvalid(f"invalid token: {exc}") from exc

        try:
            claims = Claims(
                subject=str(payload["sub"]),
                role=Role(payload["role"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
                email=payload.get("email"),
            )
        except (KeyError, ValueError, TypeError) as exc:
            raise CredentialInvalid(f"malformed claims: {exc}") from exc

        if self.clock() > claims.expires_at:
            raise CredentialExpired("token has expired")
        return claims
