"""Single "is this bearer token usable right now" decision."""
import logging

from .credentials import Claims, CredentialCodec
from .errors import CredentialRevoked, StoreUnavailable
from .revocation import RevocationRegistry

logger = logging.getLogger(__name__)


class CredentialValidator:
    def __init__(self, codec: CredentialCodec, registry: RevocationRegistry, fail_open: bool = True):
        self.codec = codec
        self.registry = registry
        self.fail_open = fail_open

    def validate(self, token: str) -> Claims:
        """Decode the token, then check it against the revocation registry.

        Signature and expiry are checked locally first; the registry is only
        consulted for structurally valid tokens.

        Raises:
            CredentialExpired: past expiry
            CredentialInvalid: bad token, or ``CredentialRevoked`` if revoked
        """
        claims = self.codec.decode(token)
        if self._revoked(token, claims):
            raise CredentialRevoked("token has been revoked")
        return claims

    def _revoked(self, token: str, claims: Claims) -> bool:
        try:
            return self.registry.is_revoked(token, claims)
        except StoreUnavailable as exc:
            if self.fail_open:
                logger.warning(
                    "Revocation store unavailable, accepting token for %s (fail-open): %s",
                    claims.subject, exc,
                )
                return False
            logger.warning(
                "Revocation store unavailable, rejecting token for %s (fail-closed): %s",
                claims.subject, exc,
            )
            return True

    def revoke(self, token: str, claims: Claims) -> None:
        """Blacklist a token until it would have expired (logout)"""
        self.registry.blacklist_token(token, claims.expires_at - self.codec.clock())
