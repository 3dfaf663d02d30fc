"""Credential revocation backed by a TTL key/value store.

Two kinds of record are kept, each expiring on its own:

* ``blacklist:token:<token>``: one specific token, kept until it would have
  expired anyway (logout).
* ``blacklist:user:<subject>``: a cutoff instant. Tokens for the subject
  issued strictly before it are rejected, tokens issued at or after it pass.
  The record lives as long as the longest possible credential lifetime.
"""
import logging
import threading
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis

from .credentials import Claims, system_clock
from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "blacklist:token:"
SUBJECT_PREFIX = "blacklist:user:"


class TTLStore(Protocol):
    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> Optional[str]: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...


class MemoryTTLStore:
    """Process-local TTL store for development and tests (``memory://``)"""

    def __init__(self, clock: Callable[[], int] = system_clock):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, int]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def _sweep(self, now: int) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store key, dropping every entry that has already expired"""
        now = self._clock()
        with self._lock:
            self._sweep(now)
            self._entries[key] = (value, now + max(1, ttl_seconds))

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisTTLStore:
    """TTL store on a redis server (``redis://...``)"""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisTTLStore":
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_timeout=2))

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.setex(key, max(1, ttl_seconds), value)
        except redis.RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def get(self, key: str) -> Optional[str]:
        try:
            return self._client.get(key)
        except redis.RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def exists(self, key: str) -> bool:
        try:
            return bool(self._client.exists(key))
        except redis.RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc


def build_ttl_store(url: str, clock: Callable[[], int] = system_clock) -> TTLStore:
    if url.startswith("memory://"):
        return MemoryTTLStore(clock)
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisTTLStore.from_url(url)
    raise ValueError(f"Unsupported CACHE_URL scheme: {url}")


class RevocationRegistry:
    def __init__(self, store: TTLStore, max_credential_lifetime: int = 24 * 60 * 60):
        self.store = store
        self.max_credential_lifetime = max_credential_lifetime

    def blacklist_token(self, token: str, expires_in: int) -> None:
        """Reject this exact token until its natural expiry"""
        if expires_in <= 0:
            return
        self.store.set(TOKEN_PREFIX + token, "1", expires_in)
        logger.info("Blacklisted token (expires in %ss)", expires_in)

    def is_token_blacklisted(self, token: str) -> bool:
        return self.store.exists(TOKEN_PREFIX + token)

    def revoke_subject_before(self, subject: str, cutoff: int, ttl: Optional[int] = None) -> None:
        """Reject every credential for subject issued strictly before cutoff"""
        ttl = self.max_credential_lifetime if ttl is None else ttl
        self.store.set(SUBJECT_PREFIX + subject, str(cutoff), ttl)
        logger.info(
            "Revoked tokens for subject %s issued before %s (record expires in %ss)",
            subject, cutoff, ttl,
        )

    def subject_cutoff(self, subject: str) -> Optional[int]:
        raw = self.store.get(SUBJECT_PREFIX + subject)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring unparsable revocation cutoff for %s: %r", subject, raw)
            return None

    def is_subject_revoked(self, subject: str, issued_at: int) -> bool:
        cutoff = self.subject_cutoff(subject)
        return cutoff is not None and issued_at < cutoff

    def clear_subject(self, subject: str) -> None:
        self.store.delete(SUBJECT_PREFIX + subject)
        logger.info("Removed revocation cutoff for subject %s", subject)

    def is_revoked(self, token: str, claims: Claims) -> bool:
        """Raises StoreUnavailable when the backing store cannot be reached"""
        if self.is_token_blacklisted(token):
            return True
        return self.is_subject_revoked(claims.subject, claims.issued_at)
