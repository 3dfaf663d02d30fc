"""Collision-free key generation for licenses and redemption keys."""
import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Callable, List

from .errors import CollisionExhausted

logger = logging.getLogger(__name__)

KEY_ALPHABET = string.ascii_uppercase + string.digits


def random_key(groups: int = 3, group_size: int = 5, prefix: str = "") -> str:
    """Generate a key in format: XXXXX-XXXXX-XXXXX"""
    segments = [
        ''.join(secrets.choice(KEY_ALPHABET) for _ in range(group_size))
        for _ in range(groups)
    ]
    return prefix + '-'.join(segments)


@dataclass
class BatchResult:
    requested: int
    keys: List[str] = field(default_factory=list)

    @property
    def generated(self) -> int:
        return len(self.keys)

    @property
    def complete(self) -> bool:
        return self.generated == self.requested


class KeyIssuer:
    """Draws random keys until one is accepted by the store.

    ``try_claim(candidate)`` must persist the candidate and return True, or
    return False if it collides with an existing key.
    """

    def __init__(
        self,
        groups: int = 3,
        group_size: int = 5,
        prefix: str = "",
        max_attempts: int = 10,
        generator: Callable[..., str] = random_key,
    ):
        self.groups = groups
        self.group_size = group_size
        self.prefix = prefix
        self.max_attempts = max_attempts
        self.generator = generator

    def candidate(self) -> str:
        return self.generator(self.groups, self.group_size, self.prefix)

    def issue(self, try_claim: Callable[[str], bool]) -> str:
        for attempt in range(1, self.max_attempts + 1):
            key = self.candidate()
            if try_claim(key):
                return key
            logger.info("Key collision on attempt %d, retrying", attempt)
        logger.error("Failed to generate a unique key after %d attempts", self.max_attempts)
        raise CollisionExhausted(self.max_attempts)

    def issue_batch(self, count: int, try_claim: Callable[[str], bool]) -> BatchResult:
        """Issue up to count keys, stopping at the first exhausted one"""
        result = BatchResult(requested=count)
        for _ in range(count):
            try:
                result.keys.append(self.issue(try_claim))
            except CollisionExhausted:
                logger.error("Only generated %d out of %d keys due to collisions", result.generated, count)
                break
        return result
