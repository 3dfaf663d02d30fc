"""Single-use redemption keys.

Consuming the key and applying its grant happen in one transaction. The
key row is removed with a conditional DELETE ... RETURNING, so two
concurrent redemptions of the same key cannot both see it.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import store
from ..models import LicenseProduct
from .credentials import Clock, system_clock
from .errors import CollisionExhausted, UnknownSubject
from .keys import KeyIssuer

logger = logging.getLogger(__name__)


class RedeemOutcome(str, Enum):
    GRANTED = "Granted"
    EXTENDED = "Extended"
    INVALID_OR_USED_KEY = "InvalidOrUsedKey"
    STORE_ERROR = "StoreError"


@dataclass(frozen=True)
class RedeemResult:
    outcome: RedeemOutcome
    product_id: Optional[str] = None
    duration: Optional[int] = None
    license_key: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (RedeemOutcome.GRANTED, RedeemOutcome.EXTENDED)


class RedemptionEngine:
    def __init__(self, license_keys: KeyIssuer, clock: Clock = system_clock):
        self.license_keys = license_keys
        self.clock = clock

    def redeem(self, db: Session, key: str, subject: str) -> RedeemResult:
        """Consume key and credit its product time to subject's license.

        A store failure at any step rolls back both the consumption and
        the grant; the whole call can be retried.

        Raises:
            UnknownSubject: subject has no user record (nothing is consumed)
        """
        try:
            claimed = store.claim_redemption_key(db, key)
            if claimed is None:
                db.rollback()
                logger.info("Redemption of unknown or used key by %s", subject)
                return RedeemResult(RedeemOutcome.INVALID_OR_USED_KEY)

            user = store.get_user(db, subject)
            if user is None:
                db.rollback()
                raise UnknownSubject(subject)

            license_key = user.license_key
            if license_key is None:
                license_key = self.license_keys.issue(
                    lambda candidate: store.insert_license_if_free(db, candidate)
                )
                user.license_key = license_key
                db.flush()
                logger.info("Provisioned license %s for %s", license_key, subject)

            if store.extend_license_product(db, license_key, claimed.product_id, claimed.duration):
                outcome = RedeemOutcome.EXTENDED
            else:
                db.add(LicenseProduct(
                    license_key=license_key,
                    product_id=claimed.product_id,
                    duration=claimed.duration,
                    started_at=self.clock(),
                ))
                db.flush()
                outcome = RedeemOutcome.GRANTED
        except (SQLAlchemyError, CollisionExhausted) as exc:
            db.rollback()
            logger.error("Redemption of key %s by %s failed, rolled back: %s", key, subject, exc)
            return RedeemResult(RedeemOutcome.STORE_ERROR)

        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.critical("Failed to commit redemption of key %s by %s: %s", key, subject, exc)
            return RedeemResult(RedeemOutcome.STORE_ERROR)

        logger.info(
            "Key %s redeemed by %s: %s %s (+%ss)",
            key, subject, outcome.value, claimed.product_id, claimed.duration,
        )
        return RedeemResult(outcome, claimed.product_id, claimed.duration, license_key)
