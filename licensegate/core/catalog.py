"""Administrative and account operations on products, licenses and users.

Every operation owns its transaction: it commits on success and rolls back
before returning any other outcome. Expected failures come back as an
``Outcome``; only programming errors raise.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from passlib.context import CryptContext
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import store
from ..models import BannedHwid, License, LicenseProduct, LoginLog, Product, UsageSession, User
from ..utils.security import get_password_hash, verify_password
from .credentials import Claims, Clock, system_clock
from .entitlement import UNBOUNDED_SECONDS, frozen_seconds, remaining
from .errors import CollisionExhausted, StoreUnavailable
from .hwid import HwidBindingPolicy
from .keys import KeyIssuer
from .revocation import RevocationRegistry
from .roles import Role

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    OK = "Ok"
    ALREADY_EXISTS = "AlreadyExists"
    NOT_FOUND = "NotFound"
    USER_NOT_FOUND = "UserNotFound"
    INVALID_PRODUCT = "InvalidProduct"
    INVALID_LICENSE = "InvalidLicense"
    ONE_OR_MORE_INVALID_PRODUCT = "OneOrMoreInvalidProduct"
    ALREADY_FROZEN = "AlreadyFrozen"
    ALREADY_UNFROZEN = "AlreadyUnfrozen"
    FAILED_TO_GENERATE_VALID_LICENSE = "FailedToGenerateValidLicense"
    FORBIDDEN = "Forbidden"
    SELF_DEMOTION = "SelfDemotion"
    INVALID_ARGUMENT = "InvalidArgument"
    STORE_ERROR = "StoreError"


@dataclass(frozen=True)
class CatalogResult:
    outcome: Outcome
    value: Any = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK


@dataclass(frozen=True)
class ProductGrant:
    product_id: str
    duration: int
    started_at: int
    remaining_seconds: int
    expired: bool
    frozen: bool


class Catalog:
    def __init__(
        self,
        registry: RevocationRegistry,
        license_keys: KeyIssuer,
        redemption_keys: KeyIssuer,
        passwords: CryptContext,
        hwid_policy: Optional[HwidBindingPolicy] = None,
        clock: Clock = system_clock,
        min_password_length: int = 8,
        max_keys_per_request: int = 1000,
    ):
        self.registry = registry
        self.license_keys = license_keys
        self.redemption_keys = redemption_keys
        self.passwords = passwords
        self.hwid_policy = hwid_policy or HwidBindingPolicy()
        self.clock = clock
        self.min_password_length = min_password_length
        self.max_keys_per_request = max_keys_per_request

    # Products

    def create_product(self, db: Session, product_id: str) -> Outcome:
        if store.product_exists(db, product_id):
            db.rollback()
            return Outcome.ALREADY_EXISTS
        try:
            db.add(Product(id=product_id, frozen=False, frozen_at=0))
            db.commit()
        except IntegrityError:
            db.rollback()
            return Outcome.ALREADY_EXISTS
        logger.info("Created product %s", product_id)
        return Outcome.OK

    def delete_product(self, db: Session, product_id: str) -> Outcome:
        """Remove a product along with every grant and unredeemed key for it"""
        try:
            result = db.execute(delete(Product).where(Product.id == product_id), execution_options=store.NO_SYNC)
            if result.rowcount == 0:
                db.rollback()
                return Outcome.INVALID_PRODUCT
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to delete product %s: %s", product_id, exc)
            return Outcome.STORE_ERROR
        logger.info("Deleted product %s", product_id)
        return Outcome.OK

    def freeze_product(self, db: Session, product_id: str) -> Outcome:
        now = self.clock()
        try:
            if store.freeze_if_unfrozen(db, product_id, now):
                db.commit()
                logger.info("Froze product %s at %s", product_id, now)
                return Outcome.OK
            exists = store.product_exists(db, product_id)
            db.rollback()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to freeze product %s: %s", product_id, exc)
            return Outcome.STORE_ERROR
        return Outcome.ALREADY_FROZEN if exists else Outcome.INVALID_PRODUCT

    def unfreeze_product(self, db: Session, product_id: str) -> Outcome:
        """Lift a freeze and push every holder's window start forward by
        the frozen duration, so no grant loses time while frozen.

        The state change and the shift commit together. The unfreeze is
        conditional on the freeze instant that was read, so of two racing
        unfreezes only one applies the shift.
        """
        now = self.clock()
        try:
            product = store.get_product(db, product_id)
            if product is None:
                db.rollback()
                return Outcome.INVALID_PRODUCT
            if not product.frozen:
                db.rollback()
                return Outcome.ALREADY_UNFROZEN

            seen = product.frozen_at
            if not store.unfreeze_if_frozen_at(db, product_id, seen):
                db.rollback()
                return Outcome.ALREADY_UNFROZEN
            shift = frozen_seconds(seen, now)
            shifted = store.shift_grant_windows(db, product_id, shift)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to unfreeze product %s, rolled back: %s", product_id, exc)
            return Outcome.STORE_ERROR

        logger.info("Unfroze product %s, shifted %d grant(s) by %ss", product_id, shifted, shift)
        return Outcome.OK

    def compensate_product(self, db: Session, product_id: str, seconds: int) -> CatalogResult:
        """Extend every holder's duration by seconds. Value is the holder count."""
        if seconds <= 0:
            return CatalogResult(Outcome.INVALID_ARGUMENT)
        if not store.product_exists(db, product_id):
            db.rollback()
            return CatalogResult(Outcome.INVALID_PRODUCT)
        try:
            extended = store.extend_all_holders(db, product_id, seconds)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to compensate product %s: %s", product_id, exc)
            return CatalogResult(Outcome.STORE_ERROR)
        logger.info("Compensated %d holder(s) of %s with %ss", extended, product_id, seconds)
        return CatalogResult(Outcome.OK, extended)

    def list_products(self, db: Session) -> List[Product]:
        return store.list_products(db)

    # Keys and licenses

    def generate_license(self, db: Session, product_durations: Dict[str, int]) -> CatalogResult:
        """Create a license holding the given products. Value is the new key."""
        if any(duration <= 0 for duration in product_durations.values()):
            return CatalogResult(Outcome.INVALID_ARGUMENT)
        if not all(store.product_exists(db, pid) for pid in product_durations):
            db.rollback()
            return CatalogResult(Outcome.ONE_OR_MORE_INVALID_PRODUCT)

        try:
            key = self.license_keys.issue(lambda candidate: store.insert_license_if_free(db, candidate))
        except CollisionExhausted:
            db.rollback()
            return CatalogResult(Outcome.FAILED_TO_GENERATE_VALID_LICENSE)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to reserve a license key: %s", exc)
            return CatalogResult(Outcome.STORE_ERROR)

        now = self.clock()
        try:
            for product_id, duration in product_durations.items():
                db.add(LicenseProduct(license_key=key, product_id=product_id, duration=duration, started_at=now))
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to store license %s, rolled back: %s", key, exc)
            return CatalogResult(Outcome.STORE_ERROR)
        logger.info("Generated license %s with %d product(s)", key, len(product_durations))
        return CatalogResult(Outcome.OK, key)

    def generate_redemption_keys(self, db: Session, product_id: str, duration: int, count: int = 1) -> CatalogResult:
        """Value is a BatchResult; it may hold fewer keys than requested"""
        if not 1 <= count <= self.max_keys_per_request or duration <= 0:
            return CatalogResult(Outcome.INVALID_ARGUMENT)
        if not store.product_exists(db, product_id):
            db.rollback()
            return CatalogResult(Outcome.INVALID_PRODUCT)

        try:
            batch = self.redemption_keys.issue_batch(
                count,
                lambda candidate: store.insert_redemption_key_if_free(db, candidate, product_id, duration),
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to store redemption keys for %s, rolled back: %s", product_id, exc)
            return CatalogResult(Outcome.STORE_ERROR)
        logger.info("Generated %d/%d redemption key(s) for %s", batch.generated, count, product_id)
        return CatalogResult(Outcome.OK, batch)

    def list_licenses(self, db: Session) -> List[License]:
        return store.list_licenses(db)

    def add_products_to_license(self, db: Session, license_key: str, product_durations: Dict[str, int]) -> Outcome:
        """Grant (or re-grant) products, each window starting now"""
        if any(duration <= 0 for duration in product_durations.values()):
            return Outcome.INVALID_ARGUMENT
        outcome = self._check_license_products(db, license_key, product_durations)
        if outcome is not Outcome.OK:
            db.rollback()
            return outcome

        now = self.clock()
        for product_id, duration in product_durations.items():
            store.upsert_license_product(db, license_key, product_id, duration, now)
        db.commit()
        return Outcome.OK

    def remove_products_from_license(self, db: Session, license_key: str, product_ids: Iterable[str]) -> Outcome:
        product_ids = list(product_ids)
        outcome = self._check_license_products(db, license_key, product_ids)
        if outcome is not Outcome.OK:
            db.rollback()
            return outcome

        for product_id in product_ids:
            store.remove_license_product(db, license_key, product_id)
        db.commit()
        return Outcome.OK

    def _check_license_products(self, db: Session, license_key: str, product_ids: Iterable[str]) -> Outcome:
        if store.get_license(db, license_key) is None:
            return Outcome.INVALID_LICENSE
        if not all(store.product_exists(db, pid) for pid in product_ids):
            return Outcome.ONE_OR_MORE_INVALID_PRODUCT
        return Outcome.OK

    def _grant(self, grant: LicenseProduct, product: Product, now: int) -> ProductGrant:
        window = remaining(grant.duration, grant.started_at, now)
        return ProductGrant(
            product_id=grant.product_id,
            duration=grant.duration,
            started_at=grant.started_at,
            remaining_seconds=window.remaining_seconds,
            expired=window.expired,
            frozen=product.frozen,
        )

    def license_product_info(self, db: Session, license_key: str, product_id: str) -> Optional[ProductGrant]:
        grant = store.get_license_product(db, license_key, product_id)
        product = store.get_product(db, product_id)
        if grant is None or product is None:
            return None
        return self._grant(grant, product, self.clock())

    def license_grants(self, db: Session, license_key: str) -> List[ProductGrant]:
        now = self.clock()
        return [
            self._grant(grant, store.get_product(db, grant.product_id), now)
            for grant in store.grants_for_license(db, license_key)
        ]

    def subject_products(self, db: Session, claims: Claims) -> List[ProductGrant]:
        """Products the subject can use right now"""
        if claims.role.is_privileged():
            return [
                ProductGrant(p.id, UNBOUNDED_SECONDS, 0, UNBOUNDED_SECONDS, False, p.frozen)
                for p in store.list_products(db)
            ]
        user = store.get_user(db, claims.subject)
        if user is None or user.license_key is None:
            return []
        return [grant for grant in self.license_grants(db, user.license_key) if not grant.expired]

    def reset_hwid(self, db: Session, license_key: str) -> Outcome:
        return Outcome.OK if self.hwid_policy.reset(db, license_key) else Outcome.INVALID_LICENSE

    # Users

    def register(self, db: Session, email: str, password: str, role: Role = Role.USER) -> CatalogResult:
        """Value is the new User"""
        if len(password) < self.min_password_length:
            return CatalogResult(Outcome.INVALID_ARGUMENT)
        if store.get_user_by_email(db, email) is not None:
            db.rollback()
            return CatalogResult(Outcome.ALREADY_EXISTS)

        user = User(
            id=str(uuid.uuid4()),
            email=email,
            hashed_password=get_password_hash(password, self.passwords),
            role=role,
            banned=False,
        )
        try:
            db.add(user)
            db.commit()
        except IntegrityError:
            db.rollback()
            return CatalogResult(Outcome.ALREADY_EXISTS)
        logger.info("Registered user %s (%s)", user.id, role.value)
        return CatalogResult(Outcome.OK, user)

    def authenticate(self, db: Session, email: str, password: str) -> Optional[User]:
        user = store.get_user_by_email(db, email)
        if user is None:
            self.passwords.dummy_verify()
            db.rollback()
            return None
        if not verify_password(password, user.hashed_password, self.passwords):
            db.rollback()
            return None
        user.last_login = datetime.now(timezone.utc)
        db.commit()
        return user

    def set_role(self, db: Session, actor: Claims, user_id: str, role: Role) -> Outcome:
        """Change a user's role and cut off every credential issued before now"""
        if actor.role is not Role.ADMIN:
            logger.info("SetRole denied: %s is not an admin", actor.subject)
            return Outcome.FORBIDDEN
        if actor.subject == user_id and role is not Role.ADMIN:
            logger.info("SetRole denied: admin %s attempted to demote themselves", actor.subject)
            return Outcome.SELF_DEMOTION

        user = store.get_user(db, user_id)
        if user is None:
            db.rollback()
            return Outcome.USER_NOT_FOUND
        user.role = role
        db.commit()

        try:
            self.registry.revoke_subject_before(user_id, self.clock())
        except StoreUnavailable as exc:
            # the role change stands; old tokens stay valid until they expire
            logger.error("Failed to revoke tokens for %s after role change: %s", user_id, exc)
        logger.info("Updated user %s to role %s", user_id, role.value)
        return Outcome.OK

    def ban_user(self, db: Session, user_id: str) -> Outcome:
        return self._set_banned(db, user_id, True)

    def unban_user(self, db: Session, user_id: str) -> Outcome:
        return self._set_banned(db, user_id, False)

    def _set_banned(self, db: Session, user_id: str, banned: bool) -> Outcome:
        user = store.get_user(db, user_id)
        if user is None:
            db.rollback()
            return Outcome.USER_NOT_FOUND
        user.banned = banned
        db.commit()
        logger.info("%s user %s", "Banned" if banned else "Unbanned", user_id)
        return Outcome.OK

    def ban_hwid(self, db: Session, hwid: str, reason: Optional[str] = None) -> Outcome:
        if store.is_hwid_banned(db, hwid):
            db.rollback()
            return Outcome.ALREADY_EXISTS
        try:
            db.add(BannedHwid(hwid=hwid, reason=reason))
            db.commit()
        except IntegrityError:
            db.rollback()
            return Outcome.ALREADY_EXISTS
        logger.info("Banned hardware fingerprint %s", hwid)
        return Outcome.OK

    def unban_hwid(self, db: Session, hwid: str) -> Outcome:
        result = db.execute(delete(BannedHwid).where(BannedHwid.hwid == hwid), execution_options=store.NO_SYNC)
        if result.rowcount == 0:
            db.rollback()
            return Outcome.NOT_FOUND
        db.commit()
        return Outcome.OK

    # Sessions

    def start_session(self, db: Session, license_key: str) -> CatalogResult:
        """Value is the new UsageSession"""
        if store.get_license(db, license_key) is None:
            db.rollback()
            return CatalogResult(Outcome.INVALID_LICENSE)
        session = UsageSession(license_key=license_key, started=self.clock(), ended=None)
        db.add(session)
        db.commit()
        return CatalogResult(Outcome.OK, session)

    def end_session(self, db: Session, license_key: str, session_id: int) -> Outcome:
        if not store.end_session_if_open(db, license_key, session_id, self.clock()):
            db.rollback()
            return Outcome.NOT_FOUND
        db.commit()
        return Outcome.OK

    def list_sessions(self, db: Session, license_key: str) -> List[UsageSession]:
        return store.list_sessions(db, license_key)

    def recent_logins(self, db: Session, limit: int = 100) -> List[LoginLog]:
        return store.recent_login_logs(db, limit)
