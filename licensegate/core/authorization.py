"""Access decision for a (subject, product, fingerprint) triple.

The checks run in a fixed order and the first failing one decides:

1. privileged role          -> OK, unbounded
2. banned subject           -> BANNED
3. banned fingerprint       -> BANNED
4. hardware binding         -> HWID_MISMATCH
5. product / ownership      -> INVALID_LICENSE_OR_PRODUCT
6. frozen product           -> FROZEN
7. grant window             -> EXPIRED, else OK(remaining)
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import store
from ..models import License, LoginLog
from .audit import AuditLog
from .credentials import Claims, Clock, system_clock
from .entitlement import UNBOUNDED_SECONDS, remaining
from .hwid import HwidBindingPolicy

logger = logging.getLogger(__name__)


class AuthDecision(str, Enum):
    OK = "Ok"
    INVALID_LICENSE_OR_PRODUCT = "InvalidLicense"
    HWID_MISMATCH = "HWIDMismatch"
    EXPIRED = "LicenseExpired"
    FROZEN = "LicenseFrozen"
    BANNED = "Banned"


@dataclass(frozen=True)
class AuthResult:
    decision: AuthDecision
    remaining_seconds: Optional[int] = None
    license_key: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.decision is AuthDecision.OK


class AuthorizationEngine:
    def __init__(
        self,
        audit: AuditLog,
        hwid_policy: Optional[HwidBindingPolicy] = None,
        clock: Clock = system_clock,
        record_logins: bool = True,
    ):
        self.audit = audit
        self.hwid_policy = hwid_policy or HwidBindingPolicy()
        self.clock = clock
        self.record_logins = record_logins

    def authorize(self, db: Session, claims: Claims, product_id: str, fingerprint: str) -> AuthResult:
        """Decide whether the credential's subject may use product_id"""
        if not fingerprint:
            raise ValueError("fingerprint must not be empty")

        if claims.role.is_privileged():
            result = AuthResult(AuthDecision.OK, UNBOUNDED_SECONDS)
            return self._finish(db, result, claims.subject, product_id, fingerprint)

        user = store.get_user(db, claims.subject)
        if user is not None and user.banned:
            logger.info("Banned user %s attempted authentication", claims.subject)
            return self._finish(db, AuthResult(AuthDecision.BANNED), claims.subject, product_id, fingerprint)

        license = store.get_license(db, user.license_key) if user and user.license_key else None
        result = self._evaluate(db, license, product_id, fingerprint)
        return self._finish(db, result, claims.subject, product_id, fingerprint)

    def authorize_license(self, db: Session, license_key: str, product_id: str, fingerprint: str) -> AuthResult:
        """Same decision for a bare license key, without a bearer credential"""
        if not fingerprint:
            raise ValueError("fingerprint must not be empty")

        owner = store.get_license_owner(db, license_key)
        subject = owner.id if owner is not None else None
        if owner is not None and owner.banned:
            logger.info("Banned user %s attempted authentication by license key", subject)
            result = AuthResult(AuthDecision.BANNED)
        else:
            license = store.get_license(db, license_key)
            result = self._evaluate(db, license, product_id, fingerprint)
        return self._finish(db, result, subject, product_id, fingerprint, license_key=license_key)

    def _evaluate(
        self,
        db: Session,
        license: Optional[License],
        product_id: str,
        fingerprint: str,
    ) -> AuthResult:
        if store.is_hwid_banned(db, fingerprint):
            logger.info("Banned fingerprint attempted authentication for product %s", product_id)
            return AuthResult(AuthDecision.BANNED)

        if license is None:
            return AuthResult(AuthDecision.INVALID_LICENSE_OR_PRODUCT)
        license_key = license.key

        if not self.hwid_policy.check(db, license, fingerprint).accepted:
            return AuthResult(AuthDecision.HWID_MISMATCH, license_key=license_key)

        product = store.get_product(db, product_id)
        grant = store.get_license_product(db, license_key, product_id)
        if product is None or grant is None:
            return AuthResult(AuthDecision.INVALID_LICENSE_OR_PRODUCT, license_key=license_key)

        if product.frozen:
            return AuthResult(AuthDecision.FROZEN, license_key=license_key)

        window = remaining(grant.duration, grant.started_at, self.clock())
        if window.expired:
            return AuthResult(AuthDecision.EXPIRED, license_key=license_key)
        return AuthResult(AuthDecision.OK, window.remaining_seconds, license_key=license_key)

    def _finish(
        self,
        db: Session,
        result: AuthResult,
        subject: Optional[str],
        product_id: str,
        fingerprint: str,
        license_key: Optional[str] = None,
    ) -> AuthResult:
        if license_key and result.license_key is None:
            result = AuthResult(result.decision, result.remaining_seconds, license_key)
        now = self.clock()
        message = (
            f"auth subject={subject or '-'} license={result.license_key or '-'} "
            f"product={product_id} outcome={result.decision.value}"
        )
        self.audit.add("info", message, target=__name__, timestamp=now)
        logger.info(message, extra={"audited": True})

        if self.record_logins:
            try:
                db.add(LoginLog(
                    license_key=result.license_key,
                    subject=subject,
                    product_id=product_id,
                    hwid=fingerprint,
                    time=now,
                    response=result.decision.value,
                ))
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Failed to persist login log for product %s", product_id)
        return result
