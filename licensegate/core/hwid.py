"""Hardware fingerprint binding.

A license is Unbound while its stored fingerprint is empty and Bound
afterwards. The Unbound -> Bound transition happens once, through a
conditional update, so concurrent first uses cannot both bind. Only an
administrative reset returns a license to Unbound.
"""
import logging
from enum import Enum

from sqlalchemy.orm import Session

from .. import store
from ..models import License

logger = logging.getLogger(__name__)


class BindOutcome(str, Enum):
    BOUND = "bound"        # this call performed the first bind
    MATCHED = "matched"
    MISMATCH = "mismatch"

    @property
    def accepted(self) -> bool:
        return self is not BindOutcome.MISMATCH


class HwidBindingPolicy:
    def check(self, db: Session, license: License, fingerprint: str) -> BindOutcome:
        if not fingerprint:
            raise ValueError("fingerprint must not be empty")

        if license.hwid:
            return BindOutcome.MATCHED if license.hwid == fingerprint else BindOutcome.MISMATCH

        if store.bind_hwid_if_unbound(db, license.key, fingerprint):
            db.commit()
            logger.info("Bound license %s to hardware fingerprint", license.key)
            return BindOutcome.BOUND

        # Lost the race: someone else bound between our read and our update
        db.rollback()
        current = store.stored_hwid(db, license.key)
        if current == fingerprint:
            return BindOutcome.MATCHED
        logger.info("License %s was bound concurrently to a different fingerprint", license.key)
        return BindOutcome.MISMATCH

    def reset(self, db: Session, license_key: str) -> bool:
        """Administrative override: clear the stored fingerprint"""
        cleared = store.reset_hwid(db, license_key)
        db.commit()
        if cleared:
            logger.info("Reset hardware binding for license %s", license_key)
        return cleared
