"""Row-store operations used by the core components.

The mutating helpers here are single conditional statements. They do not
commit; callers own the transaction boundary.
"""
from typing import List, NamedTuple, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import BannedHwid, License, LicenseProduct, LoginLog, Product, RedemptionKey, UsageSession, User

NO_SYNC = {"synchronize_session": False}


class ClaimedKey(NamedTuple):
    key: str
    product_id: str
    duration: int


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.execute(select(User).where(User.email == email)).scalar_one_or_none()


def get_license(db: Session, key: str) -> Optional[License]:
    return db.get(License, key)


def get_license_owner(db: Session, license_key: str) -> Optional[User]:
    return db.execute(select(User).where(User.license_key == license_key)).scalar_one_or_none()


def get_product(db: Session, product_id: str) -> Optional[Product]:
    return db.get(Product, product_id)


def product_exists(db: Session, product_id: str) -> bool:
    return db.execute(select(Product.id).where(Product.id == product_id)).first() is not None


def list_products(db: Session) -> List[Product]:
    return list(db.execute(select(Product).order_by(Product.id)).scalars())


def list_licenses(db: Session) -> List[License]:
    return list(db.execute(select(License).order_by(License.created_at)).scalars())


def key_in_use(db: Session, key: str) -> bool:
    """True if key already names a license or an unredeemed redemption key"""
    if db.execute(select(License.key).where(License.key == key)).first() is not None:
        return True
    return db.execute(select(RedemptionKey.key).where(RedemptionKey.key == key)).first() is not None


def insert_license_if_free(db: Session, key: str) -> bool:
    """Insert an unbound license under key. False if the key is taken."""
    if key_in_use(db, key):
        return False
    try:
        with db.begin_nested():
            db.add(License(key=key, hwid=""))
    except IntegrityError:
        return False
    return True


def insert_redemption_key_if_free(db: Session, key: str, product_id: str, duration: int) -> bool:
    if key_in_use(db, key):
        return False
    try:
        with db.begin_nested():
            db.add(RedemptionKey(key=key, product_id=product_id, duration=duration))
    except IntegrityError:
        return False
    return True


def get_license_product(db: Session, license_key: str, product_id: str) -> Optional[LicenseProduct]:
    return db.get(LicenseProduct, (license_key, product_id))


def upsert_license_product(db: Session, license_key: str, product_id: str, duration: int, started_at: int) -> None:
    existing = get_license_product(db, license_key, product_id)
    if existing is None:
        db.add(LicenseProduct(
            license_key=license_key,
            product_id=product_id,
            duration=duration,
            started_at=started_at,
        ))
    else:
        existing.duration = duration
        existing.started_at = started_at
    db.flush()


def extend_license_product(db: Session, license_key: str, product_id: str, seconds: int) -> bool:
    """Add seconds to one grant without moving its window start"""
    result = db.execute(
        update(LicenseProduct)
        .where(LicenseProduct.license_key == license_key, LicenseProduct.product_id == product_id)
        .values(duration=LicenseProduct.duration + seconds),
        execution_options=NO_SYNC,
    )
    return result.rowcount == 1


def remove_license_product(db: Session, license_key: str, product_id: str) -> int:
    result = db.execute(
        delete(LicenseProduct)
        .where(LicenseProduct.license_key == license_key, LicenseProduct.product_id == product_id),
        execution_options=NO_SYNC,
    )
    return result.rowcount


def bind_hwid_if_unbound(db: Session, license_key: str, hwid: str) -> bool:
    """Set the fingerprint only if none is stored yet. True if this call won."""
    result = db.execute(
        update(License)
        .where(License.key == license_key, License.hwid == "")
        .values(hwid=hwid),
        execution_options=NO_SYNC,
    )
    return result.rowcount == 1


def stored_hwid(db: Session, license_key: str) -> Optional[str]:
    row = db.execute(select(License.hwid).where(License.key == license_key)).first()
    return None if row is None else row[0]


def reset_hwid(db: Session, license_key: str) -> bool:
    result = db.execute(
        update(License).where(License.key == license_key).values(hwid=""),
        execution_options=NO_SYNC,
    )
    return result.rowcount == 1


def is_hwid_banned(db: Session, hwid: str) -> bool:
    return db.execute(select(BannedHwid.hwid).where(BannedHwid.hwid == hwid)).first() is not None


def claim_redemption_key(db: Session, key: str) -> Optional[ClaimedKey]:
    """Delete the key and return its row, or None if it is absent.

    A single DELETE ... RETURNING, so of two concurrent claims only one
    gets the row back.
    """
    row = db.execute(
        delete(RedemptionKey)
        .where(RedemptionKey.key == key)
        .returning(RedemptionKey.key, RedemptionKey.product_id, RedemptionKey.duration),
        execution_options=NO_SYNC,
    ).first()
    if row is None:
        return None
    return ClaimedKey(key=row[0], product_id=row[1], duration=int(row[2]))


def freeze_if_unfrozen(db: Session, product_id: str, now: int) -> bool:
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.frozen.is_(False))
        .values(frozen=True, frozen_at=now),
        execution_options=NO_SYNC,
    )
    return result.rowcount == 1


def unfreeze_if_frozen_at(db: Session, product_id: str, frozen_at: int) -> bool:
    """Clear the freeze only if it is still the one that began at frozen_at"""
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.frozen.is_(True), Product.frozen_at == frozen_at)
        .values(frozen=False, frozen_at=0),
        execution_options=NO_SYNC,
    )
    return result.rowcount == 1


def shift_grant_windows(db: Session, product_id: str, seconds: int) -> int:
    """Move every holder's grant-window start forward in one statement"""
    result = db.execute(
        update(LicenseProduct)
        .where(LicenseProduct.product_id == product_id)
        .values(started_at=LicenseProduct.started_at + seconds),
        execution_options=NO_SYNC,
    )
    return result.rowcount


def extend_all_holders(db: Session, product_id: str, seconds: int) -> int:
    result = db.execute(
        update(LicenseProduct)
        .where(LicenseProduct.product_id == product_id)
        .values(duration=LicenseProduct.duration + seconds),
        execution_options=NO_SYNC,
    )
    return result.rowcount


def grants_for_license(db: Session, license_key: str) -> List[LicenseProduct]:
    return list(db.execute(
        select(LicenseProduct)
        .where(LicenseProduct.license_key == license_key)
        .order_by(LicenseProduct.product_id)
    ).scalars())


def list_sessions(db: Session, license_key: str) -> List[UsageSession]:
    return list(db.execute(
        select(UsageSession)
        .where(UsageSession.license_key == license_key)
        .order_by(UsageSession.started.desc(), UsageSession.id.desc())
    ).scalars())


def end_session_if_open(db: Session, license_key: str, session_id: int, now: int) -> bool:
    result = db.execute(
        update(UsageSession)
        .where(
            UsageSession.id == session_id,
            UsageSession.license_key == license_key,
            UsageSession.ended.is_(None),
        )
        .values(ended=now),
        execution_options=NO_SYNC,
    )
    return result.rowcount == 1


def recent_login_logs(db: Session, limit: int = 100) -> List[LoginLog]:
    return list(db.execute(
        select(LoginLog).order_by(LoginLog.time.desc(), LoginLog.id.desc()).limit(limit)
    ).scalars())
