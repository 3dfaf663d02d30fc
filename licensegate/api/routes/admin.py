from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Dict, List
import logging

from ...context import AppContext
from ...core.errors import StoreUnavailable
from ...schemas import (
    CompensateRequest,
    CompensateResponse,
    HwidBan,
    KeyGenerateRequest,
    KeyGenerateResponse,
    LicenseGenerateRequest,
    LicenseResponse,
    LogEntryResponse,
    LoginLogResponse,
    ProductCreate,
    ProductResponse,
    RevokeRequest,
    StatusResponse,
)
from ...utils.exceptions import TransientStoreException, ValidationException
from ..deps import get_context, get_db, raise_for_outcome, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])

OK = StatusResponse(status="Ok")


# Products

@router.get("/products", response_model=List[ProductResponse])
def list_products(db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    return ctx.catalog.list_products(db)


@router.post("/products", response_model=StatusResponse, status_code=status.HTTP_201_CREATED)
def create_product(body: ProductCreate, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.create_product(db, body.id))
    return OK


@router.delete("/products/{product_id}", response_model=StatusResponse)
def delete_product(product_id: str, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.delete_product(db, product_id))
    return OK


@router.post("/products/{product_id}/freeze", response_model=StatusResponse)
def freeze_product(product_id: str, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.freeze_product(db, product_id))
    return OK


@router.post("/products/{product_id}/unfreeze", response_model=StatusResponse)
def unfreeze_product(product_id: str, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.unfreeze_product(db, product_id))
    return OK


@router.post("/products/{product_id}/compensate", response_model=CompensateResponse)
def compensate_product(
    product_id: str,
    body: CompensateRequest,
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    result = ctx.catalog.compensate_product(db, product_id, body.seconds)
    raise_for_outcome(result.outcome)
    return CompensateResponse(product_id=product_id, extended=result.value)


# Keys and licenses

@router.post("/keys", response_model=KeyGenerateResponse, status_code=status.HTTP_201_CREATED)
def generate_keys(body: KeyGenerateRequest, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    """Generate single-use redemption keys for a product"""
    if body.count > ctx.settings.MAX_KEYS_PER_REQUEST:
        raise ValidationException(
            f"count must be between 1 and {ctx.settings.MAX_KEYS_PER_REQUEST}", "TOO_MANY_KEYS"
        )
    result = ctx.catalog.generate_redemption_keys(db, body.product_id, body.duration, body.count)
    raise_for_outcome(result.outcome)
    batch = result.value
    return KeyGenerateResponse(keys=batch.keys, requested=batch.requested, generated=batch.generated)


@router.get("/licenses", response_model=List[LicenseResponse])
def list_licenses(db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    return ctx.catalog.list_licenses(db)


@router.post("/licenses", status_code=status.HTTP_201_CREATED)
def generate_license(
    body: LicenseGenerateRequest,
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    result = ctx.catalog.generate_license(db, body.products)
    raise_for_outcome(result.outcome)
    return {"key": result.value}


@router.post("/licenses/{license_key}/products", response_model=StatusResponse)
def add_products(
    license_key: str,
    products: Dict[str, int],
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    """Grant products to a license; body maps product id to duration in seconds"""
    raise_for_outcome(ctx.catalog.add_products_to_license(db, license_key, products))
    return OK


@router.delete("/licenses/{license_key}/products", response_model=StatusResponse)
def remove_products(
    license_key: str,
    product_id: List[str] = Query(...),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    raise_for_outcome(ctx.catalog.remove_products_from_license(db, license_key, product_id))
    return OK


@router.post("/licenses/{license_key}/reset-hwid", response_model=StatusResponse)
def reset_hwid(license_key: str, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.reset_hwid(db, license_key))
    return OK


# Bans

@router.post("/users/{user_id}/ban", response_model=StatusResponse)
def ban_user(user_id: str, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.ban_user(db, user_id))
    return OK


@router.post("/users/{user_id}/unban", response_model=StatusResponse)
def unban_user(user_id: str, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.unban_user(db, user_id))
    return OK


@router.post("/hwids", response_model=StatusResponse, status_code=status.HTTP_201_CREATED)
def ban_hwid(body: HwidBan, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.ban_hwid(db, body.hwid, body.reason))
    return OK


@router.delete("/hwids/{hwid}", response_model=StatusResponse)
def unban_hwid(hwid: str, db: Session = Depends(get_db), ctx: AppContext = Depends(get_context)):
    raise_for_outcome(ctx.catalog.unban_hwid(db, hwid))
    return OK


# Revocation

@router.post("/revoke", response_model=StatusResponse)
def revoke_subject(body: RevokeRequest, ctx: AppContext = Depends(get_context)):
    """Reject every credential for subject issued before cutoff (default now)"""
    cutoff = ctx.clock() if body.cutoff is None else body.cutoff
    try:
        ctx.registry.revoke_subject_before(body.subject, cutoff, body.ttl)
    except StoreUnavailable:
        raise TransientStoreException("Revocation store unavailable, retry the request")
    return StatusResponse(status="Ok", detail=f"cutoff={cutoff}")


@router.delete("/revoke/{subject}", response_model=StatusResponse)
def clear_revocation(subject: str, ctx: AppContext = Depends(get_context)):
    try:
        ctx.registry.clear_subject(subject)
    except StoreUnavailable:
        raise TransientStoreException("Revocation store unavailable, retry the request")
    return OK


# Logs

@router.get("/logins", response_model=List[LoginLogResponse])
def recent_logins(
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    return ctx.catalog.recent_logins(db, limit)


@router.get("/logs", response_model=List[LogEntryResponse])
def recent_logs(limit: int = Query(1000, ge=1), ctx: AppContext = Depends(get_context)):
    return [LogEntryResponse(**entry.as_dict()) for entry in ctx.audit.recent(limit)]
