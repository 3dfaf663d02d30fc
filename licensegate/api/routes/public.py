from fastapi import APIRouter, Depends, Header, Request, Response, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from ...context import AppContext
from ...core.authorization import AuthDecision, AuthResult
from ...core.credentials import Claims
from ...schemas import AuthRequest, AuthResponse, ProductGrantResponse
from ...utils.exceptions import NotFoundException, ValidationException
from ..deps import get_context, get_current_claims, get_db

logger = logging.getLogger(__name__)

router = APIRouter()

MISSING_HEADERS = "MissingHeaders"

_DECISION_STATUS = {
    AuthDecision.OK: status.HTTP_200_OK,
    AuthDecision.BANNED: status.HTTP_403_FORBIDDEN,
    AuthDecision.HWID_MISMATCH: status.HTTP_401_UNAUTHORIZED,
}


def _auth_response(result: AuthResult, request: Request, response: Response) -> AuthResponse:
    request.state.auth_outcome = result.decision.value
    response.status_code = _DECISION_STATUS.get(result.decision, status.HTTP_200_OK)
    return AuthResponse(
        status=result.decision.value,
        success=result.ok,
        time_remaining=result.remaining_seconds if result.ok else None,
    )


def _missing_headers(response: Response) -> AuthResponse:
    response.status_code = status.HTTP_400_BAD_REQUEST
    return AuthResponse(status=MISSING_HEADERS, success=False)


@router.get("/health-check")
async def health_check(ctx: AppContext = Depends(get_context)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": ctx.settings.VERSION,
        "timestamp": ctx.clock(),
    }


@router.post("/auth", response_model=AuthResponse)
def authorize(
    body: AuthRequest,
    request: Request,
    response: Response,
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    """Decide whether the bearer may use a product on this machine"""
    if not (body.product_id and body.hwid):
        return _missing_headers(response)
    result = ctx.authorization.authorize(db, claims, body.product_id, body.hwid)
    return _auth_response(result, request, response)


@router.get("/license/auth", response_model=AuthResponse)
def authorize_license(
    request: Request,
    response: Response,
    license_key: Optional[str] = Header(None, alias="X-License-Key"),
    product_id: Optional[str] = Header(None, alias="X-Product-ID"),
    hwid: Optional[str] = Header(None, alias="X-HWID"),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    """License-key flow: the same decision without a bearer credential"""
    if not (license_key and product_id and hwid):
        return _missing_headers(response)
    result = ctx.authorization.authorize_license(db, license_key, product_id, hwid)
    return _auth_response(result, request, response)


@router.get("/license/product", response_model=ProductGrantResponse)
def license_product(
    license_key: Optional[str] = Header(None, alias="X-License-Key"),
    product_id: Optional[str] = Header(None, alias="X-Product-ID"),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    if not (license_key and product_id):
        raise ValidationException("X-License-Key and X-Product-ID headers are required", MISSING_HEADERS)
    grant = ctx.catalog.license_product_info(db, license_key, product_id)
    if grant is None:
        raise NotFoundException("License does not hold this product", "INVALID_LICENSE")
    return ProductGrantResponse.model_validate(grant)
