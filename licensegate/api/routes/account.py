from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from typing import List
import logging

from ...context import AppContext
from ...core.catalog import Outcome
from ...core.credentials import Claims
from ...core.errors import StoreUnavailable, UnknownSubject
from ...core.redemption import RedeemOutcome
from ...schemas import (
    ProductGrantResponse,
    ProductsResponse,
    RedeemRequest,
    RedeemResponse,
    SessionResponse,
    SetRoleRequest,
    StatusResponse,
    TokenSchema,
    UserCreate,
    UserResponse,
)
from ...store import get_user
from ...utils.exceptions import (
    ConflictException,
    InvalidCredentialsException,
    NotFoundException,
    TransientStoreException,
    ValidationException,
)
from ..deps import get_context, get_current_claims, get_db, get_token, raise_for_outcome

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_in: UserCreate,
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    logger.info("Registration attempt for email: %s", user_in.email)
    result = ctx.catalog.register(db, user_in.email, user_in.password)
    if result.outcome is Outcome.INVALID_ARGUMENT:
        raise ValidationException(
            f"Password must be at least {ctx.settings.MIN_PASSWORD_LENGTH} characters", "WEAK_PASSWORD"
        )
    if result.outcome is Outcome.ALREADY_EXISTS:
        logger.warning("Email already registered: %s", user_in.email)
        raise ConflictException("Email already registered", "EMAIL_TAKEN")
    return UserResponse.model_validate(result.value)


@router.post("/login", response_model=TokenSchema)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    logger.info("Login attempt for user: %s", form_data.username)
    user = ctx.catalog.authenticate(db, form_data.username, form_data.password)
    if user is None:
        logger.warning("Failed login for user: %s", form_data.username)
        raise InvalidCredentialsException("Incorrect email or password")

    access_token = ctx.codec.issue(user.id, user.role, user.email)
    logger.info("Login successful for user: %s", form_data.username)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/logout", response_model=StatusResponse)
def logout(
    token: str = Depends(get_token),
    claims: Claims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    """Blacklist the presented token until it expires"""
    try:
        ctx.validator.revoke(token, claims)
    except StoreUnavailable:
        raise TransientStoreException("Could not revoke token, retry the request")
    return StatusResponse(status="Ok")


@router.get("/products", response_model=ProductsResponse)
def products(
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    grants = ctx.catalog.subject_products(db, claims)
    return ProductsResponse(products=[ProductGrantResponse.model_validate(g) for g in grants])


@router.post("/redeem", response_model=RedeemResponse)
def redeem(
    body: RedeemRequest,
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    try:
        result = ctx.redemption.redeem(db, body.key, claims.subject)
    except UnknownSubject:
        raise NotFoundException("User not found", "USER_NOT_FOUND")

    if result.outcome is RedeemOutcome.INVALID_OR_USED_KEY:
        raise NotFoundException("Invalid or already redeemed key", "INVALID_OR_USED_KEY")
    if result.outcome is RedeemOutcome.STORE_ERROR:
        raise TransientStoreException()
    return RedeemResponse(
        status=result.outcome.value,
        product_id=result.product_id,
        duration=result.duration,
        license_key=result.license_key,
    )


@router.post("/set-role", response_model=StatusResponse)
def set_role(
    body: SetRoleRequest,
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    raise_for_outcome(ctx.catalog.set_role(db, claims, body.user_id, body.role))
    return StatusResponse(status="Ok", detail=f"Role updated to {body.role.value}. User must re-login.")


def _license_key(db: Session, claims: Claims) -> str:
    user = get_user(db, claims.subject)
    if user is None or user.license_key is None:
        raise NotFoundException("No license for this account", "INVALID_LICENSE")
    return user.license_key


@router.get("/sessions", response_model=List[SessionResponse])
def list_sessions(
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    return ctx.catalog.list_sessions(db, _license_key(db, claims))


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    license_key = _license_key(db, claims)
    result = ctx.catalog.start_session(db, license_key)
    raise_for_outcome(result.outcome)
    return SessionResponse.model_validate(result.value)


@router.post("/sessions/{session_id}/end", response_model=StatusResponse)
def end_session(
    session_id: int,
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    raise_for_outcome(ctx.catalog.end_session(db, _license_key(db, claims), session_id))
    return StatusResponse(status="Ok")
