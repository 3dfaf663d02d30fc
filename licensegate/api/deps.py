from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from typing import Generator

from ..config.settings import settings
from ..context import AppContext
from ..core.credentials import Claims
from ..core.catalog import Outcome
from ..core.errors import CredentialExpired, CredentialInvalid, CredentialRevoked
from ..core.roles import Role
from ..database import session_scope
from ..utils.exceptions import (
    AuthzException,
    ConflictException,
    ExpiredException,
    InvalidCredentialsException,
    NotFoundException,
    TransientStoreException,
    ValidationException,
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/account/login")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_db(ctx: AppContext = Depends(get_context)) -> Generator:
    """Database session dependency"""
    yield from session_scope(ctx.SessionLocal)


def get_token(token: str = Depends(oauth2_scheme)) -> str:
    return token


def get_current_claims(
    token: str = Depends(get_token),
    ctx: AppContext = Depends(get_context),
) -> Claims:
    """Validated claims of the bearer credential"""
    try:
        return ctx.validator.validate(token)
    except CredentialExpired:
        raise ExpiredException()
    except CredentialRevoked:
        raise InvalidCredentialsException("Token has been revoked")
    except CredentialInvalid:
        raise InvalidCredentialsException("Could not validate credentials")


def require_admin(claims: Claims = Depends(get_current_claims)) -> Claims:
    if claims.role is not Role.ADMIN:
        raise AuthzException("Admin role required")
    return claims


_OUTCOME_ERRORS = {
    Outcome.ALREADY_EXISTS: lambda: ConflictException("Already exists", "ALREADY_EXISTS"),
    Outcome.NOT_FOUND: lambda: NotFoundException(),
    Outcome.USER_NOT_FOUND: lambda: NotFoundException("User not found", "USER_NOT_FOUND"),
    Outcome.INVALID_PRODUCT: lambda: NotFoundException("Product not found", "INVALID_PRODUCT"),
    Outcome.INVALID_LICENSE: lambda: NotFoundException("License not found", "INVALID_LICENSE"),
    Outcome.ONE_OR_MORE_INVALID_PRODUCT: lambda: ValidationException(
        "One or more products do not exist", "ONE_OR_MORE_INVALID_PRODUCT"
    ),
    Outcome.ALREADY_FROZEN: lambda: ConflictException("Product is already frozen", "ALREADY_FROZEN"),
    Outcome.ALREADY_UNFROZEN: lambda: ConflictException("Product is not frozen", "ALREADY_UNFROZEN"),
    Outcome.FAILED_TO_GENERATE_VALID_LICENSE: lambda: TransientStoreException(
        "Failed to generate a unique license key, retry the request"
    ),
    Outcome.FORBIDDEN: lambda: AuthzException("Only admins can change user roles"),
    Outcome.SELF_DEMOTION: lambda: ValidationException("Admins cannot demote themselves", "SELF_DEMOTION"),
    Outcome.INVALID_ARGUMENT: lambda: ValidationException(),
    Outcome.STORE_ERROR: lambda: TransientStoreException(),
}


def raise_for_outcome(outcome: Outcome) -> None:
    """Raise the HTTP error matching a non-OK catalog outcome"""
    if outcome is Outcome.OK:
        return
    raise _OUTCOME_ERRORS[outcome]()
