from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class LicenseGateException(HTTPException):
    """Base exception for LicenseGate API errors"""
    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or str(status_code)


def _error_body(request: Request, exc: HTTPException, error_code: Optional[str] = None) -> dict:
    body = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": str(request.url),
        "detail": exc.detail,
        "status_code": exc.status_code
    }
    if error_code is not None:
        body["error_code"] = error_code
    return body


async def licensegate_exception_handler(request: Request, exc: LicenseGateException):
    """Handler for LicenseGate custom exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc, exc.error_code),
        headers=exc.headers
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handler for standard HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc),
        headers=getattr(exc, "headers", None)
    )


# Common exceptions
class ValidationException(LicenseGateException):
    def __init__(self, detail: str = "Invalid request", error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )


class NotFoundException(LicenseGateException):
    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code
        )


class ConflictException(LicenseGateException):
    def __init__(self, detail: str = "Already exists", error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )


class ExpiredException(LicenseGateException):
    def __init__(self, detail: str = "Token has expired"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="TOKEN_EXPIRED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class InvalidCredentialsException(LicenseGateException):
    def __init__(self, detail: str = "Invalid credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="INVALID_CREDENTIALS",
            headers={"WWW-Authenticate": "Bearer"}
        )


class AuthzException(LicenseGateException):
    def __init__(self, detail: str = "Insufficient permissions", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )


class TransientStoreException(LicenseGateException):
    def __init__(self, detail: str = "Storage temporarily unavailable, retry the request"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="STORE_ERROR"
        )
