from .account import (
    UserCreate,
    UserResponse,
    TokenSchema,
    RedeemRequest,
    RedeemResponse,
    SetRoleRequest,
    SessionResponse,
    ProductGrantResponse,
    ProductsResponse,
)
from .license import (
    AuthRequest,
    AuthResponse,
    ProductCreate,
    ProductResponse,
    CompensateRequest,
    CompensateResponse,
    KeyGenerateRequest,
    KeyGenerateResponse,
    LicenseGenerateRequest,
    LicenseGrantResponse,
    LicenseResponse,
    HwidBan,
    RevokeRequest,
    LoginLogResponse,
    LogEntryResponse,
    StatusResponse,
)
