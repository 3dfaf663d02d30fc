from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime


class AuthRequest(BaseModel):
    product_id: Optional[str] = None
    hwid: Optional[str] = None


class AuthResponse(BaseModel):
    status: str
    success: bool
    time_remaining: Optional[int] = None


class ProductCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=128)


class ProductResponse(BaseModel):
    id: str
    frozen: bool
    frozen_at: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompensateRequest(BaseModel):
    seconds: int = Field(..., gt=0)


class CompensateResponse(BaseModel):
    product_id: str
    extended: int


class KeyGenerateRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    duration: int = Field(..., gt=0, description="Seconds of access granted by each key")
    count: int = Field(1, ge=1)


class KeyGenerateResponse(BaseModel):
    keys: List[str]
    requested: int
    generated: int


class LicenseGenerateRequest(BaseModel):
    products: Dict[str, int] = Field(default_factory=dict, description="product id -> duration in seconds")


class LicenseGrantResponse(BaseModel):
    product_id: str
    duration: int
    started_at: int

    class Config:
        from_attributes = True


class LicenseResponse(BaseModel):
    key: str
    hwid: str
    created_at: Optional[datetime] = None
    products: List[LicenseGrantResponse] = []

    class Config:
        from_attributes = True


class HwidBan(BaseModel):
    hwid: str = Field(..., min_length=1)
    reason: Optional[str] = None


class RevokeRequest(BaseModel):
    subject: str
    cutoff: Optional[int] = Field(None, description="Epoch seconds; defaults to now")
    ttl: Optional[int] = Field(None, gt=0)


class LoginLogResponse(BaseModel):
    id: int
    license_key: Optional[str] = None
    subject: Optional[str] = None
    product_id: Optional[str] = None
    hwid: Optional[str] = None
    time: int
    response: str

    class Config:
        from_attributes = True


class LogEntryResponse(BaseModel):
    timestamp: int
    level: str
    message: str
    target: Optional[str] = None

    class Config:
        from_attributes = True


class StatusResponse(BaseModel):
    status: str
    detail: Optional[str] = None
