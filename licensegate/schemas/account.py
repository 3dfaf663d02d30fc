from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from ..core.roles import Role


class UserCreate(BaseModel):
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    role: Role
    banned: bool
    license_key: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenSchema(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RedeemRequest(BaseModel):
    key: str = Field(..., min_length=1)


class RedeemResponse(BaseModel):
    status: str
    product_id: Optional[str] = None
    duration: Optional[int] = None
    license_key: Optional[str] = None


class SetRoleRequest(BaseModel):
    user_id: str
    role: Role


class SessionResponse(BaseModel):
    id: int
    license_key: str
    started: int
    ended: Optional[int] = None

    class Config:
        from_attributes = True


class ProductGrantResponse(BaseModel):
    product_id: str
    duration: int
    started_at: int
    remaining_seconds: int
    expired: bool
    frozen: bool

    class Config:
        from_attributes = True


class ProductsResponse(BaseModel):
    products: List[ProductGrantResponse]
