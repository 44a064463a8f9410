"""Authentication schemas."""
from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from avisos.models.user import UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class LoginResponse(BaseModel):
    token: str
    role: UserRole
    token_type: str = "bearer"
    expires_in: int


class ValidatedUser(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole

    model_config = {"from_attributes": True}


class ValidateResponse(BaseModel):
    valid: bool = True
    user: ValidatedUser
