"""Pydantic schemas for authentication endpoints."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=3, max_length=32)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    """Credentials identify the account by email or by username."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr | None = None
    username: str | None = None
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _require_identifier(self) -> "LoginRequest":
        if not self.email and not self.username:
            raise ValueError("Email/username and password required.")
        return self


class IdentityResponse(BaseModel):
    id: UUID
    username: str
    email: str
    is_admin: bool = False


class AuthResponse(BaseModel):
    user: IdentityResponse
    expires_at: datetime


__all__ = ["RegisterRequest", "LoginRequest", "IdentityResponse", "AuthResponse"]
