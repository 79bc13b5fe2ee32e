"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LoginRequest(BaseModel):
    """Signed login message. Presence is checked by the endpoint (400, not 422)."""

    address: str | None = None
    message: str | None = None
    signature: str | None = None


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    id: int
    wallet_address: str | None
    email: str
    created_at: datetime | None
    last_login: datetime | None
    login_count: int


class TokenResponse(BaseModel):
    """The session handed back to the app."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
