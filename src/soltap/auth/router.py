"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from soltap.auth.dependencies import get_current_user
from soltap.auth.jwt import create_access_token, create_refresh_token, verify_token
from soltap.auth.schemas import (
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from soltap.auth.service import (
    get_refresh_token,
    get_user_by_id,
    resolve_wallet_user,
    revoke_all_tokens,
    revoke_refresh_token,
    rotate_refresh_token,
    sign_in_wallet_user,
    store_refresh_token,
)
from soltap.auth.signature import SignatureFormatError, verify_wallet_signature
from soltap.config import get_settings
from soltap.database import get_session
from soltap.db.models import User

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        wallet_address=user.wallet_address,
        email=user.email,
        created_at=user.created_at,
        last_login=user.last_login,
        login_count=user.login_count or 0,
    )


def _client_meta(request: Request) -> tuple[str | None, str | None]:
    return (
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
    )


async def _issue_tokens(db: AsyncSession, user: User, request: Request) -> TokenResponse:
    """Create access + refresh tokens and store the refresh token hash."""
    settings = get_settings()
    address = user.wallet_address or ""
    token_id = str(uuid.uuid4())
    access_token = create_access_token(user.id, address)
    refresh_token = create_refresh_token(user.id, address, token_id=token_id)
    ip_address, user_agent = _client_meta(request)

    await store_refresh_token(
        db,
        user_id=user.id,
        token_id=token_id,
        token_hash=hashlib.sha256(refresh_token.encode()).hexdigest(),
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.jwt_refresh_token_expire_days),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=_user_response(user),
    )


# ---------------------------------------------------------------------------
# Wallet login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Verify a signed wallet message, resolve the user and open a session."""
    if not body.address or not body.message or not body.signature:
        raise HTTPException(status_code=400, detail="Missing address, message, or signature")

    try:
        verified = verify_wallet_signature(body.address, body.message, body.signature)
    except SignatureFormatError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if not verified:
        logger.info("login_signature_rejected", wallet_address=body.address)
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        user, created = await resolve_wallet_user(db, body.address)
    except IntegrityError:
        # A concurrent first login for this wallet won the insert
        await db.rollback()
        logger.info("wallet_user_insert_raced", wallet_address=body.address)
        try:
            user, created = await resolve_wallet_user(db, body.address)
        except IntegrityError as e:
            await db.rollback()
            raise HTTPException(status_code=400, detail="Failed to resolve wallet user") from e

    try:
        user = await sign_in_wallet_user(db, body.address)
    except ValueError as e:
        await db.rollback()
        logger.error("wallet_sign_in_failed", wallet_address=body.address, user_id=user.id)
        raise HTTPException(status_code=401, detail="Failed to create session") from e
    except PermissionError as e:
        await db.rollback()
        raise HTTPException(status_code=403, detail=str(e)) from e

    logger.info("wallet_login", user_id=user.id, created=created)
    return await _issue_tokens(db, user, request)


# ---------------------------------------------------------------------------
# Session management
# ---------------------------------------------------------------------------


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Rotate a refresh token."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
    except pyjwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    jti = payload.get("jti")
    if not jti:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    old_token = await get_refresh_token(db, jti)
    if old_token is None:
        raise HTTPException(status_code=401, detail="Refresh token not found")
    if old_token.is_revoked:
        # Reuse of a rotated token: burn the whole family
        await revoke_all_tokens(db, old_token.user_id)
        await db.commit()
        logger.warning("refresh_token_reuse", user_id=old_token.user_id, jti=jti)
        raise HTTPException(status_code=401, detail="Refresh token has been revoked")

    user = await get_user_by_id(db, old_token.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if user.is_banned:
        raise HTTPException(status_code=403, detail="Account is banned")

    settings = get_settings()
    address = user.wallet_address or ""
    new_token_id = str(uuid.uuid4())
    new_access = create_access_token(user.id, address)
    new_refresh = create_refresh_token(user.id, address, token_id=new_token_id)
    ip_address, user_agent = _client_meta(request)

    await rotate_refresh_token(
        db,
        old_token=old_token,
        new_token_id=new_token_id,
        new_token_hash=hashlib.sha256(new_refresh.encode()).hexdigest(),
        new_expires_at=datetime.now(timezone.utc) + timedelta(days=settings.jwt_refresh_token_expire_days),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()

    return TokenResponse(
        access_token=new_access,
        refresh_token=new_refresh,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=_user_response(user),
    )


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Revoke a refresh token. Unknown or expired tokens are ignored."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
    except pyjwt.InvalidTokenError:
        return {"status": "ok"}

    jti = payload.get("jti")
    if jti:
        await revoke_refresh_token(db, jti)
        await db.commit()
    return {"status": "ok"}


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    """Return the authenticated user."""
    return _user_response(user)
