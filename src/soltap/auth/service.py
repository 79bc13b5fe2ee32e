"""
Wallet identity resolution and session bookkeeping.

One user per wallet is kept by searching before creating, not by a unique
constraint on the wallet. Two first logins for the same wallet racing each
other can still both reach the insert; the unique synthetic email makes the
loser fail instead of silently duplicating.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import or_, select, update

from soltap.auth.password import (
    check_needs_rehash,
    derive_wallet_password,
    hash_password,
    verify_password,
    wallet_email,
)
from soltap.db.models import RefreshToken, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def find_wallet_user(db: AsyncSession, address: str) -> User | None:
    """Find the user whose metadata (or synthetic email) names this wallet."""
    stmt = (
        select(User)
        .where(
            or_(
                User.user_metadata["wallet_address"].as_string() == address,
                User.email == wallet_email(address),
            )
        )
        .order_by(User.id)
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def load_wallet_user_map(db: AsyncSession) -> dict[str, int]:
    """Map every known wallet address to its user id."""
    result = await db.execute(select(User.id, User.user_metadata))
    wallet_to_user: dict[str, int] = {}
    for user_id, metadata in result.all():
        metadata = metadata or {}
        address = metadata.get("address") or metadata.get("wallet_address")
        if address:
            wallet_to_user[address] = user_id
    return wallet_to_user


# ---------------------------------------------------------------------------
# Wallet auth: resolve / provision
# ---------------------------------------------------------------------------


async def provision_wallet_user(db: AsyncSession, address: str) -> User:
    """Create a user for a wallet with derived credentials. Caller checks existence."""
    user = User(
        email=wallet_email(address),
        password_hash=hash_password(derive_wallet_password(address)),
        user_metadata={"wallet_address": address},
        email_confirmed=True,
        created_at=datetime.now(timezone.utc),
        login_count=0,
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, wallet_address=address)
    return user


async def resolve_wallet_user(db: AsyncSession, address: str) -> tuple[User, bool]:
    """
    Get the user for a verified wallet, creating one if absent.

    An existing user is brought in line with the derived credentials: email,
    password hash and ``wallet_address`` metadata are rewritten only when
    they differ, so repeated logins leave the row unchanged.

    Returns:
        Tuple of (user, created).
    """
    user = await find_wallet_user(db, address)
    if user is None:
        return await provision_wallet_user(db, address), True

    email = wallet_email(address)
    password = derive_wallet_password(address)
    metadata = dict(user.user_metadata or {})

    changed = False
    if user.email != email:
        user.email = email
        changed = True
    if not user.password_hash or not verify_password(password, user.password_hash):
        user.password_hash = hash_password(password)
        changed = True
    if metadata.get("wallet_address") != address:
        metadata["wallet_address"] = address
        user.user_metadata = metadata
        changed = True
    if not user.email_confirmed:
        user.email_confirmed = True
        changed = True

    if changed:
        await db.flush()
        logger.info("user_credentials_updated", user_id=user.id, wallet_address=address)
    return user, False


async def sign_in_wallet_user(db: AsyncSession, address: str) -> User:
    """
    Sign in with the wallet's derived credentials.

    Raises:
        ValueError: If no user matches or the derived password does not verify.
        PermissionError: If the account is banned.
    """
    result = await db.execute(select(User).where(User.email == wallet_email(address)))
    user = result.scalar_one_or_none()
    password = derive_wallet_password(address)
    if user is None or not verify_password(password, user.password_hash or ""):
        msg = "Invalid wallet credentials"
        raise ValueError(msg)
    if user.is_banned:
        msg = "Account is banned"
        raise PermissionError(msg)

    user.last_login = datetime.now(timezone.utc)
    user.login_count = (user.login_count or 0) + 1
    if user.password_hash and check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)
    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


async def store_refresh_token(
    db: AsyncSession,
    user_id: int,
    token_id: str,
    token_hash: str,
    expires_at: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> RefreshToken:
    """Store a refresh token hash in the database."""
    token = RefreshToken(
        id=token_id,
        user_id=user_id,
        token_hash=token_hash,
        issued_at=datetime.now(timezone.utc),
        expires_at=expires_at,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(token)
    await db.flush()
    return token


async def get_refresh_token(db: AsyncSession, token_id: str) -> RefreshToken | None:
    """Look up a refresh token by its JTI."""
    result = await db.execute(select(RefreshToken).where(RefreshToken.id == token_id))
    return result.scalar_one_or_none()


async def rotate_refresh_token(
    db: AsyncSession,
    old_token: RefreshToken,
    new_token_id: str,
    new_token_hash: str,
    new_expires_at: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> RefreshToken:
    """Revoke old token and create a new one (rotation)."""
    old_token.is_revoked = True
    old_token.revoked_at = datetime.now(timezone.utc)
    old_token.replaced_by = new_token_id

    return await store_refresh_token(
        db,
        user_id=old_token.user_id,
        token_id=new_token_id,
        token_hash=new_token_hash,
        expires_at=new_expires_at,
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def revoke_refresh_token(db: AsyncSession, token_id: str) -> bool:
    """Revoke a specific refresh token. Returns True if found."""
    token = await get_refresh_token(db, token_id)
    if token is None:
        return False
    token.is_revoked = True
    token.revoked_at = datetime.now(timezone.utc)
    await db.flush()
    return True


async def revoke_all_tokens(db: AsyncSession, user_id: int) -> int:
    """Revoke every live refresh token of a user. Returns count revoked."""
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id)
        .where(RefreshToken.is_revoked == False)  # noqa: E712
        .values(is_revoked=True, revoked_at=datetime.now(timezone.utc))
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount  # type: ignore[return-value]
