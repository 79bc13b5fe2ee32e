"""
Derived wallet credentials and argon2id hashing.

Wallet users never choose a password. The login flow derives one from the
wallet address and the server secret, stores only its argon2id hash, and
signs in with it right after the wallet signature has been checked.
"""

from __future__ import annotations

import hashlib
import hmac

import argon2

from soltap.config import get_settings

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)


def wallet_email(address: str) -> str:
    """Synthetic, deterministic email standing in for the wallet identity."""
    settings = get_settings()
    return f"{address}@{settings.auth_email_domain}"


def derive_wallet_password(address: str) -> str:
    """HMAC-SHA256 of the address keyed by the server secret."""
    settings = get_settings()
    digest = hmac.new(settings.auth_secret.encode(), address.encode(), hashlib.sha256)
    return digest.hexdigest()


def hash_password(password: str) -> str:
    """Hash a password using argon2id. Returns the full hash string."""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its argon2id hash. Never raises on mismatch."""
    try:
        return _hasher.verify(password_hash, password)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


def check_needs_rehash(password_hash: str) -> bool:
    """Check if the hash needs to be updated (parameters changed)."""
    return _hasher.check_needs_rehash(password_hash)
