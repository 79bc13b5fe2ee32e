"""
Solana wallet message signing verification (Sign-In With Solana).

A wallet address is the base58 encoding of its ed25519 public key, so the
address itself is the verification key. Wallet apps sign the raw UTF-8 bytes
of the message (no prefix, no hashing) and hand back a base64 signature.

Uses solders for ed25519 operations. No dependency on an RPC node.
"""

from __future__ import annotations

import base64
import binascii

from solders.pubkey import Pubkey
from solders.signature import Signature

SIGNATURE_LENGTH = 64


class SignatureFormatError(ValueError):
    """Raised when the address or signature cannot be decoded at all."""


def decode_address(address: str) -> Pubkey:
    """Decode a base58 wallet address into an ed25519 public key."""
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        msg = f"Invalid wallet address: {address[:10]}..."
        raise SignatureFormatError(msg) from e


def decode_signature(signature_base64: str) -> Signature:
    """Decode a base64 detached signature into raw signature bytes."""
    try:
        raw = base64.b64decode(signature_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        msg = "Signature is not valid base64"
        raise SignatureFormatError(msg) from e
    if len(raw) != SIGNATURE_LENGTH:
        msg = f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}"
        raise SignatureFormatError(msg)
    return Signature.from_bytes(raw)


def verify_wallet_signature(address: str, message: str, signature_base64: str) -> bool:
    """
    Verify that ``signature_base64`` is the address owner's signature of ``message``.

    Args:
        address: Base58 wallet address (ed25519 public key).
        message: The exact message the wallet signed.
        signature_base64: Base64-encoded 64-byte detached signature.

    Returns:
        True if the signature authenticates the message bytes.

    Raises:
        SignatureFormatError: If the address or signature cannot be decoded.
    """
    pubkey = decode_address(address)
    signature = decode_signature(signature_base64)
    return signature.verify(pubkey, message.encode("utf-8"))
