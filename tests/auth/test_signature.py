"""Tests for wallet signature verification."""

import base64

import pytest
from solders.keypair import Keypair

from soltap.auth.signature import (
    SignatureFormatError,
    decode_signature,
    verify_wallet_signature,
)

MESSAGE = "Sign in to SolTap\nNonce: 4f1c9a"


def _sign(keypair: Keypair, message: str) -> str:
    return base64.b64encode(bytes(keypair.sign_message(message.encode()))).decode()


class TestVerifyWalletSignature:
    def test_valid_signature(self):
        kp = Keypair()
        assert verify_wallet_signature(str(kp.pubkey()), MESSAGE, _sign(kp, MESSAGE)) is True

    def test_signature_from_other_wallet(self):
        signer, other = Keypair(), Keypair()
        assert verify_wallet_signature(str(other.pubkey()), MESSAGE, _sign(signer, MESSAGE)) is False

    def test_altered_message(self):
        kp = Keypair()
        sig = _sign(kp, MESSAGE)
        assert verify_wallet_signature(str(kp.pubkey()), MESSAGE + " ", sig) is False

    def test_flipped_signature_bit(self):
        kp = Keypair()
        raw = bytearray(bytes(kp.sign_message(MESSAGE.encode())))
        raw[10] ^= 0x01
        tampered = base64.b64encode(bytes(raw)).decode()
        assert verify_wallet_signature(str(kp.pubkey()), MESSAGE, tampered) is False

    def test_unicode_message(self):
        kp = Keypair()
        message = "Connexion à SolTap ⚡"
        assert verify_wallet_signature(str(kp.pubkey()), message, _sign(kp, message)) is True


class TestMalformedInput:
    def test_bad_address(self):
        with pytest.raises(SignatureFormatError, match="Invalid wallet address"):
            verify_wallet_signature("not-a-wallet", MESSAGE, base64.b64encode(b"\x00" * 64).decode())

    def test_signature_not_base64(self):
        with pytest.raises(SignatureFormatError, match="base64"):
            decode_signature("%%%not base64%%%")

    def test_signature_wrong_length(self):
        with pytest.raises(SignatureFormatError, match="64 bytes"):
            decode_signature(base64.b64encode(b"\x01" * 32).decode())
