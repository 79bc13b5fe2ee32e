"""Tests for derived wallet credentials and argon2 hashing."""

from soltap.auth.password import (
    derive_wallet_password,
    hash_password,
    verify_password,
    wallet_email,
)

ADDRESS = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


class TestDerivedCredentials:
    def test_email_keeps_address_case(self):
        assert wallet_email(ADDRESS) == f"{ADDRESS}@soltap.app"

    def test_password_is_deterministic(self):
        assert derive_wallet_password(ADDRESS) == derive_wallet_password(ADDRESS)

    def test_password_differs_per_wallet(self):
        other = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
        assert derive_wallet_password(ADDRESS) != derive_wallet_password(other)

    def test_password_is_not_the_address(self):
        assert ADDRESS not in derive_wallet_password(ADDRESS)


class TestHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("secret-value")
        assert hashed.startswith("$argon2")
        assert verify_password("secret-value", hashed) is True
        assert verify_password("other-value", hashed) is False
