"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from sqlalchemy.ext.asyncio import AsyncSession

from soltap.chain.client import TreasuryKeyError, TransactionFailedError
from soltap.config import get_settings


def _ensure_test_env() -> None:
    """Point settings at throwaway RSA keys and a fixed auth secret."""
    if os.environ.get("SOLTAP_JWT_PRIVATE_KEY_PATH", "").startswith(tempfile.gettempdir()):
        return

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    tmpdir = tempfile.mkdtemp(prefix="soltap_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")
    with open(private_path, "wb") as f:
        f.write(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
    with open(public_path, "wb") as f:
        f.write(key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ))

    os.environ["SOLTAP_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["SOLTAP_JWT_PUBLIC_KEY_PATH"] = public_path
    os.environ["SOLTAP_AUTH_SECRET"] = "test-secret"
    os.environ["SOLTAP_LOG_FORMAT"] = "console"
    os.environ["SOLTAP_CRON_SECRET"] = ""

    get_settings.cache_clear()
    from soltap.auth.jwt import reset_keys
    reset_keys()


_ensure_test_env()


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio calls the app makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: Any, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def eval(self, script: str, numkeys: int, *args: str) -> int:
        # Only the lease compare-and-delete script is used by the app
        key, token = args[0], args[numkeys]
        if self.store.get(key) == token:
            return await self.delete(key)
        return 0

    async def ping(self) -> bool:
        return True


class FakeTreasury:
    """Records transfers instead of talking to a cluster."""

    def __init__(self, balance: int = 10_000_000) -> None:
        self.keypair = Keypair()
        self.balance = balance
        self.built: list[dict[str, Any]] = []
        self.sent: list[Sequence[Instruction]] = []
        self.fail_confirmation = False

    def load_treasury(self, secret_id: str) -> Keypair:
        if secret_id == "missing":
            raise TreasuryKeyError(f"Missing treasury secret for {secret_id}")
        return self.keypair

    async def get_balance(self, owner: Pubkey) -> int:
        return self.balance

    async def build_transfer_instructions(
        self, treasury: Pubkey, mint: Pubkey, recipient: Pubkey, amount: int
    ) -> list[Instruction]:
        self.built.append({"treasury": treasury, "mint": mint, "recipient": recipient, "amount": amount})
        return []

    async def send_and_confirm(self, instructions: Sequence[Instruction], signer: Keypair) -> str:
        if self.fail_confirmation:
            raise TransactionFailedError("Transaction failed: InstructionError")
        self.sent.append(instructions)
        return f"fake-signature-{len(self.sent)}"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """Fresh SQLite database with all tables, plus a session on it."""
    from soltap.database import close_db, get_engine, get_session, init_db
    from soltap.db import models  # noqa: F401
    from soltap.db.base import Base

    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'soltap.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessions = get_session()
    session = await sessions.__anext__()
    try:
        yield session
    finally:
        await sessions.aclose()
        await close_db()


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def treasury() -> FakeTreasury:
    return FakeTreasury()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, redis: FakeRedis, treasury: FakeTreasury) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database and doubles."""
    from soltap.chain.client import get_treasury_client
    from soltap.main import create_app
    from soltap.redis_client import get_redis

    app = create_app()
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_treasury_client] = lambda: treasury

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def wallet() -> Keypair:
    return Keypair()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

SEASON_START = datetime(2026, 9, 1, tzinfo=timezone.utc)
SEASON_END = datetime(2026, 9, 30, 23, 59, 59, tzinfo=timezone.utc)


async def create_wallet_user(db: AsyncSession, address: str):
    from soltap.auth.service import provision_wallet_user

    user = await provision_wallet_user(db, address)
    await db.commit()
    return user


def auth_headers(user_id: int, address: str) -> dict[str, str]:
    from soltap.auth.jwt import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user_id, address)}"}


async def create_season(
    db: AsyncSession,
    name: str = "Season 1",
    start_at: datetime = SEASON_START,
    end_at: datetime = SEASON_END,
    rewards_enabled: bool = True,
    processed_at: datetime | None = None,
    claims_enabled: bool = False,
):
    from soltap.db.models import Season

    season = Season(
        name=name,
        start_at=start_at,
        end_at=end_at,
        rewards_enabled=rewards_enabled,
        processed_at=processed_at,
        claims_enabled=claims_enabled,
    )
    db.add(season)
    await db.flush()
    return season


async def create_reward_token(db: AsyncSession, symbol: str = "TAP", treasury_secret_id: str = "TREASURY_TAP"):
    from soltap.db.models import RewardToken

    token = RewardToken(
        symbol=symbol,
        mint_address=str(Keypair().pubkey()),
        decimals=6,
        treasury_secret_id=treasury_secret_id,
    )
    db.add(token)
    await db.flush()
    return token


async def create_campaign(
    db: AsyncSession,
    season_id: int,
    token_id: int,
    tiers: list[tuple[int, int, int]],
    active: bool = True,
):
    """Campaign with tiers given as (rank_min, rank_max, amount)."""
    from soltap.db.models import RewardCampaign, RewardTier

    campaign = RewardCampaign(season_id=season_id, name="Top players", active=active)
    db.add(campaign)
    await db.flush()
    for rank_min, rank_max, amount in tiers:
        db.add(RewardTier(
            campaign_id=campaign.id,
            reward_token_id=token_id,
            rank_min=rank_min,
            rank_max=rank_max,
            amount=amount,
        ))
    await db.flush()
    return campaign


async def add_score(
    db: AsyncSession,
    wallet_address: str,
    time_ms: int,
    created_at: datetime | None = None,
    game_mode: str = "reaction_test",
):
    from soltap.db.models import Score

    score = Score(
        wallet_address=wallet_address,
        time_ms=time_ms,
        game_mode=game_mode,
        tx_signature=f"sig-{wallet_address[:8]}-{time_ms}-{os.urandom(4).hex()}",
        created_at=created_at or SEASON_START + timedelta(days=3),
    )
    db.add(score)
    await db.flush()
    return score
