"""Initial schema: users, sessions, scores, seasons and rewards.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users & sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            email VARCHAR(320) UNIQUE NOT NULL,
            password_hash VARCHAR(256),
            user_metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            email_confirmed BOOLEAN NOT NULL DEFAULT false,
            is_banned BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ,
            last_login TIMESTAMPTZ,
            login_count INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_users_wallet
        ON users ((user_metadata->>'wallet_address'))
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS refresh_tokens (
            id VARCHAR(36) PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash VARCHAR(128) NOT NULL,
            issued_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            revoked_at TIMESTAMPTZ,
            ip_address VARCHAR(64),
            user_agent VARCHAR(512),
            is_revoked BOOLEAN NOT NULL DEFAULT false,
            replaced_by VARCHAR(36)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_refresh_tokens_user
        ON refresh_tokens(user_id)
    """)

    # --- Scores ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS scores (
            id BIGSERIAL PRIMARY KEY,
            time_ms INTEGER,
            score INTEGER,
            wallet_address VARCHAR(64) NOT NULL,
            game_mode VARCHAR(32) NOT NULL DEFAULT 'reaction_test',
            tx_signature VARCHAR(128) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_scores_mode_time ON scores(game_mode, time_ms)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_scores_created_at ON scores(created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_scores_wallet_address ON scores(wallet_address)")

    # --- Seasons & reward configuration ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS seasons (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            start_at TIMESTAMPTZ NOT NULL,
            end_at TIMESTAMPTZ NOT NULL,
            rewards_enabled BOOLEAN NOT NULL DEFAULT true,
            processed_at TIMESTAMPTZ,
            claims_enabled BOOLEAN NOT NULL DEFAULT false
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_seasons_pending
        ON seasons(end_at) WHERE processed_at IS NULL
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_tokens (
            id BIGSERIAL PRIMARY KEY,
            symbol VARCHAR(16) NOT NULL,
            mint_address VARCHAR(64) NOT NULL,
            decimals INTEGER NOT NULL DEFAULT 9,
            treasury_secret_id VARCHAR(64) NOT NULL
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_campaigns (
            id BIGSERIAL PRIMARY KEY,
            season_id BIGINT NOT NULL REFERENCES seasons(id) ON DELETE CASCADE,
            name VARCHAR(128),
            active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_tiers (
            id BIGSERIAL PRIMARY KEY,
            campaign_id BIGINT NOT NULL REFERENCES reward_campaigns(id) ON DELETE CASCADE,
            reward_token_id BIGINT NOT NULL REFERENCES reward_tokens(id),
            rank_min INTEGER NOT NULL,
            rank_max INTEGER NOT NULL,
            amount BIGINT NOT NULL,
            CHECK (rank_min >= 1 AND rank_max >= rank_min)
        )
    """)

    # --- User rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_rewards (
            id VARCHAR(36) PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            season_id BIGINT NOT NULL REFERENCES seasons(id),
            reward_token_id BIGINT NOT NULL REFERENCES reward_tokens(id),
            wallet_address VARCHAR(64) NOT NULL,
            amount BIGINT NOT NULL,
            claimed BOOLEAN NOT NULL DEFAULT false,
            claimed_at TIMESTAMPTZ,
            tx_hash VARCHAR(128),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (NOT claimed OR tx_hash IS NOT NULL)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_rewards_user
        ON user_rewards(user_id, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_rewards CASCADE")
    op.execute("DROP TABLE IF EXISTS reward_tiers CASCADE")
    op.execute("DROP TABLE IF EXISTS reward_campaigns CASCADE")
    op.execute("DROP TABLE IF EXISTS reward_tokens CASCADE")
    op.execute("DROP TABLE IF EXISTS seasons CASCADE")
    op.execute("DROP TABLE IF EXISTS scores CASCADE")
    op.execute("DROP TABLE IF EXISTS refresh_tokens CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
