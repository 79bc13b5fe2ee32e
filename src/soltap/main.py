"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from soltap.auth.router import router as auth_router
from soltap.config import get_settings
from soltap.database import close_db, init_db
from soltap.health.router import router as health_router
from soltap.middleware import setup_middleware
from soltap.redis_client import close_redis, init_redis
from soltap.rewards.router import router as rewards_router
from soltap.scores.router import router as scores_router
from soltap.seasons.router import router as seasons_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="SolTap API",
        description="Wallet login, leaderboards, season settlement and on-chain reward claims",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(scores_router)
    app.include_router(seasons_router)
    app.include_router(rewards_router)

    return app


app = create_app()
