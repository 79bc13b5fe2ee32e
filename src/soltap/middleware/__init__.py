"""Middleware registration."""

from fastapi import FastAPI

from soltap.config import Settings
from soltap.middleware.cors import setup_cors
from soltap.middleware.error_handler import setup_error_handlers
from soltap.middleware.logging import setup_logging
from soltap.middleware.rate_limit import RateLimitMiddleware
from soltap.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost),
    so CORS goes last to wrap 429 responses from the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        group_limits={
            "/api/v1/auth": settings.rate_limit_auth,
            "/api/v1/rewards/claim": settings.rate_limit_claim,
        },
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
