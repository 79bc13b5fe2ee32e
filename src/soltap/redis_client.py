"""Redis connection pool."""

import secrets

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the Redis client (FastAPI dependency)."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool

# Delete the lease only while it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


async def acquire_lease(client: redis.Redis, key: str, ttl_seconds: int) -> str | None:
    """Take an exclusive lease on ``key``.

    Returns the owner token to pass to :func:`release_lease`, or None if
    someone else holds the lease.
    """
    token = secrets.token_hex(16)
    if await client.set(key, token, nx=True, ex=ttl_seconds):
        return token
    return None


async def release_lease(client: redis.Redis, key: str, token: str) -> bool:
    """Drop a lease taken with :func:`acquire_lease`.

    A lease that expired and was taken over by another holder is left alone.
    Returns True if the lease was deleted.
    """
    return bool(await client.eval(_RELEASE_SCRIPT, 1, key, token))
