"""Redis async client for short-lived auth state.

Keys written by the auth service:

- ``siwe:nonce:<nonce>`` -> requester binding token, TTL ``NONCE_TTL_SECONDS``,
  removed with ``GETDEL`` on the first login attempt.
- ``siwe:revoked:<jti>`` -> ``"1"``, TTL = remaining lifetime of the logged-out
  identity token.
"""

import redis.asyncio as redis

from cavecrawl.config import settings

_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Shared client, created on first use. Responses are decoded to ``str``."""
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def get_redis() -> redis.Redis:
    """FastAPI dependency that returns the shared Redis client."""
    return get_redis_client()
