from __future__ import annotations

from redis import Redis

from paygate.shared.config import Settings

_client: Redis | None = None


def init_redis(settings: Settings) -> Redis | None:
    """Connect when REDIS_URL is set; webhook rate limiting is off otherwise."""
    global _client
    _client = Redis.from_url(settings.redis_url, decode_responses=True) if settings.redis_url else None
    return _client


def get_redis() -> Redis | None:
    return _client
