from __future__ import annotations

import math
import time
from dataclasses import dataclass

from redis import Redis
from redis.exceptions import NoScriptError

# token bucket: one hash per key holding the remaining tokens and the last refill time
_LUA_TOKEN_BUCKET = r"""
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local requested = tonumber(ARGV[4])

local data = redis.call('HMGET', key, 'tokens', 'ts')
local tokens = tonumber(data[1])
local ts = tonumber(data[2])

if tokens == nil then tokens = capacity end
if ts == nil then ts = now end

tokens = math.min(capacity, tokens + math.max(0, now - ts) * refill_rate)

local allowed = 0
if tokens >= requested then
  allowed = 1
  tokens = tokens - requested
end

redis.call('HSET', key, 'tokens', tokens, 'ts', now)
redis.call('EXPIRE', key, math.ceil(capacity / refill_rate))

return {allowed, tostring(tokens)}
"""


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after_seconds: int
    limit: int


class RedisRateLimiter:
    """Per-key requests-per-minute limit evaluated atomically inside Redis."""

    def __init__(self, redis: Redis, prefix: str = "ratelimit") -> None:
        self._redis = redis
        self._prefix = prefix
        self._sha: str | None = None

    def _eval(self, *args: object) -> list:
        if self._sha is None:
            self._sha = self._redis.script_load(_LUA_TOKEN_BUCKET)
        try:
            return self._redis.evalsha(self._sha, 1, *args)
        except NoScriptError:
            # script cache flushed (restart/failover)
            self._sha = self._redis.script_load(_LUA_TOKEN_BUCKET)
            return self._redis.evalsha(self._sha, 1, *args)

    def consume(self, key: str, limit_per_minute: int) -> RateLimitResult:
        capacity = max(1, int(limit_per_minute))
        refill_rate = capacity / 60.0
        allowed, tokens = self._eval(f"{self._prefix}:{key}", capacity, refill_rate, time.time(), 1)
        remaining = float(tokens)
        ok = int(allowed) == 1
        retry_after = 0 if ok else max(1, math.ceil((1 - remaining) / refill_rate))
        return RateLimitResult(
            allowed=ok,
            remaining=max(0, int(remaining)),
            retry_after_seconds=retry_after,
            limit=capacity,
        )
