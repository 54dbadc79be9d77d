from __future__ import annotations

import json
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from paygate.application.webhooks import UNKNOWN_DRIVER
from paygate.infrastructure.redis.rate_limit import RedisRateLimiter
from paygate.shared.correlation import new_correlation_id, set_correlation_id, set_driver, set_subject
from paygate.shared.logging import get_logger
from paygate.shared.metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL

log = get_logger(__name__)

WEBHOOK_PREFIX = "/webhooks/"


def _route_path(request: Request) -> str:
    # label by route template so ids do not explode metric cardinality
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        cid = request.headers.get("X-Correlation-Id") or new_correlation_id()
        set_correlation_id(cid)
        set_driver("")
        set_subject("")

        start = time.time()
        try:
            response = await call_next(request)
        finally:
            elapsed = max(0.0, time.time() - start)
            HTTP_REQUEST_DURATION_SECONDS.labels(request.method, _route_path(request)).observe(elapsed)
        response.headers["X-Correlation-Id"] = cid
        HTTP_REQUESTS_TOTAL.labels(request.method, _route_path(request), str(response.status_code)).inc()
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Token-bucket limit on inbound provider webhooks, per driver and client address."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith(WEBHOOK_PREFIX):
            return await call_next(request)

        limiter: RedisRateLimiter | None = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            return await call_next(request)

        settings = request.app.state.settings
        driver = request.url.path.rstrip("/").rsplit("/", 1)[-1]
        if not request.app.state.registry.is_configured(driver):
            driver = UNKNOWN_DRIVER
        client = request.client.host if request.client else "unknown"
        key = f"webhook:{driver}:{client}"

        try:
            res = limiter.consume(key, settings.rate_limit_webhook_per_min)
            if not res.allowed:
                headers = {
                    "X-RateLimit-Limit": str(res.limit),
                    "X-RateLimit-Remaining": str(res.remaining),
                    "Retry-After": str(res.retry_after_seconds),
                }
                return Response(
                    content=json.dumps(
                        {"title": "Too Many Requests", "status": 429, "detail": "rate limit exceeded"}
                    ),
                    status_code=429,
                    media_type="application/json",
                    headers=headers,
                )
        except Exception:
            log.exception("rate limit failure; allowing request")
        return await call_next(request)
