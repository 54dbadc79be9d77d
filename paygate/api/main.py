from __future__ import annotations

import requests
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paygate.api.middlewares import CorrelationIdMiddleware, RateLimitMiddleware
from paygate.api.routers import gateways, health, metrics, payments, webhooks
from paygate.application.errors import PaymentError
from paygate.application.ports.manual_ledger import ManualPaymentLedger
from paygate.application.webhooks import WebhookDispatcher
from paygate.infrastructure.gateway.factory import build_registry
from paygate.infrastructure.ledger.memory import InMemoryManualPaymentLedger
from paygate.infrastructure.redis.client import init_redis
from paygate.infrastructure.redis.rate_limit import RedisRateLimiter
from paygate.shared.config import PaymentConfig, Settings, load_payment_config, load_settings
from paygate.shared.logging import configure_logging, get_logger
from paygate.shared.problem import problem

log = get_logger(__name__)


def _build_ledger(settings: Settings) -> ManualPaymentLedger:
    if not settings.database_url:
        log.warning("DATABASE_URL not set; manual payments are kept in memory")
        return InMemoryManualPaymentLedger()
    from paygate.infrastructure.db.session import init_db
    from paygate.infrastructure.ledger.sql import SqlManualPaymentLedger

    return SqlManualPaymentLedger(init_db(settings))


def create_app(
    settings: Settings | None = None,
    payment_config: PaymentConfig | None = None,
    ledger: ManualPaymentLedger | None = None,
    http: requests.Session | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    payment_config = payment_config or load_payment_config()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url=None,
    )

    registry = build_registry(payment_config, ledger or _build_ledger(settings), http)
    redis = init_redis(settings)

    app.state.settings = settings
    app.state.registry = registry
    app.state.dispatcher = WebhookDispatcher(registry)
    app.state.rate_limiter = RedisRateLimiter(redis) if redis is not None else None

    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    cors_origins = settings.cors_origins
    if not cors_origins and settings.app_env == "local":
        cors_origins = ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PaymentError)
    async def _payment_error(request: Request, exc: PaymentError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error("payment error", extra=exc.log_context())
        else:
            log.info("payment request rejected", extra=exc.log_context())
        body = problem(exc.status_code, exc.title, exc.message, request.url.path).to_dict()
        return JSONResponse(status_code=exc.status_code, content=body)

    app.include_router(webhooks.router)
    app.include_router(gateways.router)
    app.include_router(payments.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    log.info(
        "startup complete",
        extra={"gateways": registry.configured_names(), "default_gateway": registry.default_driver},
    )
    return app


app = create_app()
