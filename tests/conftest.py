"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
from typing import Any, Callable

import pytest

from paygate.infrastructure.ledger.memory import InMemoryManualPaymentLedger
from paygate.shared.config import GatewayConfig, Settings


@pytest.fixture(autouse=True)
def _env_local() -> None:
    os.environ.setdefault("APP_ENV", "local")
    os.environ.setdefault("JWT_SECRET", "paygate-test-secret-0123456789abcdef")
    os.environ.setdefault("JWT_ISSUER", "test-issuer")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        app_name="paygate-test",
        http_host="0.0.0.0",
        http_port=8000,
        log_level="INFO",
        database_url="",
        redis_url="",
        jwt_secret="paygate-test-secret-0123456789abcdef",
        jwt_issuer="local-auth",
        rate_limit_webhook_per_min=600,
        cors_origins=[],
    )


@pytest.fixture
def make_config() -> Callable[..., GatewayConfig]:
    def _make(
        name: str,
        driver: str | None = None,
        currency: str = "EUR",
        disabled: tuple[str, ...] = (),
        **options: Any,
    ) -> GatewayConfig:
        return GatewayConfig(
            name=name,
            driver=driver or name,
            currency=currency,
            options=options,
            disabled_capabilities=frozenset(disabled),
        )

    return _make


@pytest.fixture
def ledger() -> InMemoryManualPaymentLedger:
    return InMemoryManualPaymentLedger()
