from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from paygate.application.errors import ConfigurationError

KNOWN_DRIVERS = ("stripe", "paypal", "crypto", "bank_transfer", "cash_on_delivery")

# env prefix of the default entry of each driver type; other entries use their upper-cased name
ENV_PREFIXES = {
    "stripe": "STRIPE",
    "paypal": "PAYPAL",
    "crypto": "CRYPTO",
    "bank_transfer": "BANK",
    "cash_on_delivery": "COD",
}


def _getenv(name: str, default: str | None = None) -> str:
    val = os.getenv(name)
    if val is None:
        if default is None:
            raise RuntimeError(f"Missing env var: {name}")
        return default
    return val


def _split(raw: str) -> list[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass(frozen=True)
class Settings:
    app_env: str
    app_name: str
    http_host: str
    http_port: int
    log_level: str

    database_url: str
    redis_url: str

    jwt_secret: str
    jwt_issuer: str

    rate_limit_webhook_per_min: int

    cors_origins: list[str]


def load_settings() -> Settings:
    return Settings(
        app_env=_getenv("APP_ENV", "local"),
        app_name=_getenv("APP_NAME", "paygate"),
        http_host=_getenv("HTTP_HOST", "0.0.0.0"),
        http_port=int(_getenv("HTTP_PORT", "8000")),
        log_level=_getenv("LOG_LEVEL", "INFO"),
        database_url=_getenv("DATABASE_URL", ""),
        redis_url=_getenv("REDIS_URL", ""),
        jwt_secret=_getenv("JWT_SECRET", "change-me"),
        jwt_issuer=_getenv("JWT_ISSUER", "local-auth"),
        rate_limit_webhook_per_min=int(_getenv("RATE_LIMIT_WEBHOOK_PER_MIN", "600")),
        cors_origins=_split(_getenv("CORS_ORIGINS", "")),
    )


@dataclass(frozen=True)
class GatewayConfig:
    """Credentials and options of one named gateway entry.

    ``driver`` selects the implementation, so two entries (``stripe_eu``,
    ``stripe_us``) may share a driver type with different credentials.
    """

    name: str
    driver: str
    currency: str
    options: Mapping[str, Any] = field(default_factory=dict)
    disabled_capabilities: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", self.currency.upper())
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))
        object.__setattr__(
            self, "disabled_capabilities", frozenset(c.lower() for c in self.disabled_capabilities)
        )

    def get(self, key: str, default: Any = None) -> Any:
        val = self.options.get(key)
        if val is None or val == "":
            return default
        return val


@dataclass(frozen=True)
class PaymentConfig:
    default_driver: str
    currency: str
    gateways: Mapping[str, GatewayConfig]

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", self.currency.upper())
        object.__setattr__(self, "gateways", MappingProxyType(dict(self.gateways)))


def _driver_options(driver: str, prefix: str) -> dict[str, Any]:
    if driver == "stripe":
        return {
            "key": _getenv(f"{prefix}_KEY", ""),
            "secret": _getenv(f"{prefix}_SECRET", ""),
            "webhook_secret": _getenv(f"{prefix}_WEBHOOK_SECRET", ""),
            "webhook_tolerance": int(_getenv(f"{prefix}_WEBHOOK_TOLERANCE", "300")),
            "api_version": _getenv(f"{prefix}_API_VERSION", "2024-06-20"),
            "return_url": _getenv(f"{prefix}_RETURN_URL", ""),
        }
    if driver == "paypal":
        return {
            "client_id": _getenv(f"{prefix}_CLIENT_ID", ""),
            "client_secret": _getenv(f"{prefix}_CLIENT_SECRET", ""),
            "mode": _getenv(f"{prefix}_MODE", "sandbox"),
            "webhook_id": _getenv(f"{prefix}_WEBHOOK_ID", ""),
            "return_url": _getenv(f"{prefix}_RETURN_URL", ""),
            "cancel_url": _getenv(f"{prefix}_CANCEL_URL", ""),
        }
    if driver == "crypto":
        return {
            "provider": _getenv(f"{prefix}_PROVIDER", "coinbase"),
            "api_key": _getenv(f"{prefix}_API_KEY", ""),
            "api_secret": _getenv(f"{prefix}_API_SECRET", ""),
            "webhook_secret": _getenv(f"{prefix}_WEBHOOK_SECRET", ""),
            "api_url": _getenv(f"{prefix}_API_URL", ""),
            "supported_currencies": _split(_getenv(f"{prefix}_CURRENCIES", "BTC,ETH,USDT,USDC")),
        }
    if driver == "bank_transfer":
        return {
            "account_name": _getenv(f"{prefix}_ACCOUNT_NAME", ""),
            "account_number": _getenv(f"{prefix}_ACCOUNT_NUMBER", ""),
            "bank_name": _getenv(f"{prefix}_NAME", ""),
            "swift_code": _getenv(f"{prefix}_SWIFT_CODE", ""),
            "iban": _getenv(f"{prefix}_IBAN", ""),
            "instructions": _getenv(f"{prefix}_INSTRUCTIONS", ""),
            "expiry_days": int(_getenv(f"{prefix}_EXPIRY_DAYS", "7")),
        }
    # cash_on_delivery
    return {
        "enabled": _getenv(f"{prefix}_ENABLED", "true").lower() == "true",
        "enabled_countries": [c.upper() for c in _split(_getenv(f"{prefix}_COUNTRIES", ""))],
        "max_amount": int(_getenv(f"{prefix}_MAX_AMOUNT", "50000")),
        "fee": _getenv(f"{prefix}_FEE", "0"),
        "fee_type": _getenv(f"{prefix}_FEE_TYPE", "fixed"),
    }


def _gateway_config(name: str, currency: str) -> GatewayConfig:
    prefix = name.upper()
    driver = _getenv(f"{prefix}_DRIVER", name).strip().lower()
    if driver not in KNOWN_DRIVERS:
        raise ConfigurationError(
            f"Payment gateway '{name}' has unknown driver type '{driver}'; set {prefix}_DRIVER to one of: "
            f"{', '.join(KNOWN_DRIVERS)}.",
            driver=name,
            context={"option": "driver"},
        )
    env_prefix = ENV_PREFIXES[driver] if name == driver else prefix
    return GatewayConfig(
        name=name,
        driver=driver,
        currency=_getenv(f"{prefix}_CURRENCY", currency),
        options=_driver_options(driver, env_prefix),
        disabled_capabilities=frozenset(_split(_getenv(f"{prefix}_DISABLED_CAPABILITIES", ""))),
    )


def load_payment_config() -> PaymentConfig:
    currency = _getenv("PAYMENT_CURRENCY", "EUR")
    enabled = _split(_getenv("PAYMENT_DRIVERS", ",".join(KNOWN_DRIVERS)))
    gateways = {name: _gateway_config(name, currency) for name in enabled}

    return PaymentConfig(
        default_driver=_getenv("PAYMENT_DRIVER", enabled[0] if enabled else "stripe"),
        currency=currency,
        gateways=gateways,
    )
