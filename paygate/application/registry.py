from __future__ import annotations

import threading
from typing import Any, Callable, Mapping, Optional

from paygate.application.errors import ConfigurationError
from paygate.application.ports.payment_gateway import PaymentGateway
from paygate.shared.config import GatewayConfig, PaymentConfig
from paygate.shared.logging import get_logger

log = get_logger(__name__)

GatewayFactory = Callable[[GatewayConfig], PaymentGateway]


class GatewayRegistry:
    """Named payment gateways, built on first use and cached for the registry's lifetime.

    One registry is created by the composition root and passed to whoever
    needs it; there is no process-wide instance.
    """

    def __init__(self, config: PaymentConfig, factories: Mapping[str, GatewayFactory]) -> None:
        self._config = config
        self._factories: dict[str, GatewayFactory] = dict(factories)
        self._instances: dict[str, PaymentGateway] = {}
        self._lock = threading.Lock()

    @property
    def default_driver(self) -> str:
        return self._config.default_driver

    @property
    def currency(self) -> str:
        return self._config.currency

    def configured_names(self) -> list[str]:
        return list(self._config.gateways)

    def is_configured(self, name: str) -> bool:
        return name in self._config.gateways

    def extend(self, driver_type: str, factory: GatewayFactory) -> None:
        """Register (or replace) the factory for a driver type."""
        with self._lock:
            self._factories[driver_type] = factory
        log.info("gateway driver registered", extra={"driver_type": driver_type})

    def driver(self, name: Optional[str] = None) -> PaymentGateway:
        name = name or self._config.default_driver
        gateway = self._instances.get(name)
        if gateway is not None:
            return gateway
        with self._lock:
            gateway = self._instances.get(name)
            if gateway is None:
                gateway = self._build(name)
                self._instances[name] = gateway
        return gateway

    def _build(self, name: str) -> PaymentGateway:
        cfg = self._config.gateways.get(name)
        if cfg is None:
            raise ConfigurationError.unknown_driver(name)
        factory = self._factories.get(cfg.driver)
        if factory is None:
            raise ConfigurationError(
                f"Unsupported payment driver type '{cfg.driver}' for gateway '{name}'.",
                driver=name,
                context={"driver_type": cfg.driver},
            )
        gateway = factory(cfg)
        log.info("gateway constructed", extra={"gateway": name, "driver_type": cfg.driver})
        return gateway

    def has_driver(self, name: str) -> bool:
        try:
            return self.driver(name).is_available()
        except ConfigurationError:
            return False

    def available_drivers(self) -> list[dict[str, Any]]:
        drivers: list[dict[str, Any]] = []
        for name in self._config.gateways:
            try:
                gateway = self.driver(name)
            except ConfigurationError as exc:
                log.warning("gateway skipped", extra={"gateway": name, "error": exc.message})
                continue
            if gateway.is_available():
                drivers.append(
                    {
                        "name": name,
                        "display_name": gateway.display_name,
                        "currencies": gateway.supported_currencies(),
                    }
                )
        return drivers
