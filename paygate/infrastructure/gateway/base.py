from __future__ import annotations

import contextlib
from collections.abc import Iterator
from typing import Any, ClassVar

from paygate.application.errors import (
    CapabilityNotSupported,
    ConfigurationError,
    GatewayUnavailable,
    InvalidAmount,
    UnsupportedCurrency,
)
from paygate.application.ports.payment_gateway import Capability
from paygate.shared.config import GatewayConfig
from paygate.shared.correlation import set_driver
from paygate.shared.logging import get_logger
from paygate.shared.metrics import GATEWAY_OPERATIONS_TOTAL

log = get_logger(__name__)


class AbstractGateway:
    """Shared plumbing for every driver.

    Subclasses declare their driver type, the options they cannot work
    without, the currencies they accept and the capabilities they implement.
    Amounts are always integers in minor currency units.
    """

    driver_type: ClassVar[str] = ""
    default_display_name: ClassVar[str] = ""
    required_options: ClassVar[tuple[str, ...]] = ()
    currencies: ClassVar[tuple[str, ...]] = ()
    native_capabilities: ClassVar[frozenset[Capability]] = frozenset()

    def __init__(self, config: GatewayConfig) -> None:
        for key in self.required_options:
            if not config.get(key):
                raise ConfigurationError.missing_option(config.name, key)
        self.config = config
        self.name = config.name

    @property
    def display_name(self) -> str:
        return self.config.get("display_name", self.default_display_name)

    @property
    def currency(self) -> str:
        return self.config.currency

    def is_available(self) -> bool:
        return all(self.config.get(key) for key in self.required_options)

    def supported_currencies(self) -> list[str]:
        return list(self.currencies)

    def supports_currency(self, currency: str) -> bool:
        return currency.upper() in self.supported_currencies()

    def capabilities(self) -> frozenset[Capability]:
        disabled = {c for c in Capability if c.value in self.config.disabled_capabilities}
        return self.native_capabilities - disabled

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities()

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "driver": self.driver_type,
            "display_name": self.display_name,
            "available": self.is_available(),
            "currencies": self.supported_currencies(),
            "capabilities": sorted(c.value for c in self.capabilities()),
        }

    def _guard(self, amount: Any, currency: str) -> str:
        """Validate a charge request before anything leaves the process."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount, driver=self.name)
        code = currency.upper()
        if not self.supports_currency(code):
            raise UnsupportedCurrency(code, self.name)
        if not self.is_available():
            raise GatewayUnavailable(self.name)
        return code

    def _require(self, capability: Capability) -> None:
        if not self.supports(capability):
            raise CapabilityNotSupported(self.name, capability.value)

    def _log(self, level: int, msg: str, **context: Any) -> None:
        log.log(level, f"[{self.name}] {msg}", extra={"gateway": self.name, **context})

    @contextlib.contextmanager
    def _operation(self, operation: str) -> Iterator[None]:
        set_driver(self.name)
        try:
            yield
        except Exception:
            GATEWAY_OPERATIONS_TOTAL.labels(self.name, operation, "error").inc()
            raise
        GATEWAY_OPERATIONS_TOTAL.labels(self.name, operation, "ok").inc()
