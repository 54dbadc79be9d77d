from __future__ import annotations

import requests

from paygate.application.ports.manual_ledger import ManualPaymentLedger
from paygate.application.registry import GatewayFactory, GatewayRegistry
from paygate.infrastructure.gateway.bank_transfer import BankTransferGateway
from paygate.infrastructure.gateway.cash_on_delivery import CashOnDeliveryGateway
from paygate.infrastructure.gateway.crypto_gateway import CryptoGateway
from paygate.infrastructure.gateway.paypal_gateway import PayPalGateway
from paygate.infrastructure.gateway.stripe_gateway import StripeGateway
from paygate.infrastructure.ledger.memory import InMemoryManualPaymentLedger
from paygate.shared.config import PaymentConfig
from paygate.shared.logging import get_logger

log = get_logger(__name__)


def default_factories(
    ledger: ManualPaymentLedger, http: requests.Session | None = None
) -> dict[str, GatewayFactory]:
    """Factories for the built-in drivers, keyed by driver type."""
    return {
        "stripe": StripeGateway,
        "paypal": lambda cfg: PayPalGateway(cfg, http=http),
        "crypto": lambda cfg: CryptoGateway(cfg, http=http),
        "bank_transfer": lambda cfg: BankTransferGateway(cfg, ledger=ledger),
        "cash_on_delivery": lambda cfg: CashOnDeliveryGateway(cfg, ledger=ledger),
    }


def build_registry(
    config: PaymentConfig,
    ledger: ManualPaymentLedger | None = None,
    http: requests.Session | None = None,
) -> GatewayRegistry:
    if ledger is None:
        log.info("no manual payment ledger supplied, using in-memory ledger")
        ledger = InMemoryManualPaymentLedger()
    return GatewayRegistry(config, default_factories(ledger, http))
