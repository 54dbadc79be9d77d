from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from paygate.application.errors import CapabilityNotSupported, PaymentNotFound
from paygate.application.payments import (
    cancel_payment,
    charge,
    confirm_manual_payment,
    create_intent,
    get_gateway,
    get_payment,
    list_gateways,
    refund_payment,
)
from paygate.application.ports.capabilities import Refund
from paygate.application.ports.payment_gateway import Capability
from paygate.application.registry import GatewayRegistry
from paygate.infrastructure.gateway.factory import build_registry
from paygate.shared.config import PaymentConfig


@pytest.fixture
def registry(make_config) -> GatewayRegistry:
    config = PaymentConfig(
        default_driver="bank_transfer",
        currency="EUR",
        gateways={
            "bank_transfer": make_config("bank_transfer"),
            "cash_on_delivery": make_config("cash_on_delivery", currency="GBP", fee="100"),
        },
    )
    return build_registry(config)


class TestGatewayQueries:
    def test_list_gateways(self, registry: GatewayRegistry) -> None:
        gateways = list_gateways(registry)
        assert [g.name for g in gateways] == ["bank_transfer", "cash_on_delivery"]
        cod = gateways[1].model_dump()
        assert cod["max_amount"] == 50000

    def test_get_unknown_gateway(self, registry: GatewayRegistry) -> None:
        with pytest.raises(HTTPException) as exc_info:
            get_gateway(registry, "stripe")
        assert exc_info.value.status_code == 404


class TestPaymentOperations:
    def test_intent_defaults_to_gateway_currency(self, registry: GatewayRegistry) -> None:
        dto = create_intent(registry, "cash_on_delivery", 1000, None)
        assert dto.currency == "GBP"
        assert dto.amount == 1100
        assert dto.amount_decimal == "11.00"

    def test_charge_then_confirm(self, registry: GatewayRegistry) -> None:
        pending = charge(registry, "bank_transfer", 4200, "EUR", "")
        assert pending.status == "pending"

        confirmed = confirm_manual_payment(
            registry, "bank_transfer", pending.transaction_id, 4200, pending.metadata["reference"]
        )
        assert confirmed.status == "succeeded"
        assert get_payment(registry, "bank_transfer", pending.transaction_id).status == "succeeded"

    def test_get_missing_payment(self, registry: GatewayRegistry) -> None:
        with pytest.raises(PaymentNotFound):
            get_payment(registry, "bank_transfer", "bt_txn_missing")

    def test_cancel(self, registry: GatewayRegistry) -> None:
        pending = charge(registry, "bank_transfer", 4200, None, "")
        assert cancel_payment(registry, "bank_transfer", pending.transaction_id).canceled is True
        assert cancel_payment(registry, "bank_transfer", pending.transaction_id).canceled is False

    def test_refund_requires_capability(self, registry: GatewayRegistry) -> None:
        with pytest.raises(CapabilityNotSupported) as exc_info:
            refund_payment(registry, "bank_transfer", "bt_txn_1")
        assert exc_info.value.status_code == 400


class TestRefundDispatch:
    def _registry(self, make_config, gateway: MagicMock) -> GatewayRegistry:
        config = PaymentConfig(default_driver="stripe", currency="EUR", gateways={"stripe": make_config("stripe")})
        return GatewayRegistry(config, {"stripe": lambda cfg: gateway})

    def test_full_and_partial(self, make_config) -> None:
        gateway = MagicMock()
        gateway.supports.side_effect = lambda cap: cap is Capability.REFUNDS
        refund = Refund(id="re_1", transaction_id="pi_1", status="succeeded", amount=500, currency="EUR", driver="stripe")
        gateway.refund.return_value = refund
        gateway.partial_refund.return_value = refund
        registry = self._registry(make_config, gateway)

        assert refund_payment(registry, "stripe", "pi_1").id == "re_1"
        gateway.refund.assert_called_once_with("pi_1", reason=None)

        refund_payment(registry, "stripe", "pi_1", amount=500, reason="duplicate")
        gateway.partial_refund.assert_called_once_with("pi_1", 500, reason="duplicate")

    def test_confirm_requires_manual_capability(self, make_config) -> None:
        gateway = MagicMock()
        gateway.supports.return_value = False
        with pytest.raises(CapabilityNotSupported):
            confirm_manual_payment(self._registry(make_config, gateway), "stripe", "pi_1", 100)
