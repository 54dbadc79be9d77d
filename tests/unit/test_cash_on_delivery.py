from __future__ import annotations

import pytest

from paygate.application.errors import GatewayUnavailable, InvalidAmount
from paygate.application.ports.payment_gateway import PaymentStatus
from paygate.infrastructure.gateway.cash_on_delivery import CashOnDeliveryGateway


class TestCashOnDeliveryFees:
    def test_fixed_fee_is_added(self, make_config, ledger) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery", fee="250"), ledger=ledger)
        result = gateway.charge(1000, "EUR", "")

        assert result.transaction_id.startswith("cod_txn_")
        assert result.status is PaymentStatus.PENDING
        assert result.amount == 1250
        assert result.metadata["order_amount"] == 1000
        assert result.metadata["cod_fee"] == 250

    def test_charge_with_null_metadata(self, make_config, ledger) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery"), ledger=ledger)
        result = gateway.charge(1000, "EUR", "", options={"metadata": None})
        assert result.status is PaymentStatus.PENDING
        assert result.metadata["order_amount"] == 1000

    @pytest.mark.parametrize("order,expected", [(1000, 25), (1010, 25), (1030, 26)])
    def test_percentage_fee_rounds_half_up(self, make_config, order: int, expected: int) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery", fee="2.5", fee_type="percentage"))
        assert gateway.fee(order) == expected

    def test_no_fee_by_default(self, make_config) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery"))
        assert gateway.fee(5000) == 0


class TestCashOnDeliveryLimits:
    def test_amount_above_limit(self, make_config, ledger) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery", max_amount=20000), ledger=ledger)
        with pytest.raises(InvalidAmount, match="limited to 20000"):
            gateway.create_payment_intent(20001, "EUR")
        assert gateway.is_available_for_amount(20000) is True

    def test_zero_amount(self, make_config) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery"))
        with pytest.raises(InvalidAmount):
            gateway.charge(0, "EUR", "")

    def test_country_restriction(self, make_config) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery", enabled_countries=["DE", "AT"]))
        intent = gateway.create_payment_intent(1000, "EUR", metadata={"country": "de"})
        assert intent.status is PaymentStatus.PENDING
        with pytest.raises(GatewayUnavailable, match="FR"):
            gateway.charge(1000, "EUR", "", options={"country": "fr"})

    def test_all_countries_when_unrestricted(self, make_config) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery"))
        assert gateway.is_available_for_country("BR") is True

    @pytest.mark.parametrize("enabled", [False, "false"])
    def test_disabled(self, make_config, enabled) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery", enabled=enabled))
        assert gateway.is_available() is False
        with pytest.raises(GatewayUnavailable):
            gateway.create_payment_intent(1000, "EUR")


class TestCashOnDeliveryCollection:
    def test_intent_and_delivery(self, make_config, ledger) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery", fee="300"), ledger=ledger)
        intent = gateway.create_payment_intent(1000, "EUR")

        assert intent.id.startswith("cod_")
        assert intent.amount == 1300
        assert intent.metadata["instructions"] == "Payment will be collected upon delivery."

        collected = gateway.confirm_delivery(intent.id, 1300)
        assert collected.status is PaymentStatus.SUCCEEDED
        assert collected.amount == 1300

    def test_describe_exposes_limits(self, make_config) -> None:
        gateway = CashOnDeliveryGateway(make_config("cash_on_delivery", enabled_countries=["DE"]))
        info = gateway.describe()
        assert info["max_amount"] == 50000
        assert info["enabled_countries"] == ["DE"]
