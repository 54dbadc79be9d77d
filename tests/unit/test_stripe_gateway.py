from __future__ import annotations

import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
import stripe

from paygate.application.errors import (
    CapabilityNotSupported,
    ConfigurationError,
    InvalidAmount,
    ProviderError,
    UnsupportedCurrency,
)
from paygate.application.ports.payment_gateway import Capability, Customer, PaymentStatus, WebhookRequest
from paygate.infrastructure.gateway.stripe_gateway import StripeGateway

WEBHOOK_SECRET = "whsec_test"


def _signed(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> dict[str, str]:
    ts = timestamp if timestamp is not None else int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return {"Stripe-Signature": f"t={ts},v1={sig}"}


def _sdk(resource: type, values: dict) -> stripe.StripeObject:
    return resource.construct_from(values, "sk_test_123")


@pytest.fixture
def gateway(make_config) -> StripeGateway:
    return StripeGateway(make_config("stripe", secret="sk_test_123", webhook_secret=WEBHOOK_SECRET))


class TestStripeConfiguration:
    def test_secret_required(self, make_config) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            StripeGateway(make_config("stripe"))
        assert exc_info.value.context == {"option": "secret"}

    def test_capabilities(self, gateway: StripeGateway) -> None:
        assert gateway.capabilities() == frozenset(
            {Capability.CUSTOMERS, Capability.SUBSCRIPTIONS, Capability.REFUNDS, Capability.WEBHOOKS}
        )
        assert "JPY" in gateway.supported_currencies()

    def test_disabled_capability(self, make_config) -> None:
        gateway = StripeGateway(make_config("stripe", secret="sk", disabled=("refunds",)))
        assert gateway.supports(Capability.REFUNDS) is False
        with pytest.raises(CapabilityNotSupported):
            gateway.refund("pi_1")


class TestStripePaymentIntent:
    def test_create_intent(self, gateway: StripeGateway) -> None:
        with patch.object(stripe.PaymentIntent, "create") as create:
            create.return_value = _sdk(
                stripe.PaymentIntent, {"id": "pi_1", "client_secret": "pi_1_secret", "status": "requires_payment_method"}
            )
            intent = gateway.create_payment_intent(1050, "eur", customer=Customer(id="cus_1"), metadata={"o": "1"})

        assert intent.id == "pi_1"
        assert intent.client_secret == "pi_1_secret"
        assert intent.status is PaymentStatus.PENDING
        assert intent.currency == "EUR"
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 1050
        assert kwargs["currency"] == "eur"
        assert kwargs["customer"] == "cus_1"
        assert kwargs["api_key"] == "sk_test_123"
        assert kwargs["stripe_version"] == "2024-06-20"

    @pytest.mark.parametrize("amount", [0, -1, 12.5])
    def test_invalid_amount_makes_no_call(self, gateway: StripeGateway, amount) -> None:
        with patch.object(stripe.PaymentIntent, "create") as create:
            with pytest.raises(InvalidAmount):
                gateway.create_payment_intent(amount, "EUR")
        create.assert_not_called()

    def test_unsupported_currency_makes_no_call(self, gateway: StripeGateway) -> None:
        with patch.object(stripe.PaymentIntent, "create") as create:
            with pytest.raises(UnsupportedCurrency):
                gateway.charge(1000, "BRL", "pm_card_visa")
        create.assert_not_called()

    def test_provider_failure_is_wrapped(self, gateway: StripeGateway) -> None:
        with patch.object(stripe.PaymentIntent, "create", side_effect=stripe.APIConnectionError("network down")):
            with pytest.raises(ProviderError, match="network down") as exc_info:
                gateway.create_payment_intent(1000, "EUR")
        assert isinstance(exc_info.value.__cause__, stripe.APIConnectionError)


class TestStripeCharge:
    def test_charge_succeeded(self, gateway: StripeGateway) -> None:
        intent = _sdk(
            stripe.PaymentIntent,
            {
                "id": "pi_2",
                "status": "succeeded",
                "amount": 1050,
                "currency": "eur",
                "payment_method": "pm_1",
                "latest_charge": {"id": "ch_1", "receipt_url": "https://pay.stripe.com/receipts/1"},
                "metadata": {"order": "7"},
            },
        )
        with patch.object(stripe.PaymentIntent, "create", return_value=intent) as create:
            result = gateway.charge(1050, "EUR", "pm_1", options={"return_url": "https://shop/return"})

        assert result.status is PaymentStatus.SUCCEEDED
        assert result.transaction_id == "pi_2"
        assert result.receipt_url == "https://pay.stripe.com/receipts/1"
        assert result.metadata == {"order": "7"}
        assert type(result.raw["latest_charge"]) is dict
        kwargs = create.call_args.kwargs
        assert kwargs["confirm"] is True
        assert kwargs["return_url"] == "https://shop/return"

    def test_requires_action_is_pending(self, gateway: StripeGateway) -> None:
        intent = _sdk(stripe.PaymentIntent, {"id": "pi_3", "status": "requires_action", "amount": 500})
        with patch.object(stripe.PaymentIntent, "create", return_value=intent):
            result = gateway.charge(500, "EUR", "pm_3ds")
        assert result.status is PaymentStatus.PENDING

    def test_card_declined_is_a_failed_result(self, gateway: StripeGateway) -> None:
        declined = stripe.CardError(
            "Your card was declined.",
            None,
            "card_declined",
            json_body={"error": {"payment_intent": {"id": "pi_declined"}}},
        )
        with patch.object(stripe.PaymentIntent, "create", side_effect=declined):
            result = gateway.charge(1000, "EUR", "pm_card_chargeDeclined")

        assert result.status is PaymentStatus.FAILED
        assert result.transaction_id == "pi_declined"
        assert result.failure_code == "card_declined"
        assert result.failure_message == "Your card was declined."


class TestStripeLookup:
    def test_get_payment_missing(self, gateway: StripeGateway) -> None:
        with patch.object(
            stripe.PaymentIntent, "retrieve", side_effect=stripe.InvalidRequestError("No such payment_intent", "id")
        ):
            assert gateway.get_payment("pi_missing") is None

    def test_get_payment_unknown_status_maps_to_failed(self, gateway: StripeGateway) -> None:
        intent = _sdk(stripe.PaymentIntent, {"id": "pi_4", "status": "weird"})
        with patch.object(stripe.PaymentIntent, "retrieve", return_value=intent):
            result = gateway.get_payment("pi_4")
        assert result is not None
        assert result.status is PaymentStatus.FAILED

    def test_cancel(self, gateway: StripeGateway) -> None:
        with patch.object(stripe.PaymentIntent, "cancel") as cancel:
            assert gateway.cancel("pi_5") is True
        assert cancel.call_args.args == ("pi_5",)

    def test_cancel_failure_returns_false(self, gateway: StripeGateway) -> None:
        with patch.object(
            stripe.PaymentIntent, "cancel", side_effect=stripe.InvalidRequestError("already succeeded", None)
        ):
            assert gateway.cancel("pi_6") is False


class TestStripeRefunds:
    def test_full_refund(self, gateway: StripeGateway) -> None:
        refund = _sdk(
            stripe.Refund, {"id": "re_1", "status": "succeeded", "amount": 1050, "currency": "eur", "created": 1700000000}
        )
        with patch.object(stripe.Refund, "create", return_value=refund) as create:
            result = gateway.refund("pi_1")

        assert result.id == "re_1"
        assert result.transaction_id == "pi_1"
        assert result.currency == "EUR"
        assert result.is_successful
        assert "amount" not in create.call_args.kwargs
        assert create.call_args.kwargs["reason"] == "requested_by_customer"

    def test_partial_refund(self, gateway: StripeGateway) -> None:
        refund = _sdk(stripe.Refund, {"id": "re_2", "status": "pending", "amount": 300, "currency": "eur"})
        with patch.object(stripe.Refund, "create", return_value=refund) as create:
            result = gateway.partial_refund("pi_1", 300, reason="duplicate")
        assert result.amount == 300
        assert create.call_args.kwargs["amount"] == 300
        assert create.call_args.kwargs["reason"] == "duplicate"

    def test_partial_refund_invalid_amount(self, gateway: StripeGateway) -> None:
        with patch.object(stripe.Refund, "create") as create:
            with pytest.raises(InvalidAmount):
                gateway.partial_refund("pi_1", 0)
        create.assert_not_called()


class TestStripeCustomers:
    def test_create_customer(self, gateway: StripeGateway) -> None:
        with patch.object(
            stripe.Customer,
            "create",
            return_value=_sdk(
                stripe.Customer, {"id": "cus_1", "email": "a@b.c", "name": "Ann", "invoice_settings": {}}
            ),
        ):
            customer = gateway.create_customer("a@b.c", name="Ann")
        assert customer.id == "cus_1"
        assert customer.email == "a@b.c"

    def test_deleted_customer_is_none(self, gateway: StripeGateway) -> None:
        deleted = _sdk(stripe.Customer, {"id": "cus_1", "deleted": True})
        with patch.object(stripe.Customer, "retrieve", return_value=deleted):
            assert gateway.get_customer("cus_1") is None


class TestStripeSubscriptions:
    def test_get_subscription_reads_price_from_items(self, gateway: StripeGateway) -> None:
        sub = _sdk(
            stripe.Subscription,
            {
                "id": "sub_1",
                "object": "subscription",
                "customer": "cus_1",
                "status": "trialing",
                "current_period_end": 1700000000,
                "items": {
                    "object": "list",
                    "data": [
                        {
                            "id": "si_1",
                            "object": "subscription_item",
                            "price": {
                                "id": "price_1",
                                "object": "price",
                                "unit_amount": 900,
                                "currency": "eur",
                                "recurring": {"interval": "year"},
                            },
                        }
                    ],
                },
            },
        )
        with patch.object(stripe.Subscription, "retrieve", return_value=sub):
            result = gateway.get_subscription("sub_1")

        assert result is not None
        assert result.plan_id == "price_1"
        assert result.amount == 900
        assert result.interval == "year"
        assert result.status.is_active
        assert result.current_period_end is not None

    def test_get_plan_with_unexpanded_product(self, gateway: StripeGateway) -> None:
        price = _sdk(
            stripe.Price,
            {"id": "price_2", "product": "prod_1", "unit_amount": 500, "currency": "usd", "recurring": {"interval": "month"}},
        )
        with patch.object(stripe.Price, "retrieve", return_value=price):
            plan = gateway.get_plan("price_2")

        assert plan is not None
        assert plan.product_id == "prod_1"
        assert plan.currency == "USD"
        assert plan.interval_count == 1


class TestStripeMinorUnits:
    def test_huf_is_two_decimal(self, gateway: StripeGateway) -> None:
        intent = _sdk(stripe.PaymentIntent, {"id": "pi_h", "status": "succeeded", "amount": 150000, "currency": "huf"})
        with patch.object(stripe.PaymentIntent, "create", return_value=intent):
            result = gateway.charge(150000, "HUF", "pm_1")
        assert str(result.amount_decimal) == "1500.00"


class TestStripeWebhooks:
    def _event(self, event_type: str, obj: dict) -> str:
        return json.dumps({"id": "evt_1", "type": event_type, "created": 1700000000, "data": {"object": obj}})

    def test_valid_signature(self, gateway: StripeGateway) -> None:
        payload = self._event("payment_intent.succeeded", {"id": "pi_1"})
        assert gateway.verify_webhook_signature(WebhookRequest(_signed(payload), payload.encode())) is True

    def test_wrong_secret(self, gateway: StripeGateway) -> None:
        payload = self._event("payment_intent.succeeded", {"id": "pi_1"})
        request = WebhookRequest(_signed(payload, secret="whsec_other"), payload.encode())
        assert gateway.verify_webhook_signature(request) is False

    def test_stale_timestamp(self, gateway: StripeGateway) -> None:
        payload = self._event("payment_intent.succeeded", {"id": "pi_1"})
        request = WebhookRequest(_signed(payload, timestamp=int(time.time()) - 3600), payload.encode())
        assert gateway.verify_webhook_signature(request) is False

    def test_missing_header(self, gateway: StripeGateway) -> None:
        assert gateway.verify_webhook_signature(WebhookRequest({}, b"{}")) is False

    def test_refund_event(self, gateway: StripeGateway) -> None:
        payload = self._event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_9"})
        parsed = gateway.parse_webhook(WebhookRequest({}, payload.encode()))

        assert parsed.id == "evt_1"
        assert parsed.created_at is not None
        assert gateway.handle_webhook(parsed) == {
            "handled": True,
            "type": "charge.refunded",
            "transaction_id": "pi_9",
            "status": "refunded",
        }

    def test_unmapped_event(self, gateway: StripeGateway) -> None:
        payload = self._event("customer.created", {"id": "cus_1"})
        result = gateway.handle_webhook(gateway.parse_webhook(WebhookRequest({}, payload.encode())))
        assert result["status"] is None
        assert result["transaction_id"] == "cus_1"
