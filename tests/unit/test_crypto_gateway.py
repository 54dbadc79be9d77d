from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from paygate.application.errors import ConfigurationError, ProviderError, UnsupportedCurrency
from paygate.application.ports.payment_gateway import PaymentStatus, WebhookRequest
from paygate.infrastructure.gateway.crypto_gateway import COINBASE_URL, CryptoGateway, sign_payload

SECRET = "cc_webhook_secret"


def _response(status: int, body: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body or {}
    resp.text = json.dumps(body or {})
    return resp


@pytest.fixture
def http() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gateway(make_config, http: MagicMock) -> CryptoGateway:
    return CryptoGateway(make_config("crypto", api_key="cc_key", webhook_secret=SECRET), http=http)


class TestCryptoConfiguration:
    def test_api_key_required(self, make_config) -> None:
        with pytest.raises(ConfigurationError):
            CryptoGateway(make_config("crypto"))

    def test_describe_lists_crypto_currencies(self, make_config) -> None:
        gateway = CryptoGateway(make_config("crypto", api_key="k", supported_currencies=["BTC", "ETH"]))
        info = gateway.describe()
        assert info["crypto_currencies"] == ["BTC", "ETH"]
        assert info["capabilities"] == ["webhooks"]

    def test_fiat_pricing_only(self, gateway: CryptoGateway, http: MagicMock) -> None:
        with pytest.raises(UnsupportedCurrency):
            gateway.create_payment_intent(1000, "BTC")
        http.request.assert_not_called()


class TestCoinbaseCharges:
    def test_create_intent(self, gateway: CryptoGateway, http: MagicMock) -> None:
        http.request.return_value = _response(
            201,
            {
                "data": {
                    "id": "CH1",
                    "hosted_url": "https://commerce.coinbase.com/charges/CH1",
                    "expires_at": "2026-01-01T01:00:00Z",
                    "addresses": {"bitcoin": "bc1q..."},
                }
            },
        )
        intent = gateway.create_payment_intent(2500, "usd", metadata={"name": "Order 7"})

        assert intent.id == "CH1"
        assert intent.client_secret == "https://commerce.coinbase.com/charges/CH1"
        assert intent.status is PaymentStatus.PENDING
        assert intent.expires_at is not None
        assert intent.metadata["addresses"] == {"bitcoin": "bc1q..."}

        method, url = http.request.call_args.args
        assert (method, url) == ("POST", f"{COINBASE_URL}/charges")
        kwargs = http.request.call_args.kwargs
        assert kwargs["headers"]["X-CC-Api-Key"] == "cc_key"
        assert kwargs["json"]["local_price"] == {"amount": "25.00", "currency": "USD"}
        assert kwargs["json"]["name"] == "Order 7"

    def test_create_intent_provider_error(self, gateway: CryptoGateway, http: MagicMock) -> None:
        http.request.return_value = _response(400, {"error": {"type": "invalid_request"}})
        with pytest.raises(ProviderError, match="HTTP 400"):
            gateway.create_payment_intent(2500, "USD")

    def test_get_payment_uses_last_timeline_status(self, gateway: CryptoGateway, http: MagicMock) -> None:
        http.request.return_value = _response(
            200,
            {
                "data": {
                    "id": "CH1",
                    "timeline": [{"status": "NEW"}, {"status": "PENDING"}, {"status": "COMPLETED"}],
                    "pricing": {"local": {"amount": "25.00", "currency": "USD"}},
                    "payments": [{"network": "bitcoin"}],
                }
            },
        )
        result = gateway.get_payment("CH1")
        assert result is not None
        assert result.status is PaymentStatus.SUCCEEDED
        assert result.amount == 2500
        assert result.metadata["crypto_payments"] == [{"network": "bitcoin"}]

    def test_charge_reports_existing_charge(self, gateway: CryptoGateway, http: MagicMock) -> None:
        http.request.return_value = _response(
            200,
            {"data": {"id": "CH1", "timeline": [{"status": "EXPIRED"}], "pricing": {"local": {"amount": "1", "currency": "USD"}}}},
        )
        assert gateway.charge(100, "USD", "CH1").status is PaymentStatus.EXPIRED

    def test_charge_unknown_is_pending(self, gateway: CryptoGateway, http: MagicMock) -> None:
        http.request.return_value = _response(404)
        result = gateway.charge(100, "USD", "CH404")
        assert result.status is PaymentStatus.PENDING
        assert result.transaction_id == "CH404"

    def test_cancel(self, gateway: CryptoGateway, http: MagicMock) -> None:
        http.request.return_value = _response(200, {"data": {"id": "CH1"}})
        assert gateway.cancel("CH1") is True
        assert http.request.call_args.args[1].endswith("/charges/CH1/cancel")

        http.request.return_value = _response(400)
        assert gateway.cancel("CH1") is False


class TestGenericProvider:
    def test_local_intent(self, make_config, http: MagicMock) -> None:
        gateway = CryptoGateway(make_config("crypto", api_key="k", provider="nowpayments"), http=http)
        intent = gateway.create_payment_intent(1000, "EUR")

        assert intent.id.startswith("crypto_")
        assert intent.client_secret == intent.id
        assert intent.is_expired is False
        assert gateway.get_payment(intent.id) is None
        assert gateway.cancel(intent.id) is True
        http.request.assert_not_called()


class TestCryptoWebhooks:
    BODY = json.dumps(
        {"event": {"id": "evt_1", "type": "charge:confirmed", "created_at": "2026-01-01T00:00:00Z", "data": {"id": "CH1"}}}
    ).encode()

    def test_valid_signature(self, gateway: CryptoGateway) -> None:
        request = WebhookRequest({"X-CC-Webhook-Signature": sign_payload(self.BODY, SECRET)}, self.BODY)
        assert gateway.verify_webhook_signature(request) is True

    def test_tampered_body(self, gateway: CryptoGateway) -> None:
        signature = sign_payload(self.BODY, SECRET)
        request = WebhookRequest({"X-CC-Webhook-Signature": signature}, self.BODY + b" ")
        assert gateway.verify_webhook_signature(request) is False

    def test_no_secret_configured(self, make_config) -> None:
        gateway = CryptoGateway(make_config("crypto", api_key="k"))
        request = WebhookRequest({"X-CC-Webhook-Signature": sign_payload(self.BODY, SECRET)}, self.BODY)
        assert gateway.verify_webhook_signature(request) is False

    def test_handle_confirmed(self, gateway: CryptoGateway) -> None:
        payload = gateway.parse_webhook(WebhookRequest({}, self.BODY))
        assert payload.id == "evt_1"
        assert gateway.handle_webhook(payload) == {
            "handled": True,
            "type": "charge:confirmed",
            "transaction_id": "CH1",
            "status": "succeeded",
        }
