from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import requests

from paygate.application.errors import ProviderError
from paygate.application.money import format_decimal, to_minor_units
from paygate.application.ports.payment_gateway import (
    Capability,
    Customer,
    PaymentIntent,
    PaymentResult,
    PaymentStatus,
    WebhookPayload,
    WebhookRequest,
)
from paygate.infrastructure.gateway.base import AbstractGateway
from paygate.shared.config import GatewayConfig

COINBASE_URL = "https://api.commerce.coinbase.com"
COINBASE_API_VERSION = "2018-03-22"
TIMEOUT_SECONDS = 15
GENERIC_INTENT_TTL = timedelta(hours=1)

STATUS_MAP: dict[str, PaymentStatus] = {
    "NEW": PaymentStatus.PENDING,
    "PENDING": PaymentStatus.PENDING,
    "UNRESOLVED": PaymentStatus.PENDING,
    "COMPLETED": PaymentStatus.SUCCEEDED,
    "RESOLVED": PaymentStatus.SUCCEEDED,
    "EXPIRED": PaymentStatus.EXPIRED,
    "CANCELED": PaymentStatus.CANCELED,
}

EVENT_STATUS_MAP: dict[str, PaymentStatus] = {
    "charge:confirmed": PaymentStatus.SUCCEEDED,
    "charge:resolved": PaymentStatus.SUCCEEDED,
    "charge:failed": PaymentStatus.FAILED,
}


def _map_status(status: str | None) -> PaymentStatus:
    return STATUS_MAP.get((status or "").upper(), PaymentStatus.FAILED)


def _parse_time(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw body, as sent in ``X-CC-Webhook-Signature``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class CryptoGateway(AbstractGateway):
    """Cryptocurrency checkout.

    With the ``coinbase`` provider intents are Coinbase Commerce charges and
    the client secret is the hosted checkout URL. Any other provider gets a
    locally generated pending intent that an external integration settles.
    Customers pay in crypto; amounts are priced in fiat.
    """

    driver_type = "crypto"
    default_display_name = "Cryptocurrency"
    required_options = ("api_key",)
    currencies = ("USD", "EUR", "GBP")
    native_capabilities = frozenset({Capability.WEBHOOKS})

    def __init__(self, config: GatewayConfig, http: requests.Session | None = None) -> None:
        super().__init__(config)
        self._http = http or requests.Session()

    @property
    def provider(self) -> str:
        return self.config.get("provider", "coinbase")

    @property
    def base_url(self) -> str:
        if self.provider == "coinbase":
            return self.config.get("api_url", COINBASE_URL)
        return self.config.get("api_url", "")

    def supported_crypto_currencies(self) -> list[str]:
        return list(self.config.get("supported_currencies", ["BTC", "ETH", "USDT", "USDC"]))

    def describe(self) -> dict[str, Any]:
        return {**super().describe(), "crypto_currencies": self.supported_crypto_currencies()}

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = {
            "X-CC-Api-Key": self.config.get("api_key"),
            "X-CC-Version": COINBASE_API_VERSION,
            "Content-Type": "application/json",
        }
        try:
            return self._http.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=TIMEOUT_SECONDS, **kwargs
            )
        except requests.RequestException as exc:
            raise ProviderError(f"Crypto provider request failed: {method} {path}", driver=self.name) from exc

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer: Customer | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentIntent:
        code = self._guard(amount, currency)
        metadata = dict(metadata or {})
        with self._operation("create_payment_intent"):
            if self.provider == "coinbase":
                return self._create_coinbase_charge(amount, code, customer, metadata)
            return self._create_local_charge(amount, code, customer, metadata)

    def _create_coinbase_charge(
        self, amount: int, currency: str, customer: Customer | None, metadata: dict[str, Any]
    ) -> PaymentIntent:
        body: dict[str, Any] = {
            "name": metadata.get("name", "Payment"),
            "description": metadata.get("description", "Crypto payment"),
            "pricing_type": "fixed_price",
            "local_price": {"amount": format_decimal(amount, currency), "currency": currency},
            "metadata": metadata,
        }
        if metadata.get("return_url"):
            body["redirect_url"] = metadata["return_url"]
        if metadata.get("cancel_url"):
            body["cancel_url"] = metadata["cancel_url"]

        resp = self._request("POST", "/charges", json=body)
        if resp.status_code >= 400:
            self._log(logging.ERROR, "Coinbase charge failed", status=resp.status_code, body=resp.text[:500])
            raise ProviderError(f"Failed to create Coinbase charge: HTTP {resp.status_code}", driver=self.name)
        charge = resp.json()["data"]
        self._log(logging.INFO, "Coinbase charge created", charge_id=charge["id"], amount=amount)
        return PaymentIntent(
            id=charge["id"],
            client_secret=charge["hosted_url"],
            status=PaymentStatus.PENDING,
            amount=amount,
            currency=currency,
            driver=self.name,
            customer_id=customer.id if customer else None,
            return_url=charge["hosted_url"],
            expires_at=_parse_time(charge.get("expires_at")),
            metadata={
                **metadata,
                "hosted_url": charge["hosted_url"],
                "addresses": charge.get("addresses", {}),
            },
            raw=charge,
        )

    def _create_local_charge(
        self, amount: int, currency: str, customer: Customer | None, metadata: dict[str, Any]
    ) -> PaymentIntent:
        intent_id = f"crypto_{secrets.token_hex(12)}"
        self._log(logging.INFO, "Crypto intent created", intent_id=intent_id, provider=self.provider)
        return PaymentIntent(
            id=intent_id,
            client_secret=intent_id,
            status=PaymentStatus.PENDING,
            amount=amount,
            currency=currency,
            driver=self.name,
            customer_id=customer.id if customer else None,
            expires_at=datetime.now(timezone.utc) + GENERIC_INTENT_TTL,
            metadata=metadata,
        )

    def charge(
        self,
        amount: int,
        currency: str,
        payment_method_id: str,
        options: dict[str, Any] | None = None,
    ) -> PaymentResult:
        """Report the state of an existing crypto charge.

        Settlement happens on chain, so there is nothing to capture;
        ``payment_method_id`` is the charge id from ``create_payment_intent``.
        """
        code = self._guard(amount, currency)
        options = options or {}
        current = self.get_payment(payment_method_id)
        if current is not None:
            return current
        return PaymentResult(
            transaction_id=payment_method_id,
            status=PaymentStatus.PENDING,
            amount=amount,
            currency=code,
            driver=self.name,
            metadata=options.get("metadata") or {},
        )

    def get_payment(self, transaction_id: str) -> PaymentResult | None:
        if self.provider != "coinbase":
            return None
        with self._operation("get_payment"):
            resp = self._request("GET", f"/charges/{transaction_id}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise ProviderError(f"Failed to get Coinbase charge: HTTP {resp.status_code}", driver=self.name)
        charge = resp.json()["data"]
        timeline = charge.get("timeline") or [{}]
        local = (charge.get("pricing") or {}).get("local") or {}
        currency = str(local.get("currency", self.currency)).upper()
        return PaymentResult(
            transaction_id=charge["id"],
            status=_map_status(timeline[-1].get("status", "NEW")),
            amount=to_minor_units(local.get("amount", "0"), currency),
            currency=currency,
            driver=self.name,
            metadata={
                "crypto_payments": charge.get("payments", []),
                "addresses": charge.get("addresses", {}),
            },
            raw=charge,
        )

    def cancel(self, transaction_id: str) -> bool:
        if self.provider != "coinbase":
            return True
        with self._operation("cancel"):
            try:
                resp = self._request("POST", f"/charges/{transaction_id}/cancel")
            except ProviderError as exc:
                self._log(logging.ERROR, "Failed to cancel crypto charge", charge_id=transaction_id, error=str(exc))
                return False
        return resp.status_code < 400

    # webhooks

    @property
    def webhook_secret(self) -> str | None:
        return self.config.get("webhook_secret")

    def verify_webhook_signature(self, request: WebhookRequest) -> bool:
        secret = self.webhook_secret
        signature = request.header("X-CC-Webhook-Signature")
        if not secret or not signature:
            return False
        return hmac.compare_digest(sign_payload(request.body, secret), signature)

    def parse_webhook(self, request: WebhookRequest) -> WebhookPayload:
        body = json.loads(request.body)
        event = body.get("event") or {}
        return WebhookPayload(
            id=str(event.get("id") or body.get("id") or secrets.token_hex(8)),
            type=event.get("type") or body.get("type") or "unknown",
            driver=self.name,
            data=event.get("data") or body.get("data") or {},
            created_at=_parse_time(event.get("created_at")),
            raw=body,
        )

    def handle_webhook(self, payload: WebhookPayload) -> dict[str, Any]:
        self._log(logging.INFO, "Crypto webhook received", event_type=payload.type, event_id=payload.id)
        status = EVENT_STATUS_MAP.get(payload.type)
        return {
            "handled": True,
            "type": payload.type,
            "transaction_id": payload.get("id"),
            "status": status.value if status else None,
        }
