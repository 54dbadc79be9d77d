from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from datetime import datetime
from typing import Any, Optional

import requests

from paygate.application.errors import InvalidAmount, ProviderError
from paygate.application.money import format_decimal, to_minor_units
from paygate.application.ports.capabilities import Refund
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

SANDBOX_URL = "https://api-m.sandbox.paypal.com"
LIVE_URL = "https://api-m.paypal.com"
TIMEOUT_SECONDS = 15

STATUS_MAP: dict[str, PaymentStatus] = {
    "created": PaymentStatus.PENDING,
    "saved": PaymentStatus.PENDING,
    "approved": PaymentStatus.PENDING,
    "payer_action_required": PaymentStatus.PENDING,
    "pending": PaymentStatus.PENDING,
    "completed": PaymentStatus.SUCCEEDED,
    "voided": PaymentStatus.CANCELED,
}

EVENT_STATUS_MAP: dict[str, PaymentStatus] = {
    "PAYMENT.CAPTURE.COMPLETED": PaymentStatus.SUCCEEDED,
    "PAYMENT.CAPTURE.DENIED": PaymentStatus.FAILED,
    "PAYMENT.CAPTURE.REFUNDED": PaymentStatus.REFUNDED,
    "CUSTOMER.DISPUTE.CREATED": PaymentStatus.DISPUTED,
    "CHECKOUT.ORDER.VOIDED": PaymentStatus.CANCELED,
}

SIGNATURE_HEADERS = {
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "cert_url": "PAYPAL-CERT-URL",
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
}


def _map_status(status: str | None) -> PaymentStatus:
    return STATUS_MAP.get((status or "").lower(), PaymentStatus.FAILED)


def _parse_time(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _link(resource: dict[str, Any], *rels: str) -> Optional[str]:
    for link in resource.get("links") or []:
        if link.get("rel") in rels:
            return link.get("href")
    return None


class PayPalGateway(AbstractGateway):
    """PayPal Checkout (REST v2 orders).

    ``create_payment_intent`` creates an order and returns its approval URL as
    the client secret; ``charge`` captures an approved order whose id is passed
    as ``payment_method_id``.
    """

    driver_type = "paypal"
    default_display_name = "PayPal"
    required_options = ("client_id", "client_secret")
    currencies = ("USD", "EUR", "GBP", "CAD", "AUD", "JPY", "CHF", "NOK", "SEK", "DKK", "PLN", "CZK")
    native_capabilities = frozenset({Capability.REFUNDS, Capability.WEBHOOKS})

    def __init__(self, config: GatewayConfig, http: requests.Session | None = None) -> None:
        super().__init__(config)
        self._http = http or requests.Session()
        self._token_lock = threading.Lock()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def base_url(self) -> str:
        return SANDBOX_URL if self.config.get("mode", "sandbox") == "sandbox" else LIVE_URL

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            try:
                resp = self._http.post(
                    f"{self.base_url}/v1/oauth2/token",
                    auth=(self.config.get("client_id"), self.config.get("client_secret")),
                    data={"grant_type": "client_credentials"},
                    timeout=TIMEOUT_SECONDS,
                )
            except requests.RequestException as exc:
                raise ProviderError("Failed to get PayPal access token", driver=self.name) from exc
            if resp.status_code != 200:
                self._log(logging.ERROR, "PayPal token request failed", status=resp.status_code)
                raise ProviderError("Failed to get PayPal access token", driver=self.name)
            body = resp.json()
            self._token = body["access_token"]
            # refresh a minute early
            self._token_expires_at = time.monotonic() + max(int(body.get("expires_in", 0)) - 60, 0)
            return self._token

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }
        headers.update(kwargs.pop("headers", {}))
        try:
            return self._http.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=TIMEOUT_SECONDS, **kwargs
            )
        except requests.RequestException as exc:
            raise ProviderError(f"PayPal request failed: {method} {path}", driver=self.name) from exc

    def _expect(self, resp: requests.Response, message: str) -> dict[str, Any]:
        if resp.status_code >= 400:
            self._log(logging.ERROR, message, status=resp.status_code, body=resp.text[:500])
            raise ProviderError(f"{message}: HTTP {resp.status_code}", driver=self.name)
        return resp.json() if resp.content else {}

    def _get_order(self, order_id: str) -> Optional[dict[str, Any]]:
        resp = self._request("GET", f"/v2/checkout/orders/{order_id}")
        if resp.status_code == 404:
            return None
        return self._expect(resp, "Failed to get PayPal order")

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer: Customer | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentIntent:
        code = self._guard(amount, currency)
        metadata = dict(metadata or {})
        return_url = metadata.pop("return_url", None) or self.config.get("return_url")
        cancel_url = metadata.pop("cancel_url", None) or self.config.get("cancel_url")
        body: dict[str, Any] = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {"currency_code": code, "value": format_decimal(amount, code)},
                    "custom_id": str(metadata.get("order_id") or uuid.uuid4().hex[:16]),
                }
            ],
        }
        if return_url or cancel_url:
            body["application_context"] = {
                k: v for k, v in (("return_url", return_url), ("cancel_url", cancel_url)) if v
            }

        with self._operation("create_payment_intent"):
            order = self._expect(
                self._request("POST", "/v2/checkout/orders", json=body), "Failed to create PayPal order"
            )
        approval_url = _link(order, "approve", "payer-action")
        self._log(logging.INFO, "PayPal order created", order_id=order["id"], amount=amount)
        return PaymentIntent(
            id=order["id"],
            client_secret=approval_url or order["id"],
            status=_map_status(order.get("status")),
            amount=amount,
            currency=code,
            driver=self.name,
            customer_id=customer.id if customer else None,
            return_url=return_url,
            cancel_url=cancel_url,
            metadata={**metadata, "approval_url": approval_url},
            raw=order,
        )

    def charge(
        self,
        amount: int,
        currency: str,
        payment_method_id: str,
        options: dict[str, Any] | None = None,
    ) -> PaymentResult:
        code = self._guard(amount, currency)
        options = options or {}
        with self._operation("charge"):
            resp = self._request("POST", f"/v2/checkout/orders/{payment_method_id}/capture")
            if resp.status_code == 422:
                # order not approved, already captured or declined
                error = resp.json() if resp.content else {}
                details = (error.get("details") or [{}])[0]
                self._log(logging.WARNING, "PayPal capture rejected", order_id=payment_method_id)
                return PaymentResult(
                    transaction_id=payment_method_id,
                    status=PaymentStatus.FAILED,
                    amount=amount,
                    currency=code,
                    driver=self.name,
                    payment_method_id=payment_method_id,
                    failure_code=details.get("issue") or error.get("name"),
                    failure_message=details.get("description") or error.get("message"),
                    raw=error,
                )
            capture = self._expect(resp, "Failed to capture PayPal order")
        self._log(logging.INFO, "PayPal order captured", order_id=payment_method_id, status=capture.get("status"))
        return PaymentResult(
            transaction_id=capture["id"],
            status=_map_status(capture.get("status")),
            amount=amount,
            currency=code,
            driver=self.name,
            payment_method_id=payment_method_id,
            customer_id=options.get("customer_id"),
            metadata=options.get("metadata") or {},
            raw=capture,
        )

    def get_payment(self, transaction_id: str) -> PaymentResult | None:
        with self._operation("get_payment"):
            order = self._get_order(transaction_id)
        if order is None:
            return None
        unit = (order.get("purchase_units") or [{}])[0]
        amount = unit.get("amount") or {}
        currency = str(amount.get("currency_code", self.currency)).upper()
        return PaymentResult(
            transaction_id=order["id"],
            status=_map_status(order.get("status")),
            amount=to_minor_units(amount.get("value", "0"), currency),
            currency=currency,
            driver=self.name,
            raw=order,
        )

    def cancel(self, transaction_id: str) -> bool:
        # orders cannot be voided through the API; unapproved ones expire
        self._log(logging.INFO, "PayPal order cancel requested", order_id=transaction_id)
        return True

    # refunds

    def _capture_of(self, order_id: str) -> tuple[str, str]:
        order = self._get_order(order_id)
        if order is None:
            raise ProviderError(f"PayPal order '{order_id}' not found", driver=self.name, transaction_id=order_id)
        unit = (order.get("purchase_units") or [{}])[0]
        captures = (unit.get("payments") or {}).get("captures") or []
        if not captures:
            raise ProviderError("No capture found for PayPal order", driver=self.name, transaction_id=order_id)
        currency = str((unit.get("amount") or {}).get("currency_code", self.currency)).upper()
        return captures[0]["id"], currency

    def _refund(self, data: dict[str, Any], transaction_id: str, reason: str | None = None) -> Refund:
        amount = data.get("amount") or {}
        currency = str(amount.get("currency_code", self.currency)).upper()
        return Refund(
            id=data["id"],
            transaction_id=transaction_id,
            status=str(data.get("status", "pending")).lower(),
            amount=to_minor_units(amount.get("value", "0"), currency),
            currency=currency,
            driver=self.name,
            reason=reason,
            created_at=_parse_time(data.get("create_time")),
            raw=data,
        )

    def _create_refund(self, transaction_id: str, amount: int | None, reason: str | None) -> Refund:
        with self._operation("refund"):
            capture_id, currency = self._capture_of(transaction_id)
            body: dict[str, Any] = {}
            if reason:
                body["note_to_payer"] = reason
            if amount is not None:
                body["amount"] = {"value": format_decimal(amount, currency), "currency_code": currency}
            refund = self._expect(
                self._request("POST", f"/v2/payments/captures/{capture_id}/refund", json=body),
                "Failed to create PayPal refund",
            )
        self._log(logging.INFO, "PayPal refund created", refund_id=refund.get("id"), order_id=transaction_id)
        if "amount" not in refund and amount is not None:
            refund = {**refund, "amount": body["amount"]}
        return self._refund(refund, transaction_id, reason)

    def refund(self, transaction_id: str, reason: str | None = None) -> Refund:
        self._require(Capability.REFUNDS)
        return self._create_refund(transaction_id, None, reason)

    def partial_refund(self, transaction_id: str, amount: int, reason: str | None = None) -> Refund:
        self._require(Capability.REFUNDS)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount, driver=self.name)
        return self._create_refund(transaction_id, amount, reason)

    def get_refund(self, refund_id: str) -> Refund | None:
        self._require(Capability.REFUNDS)
        resp = self._request("GET", f"/v2/payments/refunds/{refund_id}")
        if resp.status_code == 404:
            return None
        data = self._expect(resp, "Failed to get PayPal refund")
        # the original capture is only reachable through the "up" link
        return self._refund(data, _link(data, "up") or "")

    def refunds_for_transaction(self, transaction_id: str) -> list[Refund]:
        self._require(Capability.REFUNDS)
        order = self._get_order(transaction_id)
        if order is None:
            return []
        unit = (order.get("purchase_units") or [{}])[0]
        refunds = (unit.get("payments") or {}).get("refunds") or []
        return [self._refund(r, transaction_id) for r in refunds]

    # webhooks

    @property
    def webhook_secret(self) -> str | None:
        return self.config.get("webhook_id")

    def verify_webhook_signature(self, request: WebhookRequest) -> bool:
        webhook_id = self.webhook_secret
        if not webhook_id:
            return False
        body: dict[str, Any] = {key: request.header(header) for key, header in SIGNATURE_HEADERS.items()}
        if not all(body.values()):
            return False
        try:
            body["webhook_id"] = webhook_id
            body["webhook_event"] = json.loads(request.body)
            resp = self._request("POST", "/v1/notifications/verify-webhook-signature", json=body)
        except (ValueError, ProviderError) as exc:
            self._log(logging.WARNING, "PayPal signature verification failed", error=str(exc))
            return False
        if resp.status_code != 200:
            return False
        return resp.json().get("verification_status") == "SUCCESS"

    def parse_webhook(self, request: WebhookRequest) -> WebhookPayload:
        event = json.loads(request.body)
        return WebhookPayload(
            id=event["id"],
            type=event["event_type"],
            driver=self.name,
            data=event.get("resource") or {},
            created_at=_parse_time(event.get("create_time")),
            raw=event,
        )

    def handle_webhook(self, payload: WebhookPayload) -> dict[str, Any]:
        self._log(logging.INFO, "PayPal webhook received", event_type=payload.type, event_id=payload.id)
        status = EVENT_STATUS_MAP.get(payload.type)
        order_id = payload.get("supplementary_data.related_ids.order_id")
        return {
            "handled": True,
            "type": payload.type,
            "transaction_id": order_id or payload.get("id"),
            "status": status.value if status else None,
        }
