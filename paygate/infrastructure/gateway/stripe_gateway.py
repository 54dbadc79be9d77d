from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe

from paygate.application.errors import InvalidAmount, ProviderError
from paygate.application.ports.capabilities import (
    PaymentMethodData,
    Refund,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
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

STATUS_MAP: dict[str, PaymentStatus] = {
    "succeeded": PaymentStatus.SUCCEEDED,
    "processing": PaymentStatus.PENDING,
    "requires_action": PaymentStatus.PENDING,
    "requires_confirmation": PaymentStatus.PENDING,
    "requires_capture": PaymentStatus.PENDING,
    "requires_payment_method": PaymentStatus.PENDING,
    "canceled": PaymentStatus.CANCELED,
}

EVENT_STATUS_MAP: dict[str, PaymentStatus] = {
    "payment_intent.succeeded": PaymentStatus.SUCCEEDED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.canceled": PaymentStatus.CANCELED,
    "charge.refunded": PaymentStatus.REFUNDED,
    "charge.dispute.created": PaymentStatus.DISPUTED,
}


def _map_status(status: str | None) -> PaymentStatus:
    return STATUS_MAP.get(status or "", PaymentStatus.FAILED)


def _map_subscription_status(status: str | None) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(status)
    except ValueError:
        return SubscriptionStatus.INCOMPLETE


def _plain(value: Any) -> Any:
    if isinstance(value, stripe.StripeObject):
        value = value.to_dict()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _as_dict(obj: Any) -> dict[str, Any]:
    """Plain nested dicts from an SDK object; expanded children and list pages included."""
    if obj is None:
        return {}
    if isinstance(obj, str):
        return {"id": obj}
    return _plain(obj)


def _declined_intent_id(exc: stripe.CardError) -> str:
    error = (exc.json_body or {}).get("error") or {}
    return (error.get("payment_intent") or {}).get("id", "")


def _ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class StripeGateway(AbstractGateway):
    driver_type = "stripe"
    default_display_name = "Credit Card (Stripe)"
    required_options = ("secret",)
    currencies = ("USD", "EUR", "GBP", "CAD", "AUD", "JPY", "CHF", "SEK", "NOK", "DKK", "PLN", "CZK", "HUF")
    native_capabilities = frozenset(
        {Capability.CUSTOMERS, Capability.SUBSCRIPTIONS, Capability.REFUNDS, Capability.WEBHOOKS}
    )

    def _request_options(self) -> dict[str, Any]:
        return {
            "api_key": self.config.get("secret"),
            "stripe_version": self.config.get("api_version", "2024-06-20"),
        }

    def _fail(self, message: str, exc: stripe.StripeError) -> ProviderError:
        self._log(logging.ERROR, message, error=str(exc))
        return ProviderError(
            f"{message}: {exc.user_message or exc}", driver=self.name, code=getattr(exc, "code", None)
        )

    def _result(self, intent: dict[str, Any]) -> PaymentResult:
        charge = intent.get("latest_charge")
        receipt_url = charge.get("receipt_url") if isinstance(charge, dict) else None
        error = intent.get("last_payment_error") or {}
        return PaymentResult(
            transaction_id=intent["id"],
            status=_map_status(intent.get("status")),
            amount=intent.get("amount", 0),
            currency=str(intent.get("currency", self.currency)).upper(),
            driver=self.name,
            payment_method_id=intent.get("payment_method") if isinstance(intent.get("payment_method"), str) else None,
            customer_id=intent.get("customer") if isinstance(intent.get("customer"), str) else None,
            failure_code=error.get("code"),
            failure_message=error.get("message"),
            receipt_url=receipt_url,
            metadata=_as_dict(intent.get("metadata")),
            raw=intent,
        )

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer: Customer | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentIntent:
        code = self._guard(amount, currency)
        params: dict[str, Any] = {
            "amount": amount,
            "currency": code.lower(),
            "metadata": metadata or {},
            "automatic_payment_methods": {"enabled": True},
        }
        if customer is not None and customer.id:
            params["customer"] = customer.id
        with self._operation("create_payment_intent"):
            try:
                intent = _as_dict(stripe.PaymentIntent.create(**params, **self._request_options()))
            except stripe.StripeError as exc:
                raise self._fail("Failed to create payment intent", exc) from exc
        self._log(logging.INFO, "Payment intent created", intent_id=intent["id"], amount=amount)
        return PaymentIntent(
            id=intent["id"],
            client_secret=intent.get("client_secret") or "",
            status=_map_status(intent.get("status")),
            amount=amount,
            currency=code,
            driver=self.name,
            customer_id=customer.id if customer else None,
            metadata=metadata or {},
            raw=intent,
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
        params: dict[str, Any] = {
            "amount": amount,
            "currency": code.lower(),
            "payment_method": payment_method_id,
            "confirm": True,
            "metadata": options.get("metadata") or {},
            "expand": ["latest_charge"],
        }
        return_url = options.get("return_url") or self.config.get("return_url")
        if return_url:
            params["return_url"] = return_url
        if options.get("customer_id"):
            params["customer"] = options["customer_id"]
        if options.get("description"):
            params["description"] = options["description"]

        with self._operation("charge"):
            try:
                intent = _as_dict(stripe.PaymentIntent.create(**params, **self._request_options()))
            except stripe.CardError as exc:
                self._log(logging.WARNING, "Card declined", code=exc.code)
                return PaymentResult(
                    transaction_id=_declined_intent_id(exc),
                    status=PaymentStatus.FAILED,
                    amount=amount,
                    currency=code,
                    driver=self.name,
                    payment_method_id=payment_method_id,
                    failure_code=exc.code,
                    failure_message=exc.user_message or str(exc),
                )
            except stripe.StripeError as exc:
                raise self._fail("Charge failed", exc) from exc
        self._log(logging.INFO, "Charge completed", intent_id=intent["id"], status=intent.get("status"))
        return self._result(intent)

    def get_payment(self, transaction_id: str) -> PaymentResult | None:
        with self._operation("get_payment"):
            try:
                intent = stripe.PaymentIntent.retrieve(
                    transaction_id, expand=["latest_charge"], **self._request_options()
                )
            except stripe.InvalidRequestError:
                return None
            except stripe.StripeError as exc:
                raise self._fail("Failed to retrieve payment", exc) from exc
        return self._result(_as_dict(intent))

    def cancel(self, transaction_id: str) -> bool:
        with self._operation("cancel"):
            try:
                stripe.PaymentIntent.cancel(transaction_id, **self._request_options())
            except stripe.StripeError as exc:
                self._log(logging.ERROR, "Failed to cancel payment", intent_id=transaction_id, error=str(exc))
                return False
        self._log(logging.INFO, "Payment canceled", intent_id=transaction_id)
        return True

    # customers

    def _customer(self, data: dict[str, Any]) -> Customer:
        settings = data.get("invoice_settings") or {}
        return Customer(
            id=data["id"],
            email=data.get("email"),
            name=data.get("name"),
            phone=data.get("phone"),
            default_payment_method_id=settings.get("default_payment_method"),
            metadata=_as_dict(data.get("metadata")),
            raw=data,
        )

    def _payment_method(self, data: dict[str, Any]) -> PaymentMethodData:
        card = data.get("card") or {}
        return PaymentMethodData(
            id=data["id"],
            type=data.get("type", "card"),
            driver=self.name,
            card_brand=card.get("brand"),
            card_last_four=card.get("last4"),
            card_exp_month=card.get("exp_month"),
            card_exp_year=card.get("exp_year"),
        )

    def create_customer(
        self, email: str, name: str | None = None, metadata: dict[str, Any] | None = None
    ) -> Customer:
        self._require(Capability.CUSTOMERS)
        with self._operation("create_customer"):
            try:
                customer = stripe.Customer.create(
                    email=email, name=name, metadata=metadata or {}, **self._request_options()
                )
            except stripe.StripeError as exc:
                raise self._fail("Failed to create customer", exc) from exc
        data = _as_dict(customer)
        self._log(logging.INFO, "Customer created", customer_id=data["id"])
        return self._customer(data)

    def get_customer(self, customer_id: str) -> Customer | None:
        self._require(Capability.CUSTOMERS)
        try:
            customer = stripe.Customer.retrieve(customer_id, **self._request_options())
        except stripe.StripeError:
            return None
        data = _as_dict(customer)
        if data.get("deleted"):
            return None
        return self._customer(data)

    def update_customer(self, customer_id: str, data: dict[str, Any]) -> Customer:
        self._require(Capability.CUSTOMERS)
        with self._operation("update_customer"):
            try:
                customer = stripe.Customer.modify(customer_id, **data, **self._request_options())
            except stripe.StripeError as exc:
                raise self._fail("Failed to update customer", exc) from exc
        return self._customer(_as_dict(customer))

    def delete_customer(self, customer_id: str) -> bool:
        self._require(Capability.CUSTOMERS)
        try:
            stripe.Customer.delete(customer_id, **self._request_options())
        except stripe.StripeError as exc:
            self._log(logging.WARNING, "Failed to delete customer", customer_id=customer_id, error=str(exc))
            return False
        return True

    def attach_payment_method(self, customer_id: str, payment_method_id: str) -> PaymentMethodData:
        self._require(Capability.CUSTOMERS)
        try:
            pm = stripe.PaymentMethod.attach(
                payment_method_id, customer=customer_id, **self._request_options()
            )
        except stripe.StripeError as exc:
            raise self._fail("Failed to attach payment method", exc) from exc
        return self._payment_method(_as_dict(pm))

    def detach_payment_method(self, payment_method_id: str) -> bool:
        self._require(Capability.CUSTOMERS)
        try:
            stripe.PaymentMethod.detach(payment_method_id, **self._request_options())
        except stripe.StripeError:
            return False
        return True

    def get_payment_methods(self, customer_id: str) -> list[PaymentMethodData]:
        self._require(Capability.CUSTOMERS)
        try:
            methods = stripe.PaymentMethod.list(customer=customer_id, type="card", **self._request_options())
        except stripe.StripeError:
            return []
        return [self._payment_method(_as_dict(pm)) for pm in _as_dict(methods).get("data", [])]

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> bool:
        self._require(Capability.CUSTOMERS)
        try:
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
                **self._request_options(),
            )
        except stripe.StripeError:
            return False
        return True

    # refunds

    def _refund(self, data: dict[str, Any], transaction_id: str | None = None) -> Refund:
        return Refund(
            id=data["id"],
            transaction_id=transaction_id or data.get("payment_intent") or "",
            status=data.get("status", "pending"),
            amount=data.get("amount", 0),
            currency=str(data.get("currency", self.currency)).upper(),
            driver=self.name,
            reason=data.get("reason"),
            failure_reason=data.get("failure_reason"),
            created_at=_ts(data.get("created")),
            raw=data,
        )

    def _create_refund(self, transaction_id: str, amount: int | None, reason: str | None) -> Refund:
        params: dict[str, Any] = {
            "payment_intent": transaction_id,
            "reason": reason or "requested_by_customer",
        }
        if amount is not None:
            params["amount"] = amount
        with self._operation("refund"):
            try:
                refund = stripe.Refund.create(**params, **self._request_options())
            except stripe.StripeError as exc:
                raise self._fail("Failed to create refund", exc) from exc
        data = _as_dict(refund)
        self._log(logging.INFO, "Refund created", refund_id=data["id"], transaction_id=transaction_id)
        return self._refund(data, transaction_id)

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
        try:
            refund = stripe.Refund.retrieve(refund_id, **self._request_options())
        except stripe.StripeError:
            return None
        return self._refund(_as_dict(refund))

    def refunds_for_transaction(self, transaction_id: str) -> list[Refund]:
        self._require(Capability.REFUNDS)
        try:
            refunds = stripe.Refund.list(payment_intent=transaction_id, **self._request_options())
        except stripe.StripeError:
            return []
        return [self._refund(_as_dict(r), transaction_id) for r in _as_dict(refunds).get("data", [])]

    # subscriptions

    def _subscription(self, data: dict[str, Any], plan_id: str | None = None) -> Subscription:
        items = _as_dict(data.get("items")).get("data") or [{}]
        price = _as_dict(_as_dict(items[0]).get("price"))
        recurring = _as_dict(price.get("recurring"))
        return Subscription(
            id=data["id"],
            customer_id=data.get("customer") or "",
            plan_id=plan_id or price.get("id", ""),
            status=_map_subscription_status(data.get("status")),
            amount=price.get("unit_amount") or 0,
            currency=str(price.get("currency", self.currency)).upper(),
            interval=recurring.get("interval", "month"),
            driver=self.name,
            current_period_start=_ts(data.get("current_period_start")),
            current_period_end=_ts(data.get("current_period_end")),
            trial_start=_ts(data.get("trial_start")),
            trial_end=_ts(data.get("trial_end")),
            canceled_at=_ts(data.get("canceled_at")),
            cancel_at_period_end=bool(data.get("cancel_at_period_end")),
            raw=data,
        )

    def create_plan(
        self,
        name: str,
        amount: int,
        currency: str,
        interval: str,
        options: dict[str, Any] | None = None,
    ) -> SubscriptionPlan:
        self._require(Capability.SUBSCRIPTIONS)
        code = self._guard(amount, currency)
        options = options or {}
        interval_count = int(options.get("interval_count", 1))
        with self._operation("create_plan"):
            try:
                product = _as_dict(
                    stripe.Product.create(
                        name=name, metadata=options.get("metadata") or {}, **self._request_options()
                    )
                )
                price = _as_dict(
                    stripe.Price.create(
                        product=product["id"],
                        unit_amount=amount,
                        currency=code.lower(),
                        recurring={"interval": interval, "interval_count": interval_count},
                        **self._request_options(),
                    )
                )
            except stripe.StripeError as exc:
                raise self._fail("Failed to create plan", exc) from exc
        return SubscriptionPlan(
            id=price["id"],
            product_id=product["id"],
            name=name,
            amount=amount,
            currency=code,
            interval=interval,
            interval_count=interval_count,
            driver=self.name,
        )

    def get_plan(self, plan_id: str) -> SubscriptionPlan | None:
        self._require(Capability.SUBSCRIPTIONS)
        try:
            price = _as_dict(stripe.Price.retrieve(plan_id, expand=["product"], **self._request_options()))
        except stripe.StripeError:
            return None
        product = _as_dict(price.get("product"))
        recurring = _as_dict(price.get("recurring"))
        return SubscriptionPlan(
            id=price["id"],
            product_id=product.get("id", ""),
            name=product.get("name", ""),
            amount=price.get("unit_amount") or 0,
            currency=str(price.get("currency", self.currency)).upper(),
            interval=recurring.get("interval", "month"),
            interval_count=recurring.get("interval_count", 1),
            driver=self.name,
        )

    def create_subscription(
        self,
        customer: Customer,
        plan_id: str,
        payment_method_id: str,
        options: dict[str, Any] | None = None,
    ) -> Subscription:
        self._require(Capability.SUBSCRIPTIONS)
        options = options or {}
        params: dict[str, Any] = {
            "customer": customer.id,
            "items": [{"price": plan_id}],
            "default_payment_method": payment_method_id,
            "metadata": options.get("metadata") or {},
        }
        if options.get("trial_days"):
            params["trial_period_days"] = options["trial_days"]
        with self._operation("create_subscription"):
            try:
                sub = stripe.Subscription.create(**params, **self._request_options())
            except stripe.StripeError as exc:
                raise self._fail("Failed to create subscription", exc) from exc
        return self._subscription(_as_dict(sub), plan_id)

    def get_subscription(self, subscription_id: str) -> Subscription | None:
        self._require(Capability.SUBSCRIPTIONS)
        try:
            sub = stripe.Subscription.retrieve(subscription_id, **self._request_options())
        except stripe.StripeError:
            return None
        return self._subscription(_as_dict(sub))

    def cancel_subscription(self, subscription_id: str, immediately: bool = False) -> bool:
        self._require(Capability.SUBSCRIPTIONS)
        try:
            if immediately:
                stripe.Subscription.cancel(subscription_id, **self._request_options())
            else:
                stripe.Subscription.modify(
                    subscription_id, cancel_at_period_end=True, **self._request_options()
                )
        except stripe.StripeError as exc:
            self._log(logging.WARNING, "Failed to cancel subscription", subscription_id=subscription_id, error=str(exc))
            return False
        return True

    def pause_subscription(self, subscription_id: str) -> bool:
        self._require(Capability.SUBSCRIPTIONS)
        try:
            stripe.Subscription.modify(
                subscription_id, pause_collection={"behavior": "void"}, **self._request_options()
            )
        except stripe.StripeError:
            return False
        return True

    def resume_subscription(self, subscription_id: str) -> bool:
        self._require(Capability.SUBSCRIPTIONS)
        try:
            stripe.Subscription.modify(subscription_id, pause_collection="", **self._request_options())
        except stripe.StripeError:
            return False
        return True

    def update_subscription(self, subscription_id: str, new_plan_id: str) -> Subscription:
        self._require(Capability.SUBSCRIPTIONS)
        with self._operation("update_subscription"):
            try:
                current = self._subscription(
                    _as_dict(stripe.Subscription.retrieve(subscription_id, **self._request_options()))
                )
                item_id = current.raw["items"]["data"][0]["id"]
                updated = stripe.Subscription.modify(
                    subscription_id,
                    items=[{"id": item_id, "price": new_plan_id}],
                    **self._request_options(),
                )
            except stripe.StripeError as exc:
                raise self._fail("Failed to update subscription", exc) from exc
        return self._subscription(_as_dict(updated), new_plan_id)

    # webhooks

    @property
    def webhook_secret(self) -> str | None:
        return self.config.get("webhook_secret")

    def verify_webhook_signature(self, request: WebhookRequest) -> bool:
        signature = request.header("Stripe-Signature")
        secret = self.webhook_secret
        if not signature or not secret:
            return False
        try:
            stripe.Webhook.construct_event(
                request.text,
                signature,
                secret,
                tolerance=int(self.config.get("webhook_tolerance", 300)),
            )
        except (stripe.SignatureVerificationError, ValueError):
            return False
        return True

    def parse_webhook(self, request: WebhookRequest) -> WebhookPayload:
        event = json.loads(request.body)
        return WebhookPayload(
            id=event["id"],
            type=event["type"],
            driver=self.name,
            data=(event.get("data") or {}).get("object") or {},
            created_at=_ts(event.get("created")),
            raw=event,
        )

    def handle_webhook(self, payload: WebhookPayload) -> dict[str, Any]:
        self._log(logging.INFO, "Webhook received", event_type=payload.type, event_id=payload.id)
        status = EVENT_STATUS_MAP.get(payload.type)
        if payload.type.startswith("charge."):
            transaction_id = payload.get("payment_intent") or payload.get("id")
        else:
            transaction_id = payload.get("id")
        return {
            "handled": True,
            "type": payload.type,
            "transaction_id": transaction_id,
            "status": status.value if status else None,
        }
