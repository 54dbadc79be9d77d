"""Optional capability interfaces.

A driver advertises what it implements through ``capabilities()``; callers
check ``gateway.supports(Capability.REFUNDS)`` before using one of these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from paygate.application.ports.payment_gateway import (
    Customer,
    PaymentResult,
    WebhookPayload,
    WebhookRequest,
)


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"

    @property
    def is_active(self) -> bool:
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


@dataclass(frozen=True)
class PaymentMethodData:
    id: str
    type: str
    driver: str
    card_brand: Optional[str] = None
    card_last_four: Optional[str] = None
    card_exp_month: Optional[int] = None
    card_exp_year: Optional[int] = None


@dataclass(frozen=True)
class Refund:
    id: str
    transaction_id: str
    status: str
    amount: int
    currency: str
    driver: str
    reason: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status in ("succeeded", "completed")


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    product_id: str
    name: str
    amount: int
    currency: str
    interval: str
    interval_count: int
    driver: str


@dataclass(frozen=True)
class Subscription:
    id: str
    customer_id: str
    plan_id: str
    status: SubscriptionStatus
    amount: int
    currency: str
    interval: str
    driver: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_canceled(self) -> bool:
        return self.canceled_at is not None or self.status is SubscriptionStatus.CANCELED


class SupportsCustomers(Protocol):
    def create_customer(
        self, email: str, name: str | None = None, metadata: dict[str, Any] | None = None
    ) -> Customer: ...

    def get_customer(self, customer_id: str) -> Customer | None: ...

    def update_customer(self, customer_id: str, data: dict[str, Any]) -> Customer: ...

    def delete_customer(self, customer_id: str) -> bool: ...

    def attach_payment_method(self, customer_id: str, payment_method_id: str) -> PaymentMethodData: ...

    def detach_payment_method(self, payment_method_id: str) -> bool: ...

    def get_payment_methods(self, customer_id: str) -> list[PaymentMethodData]: ...

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> bool: ...


class SupportsSubscriptions(Protocol):
    def create_plan(
        self,
        name: str,
        amount: int,
        currency: str,
        interval: str,
        options: dict[str, Any] | None = None,
    ) -> SubscriptionPlan: ...

    def get_plan(self, plan_id: str) -> SubscriptionPlan | None: ...

    def create_subscription(
        self,
        customer: Customer,
        plan_id: str,
        payment_method_id: str,
        options: dict[str, Any] | None = None,
    ) -> Subscription: ...

    def get_subscription(self, subscription_id: str) -> Subscription | None: ...

    def cancel_subscription(self, subscription_id: str, immediately: bool = False) -> bool: ...

    def pause_subscription(self, subscription_id: str) -> bool: ...

    def resume_subscription(self, subscription_id: str) -> bool: ...

    def update_subscription(self, subscription_id: str, new_plan_id: str) -> Subscription: ...


class SupportsRefunds(Protocol):
    def refund(self, transaction_id: str, reason: str | None = None) -> Refund: ...

    def partial_refund(self, transaction_id: str, amount: int, reason: str | None = None) -> Refund: ...

    def get_refund(self, refund_id: str) -> Refund | None: ...

    def refunds_for_transaction(self, transaction_id: str) -> list[Refund]: ...


class SupportsWebhooks(Protocol):
    @property
    def webhook_secret(self) -> str | None: ...

    def verify_webhook_signature(self, request: WebhookRequest) -> bool: ...

    def parse_webhook(self, request: WebhookRequest) -> WebhookPayload: ...

    def handle_webhook(self, payload: WebhookPayload) -> dict[str, Any]: ...


class SupportsManualConfirmation(Protocol):
    """Drivers whose payments settle outside any provider (bank transfer, COD)."""

    def confirm_payment(
        self, transaction_id: str, amount: int, reference: str | None = None
    ) -> PaymentResult: ...

    def mark_expired(self, transaction_id: str) -> PaymentResult: ...
