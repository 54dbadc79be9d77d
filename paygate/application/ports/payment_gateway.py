from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from paygate.application.money import to_decimal


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    EXPIRED = "expired"

    @property
    def is_final(self) -> bool:
        return not _TRANSITIONS[self]

    @property
    def is_successful(self) -> bool:
        return self is PaymentStatus.SUCCEEDED

    @property
    def is_pending(self) -> bool:
        return self is PaymentStatus.PENDING

    @property
    def is_failed(self) -> bool:
        return self in (PaymentStatus.FAILED, PaymentStatus.CANCELED, PaymentStatus.EXPIRED)

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.SUCCEEDED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELED,
            PaymentStatus.EXPIRED,
        }
    ),
    PaymentStatus.SUCCEEDED: frozenset({PaymentStatus.REFUNDED, PaymentStatus.DISPUTED}),
    PaymentStatus.DISPUTED: frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
}


class Capability(str, Enum):
    CUSTOMERS = "customers"
    SUBSCRIPTIONS = "subscriptions"
    REFUNDS = "refunds"
    WEBHOOKS = "webhooks"
    MANUAL_CONFIRMATION = "manual_confirmation"


@dataclass(frozen=True)
class Customer:
    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    default_payment_method_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentIntent:
    """A payment the customer still has to complete.

    ``client_secret`` is whatever the front end needs to finish the flow: a
    Stripe client secret, a PayPal approval URL, a hosted crypto checkout URL
    or the bank transfer reference.
    """

    id: str
    client_secret: str
    status: PaymentStatus
    amount: int
    currency: str
    driver: str
    customer_id: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def amount_decimal(self) -> Decimal:
        return to_decimal(self.amount, self.currency)

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_secret": self.client_secret,
            "status": self.status.value,
            "amount": self.amount,
            "amount_decimal": str(self.amount_decimal),
            "currency": self.currency,
            "driver": self.driver,
            "customer_id": self.customer_id,
            "return_url": self.return_url,
            "cancel_url": self.cancel_url,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class PaymentResult:
    transaction_id: str
    status: PaymentStatus
    amount: int
    currency: str
    driver: str
    payment_method_id: Optional[str] = None
    customer_id: Optional[str] = None
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    receipt_url: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status.is_successful

    @property
    def is_pending(self) -> bool:
        return self.status.is_pending

    @property
    def is_failed(self) -> bool:
        return self.status.is_failed

    @property
    def amount_decimal(self) -> Decimal:
        return to_decimal(self.amount, self.currency)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "status": self.status.value,
            "amount": self.amount,
            "amount_decimal": str(self.amount_decimal),
            "currency": self.currency,
            "driver": self.driver,
            "payment_method_id": self.payment_method_id,
            "customer_id": self.customer_id,
            "failure_code": self.failure_code,
            "failure_message": self.failure_message,
            "receipt_url": self.receipt_url,
            "metadata": self.metadata,
        }


class WebhookRequest:
    """Raw inbound webhook: header lookup is case-insensitive."""

    def __init__(self, headers: Mapping[str, str], body: bytes) -> None:
        self._headers = {k.lower(): v for k, v in headers.items()}
        self.body = body

    def header(self, name: str) -> Optional[str]:
        return self._headers.get(name.lower())

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


@dataclass(frozen=True)
class WebhookPayload:
    id: str
    type: str
    driver: str
    data: dict[str, Any]
    created_at: Optional[datetime] = None
    raw: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Dotted lookup into ``data``: ``payload.get("amount.value")``."""
        node: Any = self.data
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        return node

    def is_type(self, *types: str) -> bool:
        return self.type in types

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "driver": self.driver,
            "data": self.data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@runtime_checkable
class PaymentGateway(Protocol):
    name: str

    @property
    def display_name(self) -> str: ...

    @property
    def currency(self) -> str: ...

    def is_available(self) -> bool: ...

    def supported_currencies(self) -> list[str]: ...

    def supports_currency(self, currency: str) -> bool: ...

    def capabilities(self) -> frozenset[Capability]: ...

    def supports(self, capability: Capability) -> bool: ...

    def describe(self) -> dict[str, Any]: ...

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer: Customer | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentIntent: ...

    def charge(
        self,
        amount: int,
        currency: str,
        payment_method_id: str,
        options: dict[str, Any] | None = None,
    ) -> PaymentResult: ...

    def get_payment(self, transaction_id: str) -> PaymentResult | None: ...

    def cancel(self, transaction_id: str) -> bool: ...
