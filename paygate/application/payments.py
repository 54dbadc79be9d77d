from __future__ import annotations

from typing import Any, cast

from pydantic import BaseModel, ConfigDict

from paygate.application.errors import CapabilityNotSupported, PaymentNotFound
from paygate.application.ports.capabilities import (
    Refund,
    SupportsManualConfirmation,
    SupportsRefunds,
)
from paygate.application.ports.payment_gateway import Capability, Customer, PaymentGateway
from paygate.application.registry import GatewayRegistry
from paygate.shared.problem import http_problem


class GatewayDTO(BaseModel):
    # drivers may describe themselves with extra keys (crypto currencies, COD limits)
    model_config = ConfigDict(extra="allow")

    name: str
    driver: str
    display_name: str
    available: bool
    currencies: list[str]
    capabilities: list[str]


class PaymentIntentDTO(BaseModel):
    id: str
    client_secret: str
    status: str
    amount: int
    amount_decimal: str
    currency: str
    driver: str
    customer_id: str | None = None
    return_url: str | None = None
    cancel_url: str | None = None
    expires_at: str | None = None
    metadata: dict[str, Any] = {}


class PaymentResultDTO(BaseModel):
    transaction_id: str
    status: str
    amount: int
    amount_decimal: str
    currency: str
    driver: str
    payment_method_id: str | None = None
    customer_id: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    receipt_url: str | None = None
    metadata: dict[str, Any] = {}


class RefundDTO(BaseModel):
    id: str
    transaction_id: str
    status: str
    amount: int
    currency: str
    driver: str
    reason: str | None = None
    failure_reason: str | None = None
    created_at: str | None = None


class CancelDTO(BaseModel):
    transaction_id: str
    driver: str
    canceled: bool


def _refund_dto(refund: Refund) -> RefundDTO:
    return RefundDTO(
        id=refund.id,
        transaction_id=refund.transaction_id,
        status=refund.status,
        amount=refund.amount,
        currency=refund.currency,
        driver=refund.driver,
        reason=refund.reason,
        failure_reason=refund.failure_reason,
        created_at=refund.created_at.isoformat() if refund.created_at else None,
    )


def _describe(gateway: PaymentGateway) -> GatewayDTO:
    return GatewayDTO(**gateway.describe())


def list_gateways(registry: GatewayRegistry) -> list[GatewayDTO]:
    return [_describe(registry.driver(d["name"])) for d in registry.available_drivers()]


def get_gateway(registry: GatewayRegistry, name: str) -> GatewayDTO:
    if name not in registry.configured_names():
        raise http_problem(404, "Not Found", f"gateway '{name}' not configured", instance=f"/v1/gateways/{name}")
    return _describe(registry.driver(name))


def create_intent(
    registry: GatewayRegistry,
    driver: str,
    amount: int,
    currency: str | None,
    customer_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> PaymentIntentDTO:
    gateway = registry.driver(driver)
    customer = Customer(id=customer_id) if customer_id else None
    intent = gateway.create_payment_intent(
        amount, currency or gateway.currency, customer=customer, metadata=metadata
    )
    return PaymentIntentDTO(**intent.to_dict())


def charge(
    registry: GatewayRegistry,
    driver: str,
    amount: int,
    currency: str | None,
    payment_method_id: str,
    options: dict[str, Any] | None = None,
) -> PaymentResultDTO:
    gateway = registry.driver(driver)
    result = gateway.charge(
        amount, currency or gateway.currency, payment_method_id, options=options
    )
    return PaymentResultDTO(**result.to_dict())


def get_payment(registry: GatewayRegistry, driver: str, transaction_id: str) -> PaymentResultDTO:
    result = registry.driver(driver).get_payment(transaction_id)
    if result is None:
        raise PaymentNotFound(transaction_id, driver=driver)
    return PaymentResultDTO(**result.to_dict())


def cancel_payment(registry: GatewayRegistry, driver: str, transaction_id: str) -> CancelDTO:
    canceled = registry.driver(driver).cancel(transaction_id)
    return CancelDTO(transaction_id=transaction_id, driver=driver, canceled=canceled)


def refund_payment(
    registry: GatewayRegistry,
    driver: str,
    transaction_id: str,
    amount: int | None = None,
    reason: str | None = None,
) -> RefundDTO:
    gateway = registry.driver(driver)
    if not gateway.supports(Capability.REFUNDS):
        raise CapabilityNotSupported(driver, Capability.REFUNDS.value)
    refunds = cast(SupportsRefunds, gateway)
    if amount is None:
        return _refund_dto(refunds.refund(transaction_id, reason=reason))
    return _refund_dto(refunds.partial_refund(transaction_id, amount, reason=reason))


def confirm_manual_payment(
    registry: GatewayRegistry,
    driver: str,
    transaction_id: str,
    amount: int,
    reference: str | None = None,
) -> PaymentResultDTO:
    gateway = registry.driver(driver)
    if not gateway.supports(Capability.MANUAL_CONFIRMATION):
        raise CapabilityNotSupported(driver, Capability.MANUAL_CONFIRMATION.value)
    manual = cast(SupportsManualConfirmation, gateway)
    return PaymentResultDTO(**manual.confirm_payment(transaction_id, amount, reference).to_dict())
