from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from paygate.api.deps.auth import require_permission
from paygate.api.deps.gateways import get_registry
from paygate.application.payments import (
    CancelDTO,
    PaymentIntentDTO,
    PaymentResultDTO,
    RefundDTO,
    cancel_payment,
    charge,
    confirm_manual_payment,
    create_intent,
    get_payment,
    refund_payment,
)
from paygate.application.registry import GatewayRegistry

router = APIRouter(prefix="/v1", tags=["payments"])


# amounts are validated by the drivers so every entry point reports InvalidAmount the same way
class CreateIntentRequest(BaseModel):
    amount: int
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    customer_id: str | None = Field(default=None, max_length=128)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChargeRequest(BaseModel):
    amount: int
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    payment_method_id: str = Field(default="", max_length=255)
    options: dict[str, Any] = Field(default_factory=dict)


class RefundRequest(BaseModel):
    amount: int | None = None
    reason: str | None = Field(default=None, max_length=255)


class ConfirmRequest(BaseModel):
    amount: int
    reference: str | None = Field(default=None, max_length=32)


@router.post("/payments/{driver}/intents", response_model=PaymentIntentDTO, status_code=201)
def create(
    driver: str,
    req: CreateIntentRequest,
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:write")),
):
    return create_intent(registry, driver, req.amount, req.currency, req.customer_id, req.metadata)


@router.post("/payments/{driver}/charges", response_model=PaymentResultDTO, status_code=201)
def charge_(
    driver: str,
    req: ChargeRequest,
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:write")),
):
    return charge(registry, driver, req.amount, req.currency, req.payment_method_id, req.options)


@router.get("/payments/{driver}/{transaction_id}", response_model=PaymentResultDTO)
def get_one(
    driver: str,
    transaction_id: str,
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:read")),
):
    return get_payment(registry, driver, transaction_id)


@router.post("/payments/{driver}/{transaction_id}/cancel", response_model=CancelDTO)
def cancel(
    driver: str,
    transaction_id: str,
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:write")),
):
    return cancel_payment(registry, driver, transaction_id)


@router.post("/payments/{driver}/{transaction_id}/refunds", response_model=RefundDTO, status_code=201)
def refund(
    driver: str,
    transaction_id: str,
    req: RefundRequest,
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:write")),
):
    return refund_payment(registry, driver, transaction_id, req.amount, req.reason)


@router.post("/payments/{driver}/{transaction_id}/confirm", response_model=PaymentResultDTO)
def confirm(
    driver: str,
    transaction_id: str,
    req: ConfirmRequest,
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:write")),
):
    return confirm_manual_payment(registry, driver, transaction_id, req.amount, req.reference)
