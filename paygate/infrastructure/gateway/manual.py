from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Optional

from paygate.application.errors import (
    InvalidAmount,
    InvalidStatusTransition,
    PaymentNotFound,
    ReferenceMismatch,
)
from paygate.application.ports.manual_ledger import ManualPaymentLedger, ManualPaymentRecord
from paygate.application.ports.payment_gateway import Capability, PaymentResult, PaymentStatus
from paygate.infrastructure.gateway.base import AbstractGateway
from paygate.infrastructure.ledger.memory import InMemoryManualPaymentLedger
from paygate.shared.config import GatewayConfig

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference() -> str:
    return "PAY-" + "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(8))


def generate_id(prefix: str) -> str:
    return f"{prefix}{secrets.token_hex(12)}"


class ManualGateway(AbstractGateway):
    """Base for drivers settled outside any provider.

    Payments are written to the manual-payment ledger as ``pending`` and only
    an operator (or the expiry job) moves them on; nothing here ever reports
    ``succeeded`` on its own.
    """

    native_capabilities = frozenset({Capability.MANUAL_CONFIRMATION})

    def __init__(self, config: GatewayConfig, ledger: ManualPaymentLedger | None = None) -> None:
        super().__init__(config)
        self.ledger: ManualPaymentLedger = ledger or InMemoryManualPaymentLedger()

    def _open(
        self,
        transaction_id: str,
        amount: int,
        currency: str,
        *,
        reference: str,
        customer_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
    ) -> ManualPaymentRecord:
        return self.ledger.record(
            ManualPaymentRecord(
                transaction_id=transaction_id,
                driver=self.name,
                reference=reference,
                status=PaymentStatus.PENDING,
                amount=amount,
                currency=currency,
                customer_id=customer_id,
                metadata=metadata or {},
                expires_at=expires_at,
            )
        )

    def _lookup(self, transaction_id: str) -> Optional[ManualPaymentRecord]:
        record = self.ledger.get(transaction_id)
        if record is None or record.driver != self.name:
            return None
        return record

    def get_payment(self, transaction_id: str) -> PaymentResult | None:
        record = self._lookup(transaction_id)
        return record.to_result() if record else None

    def cancel(self, transaction_id: str) -> bool:
        if self._lookup(transaction_id) is None:
            self._log(logging.WARNING, "Cancel of unknown payment", transaction_id=transaction_id)
            return False
        with self._operation("cancel"):
            try:
                self.ledger.transition(
                    transaction_id,
                    PaymentStatus.CANCELED,
                    metadata={"canceled_at": datetime.now(timezone.utc).isoformat()},
                )
            except InvalidStatusTransition as exc:
                self._log(logging.WARNING, "Payment can no longer be canceled", error=str(exc))
                return False
        self._log(logging.INFO, "Payment canceled", transaction_id=transaction_id)
        return True

    def confirm_payment(
        self, transaction_id: str, amount: int, reference: str | None = None
    ) -> PaymentResult:
        """Record that the money arrived; ``amount`` is what was actually received."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount, driver=self.name)
        record = self._lookup(transaction_id)
        if record is None:
            raise PaymentNotFound(transaction_id, driver=self.name)
        if reference is not None and reference.strip().upper() != record.reference:
            raise ReferenceMismatch(transaction_id, self.name)
        with self._operation("confirm"):
            updated = self.ledger.transition(
                transaction_id,
                PaymentStatus.SUCCEEDED,
                amount=amount,
                metadata={
                    "confirmed_at": datetime.now(timezone.utc).isoformat(),
                    "received_amount": amount,
                    "expected_amount": record.amount,
                },
            )
        self._log(logging.INFO, "Payment confirmed", transaction_id=transaction_id, received_amount=amount)
        return updated.to_result()

    def mark_expired(self, transaction_id: str) -> PaymentResult:
        if self._lookup(transaction_id) is None:
            raise PaymentNotFound(transaction_id, driver=self.name)
        with self._operation("expire"):
            updated = self.ledger.transition(
                transaction_id,
                PaymentStatus.EXPIRED,
                metadata={"expired_at": datetime.now(timezone.utc).isoformat()},
            )
        self._log(logging.INFO, "Payment expired", transaction_id=transaction_id)
        return updated.to_result()
