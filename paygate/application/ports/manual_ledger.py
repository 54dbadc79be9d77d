from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional, Protocol

from paygate.application.ports.payment_gateway import PaymentResult, PaymentStatus


@dataclass(frozen=True)
class ManualPaymentRecord:
    """Locally tracked bank transfer / cash on delivery payment."""

    transaction_id: str
    driver: str
    reference: str
    status: PaymentStatus
    amount: int
    currency: str
    customer_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_status(self, status: PaymentStatus, **changes: Any) -> ManualPaymentRecord:
        return replace(self, status=status, **changes)

    def to_result(self) -> PaymentResult:
        return PaymentResult(
            transaction_id=self.transaction_id,
            status=self.status,
            amount=self.amount,
            currency=self.currency,
            driver=self.driver,
            customer_id=self.customer_id,
            metadata=dict(self.metadata),
        )


class ManualPaymentLedger(Protocol):
    def record(self, entry: ManualPaymentRecord) -> ManualPaymentRecord: ...

    def get(self, transaction_id: str) -> ManualPaymentRecord | None: ...

    def transition(
        self,
        transaction_id: str,
        status: PaymentStatus,
        *,
        amount: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ManualPaymentRecord:
        """Move a record to ``status``.

        Raises ``PaymentNotFound`` for unknown ids and
        ``InvalidStatusTransition`` when the current status is terminal or the
        move is not allowed. ``metadata`` is merged into the stored metadata.
        """
        ...

    def list_overdue(self, now: datetime, limit: int = 100) -> list[ManualPaymentRecord]: ...
