from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any

from paygate.application.errors import InvalidStatusTransition, PaymentNotFound
from paygate.application.ports.manual_ledger import ManualPaymentRecord
from paygate.application.ports.payment_gateway import PaymentStatus
from paygate.shared.logging import get_logger

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryManualPaymentLedger:
    """Process-local ledger for manual payments; used when no database is configured."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: dict[str, ManualPaymentRecord] = {}

    def record(self, entry: ManualPaymentRecord) -> ManualPaymentRecord:
        now = _utcnow()
        stored = entry.with_status(entry.status, created_at=entry.created_at or now, updated_at=now)
        with self._lock:
            self._store[entry.transaction_id] = stored
        log.info("manual payment recorded", extra={"transaction_id": entry.transaction_id})
        return stored

    def get(self, transaction_id: str) -> ManualPaymentRecord | None:
        with self._lock:
            return self._store.get(transaction_id)

    def transition(
        self,
        transaction_id: str,
        status: PaymentStatus,
        *,
        amount: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ManualPaymentRecord:
        with self._lock:
            current = self._store.get(transaction_id)
            if current is None:
                raise PaymentNotFound(transaction_id)
            if not current.status.can_transition_to(status):
                raise InvalidStatusTransition(transaction_id, current.status.value, status.value)
            updated = current.with_status(
                status,
                amount=current.amount if amount is None else amount,
                metadata={**current.metadata, **(metadata or {})},
                updated_at=_utcnow(),
            )
            self._store[transaction_id] = updated
        return updated

    def list_overdue(self, now: datetime, limit: int = 100) -> list[ManualPaymentRecord]:
        with self._lock:
            rows = [
                r
                for r in self._store.values()
                if r.status is PaymentStatus.PENDING and r.expires_at is not None and r.expires_at <= now
            ]
        rows.sort(key=lambda r: r.expires_at)
        return rows[:limit]
