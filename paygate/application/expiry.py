from __future__ import annotations

from datetime import datetime, timezone

from paygate.application.errors import InvalidStatusTransition, PaymentNotFound
from paygate.application.ports.manual_ledger import ManualPaymentLedger
from paygate.application.ports.payment_gateway import PaymentStatus
from paygate.shared.logging import get_logger
from paygate.shared.metrics import MANUAL_PAYMENTS_EXPIRED_TOTAL

log = get_logger(__name__)


def expire_overdue(ledger: ManualPaymentLedger, now: datetime | None = None, batch_size: int = 100) -> int:
    """Mark pending manual payments whose deadline has passed as expired.

    Returns how many were expired. A record confirmed or canceled concurrently
    is skipped.
    """
    now = now or datetime.now(timezone.utc)
    expired = 0
    while True:
        overdue = ledger.list_overdue(now, limit=batch_size)
        if not overdue:
            break
        progressed = False
        for record in overdue:
            try:
                ledger.transition(
                    record.transaction_id,
                    PaymentStatus.EXPIRED,
                    metadata={"expired_at": now.isoformat()},
                )
            except (InvalidStatusTransition, PaymentNotFound) as exc:
                log.info("skip expiry", extra={"transaction_id": record.transaction_id, "reason": exc.message})
                continue
            progressed = True
            expired += 1
            MANUAL_PAYMENTS_EXPIRED_TOTAL.labels(record.driver).inc()
        if not progressed or len(overdue) < batch_size:
            break

    if expired:
        log.info("manual payments expired", extra={"count": expired})
    return expired
