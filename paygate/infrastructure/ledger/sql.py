from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from paygate.application.errors import InvalidStatusTransition, PaymentNotFound
from paygate.application.ports.manual_ledger import ManualPaymentRecord
from paygate.application.ports.payment_gateway import PaymentStatus
from paygate.infrastructure.db.models import ManualPayment
from paygate.shared.logging import get_logger

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    # sqlite hands timezone-aware columns back naive
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: ManualPayment) -> ManualPaymentRecord:
    return ManualPaymentRecord(
        transaction_id=row.transaction_id,
        driver=row.driver,
        reference=row.reference,
        status=PaymentStatus(row.status),
        amount=row.amount,
        currency=row.currency,
        customer_id=row.customer_id,
        metadata=dict(row.details or {}),
        expires_at=_aware(row.expires_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlManualPaymentLedger:
    """Manual payment ledger backed by the ``manual_payments`` table."""

    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def record(self, entry: ManualPaymentRecord) -> ManualPaymentRecord:
        now = _utcnow()
        with self._sessions() as session, session.begin():
            row = ManualPayment(
                transaction_id=entry.transaction_id,
                driver=entry.driver,
                reference=entry.reference,
                status=entry.status.value,
                amount=entry.amount,
                currency=entry.currency,
                customer_id=entry.customer_id,
                details=dict(entry.metadata),
                expires_at=entry.expires_at,
                created_at=entry.created_at or now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            stored = _to_record(row)
        log.info("manual payment recorded", extra={"transaction_id": entry.transaction_id})
        return stored

    def get(self, transaction_id: str) -> ManualPaymentRecord | None:
        with self._sessions() as session:
            row = session.get(ManualPayment, transaction_id)
            return _to_record(row) if row else None

    def transition(
        self,
        transaction_id: str,
        status: PaymentStatus,
        *,
        amount: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ManualPaymentRecord:
        with self._sessions() as session, session.begin():
            row = session.execute(
                select(ManualPayment)
                .where(ManualPayment.transaction_id == transaction_id)
                .with_for_update()
            ).scalar_one_or_none()
            if row is None:
                raise PaymentNotFound(transaction_id)
            current = PaymentStatus(row.status)
            if not current.can_transition_to(status):
                raise InvalidStatusTransition(transaction_id, current.value, status.value)
            row.status = status.value
            if amount is not None:
                row.amount = amount
            if metadata:
                row.details = {**(row.details or {}), **metadata}
            row.updated_at = _utcnow()
            session.flush()
            return _to_record(row)

    def list_overdue(self, now: datetime, limit: int = 100) -> list[ManualPaymentRecord]:
        with self._sessions() as session:
            rows = session.execute(
                select(ManualPayment)
                .where(
                    ManualPayment.status == PaymentStatus.PENDING.value,
                    ManualPayment.expires_at.is_not(None),
                    ManualPayment.expires_at <= now,
                )
                .order_by(ManualPayment.expires_at.asc())
                .limit(limit)
            ).scalars().all()
            return [_to_record(r) for r in rows]
