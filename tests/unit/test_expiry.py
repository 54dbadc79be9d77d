from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from paygate.application.errors import InvalidStatusTransition
from paygate.application.expiry import expire_overdue
from paygate.application.ports.manual_ledger import ManualPaymentRecord
from paygate.application.ports.payment_gateway import PaymentStatus
from paygate.infrastructure.gateway.bank_transfer import BankTransferGateway

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _pending(tid: str, expires_at: datetime) -> ManualPaymentRecord:
    return ManualPaymentRecord(
        transaction_id=tid,
        driver="bank_transfer",
        reference=f"PAY-{tid[-8:].upper()}",
        status=PaymentStatus.PENDING,
        amount=1000,
        currency="EUR",
        expires_at=expires_at,
    )


class TestExpireOverdue:
    def test_expires_only_overdue(self, ledger) -> None:
        ledger.record(_pending("bt_00000001", NOW - timedelta(minutes=1)))
        ledger.record(_pending("bt_00000002", NOW + timedelta(days=1)))

        assert expire_overdue(ledger, now=NOW) == 1
        assert ledger.get("bt_00000001").status is PaymentStatus.EXPIRED
        assert ledger.get("bt_00000001").metadata["expired_at"] == NOW.isoformat()
        assert ledger.get("bt_00000002").status is PaymentStatus.PENDING

    def test_works_through_batches(self, ledger) -> None:
        for i in range(5):
            ledger.record(_pending(f"bt_0000000{i}", NOW - timedelta(hours=i + 1)))

        assert expire_overdue(ledger, now=NOW, batch_size=2) == 5
        assert expire_overdue(ledger, now=NOW, batch_size=2) == 0

    def test_skips_records_settled_concurrently(self) -> None:
        ledger = MagicMock()
        ledger.list_overdue.return_value = [_pending("bt_00000001", NOW - timedelta(days=1))]
        ledger.transition.side_effect = InvalidStatusTransition("bt_00000001", "succeeded", "expired")

        assert expire_overdue(ledger, now=NOW) == 0
        ledger.list_overdue.assert_called_once()

    def test_expired_bank_transfer_is_visible_through_gateway(self, make_config, ledger) -> None:
        gateway = BankTransferGateway(make_config("bank_transfer", expiry_days=0), ledger=ledger)
        result = gateway.charge(1000, "EUR", "")

        assert expire_overdue(ledger, now=datetime.now(timezone.utc) + timedelta(seconds=1)) == 1
        assert gateway.get_payment(result.transaction_id).status is PaymentStatus.EXPIRED
