from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from paygate.application.money import format_decimal
from paygate.application.ports.payment_gateway import (
    Customer,
    PaymentIntent,
    PaymentResult,
    PaymentStatus,
)
from paygate.infrastructure.gateway.manual import ManualGateway, generate_id, generate_reference

BANK_DETAIL_KEYS = ("account_name", "account_number", "bank_name", "swift_code", "iban", "instructions")


class BankTransferGateway(ManualGateway):
    """Offline bank transfer.

    The payer wires the money quoting the ``PAY-XXXXXXXX`` reference returned
    as the intent's client secret. Needs no credentials; bank details are
    only echoed back to the payer.
    """

    driver_type = "bank_transfer"
    default_display_name = "Bank Transfer"
    currencies = (
        "USD", "EUR", "GBP", "CAD", "AUD", "CHF", "PLN", "CZK", "HUF", "RON", "BGN", "NOK", "SEK", "DKK",
    )

    def bank_details(self) -> dict[str, Any]:
        return {key: self.config.get(key) for key in BANK_DETAIL_KEYS}

    def _expiry(self) -> datetime:
        days = int(self.config.get("expiry_days", 7))
        return datetime.now(timezone.utc) + timedelta(days=days)

    def _instructions(self, amount: int, currency: str, reference: str) -> str:
        return (
            f"Please transfer {format_decimal(amount, currency)} {currency} to the following "
            f"account with reference: {reference}"
        )

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer: Customer | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentIntent:
        code = self._guard(amount, currency)
        intent_id = generate_id("bt_")
        reference = generate_reference()
        expires_at = self._expiry()
        details = {
            **(metadata or {}),
            "reference": reference,
            "bank_details": self.bank_details(),
            "instructions": self._instructions(amount, code, reference),
            "expires_at": expires_at.isoformat(),
        }
        with self._operation("create_payment_intent"):
            self._open(
                intent_id,
                amount,
                code,
                reference=reference,
                customer_id=customer.id if customer else None,
                metadata=details,
                expires_at=expires_at,
            )
        self._log(logging.INFO, "Bank transfer intent created", intent_id=intent_id, reference=reference, amount=amount)
        return PaymentIntent(
            id=intent_id,
            client_secret=reference,
            status=PaymentStatus.PENDING,
            amount=amount,
            currency=code,
            driver=self.name,
            customer_id=customer.id if customer else None,
            expires_at=expires_at,
            metadata=details,
        )

    def charge(
        self,
        amount: int,
        currency: str,
        payment_method_id: str,
        options: dict[str, Any] | None = None,
    ) -> PaymentResult:
        # payment_method_id carries no meaning for a wire transfer
        code = self._guard(amount, currency)
        options = options or {}
        transaction_id = generate_id("bt_txn_")
        reference = generate_reference()
        expires_at = self._expiry()
        details = {
            **(options.get("metadata") or {}),
            "reference": reference,
            "bank_details": self.bank_details(),
            "instructions": self._instructions(amount, code, reference),
            "expires_at": expires_at.isoformat(),
        }
        with self._operation("charge"):
            record = self._open(
                transaction_id,
                amount,
                code,
                reference=reference,
                customer_id=options.get("customer_id"),
                metadata=details,
                expires_at=expires_at,
            )
        self._log(logging.INFO, "Bank transfer payment created", transaction_id=transaction_id, reference=reference, amount=amount)
        return record.to_result()

    def confirm_transfer(self, transaction_id: str, reference: str, received_amount: int) -> PaymentResult:
        return self.confirm_payment(transaction_id, received_amount, reference)
