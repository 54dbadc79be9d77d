from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from paygate.application.errors import GatewayUnavailable, InvalidAmount
from paygate.application.ports.payment_gateway import (
    Customer,
    PaymentIntent,
    PaymentResult,
    PaymentStatus,
)
from paygate.infrastructure.gateway.manual import ManualGateway, generate_id, generate_reference

DELIVERY_INSTRUCTIONS = "Payment will be collected upon delivery."


class CashOnDeliveryGateway(ManualGateway):
    """Cash collected by the courier.

    ``fee`` is either a fixed amount in minor units or, with
    ``fee_type=percentage``, a percentage of the order amount. The fee is
    added to what the customer pays.
    """

    driver_type = "cash_on_delivery"
    default_display_name = "Cash on Delivery"
    currencies = ("USD", "EUR", "GBP", "CAD", "AUD", "CHF", "PLN", "CZK", "HUF", "RON")

    def is_available(self) -> bool:
        enabled = self.config.get("enabled", True)
        if isinstance(enabled, str):
            return enabled.lower() == "true"
        return bool(enabled)

    @property
    def max_amount(self) -> int:
        return int(self.config.get("max_amount", 50000))

    def is_available_for_amount(self, amount: int) -> bool:
        return amount <= self.max_amount

    def is_available_for_country(self, country_code: str) -> bool:
        countries = [c.upper() for c in self.config.get("enabled_countries", [])]
        return not countries or country_code.upper() in countries

    def fee(self, order_amount: int) -> int:
        fee = Decimal(str(self.config.get("fee", 0)))
        if self.config.get("fee_type", "fixed") == "percentage":
            return int((order_amount * fee / 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))
        return int(fee)

    def describe(self) -> dict[str, Any]:
        return {
            **super().describe(),
            "max_amount": self.max_amount,
            "enabled_countries": list(self.config.get("enabled_countries", [])),
        }

    def _check_order(self, amount: int, currency: str, country: str | None) -> str:
        code = self._guard(amount, currency)
        if not self.is_available_for_amount(amount):
            raise InvalidAmount(
                amount,
                driver=self.name,
                reason=f"Cash on delivery is limited to {self.max_amount} minor units per order.",
            )
        if country and not self.is_available_for_country(country):
            raise GatewayUnavailable(
                self.name, reason=f"Cash on delivery is not offered in {country.upper()}."
            )
        return code

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer: Customer | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentIntent:
        metadata = dict(metadata or {})
        code = self._check_order(amount, currency, metadata.get("country"))
        fee = self.fee(amount)
        intent_id = generate_id("cod_")
        details = {**metadata, "order_amount": amount, "cod_fee": fee, "instructions": DELIVERY_INSTRUCTIONS}
        with self._operation("create_payment_intent"):
            self._open(
                intent_id,
                amount + fee,
                code,
                reference=generate_reference(),
                customer_id=customer.id if customer else None,
                metadata=details,
            )
        self._log(logging.INFO, "COD payment intent created", intent_id=intent_id, amount=amount, fee=fee)
        return PaymentIntent(
            id=intent_id,
            client_secret=intent_id,
            status=PaymentStatus.PENDING,
            amount=amount + fee,
            currency=code,
            driver=self.name,
            customer_id=customer.id if customer else None,
            metadata=details,
        )

    def charge(
        self,
        amount: int,
        currency: str,
        payment_method_id: str,
        options: dict[str, Any] | None = None,
    ) -> PaymentResult:
        options = options or {}
        code = self._check_order(amount, currency, options.get("country"))
        fee = self.fee(amount)
        transaction_id = generate_id("cod_txn_")
        details = {
            **(options.get("metadata") or {}),
            "order_amount": amount,
            "cod_fee": fee,
            "instructions": DELIVERY_INSTRUCTIONS,
        }
        with self._operation("charge"):
            record = self._open(
                transaction_id,
                amount + fee,
                code,
                reference=generate_reference(),
                customer_id=options.get("customer_id"),
                metadata=details,
            )
        self._log(logging.INFO, "COD payment created (pending delivery)", transaction_id=transaction_id, amount=amount)
        return record.to_result()

    def confirm_delivery(self, transaction_id: str, collected_amount: int) -> PaymentResult:
        return self.confirm_payment(transaction_id, collected_amount)
