from __future__ import annotations

from typing import Any


class PaymentError(Exception):
    """Base class of every typed failure raised by the gateway layer."""

    status_code = 500
    title = "Payment Error"

    def __init__(
        self,
        message: str,
        *,
        driver: str | None = None,
        transaction_id: str | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.driver = driver
        self.transaction_id = transaction_id
        self.code = code
        self.context = context or {}

    def log_context(self) -> dict[str, Any]:
        data = {
            "error": self.message,
            "driver": self.driver,
            "transaction_id": self.transaction_id,
            "code": self.code,
            "context": self.context,
            "cause": str(self.__cause__) if self.__cause__ else None,
        }
        return {k: v for k, v in data.items() if v}


class ConfigurationError(PaymentError):
    title = "Configuration Error"

    @classmethod
    def unknown_driver(cls, name: str) -> ConfigurationError:
        return cls(f"Payment gateway '{name}' is not configured.", driver=name)

    @classmethod
    def missing_option(cls, name: str, key: str) -> ConfigurationError:
        return cls(
            f"Missing or invalid configuration '{key}' for payment gateway '{name}'.",
            driver=name,
            context={"option": key},
        )


class GatewayUnavailable(PaymentError):
    status_code = 503
    title = "Gateway Unavailable"

    def __init__(self, driver: str, reason: str | None = None) -> None:
        super().__init__(
            reason or f"Payment gateway '{driver}' is not available or not configured.",
            driver=driver,
        )


class InvalidAmount(PaymentError):
    status_code = 422
    title = "Invalid Amount"

    def __init__(self, amount: Any, driver: str | None = None, reason: str | None = None) -> None:
        super().__init__(
            reason
            or f"Invalid payment amount: {amount!r}. Amount must be a positive integer in minor units.",
            driver=driver,
            context={"amount": amount},
        )


class UnsupportedCurrency(PaymentError):
    status_code = 422
    title = "Unsupported Currency"

    def __init__(self, currency: str, driver: str) -> None:
        super().__init__(
            f"Currency '{currency}' is not supported by payment gateway '{driver}'.",
            driver=driver,
            context={"currency": currency},
        )


class CapabilityNotSupported(PaymentError):
    status_code = 400
    title = "Capability Not Supported"

    def __init__(self, driver: str, capability: str) -> None:
        super().__init__(
            f"Payment gateway '{driver}' does not support {capability}.",
            driver=driver,
            context={"capability": capability},
        )


class SignatureInvalid(PaymentError):
    status_code = 401
    title = "Invalid Signature"
    public_message = "Invalid signature"

    def __init__(self, driver: str) -> None:
        super().__init__(f"Webhook signature verification failed for gateway '{driver}'.", driver=driver)


class HandleFailed(PaymentError):
    title = "Webhook Processing Failed"
    public_message = "Webhook processing failed"

    def __init__(self, driver: str, event_id: str | None = None) -> None:
        super().__init__(
            f"Webhook processing failed for gateway '{driver}'.",
            driver=driver,
            context={"event_id": event_id} if event_id else None,
        )


class ProviderError(PaymentError):
    status_code = 502
    title = "Provider Error"


class PaymentNotFound(PaymentError):
    status_code = 404
    title = "Not Found"

    def __init__(self, transaction_id: str, driver: str | None = None) -> None:
        super().__init__(
            f"Payment '{transaction_id}' not found.", driver=driver, transaction_id=transaction_id
        )


class InvalidStatusTransition(PaymentError):
    status_code = 409
    title = "Conflict"

    def __init__(self, transaction_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Payment '{transaction_id}' cannot move from {current} to {target}.",
            transaction_id=transaction_id,
            context={"from": current, "to": target},
        )


class ReferenceMismatch(PaymentError):
    status_code = 409
    title = "Conflict"

    def __init__(self, transaction_id: str, driver: str) -> None:
        super().__init__(
            f"Reference does not match payment '{transaction_id}'.",
            driver=driver,
            transaction_id=transaction_id,
        )
