from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from paygate.application.errors import HandleFailed, PaymentError, SignatureInvalid
from paygate.application.ports.payment_gateway import (
    Capability,
    WebhookPayload,
    WebhookRequest,
)
from paygate.application.registry import GatewayRegistry
from paygate.shared.correlation import set_driver
from paygate.shared.logging import get_logger
from paygate.shared.metrics import WEBHOOKS_RECEIVED_TOTAL

log = get_logger(__name__)

# metric label for webhook paths that name no configured gateway
UNKNOWN_DRIVER = "unknown"

ReceivedListener = Callable[[WebhookPayload], None]
HandledListener = Callable[[WebhookPayload, dict[str, Any]], None]
FailedListener = Callable[[str, HandleFailed], None]


class WebhookState(str, Enum):
    UNSUPPORTED = "unsupported"
    SIGNATURE_INVALID = "signature_invalid"
    HANDLED = "handled"
    HANDLE_FAILED = "handle_failed"


@dataclass(frozen=True)
class WebhookOutcome:
    status_code: int
    body: dict[str, Any]
    state: WebhookState
    error: PaymentError | None = None


@dataclass
class WebhookDispatcher:
    """Routes an inbound provider webhook to the driver that owns it.

    Listeners are called synchronously. Deliveries are not de-duplicated:
    providers retry, so the same event id can arrive more than once.
    """

    registry: GatewayRegistry
    received: list[ReceivedListener] = field(default_factory=list)
    handled: list[HandledListener] = field(default_factory=list)
    failed: list[FailedListener] = field(default_factory=list)

    def on_received(self, listener: ReceivedListener) -> None:
        self.received.append(listener)

    def on_handled(self, listener: HandledListener) -> None:
        self.handled.append(listener)

    def on_failed(self, listener: FailedListener) -> None:
        self.failed.append(listener)

    def dispatch(self, driver_name: str, request: WebhookRequest) -> WebhookOutcome:
        set_driver(driver_name)
        label = driver_name if self.registry.is_configured(driver_name) else UNKNOWN_DRIVER
        try:
            gateway = self.registry.driver(driver_name)
            if not gateway.supports(Capability.WEBHOOKS):
                log.warning("webhook for driver without webhook support")
                return self._outcome(label, 400, {"error": "Webhooks not supported"}, WebhookState.UNSUPPORTED)

            if not gateway.verify_webhook_signature(request):
                rejected = SignatureInvalid(driver_name)
                log.warning("webhook signature rejected", extra=rejected.log_context())
                return self._outcome(
                    label,
                    rejected.status_code,
                    {"error": rejected.public_message},
                    WebhookState.SIGNATURE_INVALID,
                    rejected,
                )

            payload = gateway.parse_webhook(request)
            for listener in self.received:
                listener(payload)

            result = gateway.handle_webhook(payload)
            for handled in self.handled:
                handled(payload, result)
        except Exception as exc:
            failure = HandleFailed(driver_name)
            failure.__cause__ = exc
            log.exception("webhook processing failed", extra=failure.log_context())
            self._notify_failed(driver_name, failure)
            return self._outcome(
                label,
                failure.status_code,
                {"error": failure.public_message},
                WebhookState.HANDLE_FAILED,
                failure,
            )

        log.info("webhook handled", extra={"event_id": payload.id, "event_type": payload.type})
        return self._outcome(label, 200, result, WebhookState.HANDLED)

    def _notify_failed(self, driver_name: str, failure: HandleFailed) -> None:
        for listener in self.failed:
            try:
                listener(driver_name, failure)
            except Exception:
                log.exception("webhook failure listener raised")

    def _outcome(
        self,
        label: str,
        status_code: int,
        body: dict[str, Any],
        state: WebhookState,
        error: PaymentError | None = None,
    ) -> WebhookOutcome:
        WEBHOOKS_RECEIVED_TOTAL.labels(label, state.value).inc()
        return WebhookOutcome(status_code=status_code, body=body, state=state, error=error)
