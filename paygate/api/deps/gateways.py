from __future__ import annotations

from fastapi import Request

from paygate.application.registry import GatewayRegistry
from paygate.application.webhooks import WebhookDispatcher


def get_registry(request: Request) -> GatewayRegistry:
    return request.app.state.registry


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher
