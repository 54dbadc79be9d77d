from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from paygate.api.deps.gateways import get_dispatcher
from paygate.application.ports.payment_gateway import WebhookRequest
from paygate.application.webhooks import WebhookDispatcher

router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/payment/{driver}")
async def receive(
    driver: str,
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    # signatures are computed over the exact bytes the provider sent
    body = await request.body()
    inbound = WebhookRequest(headers=dict(request.headers), body=body)
    outcome = await run_in_threadpool(dispatcher.dispatch, driver, inbound)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
