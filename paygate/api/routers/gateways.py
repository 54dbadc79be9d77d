from __future__ import annotations

from fastapi import APIRouter, Depends

from paygate.api.deps.auth import require_permission
from paygate.api.deps.gateways import get_registry
from paygate.application.payments import GatewayDTO, get_gateway, list_gateways
from paygate.application.registry import GatewayRegistry

router = APIRouter(prefix="/v1", tags=["gateways"])


@router.get("/gateways", response_model=list[GatewayDTO])
def list_(
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:read")),
):
    return list_gateways(registry)


@router.get("/gateways/{name}", response_model=GatewayDTO)
def get_one(
    name: str,
    registry: GatewayRegistry = Depends(get_registry),
    _: object = Depends(require_permission("payments:read")),
):
    return get_gateway(registry, name)
