from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from paygate.application.security import Principal, authorize, build_principal, decode_token
from paygate.shared.correlation import set_subject
from paygate.shared.problem import http_problem


def _get_settings(request: Request):
    return request.app.state.settings


def get_principal(
    request: Request,
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
) -> Principal:
    if not authorization or not authorization.startswith("Bearer "):
        raise http_problem(401, "Unauthorized", "Missing bearer token", instance="auth")
    token = authorization.removeprefix("Bearer ").strip()
    claims = decode_token(_get_settings(request), token)
    principal = build_principal(claims)
    set_subject(principal.sub)
    return principal


def require_permission(permission: str):
    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        authorize(principal, permission)
        return principal

    return _dep
