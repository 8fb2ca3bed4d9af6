from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from chatlead.services.auth_service import AuthError, AuthService

router = APIRouter(tags=["auth"])


def _get_auth_service(request: Request) -> AuthService:
    svc = getattr(getattr(request.app, "state", None), "auth_service", None)
    if not svc:
        raise RuntimeError("AuthService not configured")
    return svc


@router.post("/login")
def login(request: Request, payload: dict[str, Any] = Body(...)):
    svc = _get_auth_service(request)
    email = payload.get("email")
    password = payload.get("password")
    try:
        result = svc.login(
            email if isinstance(email, str) else "",
            password if isinstance(password, str) else "",
        )
    except AuthError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    return JSONResponse(jsonable_encoder(result.as_dict()))
