from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from chatlead.services.onboarding_service import OnboardingError, OnboardingService

router = APIRouter(tags=["onboarding"])


def _get_onboarding_service(request: Request) -> OnboardingService:
    svc = getattr(getattr(request.app, "state", None), "onboarding_service", None)
    if not svc:
        raise RuntimeError("OnboardingService not configured")
    return svc


@router.post("/onboarding", status_code=201)
def onboarding(request: Request, payload: dict[str, Any] = Body(...)):
    svc = _get_onboarding_service(request)
    try:
        result = svc.onboard(payload)
    except OnboardingError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    return JSONResponse(result.as_dict(), status_code=201)
