import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from chatlead.core.config import Settings, get_settings
from chatlead.core.logging import configure_logging
from chatlead.db.create_tables import create_all
from chatlead.repositories.sql_repository import SQLRepository
from chatlead.routers import auth as auth_router
from chatlead.routers import onboarding as onboarding_router
from chatlead.services.auth_service import AuthService
from chatlead.services.identity_provider import IdentityProvider, build_identity_provider
from chatlead.services.onboarding_service import OnboardingService, RecordStore

logger = logging.getLogger(__name__)

HEALTH_MESSAGE = "ChatLead API running!"


async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "Request body must be a JSON object."}, status_code=400)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error."}, status_code=500)


def create_app(
    settings: Settings | None = None,
    *,
    identity: IdentityProvider | None = None,
    store: RecordStore | None = None,
) -> FastAPI:
    """Build the API with its collaborators.

    Collaborators default to the ones configured by the environment; tests
    pass fakes through ``identity`` and ``store``.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if settings.app_env != "prod" and (identity is None or store is None):
        create_all()
    owns_identity = identity is None
    identity = identity or build_identity_provider(settings)
    store = store or SQLRepository()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        # injected providers belong to the caller
        close = getattr(identity, "close", None)
        if owns_identity and close is not None:
            logger.info("closing identity provider")
            close()

    app = FastAPI(title="ChatLead API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _invalid_body)
    app.add_exception_handler(Exception, _unexpected_error)

    app.state.settings = settings
    app.state.onboarding_service = OnboardingService(
        identity,
        store,
        deadline_seconds=settings.onboarding_deadline_seconds,
    )
    app.state.auth_service = AuthService(identity, store, strategy=settings.login_strategy)

    @app.get("/", response_class=PlainTextResponse)
    def health():
        return HEALTH_MESSAGE

    app.include_router(onboarding_router.router)
    app.include_router(auth_router.router)
    logger.info(
        "app configured env=%s identity=%s login=%s",
        settings.app_env,
        settings.identity_backend,
        settings.login_strategy,
    )
    return app
