"""FastAPI application entrypoint.

Configures CORS, includes routers, initializes provider handles and exposes
health endpoints.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
import logging
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings
from . import state
from .routers import auth as auth_router
from .routers import workspaces as workspaces_router
from .routers import shopify_oauth as shopify_oauth_router
from .telemetry import init_sentry
from . import schemas

# Import models so Alembic can discover metadata
from . import models  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build provider handles once per process and release them on shutdown."""
    settings = get_settings()
    state.init_providers(settings)
    try:
        yield
    finally:
        state.shutdown_providers()


def create_app() -> FastAPI:
    settings = get_settings()
    init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)

    app = FastAPI(
        title="datasync API",
        description="""
        datasync provisions per-workspace data-ingestion storage.

        This API provides endpoints for:
        - Identity login (Google) and session cookies
        - Workspace creation with shareable short ids
        - Attaching connectors (Shopify, Meta, Google), which provisions a
          BigQuery dataset per connector and grants the ingest service account
        - Shopify OAuth install, storing tokens in Secret Manager

        ## Authentication

        JWT in an HTTP-only `access_token` cookie, set by `/auth/google/callback`.
        """,
        version="1.0.0",
        lifespan=lifespan,
    )

    # Cloud Run terminates TLS; trust X-Forwarded-Proto
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    # BACKEND_CORS_ORIGINS is a comma-separated list
    allowed_origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Shopify routes must be registered before /auth/{provider}
    app.include_router(shopify_oauth_router.router)
    app.include_router(auth_router.router)
    app.include_router(workspaces_router.router)

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    def root():
        return "DataSync backend running"

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Unauthenticated liveness check for load balancers.",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
