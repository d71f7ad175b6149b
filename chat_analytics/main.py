from fastapi import FastAPI, Request
from fastapi.responses import FileResponse
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
import structlog
import time

from chat_analytics.core.config import Settings, settings as default_settings
from chat_analytics.core.database import create_engine_for, create_sessionmaker, init_models
from chat_analytics.core.errors import register_error_handlers
from chat_analytics.core.security import AdminAccessGate, AuthMode
from chat_analytics.middleware.rate_limit import ChatRateLimitPolicy, build_rate_limiter
from chat_analytics.services.completion import CompletionClient
from chat_analytics.services.partners import PartnerNormalizer
from chat_analytics.api import admin, chat

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ]
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events"""
    config: Settings = app.state.settings
    logger.info("application_startup", app_name=config.app_name)

    # Refuse to serve with a shared-secret gate that has no secret
    app.state.admin_gate.ensure_configured()

    if config.auto_create_tables:
        await init_models(app.state.engine)

    yield

    await app.state.completion_client.aclose()
    await app.state.engine.dispose()
    logger.info("application_shutdown")


def create_app(config: Optional[Settings] = None, **overrides) -> FastAPI:
    """
    Build an application instance with its own engine, limiter and gates.

    Keyword overrides replace the default collaborators (rate_limiter,
    completion_client) so tests can inject fakes.
    """
    config = config or default_settings

    app = FastAPI(
        title=config.app_name,
        debug=config.debug,
        lifespan=lifespan
    )

    engine = create_engine_for(config)
    limiter = overrides.get("rate_limiter") or build_rate_limiter(config)

    app.state.settings = config
    app.state.engine = engine
    app.state.sessionmaker = create_sessionmaker(engine)
    app.state.partner_normalizer = PartnerNormalizer(config.partner_allowlist)
    app.state.admin_gate = AdminAccessGate(config.admin_token, config.admin_auth_mode)
    app.state.rate_limiter = limiter
    app.state.chat_rate_limit = ChatRateLimitPolicy(limiter, config)
    app.state.completion_client = overrides.get("completion_client") or CompletionClient(config)

    if app.state.admin_gate.mode is AuthMode.DISABLED:
        logger.warning("admin_auth_disabled", reason="ADMIN_AUTH_MODE is disabled")
    elif not app.state.admin_gate.configured:
        logger.error("admin_token_missing", mode=config.admin_auth_mode.value)
    if app.state.partner_normalizer.permissive:
        logger.warning("partner_allowlist_empty", mode="permissive")

    # Middleware for logging requests
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2)
        )

        return response

    register_error_handlers(app)

    # Include routers
    app.include_router(chat.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "app": config.app_name}

    @app.get("/", include_in_schema=False)
    async def root():
        """Chat page for direct traffic"""
        return FileResponse(Path(config.static_dir) / "index.html")

    return app


app = create_app()
