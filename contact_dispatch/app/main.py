"""
FastAPI application entry point.

Run with:
    uvicorn contact_dispatch.app.main:app --port 8000

Or build a configured instance (tests, other entry points):
    from contact_dispatch.app.main import create_app
    app = create_app(settings, dispatcher=my_dispatcher)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ── Core infrastructure ──
from contact_dispatch.app.core.config import Settings, get_settings
from contact_dispatch.app.core.errors import register_error_handlers
from contact_dispatch.app.core.logging_config import get_logger, setup_logging
from contact_dispatch.app.core.middleware import RequestLoggingMiddleware

# ── Gate & dispatch ──
from contact_dispatch.app.gate.origins import OriginPolicy
from contact_dispatch.app.gate.rate_limit import RateLimiter, build_rate_limiter
from contact_dispatch.app.notify.dispatcher import Dispatcher

# ── API routers ──
from contact_dispatch.app.api.contact import router as contact_router
from contact_dispatch.app.api.debug import router as debug_router
from contact_dispatch.app.api.health import router as health_router

logger = get_logger(__name__)

ROUTE_PREFIXES = ("", "/api")

_UNSET = object()


def create_app(
    settings: Optional[Settings] = None,
    *,
    dispatcher: Optional[Dispatcher] = None,
    rate_limiter: object = _UNSET,
) -> FastAPI:
    """
    Build the application.

    Parameters
    ----------
    settings : Settings, optional
        Defaults to the cached process settings.
    dispatcher : Dispatcher, optional
        Defaults to one built from the provider registry.
    rate_limiter : RateLimiter or None, optional
        Defaults to the configured backend; pass None to disable.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    if dispatcher is None:
        dispatcher = Dispatcher.from_settings(settings)
    limiter: Optional[RateLimiter] = (
        build_rate_limiter(settings) if rate_limiter is _UNSET else rate_limiter  # type: ignore[assignment]
    )
    origin_policy = OriginPolicy(settings.allowed_origins)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s] providers=%s origins=%s",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
            dispatcher.provider_names or "none",
            "any" if origin_policy.allow_all else origin_policy.allowed,
        )
        yield
        dispatcher.close()
        if limiter is not None:
            await limiter.close()
        logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Contact-form notification service. Validates submissions, "
            "delivers them to the business inbox through the first "
            "configured provider that accepts them (SendGrid, Mailgun, "
            "SMTP relay) and reports a stable JSON result."
        ),
        version=settings.APP_VERSION,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.rate_limiter = limiter
    app.state.origin_policy = origin_policy

    # ── Middleware stack (last added is outermost) ──
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origin_policy.allowed if not origin_policy.allow_all else ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=600,
    )

    # ── Error handlers ──
    register_error_handlers(app, settings)

    # ── Routers, at the root and under /api ──
    for prefix in ROUTE_PREFIXES:
        documented = not prefix
        app.include_router(health_router, prefix=prefix, include_in_schema=documented)
        app.include_router(contact_router, prefix=prefix, include_in_schema=documented)
        if settings.debug_routes_enabled:
            app.include_router(debug_router, prefix=prefix, include_in_schema=documented)

    return app


app = create_app()
