"""
FastAPI application for Luna CRM.

Wires storage, sessions, the auth gate and (when Google credentials are
set) the OAuth adapter into one app. Business routes depend on
`require_auth` and receive a Principal whose `owner_id` scopes their data.
"""

from __future__ import annotations

import html
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from luna import __version__
from luna.auth.cookies import CookieCodec
from luna.auth.diagnostics import install_diagnostics
from luna.auth.gate import AuthGate, AuthRequired, auth_required_handler, optional_auth, require_auth
from luna.auth.oauth import OAuthClientAdapter
from luna.auth.resolver import IdentityResolver
from luna.auth.routes import build_auth_router
from luna.auth.sessions import SessionStore
from luna.config import AuthEnabled, Settings, get_settings
from luna.core.events import EventBus, get_event_bus
from luna.core.models import Authenticated, Principal
from luna.integrations.oauth import GoogleOAuth
from luna.integrations.sentry import init_sentry
from luna.storage import StorageProvider, open_storage

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    storage: StorageProvider | None = None,
    event_bus: EventBus | None = None,
    oauth_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Build the application.

    `storage`, `event_bus` and `oauth_transport` are injection points for
    tests; by default storage follows STORAGE_BACKEND and the provider is
    reached over the network.
    """
    settings = settings or get_settings()
    mode = settings.auth_mode

    # =========================================================================
    # Lifespan
    # =========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize and cleanup app resources."""
        settings.validate_for_startup()

        if init_sentry(settings):
            logger.info("Sentry error tracking enabled")

        bus = event_bus or get_event_bus()
        subscriptions = install_diagnostics(bus)

        provider = storage or await open_storage(settings)
        sessions = SessionStore(provider.sessions, settings.session_ttl_seconds, bus)
        codec = CookieCodec(settings.session_secret)

        app.state.settings = settings
        app.state.storage = provider
        app.state.bus = bus
        app.state.sessions = sessions
        app.state.codec = codec
        app.state.gate = AuthGate(mode, sessions, IdentityResolver(provider.identities), codec)
        app.state.oauth = None

        if isinstance(mode, AuthEnabled):
            app.state.oauth = OAuthClientAdapter(
                GoogleOAuth(mode.provider, transport=oauth_transport),
                provider.identities,
                bus,
            )
            logger.info(f"Google OAuth enabled, callback {mode.provider.callback_url}")
        else:
            logger.warning(
                "Google OAuth not configured - running in single-user anonymous mode"
            )

        logger.info(f"Luna API starting in {settings.environment} mode ({provider.backend} storage)")

        yield

        for subscription in subscriptions:
            bus.unsubscribe(subscription)
        await provider.close()
        logger.info("Luna API shutting down")

    # =========================================================================
    # App Setup
    # =========================================================================

    app = FastAPI(
        title="Luna CRM API",
        description="Authentication and session core for Luna CRM",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthRequired, auth_required_handler)
    app.include_router(build_auth_router(mode))

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/api/health")
    async def health_check(
        request: Request,
        principal: Principal | None = Depends(optional_auth),
    ):
        """Health check with database connectivity and auth state."""
        provider: StorageProvider = request.app.state.storage
        return {
            "status": "ok",
            "service": "luna-api",
            "database": provider.backend,
            "connected": await provider.sessions.ping(),
            "authMode": "oauth" if isinstance(mode, AuthEnabled) else "anonymous",
            "authenticated": isinstance(principal, Authenticated),
        }

    # =========================================================================
    # Dashboard
    # =========================================================================

    @app.get("/", response_class=HTMLResponse)
    async def dashboard(principal: Principal = Depends(require_auth)):
        name = html.escape(principal.profile()["name"] or principal.profile()["email"])
        return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Luna CRM</title></head>
<body>
<h1>Luna CRM</h1>
<p>Signed in as {name}</p>
<a href="/auth/logout">Log out</a>
</body>
</html>"""

    return app


app = create_app()
