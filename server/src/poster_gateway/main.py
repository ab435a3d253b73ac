#!/usr/bin/env python3
"""Poster Gateway - authentication gateway for the Studio and Poster apps"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from poster_gateway.auth.callback import CallbackExchanger
from poster_gateway.auth.dependencies import GatewayContext
from poster_gateway.auth.errors import ConfigurationError
from poster_gateway.auth.oauth_initiator import OAuthInitiator
from poster_gateway.auth.provider_client import SupabaseAuthClient, create_auth_client
from poster_gateway.auth.responses import failure_page
from poster_gateway.auth.session_store import CookiePolicy
from poster_gateway.config import config
from poster_gateway.logging_config import get_logger, setup_logging
from poster_gateway.models.tenant import load_tenants
from poster_gateway.routers.access_denied import router as access_denied_router
from poster_gateway.routers.auth import create_auth_router, host_callback
from poster_gateway.routers.health import health
from poster_gateway.routing.host_router import HostRouter, HostRouterMiddleware
from poster_gateway.services.allowlist_service import (
    AllowlistGate,
    AllowlistStore,
    create_allowlist_store,
)

logger = get_logger(__name__)

UNCONFIGURED_MESSAGE = "登入服務尚未設定完成，請聯絡系統管理員。"


def create_app(
    settings: Optional[dict] = None,
    auth_client: Optional[SupabaseAuthClient] = None,
    allowlist_store: Optional[AllowlistStore] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Clients not passed in are constructed from settings once, here; a client
    whose configuration is missing is left as None and every login attempt
    then fails with a configuration error instead of proceeding.
    """
    settings = settings or config

    # Always use HTTPS-only cookies unless explicitly disabled for local development
    session_secret_key = settings.get("session_secret_key")
    if not session_secret_key or len(session_secret_key) < 32:
        raise RuntimeError(
            "SESSION_SECRET_KEY must be set to a secure random string (>=32 characters)."
        )

    if auth_client is None:
        try:
            auth_client = create_auth_client(settings)
        except ConfigurationError as e:
            logger.warning(f"Identity provider not configured, logins are disabled: {e}")

    if allowlist_store is None:
        try:
            allowlist_store = create_allowlist_store(settings)
        except ConfigurationError as e:
            logger.warning(f"Allow-list store not configured, every login is denied: {e}")

    registry = load_tenants(settings)
    gate = AllowlistGate(
        allowlist_store, timeout=settings.get("allowlist_timeout_seconds", 5.0)
    )
    gateway = GatewayContext(
        registry=registry,
        auth_client=auth_client,
        gate=gate,
        cookie_policy=CookiePolicy(
            secret_key=session_secret_key,
            secure=settings.get("cookie_secure", True),
            max_age=settings.get("session_cookie_max_age", 604800),
        ),
        initiator=OAuthInitiator(auth_client),
        exchanger=CallbackExchanger(
            gate, timeout=settings.get("provider_timeout_seconds", 10.0)
        ),
    )

    app = FastAPI(
        title="Poster Gateway",
        description="Host-routed OAuth gateway in front of the Studio and Poster applications",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
    )
    app.state.gateway = gateway

    # Short-lived flash storage for the access-denied reason
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret_key,
        max_age=1800,  # 30 minutes
        https_only=settings.get("cookie_secure", True),
        same_site="lax",
    )

    # Trust proxy headers (TLS is terminated upstream)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    # Outermost: tenant resolution and path rewriting happen before anything else
    app.add_middleware(HostRouterMiddleware, router=HostRouter(registry))

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error(f"Configuration error while handling {request.url.path}: {exc}")
        return failure_page(request, status_code=503, message=UNCONFIGURED_MESSAGE)

    app.include_router(health)
    app.include_router(access_denied_router)
    app.include_router(host_callback)
    for tenant in registry:
        app.include_router(create_auth_router(tenant))

    return app


if __name__ == "__main__":
    setup_logging()
    port = config.get("port")
    logger.info(f"Starting Poster Gateway on 0.0.0.0:{port}")

    try:
        uvicorn.run(
            "poster_gateway.main:create_app",
            factory=True,
            host="0.0.0.0",
            port=port,
            log_level=config["log_level"].lower(),
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise
