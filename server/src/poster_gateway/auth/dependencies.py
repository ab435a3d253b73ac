"""Request-scoped access to the gateway's shared, immutable handles"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from poster_gateway.auth.callback import CallbackExchanger
from poster_gateway.auth.oauth_initiator import OAuthInitiator
from poster_gateway.auth.provider_client import SupabaseAuthClient
from poster_gateway.auth.session_store import CookiePolicy, SessionStore
from poster_gateway.models.tenant import Tenant, TenantRegistry
from poster_gateway.services.allowlist_service import AllowlistGate


@dataclass(frozen=True)
class GatewayContext:
    """Everything request handlers need, built once when the app is created."""

    registry: TenantRegistry
    auth_client: Optional[SupabaseAuthClient]
    gate: AllowlistGate
    cookie_policy: CookiePolicy
    initiator: OAuthInitiator
    exchanger: CallbackExchanger


def get_gateway(request: Request) -> GatewayContext:
    """
    Fetch the gateway context stored on the FastAPI application state.

    Raises:
        RuntimeError: if the app was not built with create_app().
    """
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("Gateway context is not configured on the application.")
    return gateway


def session_store_for(request: Request, tenant: Tenant) -> SessionStore:
    """A fresh session store bound to this request and tenant."""
    gateway = get_gateway(request)
    return SessionStore(
        request.cookies,
        tenant,
        gateway.auth_client,
        gateway.cookie_policy,
    )
