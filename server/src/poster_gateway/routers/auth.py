"""Login, callback, session and logout routes, per tenant prefix and at the host root"""

from typing import Optional

from fastapi import APIRouter, Form, Query, Request, status
from fastapi.responses import JSONResponse

from poster_gateway.auth.callback import DENIED_REASON_KEY, FragmentTokens
from poster_gateway.auth.dependencies import get_gateway, session_store_for
from poster_gateway.auth.models import denial_reason
from poster_gateway.auth.redirects import sanitize
from poster_gateway.auth.responses import AuthResponseBuilder, failure_page
from poster_gateway.logging_config import get_logger
from poster_gateway.models.tenant import Tenant

logger = get_logger(__name__)


def _fragment_tokens(
    access_token: Optional[str], refresh_token: Optional[str], expires_in: Optional[int]
) -> Optional[FragmentTokens]:
    if access_token and refresh_token:
        return FragmentTokens(access_token, refresh_token, expires_in)
    return None


async def _run_callback(
    request: Request, tenant: Tenant, tokens: Optional[FragmentTokens] = None
):
    gateway = get_gateway(request)
    store = session_store_for(request, tenant)
    return await gateway.exchanger.handle_callback(
        request, tenant, store, fragment_tokens=tokens
    )


# Callback at the host root, for provider redirects that were registered
# without the tenant prefix. The tenant comes from the host router.
host_callback = APIRouter(tags=["Authentication"], include_in_schema=False)


def _host_tenant(request: Request) -> Optional[Tenant]:
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        logger.warning(f"Auth callback on unrecognized host {request.url.hostname}")
    return tenant


@host_callback.get("/auth/callback")
async def host_auth_callback(request: Request):
    """Provider redirect to /auth/callback on a tenant host"""
    tenant = _host_tenant(request)
    if tenant is None:
        return failure_page(request)
    return await _run_callback(request, tenant)


@host_callback.post("/auth/callback")
async def host_auth_callback_tokens(
    request: Request,
    access_token: Optional[str] = Form(None),
    refresh_token: Optional[str] = Form(None),
    expires_in: Optional[int] = Form(None),
):
    """Fragment tokens posted to /auth/callback on a tenant host"""
    tenant = _host_tenant(request)
    if tenant is None:
        return failure_page(request)
    return await _run_callback(
        request, tenant, _fragment_tokens(access_token, refresh_token, expires_in)
    )


def create_auth_router(tenant: Tenant) -> APIRouter:
    """Build the auth routes mounted under tenant.path_prefix."""
    router = APIRouter(
        prefix=tenant.path_prefix,
        tags=["Authentication"],
        include_in_schema=False,
    )

    @router.get("/login", name=f"{tenant.id}_login")
    async def login(request: Request, redirect: Optional[str] = Query(None)):
        """Send the browser to the identity provider unless already signed in"""
        gateway = get_gateway(request)
        store = session_store_for(request, tenant)
        builder = AuthResponseBuilder(store)

        session = await store.get_session()

        if session is not None:
            return builder.redirect(tenant.origin + sanitize(redirect, tenant)).build()

        provider_url = gateway.initiator.begin_login(tenant, redirect, store)
        return builder.redirect(provider_url).build()

    @router.get("/auth/callback", name=f"{tenant.id}_auth_callback")
    async def auth_callback(request: Request):
        """Handle the provider redirect (authorization code flow)"""
        return await _run_callback(request, tenant)

    @router.post("/auth/callback", name=f"{tenant.id}_auth_callback_tokens")
    async def auth_callback_tokens(
        request: Request,
        access_token: Optional[str] = Form(None),
        refresh_token: Optional[str] = Form(None),
        expires_in: Optional[int] = Form(None),
    ):
        """Handle implicit-flow tokens the browser read from the URL fragment"""
        return await _run_callback(
            request, tenant, _fragment_tokens(access_token, refresh_token, expires_in)
        )

    @router.get("/auth/me", name=f"{tenant.id}_auth_me")
    async def auth_me(request: Request):
        """Report the signed-in, allow-listed user for the editor's login bar"""
        gateway = get_gateway(request)
        store = session_store_for(request, tenant)

        session = await store.get_session()

        if session is None:
            return store.apply(
                JSONResponse(
                    {"detail": "Not authenticated"},
                    status_code=status.HTTP_401_UNAUTHORIZED,
                )
            )

        decision = await gateway.gate.check(session.user_email, session.access_token)
        if not decision.allowed:
            await store.sign_out()
            reason = denial_reason(decision.email)
            request.session[DENIED_REASON_KEY] = reason
            return store.apply(
                JSONResponse({"detail": reason}, status_code=status.HTTP_403_FORBIDDEN)
            )

        return store.apply(JSONResponse({"email": decision.email, "tenant": tenant.id}))

    @router.get("/logout", name=f"{tenant.id}_logout")
    async def logout(request: Request):
        """Revoke the session and return to the tenant's login page"""
        store = session_store_for(request, tenant)
        await store.sign_out()
        logger.info(f"Signed out of tenant {tenant.id}")
        return (
            AuthResponseBuilder(store)
            .redirect(f"{tenant.origin}{tenant.path_prefix}/login")
            .build()
        )

    return router
